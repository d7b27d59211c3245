# gnarhub/services/review_service.py
"""
Reviews and the filmer rating aggregate.

The user document carries rating_sum and review_count next to the derived
average_rating. Each review create / delete adjusts them in the same
transaction that writes or removes the review, so the aggregate always
matches the review set.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from gnarhub import crud
from gnarhub.constants.booking import COLLECTION_REVIEWS, COLLECTION_USERS
from gnarhub.core.exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from gnarhub.crud.crud_review import review_id_for
from gnarhub.db.store import DocumentStore, Transaction
from gnarhub.schemas.review import Review, ReviewCreate
from gnarhub.schemas.session import SessionStatus
from gnarhub.schemas.user import User
from gnarhub.utils.datetime_utils import utcnow
from gnarhub.utils.validators import parse_model, validate_rating, validate_review_text

logger = logging.getLogger(__name__)


def rating_fields(rating_sum: float, review_count: int) -> Dict[str, Any]:
    review_count = max(review_count, 0)
    if review_count == 0:
        # No reviews left: reset so float drift cannot survive an empty set
        return {"rating_sum": 0, "review_count": 0, "average_rating": None}
    return {
        "rating_sum": rating_sum,
        "review_count": review_count,
        "average_rating": rating_sum / review_count,
    }


class ReviewService:
    def __init__(self, db: DocumentStore):
        self.db = db

    async def create_review(
        self, *, rider_id: str, obj_in: Union[ReviewCreate, Dict[str, Any]]
    ) -> Review:
        """
        Store a rider's review of a completed session and fold it into the
        filmer's rating.

        Raises:
            ValidationError: bad rating or text, session not completed
            PermissionDeniedError: reviewer was not the session's rider
            ConflictError: this rider already reviewed this session
            NotFoundError: unknown session or filmer profile
        """
        review_in = parse_model(ReviewCreate, obj_in)
        rating = validate_rating(review_in.rating)
        text = validate_review_text(review_in.text)
        review_id = review_id_for(review_in.session_id, rider_id)

        async def _create(txn: Transaction) -> Review:
            session = await crud.session.get_in_txn(txn, review_in.session_id)
            if session.rider_id != rider_id:
                raise PermissionDeniedError(
                    "Only the rider who booked this session can review it",
                    details={"session_id": session.id},
                )
            if session.status != SessionStatus.COMPLETED:
                raise ValidationError("Only completed sessions can be reviewed", field="session_id")

            if await txn.get(COLLECTION_REVIEWS, review_id) is not None:
                raise ConflictError(
                    "You have already reviewed this session", details={"session_id": session.id}
                )

            filmer = await crud.user.get_in_txn(txn, session.filmer_id)

            review = Review(
                id=review_id,
                session_id=session.id,
                filmer_id=session.filmer_id,
                rider_id=rider_id,
                rating=rating,
                text=text,
                could_keep_up=review_in.could_keep_up,
                good_quality=review_in.good_quality,
                good_vibes=review_in.good_vibes,
                created_at=utcnow(),
            )
            txn.set(COLLECTION_REVIEWS, review.id, review.model_dump(mode="json"))
            txn.update(
                COLLECTION_USERS,
                filmer.id,
                rating_fields(filmer.rating_sum + rating, filmer.review_count + 1),
            )
            return review

        review = await self.db.run_transaction(_create)
        logger.info(f"Review {review.id} ({review.rating}/5) added for filmer {review.filmer_id}")
        return review

    async def delete_review(self, *, review_id: str, filmer_id: str) -> None:
        """Remove a review and take it back out of the filmer's rating."""

        async def _delete(txn: Transaction) -> None:
            doc = await txn.get(COLLECTION_REVIEWS, review_id)
            if doc is None:
                raise NotFoundError("Review", review_id)
            review = Review.model_validate(doc)
            if review.filmer_id != filmer_id:
                raise ValidationError("Review does not belong to this filmer", field="filmer_id")

            filmer = await crud.user.get_in_txn(txn, filmer_id)
            txn.delete(COLLECTION_REVIEWS, review_id)
            txn.update(
                COLLECTION_USERS,
                filmer_id,
                rating_fields(filmer.rating_sum - review.rating, filmer.review_count - 1),
            )

        await self.db.run_transaction(_delete)
        logger.info(f"Review {review_id} deleted for filmer {filmer_id}")

    async def recompute_filmer_rating(self, *, filmer_id: str) -> User:
        """Rebuild the aggregate from the stored reviews (repair path)."""
        reviews = await crud.review.list_by_filmer(self.db, filmer_id=filmer_id)
        fields = rating_fields(sum(r.rating for r in reviews), len(reviews))

        async def _write(txn: Transaction) -> User:
            filmer = await crud.user.get_in_txn(txn, filmer_id)
            txn.update(COLLECTION_USERS, filmer_id, fields)
            return User.model_validate({**filmer.model_dump(mode="json"), **fields})

        user = await self.db.run_transaction(_write)
        logger.info(
            f"Recomputed rating for filmer {filmer_id}: "
            f"{user.average_rating} over {user.review_count} review(s)"
        )
        return user

    async def list_filmer_reviews(self, *, filmer_id: str) -> List[Review]:
        return await crud.review.list_by_filmer(self.db, filmer_id=filmer_id)

    async def get_review(self, *, review_id: str) -> Optional[Review]:
        return await crud.review.get(self.db, review_id)
