# gnarhub/crud/crud_review.py
import hashlib
from typing import List, Optional

from gnarhub.constants.booking import COLLECTION_REVIEWS
from gnarhub.db.store import DocumentStore, Op, Order, where
from gnarhub.schemas.review import Review


def review_id_for(session_id: str, rider_id: str) -> str:
    """One review per rider per session; the id is derived so duplicates collide."""
    digest = hashlib.sha256(f"{session_id}|{rider_id}".encode("utf-8")).hexdigest()
    return f"rev_{digest[:24]}"


class CRUDReview:
    collection = COLLECTION_REVIEWS

    async def get(self, db: DocumentStore, review_id: str) -> Optional[Review]:
        doc = await db.get(self.collection, review_id)
        return Review.model_validate(doc) if doc else None

    async def list_by_filmer(self, db: DocumentStore, *, filmer_id: str) -> List[Review]:
        docs = await db.query(
            self.collection,
            [where("filmer_id", Op.EQ, filmer_id)],
            order_by=Order("created_at", descending=True),
        )
        return [Review.model_validate(doc) for doc in docs]


review = CRUDReview()
