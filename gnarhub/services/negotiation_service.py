# gnarhub/services/negotiation_service.py
"""
Request / counter-offer / acceptance state machine.

Request states:

    pending ---------> accepted | declined | counter_offered | cancelled
    counter_offered -> accepted (counter-offer accepted) | declined | cancelled
    accepted --------> completed

Acceptance is the only place where a request and its session change
together. It runs as one store transaction that re-reads both documents, so
of any number of concurrent acceptances for one open session exactly one
commits and the rest see the session as taken and fail with ConflictError.

Follow-up work after a committed transition (declining the losing requests,
opening the conversation, notifications) is best-effort: failures there are
logged and do not undo or fail the transition.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from gnarhub import crud
from gnarhub.constants.booking import COLLECTION_REQUESTS, COLLECTION_SESSIONS
from gnarhub.core.exceptions import ConflictError, PermissionDeniedError, ValidationError
from gnarhub.crud.crud_conversation import conversation_id_for
from gnarhub.crud.crud_session_request import ACTIVE_STATUSES, can_transition
from gnarhub.db.store import DocumentStore, Transaction, apply_update
from gnarhub.schemas.notification import NotificationKind
from gnarhub.schemas.session import Session, SessionStatus
from gnarhub.schemas.session_request import (
    CounterOffer,
    CounterOfferCreate,
    CounterOfferStatus,
    RequestCreate,
    RequestStatus,
    SessionRequest,
)
from gnarhub.services.notification_service import (
    NotificationEmitter,
    counter_offer_accepted_payload,
    counter_offer_payload,
    new_request_payload,
    request_accepted_payload,
    request_declined_payload,
)
from gnarhub.utils.datetime_utils import utcnow
from gnarhub.utils.validators import (
    parse_model,
    validate_message,
    validate_rate,
    validate_terrain_tags,
    validate_time_range,
)

logger = logging.getLogger(__name__)

SESSION_UNAVAILABLE = "session no longer available"
REQUEST_NOT_PENDING = "request no longer pending"


def _merged(model, fields: Dict[str, Any]):
    """Re-validate a model with dotted-key field updates applied."""
    return type(model).model_validate(apply_update(model.model_dump(mode="json"), fields))


def _expire_pending_offer(request: SessionRequest, fields: Dict[str, Any]) -> None:
    if request.counter_offer and request.counter_offer.status == CounterOfferStatus.PENDING:
        fields["counter_offer.status"] = CounterOfferStatus.EXPIRED.value


class NegotiationService:
    """
    Booking negotiation between a session's filmer and requesting riders.

    Every mutating call takes the authenticated actor id; the filmer owns
    accept / decline / counter-offer, the rider owns the counter-offer answer
    and withdrawal.
    """

    def __init__(self, db: DocumentStore, notifier: NotificationEmitter):
        self.db = db
        self.notifier = notifier

    # --- Requests ---

    async def create_request(
        self,
        *,
        session_id: str,
        rider_id: str,
        obj_in: Union[RequestCreate, Dict[str, Any]],
    ) -> SessionRequest:
        """
        Submit a rider's request for an open session.

        Raises:
            ValidationError: bad message / tags / amount, self-booking, session
                not open, or the rider already has an active request for it
            NotFoundError: unknown session
        """
        request_in = parse_model(RequestCreate, obj_in)
        message = validate_message(request_in.message)
        rider_tags = validate_terrain_tags(request_in.terrain_tags, required=False)
        amount = (
            validate_rate(request_in.amount, field="amount")
            if request_in.amount is not None
            else None
        )

        request_id = self.db.new_id("req")

        async def _create(txn: Transaction) -> Tuple[Session, SessionRequest]:
            session = await crud.session.get_in_txn(txn, session_id)
            if session.filmer_id == rider_id:
                raise ValidationError("You cannot request your own session", field="rider_id")
            if session.status != SessionStatus.OPEN:
                raise ValidationError("This session is no longer available", field="session_id")
            existing = await crud.session_request.get_active_in_txn(
                txn, session_id=session.id, rider_id=rider_id
            )
            if existing is not None:
                raise ValidationError(
                    "You already have an active request for this session", field="session_id"
                )

            request = SessionRequest(
                id=request_id,
                session_id=session.id,
                rider_id=rider_id,
                filmer_id=session.filmer_id,
                status=RequestStatus.PENDING,
                message=message,
                rider_terrain_tags=rider_tags,
                amount=amount if amount is not None else session.rate,
                payment_reference=request_in.payment_reference,
                conversation_id=conversation_id_for(session.id, [rider_id, session.filmer_id]),
                created_at=utcnow(),
            )
            txn.set(COLLECTION_REQUESTS, request.id, request.model_dump(mode="json"))
            crud.session_request.mark_active(txn, request)
            # Touching the session makes a concurrent hard delete of it conflict
            txn.update(COLLECTION_SESSIONS, session.id, {"request_count": session.request_count + 1})
            return session, request

        session, request = await self.db.run_transaction(_create)
        logger.info(f"Request {request.id} created by rider {rider_id} for session {session_id}")

        await self._open_conversation(session, request)
        self._notify(NotificationKind.NEW_REQUEST, new_request_payload(session, request))
        return request

    async def accept_request_atomic(
        self, *, request_id: str, session_id: str, rider_id: str
    ) -> Tuple[Session, SessionRequest]:
        """
        Book the session for this request in one transaction.

        Raises:
            ConflictError: session not open, request not pending /
                counter_offered, or retries exhausted
            ValidationError: the request does not belong to this session and rider
            NotFoundError: unknown session or request
        """

        async def _accept(txn: Transaction) -> Tuple[Session, SessionRequest]:
            session = await crud.session.get_in_txn(txn, session_id)
            if session.status != SessionStatus.OPEN:
                raise ConflictError(
                    SESSION_UNAVAILABLE,
                    details={"session_id": session_id, "status": session.status.value},
                )

            request = await crud.session_request.get_in_txn(txn, request_id)
            if request.session_id != session_id or request.rider_id != rider_id:
                raise ValidationError(
                    "Request does not belong to this session and rider", field="request_id"
                )
            if not can_transition(request.status, RequestStatus.ACCEPTED):
                raise ConflictError(
                    REQUEST_NOT_PENDING,
                    details={"request_id": request_id, "status": request.status.value},
                )

            now = utcnow().isoformat()
            request_fields = {"status": RequestStatus.ACCEPTED.value, "responded_at": now}
            _expire_pending_offer(request, request_fields)
            session_fields = {
                "status": SessionStatus.BOOKED.value,
                "rider_id": rider_id,
                "request_id": request_id,
                "updated_at": now,
            }
            txn.update(COLLECTION_REQUESTS, request_id, request_fields)
            txn.update(COLLECTION_SESSIONS, session_id, session_fields)
            return _merged(session, session_fields), _merged(request, request_fields)

        session, request = await self.db.run_transaction(_accept)
        logger.info(f"Session {session_id} booked by rider {rider_id} via request {request_id}")
        return session, request

    async def accept_request(self, *, request_id: str, actor_id: str) -> SessionRequest:
        """Filmer accepts a request: atomic booking, then sweep and notify."""
        request = await crud.session_request.get_or_404(self.db, request_id)
        if request.filmer_id != actor_id:
            raise PermissionDeniedError(
                "Only the session's filmer can accept this request",
                details={"request_id": request_id},
            )

        session, accepted = await self.accept_request_atomic(
            request_id=request_id, session_id=request.session_id, rider_id=request.rider_id
        )
        self._notify(NotificationKind.REQUEST_ACCEPTED, request_accepted_payload(session, accepted))
        await self._sweep(session, accepted.id)
        return accepted

    async def decline_request(self, *, request_id: str, actor_id: str) -> SessionRequest:
        """Filmer declines a pending request. The session stays open."""

        async def _decline(txn: Transaction) -> SessionRequest:
            request = await crud.session_request.get_in_txn(txn, request_id)
            if request.filmer_id != actor_id:
                raise PermissionDeniedError(
                    "Only the session's filmer can decline this request",
                    details={"request_id": request_id},
                )
            # Once countered, only the rider's answer ends the request
            if request.status == RequestStatus.COUNTER_OFFERED or not can_transition(
                request.status, RequestStatus.DECLINED
            ):
                raise ConflictError(
                    REQUEST_NOT_PENDING,
                    details={"request_id": request_id, "status": request.status.value},
                )

            fields = {"status": RequestStatus.DECLINED.value, "responded_at": utcnow().isoformat()}
            txn.update(COLLECTION_REQUESTS, request_id, fields)
            return _merged(request, fields)

        request = await self.db.run_transaction(_decline)
        logger.info(f"Request {request_id} declined by filmer {actor_id}")

        session = await self._session_for_notification(request.session_id)
        if session is not None:
            self._notify(NotificationKind.REQUEST_DECLINED, request_declined_payload(session, request))
        return request

    async def _decline_others(
        self, session_id: str, accepted_request_id: str
    ) -> List[SessionRequest]:
        candidates = await crud.session_request.list_by_session(
            self.db, session_id=session_id, statuses=ACTIVE_STATUSES
        )
        declined: List[SessionRequest] = []

        for candidate in candidates:
            if candidate.id == accepted_request_id:
                continue

            async def _decline(txn: Transaction, request_id: str = candidate.id) -> Optional[SessionRequest]:
                request = await crud.session_request.get_in_txn(txn, request_id)
                # Moved on since the query; nothing to do
                if not can_transition(request.status, RequestStatus.DECLINED):
                    return None
                fields = {"status": RequestStatus.DECLINED.value, "responded_at": utcnow().isoformat()}
                _expire_pending_offer(request, fields)
                txn.update(COLLECTION_REQUESTS, request_id, fields)
                return _merged(request, fields)

            result = await self.db.run_transaction(_decline)
            if result is not None:
                declined.append(result)

        return declined

    async def decline_other_requests(
        self, *, session_id: str, accepted_request_id: str
    ) -> List[str]:
        """
        Decline every other pending / counter_offered request for the session.

        Idempotent: a second run finds nothing left to decline.
        """
        declined = await self._decline_others(session_id, accepted_request_id)
        if declined:
            logger.info(
                f"Declined {len(declined)} competing request(s) for session {session_id}"
            )
        return [r.id for r in declined]

    async def cancel_request(self, *, request_id: str, actor_id: str) -> SessionRequest:
        """Rider withdraws a request that has not been answered for good."""

        async def _cancel(txn: Transaction) -> SessionRequest:
            request = await crud.session_request.get_in_txn(txn, request_id)
            if request.rider_id != actor_id:
                raise PermissionDeniedError(
                    "Only the requesting rider can cancel this request",
                    details={"request_id": request_id},
                )
            if not can_transition(request.status, RequestStatus.CANCELLED):
                raise ConflictError(
                    "request can no longer be cancelled",
                    details={"request_id": request_id, "status": request.status.value},
                )

            fields = {"status": RequestStatus.CANCELLED.value, "responded_at": utcnow().isoformat()}
            _expire_pending_offer(request, fields)
            txn.update(COLLECTION_REQUESTS, request_id, fields)
            return _merged(request, fields)

        request = await self.db.run_transaction(_cancel)
        logger.info(f"Request {request_id} cancelled by rider {actor_id}")
        return request

    async def get_request(self, *, request_id: str) -> SessionRequest:
        return await crud.session_request.get_or_404(self.db, request_id)

    async def list_user_requests(
        self, *, user_id: str, as_filmer: bool = False
    ) -> List[SessionRequest]:
        return await crud.session_request.list_by_user(
            self.db, user_id=user_id, as_filmer=as_filmer
        )

    # --- Counter-offers ---

    async def create_counter_offer(
        self,
        *,
        request_id: str,
        actor_id: str,
        obj_in: Union[CounterOfferCreate, Dict[str, Any]],
    ) -> SessionRequest:
        """
        Filmer proposes different times and/or amount on a pending request.

        One round only: a request that already carries a counter-offer is no
        longer pending.
        """
        offer_in = parse_model(CounterOfferCreate, obj_in)
        start_time, end_time = validate_time_range(offer_in.start_time, offer_in.end_time)
        amount = validate_rate(offer_in.amount, field="amount")
        message = validate_message(offer_in.message, required=False)

        async def _counter(txn: Transaction) -> SessionRequest:
            request = await crud.session_request.get_in_txn(txn, request_id)
            if request.filmer_id != actor_id:
                raise PermissionDeniedError(
                    "Only the session's filmer can send a counter-offer",
                    details={"request_id": request_id},
                )
            if not can_transition(request.status, RequestStatus.COUNTER_OFFERED):
                raise ConflictError(
                    REQUEST_NOT_PENDING,
                    details={"request_id": request_id, "status": request.status.value},
                )

            session = await crud.session.get_in_txn(txn, request.session_id)
            if session.status != SessionStatus.OPEN:
                raise ConflictError(SESSION_UNAVAILABLE, details={"session_id": session.id})

            offer = CounterOffer(
                id=self.db.new_id("cof"),
                start_time=start_time,
                end_time=end_time,
                amount=amount,
                message=message,
                status=CounterOfferStatus.PENDING,
                created_at=utcnow(),
            )
            fields = {
                "status": RequestStatus.COUNTER_OFFERED.value,
                "counter_offer": offer.model_dump(mode="json"),
            }
            txn.update(COLLECTION_REQUESTS, request_id, fields)
            return _merged(request, fields)

        request = await self.db.run_transaction(_counter)
        logger.info(
            f"Counter-offer {request.counter_offer.id} sent on request {request_id}: "
            f"{start_time}-{end_time} ${amount}"
        )
        self._notify(
            NotificationKind.COUNTER_OFFER, counter_offer_payload(request, request.counter_offer)
        )
        return request

    async def accept_counter_offer(self, *, request_id: str, actor_id: str) -> SessionRequest:
        """
        Rider accepts the counter-offer: the session is booked on the proposed
        times and rate, in one transaction, exactly like a plain acceptance.
        """

        async def _accept(txn: Transaction) -> Tuple[Session, SessionRequest]:
            request = await crud.session_request.get_in_txn(txn, request_id)
            if request.rider_id != actor_id:
                raise PermissionDeniedError(
                    "Only the requesting rider can accept this counter-offer",
                    details={"request_id": request_id},
                )

            session = await crud.session.get_in_txn(txn, request.session_id)
            if session.status != SessionStatus.OPEN:
                raise ConflictError(
                    SESSION_UNAVAILABLE,
                    details={"session_id": session.id, "status": session.status.value},
                )

            offer = request.counter_offer
            if (
                not can_transition(request.status, RequestStatus.ACCEPTED)
                or offer is None
                or offer.status != CounterOfferStatus.PENDING
            ):
                raise ConflictError(
                    "counter-offer no longer pending",
                    details={"request_id": request_id, "status": request.status.value},
                )

            now = utcnow().isoformat()
            request_fields = {
                "status": RequestStatus.ACCEPTED.value,
                "amount": offer.amount,
                "counter_offer.status": CounterOfferStatus.ACCEPTED.value,
                "responded_at": now,
            }
            # Negotiated terms replace the posted ones
            session_fields = {
                "status": SessionStatus.BOOKED.value,
                "rider_id": request.rider_id,
                "request_id": request_id,
                "start_time": offer.start_time,
                "end_time": offer.end_time,
                "rate": offer.amount,
                "updated_at": now,
            }
            txn.update(COLLECTION_REQUESTS, request_id, request_fields)
            txn.update(COLLECTION_SESSIONS, session.id, session_fields)
            return _merged(session, session_fields), _merged(request, request_fields)

        session, request = await self.db.run_transaction(_accept)
        logger.info(
            f"Counter-offer on request {request_id} accepted; session {session.id} booked "
            f"{session.start_time}-{session.end_time} at ${session.rate}"
        )

        self._notify(
            NotificationKind.COUNTER_OFFER_ACCEPTED, counter_offer_accepted_payload(session, request)
        )
        await self._sweep(session, request.id)
        return request

    async def decline_counter_offer(self, *, request_id: str, actor_id: str) -> SessionRequest:
        """Rider declines the counter-offer, which ends the whole request."""

        async def _decline(txn: Transaction) -> SessionRequest:
            request = await crud.session_request.get_in_txn(txn, request_id)
            if request.rider_id != actor_id:
                raise PermissionDeniedError(
                    "Only the requesting rider can decline this counter-offer",
                    details={"request_id": request_id},
                )
            offer = request.counter_offer
            if (
                not can_transition(request.status, RequestStatus.DECLINED)
                or offer is None
                or offer.status != CounterOfferStatus.PENDING
            ):
                raise ConflictError(
                    "counter-offer no longer pending",
                    details={"request_id": request_id, "status": request.status.value},
                )

            fields = {
                "status": RequestStatus.DECLINED.value,
                "counter_offer.status": CounterOfferStatus.DECLINED.value,
                "responded_at": utcnow().isoformat(),
            }
            txn.update(COLLECTION_REQUESTS, request_id, fields)
            return _merged(request, fields)

        request = await self.db.run_transaction(_decline)
        logger.info(f"Counter-offer on request {request_id} declined by rider {actor_id}")
        return request

    # --- Best-effort follow-ups ---

    async def _sweep(self, session: Session, accepted_request_id: str) -> None:
        try:
            declined = await self._decline_others(session.id, accepted_request_id)
        except Exception as e:
            logger.error(
                f"Failed to decline competing requests for session {session.id}: {e}",
                exc_info=True,
                extra={"session_id": session.id, "request_id": accepted_request_id},
            )
            return

        if declined:
            logger.info(f"Declined {len(declined)} competing request(s) for session {session.id}")
        for request in declined:
            self._notify(NotificationKind.REQUEST_DECLINED, request_declined_payload(session, request))

    async def _open_conversation(self, session: Session, request: SessionRequest) -> None:
        try:
            await crud.conversation.get_or_create(
                self.db,
                session_id=session.id,
                participant_ids=[request.rider_id, session.filmer_id],
            )
        except Exception as e:
            logger.error(
                f"Failed to create conversation for request {request.id}: {e}",
                exc_info=True,
                extra={"session_id": session.id, "request_id": request.id},
            )

    async def _session_for_notification(self, session_id: str) -> Optional[Session]:
        try:
            return await crud.session.get(self.db, session_id)
        except Exception as e:
            logger.error(f"Failed to load session {session_id} for notification: {e}", exc_info=True)
            return None

    def _notify(self, kind: NotificationKind, payload: Dict[str, Any]) -> None:
        try:
            self.notifier.emit(kind, payload)
        except Exception as e:
            logger.error(f"Failed to emit {kind.value} notification: {e}", exc_info=True)
