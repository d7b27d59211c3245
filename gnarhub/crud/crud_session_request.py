# gnarhub/crud/crud_session_request.py
"""
Read access for session requests, plus the per-rider active marker.

Every request mutation is a guarded state transition and therefore lives in
the negotiation service, inside a transaction. The marker document lets that
transaction see a rider's competing request by key instead of by query, so
two concurrent submissions by the same rider conflict at commit.
"""

import hashlib
import logging
from typing import Iterable, List, Optional

from gnarhub.constants.booking import COLLECTION_ACTIVE_REQUESTS, COLLECTION_REQUESTS
from gnarhub.core.exceptions import NotFoundError
from gnarhub.db.store import DocumentStore, Op, Order, Transaction, where
from gnarhub.schemas.session_request import RequestStatus, SessionRequest

logger = logging.getLogger(__name__)

# Requests that still compete for their session
ACTIVE_STATUSES = {RequestStatus.PENDING, RequestStatus.COUNTER_OFFERED}

# Valid state transitions for a SessionRequest
VALID_TRANSITIONS = {
    RequestStatus.PENDING: {
        RequestStatus.ACCEPTED,
        RequestStatus.DECLINED,
        RequestStatus.COUNTER_OFFERED,
        RequestStatus.CANCELLED,
    },
    RequestStatus.COUNTER_OFFERED: {
        RequestStatus.ACCEPTED,
        RequestStatus.DECLINED,
        RequestStatus.CANCELLED,
    },
    RequestStatus.ACCEPTED: {RequestStatus.COMPLETED},
    RequestStatus.DECLINED: set(),  # Terminal state
    RequestStatus.CANCELLED: set(),  # Terminal state
    RequestStatus.COMPLETED: set(),  # Terminal state
}


def can_transition(old_status: RequestStatus, new_status: RequestStatus) -> bool:
    return new_status in VALID_TRANSITIONS.get(old_status, set())


def active_marker_id_for(session_id: str, rider_id: str) -> str:
    digest = hashlib.sha256(f"{session_id}|{rider_id}".encode("utf-8")).hexdigest()
    return f"act_{digest[:24]}"


class CRUDSessionRequest:
    collection = COLLECTION_REQUESTS

    async def get(self, db: DocumentStore, request_id: str) -> Optional[SessionRequest]:
        doc = await db.get(self.collection, request_id)
        return SessionRequest.model_validate(doc) if doc else None

    async def get_or_404(self, db: DocumentStore, request_id: str) -> SessionRequest:
        request = await self.get(db, request_id)
        if request is None:
            raise NotFoundError("SessionRequest", request_id)
        return request

    async def get_in_txn(self, txn: Transaction, request_id: str) -> SessionRequest:
        doc = await txn.get(self.collection, request_id)
        if doc is None:
            raise NotFoundError("SessionRequest", request_id)
        return SessionRequest.model_validate(doc)

    async def list_by_session(
        self,
        db: DocumentStore,
        *,
        session_id: str,
        statuses: Optional[Iterable[RequestStatus]] = None,
    ) -> List[SessionRequest]:
        """Requests for a session, oldest first, optionally limited to some statuses."""
        predicates = [where("session_id", Op.EQ, session_id)]
        if statuses is not None:
            predicates.append(where("status", Op.IN, [s.value for s in statuses]))
        docs = await db.query(self.collection, predicates, order_by=Order("created_at"))
        return [SessionRequest.model_validate(doc) for doc in docs]

    async def get_active_in_txn(
        self, txn: Transaction, *, session_id: str, rider_id: str
    ) -> Optional[SessionRequest]:
        """The rider's pending or counter_offered request for a session, if any."""
        marker = await txn.get(COLLECTION_ACTIVE_REQUESTS, active_marker_id_for(session_id, rider_id))
        if marker is None:
            return None
        doc = await txn.get(self.collection, marker["request_id"])
        if doc is None:
            return None
        request = SessionRequest.model_validate(doc)
        return request if request.status in ACTIVE_STATUSES else None

    def mark_active(self, txn: Transaction, request: SessionRequest) -> None:
        """Point the rider's marker at a newly created request."""
        txn.set(
            COLLECTION_ACTIVE_REQUESTS,
            active_marker_id_for(request.session_id, request.rider_id),
            {
                "session_id": request.session_id,
                "rider_id": request.rider_id,
                "request_id": request.id,
            },
        )

    async def list_by_user(
        self, db: DocumentStore, *, user_id: str, as_filmer: bool = False
    ) -> List[SessionRequest]:
        """A rider's outgoing or a filmer's incoming requests, newest first."""
        field = "filmer_id" if as_filmer else "rider_id"
        docs = await db.query(
            self.collection,
            [where(field, Op.EQ, user_id)],
            order_by=Order("created_at", descending=True),
        )
        return [SessionRequest.model_validate(doc) for doc in docs]


session_request = CRUDSessionRequest()
