# gnarhub/services/session_service.py
import logging
from typing import Any, Dict, List, Optional, Union

from gnarhub import crud
from gnarhub.constants.booking import COLLECTION_REQUESTS, COLLECTION_SESSIONS, COLLECTION_USERS
from gnarhub.core.exceptions import ConflictError, PermissionDeniedError
from gnarhub.crud.crud_session_request import can_transition
from gnarhub.db.store import DocumentStore, Transaction
from gnarhub.schemas.session import (
    Session,
    SessionCreate,
    SessionFilters,
    SessionStatus,
    SessionUpdate,
)
from gnarhub.schemas.session_request import RequestStatus
from gnarhub.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)


class SessionService:
    """Owner-checked session operations for the filmer who posted them."""

    def __init__(self, db: DocumentStore):
        self.db = db

    def _check_owner(self, session: Session, actor_id: str, action: str) -> None:
        if session.filmer_id != actor_id:
            raise PermissionDeniedError(
                f"Only the session's filmer can {action} it",
                details={"session_id": session.id},
            )

    async def create_session(
        self, *, filmer_id: str, obj_in: Union[SessionCreate, Dict[str, Any]]
    ) -> Session:
        return await crud.session.create(self.db, filmer_id=filmer_id, obj_in=obj_in)

    async def get_session(self, *, session_id: str) -> Session:
        return await crud.session.get_or_404(self.db, session_id)

    async def list_sessions(self, *, filters: Optional[SessionFilters] = None) -> List[Session]:
        return await crud.session.list(self.db, filters)

    async def update_session(
        self,
        *,
        session_id: str,
        actor_id: str,
        obj_in: Union[SessionUpdate, Dict[str, Any]],
    ) -> Session:
        session = await crud.session.get_or_404(self.db, session_id)
        self._check_owner(session, actor_id, "edit")
        return await crud.session.update(self.db, session_id=session_id, obj_in=obj_in)

    async def cancel_session(self, *, session_id: str, actor_id: str) -> Session:
        session = await crud.session.get_or_404(self.db, session_id)
        self._check_owner(session, actor_id, "cancel")
        return await crud.session.cancel(self.db, session_id=session_id)

    async def delete_session(self, *, session_id: str, actor_id: str) -> None:
        """
        Hard delete, only for sessions nobody has requested.

        Sessions with request history must be cancelled instead. The delete
        re-reads the session in a transaction, and create_request bumps
        request_count in its own transaction, so a racing request either
        commits first (and the delete is refused) or finds the session gone.
        """

        async def _delete(txn: Transaction) -> None:
            session = await crud.session.get_in_txn(txn, session_id)
            self._check_owner(session, actor_id, "delete")
            if session.request_count > 0 or await crud.session.has_requests(
                self.db, session_id=session_id
            ):
                raise ConflictError(
                    "Session has requests and cannot be deleted; cancel it instead",
                    details={"session_id": session_id},
                )
            txn.delete(COLLECTION_SESSIONS, session_id)

        await self.db.run_transaction(_delete)
        logger.info(f"Session {session_id} deleted by filmer {actor_id}")

    async def complete_session(self, *, session_id: str, actor_id: str) -> Session:
        """
        Mark a booked session as filmed.

        The accepted request moves to completed, and the filmer's and rider's
        session counters are bumped in the same transaction when their
        profiles exist.
        """

        async def _complete(txn: Transaction) -> Session:
            session = await crud.session.get_in_txn(txn, session_id)
            self._check_owner(session, actor_id, "complete")
            if session.status != SessionStatus.BOOKED:
                raise ConflictError(
                    f"Only booked sessions can be completed (session is {session.status.value})",
                    details={"session_id": session_id, "status": session.status.value},
                )

            request = await crud.session_request.get_in_txn(txn, session.request_id)
            filmer_doc = await txn.get(COLLECTION_USERS, session.filmer_id)
            rider_doc = await txn.get(COLLECTION_USERS, session.rider_id)

            now = utcnow().isoformat()
            if can_transition(request.status, RequestStatus.COMPLETED):
                txn.update(COLLECTION_REQUESTS, request.id, {"status": RequestStatus.COMPLETED.value})
            if filmer_doc is not None:
                txn.update(
                    COLLECTION_USERS,
                    session.filmer_id,
                    {"sessions_as_filmer": filmer_doc.get("sessions_as_filmer", 0) + 1},
                )
            if rider_doc is not None:
                txn.update(
                    COLLECTION_USERS,
                    session.rider_id,
                    {"sessions_as_rider": rider_doc.get("sessions_as_rider", 0) + 1},
                )

            fields = {"status": SessionStatus.COMPLETED.value, "updated_at": now}
            txn.update(COLLECTION_SESSIONS, session_id, fields)
            return Session.model_validate({**session.model_dump(mode="json"), **fields})

        session = await self.db.run_transaction(_complete)
        logger.info(f"Session {session_id} completed (rider {session.rider_id})")
        return session
