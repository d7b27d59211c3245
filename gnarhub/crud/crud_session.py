# gnarhub/crud/crud_session.py
"""
CRUD operations for bookable sessions.

Pure persistence plus input validation. Ownership checks and the
"no delete while requests exist" guard live in SessionService; status
changes driven by bookings live in the negotiation service.
"""

import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Union

from gnarhub.constants.booking import (
    COLLECTION_REQUESTS,
    COLLECTION_SESSIONS,
    UPCOMING_DAYS_DEFAULT,
    UPCOMING_LIMIT_DEFAULT,
)
from gnarhub.core.exceptions import ConflictError, NotFoundError
from gnarhub.db.store import DocumentStore, Op, Order, Transaction, where
from gnarhub.schemas.session import (
    Session,
    SessionCreate,
    SessionFilters,
    SessionStatus,
    SessionUpdate,
)
from gnarhub.utils.datetime_utils import today_utc, utcnow
from gnarhub.utils.validators import (
    parse_model,
    reject_fields,
    validate_mountain,
    validate_notes,
    validate_rate,
    validate_session_date,
    validate_terrain_tags,
    validate_time_range,
)

logger = logging.getLogger(__name__)

# Fixed once the session is posted
IMMUTABLE_FIELDS = ("date", "mountain_id", "filmer_id")
# Only ever written by the booking engine
ENGINE_FIELDS = (
    "id",
    "status",
    "rider_id",
    "request_id",
    "created_at",
    "updated_at",
    "reminder_sent_at",
    "request_count",
)

EDITABLE_STATUSES = {SessionStatus.OPEN, SessionStatus.BOOKED}

CHRONOLOGICAL = [Order("date"), Order("start_time")]


class CRUDSession:
    """CRUD operations for Session documents."""

    collection = COLLECTION_SESSIONS

    async def get(self, db: DocumentStore, session_id: str) -> Optional[Session]:
        doc = await db.get(self.collection, session_id)
        return Session.model_validate(doc) if doc else None

    async def get_or_404(self, db: DocumentStore, session_id: str) -> Session:
        session = await self.get(db, session_id)
        if session is None:
            raise NotFoundError("Session", session_id)
        return session

    async def get_in_txn(self, txn: Transaction, session_id: str) -> Session:
        """Read a session inside a transaction; missing sessions raise NotFoundError."""
        doc = await txn.get(self.collection, session_id)
        if doc is None:
            raise NotFoundError("Session", session_id)
        return Session.model_validate(doc)

    async def create(
        self,
        db: DocumentStore,
        *,
        filmer_id: str,
        obj_in: Union[SessionCreate, Dict[str, Any]],
        today: Optional[date] = None,
    ) -> Session:
        """Create an open session. All slot fields are validated first."""
        session_in = parse_model(SessionCreate, obj_in)

        validate_mountain(session_in.mountain_id)
        validate_session_date(session_in.date, today=today)
        start_time, end_time = validate_time_range(session_in.start_time, session_in.end_time)

        now = utcnow()
        session = Session(
            id=db.new_id("ses"),
            filmer_id=filmer_id,
            status=SessionStatus.OPEN,
            mountain_id=session_in.mountain_id,
            date=session_in.date,
            start_time=start_time,
            end_time=end_time,
            terrain_tags=validate_terrain_tags(session_in.terrain_tags),
            rate=validate_rate(session_in.rate),
            notes=validate_notes(session_in.notes),
            created_at=now,
            updated_at=now,
        )
        await db.set(self.collection, session.id, session.model_dump(mode="json"))

        logger.info(
            f"Session {session.id} created by filmer {filmer_id} "
            f"at {session.mountain_id} on {session.date}"
        )
        return session

    def _validated_changes(self, current: Session, changes: Dict[str, Any]) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}

        if "start_time" in changes or "end_time" in changes:
            start_time, end_time = validate_time_range(
                changes.get("start_time", current.start_time),
                changes.get("end_time", current.end_time),
            )
            fields["start_time"] = start_time
            fields["end_time"] = end_time
        if "rate" in changes:
            fields["rate"] = validate_rate(changes["rate"])
        if "terrain_tags" in changes:
            fields["terrain_tags"] = validate_terrain_tags(changes["terrain_tags"])
        if "notes" in changes:
            fields["notes"] = validate_notes(changes["notes"])

        return fields

    async def update(
        self,
        db: DocumentStore,
        *,
        session_id: str,
        obj_in: Union[SessionUpdate, Dict[str, Any]],
    ) -> Session:
        """
        Edit the time window, rate, terrain tags or notes.

        Raises:
            ValidationError: for immutable or engine-owned fields, or invalid values
            ConflictError: if the session is completed or cancelled
        """
        if isinstance(obj_in, dict):
            reject_fields(obj_in, IMMUTABLE_FIELDS, "cannot be changed after the session is posted")
            reject_fields(obj_in, ENGINE_FIELDS, "is managed by the booking flow")
        changes = parse_model(SessionUpdate, obj_in).model_dump(exclude_unset=True)

        async def _update(txn: Transaction) -> Session:
            current = await self.get_in_txn(txn, session_id)
            if current.status not in EDITABLE_STATUSES:
                raise ConflictError(
                    f"Session {session_id} is {current.status.value} and can no longer be edited",
                    details={"session_id": session_id, "status": current.status.value},
                )

            fields = self._validated_changes(current, changes)
            fields["updated_at"] = utcnow().isoformat()
            txn.update(self.collection, session_id, fields)
            return Session.model_validate({**current.model_dump(mode="json"), **fields})

        session = await db.run_transaction(_update)
        logger.info(f"Session {session_id} updated: {sorted(changes)}")
        return session

    async def cancel(self, db: DocumentStore, *, session_id: str) -> Session:
        """
        Cancel an open or booked session. Idempotent.

        The bound rider and request are kept as history.
        """

        async def _cancel(txn: Transaction) -> Session:
            current = await self.get_in_txn(txn, session_id)
            if current.status == SessionStatus.CANCELLED:
                return current
            if current.status == SessionStatus.COMPLETED:
                raise ConflictError(
                    f"Session {session_id} is completed and cannot be cancelled",
                    details={"session_id": session_id},
                )

            fields = {"status": SessionStatus.CANCELLED.value, "updated_at": utcnow().isoformat()}
            txn.update(self.collection, session_id, fields)
            return Session.model_validate({**current.model_dump(mode="json"), **fields})

        session = await db.run_transaction(_cancel)
        logger.info(f"Session {session_id} cancelled")
        return session

    async def delete(self, db: DocumentStore, *, session_id: str) -> None:
        """Hard delete. Callers must check has_requests first."""
        await db.delete(self.collection, session_id)
        logger.info(f"Session {session_id} deleted")

    async def has_requests(self, db: DocumentStore, *, session_id: str) -> bool:
        docs = await db.query(
            COLLECTION_REQUESTS, [where("session_id", Op.EQ, session_id)], limit=1
        )
        return bool(docs)

    async def list(
        self, db: DocumentStore, filters: Optional[SessionFilters] = None
    ) -> List[Session]:
        """Sessions matching the filters, in chronological order."""
        filters = filters or SessionFilters()
        predicates = []

        if filters.status is not None:
            predicates.append(where("status", Op.EQ, filters.status.value))
        if filters.filmer_id:
            predicates.append(where("filmer_id", Op.EQ, filters.filmer_id))
        if filters.mountain_id:
            predicates.append(where("mountain_id", Op.EQ, filters.mountain_id))
        if filters.date_from:
            predicates.append(where("date", Op.GTE, filters.date_from.isoformat()))
        if filters.date_to:
            predicates.append(where("date", Op.LTE, filters.date_to.isoformat()))
        if filters.terrain_tags:
            # Any overlap; refined in memory after the indexed predicates
            predicates.append(
                where("terrain_tags", Op.ARRAY_CONTAINS_ANY, [t.value for t in filters.terrain_tags])
            )

        docs = await db.query(
            self.collection, predicates, order_by=CHRONOLOGICAL, limit=filters.limit
        )
        return [Session.model_validate(doc) for doc in docs]

    async def list_upcoming(
        self,
        db: DocumentStore,
        *,
        days: int = UPCOMING_DAYS_DEFAULT,
        limit: int = UPCOMING_LIMIT_DEFAULT,
        start_date: Optional[date] = None,
        mountain_id: Optional[str] = None,
    ) -> List[Session]:
        """Open sessions from start_date (never earlier than today) for the next `days` days."""
        today = today_utc()
        start = max(start_date or today, today)
        return await self.list(
            db,
            SessionFilters(
                status=SessionStatus.OPEN,
                mountain_id=mountain_id,
                date_from=start,
                date_to=start + timedelta(days=days),
                limit=limit,
            ),
        )

    async def get_multi_by_filmer(
        self,
        db: DocumentStore,
        *,
        filmer_id: str,
        status: Optional[SessionStatus] = None,
    ) -> List[Session]:
        return await self.list(db, SessionFilters(status=status, filmer_id=filmer_id))


session = CRUDSession()
