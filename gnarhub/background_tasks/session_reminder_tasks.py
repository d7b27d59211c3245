"""
Background task for day-before session reminders.

Once a day the scheduler calls send_session_reminders, which:
1. Finds booked sessions for tomorrow that have not been reminded yet
2. Marks each one with reminder_sent_at in a conditional transaction
3. Emits one session_reminder event to the rider and one to the filmer

Marking before emitting means a crash can lose a reminder but never send
one twice; re-running for the same day is a no-op.
"""

import logging
from datetime import date
from typing import List, Optional

from gnarhub import crud
from gnarhub.constants.booking import COLLECTION_SESSIONS
from gnarhub.db.store import DocumentStore, Transaction
from gnarhub.schemas.notification import NotificationKind
from gnarhub.schemas.session import SessionFilters, SessionStatus
from gnarhub.services.notification_service import NotificationEmitter, session_reminder_payload
from gnarhub.utils.datetime_utils import tomorrow_utc, utcnow

logger = logging.getLogger(__name__)


async def _claim_reminder(db: DocumentStore, session_id: str) -> bool:
    """Set reminder_sent_at unless another run got there first."""

    async def _claim(txn: Transaction) -> bool:
        session = await crud.session.get_in_txn(txn, session_id)
        if session.status != SessionStatus.BOOKED or session.reminder_sent_at is not None:
            return False
        txn.update(COLLECTION_SESSIONS, session_id, {"reminder_sent_at": utcnow().isoformat()})
        return True

    return await db.run_transaction(_claim)


async def send_session_reminders(
    db: DocumentStore,
    notifier: NotificationEmitter,
    on_date: Optional[date] = None,
) -> List[str]:
    """
    Remind both parties of every session booked on `on_date` (default: tomorrow, UTC).

    Returns:
        Ids of the sessions reminded by this run
    """
    target = on_date or tomorrow_utc()
    sessions = await crud.session.list(
        db,
        SessionFilters(status=SessionStatus.BOOKED, date_from=target, date_to=target),
    )

    reminded: List[str] = []
    for session in sessions:
        if session.reminder_sent_at is not None or not session.rider_id:
            continue

        try:
            if not await _claim_reminder(db, session.id):
                continue
        except Exception as e:
            logger.error(
                f"Failed to mark reminder for session {session.id}: {e}",
                exc_info=True,
                extra={"session_id": session.id},
            )
            continue

        notifier.emit(
            NotificationKind.SESSION_REMINDER,
            session_reminder_payload(session, session.rider_id, session.filmer_id),
        )
        notifier.emit(
            NotificationKind.SESSION_REMINDER,
            session_reminder_payload(session, session.filmer_id, session.rider_id),
        )
        reminded.append(session.id)

    logger.info(f"Session reminders for {target}: {len(reminded)} sent")
    return reminded
