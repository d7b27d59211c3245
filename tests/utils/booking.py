from datetime import date, timedelta
from typing import Optional

from gnarhub import crud
from gnarhub.db.store import DocumentStore
from gnarhub.schemas.session import Session
from gnarhub.schemas.session_request import SessionRequest
from gnarhub.schemas.user import User
from gnarhub.utils.datetime_utils import today_utc

FILMER_ID = "usr_filmer0001"
RIDER_A = "usr_rider0000a"
RIDER_B = "usr_rider0000b"


def future_date(days: int = 7) -> date:
    return today_utc() + timedelta(days=days)


def session_payload(**overrides) -> dict:
    payload = {
        "mountain_id": "killington",
        "date": future_date().isoformat(),
        "start_time": "09:00",
        "end_time": "12:00",
        "terrain_tags": ["park"],
        "rate": 60,
        "notes": "Meet at the base lodge",
    }
    payload.update(overrides)
    return payload


async def create_open_session(
    db: DocumentStore, filmer_id: str = FILMER_ID, **overrides
) -> Session:
    """
    Creates an open session for testing purposes.
    """
    return await crud.session.create(db, filmer_id=filmer_id, obj_in=session_payload(**overrides))


async def create_user(
    db: DocumentStore, user_id: str, display_name: Optional[str] = None, is_filmer: bool = False
) -> User:
    return await crud.user.create(
        db, obj_in={"id": user_id, "display_name": display_name or user_id, "is_filmer": is_filmer}
    )


async def create_pending_request(
    negotiation, session: Session, rider_id: str = RIDER_A, message: str = "Want to film some park laps?"
) -> SessionRequest:
    return await negotiation.create_request(
        session_id=session.id, rider_id=rider_id, obj_in={"message": message}
    )
