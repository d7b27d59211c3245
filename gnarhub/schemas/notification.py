# gnarhub/schemas/notification.py
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class NotificationKind(str, Enum):
    NEW_REQUEST = "new_request"
    REQUEST_ACCEPTED = "request_accepted"
    REQUEST_DECLINED = "request_declined"
    COUNTER_OFFER = "counter_offer"
    COUNTER_OFFER_ACCEPTED = "counter_offer_accepted"
    SESSION_REMINDER = "session_reminder"


class NotificationEvent(BaseModel):
    """Envelope handed to the delivery collaborator. Payload keys are camelCase."""
    kind: NotificationKind
    payload: Dict[str, Any]
    emitted_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        serialization_alias="emittedAt",
    )

    @property
    def recipient_id(self):
        return self.payload.get("recipientId")

    def to_message(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
