from typing import List

from gnarhub.schemas.notification import NotificationEvent, NotificationKind
from gnarhub.services.notification_service import NotificationTransport


class RecordingTransport(NotificationTransport):
    """Keeps every delivered event so tests can assert on them."""

    def __init__(self):
        self.events: List[NotificationEvent] = []

    async def deliver(self, event: NotificationEvent) -> None:
        self.events.append(event)

    def of_kind(self, kind: NotificationKind) -> List[NotificationEvent]:
        return [e for e in self.events if e.kind == kind]


class FailingTransport(NotificationTransport):
    def __init__(self):
        self.calls = 0

    async def deliver(self, event: NotificationEvent) -> None:
        self.calls += 1
        raise RuntimeError("smtp relay down")
