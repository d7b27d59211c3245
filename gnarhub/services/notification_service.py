# gnarhub/services/notification_service.py
"""
Fire-and-forget notification events.

emit() hands the event to a background asyncio task and returns at once.
A slow or failing transport is logged and never reaches the booking
operation that triggered it.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Set

from kafka import KafkaProducer

from gnarhub.constants.mountains import mountain_name
from gnarhub.core.config import settings
from gnarhub.core.exceptions import DependencyError
from gnarhub.core.kafka_producer import get_kafka_singleton
from gnarhub.schemas.notification import NotificationEvent, NotificationKind
from gnarhub.schemas.session import Session
from gnarhub.schemas.session_request import CounterOffer, SessionRequest

logger = logging.getLogger(__name__)


class NotificationTransport(ABC):
    """Hand-off point to whatever actually delivers notifications."""

    @abstractmethod
    async def deliver(self, event: NotificationEvent) -> None:
        ...


class LoggingNotificationTransport(NotificationTransport):
    """Used when no broker is configured: the event is only logged."""

    async def deliver(self, event: NotificationEvent) -> None:
        logger.info(
            f"Notification {event.kind.value} for {event.recipient_id}",
            extra={"notification": event.to_message()},
        )


class KafkaNotificationTransport(NotificationTransport):
    """Publishes events to the notifications topic, keyed by recipient."""

    def __init__(
        self,
        topic: Optional[str] = None,
        producer_factory: Callable[[], Optional[KafkaProducer]] = get_kafka_singleton,
        timeout: Optional[float] = None,
    ):
        self.topic = topic or settings.NOTIFICATIONS_TOPIC
        self.timeout = timeout or settings.KAFKA_SEND_TIMEOUT_SECONDS
        self._producer_factory = producer_factory

    def _send(self, message: Dict[str, Any], key: Optional[str]) -> None:
        producer = self._producer_factory()
        if producer is None:
            raise DependencyError("Kafka producer unavailable", dependency="kafka")

        future = producer.send(self.topic, key=key, value=message)
        # Wait for the send to complete (with timeout)
        future.get(timeout=self.timeout)

    async def deliver(self, event: NotificationEvent) -> None:
        # kafka-python blocks; keep it off the event loop
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._send, event.to_message(), event.recipient_id)
        logger.info(f"Published {event.kind.value} notification for {event.recipient_id}")


class NotificationEmitter:
    def __init__(self, transport: NotificationTransport):
        self.transport = transport
        self._pending: Set[asyncio.Task] = set()

    def emit(self, kind: NotificationKind, payload: Dict[str, Any]) -> Optional[asyncio.Task]:
        """Schedule delivery and return immediately. Never raises."""
        try:
            event = NotificationEvent(kind=kind, payload=payload)
            task = asyncio.get_running_loop().create_task(self._deliver(event))
        except Exception as e:
            logger.error(f"Failed to schedule {kind} notification: {e}", exc_info=True)
            return None

        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _deliver(self, event: NotificationEvent) -> None:
        try:
            await self.transport.deliver(event)
        except Exception as e:
            logger.error(
                f"Failed to deliver {event.kind.value} notification: {e}",
                exc_info=True,
                extra={"kind": event.kind.value, "recipient_id": event.recipient_id},
            )

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for in-flight deliveries (shutdown and tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


def get_notification_emitter() -> NotificationEmitter:
    if settings.KAFKA_BOOTSTRAP_SERVERS:
        return NotificationEmitter(KafkaNotificationTransport())
    logger.warning("KAFKA_BOOTSTRAP_SERVERS not configured, notifications will only be logged")
    return NotificationEmitter(LoggingNotificationTransport())


# --- Payload builders ---

def _session_fields(session: Session) -> Dict[str, Any]:
    return {
        "sessionId": session.id,
        "sessionDate": session.date.isoformat(),
        "mountain": mountain_name(session.mountain_id),
    }


def new_request_payload(session: Session, request: SessionRequest) -> Dict[str, Any]:
    return {
        "recipientId": request.filmer_id,
        "filmerId": request.filmer_id,
        "riderId": request.rider_id,
        "requestId": request.id,
        **_session_fields(session),
    }


def request_accepted_payload(session: Session, request: SessionRequest) -> Dict[str, Any]:
    return {
        "recipientId": request.rider_id,
        "riderId": request.rider_id,
        "filmerId": request.filmer_id,
        "requestId": request.id,
        **_session_fields(session),
    }


def request_declined_payload(session: Session, request: SessionRequest) -> Dict[str, Any]:
    return {
        "recipientId": request.rider_id,
        "riderId": request.rider_id,
        "filmerId": request.filmer_id,
        "requestId": request.id,
        "sessionId": session.id,
        "sessionDate": session.date.isoformat(),
    }


def counter_offer_payload(request: SessionRequest, offer: CounterOffer) -> Dict[str, Any]:
    return {
        "recipientId": request.rider_id,
        "riderId": request.rider_id,
        "filmerId": request.filmer_id,
        "requestId": request.id,
        "sessionId": request.session_id,
        "newTime": f"{offer.start_time} - {offer.end_time}",
        "newRate": offer.amount,
    }


def counter_offer_accepted_payload(session: Session, request: SessionRequest) -> Dict[str, Any]:
    return {
        "recipientId": request.filmer_id,
        "filmerId": request.filmer_id,
        "riderId": request.rider_id,
        "requestId": request.id,
        **_session_fields(session),
    }


def session_reminder_payload(session: Session, user_id: str, other_party_id: str) -> Dict[str, Any]:
    return {
        "recipientId": user_id,
        "userId": user_id,
        "otherPartyId": other_party_id,
        "startTime": session.start_time,
        **_session_fields(session),
    }
