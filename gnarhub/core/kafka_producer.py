# gnarhub/core/kafka_producer.py

import json
import logging
from typing import Optional

from kafka import KafkaProducer
from kafka.errors import KafkaError

from gnarhub.core.config import settings

logger = logging.getLogger(__name__)

_producer: Optional[KafkaProducer] = None


def get_kafka_singleton() -> Optional[KafkaProducer]:
    """
    Return the process-wide Kafka producer, creating it on first use.

    Returns None when no bootstrap servers are configured or the brokers
    cannot be reached, so callers can skip publishing instead of failing.
    """
    global _producer

    if _producer is not None:
        return _producer

    if not settings.KAFKA_BOOTSTRAP_SERVERS:
        logger.warning("KAFKA_BOOTSTRAP_SERVERS not configured, Kafka producer disabled")
        return None

    try:
        _producer = KafkaProducer(
            bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
            value_serializer=lambda v: json.dumps(v, default=str).encode("utf-8"),
            key_serializer=lambda k: k.encode("utf-8") if k is not None else None,
            # Fail fast on connection issues instead of stalling a booking
            request_timeout_ms=5000,
        )
    except KafkaError as e:
        logger.error(f"Failed to create Kafka producer: {e}", exc_info=True)
        return None

    return _producer


def close_kafka_producer() -> None:
    """Flush buffered messages and close the singleton producer."""
    global _producer

    if _producer is None:
        return
    try:
        _producer.flush()
        _producer.close()
    except KafkaError as e:
        logger.warning(f"Error while closing Kafka producer: {e}")
    finally:
        _producer = None
