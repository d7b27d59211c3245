# run_scheduler.py
"""
Entry point for the reminder scheduler process.

    python run_scheduler.py
"""

import asyncio
import logging

from gnarhub.core.kafka_producer import close_kafka_producer
from gnarhub.core.logging_config import setup_logging
from gnarhub.db.session import build_store, get_engine, init_db
from gnarhub.scheduler import init_scheduler, shutdown_scheduler
from gnarhub.services.notification_service import get_notification_emitter

logger = logging.getLogger(__name__)


async def main() -> None:
    setup_logging()
    await init_db()

    store = build_store()
    notifier = get_notification_emitter()
    init_scheduler(store, notifier)

    try:
        # Jobs run on this loop until the process is stopped
        await asyncio.Event().wait()
    finally:
        shutdown_scheduler()
        await notifier.drain()
        close_kafka_producer()
        await get_engine().dispose()
        logger.info("Scheduler process stopped")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
