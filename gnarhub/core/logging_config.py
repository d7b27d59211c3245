import logging
from typing import Optional

from gnarhub.core.config import settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: Optional[str] = None) -> None:
    """Configure root logging for long-running processes (scheduler, workers)."""
    logging.basicConfig(
        level=getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    # kafka-python is very chatty at INFO
    logging.getLogger("kafka").setLevel(logging.WARNING)
