import logging
from typing import Optional

from bracketeer.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """Applies the configured log level to the root logger (idempotent)."""
    logging.basicConfig(format=LOG_FORMAT)
    logging.getLogger().setLevel((level or settings.LOG_LEVEL).upper())
