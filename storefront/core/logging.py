"""Logging configuration."""
import logging
import sys
from typing import Optional

from storefront.core.config import settings

# HTTP stack loggers stay at WARNING so request lines never reach the logs
_QUIET_LOGGERS = ("httpx", "httpcore")


def setup_logging(level: Optional[str] = None) -> None:
    """Configure root logging once for the BFF process."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
