import logging
import sys

from .errors import StoreError
from .store import get_store

logger = logging.getLogger(__name__)


def connect_store_or_exit() -> None:
    """Ping the configured store; the server must not start without it."""
    try:
        get_store().ping()
    except StoreError as e:
        logger.critical("Failed to connect to database: %s", e.detail)
        logger.critical("Server will not start without database connection")
        sys.exit(1)
    logger.info("Connected to task store")
