"""
Scrape Correlation IDs

Every poll runs under its own correlation ID so log lines emitted while
talking to the database can be tied back to a single scrape.
"""

import contextvars
import logging
import uuid
from typing import Optional

logger = logging.getLogger(__name__)

_scrape_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    'scrape_id',
    default=None
)


def generate_scrape_id() -> str:
    """
    Generate a new scrape ID.

    Returns:
        Short hex identifier (first 12 characters of a UUID4)
    """
    return uuid.uuid4().hex[:12]


def get_scrape_id() -> Optional[str]:
    """Return the scrape ID of the current context, if any."""
    return _scrape_id.get()


def clear_scrape_id() -> None:
    """Clear the scrape ID from context."""
    _scrape_id.set(None)


class ScrapeContext:
    """
    Context manager scoping a scrape ID to one poll.

    Restores the previous ID on exit, so nested scrapes (the dry-run poll
    issued while describing) don't clobber the outer one.
    """

    def __init__(self, scrape_id: Optional[str] = None):
        """
        Initialize scrape context.

        Args:
            scrape_id: Optional ID to use. Generated when omitted.
        """
        self.scrape_id = scrape_id
        self._token = None

    def __enter__(self) -> str:
        if not self.scrape_id:
            self.scrape_id = generate_scrape_id()

        self._token = _scrape_id.set(self.scrape_id)
        return self.scrape_id

    def __exit__(self, exc_type, exc_val, exc_tb):
        _scrape_id.reset(self._token)
        self._token = None


def scrape_id_filter(record: logging.LogRecord) -> bool:
    """
    Logging filter adding the scrape ID to log records.

    Always lets the record through.
    """
    record.scrape_id = get_scrape_id() or "-"
    return True


def setup_scrape_logging(handler: logging.Handler) -> None:
    """
    Attach the scrape ID filter to a handler.

    Filters live on handlers rather than loggers so records propagated
    from child loggers are augmented too.
    """
    handler.addFilter(scrape_id_filter)
