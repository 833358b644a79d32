"""
Exceptions raised by the scraping pipeline.
"""
from enum import Enum


class ErrorKind(str, Enum):
    NETWORK = "network_error"
    PERSISTENCE = "persistence_error"


class ScraperError(Exception):
    """Base class for pipeline errors."""
    kind: ErrorKind


class RenderError(ScraperError):
    """Navigation or transport failure while rendering a page."""

    def __init__(self, url: str, reason: str, kind: ErrorKind = ErrorKind.NETWORK):
        super().__init__(f"{kind.value}: {reason} ({url})")
        self.url = url
        self.reason = reason
        self.kind = kind


class PersistenceError(ScraperError):
    """A save batch failed and was rolled back."""
    kind = ErrorKind.PERSISTENCE
