"""Error taxonomy for the country cache.

Callers need to tell apart "an upstream feed is down" (retry later), "our
storage is broken" (page someone) and "nothing to show" (no-op), so every
failure the pipeline or the query layer raises is one of these:

    CountryCacheError (base)
    ├── SourceUnavailable      503, an external feed failed
    ├── NoValidRecords         500, reconciliation produced nothing
    ├── StoreError
    │   ├── StoreWriteError    500, upsert / status write failed
    │   └── StoreReadError     500, count / query failed
    ├── NotFound               404, single-record target absent
    └── InvalidQuery           400, bad query parameter
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class CountryCacheError(Exception):
    """Base exception for all country cache errors.

    Attributes:
        message: Human-readable error message
        details: Additional error context, rendered into API responses
        status_code: HTTP status the routing layer maps this error to
    """

    status_code: int = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        body: Dict[str, Any] = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class SourceUnavailable(CountryCacheError):
    """Raised when one of the external feeds times out, answers non-2xx,
    or returns a payload that does not parse.

    Attributes:
        feed: Which feed failed ("countries" or "exchange_rates")
    """

    status_code = 503

    FEED_LABELS = {
        "countries": "Rest Countries API",
        "exchange_rates": "Open ER API",
    }

    def __init__(self, feed: str, reason: Optional[str] = None):
        self.feed = feed
        self.reason = reason
        label = self.FEED_LABELS.get(feed, feed)
        super().__init__(
            "External data source unavailable",
            details=f"Could not fetch data from {label}",
        )


class NoValidRecords(CountryCacheError):
    """Raised when reconciliation drops every entry; the store is left untouched."""

    def __init__(self, message: str = "No valid country data to save after processing"):
        super().__init__(message)


class StoreError(CountryCacheError):
    """Base for backing store failures."""


class StoreWriteError(StoreError):
    pass


class StoreReadError(StoreError):
    pass


class NotFound(CountryCacheError):
    status_code = 404

    def __init__(self, message: str = "Country not found"):
        super().__init__(message)


class InvalidQuery(CountryCacheError):
    """Raised for query parameters outside the accepted set (e.g. an unknown sort)."""

    status_code = 400

    def __init__(self, details: Dict[str, Any]):
        super().__init__("Validation failed", details=details)
