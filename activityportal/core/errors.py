from __future__ import annotations


class ActivityPortalError(Exception):
    """Base error for the activity portal."""


class DatabaseError(ActivityPortalError):
    """Query execution failed at the storage layer."""


class SourceReadFailure(ActivityPortalError):
    """A source adapter or aggregate query could not be read."""

    def __init__(self, source: str, message: str | None = None) -> None:
        self.source = source
        super().__init__(message or f"Failed to read source: {source}")


class NotFoundError(ActivityPortalError):
    """Requested actor or entity does not resolve."""


class AggregationFailure(NotFoundError):
    """A composite view could not obtain its base record."""


class InvalidFilterError(ActivityPortalError):
    """Malformed filter, sort, source or granularity value."""
