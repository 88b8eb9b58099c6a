"""Utility functions shared across civicwatch."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current UTC time as a naive datetime, the form stored everywhere."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
