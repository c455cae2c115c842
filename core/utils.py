"""
Small shared helpers
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the storage convention for all timestamps)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
