"""Time helpers shared by models and services."""
from datetime import datetime, timezone


def utcnow():
    """Naive UTC timestamp, the representation stored in DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value):
    """Normalize an aware or naive datetime to naive UTC."""
    if value is None:
        return None
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value
