"""UTC helpers.

Timestamps are stored as naive UTC datetimes throughout the engine.
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
  """Current time as a naive UTC datetime."""
  return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
  """Convert an aware datetime to naive UTC; naive values are assumed UTC."""
  if value is None or value.tzinfo is None:
    return value
  return value.astimezone(timezone.utc).replace(tzinfo=None)
