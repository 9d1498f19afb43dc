"""Time helpers shared by models and services."""

from datetime import date, datetime, timedelta, timezone


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, matching how timestamps are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def stay_days(checkin: date, checkout: date) -> list[date]:
    """Calendar days occupied by a stay: checkin inclusive, checkout exclusive."""
    return [checkin + timedelta(days=offset) for offset in range((checkout - checkin).days)]
