from datetime import datetime, timezone


def now_utc() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_naive_utc(value: datetime) -> datetime:
    """Normalize to a naive UTC datetime, the form event times are stored in."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def fmt_iso(value: datetime | None) -> str | None:
    """ISO-8601 with a trailing Z for naive UTC datetimes."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.isoformat() + "Z"
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_iso(value: str) -> datetime:
    """Parse ISO-8601 (``Z`` suffix accepted) into a naive UTC datetime."""
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    return as_naive_utc(datetime.fromisoformat(raw))
