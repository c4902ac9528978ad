from datetime import date, datetime, timezone


def now_utc() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes (SQLite round-trips) as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def fmt_certificate_date(value: datetime | date | None) -> str:
    """Long US style used on certificates, e.g. ``October 19, 2026``."""
    if not value:
        return ""
    return f"{value.strftime('%B')} {value.day}, {value.year}"


def isoformat(value: datetime | date | None) -> str | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    return value.isoformat()
