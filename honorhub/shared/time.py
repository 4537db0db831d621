from datetime import date, datetime, timezone


def now_utc() -> datetime:
    """Return the current time as a naive UTC datetime for DB columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def fmt_long_date(value: date | None) -> str:
    """Format dates as ``October 19, 2026``."""
    if not value:
        return ""
    return f"{value.strftime('%B')} {value.day}, {value.year}"


def fmt_iso(value: datetime | date | None) -> str | None:
    if not value:
        return None
    return value.isoformat()
