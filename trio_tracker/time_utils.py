from datetime import UTC, date, datetime


def utcnow_naive():
    """Return current UTC timestamp as naive datetime for DB timestamp columns."""
    return datetime.now(UTC).replace(tzinfo=None)


def today_local():
    """Calendar date on the host machine; RP dates follow the player's wall clock."""
    return date.today()


def parse_entry_date(raw_value, default=None):
    """Parse a YYYY-MM-DD value. Returns None when the value is not a valid date."""
    if raw_value is None or raw_value == '':
        return default
    if isinstance(raw_value, datetime):
        return raw_value.date()
    if isinstance(raw_value, date):
        return raw_value
    try:
        return date.fromisoformat(str(raw_value).strip())
    except ValueError:
        return None
