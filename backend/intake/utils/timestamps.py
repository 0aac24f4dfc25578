from datetime import datetime, timedelta, timezone

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT)


def days_ago(days: int) -> str:
    """Timestamp string ``days`` before now, comparable with stored timestamps."""
    return (datetime.now(timezone.utc) - timedelta(days=days)).strftime(TIMESTAMP_FORMAT)
