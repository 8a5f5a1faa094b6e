from datetime import datetime, timezone


def as_utc(dt: datetime | None) -> datetime | None:
    """Приводит дату к UTC. Наивные даты от бэкенда считаем UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
