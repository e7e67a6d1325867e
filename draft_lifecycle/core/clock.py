from datetime import datetime, timezone


class Clock:
    """Источник текущего времени. Всегда возвращает aware-datetime в UTC"""

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Приведение datetime к UTC; naive-значения считаются UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
