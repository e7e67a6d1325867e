from datetime import datetime

from sqlalchemy import DateTime
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator

from draft_lifecycle.core.clock import ensure_utc

# Базовый класс для моделей
Base = declarative_base()


class UTCDateTime(TypeDecorator):
    """DateTime, который всегда отдаёт aware-значения в UTC.

    SQLite не хранит смещение, поэтому при чтении naive-значение
    интерпретируется как UTC; при записи значение приводится к UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return ensure_utc(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, str):
            value = datetime.fromisoformat(value)
        return ensure_utc(value)
