from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./drafts.db"
    sql_echo: bool = False
    jwt_secret: str
    jwt_algorithm: str = "HS256"

    # Политика жизненного цикла черновиков
    recovery_window_hours: int = 48
    inactivity_window_days: int = 30
    active_draft_display_cap: int = 5

    # Фоновая очистка
    cleanup_enabled: bool = True
    cleanup_cadence_seconds: int = 86400  # раз в сутки
    cleanup_lease_ttl_seconds: int = 900
    batch_size: int = 100
    max_batches_per_run: int = 10

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}


@lru_cache
def get_settings() -> Settings:
    """Настройки из окружения; без JWT_SECRET падает с ValidationError"""
    return Settings()
