import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Однократная настройка корневого логгера приложения"""
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(level.upper())

    # SQL-эхо управляется через settings.sql_echo, а не уровнем логгера
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
