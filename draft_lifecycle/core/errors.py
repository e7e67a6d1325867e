"""Таксономия ошибок жизненного цикла черновиков"""
from typing import Optional


class DraftLifecycleError(Exception):
    """Базовая ошибка домена; несёт машинный код и HTTP-статус для API"""

    code = "DRAFT_ERROR"
    http_status = 400

    def __init__(self, message: str, *, code: Optional[str] = None, http_status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if http_status is not None:
            self.http_status = http_status


class InvalidTransition(DraftLifecycleError):
    """Нарушение порядка стадий или операция над удалённым черновиком"""

    code = "INVALID_TRANSITION"
    http_status = 409


class ConcurrentModification(DraftLifecycleError):
    """Конфликт оптимистичной блокировки: запись изменили параллельно"""

    code = "CONCURRENT_MODIFICATION"
    http_status = 409


class AlreadyDeleted(DraftLifecycleError):
    code = "ALREADY_DELETED"
    http_status = 409


class AlreadyRunning(DraftLifecycleError):
    code = "CLEANUP_ALREADY_RUNNING"
    http_status = 409


class RecoveryWindowExpired(DraftLifecycleError):
    """Окно восстановления истекло; запись физически может ещё существовать"""

    code = "RECOVERY_WINDOW_EXPIRED"
    http_status = 410


class NotFound(DraftLifecycleError):
    code = "NOT_FOUND"
    http_status = 404


class FatalQueryError(DraftLifecycleError):
    """Хранилище недоступно во время очистки; прогон прерван целиком"""

    code = "CLEANUP_FATAL_QUERY_ERROR"
    http_status = 503


class StoreUnavailable(DraftLifecycleError):
    """Ошибка бэкенда хранилища (соединение, таймаут, драйвер)"""

    code = "STORE_UNAVAILABLE"
    http_status = 503


class BatchWriteError(DraftLifecycleError):
    """Пакетная запись отклонена целиком: условие не выполнено или сбой бэкенда"""

    code = "BATCH_WRITE_FAILED"
    http_status = 503
