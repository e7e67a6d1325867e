import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from draft_lifecycle.core.errors import AlreadyRunning, DraftLifecycleError
from draft_lifecycle.domains.cleanup.worker import CleanupSummary, CleanupTrigger, CleanupWorker

logger = logging.getLogger(__name__)


class CleanupScheduler:
    """Периодический запуск очистки в фоновой asyncio-задаче.

    Первый прогон выполняется сразу после старта, далее раз в ``cadence``.
    Ошибка прогона логируется и не останавливает цикл. Ручной запуск
    (``run_now``) идёт через тот же воркер и ту же single-flight защиту.
    """

    def __init__(self, worker: CleanupWorker, cadence: timedelta):
        if cadence.total_seconds() < 1:
            raise ValueError(f"Cleanup cadence must be >= 1 second: {cadence}")

        self.worker = worker
        self.cadence = cadence
        self.last_run: Optional[datetime] = None
        self.last_summary: Optional[CleanupSummary] = None
        self.last_error: Optional[str] = None
        self._task: Optional[asyncio.Task] = None
        self._stopping: Optional[asyncio.Event] = None

    @property
    def is_started(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Запуск фонового цикла"""
        if self.is_started:
            raise RuntimeError("Cleanup scheduler already running")

        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._loop(), name="draft-cleanup-scheduler")
        logger.info(f"Cleanup scheduler started (every {int(self.cadence.total_seconds())}s)")

    async def stop(self) -> None:
        """Остановка цикла; идущий прогон дорабатывает до конца"""
        if not self.is_started:
            return

        self._stopping.set()
        try:
            await self._task
        finally:
            self._task = None
            logger.info("Cleanup scheduler stopped")

    async def run_now(self, trigger: CleanupTrigger = CleanupTrigger.MANUAL) -> CleanupSummary:
        """Синхронный прогон; ошибки пробрасываются вызывающему"""
        try:
            summary = await self.worker.run(trigger)
        except AlreadyRunning:
            raise
        except DraftLifecycleError as e:
            self.last_run = self.worker.clock.now()
            self.last_error = e.message
            raise

        self.last_run = summary.timestamp
        self.last_summary = summary
        self.last_error = None
        return summary

    def status(self) -> Dict[str, Any]:
        """Текущее состояние для мониторинга"""
        return {
            "status": "running" if self.is_started else "stopped",
            "worker_state": self.worker.state.value,
            "cadence_seconds": int(self.cadence.total_seconds()),
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "next_run": (
                (self.last_run + self.cadence).isoformat()
                if self.last_run and self.is_started else None
            ),
            "last_summary": self.last_summary.to_dict() if self.last_summary else None,
            "last_error": self.last_error,
        }

    async def _loop(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.run_now(CleanupTrigger.SCHEDULED)
            except AlreadyRunning:
                logger.info("Scheduled cleanup skipped: a run is already in progress")
            except DraftLifecycleError as e:
                # Воркер уже залогировал и опубликовал cleanup.failed
                logger.warning(f"Scheduled cleanup failed: {e.message}")
            except Exception:
                logger.exception("Unexpected error in scheduled cleanup")

            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.cadence.total_seconds())
            except asyncio.TimeoutError:
                continue
