"""Фоновая очистка черновиков.

Один прогон:

1. выбирает неудалённые черновики, не редактировавшиеся дольше окна
   неактивности, и переводит их в корзину с системной причиной;
2. выбирает черновики, пролежавшие в корзине не меньше окна
   восстановления, и удаляет их физически.

Обе фазы идут пакетами по ``batch_size`` записей, не больше
``max_batches_per_run`` пакетов на фазу. Пакет пишется одной атомарной
условной записью; неудачный пакет перечитывается и повторяется один раз
(записи, изменённые после выборки, берутся по свежей версии или выбывают),
затем оставшиеся записи считаются ошибками и ждут следующего прогона.
Повторный прогон сразу после успешного находит пустые выборки.
"""
import asyncio
import logging
import os
import socket
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from draft_lifecycle.core.clock import Clock
from draft_lifecycle.core.errors import (
    AlreadyRunning, BatchWriteError, FatalQueryError, StoreUnavailable
)
from draft_lifecycle.domains.drafts.entities import (
    AUTO_EXPIRED_REASON, MANUAL_CLEANUP_REASON, DraftPolicy, DraftRecord
)
from draft_lifecycle.domains.drafts.events import EventBus, LifecycleEvent, LifecycleEventType
from draft_lifecycle.domains.drafts.expiration import ExpirationPolicy
from draft_lifecycle.domains.drafts.recovery import SoftDeleteManager
from draft_lifecycle.domains.drafts.store import BatchWrite, DraftQuery, DraftStore, SortField

logger = logging.getLogger(__name__)

BATCH_ATTEMPTS = 2  # первая попытка и один повтор


class CleanupTrigger(Enum):
    SCHEDULED = "scheduled"
    MANUAL = "manual"


class WorkerState(Enum):
    IDLE = "idle"
    RUNNING = "running"


@dataclass(frozen=True)
class CleanupConfig:
    batch_size: int = 100
    max_batches_per_run: int = 10
    use_lease: bool = True
    lease_name: str = "draft-cleanup"
    lease_ttl: timedelta = timedelta(minutes=15)

    @classmethod
    def from_settings(cls, settings) -> "CleanupConfig":
        return cls(
            batch_size=settings.batch_size,
            max_batches_per_run=settings.max_batches_per_run,
            lease_ttl=timedelta(seconds=settings.cleanup_lease_ttl_seconds),
        )


@dataclass(frozen=True)
class CleanupSummary:
    expired_count: int
    hard_deleted_count: int
    error_count: int
    timestamp: datetime
    trigger: CleanupTrigger = CleanupTrigger.SCHEDULED
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "expired_count": self.expired_count,
            "hard_deleted_count": self.hard_deleted_count,
            "error_count": self.error_count,
            "timestamp": self.timestamp.isoformat(),
            "trigger": self.trigger.value,
            "duration_seconds": self.duration_seconds,
        }


class CleanupWorker:
    """Воркер очистки с single-flight защитой: Idle → Running → Idle.

    Внутри процесса защищает asyncio.Lock, между процессами арендная
    запись в хранилище (если ``config.use_lease``).
    """

    def __init__(
        self,
        store: DraftStore,
        clock: Clock,
        policy: DraftPolicy,
        config: Optional[CleanupConfig] = None,
        events: Optional[EventBus] = None,
        holder: Optional[str] = None
    ):
        self.store = store
        self.clock = clock
        self.policy = policy
        self.config = config or CleanupConfig()
        self.events = events or EventBus()
        self.recovery = SoftDeleteManager(store, clock, policy, self.events)
        self.expiration = ExpirationPolicy(policy, self.recovery)
        self.holder = holder or f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"
        self.state = WorkerState.IDLE
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self.state is WorkerState.RUNNING

    async def run(self, trigger: CleanupTrigger = CleanupTrigger.SCHEDULED) -> CleanupSummary:
        """Один прогон очистки; AlreadyRunning, если прогон уже идёт"""
        if self._lock.locked():
            raise AlreadyRunning("Cleanup run is already in progress")

        async with self._lock:
            self.state = WorkerState.RUNNING
            try:
                return await self._run_with_lease(trigger)
            finally:
                self.state = WorkerState.IDLE

    async def _run_with_lease(self, trigger: CleanupTrigger) -> CleanupSummary:
        now = self.clock.now()
        if self.config.use_lease:
            try:
                acquired = await self.store.try_acquire_lease(
                    self.config.lease_name, self.holder, now, self.config.lease_ttl
                )
            except StoreUnavailable as exc:
                await self._report_failure(now, trigger, exc)
                raise FatalQueryError(f"Cleanup aborted: lease store unavailable: {exc}") from exc
            if not acquired:
                raise AlreadyRunning("Cleanup run is already in progress on another worker")

        try:
            return await self._run_once(now, trigger)
        finally:
            if self.config.use_lease:
                try:
                    await self.store.release_lease(self.config.lease_name, self.holder)
                except StoreUnavailable as exc:
                    # Аренда истечёт сама по TTL
                    logger.warning(f"Failed to release cleanup lease: {exc}")

    async def _run_once(self, now: datetime, trigger: CleanupTrigger) -> CleanupSummary:
        started = time.monotonic()
        logger.info(f"Starting draft cleanup ({trigger.value})")

        reason = MANUAL_CLEANUP_REASON if trigger is CleanupTrigger.MANUAL else AUTO_EXPIRED_REASON
        try:
            expired_count, expire_errors = await self._expire_stale(now, reason)
            hard_deleted_count, purge_errors = await self._purge_deleted(now)
        except StoreUnavailable as exc:
            await self._report_failure(now, trigger, exc)
            raise FatalQueryError(f"Cleanup aborted: draft store unavailable: {exc}") from exc

        summary = CleanupSummary(
            expired_count=expired_count,
            hard_deleted_count=hard_deleted_count,
            error_count=expire_errors + purge_errors,
            timestamp=now,
            trigger=trigger,
            duration_seconds=round(time.monotonic() - started, 3),
        )
        logger.info(
            f"Cleanup completed: {summary.expired_count} expired, "
            f"{summary.hard_deleted_count} hard-deleted, {summary.error_count} deferred"
        )
        await self.events.publish(
            LifecycleEvent(
                type=LifecycleEventType.CLEANUP_COMPLETED,
                occurred_at=now,
                data=summary.to_dict(),
            )
        )
        return summary

    async def _expire_stale(self, now: datetime, reason: str) -> Tuple[int, int]:
        """Фаза 1: перевод устаревших черновиков в корзину"""
        cutoff = self.expiration.stale_cutoff(now)
        skipped: Set[uuid.UUID] = set()
        expired = errors = 0

        def rebuild(current: DraftRecord) -> Optional[BatchWrite]:
            updated = self.expiration.apply_expiration(current, now, expiration_reason=reason)
            if updated is None:
                return None
            return BatchWrite.update(updated, expected_version=current.version)

        for _ in range(self.config.max_batches_per_run):
            candidates = await self.store.query(
                DraftQuery(
                    is_deleted=False,
                    last_edited_before=cutoff,
                    exclude_ids=frozenset(skipped),
                    order_by=SortField.LAST_EDITED_AT,
                    limit=self.config.batch_size,
                )
            )
            if not candidates:
                break

            writes: List[BatchWrite] = []
            for record in candidates:
                write = rebuild(record)
                if write is None:
                    skipped.add(record.id)
                    continue
                writes.append(write)

            committed, failed = await self._commit(writes, rebuild)
            expired += len(committed)
            errors += len(failed)
            for write in committed:
                await self._publish_record(LifecycleEventType.EXPIRED, write.record, now, reason)
            skipped.update(self._uncommitted_ids(writes, committed))

            if len(candidates) < self.config.batch_size:
                break

        return expired, errors

    async def _purge_deleted(self, now: datetime) -> Tuple[int, int]:
        """Фаза 2: физическое удаление записей с истёкшим окном восстановления"""
        # Граница считается заново, а не по remaining_recovery_time
        cutoff = now - self.policy.recovery_window
        skipped: Set[uuid.UUID] = set()
        purged = errors = 0

        def rebuild(current: DraftRecord) -> Optional[BatchWrite]:
            if not current.is_deleted or current.deleted_at is None or current.deleted_at > cutoff:
                return None
            return BatchWrite.delete(current)

        for _ in range(self.config.max_batches_per_run):
            candidates = await self.store.query(
                DraftQuery(
                    is_deleted=True,
                    deleted_before=cutoff,
                    exclude_ids=frozenset(skipped),
                    order_by=SortField.DELETED_AT,
                    limit=self.config.batch_size,
                )
            )
            if not candidates:
                break

            writes = [BatchWrite.delete(record) for record in candidates]
            committed, failed = await self._commit(writes, rebuild)
            purged += len(committed)
            errors += len(failed)
            for write in committed:
                await self._publish_record(
                    LifecycleEventType.HARD_DELETED, write.record, now, write.record.expiration_reason
                )
            skipped.update(self._uncommitted_ids(writes, committed))

            if len(candidates) < self.config.batch_size:
                break

        return purged, errors

    async def _commit(
        self,
        writes: List[BatchWrite],
        rebuild: Callable[[DraftRecord], Optional[BatchWrite]]
    ) -> Tuple[List[BatchWrite], List[BatchWrite]]:
        """Запись пакета с одним повтором; возвращает (записанные, отложенные).

        Перед повтором записи пакета перечитываются: изменённые с момента
        выборки записи пересобираются по свежей версии или выбывают, если
        больше не подходят под очистку. Ошибками считается только то, что
        не записалось при повторе.
        """
        for attempt in range(1, BATCH_ATTEMPTS + 1):
            if not writes:
                return [], []
            try:
                await self.store.apply_batch(writes)
                return writes, []
            except BatchWriteError as exc:
                logger.warning(
                    f"Cleanup batch of {len(writes)} writes failed "
                    f"(attempt {attempt}/{BATCH_ATTEMPTS}): {exc}"
                )
            if attempt < BATCH_ATTEMPTS:
                writes = await self._refresh(writes, rebuild)
        return [], writes

    async def _refresh(
        self,
        writes: List[BatchWrite],
        rebuild: Callable[[DraftRecord], Optional[BatchWrite]]
    ) -> List[BatchWrite]:
        refreshed: List[BatchWrite] = []
        for write in writes:
            current = await self.store.get(write.record.id)
            if current is None:
                logger.info(f"Draft {write.record.id} disappeared before cleanup write; skipped")
                continue
            if current.version == write.expected_version:
                refreshed.append(write)
                continue
            rebuilt = rebuild(current)
            if rebuilt is None:
                logger.info(f"Draft {current.id} changed during cleanup and no longer qualifies; skipped")
                continue
            refreshed.append(rebuilt)
        return refreshed

    @staticmethod
    def _uncommitted_ids(writes: List[BatchWrite], committed: List[BatchWrite]) -> Set[uuid.UUID]:
        done = {write.record.id for write in committed}
        return {write.record.id for write in writes} - done

    async def _publish_record(
        self,
        event_type: LifecycleEventType,
        record: DraftRecord,
        now: datetime,
        reason: Optional[str]
    ) -> None:
        await self.events.publish(
            LifecycleEvent(
                type=event_type,
                occurred_at=now,
                record_id=record.id,
                owner_id=record.owner_id,
                data={"stage": record.stage.value, "expiration_reason": reason},
            )
        )

    async def _report_failure(self, now: datetime, trigger: CleanupTrigger, exc: Exception) -> None:
        logger.error(f"Cleanup run ({trigger.value}) aborted: {exc}")
        await self.events.publish(
            LifecycleEvent(
                type=LifecycleEventType.CLEANUP_FAILED,
                occurred_at=now,
                data={"trigger": trigger.value, "error": str(exc)},
            )
        )
