"""
Task aggregation - fetch, normalize and reconcile tasks per source.

Each source runs the cycle:

    idle -> fetching -> normalizing -> reconciling -> idle
                 \
                  -> error (recorded, does not stop future cycles)

Guarantees:
- A fetch failure never reaches the stale-deletion step
- One source failing never aborts another
- A disabled source is skipped entirely, including stale deletion
- A source never syncs concurrently with itself
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple, Union
from datetime import datetime
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from core.exceptions import ConfigurationError, NormalizationError
from ingestion.base import SourceClient, SyncStateTracker
from ingestion.loaders.task_store import TaskStore
from ingestion.transformers.normalizer import SourceNormalizer
from models.base import TaskSource, SyncStatus, LOCALLY_OWNED_SOURCES, EPHEMERAL_SOURCES
from models.task import Task
from schemas.task import NormalizedTask
import asyncio
import logging

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SETTING = "refresh_interval_minutes"
BRIDGE_ENABLED_SETTING = "pa_bridge_enabled"

IntervalListener = Callable[[Optional[str]], None]


def _setting_name(source: Union[TaskSource, str]) -> str:
    value = source.value if isinstance(source, TaskSource) else str(source)
    return value.replace("-", "_")


def enabled_key(source: Union[TaskSource, str]) -> str:
    """Settings key of a source's enabled flag, e.g. sync_issue_tracker_enabled"""
    return f"sync_{_setting_name(source)}_enabled"


def interval_key(source: Union[TaskSource, str]) -> str:
    """Settings key of a source's interval override, e.g. sync_calendar_interval_minutes"""
    return f"sync_{_setting_name(source)}_interval_minutes"


def _parse_minutes(value: Any) -> Optional[int]:
    try:
        minutes = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return minutes if minutes > 0 else None


# ============================================================================
# State
# ============================================================================

@dataclass
class SourceRuntimeState:
    """In-memory view of one source's most recent cycle"""
    phase: SyncStatus = SyncStatus.IDLE
    last_started_at: Optional[datetime] = None
    last_finished_at: Optional[datetime] = None
    last_count: int = 0
    last_removed: int = 0
    last_error: Optional[str] = None


@dataclass
class AggregatorState:
    """
    Runtime state owned by one aggregator instance.

    Holds per-source phases and interval overrides. Interval changes are
    pushed to subscribers (the scheduler) with the affected source name,
    or None when the default interval changed.
    """
    default_interval_minutes: int = 5
    sources: Dict[str, SourceRuntimeState] = field(default_factory=dict)
    interval_overrides: Dict[str, int] = field(default_factory=dict)
    listeners: List[IntervalListener] = field(default_factory=list, repr=False)

    def runtime(self, source: str) -> SourceRuntimeState:
        if source not in self.sources:
            self.sources[source] = SourceRuntimeState()
        return self.sources[source]

    def subscribe(self, listener: IntervalListener) -> None:
        self.listeners.append(listener)

    def interval_for(self, source: str) -> int:
        return self.interval_overrides.get(source, self.default_interval_minutes)

    def set_interval(self, source: Optional[str], minutes: Optional[int]) -> None:
        """
        Change an interval and notify listeners.

        source=None changes the default; minutes=None clears a source override.
        """
        if source is None:
            if minutes is None or minutes == self.default_interval_minutes:
                return
            self.default_interval_minutes = minutes
        else:
            current = self.interval_overrides.get(source)
            if minutes == current:
                return
            if minutes is None:
                self.interval_overrides.pop(source, None)
            else:
                self.interval_overrides[source] = minutes

        logger.info(f"Sync interval changed for {source or 'default'}: {minutes} min")
        for listener in list(self.listeners):
            try:
                listener(source)
            except Exception as e:
                logger.error(f"Interval listener failed for {source or 'default'}: {e}")

    def apply_setting(self, key: str, value: Optional[str]) -> None:
        """Settings-store listener: react to interval keys, ignore everything else"""
        if key == DEFAULT_INTERVAL_SETTING:
            minutes = _parse_minutes(value)
            if minutes is not None:
                self.set_interval(None, minutes)
            return

        for source in TaskSource:
            if key == interval_key(source):
                self.set_interval(source.value, _parse_minutes(value))
                return

    def load_settings(self, settings: Dict[str, str]) -> None:
        for key, value in settings.items():
            self.apply_setting(key, value)


@dataclass
class SyncResult:
    """Outcome of one source cycle"""
    source: str
    count: int = 0
    removed: int = 0
    failed: int = 0
    error: Optional[str] = None
    skipped: bool = False
    reason: Optional[str] = None


# ============================================================================
# Aggregator
# ============================================================================

class TaskAggregator:
    """
    Sync orchestrator for all registered sources.

    Responsibilities:
    - Fetch raw items through each source's client
    - Normalize and upsert them into the task store
    - Delete tasks that disappeared upstream (source-scoped)
    - Record per-source sync state
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        sources: Optional[Dict[Union[TaskSource, str], SourceClient]] = None,
        settings_provider: Any = None,
        normalizer: Optional[SourceNormalizer] = None,
        state: Optional[AggregatorState] = None
    ):
        self.session_factory = session_factory
        self.settings_provider = settings_provider
        self.normalizer = normalizer or SourceNormalizer()
        self.state = state or AggregatorState()

        self._sources: Dict[TaskSource, SourceClient] = {}
        self._locks: Dict[TaskSource, asyncio.Lock] = {}
        self._in_flight: Set[asyncio.Task] = set()

        for name, client in (sources or {}).items():
            self.register_source(name, client)

    def register_source(self, name: Union[TaskSource, str], client: SourceClient) -> None:
        """Register a fetchable source; locally-owned sources are rejected"""
        source = TaskSource(name)
        if source in LOCALLY_OWNED_SOURCES:
            raise ConfigurationError(
                "Locally-owned sources cannot be synced",
                context={"source": source.value}
            )
        self._sources[source] = client
        self._locks.setdefault(source, asyncio.Lock())
        self.state.runtime(source.value)
        logger.info(f"Registered source {source.value}")

    @property
    def source_names(self) -> List[str]:
        return [source.value for source in self._sources]

    def is_running(self, name: str) -> bool:
        lock = self._locks.get(TaskSource(name))
        return bool(lock and lock.locked())

    async def _settings(self) -> Dict[str, str]:
        if self.settings_provider is None:
            return {}
        return await self.settings_provider.get_all()

    # ------------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------------

    async def sync_source(self, name: Union[TaskSource, str]) -> SyncResult:
        """
        Run one cycle for a source.

        Never raises for source failures; the error is returned in SyncResult.
        """
        try:
            source = TaskSource(name)
        except ValueError:
            source = None

        if source is None or source not in self._sources:
            return SyncResult(source=str(getattr(name, "value", name)), error="Unknown source")

        lock = self._locks[source]
        if lock.locked():
            logger.info(f"Sync for {source.value} already running, skipping")
            return SyncResult(source=source.value, skipped=True, reason="already running")

        async with lock:
            current = asyncio.current_task()
            if current is not None:
                self._in_flight.add(current)
            try:
                return await self._run_cycle(source)
            finally:
                if current is not None:
                    self._in_flight.discard(current)

    async def sync_all(self) -> List[SyncResult]:
        """Sync every registered source sequentially"""
        results = []
        for source in list(self._sources):
            try:
                results.append(await self.sync_source(source))
            except Exception as e:
                logger.error(f"Unexpected error syncing {source.value}: {e}")
                results.append(SyncResult(source=source.value, error=str(e)))

        total = sum(r.count for r in results)
        failed = [r.source for r in results if r.error]
        logger.info(f"Sync all complete: {total} tasks across {len(results)} sources, failed={failed}")
        return results

    async def _run_cycle(self, source: TaskSource) -> SyncResult:
        runtime = self.state.runtime(source.value)
        settings = await self._settings()

        if settings.get(enabled_key(source)) == "false":
            logger.info(f"Skipping {source.value}: sync disabled")
            return SyncResult(source=source.value, skipped=True, reason="disabled")

        client = self._sources[source]
        runtime.phase = SyncStatus.FETCHING
        runtime.last_started_at = datetime.utcnow()

        async with self.session_factory() as session:
            tracker = SyncStateTracker(session)
            await tracker.mark_started(source.value)

            # --------------------------------------------------
            # FETCH
            # --------------------------------------------------
            try:
                raw_items = await client.fetch(settings)
            except Exception as e:
                return await self._fail(session, tracker, source, f"Fetch failed: {e}")

            raw_items = list(raw_items or [])
            logger.info(f"Fetched {len(raw_items)} raw items from {source.value}")

            # --------------------------------------------------
            # NORMALIZE + RECONCILE
            # --------------------------------------------------
            try:
                result = await self._apply(
                    session,
                    source,
                    raw_items,
                    purge_on_empty=source in EPHEMERAL_SOURCES
                )
            except Exception as e:
                await session.rollback()
                return await self._fail(session, tracker, source, f"Reconcile failed: {e}")

            await tracker.mark_success(source.value, result.count, result.removed)

        runtime.phase = SyncStatus.IDLE
        runtime.last_finished_at = datetime.utcnow()
        runtime.last_count = result.count
        runtime.last_removed = result.removed
        runtime.last_error = None

        logger.info(
            f"Synced {source.value}: {result.count} tasks, "
            f"{result.removed} removed, {result.failed} failed"
        )
        return result

    async def _fail(
        self,
        session: AsyncSession,
        tracker: SyncStateTracker,
        source: TaskSource,
        message: str
    ) -> SyncResult:
        logger.error(f"Sync error for {source.value}: {message}")

        runtime = self.state.runtime(source.value)
        runtime.phase = SyncStatus.ERROR
        runtime.last_finished_at = datetime.utcnow()
        runtime.last_error = message

        try:
            await tracker.mark_failure(source.value, message)
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Could not record sync failure for {source.value}: {e}")

        return SyncResult(source=source.value, error=message)

    def _normalize(
        self,
        source: TaskSource,
        raw_items: Iterable[Any]
    ) -> Tuple[List[NormalizedTask], Set[str], int]:
        """
        Normalize a batch.

        Returns:
            (tasks, fresh_ids, failed). Malformed records still contribute their
            recoverable id to fresh_ids so the stored task is kept.
        """
        tasks: List[NormalizedTask] = []
        fresh_ids: Set[str] = set()
        failed = 0

        for raw in raw_items:
            try:
                task = self.normalizer.normalize(raw, source)
            except NormalizationError as e:
                failed += 1
                raw_id = self.normalizer.raw_id(raw)
                if raw_id:
                    fresh_ids.add(Task.make_id(source, raw_id))
                logger.warning(f"Skipping malformed {source.value} record: {e}")
                continue

            if task is None:
                # Completed upstream; left out of fresh_ids so it is removed
                continue

            tasks.append(task)
            fresh_ids.add(task.id)

        return tasks, fresh_ids, failed

    async def _apply(
        self,
        session: AsyncSession,
        source: TaskSource,
        raw_items: List[Any],
        purge_on_empty: bool
    ) -> SyncResult:
        runtime = self.state.runtime(source.value)

        runtime.phase = SyncStatus.NORMALIZING
        tasks, fresh_ids, failed = self._normalize(source, raw_items)

        runtime.phase = SyncStatus.RECONCILING
        store = TaskStore(session)
        for task in tasks:
            await store.upsert_from_source(task, defer_flush=True)

        if raw_items:
            removed = await store.delete_stale_by_source(
                source, fresh_ids, allow_empty=True, defer_flush=True
            )
        elif purge_on_empty:
            removed = await store.delete_stale_by_source(
                source, [], allow_empty=True, defer_flush=True
            )
        else:
            logger.warning(f"{source.value} returned no items, skipping stale cleanup")
            removed = 0

        await store.flush()
        return SyncResult(source=source.value, count=len(tasks), removed=removed, failed=failed)

    # ------------------------------------------------------------------------
    # Bulk ingest
    # ------------------------------------------------------------------------

    async def ingest(
        self,
        name: Union[TaskSource, str],
        items: List[Any],
        prune: bool = False
    ) -> SyncResult:
        """
        Apply items pushed by an external automation flow.

        Honours the bridge switch and the source's enabled flag. An empty
        payload only purges the source when prune is set.
        """
        source = TaskSource(name)
        if source in LOCALLY_OWNED_SOURCES:
            raise ConfigurationError(
                "Locally-owned sources cannot be ingested",
                context={"source": source.value}
            )

        settings = await self._settings()
        if settings.get(BRIDGE_ENABLED_SETTING) == "false":
            logger.info(f"Ingest for {source.value} skipped: bridge disabled")
            return SyncResult(source=source.value, skipped=True, reason="bridge disabled")
        if settings.get(enabled_key(source)) == "false":
            logger.info(f"Ingest for {source.value} skipped: sync disabled")
            return SyncResult(source=source.value, skipped=True, reason="disabled")

        lock = self._locks.setdefault(source, asyncio.Lock())
        async with lock:
            async with self.session_factory() as session:
                tracker = SyncStateTracker(session)
                try:
                    result = await self._apply(session, source, list(items), purge_on_empty=prune)
                except Exception as e:
                    await session.rollback()
                    return await self._fail(session, tracker, source, f"Ingest failed: {e}")
                await tracker.mark_success(source.value, result.count, result.removed)

        runtime = self.state.runtime(source.value)
        runtime.phase = SyncStatus.IDLE
        runtime.last_finished_at = datetime.utcnow()
        runtime.last_count = result.count
        runtime.last_removed = result.removed

        logger.info(f"Ingested {result.count} {source.value} tasks, {result.removed} stale removed")
        return result

    # ------------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------------

    async def drain(self, timeout: float = 30.0) -> None:
        """Wait for in-flight syncs to finish (shutdown)"""
        pending = [task for task in self._in_flight if not task.done()]
        if not pending:
            return
        logger.info(f"Waiting for {len(pending)} in-flight syncs")
        done, still_pending = await asyncio.wait(pending, timeout=timeout)
        if still_pending:
            logger.warning(f"{len(still_pending)} syncs still running after {timeout}s")

    async def close(self) -> None:
        for client in self._sources.values():
            await client.close()
