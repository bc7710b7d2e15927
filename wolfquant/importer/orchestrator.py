"""Import orchestrator — chunked, concurrent historical-data ingestion.

``start_import`` validates input, persists a pending task, and returns it
immediately.  The download runs as a background ``asyncio`` task:

    split range → fetch chunks (bounded concurrency, retry) → upsert →
    publish progress → complete / fail

Chunks persisted before a failure are kept.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable, Optional

from wolfquant.adapters.base import MarketAdapter
from wolfquant.adapters.registry import get_adapter
from wolfquant.config import Config
from wolfquant.errors import ConfigError, TaskNotFoundError
from wolfquant.events.bus import EventBus, EventType
from wolfquant.importer.chunking import chunk_days_for, estimate_total_candles, split_range
from wolfquant.importer.models import Chunk, ImportStatus, ImportTask
from wolfquant.importer.retry import RetryPolicy
from wolfquant.market.models import normalize_interval, to_utc
from wolfquant.repos.candle_store import CandleStore

logger = logging.getLogger("wolfquant.importer")

# Progress stays strictly below 1.0 until the task completes.
_MAX_RUNNING_PROGRESS = 0.99

_DEFAULT_CONCURRENT_CHUNKS = 2

AdapterFactory = Callable[[str, str, Optional[Config]], MarketAdapter]


@dataclass
class _ImportRun:
    """Mutable bookkeeping for one in-flight task."""

    task: ImportTask
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    cancelled: bool = False
    error: Optional[str] = None
    job: Optional[asyncio.Task] = None

    @property
    def should_stop(self) -> bool:
        return self.cancelled or self.error is not None


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ImportOrchestrator:
    """Runs import tasks against registered market adapters.

    Args:
        store: Candle store used for candles and task rows.
        event_bus: Receives progress, completion, and error events.
        config: Supplies concurrency, retry, and timeout settings.
        adapter_factory: Resolves ``(asset_type, source)`` to an adapter;
                         defaults to the adapter registry.
    """

    def __init__(
        self,
        store: CandleStore,
        event_bus: EventBus,
        config: Optional[Config] = None,
        adapter_factory: AdapterFactory = get_adapter,
    ) -> None:
        self._store = store
        self._bus = event_bus
        self._config = config
        self._adapter_factory = adapter_factory
        self._runs: dict[str, _ImportRun] = {}

        if config is not None:
            self._concurrent_chunks = config.concurrent_chunks
            self._retry = RetryPolicy(
                retries=config.retry_count,
                delay=config.retry_delay_seconds,
                timeout=config.request_timeout_seconds,
            )
        else:
            self._concurrent_chunks = _DEFAULT_CONCURRENT_CHUNKS
            self._retry = RetryPolicy()

    # ── Public API ───────────────────────────────────────────────────────

    @property
    def active_task_ids(self) -> list[str]:
        """Ids of tasks whose background job has not finished."""
        return [
            task_id for task_id, run in self._runs.items()
            if run.job is not None and not run.job.done()
        ]

    async def start_import(
        self,
        asset_type: str,
        symbol: str,
        source: str,
        start: datetime,
        end: datetime,
        interval: str,
        chunk_days: Optional[int] = None,
    ) -> ImportTask:
        """Validate, persist a pending task, and schedule the download.

        Raises ``ConfigError`` before any task row is written when the
        source is unknown, the range is empty, or *chunk_days* is invalid.
        """
        start, end = to_utc(start), to_utc(end)
        if not symbol:
            raise ConfigError("symbol must not be empty")
        if start >= end:
            raise ConfigError(
                f"Invalid date range: start {start.isoformat()} "
                f"is not before end {end.isoformat()}"
            )
        if chunk_days is not None and chunk_days <= 0:
            raise ConfigError(f"chunk_days must be positive, got {chunk_days}")

        adapter = self._adapter_factory(asset_type, source, self._config)

        task = ImportTask(
            asset_type=asset_type,
            symbol=symbol,
            source=source,
            start_time=start,
            end_time=end,
            interval=normalize_interval(interval),
        )
        self._store.save_import_task(task)

        run = _ImportRun(task=task)
        self._runs[task.id] = run
        run.job = asyncio.create_task(
            self._run(run, adapter, chunk_days or chunk_days_for(asset_type))
        )
        logger.info(
            "Import %s queued: %s/%s %s from %s to %s",
            task.id, source, symbol, task.interval,
            start.isoformat(), end.isoformat(),
        )
        return task

    def cancel_import(self, task_id: str) -> bool:
        """Stop scheduling further chunks for *task_id*.

        In-flight chunks still finish.  Returns ``False`` when the task is
        unknown or already finished.
        """
        run = self._runs.get(task_id)
        if run is None or (run.job is not None and run.job.done()):
            return False
        run.cancelled = True
        logger.info("Import %s cancellation requested.", task_id)
        return True

    async def wait(self, task_id: str) -> ImportTask:
        """Wait for the background job of *task_id* and return its final state."""
        run = self._runs.get(task_id)
        if run is not None and run.job is not None:
            await run.job
        return self.get_import_task(task_id)

    async def shutdown(self) -> None:
        """Cancel every running import and wait for the jobs to settle."""
        for task_id in self.active_task_ids:
            self.cancel_import(task_id)
        jobs = [run.job for run in self._runs.values() if run.job is not None]
        if jobs:
            await asyncio.gather(*jobs, return_exceptions=True)

    def get_import_task(self, task_id: str) -> ImportTask:
        """Raises ``TaskNotFoundError`` when no such task exists."""
        task = self._store.get_import_task(task_id)
        if task is None:
            raise TaskNotFoundError(f"Import task not found: {task_id}")
        return task

    def list_import_tasks(self) -> list[ImportTask]:
        return self._store.list_import_tasks()

    def list_datasets(self) -> list[dict]:
        return self._store.list_datasets()

    # ── Background job ───────────────────────────────────────────────────

    async def _run(self, run: _ImportRun, adapter: MarketAdapter, chunk_days: int) -> None:
        task = run.task
        try:
            chunks = split_range(task.start_time, task.end_time, chunk_days)
            estimate = estimate_total_candles(task.start_time, task.end_time, task.interval)
            await self._update(run, status=ImportStatus.RUNNING, total_candles=estimate)
            logger.info(
                "Import %s running: %d chunk(s) of %d day(s), ~%d candles",
                task.id, len(chunks), chunk_days, estimate,
            )

            gate = asyncio.Semaphore(self._concurrent_chunks)
            await asyncio.gather(
                *(self._import_chunk(run, adapter, chunk, len(chunks), gate) for chunk in chunks)
            )
        except Exception as exc:
            logger.exception("Import %s aborted", task.id)
            if run.error is None:
                run.error = str(exc) or exc.__class__.__name__

        if run.error is not None:
            await self._finish_failed(run, run.error)
        elif run.cancelled:
            await self._finish_failed(run, "Import cancelled")
        else:
            await self._finish_completed(run)

    async def _import_chunk(
        self,
        run: _ImportRun,
        adapter: MarketAdapter,
        chunk: Chunk,
        chunk_count: int,
        gate: asyncio.Semaphore,
    ) -> None:
        """Fetch, stamp, and persist one chunk.

        Errors are recorded on *run* rather than raised so sibling chunks
        already in flight can finish.
        """
        task = run.task
        async with gate:
            if run.should_stop:
                return
            label = f"{task.source}/{task.symbol} chunk {chunk.index + 1}/{chunk_count}"
            try:
                candles = await self._retry.call(
                    lambda: adapter.get_candles(task.symbol, chunk.start, chunk.end, task.interval),
                    description=label,
                )
                stamped = []
                for c in candles:
                    ts = to_utc(c.timestamp)
                    if chunk.start <= ts < chunk.end:
                        stamped.append(replace(
                            c,
                            timestamp=ts,
                            symbol=task.symbol,
                            source=task.source,
                            interval=task.interval,
                            asset_type=task.asset_type,
                        ))
                self._store.save_candles(stamped)
                await self._record_progress(run, len(stamped))
                logger.debug("Import %s: %s stored %d candles", task.id, label, len(stamped))
            except Exception as exc:
                logger.error("Import %s: %s failed: %s", task.id, label, exc)
                if run.error is None:
                    run.error = str(exc) or exc.__class__.__name__

    # ── Task state transitions ───────────────────────────────────────────

    async def _update(self, run: _ImportRun, **changes) -> ImportTask:
        """Apply *changes* to the task, persist it, and return the snapshot.

        Writes for one task are serialized by its lock.
        """
        async with run.lock:
            run.task = replace(run.task, updated_at=_now(), **changes)
            self._store.save_import_task(run.task)
            return run.task

    async def _record_progress(self, run: _ImportRun, added: int) -> None:
        async with run.lock:
            task = run.task
            imported = task.imported_candles + added
            estimate = task.total_candles or 0
            progress = min(imported / estimate, _MAX_RUNNING_PROGRESS) if estimate > 0 else 0.0
            run.task = replace(
                task,
                imported_candles=imported,
                progress=max(progress, task.progress),
                updated_at=_now(),
            )
            self._store.save_import_task(run.task)
            snapshot = run.task
        self._bus.publish(EventType.IMPORT_PROGRESS, snapshot)

    async def _finish_completed(self, run: _ImportRun) -> None:
        try:
            task = await self._update(
                run,
                status=ImportStatus.COMPLETED,
                progress=1.0,
                completed_at=_now(),
            )
        except Exception as exc:
            logger.exception("Import %s: could not record completion", run.task.id)
            await self._finish_failed(run, str(exc))
            return
        logger.info("Import %s completed: %d candles", task.id, task.imported_candles)
        self._bus.publish(EventType.IMPORT_COMPLETED, task)

    async def _finish_failed(self, run: _ImportRun, error: str) -> None:
        try:
            await self._update(
                run,
                status=ImportStatus.FAILED,
                error=error,
                completed_at=_now(),
            )
        except Exception:
            logger.exception("Import %s: could not record failure", run.task.id)
        logger.error("Import %s failed: %s", run.task.id, error)
        self._bus.publish(EventType.ERROR, f"Import task {run.task.id} failed: {error}")
