"""Tests for wolfquant.importer — chunking, retry policy, and the import orchestrator."""

import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from wolfquant.adapters.okx_client import OkxAdapter
from wolfquant.config import Config
from wolfquant.errors import AdapterError, ConfigError, TaskNotFoundError
from wolfquant.events.bus import EventBus, EventType
from wolfquant.importer.chunking import (
    chunk_days_for,
    estimate_total_candles,
    split_range,
)
from wolfquant.importer.models import ImportStatus
from wolfquant.importer.orchestrator import ImportOrchestrator
from wolfquant.importer.retry import RetryPolicy
from wolfquant.market.models import Candle
from wolfquant.repos.candle_store import CandleStore
from wolfquant.repos.db import init_db

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


# ── Helpers ──────────────────────────────────────────────────────────────


def _make_config(concurrent_chunks=2, retry_count=3, timeout=5.0) -> Config:
    return Config(
        db_path=":memory:",
        log_level="INFO",
        api_port=8080,
        concurrent_chunks=concurrent_chunks,
        retry_count=retry_count,
        retry_delay_seconds=0.0,
        request_timeout_seconds=timeout,
        initial_capital=10000.0,
        fee_rate=0.0,
        slippage=0.0,
        ticker_poll_seconds=60,
    )


class _FakeAdapter:
    """Serves one daily bar per day and records every call.

    Args:
        failures: Maps a chunk start to how many calls for it fail first
                  (``-1`` = always fail).
        delay: Seconds each call takes.
    """

    name = "fake"
    asset_type = "crypto"

    def __init__(self, failures=None, delay=0.01):
        self.failures = dict(failures or {})
        self.delay = delay
        self.calls: list[tuple[datetime, datetime]] = []
        self.active = 0
        self.max_active = 0

    async def check_connection(self):
        return True

    async def get_products(self):
        return []

    async def get_ticker(self, symbol):
        raise AdapterError("not supported")

    async def get_candles(self, symbol, start, end, interval):
        self.calls.append((start, end))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            remaining = self.failures.get(start, 0)
            if remaining != 0:
                self.failures[start] = remaining - 1 if remaining > 0 else -1
                raise AdapterError(f"simulated outage at {start.date()}")
            bars = []
            day = start
            while day < end:
                bars.append(Candle(timestamp=day, open=100, high=101, low=99, close=100.5, volume=10))
                day += timedelta(days=1)
            # One bar outside the chunk, which the importer must drop
            bars.append(Candle(timestamp=end, open=1, high=1, low=1, close=1, volume=1))
            return bars
        finally:
            self.active -= 1


@pytest.fixture
def store(tmp_path):
    db_path = str(tmp_path / "wolfquant.db")
    init_db(db_path)
    return CandleStore(db_path)


def _orchestrator(store, adapter, bus=None, **config_kwargs):
    return ImportOrchestrator(
        store,
        bus or EventBus(),
        _make_config(**config_kwargs),
        adapter_factory=lambda asset_type, source, config: adapter,
    )


# ── Chunking ─────────────────────────────────────────────────────────────


class TestSplitRange:
    def test_95_days_in_30_day_chunks(self):
        chunks = split_range(START, START + timedelta(days=95), 30)
        assert [(c.end - c.start).days for c in chunks] == [30, 30, 30, 5]
        assert [c.index for c in chunks] == [0, 1, 2, 3]

    def test_chunks_are_contiguous_and_cover_range(self):
        end = START + timedelta(days=95, hours=7)
        chunks = split_range(START, end, 30)
        assert chunks[0].start == START
        assert chunks[-1].end == end
        for prev, cur in zip(chunks, chunks[1:]):
            assert prev.end == cur.start

    def test_empty_range(self):
        assert split_range(START, START, 30) == []
        assert split_range(START + timedelta(days=1), START, 30) == []

    def test_non_positive_chunk_days(self):
        with pytest.raises(ValueError, match="chunk_days"):
            split_range(START, START + timedelta(days=5), 0)

    def test_chunk_days_per_asset_type(self):
        assert chunk_days_for("crypto") == 30
        assert chunk_days_for("stock") == 90
        assert chunk_days_for("fund") == 365


class TestEstimateTotalCandles:
    def test_hourly(self):
        assert estimate_total_candles(START, START + timedelta(days=10), "1h") == 240

    def test_weekly(self):
        assert estimate_total_candles(START, START + timedelta(days=14), "1w") == 2

    def test_unknown_interval_counts_as_daily(self):
        assert estimate_total_candles(START, START + timedelta(days=10), "7x") == 10

    def test_partial_days_are_ignored(self):
        assert estimate_total_candles(START, START + timedelta(hours=20), "1d") == 0


# ── Retry policy ─────────────────────────────────────────────────────────


class TestRetryPolicy:
    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self):
        attempts = []

        async def _flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise AdapterError("flaky")
            return "ok"

        result = await RetryPolicy(retries=2, delay=0).call(_flaky)
        assert result == "ok"
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_exhaustion_raises_last_error(self):
        attempts = []

        async def _down():
            attempts.append(1)
            raise AdapterError(f"down #{len(attempts)}")

        with pytest.raises(AdapterError, match="down #3"):
            await RetryPolicy(retries=2, delay=0).call(_down)
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self):
        attempts = []

        async def _bug():
            attempts.append(1)
            raise KeyError("oops")

        with pytest.raises(KeyError):
            await RetryPolicy(retries=5, delay=0).call(_bug)
        assert len(attempts) == 1

    @pytest.mark.asyncio
    async def test_timeout_counts_as_adapter_error(self):
        async def _slow():
            await asyncio.sleep(1)

        with pytest.raises(AdapterError, match="timed out"):
            await RetryPolicy(retries=0, delay=0, timeout=0.01).call(_slow, description="slow call")

    def test_backoff_delays(self):
        policy = RetryPolicy(retries=3, delay=1.0, backoff=2.0)
        assert policy.max_attempts == 4
        assert [policy.delay_for(a) for a in (1, 2, 3)] == [1.0, 2.0, 4.0]


# ── Orchestrator ─────────────────────────────────────────────────────────


class TestImportOrchestrator:
    @pytest.mark.asyncio
    async def test_start_returns_pending_task_immediately(self, store):
        orch = _orchestrator(store, _FakeAdapter())
        task = await orch.start_import("crypto", "BTCUSDT", "fake", START, START + timedelta(days=5), "1d")
        assert task.status is ImportStatus.PENDING
        assert task.progress == 0.0
        assert store.get_import_task(task.id) is not None
        await orch.wait(task.id)

    @pytest.mark.asyncio
    async def test_95_day_import_dispatches_four_chunks(self, store):
        adapter = _FakeAdapter()
        orch = _orchestrator(store, adapter, concurrent_chunks=2)
        end = START + timedelta(days=95)

        task = await orch.start_import("crypto", "BTCUSDT", "fake", START, end, "1d", chunk_days=30)
        final = await orch.wait(task.id)

        assert final.status is ImportStatus.COMPLETED
        assert final.progress == 1.0
        assert final.completed_at is not None
        assert final.total_candles == 95
        assert final.imported_candles == 95
        assert sorted((e - s).days for s, e in adapter.calls) == [5, 30, 30, 30]
        assert adapter.max_active <= 2
        assert store.count_candles("BTCUSDT", "fake", "1d") == 95

    @pytest.mark.asyncio
    async def test_concurrency_bound_of_one(self, store):
        adapter = _FakeAdapter()
        orch = _orchestrator(store, adapter, concurrent_chunks=1)
        task = await orch.start_import("crypto", "BTCUSDT", "fake", START, START + timedelta(days=95), "1d", chunk_days=30)
        await orch.wait(task.id)
        assert adapter.max_active == 1

    @pytest.mark.asyncio
    async def test_chunk_recovers_within_retry_budget(self, store):
        # Fails 3 times, succeeds on the 4th attempt with retry_count=3
        adapter = _FakeAdapter(failures={START: 3})
        orch = _orchestrator(store, adapter, retry_count=3)
        task = await orch.start_import("crypto", "BTCUSDT", "fake", START, START + timedelta(days=60), "1d", chunk_days=30)
        final = await orch.wait(task.id)

        assert final.status is ImportStatus.COMPLETED
        assert sum(1 for s, _ in adapter.calls if s == START) == 4
        assert store.count_candles("BTCUSDT", "fake", "1d") == 60

    @pytest.mark.asyncio
    async def test_exhausted_retries_fail_task_and_keep_saved_chunks(self, store):
        bad_start = START + timedelta(days=30)
        adapter = _FakeAdapter(failures={bad_start: -1})
        bus = EventBus()
        errors = []
        bus.subscribe(EventType.ERROR, lambda e: errors.append(e.data))
        orch = _orchestrator(store, adapter, bus=bus, concurrent_chunks=1, retry_count=2)

        task = await orch.start_import("crypto", "BTCUSDT", "fake", START, START + timedelta(days=95), "1d", chunk_days=30)
        final = await orch.wait(task.id)

        assert final.status is ImportStatus.FAILED
        assert "simulated outage" in final.error
        assert final.completed_at is not None
        assert 0 < final.progress < 1.0
        # First chunk stays persisted; later chunks were never scheduled
        assert store.count_candles("BTCUSDT", "fake", "1d") == 30
        assert sum(1 for s, _ in adapter.calls if s == bad_start) == 3
        assert all(s <= bad_start for s, _ in adapter.calls)
        assert len(errors) == 1
        assert task.id in errors[0]

    @pytest.mark.asyncio
    async def test_timeout_fails_task(self, store):
        adapter = _FakeAdapter(delay=1.0)
        orch = _orchestrator(store, adapter, retry_count=0, timeout=0.02)
        task = await orch.start_import("crypto", "BTCUSDT", "fake", START, START + timedelta(days=5), "1d")
        final = await orch.wait(task.id)
        assert final.status is ImportStatus.FAILED
        assert "timed out" in final.error

    @pytest.mark.asyncio
    async def test_progress_is_monotonic_and_below_one_while_running(self, store):
        bus = EventBus()
        progress = []
        completed = []
        bus.subscribe(EventType.IMPORT_PROGRESS, lambda e: progress.append(e.data.progress))
        bus.subscribe(EventType.IMPORT_COMPLETED, lambda e: completed.append(e.data))
        orch = _orchestrator(store, _FakeAdapter(), bus=bus, concurrent_chunks=3)

        task = await orch.start_import("crypto", "BTCUSDT", "fake", START, START + timedelta(days=95), "1d", chunk_days=10)
        await orch.wait(task.id)

        assert len(progress) == 10
        assert progress == sorted(progress)
        assert all(p < 1.0 for p in progress)
        assert len(completed) == 1
        assert completed[0].progress == 1.0
        assert completed[0].status is ImportStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_reimport_is_idempotent(self, store):
        orch = _orchestrator(store, _FakeAdapter())
        end = START + timedelta(days=40)
        for _ in range(2):
            task = await orch.start_import("crypto", "BTCUSDT", "fake", START, end, "1d")
            assert (await orch.wait(task.id)).status is ImportStatus.COMPLETED
        assert store.count_candles("BTCUSDT", "fake", "1d") == 40
        assert len(orch.list_import_tasks()) == 2

    @pytest.mark.asyncio
    async def test_candles_are_stamped_with_task_identity(self, store):
        orch = _orchestrator(store, _FakeAdapter())
        task = await orch.start_import("crypto", "ETHUSDT", "fake", START, START + timedelta(days=3), "1D")
        await orch.wait(task.id)
        candles = store.get_candles("ETHUSDT", "fake", "1d")
        assert len(candles) == 3
        assert all(c.symbol == "ETHUSDT" and c.source == "fake" for c in candles)
        assert all(c.asset_type == "crypto" and c.interval == "1d" for c in candles)

    @pytest.mark.asyncio
    async def test_cancel_stops_scheduling_new_chunks(self, store):
        release = asyncio.Event()
        entered = asyncio.Event()
        adapter = _FakeAdapter()
        original = adapter.get_candles

        async def _gated(symbol, start, end, interval):
            entered.set()
            await release.wait()
            return await original(symbol, start, end, interval)

        adapter.get_candles = _gated
        orch = _orchestrator(store, adapter, concurrent_chunks=1)
        task = await orch.start_import("crypto", "BTCUSDT", "fake", START, START + timedelta(days=95), "1d", chunk_days=30)

        await entered.wait()
        assert task.id in orch.active_task_ids
        assert orch.cancel_import(task.id) is True
        release.set()
        final = await orch.wait(task.id)

        assert final.status is ImportStatus.FAILED
        assert final.error == "Import cancelled"
        # The in-flight chunk finished and was kept
        assert len(adapter.calls) == 1
        assert store.count_candles("BTCUSDT", "fake", "1d") == 30
        assert orch.active_task_ids == []
        assert orch.cancel_import(task.id) is False

    @pytest.mark.asyncio
    async def test_shutdown_settles_running_jobs(self, store):
        orch = _orchestrator(store, _FakeAdapter(delay=0.02), concurrent_chunks=1)
        task = await orch.start_import("crypto", "BTCUSDT", "fake", START, START + timedelta(days=95), "1d", chunk_days=30)
        await orch.shutdown()
        assert orch.active_task_ids == []
        assert orch.get_import_task(task.id).status.is_terminal

    @pytest.mark.asyncio
    async def test_hourly_import_through_paged_vendor_stores_every_bar(self, store, monkeypatch):
        # OKX history-candles: newest ``limit`` rows strictly between before and after
        first = int(START.timestamp() * 1000)
        times = [first + i * 3_600_000 for i in range(720)]

        async def _mock_get(self, url, *, headers=None, params=None, timeout=None):
            rows = sorted((t for t in times if params["before"] < t < params["after"]), reverse=True)
            data = [[str(t), "1", "2", "0.5", "1.5", "10", "0", "0", "1"] for t in rows[:params["limit"]]]
            return httpx.Response(200, json={"code": "0", "data": data}, request=httpx.Request("GET", url))

        monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)
        orch = _orchestrator(store, OkxAdapter())

        task = await orch.start_import("crypto", "BTC-USDT", "okx", START, START + timedelta(days=30), "1h")
        final = await orch.wait(task.id)

        assert final.status is ImportStatus.COMPLETED
        assert final.progress == 1.0
        assert final.imported_candles == 720
        assert store.count_candles("BTC-USDT", "okx", "1h") == 720


class TestImportValidation:
    @pytest.mark.asyncio
    async def test_unknown_source_creates_no_task(self, store):
        orch = ImportOrchestrator(store, EventBus(), _make_config())
        with pytest.raises(ConfigError, match="Unsupported"):
            await orch.start_import("crypto", "BTCUSDT", "nowhere", START, START + timedelta(days=5), "1d")
        assert store.list_import_tasks() == []

    @pytest.mark.asyncio
    async def test_inverted_range_creates_no_task(self, store):
        orch = _orchestrator(store, _FakeAdapter())
        with pytest.raises(ConfigError, match="date range"):
            await orch.start_import("crypto", "BTCUSDT", "fake", START, START, "1d")
        assert store.list_import_tasks() == []

    @pytest.mark.asyncio
    async def test_empty_symbol(self, store):
        orch = _orchestrator(store, _FakeAdapter())
        with pytest.raises(ConfigError, match="symbol"):
            await orch.start_import("crypto", "", "fake", START, START + timedelta(days=1), "1d")

    @pytest.mark.asyncio
    async def test_bad_chunk_days(self, store):
        orch = _orchestrator(store, _FakeAdapter())
        with pytest.raises(ConfigError, match="chunk_days"):
            await orch.start_import("crypto", "BTCUSDT", "fake", START, START + timedelta(days=1), "1d", chunk_days=0)

    def test_unknown_task_id(self, store):
        orch = _orchestrator(store, _FakeAdapter())
        with pytest.raises(TaskNotFoundError):
            orch.get_import_task("does-not-exist")
