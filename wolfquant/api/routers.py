"""Internal API routers — /imports, /datasets, /backtests endpoints.

No business logic, no direct SQL.  Delegates to the import orchestrator,
candle store, backtest engine, and backtest repo injected at startup.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from wolfquant.backtest.engine import run_backtest
from wolfquant.backtest.models import BacktestConfig
from wolfquant.config import Config
from wolfquant.errors import ConfigError
from wolfquant.market.models import DEFAULT_INTERVAL, normalize_interval, to_utc
from wolfquant.strategy.registry import get_strategy

logger = logging.getLogger("wolfquant.api")
router = APIRouter()

# ── Shared state (set during app startup) ────────────────────────────────

_orchestrator = None    # Set via configure_routers()
_candle_store = None    # Set via configure_routers()
_backtest_repo = None   # Set via configure_routers()
_config: Optional[Config] = None

# Error kind → HTTP status
STATUS_BY_KIND: dict[str, int] = {
    "config": 400,
    "validation": 400,
    "not_found": 404,
    "strategy": 422,
    "adapter": 502,
    "persistence": 500,
}


def configure_routers(
    orchestrator=None,
    candle_store=None,
    backtest_repo=None,
    config: Optional[Config] = None,
) -> None:
    """Inject dependencies from the application startup.

    Args:
        orchestrator: An ``ImportOrchestrator`` (or duck-type for tests).
        candle_store: A ``CandleStore`` used to load backtest candles.
        backtest_repo: A ``BacktestRepo`` for run history.
        config: Supplies backtest defaults.
    """
    global _orchestrator, _candle_store, _backtest_repo, _config  # noqa: PLW0603
    _orchestrator = orchestrator
    _candle_store = candle_store
    _backtest_repo = backtest_repo
    _config = config


def _parse_time(body: dict, key: str, required: bool = True) -> Optional[datetime]:
    raw = body.get(key)
    if raw is None:
        if required:
            raise ConfigError(f"'{key}' is required")
        return None
    try:
        return to_utc(datetime.fromisoformat(str(raw)))
    except ValueError:
        raise ConfigError(f"'{key}' must be an ISO-8601 date or datetime, got {raw!r}") from None


def _require(body: dict, key: str) -> str:
    value = body.get(key)
    if not value:
        raise ConfigError(f"'{key}' is required")
    return str(value)


def _require_orchestrator():
    if _orchestrator is None:
        raise HTTPException(status_code=503, detail="Importer not configured")
    return _orchestrator


# ── Imports ──────────────────────────────────────────────────────────────


@router.post("/imports", status_code=202)
async def create_import(body: dict):
    """Validate and queue an import.  Returns the pending task."""
    orchestrator = _require_orchestrator()
    chunk_days = body.get("chunk_days")
    if chunk_days is not None:
        try:
            chunk_days = int(chunk_days)
        except (TypeError, ValueError):
            raise ConfigError(f"'chunk_days' must be an integer, got {chunk_days!r}") from None
    task = await orchestrator.start_import(
        asset_type=_require(body, "asset_type"),
        symbol=_require(body, "symbol"),
        source=_require(body, "source"),
        start=_parse_time(body, "start"),
        end=_parse_time(body, "end"),
        interval=body.get("interval") or DEFAULT_INTERVAL,
        chunk_days=chunk_days,
    )
    return task.to_dict()


@router.get("/imports")
async def list_imports():
    """Return recent import tasks, newest first."""
    if _orchestrator is None:
        return {"tasks": []}
    return {"tasks": [t.to_dict() for t in _orchestrator.list_import_tasks()]}


@router.get("/imports/{task_id}")
async def get_import(task_id: str):
    return _require_orchestrator().get_import_task(task_id).to_dict()


@router.delete("/imports/{task_id}")
async def cancel_import(task_id: str):
    """Request cancellation.  Chunks already in flight still finish."""
    orchestrator = _require_orchestrator()
    task = orchestrator.get_import_task(task_id)
    cancelled = orchestrator.cancel_import(task_id)
    logger.info("Cancel import %s via API: %s", task_id, cancelled)
    return {"task_id": task.id, "cancelled": cancelled, "status": task.status.value}


@router.get("/datasets")
def list_datasets():
    """Summaries of stored candles per asset type, source, and symbol."""
    if _candle_store is None:
        return {"datasets": []}
    return {"datasets": _candle_store.list_datasets()}


# ── Backtests ────────────────────────────────────────────────────────────


@router.post("/backtests")
def create_backtest(body: dict):
    """Run a strategy over stored candles and persist the summary.

    Declared sync so FastAPI runs the replay in its threadpool, off the
    loop that hosts running imports.

    Body keys: ``strategy``, ``params``, ``symbol``, ``source``,
    ``interval``, optional ``start`` / ``end``, and optional
    ``initial_capital`` / ``fee_rate`` / ``slippage`` overrides.
    """
    if _candle_store is None:
        raise HTTPException(status_code=503, detail="Candle store not configured")

    strategy_name = _require(body, "strategy")
    strategy = get_strategy(strategy_name, body.get("params"))
    symbol = _require(body, "symbol")
    source = _require(body, "source")
    interval = normalize_interval(body.get("interval") or DEFAULT_INTERVAL)

    defaults = BacktestConfig.from_config(_config) if _config else BacktestConfig()
    try:
        bt_config = BacktestConfig(
            initial_capital=float(body.get("initial_capital", defaults.initial_capital)),
            fee_rate=float(body.get("fee_rate", defaults.fee_rate)),
            slippage=float(body.get("slippage", defaults.slippage)),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid backtest settings: {exc}") from exc

    candles = _candle_store.get_candles(
        symbol, source, interval,
        _parse_time(body, "start", required=False),
        _parse_time(body, "end", required=False),
    )
    if not candles:
        raise ConfigError(f"No candles stored for {source}/{symbol} {interval}")

    result = run_backtest(strategy, candles, bt_config)
    run_id = None
    if _backtest_repo is not None:
        run_id = _backtest_repo.insert_run(strategy_name, symbol, source, interval, result)
    logger.info(
        "Backtest %s on %s/%s: %d candles, return %.4f",
        strategy_name, source, symbol, len(candles), result.performance.total_return,
    )
    return {"id": run_id, "strategy": strategy_name, **result.to_dict()}


@router.get("/backtests")
def list_backtests(limit: int = Query(default=10, ge=1, le=100)):
    """Return recent backtest run summaries."""
    if _backtest_repo is None:
        return {"runs": []}
    return {"runs": _backtest_repo.get_runs(limit=limit)}
