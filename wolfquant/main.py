"""WolfQuant — application entry point.

Boots the FastAPI internal server and provides the CLI entry point for
serve, import, and backtest modes.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from wolfquant.api.routers import STATUS_BY_KIND, router
from wolfquant.errors import WolfQuantError

app = FastAPI(title="WolfQuant Internal API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("wolfquant")


@app.exception_handler(WolfQuantError)
async def domain_error_handler(request: Request, exc: WolfQuantError) -> JSONResponse:
    """Map the error kind to an HTTP status."""
    status = STATUS_BY_KIND.get(exc.kind, 500)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status, content={"error": exc.message, "kind": exc.kind})


@app.get("/health")
async def health():
    return {"status": "ok"}


# ── CLI ──────────────────────────────────────────────────────────────────


def _parse_param(raw: str) -> tuple[str, object]:
    """Parse ``key=value`` into a typed pair (int, then float, else str)."""
    key, sep, value = raw.partition("=")
    if not sep or not key:
        raise ValueError(f"Strategy parameter must look like key=value, got {raw!r}")
    for cast in (int, float):
        try:
            return key, cast(value)
        except ValueError:
            continue
    return key, value


def _build_parser():
    import argparse

    parser = argparse.ArgumentParser(description="WolfQuant data import and backtesting")
    parser.add_argument("--env-file", help="Path to a .env file (default: ./.env)")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the internal API server")
    serve.add_argument("--port", type=int, help="Port (default: API_PORT)")

    imp = sub.add_parser("import", help="Import historical candles")
    imp.add_argument("asset_type", help="crypto or fund")
    imp.add_argument("source", help="Adapter name, e.g. binance")
    imp.add_argument("symbol")
    imp.add_argument("--start", required=True, help="Start date (YYYY-MM-DD)")
    imp.add_argument("--end", required=True, help="End date (YYYY-MM-DD), exclusive")
    imp.add_argument("--interval", default="1d")
    imp.add_argument("--chunk-days", type=int, help="Override the per-asset chunk size")

    bt = sub.add_parser("backtest", help="Backtest a strategy on stored candles")
    bt.add_argument("strategy", help="Strategy name, e.g. ma_crossover")
    bt.add_argument("source")
    bt.add_argument("symbol")
    bt.add_argument("--interval", default="1d")
    bt.add_argument("--start", help="Start date (YYYY-MM-DD)")
    bt.add_argument("--end", help="End date (YYYY-MM-DD), exclusive")
    bt.add_argument(
        "--param", action="append", default=[],
        help="Strategy parameter as key=value (repeatable)",
    )
    bt.add_argument("--initial-capital", type=float)
    bt.add_argument("--fee-rate", type=float)
    bt.add_argument("--slippage", type=float)

    watch = sub.add_parser("watch", help="Poll live tickers and log prices")
    watch.add_argument("asset_type", help="crypto or fund")
    watch.add_argument("source")
    watch.add_argument("symbols", nargs="+")
    watch.add_argument("--cycles", type=int, default=0, help="Stop after N polls (default: unlimited)")
    return parser


def _run_cli(argv: list[str] | None = None) -> int:
    """Parse CLI arguments and dispatch to the selected command."""
    import asyncio

    from wolfquant.config import load_config
    from wolfquant.repos.db import init_db

    args = _build_parser().parse_args(argv)
    config = load_config(args.env_file)

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    init_db(config.db_path)

    try:
        if args.command == "serve":
            asyncio.run(_serve(config, args.port or config.api_port))
            return 0
        if args.command == "import":
            return asyncio.run(_run_import(config, args))
        if args.command == "watch":
            return asyncio.run(_run_watch(config, args))
        return _run_backtest(config, args)
    except WolfQuantError as exc:
        logger.error("%s failed (%s): %s", args.command, exc.kind, exc.message)
        return 1


async def _serve(config, port: int) -> None:
    """Start the API server with the importer and repos wired in."""
    import uvicorn

    from wolfquant.api.routers import configure_routers
    from wolfquant.events.bus import EventBus
    from wolfquant.importer.orchestrator import ImportOrchestrator
    from wolfquant.repos.backtest_repo import BacktestRepo
    from wolfquant.repos.candle_store import CandleStore

    store = CandleStore(config.db_path)
    orchestrator = ImportOrchestrator(store, EventBus(), config)
    configure_routers(
        orchestrator=orchestrator,
        candle_store=store,
        backtest_repo=BacktestRepo(config.db_path),
        config=config,
    )

    server = uvicorn.Server(uvicorn.Config(app, host="0.0.0.0", port=port, log_level="info"))
    logger.info("WolfQuant API available at http://localhost:%d", port)
    try:
        await server.serve()
    finally:
        await orchestrator.shutdown()
        logger.info("WolfQuant stopped.")


async def _run_import(config, args) -> int:
    """Run one import in the foreground, logging progress."""
    from datetime import datetime

    from wolfquant.events.bus import EventBus, EventType
    from wolfquant.importer.models import ImportStatus
    from wolfquant.importer.orchestrator import ImportOrchestrator
    from wolfquant.repos.candle_store import CandleStore

    bus = EventBus()
    bus.subscribe(
        EventType.IMPORT_PROGRESS,
        lambda event: logger.info(
            "Progress %.0f%% (%d candles)",
            event.data.progress * 100, event.data.imported_candles,
        ),
    )
    orchestrator = ImportOrchestrator(CandleStore(config.db_path), bus, config)
    task = await orchestrator.start_import(
        args.asset_type,
        args.symbol,
        args.source,
        datetime.fromisoformat(args.start),
        datetime.fromisoformat(args.end),
        args.interval,
        chunk_days=args.chunk_days,
    )
    task = await orchestrator.wait(task.id)
    if task.status is ImportStatus.COMPLETED:
        logger.info("Import %s complete: %d candles", task.id, task.imported_candles)
        return 0
    logger.error("Import %s failed: %s", task.id, task.error)
    return 1


async def _run_watch(config, args) -> int:
    """Poll tickers every TICKER_POLL_SECONDS and log each price."""
    from wolfquant.adapters.registry import get_adapter
    from wolfquant.events.bus import EventBus, EventType
    from wolfquant.market.watcher import TickerWatcher

    bus = EventBus()
    bus.subscribe(
        EventType.TICK,
        lambda event: logger.info("%s %.8g", event.data.symbol, event.data.price),
    )
    adapter = get_adapter(args.asset_type, args.source, config)
    watcher = TickerWatcher(adapter, args.symbols, bus, poll_interval=config.ticker_poll_seconds)
    await watcher.run(max_cycles=args.cycles)
    return 0


def _run_backtest(config, args) -> int:
    """Load stored candles, run the strategy, and persist the summary."""
    from datetime import datetime

    from wolfquant.backtest.engine import run_backtest
    from wolfquant.backtest.models import BacktestConfig
    from wolfquant.errors import ConfigError
    from wolfquant.market.models import normalize_interval
    from wolfquant.repos.backtest_repo import BacktestRepo
    from wolfquant.repos.candle_store import CandleStore
    from wolfquant.strategy.registry import get_strategy

    try:
        params = dict(_parse_param(p) for p in args.param)
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc
    strategy = get_strategy(args.strategy, params)

    defaults = BacktestConfig.from_config(config)
    bt_config = BacktestConfig(
        initial_capital=args.initial_capital or defaults.initial_capital,
        fee_rate=defaults.fee_rate if args.fee_rate is None else args.fee_rate,
        slippage=defaults.slippage if args.slippage is None else args.slippage,
    )

    interval = normalize_interval(args.interval)
    candles = CandleStore(config.db_path).get_candles(
        args.symbol, args.source, interval,
        datetime.fromisoformat(args.start) if args.start else None,
        datetime.fromisoformat(args.end) if args.end else None,
    )
    if not candles:
        raise ConfigError(f"No candles stored for {args.source}/{args.symbol} {interval}")

    result = run_backtest(strategy, candles, bt_config)
    BacktestRepo(config.db_path).insert_run(args.strategy, args.symbol, args.source, interval, result)

    perf = result.performance
    logger.info(
        "Backtest complete: %d round trips, return %.2f%%, annual %.2f%%, "
        "Sharpe %.2f, max drawdown %.2f%%, win rate %.1f%%",
        perf.total_trades,
        perf.total_return * 100,
        perf.annual_return * 100,
        perf.sharpe_ratio,
        perf.max_drawdown * 100,
        perf.win_rate * 100,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(_run_cli())
