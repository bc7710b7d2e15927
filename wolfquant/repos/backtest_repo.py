"""Backtest run repository — persists backtest summaries to SQLite."""

import json

from wolfquant.backtest.models import BacktestResult
from wolfquant.repos.db import transaction


class BacktestRepo:
    """Data access layer for the ``backtest_runs`` table.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def insert_run(
        self,
        strategy: str,
        symbol: str,
        source: str,
        interval: str,
        result: BacktestResult,
    ) -> int:
        """Persist a backtest run summary and its equity curve.  Returns the row id."""
        metrics = result.performance.to_dict()
        curve = [
            {"timestamp": p.timestamp.isoformat(), "equity": p.equity}
            for p in result.equity_curve
        ]
        with transaction(self._db_path) as conn:
            cur = conn.execute(
                """
                INSERT INTO backtest_runs
                    (strategy, symbol, source, interval, start_time, end_time,
                     initial_capital, final_equity, total_return, annual_return,
                     sharpe_ratio, max_drawdown, win_rate, profit_factor,
                     total_trades, winning_trades, losing_trades, equity_curve)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    strategy,
                    symbol,
                    source,
                    interval,
                    result.start_time.isoformat() if result.start_time else None,
                    result.end_time.isoformat() if result.end_time else None,
                    result.initial_capital,
                    result.final_equity,
                    metrics["total_return"],
                    metrics["annual_return"],
                    metrics["sharpe_ratio"],
                    metrics["max_drawdown"],
                    metrics["win_rate"],
                    metrics["profit_factor"],
                    metrics["total_trades"],
                    metrics["winning_trades"],
                    metrics["losing_trades"],
                    json.dumps(curve),
                ),
            )
            return cur.lastrowid

    def get_runs(self, limit: int = 10, include_curve: bool = False) -> list[dict]:
        """Return recent backtest run summaries, newest first."""
        with transaction(self._db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM backtest_runs ORDER BY id DESC LIMIT ?",
                (limit,),
            ).fetchall()
        runs = []
        for row in rows:
            run = dict(row)
            curve = run.pop("equity_curve")
            if include_curve:
                run["equity_curve"] = json.loads(curve)
            runs.append(run)
        return runs
