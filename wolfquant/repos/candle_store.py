"""Candle store — SQLite persistence for candles and import tasks."""

from datetime import datetime
from typing import Optional

from wolfquant.importer.models import ImportStatus, ImportTask
from wolfquant.market.models import Candle, from_timestamp, to_utc
from wolfquant.repos.db import transaction


class CandleStore:
    """Data access layer for the ``candles`` and ``import_tasks`` tables.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    # ── Candles ──────────────────────────────────────────────────────────

    def save_candles(self, candles: list[Candle]) -> int:
        """Upsert *candles* on ``(symbol, source, interval, timestamp)``.

        Re-saving identical rows is a no-op content-wise.  Returns the
        number of rows written.
        """
        if not candles:
            return 0
        rows = [
            (
                c.symbol, c.source, c.asset_type, c.interval,
                int(to_utc(c.timestamp).timestamp()),
                c.open, c.high, c.low, c.close, c.volume,
            )
            for c in candles
        ]
        with transaction(self._db_path) as conn:
            conn.executemany(
                """
                INSERT INTO candles
                    (symbol, source, asset_type, interval, timestamp,
                     open, high, low, close, volume)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (symbol, source, interval, timestamp) DO UPDATE SET
                    asset_type = excluded.asset_type,
                    open = excluded.open,
                    high = excluded.high,
                    low = excluded.low,
                    close = excluded.close,
                    volume = excluded.volume,
                    updated_at = datetime('now')
                """,
                rows,
            )
        return len(rows)

    def get_candles(
        self,
        symbol: str,
        source: str,
        interval: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Candle]:
        """Return candles in ``[start, end)`` ordered oldest-first."""
        where, params = self._range_clause(symbol, source, interval, start, end)
        with transaction(self._db_path) as conn:
            rows = conn.execute(
                f"SELECT * FROM candles {where} ORDER BY timestamp ASC",
                params,
            ).fetchall()
        return [
            Candle(
                timestamp=from_timestamp(row["timestamp"]),
                open=row["open"],
                high=row["high"],
                low=row["low"],
                close=row["close"],
                volume=row["volume"],
                symbol=row["symbol"],
                source=row["source"],
                interval=row["interval"],
                asset_type=row["asset_type"],
            )
            for row in rows
        ]

    def count_candles(
        self,
        symbol: str,
        source: str,
        interval: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> int:
        where, params = self._range_clause(symbol, source, interval, start, end)
        with transaction(self._db_path) as conn:
            return conn.execute(f"SELECT COUNT(*) FROM candles {where}", params).fetchone()[0]

    def list_datasets(self) -> list[dict]:
        """Summarise stored data per ``(asset_type, source, symbol)``."""
        with transaction(self._db_path) as conn:
            rows = conn.execute(
                """
                SELECT asset_type, source, symbol,
                       MIN(timestamp) AS min_timestamp,
                       MAX(timestamp) AS max_timestamp,
                       COUNT(*) AS candle_count,
                       GROUP_CONCAT(DISTINCT interval) AS intervals
                FROM candles
                GROUP BY asset_type, source, symbol
                ORDER BY asset_type, source, symbol
                """
            ).fetchall()
        return [
            {
                "asset_type": row["asset_type"],
                "source": row["source"],
                "symbol": row["symbol"],
                "start_time": from_timestamp(row["min_timestamp"]).isoformat(),
                "end_time": from_timestamp(row["max_timestamp"]).isoformat(),
                "candle_count": row["candle_count"],
                "intervals": sorted((row["intervals"] or "").split(",")),
            }
            for row in rows
        ]

    @staticmethod
    def _range_clause(
        symbol: str,
        source: str,
        interval: str,
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> tuple[str, list]:
        conditions = ["symbol = ?", "source = ?", "interval = ?"]
        params: list = [symbol, source, interval]
        if start is not None:
            conditions.append("timestamp >= ?")
            params.append(int(to_utc(start).timestamp()))
        if end is not None:
            conditions.append("timestamp < ?")
            params.append(int(to_utc(end).timestamp()))
        return "WHERE " + " AND ".join(conditions), params

    # ── Import tasks ─────────────────────────────────────────────────────

    def save_import_task(self, task: ImportTask) -> None:
        """Insert or replace the full task row."""
        with transaction(self._db_path) as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO import_tasks
                    (id, asset_type, source, symbol, start_time, end_time,
                     interval, status, progress, error, total_candles,
                     imported_candles, created_at, updated_at, completed_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    task.id, task.asset_type, task.source, task.symbol,
                    task.start_time.isoformat(), task.end_time.isoformat(),
                    task.interval, task.status.value, task.progress, task.error,
                    task.total_candles, task.imported_candles,
                    task.created_at.isoformat(), task.updated_at.isoformat(),
                    task.completed_at.isoformat() if task.completed_at else None,
                ),
            )

    def get_import_task(self, task_id: str) -> Optional[ImportTask]:
        """Return the task with *task_id*, or ``None``."""
        with transaction(self._db_path) as conn:
            row = conn.execute(
                "SELECT * FROM import_tasks WHERE id = ?", (task_id,)
            ).fetchone()
        return self._task_from_row(row) if row else None

    def list_import_tasks(self, limit: int = 100) -> list[ImportTask]:
        """Return recent tasks, newest first."""
        with transaction(self._db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM import_tasks ORDER BY created_at DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [self._task_from_row(r) for r in rows]

    @staticmethod
    def _task_from_row(row) -> ImportTask:
        return ImportTask(
            id=row["id"],
            asset_type=row["asset_type"],
            source=row["source"],
            symbol=row["symbol"],
            start_time=datetime.fromisoformat(row["start_time"]),
            end_time=datetime.fromisoformat(row["end_time"]),
            interval=row["interval"],
            status=ImportStatus(row["status"]),
            progress=row["progress"],
            error=row["error"],
            total_candles=row["total_candles"],
            imported_candles=row["imported_candles"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
            completed_at=(
                datetime.fromisoformat(row["completed_at"])
                if row["completed_at"] else None
            ),
        )
