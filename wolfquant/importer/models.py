"""Import task model and lifecycle states."""

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


class ImportStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ImportStatus.COMPLETED, ImportStatus.FAILED)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ImportTask:
    """Snapshot of one historical-data import.

    Snapshots are immutable; the orchestrator derives the next state with
    ``dataclasses.replace`` and persists it.
    """

    asset_type: str
    symbol: str
    source: str
    start_time: datetime
    end_time: datetime
    interval: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: ImportStatus = ImportStatus.PENDING
    progress: float = 0.0
    error: Optional[str] = None
    total_candles: Optional[int] = None
    imported_candles: int = 0
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)
    completed_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        """JSON-friendly representation used by the API and events."""
        return {
            "id": self.id,
            "asset_type": self.asset_type,
            "symbol": self.symbol,
            "source": self.source,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "interval": self.interval,
            "status": self.status.value,
            "progress": self.progress,
            "error": self.error,
            "total_candles": self.total_candles,
            "imported_candles": self.imported_candles,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass(frozen=True)
class Chunk:
    """A half-open ``[start, end)`` slice of an import range."""

    index: int
    start: datetime
    end: datetime
