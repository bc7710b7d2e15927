"""Range splitting and volume estimates — pure functions, no I/O."""

from datetime import datetime, timedelta

from wolfquant.importer.models import Chunk
from wolfquant.market.models import CANDLES_PER_DAY, normalize_interval

CHUNK_DAYS_BY_ASSET: dict[str, int] = {
    "crypto": 30,
    "stock": 90,
}
DEFAULT_CHUNK_DAYS = 365


def chunk_days_for(asset_type: str) -> int:
    """Chunk width in days for *asset_type*.

    High-frequency assets get narrower chunks to bound per-call payloads.
    """
    return CHUNK_DAYS_BY_ASSET.get(asset_type, DEFAULT_CHUNK_DAYS)


def split_range(start: datetime, end: datetime, chunk_days: int) -> list[Chunk]:
    """Split ``[start, end)`` into contiguous chunks of at most *chunk_days*.

    The last chunk is truncated at *end*.  Returns an empty list when
    ``start >= end``.

    Raises ``ValueError`` if *chunk_days* is not positive.
    """
    if chunk_days <= 0:
        raise ValueError(f"chunk_days must be positive, got {chunk_days}")

    width = timedelta(days=chunk_days)
    chunks: list[Chunk] = []
    cursor = start
    while cursor < end:
        chunk_end = min(cursor + width, end)
        chunks.append(Chunk(index=len(chunks), start=cursor, end=chunk_end))
        cursor = chunk_end
    return chunks


def estimate_total_candles(start: datetime, end: datetime, interval: str) -> int:
    """Expected bar count: whole days in range × bars per day for *interval*."""
    days = max((end - start).days, 0)
    return int(days * CANDLES_PER_DAY[normalize_interval(interval)])
