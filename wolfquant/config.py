"""WolfQuant — application configuration.

Loads .env variables into a typed config object.
Every variable is optional; malformed values fail on startup.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    db_path: str
    log_level: str
    api_port: int
    concurrent_chunks: int
    retry_count: int
    retry_delay_seconds: float
    request_timeout_seconds: float
    initial_capital: float
    fee_rate: float
    slippage: float
    ticker_poll_seconds: int


def _env_int(name: str, default: str, minimum: int) -> int:
    raw = os.environ.get(name, default)
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def _env_float(name: str, default: str, minimum: float, maximum: float | None = None) -> float:
    raw = os.environ.get(name, default)
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value < minimum or (maximum is not None and value >= maximum):
        bound = f"[{minimum}, {maximum})" if maximum is not None else f">= {minimum}"
        raise ValueError(f"{name} must be in {bound}, got {value}")
    return value


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Raises ``ValueError`` with a message naming the offending variable when
    a value cannot be parsed or is out of range.
    """
    load_dotenv(dotenv_path=env_path)

    return Config(
        db_path=os.environ.get("DB_PATH", "data/wolfquant.db"),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        api_port=_env_int("API_PORT", "8080", 1),
        concurrent_chunks=_env_int("IMPORT_CONCURRENT_CHUNKS", "2", 1),
        retry_count=_env_int("IMPORT_RETRY_COUNT", "3", 0),
        retry_delay_seconds=_env_float("IMPORT_RETRY_DELAY_SECONDS", "1.0", 0.0),
        request_timeout_seconds=_env_float("REQUEST_TIMEOUT_SECONDS", "30.0", 0.001),
        initial_capital=_env_float("BACKTEST_INITIAL_CAPITAL", "10000", 0.01),
        fee_rate=_env_float("BACKTEST_FEE_RATE", "0", 0.0, 1.0),
        slippage=_env_float("BACKTEST_SLIPPAGE", "0", 0.0, 1.0),
        ticker_poll_seconds=_env_int("TICKER_POLL_SECONDS", "60", 1),
    )
