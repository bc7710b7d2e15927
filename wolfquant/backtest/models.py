"""Backtest data models — run settings, equity points, round trips, results."""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from wolfquant.config import Config
from wolfquant.errors import ConfigError
from wolfquant.trading.models import Order


@dataclass(frozen=True)
class BacktestConfig:
    """Simulation settings for one run."""

    initial_capital: float = 10_000.0
    fee_rate: float = 0.0
    slippage: float = 0.0

    @classmethod
    def from_config(cls, config: Config) -> "BacktestConfig":
        return cls(
            initial_capital=config.initial_capital,
            fee_rate=config.fee_rate,
            slippage=config.slippage,
        )

    def validate(self) -> None:
        """Raise ``ConfigError`` when a setting is out of range."""
        if not self.initial_capital > 0:
            raise ConfigError(f"initial_capital must be positive, got {self.initial_capital}")
        if not 0 <= self.fee_rate < 1:
            raise ConfigError(f"fee_rate must be in [0, 1), got {self.fee_rate}")
        if not 0 <= self.slippage < 1:
            raise ConfigError(f"slippage must be in [0, 1), got {self.slippage}")


@dataclass(frozen=True)
class EquityPoint:
    timestamp: datetime
    equity: float


@dataclass(frozen=True)
class RoundTrip:
    """A matched buy lot and the sell that closed it, net of fees."""

    symbol: str
    quantity: float
    entry_price: float
    exit_price: float
    pnl: float
    opened_at: datetime
    closed_at: datetime


@dataclass(frozen=True)
class PerformanceMetrics:
    total_return: float = 0.0
    annual_return: float = 0.0
    sharpe_ratio: float = 0.0
    max_drawdown: float = 0.0
    win_rate: float = 0.0
    profit_factor: float = 0.0
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0

    def to_dict(self) -> dict:
        """Plain dict; an infinite profit factor becomes ``None``."""
        return {
            "total_return": self.total_return,
            "annual_return": self.annual_return,
            "sharpe_ratio": self.sharpe_ratio,
            "max_drawdown": self.max_drawdown,
            "win_rate": self.win_rate,
            "profit_factor": None if math.isinf(self.profit_factor) else self.profit_factor,
            "total_trades": self.total_trades,
            "winning_trades": self.winning_trades,
            "losing_trades": self.losing_trades,
        }


@dataclass
class BacktestResult:
    trades: list[Order]
    performance: PerformanceMetrics
    equity_curve: list[EquityPoint] = field(default_factory=list)
    initial_capital: float = 0.0

    @property
    def final_equity(self) -> float:
        return self.equity_curve[-1].equity if self.equity_curve else self.initial_capital

    @property
    def start_time(self) -> Optional[datetime]:
        return self.equity_curve[0].timestamp if self.equity_curve else None

    @property
    def end_time(self) -> Optional[datetime]:
        return self.equity_curve[-1].timestamp if self.equity_curve else None

    def to_dict(self) -> dict:
        return {
            "initial_capital": self.initial_capital,
            "final_equity": self.final_equity,
            "performance": self.performance.to_dict(),
            "trades": [t.to_dict() for t in self.trades],
            "equity_curve": [
                {"timestamp": p.timestamp.isoformat(), "equity": p.equity}
                for p in self.equity_curve
            ],
        }
