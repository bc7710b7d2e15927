"""Strategy registry — maps strategy names to classes.

Used by the API and CLI to build a strategy from a name plus parameters.
"""

from typing import Optional

from wolfquant.errors import ConfigError
from wolfquant.strategy.base import StrategyProtocol
from wolfquant.strategy.ma_crossover import MaCrossoverStrategy
from wolfquant.strategy.rsi_reversion import RsiReversionStrategy


STRATEGY_REGISTRY: dict[str, type] = {
    "ma_crossover": MaCrossoverStrategy,
    "rsi_reversion": RsiReversionStrategy,
}


def get_strategy(name: str, params: Optional[dict] = None) -> StrategyProtocol:
    """Look up and instantiate a strategy by registry key.

    Raises ``ConfigError`` if the name is not registered or *params* are
    rejected by the strategy.
    """
    if name not in STRATEGY_REGISTRY:
        raise ConfigError(
            f"Unknown strategy '{name}'. "
            f"Available: {', '.join(STRATEGY_REGISTRY.keys())}"
        )
    try:
        return STRATEGY_REGISTRY[name](**(params or {}))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid parameters for strategy '{name}': {exc}") from exc
