"""Adapter registry — maps ``(asset_type, source)`` to adapter classes.

Used by the import orchestrator and the ticker watcher to resolve a
market source from caller input.
"""

from typing import Optional

from wolfquant.adapters.base import MarketAdapter
from wolfquant.adapters.binance_client import BinanceAdapter
from wolfquant.adapters.okx_client import OkxAdapter
from wolfquant.adapters.sina_client import SinaFundAdapter
from wolfquant.adapters.tiantian_client import TiantianFundAdapter
from wolfquant.config import Config
from wolfquant.errors import ConfigError


ADAPTER_REGISTRY: dict[tuple[str, str], type] = {
    ("crypto", "binance"): BinanceAdapter,
    ("crypto", "okx"): OkxAdapter,
    ("fund", "tiantian"): TiantianFundAdapter,
    ("fund", "sina"): SinaFundAdapter,
}


def supported_sources() -> list[tuple[str, str]]:
    """Every registered ``(asset_type, source)`` pair."""
    return sorted(ADAPTER_REGISTRY)


def get_adapter(
    asset_type: str,
    source: str,
    config: Optional[Config] = None,
) -> MarketAdapter:
    """Look up and instantiate an adapter.

    Raises ``ConfigError`` if the pair is not registered.
    """
    key = (asset_type, source)
    if key not in ADAPTER_REGISTRY:
        available = ", ".join(f"{a}/{s}" for a, s in supported_sources())
        raise ConfigError(
            f"Unsupported asset type '{asset_type}' or source '{source}'. "
            f"Available: {available}"
        )
    adapter_cls = ADAPTER_REGISTRY[key]
    if config is not None:
        return adapter_cls(timeout=config.request_timeout_seconds)
    return adapter_cls()
