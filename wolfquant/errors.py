"""Error taxonomy shared by the importer, portfolio, and backtest engine.

Every error raised across a component boundary derives from
``WolfQuantError`` and carries a ``kind`` so callers can branch on the
category without string matching.
"""


class WolfQuantError(Exception):
    """Base class for all domain errors."""

    kind = "internal"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AdapterError(WolfQuantError):
    """A market source failed (network, HTTP status, malformed payload)."""

    kind = "adapter"


class ConfigError(WolfQuantError):
    """Caller input cannot be resolved (unknown source, bad range, bad params)."""

    kind = "config"


class StrategyError(WolfQuantError):
    """A strategy failed to initialise or update.  Fatal to a backtest run."""

    kind = "strategy"


class PersistenceError(WolfQuantError):
    """The candle store could not read or write."""

    kind = "persistence"


class ValidationError(WolfQuantError):
    """An order was rejected by the portfolio."""

    kind = "validation"


class MissingPriceError(ValidationError):
    pass


class InvalidOrderError(ValidationError):
    pass


class InsufficientFundsError(ValidationError):
    pass


class NoPositionError(ValidationError):
    pass


class InsufficientPositionError(ValidationError):
    pass


class TaskNotFoundError(WolfQuantError):
    """No import task exists with the requested id."""

    kind = "not_found"
