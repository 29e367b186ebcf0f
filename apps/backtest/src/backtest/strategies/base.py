"""Strategy interface driven by the backtest engine."""

from typing import Awaitable, Optional, Protocol, runtime_checkable

from simcore import Candle, Exchange


@runtime_checkable
class Strategy(Protocol):
    """Trading logic called once per candle.

    ``execute`` runs after the step's price is set and before resting orders
    are matched. It may return an awaitable; the engine drives it to
    completion before moving on.
    """

    def execute(self, exchange: Exchange, candle: Candle) -> Optional[Awaitable[None]]:
        ...
