"""Buy a fixed quantity once and hold it."""

import logging
from decimal import Decimal

from simcore import Candle, Exchange, SimulationError


logger = logging.getLogger(__name__)


class BuyAndHoldStrategy:
    """Spot-buy ``amount`` on the first candle where the buy succeeds."""

    def __init__(self, amount: Decimal = Decimal("1")):
        self.amount = amount
        self.bought = False

    def execute(self, exchange: Exchange, candle: Candle) -> None:
        if self.bought:
            return
        try:
            exchange.spot_buy(candle.symbol, self.amount)
        except SimulationError as e:
            logger.warning(f"Buy of {self.amount} {candle.symbol} failed, retrying next candle: {e}")
            return
        self.bought = True
        logger.info(f"Bought {self.amount} {candle.symbol} @ {candle.close}")
