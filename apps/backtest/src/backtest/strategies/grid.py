"""
Range grid strategy.

Splits [lower_limit, upper_limit] into grid_count equal intervals and keeps a
resting order on every level: buys below the price the grid was built at,
sells above it. The instrument needed by the sell levels is bought with a
single spot buy when the grid is built.

When a level fills, the opposite order goes on the neighbouring level (a
filled buy at level i is followed by a sell at i+1, a filled sell at i by a
buy at i-1), so the grid keeps harvesting the spread while price oscillates
inside the range.

Reaching take_profit_price or stop_loss_price cancels the remaining orders,
sells the whole free balance and drops the grid. It is rebuilt on the first
later candle that is back inside the take-profit/stop-loss band.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from simcore import Candle, Exchange, SideType, SimulationError

from backtest.config import GridStrategyConfig


logger = logging.getLogger(__name__)

# Levels closer than this fraction of the spacing to the build price get no order
SKIP_LEVEL_FRACTION = Decimal("0.1")


@dataclass
class GridLevel:
    """One grid price and the order currently resting on it, if any."""

    index: int
    price: Decimal
    side: Optional[SideType] = None
    order_id: Optional[str] = None


class GridStrategy:
    """Range grid with counter-orders after fills."""

    def __init__(self, config: GridStrategyConfig):
        self.config = config
        self.levels: list[GridLevel] = []
        self.initialized = False

    @property
    def grid_spacing(self) -> Decimal:
        return self.config.grid_spacing

    def build_levels(self) -> list[Decimal]:
        """Grid prices from lower_limit to upper_limit inclusive."""
        spacing = self.grid_spacing
        return [
            self.config.lower_limit + i * spacing
            for i in range(self.config.grid_count + 1)
        ]

    def execute(self, exchange: Exchange, candle: Candle) -> None:
        price = candle.close

        if self.should_close(price):
            if self.initialized:
                self.close_grid(exchange, candle.symbol)
            return

        if not self.initialized:
            self.create_grid(exchange, candle.symbol, price)
            return

        self.replace_filled_orders(exchange, candle.symbol)

    def should_close(self, price: Decimal) -> bool:
        """Check take-profit and stop-loss thresholds."""
        tp = self.config.take_profit_price
        sl = self.config.stop_loss_price
        if tp is not None and price >= tp:
            logger.info(f"Take profit reached at {price} (threshold {tp})")
            return True
        if sl is not None and price <= sl:
            logger.info(f"Stop loss reached at {price} (threshold {sl})")
            return True
        return False

    def create_grid(self, exchange: Exchange, symbol: str, price: Decimal) -> None:
        """Buy the inventory for the sell levels and place every level's order."""
        prices = self.build_levels()
        skip_distance = self.grid_spacing * SKIP_LEVEL_FRACTION

        sell_levels = sum(1 for p in prices if p > price)
        initial_amount = self.config.buy_amount * sell_levels
        if initial_amount > 0:
            try:
                exchange.spot_buy(symbol, initial_amount)
            except SimulationError as e:
                logger.warning(f"Grid inventory buy of {initial_amount} {symbol} failed: {e}")
                return

        self.levels = []
        placed = 0
        for index, level_price in enumerate(prices):
            level = GridLevel(index=index, price=level_price)
            self.levels.append(level)
            if abs(level_price - price) < skip_distance:
                continue
            side = SideType.BUY if level_price < price else SideType.SELL
            if self._place(exchange, symbol, level, side):
                placed += 1

        self.initialized = True
        logger.info(
            f"Grid built for {symbol} at {price}: {len(prices)} levels, "
            f"{placed} orders, inventory {initial_amount}"
        )

    def replace_filled_orders(self, exchange: Exchange, symbol: str) -> None:
        """Detect filled levels and place the counter-order on the neighbour."""
        filled = [
            level for level in self.levels
            if level.order_id is not None and exchange.get_order(level.order_id) is None
        ]
        for level in filled:
            side = level.side
            level.order_id = None
            level.side = None

            if side == SideType.BUY:
                neighbour_index, counter_side = level.index + 1, SideType.SELL
            else:
                neighbour_index, counter_side = level.index - 1, SideType.BUY

            if not 0 <= neighbour_index < len(self.levels):
                continue
            neighbour = self.levels[neighbour_index]
            if neighbour.order_id is not None:
                logger.debug(f"Level {neighbour_index} already has {neighbour.order_id}")
                continue
            self._place(exchange, symbol, neighbour, counter_side)

    def close_grid(self, exchange: Exchange, symbol: str) -> None:
        """Cancel pending grid orders and sell the free balance."""
        for level in self.levels:
            if level.order_id is not None and exchange.get_order(level.order_id) is not None:
                exchange.cancel_order(level.order_id)

        balance = exchange.get_balance(symbol)
        if balance > 0:
            exchange.spot_sell(symbol, balance)

        self.levels = []
        self.initialized = False
        logger.info(f"Grid closed for {symbol}, sold {balance}")

    def _place(self, exchange: Exchange, symbol: str, level: GridLevel, side: SideType) -> bool:
        try:
            if side == SideType.BUY:
                order_id = exchange.place_buy_order(symbol, self.config.buy_amount, level.price)
            else:
                order_id = exchange.place_sell_order(symbol, self.config.buy_amount, level.price)
        except SimulationError as e:
            logger.warning(f"Failed to place {side} order at {level.price}: {e}")
            return False
        level.side = side
        level.order_id = order_id
        return True
