"""Built-in strategies."""

from backtest.config import BacktestConfig, StrategyKind
from backtest.strategies.base import Strategy
from backtest.strategies.buy_and_hold import BuyAndHoldStrategy
from backtest.strategies.grid import GridLevel, GridStrategy


def build_strategy(config: BacktestConfig) -> Strategy:
    """Create the strategy selected by ``config.strategy``."""
    if config.strategy == StrategyKind.GRID:
        return GridStrategy(config.grid)
    return BuyAndHoldStrategy(amount=config.buy_and_hold.amount)


__all__ = [
    "Strategy",
    "BuyAndHoldStrategy",
    "GridStrategy",
    "GridLevel",
    "build_strategy",
]
