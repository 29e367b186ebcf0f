"""
Backtest package for strategy simulation.

Replays candles through a strategy against simcore's simulated exchange.
"""

from backtest.config import BacktestConfig, GridStrategyConfig, FeeRatesConfig, WindDownMode, load_config
from backtest.data_provider import DataRangeInfo, InMemoryDataProvider, JsonCandleProvider
from backtest.session import BacktestSession, BacktestMetrics, LiquidationEvent
from backtest.strategies import BuyAndHoldStrategy, GridStrategy, Strategy
from backtest.engine import BacktestEngine
from backtest.optimizer import GridParameterSearch, GridParameters
from backtest.reporter import BacktestReporter

__all__ = [
    # Config
    "BacktestConfig",
    "GridStrategyConfig",
    "FeeRatesConfig",
    "WindDownMode",
    "load_config",
    # Data
    "DataRangeInfo",
    "InMemoryDataProvider",
    "JsonCandleProvider",
    # Session
    "BacktestSession",
    "BacktestMetrics",
    "LiquidationEvent",
    # Strategies
    "Strategy",
    "BuyAndHoldStrategy",
    "GridStrategy",
    # Core
    "BacktestEngine",
    "GridParameterSearch",
    "GridParameters",
    "BacktestReporter",
]
