"""Test fixtures for backtest package."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from simcore import Candle

from backtest.config import BacktestConfig, GridStrategyConfig, WindDownMode
from backtest.session import BacktestSession


@pytest.fixture
def sample_timestamp():
    """Sample timestamp for tests."""
    return datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_candles(sample_timestamp):
    """Build hourly BTC/USDT candles from a list of close prices."""

    def _make(closes, symbol="BTC/USDT", start=None, interval=timedelta(hours=1)):
        start = start or sample_timestamp
        candles = []
        for i, close in enumerate(closes):
            close = Decimal(str(close))
            candles.append(Candle(
                symbol=symbol,
                open_time=start + i * interval,
                open=close,
                high=close,
                low=close,
                close=close,
                volume=Decimal("1"),
            ))
        return candles

    return _make


@pytest.fixture
def grid_config():
    """Grid from 38000 to 42000 in 4 steps of 1000, 0.01 per level."""
    return GridStrategyConfig(
        lower_limit=Decimal("38000"),
        upper_limit=Decimal("42000"),
        grid_count=4,
        buy_amount=Decimal("0.01"),
    )


@pytest.fixture
def sample_config(grid_config):
    """Sample backtest configuration."""
    return BacktestConfig(
        symbol="BTC/USDT",
        initial_balance=Decimal("10000"),
        strategy="grid",
        grid=grid_config,
        wind_down_mode=WindDownMode.LEAVE_OPEN,
    )


@pytest.fixture
def session():
    """Backtest session instance."""
    return BacktestSession(
        session_id="test_session",
        initial_balance=Decimal("10000"),
    )
