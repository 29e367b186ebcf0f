"""Test fixtures for simcore."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from simcore import Exchange, Ledger, PriceOracle


BTC = "BTC/USDT"
ETH = "ETH/USDT"
INITIAL_BALANCE = Decimal("10000")


@pytest.fixture
def sample_timestamp():
    """Fixed clock value for order and position timestamps."""
    return datetime(2025, 2, 18, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def prices():
    """Price table with BTC at 40000."""
    return PriceOracle({BTC: Decimal("40000")})


@pytest.fixture
def ledger(prices):
    """Ledger with 10000 free fiat."""
    return Ledger(prices, INITIAL_BALANCE)


@pytest.fixture
def exchange(ledger, prices, sample_timestamp):
    """Exchange with default fee rates and a fixed clock."""
    return Exchange(ledger, prices, clock=lambda: sample_timestamp)


@pytest.fixture
def move_price(prices, exchange):
    """Set BTC price and run fills/liquidation, the way the driver does."""

    def _move(price, symbol=BTC):
        prices.set_price(symbol, Decimal(price))
        return exchange.on_price_update(symbol, Decimal(price))

    return _move
