"""Shared fixtures for integration tests."""

import sys
from pathlib import Path

import pytest
from decimal import Decimal

# Ensure tests/integration is on sys.path so ``import integration_helpers``
# works regardless of how pytest is invoked.
_INTEGRATION_DIR = str(Path(__file__).resolve().parent)
if _INTEGRATION_DIR not in sys.path:
    sys.path.insert(0, _INTEGRATION_DIR)

from backtest.config import GridStrategyConfig

from integration_helpers import generate_klines, write_klines


@pytest.fixture
def grid_config():
    """Grid spanning 38000-42000 in 10 steps, inside the default oscillation."""
    return GridStrategyConfig(
        lower_limit=Decimal("38000"),
        upper_limit=Decimal("42000"),
        grid_count=10,
        buy_amount=Decimal("0.01"),
    )


@pytest.fixture
def kline_file(tmp_path):
    """200 hourly klines oscillating 40000 +/- 1500."""
    return write_klines(tmp_path / "btc_1h.json", generate_klines())
