"""Tests for the price table."""

from decimal import Decimal

import pytest

from simcore import PriceOracle, PriceNotFoundError, NotFoundError


class TestPriceOracle:
    """Tests for PriceOracle."""

    def test_set_and_get(self):
        """Stored price is returned as Decimal."""
        prices = PriceOracle()
        prices.set_price("BTC/USDT", 40000)

        assert prices.get_price("BTC/USDT") == Decimal("40000")
        assert isinstance(prices.get_price("BTC/USDT"), Decimal)

    def test_overwrite(self):
        """set_price replaces the previous value."""
        prices = PriceOracle({"BTC/USDT": "40000"})
        prices.set_price("BTC/USDT", "41000.5")

        assert prices.get_price("BTC/USDT") == Decimal("41000.5")

    def test_missing_price_raises(self):
        """Unknown symbol raises PriceNotFoundError."""
        prices = PriceOracle()

        with pytest.raises(PriceNotFoundError, match="ETH/USDT"):
            prices.get_price("ETH/USDT")

    def test_missing_price_is_lookup_error(self):
        """PriceNotFoundError can be caught generically."""
        prices = PriceOracle()

        with pytest.raises(LookupError):
            prices.get_price("ETH/USDT")
        with pytest.raises(NotFoundError):
            prices.get_price("ETH/USDT")

    def test_zero_price_is_valid(self):
        """A price of zero is a recorded price, not a missing one."""
        prices = PriceOracle()
        prices.set_price("DOGE/USDT", 0)

        assert prices.get_price("DOGE/USDT") == Decimal("0")
        assert prices.has_price("DOGE/USDT") is True

    @pytest.mark.parametrize("price", [float("nan"), float("inf"), "NaN"])
    def test_non_finite_price_rejected(self, price):
        prices = PriceOracle({"BTC/USDT": "40000"})

        with pytest.raises(ValueError, match="finite"):
            prices.set_price("BTC/USDT", price)
        assert prices.get_price("BTC/USDT") == Decimal("40000")

    def test_find_price(self):
        """find_price returns None instead of raising."""
        prices = PriceOracle({"BTC/USDT": "40000"})

        assert prices.find_price("BTC/USDT") == Decimal("40000")
        assert prices.find_price("ETH/USDT") is None

    def test_instances_are_independent(self):
        """Two simulations do not share prices."""
        a = PriceOracle()
        b = PriceOracle()
        a.set_price("BTC/USDT", 1)

        assert b.find_price("BTC/USDT") is None
        assert a.symbols == ["BTC/USDT"]
