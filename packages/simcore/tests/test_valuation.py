"""Tests for total asset valuation."""

from decimal import Decimal

from simcore import Exchange, Ledger, PriceOracle


BTC = "BTC/USDT"
ETH = "ETH/USDT"


class TestTotalAssetValue:
    """get_total_asset_value composition."""

    def test_fiat_only(self, exchange):
        assert exchange.get_total_asset_value() == Decimal("10000")

    def test_idempotent(self, exchange):
        """Repeated calls with no state change return the same value."""
        exchange.spot_buy(BTC, Decimal("0.05"))
        exchange.place_buy_order(BTC, Decimal("0.01"), Decimal("39000"))
        exchange.open_short(BTC, Decimal("0.02"), leverage=3)

        first = exchange.get_total_asset_value()
        fiat = exchange.get_fiat_balance()

        assert exchange.get_total_asset_value() == first
        assert exchange.get_fiat_balance() == fiat
        assert len(exchange.get_pending_orders()) == 1

    def test_all_components(self, exchange, prices):
        """Fiat + spot + frozen buy + frozen sell + short margin and PnL."""
        exchange.spot_buy(BTC, Decimal("0.1"))
        exchange.place_sell_order(BTC, Decimal("0.04"), Decimal("42000"))
        exchange.place_buy_order(BTC, Decimal("0.01"), Decimal("38000"))
        exchange.open_short(BTC, Decimal("0.05"), leverage=2)

        prices.set_price(BTC, Decimal("41000"))

        fiat = exchange.get_fiat_balance()
        expected = (
            fiat
            + Decimal("0.06") * Decimal("41000")   # free BTC
            + Decimal("0.04") * Decimal("41000")   # frozen in sell order
            + Decimal("380.76")                    # frozen buy total
            + Decimal("1000")                      # short margin
            + Decimal("-50")                       # short PnL
        )
        assert exchange.get_total_asset_value() == expected


class TestUnpricedSymbols:
    """Missing prices are skipped, never raised."""

    def test_unpriced_holding_skipped(self, exchange, ledger):
        ledger.set_balance(ETH, Decimal("3"))

        assert exchange.get_total_asset_value() == Decimal("10000")

    def test_unpriced_sell_order_skipped(self):
        prices = PriceOracle()
        ledger = Ledger(prices, Decimal("500"))
        ledger.set_balance(ETH, Decimal("2"))
        exchange = Exchange(ledger, prices)

        exchange.place_sell_order(ETH, Decimal("2"), Decimal("2500"))

        assert exchange.get_total_asset_value() == Decimal("500")

    def test_unpriced_buy_order_counts_frozen_total(self):
        """Buy orders need no price; the frozen fiat is known."""
        prices = PriceOracle()
        exchange = Exchange(Ledger(prices, Decimal("1000")), prices)

        exchange.place_buy_order(ETH, Decimal("0.1"), Decimal("2000"))

        assert exchange.get_total_asset_value() == Decimal("1000")

    def test_unpriced_short_counts_margin_only(self):
        prices = PriceOracle({ETH: "2000"})
        exchange = Exchange(Ledger(prices, Decimal("1000")), prices)
        exchange.open_short(ETH, Decimal("1"), leverage=4)

        # Oracles never forget a symbol; swap in an empty one
        exchange._prices = PriceOracle()

        # 1000 - 500 margin - 2 fee, plus margin
        assert exchange.get_total_asset_value() == Decimal("998")

    def test_one_missing_price_does_not_hide_others(self, exchange, ledger):
        exchange.spot_buy(BTC, Decimal("0.1"))
        ledger.set_balance(ETH, Decimal("1"))

        assert exchange.get_total_asset_value() == Decimal("9996")


class TestConservation:
    """Value moves only by fees and price changes."""

    def test_place_then_cancel_restores_everything(self, exchange):
        exchange.spot_buy(BTC, Decimal("0.1"))
        fiat = exchange.get_fiat_balance()
        btc = exchange.get_balance(BTC)
        value = exchange.get_total_asset_value()

        buy_id = exchange.place_buy_order(BTC, Decimal("0.05"), Decimal("39000"))
        sell_id = exchange.place_sell_order(BTC, Decimal("0.05"), Decimal("41000"))
        assert exchange.get_total_asset_value() == value

        exchange.cancel_order(buy_id)
        exchange.cancel_order(sell_id)

        assert exchange.get_fiat_balance() == fiat
        assert exchange.get_balance(BTC) == btc
        assert exchange.get_total_asset_value() == value

    def test_short_round_trip_loses_fees(self, exchange):
        before = exchange.get_total_asset_value()

        exchange.open_short(BTC, Decimal("0.1"), leverage=5)
        exchange.close_short(BTC)

        assert exchange.get_total_asset_value() == before - exchange.total_fees
        assert exchange.get_total_asset_value() == Decimal("9992")

    def test_limit_round_trip_loses_fees(self, exchange, move_price):
        exchange.place_buy_order(BTC, Decimal("0.1"), Decimal("40000"))
        move_price("40000")
        exchange.place_sell_order(BTC, Decimal("0.1"), Decimal("40000"))
        move_price("40000")

        # 8 on the buy, 8 on the sell
        assert exchange.total_fees == Decimal("16")
        assert exchange.get_total_asset_value() == Decimal("9984")
