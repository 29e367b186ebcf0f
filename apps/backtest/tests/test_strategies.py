"""Tests for built-in strategies."""

from decimal import Decimal

import pytest

from simcore import Exchange, Ledger, PriceOracle, SideType

from backtest.config import BacktestConfig, GridStrategyConfig
from backtest.strategies import (
    BuyAndHoldStrategy,
    GridStrategy,
    Strategy,
    build_strategy,
)


BTC = "BTC/USDT"


@pytest.fixture
def prices():
    return PriceOracle()


@pytest.fixture
def exchange(prices):
    return Exchange(Ledger(prices, Decimal("10000")), prices)


@pytest.fixture
def step(prices, exchange):
    """Run one driver step by hand: price, strategy, fills."""

    def _step(strategy, candle):
        prices.set_price(candle.symbol, candle.close)
        strategy.execute(exchange, candle)
        return exchange.on_price_update(candle.symbol, candle.close)

    return _step


class TestBuildStrategy:
    """Tests for build_strategy."""

    def test_default_is_buy_and_hold(self):
        strategy = build_strategy(BacktestConfig(buy_and_hold={"amount": "0.5"}))

        assert isinstance(strategy, BuyAndHoldStrategy)
        assert strategy.amount == Decimal("0.5")

    def test_grid(self, sample_config, grid_config):
        strategy = build_strategy(sample_config)

        assert isinstance(strategy, GridStrategy)
        assert strategy.config == grid_config

    def test_protocol(self, grid_config):
        assert isinstance(BuyAndHoldStrategy(), Strategy)
        assert isinstance(GridStrategy(grid_config), Strategy)


class TestBuyAndHoldStrategy:
    """Tests for BuyAndHoldStrategy."""

    def test_buys_once(self, exchange, step, make_candles):
        strategy = BuyAndHoldStrategy(amount=Decimal("0.1"))

        for candle in make_candles([40000, 41000, 42000]):
            step(strategy, candle)

        assert exchange.get_balance(BTC) == Decimal("0.1")
        assert exchange.total_trades == 1
        assert exchange.get_fiat_balance() == Decimal("5996")

    def test_retries_after_failure(self, exchange, step, make_candles, caplog):
        """1 BTC is unaffordable at 40000, affordable at 5000."""
        strategy = BuyAndHoldStrategy()

        candles = make_candles([40000, 5000, 4000])
        step(strategy, candles[0])

        assert strategy.bought is False
        assert "retrying next candle" in caplog.text

        step(strategy, candles[1])
        step(strategy, candles[2])

        assert strategy.bought is True
        assert exchange.get_balance(BTC) == Decimal("1")
        # 10000 - 5000 - 5
        assert exchange.get_fiat_balance() == Decimal("4995")


class TestGridLevels:
    """Grid geometry."""

    def test_levels_inclusive(self, grid_config):
        strategy = GridStrategy(grid_config)

        assert strategy.build_levels() == [
            Decimal("38000"), Decimal("39000"), Decimal("40000"), Decimal("41000"), Decimal("42000"),
        ]

    def test_fractional_spacing(self):
        config = GridStrategyConfig(lower_limit="100", upper_limit="101", grid_count=3, buy_amount="1")

        levels = GridStrategy(config).build_levels()

        assert len(levels) == 4
        assert levels[0] == Decimal("100")
        assert levels[-1] == pytest.approx(Decimal("101"), abs=Decimal("1e-20"))


class TestGridCreation:
    """Building the grid on the first candle."""

    def test_initial_inventory_and_orders(self, exchange, step, make_candles, grid_config):
        """Built at 40000: buy 0.02 for the two sell levels, skip the 40000 level."""
        strategy = GridStrategy(grid_config)

        fills = step(strategy, make_candles([40000])[0])

        assert fills == []
        assert strategy.initialized is True
        orders = {o.price: o.side for o in exchange.get_pending_orders()}
        assert orders == {
            Decimal("38000"): SideType.BUY,
            Decimal("39000"): SideType.BUY,
            Decimal("41000"): SideType.SELL,
            Decimal("42000"): SideType.SELL,
        }
        # All bought inventory is frozen in the sell orders
        assert exchange.get_balance(BTC) == Decimal("0")
        # 10000 - 800.8 - 380.76 - 390.78
        assert exchange.get_fiat_balance() == Decimal("8427.66")
        assert strategy.levels[2].order_id is None

    def test_price_below_grid_places_only_sells(self, exchange, step, make_candles, grid_config):
        strategy = GridStrategy(grid_config)

        step(strategy, make_candles([37000])[0])

        sides = {o.side for o in exchange.get_pending_orders()}
        assert sides == {SideType.SELL}
        assert len(exchange.get_pending_orders()) == 5

    def test_failed_inventory_buy_retries(self, prices, step, make_candles, caplog):
        """Grid stays unbuilt while the inventory is unaffordable."""
        config = GridStrategyConfig(
            lower_limit="38000", upper_limit="42000", grid_count=4, buy_amount="1",
        )
        strategy = GridStrategy(config)

        step(strategy, make_candles([40000])[0])

        assert strategy.initialized is False
        assert strategy.levels == []
        assert "inventory buy" in caplog.text

    def test_failed_order_placement_logged(self, exchange, step, make_candles, caplog):
        """Buy levels that cannot be funded are left empty."""
        config = GridStrategyConfig(
            lower_limit="20000", upper_limit="42000", grid_count=11, buy_amount="0.1",
        )
        strategy = GridStrategy(config)

        step(strategy, make_candles([40000])[0])

        assert strategy.initialized is True
        assert "Failed to place buy order" in caplog.text
        assert exchange.get_fiat_balance() >= 0


class TestGridCounterOrders:
    """Replacing filled levels with counter-orders."""

    def test_filled_buy_places_sell_above(self, exchange, step, make_candles, grid_config):
        strategy = GridStrategy(grid_config)
        candles = make_candles([40000, 39000, 39000])

        step(strategy, candles[0])
        fills = step(strategy, candles[1])
        assert [f.price for f in fills] == [Decimal("39000")]

        step(strategy, candles[2])

        level = strategy.levels[2]
        assert level.side == SideType.SELL
        order = exchange.get_order(level.order_id)
        assert order.price == Decimal("40000")
        assert order.amount == Decimal("0.01")
        assert strategy.levels[1].order_id is None

    def test_filled_sell_places_buy_below(self, exchange, step, make_candles, grid_config):
        strategy = GridStrategy(grid_config)
        candles = make_candles([40000, 41000, 41000])

        step(strategy, candles[0])
        step(strategy, candles[1])
        step(strategy, candles[2])

        level = strategy.levels[2]
        assert level.side == SideType.BUY
        assert exchange.get_order(level.order_id).price == Decimal("40000")

    def test_round_trip_harvests_spread(self, exchange, step, make_candles, grid_config):
        """Down to 39000 and back to 40000: one buy-sell cycle at 1000 apart."""
        strategy = GridStrategy(grid_config)
        candles = make_candles([40000, 39000, 39500, 40000, 40000])

        for candle in candles:
            step(strategy, candle)

        # The 39000 level has its buy back
        assert strategy.levels[1].side == SideType.BUY
        assert exchange.get_order(strategy.levels[1].order_id) is not None
        # Sell at 40000 filled: +400 - 0.8 fee
        trades = [t for t in exchange.get_trades() if t.order_id is not None]
        assert [(t.side, t.price) for t in trades] == [
            (SideType.BUY, Decimal("39000")),
            (SideType.SELL, Decimal("40000")),
        ]

    def test_edge_level_has_no_counter_order(self, exchange, step, make_candles, grid_config):
        """A filled sell at the top level puts a buy at 41000 only."""
        strategy = GridStrategy(grid_config)

        for candle in make_candles([40000, 42000, 42000]):
            step(strategy, candle)

        assert strategy.levels[4].order_id is None
        assert strategy.levels[3].side == SideType.BUY
        assert strategy.levels[2].side == SideType.BUY

    def test_occupied_neighbour_skipped(self, exchange, step, make_candles, grid_config):
        strategy = GridStrategy(grid_config)
        step(strategy, make_candles([40000])[0])

        # Put an order on level 2 by hand, then fill the 39000 buy
        exchange.spot_buy(BTC, Decimal("0.01"))
        manual = exchange.place_sell_order(BTC, Decimal("0.01"), Decimal("40000"))
        strategy.levels[2].order_id = manual
        strategy.levels[2].side = SideType.SELL

        candles = make_candles([39000, 39000])
        step(strategy, candles[0])
        step(strategy, candles[1])

        assert strategy.levels[2].order_id == manual
        assert exchange.get_balance(BTC) == Decimal("0.01")


class TestGridTakeProfitStopLoss:
    """Closing the grid at thresholds."""

    @pytest.fixture
    def bounded_config(self):
        return GridStrategyConfig(
            lower_limit="38000",
            upper_limit="42000",
            grid_count=4,
            buy_amount="0.01",
            take_profit_price="41500",
            stop_loss_price="37500",
        )

    def test_take_profit_closes_everything(self, exchange, step, bounded_config, make_candles):
        """Resting sells are cancelled and their inventory sold at market."""
        strategy = GridStrategy(bounded_config)

        for candle in make_candles([40000, 41500]):
            step(strategy, candle)

        assert exchange.get_pending_orders() == []
        assert exchange.get_balance(BTC) == Decimal("0")
        last = exchange.get_trades()[-1]
        assert (last.side, last.price, last.amount) == (SideType.SELL, Decimal("41500"), Decimal("0.02"))
        assert strategy.initialized is False
        assert strategy.levels == []

    def test_stop_loss_sells_inventory(self, exchange, step, bounded_config, make_candles):
        strategy = GridStrategy(bounded_config)

        for candle in make_candles([40000, 38000, 37500]):
            step(strategy, candle)

        assert exchange.get_pending_orders() == []
        assert exchange.get_balance(BTC) == Decimal("0")
        assert exchange.get_trades()[-1].price == Decimal("37500")

    def test_no_rebuild_beyond_threshold(self, exchange, step, bounded_config, make_candles):
        strategy = GridStrategy(bounded_config)

        for candle in make_candles([40000, 41500, 41600]):
            step(strategy, candle)

        assert strategy.initialized is False
        assert exchange.get_pending_orders() == []

    def test_rebuild_inside_band(self, exchange, step, bounded_config, make_candles):
        strategy = GridStrategy(bounded_config)

        for candle in make_candles([40000, 41500, 40500]):
            step(strategy, candle)

        # Rebuilt at 40500: no level is close enough to skip
        assert strategy.initialized is True
        assert len(exchange.get_pending_orders()) == 5

    def test_no_grid_before_start_beyond_threshold(self, exchange, step, bounded_config, make_candles):
        strategy = GridStrategy(bounded_config)

        step(strategy, make_candles([37000])[0])

        assert strategy.initialized is False
        assert exchange.total_trades == 0
