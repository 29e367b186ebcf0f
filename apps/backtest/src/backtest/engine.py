"""Backtest engine - main orchestrator for running backtests.

Replays candles through a strategy against a fresh simulated exchange and
records the account's total asset value after every step.
"""

import asyncio
import inspect
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional, Union

from simcore import (
    Candle,
    Exchange,
    FeeRates,
    Ledger,
    LiquidationError,
    PriceOracle,
    SimulationError,
)

from backtest.config import BacktestConfig, WindDownMode
from backtest.data_provider import InMemoryDataProvider, JsonCandleProvider
from backtest.session import BacktestSession
from backtest.strategies import Strategy, build_strategy


logger = logging.getLogger(__name__)


class BacktestEngine:
    """Main orchestrator for running backtests.

    Per candle:
    1. Set the oracle price for the candle's symbol to its close
    2. Run the strategy (awaiting it if it returns an awaitable)
    3. Match resting orders and check liquidation (on_price_update)
    4. Record total asset value

    A liquidation is logged, counted in the session and the run continues.
    Any other error aborts the run.

    Example:
        config = load_config("backtest.yaml")
        engine = BacktestEngine.from_config(config)
        session = engine.run(JsonCandleProvider(config.data_file, config.symbol))

        print(session.get_summary())
    """

    def __init__(
        self,
        strategy: Strategy,
        initial_balance: Decimal = Decimal("10000"),
        fee_rates: Optional[FeeRates] = None,
        wind_down_mode: WindDownMode = WindDownMode.LEAVE_OPEN,
    ):
        """Initialize backtest engine.

        Args:
            strategy: Strategy driven once per candle.
            initial_balance: Starting fiat balance.
            fee_rates: Exchange fee schedule (defaults if None).
            wind_down_mode: What to do with orders and positions at end.
        """
        self._strategy = strategy
        self._initial_balance = initial_balance
        self._fee_rates = fee_rates
        self._wind_down_mode = wind_down_mode

        # Created per run
        self._prices: Optional[PriceOracle] = None
        self._ledger: Optional[Ledger] = None
        self._exchange: Optional[Exchange] = None
        self._session: Optional[BacktestSession] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._current_time: Optional[datetime] = None

    @classmethod
    def from_config(cls, config: BacktestConfig, strategy: Optional[Strategy] = None) -> "BacktestEngine":
        """Build an engine (and, unless given, its strategy) from config."""
        return cls(
            strategy=strategy or build_strategy(config),
            initial_balance=config.initial_balance,
            fee_rates=config.fees.to_fee_rates(),
            wind_down_mode=config.wind_down_mode,
        )

    def run(
        self,
        data_provider: Union[InMemoryDataProvider, JsonCandleProvider, list[Candle]],
    ) -> BacktestSession:
        """Run backtest over the provider's candles.

        Args:
            data_provider: Candle source, or a plain list of candles.

        Returns:
            BacktestSession with results.
        """
        if isinstance(data_provider, list):
            data_provider = InMemoryDataProvider(data_provider)

        self._prices = PriceOracle()
        self._ledger = Ledger(self._prices, self._initial_balance)
        self._exchange = Exchange(
            self._ledger,
            self._prices,
            self._fee_rates,
            clock=self._clock,
        )
        self._session = BacktestSession(initial_balance=self._initial_balance)
        self._current_time = None

        range_info = data_provider.get_data_range_info()
        logger.info(
            f"Backtest data range: {range_info.start_ts} to {range_info.end_ts} "
            f"({range_info.total_records} candles)"
        )

        self._loop = asyncio.new_event_loop()
        try:
            candle_count = 0
            for candle in data_provider:
                self._process_candle(candle)
                candle_count += 1

                if candle_count % 10000 == 0:
                    logger.info(f"Processed {candle_count} candles...")
        finally:
            self._loop.close()
            self._loop = None

        logger.info(f"Backtest complete: {candle_count} candles processed")

        self._wind_down()

        self._session.finalize(
            total_trades=self._exchange.total_trades,
            total_fees=self._exchange.total_fees,
            trades=self._exchange.get_trades(),
        )
        return self._session

    def _clock(self) -> datetime:
        return self._current_time

    def _process_candle(self, candle: Candle) -> None:
        self._current_time = candle.open_time
        self._prices.set_price(candle.symbol, candle.close)

        self._run_strategy(candle)

        try:
            fills = self._exchange.on_price_update(candle.symbol, candle.close)
        except LiquidationError as e:
            logger.warning(f"{candle.open_time}: {e}")
            self._session.record_liquidation(candle.open_time, e)
        else:
            for trade in fills:
                logger.debug(f"{candle.open_time}: filled {trade.order_id} {trade.side} {trade.amount} @ {trade.price}")

        equity = self._exchange.get_total_asset_value()
        self._session.update_equity(candle.open_time, equity)
        logger.debug(f"{candle.open_time}: price {candle.close}, total asset value {equity}")

    def _run_strategy(self, candle: Candle) -> None:
        result = self._strategy.execute(self._exchange, candle)
        if inspect.isawaitable(result):
            self._loop.run_until_complete(result)

    def _wind_down(self) -> None:
        """Handle end-of-backtest wind down.

        Depending on wind_down_mode:
        - WindDownMode.LEAVE_OPEN: Leave orders and positions, valued as they stand
        - WindDownMode.CLOSE_ALL: Cancel orders, close shorts, sell spot holdings
        """
        if self._wind_down_mode != WindDownMode.CLOSE_ALL or self._current_time is None:
            return

        logger.info("Wind down: closing all orders and positions")
        exchange = self._exchange

        for order in exchange.get_pending_orders():
            exchange.cancel_order(order.order_id)

        for position in exchange.get_all_short_positions():
            try:
                pnl = exchange.close_short(position.symbol)
            except SimulationError as e:
                logger.warning(f"Wind down: could not close {position.symbol} short: {e}")
                continue
            logger.info(f"Wind down: closed {position.symbol} short, realized {pnl}")

        for symbol, amount in self._ledger.get_all_balances().items():
            if amount <= 0 or not self._prices.has_price(symbol):
                continue
            exchange.spot_sell(symbol, amount)
            logger.info(f"Wind down: sold {amount} {symbol}")

        self._session.update_equity(self._current_time, exchange.get_total_asset_value())

    @property
    def session(self) -> Optional[BacktestSession]:
        """Session of the last run."""
        return self._session

    @property
    def exchange(self) -> Optional[Exchange]:
        """Exchange of the last run."""
        return self._exchange

    @property
    def strategy(self) -> Strategy:
        return self._strategy
