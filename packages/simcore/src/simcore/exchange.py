"""Simulated exchange: spot trades, resting limit orders, leveraged shorts.

The exchange is the only component that mutates the ledger during a run.
It owns pending orders and short positions, applies the fee schedule,
journals every settled trade and computes the account's total asset value.

Fee convention (fee = notional * rate):
- buys pay notional + fee
- sells receive notional - fee
- opening a short posts margin + fee
- closing a short returns margin + realized PnL - fee
"""

import logging
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Callable, Mapping, Optional

from simcore.errors import (
    InsufficientBalanceError,
    InsufficientFundsError,
    InsufficientMarginError,
    InvalidAmountError,
    InvalidInputError,
    InvalidLeverageError,
    LiquidationError,
    OrderNotFoundError,
    PositionNotFoundError,
)
from simcore.fees import FeeRates
from simcore.ledger import Ledger
from simcore.models import PendingOrder, ShortPosition, SideType, Trade, TradeKind
from simcore.price import PriceOracle
from simcore.utils import ONE, ZERO, Number, to_decimal, utc_now


logger = logging.getLogger(__name__)

MAINTENANCE_MARGIN_RATE = Decimal("0.05")


class Exchange:
    """Single-account matching and accounting engine.

    Example:
        prices = PriceOracle()
        exchange = Exchange(Ledger(prices, Decimal("100000")), prices)

        prices.set_price("BTC/USDT", Decimal("40000"))
        exchange.spot_buy("BTC/USDT", Decimal("0.1"))   # pays 4000 + 4 fee
        order_id = exchange.place_sell_order("BTC/USDT", Decimal("0.1"), Decimal("42000"))

        prices.set_price("BTC/USDT", Decimal("42000"))
        exchange.on_price_update("BTC/USDT", Decimal("42000"))  # sell fills
    """

    maintenance_margin_rate = MAINTENANCE_MARGIN_RATE

    def __init__(
        self,
        ledger: Ledger,
        prices: PriceOracle,
        fee_rates: Optional[Mapping[str, Number] | FeeRates] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize exchange.

        Args:
            ledger: Account ledger, owned by this exchange from now on.
            prices: Price table the ledger was built with.
            fee_rates: FeeRates, or a partial mapping of rate name to rate
                overriding the defaults.
            clock: Source of order and position timestamps. Defaults to
                wall-clock UTC; the backtest driver supplies candle time.
        """
        self._ledger = ledger
        self._prices = prices
        if isinstance(fee_rates, FeeRates):
            self._fee_rates = fee_rates
        else:
            self._fee_rates = FeeRates().updated(fee_rates or {})
        self._clock = clock or utc_now

        self._pending_orders: dict[str, PendingOrder] = {}
        self._short_positions: dict[str, ShortPosition] = {}
        self._trades: list[Trade] = []

        self._order_counter = 0
        self._trade_counter = 0

    # Id generation and journal

    def _next_order_id(self) -> str:
        self._order_counter += 1
        return f"order_{self._order_counter}"

    def _record_trade(
        self,
        kind: TradeKind,
        symbol: str,
        side: SideType,
        price: Decimal,
        amount: Decimal,
        fee: Decimal,
        realized_pnl: Decimal = ZERO,
        order_id: Optional[str] = None,
        shortfall: Decimal = ZERO,
    ) -> Trade:
        self._trade_counter += 1
        trade = Trade(
            trade_id=f"trade_{self._trade_counter}",
            kind=kind,
            symbol=symbol,
            side=side,
            price=price,
            amount=amount,
            fee=fee,
            timestamp=self._clock(),
            realized_pnl=realized_pnl,
            order_id=order_id,
            shortfall=shortfall,
        )
        self._trades.append(trade)
        return trade

    # Read-only account access for strategies

    def get_balance(self, symbol: str) -> Decimal:
        """Free instrument balance (excludes quantity frozen by sell orders)."""
        return self._ledger.get_balance(symbol)

    def get_fiat_balance(self) -> Decimal:
        """Free fiat balance (excludes frozen buy funds and posted margin)."""
        return self._ledger.get_fiat_balance()

    # Spot

    def spot_buy(self, symbol: str, amount: Number) -> Trade:
        """Buy ``amount`` at the current price.

        Raises:
            InvalidAmountError: amount <= 0.
            PriceNotFoundError: No price for the symbol.
            InsufficientFundsError: Free fiat below cost + fee.
        """
        amount = to_decimal(amount)
        if amount <= 0:
            raise InvalidAmountError(f"Buy amount must be positive: {amount}")

        price = self._prices.get_price(symbol)
        cost = price * amount
        fee = cost * self._fee_rates.spot_buy
        total = cost + fee

        fiat = self._ledger.get_fiat_balance()
        if fiat < total:
            raise InsufficientFundsError(
                f"Insufficient fiat balance: available {fiat}, "
                f"required {total} (cost {cost}, fee {fee})"
            )

        self._ledger.subtract_fiat_balance(total)
        self._ledger.add_balance(symbol, amount)
        return self._record_trade(TradeKind.SPOT, symbol, SideType.BUY, price, amount, fee)

    def spot_sell(self, symbol: str, amount: Number) -> Trade:
        """Sell ``amount`` at the current price.

        Raises:
            InvalidAmountError: amount <= 0.
            InsufficientBalanceError: Free balance below amount.
            PriceNotFoundError: No price for the symbol.
        """
        amount = to_decimal(amount)
        if amount <= 0:
            raise InvalidAmountError(f"Sell amount must be positive: {amount}")

        available = self._ledger.get_balance(symbol)
        if available < amount:
            raise InsufficientBalanceError(
                f"Insufficient {symbol} balance: available {available}, required {amount}"
            )

        price = self._prices.get_price(symbol)
        revenue = price * amount
        fee = revenue * self._fee_rates.spot_sell

        self._ledger.subtract_balance(symbol, amount)
        self._ledger.add_fiat_balance(revenue - fee)
        return self._record_trade(TradeKind.SPOT, symbol, SideType.SELL, price, amount, fee)

    # Resting limit orders

    def place_buy_order(
        self,
        symbol: str,
        amount: Number,
        price: Number,
        timestamp: Optional[datetime] = None,
    ) -> str:
        """Rest a buy order at ``price``, freezing notional + limit_buy fee.

        Returns:
            New order id.

        Raises:
            InvalidInputError: price or amount <= 0.
            InsufficientFundsError: Free fiat below notional + fee.
        """
        amount, price = self._validate_order(amount, price)

        cost = price * amount
        fee = cost * self._fee_rates.limit_buy
        total = cost + fee

        fiat = self._ledger.get_fiat_balance()
        if fiat < total:
            raise InsufficientFundsError(
                f"Insufficient fiat balance: available {fiat}, "
                f"required {total} (cost {cost}, fee {fee})"
            )
        self._ledger.subtract_fiat_balance(total)

        order = PendingOrder(
            order_id=self._next_order_id(),
            symbol=symbol,
            side=SideType.BUY,
            price=price,
            amount=amount,
            created_ts=timestamp or self._clock(),
            frozen_total=total,
        )
        self._pending_orders[order.order_id] = order
        logger.debug("Placed %s: buy %s %s @ %s, frozen %s", order.order_id, amount, symbol, price, total)
        return order.order_id

    def place_sell_order(
        self,
        symbol: str,
        amount: Number,
        price: Number,
        timestamp: Optional[datetime] = None,
    ) -> str:
        """Rest a sell order at ``price``, freezing ``amount`` of the instrument.

        The limit_sell fee is charged at fill, not at placement.

        Returns:
            New order id.

        Raises:
            InvalidInputError: price or amount <= 0.
            InsufficientBalanceError: Free balance below amount.
        """
        amount, price = self._validate_order(amount, price)

        self._ledger.subtract_balance(symbol, amount)

        order = PendingOrder(
            order_id=self._next_order_id(),
            symbol=symbol,
            side=SideType.SELL,
            price=price,
            amount=amount,
            created_ts=timestamp or self._clock(),
        )
        self._pending_orders[order.order_id] = order
        logger.debug("Placed %s: sell %s %s @ %s", order.order_id, amount, symbol, price)
        return order.order_id

    @staticmethod
    def _validate_order(amount: Number, price: Number) -> tuple[Decimal, Decimal]:
        amount = to_decimal(amount)
        price = to_decimal(price)
        if amount <= 0 or price <= 0:
            raise InvalidInputError(f"Price and amount must be positive: price={price}, amount={amount}")
        return amount, price

    def cancel_order(self, order_id: str) -> PendingOrder:
        """Cancel a pending order and release exactly what it froze.

        Raises:
            OrderNotFoundError: No pending order with this id.
        """
        order = self._pending_orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order not found: {order_id}")

        if order.is_buy:
            self._ledger.add_fiat_balance(order.frozen_total)
        else:
            self._ledger.add_balance(order.symbol, order.amount)

        del self._pending_orders[order_id]
        logger.debug("Cancelled %s", order_id)
        return order

    def get_pending_orders(self) -> list[PendingOrder]:
        """Snapshot of live orders in placement order."""
        return list(self._pending_orders.values())

    def get_order(self, order_id: str) -> Optional[PendingOrder]:
        return self._pending_orders.get(order_id)

    def _settle_order(self, order: PendingOrder) -> Trade:
        """Fill a pending order at its limit price and remove it."""
        if order.is_buy:
            # Funds were frozen at placement; only the instrument moves now.
            self._ledger.add_balance(order.symbol, order.amount)
            fee = order.frozen_total - order.price * order.amount
        else:
            revenue = order.price * order.amount
            fee = revenue * self._fee_rates.limit_sell
            self._ledger.add_fiat_balance(revenue - fee)

        del self._pending_orders[order.order_id]
        logger.debug("Filled %s: %s %s %s @ %s", order.order_id, order.side, order.amount, order.symbol, order.price)
        return self._record_trade(
            TradeKind.LIMIT,
            order.symbol,
            order.side,
            order.price,
            order.amount,
            fee,
            order_id=order.order_id,
        )

    # Shorts

    def open_short(
        self,
        symbol: str,
        amount: Number,
        leverage: Number = 1,
        timestamp: Optional[datetime] = None,
    ) -> ShortPosition:
        """Open or add to the short position for ``symbol``.

        Margin is notional / leverage; the fee is notional * short_open.
        Adding to an existing position merges into it: quantities add, the
        entry price becomes the notional-weighted average and margin adds.
        The merged position keeps its original leverage and creation time.

        Returns:
            The resulting position.

        Raises:
            InvalidAmountError: amount <= 0.
            InvalidLeverageError: leverage < 1.
            PriceNotFoundError: No price for the symbol.
            InsufficientMarginError: Free fiat below margin + fee.
        """
        amount = to_decimal(amount)
        leverage = to_decimal(leverage)
        if amount <= 0:
            raise InvalidAmountError(f"Short amount must be positive: {amount}")
        if leverage < ONE:
            raise InvalidLeverageError(f"Leverage must be at least 1: {leverage}")

        price = self._prices.get_price(symbol)
        notional = price * amount
        margin = notional / leverage
        fee = notional * self._fee_rates.short_open
        total = margin + fee

        fiat = self._ledger.get_fiat_balance()
        if fiat < total:
            raise InsufficientMarginError(
                f"Insufficient margin: available {fiat}, "
                f"required {total} (margin {margin}, fee {fee})"
            )
        self._ledger.subtract_fiat_balance(total)

        existing = self._short_positions.get(symbol)
        if existing is not None:
            if leverage != existing.leverage:
                logger.warning(
                    "Adding to %s short at leverage %s; position keeps leverage %s",
                    symbol, leverage, existing.leverage,
                )
            new_amount = existing.amount + amount
            position = replace(
                existing,
                amount=new_amount,
                entry_price=(existing.entry_price * existing.amount + notional) / new_amount,
                margin=existing.margin + margin,
            )
        else:
            position = ShortPosition(
                symbol=symbol,
                amount=amount,
                entry_price=price,
                leverage=leverage,
                margin=margin,
                created_ts=timestamp or self._clock(),
            )
        self._short_positions[symbol] = position

        self._record_trade(TradeKind.SHORT_OPEN, symbol, SideType.SELL, price, amount, fee)
        return position

    def close_short(self, symbol: str) -> Decimal:
        """Close the short for ``symbol`` at the current price.

        Returns:
            Realized PnL (before the closing fee).

        Raises:
            PositionNotFoundError: No short for the symbol.
            PriceNotFoundError: No price for the symbol.
            InsufficientFundsError: The loss exceeds margin plus free fiat.
                The position is left open.
        """
        return self._settle_short(symbol, TradeKind.SHORT_CLOSE).realized_pnl

    def _settle_short(self, symbol: str, kind: TradeKind) -> Trade:
        position = self._short_positions.get(symbol)
        if position is None:
            raise PositionNotFoundError(f"Short position does not exist: {symbol}")

        price = self._prices.get_price(symbol)
        fee = price * position.amount * self._fee_rates.short_close
        pnl = position.unrealized_pnl(price)

        net = position.margin + pnl - fee
        shortfall = ZERO
        if net >= 0:
            self._ledger.add_fiat_balance(net)
        elif kind == TradeKind.LIQUIDATION:
            # A forced close takes what free fiat covers and writes off the rest.
            owed = -net
            shortfall = max(owed - self._ledger.get_fiat_balance(), ZERO)
            self._ledger.subtract_fiat_balance(owed - shortfall)
            if shortfall > 0:
                logger.warning("Liquidation of %s left %s unpaid", symbol, shortfall)
        else:
            self._ledger.subtract_fiat_balance(-net)

        del self._short_positions[symbol]
        return self._record_trade(
            kind, symbol, SideType.BUY, price, position.amount, fee,
            realized_pnl=pnl, shortfall=shortfall,
        )

    def get_short_position(self, symbol: str) -> Optional[ShortPosition]:
        return self._short_positions.get(symbol)

    def get_all_short_positions(self) -> list[ShortPosition]:
        return list(self._short_positions.values())

    def get_unrealized_pnl(self, symbol: str) -> Decimal:
        """Unrealized PnL of the short on ``symbol``; positive when price fell."""
        position = self._short_positions.get(symbol)
        if position is None:
            return ZERO
        return position.unrealized_pnl(self._prices.get_price(symbol))

    def get_total_unrealized_pnl(self) -> Decimal:
        return sum((self.get_unrealized_pnl(s) for s in self._short_positions), ZERO)

    def check_liquidation(self, symbol: str) -> None:
        """Force-close the short if equity / position value < maintenance rate.

        Unlike ``close_short`` this always removes the position. A loss
        beyond margin plus free fiat empties the fiat balance and the unpaid
        part is reported as the trade's ``shortfall``.

        Raises:
            LiquidationError: The position was closed. Ledger effects are final.
        """
        position = self._short_positions.get(symbol)
        if position is None:
            return

        price = self._prices.get_price(symbol)
        equity = position.margin + position.unrealized_pnl(price)
        position_value = price * position.amount

        # A zero price leaves nothing to liquidate against.
        if position_value <= 0:
            return

        if equity / position_value < self.maintenance_margin_rate:
            trade = self._settle_short(symbol, TradeKind.LIQUIDATION)
            raise LiquidationError(
                symbol=symbol,
                price=price,
                equity=equity,
                position_value=position_value,
                maintenance_margin_rate=self.maintenance_margin_rate,
                realized_pnl=trade.realized_pnl,
                fee=trade.fee,
                shortfall=trade.shortfall,
            )

    # Price updates

    def on_price_update(self, symbol: str, new_price: Number) -> list[Trade]:
        """Run liquidation and resting-order matching for a new price.

        Buy orders fill when new_price <= limit, sell orders when
        new_price >= limit, in placement order. Orders are matched even when
        the short on this symbol was just liquidated; the liquidation is
        re-raised afterwards.

        Returns:
            Trades for the orders filled by this update.

        Raises:
            LiquidationError: The short on ``symbol`` was force-closed.
        """
        new_price = to_decimal(new_price)

        liquidation: Optional[LiquidationError] = None
        try:
            self.check_liquidation(symbol)
        except LiquidationError as e:
            liquidation = e

        to_fill = [
            order for order in self._pending_orders.values()
            if order.symbol == symbol and self._crosses(order, new_price)
        ]
        fills = [self._settle_order(order) for order in to_fill]

        if liquidation is not None:
            raise liquidation
        return fills

    @staticmethod
    def _crosses(order: PendingOrder, price: Decimal) -> bool:
        if order.is_buy:
            return price <= order.price
        return price >= order.price

    # Fees

    def get_fee_rates(self) -> FeeRates:
        return self._fee_rates

    def set_fee_rates(self, fee_rates: Optional[Mapping[str, Number]] = None, **rates: Number) -> None:
        """Update some fee rates; the rest stay unchanged.

        Raises:
            InvalidRateError: Any rate negative or unknown. Nothing is applied.
        """
        overrides = dict(fee_rates or {})
        overrides.update(rates)
        self._fee_rates = self._fee_rates.updated(overrides)

    # Reporting

    def get_trades(self) -> list[Trade]:
        return list(self._trades)

    @property
    def total_trades(self) -> int:
        return len(self._trades)

    @property
    def total_fees(self) -> Decimal:
        return sum((t.fee for t in self._trades), ZERO)

    def get_total_asset_value(self) -> Decimal:
        """Net worth in fiat.

        Free fiat + marked instrument balances + pending orders (buys at
        their frozen total, sells at current price) + shorts (margin +
        unrealized PnL). Unpriced symbols contribute zero instead of raising;
        an unpriced short contributes its margin only. Does not mutate state.
        """
        total = self._ledger.get_total_balance()

        for order in self._pending_orders.values():
            if order.is_buy:
                total += order.frozen_total
                continue
            price = self._prices.find_price(order.symbol)
            if price is None:
                logger.debug("No price for %s, sell order %s excluded from valuation", order.symbol, order.order_id)
                continue
            total += order.amount * price

        for position in self._short_positions.values():
            total += position.margin
            price = self._prices.find_price(position.symbol)
            if price is None:
                logger.debug("No price for %s, short PnL excluded from valuation", position.symbol)
                continue
            total += position.unrealized_pnl(price)

        return total
