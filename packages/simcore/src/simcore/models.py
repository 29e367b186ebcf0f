"""
Immutable records exchanged between the simulated exchange and its callers.

All records are frozen dataclasses: the exchange replaces them instead of
mutating in place, so any snapshot handed to a strategy stays valid.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import Optional


class SideType(StrEnum):
    """Order side."""
    BUY = 'buy'
    SELL = 'sell'


class TradeKind(StrEnum):
    """What produced a trade journal entry."""
    SPOT = 'spot'
    LIMIT = 'limit'
    SHORT_OPEN = 'short_open'
    SHORT_CLOSE = 'short_close'
    LIQUIDATION = 'liquidation'


@dataclass(frozen=True)
class Candle:
    """
    One OHLCV bar for a symbol.

    open_time is the bar's start; the backtest driver treats ``close`` as the
    price for the whole step.
    """
    symbol: str
    open_time: datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal = Decimal('0')


@dataclass(frozen=True)
class PendingOrder:
    """
    Resting limit order.

    For buy orders ``frozen_total`` is the fiat taken from the free balance
    at placement (notional + fee). Cancellation refunds exactly this amount.
    Sell orders freeze ``amount`` of the instrument and leave it ``None``.
    """
    order_id: str
    symbol: str
    side: SideType
    price: Decimal
    amount: Decimal
    created_ts: datetime
    frozen_total: Optional[Decimal] = None

    @property
    def is_buy(self) -> bool:
        return self.side == SideType.BUY


@dataclass(frozen=True)
class ShortPosition:
    """
    Leveraged short, at most one per symbol.

    Unrealized P&L is ``(entry_price - current_price) * amount``.
    """
    symbol: str
    amount: Decimal
    entry_price: Decimal
    leverage: Decimal
    margin: Decimal
    created_ts: datetime

    def unrealized_pnl(self, current_price: Decimal) -> Decimal:
        return (self.entry_price - current_price) * self.amount


@dataclass(frozen=True)
class Trade:
    """Journal entry for a settled trade.

    ``shortfall`` is set only on liquidations whose loss exceeded margin plus
    free fiat: the part of the loss the account could not pay.
    """
    trade_id: str
    kind: TradeKind
    symbol: str
    side: SideType
    price: Decimal
    amount: Decimal
    fee: Decimal
    timestamp: datetime
    realized_pnl: Decimal = Decimal('0')
    order_id: Optional[str] = None
    shortfall: Decimal = Decimal('0')

    @property
    def notional(self) -> Decimal:
        return self.price * self.amount
