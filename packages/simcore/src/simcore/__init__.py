"""
simcore - Simulated exchange and account ledger for strategy backtesting.

Holds the price table, the free-balance ledger and the exchange that trades
against them: spot trades, resting limit orders, leveraged shorts with
liquidation, fee accounting and total-asset valuation.
"""

from simcore.errors import (
    SimulationError,
    InvalidInputError,
    InvalidAmountError,
    InvalidLeverageError,
    InvalidRateError,
    NegativeBalanceError,
    InsufficientResourceError,
    InsufficientFundsError,
    InsufficientBalanceError,
    InsufficientMarginError,
    NotFoundError,
    OrderNotFoundError,
    PositionNotFoundError,
    PriceNotFoundError,
    LiquidationError,
)
from simcore.price import PriceOracle
from simcore.ledger import Ledger
from simcore.fees import FeeRates
from simcore.models import Candle, PendingOrder, ShortPosition, SideType, Trade, TradeKind
from simcore.exchange import Exchange, MAINTENANCE_MARGIN_RATE
from simcore.utils import to_decimal

__version__ = "0.1.0"

__all__ = [
    "SimulationError",
    "InvalidInputError",
    "InvalidAmountError",
    "InvalidLeverageError",
    "InvalidRateError",
    "NegativeBalanceError",
    "InsufficientResourceError",
    "InsufficientFundsError",
    "InsufficientBalanceError",
    "InsufficientMarginError",
    "NotFoundError",
    "OrderNotFoundError",
    "PositionNotFoundError",
    "PriceNotFoundError",
    "LiquidationError",
    "PriceOracle",
    "Ledger",
    "FeeRates",
    "Candle",
    "PendingOrder",
    "ShortPosition",
    "SideType",
    "Trade",
    "TradeKind",
    "Exchange",
    "MAINTENANCE_MARGIN_RATE",
    "to_decimal",
]
