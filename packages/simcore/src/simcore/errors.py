"""Exception hierarchy for the simulated exchange.

Every failure raised by the price table, the ledger or the exchange derives
from ``SimulationError``. Validation errors are also ``ValueError`` and
missing-entity errors are also ``LookupError`` so generic callers can catch
them without importing this module.
"""

from decimal import Decimal
from typing import Optional


class SimulationError(Exception):
    """Base exception for simcore."""


class InvalidInputError(SimulationError, ValueError):
    """Non-positive price or quantity passed to a mutating call."""


class InvalidAmountError(InvalidInputError):
    """Trade or position quantity is not positive."""


class InvalidLeverageError(InvalidInputError):
    """Leverage below 1."""


class InvalidRateError(InvalidInputError):
    """Fee rate is negative or unknown."""


class NegativeBalanceError(InvalidInputError):
    """Attempt to store a negative balance."""


class InsufficientResourceError(SimulationError):
    """Requested operation exceeds the free resource. Nothing was changed."""


class InsufficientFundsError(InsufficientResourceError):
    """Not enough free fiat."""


class InsufficientBalanceError(InsufficientResourceError):
    """Not enough free instrument balance."""


class InsufficientMarginError(InsufficientResourceError):
    """Not enough free fiat to cover margin plus opening fee."""


class NotFoundError(SimulationError, LookupError):
    """Referenced entity does not exist."""


class OrderNotFoundError(NotFoundError):
    """No pending order with the given id."""


class PositionNotFoundError(NotFoundError):
    """No short position for the given symbol."""


class PriceNotFoundError(NotFoundError):
    """No price has been recorded for the symbol."""


class LiquidationError(SimulationError):
    """A short position was force-closed.

    Raised after settlement: the position is gone and its P&L and fee are
    already booked in the ledger. Treat it as a notification, not a failed
    operation. ``shortfall`` is the loss left unpaid once free fiat ran out.
    """

    def __init__(
        self,
        symbol: str,
        price: Decimal,
        equity: Decimal,
        position_value: Decimal,
        maintenance_margin_rate: Decimal,
        realized_pnl: Decimal,
        fee: Decimal,
        shortfall: Decimal = Decimal("0"),
        detail: Optional[str] = None,
    ):
        self.symbol = symbol
        self.price = price
        self.equity = equity
        self.position_value = position_value
        self.maintenance_margin_rate = maintenance_margin_rate
        self.realized_pnl = realized_pnl
        self.fee = fee
        self.shortfall = shortfall
        message = detail or (
            f"Liquidated {symbol} short at {price}: equity {equity}, "
            f"position value {position_value}, "
            f"maintenance margin rate {maintenance_margin_rate}"
        )
        if shortfall > 0 and detail is None:
            message += f", unpaid shortfall {shortfall}"
        super().__init__(message)
