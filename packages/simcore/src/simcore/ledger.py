"""Account ledger: free fiat and free instrument balances.

Balances held here are unencumbered. Funds frozen by pending orders or
posted as short margin live on the exchange's records, not in the ledger.
"""

import logging
from decimal import Decimal

from simcore.errors import (
    InsufficientBalanceError,
    InsufficientFundsError,
    InvalidAmountError,
    NegativeBalanceError,
)
from simcore.price import PriceOracle
from simcore.utils import ZERO, Number, to_decimal


logger = logging.getLogger(__name__)


def _change_amount(amount: Number) -> Decimal:
    """Amount for add/subtract; direction comes from the method, not the sign."""
    amount = to_decimal(amount)
    if amount < 0:
        raise InvalidAmountError(f"Amount must not be negative: {amount}")
    return amount


class Ledger:
    """Free balances for one simulated account.

    Every balance is kept non-negative. Subtractions check sufficiency first
    and leave the balance untouched when they fail.

    Example:
        prices = PriceOracle()
        ledger = Ledger(prices, fiat_balance=Decimal("10000"))
        ledger.add_balance("BTC/USDT", Decimal("0.5"))
        prices.set_price("BTC/USDT", Decimal("40000"))
        ledger.get_total_balance()  # Decimal("30000.0")
    """

    def __init__(self, prices: PriceOracle, fiat_balance: Number = ZERO):
        """Initialize ledger.

        Args:
            prices: Price table used for mark-to-market valuation.
            fiat_balance: Starting free fiat balance.
        """
        self._prices = prices
        self._balances: dict[str, Decimal] = {}
        self._fiat_balance = ZERO
        self.set_fiat_balance(fiat_balance)

    # Fiat

    def get_fiat_balance(self) -> Decimal:
        return self._fiat_balance

    def set_fiat_balance(self, amount: Number) -> None:
        amount = to_decimal(amount)
        if amount < 0:
            raise NegativeBalanceError(f"Fiat balance must not be negative: {amount}")
        self._fiat_balance = amount

    def add_fiat_balance(self, amount: Number) -> None:
        amount = _change_amount(amount)
        logger.debug("Fiat +%s (balance %s)", amount, self._fiat_balance)
        self.set_fiat_balance(self._fiat_balance + amount)

    def subtract_fiat_balance(self, amount: Number) -> None:
        amount = _change_amount(amount)
        if self._fiat_balance < amount:
            raise InsufficientFundsError(
                f"Insufficient fiat balance: available {self._fiat_balance}, required {amount}"
            )
        logger.debug("Fiat -%s (balance %s)", amount, self._fiat_balance)
        self.set_fiat_balance(self._fiat_balance - amount)

    # Instruments

    def get_balance(self, symbol: str) -> Decimal:
        """Free balance for ``symbol``, 0 if never held."""
        return self._balances.get(symbol, ZERO)

    def set_balance(self, symbol: str, amount: Number) -> None:
        amount = to_decimal(amount)
        if amount < 0:
            raise NegativeBalanceError(f"Balance must not be negative: {symbol} {amount}")
        self._balances[symbol] = amount

    def add_balance(self, symbol: str, amount: Number) -> None:
        amount = _change_amount(amount)
        current = self.get_balance(symbol)
        logger.debug("%s +%s (balance %s)", symbol, amount, current)
        self.set_balance(symbol, current + amount)

    def subtract_balance(self, symbol: str, amount: Number) -> None:
        amount = _change_amount(amount)
        current = self.get_balance(symbol)
        if current < amount:
            raise InsufficientBalanceError(
                f"Insufficient {symbol} balance: available {current}, required {amount}"
            )
        logger.debug("%s -%s (balance %s)", symbol, amount, current)
        self.set_balance(symbol, current - amount)

    def get_all_balances(self) -> dict[str, Decimal]:
        """Copy of all instrument balances."""
        return dict(self._balances)

    def clear_balance(self, symbol: str) -> None:
        self._balances.pop(symbol, None)

    def clear_all_balances(self) -> None:
        self._balances.clear()

    # Valuation

    def get_spot_value(self) -> Decimal:
        """Mark-to-market value of instrument balances.

        Symbols without a recorded price contribute zero.
        """
        total = ZERO
        for symbol, amount in self._balances.items():
            price = self._prices.find_price(symbol)
            if price is None:
                logger.debug("No price for %s, excluded from valuation", symbol)
                continue
            total += amount * price
        return total

    def get_total_balance(self, unrealized_pnl: Number = ZERO) -> Decimal:
        """Fiat plus marked instrument balances plus ``unrealized_pnl``."""
        return self._fiat_balance + self.get_spot_value() + to_decimal(unrealized_pnl)
