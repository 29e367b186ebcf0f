"""Current-price table shared by the ledger and the exchange.

One instance per simulation. The backtest driver writes the step's price
before any trading logic runs; the ledger and exchange only read.
"""

from decimal import Decimal
from typing import Optional

from simcore.errors import PriceNotFoundError
from simcore.utils import Number, to_decimal


class PriceOracle:
    """Latest known price per symbol.

    Only the current price is kept. A stored price of zero counts as a real
    price; a symbol is unpriced only if ``set_price`` was never called for it.
    """

    def __init__(self, prices: Optional[dict[str, Number]] = None):
        self._prices: dict[str, Decimal] = {}
        for symbol, price in (prices or {}).items():
            self.set_price(symbol, price)

    def set_price(self, symbol: str, price: Number) -> None:
        """Overwrite the current price for ``symbol``."""
        self._prices[symbol] = to_decimal(price)

    def get_price(self, symbol: str) -> Decimal:
        """Current price for ``symbol``.

        Raises:
            PriceNotFoundError: No price recorded for the symbol.
        """
        try:
            return self._prices[symbol]
        except KeyError:
            raise PriceNotFoundError(f"Price not found: {symbol}") from None

    def find_price(self, symbol: str) -> Optional[Decimal]:
        """Current price for ``symbol`` or None when unpriced."""
        return self._prices.get(symbol)

    def has_price(self, symbol: str) -> bool:
        return symbol in self._prices

    @property
    def symbols(self) -> list[str]:
        return list(self._prices)
