"""Fee schedule for the simulated exchange."""

from dataclasses import dataclass, fields, replace
from decimal import Decimal
from typing import Mapping

from simcore.errors import InvalidRateError
from simcore.utils import Number, to_decimal

DEFAULT_SPOT_RATE = Decimal("0.001")
DEFAULT_LIMIT_RATE = Decimal("0.002")
DEFAULT_SHORT_RATE = Decimal("0.001")


@dataclass(frozen=True)
class FeeRates:
    """Fee rates applied to notional value (0.001 = 0.1%).

    Attributes:
        spot_buy: Market buy.
        spot_sell: Market sell.
        limit_buy: Resting buy order, charged on the limit notional and frozen
            at placement.
        limit_sell: Resting sell order, charged at fill.
        short_open: Opening or adding to a short.
        short_close: Closing a short, including liquidation.
    """

    spot_buy: Decimal = DEFAULT_SPOT_RATE
    spot_sell: Decimal = DEFAULT_SPOT_RATE
    limit_buy: Decimal = DEFAULT_LIMIT_RATE
    limit_sell: Decimal = DEFAULT_LIMIT_RATE
    short_open: Decimal = DEFAULT_SHORT_RATE
    short_close: Decimal = DEFAULT_SHORT_RATE

    def __post_init__(self):
        for f in fields(self):
            value = to_decimal(getattr(self, f.name))
            if value < 0:
                raise InvalidRateError(f"Fee rate must not be negative: {f.name} = {value}")
            object.__setattr__(self, f.name, value)

    def updated(self, overrides: Mapping[str, Number]) -> "FeeRates":
        """Return a copy with ``overrides`` applied.

        Every override is validated before any is applied, so one bad rate
        rejects the whole batch.

        Raises:
            InvalidRateError: Unknown rate name or negative rate.
        """
        known = {f.name for f in fields(self)}
        parsed: dict[str, Decimal] = {}
        for name, rate in overrides.items():
            if name not in known:
                raise InvalidRateError(f"Unknown fee rate: {name}")
            value = to_decimal(rate)
            if value < 0:
                raise InvalidRateError(f"Fee rate must not be negative: {name} = {value}")
            parsed[name] = value
        return replace(self, **parsed)

    def as_dict(self) -> dict[str, Decimal]:
        return {f.name: getattr(self, f.name) for f in fields(self)}
