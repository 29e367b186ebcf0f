"""Configuration models for backtest.

Loads backtest configuration from YAML file with Pydantic validation.
"""

import os
from decimal import Decimal
from enum import StrEnum
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from simcore import FeeRates


def _to_decimal(v):
    """Convert YAML scalars to Decimal without float artefacts."""
    if isinstance(v, str):
        return Decimal(v)
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return Decimal(str(v))
    return v


class WindDownMode(StrEnum):
    """Wind-down mode at end of backtest."""

    LEAVE_OPEN = "leave_open"
    CLOSE_ALL = "close_all"


class StrategyKind(StrEnum):
    """Which built-in strategy to run."""

    BUY_AND_HOLD = "buy_and_hold"
    GRID = "grid"


class FeeRatesConfig(BaseModel):
    """Exchange fee schedule (fraction of notional)."""

    spot_buy: Decimal = Field(default=Decimal("0.001"), ge=0)
    spot_sell: Decimal = Field(default=Decimal("0.001"), ge=0)
    limit_buy: Decimal = Field(default=Decimal("0.002"), ge=0)
    limit_sell: Decimal = Field(default=Decimal("0.002"), ge=0)
    short_open: Decimal = Field(default=Decimal("0.001"), ge=0)
    short_close: Decimal = Field(default=Decimal("0.001"), ge=0)

    @field_validator(
        "spot_buy", "spot_sell", "limit_buy", "limit_sell", "short_open", "short_close",
        mode="before",
    )
    @classmethod
    def parse_rate(cls, v):
        """Convert rate to Decimal."""
        return _to_decimal(v)

    def to_fee_rates(self) -> FeeRates:
        return FeeRates(**self.model_dump())


class GridStrategyConfig(BaseModel):
    """Range grid strategy configuration."""

    lower_limit: Decimal = Field(..., gt=0, description="Lowest grid price")
    upper_limit: Decimal = Field(..., gt=0, description="Highest grid price")
    grid_count: int = Field(default=10, ge=1, description="Number of grid intervals")
    buy_amount: Decimal = Field(..., gt=0, description="Instrument quantity per grid order")
    take_profit_price: Optional[Decimal] = Field(
        default=None,
        description="Close the grid when price reaches this level",
    )
    stop_loss_price: Optional[Decimal] = Field(
        default=None,
        description="Close the grid when price falls to this level",
    )

    @field_validator(
        "lower_limit", "upper_limit", "buy_amount", "take_profit_price", "stop_loss_price",
        mode="before",
    )
    @classmethod
    def parse_price(cls, v):
        """Convert numeric fields to Decimal."""
        return _to_decimal(v)

    @model_validator(mode="after")
    def check_range(self):
        if self.upper_limit <= self.lower_limit:
            raise ValueError(
                f"upper_limit ({self.upper_limit}) must be above lower_limit ({self.lower_limit})"
            )
        return self

    @property
    def grid_spacing(self) -> Decimal:
        return (self.upper_limit - self.lower_limit) / self.grid_count


class BuyAndHoldConfig(BaseModel):
    """Buy a fixed quantity on the first candle and hold."""

    amount: Decimal = Field(default=Decimal("1"), gt=0, description="Quantity to buy")

    @field_validator("amount", mode="before")
    @classmethod
    def parse_amount(cls, v):
        """Convert amount to Decimal."""
        return _to_decimal(v)


class BacktestConfig(BaseModel):
    """Root configuration for backtest."""

    symbol: str = Field(default="BTC/USDT", description="Trading pair")
    data_file: Optional[str] = Field(
        default=None,
        description="JSON candle file to replay",
    )

    # Initial balance
    initial_balance: Decimal = Field(
        default=Decimal("10000"),
        gt=0,
        description="Initial fiat balance",
    )

    fees: FeeRatesConfig = Field(default_factory=FeeRatesConfig)

    strategy: StrategyKind = Field(
        default=StrategyKind.BUY_AND_HOLD,
        description="Strategy to run",
    )
    grid: Optional[GridStrategyConfig] = None
    buy_and_hold: BuyAndHoldConfig = Field(default_factory=BuyAndHoldConfig)

    # End-of-backtest handling
    wind_down_mode: WindDownMode = Field(
        default=WindDownMode.LEAVE_OPEN,
        description="What to do with orders and positions at end",
    )

    @field_validator("initial_balance", mode="before")
    @classmethod
    def parse_initial_balance(cls, v):
        """Convert initial_balance to Decimal."""
        return _to_decimal(v)

    @model_validator(mode="after")
    def check_strategy_section(self):
        if self.strategy == StrategyKind.GRID and self.grid is None:
            raise ValueError("strategy 'grid' requires a 'grid' section")
        return self


def load_config(config_path: Optional[str] = None) -> BacktestConfig:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, checks:
            1. BACKTEST_CONFIG_PATH environment variable
            2. conf/backtest.yaml
            3. backtest.yaml

    Returns:
        Validated BacktestConfig

    Raises:
        FileNotFoundError: If no config file found
        ValueError: If config validation fails
    """
    if config_path is None:
        config_path = os.environ.get("BACKTEST_CONFIG_PATH")

    if config_path is None:
        for path in (Path("conf/backtest.yaml"), Path("backtest.yaml")):
            if path.exists():
                config_path = str(path)
                break

    if config_path is None:
        raise FileNotFoundError(
            "No config file found. Set BACKTEST_CONFIG_PATH or create conf/backtest.yaml"
        )

    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    return BacktestConfig(**data)
