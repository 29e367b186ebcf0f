"""Random search over grid strategy parameters.

Each trial samples a grid geometry relative to the first candle's close,
runs a full backtest on the same candles and keeps the metrics. Trials are
ranked by return.
"""

import logging
import random
from dataclasses import asdict, dataclass
from decimal import ROUND_DOWN, Decimal
from typing import Optional

from pydantic import ValidationError

from simcore import Candle, SimulationError

from backtest.config import BacktestConfig, GridStrategyConfig, StrategyKind
from backtest.engine import BacktestEngine
from backtest.session import BacktestMetrics
from backtest.strategies import GridStrategy


logger = logging.getLogger(__name__)

# Sampling ranges
GRID_WIDTH_RANGE = (0.005, 0.02)  # spacing as fraction of reference price
GRID_COUNT_RANGE = (6, 20)
PRICE_POSITION_RANGE = (0.0, 100.0)  # where the reference price sits in the range, %
TAKE_PROFIT_RANGE = (1.05, 1.20)
STOP_LOSS_RANGE = (0.80, 0.95)

AMOUNT_STEP = Decimal("0.000001")


@dataclass(frozen=True)
class GridParameters:
    """One sampled grid geometry, relative to a reference price."""

    grid_width: Decimal
    grid_count: int
    price_position: Decimal
    take_profit_ratio: Decimal
    stop_loss_ratio: Decimal

    def to_grid_config(
        self,
        reference_price: Decimal,
        initial_balance: Decimal,
        capital_fraction: Decimal = Decimal("0.9"),
    ) -> GridStrategyConfig:
        """Turn relative parameters into absolute grid prices and order size.

        ``capital_fraction`` of the initial balance is spread evenly across
        all grid levels.
        """
        spacing = reference_price * self.grid_width
        total_range = spacing * self.grid_count
        lower = reference_price - total_range * self.price_position / 100
        buy_amount = (
            initial_balance * capital_fraction / (reference_price * (self.grid_count + 1))
        ).quantize(AMOUNT_STEP, rounding=ROUND_DOWN)

        return GridStrategyConfig(
            lower_limit=lower,
            upper_limit=lower + total_range,
            grid_count=self.grid_count,
            buy_amount=buy_amount,
            take_profit_price=reference_price * self.take_profit_ratio,
            stop_loss_price=reference_price * self.stop_loss_ratio,
        )


@dataclass
class TrialResult:
    """Outcome of one parameter trial."""

    iteration: int
    parameters: GridParameters
    grid: GridStrategyConfig
    metrics: BacktestMetrics

    def to_dict(self) -> dict:
        return {
            "iteration": self.iteration,
            "parameters": {k: str(v) for k, v in asdict(self.parameters).items()},
            "grid": self.grid.model_dump(mode="json"),
            "returns": str(self.metrics.returns),
            "final_balance": str(self.metrics.final_balance),
            "max_drawdown_pct": self.metrics.max_drawdown_pct,
            "total_trades": self.metrics.total_trades,
            "total_fees": str(self.metrics.total_fees),
        }


class GridParameterSearch:
    """Seeded random search for grid parameters.

    Example:
        search = GridParameterSearch(config, candles, seed=42)
        results = search.run(50)
        print(results[0].metrics.return_pct)
    """

    def __init__(
        self,
        config: BacktestConfig,
        candles: list[Candle],
        seed: Optional[int] = None,
    ):
        """Initialize search.

        Args:
            config: Base configuration (balance, fees, wind-down mode).
            candles: Candles replayed by every trial.
            seed: Random seed; same seed gives the same trials.
        """
        if not candles:
            raise ValueError("Parameter search needs at least one candle")
        self._config = config
        self._candles = candles
        self._rng = random.Random(seed)

    @property
    def reference_price(self) -> Decimal:
        return self._candles[0].close

    def sample(self) -> GridParameters:
        """Draw one parameter set."""
        rng = self._rng
        return GridParameters(
            grid_width=Decimal(str(round(rng.uniform(*GRID_WIDTH_RANGE), 3))),
            grid_count=rng.randint(*GRID_COUNT_RANGE),
            price_position=Decimal(str(round(rng.uniform(*PRICE_POSITION_RANGE), 2))),
            take_profit_ratio=Decimal(str(round(rng.uniform(*TAKE_PROFIT_RANGE), 2))),
            stop_loss_ratio=Decimal(str(round(rng.uniform(*STOP_LOSS_RANGE), 2))),
        )

    def run_trial(self, iteration: int, parameters: GridParameters) -> TrialResult:
        """Backtest one parameter set."""
        grid = parameters.to_grid_config(self.reference_price, self._config.initial_balance)
        config = self._config.model_copy(update={"strategy": StrategyKind.GRID, "grid": grid})
        engine = BacktestEngine.from_config(config, strategy=GridStrategy(grid))
        session = engine.run(self._candles)
        return TrialResult(
            iteration=iteration,
            parameters=parameters,
            grid=grid,
            metrics=session.metrics,
        )

    def run(self, iterations: int) -> list[TrialResult]:
        """Run ``iterations`` trials and return them best return first.

        Trials that fail with a simulation or validation error are logged and
        skipped.
        """
        results: list[TrialResult] = []
        best: Optional[TrialResult] = None

        for i in range(1, iterations + 1):
            parameters = self.sample()
            logger.info(f"Trial {i}/{iterations}: {parameters}")
            try:
                result = self.run_trial(i, parameters)
            except (SimulationError, ValidationError) as e:
                logger.warning(f"Trial {i} failed: {e}")
                continue

            results.append(result)
            if best is None or result.metrics.returns > best.metrics.returns:
                best = result
                logger.info(f"Trial {i}: new best return {result.metrics.return_pct:.2f}%")

        results.sort(key=lambda r: r.metrics.returns, reverse=True)
        return results
