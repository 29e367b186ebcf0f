"""Backtest session for in-memory results storage.

Stores the equity curve and liquidation events, and calculates final metrics.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from simcore import LiquidationError, Trade, TradeKind


@dataclass
class LiquidationEvent:
    """Record of a forced short closure."""

    timestamp: datetime
    symbol: str
    price: Decimal
    equity: Decimal
    position_value: Decimal
    realized_pnl: Decimal
    fee: Decimal
    shortfall: Decimal = Decimal("0")


@dataclass
class BacktestMetrics:
    """Final metrics for backtest."""

    # Activity
    total_trades: int = 0
    total_fees: Decimal = field(default_factory=lambda: Decimal("0"))
    total_volume: Decimal = field(default_factory=lambda: Decimal("0"))
    liquidations: int = 0

    # Shorts
    total_realized_pnl: Decimal = field(default_factory=lambda: Decimal("0"))
    winning_closes: int = 0
    losing_closes: int = 0

    # Balance
    initial_balance: Decimal = field(default_factory=lambda: Decimal("0"))
    final_balance: Decimal = field(default_factory=lambda: Decimal("0"))
    net_pnl: Decimal = field(default_factory=lambda: Decimal("0"))
    returns: Decimal = field(default_factory=lambda: Decimal("0"))  # fraction of initial
    return_pct: float = 0.0

    # Risk
    max_drawdown: Decimal = field(default_factory=lambda: Decimal("0"))
    max_drawdown_pct: float = 0.0
    max_drawdown_duration: int = 0  # Number of candles in longest drawdown
    sharpe_ratio: float = 0.0  # Risk-adjusted return (annualized)


class BacktestSession:
    """In-memory storage for backtest results.

    Tracks the equity curve (total asset value per candle) and liquidations,
    and calculates performance metrics.
    """

    def __init__(
        self,
        session_id: Optional[str] = None,
        initial_balance: Decimal = Decimal("10000"),
    ):
        """Initialize backtest session.

        Args:
            session_id: Unique session identifier (generated if None)
            initial_balance: Starting fiat balance
        """
        self.session_id = session_id or uuid.uuid4().hex
        self.initial_balance = initial_balance
        self.current_balance = initial_balance

        # Equity curve: (timestamp, total asset value)
        self.equity_curve: list[tuple[datetime, Decimal]] = []
        self.liquidations: list[LiquidationEvent] = []

        # Peak for drawdown calculation
        self._peak_equity = initial_balance
        self._max_drawdown = Decimal("0")
        self._max_drawdown_pct = 0.0

        # Drawdown duration tracking
        self._max_drawdown_duration = 0  # Longest drawdown in candles
        self._current_drawdown_duration = 0

        # Final metrics (populated by finalize())
        self.metrics: Optional[BacktestMetrics] = None

    def record_liquidation(self, timestamp: datetime, error: LiquidationError) -> None:
        """Record a liquidation reported by the exchange."""
        self.liquidations.append(
            LiquidationEvent(
                timestamp=timestamp,
                symbol=error.symbol,
                price=error.price,
                equity=error.equity,
                position_value=error.position_value,
                realized_pnl=error.realized_pnl,
                fee=error.fee,
                shortfall=error.shortfall,
            )
        )

    def update_equity(self, timestamp: datetime, equity: Decimal) -> Decimal:
        """Record equity point and update drawdown.

        Args:
            timestamp: Candle open time
            equity: Total asset value after the step

        Returns:
            Current equity
        """
        self.equity_curve.append((timestamp, equity))
        self.current_balance = equity

        # Update peak and drawdown
        if equity >= self._peak_equity:
            self._peak_equity = equity
            # Exited drawdown - check if this was the longest
            if self._current_drawdown_duration > self._max_drawdown_duration:
                self._max_drawdown_duration = self._current_drawdown_duration
            self._current_drawdown_duration = 0
        else:
            self._current_drawdown_duration += 1

        drawdown = self._peak_equity - equity
        if drawdown > self._max_drawdown:
            self._max_drawdown = drawdown
        if self._peak_equity > 0:
            drawdown_pct = float(drawdown / self._peak_equity * 100)
            if drawdown_pct > self._max_drawdown_pct:
                self._max_drawdown_pct = drawdown_pct

        return equity

    def finalize(
        self,
        total_trades: int = 0,
        total_fees: Decimal = Decimal("0"),
        trades: Iterable[Trade] = (),
        sharpe_interval: timedelta = timedelta(hours=1),
    ) -> BacktestMetrics:
        """Calculate final metrics.

        Args:
            total_trades: Exchange trade counter
            total_fees: Exchange fee counter
            trades: Trade journal, for volume and short PnL breakdown
            sharpe_interval: Resampling interval for Sharpe ratio calculation.

        Returns:
            Calculated metrics
        """
        trades = list(trades)
        closes = [
            t for t in trades
            if t.kind in (TradeKind.SHORT_CLOSE, TradeKind.LIQUIDATION)
        ]

        final_balance = self.equity_curve[-1][1] if self.equity_curve else self.initial_balance
        net_pnl = final_balance - self.initial_balance
        returns = net_pnl / self.initial_balance if self.initial_balance > 0 else Decimal("0")

        # Still in drawdown at end counts too
        max_dd_duration = max(self._max_drawdown_duration, self._current_drawdown_duration)

        self.metrics = BacktestMetrics(
            total_trades=total_trades,
            total_fees=total_fees,
            total_volume=sum((t.notional for t in trades), Decimal("0")),
            liquidations=len(self.liquidations),
            total_realized_pnl=sum((t.realized_pnl for t in closes), Decimal("0")),
            winning_closes=sum(1 for t in closes if t.realized_pnl > 0),
            losing_closes=sum(1 for t in closes if t.realized_pnl < 0),
            initial_balance=self.initial_balance,
            final_balance=final_balance,
            net_pnl=net_pnl,
            returns=returns,
            return_pct=float(returns * 100),
            max_drawdown=self._max_drawdown,
            max_drawdown_pct=self._max_drawdown_pct,
            max_drawdown_duration=max_dd_duration,
            sharpe_ratio=self._calculate_sharpe_ratio(sharpe_interval),
        )

        return self.metrics

    def _calculate_sharpe_ratio(self, interval: timedelta = timedelta(hours=1)) -> float:
        """Calculate annualized Sharpe ratio from equity curve.

        Equity is resampled to fixed-width buckets before computing returns.
        Each bucket takes the last equity value that falls within it.

        Args:
            interval: Resampling interval (default: 1 hour).

        Returns:
            Annualized Sharpe ratio (0 if insufficient data).
        """
        if len(self.equity_curve) < 2:
            return 0.0

        resampled = self._resample_equity(interval)
        if len(resampled) < 2:
            return 0.0

        returns = []
        for i in range(1, len(resampled)):
            if resampled[i - 1] != 0:
                returns.append((resampled[i] - resampled[i - 1]) / resampled[i - 1])

        if len(returns) < 2:
            return 0.0

        mean_return = sum(returns) / len(returns)
        variance = sum((r - mean_return) ** 2 for r in returns) / (len(returns) - 1)
        std_return = variance ** 0.5

        if std_return == 0:
            return 0.0

        # Crypto trades 24/7: 365.25 days/year
        seconds_per_year = 365.25 * 24 * 3600
        periods_per_year = seconds_per_year / interval.total_seconds()

        return (mean_return / std_return) * (periods_per_year ** 0.5)

    def _resample_equity(self, interval: timedelta) -> list[float]:
        """Resample equity curve to fixed-width time buckets.

        Takes the last equity value within each bucket. Empty buckets are
        skipped (no forward-fill).
        """
        if not self.equity_curve:
            return []

        start_ts = self.equity_curve[0][0]
        end_ts = self.equity_curve[-1][0]

        resampled: list[float] = []
        bucket_start = start_ts
        eq_idx = 0

        while bucket_start <= end_ts:
            bucket_end = bucket_start + interval
            last_value = None

            while eq_idx < len(self.equity_curve) and self.equity_curve[eq_idx][0] < bucket_end:
                last_value = float(self.equity_curve[eq_idx][1])
                eq_idx += 1

            if last_value is not None:
                resampled.append(last_value)

            bucket_start = bucket_end

        return resampled

    def get_summary(self) -> str:
        """Get human-readable summary of results."""
        if self.metrics is None:
            self.finalize()

        m = self.metrics
        return f"""
Backtest Results (Session: {self.session_id[:8]}...)
{'='*50}
Trades: {m.total_trades}
Fees:   {m.total_fees:.2f}
Volume: {m.total_volume:.2f}

Balance:
  Initial:    {m.initial_balance:>12.2f}
  Final:      {m.final_balance:>12.2f}
  Net PnL:    {m.net_pnl:>12.2f}
  Return:     {m.return_pct:>11.2f}%

Shorts:
  Realized PnL: {m.total_realized_pnl:.2f} (Win: {m.winning_closes}, Loss: {m.losing_closes})
  Liquidations: {m.liquidations}

Risk:
  Max Drawdown: {m.max_drawdown:.2f} ({m.max_drawdown_pct:.1f}%)
  Max DD Duration: {m.max_drawdown_duration} candles
  Sharpe Ratio: {m.sharpe_ratio:.2f}
"""
