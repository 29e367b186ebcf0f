"""Backtest reporter for exporting results to various formats.

Supports CSV export for trades and equity curve, CSV and JSON export for the
metrics summary, and JSON export of parameter search results.
"""

import csv
import json
from decimal import Decimal
from pathlib import Path
from typing import Iterable, Union

from simcore import Trade

from backtest.optimizer import TrialResult
from backtest.session import BacktestMetrics, BacktestSession


class BacktestReporter:
    """Export backtest results to CSV and JSON.

    Example:
        session = engine.run(provider)
        reporter = BacktestReporter(session, engine.exchange.get_trades())

        reporter.export_trades("trades.csv")
        reporter.export_equity_curve("equity.csv")
        reporter.export_metrics("metrics.csv")
        reporter.export_all("output_dir/")
    """

    def __init__(self, session: BacktestSession, trades: Iterable[Trade] = ()):
        """Initialize reporter with a backtest session.

        Args:
            session: Completed backtest session with results.
            trades: Exchange trade journal for the run.
        """
        self._session = session
        self._trades = list(trades)
        if session.metrics is None:
            session.finalize(
                total_trades=len(self._trades),
                total_fees=sum((t.fee for t in self._trades), Decimal("0")),
                trades=self._trades,
            )

    @property
    def session(self) -> BacktestSession:
        """The backtest session."""
        return self._session

    @property
    def metrics(self) -> BacktestMetrics:
        """The backtest metrics."""
        return self._session.metrics

    def _ensure_path(self, path: Union[str, Path]) -> Path:
        """Convert to Path and create parent directories."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        return path

    def export_trades(self, path: Union[str, Path]) -> None:
        """Export the trade journal to CSV."""
        path = self._ensure_path(path)

        with open(path, "w", newline="") as f:
            writer = csv.writer(f)
            writer.writerow([
                "trade_id",
                "timestamp",
                "kind",
                "symbol",
                "side",
                "price",
                "amount",
                "notional",
                "fee",
                "realized_pnl",
                "shortfall",
                "order_id",
            ])

            for trade in self._trades:
                writer.writerow([
                    trade.trade_id,
                    trade.timestamp.isoformat(),
                    trade.kind,
                    trade.symbol,
                    trade.side,
                    str(trade.price),
                    str(trade.amount),
                    str(trade.notional),
                    str(trade.fee),
                    str(trade.realized_pnl),
                    str(trade.shortfall),
                    trade.order_id or "",
                ])

    def export_equity_curve(self, path: Union[str, Path]) -> None:
        """Export equity curve to CSV."""
        path = self._ensure_path(path)

        with open(path, "w", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(["timestamp", "equity", "return_pct"])

            initial = self._session.initial_balance
            for timestamp, equity in self._session.equity_curve:
                return_pct = float((equity - initial) / initial * 100) if initial > 0 else 0.0
                writer.writerow([
                    timestamp.isoformat(),
                    str(equity),
                    f"{return_pct:.4f}",
                ])

    def export_metrics(self, path: Union[str, Path]) -> None:
        """Export metrics summary to CSV."""
        path = self._ensure_path(path)

        m = self._session.metrics
        metrics_data = [
            ("session_id", self._session.session_id),
            ("initial_balance", str(m.initial_balance)),
            ("final_balance", str(m.final_balance)),
            ("returns", str(m.returns)),
            ("return_pct", f"{m.return_pct:.2f}"),
            ("net_pnl", str(m.net_pnl)),
            ("total_trades", str(m.total_trades)),
            ("total_fees", str(m.total_fees)),
            ("total_volume", str(m.total_volume)),
            ("total_realized_pnl", str(m.total_realized_pnl)),
            ("winning_closes", str(m.winning_closes)),
            ("losing_closes", str(m.losing_closes)),
            ("liquidations", str(m.liquidations)),
            ("max_drawdown", str(m.max_drawdown)),
            ("max_drawdown_pct", f"{m.max_drawdown_pct:.2f}"),
            ("max_drawdown_duration", str(m.max_drawdown_duration)),
            ("sharpe_ratio", f"{m.sharpe_ratio:.4f}"),
        ]

        with open(path, "w", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(["metric", "value"])
            for metric, value in metrics_data:
                writer.writerow([metric, value])

    def export_summary_json(self, path: Union[str, Path]) -> None:
        """Export the metrics summary as JSON."""
        path = self._ensure_path(path)
        with open(path, "w") as f:
            json.dump(self.get_summary_dict(), f, indent=2)

    def export_all(self, output_dir: Union[str, Path], prefix: str = "") -> dict[str, Path]:
        """Export all data to a directory.

        Args:
            output_dir: Output directory path.
            prefix: Optional prefix for file names.

        Returns:
            Dict mapping export type to file path.
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        prefix = f"{prefix}_" if prefix else ""
        session_id = self._session.session_id[:8]

        paths = {
            "trades": output_dir / f"{prefix}{session_id}_trades.csv",
            "equity_curve": output_dir / f"{prefix}{session_id}_equity.csv",
            "metrics": output_dir / f"{prefix}{session_id}_metrics.csv",
            "summary": output_dir / f"{prefix}{session_id}_summary.json",
        }

        self.export_trades(paths["trades"])
        self.export_equity_curve(paths["equity_curve"])
        self.export_metrics(paths["metrics"])
        self.export_summary_json(paths["summary"])

        return paths

    def get_summary_dict(self) -> dict:
        """Get metrics as a dictionary of JSON-safe values."""
        m = self._session.metrics
        return {
            "session_id": self._session.session_id,
            "initial_balance": float(m.initial_balance),
            "final_balance": float(m.final_balance),
            "returns": float(m.returns),
            "return_pct": m.return_pct,
            "net_pnl": float(m.net_pnl),
            "total_trades": m.total_trades,
            "total_fees": float(m.total_fees),
            "total_volume": float(m.total_volume),
            "total_realized_pnl": float(m.total_realized_pnl),
            "winning_closes": m.winning_closes,
            "losing_closes": m.losing_closes,
            "liquidations": m.liquidations,
            "max_drawdown": float(m.max_drawdown),
            "max_drawdown_pct": m.max_drawdown_pct,
            "max_drawdown_duration": m.max_drawdown_duration,
            "sharpe_ratio": m.sharpe_ratio,
        }


def export_trial_results(results: list[TrialResult], path: Union[str, Path]) -> Path:
    """Write parameter search results, best first, as a JSON list."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump([r.to_dict() for r in results], f, indent=2)
    return path
