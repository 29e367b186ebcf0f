"""CLI entry point for backtest.

Usage:
    uv run python -m backtest.main --config conf/backtest.yaml
    uv run python -m backtest.main --data data/btc_1h.json --symbol BTC/USDT
    uv run python -m backtest.main --config conf/backtest.yaml --export-dir results/
    uv run python -m backtest.main --config conf/backtest.yaml --optimize 50 --seed 7
"""

import argparse
import logging
import sys
from typing import Optional

from backtest.config import BacktestConfig, load_config
from backtest.data_provider import JsonCandleProvider
from backtest.engine import BacktestEngine
from backtest.optimizer import GridParameterSearch
from backtest.reporter import BacktestReporter, export_trial_results


logger = logging.getLogger(__name__)


def setup_logging(debug: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if debug else logging.INFO
    format_str = "%(asctime)s %(name)s %(levelname)s: %(message)s"
    logging.basicConfig(level=level, format=format_str)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Replay candles through a strategy against the simulated exchange",
    )

    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to config file (default: conf/backtest.yaml)",
    )

    parser.add_argument(
        "--data",
        type=str,
        default=None,
        help="JSON candle file (overrides config data_file)",
    )

    parser.add_argument(
        "--symbol",
        type=str,
        default=None,
        help="Symbol to backtest (overrides config, e.g., BTC/USDT)",
    )

    parser.add_argument(
        "--export-dir",
        type=str,
        default=None,
        help="Directory for CSV/JSON result files",
    )

    parser.add_argument(
        "--optimize",
        type=int,
        default=None,
        metavar="N",
        help="Run N random grid parameter trials instead of a single backtest",
    )

    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for --optimize",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    return parser.parse_args(argv)


def resolve_config(args: argparse.Namespace) -> BacktestConfig:
    """Load config and apply command line overrides.

    Without a config file, ``--data`` alone runs the default configuration.
    """
    try:
        config = load_config(args.config)
    except FileNotFoundError:
        if args.config is not None or args.data is None:
            raise
        logger.info("No config file found, using defaults")
        config = BacktestConfig()

    overrides = {}
    if args.symbol:
        overrides["symbol"] = args.symbol
    if args.data:
        overrides["data_file"] = args.data
    if overrides:
        config = config.model_copy(update=overrides)

    if not config.data_file:
        raise ValueError("No candle data: pass --data or set data_file in config")
    return config


def run_backtest(config: BacktestConfig, export_dir: Optional[str]) -> None:
    provider = JsonCandleProvider(config.data_file, config.symbol)
    engine = BacktestEngine.from_config(config)
    session = engine.run(provider)

    print(session.get_summary())

    if export_dir:
        reporter = BacktestReporter(session, engine.exchange.get_trades())
        paths = reporter.export_all(export_dir)
        for kind, path in paths.items():
            logger.info(f"Exported {kind} to {path}")


def run_optimize(
    config: BacktestConfig,
    iterations: int,
    seed: Optional[int],
    export_dir: Optional[str],
) -> None:
    candles = list(JsonCandleProvider(config.data_file, config.symbol))
    search = GridParameterSearch(config, candles, seed=seed)
    results = search.run(iterations)

    if not results:
        logger.warning("No successful trials")
        return

    print(f"\nTop results ({len(results)} of {iterations} trials succeeded):")
    for r in results[:5]:
        m = r.metrics
        print(
            f"  #{r.iteration}: return {m.return_pct:.2f}%, max DD {m.max_drawdown_pct:.2f}%, "
            f"trades {m.total_trades}, grid {r.grid.lower_limit:.2f}-{r.grid.upper_limit:.2f} "
            f"x{r.grid.grid_count}"
        )

    if export_dir:
        path = export_trial_results(results, f"{export_dir}/optimize_results.json")
        logger.info(f"Exported trial results to {path}")


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    setup_logging(debug=args.debug)

    try:
        config = resolve_config(args)
        logger.info(f"Backtesting {config.symbol} from {config.data_file} ({config.strategy})")

        if args.optimize is not None:
            run_optimize(config, args.optimize, args.seed, args.export_dir)
        else:
            run_backtest(config, args.export_dir)
        return 0

    except FileNotFoundError as e:
        logger.error(f"Config error: {e}")
        return 1
    except ValueError as e:
        logger.error(f"Invalid input: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Backtest failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
