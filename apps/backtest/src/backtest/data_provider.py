"""Historical data provider for backtest.

Provides historical candles from JSON kline files as a Candle stream.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterator, Optional, Union

from simcore import Candle


logger = logging.getLogger(__name__)

# Keys accepted for the bar open time, in lookup order
_TIME_KEYS = ("openTime", "open_time", "timestamp")


@dataclass
class DataRangeInfo:
    """Information about available data range."""

    symbol: str
    start_ts: Optional[datetime]
    end_ts: Optional[datetime]
    total_records: int


def parse_timestamp(value: Any) -> datetime:
    """Parse epoch milliseconds or an ISO-8601 string into an aware datetime.

    Naive ISO strings are taken as UTC.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid timestamp: {value!r}")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        if value.isdigit():
            return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return ts
    raise ValueError(f"Invalid timestamp: {value!r}")


def parse_candle(raw: Union[dict, list], symbol: str) -> Candle:
    """Build a Candle from one kline record.

    Accepts either an object with ``openTime``/``open_time``/``timestamp``
    plus ``open``, ``high``, ``low``, ``close`` and optional ``volume``, or a
    Binance-style array ``[openTime, open, high, low, close, volume, ...]``.

    Raises:
        ValueError: Record is missing a field or has an unsupported shape.
    """
    if isinstance(raw, (list, tuple)):
        if len(raw) < 5:
            raise ValueError(f"Kline array needs at least 5 fields, got {len(raw)}")
        open_time, open_, high, low, close = raw[:5]
        volume = raw[5] if len(raw) > 5 else 0
    elif isinstance(raw, dict):
        open_time = next((raw[k] for k in _TIME_KEYS if k in raw), None)
        if open_time is None:
            raise ValueError(f"Kline has no open time (expected one of {', '.join(_TIME_KEYS)})")
        try:
            open_, high, low, close = raw["open"], raw["high"], raw["low"], raw["close"]
        except KeyError as e:
            raise ValueError(f"Kline missing field: {e.args[0]}") from e
        volume = raw.get("volume", 0)
    else:
        raise ValueError(f"Unsupported kline record: {type(raw).__name__}")

    return Candle(
        symbol=symbol,
        open_time=parse_timestamp(open_time),
        open=Decimal(str(open_)),
        high=Decimal(str(high)),
        low=Decimal(str(low)),
        close=Decimal(str(close)),
        volume=Decimal(str(volume)),
    )


class JsonCandleProvider:
    """Provides historical candles from a JSON kline file.

    The file holds a list of kline records (see ``parse_candle``). Every
    candle is tagged with ``symbol`` regardless of what the file says, and
    candles are yielded in file order.
    """

    def __init__(self, path: Union[str, Path], symbol: str):
        """Initialize data provider.

        Args:
            path: JSON file with a list of klines.
            symbol: Trading symbol (e.g., 'BTC/USDT').
        """
        self._path = Path(path)
        self._symbol = symbol
        self._candles: Optional[list[Candle]] = None

    def _load(self) -> list[Candle]:
        if self._candles is None:
            with open(self._path) as f:
                data = json.load(f)
            if not isinstance(data, list):
                raise ValueError(f"Expected a list of klines in {self._path}")
            self._candles = [parse_candle(raw, self._symbol) for raw in data]
            logger.info("Loaded %d candles from %s", len(self._candles), self._path)
        return self._candles

    def __iter__(self) -> Iterator[Candle]:
        """Iterate over candles in file order."""
        yield from self._load()

    def get_data_range_info(self) -> DataRangeInfo:
        """Get information about available data range."""
        return _range_info(self._symbol, self._load())


class InMemoryDataProvider:
    """In-memory data provider for testing.

    Accepts pre-created Candles for testing without files.
    """

    def __init__(self, candles: list[Candle]):
        """Initialize with list of candles.

        Args:
            candles: Pre-created Candles (should be in chronological order).
        """
        self._candles = candles

    def __iter__(self) -> Iterator[Candle]:
        """Iterate over candles."""
        yield from self._candles

    def get_data_range_info(self) -> DataRangeInfo:
        """Get data range info from candles."""
        symbol = self._candles[0].symbol if self._candles else ""
        return _range_info(symbol, self._candles)


def _range_info(symbol: str, candles: list[Candle]) -> DataRangeInfo:
    if not candles:
        return DataRangeInfo(symbol=symbol, start_ts=None, end_ts=None, total_records=0)
    return DataRangeInfo(
        symbol=symbol,
        start_ts=candles[0].open_time,
        end_ts=candles[-1].open_time,
        total_records=len(candles),
    )
