"""
Aligned market data for riskbudget

The engine expects every asset on one common, gap-free date axis. This module
holds that container and reads it from wide CSV files (a Date column plus one
column per ticker). Fetching and aligning raw vendor data happens upstream.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple
import logging

import numpy as np
import pandas as pd

from .data_validation import DataError, check_market_data

logger = logging.getLogger(__name__)


@dataclass
class AlignedMarketData:
    """Prices and dividends per ticker on a shared date index"""
    prices: pd.DataFrame
    dividends: pd.DataFrame

    def __post_init__(self):
        if self.dividends is None:
            self.dividends = pd.DataFrame(0.0, index=self.prices.index, columns=self.prices.columns)
        else:
            self.dividends = self.dividends.reindex(
                index=self.prices.index, columns=self.prices.columns
            ).fillna(0.0)

    @property
    def tickers(self) -> List[str]:
        return [str(c) for c in self.prices.columns]

    @property
    def dates(self) -> List[pd.Timestamp]:
        return list(self.prices.index)

    def __len__(self) -> int:
        return len(self.prices)

    def price_dict(self) -> Dict[str, np.ndarray]:
        return {t: self.prices[t].to_numpy(dtype=float) for t in self.tickers}

    def dividend_dict(self) -> Dict[str, np.ndarray]:
        return {t: self.dividends[t].to_numpy(dtype=float) for t in self.tickers}

    def select(self, tickers: List[str]) -> "AlignedMarketData":
        """Restrict to the given tickers, in that order."""
        missing = [t for t in tickers if t not in self.prices.columns]
        if missing:
            raise DataError(f"No price data available for {', '.join(missing)}")
        return AlignedMarketData(self.prices[tickers], self.dividends[tickers])

    def slice(self, start: int = 0, end: Optional[int] = None) -> "AlignedMarketData":
        return AlignedMarketData(self.prices.iloc[start:end], self.dividends.iloc[start:end])

    def split(self, at: Optional[int] = None) -> Tuple["AlignedMarketData", "AlignedMarketData"]:
        """In-sample / out-of-sample halves (split at the midpoint by default)."""
        at = len(self) // 2 if at is None else at
        return self.slice(0, at), self.slice(at)


def load_aligned_csv(prices_path: str, dividends_path: Optional[str] = None,
                     tickers: Optional[List[str]] = None) -> AlignedMarketData:
    """
    Read pre-aligned wide CSV files.

    Args:
        prices_path: CSV with a Date column and one price column per ticker
        dividends_path: Optional CSV of dividends per share, same layout
        tickers: Optional subset (and order) of tickers to keep

    Raises:
        DataError: If a file is missing or the data has gaps, unordered dates
            or non-positive prices
    """
    prices = _read_wide_csv(prices_path)
    dividends = _read_wide_csv(dividends_path) if dividends_path else None

    report = check_market_data(prices, dividends)
    if report.has_errors:
        errors = "; ".join(str(i) for i in report.issues if i.severity.value == "error")
        raise DataError(f"Market data failed validation: {errors}")

    data = AlignedMarketData(prices, dividends)
    if tickers:
        data = data.select(tickers)

    logger.debug(f"Loaded {len(data)} aligned rows for {', '.join(data.tickers)} from {prices_path}")
    return data


def _read_wide_csv(path: str) -> pd.DataFrame:
    if not Path(path).exists():
        raise DataError(f"File not found: {path}")
    df = pd.read_csv(path, index_col=0, parse_dates=True)
    df.index.name = "Date"
    df.columns = [str(c).strip().upper() for c in df.columns]
    return df.astype(float)
