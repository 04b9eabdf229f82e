"""
Input Validation for riskbudget

This module validates the numerical inputs consumed by the risk-budgeting
engine before any optimization or simulation runs. It includes:

- DataError: the single fatal error type raised for malformed inputs
- ValidationIssue / QualityReport: non-fatal findings about aligned market data
- Validators for risk budgets, covariance matrices and aligned series

All validators raise DataError with a message naming the offending input.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Sequence
import logging

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

BUDGET_SUM_TOLERANCE = 1e-6


class DataError(ValueError):
    """Raised when engine inputs are missing, misaligned or inconsistent."""


class ValidationSeverity(Enum):
    """Severity levels for validation issues"""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class ValidationIssue:
    """Represents a single validation issue found in the data"""
    issue_type: str
    severity: ValidationSeverity
    message: str
    ticker: Optional[str] = None
    affected_rows: List[int] = field(default_factory=list)

    def __str__(self) -> str:
        where = f" [{self.ticker}]" if self.ticker else ""
        row_info = f" (rows: {len(self.affected_rows)})" if self.affected_rows else ""
        return f"[{self.severity.value.upper()}]{where} {self.issue_type}: {self.message}{row_info}"


@dataclass
class QualityReport:
    """Quality report for a set of aligned price/dividend series"""
    tickers: List[str] = field(default_factory=list)
    analysis_timestamp: datetime = field(default_factory=datetime.now)
    total_rows: int = 0
    issues: List[ValidationIssue] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return any(i.severity == ValidationSeverity.ERROR for i in self.issues)

    def to_dict(self) -> Dict:
        """Convert report to dictionary for display"""
        return {
            "tickers": ", ".join(self.tickers),
            "analysis_timestamp": self.analysis_timestamp.isoformat(),
            "total_rows": self.total_rows,
            "issues_count": len(self.issues),
            "issues": [str(i) for i in self.issues],
        }


def validate_budgets(budgets: Optional[Sequence[float]], n_assets: int) -> Optional[np.ndarray]:
    """
    Validate a risk-budget vector for the variance optimizer.

    Args:
        budgets: Target risk shares (fractions), or None for equal budgets
        n_assets: Number of assets the budgets must cover

    Returns:
        Budgets as a float array, or None when no budgets were supplied

    Raises:
        DataError: If the length differs from n_assets, any entry is
            negative, or the entries do not sum to 1 within 1e-6
    """
    if budgets is None:
        return None

    b = np.asarray(budgets, dtype=float)
    if b.ndim != 1 or len(b) != n_assets:
        raise DataError(
            f"Target budgets length must match number of assets: expected {n_assets}, got {b.size}"
        )
    if np.any(b < 0):
        raise DataError("Target budgets must be non-negative")

    total = float(b.sum())
    if abs(total - 1.0) > BUDGET_SUM_TOLERANCE:
        raise DataError(f"Target budgets must sum to 1. Current sum: {total}")
    return b


def validate_covariance(covariance, n_assets: Optional[int] = None) -> np.ndarray:
    """Return the covariance as a square float matrix or raise DataError."""
    cov = np.atleast_2d(np.asarray(covariance, dtype=float))
    if cov.size == 0:
        raise DataError("Covariance matrix is empty")
    if cov.ndim != 2 or cov.shape[0] != cov.shape[1]:
        raise DataError(f"Covariance matrix must be square, got shape {cov.shape}")
    if n_assets is not None and cov.shape[0] != n_assets:
        raise DataError(
            f"Covariance matrix must be {n_assets}x{n_assets}, got {cov.shape[0]}x{cov.shape[1]}"
        )
    return cov


def validate_aligned_series(
    prices: Dict[str, Sequence[float]],
    dividends: Optional[Dict[str, Sequence[float]]],
    tickers: Sequence[str],
    n_dates: int,
) -> None:
    """
    Check that every ticker has a price series (and dividend series, when a
    dividend mapping is given) of exactly n_dates points.

    Raises:
        DataError: On a missing series or a length mismatch
    """
    for ticker in tickers:
        series = prices.get(ticker)
        if series is None or len(series) == 0:
            raise DataError(f"No price data available for {ticker}")
        if len(series) != n_dates:
            raise DataError(
                f"Price data length mismatch for {ticker}: expected {n_dates}, got {len(series)}"
            )

        if dividends is None:
            continue
        divs = dividends.get(ticker)
        if divs is None:
            raise DataError(f"No dividend data available for {ticker}")
        if len(divs) != n_dates:
            raise DataError(
                f"Dividend data length mismatch for {ticker}: expected {n_dates}, got {len(divs)}"
            )


def check_market_data(prices: pd.DataFrame, dividends: Optional[pd.DataFrame] = None) -> QualityReport:
    """
    Inspect wide price/dividend frames (one column per ticker) and collect
    issues that would make the engine's results meaningless.

    Gaps (NaN) and non-positive prices are errors: the engine expects a
    gap-free common date axis. Negative dividends are errors. Flat series are
    reported as warnings since they carry no risk information.
    """
    report = QualityReport(tickers=[str(c) for c in prices.columns], total_rows=len(prices))

    if len(prices) < 2:
        report.issues.append(ValidationIssue(
            "insufficient_history", ValidationSeverity.ERROR,
            f"At least 2 aligned observations are required, got {len(prices)}",
        ))

    if not prices.index.is_monotonic_increasing:
        report.issues.append(ValidationIssue(
            "unordered_dates", ValidationSeverity.ERROR, "Dates are not in ascending order",
        ))

    for ticker in prices.columns:
        col = prices[ticker]
        missing = np.flatnonzero(col.isna().to_numpy())
        if len(missing):
            report.issues.append(ValidationIssue(
                "missing_prices", ValidationSeverity.ERROR,
                "Price series contains gaps", ticker=str(ticker), affected_rows=missing.tolist(),
            ))
        non_positive = np.flatnonzero((col <= 0).to_numpy())
        if len(non_positive):
            report.issues.append(ValidationIssue(
                "non_positive_prices", ValidationSeverity.ERROR,
                "Prices must be strictly positive", ticker=str(ticker), affected_rows=non_positive.tolist(),
            ))
        if col.nunique(dropna=True) <= 1:
            report.issues.append(ValidationIssue(
                "flat_series", ValidationSeverity.WARNING,
                "Price series is constant", ticker=str(ticker),
            ))

    if dividends is not None:
        missing_cols = [c for c in prices.columns if c not in dividends.columns]
        for ticker in missing_cols:
            report.issues.append(ValidationIssue(
                "missing_dividends", ValidationSeverity.WARNING,
                "No dividend column, assuming no distributions", ticker=str(ticker),
            ))
        if len(dividends) != len(prices):
            report.issues.append(ValidationIssue(
                "dividend_length", ValidationSeverity.ERROR,
                f"Dividend rows ({len(dividends)}) differ from price rows ({len(prices)})",
            ))
        for ticker in dividends.columns:
            negative = np.flatnonzero((dividends[ticker] < 0).to_numpy())
            if len(negative):
                report.issues.append(ValidationIssue(
                    "negative_dividends", ValidationSeverity.ERROR,
                    "Dividends cannot be negative", ticker=str(ticker), affected_rows=negative.tolist(),
                ))

    for issue in report.issues:
        if issue.severity == ValidationSeverity.ERROR:
            logger.error(str(issue))
        else:
            logger.warning(str(issue))

    return report
