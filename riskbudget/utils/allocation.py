"""
Allocation helpers shared by the console modules

Turns a block of aligned market data into the inputs the optimizers take
(annualized covariance and mean returns) and dispatches to the ERC or
Expected Shortfall optimizer by name.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence
import logging
import time

import numpy as np

from .data_loader import AlignedMarketData
from .data_validation import DataError
from .expected_shortfall import (
    DEFAULT_CONFIDENCE_LEVEL,
    PARITY_BUDGET_STRENGTH,
    optimize_expected_shortfall,
    parity_budgets,
)
from .logging_config import get_logger
from .risk_budgeting import (
    TRADING_DAYS_PER_YEAR,
    OptimizationResult,
    calculate_covariance_matrix,
    calculate_returns,
    optimize_erc,
)

logger = logging.getLogger(__name__)

OPTIMIZERS = ("erc", "es")


@dataclass
class WindowStatistics:
    """Annualized inputs estimated from one window of market data"""
    tickers: List[str]
    covariance: np.ndarray
    mean_returns: np.ndarray
    start_date: object
    end_date: object
    observations: int


def window_statistics(data: AlignedMarketData, lookback_days: Optional[int] = None,
                      shrinkage: Optional[float] = None,
                      include_dividends: bool = True) -> WindowStatistics:
    """
    Estimate covariance and mean returns over the trailing `lookback_days`
    returns of `data` (the whole block when None).
    """
    block = data if not lookback_days else data.slice(max(0, len(data) - lookback_days - 1))
    prices = block.price_dict()
    dividends = block.dividend_dict() if include_dividends else {}

    returns = [calculate_returns(prices[t], dividends.get(t)) for t in block.tickers]
    cov = calculate_covariance_matrix(returns, shrinkage=shrinkage or None)
    mu = np.array([r.mean() for r in returns]) * TRADING_DAYS_PER_YEAR

    dates = block.dates
    return WindowStatistics(
        tickers=block.tickers,
        covariance=cov,
        mean_returns=mu,
        start_date=dates[0],
        end_date=dates[-1],
        observations=len(returns[0]),
    )


def optimize_allocation(method: str, covariance, mean_returns: Optional[Sequence[float]] = None,
                        budgets: Optional[Sequence[float]] = None,
                        caps: Optional[Sequence[float]] = None,
                        asset_names: Optional[List[str]] = None,
                        budget_strength: Optional[float] = None,
                        confidence_level: float = DEFAULT_CONFIDENCE_LEVEL) -> OptimizationResult:
    """
    Run the named optimizer ("erc" or "es") and log the outcome.

    ES without budgets targets equal tail-risk shares, penalized with
    PARITY_BUDGET_STRENGTH unless budget_strength is given.

    Raises:
        DataError: For an unknown optimizer name or invalid inputs
    """
    method = str(method).lower()
    if method not in OPTIMIZERS:
        raise DataError(f"Unknown optimizer '{method}' (expected 'erc' or 'es')")

    start = time.perf_counter()
    if method == "es":
        n = np.atleast_2d(np.asarray(covariance, dtype=float)).shape[0]
        mu = np.zeros(n) if mean_returns is None else mean_returns
        result = optimize_expected_shortfall(
            mu, covariance,
            budgets=parity_budgets(budgets, n),
            budget_strength=PARITY_BUDGET_STRENGTH if budget_strength is None else budget_strength,
            caps=caps,
            confidence_level=confidence_level,
            asset_names=asset_names,
        )
    else:
        if caps:
            logger.warning("Weight caps only apply to the ES optimizer; ignoring them for ERC")
        result = optimize_erc(covariance, budgets=budgets, asset_names=asset_names)

    get_logger().log_optimization(
        method=method,
        tickers=list(asset_names or []),
        converged=result.converged,
        iterations=result.iterations,
        portfolio_volatility=result.portfolio_volatility,
        duration_ms=(time.perf_counter() - start) * 1000,
    )
    return result
