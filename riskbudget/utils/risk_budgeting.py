"""
Risk Budgeting and Equal Risk Contribution (ERC) for riskbudget

This module holds the variance side of the engine:

- Per-period price and total (price + dividend) returns
- Annualized sample covariance with optional diagonal shrinkage
- Marginal, absolute and percentage risk contributions
- ERC / risk-budget weights via damped cyclical coordinate descent
- Portfolio statistics used when reporting an allocation (expected return,
  Sharpe ratio, drawdowns, correlations, volatility targeting, dividend yield)

Risk contribution of asset i for weights w and covariance S:

    RC_i = w_i * (S w)_i / sqrt(w' S w)

The RC_i sum to portfolio volatility, so RC_i / sigma_p is the share of risk
carried by asset i.

References:
    - Maillard, Roncalli, Teiletche (2010). "On the Properties of Equally-Weighted
      Risk Contributions Portfolios"
    - Roncalli, T. (2013). "Introduction to Risk Parity and Budgeting"
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence
import logging

import numpy as np
import pandas as pd

from .data_validation import DataError, validate_budgets, validate_covariance
from .helpers import format_table

logger = logging.getLogger(__name__)

TRADING_DAYS_PER_YEAR = 252

# Exponent applied to the target/current RC ratio in each ERC sweep
ERC_DAMPING = 0.5


@dataclass
class OptimizationResult:
    """
    Results from a risk-budgeting optimization.

    Attributes:
        weights: Optimal portfolio weights (sum to 1)
        risk_contributions: Absolute risk contribution of each asset
        risk_contribution_shares: Risk contributions as fractions of the total
        portfolio_volatility: Annualized portfolio volatility of the weights
        objective_value: Final objective (ERC: max share deviation from the
            budget in percentage points; ES: penalized Expected Shortfall)
        converged: Whether the stopping criterion was met
        iterations: Number of sweeps / gradient steps performed
        method: Optimizer that produced the result
    """
    weights: np.ndarray
    risk_contributions: np.ndarray
    risk_contribution_shares: np.ndarray
    portfolio_volatility: float
    objective_value: float
    converged: bool
    iterations: int
    method: str = "erc"
    asset_names: Optional[List[str]] = None

    @property
    def risk_contribution_pct(self) -> np.ndarray:
        """Risk contribution shares in percent."""
        return self.risk_contribution_shares * 100

    def _names(self) -> List[str]:
        if self.asset_names:
            return list(self.asset_names)
        return [f"Asset_{i}" for i in range(len(self.weights))]

    def summary(self) -> str:
        """Return a formatted summary string."""
        rows = [
            {
                "Asset": name,
                "Weight": f"{self.weights[i]:.2%}",
                "Risk Contrib": f"{self.risk_contributions[i]:.4f}",
                "% of Risk": f"{self.risk_contribution_shares[i]:.1%}",
            }
            for i, name in enumerate(self._names())
        ]
        lines = [
            f"Risk Budget Allocation ({self.method})",
            "=" * 50,
            f"Portfolio Volatility: {self.portfolio_volatility:.2%}",
            f"Converged: {self.converged} ({self.iterations} iterations)",
            "",
            format_table(rows),
        ]
        return "\n".join(lines)

    def to_dataframe(self) -> pd.DataFrame:
        """Convert to DataFrame for analysis."""
        return pd.DataFrame({
            'Asset': self._names(),
            'Weight': self.weights,
            'Risk_Contribution': self.risk_contributions,
            'Risk_Contribution_Pct': self.risk_contribution_pct
        }).set_index('Asset')

    def to_dict(self) -> Dict:
        """Convert result to a plain dictionary."""
        names = self._names()
        return {
            'method': self.method,
            'weights': {n: float(w) for n, w in zip(names, self.weights)},
            'risk_contribution_pct': {n: float(p) for n, p in zip(names, self.risk_contribution_pct)},
            'portfolio_volatility': float(self.portfolio_volatility),
            'objective_value': float(self.objective_value),
            'converged': bool(self.converged),
            'iterations': int(self.iterations),
        }


@dataclass
class RiskContributions:
    """Variance-based risk decomposition of a weight vector."""
    sigma_w: np.ndarray
    marginal: np.ndarray
    contributions: np.ndarray
    percentages: np.ndarray
    portfolio_volatility: float

    @property
    def shares(self) -> np.ndarray:
        return self.percentages / 100


@dataclass
class DrawdownInfo:
    """Largest peak-to-trough decline of a value series (percent)."""
    max_drawdown: float
    peak_index: int
    trough_index: int
    peak_value: float
    trough_value: float
    recovered: bool


@dataclass
class VolatilityTarget:
    """Weights scaled so the portfolio runs at a target volatility."""
    weights: np.ndarray
    base_weights: np.ndarray
    scaling_factor: float
    natural_volatility: float
    target_volatility: Optional[float]

    @property
    def description(self) -> str:
        """Leverage or cash buffer implied by the scaling factor."""
        if self.scaling_factor > 1:
            return f"{(self.scaling_factor - 1) * 100:.1f}% leverage"
        return f"{(1 - self.scaling_factor) * 100:.1f}% cash"

    def to_dict(self) -> Dict:
        return {
            "target_volatility": f"{(self.target_volatility or 0) * 100:.2f}%",
            "natural_volatility": f"{self.natural_volatility * 100:.2f}%",
            "scaling_factor": f"{self.scaling_factor:.3f}",
            "exposure": self.description,
        }


def calculate_returns(prices: Sequence[float], dividends: Optional[Sequence[float]] = None) -> np.ndarray:
    """
    Calculate per-period returns from a price series.

    Price return:  (P_t - P_{t-1}) / P_{t-1}
    Total return:  (P_t - P_{t-1} + D_t) / P_{t-1}

    Args:
        prices: Ordered closing prices (at least 2 points)
        dividends: Dividend per share paid on each date, aligned with prices.
            None or an empty sequence gives price-only returns.

    Returns:
        Array of len(prices) - 1 returns

    Raises:
        DataError: If fewer than 2 prices are given or the dividend series
            is not aligned with the prices

    Example:
        >>> calculate_returns([100, 102], [0, 0.5])
        array([0.025])
    """
    p = np.asarray(prices, dtype=float)
    if p.ndim != 1 or len(p) < 2:
        raise DataError(f"At least 2 prices are required to compute returns, got {p.size}")

    change = p[1:] - p[:-1]

    if dividends is not None and len(dividends) > 0:
        d = np.asarray(dividends, dtype=float)
        if len(d) != len(p):
            raise DataError(
                f"Dividend series length ({len(d)}) does not match price series length ({len(p)})"
            )
        change = change + d[1:]

    return change / p[:-1]


def calculate_covariance_matrix(returns_per_asset, shrinkage: Optional[float] = None) -> np.ndarray:
    """
    Annualized sample covariance of asset returns.

    Args:
        returns_per_asset: One return sequence per asset, all of length T >= 2
        shrinkage: Optional shrinkage intensity passed to shrink_covariance

    Returns:
        n x n covariance matrix (daily sample covariance with T - 1 divisor, x 252)
    """
    rows = [np.asarray(r, dtype=float) for r in returns_per_asset]
    if not rows:
        raise DataError("No return series supplied")

    lengths = {len(r) for r in rows}
    if len(lengths) != 1:
        raise DataError(f"Return series must share one length, got lengths {sorted(lengths)}")
    if lengths.pop() < 2:
        raise DataError("At least 2 return observations are required for covariance")

    cov = np.atleast_2d(np.cov(np.vstack(rows), ddof=1)) * TRADING_DAYS_PER_YEAR

    if shrinkage:
        cov = shrink_covariance(cov, shrinkage)
    return cov


def shrink_covariance(covariance, shrinkage: float = 0.1) -> np.ndarray:
    """
    Shrink a covariance matrix towards its diagonal.

        S_lambda = (1 - lambda) * S + lambda * diag(S)

    Variances are unchanged; covariances are pulled towards zero.
    lambda is clamped to [0, 1].
    """
    cov = np.asarray(covariance, dtype=float)
    if cov.size == 0:
        return cov
    lam = min(max(float(shrinkage), 0.0), 1.0)
    return (1 - lam) * cov + lam * np.diag(np.diag(cov))


def calculate_portfolio_volatility(weights: Sequence[float], covariance) -> float:
    """sigma_p = sqrt(w' S w), floored at zero."""
    w = np.asarray(weights, dtype=float)
    cov = np.asarray(covariance, dtype=float)
    variance = float(w @ cov @ w)
    return float(np.sqrt(max(0.0, variance)))


def calculate_risk_contributions(weights: Sequence[float], covariance) -> RiskContributions:
    """
    Decompose portfolio volatility into per-asset contributions.

    MRC_i = (S w)_i / sigma_p
    RC_i  = w_i * MRC_i

    A zero-volatility portfolio returns zero-valued contributions instead of
    dividing by zero.
    """
    w = np.asarray(weights, dtype=float)
    cov = validate_covariance(covariance, len(w))

    sigma_w = cov @ w
    vol = calculate_portfolio_volatility(w, cov)
    zeros = np.zeros(len(w))

    if vol == 0:
        return RiskContributions(sigma_w, zeros, zeros.copy(), zeros.copy(), 0.0)

    marginal = sigma_w / vol
    contributions = w * marginal
    total = contributions.sum()
    percentages = contributions / total * 100 if total != 0 else zeros

    return RiskContributions(sigma_w, marginal, contributions, percentages, vol)


def optimize_erc(
    covariance,
    max_iterations: int = 1000,
    tolerance: float = 1e-6,
    budgets: Optional[Sequence[float]] = None,
    asset_names: Optional[List[str]] = None,
) -> OptimizationResult:
    """
    Equal Risk Contribution / risk-budget weights by damped cyclical
    coordinate descent.

    Starting from equal weights, each sweep moves every weight by

        w_i <- w_i * (target_RC_i / RC_i) ** 0.5

    with target_RC_i = b_i * sigma_p, then renormalizes the weights. The
    search stops once every risk share is within `tolerance` percentage
    points of its budget.

    Args:
        covariance: n x n annualized covariance matrix
        max_iterations: Maximum number of sweeps
        tolerance: Allowed deviation of risk shares, in percentage points
        budgets: Target risk shares summing to 1 (equal risk when None)
        asset_names: Optional labels carried onto the result

    Returns:
        OptimizationResult; never raises on non-convergence

    Raises:
        DataError: If the budgets are malformed

    Example:
        >>> result = optimize_erc(np.diag([0.04, 0.09, 0.16]))
        >>> result.weights.round(4)
        array([0.4615, 0.3077, 0.2308])
    """
    cov = validate_covariance(covariance)
    n = cov.shape[0]

    target_budgets = validate_budgets(budgets, n)
    target_shares = target_budgets if target_budgets is not None else np.full(n, 1.0 / n)
    target_pct = target_shares * 100

    weights = np.full(n, 1.0 / n)
    converged = False
    iterations = 0

    while iterations < max_iterations and not converged:
        sigma_w = cov @ weights
        vol = calculate_portfolio_volatility(weights, cov)
        if vol == 0:
            logger.warning("Portfolio volatility is zero; returning current weights unchanged")
            break

        marginal = sigma_w / vol
        current_rc = weights * marginal
        target_rc = target_shares * vol

        # Assets with no positive contribution are left where they are
        adjustable = (marginal > 0) & (current_rc > 0)
        weights = weights.copy()
        weights[adjustable] *= (target_rc[adjustable] / current_rc[adjustable]) ** ERC_DAMPING
        weights = weights / weights.sum()
        iterations += 1

        percentages = calculate_risk_contributions(weights, cov).percentages
        deviation = float(np.max(np.abs(percentages - target_pct)))

        if (iterations - 1) % 100 == 0:
            logger.debug(f"ERC iteration {iterations - 1}: max RC deviation = {deviation:.4f}%")

        if deviation < tolerance:
            logger.debug(f"ERC converged after {iterations} iterations: max deviation = {deviation:.2e}%")
            converged = True

    if not converged and iterations >= max_iterations:
        logger.warning(f"ERC did not converge after {max_iterations} iterations")

    rc = calculate_risk_contributions(weights, cov)
    final_deviation = float(np.max(np.abs(rc.percentages - target_pct)))

    return OptimizationResult(
        weights=weights,
        risk_contributions=rc.contributions,
        risk_contribution_shares=rc.shares,
        portfolio_volatility=rc.portfolio_volatility,
        objective_value=final_deviation,
        converged=converged,
        iterations=iterations,
        method="erc",
        asset_names=asset_names,
    )


def calculate_expected_return(weights: Sequence[float], mean_returns: Sequence[float]) -> float:
    """Portfolio expected return in percent from annualized mean returns."""
    return float(np.dot(np.asarray(weights, dtype=float), np.asarray(mean_returns, dtype=float)) * 100)


def calculate_sharpe_ratio(expected_return: float, portfolio_volatility: float,
                           risk_free_rate: float = 0.0) -> float:
    """
    Sharpe ratio from an expected return in percent and a volatility as a
    fraction. The risk-free rate is in percent.
    """
    if portfolio_volatility == 0:
        return 0.0
    return (expected_return - risk_free_rate) / (portfolio_volatility * 100)


def calculate_max_drawdown(values: Sequence[float]) -> float:
    """
    Maximum peak-to-trough decline, in percent.

    Example:
        >>> round(calculate_max_drawdown([100, 110, 105, 90, 95, 120]), 2)
        18.18
    """
    return calculate_max_drawdown_detailed(values).max_drawdown


def calculate_max_drawdown_detailed(values: Sequence[float]) -> DrawdownInfo:
    """Maximum drawdown with the peak/trough positions and recovery flag."""
    v = np.asarray(values, dtype=float)
    if len(v) == 0:
        return DrawdownInfo(0.0, 0, 0, 0.0, 0.0, False)

    max_dd = 0.0
    peak = v[0]
    peak_idx = 0
    dd_peak_idx = 0
    dd_trough_idx = 0

    for i, value in enumerate(v):
        if value > peak:
            peak = value
            peak_idx = i
        drawdown = (peak - value) / peak if peak > 0 else 0.0
        if drawdown > max_dd:
            max_dd = drawdown
            dd_peak_idx = peak_idx
            dd_trough_idx = i

    peak_value = float(v[dd_peak_idx])
    return DrawdownInfo(
        max_drawdown=max_dd * 100,
        peak_index=dd_peak_idx,
        trough_index=dd_trough_idx,
        peak_value=peak_value,
        trough_value=float(v[dd_trough_idx]),
        recovered=bool(v[-1] >= peak_value),
    )


def calculate_correlation_matrix(covariance) -> np.ndarray:
    """Correlation matrix from a covariance matrix (zero-variance assets get zero correlation)."""
    cov = validate_covariance(covariance)
    std = np.sqrt(np.clip(np.diag(cov), 0.0, None))
    denom = np.outer(std, std)
    corr = np.divide(cov, denom, out=np.zeros_like(cov), where=denom > 0)
    np.fill_diagonal(corr, 1.0)
    return corr


def calculate_average_correlation(correlation) -> float:
    """Mean pairwise correlation, excluding the diagonal."""
    corr = np.atleast_2d(np.asarray(correlation, dtype=float))
    n = corr.shape[0]
    if n < 2:
        return 0.0
    upper = corr[np.triu_indices(n, k=1)]
    return float(upper.mean())


def apply_volatility_target(weights: Sequence[float], covariance,
                            target_volatility: Optional[float]) -> VolatilityTarget:
    """
    Scale weights so the portfolio runs at `target_volatility` (annualized,
    as a fraction). A factor above 1 implies leverage, below 1 a cash buffer.
    Without a positive target, or for a zero-volatility portfolio, the
    weights are returned unscaled.
    """
    base = np.asarray(weights, dtype=float)
    natural = calculate_portfolio_volatility(base, covariance)

    factor = 1.0
    if target_volatility is not None and target_volatility > 0 and natural > 0:
        factor = target_volatility / natural

    return VolatilityTarget(
        weights=base * factor,
        base_weights=base,
        scaling_factor=factor,
        natural_volatility=natural,
        target_volatility=target_volatility,
    )


def drift_weights(weights: Sequence[float], start_prices: Sequence[float],
                  end_prices: Sequence[float]) -> np.ndarray:
    """Weights after holding the initial share counts from start to end prices."""
    w = np.asarray(weights, dtype=float)
    start = np.asarray(start_prices, dtype=float)
    end = np.asarray(end_prices, dtype=float)

    shares = np.divide(w, start, out=np.zeros_like(w), where=start > 0)
    values = shares * end
    total = values.sum()
    return values / (total if total != 0 else 1.0)


def estimate_dividend_yield(prices: Sequence[float], dividends: Sequence[float],
                            periods_per_year: int = TRADING_DAYS_PER_YEAR) -> float:
    """
    Annualized dividend yield in percent.

    Averages D_t / P_{t-1} over payment dates and multiplies by the observed
    payment frequency. A series without payments yields 0.
    """
    p = np.asarray(prices, dtype=float)
    d = np.asarray(dividends, dtype=float)
    if len(p) != len(d):
        raise DataError(f"Dividend series length ({len(d)}) does not match price series length ({len(p)})")
    if len(p) < 2:
        return 0.0

    paid = (d[1:] > 0) & (p[:-1] > 0)
    payments = int(paid.sum())
    if payments == 0:
        return 0.0

    avg_yield = float(np.mean(d[1:][paid] / p[:-1][paid]))
    payments_per_year = payments / (len(d) / periods_per_year)
    return avg_yield * payments_per_year * 100
