"""
Expected Shortfall (Gaussian) Risk Budgeting for riskbudget

Tail-risk parity under a normal approximation of portfolio returns. The
optimizer minimizes

    ES(w) + lambda * sum_i (RCshare_i(w) - b_i)^2

where ES(w) = -mu'w + k_alpha * sqrt(w' S w) is the one-sided Gaussian
Expected Shortfall at confidence level alpha, and RCshare_i are the shares of
the tail term k_alpha * sqrt(w' S w) carried by each asset. Weights are
long-only, fully invested and optionally capped per asset.

    k_alpha = phi(Phi^-1(alpha)) / (1 - alpha)

Assets with higher variance (fatter Gaussian tails) receive lower weight.

References:
    - Acklam, P. J. "An algorithm for computing the inverse normal cumulative
      distribution function"
    - Roncalli, T. (2013). "Introduction to Risk Parity and Budgeting", ch. 2
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple
import logging
import math

import numpy as np
from scipy.stats import norm

from .data_validation import DataError, validate_covariance
from .risk_budgeting import OptimizationResult

logger = logging.getLogger(__name__)

# 5% tail cutoff
DEFAULT_CONFIDENCE_LEVEL = 0.95

DEFAULT_BUDGET_STRENGTH = 0.5
# Penalty used by the allocation, backtest and stress paths
PARITY_BUDGET_STRENGTH = 400.0
VARIANCE_FLOOR = 1e-16
MAX_BACKTRACKS = 50
MAX_PROJECTION_PASSES = 1000
PROJECTION_TOLERANCE = 1e-12

# Rational approximation coefficients for the inverse normal CDF
_A = (-3.969683028665376e+01, 2.209460984245205e+02, -2.759285104469687e+02,
      1.383577518672690e+02, -3.066479806614716e+01, 2.506628277459239e+00)
_B = (-5.447609879822406e+01, 1.615858368580409e+02, -1.556989798598866e+02,
      6.680131188771972e+01, -1.328068155288572e+01)
_C = (-7.784894002430293e-03, -3.223964580411365e-01, -2.400758277161838e+00,
      -2.549732539343734e+00, 4.374664141464968e+00, 2.938163982698783e+00)
_D = (7.784695709041462e-03, 3.224671290700398e-01, 2.445134137142996e+00,
      3.754408661907416e+00)
_P_LOW = 0.02425


@dataclass
class ExpectedShortfallResult(OptimizationResult):
    """
    Results from the Expected Shortfall optimizer.

    Attributes:
        k_alpha: Gaussian ES multiplier for the confidence level
        confidence_level: Tail confidence level alpha
        entropy: Shannon entropy of the weights, -sum(w ln w)
        diversification: exp(entropy), the effective number of holdings
    """
    k_alpha: float = 0.0
    confidence_level: float = DEFAULT_CONFIDENCE_LEVEL
    entropy: float = 0.0
    diversification: float = 1.0

    @property
    def expected_shortfall(self) -> float:
        """Objective value: ES plus the budget penalty."""
        return self.objective_value

    def to_dict(self):
        data = super().to_dict()
        data.update({
            'expected_shortfall': float(self.objective_value),
            'k_alpha': float(self.k_alpha),
            'confidence_level': float(self.confidence_level),
            'entropy': float(self.entropy),
            'diversification': float(self.diversification),
        })
        return data


def inv_norm_cdf(p: float) -> float:
    """
    Inverse of the standard normal CDF (relative error below 1.2e-9).

    Raises:
        DataError: If p is outside the open interval (0, 1)
    """
    if not 0 < p < 1:
        raise DataError(f"Probability must be in (0, 1), got {p}")

    a, b, c, d = _A, _B, _C, _D

    if p < _P_LOW:
        q = math.sqrt(-2 * math.log(p))
        return ((((((c[0] * q + c[1]) * q + c[2]) * q + c[3]) * q + c[4]) * q + c[5]) /
                ((((d[0] * q + d[1]) * q + d[2]) * q + d[3]) * q + 1))

    if p > 1 - _P_LOW:
        q = math.sqrt(-2 * math.log(1 - p))
        return -((((((c[0] * q + c[1]) * q + c[2]) * q + c[3]) * q + c[4]) * q + c[5]) /
                 ((((d[0] * q + d[1]) * q + d[2]) * q + d[3]) * q + 1))

    q = p - 0.5
    r = q * q
    return ((((((a[0] * r + a[1]) * r + a[2]) * r + a[3]) * r + a[4]) * r + a[5]) * q /
            (((((b[0] * r + b[1]) * r + b[2]) * r + b[3]) * r + b[4]) * r + 1))


def expected_shortfall_multiplier(confidence_level: float = DEFAULT_CONFIDENCE_LEVEL) -> float:
    """k_alpha = phi(Phi^-1(alpha)) / (1 - alpha)"""
    z = inv_norm_cdf(confidence_level)
    return float(norm.pdf(z) / (1 - confidence_level))


def project_capped_simplex(weights: Sequence[float], upper_bounds: np.ndarray) -> np.ndarray:
    """
    Project onto {w : 0 <= w_i <= cap_i, sum(w) = 1} by water-filling.

    Clamp to the box, then repeatedly spread the residual (sum - 1) equally
    over the coordinates that have not yet hit a bound.
    """
    ub = np.asarray(upper_bounds, dtype=float)
    x = np.clip(np.asarray(weights, dtype=float), 0.0, ub)
    active = np.ones(len(x), dtype=bool)

    for _ in range(MAX_PROJECTION_PASSES):
        diff = x.sum() - 1.0
        if abs(diff) < PROJECTION_TOLERANCE or not active.any():
            break

        delta = diff / active.sum()
        x[active] = np.clip(x[active] - delta, 0.0, ub[active])
        active &= ~((x == 0.0) | (x == ub))

    return x


def tail_risk_contributions(weights: np.ndarray, sigma: np.ndarray,
                            k_alpha: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Contributions of each asset to the tail term k_alpha * sqrt(w' S w).

    Returns:
        (RC_i, RC_i / sum(RC)); shares are zero when the total is negligible
    """
    sw = sigma @ weights
    stdev = math.sqrt(max(float(weights @ sw), VARIANCE_FLOOR))
    rc = weights * (k_alpha * sw / stdev)

    total = rc.sum()
    shares = rc / total if total > VARIANCE_FLOOR else np.zeros_like(rc)
    return rc, shares


def _objective(w, mu, sigma, k_alpha, budgets, strength) -> float:
    stdev = math.sqrt(max(float(w @ sigma @ w), VARIANCE_FLOOR))
    value = -float(mu @ w) + k_alpha * stdev

    if budgets is not None and strength > 0:
        _, shares = tail_risk_contributions(w, sigma, k_alpha)
        value += strength * float(np.sum((shares - budgets) ** 2))
    return value


def _gradient(w, mu, sigma, k_alpha, budgets, strength) -> np.ndarray:
    sw = sigma @ w
    stdev = math.sqrt(max(float(w @ sw), VARIANCE_FLOOR))
    grad = -mu + (k_alpha / stdev) * sw

    if budgets is not None and strength > 0:
        # Not the exact Jacobian of the risk shares: 2*lambda*(share - b) is
        # a smooth surrogate that steers shares towards the budgets.
        _, shares = tail_risk_contributions(w, sigma, k_alpha)
        grad = grad + 2 * strength * (shares - budgets)
    return grad


def normalize_budgets(budgets: Optional[Sequence[float]], n: int) -> Optional[np.ndarray]:
    """Check budgets for the ES optimizer and scale them to sum to 1 (None passes through)."""
    if budgets is None:
        return None
    b = np.asarray(budgets, dtype=float)
    if b.ndim != 1 or len(b) != n:
        raise DataError(f"Budgets length must match number of assets: expected {n}, got {b.size}")
    if np.any(b < 0):
        raise DataError("Budgets must be non-negative")
    total = b.sum()
    if total <= VARIANCE_FLOOR:
        raise DataError("Budgets must have a positive sum")
    return b / total


def parity_budgets(budgets: Optional[Sequence[float]], n: int) -> np.ndarray:
    """
    Budgets for tail-risk parity: the caller's budgets normalized, or equal
    1/n shares when none were given.

    Without budgets the optimizer minimizes plain ES and tends to a corner
    portfolio, so allocation code passes these instead of None.
    """
    if budgets is None:
        return np.full(n, 1.0 / max(n, 1))
    return normalize_budgets(budgets, n)


def _upper_bounds(caps: Optional[Sequence[Optional[float]]], n: int) -> np.ndarray:
    if caps is None:
        return np.full(n, np.inf)
    if len(caps) != n:
        raise DataError(f"Caps length must match number of assets: expected {n}, got {len(caps)}")

    ub = np.array([np.inf if c is None else max(0.0, float(c)) for c in caps])
    if ub.sum() < 1.0 - PROJECTION_TOLERANCE:
        raise DataError(f"Weight caps sum to {ub.sum():.4f}; a fully invested portfolio is infeasible")
    return ub


def _entropy(weights: np.ndarray) -> float:
    positive = weights[weights > 0]
    return float(-np.sum(positive * np.log(positive)))


def optimize_expected_shortfall(
    mu: Sequence[float],
    sigma,
    budgets: Optional[Sequence[float]] = None,
    budget_strength: Optional[float] = None,
    caps: Optional[Sequence[Optional[float]]] = None,
    initial_weights: Optional[Sequence[float]] = None,
    max_iterations: int = 500,
    tolerance: float = 1e-8,
    armijo_beta: float = 0.5,
    armijo_sigma: float = 1e-4,
    confidence_level: float = DEFAULT_CONFIDENCE_LEVEL,
    asset_names: Optional[List[str]] = None,
) -> ExpectedShortfallResult:
    """
    Long-only weights that minimize Gaussian Expected Shortfall, optionally
    penalized towards budgeted tail-risk shares.

    Projected gradient descent with Armijo backtracking: each step starts at
    1.0 and is multiplied by armijo_beta until

        f(P(x - step * g)) <= f(x) - armijo_sigma * step * ||g||^2

    where P is the projection onto the capped simplex. The search stops when
    ||g|| < tolerance (converged) or when no step is accepted.

    Args:
        mu: Expected (annualized) returns, length n
        sigma: n x n annualized covariance matrix
        budgets: Target tail-risk shares; normalized to sum to 1. When None
            no budget penalty is applied.
        budget_strength: Penalty weight lambda (default 0.5 with budgets).
            Larger values approach exact tail-risk parity.
        caps: Per-asset upper bounds; None entries mean uncapped
        initial_weights: Optional start point (projected onto the feasible set)
        max_iterations: Maximum number of gradient steps
        tolerance: Gradient-norm stopping threshold
        armijo_beta: Backtracking contraction factor
        armijo_sigma: Sufficient-decrease constant
        confidence_level: Tail confidence level alpha
        asset_names: Optional labels carried onto the result

    Returns:
        ExpectedShortfallResult with weights, tail-risk contributions and shares,
        k_alpha, entropy and diversification

    Raises:
        DataError: On empty or mismatched inputs, malformed budgets or caps,
            or a confidence level outside (0, 1)

    Note:
        For a constrained optimum the unprojected gradient rarely vanishes, so
        most runs end because the line search stalls and report
        converged=False even though the weights are stationary.
    """
    mu_vec = np.asarray(mu, dtype=float).ravel()
    n = len(mu_vec)
    if n == 0:
        raise DataError("mu is empty")
    try:
        cov = validate_covariance(sigma, n)
    except DataError as e:
        raise DataError(f"sigma must be n x n matching mu: {e}") from e

    k_alpha = expected_shortfall_multiplier(confidence_level)
    upper = _upper_bounds(caps, n)
    b = normalize_budgets(budgets, n)
    strength = max(0.0, budget_strength if budget_strength is not None else DEFAULT_BUDGET_STRENGTH) \
        if b is not None else 0.0

    if initial_weights is not None:
        start = np.asarray(initial_weights, dtype=float)
        if len(start) != n:
            raise DataError(f"Initial weights length must match number of assets: expected {n}, got {len(start)}")
    elif b is not None:
        start = b.copy()
    else:
        start = np.full(n, 1.0 / n)

    x = project_capped_simplex(start, upper)
    fx = _objective(x, mu_vec, cov, k_alpha, b, strength)

    converged = False
    iterations = 0
    while iterations < max_iterations:
        grad = _gradient(x, mu_vec, cov, k_alpha, b, strength)
        grad_norm = float(np.linalg.norm(grad))
        if grad_norm < tolerance:
            converged = True
            break

        step = 1.0
        accepted = False
        for _ in range(MAX_BACKTRACKS):
            candidate = project_capped_simplex(x - step * grad, upper)
            f_candidate = _objective(candidate, mu_vec, cov, k_alpha, b, strength)
            if f_candidate <= fx - armijo_sigma * step * grad_norm ** 2:
                x, fx = candidate, f_candidate
                accepted = True
                break
            step *= armijo_beta

        if not accepted:
            logger.debug(f"ES line search stalled after {iterations} iterations (|g| = {grad_norm:.3e})")
            break
        iterations += 1

    if iterations >= max_iterations:
        logger.warning(f"ES optimizer did not converge after {max_iterations} iterations")

    rc, shares = tail_risk_contributions(x, cov, k_alpha)
    entropy = _entropy(x)

    return ExpectedShortfallResult(
        weights=x,
        risk_contributions=rc,
        risk_contribution_shares=shares,
        portfolio_volatility=float(np.sqrt(max(0.0, float(x @ cov @ x)))),
        objective_value=fx,
        converged=converged,
        iterations=iterations,
        method="es",
        asset_names=asset_names,
        k_alpha=k_alpha,
        confidence_level=confidence_level,
        entropy=entropy,
        diversification=math.exp(entropy),
    )
