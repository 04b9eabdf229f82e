"""
Stress Testing for riskbudget

- Volatility shocks: scale a covariance matrix and re-optimize under it
- Worst-window scan: the fixed-length window with the largest loss in a
  portfolio value series
"""

from dataclasses import dataclass, asdict
from typing import Dict, List, Optional, Sequence
import logging

import numpy as np
import pandas as pd

from .data_validation import DataError, validate_covariance
from .expected_shortfall import (
    DEFAULT_CONFIDENCE_LEVEL,
    PARITY_BUDGET_STRENGTH,
    optimize_expected_shortfall,
    parity_budgets,
)
from .risk_budgeting import calculate_portfolio_volatility, optimize_erc

logger = logging.getLogger(__name__)

DEFAULT_VOLATILITY_SHOCKS = (1.5, 2.0, 3.0)


@dataclass
class WorstPeriod:
    """Window with the most negative relative change (loss in percent)"""
    start_index: int
    end_index: int
    loss: float
    start_date: object = ""
    end_date: object = ""

    def to_dict(self) -> Dict:
        return {
            "Start": str(self.start_date)[:10],
            "End": str(self.end_date)[:10],
            "Loss": f"{self.loss:.2f}%",
        }


@dataclass
class StressScenarioResult:
    """Portfolio risk under one covariance scale factor"""
    scale_factor: float
    base_volatility: float
    stressed_volatility: float
    reoptimized_weights: Dict[str, float]
    reoptimized_volatility: float
    converged: bool

    def to_dict(self) -> Dict:
        return asdict(self)


def stress_test_volatility(covariance, scale_factor: float) -> np.ndarray:
    """
    Multiply every covariance entry by scale_factor.

    Raises:
        DataError: If scale_factor is negative
    """
    if scale_factor < 0:
        raise DataError(f"Scale factor must be non-negative, got {scale_factor}")
    return np.asarray(covariance, dtype=float) * scale_factor


def find_worst_period(values: Sequence[float], dates: Optional[Sequence] = None,
                      window_days: int = 30) -> WorstPeriod:
    """
    Slide a window of `window_days` over the values and return the one with
    the most negative change from start to end.

    A series shorter than the window, or one that never declines over a
    window, reports a zero loss at index 0.
    """
    v = np.asarray(values, dtype=float)
    dates = list(dates) if dates is not None else []

    worst_loss = 0.0
    worst_start = 0
    worst_end = 0

    if window_days > 0 and len(v) > window_days:
        start = v[:-window_days]
        end = v[window_days:]
        changes = np.divide(end - start, start, out=np.zeros_like(start), where=start > 0)
        idx = int(np.argmin(changes))
        if changes[idx] < 0:
            worst_loss = float(changes[idx])
            worst_start = idx
            worst_end = idx + window_days

    return WorstPeriod(
        start_index=worst_start,
        end_index=worst_end,
        loss=worst_loss * 100,
        start_date=dates[worst_start] if worst_start < len(dates) else "",
        end_date=dates[worst_end] if worst_end < len(dates) else "",
    )


def run_volatility_stress(
    covariance,
    weights: Sequence[float],
    scale_factors: Sequence[float] = DEFAULT_VOLATILITY_SHOCKS,
    optimizer: str = "erc",
    mu: Optional[Sequence[float]] = None,
    budgets: Optional[Sequence[float]] = None,
    asset_names: Optional[List[str]] = None,
    budget_strength: float = PARITY_BUDGET_STRENGTH,
    confidence_level: float = DEFAULT_CONFIDENCE_LEVEL,
) -> List[StressScenarioResult]:
    """
    Re-run the allocation under scaled covariance matrices.

    For each scale factor, reports the volatility of the current weights under
    stress and the weights the optimizer would choose instead. A uniform
    scale leaves ERC weights unchanged, so drift between the two isolates
    how sensitive the allocation is to the shock.
    """
    cov = validate_covariance(covariance)
    n = cov.shape[0]
    w = np.asarray(weights, dtype=float)
    if len(w) != n:
        raise DataError(f"Weights length ({len(w)}) must match covariance size ({n})")
    names = list(asset_names) if asset_names else [f"Asset_{i}" for i in range(n)]
    mu_vec = np.zeros(n) if mu is None else np.asarray(mu, dtype=float)
    es_budgets = parity_budgets(budgets, n) if optimizer == "es" else None

    base_vol = calculate_portfolio_volatility(w, cov)
    results = []
    for factor in scale_factors:
        stressed = stress_test_volatility(cov, factor)
        if optimizer == "es":
            opt = optimize_expected_shortfall(mu_vec, stressed, budgets=es_budgets,
                                              budget_strength=budget_strength,
                                              confidence_level=confidence_level)
        else:
            opt = optimize_erc(stressed, budgets=budgets)

        results.append(StressScenarioResult(
            scale_factor=float(factor),
            base_volatility=base_vol,
            stressed_volatility=calculate_portfolio_volatility(w, stressed),
            reoptimized_weights={name: float(x) for name, x in zip(names, opt.weights)},
            reoptimized_volatility=opt.portfolio_volatility,
            converged=opt.converged,
        ))
        logger.debug(f"Volatility shock x{factor}: stressed vol {results[-1].stressed_volatility:.2%}")

    return results


def stress_results_to_dataframe(results: List[StressScenarioResult]) -> pd.DataFrame:
    """Tabulate stress scenarios, one row per scale factor (percent units)."""
    rows = []
    for r in results:
        row = {
            "Scale": r.scale_factor,
            "Base Vol %": round(r.base_volatility * 100, 2),
            "Stressed Vol %": round(r.stressed_volatility * 100, 2),
            "Re-optimized Vol %": round(r.reoptimized_volatility * 100, 2),
        }
        row.update({f"{k} %": round(v * 100, 2) for k, v in r.reoptimized_weights.items()})
        rows.append(row)
    return pd.DataFrame(rows)
