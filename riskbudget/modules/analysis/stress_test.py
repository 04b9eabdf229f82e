"""
Stress Test Module

Shocks the covariance of the current allocation by fixed volatility
multipliers, re-optimizes under each shock, and finds the worst window of
the allocation held at fixed weights over the full history.
"""

from typing import Any, Dict

import numpy as np
import pandas as pd

from riskbudget.core.module import BaseModule
from riskbudget.utils.allocation import optimize_allocation, window_statistics
from riskbudget.utils.backtesting import RebalanceConfig, run_backtest
from riskbudget.utils.data_validation import DataError
from riskbudget.utils.risk_budgeting import TRADING_DAYS_PER_YEAR, calculate_max_drawdown_detailed
from riskbudget.utils.stress_testing import (
    DEFAULT_VOLATILITY_SHOCKS,
    find_worst_period,
    run_volatility_stress,
    stress_results_to_dataframe,
)


class StressTest(BaseModule):
    """Volatility shocks and worst historical window for a risk-budgeted allocation"""

    @property
    def name(self) -> str:
        return "Stress Test"

    @property
    def description(self) -> str:
        return "Re-optimize under scaled volatility and find the worst historical window of the allocation"

    @property
    def author(self) -> str:
        return "riskbudget"

    @property
    def category(self) -> str:
        return "analysis"

    def _init_options(self):
        super()._init_options()
        lookback_years = float(self.config_value("backtest", "lookback_years", 1))
        self.options.update({
            "OPTIMIZER": {"value": self.config_value("optimizer", "method", "erc"), "required": True,
                          "description": "erc (variance risk parity) or es (Expected Shortfall)"},
            "BUDGETS": {"value": None, "required": False,
                        "description": "Comma-separated risk budgets summing to 1 (equal when unset)"},
            "SCALES": {"value": ",".join(str(s) for s in DEFAULT_VOLATILITY_SHOCKS), "required": True,
                       "description": "Comma-separated covariance scale factors"},
            "WINDOW_DAYS": {"value": 30, "required": False,
                            "description": "Length in trading days of the worst-window scan"},
            "LOOKBACK_DAYS": {"value": int(round(lookback_years * TRADING_DAYS_PER_YEAR)), "required": False,
                              "description": "Trailing trading days used to estimate covariance"},
            "SHRINKAGE": {"value": self.config_value("optimizer", "shrinkage", 0.0), "required": False,
                          "description": "Covariance shrinkage intensity towards the diagonal (0-1)"},
            "ES_CONFIDENCE": {"value": self.config_value("optimizer", "es_confidence_level", 0.95),
                              "required": False, "description": "Expected Shortfall confidence level"},
            "ES_STRENGTH": {"value": self.config_value("optimizer", "es_budget_strength", 400.0),
                            "required": False, "description": "Expected Shortfall budget penalty strength"},
        })

    def run(self) -> Dict[str, Any]:
        method = str(self.get_option("OPTIMIZER")).lower()
        budgets = self.parse_float_list("BUDGETS")
        scales = self.parse_float_list("SCALES") or list(DEFAULT_VOLATILITY_SHOCKS)
        window_days = self.get_int_option("WINDOW_DAYS", 30)
        lookback = self.get_int_option("LOOKBACK_DAYS", TRADING_DAYS_PER_YEAR)
        shrinkage = self.get_float_option("SHRINKAGE", 0.0)
        es_strength = self.get_float_option("ES_STRENGTH", 400.0)
        es_confidence = self.get_float_option("ES_CONFIDENCE", 0.95)

        data = self.load_market_data()
        if len(data) < 3:
            raise DataError(f"Need at least 3 rows of market data, got {len(data)}")
        tickers = data.tickers

        stats = window_statistics(data, lookback, shrinkage)
        allocation = optimize_allocation(
            method, stats.covariance, stats.mean_returns,
            budgets=budgets,
            asset_names=tickers,
            budget_strength=es_strength,
            confidence_level=es_confidence,
        )

        scenarios = run_volatility_stress(
            stats.covariance,
            allocation.weights,
            scale_factors=scales,
            optimizer=method,
            mu=stats.mean_returns,
            budgets=budgets,
            asset_names=tickers,
            budget_strength=es_strength,
            confidence_level=es_confidence,
        )

        # Allocation held at fixed weights over the whole history
        held = run_backtest(
            data.price_dict(), data.dividend_dict(), data.dates, allocation.weights, tickers,
            rebalance_config=RebalanceConfig(frequency="quarterly", transaction_cost=0.0),
            maintain_fixed_weights=True,
        )
        worst = find_worst_period(held.portfolio_values, held.dates, window_days)
        drawdown = calculate_max_drawdown_detailed(held.portfolio_values)

        results = {
            "allocation": pd.DataFrame({
                "Ticker": tickers,
                "Weight %": np.round(allocation.weights * 100, 2),
                "Risk Share %": np.round(allocation.risk_contribution_pct, 2),
            }),
            "volatility_shocks": stress_results_to_dataframe(scenarios),
            f"worst_{window_days}_day_period": worst.to_dict(),
            "historical_drawdown": {
                "Max Drawdown": f"{drawdown.max_drawdown:.2f}%",
                "Peak": str(held.dates[drawdown.peak_index])[:10],
                "Trough": str(held.dates[drawdown.trough_index])[:10],
                "Recovered": drawdown.recovered,
            },
        }
        self.results = results
        return results
