"""
Risk Budget Allocation Module

Computes today's risk-budgeted allocation from aligned market data:
- ERC (variance risk parity) or Expected Shortfall tail-risk parity weights
- Risk contribution per asset next to its budget
- Optional volatility targeting (leverage or cash buffer)
- Correlation matrix and trailing dividend yields
- How far the risk split has drifted since the last scheduled rebalance
"""

from typing import Any, Dict

import numpy as np
import pandas as pd

from riskbudget.core.module import BaseModule
from riskbudget.utils.allocation import optimize_allocation, window_statistics
from riskbudget.utils.data_validation import DataError
from riskbudget.utils.risk_budgeting import (
    TRADING_DAYS_PER_YEAR,
    apply_volatility_target,
    calculate_average_correlation,
    calculate_correlation_matrix,
    calculate_expected_return,
    calculate_risk_contributions,
    calculate_sharpe_ratio,
    drift_weights,
    estimate_dividend_yield,
)


class RiskBudgetAllocation(BaseModule):
    """Current risk-budgeted allocation for a set of tickers"""

    @property
    def name(self) -> str:
        return "Risk Budget Allocation"

    @property
    def description(self) -> str:
        return "ERC or Expected Shortfall risk-budgeted weights with risk breakdown and volatility targeting"

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
            "CAPS": {"value": None, "required": False,
                     "description": "Comma-separated per-asset weight caps (ES only)"},
            "LOOKBACK_DAYS": {"value": int(round(lookback_years * TRADING_DAYS_PER_YEAR)), "required": False,
                              "description": "Trailing trading days used to estimate covariance"},
            "SHRINKAGE": {"value": self.config_value("optimizer", "shrinkage", 0.0), "required": False,
                          "description": "Covariance shrinkage intensity towards the diagonal (0-1)"},
            "TARGET_VOL": {"value": None, "required": False,
                           "description": "Target annualized volatility in percent (e.g. 10); unset for none"},
            "RISK_FREE_RATE": {"value": 0.0, "required": False,
                               "description": "Annual risk-free rate in percent for the Sharpe ratio"},
            "DRIFT_DAYS": {"value": 63, "required": False,
                           "description": "Trading days since the last rebalance, for the drift check"},
            "ES_CONFIDENCE": {"value": self.config_value("optimizer", "es_confidence_level", 0.95),
                              "required": False, "description": "Expected Shortfall confidence level"},
            "ES_STRENGTH": {"value": self.config_value("optimizer", "es_budget_strength", 400.0),
                            "required": False, "description": "Expected Shortfall budget penalty strength"},
        })

    def run(self) -> Dict[str, Any]:
        method = str(self.get_option("OPTIMIZER")).lower()
        budgets = self.parse_float_list("BUDGETS")
        caps = self.parse_float_list("CAPS")
        lookback = self.get_int_option("LOOKBACK_DAYS", TRADING_DAYS_PER_YEAR)
        shrinkage = self.get_float_option("SHRINKAGE", 0.0)
        target_vol = self.get_float_option("TARGET_VOL")
        risk_free = self.get_float_option("RISK_FREE_RATE", 0.0)
        drift_days = self.get_int_option("DRIFT_DAYS", 63)

        data = self.load_market_data()
        tickers = data.tickers
        if len(data) < 3:
            raise DataError(f"Need at least 3 rows of market data, got {len(data)}")

        stats = window_statistics(data, lookback, shrinkage)
        result = optimize_allocation(
            method, stats.covariance, stats.mean_returns,
            budgets=budgets,
            caps=caps,
            asset_names=tickers,
            budget_strength=self.get_float_option("ES_STRENGTH"),
            confidence_level=self.get_float_option("ES_CONFIDENCE", 0.95),
        )

        weights = result.weights
        variance_rc = calculate_risk_contributions(weights, stats.covariance)
        if budgets:
            budget_pct = np.asarray(budgets, dtype=float) / np.sum(budgets) * 100
        else:
            budget_pct = np.full(len(tickers), 100.0 / len(tickers))
        prices = data.price_dict()
        dividends = data.dividend_dict()

        allocation = pd.DataFrame({
            "Ticker": tickers,
            "Weight %": np.round(weights * 100, 2),
            "Risk Share %": np.round(result.risk_contribution_pct, 2),
            "Variance RC %": np.round(variance_rc.percentages, 2),
            "Budget %": np.round(budget_pct, 2),
            "Volatility %": np.round(np.sqrt(np.diag(stats.covariance)) * 100, 2),
            "Dividend Yield %": [round(estimate_dividend_yield(prices[t], dividends[t]), 2) for t in tickers],
        })

        expected_return = calculate_expected_return(weights, stats.mean_returns)
        sharpe = calculate_sharpe_ratio(expected_return, result.portfolio_volatility, risk_free)
        correlation = calculate_correlation_matrix(stats.covariance)

        portfolio = {
            "Optimizer": method.upper(),
            "Window": f"{str(stats.start_date)[:10]} -> {str(stats.end_date)[:10]} ({stats.observations} returns)",
            "Volatility": f"{result.portfolio_volatility * 100:.2f}%",
            "Expected Return": f"{expected_return:.2f}%",
            "Sharpe Ratio": f"{sharpe:.3f}",
            "Average Correlation": f"{calculate_average_correlation(correlation):.3f}",
            "Converged": result.converged,
            "Iterations": result.iterations,
        }
        if method == "es":
            portfolio["ES Objective"] = f"{result.expected_shortfall:.4f}"
            portfolio["Diversification"] = f"{result.diversification:.3f}"

        results = {
            "portfolio": portfolio,
            "allocation": allocation,
            "correlation": pd.DataFrame(np.round(correlation, 3), columns=tickers).assign(Ticker=tickers)[["Ticker"] + tickers],
        }

        if target_vol:
            target = apply_volatility_target(weights, stats.covariance, target_vol / 100)
            results["volatility_target"] = target.to_dict()
            results["allocation"]["Targeted Weight %"] = np.round(target.weights * 100, 2)

        drift = self._drift_check(data, method, budgets, caps, lookback, shrinkage, drift_days, stats.covariance)
        if drift is not None:
            results["risk_drift"] = drift

        self.results = results
        return results

    def _drift_check(self, data, method, budgets, caps, lookback, shrinkage, drift_days, current_cov):
        """Allocation set `drift_days` ago, drifted with prices to today, under today's covariance."""
        if not drift_days or drift_days <= 0 or len(data) - drift_days < 3:
            return None

        past = data.slice(0, len(data) - drift_days)
        past_stats = window_statistics(past, lookback, shrinkage)
        past_result = optimize_allocation(
            method, past_stats.covariance, past_stats.mean_returns,
            budgets=budgets, caps=caps, asset_names=data.tickers,
            budget_strength=self.get_float_option("ES_STRENGTH"),
            confidence_level=self.get_float_option("ES_CONFIDENCE", 0.95),
        )

        prices = data.prices.to_numpy(dtype=float)
        drifted = drift_weights(past_result.weights, prices[len(past) - 1], prices[-1])
        drifted_rc = calculate_risk_contributions(drifted, current_cov)

        return pd.DataFrame({
            "Ticker": data.tickers,
            "Set Weight %": np.round(past_result.weights * 100, 2),
            "Drifted Weight %": np.round(drifted * 100, 2),
            "Drifted Risk %": np.round(drifted_rc.percentages, 2),
        })
