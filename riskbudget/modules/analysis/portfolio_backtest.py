"""
Portfolio Backtest Module

Replays a risk-budgeted portfolio out of sample:
- Initial weights come from the optimizer on the in-sample part of the data
- The out-of-sample part is simulated with calendar rebalancing, dividends
  and transaction costs
- With STRICT_BURN_IN the simulation runs over the full history so each
  rebalance sees a full lookback window, and results are reported from the
  split date rebased to the initial capital
- An equal-weight portfolio on the same schedule is run for comparison
"""

import time
from typing import Any, Dict

import numpy as np
import pandas as pd

from riskbudget.core.module import BaseModule
from riskbudget.utils.allocation import optimize_allocation, window_statistics
from riskbudget.utils.backtesting import RebalanceConfig, compare_strategies, run_backtest
from riskbudget.utils.data_validation import DataError
from riskbudget.utils.helpers import format_currency, format_percentage
from riskbudget.utils.logging_config import get_logger
from riskbudget.utils.stress_testing import find_worst_period

WORST_PERIOD_DAYS = 30


class PortfolioBacktest(BaseModule):
    """Out-of-sample backtest of a risk-budgeted portfolio"""

    @property
    def name(self) -> str:
        return "Portfolio Backtest"

    @property
    def description(self) -> str:
        return "Backtest a risk-budgeted portfolio with dividends, rebalancing costs and an equal-weight benchmark"

    @property
    def author(self) -> str:
        return "riskbudget"

    @property
    def category(self) -> str:
        return "analysis"

    def _init_options(self):
        super()._init_options()
        self.options.update({
            "OPTIMIZER": {"value": self.config_value("optimizer", "method", "erc"), "required": True,
                          "description": "erc (variance risk parity) or es (Expected Shortfall)"},
            "BUDGETS": {"value": None, "required": False,
                        "description": "Comma-separated risk budgets summing to 1 (equal when unset)"},
            "FREQUENCY": {"value": self.config_value("backtest", "frequency", "quarterly"), "required": True,
                          "description": "Rebalance schedule: daily, weekly, monthly, quarterly, annually"},
            "TRANSACTION_COST": {"value": self.config_value("backtest", "transaction_cost", 0.001),
                                 "required": False, "description": "Cost per dollar traded (0.001 = 0.1%)"},
            "INITIAL_CAPITAL": {"value": self.config_value("backtest", "initial_capital", 10000.0),
                                "required": False, "description": "Starting portfolio value"},
            "REINVEST_DIVIDENDS": {"value": self.config_value("backtest", "reinvest_dividends", True),
                                   "required": False, "description": "Reinvest dividends (true) or hold them as cash"},
            "LOOKBACK_YEARS": {"value": self.config_value("backtest", "lookback_years", 1), "required": False,
                               "description": "Trailing years of data used at each rebalance"},
            "SPLIT": {"value": 0.5, "required": False,
                      "description": "Fraction of the data used in sample for the initial weights"},
            "STRICT_BURN_IN": {"value": False, "required": False,
                               "description": "Simulate over the full history and report from the split date"},
            "COMPARE": {"value": True, "required": False,
                        "description": "Also run an equal-weight portfolio on the same schedule"},
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
        config = RebalanceConfig(
            frequency=str(self.get_option("FREQUENCY")).lower(),
            transaction_cost=self.get_float_option("TRANSACTION_COST", 0.001),
        )
        initial_capital = self.get_float_option("INITIAL_CAPITAL", 10000.0)
        reinvest = self.get_bool_option("REINVEST_DIVIDENDS", True)
        lookback_years = self.get_float_option("LOOKBACK_YEARS", 1.0)
        split = self.get_float_option("SPLIT", 0.5)
        strict = self.get_bool_option("STRICT_BURN_IN", False)
        shrinkage = self.get_float_option("SHRINKAGE", 0.0)
        es_strength = self.get_float_option("ES_STRENGTH", 400.0)
        es_confidence = self.get_float_option("ES_CONFIDENCE", 0.95)

        if not 0 < split < 1:
            raise DataError(f"SPLIT must be between 0 and 1, got {split}")

        data = self.load_market_data()
        tickers = data.tickers
        split_idx = int(len(data) * split)
        if split_idx < 3 or len(data) - split_idx < 2:
            raise DataError(f"Not enough data to split {len(data)} rows at {split:.0%}")

        in_sample, out_of_sample = data.split(split_idx)
        stats = window_statistics(in_sample, shrinkage=shrinkage, include_dividends=False)
        initial = optimize_allocation(
            method, stats.covariance, stats.mean_returns,
            budgets=budgets,
            asset_names=tickers,
            budget_strength=es_strength,
            confidence_level=es_confidence,
        )

        simulated = data if strict else out_of_sample
        start_idx = split_idx if strict else 0
        dates = simulated.dates
        kwargs = dict(
            rebalance_config=config,
            reinvest_dividends=reinvest,
            target_budgets=budgets,
            lookback_years=lookback_years,
            optimizer=method,
            output_start_idx=start_idx,
            initial_capital=initial_capital,
            es_budget_strength=es_strength,
            es_confidence_level=es_confidence,
            shrinkage=shrinkage or None,
        )

        log = get_logger()
        log.log_backtest_start(
            optimizer=method,
            tickers=tickers,
            start_date=str(dates[start_idx])[:10],
            end_date=str(dates[-1])[:10],
            initial_capital=initial_capital,
            parameters={
                "frequency": config.frequency.value,
                "transaction_cost": config.transaction_cost,
                "reinvest_dividends": reinvest,
                "lookback_years": lookback_years,
                "strict_burn_in": strict,
            },
        )

        started = time.perf_counter()
        prices = simulated.price_dict()
        dividends = simulated.dividend_dict()
        if self.get_bool_option("COMPARE", True):
            comparison = compare_strategies(prices, dividends, dates, tickers, initial.weights, **kwargs)
            result = comparison.risk_budgeting
        else:
            comparison = None
            result = run_backtest(prices, dividends, dates, initial.weights, tickers, **kwargs)

        log.log_backtest_end(
            optimizer=method,
            total_return_pct=result.total_return,
            sharpe_ratio=result.sharpe_ratio,
            max_drawdown=result.max_drawdown,
            rebalance_count=result.rebalance_count,
            duration_seconds=time.perf_counter() - started,
        )

        worst = find_worst_period(result.portfolio_values, result.dates, WORST_PERIOD_DAYS)
        failed = sum(1 for e in result.rebalance_events if e.optimizer_failed)

        results = {
            "in_sample": {
                "Period": f"{str(in_sample.dates[0])[:10]} -> {str(in_sample.dates[-1])[:10]}",
                "Converged": initial.converged,
                "Volatility": format_percentage(initial.portfolio_volatility * 100),
            },
            "initial_weights": pd.DataFrame({
                "Ticker": tickers,
                "Weight %": np.round(initial.weights * 100, 2),
                "Risk Share %": np.round(initial.risk_contribution_pct, 2),
            }),
            "performance": result.to_dict(),
            "final_allocation": pd.DataFrame({
                "Ticker": tickers,
                "Weight %": [round(result.current_weights[t], 2) for t in tickers],
                "Risk Share %": [round(result.current_risk_contributions[t], 2) for t in tickers],
            }),
            "worst_30_day_period": worst.to_dict(),
        }
        if comparison is not None:
            results["comparison"] = comparison.to_dataframe().reset_index().rename(columns={"index": "Strategy"})
        if result.rebalance_events:
            results["rebalance_log"] = result.rebalance_log()
        if failed:
            results["optimizer_failures"] = f"{failed} rebalance(s) kept the previous targets"
        results["final_value"] = format_currency(result.final_value)

        self.results = results
        return results
