"""
Unit tests for the shared allocation helpers

Tests cover:
- Trailing-window statistics
- Optimizer dispatch, including equal tail-risk budgets for ES
"""

import pytest
import numpy as np
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from riskbudget.utils.allocation import optimize_allocation, window_statistics
from riskbudget.utils.data_validation import DataError
from riskbudget.utils.expected_shortfall import optimize_expected_shortfall


class TestWindowStatistics:
    """Tests for covariance and mean-return estimation"""

    def test_lookback_limits_observations(self, market_data):
        stats = window_statistics(market_data, 100)
        assert stats.observations == 100
        assert stats.covariance.shape == (3, 3)
        assert stats.end_date == market_data.dates[-1]

    def test_whole_block(self, market_data):
        stats = window_statistics(market_data)
        assert stats.observations == len(market_data) - 1
        assert stats.tickers == ["SPY", "TLT", "GLD"]


class TestOptimizeAllocation:
    """Tests for optimizer dispatch"""

    def test_erc(self, market_data):
        stats = window_statistics(market_data, 252)
        result = optimize_allocation("ERC", stats.covariance, asset_names=stats.tickers)
        assert result.method == "erc"
        assert result.risk_contribution_shares == pytest.approx([1 / 3] * 3, abs=1e-6)

    def test_es_targets_equal_tail_risk_by_default(self, market_data):
        stats = window_statistics(market_data, 252)
        result = optimize_allocation("es", stats.covariance, stats.mean_returns)
        assert result.method == "es"
        assert result.risk_contribution_shares == pytest.approx([1 / 3] * 3, abs=0.02)
        assert result.weights.max() < 0.8

    def test_es_default_matches_explicit_budgets(self, market_data):
        stats = window_statistics(market_data, 252)
        default = optimize_allocation("es", stats.covariance, stats.mean_returns)
        explicit = optimize_allocation("es", stats.covariance, stats.mean_returns,
                                       budgets=[1 / 3] * 3, budget_strength=400.0)
        assert default.weights == pytest.approx(explicit.weights, abs=1e-9)

    def test_plain_es_is_still_available(self, market_data):
        stats = window_statistics(market_data, 252)
        plain = optimize_expected_shortfall(stats.mean_returns, stats.covariance)
        parity = optimize_allocation("es", stats.covariance, stats.mean_returns)
        assert plain.weights != pytest.approx(parity.weights, abs=1e-3)

    def test_unknown_method_raises(self, diagonal_covariance):
        with pytest.raises(DataError, match="Unknown optimizer"):
            optimize_allocation("mvo", diagonal_covariance)
