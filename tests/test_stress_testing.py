"""
Unit tests for volatility stress testing and worst-period detection
"""

import pytest
import numpy as np
import pandas as pd
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from riskbudget.utils.data_validation import DataError
from riskbudget.utils.risk_budgeting import calculate_portfolio_volatility, optimize_erc
from riskbudget.utils.stress_testing import (
    StressScenarioResult,
    WorstPeriod,
    find_worst_period,
    run_volatility_stress,
    stress_results_to_dataframe,
    stress_test_volatility,
)


class TestStressTestVolatility:
    """Tests for covariance scaling"""

    def test_scales_every_entry(self, correlated_covariance):
        stressed = stress_test_volatility(correlated_covariance, 2.0)
        assert stressed == pytest.approx(correlated_covariance * 2.0)

    def test_zero_scale(self, correlated_covariance):
        assert np.all(stress_test_volatility(correlated_covariance, 0.0) == 0)

    def test_negative_scale_raises(self, correlated_covariance):
        with pytest.raises(DataError):
            stress_test_volatility(correlated_covariance, -1.0)


class TestFindWorstPeriod:
    """Tests for the sliding worst-window scan"""

    def test_finds_largest_window_loss(self):
        worst = find_worst_period([100, 100, 90, 95, 100], window_days=2)
        assert isinstance(worst, WorstPeriod)
        assert worst.start_index == 0
        assert worst.end_index == 2
        assert worst.loss == pytest.approx(-10.0)

    def test_labels_with_dates(self):
        dates = list(pd.bdate_range("2023-01-02", periods=5))
        worst = find_worst_period([100, 100, 90, 95, 100], dates, window_days=2)
        assert worst.start_date == dates[0]
        assert worst.end_date == dates[2]
        assert worst.to_dict() == {"Start": "2023-01-02", "End": "2023-01-04", "Loss": "-10.00%"}

    def test_rising_series_has_no_loss(self):
        worst = find_worst_period([1, 2, 3, 4, 5], window_days=2)
        assert worst.loss == 0.0
        assert worst.start_index == 0

    def test_short_series(self):
        worst = find_worst_period([100, 50], window_days=30)
        assert worst.loss == 0.0
        assert worst.end_index == 0


class TestRunVolatilityStress:
    """Tests for stress scenarios"""

    def test_uniform_shock_keeps_erc_weights(self, correlated_covariance):
        base = optimize_erc(correlated_covariance)
        scenarios = run_volatility_stress(correlated_covariance, base.weights,
                                          asset_names=["A", "B", "C"])
        assert [s.scale_factor for s in scenarios] == [1.5, 2.0, 3.0]

        base_vol = calculate_portfolio_volatility(base.weights, correlated_covariance)
        for scenario in scenarios:
            assert isinstance(scenario, StressScenarioResult)
            assert scenario.base_volatility == pytest.approx(base_vol)
            assert scenario.stressed_volatility == pytest.approx(base_vol * np.sqrt(scenario.scale_factor))
            assert list(scenario.reoptimized_weights.values()) == pytest.approx(base.weights, abs=1e-4)

    def test_es_optimizer(self, diagonal_covariance):
        scenarios = run_volatility_stress(diagonal_covariance, [1 / 3] * 3, scale_factors=[2.0],
                                          optimizer="es")
        assert len(scenarios) == 1
        assert sum(scenarios[0].reoptimized_weights.values()) == pytest.approx(1.0)
        assert set(scenarios[0].reoptimized_weights) == {"Asset_0", "Asset_1", "Asset_2"}

    def test_es_reoptimizes_to_equal_tail_risk(self, diagonal_covariance):
        # Plain ES with zero means would pick minimum variance (~[0.59, 0.26, 0.15])
        scenarios = run_volatility_stress(diagonal_covariance, [1 / 3] * 3, scale_factors=[2.0],
                                          optimizer="es")
        weights = list(scenarios[0].reoptimized_weights.values())
        assert weights == pytest.approx([0.4615, 0.3077, 0.2308], abs=0.01)

    def test_weight_mismatch_raises(self, diagonal_covariance):
        with pytest.raises(DataError):
            run_volatility_stress(diagonal_covariance, [0.5, 0.5])

    def test_dataframe(self, diagonal_covariance):
        scenarios = run_volatility_stress(diagonal_covariance, [1 / 3] * 3, asset_names=["A", "B", "C"])
        frame = stress_results_to_dataframe(scenarios)
        assert len(frame) == 3
        assert list(frame.columns) == ["Scale", "Base Vol %", "Stressed Vol %", "Re-optimized Vol %",
                                       "A %", "B %", "C %"]
