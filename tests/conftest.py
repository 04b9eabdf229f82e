"""
Pytest configuration and fixtures for riskbudget tests
"""

import pytest
import pandas as pd
import numpy as np
from pathlib import Path
import sys

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from riskbudget.utils.logging_config import setup_logging
from riskbudget.utils.sample_data import SampleDataGenerator


@pytest.fixture(autouse=True, scope="session")
def quiet_logging():
    """Route the structured logger to a null handler for the test run"""
    setup_logging(environment="testing")
    yield


@pytest.fixture
def diagonal_covariance():
    """Uncorrelated assets with 20%, 30% and 40% volatility"""
    return np.diag([0.04, 0.09, 0.16])


@pytest.fixture
def correlated_covariance():
    """Three assets with mixed correlations"""
    vols = np.array([0.15, 0.10, 0.25])
    corr = np.array([
        [1.0, 0.3, 0.6],
        [0.3, 1.0, -0.2],
        [0.6, -0.2, 1.0],
    ])
    return corr * np.outer(vols, vols)


@pytest.fixture
def market_data():
    """Two years of aligned sample prices and dividends for three ETFs"""
    return SampleDataGenerator(seed=7).generate_market_data(
        ["SPY", "TLT", "GLD"], days=504, end_date="2023-12-29"
    )


@pytest.fixture
def one_year_data():
    """One year (252 business days) of aligned sample data ending 2023-12-29"""
    return SampleDataGenerator(seed=11).generate_market_data(
        ["SPY", "TLT"], days=252, end_date="2023-12-29"
    )


@pytest.fixture
def constant_prices():
    """Ten business days of flat prices for two tickers"""
    dates = list(pd.bdate_range("2023-01-02", periods=10))
    prices = {"AAA": np.full(10, 100.0), "BBB": np.full(10, 100.0)}
    return dates, prices
