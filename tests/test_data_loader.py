"""
Unit tests for aligned market data loading and sample data generation
"""

import pytest
import numpy as np
import pandas as pd
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from riskbudget.utils.data_loader import AlignedMarketData, load_aligned_csv
from riskbudget.utils.data_validation import DataError
from riskbudget.utils.sample_data import SampleDataGenerator


@pytest.fixture
def price_csv(tmp_path):
    path = tmp_path / "prices.csv"
    path.write_text(
        "Date,spy,tlt\n"
        "2023-01-03,100.0,90.0\n"
        "2023-01-04,101.0,89.0\n"
        "2023-01-05,102.0,91.0\n"
    )
    return path


@pytest.fixture
def dividend_csv(tmp_path):
    path = tmp_path / "dividends.csv"
    path.write_text(
        "Date,SPY\n"
        "2023-01-03,0.0\n"
        "2023-01-04,1.5\n"
        "2023-01-05,0.0\n"
    )
    return path


class TestLoadAlignedCsv:
    """Tests for reading wide CSV files"""

    def test_reads_prices(self, price_csv):
        data = load_aligned_csv(str(price_csv))
        assert data.tickers == ["SPY", "TLT"]
        assert len(data) == 3
        assert data.dates[0] == pd.Timestamp("2023-01-03")
        assert data.price_dict()["TLT"] == pytest.approx([90.0, 89.0, 91.0])

    def test_no_dividend_file_means_zero_dividends(self, price_csv):
        data = load_aligned_csv(str(price_csv))
        assert np.all(data.dividend_dict()["SPY"] == 0)

    def test_missing_dividend_columns_filled(self, price_csv, dividend_csv):
        data = load_aligned_csv(str(price_csv), str(dividend_csv))
        assert data.dividend_dict()["SPY"] == pytest.approx([0.0, 1.5, 0.0])
        assert data.dividend_dict()["TLT"] == pytest.approx([0.0, 0.0, 0.0])

    def test_ticker_subset(self, price_csv):
        data = load_aligned_csv(str(price_csv), tickers=["TLT"])
        assert data.tickers == ["TLT"]

    def test_unknown_ticker_raises(self, price_csv):
        with pytest.raises(DataError, match="QQQ"):
            load_aligned_csv(str(price_csv), tickers=["QQQ"])

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(DataError, match="File not found"):
            load_aligned_csv(str(tmp_path / "nope.csv"))

    def test_gap_fails_validation(self, tmp_path):
        path = tmp_path / "gappy.csv"
        path.write_text("Date,SPY\n2023-01-03,100\n2023-01-04,\n2023-01-05,102\n")
        with pytest.raises(DataError, match="failed validation"):
            load_aligned_csv(str(path))


class TestAlignedMarketData:
    """Tests for the aligned data container"""

    def test_split_at_midpoint(self, market_data):
        first, second = market_data.split()
        assert len(first) == 252
        assert len(second) == 252
        assert second.dates[0] == market_data.dates[252]

    def test_slice_keeps_dividends_aligned(self, market_data):
        part = market_data.slice(100, 200)
        assert len(part) == 100
        assert list(part.dividends.index) == list(part.prices.index)

    def test_select_reorders(self, market_data):
        subset = market_data.select(["GLD", "SPY"])
        assert subset.tickers == ["GLD", "SPY"]

    def test_none_dividends(self):
        prices = pd.DataFrame({"A": [1.0, 2.0]}, index=pd.bdate_range("2023-01-02", periods=2))
        data = AlignedMarketData(prices, None)
        assert data.dividend_dict()["A"] == pytest.approx([0.0, 0.0])


class TestSampleDataGenerator:
    """Tests for generated sample data"""

    def test_shape_and_dates(self, market_data):
        assert market_data.tickers == ["SPY", "TLT", "GLD"]
        assert len(market_data) == 504
        assert market_data.dates[-1] == pd.Timestamp("2023-12-29")

    def test_prices_positive(self, market_data):
        assert (market_data.prices > 0).all().all()

    def test_first_price_is_base(self, market_data):
        assert market_data.prices["SPY"].iloc[0] == pytest.approx(460.0)

    def test_quarterly_dividends(self, market_data):
        spy_payments = int((market_data.dividends["SPY"] > 0).sum())
        assert spy_payments == 7
        assert (market_data.dividends["GLD"] == 0).all()

    def test_no_dividends_option(self):
        data = SampleDataGenerator(seed=1).generate_market_data(["SPY"], days=100, include_dividends=False)
        assert (data.dividends == 0).all().all()

    def test_seed_is_reproducible(self):
        a = SampleDataGenerator(seed=3).generate_market_data(["SPY", "TLT"], days=50, end_date="2023-06-30")
        b = SampleDataGenerator(seed=3).generate_market_data(["SPY", "TLT"], days=50, end_date="2023-06-30")
        pd.testing.assert_frame_equal(a.prices, b.prices)

    def test_correlation_matrix(self):
        corr = SampleDataGenerator().correlation_matrix(["SPY", "QQQ", "TLT"])
        assert corr[0, 1] == 0.75
        assert corr[0, 2] == -0.25
        assert np.allclose(corr, corr.T)
