"""
Unit tests for helper utility functions
"""

import pytest
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from rich.table import Table

from riskbudget.utils.helpers import (
    create_rich_table,
    format_currency,
    format_number,
    format_percentage,
    format_table,
)


class TestFormatCurrency:
    """Tests for currency formatting"""

    def test_positive_value(self):
        assert format_currency(1234.56) == "$1,234.56"

    def test_negative_value(self):
        assert format_currency(-1234.56) == "$-1,234.56"

    def test_decimals(self):
        assert format_currency(10000, decimals=0) == "$10,000"

    def test_none(self):
        assert format_currency(None) == "N/A"


class TestFormatPercentage:
    """Tests for percentage formatting"""

    def test_positive_percentage(self):
        assert format_percentage(12.345) == "12.35%"

    def test_negative_percentage(self):
        assert format_percentage(-5.67, decimals=1) == "-5.7%"

    def test_none(self):
        assert format_percentage(None) == "N/A"


class TestFormatNumber:
    """Tests for number formatting"""

    def test_thousands_separator(self):
        assert format_number(1234567.891) == "1,234,567.89"

    def test_none(self):
        assert format_number(None) == "N/A"


class TestFormatTable:
    """Tests for tabulate-backed tables"""

    def test_uses_dict_keys_as_headers(self):
        output = format_table([{"Asset": "SPY", "Weight": "40.00%"}])
        assert "Asset" in output
        assert "SPY" in output
        assert "40.00%" in output

    def test_empty_data(self):
        assert format_table([]) == "No data to display"


class TestCreateRichTable:
    """Tests for Rich table creation"""

    def test_builds_columns_and_rows(self):
        table = create_rich_table("Weights", ["Ticker", "Weight"], [["SPY", 0.4], ["TLT", 0.6]])
        assert isinstance(table, Table)
        assert table.title == "Weights"
        assert len(table.columns) == 2
        assert table.row_count == 2
