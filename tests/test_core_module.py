"""
Unit tests for the core BaseModule class

Tests cover:
- Module initialization and shared options
- Option setting, typed retrieval and validation
- Symbol and numeric list parsing
- Market data loading from files and sample data
"""

import pytest
from unittest.mock import Mock
from typing import Dict, Any
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from riskbudget.core.module import BaseModule, ModuleMetadata
from riskbudget.utils.data_validation import DataError


class ConcreteModule(BaseModule):
    """Concrete implementation of BaseModule for testing"""

    @property
    def name(self) -> str:
        return "Test Module"

    @property
    def description(self) -> str:
        return "A test module for unit testing"

    @property
    def author(self) -> str:
        return "Test Author"

    @property
    def category(self) -> str:
        return "test"

    def _init_options(self):
        super()._init_options()
        self.options["BUDGETS"] = {"value": None, "required": False, "description": "Risk budgets"}
        self.options["RATE"] = {"value": "2.5", "required": False, "description": "A rate"}
        self.options["FLAG"] = {"value": "yes", "required": False, "description": "A flag"}

    def run(self) -> Dict[str, Any]:
        return {"symbols": self.parse_symbols()}


class MinimalModule(BaseModule):
    """Minimal implementation with only required properties"""

    @property
    def name(self) -> str:
        return "Minimal"

    @property
    def description(self) -> str:
        return "Minimal module"

    @property
    def author(self) -> str:
        return "Author"

    def run(self) -> Dict[str, Any]:
        return {}


@pytest.fixture
def mock_framework():
    """Create a mock framework with a plain config dictionary"""
    framework = Mock()
    framework.log = Mock()
    framework.config = {"data": {"sample_days": 120, "sample_seed": 5}}
    return framework


class TestBaseModuleInitialization:
    """Tests for BaseModule initialization"""

    def test_shared_options(self, mock_framework):
        module = ConcreteModule(mock_framework)
        for key in ("SYMBOLS", "PRICES_FILE", "DIVIDENDS_FILE", "SAMPLE_DAYS"):
            assert key in module.options
        assert module.get_option("SAMPLE_DAYS") == 120

    def test_default_category(self, mock_framework):
        assert MinimalModule(mock_framework).category == "general"

    def test_config_value_with_mock_config(self):
        module = MinimalModule(Mock())
        assert module.config_value("data", "sample_days", 1260) == 1260
        assert module.get_option("SAMPLE_DAYS") == 1260

    def test_required_options(self, mock_framework):
        assert MinimalModule(mock_framework).required_options == ["SYMBOLS"]

    def test_cannot_instantiate_abstract(self, mock_framework):
        with pytest.raises(TypeError):
            BaseModule(mock_framework)


class TestOptions:
    """Tests for option access"""

    def test_set_option_case_insensitive(self, mock_framework):
        module = ConcreteModule(mock_framework)
        assert module.set_option("symbols", "QQQ")
        assert module.get_option("SYMBOLS") == "QQQ"

    def test_set_unknown_option(self, mock_framework):
        module = ConcreteModule(mock_framework)
        assert not module.set_option("NOPE", 1)
        assert module.get_option("NOPE") is None

    def test_float_option(self, mock_framework):
        module = ConcreteModule(mock_framework)
        assert module.get_float_option("RATE") == 2.5
        assert module.get_float_option("BUDGETS", 0.1) == 0.1

    def test_bad_float_option(self, mock_framework):
        module = ConcreteModule(mock_framework)
        module.set_option("RATE", "abc")
        with pytest.raises(DataError, match="RATE must be a number"):
            module.get_float_option("RATE")

    def test_int_option(self, mock_framework):
        module = ConcreteModule(mock_framework)
        module.set_option("RATE", "63")
        assert module.get_int_option("RATE") == 63

    @pytest.mark.parametrize("value,expected", [
        ("yes", True), ("True", True), ("1", True), ("off", False), ("no", False), (False, False),
    ])
    def test_bool_option(self, mock_framework, value, expected):
        module = ConcreteModule(mock_framework)
        module.set_option("FLAG", value)
        assert module.get_bool_option("FLAG") is expected

    def test_bool_option_default(self, mock_framework):
        module = ConcreteModule(mock_framework)
        module.set_option("FLAG", "")
        assert module.get_bool_option("FLAG", True) is True

    def test_validate_options(self, mock_framework):
        module = ConcreteModule(mock_framework)
        assert module.validate_options() == (True, "OK")

        module.set_option("SYMBOLS", "")
        valid, msg = module.validate_options()
        assert not valid
        assert "SYMBOLS" in msg


class TestParsing:
    """Tests for symbol and list parsing"""

    def test_parse_symbols(self, mock_framework):
        module = ConcreteModule(mock_framework)
        assert module.parse_symbols(" spy, tlt ,SPY,,gld") == ["SPY", "TLT", "GLD"]

    def test_parse_symbols_from_option(self, mock_framework):
        module = ConcreteModule(mock_framework)
        assert module.parse_symbols() == ["SPY", "TLT", "GLD", "VNQ"]

    def test_parse_symbols_list(self, mock_framework):
        module = ConcreteModule(mock_framework)
        assert module.parse_symbols(["spy", "tlt"]) == ["SPY", "TLT"]

    def test_parse_float_list(self, mock_framework):
        module = ConcreteModule(mock_framework)
        assert module.parse_float_list("BUDGETS") is None
        module.set_option("BUDGETS", "0.5, 0.25,0.25")
        assert module.parse_float_list("BUDGETS") == [0.5, 0.25, 0.25]

    def test_parse_float_list_invalid(self, mock_framework):
        module = ConcreteModule(mock_framework)
        module.set_option("BUDGETS", "0.5,half")
        with pytest.raises(DataError):
            module.parse_float_list("BUDGETS")


class TestLoadMarketData:
    """Tests for market data loading"""

    def test_sample_data(self, mock_framework):
        module = ConcreteModule(mock_framework)
        module.set_option("SYMBOLS", "SPY,TLT")
        data = module.load_market_data()
        assert data.tickers == ["SPY", "TLT"]
        assert len(data) == 120

    def test_sample_data_uses_configured_seed(self, mock_framework):
        first = ConcreteModule(mock_framework).load_market_data()
        second = ConcreteModule(mock_framework).load_market_data()
        assert first.prices.equals(second.prices)

    def test_csv_file(self, mock_framework, tmp_path):
        path = tmp_path / "prices.csv"
        path.write_text("Date,SPY,TLT\n2023-01-03,100,90\n2023-01-04,101,91\n")
        module = ConcreteModule(mock_framework)
        module.set_option("SYMBOLS", "TLT")
        module.set_option("PRICES_FILE", str(path))
        data = module.load_market_data()
        assert data.tickers == ["TLT"]
        assert len(data) == 2

    def test_no_symbols(self, mock_framework):
        module = ConcreteModule(mock_framework)
        module.set_option("SYMBOLS", " , ")
        with pytest.raises(DataError, match="No symbols"):
            module.load_market_data()


class TestInfoAndLogging:
    """Tests for module info and logging"""

    def test_show_info(self, mock_framework):
        info = ConcreteModule(mock_framework).show_info()
        assert info["name"] == "Test Module"
        assert info["category"] == "test"
        assert "SYMBOLS" in info["options"]

    def test_log_forwards_to_framework(self, mock_framework):
        ConcreteModule(mock_framework).log("hello", "debug")
        mock_framework.log.assert_called_once_with("[Test Module] hello", "debug")

    def test_module_metadata(self):
        meta = ModuleMetadata("analysis/risk_budget", "Risk Budget Allocation", "analysis", "desc")
        assert meta.path == "analysis/risk_budget"
        assert meta.instance is None
        assert not meta.loaded
