"""
Base module class for all riskbudget console modules
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional

from ..utils.data_loader import AlignedMarketData, load_aligned_csv
from ..utils.data_validation import DataError
from ..utils.logging_config import get_logger
from ..utils.sample_data import SampleDataGenerator

TRUE_STRINGS = {"true", "yes", "y", "1", "on"}


class BaseModule(ABC):
    """
    Base class for all analysis modules.

    A module declares options, reads them in ``run`` and returns a results
    dictionary that the console renders.
    """

    def __init__(self, framework):
        self.framework = framework
        self.options = {}
        self.results = {}
        self._init_options()

    @property
    @abstractmethod
    def name(self) -> str:
        """Module name"""
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        """Module description"""
        pass

    @property
    @abstractmethod
    def author(self) -> str:
        """Module author"""
        pass

    @property
    def category(self) -> str:
        """Module category (the directory the module lives in)"""
        return "general"

    @property
    def required_options(self) -> List[str]:
        return [key for key, opt in self.options.items() if opt.get("required", False)]

    def _init_options(self):
        """Initialize the market data options every module shares"""
        self.options = {
            "SYMBOLS": {"value": "SPY,TLT,GLD,VNQ", "required": True,
                        "description": "Comma-separated tickers, in allocation order"},
            "PRICES_FILE": {"value": None, "required": False,
                            "description": "Aligned price CSV (Date column + one column per ticker); sample data if unset"},
            "DIVIDENDS_FILE": {"value": None, "required": False,
                               "description": "Aligned dividend CSV in the same layout (optional)"},
            "SAMPLE_DAYS": {"value": self.config_value("data", "sample_days", 1260), "required": False,
                            "description": "Trading days of sample data when no price file is set"},
        }

    def config_value(self, section: str, key: str, default: Any = None) -> Any:
        """Read a value from the framework configuration, falling back to default"""
        config = getattr(self.framework, "config", None)
        if not isinstance(config, dict):
            return default
        section_values = config.get(section)
        if not isinstance(section_values, dict):
            return default
        value = section_values.get(key)
        return default if value is None else value

    def set_option(self, key: str, value: Any) -> bool:
        """Set an option value"""
        if key.upper() in self.options:
            self.options[key.upper()]["value"] = value
            return True
        return False

    def get_option(self, key: str) -> Any:
        """Get an option value"""
        if key.upper() in self.options:
            return self.options[key.upper()]["value"]
        return None

    def get_float_option(self, key: str, default: Optional[float] = None) -> Optional[float]:
        value = self.get_option(key)
        if value is None or value == "":
            return default
        try:
            return float(value)
        except (TypeError, ValueError):
            raise DataError(f"Option {key.upper()} must be a number, got {value!r}")

    def get_int_option(self, key: str, default: Optional[int] = None) -> Optional[int]:
        value = self.get_float_option(key, default)
        return None if value is None else int(value)

    def get_bool_option(self, key: str, default: bool = False) -> bool:
        value = self.get_option(key)
        if value is None or value == "":
            return default
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in TRUE_STRINGS

    def parse_symbols(self, symbols_input: str = None) -> List[str]:
        """
        Parse a comma-separated list of symbols.

        Handles lists with or without spaces ("SPY,TLT" or "SPY, TLT"),
        single symbols and Python lists. Symbols are upper-cased and
        de-duplicated, keeping first occurrence order.

        Args:
            symbols_input: String of symbols, or None to use SYMBOLS option

        Returns:
            List of cleaned, uppercase symbol strings
        """
        if symbols_input is None:
            symbols_input = self.get_option("SYMBOLS")

        if not symbols_input:
            return []

        if isinstance(symbols_input, str):
            symbols = [s.strip().upper() for s in symbols_input.split(',') if s.strip()]
        elif isinstance(symbols_input, list):
            symbols = [str(s).strip().upper() for s in symbols_input if s]
        else:
            symbols = [str(symbols_input).strip().upper()]

        return list(dict.fromkeys(symbols))

    def parse_float_list(self, key: str) -> Optional[List[float]]:
        """Parse a comma-separated numeric option such as BUDGETS; None when unset"""
        value = self.get_option(key)
        if value is None or str(value).strip() == "":
            return None
        if isinstance(value, (list, tuple)):
            items = value
        else:
            items = [v for v in str(value).split(',') if v.strip()]
        try:
            return [float(v) for v in items]
        except ValueError:
            raise DataError(f"Option {key.upper()} must be a comma-separated list of numbers, got {value!r}")

    def load_market_data(self) -> AlignedMarketData:
        """
        Load aligned market data for the SYMBOLS option.

        Reads PRICES_FILE/DIVIDENDS_FILE when set, otherwise generates sample
        data with the configured seed.

        Raises:
            DataError: If no symbols are set or the files fail validation
        """
        symbols = self.parse_symbols()
        if not symbols:
            raise DataError("No symbols provided")

        prices_file = self.get_option("PRICES_FILE")
        if prices_file:
            data = load_aligned_csv(prices_file, self.get_option("DIVIDENDS_FILE") or None, tickers=symbols)
            source = prices_file
        else:
            days = self.get_int_option("SAMPLE_DAYS", 1260)
            seed = int(self.config_value("data", "sample_seed", 42))
            data = SampleDataGenerator(seed=seed).generate_market_data(symbols, days=days)
            source = "sample data"

        get_logger().log_data_load(source, data.tickers, len(data), module=self.name)
        return data

    def validate_options(self) -> tuple:
        """Validate that all required options are set"""
        for key, opt in self.options.items():
            if opt.get("required", False) and opt["value"] in (None, ""):
                return False, f"Required option '{key}' is not set"
        return True, "OK"

    def show_options(self) -> Dict[str, Any]:
        return self.options

    def show_info(self) -> Dict[str, Any]:
        """Return module information"""
        return {
            "name": self.name,
            "description": self.description,
            "author": self.author,
            "category": self.category,
            "options": self.options
        }

    @abstractmethod
    def run(self) -> Dict[str, Any]:
        """
        Execute the module's main functionality.
        Returns a dictionary with results.
        """
        pass

    def cleanup(self):
        """Cleanup after module execution"""
        pass

    def log(self, message: str, level: str = "info"):
        """Log a message through the framework"""
        if self.framework:
            self.framework.log(f"[{self.name}] {message}", level)


class ModuleMetadata:
    """Metadata for module registration"""

    def __init__(self, path: str, name: str, category: str, description: str):
        self.path = path
        self.name = name
        self.category = category
        self.description = description
        self.loaded = False
        self.instance = None
