"""
Utility modules
"""

from .data_validation import DataError
from .helpers import format_currency, format_percentage, format_table
from .risk_budgeting import OptimizationResult, optimize_erc
from .expected_shortfall import optimize_expected_shortfall
from .backtesting import run_backtest, compare_strategies

__all__ = [
    'DataError', 'format_currency', 'format_percentage', 'format_table',
    'OptimizationResult', 'optimize_erc', 'optimize_expected_shortfall',
    'run_backtest', 'compare_strategies',
]
