"""
riskbudget - risk-budgeting portfolio construction and backtesting
"""

__version__ = "0.1.0"
