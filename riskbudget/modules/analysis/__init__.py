"""
Allocation, backtest and stress analysis modules
"""
