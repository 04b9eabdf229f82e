"""
Sample Data Generator
When no data files are supplied, generate realistic aligned sample data
"""

from typing import List, Optional

import numpy as np
import pandas as pd

from .data_loader import AlignedMarketData


class SampleDataGenerator:
    """Generate correlated sample prices and quarterly dividends"""

    # annual drift, annual volatility, annual dividend yield
    ASSET_PROFILES = {
        'SPY': (0.08, 0.18, 0.015),
        'QQQ': (0.10, 0.24, 0.006),
        'TLT': (0.03, 0.14, 0.035),
        'IEF': (0.025, 0.07, 0.028),
        'GLD': (0.05, 0.15, 0.0),
        'VNQ': (0.06, 0.22, 0.04),
        'EFA': (0.06, 0.17, 0.03),
        'DBC': (0.03, 0.20, 0.0),
    }

    def __init__(self, seed: int = 42):
        self.random = np.random.RandomState(seed)

    def _get_profile(self, symbol: str):
        return self.ASSET_PROFILES.get(symbol.upper(), (0.06, 0.20, 0.02))

    def _get_base_price(self, symbol: str) -> float:
        """Get base price for symbol"""
        symbol_prices = {
            'SPY': 460.0,
            'QQQ': 390.0,
            'TLT': 95.0,
            'IEF': 95.0,
            'GLD': 185.0,
            'VNQ': 85.0,
            'EFA': 75.0,
            'DBC': 23.0,
        }
        return symbol_prices.get(symbol.upper(), 100.0)

    def correlation_matrix(self, tickers: List[str]) -> np.ndarray:
        """Equities co-move, bonds hedge equities, everything else is loosely linked."""
        equity = {'SPY', 'QQQ', 'EFA', 'VNQ'}
        bonds = {'TLT', 'IEF'}
        n = len(tickers)
        corr = np.eye(n)
        for i in range(n):
            for j in range(i + 1, n):
                a, b = tickers[i].upper(), tickers[j].upper()
                if a in equity and b in equity:
                    rho = 0.75
                elif a in bonds and b in bonds:
                    rho = 0.85
                elif (a in equity and b in bonds) or (a in bonds and b in equity):
                    rho = -0.25
                else:
                    rho = 0.10
                corr[i, j] = corr[j, i] = rho
        return corr

    def generate_market_data(self, tickers: List[str], days: int = 1260,
                             end_date: Optional[str] = None,
                             include_dividends: bool = True) -> AlignedMarketData:
        """
        Generate aligned business-day prices by correlated geometric Brownian
        motion, with dividends paid on the first trading day of each quarter.
        """
        tickers = [t.upper() for t in tickers]
        n = len(tickers)
        end = pd.Timestamp(end_date) if end_date else pd.Timestamp.today().normalize()
        dates = pd.bdate_range(end=end, periods=days)

        profiles = [self._get_profile(t) for t in tickers]
        drift = np.array([p[0] for p in profiles]) / 252
        vol = np.array([p[1] for p in profiles]) / np.sqrt(252)

        chol = np.linalg.cholesky(self.correlation_matrix(tickers))
        shocks = self.random.standard_normal((days, n)) @ chol.T
        log_returns = (drift - 0.5 * vol ** 2) + vol * shocks
        log_returns[0] = 0.0

        base = np.array([self._get_base_price(t) for t in tickers])
        prices = base * np.exp(np.cumsum(log_returns, axis=0))
        price_df = pd.DataFrame(prices, index=dates, columns=tickers)
        price_df.index.name = 'Date'

        dividend_df = pd.DataFrame(0.0, index=dates, columns=tickers)
        if include_dividends:
            quarter = dates.to_period('Q')
            payment_days = np.flatnonzero(quarter[1:] != quarter[:-1]) + 1
            for i, t in enumerate(tickers):
                annual_yield = profiles[i][2]
                if annual_yield <= 0:
                    continue
                for idx in payment_days:
                    dividend_df.iloc[idx, i] = prices[idx - 1, i] * annual_yield / 4

        return AlignedMarketData(price_df, dividend_df)
