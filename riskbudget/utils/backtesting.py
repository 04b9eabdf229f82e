"""
Risk-Budget Portfolio Backtesting for riskbudget

Replays a risk-budgeted allocation against aligned historical prices:

- Day-by-day share accounting with dividend reinvestment (DRIP) or cash payout
- A shadow portfolio following the opposite dividend policy for comparison
- Calendar-driven re-optimization (ERC or Expected Shortfall) on a trailing
  lookback window, with proportional transaction costs on traded volume
- Burn-in slicing: results can be reported from a later start date, rebased
  to the initial capital
- Performance metrics and a risk-budgeted vs equal-weight comparison

Percent-valued result fields are in percent units (12.5 means 12.5%).
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple
import logging

import numpy as np
import pandas as pd

from .data_validation import DataError, validate_aligned_series, validate_budgets
from .expected_shortfall import (
    DEFAULT_CONFIDENCE_LEVEL,
    PARITY_BUDGET_STRENGTH,
    optimize_expected_shortfall,
    parity_budgets,
)
from .risk_budgeting import (
    TRADING_DAYS_PER_YEAR,
    calculate_covariance_matrix,
    calculate_max_drawdown_detailed,
    calculate_returns,
    calculate_risk_contributions,
    optimize_erc,
)

logger = logging.getLogger(__name__)

ROLLING_WINDOW_DAYS = 252
QUARTER_WINDOW_DAYS = 60
DEFAULT_ES_BUDGET_STRENGTH = PARITY_BUDGET_STRENGTH

# Failures inside a rebalance keep the previous targets instead of aborting the run
RECOVERABLE_ERRORS = (DataError, ValueError, FloatingPointError, np.linalg.LinAlgError)


class RebalanceFrequency(Enum):
    """Calendar rebalancing schedules"""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUALLY = "annually"


class OptimizerType(Enum):
    """Optimizer used to set target weights at each rebalance"""
    ERC = "erc"
    ES = "es"


@dataclass
class RebalanceConfig:
    """Rebalancing schedule and proportional transaction cost (0.001 = 0.1%)"""
    frequency: RebalanceFrequency = RebalanceFrequency.QUARTERLY
    transaction_cost: float = 0.001

    def __post_init__(self):
        if not isinstance(self.frequency, RebalanceFrequency):
            try:
                self.frequency = RebalanceFrequency(str(self.frequency).lower())
            except ValueError:
                valid = ", ".join(f.value for f in RebalanceFrequency)
                raise DataError(f"Unknown rebalance frequency '{self.frequency}' (expected one of: {valid})")
        if self.transaction_cost < 0:
            raise DataError(f"Transaction cost must be non-negative, got {self.transaction_cost}")


@dataclass(frozen=True, eq=False)
class SimulationState:
    """
    Holdings of one simulated portfolio on a given day.

    idle_cash is dividend cash received today and not reinvested; it counts
    towards today's value only and is absorbed by a same-day rebalance.
    """
    shares: np.ndarray
    reinvest_dividends: bool
    idle_cash: float = 0.0
    dividend_cash_total: float = 0.0

    def holdings(self, prices: np.ndarray) -> np.ndarray:
        return self.shares * prices

    def value(self, prices: np.ndarray) -> float:
        return self.idle_cash + float(self.shares @ prices)


@dataclass(frozen=True)
class TradeSummary:
    """Trades needed to move a state onto target weights"""
    trade_amounts: np.ndarray
    total_volume: float
    transaction_cost: float
    value_before: float
    value_after: float


@dataclass(frozen=True)
class AssetChange:
    """Per-asset effect of a rebalance (weights in percent)"""
    ticker: str
    before_weight: float
    after_weight: float
    drift: float
    trade_amount: float


@dataclass(frozen=True)
class RebalanceEvent:
    """
    Snapshot recorded each time the schedule triggers.

    Attributes:
        date: Rebalance date
        day_index: Position of the date in the simulated series
        portfolio_value: Value after transaction costs
        volatility: Rolling annualized volatility (%) over up to 252 days
        sharpe: Rolling Sharpe ratio over the same window
        quarterly_return: Return (%) over up to the last 60 days
        changes: Before/after weights, drift and trade amount per asset
        total_trading_volume: Sum of absolute dollar trades
        transaction_cost: Cost charged on the traded volume
        prices: Prices used to size the trades
        risk_contributions: Variance risk shares (%) of the new targets
        optimizer_failed: True when the previous targets were kept
    """
    date: object
    day_index: int
    portfolio_value: float
    volatility: float
    sharpe: float
    quarterly_return: float
    changes: Tuple[AssetChange, ...]
    total_trading_volume: float
    transaction_cost: float
    prices: Dict[str, float]
    risk_contributions: Dict[str, float]
    optimizer_failed: bool = False

    def scaled(self, factor: float) -> "RebalanceEvent":
        """Copy with every monetary field multiplied by factor."""
        return replace(
            self,
            portfolio_value=self.portfolio_value * factor,
            total_trading_volume=self.total_trading_volume * factor,
            transaction_cost=self.transaction_cost * factor,
            changes=tuple(replace(c, trade_amount=c.trade_amount * factor) for c in self.changes),
        )

    def to_dict(self) -> Dict:
        return {
            "Date": str(self.date)[:10],
            "Value": f"${self.portfolio_value:,.2f}",
            "Volume": f"${self.total_trading_volume:,.2f}",
            "Cost": f"${self.transaction_cost:,.2f}",
            "Volatility": f"{self.volatility:.2f}%",
            "Sharpe": f"{self.sharpe:.2f}",
            "60d Return": f"{self.quarterly_return:.2f}%",
            "Targets": ", ".join(f"{c.ticker} {c.after_weight:.1f}%" for c in self.changes),
        }


@dataclass
class BacktestResult:
    """Results from a risk-budget backtest run"""
    portfolio_values: np.ndarray
    returns: np.ndarray
    dates: List
    initial_capital: float = 10000.0
    final_value: float = 0.0
    total_return: float = 0.0
    annualized_return: float = 0.0
    annualized_volatility: float = 0.0
    sharpe_ratio: float = 0.0
    max_drawdown: float = 0.0
    max_drawdown_start: object = ""
    max_drawdown_end: object = ""
    rebalance_count: int = 0
    rebalance_events: List[RebalanceEvent] = field(default_factory=list)
    dividend_cash: float = 0.0
    dividend_cash_if_reinvested: float = 0.0
    missed_dividend_opportunity: float = 0.0
    shadow_portfolio_value: float = 0.0
    shadow_total_return: float = 0.0
    current_weights: Dict[str, float] = field(default_factory=dict)
    current_risk_contributions: Dict[str, float] = field(default_factory=dict)
    reinvest_dividends: bool = True
    optimizer: str = "erc"

    def to_dict(self) -> Dict:
        """Convert results to dictionary for display"""
        policy = "reinvested" if self.reinvest_dividends else "paid out"
        return {
            "Final Value": f"${self.final_value:,.2f}",
            "Total Return": f"{self.total_return:.2f}%",
            "Annualized Return": f"{self.annualized_return:.2f}%",
            "Volatility": f"{self.annualized_volatility:.2f}%",
            "Sharpe Ratio": f"{self.sharpe_ratio:.3f}",
            "Max Drawdown": f"{self.max_drawdown:.2f}%",
            "Max DD Period": f"{str(self.max_drawdown_start)[:10]} -> {str(self.max_drawdown_end)[:10]}",
            "Rebalances": self.rebalance_count,
            f"Dividends ({policy})": f"${self.dividend_cash:,.2f}",
            "Shadow Portfolio Value": f"${self.shadow_portfolio_value:,.2f}",
            "Shadow Total Return": f"{self.shadow_total_return:.2f}%",
            "Missed Dividend Opportunity": f"${self.missed_dividend_opportunity:,.2f}",
        }

    def to_dataframe(self) -> pd.DataFrame:
        """Portfolio value and daily return per date."""
        returns = np.concatenate([[0.0], self.returns]) if len(self.portfolio_values) else self.returns
        return pd.DataFrame(
            {"Value": self.portfolio_values, "Return": returns},
            index=pd.Index(self.dates[:len(self.portfolio_values)], name="Date"),
        )

    def rebalance_log(self) -> pd.DataFrame:
        """One row per retained rebalance event."""
        return pd.DataFrame([e.to_dict() for e in self.rebalance_events])


@dataclass
class StrategyComparison:
    """Risk-budgeted backtest next to a fixed equal-weight benchmark"""
    risk_budgeting: BacktestResult
    equal_weight: BacktestResult

    def to_dataframe(self) -> pd.DataFrame:
        rows = {}
        for label, res in (("Risk Budgeting", self.risk_budgeting), ("Equal Weight", self.equal_weight)):
            rows[label] = {
                "Total Return %": round(res.total_return, 2),
                "Annualized Return %": round(res.annualized_return, 2),
                "Volatility %": round(res.annualized_volatility, 2),
                "Sharpe": round(res.sharpe_ratio, 3),
                "Max Drawdown %": round(res.max_drawdown, 2),
            }
        return pd.DataFrame(rows).T


def should_rebalance(current_date, last_rebalance_date, frequency) -> bool:
    """
    Whether the calendar schedule triggers between two dates.

    daily: always; weekly: at least 7 days elapsed; monthly/quarterly/annually:
    the month, quarter or year differs from the last rebalance date.
    """
    if not isinstance(frequency, RebalanceFrequency):
        frequency = RebalanceConfig(frequency).frequency

    current = pd.Timestamp(current_date)
    last = pd.Timestamp(last_rebalance_date)

    if frequency == RebalanceFrequency.DAILY:
        return True
    if frequency == RebalanceFrequency.WEEKLY:
        return (current - last) >= pd.Timedelta(days=7)
    if frequency == RebalanceFrequency.MONTHLY:
        return current.month != last.month or current.year != last.year
    if frequency == RebalanceFrequency.QUARTERLY:
        return (current.month - 1) // 3 != (last.month - 1) // 3 or current.year != last.year
    return current.year != last.year


def apply_dividends(state: SimulationState, dividends: np.ndarray,
                    previous_prices: np.ndarray) -> SimulationState:
    """
    Pay today's dividends into a state.

    Reinvesting states buy shares at the previous close; others hold the
    cash as idle cash for the day.
    """
    per_share = np.where(dividends > 0, dividends, 0.0)
    cash = state.shares * per_share
    total = float(cash.sum())

    if state.reinvest_dividends:
        extra = np.divide(cash, previous_prices, out=np.zeros_like(cash), where=previous_prices > 0)
        return replace(state, shares=state.shares + extra, idle_cash=0.0,
                       dividend_cash_total=state.dividend_cash_total + total)

    return replace(state, idle_cash=total, dividend_cash_total=state.dividend_cash_total + total)


def rebalance_state(state: SimulationState, targets: np.ndarray, prices: np.ndarray,
                    cost_fraction: float) -> Tuple[SimulationState, TradeSummary]:
    """
    Move a state onto target weights at today's prices.

    Costs are charged on the absolute dollar volume traded and taken out of
    the portfolio before shares are resized.
    """
    value = state.value(prices)
    trades = np.abs(value * targets - state.holdings(prices))
    volume = float(trades.sum())
    cost = volume * cost_fraction
    after = value - cost

    new_shares = np.divide(after * targets, prices, out=np.zeros(len(prices)), where=prices > 0)
    summary = TradeSummary(trades, volume, cost, value, after)
    return replace(state, shares=new_shares, idle_cash=0.0), summary


def calculate_performance_metrics(values: Sequence[float], dates: Optional[Sequence] = None) -> Dict:
    """
    Metrics for a portfolio value series (percent units).

    Args:
        values: Portfolio values; the first entry is the base
        dates: Optional dates aligned with values, used to label the
            max-drawdown window

    Returns:
        Dictionary with total_return, annualized_return, annualized_volatility,
        sharpe_ratio, max_drawdown (negative), max_drawdown_start and
        max_drawdown_end
    """
    v = np.asarray(values, dtype=float)
    metrics = {
        "total_return": 0.0,
        "annualized_return": 0.0,
        "annualized_volatility": 0.0,
        "sharpe_ratio": 0.0,
        "max_drawdown": 0.0,
        "max_drawdown_start": dates[0] if dates is not None and len(dates) else "",
        "max_drawdown_end": dates[0] if dates is not None and len(dates) else "",
    }
    if len(v) < 2 or v[0] <= 0:
        return metrics

    returns = np.divide(v[1:], v[:-1], out=np.ones(len(v) - 1), where=v[:-1] > 0) - 1
    total = (v[-1] - v[0]) / v[0]
    years = (len(v) - 1) / TRADING_DAYS_PER_YEAR
    annualized = (1 + total) ** (1 / years) - 1 if 1 + total > 0 else -1.0
    volatility = float(np.std(returns) * np.sqrt(TRADING_DAYS_PER_YEAR))
    drawdown = calculate_max_drawdown_detailed(v)

    metrics.update({
        "total_return": total * 100,
        "annualized_return": annualized * 100,
        "annualized_volatility": volatility * 100,
        "sharpe_ratio": annualized / volatility if volatility > 0 else 0.0,
        "max_drawdown": -abs(drawdown.max_drawdown),
    })
    if dates is not None and len(dates):
        metrics["max_drawdown_start"] = dates[drawdown.peak_index]
        metrics["max_drawdown_end"] = dates[drawdown.trough_index]
    return metrics


def _window_covariance(window_prices: np.ndarray, shrinkage: Optional[float] = None) -> Tuple[np.ndarray, np.ndarray]:
    """Annualized covariance and mean returns of a (days x assets) price block."""
    returns = [calculate_returns(window_prices[:, i]) for i in range(window_prices.shape[1])]
    cov = calculate_covariance_matrix(returns, shrinkage=shrinkage)
    mu = np.array([r.mean() for r in returns]) * TRADING_DAYS_PER_YEAR
    return cov, mu


def _risk_share_snapshot(weights: np.ndarray, cov: Optional[np.ndarray]) -> np.ndarray:
    """Variance risk shares (%) of weights, falling back to the weights themselves."""
    if cov is not None:
        contributions = calculate_risk_contributions(weights, cov).contributions
        total = np.abs(contributions).sum()
        if total > 0 and np.all(np.isfinite(contributions)):
            return np.abs(contributions) / total * 100
    return weights * 100


def _trivial_result(dates, initial_weights, tickers, initial_capital, reinvest_dividends, optimizer) -> BacktestResult:
    first = dates[0] if len(dates) else ""
    weights_pct = {t: float(w) * 100 for t, w in zip(tickers, initial_weights)}
    return BacktestResult(
        portfolio_values=np.array([float(initial_capital)]),
        returns=np.array([]),
        dates=list(dates),
        initial_capital=initial_capital,
        final_value=initial_capital,
        max_drawdown_start=first,
        max_drawdown_end=first,
        shadow_portfolio_value=initial_capital,
        current_weights=dict(weights_pct),
        current_risk_contributions=dict(weights_pct),
        reinvest_dividends=reinvest_dividends,
        optimizer=optimizer,
    )


def run_backtest(
    prices: Dict[str, Sequence[float]],
    dividends: Optional[Dict[str, Sequence[float]]],
    dates: Sequence,
    initial_weights: Sequence[float],
    tickers: Sequence[str],
    rebalance_config: Optional[RebalanceConfig] = None,
    initial_capital: float = 10000.0,
    reinvest_dividends: bool = True,
    target_budgets: Optional[Sequence[float]] = None,
    lookback_years: Optional[float] = None,
    maintain_fixed_weights: bool = False,
    optimizer="erc",
    output_start_idx: int = 0,
    es_budget_strength: float = DEFAULT_ES_BUDGET_STRENGTH,
    es_confidence_level: float = DEFAULT_CONFIDENCE_LEVEL,
    shrinkage: Optional[float] = None,
) -> BacktestResult:
    """
    Simulate a risk-budgeted portfolio day by day.

    Each day: pay dividends (reinvest or hold as cash, the shadow portfolio
    doing the opposite), value the holdings, record the return, and on
    scheduled dates re-optimize on the trailing window and trade to the new
    targets net of transaction costs.

    Args:
        prices: Ticker -> price series aligned with dates
        dividends: Ticker -> dividend-per-share series aligned with dates,
            or None when no dividends are paid
        dates: Common date axis
        initial_weights: Starting weights, one per ticker
        tickers: Asset order for weights and budgets
        rebalance_config: Schedule and transaction cost (quarterly, 0.1% by default)
        initial_capital: Starting portfolio value
        reinvest_dividends: DRIP when True, cash payout otherwise
        target_budgets: Risk budgets used at each re-optimization. ERC
            budgets must sum to 1; ES budgets are normalized, and ES runs
            without budgets target equal tail-risk shares
        lookback_years: Trailing window for covariance (1 year when None)
        maintain_fixed_weights: Rebalance back to initial_weights instead of
            re-optimizing
        optimizer: "erc" or "es"
        output_start_idx: Burn-in length; results start at this index and
            are rebased to initial_capital. When a rebalance falls on this
            day, the actual series is rebased on its post-cost value while
            the shadow portfolio is rebased on its value before that day's
            trade, so the shadow figures exclude that one cost.
        es_budget_strength: Budget penalty used by the ES optimizer
        es_confidence_level: Tail confidence level used by the ES optimizer
        shrinkage: Optional covariance shrinkage intensity for each window

    Returns:
        BacktestResult

    Raises:
        DataError: On missing or misaligned series, initial weights that
            do not match the tickers, or invalid target budgets
    """
    rebalance_config = rebalance_config or RebalanceConfig()
    try:
        method = optimizer if isinstance(optimizer, OptimizerType) else OptimizerType(str(optimizer).lower())
    except ValueError:
        raise DataError(f"Unknown optimizer '{optimizer}' (expected 'erc' or 'es')")

    tickers = list(tickers)
    dates = list(dates)
    n_days = len(dates)
    w0 = np.asarray(initial_weights, dtype=float)

    if n_days < 2:
        logger.warning(f"Backtest needs at least 2 dates, got {n_days}; returning a flat result")
        return _trivial_result(dates, w0, tickers, initial_capital, reinvest_dividends, method.value)

    validate_aligned_series(prices, dividends, tickers, n_days)
    if len(w0) != len(tickers):
        raise DataError(f"Initial weights length ({len(w0)}) must match number of tickers ({len(tickers)})")

    # Bad budgets are fatal here; only window failures are recovered in the loop
    if method == OptimizerType.ES:
        budgets = parity_budgets(target_budgets, len(tickers))
    else:
        budgets = validate_budgets(target_budgets, len(tickers))

    price_matrix = np.column_stack([np.asarray(prices[t], dtype=float) for t in tickers])
    if dividends is None:
        dividend_matrix = np.zeros_like(price_matrix)
    else:
        dividend_matrix = np.column_stack([np.asarray(dividends[t], dtype=float) for t in tickers])

    stamps = pd.to_datetime(dates)
    slice_start = max(0, min(int(output_start_idx), n_days - 1))
    lookback_days = max(1, int(round(lookback_years * TRADING_DAYS_PER_YEAR))) if lookback_years else TRADING_DAYS_PER_YEAR
    frequency = rebalance_config.frequency
    cost_fraction = rebalance_config.transaction_cost

    logger.debug(
        f"Starting {method.value.upper()} backtest on {len(tickers)} assets "
        f"from {str(dates[0])[:10]} to {str(dates[-1])[:10]} ({frequency.value} rebalancing)"
    )

    start_prices = price_matrix[0]
    initial_shares = np.divide(initial_capital * w0, start_prices, out=np.zeros(len(w0)), where=start_prices > 0)
    actual = SimulationState(initial_shares, reinvest_dividends)
    shadow = SimulationState(initial_shares.copy(), not reinvest_dividends)

    values = [float(initial_capital)]
    returns = []
    targets = w0.copy()
    previous_targets = w0.copy()
    last_rebalance = stamps[0]
    events: List[RebalanceEvent] = []

    dividend_cash_at_slice = 0.0
    shadow_dividend_cash_at_slice = 0.0
    shadow_value_at_slice = 0.0

    for t in range(1, n_days):
        day_prices = price_matrix[t]
        actual = apply_dividends(actual, dividend_matrix[t], price_matrix[t - 1])
        shadow = apply_dividends(shadow, dividend_matrix[t], price_matrix[t - 1])

        value = actual.value(day_prices)
        previous_value = values[-1]
        returns.append((value - previous_value) / previous_value if previous_value > 0 else 0.0)
        values.append(value)

        if t == slice_start:
            dividend_cash_at_slice = actual.dividend_cash_total
            shadow_dividend_cash_at_slice = shadow.dividend_cash_total
            shadow_value_at_slice = shadow.value(day_prices)

        if not should_rebalance(stamps[t], last_rebalance, frequency):
            continue

        window_start = t - min(lookback_days, t)
        cov = None
        failed = False
        try:
            cov, mu = _window_covariance(price_matrix[window_start:t + 1], shrinkage)
            if maintain_fixed_weights:
                new_targets = w0.copy()
            elif method == OptimizerType.ES:
                new_targets = optimize_expected_shortfall(
                    mu, cov,
                    budgets=budgets,
                    budget_strength=es_budget_strength,
                    confidence_level=es_confidence_level,
                ).weights
            else:
                new_targets = optimize_erc(cov, 1000, 1e-6, budgets).weights
            if not np.all(np.isfinite(new_targets)):
                raise FloatingPointError("optimizer returned non-finite weights")
        except RECOVERABLE_ERRORS as e:
            if maintain_fixed_weights:
                new_targets = w0.copy()
            else:
                logger.warning(f"Rebalance on {str(dates[t])[:10]} kept previous targets: {e}")
                new_targets = targets.copy()
                failed = True

        before_weights = actual.holdings(day_prices) / value * 100 if value > 0 else np.zeros(len(tickers))

        recent = np.asarray(returns[-ROLLING_WINDOW_DAYS:])
        mean_return = recent.mean() if len(recent) else 0.0
        rolling_vol = float(np.sqrt(recent.var() * TRADING_DAYS_PER_YEAR) * 100) if len(recent) else 0.0
        rolling_sharpe = mean_return * TRADING_DAYS_PER_YEAR * 100 / rolling_vol if rolling_vol > 0 else 0.0

        quarter_start = values[-min(QUARTER_WINDOW_DAYS, len(values))]
        quarterly_return = (value - quarter_start) / quarter_start * 100 if quarter_start > 0 else 0.0

        actual, trade = rebalance_state(actual, new_targets, day_prices, cost_fraction)
        shadow, _ = rebalance_state(shadow, new_targets, day_prices, cost_fraction)
        values[-1] = trade.value_after

        risk_shares = _risk_share_snapshot(new_targets, cov)
        changes = tuple(
            AssetChange(
                ticker=ticker,
                before_weight=float(before_weights[i]),
                after_weight=float(new_targets[i] * 100),
                drift=float(before_weights[i] - previous_targets[i] * 100),
                trade_amount=float(trade.trade_amounts[i]),
            )
            for i, ticker in enumerate(tickers)
        )
        events.append(RebalanceEvent(
            date=dates[t],
            day_index=t,
            portfolio_value=trade.value_after,
            volatility=rolling_vol,
            sharpe=float(rolling_sharpe),
            quarterly_return=float(quarterly_return),
            changes=changes,
            total_trading_volume=trade.total_volume,
            transaction_cost=trade.transaction_cost,
            prices={ticker: float(day_prices[i]) for i, ticker in enumerate(tickers)},
            risk_contributions={ticker: float(risk_shares[i]) for i, ticker in enumerate(tickers)},
            optimizer_failed=failed,
        ))
        logger.debug(
            f"Rebalanced on {str(dates[t])[:10]}: volume ${trade.total_volume:,.2f}, "
            f"cost ${trade.transaction_cost:,.2f}"
        )

        targets = new_targets
        previous_targets = new_targets.copy()
        last_rebalance = stamps[t]

    # Drifted weights and risk at the end of the run
    final_prices = price_matrix[-1]
    final_holdings = actual.holdings(final_prices)
    holdings_total = final_holdings.sum()
    drifted = final_holdings / (holdings_total if holdings_total != 0 else 1.0)

    try:
        final_cov, _ = _window_covariance(price_matrix[max(0, n_days - lookback_days):], shrinkage)
    except RECOVERABLE_ERRORS:
        logger.warning("Insufficient data for final risk calculation, using weights as fallback")
        final_cov = None
    current_rc = _risk_share_snapshot(drifted, final_cov)

    # Burn-in slice, rebased to the initial capital
    all_values = np.asarray(values)
    scale = 1.0
    if slice_start > 0:
        out_dates = dates[slice_start:]
        base = all_values[slice_start]
        scale = initial_capital / base if base > 0 else 1.0
        out_values = all_values[slice_start:] * scale
        out_values[0] = initial_capital
        out_events = [e.scaled(scale) for e in events if e.day_index >= slice_start]
    else:
        out_dates = dates
        out_values = all_values
        out_events = events

    out_returns = np.divide(out_values[1:], out_values[:-1], out=np.ones(len(out_values) - 1),
                            where=out_values[:-1] > 0) - 1
    metrics = calculate_performance_metrics(out_values, out_dates)
    final_value = float(out_values[-1])

    shadow_value = shadow.value(final_prices)
    if slice_start > 0 and shadow_value_at_slice > 0:
        shadow_value = shadow_value / shadow_value_at_slice * initial_capital
    shadow_total_return = (shadow_value - initial_capital) / initial_capital * 100
    missed = final_value - shadow_value if reinvest_dividends else shadow_value - final_value

    result = BacktestResult(
        portfolio_values=out_values,
        returns=out_returns,
        dates=list(out_dates),
        initial_capital=initial_capital,
        final_value=final_value,
        total_return=metrics["total_return"],
        annualized_return=metrics["annualized_return"],
        annualized_volatility=metrics["annualized_volatility"],
        sharpe_ratio=metrics["sharpe_ratio"],
        max_drawdown=metrics["max_drawdown"],
        max_drawdown_start=metrics["max_drawdown_start"],
        max_drawdown_end=metrics["max_drawdown_end"],
        rebalance_count=len(out_events),
        rebalance_events=out_events,
        dividend_cash=actual.dividend_cash_total - dividend_cash_at_slice,
        dividend_cash_if_reinvested=shadow.dividend_cash_total - shadow_dividend_cash_at_slice,
        missed_dividend_opportunity=missed,
        shadow_portfolio_value=shadow_value,
        shadow_total_return=shadow_total_return,
        current_weights={t: float(w * 100) for t, w in zip(tickers, drifted)},
        current_risk_contributions={t: float(rc) for t, rc in zip(tickers, current_rc)},
        reinvest_dividends=reinvest_dividends,
        optimizer=method.value,
    )

    logger.debug(
        f"Backtest completed: {result.total_return:.2f}% return, {result.sharpe_ratio:.3f} Sharpe, "
        f"{result.rebalance_count} rebalances"
    )
    return result


def compare_strategies(
    prices: Dict[str, Sequence[float]],
    dividends: Optional[Dict[str, Sequence[float]]],
    dates: Sequence,
    tickers: Sequence[str],
    risk_budget_weights: Sequence[float],
    rebalance_config: Optional[RebalanceConfig] = None,
    reinvest_dividends: bool = True,
    target_budgets: Optional[Sequence[float]] = None,
    lookback_years: Optional[float] = None,
    optimizer="erc",
    output_start_idx: int = 0,
    initial_capital: float = 10000.0,
    **kwargs,
) -> StrategyComparison:
    """
    Run the risk-budgeted backtest and an equal-weight benchmark (rebalanced
    back to 1/n on the same schedule) over the same data.
    """
    common = dict(
        rebalance_config=rebalance_config,
        initial_capital=initial_capital,
        reinvest_dividends=reinvest_dividends,
        lookback_years=lookback_years,
        optimizer=optimizer,
        output_start_idx=output_start_idx,
        **kwargs,
    )
    risk_budgeting = run_backtest(prices, dividends, dates, risk_budget_weights, tickers,
                                  target_budgets=target_budgets, **common)

    n = len(tickers)
    equal_weight = run_backtest(prices, dividends, dates, np.full(n, 1.0 / n), tickers,
                                maintain_fixed_weights=True, **common)

    return StrategyComparison(risk_budgeting=risk_budgeting, equal_weight=equal_weight)
