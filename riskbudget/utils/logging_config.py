"""
Structured Logging System for riskbudget

This module provides the structured logging used by the console and modules:
- JSON-formatted or colored console output
- Contextual fields (optimizer, tickers, run parameters)
- File handler with daily or size-based rotation
- Latency and counter tracking for optimizations and backtests
- Specialized log methods for optimizer runs and backtests

Engine modules log through ``logging.getLogger(__name__)``; their records
propagate to the ``riskbudget`` logger configured here.
"""

import json
import logging
import logging.handlers
import sys
import threading
import time
import traceback
import statistics
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional


class LogLevel(Enum):
    """Log levels supported by RiskBudgetLogger"""
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    CRITICAL = logging.CRITICAL


class EventType(Enum):
    """Event types for structured logging"""
    OPTIMIZATION = "optimization"
    REBALANCE = "rebalance"
    BACKTEST_START = "backtest_start"
    BACKTEST_END = "backtest_end"
    ERROR = "error"
    PERFORMANCE = "performance"
    SYSTEM = "system"
    CONFIG = "config"
    DATA = "data"


@dataclass
class LogConfig:
    """Configuration for the logging system"""
    log_dir: str = "logs"
    log_level: LogLevel = LogLevel.INFO
    console_enabled: bool = True
    file_enabled: bool = False
    json_format: bool = False

    # File rotation settings
    rotation_type: str = "time"  # "time" or "size"
    max_bytes: int = 10 * 1024 * 1024
    backup_count: int = 30
    rotation_when: str = "midnight"
    rotation_interval: int = 1

    track_performance: bool = True

    # "development", "production", "testing"
    environment: str = "production"

    def __post_init__(self):
        """Apply environment-specific defaults"""
        if self.environment == "development":
            self.log_level = LogLevel.DEBUG
        elif self.environment == "testing":
            self.log_level = LogLevel.DEBUG
            self.console_enabled = False
            self.file_enabled = False


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging

    Produces log entries in the format:
    {
        "timestamp": "2026-01-22T10:30:00+00:00",
        "level": "INFO",
        "logger": "riskbudget",
        "event_type": "optimization",
        "message": "ERC optimization finished",
        ...context fields
    }
    """

    def __init__(self, include_traceback: bool = True):
        super().__init__()
        self.include_traceback = include_traceback

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "event_type"):
            log_entry["event_type"] = record.event_type

        if hasattr(record, "context"):
            log_entry.update(record.context)

        if record.exc_info and self.include_traceback:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info)
            }

        log_entry["source"] = {
            "file": record.filename,
            "line": record.lineno,
            "function": record.funcName
        }

        return json.dumps(log_entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Colored console formatter for human-readable output"""

    COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelno, self.RESET)
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

        base_msg = f"{color}[{timestamp}] [{record.levelname}] {record.getMessage()}{self.RESET}"

        if hasattr(record, "context") and record.context:
            context_str = " | ".join(f"{k}={v}" for k, v in record.context.items() if k != "traceback")
            if context_str:
                base_msg += f" | {context_str}"

        if record.exc_info:
            base_msg += f"\n{''.join(traceback.format_exception(*record.exc_info))}"

        return base_msg


@dataclass
class AggregatedMetrics:
    """Aggregated samples of one metric"""
    count: int = 0
    total: float = 0.0
    min_value: float = float('inf')
    max_value: float = float('-inf')
    samples: List[float] = field(default_factory=list)

    def add_sample(self, value: float):
        self.count += 1
        self.total += value
        self.min_value = min(self.min_value, value)
        self.max_value = max(self.max_value, value)
        self.samples.append(value)

    @property
    def mean(self) -> float:
        return self.total / self.count if self.count > 0 else 0.0

    @property
    def p50(self) -> float:
        return statistics.median(self.samples) if self.samples else 0.0

    @property
    def p95(self) -> float:
        if not self.samples:
            return 0.0
        ordered = sorted(self.samples)
        return ordered[min(int(0.95 * len(ordered)), len(ordered) - 1)]


class PerformanceTracker:
    """
    Latency and counter tracking

    Tracks optimizer and backtest latencies, run counts, convergence
    failures and errors.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._metrics: Dict[str, AggregatedMetrics] = defaultdict(AggregatedMetrics)
        self._counters: Dict[str, int] = defaultdict(int)
        self._start_time = datetime.now(timezone.utc)

    def record_latency(self, operation: str, latency_ms: float):
        """Record latency for an operation"""
        with self._lock:
            self._metrics[f"latency_{operation}"].add_sample(latency_ms)

    def increment_counter(self, counter_name: str, value: int = 1):
        with self._lock:
            self._counters[counter_name] += value

    def get_counter(self, counter_name: str) -> int:
        with self._lock:
            return self._counters[counter_name]

    def record_error(self, error_type: str):
        with self._lock:
            self._counters["errors_total"] += 1
            self._counters[f"errors_{error_type}"] += 1

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Get summary of all tracked metrics"""
        with self._lock:
            summary = {
                "uptime_seconds": (datetime.now(timezone.utc) - self._start_time).total_seconds(),
                "counters": dict(self._counters),
                "latencies": {}
            }
            for metric_name, agg in self._metrics.items():
                if agg.count > 0:
                    summary["latencies"][metric_name] = {
                        "count": agg.count,
                        "mean_ms": round(agg.mean, 3),
                        "min_ms": round(agg.min_value, 3),
                        "max_ms": round(agg.max_value, 3),
                        "p50_ms": round(agg.p50, 3),
                        "p95_ms": round(agg.p95, 3),
                    }
            return summary

    def reset(self):
        with self._lock:
            self._metrics.clear()
            self._counters.clear()
            self._start_time = datetime.now(timezone.utc)

    def context_timer(self, operation: str):
        """Context manager for timing operations"""
        return _TimerContext(self, operation)


class _TimerContext:
    """Context manager for timing operations"""

    def __init__(self, tracker: PerformanceTracker, operation: str):
        self.tracker = tracker
        self.operation = operation
        self.start_time = None
        self.elapsed_ms = 0.0

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed_ms = (time.perf_counter() - self.start_time) * 1000
        self.tracker.record_latency(self.operation, self.elapsed_ms)
        return False


class RiskBudgetLogger:
    """
    Structured logger for riskbudget

    Singleton wrapping the ``riskbudget`` stdlib logger, adding persistent
    context fields, event types and performance tracking.
    """

    _instance: Optional['RiskBudgetLogger'] = None
    _lock = threading.Lock()

    def __new__(cls, *args, **kwargs):
        """Singleton pattern for global logger access"""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self, name: str = "riskbudget", config: Optional[LogConfig] = None):
        if getattr(self, '_initialized', False):
            return

        self.name = name
        self.config = config or LogConfig()
        self._logger = logging.getLogger(name)
        self._logger.setLevel(self.config.log_level.value)
        self._logger.handlers.clear()

        self._performance_tracker = PerformanceTracker()
        self._context: Dict[str, Any] = {}

        self._setup_handlers()
        self._initialized = True

    def _setup_handlers(self):
        """Set up logging handlers based on configuration"""
        if self.config.console_enabled:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(self.config.log_level.value)
            if self.config.json_format:
                console_handler.setFormatter(JSONFormatter())
            else:
                console_handler.setFormatter(ConsoleFormatter())
            self._logger.addHandler(console_handler)

        if self.config.file_enabled:
            log_dir = Path(self.config.log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)
            log_file = log_dir / f"{self.name}.log"

            if self.config.rotation_type == "size":
                file_handler = logging.handlers.RotatingFileHandler(
                    log_file,
                    maxBytes=self.config.max_bytes,
                    backupCount=self.config.backup_count
                )
            else:
                file_handler = logging.handlers.TimedRotatingFileHandler(
                    log_file,
                    when=self.config.rotation_when,
                    interval=self.config.rotation_interval,
                    backupCount=self.config.backup_count
                )

            file_handler.setLevel(self.config.log_level.value)
            file_handler.setFormatter(JSONFormatter())
            self._logger.addHandler(file_handler)

        if not self._logger.handlers:
            self._logger.addHandler(logging.NullHandler())

    def set_context(self, **kwargs):
        """Set persistent context fields included in all log entries"""
        self._context.update(kwargs)

    def clear_context(self, *keys):
        """Clear specific context fields or all context if no keys provided"""
        if keys:
            for key in keys:
                self._context.pop(key, None)
        else:
            self._context.clear()

    def _log(self, level: int, message: str, event_type: Optional[EventType] = None, **kwargs):
        context = {**self._context, **kwargs}
        extra = {
            "event_type": event_type.value if event_type else EventType.SYSTEM.value,
            "context": context
        }
        self._logger.log(level, message, extra=extra)

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, EventType.SYSTEM, **kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, EventType.SYSTEM, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, EventType.SYSTEM, **kwargs)

    def error(self, message: str, **kwargs):
        self._log(logging.ERROR, message, EventType.ERROR, **kwargs)

    def log_optimization(
        self,
        method: str,
        tickers: List[str],
        converged: bool,
        iterations: int,
        portfolio_volatility: float,
        duration_ms: Optional[float] = None,
        **kwargs
    ):
        """
        Log the outcome of an optimizer run

        Args:
            method: Optimizer name ("erc" or "es")
            tickers: Assets in the allocation
            converged: Whether the stopping criterion was met
            iterations: Sweeps or gradient steps performed
            portfolio_volatility: Annualized volatility of the result
            duration_ms: Wall time of the run
            **kwargs: Additional fields
        """
        data = {
            "method": method,
            "tickers": tickers,
            "converged": converged,
            "iterations": iterations,
            "portfolio_volatility": round(portfolio_volatility, 6),
        }
        if duration_ms is not None:
            data["duration_ms"] = round(duration_ms, 3)
        data.update(kwargs)

        status = "converged" if converged else "stopped without convergence"
        self._log(logging.INFO, f"{method.upper()} optimization {status} after {iterations} iterations",
                  EventType.OPTIMIZATION, **data)

        if self.config.track_performance:
            self._performance_tracker.increment_counter(f"optimizations_{method}")
            if not converged:
                self._performance_tracker.increment_counter(f"optimizations_{method}_unconverged")
            if duration_ms is not None:
                self._performance_tracker.record_latency(f"optimize_{method}", duration_ms)

    def log_backtest_start(
        self,
        optimizer: str,
        tickers: List[str],
        start_date: str,
        end_date: str,
        initial_capital: float,
        parameters: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        """
        Log backtest start

        Args:
            optimizer: Optimizer used at each rebalance
            tickers: Assets being simulated
            start_date: First simulated date
            end_date: Last simulated date
            initial_capital: Starting capital
            parameters: Rebalance frequency, costs, lookback and similar
            **kwargs: Additional fields
        """
        data = {
            "optimizer": optimizer,
            "tickers": tickers,
            "start_date": start_date,
            "end_date": end_date,
            "initial_capital": initial_capital,
        }
        if parameters:
            data["parameters"] = parameters
        data.update(kwargs)

        self._log(logging.INFO,
                  f"Starting {optimizer.upper()} backtest on {len(tickers)} assets from {start_date} to {end_date}",
                  EventType.BACKTEST_START, **data)

        if self.config.track_performance:
            self._performance_tracker.increment_counter("backtests_started")

    def log_backtest_end(
        self,
        optimizer: str,
        total_return_pct: float,
        sharpe_ratio: float,
        max_drawdown: float,
        rebalance_count: int,
        duration_seconds: Optional[float] = None,
        **kwargs
    ):
        """
        Log backtest completion

        Args:
            optimizer: Optimizer used at each rebalance
            total_return_pct: Total return in percent
            sharpe_ratio: Sharpe ratio
            max_drawdown: Maximum drawdown in percent
            rebalance_count: Rebalances in the reported window
            duration_seconds: Backtest execution time
            **kwargs: Additional fields
        """
        data = {
            "optimizer": optimizer,
            "total_return_pct": total_return_pct,
            "sharpe_ratio": sharpe_ratio,
            "max_drawdown": max_drawdown,
            "rebalance_count": rebalance_count,
        }
        if duration_seconds is not None:
            data["duration_seconds"] = duration_seconds
        data.update(kwargs)

        self._log(logging.INFO,
                  f"Backtest completed for {optimizer.upper()}: {total_return_pct:.2f}% return, "
                  f"{sharpe_ratio:.3f} Sharpe, {rebalance_count} rebalances",
                  EventType.BACKTEST_END, **data)

        if self.config.track_performance:
            self._performance_tracker.increment_counter("backtests_completed")
            if duration_seconds:
                self._performance_tracker.record_latency("backtest_execution", duration_seconds * 1000)

    def log_data_load(self, source: str, tickers: List[str], rows: int, **kwargs):
        """Log where market data came from and how much was loaded"""
        self._log(logging.INFO, f"Loaded {rows} rows for {len(tickers)} assets from {source}",
                  EventType.DATA, source=source, tickers=tickers, rows=rows, **kwargs)

    def log_error(
        self,
        error: Exception,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        """
        Log an error with full traceback

        Args:
            error: Exception object
            operation: Operation that failed
            context: Additional context about the error
            **kwargs: Additional fields
        """
        error_data = {
            "error_type": type(error).__name__,
            "error_message": str(error),
            "traceback": traceback.format_exc(),
        }
        if operation:
            error_data["operation"] = operation
        if context:
            error_data["error_context"] = context
        error_data.update(kwargs)

        self._log(logging.ERROR,
                  f"Error in {operation or 'operation'}: {type(error).__name__}: {error}",
                  EventType.ERROR, **error_data)

        if self.config.track_performance:
            self._performance_tracker.record_error(type(error).__name__)

    @property
    def performance_tracker(self) -> PerformanceTracker:
        return self._performance_tracker

    def get_performance_summary(self) -> Dict[str, Any]:
        return self._performance_tracker.get_metrics_summary()


# Global logger instance
_global_logger: Optional[RiskBudgetLogger] = None


def setup_logging(
    name: str = "riskbudget",
    log_dir: str = "logs",
    log_level: str = "INFO",
    console_enabled: bool = True,
    file_enabled: bool = False,
    json_format: bool = False,
    rotation_type: str = "time",
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 30,
    environment: str = "production"
) -> RiskBudgetLogger:
    """
    Initialize logging with configuration

    Args:
        name: Logger name
        log_dir: Directory for log files
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        console_enabled: Enable console output
        file_enabled: Enable file output
        json_format: Use JSON format for console output
        rotation_type: "time" for daily rotation, "size" for size-based
        max_bytes: Max file size for size-based rotation
        backup_count: Number of backup files to keep
        environment: Environment name (development, production, testing)

    Returns:
        Configured RiskBudgetLogger instance
    """
    global _global_logger

    level = LogLevel.__members__.get(str(log_level).upper(), LogLevel.INFO)

    config = LogConfig(
        log_dir=log_dir,
        log_level=level,
        console_enabled=console_enabled,
        file_enabled=file_enabled,
        json_format=json_format,
        rotation_type=rotation_type,
        max_bytes=max_bytes,
        backup_count=backup_count,
        environment=environment
    )

    # Reset singleton for reconfiguration
    RiskBudgetLogger._instance = None

    _global_logger = RiskBudgetLogger(name=name, config=config)
    return _global_logger


def setup_logging_from_config(config: Dict[str, Any]) -> RiskBudgetLogger:
    """Configure logging from the ``logging`` section of the framework config."""
    section = config.get("logging", {}) or {}
    return setup_logging(
        log_dir=section.get("log_dir", "logs"),
        log_level=section.get("level", "INFO"),
        console_enabled=section.get("console_enabled", True),
        file_enabled=section.get("file_enabled", False),
        json_format=section.get("json_format", False),
        environment=section.get("environment", "production"),
    )


def get_logger() -> RiskBudgetLogger:
    """
    Get the global logger instance

    Returns:
        RiskBudgetLogger instance (creates default if not initialized)
    """
    global _global_logger

    if _global_logger is None:
        _global_logger = setup_logging()

    return _global_logger


def log_function_call(log_level: str = "DEBUG") -> Callable:
    """
    Decorator to log function calls with timing

    Args:
        log_level: Log level to use for successful calls

    Returns:
        Decorator function
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            logger = get_logger()
            start_time = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                elapsed_ms = (time.perf_counter() - start_time) * 1000
                logger.log_error(e, operation=func.__name__, context={"duration_ms": elapsed_ms})
                raise

            elapsed_ms = (time.perf_counter() - start_time) * 1000
            getattr(logger, log_level.lower())(
                f"Function {func.__name__} completed in {elapsed_ms:.2f}ms",
                function=func.__name__,
                module=func.__module__,
                duration_ms=elapsed_ms,
            )
            if logger.config.track_performance:
                logger.performance_tracker.record_latency(f"function_{func.__name__}", elapsed_ms)
            return result

        return wrapper
    return decorator


__all__ = [
    'RiskBudgetLogger',
    'LogConfig',
    'LogLevel',
    'EventType',
    'PerformanceTracker',
    'JSONFormatter',
    'ConsoleFormatter',
    'setup_logging',
    'setup_logging_from_config',
    'get_logger',
    'log_function_call',
]
