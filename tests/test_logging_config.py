"""
Unit tests for the structured logging system
"""

import json
import logging

import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from riskbudget.utils.logging_config import (
    ConsoleFormatter,
    EventType,
    JSONFormatter,
    LogConfig,
    LogLevel,
    PerformanceTracker,
    RiskBudgetLogger,
    get_logger,
    log_function_call,
    setup_logging,
    setup_logging_from_config,
)


@pytest.fixture
def test_logger():
    """Fresh quiet logger; the session default is restored afterwards"""
    logger = setup_logging(environment="testing")
    yield logger
    setup_logging(environment="testing")


def _record(message="hello", **attrs):
    record = logging.LogRecord("riskbudget", logging.INFO, __file__, 10, message, None, None)
    for key, value in attrs.items():
        setattr(record, key, value)
    return record


class TestLogConfig:
    """Tests for environment defaults"""

    def test_testing_environment_is_quiet(self):
        config = LogConfig(environment="testing")
        assert config.log_level == LogLevel.DEBUG
        assert not config.console_enabled
        assert not config.file_enabled

    def test_development_environment_is_verbose(self):
        assert LogConfig(environment="development").log_level == LogLevel.DEBUG

    def test_production_keeps_level(self):
        assert LogConfig(log_level=LogLevel.WARNING).log_level == LogLevel.WARNING


class TestFormatters:
    """Tests for JSON and console formatters"""

    def test_json_formatter(self):
        record = _record(event_type="optimization", context={"method": "erc"})
        entry = json.loads(JSONFormatter().format(record))
        assert entry["message"] == "hello"
        assert entry["level"] == "INFO"
        assert entry["event_type"] == "optimization"
        assert entry["method"] == "erc"
        assert entry["source"]["line"] == 10

    def test_console_formatter_appends_context(self):
        record = _record(context={"method": "es", "traceback": "hidden"})
        output = ConsoleFormatter().format(record)
        assert "[INFO] hello" in output
        assert "method=es" in output
        assert "hidden" not in output


class TestPerformanceTracker:
    """Tests for latency and counter tracking"""

    def test_counters(self):
        tracker = PerformanceTracker()
        tracker.increment_counter("runs")
        tracker.increment_counter("runs", 2)
        assert tracker.get_counter("runs") == 3

    def test_errors(self):
        tracker = PerformanceTracker()
        tracker.record_error("DataError")
        summary = tracker.get_metrics_summary()
        assert summary["counters"]["errors_total"] == 1
        assert summary["counters"]["errors_DataError"] == 1

    def test_latency_summary(self):
        tracker = PerformanceTracker()
        for value in (10.0, 20.0, 30.0):
            tracker.record_latency("optimize", value)
        stats = tracker.get_metrics_summary()["latencies"]["latency_optimize"]
        assert stats["count"] == 3
        assert stats["mean_ms"] == pytest.approx(20.0)
        assert stats["p50_ms"] == pytest.approx(20.0)
        assert stats["max_ms"] == pytest.approx(30.0)

    def test_context_timer(self):
        tracker = PerformanceTracker()
        with tracker.context_timer("block") as timer:
            pass
        assert timer.elapsed_ms >= 0
        assert tracker.get_metrics_summary()["latencies"]["latency_block"]["count"] == 1

    def test_reset(self):
        tracker = PerformanceTracker()
        tracker.increment_counter("runs")
        tracker.reset()
        assert tracker.get_counter("runs") == 0


class TestRiskBudgetLogger:
    """Tests for the structured logger"""

    def test_singleton(self, test_logger):
        assert RiskBudgetLogger() is test_logger
        assert get_logger() is test_logger

    def test_setup_resets_singleton(self, test_logger):
        other = setup_logging(environment="testing")
        assert other is not test_logger

    def test_log_optimization(self, test_logger, caplog):
        with caplog.at_level(logging.INFO, logger="riskbudget"):
            test_logger.log_optimization("erc", ["SPY", "TLT"], converged=True, iterations=12,
                                         portfolio_volatility=0.1234567, duration_ms=1.5)

        record = caplog.records[-1]
        assert record.event_type == EventType.OPTIMIZATION.value
        assert record.context["iterations"] == 12
        assert record.context["portfolio_volatility"] == 0.123457
        assert "ERC optimization converged after 12 iterations" in record.getMessage()
        assert test_logger.performance_tracker.get_counter("optimizations_erc") == 1

    def test_unconverged_optimization_is_counted(self, test_logger):
        test_logger.log_optimization("es", ["SPY"], converged=False, iterations=3, portfolio_volatility=0.1)
        assert test_logger.performance_tracker.get_counter("optimizations_es_unconverged") == 1

    def test_backtest_events(self, test_logger, caplog):
        with caplog.at_level(logging.INFO, logger="riskbudget"):
            test_logger.log_backtest_start("erc", ["SPY", "TLT"], "2023-01-03", "2023-12-29", 10000.0,
                                           parameters={"frequency": "quarterly"})
            test_logger.log_backtest_end("erc", 5.5, 0.8, -12.0, 4, duration_seconds=0.5)

        start, end = caplog.records[-2:]
        assert start.event_type == "backtest_start"
        assert start.context["parameters"] == {"frequency": "quarterly"}
        assert end.event_type == "backtest_end"
        assert end.context["rebalance_count"] == 4
        assert test_logger.performance_tracker.get_counter("backtests_completed") == 1

    def test_context_fields_are_attached(self, test_logger, caplog):
        test_logger.set_context(module="Stress Test")
        with caplog.at_level(logging.INFO, logger="riskbudget"):
            test_logger.info("running")
        assert caplog.records[-1].context["module"] == "Stress Test"

        test_logger.clear_context("module")
        with caplog.at_level(logging.INFO, logger="riskbudget"):
            test_logger.info("done")
        assert "module" not in caplog.records[-1].context

    def test_log_error(self, test_logger, caplog):
        with caplog.at_level(logging.ERROR, logger="riskbudget"):
            test_logger.log_error(ValueError("bad input"), operation="run", context={"SYMBOLS": "SPY"})

        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert record.context["error_type"] == "ValueError"
        assert record.context["error_context"] == {"SYMBOLS": "SPY"}
        assert test_logger.get_performance_summary()["counters"]["errors_ValueError"] == 1

    def test_log_data_load(self, test_logger, caplog):
        with caplog.at_level(logging.INFO, logger="riskbudget"):
            test_logger.log_data_load("sample", ["SPY", "TLT"], 252)
        assert caplog.records[-1].event_type == "data"
        assert "Loaded 252 rows for 2 assets from sample" in caplog.records[-1].getMessage()


class TestSetupFromConfig:
    """Tests for config-driven setup"""

    def test_reads_logging_section(self, tmp_path):
        try:
            logger = setup_logging_from_config({
                "logging": {"level": "warning", "console_enabled": False, "log_dir": str(tmp_path)}
            })
            assert logger.config.log_level == LogLevel.WARNING
            assert not logger.config.console_enabled
        finally:
            setup_logging(environment="testing")

    def test_file_handler_writes_json(self, tmp_path):
        try:
            logger = setup_logging(log_dir=str(tmp_path), console_enabled=False, file_enabled=True,
                                   rotation_type="size")
            logger.info("written to file")
            for handler in logger._logger.handlers:
                handler.flush()
            line = (tmp_path / "riskbudget.log").read_text().strip().splitlines()[-1]
            assert json.loads(line)["message"] == "written to file"
        finally:
            for handler in list(logging.getLogger("riskbudget").handlers):
                handler.close()
            setup_logging(environment="testing")


class TestLogFunctionCall:
    """Tests for the timing decorator"""

    def test_records_latency(self, test_logger):
        @log_function_call()
        def add(a, b):
            return a + b

        assert add(1, 2) == 3
        latencies = test_logger.get_performance_summary()["latencies"]
        assert latencies["latency_function_add"]["count"] == 1

    def test_errors_are_logged_and_raised(self, test_logger):
        @log_function_call()
        def fail():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            fail()
        assert test_logger.performance_tracker.get_counter("errors_RuntimeError") == 1
