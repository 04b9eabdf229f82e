"""
Unit tests for the console Session
"""

import pytest
from unittest.mock import Mock
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from riskbudget.core.session import Session


def _module(name):
    module = Mock()
    module.name = name
    return module


class TestModuleLifecycle:
    """Tests for loading and unloading modules"""

    def test_initial_state(self):
        session = Session()
        assert session.current_module is None
        assert session.module_history == []
        assert session.workspace == {}

    def test_load_replaces_and_records(self):
        session = Session()
        session.load_module(_module("First"))
        session.load_module(_module("Second"))
        assert session.current_module.name == "Second"
        assert [h["module"] for h in session.module_history] == ["First"]

    def test_unload(self):
        session = Session()
        session.load_module(_module("First"))
        session.unload_module()
        assert session.current_module is None
        assert len(session.module_history) == 1

    def test_unload_without_module(self):
        session = Session()
        session.unload_module()
        assert session.module_history == []


class TestResults:
    """Tests for stored results"""

    def test_store_and_get(self):
        session = Session()
        session.store_results("Stress Test", {"a": 1})
        session.store_results("Stress Test", {"a": 2})
        runs = session.get_results("Stress Test")
        assert len(runs) == 2
        assert "timestamp" in runs[0]
        assert session.last_results("Stress Test") == {"a": 2}

    def test_missing_results(self):
        session = Session()
        assert session.get_results("Nope") == []
        assert session.last_results("Nope") is None

    def test_clear_workspace(self):
        session = Session()
        session.store_results("X", {})
        session.clear_workspace()
        assert session.workspace == {}


class TestVariablesAndHistory:
    """Tests for variables, command history and export"""

    def test_variables(self):
        session = Session()
        session.set_variable("capital", 10000)
        assert session.get_variable("capital") == 10000
        assert session.get_variable("missing") is None

    def test_export_session(self):
        session = Session()
        session.load_module(_module("Portfolio Backtest"))
        session.add_command("run")
        session.store_results("Portfolio Backtest", {"x": 1})

        data = session.export_session()
        assert data["current_module"] == "Portfolio Backtest"
        assert data["runs"] == {"Portfolio Backtest": 1}
        assert data["command_history"][0]["cmd"] == "run"
        assert "created_at" in data

    def test_export_without_module(self):
        assert Session().export_session()["current_module"] is None
