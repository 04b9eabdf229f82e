"""
Main framework engine for riskbudget
"""

import copy
import os
import importlib.util
import inspect
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Type

import yaml

from .module import BaseModule, ModuleMetadata
from .session import Session
from ..utils.logging_config import get_logger, log_function_call

logger = logging.getLogger(__name__)

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

DEFAULT_CONFIG = {
    "logging": {
        "level": "INFO",
        "json_format": False,
        "console_enabled": True,
        "file_enabled": False,
        "log_dir": "logs",
        "environment": "production",
    },
    "backtest": {
        "initial_capital": 10000.0,
        "frequency": "quarterly",
        "transaction_cost": 0.001,
        "lookback_years": 1,
        "reinvest_dividends": True,
    },
    "optimizer": {
        "method": "erc",
        "es_confidence_level": 0.95,
        "es_budget_strength": 400.0,
        "shrinkage": 0.0,
    },
    "data": {
        "sample_days": 1260,
        "sample_seed": 42,
    },
}


def merge_config(base: Dict[str, Any], override: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Recursively merge `override` into a copy of `base`"""
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


class Framework:
    """
    Core framework that manages modules, the session and configuration
    """

    def __init__(self, config_path: str = "config.yaml"):
        self.modules = {}  # path -> ModuleMetadata
        self.session = Session()
        self.config = self._load_config(config_path)
        self.log_messages = []

    def _load_config(self, config_path: str) -> Dict:
        """Load configuration from YAML file over the defaults"""
        if os.path.exists(config_path):
            with open(config_path, 'r') as f:
                return merge_config(DEFAULT_CONFIG, yaml.safe_load(f) or {})
        return copy.deepcopy(DEFAULT_CONFIG)

    def log(self, message: str, level: str = "info"):
        """Record a message and forward it to the standard logger"""
        self.log_messages.append({
            "level": level,
            "message": message,
            "timestamp": datetime.now().isoformat()
        })
        logger.log(LOG_LEVELS.get(level.lower(), logging.INFO), message)

    @log_function_call("DEBUG")
    def discover_modules(self, base_path: str = None):
        """
        Discover and register all available modules under riskbudget/modules.
        """
        if base_path is None:
            base_path = os.path.join(os.path.dirname(__file__), "..", "modules")

        base_path = os.path.abspath(base_path)

        for root, dirs, files in os.walk(base_path):
            dirs.sort()
            for file in sorted(files):
                if file.endswith('.py') and not file.startswith('__'):
                    module_file = os.path.join(root, file)
                    self._register_module(module_file, base_path)

    def _register_module(self, module_file: str, base_path: str):
        """Register a single module"""
        rel_path = os.path.relpath(module_file, base_path)
        module_path = rel_path.replace(os.sep, '/')[:-len('.py')]

        try:
            spec = importlib.util.spec_from_file_location(
                f"riskbudget.modules.{module_path.replace('/', '.')}",
                module_file
            )
            mod = importlib.util.module_from_spec(spec)
            spec.loader.exec_module(mod)
        except Exception as e:
            self.log(f"Failed to load module {module_file}: {str(e)}", "error")
            return

        for name, obj in inspect.getmembers(mod, inspect.isclass):
            if (issubclass(obj, BaseModule) and
                    obj is not BaseModule and
                    obj.__module__ == mod.__name__ and
                    not inspect.isabstract(obj)):

                # Temporary instance for metadata
                instance = obj(self)
                metadata = ModuleMetadata(
                    path=module_path,
                    name=instance.name,
                    category=instance.category,
                    description=instance.description
                )
                metadata.instance = obj  # Store the class, not instance

                self.modules[module_path] = metadata
                self.log(f"Loaded module: {module_path}", "debug")

    def get_module(self, module_path: str) -> Optional[Type[BaseModule]]:
        if module_path in self.modules:
            return self.modules[module_path].instance
        return None

    def use_module(self, module_path: str) -> Optional[BaseModule]:
        """
        Instantiate a module and make it the session's active module.
        """
        module_class = self.get_module(module_path)
        if module_class:
            instance = module_class(self)
            self.session.load_module(instance)
            return instance
        return None

    def list_modules(self, category: Optional[str] = None) -> List[ModuleMetadata]:
        """List all available modules, optionally filtered by category"""
        modules = list(self.modules.values())
        if category:
            modules = [m for m in modules if m.category == category]
        return modules

    def search_modules(self, query: str) -> List[ModuleMetadata]:
        """Search modules by name, description or path"""
        query = query.lower()
        results = []
        for module in self.modules.values():
            if (query in module.name.lower() or
                    query in module.description.lower() or
                    query in module.path.lower()):
                results.append(module)
        return results

    def run_module(self, module: BaseModule) -> Dict:
        """Execute a module and store results in the session"""
        valid, msg = module.validate_options()
        if not valid:
            return {"success": False, "error": msg}

        structured = get_logger()
        structured.set_context(module=module.name)
        timer = structured.performance_tracker.context_timer(f"module_{module.name.lower().replace(' ', '_')}")
        try:
            with timer:
                results = module.run()
        except Exception as e:
            structured.log_error(
                e,
                operation=module.name,
                context={k: v["value"] for k, v in module.options.items()}
            )
            self.log(f"Module execution failed: {str(e)}", "error")
            return {"success": False, "error": str(e)}
        finally:
            structured.clear_context("module")
            module.cleanup()

        results["success"] = True
        self.session.store_results(module.name, results)
        self.log(f"{module.name} finished in {timer.elapsed_ms / 1000:.2f}s", "debug")
        return results

    def get_session(self) -> Session:
        return self.session

    def shutdown(self):
        """Shutdown framework"""
        self.session.unload_module()
        self.log("Framework shutdown", "info")
