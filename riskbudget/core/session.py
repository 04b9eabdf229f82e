"""
Session management for riskbudget
"""

from typing import Dict, Any, Optional
from datetime import datetime


class Session:
    """
    Holds the console state: active module, module history, stored results
    and command history. Nothing is persisted between runs.
    """

    def __init__(self):
        self.current_module = None
        self.module_history = []
        self.workspace = {}
        self.variables = {}
        self.created_at = datetime.now()
        self.command_history = []

    def load_module(self, module):
        """Make `module` the active one, recording the module it replaces"""
        if self.current_module:
            self._record_unload()
        self.current_module = module

    def unload_module(self):
        if self.current_module:
            self._record_unload()
            self.current_module = None

    def _record_unload(self):
        self.module_history.append({
            "module": self.current_module.name,
            "unloaded_at": datetime.now()
        })

    def set_variable(self, key: str, value: Any):
        self.variables[key] = value

    def get_variable(self, key: str) -> Any:
        return self.variables.get(key)

    def store_results(self, module_name: str, results: Dict[str, Any]):
        """Append one run's results under the module name"""
        self.workspace.setdefault(module_name, []).append({
            "timestamp": datetime.now().isoformat(),
            "results": results
        })

    def get_results(self, module_name: str) -> list:
        return self.workspace.get(module_name, [])

    def last_results(self, module_name: str) -> Optional[Dict[str, Any]]:
        """Most recent results of a module, or None if it never ran"""
        runs = self.get_results(module_name)
        return runs[-1]["results"] if runs else None

    def add_command(self, command: str):
        self.command_history.append({
            "command": command,
            "timestamp": datetime.now()
        })

    def clear_workspace(self):
        self.workspace.clear()

    def export_session(self) -> Dict[str, Any]:
        """Summarize the session as plain data"""
        return {
            "created_at": self.created_at.isoformat(),
            "current_module": self.current_module.name if self.current_module else None,
            "variables": self.variables,
            "runs": {name: len(runs) for name, runs in self.workspace.items()},
            "command_history": [
                {"cmd": ch["command"], "ts": ch["timestamp"].isoformat()}
                for ch in self.command_history
            ]
        }
