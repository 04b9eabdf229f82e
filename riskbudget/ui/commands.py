"""
Command handler for the riskbudget console
"""

from typing import Dict, List, Callable
import os
import shlex

from .display import Display
from ..utils.logging_config import get_logger


class CommandHandler:
    """
    Parses console input and dispatches it to the command methods.
    """

    def __init__(self, framework):
        self.framework = framework
        self.display = Display()
        self.commands = self._register_commands()

    def _register_commands(self) -> Dict[str, Callable]:
        """Register all available commands"""
        return {
            "help": self.cmd_help,
            "?": self.cmd_help,
            "show": self.cmd_show,
            "use": self.cmd_use,
            "back": self.cmd_back,
            "info": self.cmd_info,
            "options": self.cmd_options,
            "set": self.cmd_set,
            "unset": self.cmd_unset,
            "run": self.cmd_run,
            "search": self.cmd_search,
            "exit": self.cmd_exit,
            "quit": self.cmd_exit,
            "clear": self.cmd_clear,
            "history": self.cmd_history,
            "sessions": self.cmd_sessions,
        }

    def get_command_descriptions(self) -> Dict[str, str]:
        """Get descriptions for all commands"""
        return {
            "help/?": "Display help information",
            "show": "Show modules, options or the last results (show modules/options/results)",
            "use": "Load a module for use (use <module_path>)",
            "back": "Unload the current module",
            "info": "Display current module information",
            "options": "Show current module options",
            "set": "Set a module option (set <OPTION> <value>)",
            "unset": "Unset a module option (unset <OPTION>)",
            "run": "Execute the current module",
            "search": "Search for modules (search <query>)",
            "history": "Show command history",
            "sessions": "Show session information",
            "clear": "Clear the screen",
            "exit/quit": "Exit riskbudget",
        }

    def execute(self, command_line: str) -> bool:
        """
        Execute a command line.
        Returns False if should exit, True otherwise.
        """
        if not command_line.strip():
            return True

        self.framework.session.add_command(command_line)

        try:
            parts = shlex.split(command_line)
        except ValueError as e:
            self.display.print_error(f"Invalid command syntax: {str(e)}")
            return True

        if not parts:
            return True

        cmd = parts[0].lower()
        args = parts[1:]

        if cmd in self.commands:
            return self.commands[cmd](args)
        else:
            self.display.print_error(f"Unknown command: {cmd}")
            self.display.print_info("Type 'help' for available commands")
            return True

    def _require_module(self) -> bool:
        if not self.framework.session.current_module:
            self.display.print_error("No module loaded. Use 'use <module>' first")
            return False
        return True

    def cmd_help(self, args: List[str]) -> bool:
        self.display.print_help(self.get_command_descriptions())
        return True

    def cmd_show(self, args: List[str]) -> bool:
        """Show modules, options or results"""
        if not args:
            self.display.print_error("Usage: show <modules|options|results>")
            return True

        what = args[0].lower()

        if what == "modules":
            category = args[1] if len(args) > 1 else None
            modules = self.framework.list_modules(category)
            self.display.print_modules(modules, category or "All")

        elif what == "options":
            if self._require_module():
                options = self.framework.session.current_module.show_options()
                self.display.print_options(options)

        elif what == "results":
            if self._require_module():
                name = self.framework.session.current_module.name
                results = self.framework.session.last_results(name)
                if results:
                    self.display.print_results(results)
                else:
                    self.display.print_info(f"No results yet for {name}")

        else:
            self.display.print_error(f"Unknown show option: {what}")

        return True

    def cmd_use(self, args: List[str]) -> bool:
        """Load a module by path, falling back to a keyword search"""
        if not args:
            self.display.print_error("Usage: use <module_path_or_keyword>")
            return True

        query = args[0]

        module = self.framework.use_module(query)
        if module:
            self.display.print_success(f"Loaded module: {module.name}")
            self.display.print_info(module.description)
            return True

        self.display.print_info(f"Module '{query}' not found, searching for matches...")
        matches = self.framework.search_modules(query)

        if not matches:
            self.display.print_error(f"No modules found matching '{query}'")
            self.display.print_info("Use 'show modules' to see all available modules")
            return True

        if len(matches) == 1:
            module = self.framework.use_module(matches[0].path)
            if module:
                self.display.print_success(f"Auto-loaded: {module.name}")
                self.display.print_info(module.description)
        else:
            self.display.print_info(f"Found {len(matches)} matching modules:")
            self.display.print_modules(matches, f"Search: '{query}'")
            self.display.print_info("Please specify the full module path, e.g.:")
            self.display.print_info(f"  use {matches[0].path}")

        return True

    def cmd_back(self, args: List[str]) -> bool:
        if self.framework.session.current_module:
            name = self.framework.session.current_module.name
            self.framework.session.unload_module()
            self.display.print_success(f"Unloaded module: {name}")
        else:
            self.display.print_warning("No module loaded")
        return True

    def cmd_info(self, args: List[str]) -> bool:
        """Display module information"""
        if self._require_module():
            info = self.framework.session.current_module.show_info()
            self.display.print_module_info(info)
            self.display.print("\n")
            self.display.print_options(info['options'])
        return True

    def cmd_options(self, args: List[str]) -> bool:
        return self.cmd_show(["options"])

    def cmd_set(self, args: List[str]) -> bool:
        """Set a module option"""
        if not self._require_module():
            return True

        if len(args) < 2:
            self.display.print_error("Usage: set <OPTION> <value>")
            return True

        option = args[0].upper()
        value = " ".join(args[1:])

        if self.framework.session.current_module.set_option(option, value):
            self.display.print_success(f"Set {option} => {value}")
        else:
            self.display.print_error(f"Unknown option: {option}")

        return True

    def cmd_unset(self, args: List[str]) -> bool:
        """Unset a module option"""
        if not self._require_module():
            return True

        if not args:
            self.display.print_error("Usage: unset <OPTION>")
            return True

        option = args[0].upper()
        if self.framework.session.current_module.set_option(option, None):
            self.display.print_success(f"Unset {option}")
        else:
            self.display.print_error(f"Unknown option: {option}")

        return True

    def cmd_run(self, args: List[str]) -> bool:
        """Execute current module"""
        if not self._require_module():
            return True

        self.display.print_info(f"Running module: {self.framework.session.current_module.name}...")

        results = self.framework.run_module(self.framework.session.current_module)
        self.display.print("\n")
        self.display.print_results(results)

        return True

    def cmd_search(self, args: List[str]) -> bool:
        """Search for modules"""
        if not args:
            self.display.print_error("Usage: search <query>")
            return True

        query = " ".join(args)
        results = self.framework.search_modules(query)

        if results:
            self.display.print_modules(results, f"Search: '{query}'")
        else:
            self.display.print_warning(f"No modules found matching '{query}'")

        return True

    def cmd_history(self, args: List[str]) -> bool:
        """Show command history"""
        history = self.framework.session.command_history
        if history:
            self.display._print_list(
                [f"{h['command']} ({h['timestamp'].strftime('%H:%M:%S')})" for h in history],
                "Command History"
            )
        else:
            self.display.print_info("No command history")
        return True

    def cmd_sessions(self, args: List[str]) -> bool:
        session_data = self.framework.session.export_session()
        self.display._print_dict(session_data, "Session Information")

        performance = get_logger().get_performance_summary()
        if performance["counters"] or performance["latencies"]:
            self.display._print_dict(performance, "Performance")
        return True

    def cmd_clear(self, args: List[str]) -> bool:
        os.system('clear' if os.name != 'nt' else 'cls')
        return True

    def cmd_exit(self, args: List[str]) -> bool:
        self.display.print_info("Shutting down riskbudget...")
        return False
