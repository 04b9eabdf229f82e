"""
Main interactive console for riskbudget
"""

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.formatted_text import FormattedText
from prompt_toolkit.styles import Style
from prompt_toolkit.history import InMemoryHistory
from .display import Display
from .commands import CommandHandler


class Console:
    """
    Interactive console interface, in the style of msfconsole.
    """

    def __init__(self, framework):
        self.framework = framework
        self.display = Display()
        self.command_handler = CommandHandler(framework)
        self.session = PromptSession(history=InMemoryHistory())
        self.running = True

        self.completer = self._create_completer()

        self.prompt_style = Style.from_dict({
            'prompt': '#00ff00 bold',
            'module': '#ff00ff bold',
        })

    def _create_completer(self) -> WordCompleter:
        """Complete command names and module paths"""
        words = list(self.command_handler.commands.keys()) + list(self.framework.modules.keys())
        return WordCompleter(words, ignore_case=True)

    def _get_prompt(self) -> FormattedText:
        """Generate the prompt, showing the active module"""
        module = self.framework.session.current_module
        if module:
            return FormattedText([
                ('class:prompt', 'riskbudget'),
                ('', '('),
                ('class:module', module.name),
                ('', ') > '),
            ])
        return FormattedText([('class:prompt', 'riskbudget'), ('', ' > ')])

    def start(self):
        """Start the interactive console"""
        self.display.print_banner()
        self.display.print_info(f"Loaded {len(self.framework.modules)} modules\n")

        while self.running:
            try:
                user_input = self.session.prompt(
                    self._get_prompt(),
                    completer=self.completer,
                    style=self.prompt_style
                )
                self.running = self.command_handler.execute(user_input)

            except KeyboardInterrupt:
                self.display.print("\n")
                self.display.print_warning("Use 'exit' or 'quit' to exit")
                continue

            except EOFError:
                break

            except Exception as e:
                self.display.print_error(f"Error: {str(e)}")

        self.framework.shutdown()
        self.display.print_success("Goodbye!")

    def stop(self):
        self.running = False
