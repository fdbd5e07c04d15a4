"""Base command classes for the envclone CLI."""

from abc import ABC, abstractmethod

from cli.core.context import Context
from cli.core.utils import EXIT_ERROR
from envclone.exceptions import ConfigurationError
from envclone.models import Environment


class BaseCommand(ABC):
    """Base class for all commands."""

    def __init__(self, ctx: Context):
        self.ctx = ctx
        self.console = ctx.console

    @abstractmethod
    def execute(self, **kwargs) -> int:
        """Execute command. Returns exit code."""
        pass

    def handle_exception(self, e: Exception) -> int:
        """Common error handling."""
        self.ctx.stderr_console.print(f"❌ Error: {e}", style="bold red")
        if self.ctx.verbose:
            import traceback
            self.console.print(traceback.format_exc(), style="dim")
        return EXIT_ERROR


class BaseEnvironmentCommand(BaseCommand):
    """Base for commands that work on configured environments."""

    def get_environment(self, name: str) -> Environment:
        if self.ctx.config is None:
            raise ConfigurationError("No configuration loaded; pass --config")
        return self.ctx.config.environment(name)

    def setting(self, key: str):
        return self.ctx.config.settings.get(key) if self.ctx.config else None
