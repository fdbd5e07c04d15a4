"""Context class for the envclone CLI."""

import sys
from typing import Optional

from rich.console import Console

from envclone.config import EnvcloneConfig


class Context:
    """Shared context for CLI commands."""

    def __init__(self):
        self.config: Optional[EnvcloneConfig] = None
        self.config_file: Optional[str] = None
        self.log_file: Optional[str] = None
        self.verbose: bool = False
        self.console = Console()
        self.stderr_console = Console(file=sys.stderr)
