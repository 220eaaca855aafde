"""Quick (shortcut) command parsing and execution."""

from fincalendar.commands.executor import (
    CommandExecutor,
    CommandResult,
    QuickCommand,
    parse_command,
)

__all__ = ["CommandExecutor", "CommandResult", "QuickCommand", "parse_command"]
