"""External command orchestration utilities."""

from .runner import CommandResult, CommandRunner, FakeCommandRunner, ToolNotFoundError

__all__ = [
    "CommandResult",
    "CommandRunner",
    "FakeCommandRunner",
    "ToolNotFoundError",
]
