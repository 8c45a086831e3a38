"""Async wrapper over the devcontainer CLI."""

from __future__ import annotations

from pathlib import Path
from typing import Mapping

from ..commands import CommandResult, CommandRunner
from ..commands.runner import LineCallback
from ..models import IdentityLabel


class DevcontainerClient:
    def __init__(self, runner: CommandRunner) -> None:
        self._runner = runner

    async def up(
        self,
        workspace: Path,
        label: IdentityLabel,
        *,
        remove_existing: bool = True,
        no_cache: bool = False,
        on_line: LineCallback | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        """Bring up the devcontainer for ``workspace`` tagged with ``label``."""

        args = ["up", "--workspace-folder", str(workspace), "--id-label", str(label)]
        if remove_existing:
            args.append("--remove-existing-container")
        if no_cache:
            args.append("--build-no-cache")
        if on_line is None:
            return await self._runner.run(*args, env=env)
        return await self._runner.stream(*args, on_line=on_line, env=env)


__all__ = ["DevcontainerClient"]
