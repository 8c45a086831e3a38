"""Async wrapper over the git CLI."""

from __future__ import annotations

from pathlib import Path

from ..commands import CommandRunner


class GitClient:
    def __init__(self, runner: CommandRunner) -> None:
        self._runner = runner

    async def toplevel(self, path: Path) -> Path | None:
        """Return the work tree root containing ``path``, or None outside git."""

        result = await self._runner.run("-C", str(path), "rev-parse", "--show-toplevel")
        value = result.stdout.strip()
        if not result.ok or not value:
            return None
        return Path(value)

    async def is_work_tree(self, path: Path) -> bool:
        result = await self._runner.run("-C", str(path), "rev-parse", "--is-inside-work-tree")
        return result.ok and result.stdout.strip() == "true"

    async def remote_url(self, path: Path, remote: str = "origin") -> str | None:
        if not await self.is_work_tree(path):
            return None
        result = await self._runner.run("-C", str(path), "config", "--get", f"remote.{remote}.url")
        value = result.stdout.strip()
        return value if result.ok and value else None


__all__ = ["GitClient"]
