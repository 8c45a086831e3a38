"""Thin async wrapper over the docker CLI."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

from ..commands import CommandResult, CommandRunner
from ..models import IdentityLabel


class DockerClient:
    """Container, image and volume operations used by devfleet.

    Every method returns the raw :class:`CommandResult` (or values parsed from
    it); deciding whether a failure matters is left to the caller.
    """

    def __init__(self, runner: CommandRunner) -> None:
        self._runner = runner

    @property
    def runner(self) -> CommandRunner:
        return self._runner

    async def list_containers(
        self, label: IdentityLabel, *, include_stopped: bool = True
    ) -> list[str]:
        """Return ids of containers carrying ``label``, newest first."""

        args = ["ps", "-q", "--filter", label.docker_filter]
        if include_stopped:
            args.insert(1, "-a")
        result = await self._runner.run(*args)
        return result.lines() if result.ok else []

    async def list_running(self, label_key: str) -> list[str]:
        result = await self._runner.run("ps", "-q", "--filter", f"label={label_key}")
        return result.lines() if result.ok else []

    async def remove_containers(self, container_ids: Sequence[str]) -> CommandResult:
        return await self._runner.run("rm", "-f", *container_ids)

    async def list_images(self, label: IdentityLabel) -> list[str]:
        result = await self._runner.run("images", "-q", "--filter", label.docker_filter)
        if not result.ok:
            return []
        # the same image id shows up once per tag
        return list(dict.fromkeys(result.lines()))

    async def remove_images(self, image_ids: Sequence[str]) -> CommandResult:
        return await self._runner.run("rmi", "-f", *image_ids)

    async def list_volumes(self, name_prefix: str) -> list[str]:
        """Return volume names starting with ``name_prefix``.

        docker's ``name`` filter matches substrings, so results are narrowed
        to true prefix matches here.
        """

        result = await self._runner.run("volume", "ls", "-q", "--filter", f"name={name_prefix}")
        if not result.ok:
            return []
        return [name for name in result.lines() if name.startswith(name_prefix)]

    async def remove_volumes(self, names: Sequence[str]) -> CommandResult:
        return await self._runner.run("volume", "rm", *names)

    async def prune_dangling_images(self) -> CommandResult:
        return await self._runner.run("image", "prune", "-f")

    async def exec(
        self,
        container_id: str,
        *command: str,
        user: str | None = None,
        workdir: str | None = None,
    ) -> CommandResult:
        args = ["exec"]
        if user:
            args.extend(["-u", user])
        if workdir:
            args.extend(["-w", workdir])
        args.append(container_id)
        args.extend(command)
        return await self._runner.run(*args)

    async def copy_into(self, container_id: str, source: Path, destination: str) -> CommandResult:
        return await self._runner.run("cp", str(source), f"{container_id}:{destination}")

    async def is_running(self, container_id: str) -> bool:
        result = await self._runner.run("inspect", "-f", "{{.State.Running}}", container_id)
        return result.ok and result.stdout.strip() == "true"

    async def start(self, container_id: str) -> CommandResult:
        return await self._runner.run("start", container_id)

    async def stop(self, *container_ids: str) -> CommandResult:
        return await self._runner.run("stop", *container_ids)

    async def inspect_label(self, container_id: str, label_key: str) -> str | None:
        result = await self._runner.run(
            "inspect", "-f", f'{{{{index .Config.Labels "{label_key}"}}}}', container_id
        )
        value = result.stdout.strip()
        return value if result.ok and value else None

    async def workspace_mount(self, container_id: str) -> str | None:
        """Return the ``/workspaces/<name>`` bind mount destination, if any."""

        result = await self._runner.run(
            "inspect",
            "-f",
            '{{range .Mounts}}{{if eq .Type "bind"}}{{.Destination}}\n{{end}}{{end}}',
            container_id,
        )
        if not result.ok:
            return None
        for line in result.lines():
            if line.startswith("/workspaces/"):
                parts = line.split("/")
                return "/".join(parts[:3])
        return None


__all__ = ["DockerClient"]
