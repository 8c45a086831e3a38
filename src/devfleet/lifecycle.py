"""Open and stop previously built devcontainers."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Callable

from .config import FleetSettings
from .identity import derive_label
from .runtime import DockerClient, GitClient

logger = logging.getLogger(__name__)

QUICK_BOOTSTRAP = "scripts/post-create-command.sh"

Printer = Callable[[str], None]


class OpenStatus(str, Enum):
    """Outcome of opening one repository's container."""

    OPENED = "opened"
    MISSING = "missing"
    START_FAILED = "start_failed"

    @property
    def ok(self) -> bool:
        return self is OpenStatus.OPENED


async def open_repo(
    repo_root: Path,
    *,
    docker: DockerClient,
    git: GitClient,
    settings: FleetSettings,
    out: Printer = print,
    prefix: str = "",
) -> OpenStatus:
    """Start the existing container for ``repo_root`` and run its quick bootstrap."""

    label = await derive_label(repo_root, git, settings)
    container_ids = await docker.list_containers(label)
    if not container_ids:
        out(f"{prefix}No existing devcontainer found for:")
        out(f"{prefix}  {repo_root}")
        out(f"{prefix}Expected docker container labeled:")
        out(f"{prefix}  {label}")
        return OpenStatus.MISSING

    container_id = container_ids[0]
    out(f"{prefix}Repo root: {repo_root}")
    out(f"{prefix}Using id-label: {label}")
    out(f"{prefix}Found container: {container_id}")

    if not await docker.is_running(container_id):
        out(f"{prefix}Starting container...")
        result = await docker.start(container_id)
        if not result.ok:
            out(f"{prefix}Could not start container: {result.describe_failure()}")
            return OpenStatus.START_FAILED

    if not settings.skip_quick:
        workspace = settings.workspace_folder_for(repo_root)
        probe = await docker.exec(container_id, "test", "-f", f"{workspace}/{QUICK_BOOTSTRAP}")
        if probe.ok:
            out(f"{prefix}Running quick bootstrap in container...")
            result = await docker.exec(
                container_id,
                "bash",
                "-lc",
                f"chmod +x {QUICK_BOOTSTRAP} && bash {QUICK_BOOTSTRAP} --quick",
                user=settings.container_user,
                workdir=workspace,
            )
            if not result.ok:
                logger.warning(
                    "Quick bootstrap failed",
                    extra={"repo": repo_root.name, "detail": result.describe_failure()},
                )
    return OpenStatus.OPENED


async def stop_repo(
    repo_root: Path,
    *,
    docker: DockerClient,
    git: GitClient,
    settings: FleetSettings,
    out: Printer = print,
) -> int:
    """Stop the container for ``repo_root``. Returns a process exit code."""

    label = await derive_label(repo_root, git, settings)
    name = Path(repo_root).name
    container_ids = await docker.list_containers(label)
    if not container_ids:
        out(f"No container found for: {name}")
        out(f"Label: {label}")
        return 1

    container_id = container_ids[0]
    if not await docker.is_running(container_id):
        out(f"Container for {name} is already stopped.")
        return 0

    out(f"Stopping container for {name} ({container_id})...")
    result = await docker.stop(container_id)
    if not result.ok:
        out(f"Could not stop container: {result.describe_failure()}")
        return 1
    out("Stopped.")
    return 0


async def stop_all(
    *,
    docker: DockerClient,
    settings: FleetSettings,
    confirm: Callable[[], bool],
    out: Printer = print,
) -> int:
    """Stop every running container carrying the devfleet label key."""

    out("Finding running devcontainers...")
    container_ids = await docker.list_running(settings.label_key)
    if not container_ids:
        out("No running devcontainers found.")
        return 0

    out(f"Found {len(container_ids)} running devcontainer(s):")
    for container_id in container_ids:
        value = await docker.inspect_label(container_id, settings.label_key) or "unknown"
        mount = await docker.workspace_mount(container_id)
        workspace = mount.rsplit("/", 1)[-1] if mount else "unknown"
        out(f"  {container_id} - {workspace} ({value})")

    if not confirm():
        out("Aborted.")
        return 0

    out("Stopping containers...")
    result = await docker.stop(*container_ids)
    if not result.ok:
        out(f"Could not stop all containers: {result.describe_failure()}")
        return 1
    out("Done.")
    return 0


__all__ = ["OpenStatus", "open_repo", "stop_all", "stop_repo"]
