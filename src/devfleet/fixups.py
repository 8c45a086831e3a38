"""Idempotent in-container fixups applied after a successful verification."""

from __future__ import annotations

import logging
import posixpath
from pathlib import Path
from typing import Callable, Sequence

from .runtime import DockerClient

logger = logging.getLogger(__name__)

GH_HOSTS_FILE = "hosts.yml"


async def apply_fixups(
    docker: DockerClient,
    container_id: str,
    *,
    workspace_folder: str,
    container_user: str,
    credential_files: Sequence[tuple[Path, str]],
    log: Callable[[str], None] | None = None,
) -> list[str]:
    """Run every fixup, collecting warnings instead of failing.

    Credential files are copied into the container rather than bind mounted
    so concurrent containers never write to the host's copy.
    """

    say = log or (lambda message: None)
    warnings: list[str] = []

    def warn(message: str) -> None:
        warnings.append(message)
        say(f"warning: {message}")
        logger.warning("Fixup step failed", extra={"container_id": container_id, "detail": message})

    # --get-all exits 1 when nothing is set yet
    existing = await docker.exec(
        container_id, "git", "config", "--global", "--get-all", "safe.directory", user=container_user
    )
    if workspace_folder not in existing.lines():
        result = await docker.exec(
            container_id,
            "git",
            "config",
            "--global",
            "--add",
            "safe.directory",
            workspace_folder,
            user=container_user,
        )
        if not result.ok:
            warn(
                f"could not mark {workspace_folder} as a safe directory ({result.describe_failure()})"
            )

    imported_gh_hosts = False
    for host_path, container_path in credential_files:
        host_path = Path(host_path).expanduser()
        if not host_path.is_file():
            continue
        say(f"Importing credentials from {host_path}")
        parent = posixpath.dirname(container_path)
        result = await docker.exec(container_id, "mkdir", "-p", parent, user=container_user)
        if not result.ok:
            warn(f"could not create {parent} ({result.describe_failure()})")
            continue
        result = await docker.copy_into(container_id, host_path, container_path)
        if not result.ok:
            warn(f"could not copy {host_path} ({result.describe_failure()})")
            continue
        result = await docker.exec(
            container_id, "chown", f"{container_user}:{container_user}", container_path, user="root"
        )
        if not result.ok:
            warn(f"could not chown {container_path} ({result.describe_failure()})")
        if posixpath.basename(container_path) == GH_HOSTS_FILE:
            imported_gh_hosts = True

    if imported_gh_hosts:
        result = await docker.exec(container_id, "gh", "auth", "setup-git", user=container_user)
        if not result.ok:
            warn(f"gh auth setup-git failed ({result.describe_failure()})")

    return warnings


__all__ = ["apply_fixups"]
