"""Build and verify the devcontainer of a single repository."""

from __future__ import annotations

import logging
import re
import time
from pathlib import Path
from typing import Callable, Mapping, Sequence

from .config import FleetSettings
from .fixups import apply_fixups
from .identity import derive_label
from .models import BuildEvent, BuildFlags, BuildPhase, BuildResult, IdentityLabel, VerificationResult
from .reclaim import ResourceReclaimer
from .runtime import DevcontainerClient, DockerClient, GitClient
from .toolsets import Toolset
from .verify import required_executables, verify_container

logger = logging.getLogger(__name__)

EventCallback = Callable[[BuildEvent], None]
LogCallback = Callable[[str], None]

# bring-up output that means the build has moved on to installing dependencies
_INSTALL_PATTERN = re.compile(
    r"(npm (ci|install)|dotnet restore|apt-get install|pip install|postCreateCommand)",
    re.IGNORECASE,
)


class SingleRepoBuilder:
    """Drive one ``devcontainer up`` to completion and verify the result."""

    def __init__(
        self,
        *,
        docker: DockerClient,
        devcontainer: DevcontainerClient,
        git: GitClient,
        settings: FleetSettings,
        toolsets: Sequence[Toolset],
        reclaimer: ResourceReclaimer | None = None,
    ) -> None:
        self._docker = docker
        self._devcontainer = devcontainer
        self._git = git
        self._settings = settings
        self._toolsets = list(toolsets)
        self._reclaimer = reclaimer or ResourceReclaimer(docker)

    async def build(
        self,
        repo_root: Path,
        flags: BuildFlags,
        *,
        emit: EventCallback | None = None,
        log: LogCallback | None = None,
        env: Mapping[str, str] | None = None,
    ) -> BuildResult:
        repo_root = Path(repo_root)
        name = repo_root.name
        started = time.monotonic()
        say = log or (lambda message: None)

        def phase(value: BuildPhase, message: str = "") -> None:
            if emit is not None:
                emit(BuildEvent(name=name, phase=value, message=message))

        def finish(result: BuildResult) -> BuildResult:
            result.duration = time.monotonic() - started
            phase(BuildPhase.SUCCEEDED if result.ok else BuildPhase.FAILED, result.describe())
            logger.debug(
                "Build finished",
                extra={"repo": name, "ok": result.ok, "duration": round(result.duration, 1)},
            )
            return result

        phase(BuildPhase.LABEL)
        label = await derive_label(repo_root, self._git, self._settings)
        say(f"Repo root: {repo_root}")
        say(f"Using id-label: {label}")

        if flags.force:
            phase(BuildPhase.TEARDOWN, "removing labeled containers, images and volumes")
            say("FORCE: removing labeled containers + images + volumes, rebuilding without cache")
            await self._reclaimer.reclaim(label, repo_root, prune_dangling=flags.prune, log=say)

        phase(BuildPhase.BUILDING)
        say("Starting devcontainer up...")
        installing = False

        def on_line(line: str) -> None:
            nonlocal installing
            say(line)
            if not installing and _INSTALL_PATTERN.search(line):
                installing = True
                phase(BuildPhase.INSTALLING)

        up_env = {**flags.environment(), **(env or {})}
        up = await self._devcontainer.up(
            repo_root,
            label,
            remove_existing=True,
            no_cache=flags.force,
            on_line=on_line,
            env=up_env,
        )
        if not up.ok:
            say(f"devcontainer up failed: {up.describe_failure()}")
            return finish(
                BuildResult(
                    name=name,
                    repo_root=repo_root,
                    ok=False,
                    label=label,
                    reason=f"devcontainer up failed ({up.describe_failure()})",
                )
            )
        say("Devcontainer is up.")

        container_id = await self.select_container(label, log=say)
        if container_id is None:
            say("Verification FAILED: could not find container")
            return finish(
                BuildResult(
                    name=name,
                    repo_root=repo_root,
                    ok=False,
                    label=label,
                    verification=VerificationResult(missing=("container",)),
                    reason="container not found",
                )
            )

        phase(BuildPhase.VERIFYING)
        say("Verifying container tools...")
        executables = required_executables(self._toolsets, flags)
        verification = await verify_container(self._docker, container_id, executables)
        if not verification.ok:
            say(f"Verification FAILED: {verification}")
            return finish(
                BuildResult(
                    name=name,
                    repo_root=repo_root,
                    ok=False,
                    label=label,
                    container_id=container_id,
                    verification=verification,
                    reason=str(verification),
                )
            )
        say("Verification: all tools present")

        phase(BuildPhase.FIXUPS)
        await apply_fixups(
            self._docker,
            container_id,
            workspace_folder=self._settings.workspace_folder_for(repo_root),
            container_user=self._settings.container_user,
            credential_files=self._settings.credential_files,
            log=say,
        )

        return finish(
            BuildResult(
                name=name,
                repo_root=repo_root,
                ok=True,
                label=label,
                container_id=container_id,
                verification=verification,
            )
        )

    async def select_container(
        self, label: IdentityLabel, *, log: LogCallback | None = None
    ) -> str | None:
        """Return the newest container carrying ``label``, removing older duplicates.

        Older duplicates are leftovers from interrupted runs.
        """

        container_ids = await self._docker.list_containers(label, include_stopped=True)
        if not container_ids:
            return None
        newest, stale = container_ids[0], container_ids[1:]
        if stale:
            if log is not None:
                log(f"Removing {len(stale)} stale container(s) sharing label {label}")
            result = await self._docker.remove_containers(stale)
            if not result.ok:
                logger.warning(
                    "Could not remove stale containers",
                    extra={"label": str(label), "containers": stale},
                )
        return newest


__all__ = ["SingleRepoBuilder"]
