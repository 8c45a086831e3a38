"""Best-effort teardown of the resources built for a repository."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from .models import IdentityLabel
from .runtime import DockerClient

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ReclaimReport:
    containers: list[str] = field(default_factory=list)
    images: list[str] = field(default_factory=list)
    volumes: list[str] = field(default_factory=list)
    pruned: bool = False
    warnings: list[str] = field(default_factory=list)

    @property
    def removed_anything(self) -> bool:
        return bool(self.containers or self.images or self.volumes)


class ResourceReclaimer:
    """Remove containers, images and volumes belonging to a repository.

    Every step tolerates "nothing found" and a failed removal is logged and
    recorded in the report, never raised.
    """

    def __init__(self, docker: DockerClient) -> None:
        self._docker = docker

    async def reclaim(
        self,
        label: IdentityLabel,
        repo_root: Path,
        *,
        prune_dangling: bool = False,
        log: Callable[[str], None] | None = None,
    ) -> ReclaimReport:
        report = ReclaimReport()
        say = log or (lambda message: None)

        container_ids = await self._docker.list_containers(label, include_stopped=True)
        if container_ids:
            say(f"Removing existing container(s) for label {label}: {' '.join(container_ids)}")
            result = await self._docker.remove_containers(container_ids)
            if result.ok:
                report.containers.extend(container_ids)
            else:
                self._warn(report, say, f"container removal failed ({result.describe_failure()})", label)

        image_ids = await self._docker.list_images(label)
        if image_ids:
            say(f"Removing existing image(s) for label {label}: {' '.join(image_ids)}")
            result = await self._docker.remove_images(image_ids)
            if result.ok:
                report.images.extend(image_ids)
            else:
                self._warn(report, say, f"image removal failed ({result.describe_failure()})", label)

        volume_prefix = f"{Path(repo_root).name}-"
        volumes = await self._docker.list_volumes(volume_prefix)
        if volumes:
            say(f"Removing associated volume(s) for prefix '{volume_prefix}': {' '.join(volumes)}")
            result = await self._docker.remove_volumes(volumes)
            if result.ok:
                report.volumes.extend(volumes)
            else:
                self._warn(report, say, f"volume removal failed ({result.describe_failure()})", label)

        if prune_dangling:
            say("Pruning dangling images...")
            result = await self._docker.prune_dangling_images()
            report.pruned = result.ok
            if not result.ok:
                self._warn(report, say, f"image prune failed ({result.describe_failure()})", label)

        return report

    @staticmethod
    def _warn(
        report: ReclaimReport, say: Callable[[str], None], message: str, label: IdentityLabel
    ) -> None:
        report.warnings.append(message)
        say(f"warning: {message}")
        logger.warning("Teardown step failed", extra={"label": str(label), "detail": message})


__all__ = ["ReclaimReport", "ResourceReclaimer"]
