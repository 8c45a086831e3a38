"""Repository discovery for single and multi-repo runs."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from . import DevfleetError
from .runtime import GitClient

DEVCONTAINER_CONFIG = Path(".devcontainer") / "devcontainer.json"


class RepoRootNotFoundError(DevfleetError):
    """Raised when neither git nor a devcontainer config identifies a repo root."""


class DevcontainerConfigMissingError(DevfleetError):
    """Raised when a resolved repo root has no devcontainer config."""


@dataclass(slots=True)
class Targets:
    mode: Literal["single", "multi"]
    root: Path
    repos: list[Path]


def has_devcontainer(path: Path) -> bool:
    return (Path(path) / DEVCONTAINER_CONFIG).is_file()


def find_repos_in_dir(path: Path) -> list[Path]:
    """Immediate non-hidden subdirectories holding a devcontainer config, sorted by name."""

    path = Path(path)
    if not path.is_dir():
        return []
    return sorted(
        (
            child
            for child in path.iterdir()
            if not child.name.startswith(".") and child.is_dir() and has_devcontainer(child)
        ),
        key=lambda child: child.name,
    )


async def find_repo_root(path: Path, git: GitClient) -> Path:
    """Return the git top level, or the nearest ancestor with a devcontainer config."""

    path = Path(path).resolve()
    toplevel = await git.toplevel(path)
    if toplevel is not None:
        return toplevel

    for candidate in (path, *path.parents):
        if has_devcontainer(candidate):
            return candidate

    raise RepoRootNotFoundError(
        f"Could not determine repo root from: {path}\n"
        "Expected either:\n"
        "  - to be inside a git repo, or\n"
        f"  - to find {DEVCONTAINER_CONFIG} by walking upward\n"
        "  - or a directory containing multiple repos with devcontainers"
    )


async def is_multi_repo_dir(path: Path, git: GitClient) -> bool:
    path = Path(path)
    if has_devcontainer(path):
        return False
    if await git.toplevel(path) is not None:
        return False
    return bool(find_repos_in_dir(path))


async def resolve_targets(path: Path, git: GitClient) -> Targets:
    """Decide between multi-repo and single-repo mode for ``path``."""

    path = Path(path).resolve()
    if await is_multi_repo_dir(path, git):
        return Targets(mode="multi", root=path, repos=find_repos_in_dir(path))

    repo_root = await find_repo_root(path, git)
    if not has_devcontainer(repo_root):
        raise DevcontainerConfigMissingError(
            f"No devcontainer found at: {repo_root / DEVCONTAINER_CONFIG}"
        )
    return Targets(mode="single", root=repo_root, repos=[repo_root])


__all__ = [
    "DEVCONTAINER_CONFIG",
    "DevcontainerConfigMissingError",
    "RepoRootNotFoundError",
    "Targets",
    "find_repo_root",
    "find_repos_in_dir",
    "has_devcontainer",
    "is_multi_repo_dir",
    "resolve_targets",
]
