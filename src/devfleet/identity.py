"""Stable identity labels for repositories.

The label lets later runs find the containers, images and volumes built for
a repository without keeping any state of their own. It is a local
best-effort filter, not a security boundary.
"""

from __future__ import annotations

import hashlib
import zlib
from pathlib import Path

from .config import FleetSettings
from .models import IdentityLabel
from .runtime import GitClient

_SCHEME_PREFIXES = ("ssh://", "https://", "http://")
HASH_LENGTH = 16


def normalize_remote(url: str) -> str:
    """Strip the scheme, a trailing ``.git`` and a trailing slash, in that order."""

    basis = url.strip()
    for scheme in _SCHEME_PREFIXES:
        if basis.startswith(scheme):
            basis = basis[len(scheme) :]
            break
    if basis.endswith(".git"):
        basis = basis[: -len(".git")]
    if basis.endswith("/"):
        basis = basis[:-1]
    return basis


def hash_basis(basis: str) -> str:
    data = basis.encode("utf-8")
    if "sha256" in hashlib.algorithms_available:
        return hashlib.sha256(data).hexdigest()[:HASH_LENGTH]
    # weaker collision resistance, still deterministic
    return str(zlib.crc32(data))


def label_for_basis(basis: str, *, key: str, prefix: str) -> IdentityLabel:
    return IdentityLabel(key=key, value=f"{prefix}-{hash_basis(basis)}")


async def label_basis(repo_root: Path, git: GitClient) -> str:
    """Return the string a repository's label is hashed from."""

    remote = await git.remote_url(repo_root)
    if remote:
        return normalize_remote(remote)
    return Path(repo_root).name


async def derive_label(repo_root: Path, git: GitClient, settings: FleetSettings) -> IdentityLabel:
    """Derive the identity label for ``repo_root`` from its git remote or folder name."""

    basis = await label_basis(repo_root, git)
    return label_for_basis(basis, key=settings.label_key, prefix=settings.label_prefix)


__all__ = ["derive_label", "hash_basis", "label_basis", "label_for_basis", "normalize_remote"]
