"""Clients for the docker, devcontainer and git command line tools."""

from .devcontainer import DevcontainerClient
from .docker import DockerClient
from .git import GitClient

__all__ = ["DevcontainerClient", "DockerClient", "GitClient"]
