from __future__ import annotations

from pathlib import Path

import pytest

from devfleet.commands import FakeCommandRunner
from devfleet.config import FleetSettings
from devfleet.runtime import DevcontainerClient, DockerClient, GitClient


def make_repo(parent: Path, name: str) -> Path:
    repo = parent / name
    (repo / ".devcontainer").mkdir(parents=True)
    (repo / ".devcontainer" / "devcontainer.json").write_text("{}", encoding="utf-8")
    return repo


@pytest.fixture
def settings() -> FleetSettings:
    return FleetSettings(
        label_key="com.devcontainer.repo",
        label_prefix="repo",
        credential_files=(),
        poll_interval=0.01,
    )


@pytest.fixture
def journal() -> list[tuple[str, tuple[str, ...]]]:
    return []


@pytest.fixture
def docker_runner(journal) -> FakeCommandRunner:
    return FakeCommandRunner("docker", journal=journal)


@pytest.fixture
def devcontainer_runner(journal) -> FakeCommandRunner:
    return FakeCommandRunner("devcontainer", journal=journal)


@pytest.fixture
def git_runner() -> FakeCommandRunner:
    return FakeCommandRunner("git")


@pytest.fixture
def docker(docker_runner) -> DockerClient:
    return DockerClient(docker_runner)


@pytest.fixture
def devcontainer(devcontainer_runner) -> DevcontainerClient:
    return DevcontainerClient(devcontainer_runner)


@pytest.fixture
def git(git_runner) -> GitClient:
    return GitClient(git_runner)
