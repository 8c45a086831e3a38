"""Data models shared by the builder, the orchestrator and the renderers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


@dataclass(frozen=True, slots=True)
class IdentityLabel:
    """Deterministic label tagging a repository's containers and images."""

    key: str
    value: str

    def __str__(self) -> str:
        return f"{self.key}={self.value}"

    @property
    def docker_filter(self) -> str:
        return f"label={self.key}={self.value}"


@dataclass(frozen=True, slots=True)
class BuildFlags:
    force: bool = False
    prune: bool = False
    skip_ai_clis: bool = False
    skip_playwright: bool = False

    def environment(self) -> dict[str, str]:
        """Flags exported to the bring-up call for post-create scripts."""

        return {
            "SKIP_AI_CLIS": "1" if self.skip_ai_clis else "0",
            "SKIP_PLAYWRIGHT": "1" if self.skip_playwright else "0",
        }

    def describe(self) -> str:
        return (
            f"FORCE={int(self.force)} PRUNE={int(self.prune)} "
            f"SKIP_AI_CLIS={int(self.skip_ai_clis)} SKIP_PLAYWRIGHT={int(self.skip_playwright)}"
        )


@dataclass(frozen=True, slots=True)
class VerificationResult:
    missing: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.missing

    def __str__(self) -> str:
        if self.ok:
            return "OK"
        return "MISSING: " + " ".join(self.missing)


class BuildPhase(str, Enum):
    PENDING = "pending"
    LABEL = "label"
    TEARDOWN = "teardown"
    BUILDING = "building"
    INSTALLING = "installing"
    VERIFYING = "verifying"
    FIXUPS = "fixups"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (BuildPhase.SUCCEEDED, BuildPhase.FAILED)


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED)


@dataclass(slots=True)
class BuildEvent:
    """A phase transition reported by a running build."""

    name: str
    phase: BuildPhase
    message: str = ""


@dataclass(slots=True)
class BuildResult:
    name: str
    repo_root: Path
    ok: bool
    verification: VerificationResult | None = None
    reason: str | None = None
    container_id: str | None = None
    label: IdentityLabel | None = None
    duration: float = 0.0
    log_tail: list[str] = field(default_factory=list)

    @property
    def status(self) -> JobStatus:
        return JobStatus.SUCCEEDED if self.ok else JobStatus.FAILED

    def describe(self) -> str:
        if self.ok:
            return "all tools verified"
        return self.reason or "build or verification failed"


@dataclass(slots=True)
class BuildJob:
    """Tracks one repository's build for the duration of a fleet run."""

    name: str
    repo_root: Path
    status: JobStatus = JobStatus.PENDING
    phase: BuildPhase = BuildPhase.PENDING
    message: str = ""
    started_at: float | None = None
    finished_at: float | None = None
    workdir: Path | None = None
    result: BuildResult | None = None

    def elapsed(self, now: float) -> float:
        if self.started_at is None:
            return 0.0
        end = self.finished_at if self.finished_at is not None else now
        return max(0.0, end - self.started_at)


@dataclass(slots=True)
class FleetSummary:
    results: list[BuildResult]

    @property
    def succeeded(self) -> list[BuildResult]:
        return [result for result in self.results if result.ok]

    @property
    def failed(self) -> list[BuildResult]:
        return [result for result in self.results if not result.ok]

    @property
    def ok(self) -> bool:
        return bool(self.results) and not self.failed

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1


__all__ = [
    "BuildEvent",
    "BuildFlags",
    "BuildJob",
    "BuildPhase",
    "BuildResult",
    "FleetSummary",
    "IdentityLabel",
    "JobStatus",
    "VerificationResult",
]
