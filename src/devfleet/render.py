"""Terminal presentation of fleet progress and results."""

from __future__ import annotations

import sys
import time
from typing import Callable, Protocol, Sequence, TextIO

from .models import BuildJob, FleetSummary, JobStatus

CURSOR_UP = "\x1b[{count}A"
CLEAR_LINE = "\r\x1b[2K"


def format_duration(seconds: float) -> str:
    total = int(round(seconds))
    minutes, secs = divmod(total, 60)
    if minutes:
        return f"{minutes}m{secs:02d}s"
    return f"{secs}s"


def job_state_text(job: BuildJob) -> str:
    if job.status is JobStatus.SUCCEEDED:
        return "successful"
    if job.status is JobStatus.FAILED:
        return "FAILED"
    if job.status is JobStatus.PENDING:
        return "pending"
    return job.phase.value


def format_job_line(job: BuildJob, name_width: int, now: float) -> str:
    state = job_state_text(job)
    if job.started_at is None:
        return f"  {job.name:<{name_width}}  {state}"
    return f"  {job.name:<{name_width}}  {state:<12} {format_duration(job.elapsed(now))}"


class Renderer(Protocol):
    """Receives job updates from the orchestrator."""

    def start(self, jobs: Sequence[BuildJob]) -> None:
        ...

    def update(self, job: BuildJob) -> None:
        ...

    def refresh(self, jobs: Sequence[BuildJob]) -> None:
        ...

    def finish(self, jobs: Sequence[BuildJob]) -> None:
        ...


class LiveTableRenderer:
    """Redraw one line per job in place using cursor movement sequences."""

    def __init__(
        self,
        stream: TextIO | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._stream = stream or sys.stdout
        self._clock = clock
        self._drawn = 0

    def _draw(self, jobs: Sequence[BuildJob]) -> None:
        if not jobs:
            return
        now = self._clock()
        width = max(len(job.name) for job in jobs)
        out = []
        if self._drawn:
            out.append(CURSOR_UP.format(count=self._drawn))
        for job in jobs:
            out.append(CLEAR_LINE + format_job_line(job, width, now) + "\n")
        self._stream.write("".join(out))
        self._stream.flush()
        self._drawn = len(jobs)

    def start(self, jobs: Sequence[BuildJob]) -> None:
        self._drawn = 0
        self._draw(jobs)

    def update(self, job: BuildJob) -> None:
        # redrawn on the next refresh tick
        pass

    def refresh(self, jobs: Sequence[BuildJob]) -> None:
        self._draw(jobs)

    def finish(self, jobs: Sequence[BuildJob]) -> None:
        self._draw(jobs)


class PlainRenderer:
    """Print one line per phase change; suitable for logs and pipes."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stdout

    def _write(self, line: str) -> None:
        print(line, file=self._stream, flush=True)

    def start(self, jobs: Sequence[BuildJob]) -> None:
        for job in jobs:
            self._write(f"[{job.name}] queued")

    def update(self, job: BuildJob) -> None:
        if job.status is JobStatus.SUCCEEDED:
            self._write(f"[{job.name}] *** Build completed successfully ***")
        elif job.status is JobStatus.FAILED:
            self._write(f"[{job.name}] *** Build FAILED *** {job.message}".rstrip())
        else:
            suffix = f": {job.message}" if job.message else ""
            self._write(f"[{job.name}] {job.phase.value}{suffix}")

    def refresh(self, jobs: Sequence[BuildJob]) -> None:
        pass

    def finish(self, jobs: Sequence[BuildJob]) -> None:
        pass


def render_summary(summary: FleetSummary, attach_command: str) -> list[str]:
    """Return the end-of-run report lines in discovery order."""

    lines = ["", "=== Build Summary ===", ""]
    width = max((len(result.name) for result in summary.results), default=0)
    for result in summary.results:
        mark = "✓" if result.ok else "✗"
        lines.append(
            f"{mark} {result.name:<{width}}  {format_duration(result.duration):>6}  "
            f"{'successful' if result.ok else 'FAILED'} - {result.describe()}"
        )

    lines.append("")
    lines.append(f"Results: {len(summary.succeeded)} succeeded, {len(summary.failed)} failed")

    failed_with_logs = [result for result in summary.failed if result.log_tail]
    for result in failed_with_logs:
        lines.append("")
        lines.append(f"--- {result.name}: last log lines ---")
        lines.extend(f"  {line}" for line in result.log_tail)

    if summary.succeeded:
        lines.extend(["", "=== Attach Instructions ===", ""])
        for result in summary.succeeded:
            lines.append(f"{result.name}:")
            lines.append(f"  {attach_command.format(repo=result.repo_root)}")
            lines.append("")
    return lines


__all__ = [
    "LiveTableRenderer",
    "PlainRenderer",
    "Renderer",
    "format_duration",
    "format_job_line",
    "job_state_text",
    "render_summary",
]
