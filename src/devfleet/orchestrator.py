"""Parallel multi-repo build orchestration."""

from __future__ import annotations

import asyncio
import logging
import shutil
import tempfile
import time
from collections import deque
from pathlib import Path
from typing import Callable, Sequence

from .builder import SingleRepoBuilder
from .models import BuildEvent, BuildFlags, BuildJob, BuildPhase, BuildResult, FleetSummary, JobStatus
from .render import Renderer

logger = logging.getLogger(__name__)

LOG_FILE_NAME = "build.log"


class FleetOrchestrator:
    """Run one build per repository through a bounded worker pool.

    Jobs are admitted in discovery order, each with a private temp directory
    exported as ``TMPDIR`` and its own log file. Progress arrives as
    structured events over a queue; results are collected per job and the
    summary keeps discovery order regardless of completion order.
    """

    def __init__(
        self,
        builder: SingleRepoBuilder,
        renderer: Renderer,
        *,
        max_parallel: int = 4,
        poll_interval: float = 1.0,
        log_tail_lines: int = 20,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_parallel < 1:
            raise ValueError("max_parallel must be >= 1")
        self._builder = builder
        self._renderer = renderer
        self._max_parallel = max_parallel
        self._poll_interval = poll_interval
        self._log_tail_lines = log_tail_lines
        self._clock = clock

    async def run(self, repos: Sequence[Path], flags: BuildFlags) -> FleetSummary:
        jobs = [BuildJob(name=Path(repo).name, repo_root=Path(repo)) for repo in repos]
        if not jobs:
            return FleetSummary(results=[])

        logger.debug(
            "Starting fleet build",
            extra={"repos": len(jobs), "max_parallel": self._max_parallel, "flags": flags.describe()},
        )

        queue: asyncio.Queue[tuple[int, BuildEvent | BuildResult]] = asyncio.Queue()
        semaphore = asyncio.Semaphore(self._max_parallel)
        self._renderer.start(jobs)

        tasks = [
            asyncio.create_task(self._run_job(index, job, flags, semaphore, queue))
            for index, job in enumerate(jobs)
        ]
        ticker = asyncio.create_task(self._tick(jobs))

        try:
            remaining = len(jobs)
            while remaining:
                index, item = await queue.get()
                job = jobs[index]
                if isinstance(item, BuildResult):
                    self._complete(job, item)
                    remaining -= 1
                else:
                    self._advance(job, item)
                self._renderer.update(job)
            await asyncio.gather(*tasks)
        finally:
            ticker.cancel()
            try:
                await ticker
            except asyncio.CancelledError:
                pass
            for job in jobs:
                if job.workdir is not None:
                    shutil.rmtree(job.workdir, ignore_errors=True)

        self._renderer.finish(jobs)
        results = [job.result for job in jobs if job.result is not None]
        return FleetSummary(results=results)

    async def _tick(self, jobs: Sequence[BuildJob]) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            self._renderer.refresh(jobs)

    def _advance(self, job: BuildJob, event: BuildEvent) -> None:
        if job.status.terminal or event.phase.terminal:
            return
        if job.started_at is None:
            job.started_at = self._clock()
        job.status = JobStatus.RUNNING
        job.phase = event.phase
        job.message = event.message

    def _complete(self, job: BuildJob, result: BuildResult) -> None:
        if job.started_at is None:
            job.started_at = self._clock()
        job.finished_at = self._clock()
        if not result.duration:
            result.duration = job.elapsed(job.finished_at)
        job.result = result
        job.status = result.status
        job.phase = BuildPhase.SUCCEEDED if result.ok else BuildPhase.FAILED
        job.message = result.describe()

    async def _run_job(
        self,
        index: int,
        job: BuildJob,
        flags: BuildFlags,
        semaphore: asyncio.Semaphore,
        queue: asyncio.Queue,
    ) -> None:
        async with semaphore:
            try:
                result = await self._build_in_workdir(index, job, flags, queue)
            except Exception as exc:
                logger.exception("Could not run build job", extra={"repo": job.name})
                result = BuildResult(
                    name=job.name,
                    repo_root=job.repo_root,
                    ok=False,
                    reason=f"internal error: {exc}",
                )
            queue.put_nowait((index, result))

    async def _build_in_workdir(
        self,
        index: int,
        job: BuildJob,
        flags: BuildFlags,
        queue: asyncio.Queue,
    ) -> BuildResult:
        workdir = Path(tempfile.mkdtemp(prefix=f"devfleet-{job.name}-"))
        job.workdir = workdir
        tmpdir = workdir / "tmp"
        tmpdir.mkdir()
        log_path = workdir / LOG_FILE_NAME

        with log_path.open("w", encoding="utf-8") as log_file:

            def log(line: str) -> None:
                log_file.write(line + "\n")
                log_file.flush()

            def emit(event: BuildEvent) -> None:
                queue.put_nowait((index, event))

            emit(BuildEvent(name=job.name, phase=BuildPhase.LABEL, message="starting"))
            try:
                result = await self._builder.build(
                    job.repo_root,
                    flags,
                    emit=emit,
                    log=log,
                    env={"TMPDIR": str(tmpdir)},
                )
            except Exception as exc:
                logger.exception("Build raised unexpectedly", extra={"repo": job.name})
                log(f"internal error: {exc}")
                result = BuildResult(
                    name=job.name,
                    repo_root=job.repo_root,
                    ok=False,
                    reason=f"internal error: {exc}",
                )

        if not result.ok:
            result.log_tail = read_tail(log_path, self._log_tail_lines)
        return result


def read_tail(path: Path, lines: int) -> list[str]:
    if lines <= 0 or not path.exists():
        return []
    with path.open(encoding="utf-8", errors="replace") as handle:
        return [line.rstrip("\n") for line in deque(handle, maxlen=lines)]


__all__ = ["FleetOrchestrator", "read_tail"]
