from __future__ import annotations

import io
from pathlib import Path

from devfleet.models import BuildJob, BuildPhase, BuildResult, FleetSummary, JobStatus, VerificationResult
from devfleet.render import LiveTableRenderer, PlainRenderer, format_duration, render_summary


def test_format_duration() -> None:
    assert format_duration(0) == "0s"
    assert format_duration(42.4) == "42s"
    assert format_duration(65) == "1m05s"
    assert format_duration(3600) == "60m00s"


def make_jobs() -> list[BuildJob]:
    return [
        BuildJob(name="api", repo_root=Path("/code/api")),
        BuildJob(name="frontend", repo_root=Path("/code/frontend")),
    ]


def test_live_table_redraws_in_place() -> None:
    stream = io.StringIO()
    renderer = LiveTableRenderer(stream, clock=lambda: 100.0)
    jobs = make_jobs()

    renderer.start(jobs)
    first = stream.getvalue()
    assert "\x1b[" not in first.replace("\r\x1b[2K", "")
    assert first.count("\n") == 2
    assert "pending" in first

    jobs[0].status = JobStatus.RUNNING
    jobs[0].phase = BuildPhase.VERIFYING
    jobs[0].started_at = 40.0
    jobs[1].status = JobStatus.FAILED
    jobs[1].phase = BuildPhase.FAILED
    jobs[1].started_at = 10.0
    jobs[1].finished_at = 25.0
    renderer.refresh(jobs)

    redraw = stream.getvalue()[len(first) :]
    assert redraw.startswith("\x1b[2A")
    lines = redraw.split("\n")
    assert "verifying" in lines[0] and "1m00s" in lines[0]
    assert "FAILED" in lines[1] and "15s" in lines[1]


def test_live_table_locks_successful_jobs() -> None:
    stream = io.StringIO()
    renderer = LiveTableRenderer(stream, clock=lambda: 500.0)
    jobs = make_jobs()
    jobs[0].status = JobStatus.SUCCEEDED
    jobs[0].started_at = 0.0
    jobs[0].finished_at = 90.0

    renderer.finish(jobs)

    assert "successful   1m30s" in stream.getvalue()


def test_plain_renderer_prints_transitions() -> None:
    stream = io.StringIO()
    renderer = PlainRenderer(stream)
    job = make_jobs()[0]

    renderer.start([job])
    job.status = JobStatus.RUNNING
    job.phase = BuildPhase.BUILDING
    renderer.update(job)
    job.status = JobStatus.SUCCEEDED
    renderer.update(job)

    assert stream.getvalue().splitlines() == [
        "[api] queued",
        "[api] building",
        "[api] *** Build completed successfully ***",
    ]


def test_render_summary_lists_rows_and_attach_instructions() -> None:
    summary = FleetSummary(
        results=[
            BuildResult(name="api", repo_root=Path("/code/api"), ok=True, duration=75),
            BuildResult(
                name="web",
                repo_root=Path("/code/web"),
                ok=False,
                verification=VerificationResult(missing=("claude",)),
                reason="MISSING: claude",
                duration=12,
                log_tail=["Verification FAILED: MISSING: claude"],
            ),
        ]
    )

    lines = render_summary(summary, "/home/vscode/dexec {repo}")
    text = "\n".join(lines)

    assert "✓ api   1m15s  successful - all tools verified" in lines
    assert "✗ web     12s  FAILED - MISSING: claude" in lines
    assert "Results: 1 succeeded, 1 failed" in lines
    assert "  /home/vscode/dexec /code/api" in lines
    assert "/code/web" not in text.split("=== Attach Instructions ===")[1]
    assert "  Verification FAILED: MISSING: claude" in lines
