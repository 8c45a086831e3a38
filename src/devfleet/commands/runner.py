"""Async runner for external command line tools."""

from __future__ import annotations

import asyncio
import contextlib
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Mapping

from .. import DevfleetError
from .utils import sanitize_environment


class ToolNotFoundError(DevfleetError):
    """Raised when a required host executable cannot be located."""


@dataclass(slots=True)
class CommandResult:
    """Holds the outcome of a command invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def lines(self) -> list[str]:
        """Return the non-empty stripped stdout lines."""

        return [line.strip() for line in self.stdout.splitlines() if line.strip()]

    def describe_failure(self) -> str:
        detail = self.stderr.strip() or self.stdout.strip()
        if detail:
            detail = detail.splitlines()[-1]
            return f"exit code {self.returncode}: {detail}"
        return f"exit code {self.returncode}"


LineCallback = Callable[[str], None]

STREAM_CHUNK_SIZE = 65536


class CommandRunner:
    """Execute a single CLI tool asynchronously."""

    def __init__(self, name: str, executable: Path | str | None = None) -> None:
        self._name = name
        self._executable_path = self._resolve_executable(name, executable)

    @staticmethod
    def _resolve_executable(name: str, explicit: Path | str | None) -> Path:
        if explicit is not None:
            candidate = Path(explicit)
            if candidate.exists() and candidate.is_file():
                return candidate
            raise ToolNotFoundError(f"{name} executable not found at {candidate}")

        binary = shutil.which(name)
        if binary is None:
            raise ToolNotFoundError(f"Missing required command: {name}")
        return Path(binary)

    @property
    def name(self) -> str:
        return self._name

    @property
    def executable(self) -> Path:
        return self._executable_path

    async def run(
        self,
        *args: str,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
    ) -> CommandResult:
        cmd = [str(self._executable_path), *args]
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=sanitize_environment(env),
            cwd=str(cwd) if cwd is not None else None,
        )
        stdout_bytes, stderr_bytes = await process.communicate()
        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        return CommandResult(args=tuple(cmd), returncode=process.returncode, stdout=stdout, stderr=stderr)

    async def stream(
        self,
        *args: str,
        on_line: LineCallback,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
    ) -> CommandResult:
        """Run a command, handing each output line to ``on_line`` as it arrives.

        stderr is merged into stdout so the callback sees output in the order
        the tool wrote it. The collected text is returned as ``stdout``.
        """

        cmd = [str(self._executable_path), *args]
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            env=sanitize_environment(env),
            cwd=str(cwd) if cwd is not None else None,
        )
        collected: list[str] = []

        def emit(raw: bytes) -> None:
            line = raw.decode("utf-8", errors="replace").rstrip("\r")
            collected.append(line)
            on_line(line)

        assert process.stdout is not None
        pending = b""
        try:
            # single lines can exceed the StreamReader limit
            while chunk := await process.stdout.read(STREAM_CHUNK_SIZE):
                pending += chunk
                *complete, pending = pending.split(b"\n")
                for raw in complete:
                    emit(raw)
            if pending:
                emit(pending)
            returncode = await process.wait()
        finally:
            if process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                await process.wait()
        return CommandResult(args=tuple(cmd), returncode=returncode, stdout="\n".join(collected), stderr="")


class FakeCommandRunner(CommandRunner):
    """Test double that returns scripted results keyed by argument prefix.

    ``responses`` maps an argument prefix (a tuple of leading arguments) to
    either a single result or a list of results consumed in order; the last
    result of a list is reused once the list runs dry. Unmatched invocations
    succeed with empty output.
    """

    def __init__(  # type: ignore[override]
        self,
        name: str = "fake",
        responses: Mapping[tuple[str, ...], CommandResult | Iterable[CommandResult]] | None = None,
        journal: list[tuple[str, tuple[str, ...]]] | None = None,
    ) -> None:
        self._name = name
        self._executable_path = Path(f"/tmp/fake-{name}")
        self._responses: dict[tuple[str, ...], list[CommandResult]] = {}
        for prefix, value in (responses or {}).items():
            self.respond(prefix, value)
        self._invocations: list[tuple[str, ...]] = []
        self._environments: list[dict[str, str]] = []
        self._journal = journal

    def respond(
        self, prefix: tuple[str, ...], value: CommandResult | Iterable[CommandResult]
    ) -> None:
        if isinstance(value, CommandResult):
            self._responses[tuple(prefix)] = [value]
        else:
            self._responses[tuple(prefix)] = list(value)

    def _match(self, args: tuple[str, ...]) -> CommandResult:
        best: tuple[str, ...] | None = None
        for prefix in self._responses:
            if args[: len(prefix)] == prefix and (best is None or len(prefix) > len(best)):
                best = prefix
        if best is None:
            return CommandResult(args=args, returncode=0, stdout="", stderr="")
        queue = self._responses[best]
        if len(queue) > 1:
            return queue.pop(0)
        return queue[0]

    async def run(  # type: ignore[override]
        self,
        *args: str,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
    ) -> CommandResult:
        self._invocations.append(tuple(args))
        if self._journal is not None:
            self._journal.append((self._name, tuple(args)))
        self._environments.append(dict(env or {}))
        return self._match(tuple(args))

    async def stream(  # type: ignore[override]
        self,
        *args: str,
        on_line: LineCallback,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
    ) -> CommandResult:
        result = await self.run(*args, env=env, cwd=cwd)
        for line in result.stdout.splitlines():
            on_line(line)
        return result

    @property
    def invocations(self) -> list[tuple[str, ...]]:
        return self._invocations

    @property
    def environments(self) -> list[dict[str, str]]:
        return self._environments

    def calls_starting_with(self, *prefix: str) -> list[tuple[str, ...]]:
        return [call for call in self._invocations if call[: len(prefix)] == prefix]


def ok(stdout: str = "") -> CommandResult:
    """Shorthand for a successful scripted result."""

    return CommandResult(args=(), returncode=0, stdout=stdout, stderr="")


def failed(stderr: str = "", returncode: int = 1, stdout: str = "") -> CommandResult:
    """Shorthand for a failed scripted result."""

    return CommandResult(args=(), returncode=returncode, stdout=stdout, stderr=stderr)
