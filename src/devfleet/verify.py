"""Post-build probe for the executables a devcontainer must provide."""

from __future__ import annotations

import shlex
from typing import Iterable, Sequence

from .models import BuildFlags, VerificationResult
from .runtime import DockerClient
from .toolsets import Toolset

DEFAULT_EXTRA_PATH = ("$HOME/.local/bin", "$HOME/.npm-global/bin")


def required_executables(toolsets: Iterable[Toolset], flags: BuildFlags) -> list[str]:
    """Return the executables to check, in toolset order and without duplicates."""

    names: list[str] = []
    for toolset in toolsets:
        if toolset.skip_flag and getattr(flags, toolset.skip_flag):
            continue
        for name in toolset.executables:
            if name not in names:
                names.append(name)
    return names


def build_probe_script(executables: Sequence[str], extra_path: Sequence[str] = DEFAULT_EXTRA_PATH) -> str:
    path_prefix = ":".join(extra_path)
    quoted = " ".join(shlex.quote(name) for name in executables)
    return "\n".join(
        [
            f'export PATH="{path_prefix}:$PATH"' if path_prefix else ":",
            "MISSING=()",
            f"for cmd in {quoted}; do",
            '  command -v "$cmd" >/dev/null 2>&1 || MISSING+=("$cmd")',
            "done",
            "if (( ${#MISSING[@]} > 0 )); then",
            '  echo "MISSING: ${MISSING[*]}"',
            "  exit 1",
            "fi",
            'echo "OK"',
        ]
    )


def parse_probe_output(output: str, executables: Sequence[str]) -> VerificationResult:
    """Interpret the probe's last status line.

    Output that carries neither marker means nothing could be confirmed, so
    every requested executable is reported missing.
    """

    for line in reversed(output.splitlines()):
        line = line.strip()
        if line == "OK":
            return VerificationResult()
        if line.startswith("MISSING:"):
            missing = tuple(line[len("MISSING:") :].split())
            return VerificationResult(missing=missing or tuple(executables))
    return VerificationResult(missing=tuple(executables))


async def verify_container(
    docker: DockerClient,
    container_id: str,
    executables: Sequence[str],
    *,
    extra_path: Sequence[str] = DEFAULT_EXTRA_PATH,
) -> VerificationResult:
    if not executables:
        return VerificationResult()
    script = build_probe_script(executables, extra_path)
    result = await docker.exec(container_id, "bash", "-c", script)
    return parse_probe_output(result.stdout, executables)


__all__ = [
    "DEFAULT_EXTRA_PATH",
    "build_probe_script",
    "parse_probe_output",
    "required_executables",
    "verify_container",
]
