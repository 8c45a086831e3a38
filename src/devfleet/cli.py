"""devfleet command line interface."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from pydantic import ValidationError

from . import __version__
from .builder import SingleRepoBuilder
from .commands import CommandRunner, ToolNotFoundError
from .config import FleetSettings, get_settings
from .discovery import (
    DevcontainerConfigMissingError,
    RepoRootNotFoundError,
    find_repos_in_dir,
    is_multi_repo_dir,
    resolve_targets,
)
from .identity import derive_label
from .lifecycle import OpenStatus, open_repo, stop_all, stop_repo
from .models import BuildFlags, FleetSummary
from .orchestrator import FleetOrchestrator
from .render import LiveTableRenderer, PlainRenderer, Renderer, format_duration, render_summary
from .runtime import DevcontainerClient, DockerClient, GitClient
from .toolsets import ToolsetLoadError, load_toolsets

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_NO_REPO_ROOT = 2
EXIT_NO_DEVCONTAINER = 3
EXIT_NO_CONTAINER = 4


def configure_logging(level: str) -> None:
    """Configure root logging for the devfleet CLI."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


@dataclass(slots=True)
class Clients:
    docker: DockerClient | None = None
    devcontainer: DevcontainerClient | None = None
    git: GitClient | None = None


def build_clients(settings: FleetSettings, *names: str) -> Clients:
    """Resolve the requested host tools, raising ToolNotFoundError if any is missing."""

    clients = Clients()
    if "devcontainer" in names:
        clients.devcontainer = DevcontainerClient(
            CommandRunner("devcontainer", settings.devcontainer_path)
        )
    if "docker" in names:
        clients.docker = DockerClient(CommandRunner("docker", settings.docker_path))
    if "git" in names:
        clients.git = GitClient(CommandRunner("git", settings.git_path))
    return clients


def select_renderer() -> Renderer:
    if sys.stdout.isatty():
        return LiveTableRenderer()
    return PlainRenderer()


@contextmanager
def console_warnings_muted(active: bool) -> Iterator[None]:
    """Drop package log records below ERROR while a live table owns the terminal.

    Build warnings still reach each job's own log.
    """

    if not active:
        yield
        return
    package_logger = logging.getLogger(__package__)
    previous = package_logger.level
    package_logger.setLevel(logging.ERROR)
    try:
        yield
    finally:
        package_logger.setLevel(previous)


def _flags_from_args(args: argparse.Namespace) -> BuildFlags:
    return BuildFlags(
        force=args.force,
        prune=args.prune,
        skip_ai_clis=args.skip_ai_clis or args.fast,
        skip_playwright=args.skip_playwright or args.fast,
    )


def _print_lines(lines: list[str]) -> None:
    for line in lines:
        print(line)


async def _rebuild(
    path: Path,
    flags: BuildFlags,
    *,
    settings: FleetSettings,
    clients: Clients,
    builder: SingleRepoBuilder,
    max_parallel: int,
) -> int:
    assert clients.git is not None
    try:
        targets = await resolve_targets(path, clients.git)
    except RepoRootNotFoundError as exc:
        print(str(exc))
        return EXIT_NO_REPO_ROOT
    except DevcontainerConfigMissingError as exc:
        print(str(exc))
        return EXIT_NO_DEVCONTAINER

    logger.debug(
        "Resolved build targets",
        extra={"mode": targets.mode, "root": str(targets.root), "repos": len(targets.repos)},
    )
    if targets.mode == "multi":
        print("=== Multi-repo mode ===")
        print(f"Building all devcontainers in: {targets.root}")
        print(f"Flags: {flags.describe()} MAX_PARALLEL={max_parallel}")
        print("")
        print(f"Found {len(targets.repos)} repo(s):")
        for repo in targets.repos:
            print(f"  - {repo.name}")
        print("")

        renderer = select_renderer()
        orchestrator = FleetOrchestrator(
            builder,
            renderer,
            max_parallel=max_parallel,
            poll_interval=settings.poll_interval,
        )
        with console_warnings_muted(isinstance(renderer, LiveTableRenderer)):
            summary = await orchestrator.run(targets.repos, flags)
        _print_lines(render_summary(summary, settings.attach_command))
        return summary.exit_code

    repo_root = targets.repos[0]
    result = await builder.build(repo_root, flags, log=print)
    _print_lines(render_summary(FleetSummary(results=[result]), settings.attach_command))
    if result.ok and result.container_id:
        print(f"Container: {result.container_id} ({format_duration(result.duration)})")
    return EXIT_OK if result.ok else EXIT_FAILED


def cmd_rebuild(args: argparse.Namespace) -> int:
    settings = get_settings()
    path = Path(args.path).expanduser()
    if not path.is_dir():
        print(f"Invalid path: {args.path}")
        return EXIT_NO_REPO_ROOT

    try:
        clients = build_clients(settings, "devcontainer", "docker", "git")
        toolsets = load_toolsets(settings.toolset_paths)
    except (ToolNotFoundError, ToolsetLoadError) as exc:
        print(str(exc))
        return EXIT_FAILED

    assert clients.docker and clients.devcontainer and clients.git
    builder = SingleRepoBuilder(
        docker=clients.docker,
        devcontainer=clients.devcontainer,
        git=clients.git,
        settings=settings,
        toolsets=toolsets,
    )
    max_parallel = args.max_parallel or settings.max_parallel
    return asyncio.run(
        _rebuild(
            path.resolve(),
            _flags_from_args(args),
            settings=settings,
            clients=clients,
            builder=builder,
            max_parallel=max_parallel,
        )
    )


async def _open(path: Path, *, settings: FleetSettings, clients: Clients) -> int:
    assert clients.docker is not None and clients.git is not None
    if await is_multi_repo_dir(path, clients.git):
        return await _open_many(path, settings=settings, clients=clients)

    try:
        targets = await resolve_targets(path, clients.git)
    except RepoRootNotFoundError as exc:
        print(str(exc))
        return EXIT_NO_REPO_ROOT
    except DevcontainerConfigMissingError as exc:
        print(str(exc))
        return EXIT_NO_DEVCONTAINER

    repo_root = targets.repos[0]
    status = await open_repo(repo_root, docker=clients.docker, git=clients.git, settings=settings)
    if status is OpenStatus.MISSING:
        print("")
        print("Run rebuild/start first, e.g.:")
        print(f"  devfleet rebuild {repo_root}")
        return EXIT_NO_CONTAINER
    if not status.ok:
        return EXIT_FAILED
    print("")
    print("Shell into it:")
    print(f"  {settings.attach_command.format(repo=repo_root)}")
    return EXIT_OK


async def _open_many(path: Path, *, settings: FleetSettings, clients: Clients) -> int:
    assert clients.docker is not None and clients.git is not None
    repos = find_repos_in_dir(path)
    print("=== Multi-repo mode ===")
    print(f"Opening all devcontainers in: {path}")
    print("")
    print(f"Found {len(repos)} repo(s):")
    for repo in repos:
        print(f"  - {repo.name}")
    print("")

    statuses: list[tuple[Path, OpenStatus]] = []
    for repo in repos:
        print(f"[{repo.name}] Opening...")
        status = await open_repo(
            repo,
            docker=clients.docker,
            git=clients.git,
            settings=settings,
            prefix=f"[{repo.name}] ",
        )
        statuses.append((repo, status))
        if status.ok:
            print(f"[{repo.name}] Container started")
        elif status is OpenStatus.MISSING:
            print(f"[{repo.name}] No container found (run rebuild first)")
        else:
            print(f"[{repo.name}] Container could not be started")
        print("")

    opened = [repo for repo, status in statuses if status.ok]
    missing = [repo for repo, status in statuses if status is OpenStatus.MISSING]
    print("=== Summary ===")
    print("")
    for repo in opened:
        print(f"✓ {repo.name}")
    for repo, status in statuses:
        if status is OpenStatus.MISSING:
            print(f"✗ {repo.name} (no container)")
        elif status is OpenStatus.START_FAILED:
            print(f"✗ {repo.name} (start failed)")
    print("")
    not_started = len(statuses) - len(opened) - len(missing)
    results = f"Results: {len(opened)} running, {len(missing)} missing"
    print(f"{results}, {not_started} failed" if not_started else results)
    print("")

    if opened:
        print("=== Attach Instructions ===")
        print("")
        for repo in opened:
            print(f"{repo.name}:")
            print(f"  {settings.attach_command.format(repo=repo)}")
            print("")

    if missing:
        print("To build missing containers:")
        print(f"  devfleet rebuild {path}")

    return EXIT_OK if opened else EXIT_FAILED


def cmd_open(args: argparse.Namespace) -> int:
    settings = get_settings()
    path = Path(args.path).expanduser()
    if not path.is_dir():
        print(f"Invalid path: {args.path}")
        return EXIT_NO_REPO_ROOT
    try:
        clients = build_clients(settings, "docker", "git")
    except ToolNotFoundError as exc:
        print(str(exc))
        return EXIT_FAILED
    return asyncio.run(_open(path.resolve(), settings=settings, clients=clients))


async def _stop(path: Path, *, settings: FleetSettings, clients: Clients) -> int:
    assert clients.docker is not None and clients.git is not None
    repo_root = await clients.git.toplevel(path) or path
    return await stop_repo(repo_root, docker=clients.docker, git=clients.git, settings=settings)


def cmd_stop(args: argparse.Namespace) -> int:
    settings = get_settings()
    path = Path(args.path).expanduser()
    if not path.is_dir():
        print(f"Invalid path: {args.path}")
        return EXIT_FAILED
    try:
        clients = build_clients(settings, "docker", "git")
    except ToolNotFoundError as exc:
        print(str(exc))
        return EXIT_FAILED
    return asyncio.run(_stop(path.resolve(), settings=settings, clients=clients))


def _confirm_stop_all() -> bool:
    reply = input("Stop all? [y/N] ")
    return reply.strip().lower().startswith("y")


def cmd_stop_all(args: argparse.Namespace) -> int:
    settings = get_settings()
    try:
        clients = build_clients(settings, "docker")
    except ToolNotFoundError as exc:
        print(str(exc))
        return EXIT_FAILED
    assert clients.docker is not None
    confirm = (lambda: True) if args.yes else _confirm_stop_all
    return asyncio.run(stop_all(docker=clients.docker, settings=settings, confirm=confirm))


async def _label(path: Path, *, settings: FleetSettings, clients: Clients) -> int:
    assert clients.git is not None
    repo_root = await clients.git.toplevel(path) or path
    print(await derive_label(repo_root, clients.git, settings))
    return EXIT_OK


def cmd_label(args: argparse.Namespace) -> int:
    settings = get_settings()
    try:
        clients = build_clients(settings, "git")
    except ToolNotFoundError as exc:
        print(str(exc))
        return EXIT_FAILED
    path = Path(args.path).expanduser().resolve()
    return asyncio.run(_label(path, settings=settings, clients=clients))


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError("must be >= 1")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="devfleet", description="Per-repo devcontainer lifecycle")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="cmd")

    p_rebuild = sub.add_parser(
        "rebuild",
        help="Rebuild and start devcontainers",
        description=(
            "Rebuild + start the devcontainer for a repo. If path contains multiple "
            "repos (subdirs with .devcontainer), all are built in parallel."
        ),
    )
    p_rebuild.add_argument(
        "--force",
        action="store_true",
        help="Remove containers/images/volumes and rebuild with no cache",
    )
    p_rebuild.add_argument(
        "--prune", action="store_true", help="Additionally prune dangling images after removal"
    )
    p_rebuild.add_argument(
        "--skip-ai-clis",
        action="store_true",
        help="Skip installing AI CLIs (claude, gemini, codex)",
    )
    p_rebuild.add_argument(
        "--skip-playwright", action="store_true", help="Skip installing Playwright browser"
    )
    p_rebuild.add_argument(
        "--fast",
        action="store_true",
        help="Skip both AI CLIs and Playwright (fastest rebuild)",
    )
    p_rebuild.add_argument(
        "--max-parallel",
        type=_positive_int,
        default=None,
        help="Maximum concurrent builds (default: DEVFLEET_MAX_PARALLEL or 4)",
    )
    p_rebuild.add_argument("path", nargs="?", default=".")
    p_rebuild.set_defaults(func=cmd_rebuild)

    p_open = sub.add_parser("open", help="Start existing devcontainer(s) without rebuilding")
    p_open.add_argument("path", nargs="?", default=".")
    p_open.set_defaults(func=cmd_open)

    p_stop = sub.add_parser("stop", help="Stop the devcontainer for a repo")
    p_stop.add_argument("path")
    p_stop.set_defaults(func=cmd_stop)

    p_stop_all = sub.add_parser("stop-all", help="Stop all running devcontainers")
    p_stop_all.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")
    p_stop_all.set_defaults(func=cmd_stop_all)

    p_label = sub.add_parser("label", help="Print the identity label for a repo")
    p_label.add_argument("path", nargs="?", default=".")
    p_label.set_defaults(func=cmd_label)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return

    try:
        settings = get_settings()
    except ValidationError as exc:
        print(f"Invalid configuration: {exc}")
        raise SystemExit(EXIT_FAILED)
    configure_logging(settings.log_level)

    exit_code = args.func(args)
    if exit_code:
        raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
