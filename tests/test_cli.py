from __future__ import annotations

import io
import logging
from pathlib import Path

import pytest

from devfleet import cli
from devfleet.commands import FakeCommandRunner, ToolNotFoundError
from devfleet.commands.runner import failed, ok
from devfleet.identity import label_for_basis
from devfleet.render import LiveTableRenderer
from devfleet.runtime import DevcontainerClient, DockerClient, GitClient

from conftest import make_repo


@pytest.fixture
def fakes(monkeypatch, settings):
    runners = {
        "docker": FakeCommandRunner("docker"),
        "devcontainer": FakeCommandRunner("devcontainer"),
        "git": FakeCommandRunner("git"),
    }
    runners["docker"].respond(("ps", "-a", "-q", "--filter"), ok("cid1\n"))
    runners["docker"].respond(("exec", "cid1", "bash", "-c"), ok("OK\n"))

    def fake_build_clients(_settings, *names):
        return cli.Clients(
            docker=DockerClient(runners["docker"]),
            devcontainer=DevcontainerClient(runners["devcontainer"]),
            git=GitClient(runners["git"]),
        )

    monkeypatch.setattr(cli, "get_settings", lambda: settings)
    monkeypatch.setattr(cli, "build_clients", fake_build_clients)
    return runners


def test_fast_sets_both_skip_flags() -> None:
    args = cli.build_parser().parse_args(["rebuild", "--fast", "--force", "/code"])
    flags = cli._flags_from_args(args)

    assert flags.force and not flags.prune
    assert flags.skip_ai_clis and flags.skip_playwright
    assert args.path == "/code"


def test_rebuild_defaults_to_current_directory() -> None:
    args = cli.build_parser().parse_args(["rebuild"])
    assert args.path == "."
    assert args.max_parallel is None


def test_rebuild_rejects_non_positive_parallelism() -> None:
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["rebuild", "--max-parallel", "0"])


def test_multi_repo_rebuild_succeeds(fakes, tmp_path: Path, capsys) -> None:
    root = tmp_path.resolve()
    make_repo(root, "A")
    make_repo(root, "B")
    (root / "C").mkdir()

    code = cli.cmd_rebuild(cli.build_parser().parse_args(["rebuild", str(root)]))

    out = capsys.readouterr().out
    assert code == 0
    assert "=== Multi-repo mode ===" in out
    assert "Found 2 repo(s):" in out
    assert "Results: 2 succeeded, 0 failed" in out
    assert f"/home/vscode/dexec {root / 'A'}" in out
    up_calls = fakes["devcontainer"].calls_starting_with("up")
    assert sorted(Path(call[2]).name for call in up_calls) == ["A", "B"]
    tmpdirs = {env["TMPDIR"] for env in fakes["devcontainer"].environments}
    assert len(tmpdirs) == 2


def test_multi_repo_rebuild_fails_when_a_tool_is_missing(fakes, tmp_path: Path, capsys) -> None:
    root = tmp_path.resolve()
    make_repo(root, "A")
    make_repo(root, "B")
    fakes["docker"].respond(("exec", "cid1", "bash", "-c"), failed(stdout="MISSING: claude\n"))

    code = cli.cmd_rebuild(cli.build_parser().parse_args(["rebuild", str(root)]))

    out = capsys.readouterr().out
    assert code == 1
    assert "Results: 0 succeeded, 2 failed" in out
    assert "MISSING: claude" in out


def test_single_repo_rebuild(fakes, tmp_path: Path, capsys) -> None:
    repo = make_repo(tmp_path.resolve(), "A")

    code = cli.cmd_rebuild(cli.build_parser().parse_args(["rebuild", "--force", str(repo)]))

    out = capsys.readouterr().out
    assert code == 0
    assert "Multi-repo mode" not in out
    assert "Container: cid1" in out
    (up_call,) = fakes["devcontainer"].calls_starting_with("up")
    assert "--build-no-cache" in up_call


def test_rebuild_without_repo_root_exits_2(fakes, tmp_path: Path, capsys) -> None:
    empty = tmp_path.resolve() / "empty"
    empty.mkdir()

    code = cli.cmd_rebuild(cli.build_parser().parse_args(["rebuild", str(empty)]))

    assert code == 2
    assert "Could not determine repo root" in capsys.readouterr().out


def test_rebuild_without_devcontainer_exits_3(fakes, tmp_path: Path, capsys) -> None:
    repo = tmp_path.resolve() / "plain"
    repo.mkdir()
    fakes["git"].respond(("-C", str(repo), "rev-parse", "--show-toplevel"), ok(f"{repo}\n"))

    code = cli.cmd_rebuild(cli.build_parser().parse_args(["rebuild", str(repo)]))

    assert code == 3
    assert "No devcontainer found at" in capsys.readouterr().out


def test_missing_host_tool_exits_1(monkeypatch, settings, tmp_path: Path, capsys) -> None:
    def missing(_settings, *names):
        raise ToolNotFoundError("Missing required command: devcontainer")

    monkeypatch.setattr(cli, "get_settings", lambda: settings)
    monkeypatch.setattr(cli, "build_clients", missing)

    code = cli.cmd_rebuild(cli.build_parser().parse_args(["rebuild", str(tmp_path)]))

    assert code == 1
    assert "Missing required command: devcontainer" in capsys.readouterr().out


def test_label_command_prints_key_value(fakes, tmp_path: Path, capsys, settings) -> None:
    repo = tmp_path.resolve() / "api"
    repo.mkdir()

    code = cli.cmd_label(cli.build_parser().parse_args(["label", str(repo)]))

    assert code == 0
    assert capsys.readouterr().out.strip().startswith(f"{settings.label_key}=repo-")


def test_stop_all_with_yes_skips_prompt(fakes, capsys, monkeypatch) -> None:
    fakes["docker"].respond(("ps", "-q"), ok("c1\n"))
    monkeypatch.setattr("builtins.input", lambda _prompt: pytest.fail("prompted"))

    code = cli.cmd_stop_all(cli.build_parser().parse_args(["stop-all", "--yes"]))

    assert code == 0
    assert ("stop", "c1") in fakes["docker"].invocations


def no_container_for(fakes, settings, name: str) -> None:
    label = label_for_basis(name, key=settings.label_key, prefix=settings.label_prefix)
    fakes["docker"].respond(("ps", "-a", "-q", "--filter", label.docker_filter), ok(""))


def test_open_multi_repo_reports_missing_containers(fakes, settings, tmp_path: Path, capsys) -> None:
    root = tmp_path.resolve()
    make_repo(root, "A")
    make_repo(root, "B")
    no_container_for(fakes, settings, "B")

    code = cli.cmd_open(cli.build_parser().parse_args(["open", str(root)]))

    out = capsys.readouterr().out
    assert code == 0
    assert "=== Summary ===" in out
    assert "✓ A\n" in out
    assert "✗ B (no container)" in out
    assert "Results: 1 running, 1 missing" in out
    assert f"/home/vscode/dexec {root / 'A'}" in out
    assert f"To build missing containers:\n  devfleet rebuild {root}" in out
    assert ("start", "cid1") in fakes["docker"].invocations


def test_open_multi_repo_fails_when_nothing_starts(fakes, settings, tmp_path: Path, capsys) -> None:
    root = tmp_path.resolve()
    make_repo(root, "A")
    make_repo(root, "B")
    no_container_for(fakes, settings, "A")
    fakes["docker"].respond(("start", "cid1"), failed("port is already allocated"))

    code = cli.cmd_open(cli.build_parser().parse_args(["open", str(root)]))

    out = capsys.readouterr().out
    assert code == 1
    assert "✗ A (no container)" in out
    assert "✗ B (start failed)" in out
    assert "[B] Container could not be started" in out
    assert "Results: 0 running, 1 missing, 1 failed" in out
    assert "=== Attach Instructions ===" not in out


def test_open_single_repo_shows_shell_command(fakes, tmp_path: Path, capsys) -> None:
    repo = make_repo(tmp_path.resolve(), "api")

    code = cli.cmd_open(cli.build_parser().parse_args(["open", str(repo)]))

    out = capsys.readouterr().out
    assert code == 0
    assert "Found container: cid1" in out
    assert f"Shell into it:\n  /home/vscode/dexec {repo}" in out


def test_open_single_repo_without_container_exits_4(fakes, settings, tmp_path: Path, capsys) -> None:
    repo = make_repo(tmp_path.resolve(), "api")
    no_container_for(fakes, settings, "api")

    code = cli.cmd_open(cli.build_parser().parse_args(["open", str(repo)]))

    out = capsys.readouterr().out
    assert code == 4
    assert "No existing devcontainer found for:" in out
    assert f"Run rebuild/start first, e.g.:\n  devfleet rebuild {repo}" in out


def test_open_single_repo_start_failure_exits_1(fakes, tmp_path: Path, capsys) -> None:
    repo = make_repo(tmp_path.resolve(), "api")
    fakes["docker"].respond(("start", "cid1"), failed("port is already allocated"))

    code = cli.cmd_open(cli.build_parser().parse_args(["open", str(repo)]))

    assert code == 1
    assert "Could not start container" in capsys.readouterr().out


def test_live_table_keeps_build_warnings_off_the_console(
    fakes, monkeypatch, tmp_path: Path, capsys, caplog
) -> None:
    root = tmp_path.resolve()
    make_repo(root, "A")
    make_repo(root, "B")
    fakes["docker"].respond(("exec", "-u", "vscode", "cid1", "git"), failed("permission denied"))
    monkeypatch.setattr(cli, "select_renderer", lambda: LiveTableRenderer(io.StringIO()))

    with caplog.at_level(logging.WARNING):
        code = cli.cmd_rebuild(cli.build_parser().parse_args(["rebuild", str(root)]))
        logging.getLogger("devfleet.fixups").warning("after the table")

    assert code == 0
    assert [record.getMessage() for record in caplog.records] == ["after the table"]


def test_plain_output_keeps_build_warnings(fakes, tmp_path: Path, capsys, caplog) -> None:
    root = tmp_path.resolve()
    make_repo(root, "A")
    make_repo(root, "B")
    fakes["docker"].respond(("exec", "-u", "vscode", "cid1", "git"), failed("permission denied"))

    with caplog.at_level(logging.WARNING):
        cli.cmd_rebuild(cli.build_parser().parse_args(["rebuild", str(root)]))

    assert [record.getMessage() for record in caplog.records].count("Fixup step failed") == 2


def test_main_without_command_prints_help(capsys) -> None:
    cli.main([])
    assert "usage: devfleet" in capsys.readouterr().out
