"""Tests for the CLI surface: run, status, and --version."""

import pytest
from typer.testing import CliRunner

import orchestrar.cli as cli_mod
import orchestrar.orchestrator as orchestrator_mod
import orchestrar.utils as utils_mod
from conftest import FakeWorld, check_all_tasks
from orchestrar.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    for name in (
        "ORCHESTRATOR_REVIEW_COMMAND",
        "ORCHESTRATOR_REVIEW_ARGUMENTS",
        "ORCHESTRATOR_MAX_REVIEW_ITERATIONS",
        "ORCHESTRATOR_MODEL",
        "ORCHESTRATOR_COMMIT_MODEL",
        "ORCHESTRATOR_SERVER_URL",
        "ORCHESTRATOR_AGENT",
        "ORCHESTRATOR_COMMIT_AGENT",
        "ORCHESTRATOR_REVIEW_TIMEOUT_MS",
        "ORCHESTRATOR_SESSION_TIMEOUT_MS",
        "ORCHESTRATOR_OPENCODE_BIN",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("ORCHESTRATOR_STATUS_POLL_INTERVAL_MS", "1")
    # run sets the global log root; restore it afterwards
    monkeypatch.setattr(utils_mod, "_log_root", None)


@pytest.fixture
def world(project, monkeypatch):
    w = FakeWorld(on_prompt=check_all_tasks)
    w.plan_path = str(project / "docs" / "PLAN.md")
    captured = {}

    def fake_factory(**kwargs):
        captured.update(kwargs)
        return w.factory

    monkeypatch.setattr(orchestrator_mod, "opencode_instance_factory", fake_factory)
    w.factory_kwargs = captured
    return w


# --- run ---

def test_run_completes_all_milestones(project, world):
    world.review_results = [{"findings": []}]

    result = runner.invoke(app, ["run", "--directory", str(project)])

    assert result.exit_code == 0
    assert "All milestones completed." in result.output
    assert (project / "logs" / "orchestrator.log").exists()


def test_run_passes_cli_overrides_to_config(project, world):
    world.review_results = [{"findings": []}]

    result = runner.invoke(app, [
        "run", "-d", str(project),
        "--review-command", "review-staged",
        "--review-arguments", "--strict",
        "--server-url", "http://127.0.0.1:4096",
    ])

    assert result.exit_code == 0
    assert world.commands[0][:2] == ("review-staged", "--strict")
    assert world.factory_kwargs["server_url"] == "http://127.0.0.1:4096"


def test_run_reads_review_command_from_env(project, world, monkeypatch):
    monkeypatch.setenv("ORCHESTRATOR_REVIEW_COMMAND", "review-env")
    world.review_results = [{"findings": []}]

    result = runner.invoke(app, ["run", "-d", str(project)])

    assert result.exit_code == 0
    assert world.commands[0][0] == "review-env"


def test_run_fails_with_exit_1_when_docs_missing(tmp_path, world):
    empty = tmp_path / "empty"
    empty.mkdir()

    result = runner.invoke(app, ["run", "-d", str(empty)])

    assert result.exit_code == 1
    assert "[orchestrator] Failed: Required file not found" in result.output
    assert world.instances == []


def test_run_fails_when_review_never_converges(project, world):
    world.review_results = [{"findings": [{"id": 1}]}] * 2

    result = runner.invoke(app, ["run", "-d", str(project), "--max-review-iterations", "2"])

    assert result.exit_code == 1
    assert "Review loop exceeded 2 iterations" in result.output


def test_run_rejects_zero_review_iterations(project, world):
    result = runner.invoke(app, ["run", "-d", str(project), "--max-review-iterations", "0"])
    assert result.exit_code == 2


def test_run_rejects_invalid_model(project, world):
    result = runner.invoke(app, ["run", "-d", str(project), "--model", "gpt-4"])
    assert result.exit_code == 1
    assert "Invalid model spec: gpt-4" in result.output


def test_unexpected_error_prints_one_line_diagnostic(project, world):
    (project / "docs" / "PLAN.md").write_bytes(b"- [ ] task \xff\xfe\n")

    result = runner.invoke(app, ["run", "-d", str(project)])

    assert result.exit_code == 1
    assert "[orchestrator] Failed:" in result.output
    assert "Traceback" not in result.output
    assert world.instances == []


def test_run_overrides_agents_timing_and_binary(project, world):
    world.review_results = [{"findings": []}]

    result = runner.invoke(app, [
        "run", "-d", str(project),
        "--agent", "plan",
        "--commit-agent", "git",
        "--session-timeout-ms", "90000",
        "--review-timeout-ms", "60000",
        "--status-poll-interval-ms", "5",
        "--opencode-bin", "/opt/opencode",
    ])

    assert result.exit_code == 0
    assert {agent for (title, _, _, agent) in world.prompts if title != "Commit & Push"} == {"plan"}
    assert [agent for (title, _, _, agent) in world.prompts if title == "Commit & Push"] == ["git"]
    assert world.commands[0][2] == "plan"
    assert world.factory_kwargs["opencode_bin"] == "/opt/opencode"
    assert world.factory_kwargs["command_timeout_ms"] == 90000


# --- status ---

def test_status_shows_docs_and_milestones(project):
    result = runner.invoke(app, ["status", "-d", str(project)])

    assert result.exit_code == 0
    assert "PLAN: docs/PLAN.md" in result.output
    assert "[ ] Milestone 1: Scaffolding (0/2)" in result.output
    assert "2 of 2 tasks remaining." in result.output


def test_status_lists_raw_tasks_without_milestone_headings(project):
    (project / "docs" / "PLAN.md").write_text("- [x] one\n- [x] two\n", encoding="utf-8")

    result = runner.invoke(app, ["status", "-d", str(project)])

    assert result.exit_code == 0
    assert "- [x] one" in result.output
    assert "All 2 tasks complete." in result.output


def test_status_missing_docs_exits_1(tmp_path):
    result = runner.invoke(app, ["status", "-d", str(tmp_path)])
    assert result.exit_code == 1


# --- version ---

def test_version_flag_prints_version(monkeypatch):
    monkeypatch.setattr(cli_mod, "get_version", lambda: "9.9.9 (gabc1234)")
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "9.9.9 (gabc1234)" in result.output
