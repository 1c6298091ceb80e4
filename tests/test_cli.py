"""CLI tests: every command through click's CliRunner with an injected Workspace."""

from __future__ import annotations

import json
import subprocess
from pathlib import Path

import pytest
from click.testing import CliRunner

from zenflow import __version__
from zenflow.cli import main
from zenflow.config import Config
from zenflow.issues.sync import IssueNotifier, IssueSync
from zenflow.workflow import Workspace


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click CliRunner for invoking the CLI in-process."""
    return CliRunner()


@pytest.fixture
def invoke(cli_runner: CliRunner, workspace: Workspace):
    def _invoke(*args: str, input: str | None = None, ws: Workspace | None = None):
        return cli_runner.invoke(main, list(args), obj=ws or workspace, input=input)

    return _invoke


# ── Main entry and help ──────────────────────────────────────────────


class TestCliHelpAndVersion:
    def test_help(self, cli_runner: CliRunner) -> None:
        r = cli_runner.invoke(main, ["--help"])
        assert r.exit_code == 0
        assert "ZENFLOW" in r.output
        for command in ("plan", "task", "commit", "sync", "status", "hook"):
            assert command in r.output

    def test_help_short(self, cli_runner: CliRunner) -> None:
        r = cli_runner.invoke(main, ["-h"])
        assert r.exit_code == 0

    def test_version(self, cli_runner: CliRunner) -> None:
        r = cli_runner.invoke(main, ["--version"])
        assert r.exit_code == 0
        assert __version__ in r.output

    def test_repo_option_builds_workspace(self, cli_runner: CliRunner, git_repo: Path) -> None:
        r = cli_runner.invoke(main, ["-C", str(git_repo), "status"])
        assert r.exit_code == 0
        assert "No active plan" in r.output


# ── plan ─────────────────────────────────────────────────────────────


class TestPlanCommands:
    def test_generate(self, invoke, git_repo: Path) -> None:
        r = invoke("plan", "generate", "Build", "a", "todo", "app")
        assert r.exit_code == 0
        assert "plan-001-generated" in r.output
        text = (git_repo / ".claude" / "plans" / "plan-001-generated" / "PROJECT-REQUIREMENTS.txt").read_text()
        assert "Build a todo app" in text

    def test_generate_without_text(self, invoke) -> None:
        r = invoke("plan", "generate")
        assert r.exit_code == 1
        assert "Validation error: No requirements provided" in r.output

    def test_lock_without_plan_file(self, invoke) -> None:
        invoke("plan", "generate", "demo")
        r = invoke("plan", "lock")
        assert r.exit_code == 1
        assert "Plan file missing" in r.output

    def test_lock(self, invoke, workspace: Workspace, sample_plan: dict) -> None:
        invoke("plan", "generate", "demo")
        workspace.store.write("plans/plan-001-generated/PROJECT-PLAN.json", json.dumps(sample_plan))
        r = invoke("plan", "lock")
        assert r.exit_code == 0
        assert "locked with 2 task(s)" in r.output

    def test_lock_invalid_plan(self, invoke, workspace: Workspace) -> None:
        invoke("plan", "generate", "demo")
        workspace.store.write("plans/plan-001-generated/PROJECT-PLAN.json", json.dumps({"tasks": []}))
        r = invoke("plan", "lock")
        assert r.exit_code == 1
        assert "Invalid project plan" in r.output
        assert "Suggestion:" in r.output

    def test_corrupt_tracker(self, invoke, locked_workspace: Workspace) -> None:
        locked_workspace.store.write("plans/plan-001-generated/TASK-TRACKER.json", "{")
        r = invoke("task", "next", ws=locked_workspace)
        assert r.exit_code == 1
        assert "Corrupt state" in r.output


# ── task ─────────────────────────────────────────────────────────────


class TestTaskCommands:
    def test_next(self, invoke, locked_workspace: Workspace) -> None:
        r = invoke("task", "next", ws=locked_workspace)
        assert r.exit_code == 0
        assert "Started TASK-001" in r.output
        assert "feature/task-001" in r.output
        assert "Repo builds" in r.output

    def test_next_twice(self, invoke, locked_workspace: Workspace) -> None:
        invoke("task", "next", ws=locked_workspace)
        r = invoke("task", "next", ws=locked_workspace)
        assert r.exit_code == 1
        assert "Task already in progress" in r.output

    def test_start_with_unmet_dependency(self, invoke, locked_workspace: Workspace) -> None:
        r = invoke("task", "start", "TASK-002", ws=locked_workspace)
        assert r.exit_code == 1
        assert "Dependencies not satisfied" in r.output

    def test_block_and_reset(self, invoke, locked_workspace: Workspace) -> None:
        invoke("task", "next", ws=locked_workspace)
        r = invoke("task", "block", "TASK-001", "waiting", "on", "keys", ws=locked_workspace)
        assert r.exit_code == 0
        assert locked_workspace.active_tracker().get("TASK-001").blocked_reason == "waiting on keys"
        r = invoke("task", "reset", "TASK-001", ws=locked_workspace)
        assert r.exit_code == 0
        assert "Reset TASK-001" in r.output

    def test_without_plan(self, invoke) -> None:
        r = invoke("task", "next")
        assert r.exit_code == 1
        assert "No active plan" in r.output


# ── commit / sync / status ───────────────────────────────────────────


class TestCommitSyncStatus:
    def test_commit_on_main(self, invoke, locked_workspace: Workspace) -> None:
        r = invoke("commit", ws=locked_workspace)
        assert r.exit_code == 1
        assert "Branch protected" in r.output

    def test_commit_push_failure_is_reported_as_recoverable(self, invoke, locked_workspace: Workspace, git_repo: Path) -> None:
        invoke("task", "next", ws=locked_workspace)
        (git_repo / "Agent").mkdir()
        (git_repo / "Agent" / "app.js").write_text("x\n")
        r = invoke("commit", ws=locked_workspace)
        assert r.exit_code == 1
        assert "Push failed" in r.output
        assert "Nothing was rolled back" in r.output

    def test_commit_stage_failure_is_reported_as_recoverable(self, invoke, locked_workspace: Workspace, git_repo: Path) -> None:
        invoke("task", "next", ws=locked_workspace)
        (git_repo / "Agent").mkdir()
        (git_repo / "Agent" / "app.js").write_text("x\n")
        (git_repo / ".git" / "index.lock").write_text("")
        r = invoke("commit", ws=locked_workspace)
        assert r.exit_code == 1
        assert "Staging failed" in r.output
        assert "Nothing was rolled back" in r.output

    def test_commit_full_flow(self, invoke, locked_workspace: Workspace, remote_repo: Path) -> None:
        invoke("task", "next", ws=locked_workspace)
        (remote_repo / "Agent").mkdir()
        (remote_repo / "Agent" / "app.js").write_text("x\n")
        r = invoke("commit", ws=locked_workspace)
        assert r.exit_code == 0
        assert "zenflow sync" in r.output

    def test_sync_unsupported_branch(self, invoke, git_repo: Path) -> None:
        subprocess.run(["git", "checkout", "-b", "experiment"], cwd=git_repo, capture_output=True, check=True)
        r = invoke("sync")
        assert r.exit_code == 1
        assert "Unsupported branch" in r.output

    def test_sync_on_trunk(self, invoke) -> None:
        r = invoke("sync")
        assert r.exit_code == 0
        assert "up to date" in r.output

    def test_status_without_plan_exits_zero(self, invoke) -> None:
        r = invoke("status")
        assert r.exit_code == 0
        assert "No active plan" in r.output

    def test_status(self, invoke, locked_workspace: Workspace) -> None:
        invoke("task", "next", ws=locked_workspace)
        r = invoke("status", ws=locked_workspace)
        assert r.exit_code == 0
        assert "Current: TASK-001" in r.output
        assert "feature/task-001" in r.output


# ── hook ─────────────────────────────────────────────────────────────


class TestHookCommands:
    @pytest.fixture
    def hook_ws(self, git_repo: Path) -> Workspace:
        return Workspace(Config(repo_root=git_repo), notifier=IssueNotifier(IssueSync(None)))

    def test_edit_without_task_exits_2(self, invoke, hook_ws: Workspace) -> None:
        payload = json.dumps({"tool_name": "Edit", "tool_input": {"file_path": "Agent/app.js"}})
        r = invoke("hook", "pre-tool-use", input=payload, ws=hook_ws)
        assert r.exit_code == 2
        assert "Blocked by require_active_task" in r.output

    def test_destructive_bash_exits_2(self, invoke, hook_ws: Workspace) -> None:
        payload = json.dumps({"tool_name": "Bash", "tool_input": {"command": "git reset --hard"}})
        r = invoke("hook", "pre-tool-use", input=payload, ws=hook_ws)
        assert r.exit_code == 2
        assert "hard reset" in r.output

    def test_harmless_bash_allowed(self, invoke, hook_ws: Workspace) -> None:
        payload = json.dumps({"tool_name": "Bash", "tool_input": {"command": "git status"}})
        r = invoke("hook", "pre-tool-use", input=payload, ws=hook_ws)
        assert r.exit_code == 0

    def test_post_tool_use_checks_ui_pairs(self, invoke, hook_ws: Workspace, git_repo: Path) -> None:
        component = git_repo / "Agent" / "src" / "components" / "Card.jsx"
        component.parent.mkdir(parents=True)
        component.write_text("export default () => null;\n")
        payload = json.dumps({"tool_name": "Write", "tool_input": {"file_path": str(component)}})
        r = invoke("hook", "post-tool-use", input=payload, ws=hook_ws)
        assert r.exit_code == 2
        assert "require_ui_component_pairs" in r.output

    def test_empty_stdin_allowed(self, invoke, hook_ws: Workspace) -> None:
        r = invoke("hook", "pre-tool-use", input="", ws=hook_ws)
        assert r.exit_code == 0
