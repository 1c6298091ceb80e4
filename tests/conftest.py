"""Shared fixtures for zenflow tests.

File handling in tests:
- Use tmp_path for any directory or file creation so tests are isolated and cleaned up.
- Git repositories live in tmp_path / "repo"; a bare "origin" sits beside them.
"""

from __future__ import annotations

import copy
import json
import subprocess
from pathlib import Path

import pytest

from zenflow.config import Config
from zenflow.hooks.pipeline import HookPipeline
from zenflow.io_utils import write_text
from zenflow.issues.sync import IssueNotifier, IssueSync
from zenflow.pull_requests import PRState
from zenflow.store import MemoryStore
from zenflow.tasks.model import Task, TaskStatus, TaskTracker
from zenflow.workflow import Workspace

_ENV_VARS = (
    "GITHUB_TOKEN",
    "GITHUB_OWNER",
    "GITHUB_REPO",
    "GITHUB_ENABLED",
    "GITHUB_AUTO_CREATE",
    "GITHUB_AUTO_UPDATE",
    "GITHUB_AUTO_CLOSE",
    "AZURE_DEVOPS_PAT",
    "AZURE_DEVOPS_ORGANIZATION",
    "AZURE_DEVOPS_PROJECT",
    "AZURE_DEVOPS_ENABLED",
    "AZURE_DEVOPS_AUTO_CREATE",
    "AZURE_DEVOPS_AUTO_UPDATE",
    "AZURE_DEVOPS_AUTO_CLOSE",
    "ZENFLOW_TRUNK_BRANCH",
    "ZENFLOW_TEST_COMMAND",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's credentials and overrides out of every test."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def git(repo: Path, *args: str) -> subprocess.CompletedProcess[str]:
    return subprocess.run(["git", *args], cwd=repo, capture_output=True, text=True, check=True)


def commit_file(repo: Path, name: str, content: str, msg: str) -> None:
    path = repo / name
    path.parent.mkdir(parents=True, exist_ok=True)
    write_text(path, content)
    git(repo, "add", name)
    git(repo, "commit", "-m", msg)


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """Create a minimal git repo on ``main`` with one commit."""
    repo = tmp_path / "repo"
    repo.mkdir()
    git(repo, "init")
    git(repo, "symbolic-ref", "HEAD", "refs/heads/main")
    git(repo, "config", "user.name", "Test")
    git(repo, "config", "user.email", "test@test")
    git(repo, "config", "commit.gpgsign", "false")
    commit_file(repo, "README.md", "# Test\n", "Initial")
    return repo


@pytest.fixture
def remote_repo(git_repo: Path, tmp_path: Path) -> Path:
    """``git_repo`` with a bare ``origin`` that already has ``main``."""
    origin = tmp_path / "origin.git"
    subprocess.run(["git", "init", "--bare", str(origin)], capture_output=True, check=True)
    git(git_repo, "remote", "add", "origin", str(origin))
    git(git_repo, "push", "-u", "origin", "main")
    return git_repo


# ── model factories ──────────────────────────────────────────────────


def _make_task(
    id: str,
    title: str = "",
    status: TaskStatus = TaskStatus.PENDING,
    dependencies: list[str] | None = None,
    phase: str = "implementation",
    completion_criteria: list[str] | None = None,
) -> Task:
    return Task(
        id=id,
        title=title or f"Task {id}",
        status=status,
        dependencies=dependencies or [],
        phase=phase,
        completion_criteria=completion_criteria or [],
    )


def _make_tracker(tasks: list[Task], plan_id: str = "plan-001-generated") -> TaskTracker:
    active = next((t.id for t in tasks if t.status is TaskStatus.IN_PROGRESS), None)
    return TaskTracker(plan_id=plan_id, project_name="demo", active_task_id=active, tasks=tasks)


@pytest.fixture
def make_task():
    """Factory fixture that creates Task instances."""
    return _make_task


@pytest.fixture
def make_tracker():
    """Factory fixture that creates TaskTracker instances."""
    return _make_tracker


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


# ── workspace ────────────────────────────────────────────────────────


class FakePullRequests:
    """In-memory PR gateway: set ``states[branch]`` to drive sync."""

    def __init__(self) -> None:
        self.states: dict[str, PRState] = {}
        self.created: list[dict[str, str]] = []
        self.error: Exception | None = None

    def state(self, branch: str) -> PRState:
        return self.states.get(branch, PRState.NOT_FOUND)

    def create(self, *, branch: str, base: str, title: str, body: str) -> str:
        if self.error is not None:
            raise self.error
        self.created.append({"branch": branch, "base": base, "title": title, "body": body})
        return f"https://example.test/pr/{len(self.created)}"


class FakeIssueBackend:
    closes_via_pr = True

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.next_ref = 41
        self.fail = False

    def _record(self, *call) -> None:
        from zenflow.errors import RemoteSyncFailure

        if self.fail:
            raise RemoteSyncFailure("backend down")
        self.calls.append(call)

    def create_issue(self, title: str, body: str, labels: list[str]) -> int:
        self._record("create", title, labels)
        self.next_ref += 1
        return self.next_ref

    def update_labels(self, ref: int, labels: list[str]) -> None:
        self._record("labels", ref, labels)

    def add_comment(self, ref: int, text: str) -> None:
        self._record("comment", ref, text)

    def close(self, ref: int, text: str) -> None:
        self._record("close", ref, text)


@pytest.fixture
def fake_prs() -> FakePullRequests:
    return FakePullRequests()


@pytest.fixture
def fake_issues() -> FakeIssueBackend:
    return FakeIssueBackend()


@pytest.fixture
def workspace(git_repo: Path, fake_prs: FakePullRequests, fake_issues: FakeIssueBackend) -> Workspace:
    """File-backed workspace over ``git_repo`` with fake PR and issue backends."""
    cfg = Config(repo_root=git_repo, trunk_branch="main")
    return Workspace(
        cfg,
        pull_requests=fake_prs,
        notifier=IssueNotifier(IssueSync(fake_issues)),
        hooks=HookPipeline(),
    )


SAMPLE_PLAN = {
    "project": {
        "name": "demo",
        "milestones": [
            {
                "name": "M1",
                "tasks": [
                    {
                        "id": "TASK-001",
                        "title": "Set up project",
                        "phase": "design",
                        "completionCriteria": ["Repo builds"],
                    },
                    {
                        "id": "TASK-002",
                        "title": "Add login form",
                        "dependencies": ["TASK-001"],
                    },
                ],
            }
        ],
    }
}


def write_plan(ws: Workspace, plan: dict | None = None) -> str:
    """Generate, author and lock a plan in *ws*. Returns the plan id."""
    plan_id = ws.plans.generate("Build a demo app")
    ws.store.write(f"plans/{plan_id}/PROJECT-PLAN.json", json.dumps(plan or SAMPLE_PLAN))
    ws.plans.lock(plan_id)
    return plan_id


@pytest.fixture
def locked_workspace(workspace: Workspace) -> Workspace:
    write_plan(workspace)
    return workspace


@pytest.fixture
def sample_plan() -> dict:
    return copy.deepcopy(SAMPLE_PLAN)


@pytest.fixture
def lock_plan():
    """Factory fixture: ``lock_plan(ws, plan=None)`` -> plan id."""
    return write_plan
