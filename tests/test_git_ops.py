"""Unit tests for zenflow.git_ops against real temporary git repos."""

from __future__ import annotations

import subprocess
from pathlib import Path

from zenflow import git_ops


# ── helpers ──────────────────────────────────────────────────────────


def _commit_file(repo: Path, name: str, content: str, msg: str) -> None:
    (repo / name).write_text(content)
    subprocess.run(["git", "add", name], cwd=repo, capture_output=True, check=True)
    subprocess.run(["git", "commit", "-m", msg], cwd=repo, capture_output=True, check=True)


# ── TestRepositoryState ──────────────────────────────────────────────


class TestRepositoryState:
    def test_is_repository(self, git_repo: Path, tmp_path: Path) -> None:
        assert git_ops.is_repository(cwd=git_repo)
        outside = tmp_path / "plain"
        outside.mkdir()
        assert not git_ops.is_repository(cwd=outside)

    def test_current_branch(self, git_repo: Path) -> None:
        assert git_ops.current_branch(cwd=git_repo) == "main"

    def test_current_branch_detached(self, git_repo: Path) -> None:
        subprocess.run(["git", "checkout", "--detach"], cwd=git_repo, capture_output=True, check=True)
        assert git_ops.current_branch(cwd=git_repo) is None

    def test_clean_tree(self, git_repo: Path) -> None:
        assert git_ops.status_entries(cwd=git_repo) == []
        assert not git_ops.has_dirty_worktree(cwd=git_repo)

    def test_status_entries(self, git_repo: Path) -> None:
        (git_repo / "README.md").write_text("changed\n")
        (git_repo / "new").mkdir()
        (git_repo / "new" / "file.txt").write_text("x")
        entries = dict((path, code) for code, path in git_ops.status_entries(cwd=git_repo))
        assert entries == {"README.md": "M", "new/file.txt": "??"}

    def test_dirty_entries_ignore_prefix(self, git_repo: Path) -> None:
        (git_repo / ".claude").mkdir()
        (git_repo / ".claude" / "ACTIVE-PLAN").write_text("plan-001-generated\n")
        assert git_ops.dirty_worktree_entries(cwd=git_repo, ignore_prefix=".claude") == []
        assert git_ops.dirty_worktree_entries(cwd=git_repo) == ["?? .claude/ACTIVE-PLAN"]


# ── TestBranches ─────────────────────────────────────────────────────


class TestBranches:
    def test_create_branch_and_exists(self, git_repo: Path) -> None:
        r = git_ops.create_branch("feature/task-001", "main", cwd=git_repo)
        assert r.returncode == 0
        assert git_ops.branch_exists("feature/task-001", cwd=git_repo)
        assert git_ops.current_branch(cwd=git_repo) == "feature/task-001"

    def test_branch_exists_false(self, git_repo: Path) -> None:
        assert not git_ops.branch_exists("nonexistent-branch", cwd=git_repo)

    def test_checkout_unknown_branch_fails(self, git_repo: Path) -> None:
        assert git_ops.checkout("nope", cwd=git_repo).returncode != 0

    def test_delete_merged_branch(self, git_repo: Path) -> None:
        git_ops.create_branch("to-delete", "main", cwd=git_repo)
        git_ops.checkout("main", cwd=git_repo)
        assert git_ops.delete_branch("to-delete", cwd=git_repo)
        assert not git_ops.branch_exists("to-delete", cwd=git_repo)

    def test_delete_unmerged_needs_force(self, git_repo: Path) -> None:
        git_ops.create_branch("force-del", "main", cwd=git_repo)
        _commit_file(git_repo, "unmerged.txt", "data", "unmerged commit")
        git_ops.checkout("main", cwd=git_repo)
        assert not git_ops.delete_branch("force-del", cwd=git_repo)
        assert git_ops.delete_branch("force-del", force=True, cwd=git_repo)
        assert not git_ops.branch_exists("force-del", cwd=git_repo)

    def test_commit_count(self, git_repo: Path) -> None:
        git_ops.create_branch("ahead", "main", cwd=git_repo)
        _commit_file(git_repo, "a.txt", "a", "one")
        _commit_file(git_repo, "b.txt", "b", "two")
        assert git_ops.commit_count("main", "ahead", cwd=git_repo) == 2
        assert git_ops.commit_count("ahead", "main", cwd=git_repo) == 0
        assert git_ops.commit_count("missing-ref", cwd=git_repo) == 0


# ── TestRemotes ──────────────────────────────────────────────────────


class TestRemotes:
    def test_no_remote(self, git_repo: Path) -> None:
        assert not git_ops.has_remote("origin", cwd=git_repo)
        assert git_ops.remote_url("origin", cwd=git_repo) == ""

    def test_remote(self, remote_repo: Path, tmp_path: Path) -> None:
        assert git_ops.has_remote("origin", cwd=remote_repo)
        assert git_ops.remote_url("origin", cwd=remote_repo) == str(tmp_path / "origin.git")
        assert git_ops.remote_branch_exists("main", cwd=remote_repo)
        assert git_ops.has_upstream(cwd=remote_repo)

    def test_push_new_branch_with_upstream(self, remote_repo: Path) -> None:
        git_ops.create_branch("feature/task-001", "main", cwd=remote_repo)
        _commit_file(remote_repo, "f.txt", "f", "feature work")
        assert not git_ops.has_upstream(cwd=remote_repo)
        r = git_ops.push("feature/task-001", set_upstream=True, cwd=remote_repo)
        assert r.returncode == 0
        assert git_ops.has_upstream(cwd=remote_repo)
        assert git_ops.remote_branch_exists("feature/task-001", cwd=remote_repo)

    def test_pull_and_fetch(self, remote_repo: Path) -> None:
        assert git_ops.fetch("origin", cwd=remote_repo)
        assert git_ops.pull("main", cwd=remote_repo).returncode == 0


# ── TestStagingAndCommit ─────────────────────────────────────────────


class TestStagingAndCommit:
    def test_stage_and_commit(self, git_repo: Path) -> None:
        (git_repo / "README.md").write_text("changed\n")
        (git_repo / "added.txt").write_text("new\n")
        assert git_ops.stage_all(cwd=git_repo).returncode == 0
        assert sorted(git_ops.staged_changes(cwd=git_repo)) == [("A", "added.txt"), ("M", "README.md")]
        r = git_ops.commit("Update files", cwd=git_repo)
        assert r.returncode == 0
        assert git_ops.staged_changes(cwd=git_repo) == []
        assert not git_ops.has_dirty_worktree(cwd=git_repo)

    def test_commit_nothing_fails(self, git_repo: Path) -> None:
        r = git_ops.commit("empty", cwd=git_repo)
        assert r.returncode != 0
        assert git_ops.stderr_of(r)
