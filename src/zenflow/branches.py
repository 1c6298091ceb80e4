"""Feature-branch lifecycle: naming, task start, post-merge sync."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from rich.markup import escape

from zenflow import git_ops, log
from zenflow.config import Config
from zenflow.errors import (
    BranchCreateFailed,
    DetachedHead,
    DirtyWorkingTree,
    NotARepository,
    NotOnTrunk,
    PRNotMerged,
    PullFailed,
    UncommittedChanges,
    UnsupportedBranch,
)
from zenflow.pull_requests import PRState, PullRequestGateway

FEATURE_PREFIX = "feature/"
SYNCABLE_PREFIXES = ("feature/", "plan/", "admin/")


def branch_name_for(task_id: str) -> str:
    """``TASK-007`` -> ``feature/task-007``."""
    return f"{FEATURE_PREFIX}{task_id.lower()}"


@dataclass
class SyncResult:
    branch: str
    trunk: str
    deleted: bool = False


class BranchCoordinator:
    def __init__(self, cfg: Config, pull_requests: PullRequestGateway) -> None:
        self.cfg = cfg
        self.pull_requests = pull_requests
        self._trunk: str | None = None

    @property
    def cwd(self) -> Path:
        return self.cfg.repo_root

    # ── repository state ─────────────────────────────────────────

    def ensure_repository(self) -> None:
        if not git_ops.is_repository(cwd=self.cwd):
            raise NotARepository(str(self.cwd))

    def trunk(self) -> str:
        if self._trunk is None:
            if self.cfg.trunk_branch:
                self._trunk = self.cfg.trunk_branch
            elif git_ops.remote_branch_exists("main", cwd=self.cwd):
                self._trunk = "main"
            elif git_ops.remote_branch_exists("master", cwd=self.cwd):
                self._trunk = "master"
            else:
                self._trunk = "main"
        return self._trunk

    def current_branch(self) -> str:
        self.ensure_repository()
        branch = git_ops.current_branch(cwd=self.cwd)
        if branch is None:
            raise DetachedHead()
        return branch

    def _pull_trunk(self) -> None:
        trunk = self.trunk()
        if not git_ops.has_remote("origin", cwd=self.cwd):
            log.warn("No origin remote configured; skipping pull")
            return
        log.info(f"Pulling latest {escape(trunk)}…")
        r = git_ops.pull(trunk, cwd=self.cwd)
        if r.returncode != 0:
            raise PullFailed(trunk, git_ops.stderr_of(r))

    # ── task start ───────────────────────────────────────────────

    def start_task_branch(self, task_id: str) -> str:
        """Create (or reuse) the feature branch for *task_id* off the trunk."""
        branch = self.current_branch()
        target = branch_name_for(task_id)

        dirty = git_ops.dirty_worktree_entries(cwd=self.cwd, ignore_prefix=self.cfg.state_dir)
        if dirty:
            raise DirtyWorkingTree(dirty)

        if branch == target:
            log.debug(f"Already on {target}")
            return target

        trunk = self.trunk()
        if branch != trunk:
            raise NotOnTrunk(branch, trunk)

        self._pull_trunk()

        if git_ops.branch_exists(target, cwd=self.cwd):
            log.info(f"Switching to existing branch {escape(target)}")
            r = git_ops.checkout(target, cwd=self.cwd)
        else:
            log.info(f"Creating branch {escape(target)} from {escape(trunk)}")
            r = git_ops.create_branch(target, trunk, cwd=self.cwd)
        if r.returncode != 0:
            raise BranchCreateFailed(target, git_ops.stderr_of(r))
        return target

    # ── post-merge sync ──────────────────────────────────────────

    def sync(self) -> SyncResult:
        """Return to the trunk after a merge and delete the local feature branch."""
        branch = self.current_branch()
        trunk = self.trunk()
        on_trunk = branch == trunk
        if not on_trunk and not branch.startswith(SYNCABLE_PREFIXES):
            raise UnsupportedBranch(branch, trunk)

        ignore = self.cfg.state_dir if on_trunk else ""
        dirty = git_ops.dirty_worktree_entries(cwd=self.cwd, ignore_prefix=ignore)
        if dirty:
            raise UncommittedChanges(branch, dirty)

        if on_trunk:
            self._pull_trunk()
            return SyncResult(branch=branch, trunk=trunk)

        self.ensure_merged(branch)

        log.info(f"Switching to {escape(trunk)}")
        r = git_ops.checkout(trunk, cwd=self.cwd)
        if r.returncode != 0:
            raise BranchCreateFailed(trunk, git_ops.stderr_of(r))
        self._pull_trunk()

        deleted = git_ops.delete_branch(branch, cwd=self.cwd)
        if not deleted:
            # Squash merges leave the branch unmerged from git's point of view.
            deleted = git_ops.delete_branch(branch, force=True, cwd=self.cwd)
        if deleted:
            log.success(f"Deleted local branch {escape(branch)}")
        else:
            log.warn(f"Could not delete local branch {escape(branch)}; remove it manually")
        return SyncResult(branch=branch, trunk=trunk, deleted=deleted)

    def ensure_merged(self, branch: str) -> None:
        """Raise :class:`PRNotMerged` unless *branch*'s work has landed."""
        state = self.pull_requests.state(branch)
        log.debug(f"PR state for {branch}: {state.value}")
        match state:
            case PRState.MERGED:
                return
            case PRState.ABANDONED:
                log.warn(f"Pull request for {escape(branch)} was abandoned; continuing")
                return
            case PRState.OPEN:
                raise PRNotMerged(branch, "pull request is still open")
            case PRState.CLOSED:
                raise PRNotMerged(branch, "pull request was closed without merging")
            case _:
                self._ensure_no_unpushed_work(branch)

    def _ensure_no_unpushed_work(self, branch: str) -> None:
        trunk = self.trunk()
        base = trunk
        if git_ops.has_remote("origin", cwd=self.cwd):
            git_ops.fetch("origin", cwd=self.cwd)
            if git_ops.remote_branch_exists(trunk, cwd=self.cwd):
                base = f"origin/{trunk}"
        ahead = git_ops.commit_count(base, branch, cwd=self.cwd)
        if ahead > 0:
            raise PRNotMerged(
                branch,
                f"no merged pull request found and {ahead} commit(s) are not on {base}",
            )
