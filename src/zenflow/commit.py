"""Finishing a task: tracker, commit, push, pull request, issue sync.

Everything before the tracker transition is validation and mutates
nothing. From the transition on there is no rollback: a stage, commit, push
or pull request failure raises a recoverable error once issue sync has been
notified of the completed task.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from rich.markup import escape

from zenflow import git_ops, log
from zenflow.errors import (
    BranchProtected,
    CommitFailed,
    GitOperationError,
    HookBlocked,
    NoActiveTask,
    PullRequestFailed,
    PushFailed,
    StageFailed,
)
from zenflow.hooks.pipeline import Action, Phase
from zenflow.issues.mapper import issue_body, issue_title
from zenflow.tasks.model import Task
from zenflow.workflow import Workspace


@dataclass
class CommitResult:
    branch: str
    task_id: str | None = None
    committed: bool = False
    pushed: bool = False
    pr_url: str | None = None
    message: str = ""

    @property
    def fallback(self) -> bool:
        return self.task_id is None


def change_summary(changes: list[tuple[str, str]]) -> str:
    lines = "\n".join(f"- {status} {path}" for status, path in changes)
    return f"Changes:\n{lines}" if lines else "Changes:\n- (none)"


def commit_message(task: Task | None, plan_id: str, changes: list[tuple[str, str]]) -> str:
    """``[TASK-001] Title`` (or ``[plan-id] Commit pending changes``) plus a summary."""
    header = issue_title(task) if task is not None else f"[{plan_id}] Commit pending changes"
    return f"{header}\n\n{change_summary(changes)}\n"


def pull_request_body(task: Task, issue_ref: int | None, github: bool) -> str:
    body = issue_body(task)
    if issue_ref is not None and github:
        return f"Closes #{issue_ref}\n\n{body}"
    return body


class CommitOrchestrator:
    def __init__(self, ws: Workspace) -> None:
        self.ws = ws

    @property
    def cwd(self) -> Path:
        return self.ws.cfg.repo_root

    def run(self) -> CommitResult:
        ws = self.ws

        # 1-3: validation only.
        plan_id = ws.plans.require_active_plan()
        tracker = ws.trackers.load(plan_id)

        branch = ws.branches.current_branch()
        if branch == ws.branches.trunk():
            raise BranchProtected(branch)

        active = tracker.active_task()
        dirty = git_ops.status_entries(cwd=self.cwd)
        if active is None and not dirty:
            raise NoActiveTask()

        ctx = ws.hook_context(Phase.POST, Action.COMMIT, changed_files=[path for _, path in dirty])
        verdict = ws.hooks.run(ctx)
        if not verdict.allowed:
            raise HookBlocked(verdict.validator, verdict.reason)

        # 4: the tracker transition. No rollback from here on.
        task: Task | None = None
        if active is not None:
            with ws.trackers.edit(plan_id) as t:
                task = t.complete(active.id)
            log.success(f"Marked {task.id} completed")
        else:
            log.warn("No active task; committing pending changes without completing a task")

        # 5: stage, commit, push, pull request, issue sync.
        result = CommitResult(branch=branch, task_id=task.id if task else None)
        failure: GitOperationError | None = None
        try:
            self._commit_and_publish(result, task, plan_id)
        except (StageFailed, CommitFailed, PushFailed, PullRequestFailed) as exc:
            failure = exc

        if task is not None:
            ws.notifier.task_completed(task, result.pr_url)
        if failure is not None:
            raise failure
        return result

    def _commit_and_publish(self, result: CommitResult, task: Task | None, plan_id: str) -> None:
        ws = self.ws
        branch = result.branch
        tracker_updated = task is not None

        r = git_ops.stage_all(cwd=self.cwd)
        if r.returncode != 0:
            raise StageFailed(git_ops.stderr_of(r), tracker_updated=tracker_updated)
        changes = git_ops.staged_changes(cwd=self.cwd)
        if not changes:
            log.warn("Nothing staged; skipping commit, push and pull request")
            return

        result.message = commit_message(task, plan_id, changes)
        r = git_ops.commit(result.message, cwd=self.cwd)
        if r.returncode != 0:
            raise CommitFailed(git_ops.stderr_of(r), tracker_updated=tracker_updated)
        result.committed = True
        log.success(f"Committed {len(changes)} file(s) on {escape(branch)}")

        self._push(branch)
        result.pushed = True

        if task is None:
            return
        ref = ws.notifier.issue_ref(task)
        github = ws.notifier.ref_field == "github_issue"
        result.pr_url = ws.pull_requests.create(
            branch=branch,
            base=ws.branches.trunk(),
            title=issue_title(task),
            body=pull_request_body(task, ref, github),
        )
        log.success(f"Pull request: {result.pr_url}")

    def _push(self, branch: str) -> None:
        if not git_ops.has_remote("origin", cwd=self.cwd):
            raise PushFailed(branch, "No origin remote is configured.")
        set_upstream = not git_ops.has_upstream(cwd=self.cwd)
        log.info(f"Pushing {escape(branch)}…")
        r = git_ops.push(branch, set_upstream=set_upstream, cwd=self.cwd)
        if r.returncode != 0:
            raise PushFailed(branch, git_ops.stderr_of(r))
