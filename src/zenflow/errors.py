"""Closed error taxonomy for the zenflow workflow.

Every user-facing failure is its own class with a typed constructor that
builds a ``title`` / ``detail`` / ``suggestion`` triple. The CLI renders
them by family (see :func:`zenflow.cli.render_error`):

- :class:`ValidationError`: a precondition was not met. Raised before any
  state mutation.
- :class:`GitOperationError`: the repository is not in a usable state or a
  git subprocess failed.
- :class:`SchemaError`: a persisted JSON document is corrupt.

Two further exceptions never reach users: :class:`RemoteSyncFailure` is
caught at the issue-sync boundary, and :class:`IllegalTransition` marks a
programming error in the task state machine.
"""

from __future__ import annotations


class ZenflowError(Exception):
    """Base class for errors rendered to the user as title/detail/suggestion."""

    recoverable: bool = False

    def __init__(self, title: str, detail: str = "", suggestion: str = "") -> None:
        self.title = title
        self.detail = detail
        self.suggestion = suggestion
        super().__init__(f"{title}: {detail}" if detail else title)


class ValidationError(ZenflowError):
    """A workflow precondition was not met."""


class GitOperationError(ZenflowError):
    """The repository state prevents the operation, or a git command failed."""


class SchemaError(ZenflowError):
    """A persisted document (tracker, plan) could not be parsed."""

    def __init__(self, path: str, problem: str) -> None:
        self.path = path
        super().__init__(
            "Corrupt state file",
            f"{path}: {problem}",
            "Restore the file from git history (git checkout -- <file>); zenflow will not repair it.",
        )


class RemoteSyncFailure(Exception):
    """Issue-tracker transport failure. Never propagates past IssueSync."""


class IllegalTransition(RuntimeError):
    """A task status transition outside the lifecycle table was attempted."""

    def __init__(self, task_id: str, current: str, target: str) -> None:
        self.task_id = task_id
        self.current = current
        self.target = target
        super().__init__(f"Illegal transition for {task_id}: {current} -> {target}")


# ── Plan validation ──────────────────────────────────────────────────


class NoRequirements(ValidationError):
    def __init__(self) -> None:
        super().__init__(
            "No requirements provided",
            "The requirements text is empty.",
            'Run: zenflow plan generate "describe your project"',
        )


class ActivePlanExists(ValidationError):
    def __init__(self, plan_id: str, locked: bool) -> None:
        self.plan_id = plan_id
        state = "locked" if locked else "not locked yet"
        super().__init__(
            "Active plan exists",
            f"Plan {plan_id} is active and {state}.",
            "Finish the active plan first." if locked else "Lock it with: zenflow plan lock",
        )


class AlreadyLocked(ValidationError):
    def __init__(self, plan_id: str) -> None:
        self.plan_id = plan_id
        super().__init__(
            "Plan already locked",
            f"Plan {plan_id} was locked earlier; its task list is frozen.",
            "Start working with: zenflow task next",
        )


class PlanFileMissing(ValidationError):
    def __init__(self, plan_id: str, path: str) -> None:
        self.plan_id = plan_id
        super().__init__(
            "Plan file missing",
            f"{path} has not been written for plan {plan_id}.",
            'Tell the assistant: "Create the project plan", then run: zenflow plan lock',
        )


class SchemaInvalid(ValidationError):
    def __init__(self, problem: str) -> None:
        self.problem = problem
        super().__init__(
            "Invalid project plan",
            problem,
            "Fix PROJECT-PLAN.json and run: zenflow plan lock",
        )


class NoActivePlan(ValidationError):
    def __init__(self) -> None:
        super().__init__(
            "No active plan",
            "The active-plan pointer is missing or empty.",
            'Run: zenflow plan generate "describe your project"',
        )


class TaskTrackerNotFound(ValidationError):
    def __init__(self, plan_id: str) -> None:
        self.plan_id = plan_id
        super().__init__(
            "Task tracker not found",
            f"Plan {plan_id} has no TASK-TRACKER.json; it has not been locked.",
            "Run: zenflow plan lock",
        )


# ── Task lifecycle ───────────────────────────────────────────────────


class TaskNotFound(ValidationError):
    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(
            "Task not found",
            f"{task_id} is not part of the active plan.",
            "Run: zenflow status",
        )


class TaskAlreadyInProgress(ValidationError):
    def __init__(self, active_task_id: str) -> None:
        self.active_task_id = active_task_id
        super().__init__(
            "Task already in progress",
            f"{active_task_id} is already in progress.",
            "Complete it first with: zenflow commit",
        )


class TaskAlreadyCompleted(ValidationError):
    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(
            "Task already completed",
            f"{task_id} is completed; completed tasks cannot change status.",
            "Run: zenflow task next",
        )


class TaskBlocked(ValidationError):
    def __init__(self, task_id: str, reason: str = "") -> None:
        self.task_id = task_id
        detail = f"{task_id} is blocked"
        super().__init__(
            "Task blocked",
            f"{detail}: {reason}" if reason else f"{detail}.",
            f"Resolve the blocker, then run: zenflow task reset {task_id}",
        )


class DependencyNotSatisfied(ValidationError):
    def __init__(self, task_id: str, unmet: list[str]) -> None:
        self.task_id = task_id
        self.unmet = list(unmet)
        super().__init__(
            "Dependencies not satisfied",
            f"{task_id} depends on unfinished task(s): {', '.join(unmet)}.",
            "Complete the dependencies first, or run: zenflow task next",
        )


class TaskNotActive(ValidationError):
    def __init__(self, task_id: str, active_task_id: str | None) -> None:
        self.task_id = task_id
        self.active_task_id = active_task_id
        current = active_task_id or "none"
        super().__init__(
            "Task is not active",
            f"{task_id} is not the active task (active: {current}).",
            "Run: zenflow status",
        )


class NoPendingTasks(ValidationError):
    def __init__(self, completed: int, total: int) -> None:
        self.completed = completed
        self.total = total
        super().__init__(
            "No pending tasks",
            f"Progress: {completed}/{total} tasks completed.",
            "All tasks are done. Review the plan with: zenflow status",
        )


class NoEligibleTasks(ValidationError):
    def __init__(self, waiting: list[str]) -> None:
        self.waiting = list(waiting)
        super().__init__(
            "No task can start",
            f"Remaining tasks are blocked or waiting on dependencies: {', '.join(waiting)}.",
            "Unblock a task with: zenflow task reset <id>",
        )


class NoActiveTask(ValidationError):
    def __init__(self) -> None:
        super().__init__(
            "No task in progress",
            "There is no active task and no uncommitted change to commit.",
            "Start a task first: zenflow task next",
        )


class BranchProtected(ValidationError):
    def __init__(self, branch: str) -> None:
        self.branch = branch
        super().__init__(
            "Branch protected",
            f"Direct commits to {branch} are not allowed for task work.",
            "Start a task to get a feature branch: zenflow task next",
        )


class UnsupportedBranch(ValidationError):
    def __init__(self, branch: str, trunk: str) -> None:
        self.branch = branch
        super().__init__(
            "Unsupported branch",
            f"{branch} is not {trunk} or a feature/, plan/ or admin/ branch.",
            f"Switch branches manually (git checkout {trunk}).",
        )


class HookBlocked(ValidationError):
    def __init__(self, validator: str, reason: str) -> None:
        self.validator = validator
        self.reason = reason
        super().__init__(
            "Blocked by enforcement hook",
            f"{validator}: {reason}",
            "Fix the reported problem and retry.",
        )


# ── Git ──────────────────────────────────────────────────────────────


class NotARepository(GitOperationError):
    def __init__(self, path: str) -> None:
        super().__init__(
            "Not a git repository",
            f"{path} is not inside a git work tree.",
            "Run zenflow from your project repository (git init if needed).",
        )


class DetachedHead(GitOperationError):
    def __init__(self) -> None:
        super().__init__(
            "Detached HEAD",
            "HEAD does not point at a branch.",
            "Check out a branch first (git checkout <branch>).",
        )


class DirtyWorkingTree(GitOperationError):
    def __init__(self, entries: list[str]) -> None:
        self.entries = list(entries)
        super().__init__(
            "Working tree has uncommitted changes",
            f"Dirty entries: {', '.join(entries[:8])}",
            "Commit or stash them before starting a task.",
        )


class UncommittedChanges(GitOperationError):
    def __init__(self, branch: str, entries: list[str]) -> None:
        self.branch = branch
        self.entries = list(entries)
        super().__init__(
            "Uncommitted changes",
            f"{branch} has uncommitted changes: {', '.join(entries[:8])}",
            "Commit them (zenflow commit) or stash them first.",
        )


class NotOnTrunk(GitOperationError):
    def __init__(self, branch: str, trunk: str) -> None:
        self.branch = branch
        super().__init__(
            "Not on trunk branch",
            f"Currently on {branch}; tasks start from {trunk}.",
            "Run: zenflow sync",
        )


class PullFailed(GitOperationError):
    def __init__(self, branch: str, stderr: str = "") -> None:
        self.branch = branch
        super().__init__(
            "Pull failed",
            f"git pull origin {branch} failed. {stderr}".strip(),
            "Resolve the remote problem (network, conflicts) and retry.",
        )


class PRNotMerged(GitOperationError):
    def __init__(self, branch: str, state: str) -> None:
        self.branch = branch
        self.state = state
        super().__init__(
            "Pull request not merged",
            f"{branch}: {state}. Syncing now would discard unmerged work.",
            "Merge the pull request (or push and open one with: zenflow commit), then rerun sync.",
        )


class BranchCreateFailed(GitOperationError):
    def __init__(self, branch: str, stderr: str = "") -> None:
        self.branch = branch
        super().__init__(
            "Could not create branch",
            f"Failed to create or check out {branch}. {stderr}".strip(),
            "Inspect the repository with git status and retry.",
        )


def _finish_by_hand(first_step: str, tracker_updated: bool) -> str:
    if not tracker_updated:
        return f"{first_step}."
    return f"{first_step}, then push the branch and open the pull request by hand."


class StageFailed(GitOperationError):
    def __init__(self, stderr: str, tracker_updated: bool) -> None:
        self.recoverable = tracker_updated
        note = " The task was already marked completed in the tracker." if tracker_updated else ""
        super().__init__(
            "Staging failed",
            f"git add -A failed: {stderr}.{note}".strip(),
            _finish_by_hand(
                "Fix the problem (e.g. remove a stale .git/index.lock), then stage and commit manually",
                tracker_updated,
            ),
        )


class CommitFailed(GitOperationError):
    def __init__(self, stderr: str, tracker_updated: bool) -> None:
        self.recoverable = tracker_updated
        note = " The task was already marked completed in the tracker." if tracker_updated else ""
        super().__init__(
            "Commit failed",
            f"git commit failed: {stderr}.{note}".strip(),
            _finish_by_hand(
                "Fix the problem (e.g. git hooks, identity config) and commit manually",
                tracker_updated,
            ),
        )


class PushFailed(GitOperationError):
    recoverable = True

    def __init__(self, branch: str, stderr: str = "") -> None:
        self.branch = branch
        super().__init__(
            "Push failed",
            f"The local commit and tracker update were made, but pushing {branch} failed. {stderr}".strip(),
            f"Push manually (git push -u origin {branch}) and open the pull request.",
        )


class PullRequestFailed(GitOperationError):
    recoverable = True

    def __init__(self, branch: str, reason: str = "") -> None:
        self.branch = branch
        super().__init__(
            "Pull request not created",
            f"{branch} was committed and pushed, but the pull request failed. {reason}".strip(),
            "Open the pull request manually (gh pr create or your hosting UI).",
        )
