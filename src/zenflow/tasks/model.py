"""Task and TaskTracker data models plus the task lifecycle state machine."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from zenflow import log
from zenflow.errors import (
    DependencyNotSatisfied,
    IllegalTransition,
    NoEligibleTasks,
    NoPendingTasks,
    TaskAlreadyCompleted,
    TaskAlreadyInProgress,
    TaskBlocked,
    TaskNotActive,
    TaskNotFound,
)

TASK_ID_RE = re.compile(r"^TASK-\d{3,}$")
DEFAULT_PHASE = "implementation"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"


# Every status change goes through this table. ``completed`` is terminal.
TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.BLOCKED}),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.COMPLETED, TaskStatus.BLOCKED, TaskStatus.PENDING}),
    TaskStatus.BLOCKED: frozenset({TaskStatus.PENDING}),
    TaskStatus.COMPLETED: frozenset(),
}


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def is_task_id(value: object) -> bool:
    return isinstance(value, str) and bool(TASK_ID_RE.match(value))


@dataclass
class Task:
    id: str
    title: str = ""
    phase: str = DEFAULT_PHASE
    description: str = ""
    status: TaskStatus = TaskStatus.PENDING
    dependencies: list[str] = field(default_factory=list)
    completion_criteria: list[str] = field(default_factory=list)
    github_issue: int | None = None
    azure_work_item: int | None = None
    started_at: str | None = None
    completed_at: str | None = None
    blocked_reason: str | None = None

    def transition(self, target: TaskStatus) -> None:
        if target not in TRANSITIONS[self.status]:
            raise IllegalTransition(self.id, self.status.value, target.value)
        log.debug(f"Task {self.id}: {self.status.value} -> {target.value}")
        self.status = target

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "phase": self.phase,
            "status": self.status.value,
            "dependencies": list(self.dependencies),
            "completionCriteria": list(self.completion_criteria),
        }
        if self.description:
            data["description"] = self.description
        optional = {
            "githubIssue": self.github_issue,
            "azureWorkItem": self.azure_work_item,
            "startedAt": self.started_at,
            "completedAt": self.completed_at,
            "blockedReason": self.blocked_reason,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Task:
        """Build a task from its persisted form. Raises ``ValueError`` on bad input."""
        if not isinstance(data, dict):
            raise ValueError("task entry is not an object")
        task_id = data.get("id")
        if not is_task_id(task_id):
            raise ValueError(f"invalid task id: {task_id!r}")
        try:
            status = TaskStatus(data.get("status", TaskStatus.PENDING.value))
        except ValueError:
            raise ValueError(f"{task_id}: unknown status {data.get('status')!r}") from None
        deps = data.get("dependencies") or []
        criteria = data.get("completionCriteria") or []
        if not isinstance(deps, list) or not isinstance(criteria, list):
            raise ValueError(f"{task_id}: dependencies and completionCriteria must be lists")
        return cls(
            id=task_id,
            title=str(data.get("title") or ""),
            phase=str(data.get("phase") or DEFAULT_PHASE),
            description=str(data.get("description") or ""),
            status=status,
            dependencies=[str(d) for d in deps],
            completion_criteria=[str(c) for c in criteria],
            github_issue=_optional_int(data.get("githubIssue")),
            azure_work_item=_optional_int(data.get("azureWorkItem")),
            started_at=data.get("startedAt"),
            completed_at=data.get("completedAt"),
            blocked_reason=data.get("blockedReason"),
        )


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


@dataclass
class TaskTracker:
    """Per-plan task list and the single active task.

    Public mutators validate every precondition before touching any task,
    so a raised error always leaves the tracker unchanged.
    """

    plan_id: str
    project_name: str = ""
    active_task_id: str | None = None
    tasks: list[Task] = field(default_factory=list)
    locked_at: str | None = None

    # ── queries ──────────────────────────────────────────────────

    def find(self, task_id: str) -> Task | None:
        for t in self.tasks:
            if t.id == task_id:
                return t
        return None

    def get(self, task_id: str) -> Task:
        task = self.find(task_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task

    def active_task(self) -> Task | None:
        if self.active_task_id:
            task = self.find(self.active_task_id)
            if task is not None and task.status is TaskStatus.IN_PROGRESS:
                return task
        for t in self.tasks:
            if t.status is TaskStatus.IN_PROGRESS:
                return t
        return None

    def unmet_dependencies(self, task: Task) -> list[str]:
        unmet: list[str] = []
        for dep in task.dependencies:
            dep_task = self.find(dep)
            if dep_task is None or dep_task.status is not TaskStatus.COMPLETED:
                unmet.append(dep)
        return unmet

    def next_pending(self) -> Task | None:
        """First pending task, in stored order, whose dependencies are all completed."""
        for t in self.tasks:
            if t.status is TaskStatus.PENDING and not self.unmet_dependencies(t):
                return t
        return None

    def require_next(self) -> Task:
        task = self.next_pending()
        if task is not None:
            return task
        waiting = [t.id for t in self.tasks if t.status in (TaskStatus.PENDING, TaskStatus.BLOCKED)]
        if waiting:
            raise NoEligibleTasks(waiting)
        stats = self.statistics()
        raise NoPendingTasks(stats["completed"], stats["totalTasks"])

    def count(self, status: TaskStatus) -> int:
        return sum(1 for t in self.tasks if t.status is status)

    def statistics(self) -> dict[str, int]:
        return {
            "totalTasks": len(self.tasks),
            "completed": self.count(TaskStatus.COMPLETED),
            "inProgress": self.count(TaskStatus.IN_PROGRESS),
            "pending": self.count(TaskStatus.PENDING),
            "blocked": self.count(TaskStatus.BLOCKED),
        }

    # ── transitions ──────────────────────────────────────────────

    def check_can_start(self, task_id: str) -> Task:
        """Raise the error :meth:`start` would raise, without mutating anything."""
        task = self.get(task_id)
        if task.status is TaskStatus.COMPLETED:
            raise TaskAlreadyCompleted(task.id)
        active = self.active_task()
        if active is not None:
            raise TaskAlreadyInProgress(active.id)
        if task.status is TaskStatus.BLOCKED:
            raise TaskBlocked(task.id, task.blocked_reason or "")
        unmet = self.unmet_dependencies(task)
        if unmet:
            raise DependencyNotSatisfied(task.id, unmet)
        return task

    def start(self, task_id: str, now: str | None = None) -> Task:
        task = self.check_can_start(task_id)
        task.transition(TaskStatus.IN_PROGRESS)
        task.started_at = now or utc_now()
        task.completed_at = None
        self.active_task_id = task.id
        return task

    def complete(self, task_id: str, now: str | None = None) -> Task:
        task = self.get(task_id)
        if task.status is TaskStatus.COMPLETED:
            raise TaskAlreadyCompleted(task.id)
        active = self.active_task()
        if active is None or active.id != task.id:
            raise TaskNotActive(task.id, active.id if active else None)
        task.transition(TaskStatus.COMPLETED)
        task.completed_at = now or utc_now()
        self.active_task_id = None
        return task

    def block(self, task_id: str, reason: str) -> Task:
        task = self.get(task_id)
        if task.status is TaskStatus.COMPLETED:
            raise TaskAlreadyCompleted(task.id)
        if task.status is not TaskStatus.BLOCKED:
            task.transition(TaskStatus.BLOCKED)
        task.blocked_reason = reason
        if self.active_task_id == task.id:
            self.active_task_id = None
        return task

    def reset(self, task_id: str) -> Task:
        """Return an in-progress or blocked task to pending."""
        task = self.get(task_id)
        if task.status is TaskStatus.COMPLETED:
            raise TaskAlreadyCompleted(task.id)
        if task.status is not TaskStatus.PENDING:
            task.transition(TaskStatus.PENDING)
        task.started_at = None
        task.completed_at = None
        task.blocked_reason = None
        if self.active_task_id == task.id:
            self.active_task_id = None
        return task

    # ── persistence ──────────────────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "planId": self.plan_id,
            "projectName": self.project_name,
            "activeTaskId": self.active_task_id,
        }
        if self.locked_at:
            data["lockedAt"] = self.locked_at
        data["statistics"] = self.statistics()
        data["taskFiles"] = [t.to_dict() for t in self.tasks]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TaskTracker:
        """Build a tracker from its persisted form. Raises ``ValueError`` on bad input."""
        if not isinstance(data, dict):
            raise ValueError("tracker is not an object")
        plan_id = data.get("planId")
        if not isinstance(plan_id, str) or not plan_id:
            raise ValueError("missing planId")
        entries = data.get("taskFiles")
        if not isinstance(entries, list):
            raise ValueError("taskFiles must be a list")
        tasks = [Task.from_dict(entry) for entry in entries]

        seen: set[str] = set()
        for t in tasks:
            if t.id in seen:
                raise ValueError(f"duplicate task id {t.id}")
            seen.add(t.id)
        in_progress = [t.id for t in tasks if t.status is TaskStatus.IN_PROGRESS]
        if len(in_progress) > 1:
            raise ValueError(f"more than one task in progress: {', '.join(in_progress)}")

        active = data.get("activeTaskId")
        if active is not None and active not in seen:
            raise ValueError(f"activeTaskId {active} is not a task of this plan")
        return cls(
            plan_id=plan_id,
            project_name=str(data.get("projectName") or ""),
            active_task_id=active,
            tasks=tasks,
            locked_at=data.get("lockedAt"),
        )
