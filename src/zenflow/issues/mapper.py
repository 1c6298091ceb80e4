"""Fixed mapping from task fields to issue title, body, and labels."""

from __future__ import annotations

from zenflow.tasks.model import Task, TaskStatus

STATUS_LABELS: dict[TaskStatus, str] = {
    TaskStatus.PENDING: "status: pending",
    TaskStatus.IN_PROGRESS: "status: in-progress",
    TaskStatus.COMPLETED: "status: completed",
    TaskStatus.BLOCKED: "status: blocked",
}


def issue_title(task: Task) -> str:
    return f"[{task.id}] {task.title}"


def issue_body(task: Task) -> str:
    deps = "\n".join(f"- {d}" for d in task.dependencies) if task.dependencies else "None"
    criteria = "\n".join(f"- [ ] {c}" for c in task.completion_criteria) or "- [ ] Task completed"
    return (
        f"## Description\n\n{task.description or task.title}\n\n"
        f"**Phase:** {task.phase}\n\n"
        f"## Dependencies\n\n{deps}\n\n"
        f"## Completion Criteria\n\n{criteria}\n"
    )


def labels_for(task: Task, status: TaskStatus | None = None, include_phase: bool = True) -> list[str]:
    labels = [STATUS_LABELS[status or task.status]]
    if include_phase and task.phase:
        labels.append(f"phase: {task.phase}")
    return labels
