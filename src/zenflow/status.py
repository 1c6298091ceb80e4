"""Read-only progress report for the active plan."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from rich.markup import escape
from rich.table import Table

from zenflow import git_ops, log
from zenflow.tasks.model import Task, TaskStatus, TaskTracker

BAR_WIDTH = 30


@dataclass
class StatusReport:
    plan_id: str
    project_name: str
    statistics: dict[str, int]
    current: Task | None = None
    next_up: Task | None = None
    blocked: list[Task] = field(default_factory=list)
    recently_completed: list[Task] = field(default_factory=list)
    branch: str | None = None

    @property
    def percent(self) -> int:
        total = self.statistics["totalTasks"]
        return round(100 * self.statistics["completed"] / total) if total else 0


def build_report(tracker: TaskTracker, branch: str | None = None, recent: int = 3) -> StatusReport:
    completed = [t for t in tracker.tasks if t.status is TaskStatus.COMPLETED]
    completed.sort(key=lambda t: t.completed_at or "", reverse=True)
    current = tracker.active_task()
    return StatusReport(
        plan_id=tracker.plan_id,
        project_name=tracker.project_name,
        statistics=tracker.statistics(),
        current=current,
        next_up=None if current else tracker.next_pending(),
        blocked=[t for t in tracker.tasks if t.status is TaskStatus.BLOCKED],
        recently_completed=completed[:recent],
        branch=branch,
    )


def progress_bar(percent: int, width: int = BAR_WIDTH) -> str:
    filled = round(width * percent / 100)
    return "█" * filled + "░" * (width - filled)


def render(report: StatusReport) -> None:
    console = log.console
    stats = report.statistics

    console.print(f"[bold]Plan:[/bold] {escape(report.plan_id)}  [dim]{escape(report.project_name)}[/dim]")
    if report.branch:
        log.field("Branch", report.branch)
    console.print(
        f"[green]{progress_bar(report.percent)}[/green] {report.percent}% "
        f"({stats['completed']}/{stats['totalTasks']})"
    )

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_row("Completed", str(stats["completed"]))
    table.add_row("In progress", str(stats["inProgress"]))
    table.add_row("Pending", str(stats["pending"]))
    table.add_row("Blocked", str(stats["blocked"]))
    console.print(table)

    if report.current:
        t = report.current
        console.print(f"[yellow]Current:[/yellow] {t.id} {escape(t.title)} [dim]({escape(t.phase)})[/dim]")
    elif report.next_up:
        t = report.next_up
        console.print(f"[cyan]Next:[/cyan] {t.id} {escape(t.title)}  [dim]run: zenflow task next[/dim]")
    elif stats["completed"] == stats["totalTasks"]:
        console.print("[green]All tasks completed.[/green]")

    for t in report.blocked:
        reason = f": {t.blocked_reason}" if t.blocked_reason else ""
        log.field("Blocked", f"{t.id} {t.title}{reason}", style="red")

    if report.recently_completed:
        log.heading("Recently completed")
        for t in report.recently_completed:
            log.item(f"{t.id} {t.title}", marker="✓")


def current_branch_or_none(cwd: Path) -> str | None:
    if not git_ops.is_repository(cwd=cwd):
        return None
    return git_ops.current_branch(cwd=cwd)
