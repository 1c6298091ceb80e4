"""Plan generation, validation, and locking.

A plan moves through two steps:

1. ``generate`` writes ``PROJECT-REQUIREMENTS.txt`` for a fresh plan id and
   points ``ACTIVE-PLAN`` at it. The assistant then writes
   ``PROJECT-PLAN.json`` next to it.
2. ``lock`` validates the plan, extracts its tasks in document order,
   writes ``TASK-TRACKER.json`` and finally the ``.plan-locked`` marker.
   After that the task list never changes.
"""

from __future__ import annotations

import re
from typing import Any

from zenflow import log
from zenflow.errors import (
    ActivePlanExists,
    AlreadyLocked,
    NoActivePlan,
    NoRequirements,
    PlanFileMissing,
    SchemaInvalid,
)
from zenflow.store import DocumentStore, load_json
from zenflow.tasks.model import DEFAULT_PHASE, Task, TaskTracker, is_task_id, utc_now
from zenflow.tasks.tracker import TrackerRepository

ACTIVE_PLAN_FILE = "ACTIVE-PLAN"
REQUIREMENTS_FILE = "PROJECT-REQUIREMENTS.txt"
PLAN_FILE = "PROJECT-PLAN.json"
LOCK_FILE = ".plan-locked"

PLAN_ID_RE = re.compile(r"^plan-(\d{3,})-")

# Containers searched for tasks, in the order they are visited at each level.
_NESTED_LISTS = ("milestones", "subprojects", "projects")

_RULE = "=" * 60

REQUIREMENTS_TEMPLATE = """PROJECT REQUIREMENTS
{rule}

{requirements}

PLAN ID: {plan_id}
Generated: {generated}
{rule}

INSTRUCTIONS FOR THE ASSISTANT
{rule}

1. Analyze the requirements above and break them into tasks.
2. Write {plan_file} in this directory. Each task needs:
   - "id": TASK-001, TASK-002, ... (zero padded, unique)
   - "title" and an optional "description"
   - "phase": design, implementation, testing or deployment
   - "dependencies": ids of tasks declared earlier in the file
   - "completionCriteria": a list of checkable statements
   Tasks may be grouped under "milestones", "subprojects" or "projects".
3. Keep tasks small (a few hours each) and ordered by dependency.
4. Do not run zenflow or git commands yourself. When the plan is written,
   tell the developer to run: zenflow plan lock
"""


def extract_tasks(node: Any, out: list[dict[str, Any]] | None = None) -> list[dict[str, Any]]:
    """Collect task entries depth-first in document order.

    At each level: ``tasks`` first, then ``milestones``, ``subprojects`` and
    ``projects``, then a singular ``project`` object.
    """
    if out is None:
        out = []
    if not isinstance(node, dict):
        return out
    tasks = node.get("tasks")
    if isinstance(tasks, list):
        out.extend(tasks)
    for key in _NESTED_LISTS:
        children = node.get(key)
        if isinstance(children, list):
            for child in children:
                extract_tasks(child, out)
    project = node.get("project")
    if isinstance(project, dict):
        extract_tasks(project, out)
    return out


def build_tasks(plan: Any) -> list[Task]:
    """Validate a plan document and turn it into tracker tasks.

    Raises :class:`SchemaInvalid` naming the first offending task.
    """
    if not isinstance(plan, dict):
        raise SchemaInvalid("The plan must be a JSON object.")
    entries = extract_tasks(plan)
    if not entries:
        raise SchemaInvalid("The plan declares no tasks.")

    declared: set[str] = set()
    tasks: list[Task] = []
    for index, entry in enumerate(entries, start=1):
        if not isinstance(entry, dict):
            raise SchemaInvalid(f"Task #{index} is not an object.")
        task_id = entry.get("id")
        if not is_task_id(task_id):
            raise SchemaInvalid(f"Task #{index} has an invalid id {task_id!r} (expected TASK-NNN).")
        if task_id in declared:
            raise SchemaInvalid(f"{task_id} is declared more than once.")
        title = entry.get("title")
        if not isinstance(title, str) or not title.strip():
            raise SchemaInvalid(f"{task_id} has no title.")

        deps = entry.get("dependencies", entry.get("dependsOn", []))
        if deps is None:
            deps = []
        if not isinstance(deps, list):
            raise SchemaInvalid(f"{task_id}: dependencies must be a list.")
        for dep in deps:
            if dep not in declared:
                raise SchemaInvalid(
                    f"{task_id} depends on {dep!r}, which is not declared before it."
                )

        criteria = entry.get("completionCriteria", [])
        if criteria is None:
            criteria = []
        if not isinstance(criteria, list):
            raise SchemaInvalid(f"{task_id}: completionCriteria must be a list.")

        tasks.append(
            Task(
                id=task_id,
                title=title.strip(),
                phase=str(entry.get("phase") or DEFAULT_PHASE),
                description=str(entry.get("description") or ""),
                dependencies=[str(d) for d in deps],
                completion_criteria=[str(c) for c in criteria],
            )
        )
        declared.add(task_id)
    return tasks


class PlanStore:
    def __init__(self, store: DocumentStore, project_name: str = "") -> None:
        self.store = store
        self.project_name = project_name
        self.trackers = TrackerRepository(store)

    # ── paths ────────────────────────────────────────────────────

    @staticmethod
    def plan_dir(plan_id: str) -> str:
        return f"plans/{plan_id}"

    def requirements_path(self, plan_id: str) -> str:
        return self.store.locate(f"{self.plan_dir(plan_id)}/{REQUIREMENTS_FILE}")

    def plan_path(self, plan_id: str) -> str:
        return self.store.locate(f"{self.plan_dir(plan_id)}/{PLAN_FILE}")

    # ── queries ──────────────────────────────────────────────────

    def active_plan_id(self) -> str | None:
        text = self.store.read(ACTIVE_PLAN_FILE)
        if text is None or not text.strip():
            return None
        return text.strip()

    def require_active_plan(self) -> str:
        plan_id = self.active_plan_id()
        if plan_id is None:
            raise NoActivePlan()
        return plan_id

    def is_locked(self, plan_id: str) -> bool:
        return self.store.exists(f"{self.plan_dir(plan_id)}/{LOCK_FILE}")

    def next_plan_id(self) -> str:
        highest = 0
        for name in self.store.list_dirs("plans"):
            m = PLAN_ID_RE.match(name)
            if m:
                highest = max(highest, int(m.group(1)))
        return f"plan-{highest + 1:03d}-generated"

    # ── operations ───────────────────────────────────────────────

    def generate(self, requirements: str) -> str:
        """Write the requirements artifact for a new plan and make it active."""
        if not requirements or not requirements.strip():
            raise NoRequirements()
        active = self.active_plan_id()
        if active is not None:
            raise ActivePlanExists(active, self.is_locked(active))

        plan_id = self.next_plan_id()
        text = REQUIREMENTS_TEMPLATE.format(
            rule=_RULE,
            requirements=requirements.strip(),
            plan_id=plan_id,
            generated=utc_now(),
            plan_file=PLAN_FILE,
        )
        self.store.write(f"{self.plan_dir(plan_id)}/{REQUIREMENTS_FILE}", text)
        self.store.write(ACTIVE_PLAN_FILE, plan_id + "\n")
        log.debug(f"Requirements written to {self.requirements_path(plan_id)}")
        return plan_id

    def lock(self, plan_id: str | None = None) -> TaskTracker:
        """Freeze the plan and create its tracker."""
        plan_id = plan_id or self.require_active_plan()
        if self.is_locked(plan_id):
            raise AlreadyLocked(plan_id)

        plan = load_json(self.store, f"{self.plan_dir(plan_id)}/{PLAN_FILE}")
        if plan is None:
            raise PlanFileMissing(plan_id, self.plan_path(plan_id))
        tasks = build_tasks(plan)

        locked_at = utc_now()
        tracker = TaskTracker(
            plan_id=plan_id,
            project_name=self.project_name or _plan_name(plan),
            tasks=tasks,
            locked_at=locked_at,
        )
        self.trackers.save(tracker)
        self.store.write(f"{self.plan_dir(plan_id)}/{LOCK_FILE}", locked_at + "\n")
        log.debug(f"Plan {plan_id} locked with {len(tasks)} task(s)")
        return tracker


def _plan_name(plan: dict[str, Any]) -> str:
    project = plan.get("project")
    if isinstance(project, dict) and isinstance(project.get("name"), str):
        return project["name"]
    name = plan.get("name")
    return name if isinstance(name, str) else ""
