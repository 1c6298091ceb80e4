"""Tests for plan generation, validation and locking (in-memory store)."""

from __future__ import annotations

import json

import pytest

from zenflow.errors import (
    ActivePlanExists,
    AlreadyLocked,
    NoActivePlan,
    NoRequirements,
    PlanFileMissing,
    SchemaError,
    SchemaInvalid,
)
from zenflow.plan import ACTIVE_PLAN_FILE, PlanStore, build_tasks, extract_tasks
from zenflow.store import MemoryStore
from zenflow.tasks.model import TaskStatus


@pytest.fixture
def plans(memory_store: MemoryStore) -> PlanStore:
    return PlanStore(memory_store)


def _write_plan(plans: PlanStore, plan_id: str, plan: object) -> None:
    plans.store.write(f"plans/{plan_id}/PROJECT-PLAN.json", json.dumps(plan))


# ── TestExtractTasks ─────────────────────────────────────────────────


class TestExtractTasks:
    def test_flat_tasks(self) -> None:
        assert extract_tasks({"tasks": [{"id": "TASK-001"}]}) == [{"id": "TASK-001"}]

    def test_document_order_across_nesting(self) -> None:
        plan = {
            "tasks": [{"id": "TASK-001"}],
            "milestones": [
                {"tasks": [{"id": "TASK-002"}]},
                {"subprojects": [{"tasks": [{"id": "TASK-003"}]}]},
            ],
            "project": {"tasks": [{"id": "TASK-004"}]},
        }
        assert [t["id"] for t in extract_tasks(plan)] == ["TASK-001", "TASK-002", "TASK-003", "TASK-004"]

    def test_non_dict(self) -> None:
        assert extract_tasks(["x"]) == []


# ── TestBuildTasks ───────────────────────────────────────────────────


class TestBuildTasks:
    def test_sample_plan(self, sample_plan: dict) -> None:
        tasks = build_tasks(sample_plan)
        assert [t.id for t in tasks] == ["TASK-001", "TASK-002"]
        assert tasks[0].phase == "design"
        assert tasks[0].completion_criteria == ["Repo builds"]
        assert tasks[1].phase == "implementation"
        assert tasks[1].dependencies == ["TASK-001"]
        assert all(t.status is TaskStatus.PENDING for t in tasks)

    def test_depends_on_alias(self) -> None:
        plan = {"tasks": [{"id": "TASK-001", "title": "a"}, {"id": "TASK-002", "title": "b", "dependsOn": ["TASK-001"]}]}
        assert build_tasks(plan)[1].dependencies == ["TASK-001"]

    @pytest.mark.parametrize(
        "plan, message",
        [
            ([], "JSON object"),
            ({"name": "empty"}, "no tasks"),
            ({"tasks": ["TASK-001"]}, "not an object"),
            ({"tasks": [{"id": "T1", "title": "x"}]}, "invalid id"),
            ({"tasks": [{"id": "TASK-001", "title": "x"}, {"id": "TASK-001", "title": "y"}]}, "more than once"),
            ({"tasks": [{"id": "TASK-001", "title": "  "}]}, "no title"),
            ({"tasks": [{"id": "TASK-001", "title": "x", "dependencies": "TASK-000"}]}, "must be a list"),
            ({"tasks": [{"id": "TASK-001", "title": "x", "completionCriteria": "done"}]}, "must be a list"),
        ],
    )
    def test_rejects(self, plan: object, message: str) -> None:
        with pytest.raises(SchemaInvalid, match=message):
            build_tasks(plan)

    def test_forward_dependency_rejected(self) -> None:
        plan = {"tasks": [{"id": "TASK-001", "title": "a", "dependencies": ["TASK-002"]}, {"id": "TASK-002", "title": "b"}]}
        with pytest.raises(SchemaInvalid) as exc_info:
            build_tasks(plan)
        assert "TASK-001" in exc_info.value.problem
        assert "not declared before it" in exc_info.value.problem


# ── TestGenerate ─────────────────────────────────────────────────────


class TestGenerate:
    def test_first_plan(self, plans: PlanStore) -> None:
        plan_id = plans.generate("Build a todo app")
        assert plan_id == "plan-001-generated"
        assert plans.active_plan_id() == plan_id
        text = plans.store.read(f"plans/{plan_id}/PROJECT-REQUIREMENTS.txt")
        assert "Build a todo app" in text
        assert "PLAN ID: plan-001-generated" in text
        assert "zenflow plan lock" in text

    def test_empty_requirements(self, plans: PlanStore) -> None:
        with pytest.raises(NoRequirements):
            plans.generate("   ")
        assert plans.store.read(ACTIVE_PLAN_FILE) is None

    def test_refuses_while_plan_active(self, plans: PlanStore) -> None:
        first = plans.generate("one")
        with pytest.raises(ActivePlanExists) as exc_info:
            plans.generate("two")
        assert exc_info.value.plan_id == first
        assert "not locked yet" in exc_info.value.detail

    def test_next_id_follows_existing_plans(self, plans: PlanStore) -> None:
        plans.store.write("plans/plan-007-generated/PROJECT-REQUIREMENTS.txt", "old")
        assert plans.generate("new") == "plan-008-generated"


# ── TestLock ─────────────────────────────────────────────────────────


class TestLock:
    def test_lock_creates_tracker_and_marker(self, plans: PlanStore, sample_plan: dict) -> None:
        plan_id = plans.generate("demo")
        _write_plan(plans, plan_id, sample_plan)
        tracker = plans.lock()
        assert tracker.plan_id == plan_id
        assert tracker.project_name == "demo"
        assert tracker.locked_at
        assert plans.is_locked(plan_id)
        assert plans.trackers.load(plan_id).statistics()["pending"] == 2

    def test_project_name_from_store_wins(self, memory_store: MemoryStore, sample_plan: dict) -> None:
        plans = PlanStore(memory_store, project_name="my-repo")
        plan_id = plans.generate("demo")
        _write_plan(plans, plan_id, sample_plan)
        assert plans.lock().project_name == "my-repo"

    def test_lock_twice(self, plans: PlanStore, sample_plan: dict) -> None:
        plan_id = plans.generate("demo")
        _write_plan(plans, plan_id, sample_plan)
        plans.lock()
        with pytest.raises(AlreadyLocked):
            plans.lock()

    def test_lock_without_active_plan(self, plans: PlanStore) -> None:
        with pytest.raises(NoActivePlan):
            plans.lock()

    def test_lock_without_plan_file(self, plans: PlanStore) -> None:
        plans.generate("demo")
        with pytest.raises(PlanFileMissing) as exc_info:
            plans.lock()
        assert "memory://plans/plan-001-generated/PROJECT-PLAN.json" in exc_info.value.detail

    def test_invalid_plan_leaves_nothing_behind(self, plans: PlanStore) -> None:
        plan_id = plans.generate("demo")
        _write_plan(plans, plan_id, {"tasks": [{"id": "TASK-001"}]})
        with pytest.raises(SchemaInvalid):
            plans.lock()
        assert not plans.is_locked(plan_id)
        assert not plans.trackers.exists(plan_id)

    def test_corrupt_plan_json(self, plans: PlanStore) -> None:
        plan_id = plans.generate("demo")
        plans.store.write(f"plans/{plan_id}/PROJECT-PLAN.json", "{oops")
        with pytest.raises(SchemaError):
            plans.lock()

    def test_generate_refused_after_lock(self, plans: PlanStore, sample_plan: dict) -> None:
        plan_id = plans.generate("demo")
        _write_plan(plans, plan_id, sample_plan)
        plans.lock()
        with pytest.raises(ActivePlanExists) as exc_info:
            plans.generate("next project")
        assert "is active and locked" in exc_info.value.detail
