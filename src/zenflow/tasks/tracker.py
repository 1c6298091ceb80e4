"""Read-validate-mutate-write persistence for task trackers."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from zenflow.errors import SchemaError, TaskTrackerNotFound
from zenflow.store import DocumentStore, load_json, save_json
from zenflow.tasks.model import TaskTracker

TRACKER_FILE = "TASK-TRACKER.json"


def tracker_key(plan_id: str) -> str:
    return f"plans/{plan_id}/{TRACKER_FILE}"


class TrackerRepository:
    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def exists(self, plan_id: str) -> bool:
        return self.store.exists(tracker_key(plan_id))

    def load(self, plan_id: str) -> TaskTracker:
        key = tracker_key(plan_id)
        data = load_json(self.store, key)
        if data is None:
            raise TaskTrackerNotFound(plan_id)
        try:
            return TaskTracker.from_dict(data)
        except (ValueError, TypeError) as exc:
            raise SchemaError(self.store.locate(key), str(exc)) from exc

    def save(self, tracker: TaskTracker) -> None:
        save_json(self.store, tracker_key(tracker.plan_id), tracker.to_dict())

    @contextmanager
    def edit(self, plan_id: str) -> Iterator[TaskTracker]:
        """Yield the tracker for mutation; write it back only on a clean exit."""
        tracker = self.load(plan_id)
        yield tracker
        self.save(tracker)

    def locate(self, plan_id: str) -> str:
        return self.store.locate(tracker_key(plan_id))
