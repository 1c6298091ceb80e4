"""Azure Boards backend through ``az boards work-item``."""

from __future__ import annotations

import json
import os
import shutil
import subprocess
from typing import Any

from zenflow.config import AzureSettings
from zenflow.errors import RemoteSyncFailure
from zenflow.issues.mapper import STATUS_LABELS
from zenflow.tasks.model import TaskStatus

# Work item states per status label.
WORK_ITEM_STATES: dict[str, str] = {
    STATUS_LABELS[TaskStatus.PENDING]: "New",
    STATUS_LABELS[TaskStatus.IN_PROGRESS]: "Active",
    STATUS_LABELS[TaskStatus.COMPLETED]: "Closed",
    STATUS_LABELS[TaskStatus.BLOCKED]: "Blocked",
}


class AzureBoardsClient:
    """Work items created as ``Task`` type; labels become tags plus a state."""

    closes_via_pr = False

    def __init__(self, settings: AzureSettings, runner=subprocess.run) -> None:
        self.settings = settings
        self._runner = runner

    def _az(self, *args: str) -> dict[str, Any]:
        if self._runner is subprocess.run and not shutil.which("az"):
            raise RemoteSyncFailure("az CLI not found")
        env = dict(os.environ)
        env["AZURE_DEVOPS_EXT_PAT"] = self.settings.pat
        cmd = ["az", "boards", "work-item", *args, "--org", self.settings.org_url, "--output", "json"]
        try:
            r = self._runner(cmd, capture_output=True, text=True, env=env)
        except OSError as exc:
            raise RemoteSyncFailure(f"az failed to start: {exc}") from exc
        if r.returncode != 0:
            raise RemoteSyncFailure(f"az boards work-item {args[0]} failed: {(r.stderr or '').strip()}")
        try:
            data = json.loads(r.stdout or "{}")
        except json.JSONDecodeError as exc:
            raise RemoteSyncFailure("az returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise RemoteSyncFailure(f"az returned {type(data).__name__}, expected an object")
        return data

    @staticmethod
    def _split(labels: list[str]) -> tuple[str | None, str]:
        state = None
        tags: list[str] = []
        for label in labels:
            if label in WORK_ITEM_STATES:
                state = WORK_ITEM_STATES[label]
            else:
                tags.append(label)
        return state, "; ".join(tags)

    def create_issue(self, title: str, body: str, labels: list[str]) -> int:
        _, tags = self._split(labels)
        args = [
            "create",
            "--type", "Task",
            "--title", title,
            "--description", body,
            "--project", self.settings.project,
        ]
        if tags:
            args += ["--fields", f"System.Tags={tags}"]
        data = self._az(*args)
        ref = data.get("id")
        if not isinstance(ref, int):
            raise RemoteSyncFailure("az response did not include a work item id")
        return ref

    def update_labels(self, ref: int, labels: list[str]) -> None:
        state, tags = self._split(labels)
        args = ["update", "--id", str(ref)]
        if state:
            args += ["--state", state]
        if tags:
            args += ["--fields", f"System.Tags={tags}"]
        self._az(*args)

    def add_comment(self, ref: int, text: str) -> None:
        self._az("update", "--id", str(ref), "--discussion", text)

    def close(self, ref: int, text: str) -> None:
        args = ["update", "--id", str(ref), "--state", "Closed"]
        if text:
            args += ["--discussion", text]
        self._az(*args)
