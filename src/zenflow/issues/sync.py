"""Issue sync boundary and the post-transition notifier.

:class:`IssueSync` is the only place :class:`RemoteSyncFailure` is caught,
along with stray transport (``httpx.HTTPError``) and decoding
(``ValueError``) errors: each operation logs a warning and returns
``None`` / ``False`` instead.
:class:`IssueNotifier` decides which calls a lifecycle event needs. The
task state machine never talks to either.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol, TypeVar

import httpx

from zenflow import log
from zenflow.config import Config
from zenflow.errors import RemoteSyncFailure
from zenflow.issues.mapper import issue_body, issue_title, labels_for
from zenflow.platform import Platform
from zenflow.tasks.model import Task, TaskStatus

T = TypeVar("T")


class IssueBackend(Protocol):
    closes_via_pr: bool

    def create_issue(self, title: str, body: str, labels: list[str]) -> int: ...

    def update_labels(self, ref: int, labels: list[str]) -> None: ...

    def add_comment(self, ref: int, text: str) -> None: ...

    def close(self, ref: int, text: str) -> None: ...


class IssueSync:
    def __init__(self, backend: IssueBackend | None) -> None:
        self.backend = backend

    @property
    def enabled(self) -> bool:
        return self.backend is not None

    def _guard(self, action: str, call: Callable[[IssueBackend], T], failed: T) -> T:
        if self.backend is None:
            return failed
        try:
            return call(self.backend)
        except (RemoteSyncFailure, httpx.HTTPError, ValueError) as exc:
            log.warn(f"Issue sync skipped ({action}): {exc}")
            return failed

    def create_issue(self, title: str, body: str, labels: list[str]) -> int | None:
        return self._guard("create", lambda b: b.create_issue(title, body, labels), None)

    def update_labels(self, ref: int, labels: list[str]) -> bool:
        return self._guard("labels", lambda b: b.update_labels(ref, labels) or True, False)

    def add_comment(self, ref: int, text: str) -> bool:
        return self._guard("comment", lambda b: b.add_comment(ref, text) or True, False)

    def close(self, ref: int, text: str) -> bool:
        return self._guard("close", lambda b: b.close(ref, text) or True, False)


@dataclass
class NotifyPolicy:
    auto_create: bool = True
    auto_update: bool = True
    auto_close: bool = True


class IssueNotifier:
    """Maps lifecycle events onto best-effort :class:`IssueSync` calls."""

    def __init__(
        self,
        sync: IssueSync,
        policy: NotifyPolicy | None = None,
        ref_field: str = "github_issue",
    ) -> None:
        self.sync = sync
        self.policy = policy or NotifyPolicy()
        self.ref_field = ref_field

    @property
    def enabled(self) -> bool:
        return self.sync.enabled

    def issue_ref(self, task: Task) -> int | None:
        return getattr(task, self.ref_field)

    def record_ref(self, task: Task, ref: int) -> None:
        setattr(task, self.ref_field, ref)

    def task_started(self, task: Task) -> int | None:
        """Create the issue (or relabel an existing one). Returns its reference."""
        ref = self.issue_ref(task)
        if ref is not None:
            if self.policy.auto_update:
                self.sync.update_labels(ref, labels_for(task, TaskStatus.IN_PROGRESS))
                self.sync.add_comment(ref, "Task started.")
            return ref
        if not self.policy.auto_create:
            return None
        ref = self.sync.create_issue(
            issue_title(task), issue_body(task), labels_for(task, TaskStatus.IN_PROGRESS)
        )
        if ref is not None:
            log.success(f"Issue #{ref} created for {task.id}")
        return ref

    def task_completed(self, task: Task, pr_url: str | None = None) -> None:
        ref = self.issue_ref(task)
        if ref is None or not self.sync.enabled:
            return
        if self.policy.auto_update:
            self.sync.update_labels(ref, labels_for(task, TaskStatus.COMPLETED))
            note = f"Task completed. Pull request: {pr_url}" if pr_url else "Task completed."
            self.sync.add_comment(ref, note)
        closes_via_pr = bool(pr_url) and getattr(self.sync.backend, "closes_via_pr", False)
        if self.policy.auto_close and not closes_via_pr:
            self.sync.close(ref, "Closed on task completion.")

    def task_blocked(self, task: Task, reason: str) -> None:
        ref = self.issue_ref(task)
        if ref is None or not self.policy.auto_update:
            return
        self.sync.update_labels(ref, labels_for(task, TaskStatus.BLOCKED))
        self.sync.add_comment(ref, f"Task blocked: {reason}")

    def task_reset(self, task: Task) -> None:
        ref = self.issue_ref(task)
        if ref is None or not self.policy.auto_update:
            return
        self.sync.update_labels(ref, labels_for(task, TaskStatus.PENDING))
        self.sync.add_comment(ref, "Task returned to pending.")


def build_notifier(cfg: Config, platform: Platform) -> IssueNotifier:
    """Pick the backend for *platform*; disabled settings give a no-op notifier."""
    match platform:
        case Platform.GITHUB if cfg.github.is_enabled:
            from zenflow.issues.github import GitHubIssueClient

            gh = cfg.github
            return IssueNotifier(
                IssueSync(GitHubIssueClient(gh)),
                NotifyPolicy(gh.auto_create, gh.auto_update, gh.auto_close),
                ref_field="github_issue",
            )
        case Platform.AZURE if cfg.azure.is_enabled:
            from zenflow.issues.azure import AzureBoardsClient

            az = cfg.azure
            return IssueNotifier(
                IssueSync(AzureBoardsClient(az)),
                NotifyPolicy(az.auto_create, az.auto_update, az.auto_close),
                ref_field="azure_work_item",
            )
        case _:
            log.debug("Issue sync disabled")
            ref_field = "azure_work_item" if platform is Platform.AZURE else "github_issue"
            return IssueNotifier(IssueSync(None), ref_field=ref_field)
