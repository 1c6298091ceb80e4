"""Wires configuration, stores, git, and issue sync for one invocation."""

from __future__ import annotations

from dataclasses import dataclass

from rich.markup import escape

from zenflow import log
from zenflow.branches import BranchCoordinator
from zenflow.config import Config
from zenflow.errors import NoActiveTask, TaskAlreadyInProgress
from zenflow.hooks.pipeline import Action, HookContext, HookPipeline, Phase, default_pipeline
from zenflow.issues.sync import IssueNotifier, build_notifier
from zenflow.plan import PlanStore
from zenflow.platform import PlatformAdapter
from zenflow.pull_requests import PullRequestGateway, gateway_for
from zenflow.store import DocumentStore, FileStore
from zenflow.tasks.model import Task, TaskTracker


@dataclass
class StartResult:
    task: Task
    branch: str
    issue_ref: int | None = None


class Workspace:
    """Everything a command needs, built once at startup.

    Collaborators that reach out to the network or to ``gh`` / ``az`` are
    created lazily so read-only commands never trigger platform detection.
    Tests pass fakes for any of them.
    """

    def __init__(
        self,
        cfg: Config,
        *,
        store: DocumentStore | None = None,
        platform: PlatformAdapter | None = None,
        pull_requests: PullRequestGateway | None = None,
        notifier: IssueNotifier | None = None,
        hooks: HookPipeline | None = None,
    ) -> None:
        self.cfg = cfg
        self.store = store or FileStore(cfg.state_path)
        self.plans = PlanStore(self.store, project_name=cfg.repo_root.name)
        self.trackers = self.plans.trackers
        self.platform = platform or PlatformAdapter(cfg)
        self.hooks = hooks or default_pipeline()
        self._pull_requests = pull_requests
        self._notifier = notifier
        self._branches: BranchCoordinator | None = None

    @property
    def pull_requests(self) -> PullRequestGateway:
        if self._pull_requests is None:
            self._pull_requests = gateway_for(self.platform.platform, self.cfg)
        return self._pull_requests

    @property
    def notifier(self) -> IssueNotifier:
        if self._notifier is None:
            self._notifier = build_notifier(self.cfg, self.platform.platform)
        return self._notifier

    @property
    def branches(self) -> BranchCoordinator:
        if self._branches is None:
            self._branches = BranchCoordinator(self.cfg, self.pull_requests)
        return self._branches

    # ── state ────────────────────────────────────────────────────

    def active_tracker(self) -> TaskTracker:
        return self.trackers.load(self.plans.require_active_plan())

    # ── task lifecycle ───────────────────────────────────────────

    def start_task(self, task_id: str | None = None) -> StartResult:
        """Start *task_id*, or the next eligible task when omitted.

        Order: validate, create the branch, persist, then notify. A branch
        failure leaves the tracker untouched.
        """
        plan_id = self.plans.require_active_plan()
        tracker = self.trackers.load(plan_id)
        if task_id is None:
            active = tracker.active_task()
            if active is not None:
                raise TaskAlreadyInProgress(active.id)
            task_id = tracker.require_next().id
        else:
            task_id = task_id.upper()
        tracker.check_can_start(task_id)

        branch = self.branches.start_task_branch(task_id)

        with self.trackers.edit(plan_id) as t:
            task = t.start(task_id)
        log.success(f"Started {task.id}: {escape(task.title)}")

        ref = self.notifier.task_started(task)
        if ref is not None and self.notifier.issue_ref(task) != ref:
            with self.trackers.edit(plan_id) as t:
                task = t.get(task_id)
                self.notifier.record_ref(task, ref)
        return StartResult(task=task, branch=branch, issue_ref=ref)

    def block_task(self, task_id: str, reason: str) -> Task:
        plan_id = self.plans.require_active_plan()
        with self.trackers.edit(plan_id) as t:
            task = t.block(task_id.upper(), reason)
        log.warn(f"Blocked {task.id}: {escape(reason)}")
        self.notifier.task_blocked(task, reason)
        return task

    def reset_task(self, task_id: str | None = None) -> Task:
        plan_id = self.plans.require_active_plan()
        with self.trackers.edit(plan_id) as t:
            if task_id is None:
                active = t.active_task()
                if active is None:
                    raise NoActiveTask()
                task_id = active.id
            task = t.reset(task_id.upper())
        log.success(f"Reset {task.id} to pending")
        self.notifier.task_reset(task)
        return task

    # ── hooks ────────────────────────────────────────────────────

    def hook_context(
        self,
        phase: Phase,
        action: Action,
        *,
        target_file: str = "",
        command: str = "",
        changed_files: list[str] | None = None,
    ) -> HookContext:
        plan_id = self.plans.active_plan_id()
        locked = bool(plan_id) and self.plans.is_locked(plan_id)
        active_task_id = None
        if plan_id and self.trackers.exists(plan_id):
            active = self.trackers.load(plan_id).active_task()
            active_task_id = active.id if active else None
        return HookContext(
            phase=phase,
            action=action,
            cfg=self.cfg,
            target_file=target_file,
            command=command,
            active_task_id=active_task_id,
            active_plan_id=plan_id,
            plan_locked=locked,
            changed_files=list(changed_files or []),
        )
