"""Two-phase, short-circuiting validator pipeline."""

from __future__ import annotations

import posixpath
import subprocess
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from zenflow import log
from zenflow.config import Config


class Phase(str, Enum):
    PRE = "pre"
    POST = "post"


class Action(str, Enum):
    EDIT = "edit"
    BASH = "bash"
    COMMIT = "commit"


@dataclass(frozen=True)
class Verdict:
    allowed: bool
    reason: str = ""
    validator: str = ""

    @classmethod
    def allow(cls) -> Verdict:
        return cls(True)

    @classmethod
    def block(cls, reason: str) -> Verdict:
        return cls(False, reason)


@dataclass
class SuiteResult:
    passed: bool
    output: str = ""


def run_test_command(command: str, cwd: Path) -> SuiteResult:
    log.info(f"Running tests: {command}")
    r = subprocess.run(command, shell=True, capture_output=True, text=True, cwd=cwd)
    output = (r.stdout + r.stderr).strip()
    return SuiteResult(passed=r.returncode == 0, output=output)


@dataclass
class HookContext:
    phase: Phase
    action: Action
    cfg: Config
    target_file: str = ""
    command: str = ""
    active_task_id: str | None = None
    active_plan_id: str | None = None
    plan_locked: bool = False
    changed_files: list[str] = field(default_factory=list)
    test_runner: Callable[[str, Path], SuiteResult] = run_test_command
    _test_result: SuiteResult | None = field(default=None, repr=False)

    @property
    def repo_root(self) -> Path:
        return self.cfg.repo_root

    def relative(self, path: str) -> str:
        """Repository-relative, ``/``-separated form of *path*."""
        p = Path(path)
        if p.is_absolute():
            try:
                p = p.resolve().relative_to(self.repo_root.resolve())
            except ValueError:
                return p.as_posix()
        norm = posixpath.normpath(p.as_posix())
        return "" if norm == "." else norm

    def tests(self) -> SuiteResult:
        """Run the configured test command once per context."""
        if self._test_result is None:
            self._test_result = self.test_runner(self.cfg.test_command, self.repo_root)
        return self._test_result


Validator = Callable[[HookContext], Verdict]


@dataclass
class Registration:
    name: str
    phase: Phase
    actions: frozenset[Action]
    check: Validator


class HookPipeline:
    def __init__(self, registrations: list[Registration] | None = None) -> None:
        self.registrations: list[Registration] = list(registrations or [])

    def register(self, name: str, phase: Phase, actions: set[Action] | frozenset[Action], check: Validator) -> None:
        self.registrations.append(Registration(name, phase, frozenset(actions), check))

    def run(self, ctx: HookContext) -> Verdict:
        """Run matching validators in order; the first block wins."""
        for reg in self.registrations:
            if reg.phase is not ctx.phase or ctx.action not in reg.actions:
                continue
            verdict = reg.check(ctx)
            log.debug(f"hook {reg.name}: {'allow' if verdict.allowed else 'block'}")
            if not verdict.allowed:
                return Verdict(False, verdict.reason, reg.name)
        return Verdict.allow()


def default_pipeline() -> HookPipeline:
    from zenflow.hooks import validators as v

    pipeline = HookPipeline()
    pipeline.register("require_active_task", Phase.PRE, {Action.EDIT}, v.require_active_task)
    pipeline.register("restrict_edit_directories", Phase.PRE, {Action.EDIT}, v.restrict_edit_directories)
    pipeline.register("deny_destructive_git", Phase.PRE, {Action.BASH}, v.deny_destructive_git)
    pipeline.register(
        "require_ui_component_pairs", Phase.POST, {Action.EDIT, Action.COMMIT}, v.require_ui_component_pairs
    )
    pipeline.register("require_passing_tests", Phase.POST, {Action.COMMIT}, v.require_passing_tests)
    return pipeline
