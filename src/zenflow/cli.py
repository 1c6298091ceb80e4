"""ZENFLOW CLI.

Installed as the ``zenflow`` console_script. This is the only place errors
are rendered: commands raise, :class:`ZenflowGroup` prints the
title/detail/suggestion block and exits 1.
"""

from __future__ import annotations

from pathlib import Path

import click
from rich.markup import escape

from zenflow import __version__, log
from zenflow.errors import GitOperationError, SchemaError, ValidationError, ZenflowError
from zenflow.workflow import StartResult, Workspace

CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])


def render_error(exc: ZenflowError) -> None:
    match exc:
        case ValidationError():
            kind = "Validation error"
        case GitOperationError():
            kind = "Git error"
        case SchemaError():
            kind = "Corrupt state"
        case _:
            kind = "Error"
    log.error(f"{kind}: {escape(exc.title)}")
    if exc.detail:
        log.hint(escape(exc.detail))
    if exc.suggestion:
        log.hint(f"Suggestion: {escape(exc.suggestion)}")
    if exc.recoverable:
        log.hint("Nothing was rolled back; finish the remaining step manually.")


class ZenflowGroup(click.Group):
    """Render :class:`ZenflowError` from any subcommand instead of a traceback."""

    def invoke(self, ctx: click.Context):
        try:
            return super().invoke(ctx)
        except ZenflowError as exc:
            render_error(exc)
            ctx.exit(1)


pass_workspace = click.make_pass_decorator(Workspace)


@click.group(cls=ZenflowGroup, context_settings=CONTEXT_SETTINGS)
@click.option(
    "-C",
    "--repo",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Repository root (default: git toplevel of the current directory)",
)
@click.option("-v", "--verbose", is_flag=True, help="Show debug output")
@click.version_option(__version__, prog_name="zenflow")
@click.pass_context
def main(ctx: click.Context, repo: Path | None, verbose: bool) -> None:
    """ZENFLOW: plan, task and git workflow for AI-assisted development.

    \b
    WORKFLOW:
      1. zenflow plan generate "what to build"   # requirements for the assistant
      2. zenflow plan lock                       # freeze PROJECT-PLAN.json
      3. zenflow task next                       # branch + start the next task
      4. zenflow commit                          # complete, commit, push, open PR
      5. zenflow sync                            # after merge: back to trunk
    """
    log.set_verbose(verbose)
    if ctx.obj is None:
        from zenflow.config import load_config, resolve_repo_root

        root = resolve_repo_root(repo.resolve() if repo else None)
        ctx.obj = Workspace(load_config(root, verbose=verbose))


# ── plan ─────────────────────────────────────────────────────────────


@main.group()
def plan() -> None:
    """Generate and lock the project plan."""


@plan.command("generate")
@click.argument("requirements", nargs=-1)
@pass_workspace
def plan_generate(ws: Workspace, requirements: tuple[str, ...]) -> None:
    """Write the requirements artifact and make it the active plan."""
    plan_id = ws.plans.generate(" ".join(requirements))
    log.success(f"Plan requirements created: {escape(plan_id)}")
    log.info(f"Location: {escape(ws.plans.requirements_path(plan_id))}")
    log.info('Next: tell the assistant "Create the project plan", then run: zenflow plan lock')


@plan.command("lock")
@pass_workspace
def plan_lock(ws: Workspace) -> None:
    """Validate PROJECT-PLAN.json, freeze it and create the task tracker."""
    tracker = ws.plans.lock()
    log.success(f"Plan {escape(tracker.plan_id)} locked with {len(tracker.tasks)} task(s)")
    log.info("Next: zenflow task next")


# ── task ─────────────────────────────────────────────────────────────


@main.group()
def task() -> None:
    """Start, block and reset tasks."""


@task.command("next")
@pass_workspace
def task_next(ws: Workspace) -> None:
    """Start the next eligible pending task."""
    _report_start(ws.start_task())


@task.command("start")
@click.argument("task_id")
@pass_workspace
def task_start(ws: Workspace, task_id: str) -> None:
    """Start a specific task."""
    _report_start(ws.start_task(task_id))


def _report_start(result: StartResult) -> None:
    t = result.task
    log.info(f"Branch: {escape(result.branch)}")
    if result.issue_ref is not None:
        log.info(f"Issue: #{result.issue_ref}")
    if t.completion_criteria:
        log.heading("Completion criteria")
        for c in t.completion_criteria:
            log.item(c)
    log.info("When done: zenflow commit")


@task.command("block")
@click.argument("task_id")
@click.argument("reason", nargs=-1, required=True)
@pass_workspace
def task_block(ws: Workspace, task_id: str, reason: tuple[str, ...]) -> None:
    """Mark a task blocked."""
    ws.block_task(task_id, " ".join(reason))


@task.command("reset")
@click.argument("task_id", required=False)
@pass_workspace
def task_reset(ws: Workspace, task_id: str | None) -> None:
    """Return an in-progress or blocked task to pending (default: the active task)."""
    ws.reset_task(task_id)


# ── commit / sync / status ───────────────────────────────────────────


@main.command()
@pass_workspace
def commit(ws: Workspace) -> None:
    """Complete the active task, commit, push and open a pull request."""
    from zenflow.commit import CommitOrchestrator

    result = CommitOrchestrator(ws).run()
    if result.committed and result.task_id:
        log.info("Next: merge the pull request, then run: zenflow sync")


@main.command()
@pass_workspace
def sync(ws: Workspace) -> None:
    """After a merge: switch to the trunk, pull, delete the feature branch."""
    result = ws.branches.sync()
    log.success(f"On {escape(result.trunk)} and up to date")


@main.command()
@pass_workspace
def status(ws: Workspace) -> None:
    """Show plan progress. Read-only; always exits 0."""
    from zenflow.status import build_report, current_branch_or_none, render

    try:
        tracker = ws.active_tracker()
    except ZenflowError as exc:
        log.warn(escape(exc.title))
        if exc.suggestion:
            log.hint(escape(exc.suggestion))
        return
    render(build_report(tracker, branch=current_branch_or_none(ws.cfg.repo_root)))


# ── hook ─────────────────────────────────────────────────────────────


@main.group()
def hook() -> None:
    """Claude Code hook entry points (JSON on stdin)."""


def _run_hook(ctx: click.Context, ws: Workspace, phase_name: str) -> None:
    from zenflow.hooks.claude import BLOCK_EXIT_CODE, evaluate, parse_payload
    from zenflow.hooks.pipeline import Phase

    payload = parse_payload(click.get_text_stream("stdin").read())
    verdict = evaluate(Phase(phase_name), payload, ws)
    if not verdict.allowed:
        click.echo(f"Blocked by {verdict.validator}: {verdict.reason}", err=True)
        ctx.exit(BLOCK_EXIT_CODE)


@hook.command("pre-tool-use")
@click.pass_context
@pass_workspace
def hook_pre(ws: Workspace, ctx: click.Context) -> None:
    """Gate a tool call before it runs."""
    _run_hook(ctx, ws, "pre")


@hook.command("post-tool-use")
@click.pass_context
@pass_workspace
def hook_post(ws: Workspace, ctx: click.Context) -> None:
    """Check a tool call's result (e.g. UI component pairs)."""
    _run_hook(ctx, ws, "post")
