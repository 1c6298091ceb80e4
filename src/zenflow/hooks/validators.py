"""Built-in validators. Each one is a pure check over a :class:`HookContext`."""

from __future__ import annotations

import re
import shlex
from pathlib import PurePosixPath

from zenflow.hooks.pipeline import HookContext, Verdict
from zenflow.plan import PLAN_FILE

_OPERATOR_CHARS = "();<>|&\n"
_OPERATOR_SPLIT = re.compile(r"[();<>|&\n]+")
_TEST_MARKERS = (".test.", ".spec.")
_TEST_EXTENSIONS = (".js", ".jsx", ".ts", ".tsx")


def _is_plan_draft(ctx: HookContext, rel: str) -> bool:
    """The unlocked active plan's PROJECT-PLAN.json, which the assistant writes."""
    if not ctx.active_plan_id or ctx.plan_locked:
        return False
    return rel == f"{ctx.cfg.state_dir}/plans/{ctx.active_plan_id}/{PLAN_FILE}"


def _under(rel: str, directory: str) -> bool:
    directory = directory.strip("/")
    return rel == directory or rel.startswith(directory + "/")


# ── pre / edit ───────────────────────────────────────────────────────


def require_active_task(ctx: HookContext) -> Verdict:
    rel = ctx.relative(ctx.target_file) if ctx.target_file else ""
    if ctx.active_task_id or _is_plan_draft(ctx, rel):
        return Verdict.allow()
    return Verdict.block("No active task. Ask the developer to run: zenflow task next")


def restrict_edit_directories(ctx: HookContext) -> Verdict:
    if not ctx.target_file:
        return Verdict.allow()
    rel = ctx.relative(ctx.target_file)
    if _under(rel, ctx.cfg.state_dir):
        if _is_plan_draft(ctx, rel):
            return Verdict.allow()
        return Verdict.block(f"{ctx.cfg.state_dir}/ is managed by zenflow and is read-only.")
    if any(_under(rel, d) for d in ctx.cfg.allowed_dirs):
        return Verdict.allow()
    allowed = ", ".join(f"{d.strip('/')}/" for d in ctx.cfg.allowed_dirs)
    return Verdict.block(f"Edits are only allowed under: {allowed} (got {rel}).")


# ── pre / bash ───────────────────────────────────────────────────────


def _shell_segments(command: str) -> list[list[str]]:
    """Words of each simple command in *command*, split at unquoted operators.

    ``;``, ``&&``, ``||``, ``|``, newlines, subshell parentheses and
    redirections all end a segment; quoted text never does.
    """
    lexer = shlex.shlex(command, posix=True, punctuation_chars=_OPERATOR_CHARS)
    lexer.whitespace = " \t\r"
    lexer.whitespace_split = True
    lexer.commenters = ""
    segments: list[list[str]] = []
    words: list[str] = []
    try:
        for token in lexer:
            if token and all(c in _OPERATOR_CHARS for c in token):
                segments.append(words)
                words = []
            else:
                words.append(token)
    except ValueError:
        # Unbalanced quotes: split on every operator character instead.
        return [segment.split() for segment in _OPERATOR_SPLIT.split(command)]
    segments.append(words)
    return segments


def _git_invocations(command: str) -> list[list[str]]:
    """Argument lists following ``git`` in each shell segment of *command*."""
    found: list[list[str]] = []
    for words in _shell_segments(command):
        while words and "=" in words[0] and not words[0].startswith("-"):
            words = words[1:]  # leading VAR=value assignments
        if not words or PurePosixPath(words[0]).name != "git":
            continue
        args = words[1:]
        # Skip global options such as ``-C path`` or ``-c key=value``.
        while args and args[0].startswith("-"):
            takes_value = args[0] in ("-C", "-c", "--git-dir", "--work-tree")
            args = args[2:] if takes_value else args[1:]
        if args:
            found.append(args)
    return found


def _short_flags(args: list[str]) -> str:
    return "".join(a[1:] for a in args if a.startswith("-") and not a.startswith("--"))


def _destructive_reason(args: list[str]) -> str:
    sub, rest = args[0], args[1:]
    short = _short_flags(rest)
    match sub:
        case "push":
            if "f" in short or any(a == "--force" or a.startswith("--force-with-lease") for a in rest):
                return "force push"
            if "d" in short or "--delete" in rest:
                return "remote branch deletion"
            if any(a.startswith(":") or (a.startswith("+") and len(a) > 1) for a in rest):
                return "remote branch deletion or forced refspec"
        case "reset":
            if "--hard" in rest:
                return "hard reset"
        case "clean":
            if "f" in short or "--force" in rest:
                return "git clean"
        case "branch":
            if "D" in short:
                return "forced branch deletion"
            if ("d" in short or "--delete" in rest) and ("f" in short or "--force" in rest):
                return "forced branch deletion"
        case "rebase":
            return "rebase"
        case "filter-branch":
            return "history rewrite"
        case "checkout":
            if "--" in rest or "." in rest:
                return "discarding working tree changes"
    return ""


def deny_destructive_git(ctx: HookContext) -> Verdict:
    for args in _git_invocations(ctx.command):
        reason = _destructive_reason(args)
        if reason:
            return Verdict.block(f"Destructive git command denied ({reason}): git {' '.join(args)}")
    return Verdict.allow()


# ── post / edit, commit ──────────────────────────────────────────────


def _is_ui_component(ctx: HookContext, rel: str) -> bool:
    path = PurePosixPath(rel)
    if path.suffix not in ctx.cfg.ui_extensions:
        return False
    if any(marker in path.name for marker in _TEST_MARKERS) or "__tests__" in path.parts:
        return False
    return any(_under(rel, d) for d in ctx.cfg.ui_component_dirs)


def _has_test_file(ctx: HookContext, rel: str) -> bool:
    path = ctx.repo_root / rel
    stem = path.stem
    candidates = [path.parent / f"{stem}{marker}{ext[1:]}" for marker in _TEST_MARKERS for ext in _TEST_EXTENSIONS]
    candidates += [path.parent / "__tests__" / f"{stem}.test{ext}" for ext in _TEST_EXTENSIONS]
    return any(c.is_file() for c in candidates)


def _has_preview_file(ctx: HookContext, rel: str) -> bool:
    preview_dir = ctx.repo_root / ctx.cfg.preview_dir
    stem = PurePosixPath(rel).stem
    return preview_dir.is_dir() and any(p.is_file() for p in preview_dir.glob(f"{stem}.*"))


def require_ui_component_pairs(ctx: HookContext) -> Verdict:
    files = list(ctx.changed_files)
    if ctx.target_file:
        files.append(ctx.target_file)
    for f in files:
        rel = ctx.relative(f)
        if not _is_ui_component(ctx, rel) or not (ctx.repo_root / rel).is_file():
            continue
        stem = PurePosixPath(rel).stem
        if not _has_test_file(ctx, rel):
            return Verdict.block(f"UI component {rel} has no test file (expected {stem}.test.*).")
        if not _has_preview_file(ctx, rel):
            return Verdict.block(
                f"UI component {rel} has no preview in {ctx.cfg.preview_dir}/ (expected {stem}.*)."
            )
    return Verdict.allow()


# ── post / commit ────────────────────────────────────────────────────


def require_passing_tests(ctx: HookContext) -> Verdict:
    if not ctx.cfg.test_command:
        return Verdict.allow()
    result = ctx.tests()
    if result.passed:
        return Verdict.allow()
    tail = "\n".join(result.output.splitlines()[-20:])
    return Verdict.block(f"Tests failed ({ctx.cfg.test_command}).\n{tail}".rstrip())
