"""Claude Code hook adapter (``PreToolUse`` / ``PostToolUse``).

Claude Code passes the tool call as JSON on stdin. Exit code 2 blocks the
call and feeds stderr back to the assistant; exit code 0 lets it through.
"""

from __future__ import annotations

import json
from typing import Any

from zenflow import log
from zenflow.hooks.pipeline import Action, Phase, Verdict
from zenflow.workflow import Workspace

BLOCK_EXIT_CODE = 2

TOOL_ACTIONS: dict[str, Action] = {
    "Edit": Action.EDIT,
    "Write": Action.EDIT,
    "MultiEdit": Action.EDIT,
    "NotebookEdit": Action.EDIT,
    "Bash": Action.BASH,
}


def parse_payload(raw: str) -> dict[str, Any]:
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        log.debug("Hook payload is not JSON; allowing")
        return {}
    return data if isinstance(data, dict) else {}


def evaluate(phase: Phase, payload: dict[str, Any], ws: Workspace) -> Verdict:
    action = TOOL_ACTIONS.get(str(payload.get("tool_name", "")))
    if action is None:
        return Verdict.allow()
    tool_input = payload.get("tool_input") or {}
    target = tool_input.get("file_path") or tool_input.get("notebook_path") or ""
    ctx = ws.hook_context(
        phase,
        action,
        target_file=str(target),
        command=str(tool_input.get("command") or ""),
    )
    return ws.hooks.run(ctx)
