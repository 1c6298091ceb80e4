"""Git operations: repository state, branches, staging, commits, remotes."""

from __future__ import annotations

import subprocess
from pathlib import Path


def _git(*args: str, cwd: Path | None = None, check: bool = False) -> subprocess.CompletedProcess[str]:
    """Run a git command, capturing output."""
    return subprocess.run(
        ["git", *args],
        capture_output=True,
        text=True,
        cwd=cwd,
        check=check,
    )


def stderr_of(r: subprocess.CompletedProcess[str]) -> str:
    return (r.stderr or r.stdout or "").strip()


# ── Repository state ─────────────────────────────────────────────────

def is_repository(cwd: Path | None = None) -> bool:
    r = _git("rev-parse", "--is-inside-work-tree", cwd=cwd)
    return r.returncode == 0 and r.stdout.strip() == "true"


def current_branch(cwd: Path | None = None) -> str | None:
    """Return the checked-out branch, or ``None`` on a detached HEAD."""
    r = _git("symbolic-ref", "--quiet", "--short", "HEAD", cwd=cwd)
    if r.returncode != 0:
        return None
    return r.stdout.strip() or None


def status_entries(cwd: Path | None = None) -> list[tuple[str, str]]:
    """Return ``(code, path)`` pairs from ``git status --porcelain``."""
    r = _git("status", "--porcelain", "--untracked-files=all", cwd=cwd)
    if r.returncode != 0 or not r.stdout.strip():
        return []
    entries: list[tuple[str, str]] = []
    for line in r.stdout.splitlines():
        if len(line) < 4:
            continue
        code, path = line[:2], line[3:]
        if " -> " in path:
            path = path.split(" -> ", 1)[1]
        entries.append((code.strip(), path.strip('"')))
    return entries


def dirty_worktree_entries(cwd: Path | None = None, ignore_prefix: str = "") -> list[str]:
    """Concise dirty entries, optionally skipping paths under *ignore_prefix*."""
    prefix = ignore_prefix.rstrip("/") + "/" if ignore_prefix else ""
    return [
        f"{code} {path}"
        for code, path in status_entries(cwd=cwd)
        if not (prefix and path.startswith(prefix))
    ]


def has_dirty_worktree(cwd: Path | None = None) -> bool:
    return bool(status_entries(cwd=cwd))


# ── Branches ─────────────────────────────────────────────────────────

def branch_exists(name: str, cwd: Path | None = None) -> bool:
    r = _git("show-ref", "--verify", "--quiet", f"refs/heads/{name}", cwd=cwd)
    return r.returncode == 0


def remote_branch_exists(name: str, remote: str = "origin", cwd: Path | None = None) -> bool:
    r = _git("show-ref", "--verify", "--quiet", f"refs/remotes/{remote}/{name}", cwd=cwd)
    return r.returncode == 0


def checkout(branch: str, cwd: Path | None = None) -> subprocess.CompletedProcess[str]:
    return _git("checkout", branch, cwd=cwd)


def create_branch(name: str, base: str, cwd: Path | None = None) -> subprocess.CompletedProcess[str]:
    return _git("checkout", "-b", name, base, cwd=cwd)


def delete_branch(name: str, force: bool = False, cwd: Path | None = None) -> bool:
    flag = "-D" if force else "-d"
    r = _git("branch", flag, name, cwd=cwd)
    return r.returncode == 0


def commit_count(base: str, head: str = "HEAD", cwd: Path | None = None) -> int:
    r = _git("rev-list", "--count", f"{base}..{head}", cwd=cwd)
    if r.returncode != 0:
        return 0
    try:
        return int(r.stdout.strip())
    except ValueError:
        return 0


# ── Remotes ──────────────────────────────────────────────────────────

def has_remote(name: str = "origin", cwd: Path | None = None) -> bool:
    r = _git("remote", cwd=cwd)
    return r.returncode == 0 and name in r.stdout.split()


def remote_url(name: str = "origin", cwd: Path | None = None) -> str:
    r = _git("remote", "get-url", name, cwd=cwd)
    return r.stdout.strip() if r.returncode == 0 else ""


def fetch(remote: str = "origin", cwd: Path | None = None) -> bool:
    r = _git("fetch", "--prune", remote, cwd=cwd)
    return r.returncode == 0


def pull(branch: str, cwd: Path | None = None) -> subprocess.CompletedProcess[str]:
    return _git("pull", "origin", branch, cwd=cwd)


def has_upstream(cwd: Path | None = None) -> bool:
    r = _git("rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}", cwd=cwd)
    return r.returncode == 0


def push(branch: str, set_upstream: bool = False, cwd: Path | None = None) -> subprocess.CompletedProcess[str]:
    if set_upstream:
        return _git("push", "-u", "origin", branch, cwd=cwd)
    return _git("push", "origin", branch, cwd=cwd)


# ── Staging and commits ──────────────────────────────────────────────

def stage_all(cwd: Path | None = None) -> subprocess.CompletedProcess[str]:
    return _git("add", "-A", cwd=cwd)


def staged_changes(cwd: Path | None = None) -> list[tuple[str, str]]:
    """Return ``(status, path)`` pairs for the index, e.g. ``("M", "a.py")``."""
    r = _git("diff", "--cached", "--name-status", cwd=cwd)
    if r.returncode != 0 or not r.stdout.strip():
        return []
    changes: list[tuple[str, str]] = []
    for line in r.stdout.strip().splitlines():
        parts = line.split("\t")
        if len(parts) >= 2:
            changes.append((parts[0][:1], parts[-1]))
    return changes


def commit(message: str, cwd: Path | None = None) -> subprocess.CompletedProcess[str]:
    return _git("commit", "-m", message, cwd=cwd)
