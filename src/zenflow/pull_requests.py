"""Pull request creation and state lookup through the ``gh`` / ``az`` CLIs."""

from __future__ import annotations

import json
import os
import shutil
import subprocess
from enum import Enum
from pathlib import Path
from typing import Protocol

from zenflow import log
from zenflow.config import AzureSettings, Config
from zenflow.errors import PullRequestFailed
from zenflow.platform import Platform


class PRState(str, Enum):
    OPEN = "open"
    MERGED = "merged"
    CLOSED = "closed"
    ABANDONED = "abandoned"
    NOT_FOUND = "not_found"
    UNKNOWN = "unknown"


class PullRequestGateway(Protocol):
    def state(self, branch: str) -> PRState: ...

    def create(self, *, branch: str, base: str, title: str, body: str) -> str: ...


def _run(cmd: list[str], cwd: Path | None = None, env: dict[str, str] | None = None) -> subprocess.CompletedProcess[str]:
    return subprocess.run(cmd, capture_output=True, text=True, cwd=cwd, env=env)


class GitHubPullRequests:
    """``gh pr`` wrapper. Authentication is whatever ``gh`` is logged in as."""

    def __init__(self, cwd: Path | None = None) -> None:
        self.cwd = cwd

    def state(self, branch: str) -> PRState:
        if not shutil.which("gh"):
            log.debug("gh CLI not found; PR state unknown")
            return PRState.UNKNOWN
        r = _run(["gh", "pr", "view", branch, "--json", "state,mergedAt"], cwd=self.cwd)
        if r.returncode != 0:
            if "no pull requests found" in r.stderr.lower():
                return PRState.NOT_FOUND
            log.debug(f"gh pr view failed: {r.stderr.strip()}")
            return PRState.UNKNOWN
        try:
            data = json.loads(r.stdout)
        except json.JSONDecodeError:
            return PRState.UNKNOWN
        match str(data.get("state", "")).upper():
            case "MERGED":
                return PRState.MERGED
            case "OPEN":
                return PRState.OPEN
            case "CLOSED":
                return PRState.MERGED if data.get("mergedAt") else PRState.CLOSED
            case _:
                return PRState.UNKNOWN

    def create(self, *, branch: str, base: str, title: str, body: str) -> str:
        if not shutil.which("gh"):
            raise PullRequestFailed(branch, "gh CLI not found.")
        cmd = ["gh", "pr", "create", "--base", base, "--head", branch, "--title", title, "--body", body]
        r = _run(cmd, cwd=self.cwd)
        if r.returncode != 0:
            raise PullRequestFailed(branch, r.stderr.strip())
        return r.stdout.strip().splitlines()[-1] if r.stdout.strip() else ""


class AzurePullRequests:
    """``az repos pr`` wrapper (requires the azure-devops CLI extension)."""

    _STATES = {
        "active": PRState.OPEN,
        "completed": PRState.MERGED,
        "abandoned": PRState.ABANDONED,
    }

    def __init__(self, settings: AzureSettings, cwd: Path | None = None) -> None:
        self.settings = settings
        self.cwd = cwd

    def _env(self) -> dict[str, str]:
        env = dict(os.environ)
        if self.settings.pat:
            env["AZURE_DEVOPS_EXT_PAT"] = self.settings.pat
        return env

    def _scope(self) -> list[str]:
        args: list[str] = []
        if self.settings.organization:
            args += ["--org", self.settings.org_url]
        if self.settings.project:
            args += ["--project", self.settings.project]
        return args

    def state(self, branch: str) -> PRState:
        if not shutil.which("az"):
            log.debug("az CLI not found; PR state unknown")
            return PRState.UNKNOWN
        cmd = ["az", "repos", "pr", "list", "--source-branch", branch, "--status", "all", "--output", "json"]
        r = _run(cmd + self._scope(), cwd=self.cwd, env=self._env())
        if r.returncode != 0:
            log.debug(f"az repos pr list failed: {r.stderr.strip()}")
            return PRState.UNKNOWN
        try:
            prs = json.loads(r.stdout or "[]")
        except json.JSONDecodeError:
            return PRState.UNKNOWN
        if not prs:
            return PRState.NOT_FOUND
        return self._STATES.get(str(prs[0].get("status", "")).lower(), PRState.UNKNOWN)

    def create(self, *, branch: str, base: str, title: str, body: str) -> str:
        if not shutil.which("az"):
            raise PullRequestFailed(branch, "az CLI not found.")
        cmd = [
            "az", "repos", "pr", "create",
            "--source-branch", branch,
            "--target-branch", base,
            "--title", title,
            "--description", body,
            "--output", "json",
        ]
        r = _run(cmd + self._scope(), cwd=self.cwd, env=self._env())
        if r.returncode != 0:
            raise PullRequestFailed(branch, r.stderr.strip())
        try:
            data = json.loads(r.stdout)
        except json.JSONDecodeError:
            return ""
        web_url = (data.get("repository") or {}).get("webUrl")
        pr_id = data.get("pullRequestId")
        if web_url and pr_id:
            return f"{web_url}/pullrequest/{pr_id}"
        return str(pr_id or "")


class NoPullRequests:
    """Used when no hosting platform was detected."""

    def state(self, branch: str) -> PRState:
        return PRState.UNKNOWN

    def create(self, *, branch: str, base: str, title: str, body: str) -> str:
        raise PullRequestFailed(branch, "No GitHub or Azure DevOps remote detected.")


def gateway_for(platform: Platform, cfg: Config) -> PullRequestGateway:
    match platform:
        case Platform.GITHUB:
            return GitHubPullRequests(cwd=cfg.repo_root)
        case Platform.AZURE:
            return AzurePullRequests(cfg.azure, cwd=cfg.repo_root)
        case _:
            return NoPullRequests()
