"""Configuration defaults, settings files, and env vars for ZENFLOW."""

from __future__ import annotations

import json
import os
import re
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from zenflow import git_ops, log
from zenflow.io_utils import read_text


DEFAULT_STATE_DIR = ".claude"
DEFAULT_ALLOWED_DIRS = ("Agent", "scripts")
DEFAULT_UI_COMPONENT_DIRS = ("Agent/src/components",)
DEFAULT_UI_EXTENSIONS = (".jsx", ".tsx", ".vue", ".svelte")
DEFAULT_PREVIEW_DIR = "test-site/src/components"

SETTINGS_FILE = "settings.json"
LOCAL_SETTINGS_FILE = "settings.local.json"

GITHUB_REMOTE_RE = re.compile(r"github\.com[:/]([^/]+)/([^/.]+)")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass
class GitHubSettings:
    enabled: bool = True
    token: str = ""
    owner: str = ""
    repo: str = ""
    auto_create: bool = True
    auto_update: bool = True
    auto_close: bool = True
    api_url: str = "https://api.github.com"

    @property
    def is_enabled(self) -> bool:
        """Usable only with the flag on, a token, and a repository identity."""
        return self.enabled and bool(self.token) and bool(self.owner) and bool(self.repo)


@dataclass
class AzureSettings:
    enabled: bool = False
    pat: str = ""
    organization: str = ""
    project: str = ""
    auto_create: bool = True
    auto_update: bool = True
    auto_close: bool = False

    @property
    def is_enabled(self) -> bool:
        return self.enabled and bool(self.pat) and bool(self.organization) and bool(self.project)

    @property
    def org_url(self) -> str:
        if self.organization.startswith("https://"):
            return self.organization.rstrip("/")
        return f"https://dev.azure.com/{self.organization}"


@dataclass
class Config:
    """Runtime configuration for one zenflow invocation."""

    repo_root: Path = field(default_factory=Path.cwd)
    state_dir: str = DEFAULT_STATE_DIR

    # Git
    trunk_branch: str = ""

    # Enforcement hooks
    allowed_dirs: list[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_DIRS))
    ui_component_dirs: list[str] = field(default_factory=lambda: list(DEFAULT_UI_COMPONENT_DIRS))
    ui_extensions: list[str] = field(default_factory=lambda: list(DEFAULT_UI_EXTENSIONS))
    preview_dir: str = DEFAULT_PREVIEW_DIR
    test_command: str = ""

    # Issue tracking
    github: GitHubSettings = field(default_factory=GitHubSettings)
    azure: AzureSettings = field(default_factory=AzureSettings)
    platform_override: str = ""

    # Misc
    verbose: bool = False

    def __post_init__(self) -> None:
        self.repo_root = Path(self.repo_root)
        self.trunk_branch = os.environ.get("ZENFLOW_TRUNK_BRANCH") or self.trunk_branch
        self.test_command = os.environ.get("ZENFLOW_TEST_COMMAND") or self.test_command

    @property
    def state_path(self) -> Path:
        return self.repo_root / self.state_dir


# ── Loading ──────────────────────────────────────────────────────────


def resolve_repo_root(start: Path | None = None) -> Path:
    """Return the git repository root, falling back to *start* (or cwd)."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],
            capture_output=True,
            text=True,
            check=True,
            cwd=start,
        )
        return Path(result.stdout.strip())
    except (subprocess.CalledProcessError, FileNotFoundError):
        return start or Path.cwd()


def _read_settings(path: Path) -> dict[str, Any]:
    """Load one settings file. Missing or malformed files count as empty."""
    if not path.is_file():
        return {}
    try:
        data = json.loads(read_text(path))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        log.warn(f"Ignoring malformed settings file {path}: {exc}")
        return {}
    if not isinstance(data, dict):
        log.warn(f"Ignoring settings file {path}: top level is not an object")
        return {}
    return data


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def env_flag(name: str) -> bool | None:
    """Parse a boolean env var; ``None`` when unset or unrecognised."""
    raw = os.environ.get(name)
    if raw is None:
        return None
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    return None


def parse_github_remote(url: str) -> tuple[str, str] | None:
    """Extract ``(owner, repo)`` from a GitHub remote URL."""
    match = GITHUB_REMOTE_RE.search(url)
    if not match:
        return None
    return match.group(1), match.group(2)


def _github_settings(block: dict[str, Any], repo_root: Path) -> GitHubSettings:
    gh = GitHubSettings(
        enabled=bool(block.get("enabled", True)),
        token=str(block.get("token") or ""),
        owner=str(block.get("owner") or ""),
        repo=str(block.get("repo") or ""),
        auto_create=bool(block.get("autoCreate", True)),
        auto_update=bool(block.get("autoUpdate", True)),
        auto_close=bool(block.get("autoClose", True)),
    )
    gh.token = os.environ.get("GITHUB_TOKEN") or gh.token
    gh.owner = os.environ.get("GITHUB_OWNER") or gh.owner
    gh.repo = os.environ.get("GITHUB_REPO") or gh.repo
    for env_name, attr in (
        ("GITHUB_ENABLED", "enabled"),
        ("GITHUB_AUTO_CREATE", "auto_create"),
        ("GITHUB_AUTO_UPDATE", "auto_update"),
        ("GITHUB_AUTO_CLOSE", "auto_close"),
    ):
        flag = env_flag(env_name)
        if flag is not None:
            setattr(gh, attr, flag)

    if not (gh.owner and gh.repo):
        detected = parse_github_remote(git_ops.remote_url("origin", cwd=repo_root))
        if detected:
            gh.owner = gh.owner or detected[0]
            gh.repo = gh.repo or detected[1]
            log.debug(f"GitHub repository detected from origin: {gh.owner}/{gh.repo}")
    return gh


def _azure_settings(block: dict[str, Any]) -> AzureSettings:
    az = AzureSettings(
        enabled=bool(block.get("enabled", False)),
        pat=str(block.get("pat") or ""),
        organization=str(block.get("organization") or ""),
        project=str(block.get("project") or ""),
        auto_create=bool(block.get("autoCreate", True)),
        auto_update=bool(block.get("autoUpdate", True)),
        auto_close=bool(block.get("autoClose", False)),
    )
    az.pat = os.environ.get("AZURE_DEVOPS_PAT") or az.pat
    az.organization = os.environ.get("AZURE_DEVOPS_ORGANIZATION") or az.organization
    az.project = os.environ.get("AZURE_DEVOPS_PROJECT") or az.project
    for env_name, attr in (
        ("AZURE_DEVOPS_ENABLED", "enabled"),
        ("AZURE_DEVOPS_AUTO_CREATE", "auto_create"),
        ("AZURE_DEVOPS_AUTO_UPDATE", "auto_update"),
        ("AZURE_DEVOPS_AUTO_CLOSE", "auto_close"),
    ):
        flag = env_flag(env_name)
        if flag is not None:
            setattr(az, attr, flag)
    return az


def load_config(repo_root: Path | None = None, *, verbose: bool = False) -> Config:
    """Build a :class:`Config` from settings files and the environment.

    Precedence, highest first: environment, ``settings.local.json``,
    ``settings.json``, auto-detection from the ``origin`` remote.
    """
    root = repo_root or resolve_repo_root()
    state_dir = DEFAULT_STATE_DIR
    shared = _read_settings(root / state_dir / SETTINGS_FILE)
    local = _read_settings(root / state_dir / LOCAL_SETTINGS_FILE)
    settings = _merge(shared, local)

    core = settings.get("zenflow") or {}
    platform = settings.get("platform") or {}

    platform_override = ""
    if platform.get("type") and platform.get("autoDetect") is False:
        platform_override = str(platform["type"]).lower()

    return Config(
        repo_root=root,
        state_dir=state_dir,
        trunk_branch=str(core.get("trunkBranch") or ""),
        allowed_dirs=list(core.get("allowedDirs") or DEFAULT_ALLOWED_DIRS),
        ui_component_dirs=list(core.get("uiComponentDirs") or DEFAULT_UI_COMPONENT_DIRS),
        ui_extensions=list(core.get("uiExtensions") or DEFAULT_UI_EXTENSIONS),
        preview_dir=str(core.get("previewDir") or DEFAULT_PREVIEW_DIR),
        test_command=str(core.get("testCommand") or ""),
        github=_github_settings(settings.get("github") or {}, root),
        azure=_azure_settings(settings.get("azureDevOps") or {}),
        platform_override=platform_override,
        verbose=verbose,
    )
