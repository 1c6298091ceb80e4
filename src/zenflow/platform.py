"""Hosting-platform detection (GitHub, Azure DevOps, or neither)."""

from __future__ import annotations

import configparser
from enum import Enum

from zenflow import git_ops, log
from zenflow.config import Config


class Platform(str, Enum):
    GITHUB = "github"
    AZURE = "azure"
    UNKNOWN = "unknown"


def platform_from_url(url: str) -> Platform:
    lowered = url.lower()
    if "github.com" in lowered:
        return Platform.GITHUB
    if "dev.azure.com" in lowered or "visualstudio.com" in lowered:
        return Platform.AZURE
    return Platform.UNKNOWN


class PlatformAdapter:
    """Resolves the active platform once per adapter and remembers it.

    Detection order: explicit override from settings, the ``origin`` remote
    URL, any remote URL in ``.git/config``, then whichever issue backend is
    enabled in the configuration.
    """

    def __init__(self, cfg: Config) -> None:
        self._cfg = cfg
        self._platform: Platform | None = None

    @property
    def platform(self) -> Platform:
        if self._platform is None:
            self._platform = self._detect()
            log.debug(f"Platform: {self._platform.value}")
        return self._platform

    def clear_cache(self) -> None:
        """Forget the memoized platform. Test setup only."""
        self._platform = None

    def _detect(self) -> Platform:
        override = self._cfg.platform_override
        if override:
            try:
                return Platform(override)
            except ValueError:
                log.warn(f"Unknown platform type in settings: {override}")

        found = platform_from_url(git_ops.remote_url("origin", cwd=self._cfg.repo_root))
        if found is not Platform.UNKNOWN:
            return found

        found = self._from_git_config()
        if found is not Platform.UNKNOWN:
            return found

        if self._cfg.azure.is_enabled:
            return Platform.AZURE
        if self._cfg.github.is_enabled:
            return Platform.GITHUB
        return Platform.UNKNOWN

    def _from_git_config(self) -> Platform:
        path = self._cfg.repo_root / ".git" / "config"
        if not path.is_file():
            return Platform.UNKNOWN
        parser = configparser.ConfigParser(strict=False, interpolation=None)
        try:
            parser.read(path, encoding="utf-8")
        except configparser.Error as exc:
            log.debug(f"Unreadable .git/config: {exc}")
            return Platform.UNKNOWN
        for section in parser.sections():
            if section.startswith("remote") and parser.has_option(section, "url"):
                found = platform_from_url(parser.get(section, "url"))
                if found is not Platform.UNKNOWN:
                    return found
        return Platform.UNKNOWN
