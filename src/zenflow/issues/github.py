"""GitHub Issues backend over the REST API."""

from __future__ import annotations

from typing import Any

import httpx

from zenflow.config import GitHubSettings
from zenflow.errors import RemoteSyncFailure


class GitHubIssueClient:
    """Thin REST client. Every failure surfaces as :class:`RemoteSyncFailure`."""

    TIMEOUT = 10  # seconds
    closes_via_pr = True

    def __init__(self, settings: GitHubSettings, client: httpx.Client | None = None) -> None:
        self.settings = settings
        self._client = client or httpx.Client(
            base_url=settings.api_url,
            timeout=self.TIMEOUT,
            headers={
                "Authorization": f"Bearer {settings.token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
        )

    @property
    def _issues_path(self) -> str:
        return f"/repos/{self.settings.owner}/{self.settings.repo}/issues"

    def _request(self, method: str, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = self._client.request(method, path, json=payload)
        except httpx.TimeoutException as exc:
            raise RemoteSyncFailure(f"GitHub request timed out: {method} {path}") from exc
        except httpx.RequestError as exc:
            raise RemoteSyncFailure(f"GitHub connection error: {exc}") from exc

        if response.status_code == 401:
            raise RemoteSyncFailure("GitHub rejected the token (HTTP 401)")
        if response.status_code == 403 and response.headers.get("x-ratelimit-remaining") == "0":
            raise RemoteSyncFailure("GitHub rate limit exceeded")
        if response.status_code >= 400:
            raise RemoteSyncFailure(f"GitHub {method} {path} failed: HTTP {response.status_code}")
        try:
            data = response.json()
        except ValueError:
            return {}
        if not isinstance(data, dict):
            raise RemoteSyncFailure(f"GitHub {method} {path} returned {type(data).__name__}, expected an object")
        return data

    def create_issue(self, title: str, body: str, labels: list[str]) -> int:
        data = self._request("POST", self._issues_path, {"title": title, "body": body, "labels": labels})
        number = data.get("number")
        if not isinstance(number, int):
            raise RemoteSyncFailure("GitHub response did not include an issue number")
        return number

    def update_labels(self, ref: int, labels: list[str]) -> None:
        self._request("PATCH", f"{self._issues_path}/{ref}", {"labels": labels})

    def add_comment(self, ref: int, text: str) -> None:
        self._request("POST", f"{self._issues_path}/{ref}/comments", {"body": text})

    def close(self, ref: int, text: str) -> None:
        if text:
            self.add_comment(ref, text)
        self._request("PATCH", f"{self._issues_path}/{ref}", {"state": "closed"})
