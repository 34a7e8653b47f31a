"""GitHub contents API implementation of :class:`~scriva.services.repository.Repository`."""
from __future__ import annotations

import base64
import logging
from typing import Optional

import httpx

from scriva.config import get_settings
from scriva.errors import ConflictError, FileNotFound, RepositoryError
from scriva.services.repository import RepoFile

logger = logging.getLogger(__name__)


class GitHubRepository:
    """
    Reads and writes files on one branch of a GitHub repository.

    The conflict token is the blob sha GitHub returns; a stale sha on write
    comes back as 409 (or 422 when the sha is missing) and is raised as
    :class:`ConflictError`. Nothing is retried here.
    """

    def __init__(
        self,
        owner: str,
        repo: str,
        branch: str,
        token: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        settings = get_settings()
        self.owner = owner
        self.repo = repo
        self.branch = branch
        self._token = token if token is not None else settings.github_token
        self._api_url = (api_url or settings.github_api_url).rstrip("/")
        self._timeout = timeout or settings.github_timeout_seconds

    def _contents_url(self, path: str) -> str:
        return f"{self._api_url}/repos/{self.owner}/{self.repo}/contents/{path.lstrip('/')}"

    def _headers(self) -> dict:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def read_file(self, path: str) -> RepoFile:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(
                    self._contents_url(path),
                    params={"ref": self.branch},
                    headers=self._headers(),
                )
        except httpx.HTTPError as exc:
            raise RepositoryError(f"Failed to read file {path}: {exc}", path=path) from exc

        if resp.status_code == 404:
            raise FileNotFound(f"File not found: {path}", path=path, status_code=404)
        if resp.status_code >= 400:
            raise RepositoryError(
                f"Failed to read file {path}: HTTP {resp.status_code}",
                path=path, status_code=resp.status_code,
            )

        data = resp.json()
        if isinstance(data, list) or data.get("type") != "file" or "content" not in data:
            raise RepositoryError(f"Path is not a file: {path}", path=path)

        content = base64.b64decode(data["content"]).decode("utf-8")
        return RepoFile(content=content, sha=data["sha"])

    async def write_file(
        self, path: str, content: str, message: str, sha: Optional[str] = None
    ) -> str:
        body = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": self.branch,
        }
        if sha:
            body["sha"] = sha

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.put(
                    self._contents_url(path), json=body, headers=self._headers(),
                )
        except httpx.HTTPError as exc:
            raise RepositoryError(f"Failed to save {path}: {exc}", path=path) from exc

        if resp.status_code in (409, 422):
            raise ConflictError(
                f"Conflict updating {path}: file was modified elsewhere. "
                "Fetch the latest version and try again.",
                path=path, status_code=resp.status_code,
            )
        if resp.status_code >= 400:
            raise RepositoryError(
                f"Failed to save {path}: HTTP {resp.status_code}",
                path=path, status_code=resp.status_code,
            )

        logger.info("github write | %s/%s@%s | path=%s", self.owner, self.repo, self.branch, path)
        return (resp.json().get("content") or {}).get("sha", "")
