"""
Persistence collaborator: read and write files by path with a conflict token.

The engine only ever talks to a :class:`Repository`. Two implementations ship:
:class:`LocalRepository` (a directory on disk, used for local books and tests)
and :class:`scriva.services.github_repository.GitHubRepository`.
"""
from __future__ import annotations

import asyncio
import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from scriva.errors import ConflictError, FileNotFound, RepositoryError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RepoFile:
    content: str
    sha: str


@runtime_checkable
class Repository(Protocol):
    """Minimal contents API the stores depend on."""

    async def read_file(self, path: str) -> RepoFile:
        """Return the file at *path*. Raises :class:`FileNotFound` if absent."""
        ...

    async def write_file(
        self, path: str, content: str, message: str, sha: Optional[str] = None
    ) -> str:
        """Create or update *path* and return the new conflict token.

        *sha* must match the stored file's token when the file exists;
        otherwise :class:`ConflictError` is raised.
        """
        ...


def content_sha(content: str) -> str:
    return hashlib.sha1(content.encode("utf-8")).hexdigest()


class LocalRepository:
    """
    Directory-backed repository.

    The conflict token is the SHA-1 of the file's current bytes, so a write
    carrying a token read before someone else's write is rejected.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)
        self._lock = asyncio.Lock()

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        root = self.root.resolve()
        if root != target and root not in target.parents:
            raise RepositoryError(f"Path escapes repository root: {path}", path=path)
        return target

    async def read_file(self, path: str) -> RepoFile:
        target = self._resolve(path)
        if not target.is_file():
            raise FileNotFound(f"Not found: {path}", path=path, status_code=404)
        try:
            content = target.read_text(encoding="utf-8")
        except OSError as exc:
            raise RepositoryError(f"Failed to read {path}: {exc}", path=path) from exc
        return RepoFile(content=content, sha=content_sha(content))

    async def write_file(
        self, path: str, content: str, message: str, sha: Optional[str] = None
    ) -> str:
        target = self._resolve(path)
        async with self._lock:
            if target.is_file():
                current = content_sha(target.read_text(encoding="utf-8"))
                if sha != current:
                    raise ConflictError(
                        f"Conflict writing {path}: expected {sha}, found {current}",
                        path=path, status_code=409,
                    )
            elif sha is not None:
                raise ConflictError(
                    f"Conflict writing {path}: file was deleted", path=path, status_code=409,
                )

            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(content, encoding="utf-8")
            except OSError as exc:
                raise RepositoryError(f"Failed to write {path}: {exc}", path=path) from exc

        logger.debug("local write | path=%s | message=%s", path, message)
        return content_sha(content)
