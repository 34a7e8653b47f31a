"""
Per-book cache of chunks and their embedding vectors.

Entries are keyed by :class:`BookKey` so several books (or branches of one
book) can be served by the same process. Entries expire after a TTL and the
least recently used entry is evicted once ``max_books`` is exceeded.
"""
from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, List, NamedTuple, Optional

from scriva.config import get_settings
from scriva.schemas import TextChunk

logger = logging.getLogger(__name__)


class BookKey(NamedTuple):
    owner: str
    repo: str
    branch: str

    def __str__(self) -> str:
        return f"{self.owner}/{self.repo}@{self.branch}"

    @classmethod
    def parse(cls, value: str, default_branch: str = "main") -> "BookKey":
        """Parse ``owner/repo`` or ``owner/repo@branch``."""
        ref, _, branch = value.partition("@")
        owner, sep, repo = ref.partition("/")
        if not sep or not owner or not repo:
            raise ValueError(f"Invalid book key: {value!r}")
        return cls(owner, repo, branch or default_branch)


@dataclass
class CacheEntry:
    chunks: List[TextChunk]
    embeddings: List[List[float]]
    loaded_at: float


class EmbeddingCache:
    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        max_books: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        settings = get_settings()
        self.ttl_seconds = settings.rag_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self.max_books = settings.rag_cache_max_books if max_books is None else max_books
        self._clock = clock
        self._entries: "OrderedDict[BookKey, CacheEntry]" = OrderedDict()

    def _expired(self, entry: CacheEntry) -> bool:
        return self.ttl_seconds > 0 and self._clock() - entry.loaded_at >= self.ttl_seconds

    def get(self, key: BookKey) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._expired(entry):
            del self._entries[key]
            logger.info("rag cache expired | book=%s", key, extra={"book_key": str(key)})
            return None
        self._entries.move_to_end(key)
        return entry

    def put(self, key: BookKey, chunks: List[TextChunk], embeddings: List[List[float]]) -> CacheEntry:
        if len(chunks) != len(embeddings):
            raise ValueError(
                f"chunks and embeddings must be parallel: {len(chunks)} != {len(embeddings)}"
            )
        entry = CacheEntry(chunks=list(chunks), embeddings=list(embeddings), loaded_at=self._clock())
        self._entries[key] = entry
        self._entries.move_to_end(key)

        while len(self._entries) > self.max_books:
            evicted, _ = self._entries.popitem(last=False)
            logger.info("rag cache evicted | book=%s", evicted, extra={"book_key": str(evicted)})
        return entry

    def invalidate(self, key: BookKey) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: BookKey) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not self._expired(entry)

    def __len__(self) -> int:
        return len(self._entries)
