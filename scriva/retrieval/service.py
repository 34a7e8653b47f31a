"""Retrieval service: load a book's chunks into the cache, then answer queries against it."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from scriva.errors import ProviderError
from scriva.retrieval.cache import BookKey, CacheEntry, EmbeddingCache
from scriva.retrieval.index import embed_chunks, splice_chapter
from scriva.retrieval.search import search_embeddings
from scriva.schemas import RAGQuery, RAGResult, TextChunk
from scriva.services.embeddings import EmbeddingProvider
from scriva.utils.logging_config import BookAdapter

logger = logging.getLogger(__name__)


class RetrievalService:
    def __init__(self, provider: EmbeddingProvider, cache: EmbeddingCache):
        self.provider = provider
        self.cache = cache

    def _log(self, book_key: BookKey) -> BookAdapter:
        return BookAdapter(logger, str(book_key))

    async def load(
        self,
        book_key: BookKey,
        chunks: List[TextChunk],
        provider: Optional[EmbeddingProvider] = None,
    ) -> CacheEntry:
        """Embed *chunks* and cache them for *book_key*, replacing any previous entry."""
        embeddings = await embed_chunks(chunks, provider or self.provider)
        entry = self.cache.put(book_key, chunks, embeddings)
        self._log(book_key).info("rag index loaded | chunks=%d", len(chunks))
        return entry

    async def query(
        self,
        book_key: BookKey,
        query: RAGQuery,
        provider: Optional[EmbeddingProvider] = None,
    ) -> List[RAGResult]:
        """Search the cached index. Returns ``[]`` when nothing is loaded for the book."""
        entry = self.cache.get(book_key)
        if entry is None or not entry.chunks:
            return []

        provider = provider or self.provider
        vectors = await provider.embed([query.text])
        if not vectors:
            raise ProviderError(getattr(provider, "provider", "embeddings"), "no query embedding returned")

        results = search_embeddings(vectors[0], entry.embeddings, entry.chunks, query)
        self._log(book_key).debug("rag query | top_k=%d | results=%d", query.top_k, len(results))
        return results

    async def refresh_chapter(
        self,
        book_key: BookKey,
        chapter_id: str,
        new_chunks: List[TextChunk],
        provider: Optional[EmbeddingProvider] = None,
    ) -> Optional[CacheEntry]:
        """Swap one chapter's chunks and vectors in a cached index. No-op if the book is not loaded."""
        entry = self.cache.get(book_key)
        if entry is None:
            return None

        new_embeddings = await embed_chunks(new_chunks, provider or self.provider)
        chunks, embeddings = splice_chapter(
            entry.chunks, entry.embeddings, chapter_id, new_chunks, new_embeddings,
        )
        return self.cache.put(book_key, chunks, embeddings)

    def status(self, book_key: BookKey) -> Dict[str, Any]:
        entry = self.cache.get(book_key)
        return {
            "loaded": bool(entry and entry.chunks),
            "chunkCount": len(entry.chunks) if entry else 0,
            "embeddingCount": len(entry.embeddings) if entry else 0,
            "bookKey": str(book_key),
        }

    def for_book(self, book_key: BookKey) -> "BookRetriever":
        return BookRetriever(self, book_key)


class BookRetriever:
    """Binds a :class:`RetrievalService` to one book for the context compiler."""

    def __init__(self, service: RetrievalService, book_key: BookKey):
        self.service = service
        self.book_key = book_key

    async def retrieve(self, query: RAGQuery) -> List[RAGResult]:
        return await self.service.query(self.book_key, query)
