"""
Persisted chunk index and manifest, plus batch embedding.

Chunks and the manifest live in the book repository under
``embeddings/``. Embedding vectors are held by
:class:`~scriva.retrieval.cache.EmbeddingCache`, parallel to the chunk list.
"""
import logging
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple

from scriva.config import context_path
from scriva.errors import ProviderError
from scriva.retrieval.chunking import chunk_chapter
from scriva.retrieval.manifest import default_manifest, is_chapter_stale, update_manifest_for_chapter
from scriva.schemas import EmbeddingManifest, TextChunk, WorldModel
from scriva.services.embeddings import EmbeddingProvider
from scriva.services.repository import Repository
from scriva.stores.base import read_json, write_json

logger = logging.getLogger(__name__)


def chunks_path() -> str:
    return context_path("embeddings", "chunks.json")


def manifest_path() -> str:
    return context_path("embeddings", "manifest.json")


async def read_chunks(repo: Repository) -> List[TextChunk]:
    return await read_json(repo, chunks_path(), List[TextChunk], list)


async def save_chunks(repo: Repository, chunks: List[TextChunk]) -> None:
    await write_json(repo, chunks_path(), chunks, "Update embedding chunks")


async def read_manifest(repo: Repository) -> EmbeddingManifest:
    return await read_json(repo, manifest_path(), EmbeddingManifest, default_manifest)


async def save_manifest(repo: Repository, manifest: EmbeddingManifest) -> None:
    await write_json(repo, manifest_path(), manifest, "Update embedding manifest")


async def embed_chunks(chunks: Sequence[TextChunk], provider: EmbeddingProvider) -> List[List[float]]:
    """Embed chunk texts. Any failed batch aborts the whole call."""
    if not chunks:
        return []
    vectors = await provider.embed([chunk.text for chunk in chunks])
    if len(vectors) != len(chunks):
        raise ProviderError(
            getattr(provider, "provider", "embeddings"),
            f"expected {len(chunks)} vectors, got {len(vectors)}",
        )
    return vectors


def splice_chapter(
    chunks: Sequence[TextChunk],
    embeddings: Optional[Sequence[List[float]]],
    chapter_id: str,
    new_chunks: Sequence[TextChunk],
    new_embeddings: Optional[Sequence[List[float]]] = None,
) -> Tuple[List[TextChunk], Optional[List[List[float]]]]:
    """Drop *chapter_id*'s chunks (and vectors) and append the replacements."""
    keep = [i for i, chunk in enumerate(chunks) if chunk.chapter_id != chapter_id]
    result_chunks = [chunks[i] for i in keep] + list(new_chunks)

    if embeddings is None or new_embeddings is None:
        return result_chunks, None
    result_embeddings = [embeddings[i] for i in keep] + list(new_embeddings)
    return result_chunks, result_embeddings


async def reindex_chapter(
    repo: Repository,
    chapter_id: str,
    content: str,
    source: str,
    world_model: Optional[WorldModel] = None,
    force: bool = False,
    before_save: Optional[Callable[[List[TextChunk]], Awaitable[Any]]] = None,
) -> Optional[List[TextChunk]]:
    """Re-chunk one chapter if its content changed since it was last indexed.

    Persists the updated chunk list and manifest and returns the chapter's new
    chunks, or ``None`` when the stored index is already current.

    *before_save* receives the new chunks ahead of any write. If it raises,
    nothing is persisted and the chapter stays stale.
    """
    manifest = await read_manifest(repo)
    if not force and not is_chapter_stale(manifest, chapter_id, content):
        logger.debug("chapter fresh | chapter=%s", chapter_id, extra={"chapter_id": chapter_id})
        return None

    existing = await read_chunks(repo)
    new_chunks = chunk_chapter(content, chapter_id, source, world_model)
    if before_save is not None:
        await before_save(new_chunks)

    all_chunks, _ = splice_chapter(existing, None, chapter_id, new_chunks)

    await save_chunks(repo, all_chunks)
    await save_manifest(
        repo, update_manifest_for_chapter(manifest, chapter_id, content, len(all_chunks)),
    )
    logger.info(
        "chapter reindexed | chapter=%s | chunks=%d | total=%d",
        chapter_id, len(new_chunks), len(all_chunks),
        extra={"chapter_id": chapter_id},
    )
    return new_chunks
