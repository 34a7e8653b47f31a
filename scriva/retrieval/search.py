"""Cosine-similarity nearest-neighbour search over the chunk index."""
import math
from typing import List, Sequence

from scriva.schemas import RAGFilters, RAGQuery, RAGResult, TextChunk


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between *a* and *b*; 0 for zero-norm or mismatched vectors."""
    if len(a) != len(b):
        return 0.0

    dot = norm_a = norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y

    denom = math.sqrt(norm_a) * math.sqrt(norm_b)
    if denom == 0:
        return 0.0
    return max(-1.0, min(1.0, dot / denom))


def matches_filters(chunk: TextChunk, filters: RAGFilters) -> bool:
    """``None`` skips a filter; an empty allow-list rejects every chunk."""
    if filters.chapter_ids is not None and chunk.chapter_id not in filters.chapter_ids:
        return False
    if filters.types is not None and chunk.type not in filters.types:
        return False
    if filters.characters is not None and not set(filters.characters).intersection(chunk.characters):
        return False
    return True


def search_embeddings(
    query_embedding: Sequence[float],
    chunk_embeddings: Sequence[Sequence[float]],
    chunks: Sequence[TextChunk],
    query: RAGQuery,
) -> List[RAGResult]:
    if len(chunk_embeddings) != len(chunks):
        raise ValueError(
            f"Index out of sync: {len(chunks)} chunks, {len(chunk_embeddings)} embeddings"
        )

    scored = []
    for chunk, embedding in zip(chunks, chunk_embeddings):
        if query.filters is not None and not matches_filters(chunk, query.filters):
            continue
        scored.append((cosine_similarity(query_embedding, embedding), chunk))

    scored.sort(key=lambda item: item[0], reverse=True)
    return [
        RAGResult(chunk=chunk, score=score, context=chunk.text)
        for score, chunk in scored[:query.top_k]
    ]
