"""Retrieval endpoint: load a book's chunks, query them, report cache state."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from scriva.errors import ProviderError
from scriva.retrieval.cache import BookKey
from scriva.retrieval.service import RetrievalService
from scriva.schemas import RAGQuery, ScrivaModel, TextChunk
from scriva.services.embeddings import VoyageEmbeddingClient

logger = logging.getLogger(__name__)

router = APIRouter()


class RagRequest(ScrivaModel):
    action: str
    book_key: Optional[str] = None
    owner: Optional[str] = None
    repo: Optional[str] = None
    branch: str = "main"
    chunks: Optional[List[TextChunk]] = None
    query: Optional[RAGQuery] = None
    voyage_key: Optional[str] = None


def get_retrieval_service(request: Request) -> RetrievalService:
    return request.app.state.retrieval


def resolve_book_key(body: RagRequest) -> BookKey:
    if body.book_key:
        try:
            return BookKey.parse(body.book_key, default_branch=body.branch)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
    if body.owner and body.repo:
        return BookKey(body.owner, body.repo, body.branch)
    raise HTTPException(status_code=400, detail="Missing book key")


@router.post("/api/rag")
async def rag(body: RagRequest, service: RetrievalService = Depends(get_retrieval_service)):
    """
    Dispatch on ``action``:

    - ``load``: embed ``chunks`` and cache them for the book.
    - ``query``: embed ``query.text`` and return the top matches.
    - ``status``: report whether the book is loaded.

    A ``voyageKey`` in the body overrides the server's embedding key for this call.
    """
    book_key = resolve_book_key(body)
    provider = VoyageEmbeddingClient(api_key=body.voyage_key) if body.voyage_key else None

    try:
        if body.action == "load":
            if not body.chunks:
                raise HTTPException(status_code=400, detail="Missing chunks")
            entry = await service.load(book_key, body.chunks, provider)
            return {
                "success": True,
                "chunkCount": len(entry.chunks),
                "embeddingCount": len(entry.embeddings),
            }

        if body.action == "query":
            if body.query is None or not body.query.text:
                raise HTTPException(status_code=400, detail="Missing query")
            results = await service.query(book_key, body.query, provider)
            return {"results": [r.to_json_dict() for r in results]}

        if body.action == "status":
            return service.status(book_key)

    except ProviderError as exc:
        logger.error(
            "rag provider failure | action=%s | error=%s", body.action, exc,
            extra={"book_key": str(book_key)},
        )
        raise HTTPException(status_code=502, detail=str(exc))

    raise HTTPException(status_code=400, detail=f"Unknown action: {body.action}")
