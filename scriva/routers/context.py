"""Briefing endpoint: compile the context for one task against a book repository."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Request

from scriva.context.compiler import briefing_to_prompt, compile_briefing
from scriva.errors import ConflictError, RepositoryError
from scriva.retrieval.cache import BookKey
from scriva.schemas import CompileTask, ScrivaModel
from scriva.stores.book_config import read_book, read_scriva_config

logger = logging.getLogger(__name__)

router = APIRouter()


class CompileRequest(ScrivaModel):
    owner: str
    repo: str
    branch: str = "main"
    token: Optional[str] = None
    task: CompileTask


@router.post("/api/context/compile")
async def compile_context(body: CompileRequest, request: Request):
    """
    Compile a briefing for ``task`` and return it with the rendered system prompt.

    Retrieved passages are included only when the book's chunks are already
    loaded through ``/api/rag``.
    """
    state = request.app.state
    repo = state.repository_factory(body.owner, body.repo, body.branch, body.token)
    book_key = BookKey(body.owner, body.repo, body.branch)

    retriever = None
    if book_key in state.retrieval.cache:
        retriever = state.retrieval.for_book(book_key)

    try:
        config = await read_scriva_config(repo)
        book = await read_book(repo)
        briefing = await compile_briefing(body.task, config, book, repo, retriever=retriever)
    except ConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except RepositoryError as exc:
        logger.error(
            "compile failed | path=%s | status=%s", exc.path, exc.status_code,
            extra={"book_key": str(book_key)},
        )
        raise HTTPException(status_code=502, detail=str(exc))

    return {
        "briefing": briefing.to_json_dict(),
        "prompt": briefing_to_prompt(briefing, book.title),
    }
