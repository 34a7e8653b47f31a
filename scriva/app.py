"""FastAPI application factory and CORS."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from scriva.config import get_settings
from scriva.retrieval.cache import EmbeddingCache
from scriva.retrieval.service import RetrievalService
from scriva.routers import context, rag
from scriva.services.embeddings import VoyageEmbeddingClient
from scriva.services.github_repository import GitHubRepository
from scriva.utils.logging_config import setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(log_file=settings.log_file)
    # Collaborators set before startup are kept.
    if not hasattr(app.state, "retrieval"):
        app.state.retrieval = RetrievalService(VoyageEmbeddingClient(), EmbeddingCache())
    if not hasattr(app.state, "repository_factory"):
        app.state.repository_factory = GitHubRepository
    yield
    app.state.retrieval.cache.clear()


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=f"{settings.app_name} Engine", version="1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(rag.router)
    app.include_router(context.router)
    return app


app = create_app()
