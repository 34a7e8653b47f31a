"""Tests for the HTTP surface: /api/rag and /api/context/compile."""

import pytest
from fastapi.testclient import TestClient

from scriva.app import create_app
from scriva.context.compiler import FRAMING
from scriva.errors import ProviderError, RepositoryError
from scriva.retrieval.cache import BookKey, EmbeddingCache
from scriva.retrieval.service import RetrievalService
from scriva.schemas import Book, Chapter, Part, ScrivaConfig, ScrivaFeatures, TextChunk
from scriva.stores import book_config, memory


class KeywordEmbedder:
    provider = "fake"

    def __init__(self, fail=False):
        self.fail = fail

    async def embed(self, texts):
        if self.fail:
            raise ProviderError("fake", "HTTP 500: upstream down", status_code=500)
        return [[float(t.lower().count("salt")), float(t.lower().count("storm"))] for t in texts]


CHUNKS = [
    TextChunk(id="ch-1-0", text="Salt on every surface.", chapter_id="ch-1").to_json_dict(),
    TextChunk(id="ch-1-1", text="Then the storm.", chapter_id="ch-1", type="action").to_json_dict(),
]


def _client(service=None, repository=None) -> TestClient:
    app = create_app()
    app.state.retrieval = service or RetrievalService(KeywordEmbedder(), EmbeddingCache(ttl_seconds=0, max_books=2))
    if repository is not None:
        app.state.repository_factory = lambda owner, repo, branch, token: repository
    return TestClient(app)


# ---------------------------------------------------------------------------
# /api/rag
# ---------------------------------------------------------------------------

class TestRagEndpoint:

    def test_load_query_status(self):
        with _client() as client:
            resp = client.post("/api/rag", json={"action": "load", "bookKey": "octocat/novel", "chunks": CHUNKS})
            assert resp.status_code == 200
            assert resp.json() == {"success": True, "chunkCount": 2, "embeddingCount": 2}

            resp = client.post("/api/rag", json={
                "action": "query", "bookKey": "octocat/novel", "query": {"text": "storm", "topK": 1},
            })
            assert resp.status_code == 200
            results = resp.json()["results"]
            assert [r["chunk"]["id"] for r in results] == ["ch-1-1"]
            assert results[0]["context"] == "Then the storm."
            assert results[0]["chunk"]["chapterId"] == "ch-1"

            resp = client.post("/api/rag", json={"action": "status", "owner": "octocat", "repo": "novel"})
            assert resp.json() == {
                "loaded": True, "chunkCount": 2, "embeddingCount": 2, "bookKey": "octocat/novel@main",
            }

    def test_branches_are_separate_books(self):
        with _client() as client:
            client.post("/api/rag", json={"action": "load", "bookKey": "octocat/novel@draft", "chunks": CHUNKS})
            resp = client.post("/api/rag", json={
                "action": "query", "bookKey": "octocat/novel@main", "query": {"text": "salt"},
            })
            assert resp.json() == {"results": []}

    @pytest.mark.parametrize("body", [
        {"action": "load", "bookKey": "octocat/novel", "chunks": []},
        {"action": "load", "bookKey": "octocat/novel"},
        {"action": "query", "bookKey": "octocat/novel"},
        {"action": "query", "bookKey": "octocat/novel", "query": {"text": ""}},
        {"action": "status"},
        {"action": "status", "bookKey": "not-a-key"},
        {"action": "purge", "bookKey": "octocat/novel"},
    ])
    def test_bad_requests(self, body):
        with _client() as client:
            assert client.post("/api/rag", json=body).status_code == 400

    def test_query_with_other_dimensions_scores_zero(self):
        class ResizedEmbedder(KeywordEmbedder):
            async def embed(self, texts):
                vectors = await super().embed(texts)
                return [v + [1.0] for v in vectors] if len(texts) == 1 else vectors

        service = RetrievalService(ResizedEmbedder(), EmbeddingCache(ttl_seconds=0, max_books=2))
        with _client(service) as client:
            client.post("/api/rag", json={"action": "load", "bookKey": "octocat/novel", "chunks": CHUNKS})
            resp = client.post("/api/rag", json={
                "action": "query", "bookKey": "octocat/novel", "query": {"text": "salt"},
            })

        assert resp.status_code == 200
        assert [r["score"] for r in resp.json()["results"]] == [0.0, 0.0]

    def test_provider_failure_is_502(self):
        service = RetrievalService(KeywordEmbedder(fail=True), EmbeddingCache(ttl_seconds=0, max_books=2))
        with _client(service) as client:
            resp = client.post("/api/rag", json={"action": "load", "bookKey": "octocat/novel", "chunks": CHUNKS})
        assert resp.status_code == 502
        assert "upstream down" in resp.json()["detail"]


# ---------------------------------------------------------------------------
# /api/context/compile
# ---------------------------------------------------------------------------

BOOK = Book(title="The Salt Road", parts=[Part(title="One", chapters=[Chapter(id="ch-1", file="01.md")])])


class TestCompileEndpoint:

    async def test_compiles_from_repository(self, repo):
        await book_config.save_book(repo, BOOK)
        await book_config.save_scriva_config(repo, ScrivaConfig(features=ScrivaFeatures()))
        await memory.write_book_summary(repo, "A smuggler crosses the flats.")

        with _client(repository=repo) as client:
            resp = client.post("/api/context/compile", json={
                "owner": "octocat", "repo": "novel", "task": {"type": "chat"},
            })

        assert resp.status_code == 200
        data = resp.json()
        assert [s["label"] for s in data["briefing"]["sections"]] == ["Book Summary", "Writing Rules"]
        assert data["briefing"]["budget"] == 2000
        assert data["briefing"]["totalTokens"] == sum(s["tokens"] for s in data["briefing"]["sections"])
        assert data["prompt"].startswith(FRAMING.format(title="The Salt Road"))

    async def test_uses_loaded_retrieval_index(self, repo):
        await book_config.save_book(repo, BOOK)
        await book_config.save_scriva_config(repo, ScrivaConfig(features=ScrivaFeatures(rag=True)))
        service = RetrievalService(KeywordEmbedder(), EmbeddingCache(ttl_seconds=0, max_books=2))
        await service.load(BookKey("octocat", "novel", "main"), [TextChunk.model_validate(c) for c in CHUNKS])

        with _client(service, repository=repo) as client:
            resp = client.post("/api/context/compile", json={
                "owner": "octocat", "repo": "novel", "task": {"type": "chat", "userMessage": "salt"},
            })

        labels = [s["label"] for s in resp.json()["briefing"]["sections"]]
        assert "Retrieved Passages" in labels

    def test_repository_failure_is_502(self):
        class DownRepository:
            async def read_file(self, path):
                raise RepositoryError("HTTP 500", path=path, status_code=500)

            async def write_file(self, path, content, message, sha=None):
                raise RepositoryError("HTTP 500", path=path, status_code=500)

        with _client(repository=DownRepository()) as client:
            resp = client.post("/api/context/compile", json={
                "owner": "octocat", "repo": "novel", "task": {"type": "chat"},
            })
        assert resp.status_code == 502

    def test_invalid_task_type_rejected(self, repo):
        with _client(repository=repo) as client:
            resp = client.post("/api/context/compile", json={
                "owner": "octocat", "repo": "novel", "task": {"type": "dance"},
            })
        assert resp.status_code == 422
