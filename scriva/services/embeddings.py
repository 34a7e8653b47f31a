"""
Embedding provider client.

Texts are embedded in fixed-size batches. A batch that hits 429/503 is retried
with exponential backoff; any other failure, or running out of attempts,
aborts the whole call with :class:`ProviderError`. Partial vector lists are
never returned.
"""
from __future__ import annotations

import logging
from typing import List, Optional, Protocol, runtime_checkable

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from scriva.config import get_settings
from scriva.errors import ProviderError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = (429, 503)


@runtime_checkable
class EmbeddingProvider(Protocol):
    async def embed(self, texts: List[str]) -> List[List[float]]:
        """Return one vector per input text, in input order."""
        ...


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, ProviderError) and exc.status_code in RETRYABLE_STATUS


def _error_detail(resp) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("error") or body)
    return str(body)


class VoyageEmbeddingClient:
    """Client for a Voyage AI compatible ``/v1/embeddings`` endpoint."""

    provider = "voyage"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        api_url: Optional[str] = None,
        batch_size: Optional[int] = None,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
    ):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.embedding_api_key
        self.model = model or settings.embedding_model
        self.api_url = api_url or settings.embedding_api_url
        self.batch_size = batch_size or settings.embedding_batch_size
        self.max_retries = settings.embedding_max_retries if max_retries is None else max_retries
        self.base_delay = settings.embedding_base_delay if base_delay is None else base_delay
        self.timeout = settings.embedding_timeout_seconds

    async def embed(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []

        vectors: List[List[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start:start + self.batch_size]
            vectors.extend(await self._embed_batch(batch))
            logger.debug(
                "embedded batch | offset=%d | size=%d | model=%s",
                start, len(batch), self.model,
            )
        return vectors

    async def _embed_batch(self, batch: List[str]) -> List[List[float]]:
        retrying = AsyncRetrying(
            retry=retry_if_exception(_is_retryable),
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.base_delay, max=30),
            before_sleep=self._log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._post(batch)
        raise ProviderError(self.provider, "retry loop exited without a result")

    def _log_retry(self, retry_state) -> None:
        exc = retry_state.outcome.exception()
        logger.warning(
            "embedding retry | attempt=%d | status=%s | error=%s",
            retry_state.attempt_number, getattr(exc, "status_code", None), exc,
        )

    async def _post(self, batch: List[str]) -> List[List[float]]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    self.api_url,
                    json={"input": batch, "model": self.model},
                    headers=headers,
                )
        except httpx.HTTPError as exc:
            raise ProviderError(self.provider, f"request failed: {exc}") from exc

        if resp.status_code >= 400:
            raise ProviderError(
                self.provider,
                f"embedding failed: HTTP {resp.status_code}: {_error_detail(resp)}",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()["data"]
            if data and "index" in data[0]:
                data = sorted(data, key=lambda item: item["index"])
            vectors = [list(item["embedding"]) for item in data]
        except (ValueError, KeyError, TypeError, IndexError) as exc:
            raise ProviderError(self.provider, f"malformed embedding payload: {exc}") from exc

        if len(vectors) != len(batch):
            raise ProviderError(
                self.provider,
                f"malformed embedding payload: expected {len(batch)} vectors, got {len(vectors)}",
            )
        return vectors
