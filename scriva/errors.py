"""Exception taxonomy shared by the stores, retrieval engine and services."""

from __future__ import annotations

from typing import Optional


class ScrivaError(Exception):
    """Base class for every error raised by the engine."""


class RepositoryError(ScrivaError):
    """The persistence collaborator failed (transport, auth, unexpected status)."""

    def __init__(self, message: str, path: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.path = path
        self.status_code = status_code


class FileNotFound(RepositoryError):
    """The requested path does not exist. Stores treat this as absent-state."""


class ConflictError(RepositoryError):
    """The conflict token supplied with a write no longer matches the stored file."""


class ProviderError(ScrivaError):
    """An upstream model provider (embeddings, chat) failed or returned garbage."""

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.provider_message = message
        self.status_code = status_code


class MalformedUpdateError(ScrivaError):
    """An AI-proposed update failed strict schema validation."""
