"""
Shared read/write helpers for the JSON and markdown state stores.

Reads recover locally: a missing file, invalid JSON or a schema mismatch all
yield the caller's default. Any other repository failure propagates.

Writes fetch the current conflict token immediately before writing. A token
mismatch surfaces as :class:`~scriva.errors.ConflictError`; it is never
retried or forced here.
"""
import json
import logging
from functools import lru_cache
from typing import Any, Callable, Optional, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from scriva.errors import FileNotFound
from scriva.services.repository import Repository

logger = logging.getLogger(__name__)

T = TypeVar("T")


@lru_cache(maxsize=None)
def _adapter(tp) -> TypeAdapter:
    return TypeAdapter(tp)


def to_jsonable(value: Any) -> Any:
    """Convert models (and containers of models) to wire-format JSON data."""
    if isinstance(value, BaseModel):
        if hasattr(value, "to_json_dict"):
            return value.to_json_dict()
        return value.model_dump(by_alias=True, exclude_none=True, mode="json")
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {key: to_jsonable(item) for key, item in value.items()}
    return value


def _log_fallback(path: str, reason: Any) -> None:
    logger.warning("store_read_fallback | path=%s | reason=%.300s", path, reason)


async def read_text(repo: Repository, path: str) -> str:
    """Return the file content, or ``""`` when the file is missing or not UTF-8."""
    try:
        file = await repo.read_file(path)
    except FileNotFound:
        return ""
    except UnicodeDecodeError as exc:
        _log_fallback(path, exc)
        return ""
    return file.content


async def read_json(repo: Repository, path: str, tp: Any, default: Callable[[], T]) -> T:
    """Read and validate JSON at *path* as type *tp*, falling back to ``default()``."""
    try:
        file = await repo.read_file(path)
    except FileNotFound:
        return default()
    except UnicodeDecodeError as exc:
        _log_fallback(path, exc)
        return default()

    try:
        return _adapter(tp).validate_json(file.content)
    except ValidationError as exc:
        logger.warning(
            "store_read_fallback | path=%s | errors=%d | detail=%.300s",
            path, exc.error_count(), exc.errors(),
        )
        return default()


async def current_sha(repo: Repository, path: str) -> Optional[str]:
    try:
        return (await repo.read_file(path)).sha
    except FileNotFound:
        return None


async def write_text(repo: Repository, path: str, content: str, message: str) -> str:
    sha = await current_sha(repo, path)
    return await repo.write_file(path, content, message, sha=sha)


async def write_json(repo: Repository, path: str, value: Any, message: str) -> str:
    content = json.dumps(to_jsonable(value), indent=2, ensure_ascii=False)
    return await write_text(repo, path, content, message)
