"""
Staleness manifest for the embedding index.

``hash_content`` is a fast rolling fingerprint (``h = h * 31 + c`` over UTF-16
code units, wrapped to signed 32 bits, printed in base 36). It matches the
hashes written by the browser tooling so existing manifests stay valid.

It is NOT a security or de-duplication primitive: collisions are easy to
construct. Use :mod:`hashlib` for anything that needs integrity.
"""
import time
from typing import Optional

from scriva.config import get_settings
from scriva.schemas import EmbeddingManifest

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    value = abs(value)
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return sign + "".join(reversed(digits))


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def hash_content(content: str) -> str:
    encoded = content.encode("utf-16-le")
    h = 0
    for i in range(0, len(encoded), 2):
        code_unit = encoded[i] | (encoded[i + 1] << 8)
        h = _to_int32((h << 5) - h + code_unit)
    return _to_base36(h)


def default_manifest() -> EmbeddingManifest:
    settings = get_settings()
    return EmbeddingManifest(
        model=settings.embedding_model,
        dimensions=settings.embedding_dimensions,
    )


def is_chapter_stale(manifest: EmbeddingManifest, chapter_id: str, content: str) -> bool:
    """True when the chapter was never indexed or its content changed since."""
    return manifest.chapter_hashes.get(chapter_id) != hash_content(content)


def update_manifest_for_chapter(
    manifest: EmbeddingManifest,
    chapter_id: str,
    content: str,
    chunk_count: int,
    now_ms: Optional[int] = None,
) -> EmbeddingManifest:
    """Return a copy recording *content*'s hash for *chapter_id*.

    Other chapters' hashes are untouched.
    """
    hashes = dict(manifest.chapter_hashes)
    hashes[chapter_id] = hash_content(content)
    return manifest.model_copy(update={
        "chunk_count": chunk_count,
        "last_indexed": int(time.time() * 1000) if now_ms is None else now_ms,
        "chapter_hashes": hashes,
    })
