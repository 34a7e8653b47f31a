"""Retrieval engine value objects: chunks, queries, results and the staleness manifest."""
from typing import Dict, List, Literal, Optional

from pydantic import Field

from scriva.schemas.base import ScrivaModel

ChunkType = Literal["narrative", "dialogue", "description", "interiority", "action"]


class TextChunk(ScrivaModel):
    id: str
    text: str
    tokens: int = 0
    source: str = ""
    chapter_id: str = ""
    type: ChunkType = "narrative"
    characters: List[str] = Field(default_factory=list)
    position: float = Field(
        default=0.0, ge=0, le=1,
        description="Start offset of the chunk divided by chapter length",
    )


class RAGFilters(ScrivaModel):
    """Allow-lists. ``None`` disables a filter; an empty list matches nothing."""

    chapter_ids: Optional[List[str]] = None
    types: Optional[List[str]] = None
    characters: Optional[List[str]] = Field(
        default=None, description="Any overlap with the chunk's characters is a match",
    )


class RAGQuery(ScrivaModel):
    text: str
    filters: Optional[RAGFilters] = None
    top_k: int = Field(default=5, ge=0)


class RAGResult(ScrivaModel):
    chunk: TextChunk
    score: float
    context: str


class EmbeddingManifest(ScrivaModel):
    version: str = "1.0.0"
    model: str = "voyage-3-lite"
    dimensions: int = 1024
    chunk_count: int = 0
    last_indexed: int = Field(default=0, description="Epoch milliseconds")
    chapter_hashes: Dict[str, str] = Field(default_factory=dict)
