"""
Book configuration and manuscript structure.

``ScrivaConfig`` is stored at ``.scriva/config.json``; ``Book`` comes from the
repository's ``book.json`` and describes parts and chapters in reading order.
"""
from typing import List, Literal, Optional

from pydantic import Field

from scriva.schemas.base import ScrivaModel

WritingType = Literal["fiction", "nonfiction", "academic", "custom"]
ModelTier = Literal["haiku", "sonnet", "opus"]
TaskType = Literal[
    "chat",
    "write",
    "continue",
    "edit",
    "critique",
    "research",
    "revision-plan",
]


class ScrivaFeatures(ScrivaModel):
    """Feature switches. Everything is off unless the book turns it on."""

    characters: bool = False
    world_building: bool = False
    plot_threads: bool = False
    narrative_state: bool = False
    citations: bool = False
    voice_profile: bool = False
    chapter_summaries: bool = False
    scene_summaries: bool = False
    revision_tracking: bool = False
    tension_tracking: bool = False
    rag: bool = False


class ScrivaAIConfig(ScrivaModel):
    default_model: ModelTier = "sonnet"
    memory_model: ModelTier = "haiku"
    embedding_model: str = "voyage-3-lite"
    context_budget: Optional[int] = Field(
        default=None,
        description="Explicit briefing budget; replaces the per-task default when set",
    )
    rag_top_k: int = 5
    auto_reindex: bool = True
    auto_reindex_debounce_ms: int = 15000


class ScrivaConfig(ScrivaModel):
    version: str = "1.0.0"
    writing_type: WritingType = "custom"
    features: ScrivaFeatures = Field(default_factory=ScrivaFeatures)
    ai: ScrivaAIConfig = Field(default_factory=ScrivaAIConfig)


def default_features_for_type(writing_type: str) -> ScrivaFeatures:
    if writing_type == "fiction":
        return ScrivaFeatures(
            characters=True,
            world_building=True,
            plot_threads=True,
            narrative_state=True,
            voice_profile=True,
            chapter_summaries=True,
            revision_tracking=True,
            tension_tracking=True,
            rag=True,
        )
    if writing_type in ("nonfiction", "academic"):
        return ScrivaFeatures(
            citations=True,
            voice_profile=True,
            chapter_summaries=True,
            revision_tracking=True,
            rag=True,
        )
    return ScrivaFeatures(voice_profile=True, chapter_summaries=True)


def default_scriva_config(writing_type: str = "custom") -> ScrivaConfig:
    return ScrivaConfig(
        writing_type=writing_type,
        features=default_features_for_type(writing_type),
    )


# ─── Manuscript structure ──────────────────────────────────────────────────────

class Chapter(ScrivaModel):
    id: str
    file: str = ""
    label: str = ""


class Part(ScrivaModel):
    title: str = ""
    chapters: List[Chapter] = Field(default_factory=list)


class Book(ScrivaModel):
    title: str = "Untitled"
    subtitle: Optional[str] = None
    author: str = "Unknown"
    description: Optional[str] = None
    book_dir: str = "book"
    context_dir: str = "context"
    parts: List[Part] = Field(default_factory=list)
    themes: Optional[List[str]] = None
    logline: Optional[str] = None

    def get_all_chapters(self) -> List[Chapter]:
        return [chapter for part in self.parts for chapter in part.chapters]

    def find_part_for_chapter(self, chapter_id: str) -> Optional[str]:
        """Return the arc id (``part-<n>``, 1-based) containing the chapter."""
        for index, part in enumerate(self.parts):
            if any(chapter.id == chapter_id for chapter in part.chapters):
                return f"part-{index + 1}"
        return None

    def get_neighbor_chapter_ids(self, chapter_id: str) -> List[str]:
        """Preceding and following chapter ids, across part boundaries."""
        ids = [chapter.id for chapter in self.get_all_chapters()]
        if chapter_id not in ids:
            return []
        idx = ids.index(chapter_id)
        neighbors = []
        if idx > 0:
            neighbors.append(ids[idx - 1])
        if idx < len(ids) - 1:
            neighbors.append(ids[idx + 1])
        return neighbors

    def find_chapter_file(self, chapter_id: str) -> Optional[str]:
        for chapter in self.get_all_chapters():
            if chapter.id == chapter_id:
                return f"{self.book_dir}/{chapter.file}"
        return None


class CompileTask(ScrivaModel):
    """Caller-supplied description of one AI request."""

    type: TaskType
    chapter_id: Optional[str] = None
    part_id: Optional[str] = None
    characters: Optional[List[str]] = None
    selection: Optional[str] = None
    user_message: Optional[str] = None
