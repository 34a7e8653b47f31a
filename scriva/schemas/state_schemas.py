"""
State store schemas: world model, narrative state, voice DNA, writing rules.

Every keyed entity may carry ``_override: true`` (``override`` in Python),
meaning the author wrote it by hand and AI-proposed updates must not replace it.

Usage:
    from scriva.schemas import CharacterNode, NarrativePromise

    hero = CharacterNode(id="c1", name="Mara", role="protagonist")
    hero.to_json_dict()   # {"id": "c1", "name": "Mara", "aliases": [], ...}
"""
from typing import Dict, List, Literal, Optional

from pydantic import Field

from scriva.schemas.base import ScrivaModel


# ─── World model ───────────────────────────────────────────────────────────────

class Relationship(ScrivaModel):
    target: str
    type: str = ""
    evolution: str = ""
    current_state: str = ""


class CharacterNode(ScrivaModel):
    id: str
    name: str
    aliases: List[str] = Field(default_factory=list)
    role: Literal["protagonist", "antagonist", "supporting", "minor", "mentioned"] = "minor"
    first_appearance: str = ""
    last_appearance: str = ""
    alive: bool = True
    description: str = ""
    arc: str = ""
    current_state: str = ""
    traits: List[str] = Field(default_factory=list)
    relationships: List[Relationship] = Field(default_factory=list)
    appearances: List[str] = Field(default_factory=list, description="Chapter ids")
    override: Optional[bool] = Field(default=None, alias="_override")


class PlaceNode(ScrivaModel):
    id: str
    name: str
    description: str = ""
    significance: str = ""
    chapters: List[str] = Field(default_factory=list)
    override: Optional[bool] = Field(default=None, alias="_override")


class TimelineEvent(ScrivaModel):
    id: str
    event: str
    chapter: str = ""
    characters: List[str] = Field(default_factory=list)
    significance: str = ""
    story_time: str = ""
    override: Optional[bool] = Field(default=None, alias="_override")


class ObjectNode(ScrivaModel):
    id: str
    name: str
    description: str = ""
    significance: str = ""
    chapters: List[str] = Field(default_factory=list)
    override: Optional[bool] = Field(default=None, alias="_override")


class WorldRule(ScrivaModel):
    id: str
    rule: str
    domain: str = ""
    override: Optional[bool] = Field(default=None, alias="_override")


class WorldModel(ScrivaModel):
    characters: List[CharacterNode] = Field(default_factory=list)
    places: List[PlaceNode] = Field(default_factory=list)
    timeline: List[TimelineEvent] = Field(default_factory=list)
    objects: List[ObjectNode] = Field(default_factory=list)
    rules: List[WorldRule] = Field(default_factory=list)


class WorldModelUpdate(ScrivaModel):
    """AI-proposed world changes. ``None`` means the collection is untouched."""

    characters: Optional[List[CharacterNode]] = None
    places: Optional[List[PlaceNode]] = None
    timeline: Optional[List[TimelineEvent]] = None
    objects: Optional[List[ObjectNode]] = None
    rules: Optional[List[WorldRule]] = None


# ─── Narrative state ───────────────────────────────────────────────────────────

PromiseStatus = Literal["planted", "growing", "due", "paid", "abandoned"]
ThreadStatus = Literal["open", "progressing", "resolved", "dropped"]


class NarrativeState(ScrivaModel):
    current_point: str = ""
    reader_knows: List[str] = Field(default_factory=list)
    reader_expects: List[str] = Field(default_factory=list)
    dramatic_irony: List[str] = Field(default_factory=list)
    override: Optional[bool] = Field(default=None, alias="_override")


class NarrativePromise(ScrivaModel):
    """A setup planted for the reader that the story owes a payoff for."""

    id: str
    setup: str = ""
    setup_chapter: str = ""
    payoff_chapter: Optional[str] = None
    status: PromiseStatus = "planted"
    urgency: Literal["low", "medium", "high"] = "medium"
    override: Optional[bool] = Field(default=None, alias="_override")


class PlotThread(ScrivaModel):
    id: str
    name: str = ""
    status: ThreadStatus = "open"
    chapters: List[str] = Field(default_factory=list)
    summary: str = ""
    override: Optional[bool] = Field(default=None, alias="_override")


class TensionData(ScrivaModel):
    """One entry per chapter; ``chapterId`` is the key."""

    chapter_id: str
    tension_level: int = Field(default=5, ge=1, le=10)
    pacing_note: str = ""
    emotional_beat: str = ""


class NarrativeUpdate(ScrivaModel):
    state: Optional[NarrativeState] = None
    promises: Optional[List[NarrativePromise]] = None
    threads: Optional[List[PlotThread]] = None
    tension: Optional[TensionData] = None


# ─── Voice DNA ─────────────────────────────────────────────────────────────────

class VoiceMetrics(ScrivaModel):
    avg_sentence_length: float = 0
    vocabulary_richness: str = ""
    pov_style: str = ""
    dialogue_to_narration_ratio: str = ""
    metaphor_usage: str = ""
    paragraph_rhythm: str = ""
    tense_usage: str = ""


class VoiceProfile(ScrivaModel):
    summary: str = ""
    metrics: VoiceMetrics = Field(default_factory=VoiceMetrics)
    genre_calibration: str = ""
    last_updated: int = Field(default=0, description="Epoch milliseconds")
    analyzed_chapters: List[str] = Field(default_factory=list)
    override: Optional[bool] = Field(default=None, alias="_override")


ExemplarQuality = Literal["signature", "strong", "reference"]

# Lower rank is better
QUALITY_RANK: Dict[str, int] = {"signature": 0, "strong": 1, "reference": 2}


class VoiceExemplar(ScrivaModel):
    id: str
    text: str
    chapter: str = ""
    tags: List[str] = Field(default_factory=list)
    quality: ExemplarQuality = "reference"


class AntiPattern(ScrivaModel):
    id: str
    original: str
    correction: Optional[str] = None
    reason: str = ""
    tags: List[str] = Field(default_factory=list)
    source: Literal["author-rewrite", "rejected-edit", "manual"] = "manual"


class VoiceDrift(ScrivaModel):
    chapter_id: str
    consistency_score: float = Field(default=1.0, ge=0, le=1)
    drift_notes: List[str] = Field(default_factory=list)
    compared_to: str = ""


# ─── Writing rules ─────────────────────────────────────────────────────────────

class WritingRulesOverride(ScrivaModel):
    """Partial rules applied on top of the global set for one chapter."""

    tone: Optional[List[str]] = None
    avoid: Optional[List[str]] = None
    prefer: Optional[List[str]] = None
    pov_consistency: Optional[str] = None
    tense_consistency: Optional[str] = None
    dialogue_style: Optional[str] = None
    revision_focus: Optional[List[str]] = None
    custom_instructions: Optional[str] = None


class WritingRules(ScrivaModel):
    tone: List[str] = Field(default_factory=list)
    avoid: List[str] = Field(default_factory=list)
    prefer: List[str] = Field(default_factory=list)
    pov_consistency: str = ""
    tense_consistency: str = ""
    dialogue_style: str = ""
    revision_focus: List[str] = Field(default_factory=list)
    custom_instructions: str = ""
    per_chapter_overrides: Optional[Dict[str, WritingRulesOverride]] = None


class LearnedPreference(ScrivaModel):
    pattern: str
    author_response: Literal["accepted", "rejected"]
    count: int = 1
    last_seen: int = 0
    inferred_rule: Optional[str] = None


class RevisionEntry(ScrivaModel):
    id: str
    chapter_id: str
    timestamp: int
    type: Literal["ai-edit", "author-rewrite", "structural"]
    description: str = ""
    tokens_changed: int = 0


# ─── Memory / citations ────────────────────────────────────────────────────────

class SceneBeat(ScrivaModel):
    id: str
    summary: str = ""
    characters: List[str] = Field(default_factory=list)
    emotional_tone: str = ""
    position: float = Field(default=0, ge=0, le=1)


class CitationEntry(ScrivaModel):
    id: str
    type: Literal["book", "article", "web", "journal", "chapter", "other"] = "book"
    title: str = ""
    authors: List[str] = Field(default_factory=list)
    year: Optional[int] = None
    publisher: Optional[str] = None
    url: Optional[str] = None
    doi: Optional[str] = None
    journal: Optional[str] = None
    volume: Optional[str] = None
    issue: Optional[str] = None
    pages: Optional[str] = None
    access_date: Optional[str] = None
    notes: Optional[str] = None
