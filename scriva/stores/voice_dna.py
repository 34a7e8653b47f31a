"""Voice DNA store: the voice profile, exemplars, anti-patterns and drift records."""
from typing import Iterable, List, Optional

from scriva.config import context_path, get_settings
from scriva.context.tokens import clip
from scriva.schemas import QUALITY_RANK, AntiPattern, VoiceDrift, VoiceExemplar, VoiceProfile
from scriva.services.repository import Repository
from scriva.stores.base import read_json, write_json

EXEMPLAR_LIMIT = 3
ANTI_PATTERN_LIMIT = 5
ANTI_PATTERN_EXCERPT_CHARS = 100


def profile_path() -> str:
    return context_path("voice", "profile.json")


def exemplars_path() -> str:
    return context_path("voice", "exemplars.json")


def antipatterns_path() -> str:
    return context_path("voice", "antipatterns.json")


def drift_path() -> str:
    return context_path("voice", "drift.json")


async def read_voice_profile(repo: Repository) -> VoiceProfile:
    return await read_json(repo, profile_path(), VoiceProfile, VoiceProfile)


async def save_voice_profile(repo: Repository, profile: VoiceProfile) -> None:
    await write_json(repo, profile_path(), profile, "Update voice profile")


async def read_exemplars(repo: Repository) -> List[VoiceExemplar]:
    return await read_json(repo, exemplars_path(), List[VoiceExemplar], list)


async def save_exemplars(repo: Repository, exemplars: List[VoiceExemplar]) -> None:
    await write_json(repo, exemplars_path(), exemplars, "Update voice exemplars")


async def read_anti_patterns(repo: Repository) -> List[AntiPattern]:
    return await read_json(repo, antipatterns_path(), List[AntiPattern], list)


async def save_anti_patterns(repo: Repository, patterns: List[AntiPattern]) -> None:
    await write_json(repo, antipatterns_path(), patterns, "Update anti-patterns")


async def read_drift(repo: Repository) -> List[VoiceDrift]:
    return await read_json(repo, drift_path(), List[VoiceDrift], list)


async def save_drift(repo: Repository, drift: List[VoiceDrift]) -> None:
    await write_json(repo, drift_path(), drift, "Update voice drift")


def record_drift(drift: List[VoiceDrift], entry: VoiceDrift) -> List[VoiceDrift]:
    """Return a copy of *drift* with *entry* replacing any record for the same chapter."""
    result = [d for d in drift if d.chapter_id != entry.chapter_id]
    result.append(entry)
    return result


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def get_exemplars_for_craft_element(
    exemplars: List[VoiceExemplar], tags: Iterable[str]
) -> List[VoiceExemplar]:
    """Exemplars sharing any tag, best quality first (stable within a quality)."""
    wanted = set(tags)
    matching = [e for e in exemplars if wanted.intersection(e.tags)]
    return sorted(matching, key=lambda e: QUALITY_RANK.get(e.quality, len(QUALITY_RANK)))


# ---------------------------------------------------------------------------
# Context projection
# ---------------------------------------------------------------------------

def voice_to_compact_context(profile: VoiceProfile, field_chars: Optional[int] = None) -> str:
    limit = field_chars or get_settings().context_field_chars
    m = profile.metrics
    avg = m.avg_sentence_length
    avg_text = str(int(avg)) if float(avg).is_integer() else str(avg)
    return (
        "[Voice Profile]\n"
        f"{clip(profile.summary, limit)}\n"
        f"Style: {clip(m.pov_style, limit)}, {clip(m.tense_usage, limit)}, "
        f"avg {avg_text} words/sentence, "
        f"{clip(m.vocabulary_richness, limit)} vocabulary, "
        f"{clip(m.metaphor_usage, limit)} metaphors, "
        f"{clip(m.paragraph_rhythm, limit)} paragraphs.\n"
    )


def exemplars_to_context(
    exemplars: List[VoiceExemplar],
    tags: Optional[Iterable[str]] = None,
    field_chars: Optional[int] = None,
) -> str:
    limit = field_chars or get_settings().context_field_chars
    relevant = get_exemplars_for_craft_element(exemplars, tags) if tags is not None else exemplars
    selected = relevant[:EXEMPLAR_LIMIT]
    if not selected:
        return ""

    ctx = "[Voice Exemplars]\n"
    for exemplar in selected:
        ctx += f"({', '.join(exemplar.tags)}): {clip(exemplar.text, limit)}\n\n"
    return ctx


def anti_patterns_to_context(patterns: List[AntiPattern], field_chars: Optional[int] = None) -> str:
    limit = field_chars or get_settings().context_field_chars
    top = patterns[:ANTI_PATTERN_LIMIT]
    if not top:
        return ""

    ctx = "[Anti-Patterns - DO NOT write like this]\n"
    for pattern in top:
        ctx += f"- {clip(pattern.reason, limit)}: \"{clip(pattern.original, ANTI_PATTERN_EXCERPT_CHARS)}\""
        if pattern.correction:
            ctx += f" -> \"{clip(pattern.correction, ANTI_PATTERN_EXCERPT_CHARS)}\""
        ctx += "\n"
    return ctx
