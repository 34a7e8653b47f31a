"""Writing rules, learned author preferences and the revision log."""
import logging
import time
from typing import List, Optional

from scriva.config import context_path, get_settings
from scriva.context.tokens import clip
from scriva.schemas import LearnedPreference, RevisionEntry, WritingRules
from scriva.services.repository import Repository
from scriva.stores.base import read_json, write_json

logger = logging.getLogger(__name__)

LEARNED_MIN_COUNT = 2
LEARNED_LIMIT = 10


def rules_path() -> str:
    return context_path("rules.json")


def learned_path() -> str:
    return context_path("revision", "learned.json")


def revision_log_path() -> str:
    return context_path("revision", "log.json")


def _now_ms() -> int:
    return int(time.time() * 1000)


async def read_rules(repo: Repository) -> WritingRules:
    return await read_json(repo, rules_path(), WritingRules, WritingRules)


async def save_rules(repo: Repository, rules: WritingRules) -> None:
    await write_json(repo, rules_path(), rules, "Update writing rules")


async def read_learned_preferences(repo: Repository) -> List[LearnedPreference]:
    return await read_json(repo, learned_path(), List[LearnedPreference], list)


async def save_learned_preferences(repo: Repository, prefs: List[LearnedPreference]) -> None:
    await write_json(repo, learned_path(), prefs, "Update learned preferences")


def apply_edit_response(
    prefs: List[LearnedPreference], pattern: str, accepted: bool, now_ms: Optional[int] = None
) -> List[LearnedPreference]:
    """Accumulate one accept/reject observation of *pattern*.

    ``count`` only ever grows; ``authorResponse`` follows the latest signal.
    """
    now_ms = _now_ms() if now_ms is None else now_ms
    response = "accepted" if accepted else "rejected"
    result = [p.model_copy() for p in prefs]

    for pref in result:
        if pref.pattern == pattern:
            pref.count += 1
            pref.last_seen = now_ms
            pref.author_response = response
            return result

    result.append(LearnedPreference(
        pattern=pattern, author_response=response, count=1, last_seen=now_ms,
    ))
    return result


async def record_edit_response(repo: Repository, pattern: str, accepted: bool) -> List[LearnedPreference]:
    prefs = apply_edit_response(await read_learned_preferences(repo), pattern, accepted)
    await save_learned_preferences(repo, prefs)
    return prefs


async def read_revision_log(repo: Repository) -> List[RevisionEntry]:
    return await read_json(repo, revision_log_path(), List[RevisionEntry], list)


async def append_revision_entry(repo: Repository, entry: RevisionEntry) -> List[RevisionEntry]:
    log = await read_revision_log(repo)
    log.append(entry)
    await write_json(repo, revision_log_path(), log, f"Log revision: {entry.chapter_id}")
    logger.info("revision logged | chapter=%s | type=%s", entry.chapter_id, entry.type)
    return log


# ---------------------------------------------------------------------------
# Context projection
# ---------------------------------------------------------------------------

def rules_to_prompt_section(
    rules: WritingRules, chapter_id: Optional[str] = None, field_chars: Optional[int] = None
) -> str:
    """Render global rules, then any chapter-specific overrides for *chapter_id*."""
    limit = field_chars or get_settings().context_field_chars
    section = "[Writing Rules]\n"

    if rules.pov_consistency:
        section += f"POV: {clip(rules.pov_consistency, limit)}\n"
    if rules.tense_consistency:
        section += f"Tense: {clip(rules.tense_consistency, limit)}\n"
    if rules.dialogue_style:
        section += f"Dialogue: {clip(rules.dialogue_style, limit)}\n"
    if rules.tone:
        section += "Tone: " + ", ".join(rules.tone) + "\n"
    if rules.prefer:
        section += "Prefer: " + ", ".join(rules.prefer) + "\n"
    if rules.avoid:
        section += "Avoid: " + ", ".join(rules.avoid) + "\n"
    if rules.revision_focus:
        section += "Revision focus: " + ", ".join(rules.revision_focus) + "\n"
    if rules.custom_instructions:
        section += f"\n{clip(rules.custom_instructions, limit)}\n"

    overrides = (rules.per_chapter_overrides or {}).get(chapter_id) if chapter_id else None
    if overrides:
        section += "\n[Chapter-specific overrides]\n"
        if overrides.pov_consistency:
            section += f"POV: {clip(overrides.pov_consistency, limit)}\n"
        if overrides.tense_consistency:
            section += f"Tense: {clip(overrides.tense_consistency, limit)}\n"
        if overrides.tone:
            section += "Tone: " + ", ".join(overrides.tone) + "\n"

    return section


def learned_preferences_to_prompt_section(prefs: List[LearnedPreference]) -> str:
    rejected = [
        p for p in prefs
        if p.author_response == "rejected" and p.count >= LEARNED_MIN_COUNT
    ]
    if not rejected:
        return ""

    section = "[Learned Preferences - Author has rejected these patterns]\n"
    for pref in rejected[:LEARNED_LIMIT]:
        section += f"- {pref.pattern}"
        if pref.inferred_rule:
            section += f" ({pref.inferred_rule})"
        section += f" [rejected {pref.count}x]\n"
    return section
