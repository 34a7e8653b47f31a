"""
Merge / override engine.

Reconciles AI-proposed updates into persisted state. Entities are matched by
key and replaced whole (no deep merge). An existing entity carrying
``_override: true`` was written by the author and is never replaced; it stays
locked until the author clears the flag by hand.

Works on pydantic models and on plain wire-format dicts alike.
"""
import logging
from typing import Any, List, Mapping, NamedTuple, Optional, Sequence, TypeVar

from pydantic.alias_generators import to_camel

from scriva.schemas import (
    NarrativePromise,
    NarrativeState,
    NarrativeUpdate,
    PlotThread,
    TensionData,
    VoiceProfile,
    WorldModel,
    WorldModelUpdate,
)

logger = logging.getLogger(__name__)

E = TypeVar("E")

OVERRIDE_KEY = "_override"


def _entity_key(entity: Any, key: str) -> Any:
    if isinstance(entity, Mapping):
        if key in entity:
            return entity[key]
        return entity.get(to_camel(key))
    return getattr(entity, key, None)


def is_overridden(entity: Any) -> bool:
    if entity is None:
        return False
    if isinstance(entity, Mapping):
        return entity.get(OVERRIDE_KEY) is True
    return getattr(entity, "override", None) is True


def merge_by_id(
    existing: Sequence[E], incoming: Optional[Sequence[E]], key: str = "id"
) -> List[E]:
    """Merge *incoming* into a copy of *existing*, matching on *key*.

    Matched entities are replaced in place unless locked; unmatched ones are
    appended in incoming order. Keys never duplicate.
    """
    result = list(existing)
    if not incoming:
        return result

    for entity in incoming:
        entity_id = _entity_key(entity, key)
        idx = next(
            (i for i, current in enumerate(result) if _entity_key(current, key) == entity_id),
            None,
        )
        if idx is None:
            result.append(entity)
        elif is_overridden(result[idx]):
            logger.debug("merge_skip_locked | %s=%s", key, entity_id)
        else:
            result[idx] = entity

    return result


def merge_singleton(current: E, incoming: Optional[E]) -> E:
    """Replace a singleton unless it is locked; the lock flag always comes from *current*."""
    if incoming is None or is_overridden(current):
        return current

    lock = current.get(OVERRIDE_KEY) if isinstance(current, Mapping) else getattr(current, "override", None)

    if isinstance(incoming, Mapping):
        merged = {k: v for k, v in incoming.items() if k not in (OVERRIDE_KEY, "override")}
        if lock is not None:
            merged[OVERRIDE_KEY] = lock
        return merged
    return incoming.model_copy(update={"override": lock})


# ---------------------------------------------------------------------------
# Store-level merges
# ---------------------------------------------------------------------------

WORLD_COLLECTIONS = ("characters", "places", "timeline", "objects", "rules")


def merge_world_model_update(current: WorldModel, update: WorldModelUpdate) -> WorldModel:
    merged = {
        name: merge_by_id(getattr(current, name), getattr(update, name))
        for name in WORLD_COLLECTIONS
    }
    logger.info(
        "world_model_merged | %s",
        ", ".join(f"{name}={len(getattr(update, name) or [])}" for name in WORLD_COLLECTIONS),
    )
    return current.model_copy(update=merged)


class NarrativeMergeResult(NamedTuple):
    state: NarrativeState
    promises: List[NarrativePromise]
    threads: List[PlotThread]
    tension: List[TensionData]


def merge_narrative_update(
    state: NarrativeState,
    promises: List[NarrativePromise],
    threads: List[PlotThread],
    tension: List[TensionData],
    update: NarrativeUpdate,
) -> NarrativeMergeResult:
    """Apply a narrative update. Tension is last-write-wins per chapter."""
    result = NarrativeMergeResult(
        state=merge_singleton(state, update.state),
        promises=merge_by_id(promises, update.promises),
        threads=merge_by_id(threads, update.threads),
        tension=merge_by_id(tension, [update.tension] if update.tension else None, key="chapter_id"),
    )
    logger.info(
        "narrative_merged | state=%s | promises=%d | threads=%d | tension=%s",
        update.state is not None and not is_overridden(state),
        len(update.promises or []),
        len(update.threads or []),
        update.tension.chapter_id if update.tension else None,
    )
    return result


def merge_voice_profile(current: VoiceProfile, incoming: Optional[VoiceProfile]) -> VoiceProfile:
    return merge_singleton(current, incoming)
