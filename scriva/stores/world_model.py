"""World model store: characters, places, timeline, objects and world rules."""
import asyncio
from typing import List, Optional

from scriva.config import context_path, get_settings
from scriva.context.tokens import clip
from scriva.schemas import (
    CharacterNode,
    ObjectNode,
    PlaceNode,
    TimelineEvent,
    WorldModel,
    WorldRule,
)
from scriva.services.repository import Repository
from scriva.stores.base import read_json, write_json

CHARACTERS_PATH = ("characters.json",)
PLACES_PATH = ("world", "places.json")
TIMELINE_PATH = ("world", "timeline.json")
OBJECTS_PATH = ("world", "objects.json")
RULES_PATH = ("world", "rules.json")


async def read_world_model(repo: Repository) -> WorldModel:
    characters, places, timeline, objects, rules = await asyncio.gather(
        read_json(repo, context_path(*CHARACTERS_PATH), List[CharacterNode], list),
        read_json(repo, context_path(*PLACES_PATH), List[PlaceNode], list),
        read_json(repo, context_path(*TIMELINE_PATH), List[TimelineEvent], list),
        read_json(repo, context_path(*OBJECTS_PATH), List[ObjectNode], list),
        read_json(repo, context_path(*RULES_PATH), List[WorldRule], list),
    )
    return WorldModel(
        characters=characters,
        places=places,
        timeline=timeline,
        objects=objects,
        rules=rules,
    )


async def save_world_model(repo: Repository, model: WorldModel) -> None:
    await asyncio.gather(
        write_json(repo, context_path(*CHARACTERS_PATH), model.characters, "Update characters"),
        write_json(repo, context_path(*PLACES_PATH), model.places, "Update places"),
        write_json(repo, context_path(*TIMELINE_PATH), model.timeline, "Update timeline"),
        write_json(repo, context_path(*OBJECTS_PATH), model.objects, "Update objects"),
        write_json(repo, context_path(*RULES_PATH), model.rules, "Update world rules"),
    )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def get_characters_in_chapter(model: WorldModel, chapter_id: str) -> List[CharacterNode]:
    return [c for c in model.characters if chapter_id in c.appearances]


def get_character_by_name(model: WorldModel, name: str) -> Optional[CharacterNode]:
    """Case-insensitive lookup by name or any alias."""
    lower = name.lower()
    for character in model.characters:
        if character.name.lower() == lower:
            return character
        if any(alias.lower() == lower for alias in character.aliases):
            return character
    return None


# ---------------------------------------------------------------------------
# Context projection
# ---------------------------------------------------------------------------

def world_model_to_context(
    model: WorldModel,
    chapter_id: Optional[str] = None,
    field_chars: Optional[int] = None,
) -> str:
    """Render characters (and places) relevant to *chapter_id*, or all of them."""
    limit = field_chars or get_settings().context_field_chars
    chars = get_characters_in_chapter(model, chapter_id) if chapter_id else model.characters
    ctx = "[World Model]\n"

    if chars:
        ctx += "Characters:\n"
        for c in chars:
            ctx += f"- {c.name} ({c.role}): {clip(c.current_state, limit)}"
            if c.relationships:
                rels = ", ".join(f"{r.target} ({r.type})" for r in c.relationships)
                ctx += f". Relationships: {rels}"
            ctx += "\n"

    places = model.places
    if chapter_id:
        places = [p for p in places if chapter_id in p.chapters]
    if places:
        ctx += "Places: " + ", ".join(p.name for p in places) + "\n"

    return ctx
