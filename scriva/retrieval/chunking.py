"""
Chapter chunking for retrieval.

A chapter is split into scenes on ``***`` / ``---`` rule lines, scenes into
paragraphs on blank lines, and paragraphs are packed greedily into chunks of
at most ``MAX_CHUNK_TOKENS`` estimated tokens. A single paragraph larger than
the limit becomes a chunk on its own. Chunks never span a scene break.
"""
import re
from typing import Iterator, List, Optional, Sequence, Tuple

from scriva.context.tokens import estimate_tokens
from scriva.schemas import TextChunk, WorldModel

MAX_CHUNK_TOKENS = 400

SCENE_BREAK = re.compile(r"\n\s*(?:\*\s*\*\s*\*|---)\s*\n")
PARAGRAPH_BREAK = re.compile(r"\n\n+")

QUOTE_CHARS = re.compile('["“”]')
INTERIORITY_CUES = re.compile(r"\b(thought|felt|wondered)\b")
ACTION_CUES = re.compile(r"\b(ran|jumped|grabbed|slammed|punched|fought|chased|dodged)\b")
DESCRIPTION_CUES = re.compile(
    r"\b(the room|the sky|the light|the air|looked like|smelled|the sound)\b"
)


def _spans(text: str, pattern: re.Pattern, start: int, end: int) -> Iterator[Tuple[int, int]]:
    """Yield ``(start, end)`` of the pieces of ``text[start:end]`` between *pattern* matches."""
    pos = start
    for match in pattern.finditer(text, start, end):
        yield pos, match.start()
        pos = match.end()
    yield pos, end


def _paragraphs(content: str, start: int, end: int) -> List[Tuple[str, int]]:
    """Trimmed non-empty paragraphs of one scene with their absolute start offsets."""
    paragraphs = []
    for p_start, p_end in _spans(content, PARAGRAPH_BREAK, start, end):
        raw = content[p_start:p_end]
        text = raw.strip()
        if text:
            paragraphs.append((text, p_start + len(raw) - len(raw.lstrip())))
    return paragraphs


def classify_chunk_type(text: str) -> str:
    """First matching rule wins: dialogue, interiority, action, description, narrative."""
    lines = [line for line in text.split("\n") if line.strip()]
    if lines:
        quoted = sum(1 for line in lines if QUOTE_CHARS.search(line))
        if quoted / len(lines) > 0.5:
            return "dialogue"

    lower = text.lower()
    if INTERIORITY_CUES.search(lower):
        return "interiority"
    if ACTION_CUES.search(lower):
        return "action"
    if DESCRIPTION_CUES.search(lower):
        return "description"
    return "narrative"


def character_names(world_model: Optional[WorldModel]) -> List[str]:
    if world_model is None:
        return []
    names = []
    for character in world_model.characters:
        names.append(character.name)
        names.extend(character.aliases)
    return names


def find_characters(text: str, names: Sequence[str]) -> List[str]:
    """Names (or aliases) occurring in *text*, case-insensitively, in discovery order."""
    lower = text.lower()
    found: List[str] = []
    for name in names:
        if name and name.lower() in lower and name not in found:
            found.append(name)
    return found


def chunk_chapter(
    content: str,
    chapter_id: str,
    source: str,
    world_model: Optional[WorldModel] = None,
) -> List[TextChunk]:
    total_length = len(content)
    names = character_names(world_model)
    chunks: List[TextChunk] = []

    def emit(paragraphs: List[str], start: int) -> None:
        text = "\n\n".join(paragraphs)
        chunks.append(TextChunk(
            id=f"{chapter_id}-{len(chunks)}",
            text=text,
            tokens=estimate_tokens(text),
            source=source,
            chapter_id=chapter_id,
            type=classify_chunk_type(text),
            characters=find_characters(text, names),
            position=start / total_length if total_length else 0.0,
        ))

    for scene_start, scene_end in _spans(content, SCENE_BREAK, 0, total_length):
        current: List[str] = []
        current_start = scene_start

        for para, para_start in _paragraphs(content, scene_start, scene_end):
            would_be = "\n\n".join(current + [para])
            if current and estimate_tokens(would_be) > MAX_CHUNK_TOKENS:
                emit(current, current_start)
                current = [para]
                current_start = para_start
            else:
                if not current:
                    current_start = para_start
                current.append(para)

        if current:
            emit(current, current_start)

    return chunks
