"""
Indexer: keeps the state stores in step with the manuscript.

``incremental_index`` runs after one chapter is saved; ``full_index`` rebuilds
everything from the chapter files. Each step asks the chat model for a
summary or a JSON update, strictly validates it, and merges it through the
override rules before writing.

Malformed model output makes that step a no-op (logged). Conflicts and
provider failures propagate to the caller.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Type

from pydantic import ValidationError

from scriva.errors import FileNotFound, MalformedUpdateError
from scriva.merge import (
    NarrativeMergeResult,
    merge_narrative_update,
    merge_voice_profile,
    merge_world_model_update,
)
from scriva.retrieval.cache import BookKey
from scriva.retrieval.chunking import chunk_chapter
from scriva.retrieval.index import read_manifest, reindex_chapter, save_chunks, save_manifest
from scriva.retrieval.manifest import update_manifest_for_chapter
from scriva.retrieval.service import RetrievalService
from scriva.schemas import (
    Book,
    CharacterNode,
    NarrativePromise,
    NarrativeState,
    NarrativeUpdate,
    ObjectNode,
    PlaceNode,
    PlotThread,
    SceneBeat,
    ScrivaConfig,
    ScrivaModel,
    TensionData,
    TimelineEvent,
    VoiceDrift,
    VoiceMetrics,
    VoiceProfile,
    WorldModel,
    WorldModelUpdate,
    WorldRule,
)
from scriva.services.chat import ChatProvider
from scriva.services.repository import Repository
from scriva.stores import memory, narrative_state, voice_dna, world_model
from scriva.utils.json_extractor import extract_json_array, extract_json_object

logger = logging.getLogger(__name__)

VOICE_SAMPLE_CHAPTERS = 5

SYSTEM_PROMPT = (
    "You maintain the story memory for a book in progress. "
    "Follow the requested output format exactly."
)


# ---------------------------------------------------------------------------
# Prompt builders
# ---------------------------------------------------------------------------

def build_chapter_summary_prompt(chapter_title: str, content: str) -> str:
    return (
        "Summarize this chapter in ~200 tokens. Include: what happens, who appears, "
        "which plot threads move, and the emotional state at the end. "
        "Be specific and factual, not vague.\n\n"
        f"Chapter: {chapter_title}\n\n{content[:12000]}"
    )


def build_arc_summary_prompt(part_title: str, chapter_summaries: Sequence[str]) -> str:
    prompt = (
        "Summarize this story arc in ~300 tokens. Include: the narrative trajectory, "
        "key turning points, character development, and what it sets up for the next arc.\n\n"
        f"Arc: {part_title}\n\n"
    )
    for i, summary in enumerate(chapter_summaries, start=1):
        prompt += f"Chapter {i}: {summary}\n\n"
    return prompt


def build_book_summary_prompt(
    title: str, arc_summaries: Sequence[str], themes: Sequence[str], logline: str
) -> str:
    prompt = (
        "Summarize this book in ~500 tokens. Include: premise, major themes, current state "
        "of the narrative, key character arcs, and the author's apparent intent. Write as a "
        "briefing for a co-writer who needs to understand the whole book.\n\n"
        f"Title: {title}\n"
    )
    if logline:
        prompt += f"Logline: {logline}\n"
    if themes:
        prompt += "Themes: " + ", ".join(themes) + "\n\n"
    for i, summary in enumerate(arc_summaries, start=1):
        prompt += f"Part {i}: {summary}\n\n"
    return prompt


def build_scene_beats_prompt(chapter_title: str, content: str) -> str:
    return (
        "Break this chapter into scene beats. For each scene, provide a JSON array where each "
        "element has: id (string), summary (string, ~100 tokens), characters (string[]), "
        "emotionalTone (string, 2-3 words), position (number, 0-1 indicating position in "
        "chapter). Return ONLY valid JSON, no markdown fences.\n\n"
        f"Chapter: {chapter_title}\n\n{content[:12000]}"
    )


def build_world_model_update_prompt(chapter_title: str, chapter_content: str, current: WorldModel) -> str:
    characters = "; ".join(f"{c.name} ({c.role}, {c.current_state})" for c in current.characters)
    places = ", ".join(p.name for p in current.places)
    return (
        "Given the current world model and a new/updated chapter, return a JSON object with "
        "updates needed. Only include entries that changed or are new. For each entry, include "
        "all fields. Do NOT include entries with _override: true from the current model.\n\n"
        "Format:\n{\n  \"characters\": [...],\n  \"places\": [...],\n  \"timeline\": [...],\n"
        "  \"objects\": [...],\n  \"rules\": [...]\n}\n\n"
        f"Current world state:\nCharacters: {characters}\nPlaces: {places}\n"
        f"\n\nChapter: {chapter_title}\n{chapter_content[:10000]}"
        "\n\nReturn ONLY valid JSON, no markdown fences."
    )


def build_narrative_update_prompt(
    chapter_title: str,
    chapter_content: str,
    state: NarrativeState,
    promises: Sequence[NarrativePromise],
    threads: Sequence[PlotThread],
) -> str:
    active_promises = "; ".join(
        f"{p.setup} ({p.status})" for p in promises if p.status not in ("paid", "abandoned")
    )
    active_threads = "; ".join(
        f"{t.name} ({t.status})" for t in narrative_state.get_active_threads(list(threads))
    )
    ctx = (
        "Current narrative state:\n"
        f"Story point: {state.current_point or 'unknown'}\n"
        f"Reader knows: {'; '.join(state.reader_knows)}\n"
        f"Reader expects: {'; '.join(state.reader_expects)}\n"
        f"Active promises: {active_promises}\n"
        f"Active threads: {active_threads}\n"
    )
    return (
        "Given the current narrative state and a new/updated chapter, return a JSON object "
        "with these keys:\n"
        "1. \"state\": updated NarrativeState { currentPoint, readerKnows, readerExpects, dramaticIrony }\n"
        "2. \"promises\": array of new or updated NarrativePromise entries "
        "{ id, setup, setupChapter, payoffChapter?, status, urgency }\n"
        "3. \"threads\": array of new or updated PlotThread entries { id, name, status, chapters, summary }\n"
        "4. \"tension\": TensionData for this chapter "
        "{ chapterId, tensionLevel (1-10), pacingNote, emotionalBeat }\n\n"
        "Do NOT modify entries with _override: true.\n\n"
        f"{ctx}\nChapter: {chapter_title}\n{chapter_content[:10000]}"
        "\n\nReturn ONLY valid JSON, no markdown fences."
    )


def build_voice_analysis_prompt(chapter_contents: Sequence[str]) -> str:
    prompt = (
        "Analyze the following writing samples and create a detailed voice profile.\n\n"
        "Return a JSON object with these fields:\n"
        "- summary: string (2-3 paragraph description of the author's voice and style)\n"
        "- metrics: object with:\n"
        "  - avgSentenceLength: number (average words per sentence)\n"
        "  - vocabularyRichness: string (e.g. 'high', 'moderate', 'restrained')\n"
        "  - povStyle: string (e.g. 'third person limited', 'first person intimate')\n"
        "  - dialogueToNarrationRatio: string (e.g. '40/60', 'dialogue-heavy')\n"
        "  - metaphorUsage: string (e.g. 'frequent and vivid', 'sparse and precise')\n"
        "  - paragraphRhythm: string (e.g. 'short punchy paragraphs', 'long flowing paragraphs')\n"
        "  - tenseUsage: string (e.g. 'past tense', 'present tense', 'mixed')\n"
        "- genreCalibration: string (how the voice fits the genre)\n\n"
    )
    for i, content in enumerate(chapter_contents, start=1):
        prompt += f"--- Sample {i} ---\n{content[:3000]}\n\n"
    prompt += "Return ONLY valid JSON, no markdown fences, no explanation."
    return prompt


def build_drift_detection_prompt(chapter_content: str, profile: VoiceProfile) -> str:
    m = profile.metrics
    return (
        "Compare this chapter's writing style against the established voice profile. "
        "Return a JSON object with:\n"
        "- consistencyScore: number 0-1 (1 = perfectly consistent)\n"
        "- driftNotes: string[] (specific observations about voice drift, if any)\n\n"
        f"Voice Profile:\n{profile.summary}\n"
        f"Style: {m.pov_style}, {m.tense_usage}, avg {m.avg_sentence_length} words/sentence\n\n"
        f"Chapter excerpt:\n{chapter_content[:4000]}\n\nReturn ONLY valid JSON, no markdown fences."
    )


# ---------------------------------------------------------------------------
# Strict parsing of model output
# ---------------------------------------------------------------------------

WORLD_ENTITY_MODELS: Dict[str, Type[ScrivaModel]] = {
    "characters": CharacterNode,
    "places": PlaceNode,
    "timeline": TimelineEvent,
    "objects": ObjectNode,
    "rules": WorldRule,
}


def _validate_list(data: dict, key: str, model: Type[ScrivaModel]) -> Optional[list]:
    items = data.get(key)
    if items is None:
        return None
    if not isinstance(items, list):
        raise MalformedUpdateError(f"{key}: expected an array, got {type(items).__name__}")
    return [model.validate_proposal(item) for item in items]


def parse_world_model_update(text: str) -> Optional[WorldModelUpdate]:
    """Every proposed entity must carry its full field set, or nothing is applied."""
    data = extract_json_object(text)
    if data is None:
        return None
    try:
        fields = {
            key: _validate_list(data, key, model)
            for key, model in WORLD_ENTITY_MODELS.items()
        }
    except MalformedUpdateError as exc:
        logger.warning("ai_update_rejected | kind=world_model | reason=%s", exc)
        return None
    return WorldModelUpdate(**fields)


def parse_narrative_update(text: str) -> Optional[NarrativeUpdate]:
    data = extract_json_object(text)
    if data is None:
        return None
    try:
        update = NarrativeUpdate(
            state=NarrativeState.validate_proposal(data["state"]) if data.get("state") is not None else None,
            promises=_validate_list(data, "promises", NarrativePromise),
            threads=_validate_list(data, "threads", PlotThread),
            tension=TensionData.validate_proposal(data["tension"]) if data.get("tension") is not None else None,
        )
    except MalformedUpdateError as exc:
        logger.warning("ai_update_rejected | kind=narrative | reason=%s", exc)
        return None
    return update


def _now_ms() -> int:
    return int(time.time() * 1000)


def parse_voice_analysis_response(
    text: str, analyzed_chapters: Sequence[str], now_ms: Optional[int] = None
) -> Optional[VoiceProfile]:
    data = extract_json_object(text)
    if data is None:
        return None
    try:
        missing = [key for key in ("summary", "metrics", "genreCalibration") if key not in data]
        if missing:
            raise MalformedUpdateError(f"VoiceProfile: missing fields {missing}")
        profile = VoiceProfile(
            summary=data["summary"],
            metrics=VoiceMetrics.validate_proposal(data["metrics"]),
            genre_calibration=data["genreCalibration"],
            last_updated=_now_ms() if now_ms is None else now_ms,
            analyzed_chapters=list(analyzed_chapters),
        )
    except (MalformedUpdateError, ValidationError) as exc:
        logger.warning("ai_update_rejected | kind=voice_profile | reason=%s", exc)
        return None
    return profile


def parse_drift_response(text: str, chapter_id: str, compared_to: str) -> Optional[VoiceDrift]:
    data = extract_json_object(text)
    if data is None:
        return None
    try:
        payload = dict(data, chapterId=chapter_id, comparedTo=compared_to)
        drift = VoiceDrift.validate_proposal(payload)
    except MalformedUpdateError as exc:
        logger.warning("ai_update_rejected | kind=voice_drift | reason=%s", exc)
        return None
    return drift


def parse_scene_beats(text: str) -> Optional[List[SceneBeat]]:
    items = extract_json_array(text)
    if items is None:
        return None
    try:
        return [SceneBeat.validate_proposal(item) for item in items]
    except MalformedUpdateError as exc:
        logger.warning("ai_update_rejected | kind=scene_beats | reason=%s", exc)
        return None


# ---------------------------------------------------------------------------
# Index runs
# ---------------------------------------------------------------------------

@dataclass
class IndexContext:
    """Collaborators for one index run.

    ``retrieval`` and ``book_key`` are optional; without them chunks are still
    persisted but no vectors are computed.
    """

    repo: Repository
    chat: ChatProvider
    retrieval: Optional[RetrievalService] = None
    book_key: Optional[BookKey] = None


@dataclass
class ChapterText:
    id: str
    title: str
    content: str
    file: str


async def _ask(ctx: IndexContext, config: ScrivaConfig, prompt: str) -> str:
    return await ctx.chat.complete(
        SYSTEM_PROMPT, [{"role": "user", "content": prompt}], config.ai.memory_model,
    )


def _tracks_world(config: ScrivaConfig) -> bool:
    return config.features.characters or config.features.world_building


def _tracks_narrative(config: ScrivaConfig) -> bool:
    return config.features.narrative_state or config.features.plot_threads


async def _save_narrative(repo: Repository, merged: NarrativeMergeResult) -> None:
    await narrative_state.save_narrative_state(repo, merged.state)
    await narrative_state.save_promises(repo, merged.promises)
    await narrative_state.save_threads(repo, merged.threads)
    await narrative_state.save_tension(repo, merged.tension)


async def incremental_index(
    ctx: IndexContext,
    config: ScrivaConfig,
    book: Book,
    chapter_id: str,
    content: str,
    title: str,
) -> None:
    """Refresh every enabled store for one saved chapter."""
    features = config.features
    extra = {"chapter_id": chapter_id}
    started = time.monotonic()

    if features.chapter_summaries:
        summary = (await _ask(ctx, config, build_chapter_summary_prompt(title, content))).strip()
        if summary:
            await memory.write_chapter_summary(ctx.repo, chapter_id, summary)

    if features.scene_summaries:
        beats = parse_scene_beats(await _ask(ctx, config, build_scene_beats_prompt(title, content)))
        if beats is not None:
            await memory.write_scene_beats(ctx.repo, chapter_id, beats)

    if _tracks_world(config):
        current = await world_model.read_world_model(ctx.repo)
        prompt = build_world_model_update_prompt(title, content, current)
        update = parse_world_model_update(await _ask(ctx, config, prompt))
        if update is not None:
            await world_model.save_world_model(ctx.repo, merge_world_model_update(current, update))

    if _tracks_narrative(config):
        state, promises, threads, tension = await narrative_state.read_narrative(ctx.repo)
        prompt = build_narrative_update_prompt(title, content, state, promises, threads)
        update = parse_narrative_update(await _ask(ctx, config, prompt))
        if update is not None:
            merged = merge_narrative_update(state, promises, threads, tension, update)
            await _save_narrative(ctx.repo, merged)

    if features.voice_profile:
        profile = await voice_dna.read_voice_profile(ctx.repo)
        if profile.summary:
            prompt = build_drift_detection_prompt(content, profile)
            drift = parse_drift_response(
                await _ask(ctx, config, prompt), chapter_id, str(profile.last_updated),
            )
            if drift is not None:
                records = voice_dna.record_drift(await voice_dna.read_drift(ctx.repo), drift)
                await voice_dna.save_drift(ctx.repo, records)

    if features.rag:
        world = await world_model.read_world_model(ctx.repo) if _tracks_world(config) else None
        refresh = None
        if ctx.retrieval is not None and ctx.book_key is not None:
            async def refresh(new_chunks):
                await ctx.retrieval.refresh_chapter(ctx.book_key, chapter_id, new_chunks)

        # Cache refresh must succeed before the chunks and manifest are written.
        await reindex_chapter(
            ctx.repo, chapter_id, content, book.find_chapter_file(chapter_id) or "", world,
            before_save=refresh,
        )

    logger.info(
        "incremental index done | chapter=%s", chapter_id,
        extra=dict(extra, duration_ms=round((time.monotonic() - started) * 1000, 1)),
    )


async def _read_chapters(repo: Repository, book: Book) -> List[ChapterText]:
    chapters = []
    for chapter in book.get_all_chapters():
        path = book.find_chapter_file(chapter.id)
        try:
            file = await repo.read_file(path)
        except FileNotFound:
            logger.warning("chapter file missing | chapter=%s | path=%s", chapter.id, path)
            continue
        chapters.append(ChapterText(chapter.id, chapter.label, file.content, path))
    return chapters


async def _rebuild_summaries(
    ctx: IndexContext, config: ScrivaConfig, book: Book, chapters: List[ChapterText]
) -> None:
    for chapter in chapters:
        prompt = build_chapter_summary_prompt(chapter.title, chapter.content)
        summary = (await _ask(ctx, config, prompt)).strip()
        if summary:
            await memory.write_chapter_summary(ctx.repo, chapter.id, summary)

    for index, part in enumerate(book.parts, start=1):
        summaries = []
        for chapter in part.chapters:
            summary = await memory.read_chapter_summary(ctx.repo, chapter.id)
            if summary:
                summaries.append(summary)
        if summaries:
            arc = (await _ask(ctx, config, build_arc_summary_prompt(part.title, summaries))).strip()
            if arc:
                await memory.write_arc_summary(ctx.repo, f"part-{index}", arc)

    arcs = []
    for index in range(1, len(book.parts) + 1):
        arc = await memory.read_arc_summary(ctx.repo, f"part-{index}")
        if arc:
            arcs.append(arc)
    if arcs:
        prompt = build_book_summary_prompt(book.title, arcs, book.themes or [], book.logline or "")
        summary = (await _ask(ctx, config, prompt)).strip()
        if summary:
            await memory.write_book_summary(ctx.repo, summary)


async def full_index(ctx: IndexContext, config: ScrivaConfig, book: Book) -> None:
    """Rebuild every enabled store from the chapter files."""
    features = config.features
    started = time.monotonic()
    chapters = await _read_chapters(ctx.repo, book)

    if features.chapter_summaries:
        await _rebuild_summaries(ctx, config, book, chapters)

    if _tracks_world(config):
        model = await world_model.read_world_model(ctx.repo)
        for chapter in chapters:
            prompt = build_world_model_update_prompt(chapter.title, chapter.content, model)
            update = parse_world_model_update(await _ask(ctx, config, prompt))
            if update is not None:
                model = merge_world_model_update(model, update)
        await world_model.save_world_model(ctx.repo, model)

    if _tracks_narrative(config):
        state, promises, threads, tension = await narrative_state.read_narrative(ctx.repo)
        for chapter in chapters:
            prompt = build_narrative_update_prompt(chapter.title, chapter.content, state, promises, threads)
            update = parse_narrative_update(await _ask(ctx, config, prompt))
            if update is not None:
                state, promises, threads, tension = merge_narrative_update(
                    state, promises, threads, tension, update,
                )
        await _save_narrative(ctx.repo, NarrativeMergeResult(state, promises, threads, tension))

    if features.voice_profile and chapters:
        samples = chapters[:VOICE_SAMPLE_CHAPTERS]
        prompt = build_voice_analysis_prompt([c.content for c in samples])
        analyzed = parse_voice_analysis_response(await _ask(ctx, config, prompt), [c.id for c in samples])
        if analyzed is not None:
            current = await voice_dna.read_voice_profile(ctx.repo)
            await voice_dna.save_voice_profile(ctx.repo, merge_voice_profile(current, analyzed))

    if features.rag and chapters:
        world = await world_model.read_world_model(ctx.repo) if _tracks_world(config) else None
        all_chunks = []
        for chapter in chapters:
            all_chunks.extend(chunk_chapter(chapter.content, chapter.id, chapter.file, world))

        if ctx.retrieval is not None and ctx.book_key is not None:
            await ctx.retrieval.load(ctx.book_key, all_chunks)
        await save_chunks(ctx.repo, all_chunks)

        manifest = await read_manifest(ctx.repo)
        for chapter in chapters:
            manifest = update_manifest_for_chapter(manifest, chapter.id, chapter.content, len(all_chunks))
        await save_manifest(ctx.repo, manifest)

    logger.info(
        "full index done | chapters=%d", len(chapters),
        extra={"duration_ms": round((time.monotonic() - started) * 1000, 1)},
    )
