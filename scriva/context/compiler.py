"""
Context compiler.

Builds a token-budgeted briefing for one AI task from the state stores (and,
when wired in, the retrieval engine).

Sections are gathered by the producers declared in :data:`SECTION_PRODUCERS`,
in that order. The order is part of the output contract: when two sections
share a priority, the one discovered first wins the budget.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Protocol, Tuple

from scriva.config import context_path, get_settings
from scriva.context.tokens import clip, estimate_tokens
from scriva.errors import ScrivaError
from scriva.schemas import (
    PRIORITY_ORDER,
    Book,
    BriefingSection,
    CompileTask,
    ContextBriefing,
    NarrativePromise,
    NarrativeState,
    PlotThread,
    Priority,
    RAGFilters,
    RAGQuery,
    RAGResult,
    ScrivaConfig,
)
from scriva.services.repository import Repository
from scriva.stores import memory, narrative_state, voice_dna, world_model, writing_rules

logger = logging.getLogger(__name__)

TASK_BUDGETS: Dict[str, int] = {
    "chat": 2000,
    "write": 4000,
    "continue": 4000,
    "edit": 3000,
    "critique": 5000,
    "research": 4000,
    "revision-plan": 6000,
}
DEFAULT_BUDGET = 4000

DRAFTING_TASKS = ("write", "continue", "edit")
EDIT_CRAFT_TAGS = ("dialogue", "description")
DRAFT_CRAFT_TAGS = ("dialogue", "description", "narrative")

FRAMING = (
    "You are an AI writing assistant and co-writer for the book '{title}'. "
    "You have deep knowledge of the entire manuscript. "
    "Be direct, specific, and constructive.\n\n"
)


class Retriever(Protocol):
    """Nearest-neighbour passage lookup for the book being compiled."""

    async def retrieve(self, query: RAGQuery) -> List[RAGResult]:
        ...


def token_budget_for_task(task_type: str, config_budget: Optional[int] = None) -> int:
    """Per-task default budget; a truthy configured budget replaces it."""
    if config_budget:
        return config_budget
    return TASK_BUDGETS.get(task_type, DEFAULT_BUDGET)


# ---------------------------------------------------------------------------
# Compilation context
# ---------------------------------------------------------------------------

@dataclass
class CompileContext:
    """Everything one compilation needs. Lives for a single ``compile_briefing`` call."""

    task: CompileTask
    config: ScrivaConfig
    book: Book
    repo: Repository
    retriever: Optional[Retriever] = None
    field_chars: int = 300
    _narrative: Optional[asyncio.Future] = field(default=None, repr=False)

    @property
    def features(self):
        return self.config.features

    async def narrative(self) -> Tuple[NarrativeState, List[NarrativePromise], List[PlotThread]]:
        """State, promises and threads, read once per compilation."""
        if self._narrative is None:
            self._narrative = asyncio.gather(
                narrative_state.read_narrative_state(self.repo),
                narrative_state.read_promises(self.repo),
                narrative_state.read_threads(self.repo),
            )
        return await self._narrative


@dataclass(frozen=True)
class SectionDraft:
    label: str
    content: str
    source: str


@dataclass(frozen=True)
class SectionProducer:
    """One step of section gathering.

    ``index`` is the stable discovery position. ``applies`` gates the step on
    features and task fields; ``produce`` returns zero or more drafts.
    Failures of a ``required`` producer fail the compilation; others are
    logged and the section is omitted.
    """

    index: int
    label: str
    priority: Priority
    required: bool
    applies: Callable[[CompileContext], bool]
    produce: Callable[[CompileContext], Awaitable[List[SectionDraft]]]


def _always(ctx: CompileContext) -> bool:
    return True


def _single(label: str, content: str, source: str) -> List[SectionDraft]:
    return [SectionDraft(label, content, source)]


# ---------------------------------------------------------------------------
# Producers
# ---------------------------------------------------------------------------

async def _book_summary(ctx: CompileContext) -> List[SectionDraft]:
    summary = await memory.read_book_summary(ctx.repo)
    return _single("Book Summary", summary, memory.book_summary_path())


async def _writing_rules(ctx: CompileContext) -> List[SectionDraft]:
    rules = await writing_rules.read_rules(ctx.repo)
    text = writing_rules.rules_to_prompt_section(rules, ctx.task.chapter_id, ctx.field_chars)
    return _single("Writing Rules", text, writing_rules.rules_path())


async def _voice_profile(ctx: CompileContext) -> List[SectionDraft]:
    profile = await voice_dna.read_voice_profile(ctx.repo)
    text = voice_dna.voice_to_compact_context(profile, ctx.field_chars)
    return _single("Voice Profile", text, voice_dna.profile_path())


def _drafting_with_voice(ctx: CompileContext) -> bool:
    return ctx.features.voice_profile and ctx.task.type in DRAFTING_TASKS


async def _voice_exemplars(ctx: CompileContext) -> List[SectionDraft]:
    tags = EDIT_CRAFT_TAGS if ctx.task.type == "edit" else DRAFT_CRAFT_TAGS
    exemplars = await voice_dna.read_exemplars(ctx.repo)
    text = voice_dna.exemplars_to_context(exemplars, tags, ctx.field_chars)
    return _single("Voice Exemplars", text, voice_dna.exemplars_path())


async def _anti_patterns(ctx: CompileContext) -> List[SectionDraft]:
    patterns = await voice_dna.read_anti_patterns(ctx.repo)
    text = voice_dna.anti_patterns_to_context(patterns, ctx.field_chars)
    return _single("Anti-Patterns", text, voice_dna.antipatterns_path())


def _has_chapter(ctx: CompileContext) -> bool:
    return bool(ctx.task.chapter_id)


async def _arc_summary(ctx: CompileContext) -> List[SectionDraft]:
    part_id = ctx.book.find_part_for_chapter(ctx.task.chapter_id)
    if not part_id:
        return []
    summary = await memory.read_arc_summary(ctx.repo, part_id)
    return _single("Arc Summary", summary, memory.arc_summary_path(part_id))


async def _neighbor_summaries(ctx: CompileContext) -> List[SectionDraft]:
    neighbors = ctx.book.get_neighbor_chapter_ids(ctx.task.chapter_id)
    summaries = await asyncio.gather(
        *(memory.read_chapter_summary(ctx.repo, chapter_id) for chapter_id in neighbors)
    )
    return [
        SectionDraft(
            f"Chapter Summary: {chapter_id}",
            summary,
            memory.chapter_summary_path(chapter_id),
        )
        for chapter_id, summary in zip(neighbors, summaries)
    ]


async def _world_model(ctx: CompileContext) -> List[SectionDraft]:
    model = await world_model.read_world_model(ctx.repo)
    if not world_model.get_characters_in_chapter(model, ctx.task.chapter_id):
        return []
    text = world_model.world_model_to_context(model, ctx.task.chapter_id, ctx.field_chars)
    return _single("World Model", text, context_path("characters.json"))


async def _narrative_state(ctx: CompileContext) -> List[SectionDraft]:
    state, promises, threads = await ctx.narrative()
    text = narrative_state.narrative_to_context(state, promises, threads, ctx.field_chars)
    return _single("Narrative State", text, context_path("narrative") + "/")


async def _promises_due(ctx: CompileContext) -> List[SectionDraft]:
    _, promises, _ = await ctx.narrative()
    due = narrative_state.get_promises_due(promises, ctx.task.chapter_id)
    text = narrative_state.promises_due_to_context(due, ctx.field_chars)
    return _single("Promises Due", text, narrative_state.promises_path())


def _retrieval_query_text(task: CompileTask) -> str:
    return (task.user_message or task.selection or "").strip()


def _wants_retrieval(ctx: CompileContext) -> bool:
    return (
        ctx.features.rag
        and ctx.retriever is not None
        and bool(_retrieval_query_text(ctx.task))
    )


async def _retrieved_passages(ctx: CompileContext) -> List[SectionDraft]:
    filters = RAGFilters(characters=ctx.task.characters) if ctx.task.characters else None
    query = RAGQuery(
        text=_retrieval_query_text(ctx.task),
        filters=filters,
        top_k=ctx.config.ai.rag_top_k,
    )
    results = await ctx.retriever.retrieve(query)
    if not results:
        return []

    text = "[Retrieved Passages]\n"
    for result in results:
        chunk = result.chunk
        text += f"({chunk.chapter_id}, {chunk.type}): {clip(result.context, ctx.field_chars)}\n\n"
    return _single("Retrieved Passages", text, context_path("embeddings", "chunks.json"))


async def _learned_preferences(ctx: CompileContext) -> List[SectionDraft]:
    prefs = await writing_rules.read_learned_preferences(ctx.repo)
    text = writing_rules.learned_preferences_to_prompt_section(prefs)
    return _single("Learned Preferences", text, writing_rules.learned_path())


SECTION_PRODUCERS: Tuple[SectionProducer, ...] = (
    SectionProducer(1, "Book Summary", "critical", True, _always, _book_summary),
    SectionProducer(2, "Writing Rules", "critical", True, _always, _writing_rules),
    SectionProducer(
        3, "Voice Profile", "critical", False,
        lambda ctx: ctx.features.voice_profile, _voice_profile,
    ),
    SectionProducer(4, "Voice Exemplars", "high", False, _drafting_with_voice, _voice_exemplars),
    SectionProducer(5, "Anti-Patterns", "high", False, _drafting_with_voice, _anti_patterns),
    SectionProducer(6, "Arc Summary", "medium", False, _has_chapter, _arc_summary),
    SectionProducer(7, "Chapter Summary", "high", False, _has_chapter, _neighbor_summaries),
    SectionProducer(
        8, "World Model", "high", False,
        lambda ctx: ctx.features.characters and _has_chapter(ctx), _world_model,
    ),
    SectionProducer(
        9, "Narrative State", "medium", False,
        lambda ctx: ctx.features.narrative_state or ctx.features.plot_threads, _narrative_state,
    ),
    SectionProducer(
        10, "Promises Due", "medium", False,
        lambda ctx: ctx.features.plot_threads and _has_chapter(ctx), _promises_due,
    ),
    SectionProducer(11, "Retrieved Passages", "low", False, _wants_retrieval, _retrieved_passages),
    SectionProducer(12, "Learned Preferences", "low", False, _always, _learned_preferences),
)


# ---------------------------------------------------------------------------
# Gathering and budget fill
# ---------------------------------------------------------------------------

def make_section(label: str, content: str, priority: Priority, source: str) -> Optional[BriefingSection]:
    """Build a section, or ``None`` for empty/whitespace-only content."""
    if not content or not content.strip():
        return None
    text = content.strip()
    return BriefingSection(
        label=label,
        content=text,
        tokens=estimate_tokens(text),
        priority=priority,
        source=source,
    )


async def gather_sections(
    ctx: CompileContext,
    producers: Tuple[SectionProducer, ...] = SECTION_PRODUCERS,
) -> List[BriefingSection]:
    """Run producers sequentially in index order and collect non-empty sections."""
    sections: List[BriefingSection] = []
    for producer in sorted(producers, key=lambda p: p.index):
        if not producer.applies(ctx):
            continue
        try:
            drafts = await producer.produce(ctx)
        except (ScrivaError, ValueError) as exc:
            if producer.required:
                raise
            logger.warning(
                "section_omitted | section=%s | error=%s", producer.label, exc,
                extra={"section": producer.label, "task_type": ctx.task.type},
            )
            continue

        for draft in drafts:
            section = make_section(draft.label, draft.content, producer.priority, draft.source)
            if section is not None:
                sections.append(section)
    return sections


def fill_to_budget(sections: List[BriefingSection], budget: int) -> List[BriefingSection]:
    """Greedy fill: priority buckets in fixed order, discovery order within a bucket.

    A section that does not fit is skipped whole and filling continues, so a
    later smaller section can still be accepted.
    """
    ordered = [s for priority in PRIORITY_ORDER for s in sections if s.priority == priority]

    accepted: List[BriefingSection] = []
    total = 0
    for section in ordered:
        if total + section.tokens <= budget:
            accepted.append(section)
            total += section.tokens
    return accepted


async def compile_briefing(
    task: CompileTask,
    config: ScrivaConfig,
    book: Book,
    repo: Repository,
    retriever: Optional[Retriever] = None,
    field_chars: Optional[int] = None,
) -> ContextBriefing:
    started = time.monotonic()
    budget = token_budget_for_task(task.type, config.ai.context_budget)
    ctx = CompileContext(
        task=task,
        config=config,
        book=book,
        repo=repo,
        retriever=retriever,
        field_chars=field_chars or get_settings().context_field_chars,
    )

    sections = await gather_sections(ctx)
    accepted = fill_to_budget(sections, budget)
    total = sum(s.tokens for s in accepted)

    logger.info(
        "briefing_compiled | task=%s | budget=%d | accepted=%d/%d | tokens=%d",
        task.type, budget, len(accepted), len(sections), total,
        extra={
            "task_type": task.type,
            "chapter_id": task.chapter_id,
            "duration_ms": round((time.monotonic() - started) * 1000, 1),
        },
    )
    return ContextBriefing(budget=budget, sections=accepted, total_tokens=total)


def briefing_to_prompt(briefing: ContextBriefing, book_title: str) -> str:
    prompt = FRAMING.format(title=book_title)
    for section in briefing.sections:
        prompt += section.content + "\n\n"
    return prompt
