"""Narrative state store: the story-point singleton, promises, plot threads and tension."""
import asyncio
from typing import List, Optional, Tuple

from scriva.config import context_path, get_settings
from scriva.context.tokens import clip
from scriva.schemas import NarrativePromise, NarrativeState, PlotThread, TensionData
from scriva.services.repository import Repository
from scriva.stores.base import read_json, write_json

OPEN_PROMISE_STATUSES = ("planted", "growing", "due")
ACTIVE_THREAD_STATUSES = ("open", "progressing")


def state_path() -> str:
    return context_path("narrative", "state.json")


def promises_path() -> str:
    return context_path("narrative", "promises.json")


def threads_path() -> str:
    return context_path("narrative", "threads.json")


def tension_path() -> str:
    return context_path("narrative", "tension.json")


async def read_narrative_state(repo: Repository) -> NarrativeState:
    return await read_json(repo, state_path(), NarrativeState, NarrativeState)


async def read_promises(repo: Repository) -> List[NarrativePromise]:
    return await read_json(repo, promises_path(), List[NarrativePromise], list)


async def read_threads(repo: Repository) -> List[PlotThread]:
    return await read_json(repo, threads_path(), List[PlotThread], list)


async def read_tension(repo: Repository) -> List[TensionData]:
    return await read_json(repo, tension_path(), List[TensionData], list)


async def read_narrative(
    repo: Repository,
) -> Tuple[NarrativeState, List[NarrativePromise], List[PlotThread], List[TensionData]]:
    """Read all four narrative files concurrently."""
    return await asyncio.gather(
        read_narrative_state(repo),
        read_promises(repo),
        read_threads(repo),
        read_tension(repo),
    )


async def save_narrative_state(repo: Repository, state: NarrativeState) -> None:
    await write_json(repo, state_path(), state, "Update narrative state")


async def save_promises(repo: Repository, promises: List[NarrativePromise]) -> None:
    await write_json(repo, promises_path(), promises, "Update narrative promises")


async def save_threads(repo: Repository, threads: List[PlotThread]) -> None:
    await write_json(repo, threads_path(), threads, "Update plot threads")


async def save_tension(repo: Repository, tension: List[TensionData]) -> None:
    await write_json(repo, tension_path(), tension, "Update tension data")


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def get_promises_due(promises: List[NarrativePromise], chapter_id: str) -> List[NarrativePromise]:
    """Open promises the author has not locked.

    ``chapter_id`` is accepted for call-site symmetry; dueness is not yet
    chapter-relative.
    """
    return [
        p for p in promises
        if p.status in OPEN_PROMISE_STATUSES and not p.override
    ]


def get_active_threads(threads: List[PlotThread]) -> List[PlotThread]:
    return [t for t in threads if t.status in ACTIVE_THREAD_STATUSES]


def get_threads_for_chapter(threads: List[PlotThread], chapter_id: str) -> List[PlotThread]:
    return [t for t in threads if chapter_id in t.chapters]


def get_tension_curve(tension: List[TensionData]) -> List[TensionData]:
    return sorted(tension, key=lambda t: t.chapter_id)


# ---------------------------------------------------------------------------
# Context projection
# ---------------------------------------------------------------------------

def narrative_to_context(
    state: NarrativeState,
    promises: List[NarrativePromise],
    threads: List[PlotThread],
    field_chars: Optional[int] = None,
) -> str:
    limit = field_chars or get_settings().context_field_chars
    ctx = "[Narrative State]\n"
    ctx += f"Current point: {clip(state.current_point, limit)}\n"
    if state.reader_expects:
        ctx += "Reader expects: " + "; ".join(clip(e, limit) for e in state.reader_expects) + "\n"

    open_promises = [p for p in promises if p.status in OPEN_PROMISE_STATUSES]
    if open_promises:
        ctx += "Open promises: " + "; ".join(
            f"{clip(p.setup, limit)} (planted ch.{p.setup_chapter}, {p.urgency} urgency)"
            for p in open_promises
        ) + "\n"

    active = get_active_threads(threads)
    if active:
        ctx += "Active threads: " + "; ".join(
            f"{clip(t.name, limit)} ({t.status})" for t in active
        ) + "\n"

    return ctx


def promises_due_to_context(promises: List[NarrativePromise], field_chars: Optional[int] = None) -> str:
    if not promises:
        return ""
    limit = field_chars or get_settings().context_field_chars
    return "[Promises Due]\n" + "\n".join(
        f"- {clip(p.setup, limit)} (planted ch.{p.setup_chapter}, {p.urgency})"
        for p in promises
    )
