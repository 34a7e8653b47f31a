"""Book, arc and chapter summaries (markdown) plus per-chapter scene beats."""
from typing import List

from scriva.config import context_path
from scriva.schemas import SceneBeat
from scriva.services.repository import Repository
from scriva.stores.base import read_json, read_text, write_json, write_text


def book_summary_path() -> str:
    return context_path("memory", "book.md")


def arc_summary_path(part_id: str) -> str:
    return context_path("memory", "arcs", f"{part_id}.md")


def chapter_summary_path(chapter_id: str) -> str:
    return context_path("memory", "chapters", f"{chapter_id}.md")


def scene_beats_path(chapter_id: str) -> str:
    return context_path("memory", "scenes", f"{chapter_id}.json")


async def read_book_summary(repo: Repository) -> str:
    return await read_text(repo, book_summary_path())


async def write_book_summary(repo: Repository, summary: str) -> None:
    await write_text(repo, book_summary_path(), summary, "Update book summary")


async def read_arc_summary(repo: Repository, part_id: str) -> str:
    return await read_text(repo, arc_summary_path(part_id))


async def write_arc_summary(repo: Repository, part_id: str, summary: str) -> None:
    await write_text(repo, arc_summary_path(part_id), summary, f"Update arc summary: {part_id}")


async def read_chapter_summary(repo: Repository, chapter_id: str) -> str:
    return await read_text(repo, chapter_summary_path(chapter_id))


async def write_chapter_summary(repo: Repository, chapter_id: str, summary: str) -> None:
    await write_text(
        repo, chapter_summary_path(chapter_id), summary, f"Update chapter summary: {chapter_id}",
    )


async def read_scene_beats(repo: Repository, chapter_id: str) -> List[SceneBeat]:
    return await read_json(repo, scene_beats_path(chapter_id), List[SceneBeat], list)


async def write_scene_beats(repo: Repository, chapter_id: str, beats: List[SceneBeat]) -> None:
    await write_json(
        repo, scene_beats_path(chapter_id), beats, f"Update scene beats: {chapter_id}",
    )
