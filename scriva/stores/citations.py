"""Citation store and bibliography formatting (APA, Chicago, MLA)."""
import secrets
import string
from typing import Any, Dict, List, Literal

from scriva.config import context_path
from scriva.schemas import CitationEntry
from scriva.services.repository import Repository
from scriva.stores.base import read_json, write_json

CitationStyle = Literal["apa", "chicago", "mla"]

_ID_ALPHABET = string.ascii_lowercase + string.digits


def citations_path() -> str:
    return context_path("citations.json")


def generate_id(length: int = 7) -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


async def read_citations(repo: Repository) -> List[CitationEntry]:
    return await read_json(repo, citations_path(), List[CitationEntry], list)


async def save_citations(repo: Repository, citations: List[CitationEntry]) -> None:
    await write_json(repo, citations_path(), citations, "Update citations")


def create_citation(partial: Dict[str, Any]) -> CitationEntry:
    """Build an entry from a partial dict, filling id, type, title and authors."""
    data = dict(partial)
    data["id"] = data.get("id") or generate_id()
    data["type"] = data.get("type") or "book"
    data["title"] = data.get("title") or ""
    data["authors"] = data.get("authors") or []
    return CitationEntry.model_validate(data)


def format_citation(entry: CitationEntry, style: CitationStyle) -> str:
    authors = ", ".join(entry.authors)

    if style == "apa":
        result = authors
        if entry.year:
            result += f" ({entry.year})"
        result += f". {entry.title}."
        if entry.journal:
            result += f" {entry.journal}"
        if entry.volume:
            result += f", {entry.volume}"
        if entry.issue:
            result += f"({entry.issue})"
        if entry.pages:
            result += f", {entry.pages}"
        result += "."
        if entry.doi:
            result += f" https://doi.org/{entry.doi}"
        return result

    if style == "chicago":
        result = f"{authors}. "
        if entry.year:
            result += f"{entry.year}. "
        result += f"\"{entry.title}.\""
        if entry.journal:
            result += f" {entry.journal}"
        if entry.volume:
            result += f" {entry.volume}"
        if entry.issue:
            result += f", no. {entry.issue}"
        if entry.year:
            result += f" ({entry.year})"
        if entry.pages:
            result += f": {entry.pages}"
        return result + "."

    if style == "mla":
        result = f"{authors}. \"{entry.title}.\" "
        if entry.journal:
            result += f"{entry.journal} "
        if entry.volume:
            result += entry.volume
        if entry.issue:
            result += f".{entry.issue}"
        if entry.year:
            result += f" ({entry.year})"
        if entry.pages:
            result += f": {entry.pages}"
        return result + "."

    raise ValueError(f"Unknown citation style: {style}")
