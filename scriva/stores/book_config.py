"""Engine configuration (``.scriva/config.json``) and manuscript structure (``book.json``)."""
from scriva.config import context_path
from scriva.schemas import Book, ScrivaConfig, default_scriva_config
from scriva.services.repository import Repository
from scriva.stores.base import read_json, write_json

BOOK_PATH = "book.json"


def config_path() -> str:
    return context_path("config.json")


async def read_scriva_config(repo: Repository, writing_type: str = "custom") -> ScrivaConfig:
    """Stored config, or the defaults for *writing_type* when none exists yet."""
    return await read_json(
        repo, config_path(), ScrivaConfig, lambda: default_scriva_config(writing_type),
    )


async def save_scriva_config(repo: Repository, config: ScrivaConfig) -> None:
    await write_json(repo, config_path(), config, "Update Scriva config")


async def read_book(repo: Repository) -> Book:
    return await read_json(repo, BOOK_PATH, Book, Book)


async def save_book(repo: Repository, book: Book) -> None:
    await write_json(repo, BOOK_PATH, book, "Update book structure")
