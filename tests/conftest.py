import pytest

from scriva.config import get_settings
from scriva.services.repository import LocalRepository


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch, tmp_path):
    """Isolate every test from the developer's environment and .env file."""
    monkeypatch.setenv("SCRIVA_LOG_FILE", str(tmp_path / "scriva.log"))
    monkeypatch.setenv("SCRIVA_EMBEDDING_BASE_DELAY", "0")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def repo(tmp_path) -> LocalRepository:
    """An empty book repository on disk."""
    root = tmp_path / "book-repo"
    root.mkdir()
    return LocalRepository(root)
