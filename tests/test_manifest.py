"""Tests for scriva.retrieval.manifest: content fingerprints and staleness."""

from scriva.retrieval.manifest import (
    default_manifest,
    hash_content,
    is_chapter_stale,
    update_manifest_for_chapter,
)


class TestHashContent:

    def test_known_values(self):
        assert hash_content("") == "0"
        assert hash_content("a") == "2p"
        assert hash_content("ab") == "2e9"

    def test_order_sensitive(self):
        assert hash_content("ab") != hash_content("ba")

    def test_wraps_to_signed_32_bits(self):
        value = hash_content("The salt road ran east for three days." * 20)
        digits = value.lstrip("-")
        assert int(digits, 36) <= 2 ** 31

    def test_non_bmp_characters_hash_as_surrogate_pairs(self):
        # U+1F30A is the surrogate pair D83C DF0A
        expected = ((0xD83C * 31) + 0xDF0A)
        assert int(hash_content("\U0001F30A"), 36) == expected


class TestStaleness:

    def test_absent_chapter_is_stale(self):
        assert is_chapter_stale(default_manifest(), "ch-1", "text")

    def test_round_trip(self):
        manifest = update_manifest_for_chapter(default_manifest(), "ch-1", "text", 4, now_ms=1000)

        assert not is_chapter_stale(manifest, "ch-1", "text")
        assert is_chapter_stale(manifest, "ch-1", "text!")

    def test_only_target_chapter_changes(self):
        first = update_manifest_for_chapter(default_manifest(), "ch-1", "one", 2, now_ms=1)
        second = update_manifest_for_chapter(first, "ch-2", "two", 5, now_ms=2)

        assert second.chapter_hashes["ch-1"] == first.chapter_hashes["ch-1"]
        assert second.chunk_count == 5
        assert second.last_indexed == 2
        assert "ch-2" not in first.chapter_hashes

    def test_default_manifest_uses_settings(self, monkeypatch):
        from scriva.config import get_settings

        monkeypatch.setenv("SCRIVA_EMBEDDING_MODEL", "voyage-3")
        get_settings.cache_clear()
        manifest = default_manifest()
        assert manifest.model == "voyage-3"
        assert manifest.dimensions == 1024
        assert manifest.version == "1.0.0"
