"""Tests for scriva.retrieval.chunking: scene/paragraph chunking and chunk tagging."""

import pytest

from scriva.retrieval.chunking import (
    MAX_CHUNK_TOKENS,
    character_names,
    chunk_chapter,
    classify_chunk_type,
    find_characters,
)
from scriva.schemas import CharacterNode, WorldModel


WORLD = WorldModel(characters=[
    CharacterNode(id="c1", name="Mara", aliases=["The Captain"]),
    CharacterNode(id="c2", name="Tobin", aliases=[""]),
])


class TestChunkChapter:

    def test_short_chapter_is_one_chunk(self):
        content = "First paragraph.\n\nSecond paragraph.\n\nThird paragraph."

        chunks = chunk_chapter(content, "ch-1", "book/01.md")

        assert len(chunks) == 1
        chunk = chunks[0]
        assert chunk.text == "First paragraph.\n\nSecond paragraph.\n\nThird paragraph."
        assert chunk.id == "ch-1-0"
        assert chunk.chapter_id == "ch-1"
        assert chunk.source == "book/01.md"
        assert chunk.position == 0.0
        assert chunk.tokens == -(-len(chunk.text) // 4)

    def test_asterisk_scene_break_splits(self):
        content = "Before the storm.\n\n***\n\nAfter the storm."

        chunks = chunk_chapter(content, "ch-2", "")

        assert [c.text for c in chunks] == ["Before the storm.", "After the storm."]
        assert [c.id for c in chunks] == ["ch-2-0", "ch-2-1"]
        assert chunks[1].position == pytest.approx(content.index("After") / len(content))

    @pytest.mark.parametrize("rule", ["---", "* * *", "  ***  "])
    def test_other_scene_break_forms(self, rule):
        content = f"One.\n{rule}\nTwo."
        assert [c.text for c in chunk_chapter(content, "ch", "")] == ["One.", "Two."]

    def test_overflowing_paragraph_starts_new_chunk(self):
        paragraphs = ["a" * 600, "b" * 600, "c" * 600]

        chunks = chunk_chapter("\n\n".join(paragraphs), "ch-1", "")

        assert [c.text for c in chunks] == ["a" * 600 + "\n\n" + "b" * 600, "c" * 600]
        assert all(c.tokens <= MAX_CHUNK_TOKENS for c in chunks)

    def test_oversized_paragraph_is_its_own_chunk(self):
        chunks = chunk_chapter("short\n\n" + "x" * 2000 + "\n\nshort again", "ch-1", "")
        assert [len(c.text) for c in chunks] == [5, 2000, 11]
        assert chunks[1].tokens == 500

    def test_reconstruction(self):
        paragraphs = [f"Paragraph {i} " + "word " * (i * 40) for i in range(12)]
        content = "\n\n".join(p.strip() for p in paragraphs[:6]) + "\n\n***\n\n" + "\n\n".join(
            p.strip() for p in paragraphs[6:]
        )

        chunks = chunk_chapter(content, "ch-1", "")

        assert "\n\n".join(c.text for c in chunks) == "\n\n".join(p.strip() for p in paragraphs)

    def test_positions_increase_and_stay_in_range(self):
        content = "\n\n".join("z" * 900 for _ in range(6))
        positions = [c.position for c in chunk_chapter(content, "ch-1", "")]
        assert positions == sorted(positions)
        assert all(0 <= p < 1 for p in positions)
        assert positions[1] == pytest.approx(content.index("z" * 900, 902) / len(content))

    def test_empty_content(self):
        assert chunk_chapter("", "ch-1", "") == []
        assert chunk_chapter("\n\n   \n\n", "ch-1", "") == []

    def test_characters_tagged(self):
        chunks = chunk_chapter("THE CAPTAIN waved at mara.", "ch-1", "", WORLD)
        assert chunks[0].characters == ["Mara", "The Captain"]


class TestClassifyChunkType:

    @pytest.mark.parametrize("text,expected", [
        ('"Hold the line," she said.\n"Why?" he asked.\nThe wind rose.', "dialogue"),
        ("She thought about the harbor.", "interiority"),
        ("He felt the boat shift and ran.", "interiority"),
        ("He ran for the door and slammed it.", "action"),
        ("The room smelled of tar.", "description"),
        ("It was the third day.", "narrative"),
        ("She realized the truth.", "narrative"),
        ('"Stop."\nShe left.', "narrative"),
        ("He was running late.", "narrative"),
    ])
    def test_first_matching_rule_wins(self, text, expected):
        assert classify_chunk_type(text) == expected

    def test_curly_quotes_count(self):
        assert classify_chunk_type("“Go,” she said.\n“Now.”") == "dialogue"


class TestCharacters:

    def test_names_include_aliases(self):
        assert character_names(WORLD) == ["Mara", "The Captain", "Tobin", ""]
        assert character_names(None) == []

    def test_empty_names_ignored(self):
        assert find_characters("anything", ["", "Tobin"]) == []

    def test_case_insensitive_substring(self):
        assert find_characters("tobin's boat", ["Tobin"]) == ["Tobin"]
