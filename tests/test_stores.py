"""Tests for the state stores: persistence, absent-state defaults and context projections."""

import json

import pytest

from scriva.config import context_path
from scriva.errors import ConflictError
from scriva.schemas import (
    AntiPattern,
    CharacterNode,
    CitationEntry,
    LearnedPreference,
    NarrativePromise,
    NarrativeState,
    PlaceNode,
    PlotThread,
    Relationship,
    RevisionEntry,
    SceneBeat,
    TensionData,
    VoiceDrift,
    VoiceExemplar,
    VoiceMetrics,
    VoiceProfile,
    WorldModel,
    WritingRules,
)
from scriva.stores import (
    book_config,
    citations,
    memory,
    narrative_state,
    voice_dna,
    world_model,
    writing_rules,
)
from scriva.stores.base import read_json, write_json, write_text


# ---------------------------------------------------------------------------
# Shared read/write behaviour
# ---------------------------------------------------------------------------

class TestAbsentState:
    """Missing or unparseable files read back as documented defaults."""

    async def test_missing_files(self, repo):
        assert await memory.read_book_summary(repo) == ""
        assert await narrative_state.read_promises(repo) == []
        assert await voice_dna.read_voice_profile(repo) == VoiceProfile()
        assert await world_model.read_world_model(repo) == WorldModel()

    async def test_invalid_json(self, repo):
        await repo.write_file(narrative_state.promises_path(), "{not json", "corrupt")
        assert await narrative_state.read_promises(repo) == []

    async def test_undecodable_bytes(self, repo):
        for path, payload in (
            (writing_rules.rules_path(), b'{"tone": ["\xff\xfe"]}'),
            (memory.book_summary_path(), b"A smuggler \xff crosses."),
        ):
            target = repo.root / path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(payload)

        assert await writing_rules.read_rules(repo) == WritingRules()
        assert await memory.read_book_summary(repo) == ""

    async def test_wrong_shape(self, repo):
        await repo.write_file(narrative_state.state_path(), "[1, 2, 3]", "corrupt")
        assert await narrative_state.read_narrative_state(repo) == NarrativeState()

    async def test_missing_config_uses_type_defaults(self, repo):
        config = await book_config.read_scriva_config(repo, "fiction")
        assert config.writing_type == "fiction"
        assert config.features.characters and config.features.rag
        assert not config.features.citations


class TestWrites:

    async def test_wire_format(self, repo):
        promise = NarrativePromise(id="p1", setup="A locked box", setup_chapter="ch-1", override=True)
        await narrative_state.save_promises(repo, [promise])

        raw = json.loads((await repo.read_file(narrative_state.promises_path())).content)

        assert raw == [{
            "id": "p1",
            "setup": "A locked box",
            "setupChapter": "ch-1",
            "status": "planted",
            "urgency": "medium",
            "_override": True,
        }]
        assert await narrative_state.read_promises(repo) == [promise]

    async def test_unknown_fields_survive_round_trip(self, repo):
        raw = [{"id": "t1", "name": "Heist", "status": "open", "chapters": [], "summary": "", "color": "red"}]
        await repo.write_file(narrative_state.threads_path(), json.dumps(raw), "hand edit")

        threads = await narrative_state.read_threads(repo)
        await narrative_state.save_threads(repo, threads)

        stored = json.loads((await repo.read_file(narrative_state.threads_path())).content)
        assert stored[0]["color"] == "red"

    async def test_overwrite_fetches_current_token(self, repo):
        await memory.write_book_summary(repo, "one")
        await memory.write_book_summary(repo, "two")
        assert await memory.read_book_summary(repo) == "two"

    async def test_conflict_propagates(self, repo):
        path = context_path("rules.json")
        await write_json(repo, path, {"tone": []}, "create")

        class RacingRepository:
            """Another writer lands between the token fetch and our write."""

            async def read_file(self, p):
                return await repo.read_file(p)

            async def write_file(self, p, content, message, sha=None):
                await repo.write_file(p, "{}", "someone else", sha=sha)
                return await repo.write_file(p, content, message, sha=sha)

        with pytest.raises(ConflictError):
            await write_text(RacingRepository(), path, "{\"tone\": [\"dark\"]}", "ours")

    async def test_read_json_with_custom_default(self, repo):
        value = await read_json(repo, "nowhere.json", dict, lambda: {"fallback": True})
        assert value == {"fallback": True}


# ---------------------------------------------------------------------------
# Memory
# ---------------------------------------------------------------------------

class TestMemory:

    async def test_summaries(self, repo):
        await memory.write_arc_summary(repo, "part-2", "Arc two.")
        await memory.write_chapter_summary(repo, "ch-4", "Chapter four.")

        assert await memory.read_arc_summary(repo, "part-2") == "Arc two."
        assert await memory.read_chapter_summary(repo, "ch-4") == "Chapter four."
        assert (await repo.read_file(".scriva/memory/chapters/ch-4.md")).content == "Chapter four."

    async def test_scene_beats(self, repo):
        beats = [SceneBeat(id="s1", summary="Arrival", characters=["Mara"], emotional_tone="uneasy", position=0.1)]
        await memory.write_scene_beats(repo, "ch-1", beats)
        assert await memory.read_scene_beats(repo, "ch-1") == beats


# ---------------------------------------------------------------------------
# World model
# ---------------------------------------------------------------------------

WORLD = WorldModel(
    characters=[
        CharacterNode(
            id="c1", name="Mara", aliases=["The Captain"], role="protagonist",
            current_state="Exhausted and " + "very " * 100 + "angry",
            relationships=[Relationship(target="Tobin", type="rival")],
            appearances=["ch-1", "ch-2"],
        ),
        CharacterNode(id="c2", name="Tobin", role="antagonist", appearances=["ch-3"]),
    ],
    places=[PlaceNode(id="p1", name="The Flats", chapters=["ch-2"])],
)


class TestWorldModel:

    async def test_round_trip_across_files(self, repo):
        await world_model.save_world_model(repo, WORLD)
        assert await world_model.read_world_model(repo) == WORLD
        assert (await repo.read_file(".scriva/world/places.json")).content

    def test_queries(self):
        assert [c.id for c in world_model.get_characters_in_chapter(WORLD, "ch-2")] == ["c1"]
        assert world_model.get_character_by_name(WORLD, "the captain").id == "c1"
        assert world_model.get_character_by_name(WORLD, "Nobody") is None

    def test_context_projection(self):
        ctx = world_model.world_model_to_context(WORLD, "ch-2", field_chars=18)

        assert ctx.startswith("[World Model]\nCharacters:\n- Mara (protagonist): Exhausted and very…")
        assert ". Relationships: Tobin (rival)" in ctx
        assert "Tobin (antagonist)" not in ctx
        assert ctx.endswith("Places: The Flats\n")


# ---------------------------------------------------------------------------
# Narrative state
# ---------------------------------------------------------------------------

class TestNarrativeState:

    async def test_read_narrative_gathers_all_four(self, repo):
        await narrative_state.save_tension(repo, [TensionData(chapter_id="ch-1", tension_level=7)])
        state, promises, threads, tension = await narrative_state.read_narrative(repo)
        assert state == NarrativeState()
        assert promises == threads == []
        assert tension[0].tension_level == 7

    def test_promises_due_excludes_locked_and_closed(self):
        promises = [
            NarrativePromise(id="a", status="planted"),
            NarrativePromise(id="b", status="growing", override=True),
            NarrativePromise(id="c", status="due"),
            NarrativePromise(id="d", status="paid"),
            NarrativePromise(id="e", status="abandoned"),
        ]
        assert [p.id for p in narrative_state.get_promises_due(promises, "ch-9")] == ["a", "c"]

    def test_thread_queries(self):
        threads = [
            PlotThread(id="t1", status="open", chapters=["ch-1"]),
            PlotThread(id="t2", status="resolved", chapters=["ch-1", "ch-2"]),
            PlotThread(id="t3", status="progressing", chapters=["ch-2"]),
        ]
        assert [t.id for t in narrative_state.get_active_threads(threads)] == ["t1", "t3"]
        assert [t.id for t in narrative_state.get_threads_for_chapter(threads, "ch-2")] == ["t2", "t3"]

    def test_tension_curve_sorted(self):
        tension = [TensionData(chapter_id="ch-3"), TensionData(chapter_id="ch-1")]
        assert [t.chapter_id for t in narrative_state.get_tension_curve(tension)] == ["ch-1", "ch-3"]

    def test_context(self):
        state = NarrativeState(current_point="Crossing", reader_expects=["A storm"])
        promises = [NarrativePromise(id="p1", setup="The crate", setup_chapter="ch-1", urgency="high")]
        threads = [PlotThread(id="t1", name="Debt", status="open")]

        ctx = narrative_state.narrative_to_context(state, promises, threads)

        assert ctx == (
            "[Narrative State]\n"
            "Current point: Crossing\n"
            "Reader expects: A storm\n"
            "Open promises: The crate (planted ch.ch-1, high urgency)\n"
            "Active threads: Debt (open)\n"
        )

    def test_promises_due_context(self):
        promises = [NarrativePromise(id="p1", setup="The crate", setup_chapter="ch-1", urgency="low")]
        assert narrative_state.promises_due_to_context(promises) == (
            "[Promises Due]\n- The crate (planted ch.ch-1, low)"
        )
        assert narrative_state.promises_due_to_context([]) == ""


# ---------------------------------------------------------------------------
# Voice DNA
# ---------------------------------------------------------------------------

class TestVoiceDna:

    def test_record_drift_upserts_by_chapter(self):
        drift = [VoiceDrift(chapter_id="ch-1", consistency_score=0.9), VoiceDrift(chapter_id="ch-2")]
        updated = voice_dna.record_drift(drift, VoiceDrift(chapter_id="ch-1", consistency_score=0.4))
        assert [(d.chapter_id, d.consistency_score) for d in updated] == [("ch-2", 1.0), ("ch-1", 0.4)]
        assert len(drift) == 2

    def test_exemplars_by_quality(self):
        exemplars = [
            VoiceExemplar(id="r", text="ref", tags=["dialogue"], quality="reference"),
            VoiceExemplar(id="s", text="sig", tags=["description"], quality="signature"),
            VoiceExemplar(id="x", text="off", tags=["action"], quality="signature"),
            VoiceExemplar(id="g", text="strong", tags=["dialogue", "action"], quality="strong"),
        ]
        picked = voice_dna.get_exemplars_for_craft_element(exemplars, ["dialogue", "description"])
        assert [e.id for e in picked] == ["s", "g", "r"]

    def test_compact_context(self):
        profile = VoiceProfile(
            summary="Lean.",
            metrics=VoiceMetrics(
                avg_sentence_length=12.0, pov_style="first person", tense_usage="present",
                vocabulary_richness="plain", metaphor_usage="rare", paragraph_rhythm="short",
            ),
        )
        assert voice_dna.voice_to_compact_context(profile) == (
            "[Voice Profile]\nLean.\n"
            "Style: first person, present, avg 12 words/sentence, plain vocabulary, "
            "rare metaphors, short paragraphs.\n"
        )

    def test_exemplars_context_limited_to_three(self):
        exemplars = [VoiceExemplar(id=str(i), text=f"text {i}", tags=["narrative"]) for i in range(5)]
        ctx = voice_dna.exemplars_to_context(exemplars)
        assert ctx.count("(narrative):") == 3
        assert voice_dna.exemplars_to_context([]) == ""

    def test_anti_patterns_context(self):
        patterns = [AntiPattern(id="a", original="x" * 150, correction="Better.", reason="purple")]
        ctx = voice_dna.anti_patterns_to_context(patterns)
        assert ctx.startswith("[Anti-Patterns - DO NOT write like this]\n- purple: \"")
        assert "x" * 100 + "…\"" in ctx
        assert ctx.endswith(" -> \"Better.\"\n")


# ---------------------------------------------------------------------------
# Writing rules, learned preferences, revision log
# ---------------------------------------------------------------------------

class TestWritingRules:

    def test_edit_responses_accumulate(self):
        prefs = writing_rules.apply_edit_response([], "filter words", accepted=False, now_ms=1)
        prefs = writing_rules.apply_edit_response(prefs, "filter words", accepted=False, now_ms=2)
        prefs = writing_rules.apply_edit_response(prefs, "filter words", accepted=True, now_ms=3)

        assert len(prefs) == 1
        assert prefs[0].count == 3
        assert prefs[0].last_seen == 3
        assert prefs[0].author_response == "accepted"

    async def test_record_edit_response_persists(self, repo):
        await writing_rules.record_edit_response(repo, "semicolons", accepted=False)
        stored = await writing_rules.read_learned_preferences(repo)
        assert stored[0].pattern == "semicolons"
        assert stored[0].author_response == "rejected"

    def test_learned_section_filters_and_caps(self):
        prefs = [
            LearnedPreference(pattern=f"p{i}", author_response="rejected", count=2, inferred_rule="cut" if i == 0 else None)
            for i in range(12)
        ]
        prefs.append(LearnedPreference(pattern="once", author_response="rejected", count=1))
        prefs.append(LearnedPreference(pattern="liked", author_response="accepted", count=5))

        section = writing_rules.learned_preferences_to_prompt_section(prefs)

        lines = section.strip().split("\n")
        assert lines[0] == "[Learned Preferences - Author has rejected these patterns]"
        assert lines[1] == "- p0 (cut) [rejected 2x]"
        assert len(lines) == 11
        assert "once" not in section and "liked" not in section

    def test_learned_section_empty(self):
        assert writing_rules.learned_preferences_to_prompt_section([]) == ""

    async def test_revision_log_appends(self, repo):
        first = RevisionEntry(id="r1", chapter_id="ch-1", timestamp=1, type="ai-edit", tokens_changed=40)
        second = RevisionEntry(id="r2", chapter_id="ch-2", timestamp=2, type="structural")

        await writing_rules.append_revision_entry(repo, first)
        log = await writing_rules.append_revision_entry(repo, second)

        assert [e.id for e in log] == ["r1", "r2"]
        assert await writing_rules.read_revision_log(repo) == [first, second]


# ---------------------------------------------------------------------------
# Citations
# ---------------------------------------------------------------------------

ARTICLE = CitationEntry(
    id="c1", type="article", title="Salt and Empire", authors=["Kurlansky, M.", "Doe, J."],
    year=2002, journal="History Today", volume="52", issue="3", pages="10-19", doi="10.1/xyz",
)


class TestCitations:

    def test_create_fills_defaults(self):
        entry = citations.create_citation({"title": "Salt"})
        assert len(entry.id) == 7
        assert entry.type == "book"
        assert entry.authors == []

    async def test_round_trip(self, repo):
        await citations.save_citations(repo, [ARTICLE])
        assert await citations.read_citations(repo) == [ARTICLE]

    def test_apa(self):
        assert citations.format_citation(ARTICLE, "apa") == (
            "Kurlansky, M., Doe, J. (2002). Salt and Empire. History Today, 52(3), 10-19. "
            "https://doi.org/10.1/xyz"
        )

    def test_chicago(self):
        assert citations.format_citation(ARTICLE, "chicago") == (
            "Kurlansky, M., Doe, J.. 2002. \"Salt and Empire.\" History Today 52, no. 3 (2002): 10-19."
        )

    def test_mla(self):
        assert citations.format_citation(ARTICLE, "mla") == (
            "Kurlansky, M., Doe, J.. \"Salt and Empire.\" History Today 52.3 (2002): 10-19."
        )

    def test_minimal_book(self):
        entry = CitationEntry(id="b", title="Salt", authors=["Kurlansky, M."])
        assert citations.format_citation(entry, "apa") == "Kurlansky, M.. Salt.."

    def test_unknown_style(self):
        with pytest.raises(ValueError):
            citations.format_citation(ARTICLE, "harvard")
