"""Tests for episode assembly.

Tests:
- Full protocol and chain episodes from a complete snapshot
- Reproducibility for identical inputs
- Semantic topics and templates never repeat within an episode
- Degraded episodes and invalid slot matrices
- Weekly schedule
"""

from __future__ import annotations

import json

import pytest

from defi_quiz.builder import EpisodeBuilder, build_episode, day_name, episode_type_for_date
from defi_quiz.core.difficulty import compute_difficulty
from defi_quiz.data.snapshot import parse_snapshot
from defi_quiz.errors import ConfigurationError
from defi_quiz.explain import Explanation
from factories import protocol_snapshot


def _write_slots(directory, episode_type, slots, fallbacks=""):
    lines = [f"episode_type: {episode_type}", "slots:"]
    lines.extend(f"  {name}: [{', '.join(ids)}]" for name, ids in slots.items())
    (directory / f"{episode_type}.yaml").write_text("\n".join(lines) + "\n")
    (directory / "fallbacks.yaml").write_text(fallbacks or f"{episode_type}: []\n")


# ---------------------------------------------------------------------------
# Full builds
# ---------------------------------------------------------------------------


class TestProtocolEpisode:
    def test_five_questions(self, protocol_ctx):
        episode = build_episode(protocol_ctx)
        assert len(episode.questions) == 5
        assert not episode.degraded
        assert episode.unfilled_slots == []
        assert [q.slot for q in episode.questions] == ["A", "B", "C", "D", "E"]
        assert [q.qid for q in episode.questions] == ["q1", "q2", "q3", "q4", "q5"]

    def test_episode_id(self, protocol_ctx):
        episode = build_episode(protocol_ctx)
        assert episode.episode_id == "2024-06-03:protocol:aave"
        assert episode.topic["slug"] == "aave"
        assert episode.topic["chains"][0] == "Ethereum"

    def test_fingerprint_leads(self, protocol_ctx):
        first = build_episode(protocol_ctx).questions[0]
        assert first.draft.template_id == "P1_FINGERPRINT"
        assert first.correct_choice == "Aave"

    def test_topics_and_templates_unique(self, protocol_ctx):
        episode = build_episode(protocol_ctx)
        seen: set[str] = set()
        for question in episode.questions:
            assert seen.isdisjoint(question.topics)
            seen.update(question.topics)
        template_ids = [q.draft.template_id for q in episode.questions]
        assert len(template_ids) == len(set(template_ids))

    def test_answers_are_valid(self, protocol_ctx):
        for question in build_episode(protocol_ctx).questions:
            assert question.draft.validate() == []
            assert question.score == compute_difficulty(question.draft.signals, question.draft.template_id)

    def test_build_log(self, protocol_ctx):
        episode = build_episode(protocol_ctx)
        decisions = {entry.decision for entry in episode.build_log}
        assert decisions & {"selected", "adjusted"}
        slots = {entry.slot for entry in episode.build_log if entry.decision in ("selected", "adjusted", "fallback")}
        assert slots == {"A", "B", "C", "D", "E"}


class TestChainEpisode:
    def test_five_questions(self, chain_ctx):
        episode = build_episode(chain_ctx)
        assert len(episode.questions) == 5
        assert not episode.degraded
        assert episode.episode_id == "2024-06-04:chain:arbitrum"
        assert episode.questions[0].draft.template_id == "C1_FINGERPRINT"

    def test_topics_unique(self, chain_ctx):
        topics = [t for q in build_episode(chain_ctx).questions for t in q.topics]
        assert len(topics) == len(set(topics))


class TestReproducibility:
    def test_same_inputs_same_episode(self, protocol_ctx):
        first = build_episode(protocol_ctx).to_dict()
        second = build_episode(protocol_ctx).to_dict()
        assert first == second

    def test_builder_is_reusable(self, chain_ctx):
        builder = EpisodeBuilder(chain_ctx)
        assert builder.build().to_dict() == builder.build().to_dict()

    def test_seed_depends_on_date(self, protocol_ctx):
        other = parse_snapshot(protocol_snapshot(), date="2024-06-05")
        assert EpisodeBuilder(protocol_ctx).base_seed != EpisodeBuilder(other).base_seed

    def test_serializable(self, protocol_ctx):
        payload = json.dumps(build_episode(protocol_ctx).to_dict())
        data = json.loads(payload)
        assert data["episode_type"] == "protocol"
        assert data["degraded"] is False
        question = data["questions"][0]
        for key in (
            "qid", "slot", "template_id", "format", "prompt", "choices", "answer_index",
            "explanation", "llm_fallback", "difficulty_target", "difficulty", "score",
            "signals", "semantic_topics", "source",
        ):
            assert key in question
        assert "clues" in question


# ---------------------------------------------------------------------------
# Degraded and invalid configurations
# ---------------------------------------------------------------------------


class TestDegraded:
    def test_unfillable_slots_are_reported(self, protocol_ctx, tmp_path):
        # Chain templates never pass for a protocol, and there are no fallbacks
        _write_slots(
            tmp_path,
            "protocol",
            {
                "A": ["P1_FINGERPRINT"],
                "B": ["C2_CHAIN_COMPARISON"],
                "C": ["C5_TOP_BY_FEES"],
                "D": ["C3_ATH_TIMING"],
                "E": ["C8_30D_DIRECTION"],
            },
        )
        episode = build_episode(protocol_ctx, slots_dir=tmp_path)
        assert episode.degraded
        assert episode.unfilled_slots == ["B", "C", "D", "E"]
        assert [q.qid for q in episode.questions] == ["q1"]
        exhausted = [e for e in episode.build_log if e.reason == "fallbacks_exhausted"]
        assert [e.slot for e in exhausted] == ["B", "C", "D", "E"]

    def test_unknown_template_in_matrix(self, protocol_ctx, tmp_path):
        _write_slots(tmp_path, "protocol", {name: ["P99_UNKNOWN"] for name in "ABCDE"})
        with pytest.raises(ConfigurationError, match="P99_UNKNOWN"):
            build_episode(protocol_ctx, slots_dir=tmp_path)

    def test_missing_slot(self, protocol_ctx, tmp_path):
        _write_slots(tmp_path, "protocol", {name: ["P7_CATEGORY"] for name in "ABCD"})
        with pytest.raises(ConfigurationError, match="slots must be exactly"):
            build_episode(protocol_ctx, slots_dir=tmp_path)

    def test_missing_matrix_file(self, chain_ctx, tmp_path):
        with pytest.raises(FileNotFoundError):
            build_episode(chain_ctx, slots_dir=tmp_path)


class TestExplainerInjection:
    def test_custom_explainer(self, protocol_ctx):
        class Fixed:
            def explain(self, draft, ctx):
                return Explanation(text=f"about {draft.template_id}", llm_fallback=False)

        episode = build_episode(protocol_ctx, explainer=Fixed())
        for question in episode.questions:
            assert question.explanation == f"about {question.draft.template_id}"
            assert question.llm_fallback is False

    def test_default_is_templated(self, protocol_ctx):
        for question in build_episode(protocol_ctx).questions:
            assert question.llm_fallback is True
            assert question.explanation


# ---------------------------------------------------------------------------
# Schedule
# ---------------------------------------------------------------------------


class TestSchedule:
    @pytest.mark.parametrize(
        "date,episode_type",
        [
            ("2024-06-03", "protocol"),
            ("2024-06-04", "chain"),
            ("2024-06-05", "protocol"),
            ("2024-06-06", "chain"),
            ("2024-06-07", "protocol"),
            ("2024-06-08", "chain"),
            ("2024-06-09", "protocol"),
        ],
    )
    def test_weekday_mapping(self, date, episode_type):
        assert episode_type_for_date(date) == episode_type

    def test_day_name(self):
        assert day_name("2024-06-03") == "Monday"

    def test_invalid_date(self):
        with pytest.raises(ValueError, match="YYYY-MM-DD"):
            episode_type_for_date("06/03/2024")
