"""Tests for slot matrices and quantitative fallbacks.

Tests:
- Packaged YAML matrices and fallback catalog load and validate
- Shorthand slot syntax, malformed files, validation errors
- Fallback selection: difficulty policy, margin filter, topic and
  prompt exclusion, determinism
- Fallback drafts keep unmeasured margins and decline tied comparisons
"""

from __future__ import annotations

from dataclasses import replace

import pytest

from defi_quiz.core.difficulty import compute_difficulty
from defi_quiz.errors import ConfigurationError
from defi_quiz.slots import (
    FallbackSpec,
    SlotMatrix,
    SlotSpec,
    build_fallback,
    build_fallbacks,
    load_fallback_specs,
    load_slot_matrix,
    select_fallback,
    validate_matrix,
)
from defi_quiz.templates import TEMPLATES


def _tvl_spec(id, threshold, label, difficulty="medium"):
    return FallbackSpec(
        id=id,
        kind="tvl_threshold",
        episode_type="protocol",
        difficulty=difficulty,
        threshold=threshold,
        label=label,
    )


def _write(path, text):
    path.write_text(text)
    return path


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------


class TestPackagedFiles:
    @pytest.mark.parametrize("episode_type", ["protocol", "chain"])
    def test_matrix_is_valid(self, episode_type):
        matrix = load_slot_matrix(episode_type)
        assert matrix.episode_type == episode_type
        assert validate_matrix(matrix, set(TEMPLATES)) == []

    def test_protocol_targets(self):
        matrix = load_slot_matrix("protocol")
        assert [s.target for s in matrix.slots] == ["medium", "easy", "medium", "hard", "easy"]
        assert matrix.slot("A").templates == ["P1_FINGERPRINT"]

    def test_matrix_only_references_own_type(self):
        for episode_type in ("protocol", "chain"):
            matrix = load_slot_matrix(episode_type)
            for template_id in matrix.template_ids():
                assert TEMPLATES[template_id].type == episode_type

    def test_fallback_catalog(self):
        protocol = load_fallback_specs("protocol")
        chain = load_fallback_specs("chain")
        assert len(protocol) == 16
        assert len(chain) == 13
        assert {s.difficulty for s in protocol} == {"easy", "medium"}
        assert all(s.episode_type == "chain" for s in chain)
        # Every catalog entry builds
        assert len(build_fallbacks(protocol + chain)) == 29


class TestLoader:
    def test_shorthand_slots(self, tmp_path):
        _write(
            tmp_path / "protocol.yaml",
            "episode_type: protocol\n"
            "slots:\n"
            "  A: [P1_FINGERPRINT]\n"
            "  B: [P7_CATEGORY]\n"
            "  C: {target: hard, templates: [P5_FEES_REVENUE], allowed_formats: [tf]}\n"
            "  D: [P4_ATH_TIMING]\n"
            "  E: [P6_TVL_TREND]\n",
        )
        matrix = load_slot_matrix("protocol", slots_dir=tmp_path)
        # Shorthand slots take the default target for their letter
        assert matrix.slot("B").target == "easy"
        assert matrix.slot("D").target == "hard"
        assert matrix.slot("C").target == "hard"
        assert matrix.slot("C").allowed_formats == ["tf"]
        assert matrix.slot("A").allowed_formats == ["tf", "ab", "mc4", "mc6"]
        assert validate_matrix(matrix, set(TEMPLATES)) == []

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_slot_matrix("protocol", slots_dir=tmp_path)

    def test_not_a_mapping(self, tmp_path):
        _write(tmp_path / "protocol.yaml", "- A\n- B\n")
        with pytest.raises(ValueError, match="Expected YAML dict"):
            load_slot_matrix("protocol", slots_dir=tmp_path)

    def test_missing_slots(self, tmp_path):
        _write(tmp_path / "protocol.yaml", "episode_type: protocol\n")
        with pytest.raises(ValueError, match="slots"):
            load_slot_matrix("protocol", slots_dir=tmp_path)

    def test_missing_episode_type(self, tmp_path):
        _write(tmp_path / "protocol.yaml", "slots:\n  A: [P1_FINGERPRINT]\n")
        with pytest.raises(ValueError, match="Malformed"):
            load_slot_matrix("protocol", slots_dir=tmp_path)

    def test_invalid_fallback(self, tmp_path):
        _write(
            tmp_path / "fallbacks.yaml",
            "protocol:\n  - {id: bad, kind: tvl_threshold, difficulty: easy}\n",
        )
        with pytest.raises(ValueError, match="threshold"):
            load_fallback_specs("protocol", slots_dir=tmp_path)

    def test_duplicate_fallback_ids(self, tmp_path):
        _write(
            tmp_path / "fallbacks.yaml",
            "protocol:\n"
            "  - {id: dup, kind: rank_threshold, threshold: 10}\n"
            "  - {id: dup, kind: rank_threshold, threshold: 25}\n",
        )
        with pytest.raises(ValueError, match="unique"):
            load_fallback_specs("protocol", slots_dir=tmp_path)

    def test_missing_type_section(self, tmp_path):
        _write(tmp_path / "fallbacks.yaml", "protocol: []\n")
        assert load_fallback_specs("chain", slots_dir=tmp_path) == []


class TestValidation:
    def _matrix(self, **overrides):
        slots = [SlotSpec(name, "easy", ["P7_CATEGORY"]) for name in "ABCDE"]
        matrix = SlotMatrix(episode_type="protocol", slots=slots)
        for key, value in overrides.items():
            setattr(matrix, key, value)
        return matrix

    def test_valid(self):
        assert self._matrix().validate(set(TEMPLATES)) == []

    def test_wrong_slot_names(self):
        errors = self._matrix(slots=[SlotSpec("A", "easy", ["P7_CATEGORY"])]).validate()
        assert any("slots must be exactly" in e for e in errors)

    def test_unknown_template(self):
        matrix = self._matrix()
        matrix.slots[2].templates = ["P99_MISSING"]
        assert "unknown template id 'P99_MISSING'" in matrix.validate(set(TEMPLATES))

    def test_slot_errors(self):
        spec = SlotSpec("A", "extreme", [], allowed_formats=["mc5"])
        errors = spec.validate()
        assert any("unknown target" in e for e in errors)
        assert any("at least one template" in e for e in errors)
        assert any("unknown format" in e for e in errors)

    def test_duplicate_templates_in_slot(self):
        spec = SlotSpec("A", "easy", ["P7_CATEGORY", "P7_CATEGORY"])
        assert any("unique" in e for e in spec.validate())

    def test_fallback_spec_errors(self):
        spec = FallbackSpec(id="x", kind="compare", episode_type="chain", difficulty="hard", peers="category")
        errors = spec.validate()
        assert any("difficulty" in e for e in errors)
        assert any("only available for protocols" in e for e in errors)

    def test_build_invalid_fallback(self):
        with pytest.raises(ConfigurationError):
            build_fallback(FallbackSpec(id="x", kind="trend", episode_type="protocol", direction="sideways"))


# ---------------------------------------------------------------------------
# Fallback selection
# ---------------------------------------------------------------------------


class TestSelectFallback:
    def test_hard_slot_never_gets_easy_fallbacks(self, protocol_ctx):
        fallbacks = build_fallbacks(
            [s for s in load_fallback_specs("protocol") if s.difficulty == "easy"]
        )
        for seed in range(10):
            assert select_fallback(protocol_ctx, "hard", seed, fallbacks) is None

    def test_hard_slot_prefers_comparisons(self, protocol_ctx):
        fallbacks = build_fallbacks(load_fallback_specs("protocol"))
        for seed in range(10):
            inst = select_fallback(protocol_ctx, "hard", seed, fallbacks)
            assert inst is not None
            assert inst.draft.format == "ab"
            assert inst.draft.template_id.startswith("FALLBACK_PROTOCOL_COMPARE_")
            assert inst.topics == ("tvl_comparison",)

    def test_hard_slot_skips_obvious_true_false(self, protocol_ctx):
        # Current TVL is about $10.2B: $1B is obvious, $10B is close
        fallbacks = build_fallbacks(
            [_tvl_spec("tvl_above_1b", 1e9, "$1B"), _tvl_spec("tvl_above_10b", 10e9, "$10B")]
        )
        for seed in range(10):
            inst = select_fallback(protocol_ctx, "hard", seed, fallbacks)
            assert inst.draft.template_id == "FALLBACK_TVL_ABOVE_10B"

    def test_margin_filter_relaxed_as_last_resort(self, protocol_ctx):
        fallbacks = build_fallbacks([_tvl_spec("tvl_above_1b", 1e9, "$1B")])
        inst = select_fallback(protocol_ctx, "hard", 3, fallbacks)
        assert inst is not None
        assert inst.draft.answer_value is True

    def test_easy_slot_widens_to_whole_catalog(self, protocol_ctx):
        fallbacks = build_fallbacks([_tvl_spec("tvl_above_1b", 1e9, "$1B")])
        inst = select_fallback(protocol_ctx, "easy", 3, fallbacks)
        assert inst is not None
        assert inst.draft.template_id == "FALLBACK_TVL_ABOVE_1B"

    def test_used_topics_are_excluded(self, protocol_ctx):
        fallbacks = build_fallbacks([_tvl_spec("tvl_above_1b", 1e9, "$1B")])
        assert select_fallback(protocol_ctx, "medium", 3, fallbacks, used_topics={"tvl_absolute"}) is None

    def test_used_prompts_are_avoided(self, protocol_ctx):
        fallbacks = build_fallbacks(
            [_tvl_spec("tvl_above_1b", 1e9, "$1B"), _tvl_spec("tvl_above_10b", 10e9, "$10B")]
        )
        used = {"Aave has more than $10B in TVL."}
        for seed in range(10):
            inst = select_fallback(protocol_ctx, "medium", seed, fallbacks, used_prompts=used)
            assert inst.draft.prompt == "Aave has more than $1B in TVL."

    def test_draft_contents(self, protocol_ctx):
        fallbacks = build_fallbacks([_tvl_spec("tvl_above_1b", 1e9, "$1B")])
        draft = select_fallback(protocol_ctx, "medium", 3, fallbacks).draft
        assert draft.validate() == []
        assert draft.choices == ["True", "False"]
        assert draft.answer_index == 0
        assert draft.explain_data["fallback_kind"] == "tvl_threshold"
        assert draft.explain_data["comparison"] == "above"
        assert draft.build_notes == ["Selected quantitative fallback: tvl_above_1b"]

    def test_chain_catalog(self, chain_ctx):
        fallbacks = build_fallbacks(load_fallback_specs("chain"))
        inst = select_fallback(chain_ctx, "hard", 5, fallbacks)
        assert inst is not None
        assert inst.draft.template_id == "FALLBACK_CHAIN_COMPARE_NEARBY"
        assert "Arbitrum" in inst.draft.choices

    def test_deterministic(self, protocol_ctx):
        fallbacks = build_fallbacks(load_fallback_specs("protocol"))
        for target in ("easy", "medium", "hard"):
            first = select_fallback(protocol_ctx, target, 42, fallbacks)
            second = select_fallback(protocol_ctx, target, 42, fallbacks)
            assert first == second


# ---------------------------------------------------------------------------
# Fallback drafts
# ---------------------------------------------------------------------------


def _chain_compare():
    return build_fallback(
        FallbackSpec(id="chain_compare_nearby", kind="compare", episode_type="chain", peers="nearby")
    )


class TestFallbackBuild:
    def test_unmeasured_margin_stays_empty(self, chain_ctx):
        fallback = replace(_chain_compare(), get_margin=lambda ctx: None)
        draft = fallback.build(chain_ctx, 3)
        assert draft.signals.margin is None
        assert 0.0 <= compute_difficulty(draft.signals, draft.template_id) <= 1.0

    def test_measured_margin_is_kept(self, chain_ctx):
        fallback = _chain_compare()
        draft = fallback.build(chain_ctx, 3)
        assert draft.signals.margin == fallback.get_margin(chain_ctx)

    def test_compare_declines_tie(self, chain_ctx):
        fallback = _chain_compare()
        assert fallback.can_use(chain_ctx)
        other = chain_ctx.derived.nearby_chains[0]
        tied = replace(chain_ctx, derived=replace(chain_ctx.derived, current_tvl=other.tvl))
        assert not fallback.can_use(tied)

    def test_compare_declines_zero_tvl(self, chain_ctx):
        nearby = tuple(replace(c, tvl=0.0) for c in chain_ctx.derived.nearby_chains)
        empty = replace(chain_ctx, derived=replace(chain_ctx.derived, current_tvl=0.0, nearby_chains=nearby))
        fallback = _chain_compare()
        assert not fallback.can_use(empty)
        assert select_fallback(empty, "medium", 3, [fallback]) is None
