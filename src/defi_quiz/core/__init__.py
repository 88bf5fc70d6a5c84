"""Core building blocks: seeded randomness, metrics, distractors and difficulty."""

from __future__ import annotations

from .chain_filter import filter_to_actual_chains, is_actual_chain, is_excluded_category
from .difficulty import (
    compute_difficulty,
    estimate_target,
    find_best_format,
    matches_target,
    rank_bucket,
    slot_target,
    target_match_quality,
)
from .distractors import (
    Candidate,
    DistractorConstraints,
    make_numeric_choices,
    make_timing_distractors,
    pick_entity_distractors,
)
from .metrics import ab_margin, find_all_time_high, top2_margin, volatility_score
from .rng import derive_seed, make_rng, seed_from_parts, shuffle

__all__ = [
    # rng
    "seed_from_parts",
    "derive_seed",
    "make_rng",
    "shuffle",
    # metrics
    "ab_margin",
    "top2_margin",
    "volatility_score",
    "find_all_time_high",
    # distractors
    "Candidate",
    "DistractorConstraints",
    "pick_entity_distractors",
    "make_numeric_choices",
    "make_timing_distractors",
    # difficulty
    "compute_difficulty",
    "matches_target",
    "estimate_target",
    "target_match_quality",
    "find_best_format",
    "rank_bucket",
    "slot_target",
    # chain_filter
    "is_actual_chain",
    "is_excluded_category",
    "filter_to_actual_chains",
]
