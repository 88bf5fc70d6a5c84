"""Difficulty scoring for question drafts.

A draft's difficulty is a weighted blend of four signals:

- format: how likely a blind guess is (true/false and A/B 1/2, mc4 1/4, mc6 1/6)
- familiarity: well-known (high-ranked) subjects are easier regardless of format
- margin: how far the correct answer sits from its nearest competitor
- volatility: noisy underlying series make any question slightly harder

Missing margin or volatility contributes the neutral midpoint so that
margin-free questions (e.g. "identify the subject from clues") are not
scored as the hardest possible.

Public API:
    compute_difficulty(signals, template_id) -> float
    matches_target(score, target) -> bool
    estimate_target(score) -> str
    target_match_quality(score, target) -> float
    find_best_format(formats, target, familiarity, margin, volatility, template_id) -> str | None
    rank_bucket(rank) -> str
    slot_target(slot) -> str
"""

from __future__ import annotations

from collections.abc import Sequence

from ..data.models import DifficultySignals

FORMAT_FACTORS: dict[str, float] = {
    "tf": 0.15,
    "ab": 0.35,
    "mc4": 0.55,
    "mc6": 0.75,
}

FAMILIARITY_FACTORS: dict[str, float] = {
    "top_10": 0.10,
    "top_25": 0.18,
    "top_100": 0.30,
    "long_tail": 0.45,
}

WEIGHTS: dict[str, float] = {
    "format": 0.45,
    "familiarity": 0.15,
    "margin": 0.30,
    "volatility": 0.10,
}

# Margins at or above this are treated as trivially separable
MARGIN_SATURATION = 0.25

NEUTRAL_SIGNAL = 0.5

# Question types that need knowledge the signals above do not capture
TEMPLATE_COMPLEXITY_BONUS: dict[str, float] = {
    "P4_ATH_TIMING": 0.10,
    "C3_ATH_TIMING": 0.10,
    "C9_DISTANCE_FROM_ATH": 0.06,
    "C4_GROWTH_RANKING": 0.06,
}

# Inclusive score bands; the overlap between neighbours is the tolerance
TARGET_BANDS: dict[str, tuple[float, float]] = {
    "easy": (0.0, 0.38),
    "medium": (0.30, 0.55),
    "hard": (0.34, 1.0),
}

SLOT_TARGETS: dict[str, str] = {
    "A": "medium",
    "B": "easy",
    "C": "medium",
    "D": "hard",
    "E": "easy",
}


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def compute_difficulty(signals: DifficultySignals, template_id: str | None = None) -> float:
    """Blend the signals into a difficulty score in [0, 1]."""
    format_score = FORMAT_FACTORS[signals.format]
    familiarity_score = FAMILIARITY_FACTORS[signals.familiarity_bucket]
    if signals.margin is None:
        margin_score = NEUTRAL_SIGNAL
    else:
        margin_score = _clamp(1 - signals.margin / MARGIN_SATURATION)
    volatility_score = NEUTRAL_SIGNAL if signals.volatility is None else signals.volatility

    score = (
        WEIGHTS["format"] * format_score
        + WEIGHTS["familiarity"] * familiarity_score
        + WEIGHTS["margin"] * margin_score
        + WEIGHTS["volatility"] * volatility_score
    )
    if template_id:
        score += TEMPLATE_COMPLEXITY_BONUS.get(template_id, 0.0)
    return _clamp(score)


def matches_target(score: float, target: str) -> bool:
    low, high = TARGET_BANDS[target]
    return low <= score <= high


def estimate_target(score: float) -> str:
    if score < 0.30:
        return "easy"
    if score < 0.45:
        return "medium"
    return "hard"


def target_match_quality(score: float, target: str) -> float:
    """Lower is better: in-band scores map to [0, 0.5], out-of-band above 0.5."""
    low, high = TARGET_BANDS[target]
    if low <= score <= high:
        middle = (low + high) / 2
        return abs(score - middle) / ((high - low) / 2) * 0.5
    distance = low - score if score < low else score - high
    return 0.5 + distance


def find_best_format(
    formats: Sequence[str],
    target: str,
    familiarity_bucket: str,
    margin: float | None,
    volatility: float | None,
    template_id: str | None = None,
) -> str | None:
    """Pick the format whose predicted score lands closest to ``target``."""
    best_format: str | None = None
    best_quality = float("inf")
    for fmt in formats:
        signals = DifficultySignals(
            format=fmt,
            familiarity_bucket=familiarity_bucket,
            margin=margin,
            volatility=volatility,
        )
        quality = target_match_quality(compute_difficulty(signals, template_id), target)
        if quality < best_quality:
            best_quality = quality
            best_format = fmt
    return best_format


def rank_bucket(rank: int | None) -> str:
    """Familiarity bucket for a TVL rank; unknown ranks are long tail."""
    if rank is None:
        return "long_tail"
    if rank <= 10:
        return "top_10"
    if rank <= 25:
        return "top_25"
    if rank <= 100:
        return "top_100"
    return "long_tail"


def slot_target(slot: str) -> str:
    return SLOT_TARGETS.get(slot, "medium")


__all__ = [
    "FORMAT_FACTORS",
    "FAMILIARITY_FACTORS",
    "WEIGHTS",
    "TEMPLATE_COMPLEXITY_BONUS",
    "TARGET_BANDS",
    "SLOT_TARGETS",
    "compute_difficulty",
    "matches_target",
    "estimate_target",
    "target_match_quality",
    "find_best_format",
    "rank_bucket",
    "slot_target",
]
