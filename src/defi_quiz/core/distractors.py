"""Distractor (wrong answer) selection.

Three families of distractors are produced here:

- Entity distractors: other protocols/chains picked from a peer pool under
  filtering constraints, ordered by rank proximity and capped per category
  so wrong answers stay plausible and diverse.
- Numeric distractors: either fixed ratio bands around the correct value,
  or concrete peer values that are at least 12% away from it.
- Timing distractors: calendar months (or quarters) around, or across the
  history of, the correct month.

Every function is pure: identical inputs produce identical output in
identical order.

Public API:
    Candidate, DistractorConstraints
    pick_entity_distractors(correct_id, pool, constraints, seed, correct_value) -> list | None
    pick_names(correct_id, pool, constraints, seed, correct_value) -> list[str] | None
    make_numeric_choices(correct, nearby, mode, seed) -> NumericChoices | None
    make_timing_distractors(correct_month, count, seed, ...) -> TimingChoices
    make_quarter_distractors(correct_quarter, count, seed) -> TimingChoices
    shuffle_with_answer(correct, others, seed) -> (choices, answer_index)
    CONCENTRATION_CHOICES, REVENUE_CHOICES, CHANGE_CHOICES and index helpers
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from .metrics import MONTH_ABBREVIATIONS, ab_margin, format_usd
from .rng import derive_seed, make_rng, random_sample, shuffle

# Separation every value-mode numeric distractor must keep from the answer
MIN_NUMERIC_SEPARATION = 0.12

# Upper bound on months considered when drawing from a full history
MAX_HISTORY_MONTHS = 240

# Rank-distance tiers used when ``prefer_near_rank`` is set
_RANK_TIERS = (10, 25, 50)


@dataclass(frozen=True)
class Candidate:
    """A protocol or chain that may serve as a wrong answer.

    Attributes:
        id: Stable identifier (slug for protocols, name for chains)
        name: Display name used as the choice text
        value: Size metric (TVL) used for separation constraints
        category: Protocol category, None for chains
        rank: TVL rank, None when unknown
    """

    id: str
    name: str
    value: float = 0.0
    category: str | None = None
    rank: int | None = None


@dataclass
class DistractorConstraints:
    """Filtering rules for entity distractors.

    Attributes:
        count: Number of distractors required
        must_match_category: Keep only candidates in this category
        min_value_margin: Minimum ``ab_margin`` from the correct value
        avoid: Identifiers that must never be returned
        max_rank: Drop candidates ranked worse than this
        prefer_near_rank: Order candidates by distance from this rank
        exclude_categories: Categories that are never used
        max_same_category: Cap on distractors sharing a category
    """

    count: int
    must_match_category: str | None = None
    min_value_margin: float | None = None
    avoid: frozenset[str] = field(default_factory=frozenset)
    max_rank: int | None = None
    prefer_near_rank: int | None = None
    exclude_categories: tuple[str, ...] = ()
    max_same_category: int = 2


@dataclass
class NumericChoices:
    choices: list[str]
    answer_index: int


@dataclass
class TimingChoices:
    choices: list[str]
    answer_index: int
    distractors: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Entity distractors
# ---------------------------------------------------------------------------


def _passes_filters(
    item: Candidate,
    correct_id: str,
    constraints: DistractorConstraints,
    correct_value: float | None,
) -> bool:
    if item.id == correct_id or item.id in constraints.avoid:
        return False
    if constraints.must_match_category and item.category:
        if item.category != constraints.must_match_category:
            return False
    if constraints.min_value_margin and correct_value is not None and item.value:
        margin = ab_margin(item.value, correct_value)
        if margin is not None and margin < constraints.min_value_margin:
            return False
    if constraints.max_rank is not None and item.rank is not None:
        if item.rank > constraints.max_rank:
            return False
    if item.category and item.category in constraints.exclude_categories:
        return False
    return True


def _rank_tier(item: Candidate, target_rank: int) -> int:
    if item.rank is None:
        return len(_RANK_TIERS)
    distance = abs(item.rank - target_rank)
    for tier, limit in enumerate(_RANK_TIERS):
        if distance <= limit:
            return tier
    return len(_RANK_TIERS)


def _order_candidates(
    candidates: list[Candidate], constraints: DistractorConstraints, seed: int
) -> list[Candidate]:
    if constraints.prefer_near_rank is None:
        return shuffle(candidates, seed)

    tiers: list[list[Candidate]] = [[] for _ in range(len(_RANK_TIERS) + 1)]
    for item in candidates:
        tiers[_rank_tier(item, constraints.prefer_near_rank)].append(item)

    ordered: list[Candidate] = []
    for index, tier in enumerate(tiers):
        ordered.extend(shuffle(tier, seed, "tier", index))
    return ordered


def pick_entity_distractors(
    correct_id: str,
    pool: Sequence[Candidate],
    constraints: DistractorConstraints,
    seed: int,
    correct_value: float | None = None,
) -> list[Candidate] | None:
    """Pick ``constraints.count`` distractors from ``pool``.

    Returns None when fewer than the requested number survive filtering
    and the category cap; callers relax their constraints and retry, or
    give up on the question.
    """
    candidates = [
        item for item in pool if _passes_filters(item, correct_id, constraints, correct_value)
    ]
    ordered = _order_candidates(candidates, constraints, seed)

    picked: list[Candidate] = []
    category_counts: dict[str, int] = {}
    for item in ordered:
        if item.category and category_counts.get(item.category, 0) >= constraints.max_same_category:
            continue
        picked.append(item)
        if item.category:
            category_counts[item.category] = category_counts.get(item.category, 0) + 1
        if len(picked) == constraints.count:
            break

    return picked if len(picked) == constraints.count else None


def pick_names(
    correct_id: str,
    pool: Sequence[Candidate],
    constraints: DistractorConstraints,
    seed: int,
    correct_value: float | None = None,
) -> list[str] | None:
    """Same as ``pick_entity_distractors`` but returns display names."""
    picked = pick_entity_distractors(correct_id, pool, constraints, seed, correct_value)
    if picked is None:
        return None
    return [item.name for item in picked]


def shuffle_with_answer(correct: str, others: Sequence[str], seed: int) -> tuple[list[str], int]:
    """Shuffle ``[correct, *others]`` and report where the correct answer landed."""
    tagged = [(correct, True)] + [(other, False) for other in others]
    ordered = shuffle(tagged, seed, "shuffle")
    choices = [text for text, _ in ordered]
    answer_index = next(i for i, (_, is_correct) in enumerate(ordered) if is_correct)
    return choices, answer_index


# ---------------------------------------------------------------------------
# Numeric distractors
# ---------------------------------------------------------------------------


def make_numeric_choices(
    correct_value: float,
    nearby_values: Sequence[float],
    mode: str,
    seed: int,
) -> NumericChoices | None:
    """Build four numeric choices around ``correct_value``.

    ``mode="buckets"`` returns fixed ratio bands with the correct answer in
    the 0.8x-1.2x band (index 2). ``mode="values"`` samples three peer
    values separated by at least 12% and shuffles them with the answer.
    """
    if mode == "buckets":
        low, mid_low, mid_high = (
            format_usd(correct_value * 0.5),
            format_usd(correct_value * 0.8),
            format_usd(correct_value * 1.2),
        )
        return NumericChoices(
            choices=[f"< {low}", f"{low} - {mid_low}", f"{mid_low} - {mid_high}", f"> {mid_high}"],
            answer_index=2,
        )
    if mode != "values":
        raise ValueError(f"Unknown numeric choice mode: {mode!r}")

    candidates = []
    labels = {format_usd(correct_value)}
    for value in nearby_values:
        if value <= 0 or format_usd(value) in labels:
            continue
        margin = ab_margin(value, correct_value)
        if margin is not None and margin >= MIN_NUMERIC_SEPARATION:
            candidates.append(value)
            labels.add(format_usd(value))
    if len(candidates) < 3:
        return None

    picks = random_sample(make_rng(derive_seed(seed, "sample")), candidates, 3)
    tagged = [(correct_value, True)] + [(value, False) for value in picks]
    ordered = shuffle(tagged, seed, "order")
    return NumericChoices(
        choices=[format_usd(value) for value, _ in ordered],
        answer_index=next(i for i, (_, is_correct) in enumerate(ordered) if is_correct),
    )


# ---------------------------------------------------------------------------
# Timing distractors
# ---------------------------------------------------------------------------


def _parse_month(yyyy_mm: str) -> tuple[int, int]:
    year, month = yyyy_mm.split("-")
    return int(year), int(month)


def add_months(yyyy_mm: str, offset: int) -> str:
    year, month = _parse_month(yyyy_mm)
    index = year * 12 + (month - 1) + offset
    return f"{index // 12}-{index % 12 + 1:02d}"


def months_between(start: str, end: str) -> list[str]:
    """Inclusive list of YYYY-MM strings from ``start`` to ``end``."""
    start_year, start_month = _parse_month(start)
    end_year, end_month = _parse_month(end)
    span = (end_year * 12 + end_month) - (start_year * 12 + start_month)
    return [add_months(start, offset) for offset in range(span + 1)]


def format_month_display(yyyy_mm: str) -> str:
    """``"2024-03"`` -> ``"Mar 2024"``."""
    year, month = _parse_month(yyyy_mm)
    return f"{MONTH_ABBREVIATIONS[month - 1]} {year}"


def make_timing_distractors(
    correct_month: str,
    count: int,
    seed: int,
    history_start: str | None = None,
    history_end: str | None = None,
) -> TimingChoices:
    """Month choices for "when did X happen" questions.

    Without a history range, distractors come from the six months within
    three of ``correct_month``. With ``history_start`` every month from
    there to ``history_end`` (default: the correct month) except the
    correct one is eligible, keeping the most recent 240.
    """
    if history_start:
        end = history_end or correct_month
        candidates = [m for m in months_between(history_start, end) if m != correct_month]
        candidates = candidates[-MAX_HISTORY_MONTHS:]
    else:
        candidates = []
    if len(candidates) < count:
        candidates = [add_months(correct_month, offset) for offset in range(-3, 4) if offset != 0]

    distractors = shuffle(candidates, seed)[:count]
    tagged = [(correct_month, True)] + [(month, False) for month in distractors]
    ordered = shuffle(tagged, seed, "order")
    return TimingChoices(
        choices=[format_month_display(month) for month, _ in ordered],
        answer_index=next(i for i, (_, is_correct) in enumerate(ordered) if is_correct),
        distractors=[format_month_display(month) for month in distractors],
    )


def make_quarter_distractors(correct_quarter: str, count: int, seed: int) -> TimingChoices:
    """Quarter choices (``"Q1 2024"``) within three quarters of the answer."""
    label, year_text = correct_quarter.split()
    base = int(year_text) * 4 + int(label.lstrip("Q")) - 1

    candidates = []
    for offset in range(-3, 4):
        if offset == 0:
            continue
        index = base + offset
        candidates.append(f"Q{index % 4 + 1} {index // 4}")

    distractors = shuffle(candidates, seed)[:count]
    tagged = [(correct_quarter, True)] + [(quarter, False) for quarter in distractors]
    ordered = shuffle(tagged, seed, "order")
    return TimingChoices(
        choices=[quarter for quarter, _ in ordered],
        answer_index=next(i for i, (_, is_correct) in enumerate(ordered) if is_correct),
        distractors=distractors,
    )


# ---------------------------------------------------------------------------
# Fixed bucket choice sets
# ---------------------------------------------------------------------------

CONCENTRATION_CHOICES = ["<25%", "25-50%", "50-75%", ">75%"]
REVENUE_CHOICES = ["<10%", "10-30%", "30-60%", ">60%"]
CHANGE_CHOICES = ["Down >10%", "Down 0-10%", "Up 0-10%", "Up >10%"]
CHANGE_BOUNDARIES = (-0.1, 0.0, 0.1)


def concentration_index(share: float) -> int:
    if share >= 0.75:
        return 3
    if share >= 0.5:
        return 2
    if share >= 0.25:
        return 1
    return 0


def revenue_index(ratio: float) -> int:
    if ratio >= 0.6:
        return 3
    if ratio >= 0.3:
        return 2
    if ratio >= 0.1:
        return 1
    return 0


def change_index(change: float) -> int:
    if change > 0.1:
        return 3
    if change > 0:
        return 2
    if change >= -0.1:
        return 1
    return 0


__all__ = [
    "Candidate",
    "DistractorConstraints",
    "NumericChoices",
    "TimingChoices",
    "pick_entity_distractors",
    "pick_names",
    "shuffle_with_answer",
    "make_numeric_choices",
    "add_months",
    "months_between",
    "format_month_display",
    "make_timing_distractors",
    "make_quarter_distractors",
    "CONCENTRATION_CHOICES",
    "REVENUE_CHOICES",
    "CHANGE_CHOICES",
    "CHANGE_BOUNDARIES",
    "concentration_index",
    "revenue_index",
    "change_index",
]
