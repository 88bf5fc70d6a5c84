"""Quantitative fallback questions.

Each ``FallbackSpec`` from the YAML catalog is turned into a runnable
``Fallback`` by the builder registered for its kind. ``select_fallback``
picks one for a slot whose templates were exhausted.

Selection rules:
- Hard slots draw from medium fallbacks (there are no hard ones)
- Candidates must be usable for the context and must not repeat a used
  prompt or semantic topic
- Hard slots drop true/false fallbacks whose margin makes them trivial
- If nothing survives, widen to the whole catalog (hard slots stay
  on medium entries), then drop the prompt check and margin filter
- Hard slots prefer A/B comparisons when any are available

Public API:
    Fallback: runnable fallback question
    build_fallback(spec) -> Fallback
    build_fallbacks(specs) -> list[Fallback]
    select_fallback(ctx, target, seed, fallbacks, used_prompts, used_topics) -> Instantiation | None
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from ..core.difficulty import rank_bucket
from ..core.metrics import format_change, format_usd
from ..core.rng import derive_seed, make_rng, random_pick
from ..data.models import TF_CHOICES, ComparisonEntry, Context, DifficultySignals, QuestionDraft
from ..errors import ConfigurationError
from ..templates.config import Instantiation
from .schema import FallbackSpec

logger = logging.getLogger(__name__)

# True/false fallbacks further than this from their threshold are too easy for hard slots
MAX_TF_MARGIN_FOR_HARD_SLOT = 0.25

# Trend fallbacks need at least this much movement to have a clear answer
MIN_TREND_CHANGE = 0.01

DEFAULT_TOPICS: dict[str, list[str]] = {
    "tvl_threshold": ["tvl_absolute"],
    "rank_threshold": ["tvl_rank"],
    "trend": ["tvl_trend"],
    "trend_threshold": ["tvl_trend"],
    "chain_count": ["chain_count"],
    "compare": ["tvl_comparison"],
}

DEFAULT_PERIODS: dict[str, str] = {
    "trend": "the past 30 days",
    "trend_threshold": "the past month",
}


@dataclass(frozen=True)
class Fallback:
    """A fallback question ready to be rendered for a Context.

    ``get_answer`` returns the truth of the statement for true/false
    fallbacks, and whether the topic wins for A/B comparisons.
    """

    spec: FallbackSpec
    format: str
    topics: tuple[str, ...]
    can_use: Callable[[Context], bool]
    get_prompt: Callable[[Context], str]
    get_answer: Callable[[Context], bool]
    get_margin: Callable[[Context], float | None]
    get_explain_data: Callable[[Context], dict]
    get_opponent: Callable[[Context], str] | None = None

    @property
    def id(self) -> str:
        return self.spec.id

    @property
    def difficulty(self) -> str:
        return self.spec.difficulty

    @property
    def template_id(self) -> str:
        return f"FALLBACK_{self.spec.id.upper()}"

    def build(self, ctx: Context, seed: int) -> QuestionDraft:
        """Render the draft for ``ctx``.

        Raises:
            ConfigurationError: If the rendered draft breaks its format contract.
        """
        answer = self.get_answer(ctx)
        if self.format == "ab":
            pair = [ctx.topic.name, self.get_opponent(ctx)]
            if make_rng(derive_seed(seed, "swap")).random() > 0.5:
                pair.reverse()
            choices = pair
            winner = ctx.topic.name if answer else self.get_opponent(ctx)
            answer_index = choices.index(winner)
            answer_value = None
        else:
            choices = list(TF_CHOICES)
            answer_index = 0 if answer else 1
            answer_value = answer

        margin = self.get_margin(ctx)
        draft = QuestionDraft(
            template_id=self.template_id,
            format=self.format,
            prompt=self.get_prompt(ctx),
            choices=choices,
            answer_index=answer_index,
            signals=DifficultySignals(
                format=self.format,
                familiarity_bucket=rank_bucket(ctx.topic.tvl_rank),
                margin=margin,
                volatility=ctx.derived.tvl_volatility,
            ),
            explain_data={"fallback_kind": self.spec.kind, **self.get_explain_data(ctx)},
            answer_value=answer_value,
            build_notes=[f"Selected quantitative fallback: {self.spec.id}"],
        )
        errors = draft.validate()
        if errors:
            raise ConfigurationError(f"{self.template_id}: {'; '.join(errors)}")
        return draft


# ---------------------------------------------------------------------------
# Context accessors
# ---------------------------------------------------------------------------


def _change_30d(ctx: Context) -> float | None:
    if ctx.episode_type == "chain":
        return ctx.derived.chain_change_30d
    return ctx.derived.change_30d


def _entity_label(ctx: Context) -> str:
    return "chains" if ctx.episode_type == "chain" else "protocols"


def _peers(ctx: Context, peers: str) -> tuple[ComparisonEntry, ...]:
    if peers == "category":
        return ctx.derived.category_protocols
    if ctx.episode_type == "chain":
        return ctx.derived.nearby_chains
    return ctx.derived.nearby_protocols


def _tvl(ctx: Context) -> float:
    return ctx.derived.current_tvl or 0.0


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def _topics(spec: FallbackSpec) -> tuple[str, ...]:
    return tuple(spec.topics or DEFAULT_TOPICS[spec.kind])


def _tvl_threshold(spec: FallbackSpec) -> Fallback:
    threshold = spec.threshold
    template = spec.prompt or "{name} has more than {threshold} in TVL."

    def margin(ctx: Context) -> float:
        tvl = _tvl(ctx)
        if tvl == 0:
            return 1.0
        return abs(tvl - threshold) / max(tvl, threshold)

    return Fallback(
        spec=spec,
        format="tf",
        topics=_topics(spec),
        can_use=lambda ctx: ctx.derived.current_tvl is not None,
        get_prompt=lambda ctx: template.format(name=ctx.topic.name, threshold=spec.label),
        get_answer=lambda ctx: _tvl(ctx) > threshold,
        get_margin=margin,
        get_explain_data=lambda ctx: {
            "name": ctx.topic.name,
            "tvl": format_usd(_tvl(ctx)),
            "threshold": spec.label,
            "comparison": "above" if _tvl(ctx) > threshold else "below",
        },
    )


def _rank_threshold(spec: FallbackSpec) -> Fallback:
    threshold = int(spec.threshold)

    def rank(ctx: Context) -> int:
        value = ctx.derived.tvl_rank
        return value if value is not None else 999

    def prompt(ctx: Context) -> str:
        if spec.prompt:
            return spec.prompt.format(name=ctx.topic.name, threshold=threshold)
        return f"{ctx.topic.name} is ranked in the top {threshold} {_entity_label(ctx)} by TVL."

    return Fallback(
        spec=spec,
        format="tf",
        topics=_topics(spec),
        can_use=lambda ctx: ctx.derived.tvl_rank is not None,
        get_prompt=prompt,
        get_answer=lambda ctx: rank(ctx) <= threshold,
        get_margin=lambda ctx: abs(rank(ctx) - threshold) / (30 if ctx.episode_type == "chain" else 50),
        get_explain_data=lambda ctx: {
            "name": ctx.topic.name,
            "rank": rank(ctx),
            "threshold": threshold,
            "comparison": "within" if rank(ctx) <= threshold else "outside",
        },
    )


def _trend(spec: FallbackSpec) -> Fallback:
    increase = spec.direction == "increased"
    period = spec.period or DEFAULT_PERIODS["trend"]

    def holds(ctx: Context) -> bool:
        change = _change_30d(ctx) or 0.0
        return change > 0 if increase else change < 0

    def usable(ctx: Context) -> bool:
        change = _change_30d(ctx)
        return change is not None and abs(change) > MIN_TREND_CHANGE

    return Fallback(
        spec=spec,
        format="tf",
        topics=_topics(spec),
        can_use=usable,
        get_prompt=lambda ctx: f"{ctx.topic.name}'s TVL {spec.direction} over {period}.",
        get_answer=holds,
        get_margin=lambda ctx: abs(_change_30d(ctx) or 0.0),
        get_explain_data=lambda ctx: {
            "name": ctx.topic.name,
            "change": format_change(_change_30d(ctx) or 0.0),
            "direction": "increased" if (_change_30d(ctx) or 0.0) > 0 else "decreased",
            "tvl": format_usd(_tvl(ctx)),
        },
    )


def _trend_threshold(spec: FallbackSpec) -> Fallback:
    up = spec.direction == "up"
    threshold = spec.threshold
    signed = threshold if up else -threshold
    period = spec.period or DEFAULT_PERIODS["trend_threshold"]

    def holds(ctx: Context) -> bool:
        change = _change_30d(ctx) or 0.0
        return change > threshold if up else change < -threshold

    def prompt(ctx: Context) -> str:
        verb = "increased" if up else "dropped"
        return f"{ctx.topic.name}'s TVL {verb} by more than {spec.label} over {period}."

    def comparison(ctx: Context) -> str:
        if not holds(ctx):
            return "did not reach"
        return "exceeded" if up else "dropped more than"

    return Fallback(
        spec=spec,
        format="tf",
        topics=_topics(spec),
        can_use=lambda ctx: _change_30d(ctx) is not None,
        get_prompt=prompt,
        get_answer=holds,
        get_margin=lambda ctx: abs((_change_30d(ctx) or 0.0) - signed),
        get_explain_data=lambda ctx: {
            "name": ctx.topic.name,
            "change": format_change(_change_30d(ctx) or 0.0),
            "threshold": spec.label,
            "comparison": comparison(ctx),
        },
    )


def _chain_count(spec: FallbackSpec) -> Fallback:
    threshold = int(spec.threshold)

    def count(ctx: Context) -> int:
        return ctx.derived.chain_count or 0

    return Fallback(
        spec=spec,
        format="tf",
        topics=_topics(spec),
        can_use=lambda ctx: ctx.derived.chain_count is not None,
        get_prompt=lambda ctx: f"{ctx.topic.name} is deployed on more than {threshold} blockchains.",
        get_answer=lambda ctx: count(ctx) > threshold,
        get_margin=lambda ctx: abs(count(ctx) - threshold) / 10,
        get_explain_data=lambda ctx: {
            "name": ctx.topic.name,
            "chain_count": count(ctx),
            "threshold": threshold,
            "comparison": "more than" if count(ctx) > threshold else "not more than",
        },
    )


def _compare(spec: FallbackSpec) -> Fallback:
    def opponent(ctx: Context) -> ComparisonEntry:
        return _peers(ctx, spec.peers)[0]

    def prompt(ctx: Context) -> str:
        if spec.peers == "category":
            return f"Which {ctx.topic.category} protocol has higher TVL?"
        return f"Which {_entity_label(ctx)[:-1]} has higher TVL?"

    def explain(ctx: Context) -> dict:
        other = opponent(ctx)
        tvl = _tvl(ctx)
        wins = tvl > other.tvl
        largest = max(tvl, other.tvl)
        return {
            "winner": ctx.topic.name if wins else other.name,
            "loser": other.name if wins else ctx.topic.name,
            "winner_tvl": format_usd(largest),
            "loser_tvl": format_usd(min(tvl, other.tvl)),
            "margin_percent": f"{abs(tvl - other.tvl) / largest * 100:.1f}" if largest > 0 else "0.0",
        }

    def usable(ctx: Context) -> bool:
        if not _peers(ctx, spec.peers) or ctx.derived.current_tvl is None:
            return False
        # Equal TVL has no correct side
        return _tvl(ctx) != opponent(ctx).tvl

    def margin(ctx: Context) -> float | None:
        largest = max(_tvl(ctx), opponent(ctx).tvl)
        if largest <= 0:
            return None
        return abs(_tvl(ctx) - opponent(ctx).tvl) / largest

    return Fallback(
        spec=spec,
        format="ab",
        topics=_topics(spec),
        can_use=usable,
        get_prompt=prompt,
        get_answer=lambda ctx: _tvl(ctx) > opponent(ctx).tvl,
        get_margin=margin,
        get_explain_data=explain,
        get_opponent=lambda ctx: opponent(ctx).name,
    )


_BUILDERS: dict[str, Callable[[FallbackSpec], Fallback]] = {
    "tvl_threshold": _tvl_threshold,
    "rank_threshold": _rank_threshold,
    "trend": _trend,
    "trend_threshold": _trend_threshold,
    "chain_count": _chain_count,
    "compare": _compare,
}


def build_fallback(spec: FallbackSpec) -> Fallback:
    """Turn a catalog entry into a runnable fallback.

    Raises:
        ConfigurationError: If the entry is invalid.
    """
    errors = spec.validate()
    if errors:
        raise ConfigurationError(f"Invalid fallback {spec.id!r}: {'; '.join(errors)}")
    return _BUILDERS[spec.kind](spec)


def build_fallbacks(specs: Iterable[FallbackSpec]) -> list[Fallback]:
    return [build_fallback(spec) for spec in specs]


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------


def _too_easy_for_hard(fallback: Fallback, ctx: Context) -> bool:
    if fallback.format != "tf":
        return False
    margin = fallback.get_margin(ctx)
    return margin is not None and margin > MAX_TF_MARGIN_FOR_HARD_SLOT


def _available(
    fallbacks: list[Fallback],
    ctx: Context,
    target: str,
    used_prompts: set[str],
    used_topics: set[str],
    check_prompt: bool = True,
    check_margin: bool = True,
) -> list[Fallback]:
    result = []
    for fallback in fallbacks:
        if not fallback.can_use(ctx):
            continue
        if used_topics.intersection(fallback.topics):
            continue
        if check_prompt and fallback.get_prompt(ctx) in used_prompts:
            continue
        if check_margin and target == "hard" and _too_easy_for_hard(fallback, ctx):
            continue
        result.append(fallback)
    return result


def select_fallback(
    ctx: Context,
    target: str,
    seed: int,
    fallbacks: list[Fallback],
    used_prompts: set[str] | None = None,
    used_topics: set[str] | None = None,
) -> Instantiation | None:
    """Pick and render a fallback for a slot, or None if nothing fits."""
    used_prompts = used_prompts or set()
    used_topics = used_topics or set()

    wanted = "medium" if target == "hard" else target
    matching = [f for f in fallbacks if f.difficulty == wanted]
    widened = matching if target == "hard" else fallbacks
    available = _available(matching, ctx, target, used_prompts, used_topics)
    if not available:
        available = _available(widened, ctx, target, used_prompts, used_topics)
    if not available:
        available = _available(
            widened, ctx, target, used_prompts, used_topics,
            check_prompt=False, check_margin=False,
        )
    if not available:
        logger.debug("No usable fallback for target %s", target)
        return None

    if target == "hard":
        comparisons = [f for f in available if f.format == "ab"]
        if comparisons:
            available = comparisons

    rng = make_rng(derive_seed(seed, "fallback"))
    selected = random_pick(rng, available)
    logger.debug("Selected fallback %s for target %s", selected.id, target)
    draft = selected.build(ctx, seed)
    return Instantiation(draft=draft, topics=selected.topics)


__all__ = [
    "MAX_TF_MARGIN_FOR_HARD_SLOT",
    "Fallback",
    "build_fallback",
    "build_fallbacks",
    "select_fallback",
]
