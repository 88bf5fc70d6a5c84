"""Declarative template configuration and the factory that runs it.

A question type is described by a ``TemplateConfig``: plain metadata plus
a handful of pure functions (prerequisite check, format proposal,
extraction and render steps). ``create_template`` wraps any conforming
config into a ``Template`` with one uniform ``instantiate`` call, so the
slot matrix can refer to question types purely by id.

Extracted data is a plain dict. ``extract`` declines with None when the
data is unusable, and ``get_choices`` may do the same for one format.

Public API:
    TemplateConfig: declarative description of one question type
    Template: runtime object produced by ``create_template``
    PrereqResult, Instantiation
    create_template(config) -> Template
    passed(), failed(reason): PrereqResult shorthands
    has_min_chains, has_fees_data, has_revenue_data, has_min_chain_history,
    has_min_protocol_history, has_chain_fees_data, has_chain_dex_data,
    has_chain_pool, has_protocol_list: prerequisite helpers
    standard_formats, ab_formats: format helpers
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from ..core.chain_filter import filter_to_actual_chains
from ..core.difficulty import rank_bucket
from ..core.metrics import SECONDS_PER_DAY
from ..data.models import Context, DifficultySignals, QuestionDraft
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

TEMPLATE_TYPES = ("protocol", "chain", "both")

# Margin below which a two-way comparison degrades to true/false only
AB_MIN_MARGIN = 0.15

Extracted = dict[str, Any]


@dataclass(frozen=True)
class PrereqResult:
    passed: bool
    reason: str | None = None


def passed() -> PrereqResult:
    return PrereqResult(True)


def failed(reason: str) -> PrereqResult:
    return PrereqResult(False, reason)


@dataclass(frozen=True)
class Instantiation:
    """A validated draft plus the semantic topics it actually disclosed."""

    draft: QuestionDraft
    topics: tuple[str, ...]


@dataclass(frozen=True)
class TemplateConfig:
    """Declarative description of one question type.

    Attributes:
        id: Unique identifier (e.g. "P1_FINGERPRINT")
        name: Human-readable name
        description: One-line summary used by ``defi-quiz templates``
        type: "protocol", "chain" or "both"
        semantic_topics: Facts this question discloses, for de-duplication
        check_prereqs: ``(ctx) -> PrereqResult``
        get_formats: ``(ctx) -> list[str]``, hardest format first
        extract: ``(ctx, seed) -> dict | None``
        get_prompt: ``(data, ctx, fmt) -> str``
        get_choices: ``(data, ctx, fmt, seed) -> list[str] | None``; None
            when the data cannot fill this format
        get_answer_index: ``(data, ctx, fmt, choices) -> int``
        get_margin: ``(data, ctx, fmt) -> float | None``
        get_explain_data: ``(data, ctx, fmt, choices, answer_index) -> dict``
        allow_reuse: May appear more than once per episode
        get_clues: ``(data, ctx) -> list[str] | None``
        get_answer_value: ``(data, ctx) -> bool``, true/false only
        get_build_notes: ``(data, ctx, fmt) -> list[str]``
        dynamic_topics: ``(data, ctx) -> list[str]``; overrides
            ``semantic_topics`` for a concrete instantiation
    """

    id: str
    name: str
    description: str
    type: str
    semantic_topics: tuple[str, ...]
    check_prereqs: Callable[[Context], PrereqResult]
    get_formats: Callable[[Context], list[str]]
    extract: Callable[[Context, int], Extracted | None]
    get_prompt: Callable[[Extracted, Context, str], str]
    get_choices: Callable[[Extracted, Context, str, int], list[str] | None]
    get_answer_index: Callable[[Extracted, Context, str, list[str]], int]
    get_margin: Callable[[Extracted, Context, str], float | None]
    get_explain_data: Callable[[Extracted, Context, str, list[str], int], dict]
    allow_reuse: bool = False
    get_clues: Callable[[Extracted, Context], list[str] | None] | None = None
    get_answer_value: Callable[[Extracted, Context], bool] | None = None
    get_build_notes: Callable[[Extracted, Context, str], list[str]] | None = None
    dynamic_topics: Callable[[Extracted, Context], list[str]] | None = None

    def validate(self) -> list[str]:
        """Return a list of validation errors (empty = valid)."""
        errors: list[str] = []
        if not self.id:
            errors.append("id is required")
        if not self.name:
            errors.append("name is required")
        if self.type not in TEMPLATE_TYPES:
            errors.append(f"type must be one of {TEMPLATE_TYPES}, got '{self.type}'")
        return errors


class Template:
    """Uniform runtime wrapper around a ``TemplateConfig``.

    Holds no per-call state: ``instantiate`` returns the draft together
    with its effective semantic topics.
    """

    def __init__(self, config: TemplateConfig):
        self.config = config

    def __repr__(self) -> str:
        return f"Template({self.config.id!r})"

    @property
    def id(self) -> str:
        return self.config.id

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def type(self) -> str:
        return self.config.type

    @property
    def allow_reuse(self) -> bool:
        return self.config.allow_reuse

    @property
    def semantic_topics(self) -> tuple[str, ...]:
        return self.config.semantic_topics

    def check_prereqs(self, ctx: Context) -> PrereqResult:
        """Check subject type, then the template's own prerequisites."""
        if self.config.type != "both" and ctx.episode_type != self.config.type:
            return failed("type_mismatch")
        return self.config.check_prereqs(ctx)

    def propose_formats(self, ctx: Context) -> list[str]:
        return list(self.config.get_formats(ctx))

    def instantiate(self, ctx: Context, fmt: str, seed: int) -> Instantiation | None:
        """Extract data and render a draft in ``fmt``.

        Returns None when the data cannot support the question in ``fmt``
        (including duplicate choice labels).

        Raises:
            ConfigurationError: If the rendered draft breaks the answer
                integrity contract for its format.
        """
        cfg = self.config
        data = cfg.extract(ctx, seed)
        if data is None:
            logger.debug("%s: extraction returned nothing", cfg.id)
            return None

        prompt = cfg.get_prompt(data, ctx, fmt)
        clues = cfg.get_clues(data, ctx) if cfg.get_clues else None
        choices = cfg.get_choices(data, ctx, fmt, seed)
        if choices is None:
            logger.debug("%s: not enough material for %s choices", cfg.id, fmt)
            return None
        answer_index = cfg.get_answer_index(data, ctx, fmt, choices)
        answer_value = None
        if fmt == "tf" and cfg.get_answer_value is not None:
            answer_value = cfg.get_answer_value(data, ctx)
        margin = cfg.get_margin(data, ctx, fmt)
        explain_data = cfg.get_explain_data(data, ctx, fmt, choices, answer_index)
        build_notes = cfg.get_build_notes(data, ctx, fmt) if cfg.get_build_notes else []

        if len(set(choices)) != len(choices):
            logger.debug("%s/%s: duplicate choices %s", cfg.id, fmt, choices)
            return None

        draft = QuestionDraft(
            template_id=cfg.id,
            format=fmt,
            prompt=prompt,
            choices=list(choices),
            answer_index=answer_index,
            signals=DifficultySignals(
                format=fmt,
                familiarity_bucket=rank_bucket(ctx.topic.tvl_rank),
                margin=margin,
                volatility=ctx.derived.tvl_volatility,
            ),
            explain_data=explain_data,
            clues=clues,
            answer_value=answer_value,
            build_notes=list(build_notes),
        )
        errors = draft.validate()
        if errors:
            raise ConfigurationError(f"{cfg.id}/{fmt}: {'; '.join(errors)}")

        if cfg.dynamic_topics is not None:
            topics = tuple(cfg.dynamic_topics(data, ctx))
        else:
            topics = cfg.semantic_topics
        return Instantiation(draft=draft, topics=topics)


def create_template(config: TemplateConfig) -> Template:
    """Validate a config and wrap it into a runtime ``Template``.

    Raises:
        ConfigurationError: If the config itself is malformed.
    """
    errors = config.validate()
    if errors:
        raise ConfigurationError(f"Invalid template {config.id!r}: {'; '.join(errors)}")
    return Template(config)


# ---------------------------------------------------------------------------
# Prerequisite helpers
# ---------------------------------------------------------------------------


def _history_days(series: Sequence[tuple[float, float]] | None) -> int:
    if not series or len(series) < 2:
        return 0
    return int((series[-1][0] - series[0][0]) // SECONDS_PER_DAY)


def has_min_chains(ctx: Context, minimum: int) -> bool:
    detail = ctx.data.protocol_detail
    if detail is None or not detail.current_chain_tvls:
        return False
    return len(filter_to_actual_chains(detail.current_chain_tvls)) >= minimum


def has_fees_data(ctx: Context) -> bool:
    fees = ctx.data.protocol_fees
    return fees is not None and fees.total_7d is not None and fees.total_7d > 0


def has_revenue_data(ctx: Context) -> bool:
    revenue = ctx.data.protocol_revenue
    return revenue is not None and revenue.total_7d is not None and revenue.total_7d > 0


def has_min_chain_history(ctx: Context, days: int) -> bool:
    return _history_days(ctx.data.chain_history) >= days


def has_min_protocol_history(ctx: Context, days: int) -> bool:
    detail = ctx.data.protocol_detail
    return detail is not None and _history_days(detail.tvl) >= days


def has_chain_fees_data(ctx: Context) -> bool:
    return bool(ctx.data.chain_fees)


def has_chain_dex_data(ctx: Context) -> bool:
    return bool(ctx.data.chain_dex_volume)


def has_chain_pool(ctx: Context, minimum: int = 4) -> bool:
    return ctx.data.chain_pool is not None and len(ctx.data.chain_pool) >= minimum


def has_protocol_list(ctx: Context, minimum: int = 6) -> bool:
    return ctx.data.protocol_list is not None and len(ctx.data.protocol_list) >= minimum


# ---------------------------------------------------------------------------
# Format helpers
# ---------------------------------------------------------------------------


def standard_formats(
    ctx: Context,
    hard: Sequence[str] = ("mc6", "mc4"),
    medium: Sequence[str] = ("mc4",),
    easy: Sequence[str] = ("mc4", "ab"),
) -> list[str]:
    """Richer formats for well-known subjects, simpler ones for the long tail."""
    rank = ctx.topic.tvl_rank
    if rank <= 25:
        return list(hard)
    if rank <= 50:
        return list(medium)
    return list(easy)


def ab_formats(margin: float | None) -> list[str]:
    """A/B with a true/false fallback; tight margins only get true/false."""
    if margin is not None and margin < AB_MIN_MARGIN:
        return ["tf"]
    return ["ab", "tf"]


__all__ = [
    "TEMPLATE_TYPES",
    "PrereqResult",
    "Instantiation",
    "TemplateConfig",
    "Template",
    "create_template",
    "passed",
    "failed",
    "has_min_chains",
    "has_fees_data",
    "has_revenue_data",
    "has_min_chain_history",
    "has_min_protocol_history",
    "has_chain_fees_data",
    "has_chain_dex_data",
    "has_chain_pool",
    "has_protocol_list",
    "standard_formats",
    "ab_formats",
]
