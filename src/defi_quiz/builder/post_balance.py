"""Post-assembly balance pass.

Runs once over the selected drafts:

- keeps at most one high-volatility question; later TVL-trend questions
  with high volatility are converted to the 4-band change bucket format
- logs the difficulty mix (no easy question, no hard question, too many
  hard questions) without rewriting anything
- logs duplicate prompts

Public API:
    HIGH_VOLATILITY_THRESHOLD
    post_balance(drafts, ctx, build_log) -> list[QuestionDraft | None]
"""

from __future__ import annotations

import logging
from dataclasses import replace

from ..core.difficulty import compute_difficulty, estimate_target
from ..core.distractors import CHANGE_BOUNDARIES, CHANGE_CHOICES, change_index
from ..core.metrics import boundary_margin, format_change
from ..data.models import BuildLogEntry, Context, QuestionDraft

logger = logging.getLogger(__name__)

HIGH_VOLATILITY_THRESHOLD = 0.75

# Volatility assigned to converted questions; bucketed answers absorb the noise
BUCKETED_VOLATILITY = 0.3

CONVERTIBLE_TEMPLATES = ("P6_TVL_TREND", "C4_GROWTH_RANKING")

MAX_HARD_QUESTIONS = 2


def _is_high_volatility(draft: QuestionDraft) -> bool:
    volatility = draft.signals.volatility
    return volatility is not None and volatility > HIGH_VOLATILITY_THRESHOLD


def _topic_change(ctx: Context) -> float | None:
    if ctx.episode_type == "chain":
        return ctx.derived.chain_change_30d
    return ctx.derived.change_30d


def convert_to_change_bucket(draft: QuestionDraft, ctx: Context) -> QuestionDraft | None:
    """Rewrite a trend question as "approximate 30-day change" with 4 bands.

    Returns None when the draft is not a trend question or the topic has no
    30-day change.
    """
    if draft.template_id not in CONVERTIBLE_TEMPLATES:
        return None
    change = _topic_change(ctx)
    if change is None:
        return None

    name = ctx.topic.name
    return replace(
        draft,
        format="mc4",
        prompt=f"What was {name}'s approximate TVL change over the past 30 days?",
        choices=list(CHANGE_CHOICES),
        answer_index=change_index(change),
        answer_value=None,
        clues=None,
        signals=replace(
            draft.signals,
            format="mc4",
            margin=boundary_margin(change, CHANGE_BOUNDARIES, scale=4),
            volatility=BUCKETED_VOLATILITY,
        ),
        explain_data={
            "explain_key": "CHANGE_BUCKET",
            "name": name,
            "change": format_change(change),
            "bucket": CHANGE_CHOICES[change_index(change)],
        },
        build_notes=[*draft.build_notes, "Converted to bucket format to reduce volatility"],
    )


def _difficulty_issues(drafts: list[QuestionDraft]) -> list[str]:
    bands = [estimate_target(compute_difficulty(d.signals, d.template_id)) for d in drafts]
    issues = []
    if "easy" not in bands:
        issues.append("No easy questions in episode")
    hard_count = bands.count("hard")
    if hard_count == 0 and len(drafts) >= 4:
        issues.append("No hard questions in episode")
    if hard_count > MAX_HARD_QUESTIONS:
        issues.append(f"Too many hard questions: {hard_count}")
    return issues


def post_balance(
    drafts: list[QuestionDraft | None],
    ctx: Context,
    build_log: list[BuildLogEntry],
) -> list[QuestionDraft | None]:
    """Balance the drafts of one episode, in slot order.

    ``drafts`` holds one entry per slot; None marks an unfilled slot and
    is passed through unchanged. Converted drafts are returned in place of
    the originals; the input list is not modified.
    """
    result = list(drafts)

    high_volatility = [i for i, d in enumerate(result) if d is not None and _is_high_volatility(d)]
    for index in high_volatility[1:]:
        converted = convert_to_change_bucket(result[index], ctx)
        if converted is None:
            continue
        result[index] = converted
        build_log.append(
            BuildLogEntry(decision="post_balance", qid=f"q{index + 1}", reason="reduce_volatility")
        )
        logger.debug("q%d converted to change buckets", index + 1)

    present = [d for d in result if d is not None]
    for issue in _difficulty_issues(present):
        build_log.append(BuildLogEntry(decision="post_balance", reason=issue))
        logger.debug("Difficulty mix: %s", issue)

    seen: set[str] = set()
    for index, draft in enumerate(result):
        if draft is None:
            continue
        if draft.prompt in seen:
            build_log.append(
                BuildLogEntry(decision="post_balance", qid=f"q{index + 1}", reason="duplicate_prompt_detected")
            )
            logger.warning("Duplicate prompt in q%d: %s", index + 1, draft.prompt)
        seen.add(draft.prompt)

    return result


__all__ = [
    "HIGH_VOLATILITY_THRESHOLD",
    "convert_to_change_bucket",
    "post_balance",
]
