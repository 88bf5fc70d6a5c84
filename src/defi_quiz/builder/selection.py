"""Per-slot candidate walk.

Templates are tried in slot-matrix order. For each template the walk:

1. skips it if it was already used (unless reusable), its prerequisites
   fail, its static semantic topics were already disclosed, or none of its
   proposed formats are allowed in the slot
2. instantiates each allowed format in preference order and scores the
   draft; a draft inside the slot's difficulty band is accepted
3. otherwise re-targets the format with ``find_best_format`` and accepts
   the re-rendered draft if that lands in the band

When every template declines, an ``exhausted`` entry is logged and the
fallback catalog is consulted. If that also fails the slot stays empty.
Every decision is appended to the build log; nothing here raises for
data-dependent declines.

Public API:
    SlotSelection: Outcome for one slot
    select_for_slot(ctx, slot, seed, templates, fallbacks, tracker, build_log) -> SlotSelection
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from ..core.difficulty import compute_difficulty, find_best_format, matches_target
from ..data.models import BuildLogEntry, Context, QuestionDraft
from ..slots.fallbacks import Fallback, select_fallback
from ..slots.schema import SlotSpec
from ..templates.config import Instantiation, Template
from .topics import TopicTracker

logger = logging.getLogger(__name__)


@dataclass
class SlotSelection:
    """Result of filling one slot.

    Attributes:
        slot: Slot letter
        target: Difficulty target of the slot
        draft: Accepted draft, or None when the slot could not be filled
        topics: Semantic topics the accepted draft disclosed
        score: Difficulty score of the accepted draft
        source: "template", "fallback" or "none"
        reasons: Decline reasons accumulated during the walk
    """

    slot: str
    target: str
    draft: QuestionDraft | None = None
    topics: tuple[str, ...] = ()
    score: float | None = None
    source: str = "none"
    reasons: list[str] = field(default_factory=list)

    @property
    def filled(self) -> bool:
        return self.draft is not None


def _score(inst: Instantiation) -> float:
    return compute_difficulty(inst.draft.signals, inst.draft.template_id)


def _retarget(
    template: Template,
    ctx: Context,
    inst: Instantiation,
    target: str,
    allowed: list[str],
    seed: int,
) -> Instantiation | None:
    """Re-render ``inst`` in the allowed format predicted closest to ``target``."""
    signals = inst.draft.signals
    formats = [f for f in template.propose_formats(ctx) if f in allowed]
    best = find_best_format(
        formats,
        target,
        signals.familiarity_bucket,
        signals.margin,
        signals.volatility,
        template.id,
    )
    if best is None or best == inst.draft.format:
        return None
    return template.instantiate(ctx, best, seed)


def _accept(
    selection: SlotSelection,
    inst: Instantiation,
    score: float,
    source: str,
    notes: list[str],
    tracker: TopicTracker,
) -> SlotSelection:
    draft = inst.draft
    draft.build_notes = [*draft.build_notes, *notes]
    selection.draft = draft
    selection.topics = inst.topics
    selection.score = score
    selection.source = source
    tracker.accept(draft.template_id, inst.topics, draft.prompt)
    return selection


def _try_template(
    template: Template,
    ctx: Context,
    spec: SlotSpec,
    seed: int,
    tracker: TopicTracker,
    selection: SlotSelection,
    build_log: list[BuildLogEntry],
) -> bool:
    """Walk one template's formats; True once a draft was accepted."""
    slot, target = spec.name, spec.target

    def decline(reason: str, fmt: str | None = None, score: float | None = None, decision: str = "skip"):
        selection.reasons.append(f"{template.id}: {reason}")
        build_log.append(
            BuildLogEntry(
                decision=decision, slot=slot, template=template.id, format=fmt,
                reason=reason, score=score, target=target if score is not None else None,
            )
        )
        logger.debug("Slot %s: %s %s %s", slot, decision, template.id, reason)

    if tracker.has_template(template.id) and not template.allow_reuse:
        decline("already_used")
        return False

    prereq = template.check_prereqs(ctx)
    if not prereq.passed:
        decline(prereq.reason or "prereq_failed")
        return False

    if not template.allow_reuse and tracker.overlaps(template.semantic_topics):
        decline("topic_overlap")
        return False

    formats = [f for f in template.propose_formats(ctx) if f in spec.allowed_formats]
    if not formats:
        decline("no_formats")
        return False

    for fmt in formats:
        inst = template.instantiate(ctx, fmt, seed)
        if inst is None:
            decline("instantiate_failed", fmt)
            continue
        if not template.allow_reuse and tracker.overlaps(inst.topics):
            decline("topic_overlap", fmt, decision="reject")
            continue
        if tracker.has_prompt(inst.draft.prompt):
            decline("duplicate_prompt", fmt, decision="reject")
            continue

        score = _score(inst)
        if matches_target(score, target):
            build_log.append(
                BuildLogEntry(
                    decision="selected", slot=slot, template=template.id,
                    format=fmt, score=score, target=target,
                )
            )
            _accept(selection, inst, score, "template", [f"Score: {score:.2f}"], tracker)
            return True

        adjusted = _retarget(template, ctx, inst, target, spec.allowed_formats, seed)
        if adjusted is not None and (template.allow_reuse or not tracker.overlaps(adjusted.topics)):
            adjusted_score = _score(adjusted)
            if matches_target(adjusted_score, target) and not tracker.has_prompt(adjusted.draft.prompt):
                build_log.append(
                    BuildLogEntry(
                        decision="adjusted", slot=slot, template=template.id,
                        original_format=fmt, new_format=adjusted.draft.format,
                        score=adjusted_score, target=target,
                    )
                )
                notes = [
                    f"Adjusted from {fmt} to {adjusted.draft.format}",
                    f"Score: {adjusted_score:.2f}",
                ]
                _accept(selection, adjusted, adjusted_score, "template", notes, tracker)
                return True

        decline("difficulty_mismatch", fmt, score, decision="reject")
    return False


def select_for_slot(
    ctx: Context,
    spec: SlotSpec,
    seed: int,
    templates: Mapping[str, Template],
    fallbacks: list[Fallback],
    tracker: TopicTracker,
    build_log: list[BuildLogEntry],
) -> SlotSelection:
    """Fill one slot from its templates, then from the fallback catalog.

    Args:
        ctx: Episode context.
        spec: Slot being filled.
        seed: Slot seed; every instantiation in the slot uses it.
        templates: Template registry; must contain every id in ``spec``.
        fallbacks: Runnable fallbacks for the episode type.
        tracker: Topics and prompts already used in this episode; updated
            on acceptance.
        build_log: Appended to with every decision.

    Returns:
        SlotSelection. ``filled`` is False when nothing could be used.
    """
    selection = SlotSelection(slot=spec.name, target=spec.target)

    for template_id in spec.templates:
        if _try_template(templates[template_id], ctx, spec, seed, tracker, selection, build_log):
            logger.info(
                "Slot %s: %s (%s, score %.2f)",
                spec.name, selection.draft.template_id, selection.draft.format, selection.score,
            )
            return selection

    build_log.append(
        BuildLogEntry(decision="exhausted", slot=spec.name, reason="no_template_matched", target=spec.target)
    )
    logger.debug("Slot %s: templates exhausted, consulting fallbacks", spec.name)

    inst = select_fallback(ctx, spec.target, seed, fallbacks, tracker.prompts, tracker.topics)
    if inst is None:
        selection.reasons.append("fallbacks_exhausted")
        build_log.append(
            BuildLogEntry(decision="exhausted", slot=spec.name, reason="fallbacks_exhausted", target=spec.target)
        )
        logger.warning("Slot %s could not be filled", spec.name)
        return selection

    score = _score(inst)
    build_log.append(
        BuildLogEntry(
            decision="fallback", slot=spec.name, template=inst.draft.template_id,
            format=inst.draft.format, score=score, target=spec.target,
        )
    )
    _accept(selection, inst, score, "fallback", [f"Score: {score:.2f}"], tracker)
    logger.info("Slot %s: fallback %s (score %.2f)", spec.name, inst.draft.template_id, score)
    return selection


__all__ = ["SlotSelection", "select_for_slot"]
