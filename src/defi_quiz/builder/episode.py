"""Episode assembly: schedule, result records and the build entry point.

An episode is five questions (slots A-E) about one protocol or chain for
one date. Given the same date, episode type, topic and snapshot, a build
is reproducible: every random choice is derived from
``seed_from_parts(date, episode_type, slug)``.

Slots that neither a template nor a fallback could fill are reported via
``Episode.unfilled_slots`` and ``Episode.degraded``; they are never
replaced by an unrelated question.

Public API:
    episode_type_for_date(date) -> str
    Question: one finished question
    Episode: finished episode with its build log
    EpisodeBuilder: assembles an Episode for a Context
    build_episode(ctx, slots_dir, explainer) -> Episode
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from ..core.difficulty import compute_difficulty, estimate_target
from ..core.rng import derive_seed, seed_from_parts
from ..data.models import BuildLogEntry, Context, QuestionDraft
from ..errors import ConfigurationError
from ..explain.templated import Explanation, TemplatedExplainer
from ..slots.fallbacks import build_fallbacks
from ..slots.loader import load_fallback_specs, load_slot_matrix, validate_matrix
from ..templates import TEMPLATES
from ..templates.config import Template
from .post_balance import post_balance
from .selection import SlotSelection, select_for_slot
from .topics import TopicTracker

logger = logging.getLogger(__name__)

# Weekday (Monday = 0) to episode type: four protocol days, three chain days
EPISODE_SCHEDULE: dict[int, str] = {
    0: "protocol",  # Monday
    1: "chain",  # Tuesday
    2: "protocol",  # Wednesday
    3: "chain",  # Thursday
    4: "protocol",  # Friday
    5: "chain",  # Saturday
    6: "protocol",  # Sunday
}


def _parse_date(date: str) -> datetime:
    try:
        return datetime.strptime(date, "%Y-%m-%d")
    except ValueError as e:
        raise ValueError(f"Date must be YYYY-MM-DD, got '{date}'") from e


def episode_type_for_date(date: str) -> str:
    """Episode type scheduled for a ``YYYY-MM-DD`` date (UTC)."""
    return EPISODE_SCHEDULE[_parse_date(date).weekday()]


def day_name(date: str) -> str:
    return _parse_date(date).strftime("%A")


class Explainer(Protocol):
    def explain(self, draft: QuestionDraft, ctx: Context) -> Explanation: ...


@dataclass
class Question:
    """A finished question in an episode."""

    qid: str
    slot: str
    target: str
    score: float
    draft: QuestionDraft
    explanation: str
    llm_fallback: bool = True
    source: str = "template"
    topics: tuple[str, ...] = ()

    @property
    def correct_choice(self) -> str:
        return self.draft.choices[self.draft.answer_index]

    def to_dict(self) -> dict[str, Any]:
        draft = self.draft
        result: dict[str, Any] = {
            "qid": self.qid,
            "slot": self.slot,
            "template_id": draft.template_id,
            "format": draft.format,
            "prompt": draft.prompt,
            "choices": list(draft.choices),
            "answer_index": draft.answer_index,
            "explanation": self.explanation,
            "llm_fallback": self.llm_fallback,
            "difficulty_target": self.target,
            "difficulty": estimate_target(self.score),
            "score": round(self.score, 4),
            "signals": draft.signals.to_dict(),
            "explain_data": dict(draft.explain_data),
            "build_notes": list(draft.build_notes),
            "source": self.source,
            "semantic_topics": list(self.topics),
        }
        if draft.clues:
            result["clues"] = list(draft.clues)
        if draft.answer_value is not None:
            result["answer_value"] = draft.answer_value
        return result


@dataclass
class Episode:
    """A complete (or degraded) episode."""

    episode_id: str
    date: str
    episode_type: str
    topic: dict[str, Any]
    questions: list[Question] = field(default_factory=list)
    build_log: list[BuildLogEntry] = field(default_factory=list)
    unfilled_slots: list[str] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.unfilled_slots)

    def to_dict(self) -> dict[str, Any]:
        """Convert the episode to a dictionary for JSON serialization."""
        return {
            "episode_id": self.episode_id,
            "date": self.date,
            "episode_type": self.episode_type,
            "topic": self.topic,
            "questions": [q.to_dict() for q in self.questions],
            "degraded": self.degraded,
            "unfilled_slots": list(self.unfilled_slots),
            "build_log": [entry.to_dict() for entry in self.build_log],
        }


def _topic_summary(ctx: Context) -> dict[str, Any]:
    summary = asdict(ctx.topic)
    for key, value in summary.items():
        if isinstance(value, tuple):
            summary[key] = list(value)
    return summary


class EpisodeBuilder:
    """Assembles one episode for a Context.

    Each ``build()`` call owns its own topic tracker and build log, so one
    builder can be reused and independent builds share nothing.

    Args:
        ctx: Episode context
        slots_dir: Directory with the slot matrices and fallback catalog
            (default: the packaged YAML files)
        explainer: Explanation writer (default: TemplatedExplainer)
        templates: Template registry (default: all packaged templates)
    """

    def __init__(
        self,
        ctx: Context,
        slots_dir: Path | None = None,
        explainer: Explainer | None = None,
        templates: Mapping[str, Template] | None = None,
    ):
        self.ctx = ctx
        self.slots_dir = slots_dir
        self.explainer = explainer or TemplatedExplainer()
        self.templates = templates if templates is not None else TEMPLATES

    @property
    def base_seed(self) -> int:
        ctx = self.ctx
        return seed_from_parts(ctx.date, ctx.episode_type, ctx.topic.slug)

    def build(self) -> Episode:
        """Build the episode.

        Raises:
            ConfigurationError: If the slot matrix references unknown
                templates or is otherwise invalid, or a draft breaks its
                format contract.
            FileNotFoundError: If a YAML resource is missing.
            ValueError: If a YAML resource is malformed.
        """
        ctx = self.ctx
        matrix = load_slot_matrix(ctx.episode_type, self.slots_dir)
        errors = validate_matrix(matrix, set(self.templates))
        if errors:
            raise ConfigurationError(
                f"Invalid {ctx.episode_type} slot matrix: {'; '.join(errors)}"
            )
        fallbacks = build_fallbacks(load_fallback_specs(ctx.episode_type, self.slots_dir))

        tracker = TopicTracker()
        build_log: list[BuildLogEntry] = []
        base_seed = self.base_seed
        logger.info(
            "Building %s episode for %s (%s)", ctx.episode_type, ctx.topic.name, ctx.date
        )

        selections: list[SlotSelection] = []
        for spec in matrix.slots:
            seed = derive_seed(base_seed, "slot", spec.name)
            selections.append(
                select_for_slot(ctx, spec, seed, self.templates, fallbacks, tracker, build_log)
            )

        drafts = post_balance([s.draft for s in selections], ctx, build_log)

        episode = Episode(
            episode_id=f"{ctx.date}:{ctx.episode_type}:{ctx.topic.slug}",
            date=ctx.date,
            episode_type=ctx.episode_type,
            topic=_topic_summary(ctx),
            build_log=build_log,
        )
        for index, (selection, draft) in enumerate(zip(selections, drafts)):
            if draft is None:
                episode.unfilled_slots.append(selection.slot)
                continue
            explanation = self.explainer.explain(draft, ctx)
            episode.questions.append(
                Question(
                    qid=f"q{index + 1}",
                    slot=selection.slot,
                    target=selection.target,
                    score=compute_difficulty(draft.signals, draft.template_id),
                    draft=draft,
                    explanation=explanation.text,
                    llm_fallback=explanation.llm_fallback,
                    source=selection.source,
                    topics=selection.topics,
                )
            )

        if episode.degraded:
            logger.warning(
                "Episode %s is degraded: unfilled slots %s",
                episode.episode_id, ", ".join(episode.unfilled_slots),
            )
        logger.info(
            "Built episode %s with %d questions", episode.episode_id, len(episode.questions)
        )
        return episode


def build_episode(
    ctx: Context,
    slots_dir: Path | None = None,
    explainer: Explainer | None = None,
) -> Episode:
    """Build the episode for ``ctx`` with the packaged templates."""
    return EpisodeBuilder(ctx, slots_dir=slots_dir, explainer=explainer).build()


__all__ = [
    "EPISODE_SCHEDULE",
    "episode_type_for_date",
    "day_name",
    "Question",
    "Episode",
    "EpisodeBuilder",
    "build_episode",
]
