"""YAML-driven slot matrix and fallback catalog schema.

A slot matrix lists, for each of the five slots of an episode, the
difficulty target and the ordered template ids to try. The fallback
catalog holds parameterised quantitative questions used when every
template of a slot declines. The dataclasses mirror the YAML files in
this directory.

Public API:
    SlotSpec: One slot (target, ordered template ids, allowed formats)
    SlotMatrix: The five slots of one episode type
    FallbackSpec: One parameterised fallback question
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..core.difficulty import TARGET_BANDS
from ..data.models import EPISODE_TYPES, FORMAT_CARDINALITY

SLOT_NAMES = ("A", "B", "C", "D", "E")
ALL_FORMATS = ("tf", "ab", "mc4", "mc6")

FALLBACK_KINDS = (
    "tvl_threshold",
    "rank_threshold",
    "trend",
    "trend_threshold",
    "chain_count",
    "compare",
)
FALLBACK_DIFFICULTIES = ("easy", "medium")

_THRESHOLD_KINDS = ("tvl_threshold", "rank_threshold", "trend_threshold", "chain_count")
_LABELLED_KINDS = ("tvl_threshold", "trend_threshold")
_DIRECTIONS = {
    "trend": ("increased", "decreased"),
    "trend_threshold": ("up", "down"),
}


@dataclass
class SlotSpec:
    """A single slot of an episode.

    Attributes:
        name: Slot letter, "A" to "E"
        target: Difficulty target ("easy", "medium", "hard")
        templates: Template ids in the order they are tried
        allowed_formats: Formats a template may be rendered in for this slot
    """

    name: str
    target: str
    templates: list[str] = field(default_factory=list)
    allowed_formats: list[str] = field(default_factory=lambda: list(ALL_FORMATS))

    def validate(self) -> list[str]:
        """Return a list of validation errors (empty = valid)."""
        errors: list[str] = []
        if self.name not in SLOT_NAMES:
            errors.append(f"slot name must be one of {SLOT_NAMES}, got '{self.name}'")
        if self.target not in TARGET_BANDS:
            errors.append(f"slot {self.name}: unknown target '{self.target}'")
        if not self.templates:
            errors.append(f"slot {self.name}: at least one template is required")
        if len(self.templates) != len(set(self.templates)):
            errors.append(f"slot {self.name}: template ids must be unique")
        if not self.allowed_formats:
            errors.append(f"slot {self.name}: allowed_formats must not be empty")
        for fmt in self.allowed_formats:
            if fmt not in FORMAT_CARDINALITY:
                errors.append(f"slot {self.name}: unknown format '{fmt}'")
        return errors


@dataclass
class SlotMatrix:
    """Slot-to-template mapping for one episode type.

    Attributes:
        episode_type: "protocol" or "chain"
        slots: Exactly five slots, A to E, in order
    """

    episode_type: str
    slots: list[SlotSpec] = field(default_factory=list)

    def slot(self, name: str) -> SlotSpec:
        for spec in self.slots:
            if spec.name == name:
                return spec
        raise KeyError(f"No slot {name!r} in {self.episode_type} matrix")

    def template_ids(self) -> list[str]:
        """All template ids referenced by the matrix, first occurrence order."""
        seen: list[str] = []
        for spec in self.slots:
            for template_id in spec.templates:
                if template_id not in seen:
                    seen.append(template_id)
        return seen

    def validate(self, known_templates: set[str] | None = None) -> list[str]:
        """Return a list of validation errors (empty = valid).

        Args:
            known_templates: When given, every referenced template id must
                be one of these.
        """
        errors: list[str] = []
        if self.episode_type not in EPISODE_TYPES:
            errors.append(
                f"episode_type must be one of {EPISODE_TYPES}, got '{self.episode_type}'"
            )
        names = tuple(spec.name for spec in self.slots)
        if names != SLOT_NAMES:
            errors.append(f"slots must be exactly {list(SLOT_NAMES)} in order, got {list(names)}")
        for spec in self.slots:
            errors.extend(spec.validate())
        if known_templates is not None:
            for template_id in self.template_ids():
                if template_id not in known_templates:
                    errors.append(f"unknown template id '{template_id}'")
        return errors


@dataclass
class FallbackSpec:
    """A parameterised quantitative fallback question.

    Attributes:
        id: Unique identifier (e.g. "protocol_tvl_above_1b")
        kind: Builder to use, one of ``FALLBACK_KINDS``
        episode_type: "protocol" or "chain"
        difficulty: "easy" or "medium"; hard slots draw medium fallbacks
        threshold: Dollar amount, rank, change ratio or chain count
        label: Display form of the threshold (e.g. "$1B", "10%")
        direction: "increased"/"decreased" for trend, "up"/"down" for
            trend_threshold
        period: Time window wording used in the prompt
        peers: "nearby" or "category" for comparisons
        prompt: Optional prompt override with ``{name}`` and ``{threshold}``
        topics: Semantic topics; each kind has a default
    """

    id: str
    kind: str
    episode_type: str
    difficulty: str = "easy"
    threshold: float | None = None
    label: str | None = None
    direction: str | None = None
    period: str | None = None
    peers: str | None = None
    prompt: str | None = None
    topics: list[str] = field(default_factory=list)

    def validate(self) -> list[str]:
        """Return a list of validation errors (empty = valid)."""
        errors: list[str] = []
        if not self.id:
            errors.append("id is required")
        if self.kind not in FALLBACK_KINDS:
            errors.append(f"{self.id}: kind must be one of {FALLBACK_KINDS}, got '{self.kind}'")
        if self.episode_type not in EPISODE_TYPES:
            errors.append(f"{self.id}: unknown episode_type '{self.episode_type}'")
        if self.difficulty not in FALLBACK_DIFFICULTIES:
            errors.append(
                f"{self.id}: difficulty must be one of {FALLBACK_DIFFICULTIES}, got '{self.difficulty}'"
            )
        if self.kind in _THRESHOLD_KINDS and self.threshold is None:
            errors.append(f"{self.id}: {self.kind} needs a threshold")
        if self.kind in _LABELLED_KINDS and not self.label:
            errors.append(f"{self.id}: {self.kind} needs a label")
        if self.kind in _DIRECTIONS and self.direction not in _DIRECTIONS[self.kind]:
            errors.append(
                f"{self.id}: direction must be one of {_DIRECTIONS[self.kind]}, got '{self.direction}'"
            )
        if self.kind == "compare" and self.peers not in ("nearby", "category"):
            errors.append(f"{self.id}: peers must be nearby or category, got '{self.peers}'")
        if self.episode_type == "chain" and (
            self.kind == "chain_count" or self.peers == "category"
        ):
            errors.append(f"{self.id}: {self.kind} is only available for protocols")
        return errors


__all__ = [
    "SLOT_NAMES",
    "ALL_FORMATS",
    "FALLBACK_KINDS",
    "SlotSpec",
    "SlotMatrix",
    "FallbackSpec",
]
