"""Semantic topic and prompt tracking for one episode build.

Every accepted question adds the facts it disclosed (its semantic topics)
and its prompt text. Later candidates that would disclose one of those
facts again, or repeat a prompt, are rejected.

Public API:
    TopicTracker: Mutable per-build record of used topics, prompts and templates
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field


@dataclass
class TopicTracker:
    """Owned by exactly one build; discarded when the episode is assembled."""

    topics: set[str] = field(default_factory=set)
    prompts: set[str] = field(default_factory=set)
    templates: set[str] = field(default_factory=set)

    def overlaps(self, topics: Iterable[str]) -> bool:
        return not self.topics.isdisjoint(topics)

    def overlap(self, topics: Iterable[str]) -> list[str]:
        """The already-used topics among ``topics``, sorted."""
        return sorted(self.topics.intersection(topics))

    def has_prompt(self, prompt: str) -> bool:
        return prompt in self.prompts

    def has_template(self, template_id: str) -> bool:
        return template_id in self.templates

    def accept(self, template_id: str, topics: Iterable[str], prompt: str) -> None:
        self.templates.add(template_id)
        self.topics.update(topics)
        self.prompts.add(prompt)


__all__ = ["TopicTracker"]
