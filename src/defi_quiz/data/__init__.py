"""Snapshot entities and the template context.

Only the dataclasses are re-exported here; load snapshots through
``defi_quiz.data.snapshot`` (or the top-level package).
"""

from __future__ import annotations

from .models import (
    EPISODE_TYPES,
    FORMAT_CARDINALITY,
    TF_CHOICES,
    BuildLogEntry,
    ChainTopic,
    ComparisonEntry,
    Context,
    DerivedMetrics,
    DifficultySignals,
    FetchedData,
    ProtocolTopic,
    QuestionDraft,
)

__all__ = [
    "EPISODE_TYPES",
    "FORMAT_CARDINALITY",
    "TF_CHOICES",
    "ProtocolTopic",
    "ChainTopic",
    "FetchedData",
    "ComparisonEntry",
    "DerivedMetrics",
    "Context",
    "DifficultySignals",
    "QuestionDraft",
    "BuildLogEntry",
]
