"""Explanation writers for generated questions."""

from __future__ import annotations

from .llm import LLMExplainer
from .templated import (
    EXPLANATION_TEMPLATES,
    Explanation,
    TemplatedExplainer,
    explanation_key,
    missing_keys,
    render_explanation,
)

__all__ = [
    "EXPLANATION_TEMPLATES",
    "Explanation",
    "TemplatedExplainer",
    "LLMExplainer",
    "explanation_key",
    "missing_keys",
    "render_explanation",
]
