"""Anthropic-backed explanation writer.

Asks the model for a one-to-two sentence explanation built from the same
facts the templated explainer uses. Any failure (missing key, API error,
empty or overlong reply) falls back to the templated sentence and logs a
warning; an episode is never lost because an explanation could not be
written.

Requires the ``anthropic`` package and ``ANTHROPIC_API_KEY`` env var.
The model defaults to ``EXPLAINER_MODEL`` from the environment.

Public API:
    LLMExplainer: explainer with templated fallback
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

from ..data.models import Context, QuestionDraft
from .templated import Explanation, render_explanation

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"

MAX_EXPLANATION_CHARS = 500

SYSTEM_PROMPT = """You write concise, educational explanations for DeFi quiz answers.

Rules:
- 1-2 sentences maximum
- Include the specific numbers provided
- Be factual, not promotional
- Use plain language accessible to DeFi beginners
- Format large numbers with units ($4.2B, not $4,200,000,000)
- Do not start with "The correct answer is" or "According to data"
- Just state the fact directly"""


def _build_prompt(draft: QuestionDraft, ctx: Context) -> str:
    facts = {k: v for k, v in draft.explain_data.items() if k not in ("explain_key", "fallback_kind")}
    return (
        "Write a 1-2 sentence explanation for a DeFi quiz answer.\n\n"
        f"Topic: {ctx.topic.name}\n"
        f"Question: {draft.prompt}\n"
        f"Correct answer: {draft.choices[draft.answer_index]}\n"
        f"Data as of: {ctx.date}\n"
        f"Facts:\n{json.dumps(facts, indent=2, sort_keys=True, default=str)}\n\n"
        "Reply with the explanation only."
    )


class LLMExplainer:
    """Explainer that calls the Anthropic API, falling back to templated text.

    Args:
        model: Model identifier (default: from EXPLAINER_MODEL env var)
        max_tokens: Reply budget per explanation
    """

    def __init__(self, model: str | None = None, max_tokens: int = 200):
        self.model = model or os.environ.get("EXPLAINER_MODEL", DEFAULT_MODEL)
        self.max_tokens = max_tokens
        self._client: Any = None

    def _get_client(self) -> Any:
        if self._client is None:
            api_key = os.environ.get("ANTHROPIC_API_KEY")
            if not api_key:
                raise OSError("ANTHROPIC_API_KEY environment variable is required for LLM explanations")

            import anthropic  # type: ignore[import-untyped]

            self._client = anthropic.Anthropic(api_key=api_key)
        return self._client

    def _generate(self, draft: QuestionDraft, ctx: Context) -> str:
        client = self._get_client()
        message = client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            system=SYSTEM_PROMPT,
            messages=[{"role": "user", "content": _build_prompt(draft, ctx)}],
        )
        text = message.content[0].text.strip()
        if not text:
            raise ValueError("empty response")
        if len(text) > MAX_EXPLANATION_CHARS:
            raise ValueError(f"response too long ({len(text)} chars)")
        return text

    def explain(self, draft: QuestionDraft, ctx: Context) -> Explanation:
        try:
            return Explanation(text=self._generate(draft, ctx), llm_fallback=False)
        except Exception as e:
            logger.warning("LLM explanation for %s failed, using template: %s", draft.template_id, e)
            return Explanation(text=render_explanation(draft, ctx), llm_fallback=True)


__all__ = ["LLMExplainer", "DEFAULT_MODEL"]
