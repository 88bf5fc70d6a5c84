"""Tests for explanation writers.

Tests:
- Templated sentences exist for every template and fallback kind
- Rendering, missing placeholders and the generic sentence
- Every template fills its own sentence
- LLM explainer success and fallback paths (client mocked)
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from defi_quiz.data.models import TF_CHOICES, DifficultySignals, QuestionDraft
from defi_quiz.explain import (
    EXPLANATION_TEMPLATES,
    LLMExplainer,
    TemplatedExplainer,
    explanation_key,
    missing_keys,
    render_explanation,
)
from defi_quiz.slots.schema import FALLBACK_KINDS
from defi_quiz.templates import TEMPLATES, templates_for_type


def _draft(template_id="P7_CATEGORY", explain_data=None):
    return QuestionDraft(
        template_id=template_id,
        format="tf",
        prompt="Aave is a lending protocol.",
        choices=list(TF_CHOICES),
        answer_index=0,
        signals=DifficultySignals(format="tf", familiarity_bucket="top_10", margin=0.5, volatility=0.1),
        explain_data=explain_data if explain_data is not None else {"name": "Aave", "category": "Lending"},
        answer_value=True,
    )


def _reply(text):
    message = MagicMock()
    message.content = [MagicMock(text=text)]
    return message


# ---------------------------------------------------------------------------
# Templated
# ---------------------------------------------------------------------------


class TestTemplated:
    def test_catalog_is_complete(self):
        assert set(TEMPLATES) <= set(EXPLANATION_TEMPLATES)
        for kind in FALLBACK_KINDS:
            assert f"FALLBACK_{kind.upper()}" in EXPLANATION_TEMPLATES

    def test_render(self, protocol_ctx):
        text = render_explanation(_draft(), protocol_ctx)
        assert text == "Aave is classified as a Lending protocol on DefiLlama."

    def test_missing_key_is_visible(self, protocol_ctx):
        draft = _draft(explain_data={"name": "Aave"})
        assert render_explanation(draft, protocol_ctx) == (
            "Aave is classified as a [category] protocol on DefiLlama."
        )
        assert missing_keys(draft) == ["category"]

    def test_generic_sentence(self, protocol_ctx):
        text = render_explanation(_draft(template_id="X_UNKNOWN"), protocol_ctx)
        assert "2024-06-03" in text
        assert missing_keys(_draft(template_id="X_UNKNOWN")) == []

    def test_explanation_key_order(self):
        assert explanation_key(_draft()) == "P7_CATEGORY"
        assert explanation_key(_draft(explain_data={"fallback_kind": "compare"})) == "FALLBACK_COMPARE"
        both = {"explain_key": "CHANGE_BUCKET", "fallback_kind": "compare"}
        assert explanation_key(_draft(explain_data=both)) == "CHANGE_BUCKET"

    def test_explainer_flags_templated_text(self, protocol_ctx):
        explanation = TemplatedExplainer().explain(_draft(), protocol_ctx)
        assert explanation.llm_fallback is True
        assert explanation.text.startswith("Aave")


class TestTemplateCoverage:
    @pytest.mark.parametrize("ctx_fixture", ["protocol_ctx", "chain_ctx"])
    def test_every_template_fills_its_sentence(self, request, ctx_fixture):
        ctx = request.getfixturevalue(ctx_fixture)
        for template in templates_for_type(ctx.episode_type):
            if not template.check_prereqs(ctx).passed:
                continue
            for fmt in template.propose_formats(ctx):
                inst = template.instantiate(ctx, fmt, 5)
                if inst is None:
                    continue
                assert missing_keys(inst.draft) == [], (template.id, fmt)


# ---------------------------------------------------------------------------
# LLM
# ---------------------------------------------------------------------------


class TestLLMExplainer:
    def test_model_from_environment(self):
        with patch.dict("os.environ", {"EXPLAINER_MODEL": "claude-test"}):
            assert LLMExplainer().model == "claude-test"
        assert LLMExplainer(model="explicit").model == "explicit"

    def test_missing_key_falls_back(self, protocol_ctx):
        with patch.dict("os.environ", {}, clear=True):
            explanation = LLMExplainer().explain(_draft(), protocol_ctx)
        assert explanation.llm_fallback is True
        assert explanation.text == render_explanation(_draft(), protocol_ctx)

    def test_success(self, protocol_ctx):
        explainer = LLMExplainer(model="claude-test")
        explainer._client = MagicMock()
        explainer._client.messages.create.return_value = _reply("  Aave lends and borrows.  ")

        explanation = explainer.explain(_draft(), protocol_ctx)

        assert explanation.llm_fallback is False
        assert explanation.text == "Aave lends and borrows."
        kwargs = explainer._client.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-test"
        assert kwargs["max_tokens"] == 200
        prompt = kwargs["messages"][0]["content"]
        assert "Correct answer: True" in prompt
        assert "Lending" in prompt

    def test_internal_keys_not_sent(self, protocol_ctx):
        explainer = LLMExplainer()
        explainer._client = MagicMock()
        explainer._client.messages.create.return_value = _reply("Fine.")
        explainer.explain(_draft(explain_data={"name": "Aave", "fallback_kind": "compare"}), protocol_ctx)
        prompt = explainer._client.messages.create.call_args.kwargs["messages"][0]["content"]
        assert "fallback_kind" not in prompt

    @pytest.mark.parametrize("reply", ["", "   ", "x" * 501])
    def test_unusable_reply_falls_back(self, protocol_ctx, reply):
        explainer = LLMExplainer()
        explainer._client = MagicMock()
        explainer._client.messages.create.return_value = _reply(reply)
        explanation = explainer.explain(_draft(), protocol_ctx)
        assert explanation.llm_fallback is True

    def test_api_error_falls_back(self, protocol_ctx):
        explainer = LLMExplainer()
        explainer._client = MagicMock()
        explainer._client.messages.create.side_effect = RuntimeError("overloaded")
        explanation = explainer.explain(_draft(), protocol_ctx)
        assert explanation.llm_fallback is True
        assert "Aave" in explanation.text
