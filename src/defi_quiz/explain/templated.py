"""Deterministic explanation text from a draft's explain data.

Every template (and every fallback kind) has one sentence with ``{key}``
placeholders filled from ``QuestionDraft.explain_data``. Missing keys
render as ``[key]`` so gaps are visible in generated episodes instead of
raising. Drafts without a sentence get a generic one naming the data date.

Public API:
    Explanation: text plus whether the templated path produced it
    EXPLANATION_TEMPLATES: sentence per template id / fallback kind
    explanation_key(draft) -> str
    missing_keys(draft) -> list[str]
    render_explanation(draft, ctx) -> str
    TemplatedExplainer: explainer interface over render_explanation
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from ..data.models import Context, QuestionDraft

_PLACEHOLDER = re.compile(r"\{(\w+)\}")

GENERIC_EXPLANATION = "The correct answer is based on DefiLlama data as of {date}."

EXPLANATION_TEMPLATES: dict[str, str] = {
    # Protocol templates
    "P1_FINGERPRINT": "{name} is a {category} protocol deployed on {chain_count} chains with {tvl} TVL.",
    "P2_CROSSCHAIN": (
        "{name} has {margin_percent}% more TVL on {winner_chain} ({winner_tvl}) "
        "than on {loser_chain} ({loser_tvl})."
    ),
    "P3_CONCENTRATION": (
        "{top_chain} holds {share_percent}% of {name}'s total TVL ({top_chain_tvl} of {total_tvl})."
    ),
    "P4_ATH_TIMING": "{name} reached its all-time high TVL of {ath_value} in {ath_month}.",
    "P5_FEES_REVENUE": (
        "{name} generated {fees_7d} in fees over the past 7 days, "
        "of which {revenue_7d} ({revenue_percent}) was protocol revenue."
    ),
    "P6_TVL_TREND": "{name}'s TVL {direction} over the past {period} ({change}) and now stands at {tvl}.",
    "P7_CATEGORY": "{name} is classified as a {category} protocol on DefiLlama.",
    "P8_CHAIN_MEMBERSHIP": "{name} is deployed on {chain_count} chains, including {chains}.",
    "P9_TOP_CHAIN": "{top_chain} holds the most of {name}'s TVL with {top_tvl} ({comparison}).",
    "P10_TVL_BAND": "{name} has {tvl} in TVL, which falls in the {tvl_band} band.",
    "P11_FEES_TREND": (
        "{name}'s weekly fees moved {fees_trend}, from {fees_before} to {fees_now}."
    ),
    "P12_DEX_VOLUME_TREND": "{name}'s pooled liquidity changed {trend} over the past 7 days.",
    "P13_TVL_RANK_COMPARISON": (
        "{winner} has {margin_percent}% more TVL than {loser} ({winner_tvl} vs {loser_tvl})."
    ),
    "P14_CATEGORY_LEADER": (
        "Among {category} protocols, {winner} leads {loser} by {margin_percent}% "
        "({winner_tvl} vs {loser_tvl})."
    ),
    "P15_RECENT_TVL_DIRECTION": "{name}'s TVL {direction} over the past {period} ({change}).",
    # Chain templates
    "C1_FINGERPRINT": (
        "{name} is ranked #{tvl_rank} by TVL ({tvl_band}) with {protocol_count} protocols; "
        "its native token is {token_symbol}."
    ),
    "C2_CHAIN_COMPARISON": (
        "{winner_chain} has {margin_percent}% more TVL than {loser_chain} ({winner_tvl} vs {loser_tvl})."
    ),
    "C3_ATH_TIMING": "{name} reached its all-time high TVL of {ath_value} in {ath_month}.",
    "C4_GROWTH_RANKING": (
        "{top_chain} had the highest 30-day TVL growth at {top_change}, ahead of {comparison}."
    ),
    "C5_TOP_BY_FEES": "{leader} leads {chain} in 24h fees with {amount}, ahead of {comparison}.",
    "C6_TOP_DEX": "{leader} is the top DEX on {chain} with {amount} in 24h volume, ahead of {comparison}.",
    "C7_CHAIN_TVL_BAND": "{name} has {tvl} in TVL, which falls in the {tvl_band} band.",
    "C8_30D_DIRECTION": "{name}'s TVL {direction} over the past 30 days ({change}).",
    "C9_DISTANCE_FROM_ATH": (
        "{name} holds {current_tvl} in TVL, {ath_distance_percent}% below its all-time high of {ath_value}."
    ),
    "C10_PROTOCOL_COUNT": "{name} hosts {protocol_count} protocols tracked on DefiLlama.",
    "C11_TOP_PROTOCOL_TVL": "{leader} is the largest protocol on {chain} with {amount} TVL, ahead of {comparison}.",
    "C12_CATEGORY_DOMINANCE": "{leader} is the largest category on {chain} with {amount} TVL, ahead of {comparison}.",
    # Post-balance conversion
    "CHANGE_BUCKET": "{name}'s TVL changed {change} over the past 30 days, in the {bucket} band.",
    # Quantitative fallbacks, by kind
    "FALLBACK_TVL_THRESHOLD": "{name} has {tvl} in TVL, {comparison} the {threshold} mark.",
    "FALLBACK_RANK_THRESHOLD": "{name} is ranked #{rank} by TVL, {comparison} the top {threshold}.",
    "FALLBACK_TREND": "{name}'s TVL {direction} over the period ({change}) and now stands at {tvl}.",
    "FALLBACK_TREND_THRESHOLD": "{name}'s TVL changed {change}, which {comparison} the {threshold} threshold.",
    "FALLBACK_CHAIN_COUNT": "{name} is deployed on {chain_count} blockchains, {comparison} {threshold}.",
    "FALLBACK_COMPARE": (
        "{winner} has {margin_percent}% more TVL than {loser} ({winner_tvl} vs {loser_tvl})."
    ),
}


@dataclass(frozen=True)
class Explanation:
    """Explanation text for one question.

    Attributes:
        text: One or two sentences
        llm_fallback: True when the deterministic templated text was used
    """

    text: str
    llm_fallback: bool = True


def explanation_key(draft: QuestionDraft) -> str:
    """Sentence key for a draft: explicit key, then fallback kind, then template id."""
    data = draft.explain_data
    if data.get("explain_key"):
        return str(data["explain_key"])
    if data.get("fallback_kind"):
        return f"FALLBACK_{str(data['fallback_kind']).upper()}"
    return draft.template_id


def _fill(template: str, values: dict) -> str:
    def replace(match: re.Match) -> str:
        value = values.get(match.group(1))
        if value is None:
            return f"[{match.group(1)}]"
        return str(value)

    return _PLACEHOLDER.sub(replace, template)


def missing_keys(draft: QuestionDraft) -> list[str]:
    """Placeholders of the draft's sentence with no value in its explain data."""
    template = EXPLANATION_TEMPLATES.get(explanation_key(draft))
    if template is None:
        return []
    return [
        key for key in _PLACEHOLDER.findall(template)
        if draft.explain_data.get(key) is None
    ]


def render_explanation(draft: QuestionDraft, ctx: Context) -> str:
    template = EXPLANATION_TEMPLATES.get(explanation_key(draft))
    if template is None:
        return _fill(GENERIC_EXPLANATION, {"date": ctx.date})
    return _fill(template, draft.explain_data)


class TemplatedExplainer:
    """Explainer that never leaves the process."""

    def explain(self, draft: QuestionDraft, ctx: Context) -> Explanation:
        return Explanation(text=render_explanation(draft, ctx), llm_fallback=True)


__all__ = [
    "EXPLANATION_TEMPLATES",
    "GENERIC_EXPLANATION",
    "Explanation",
    "TemplatedExplainer",
    "explanation_key",
    "missing_keys",
    "render_explanation",
]
