"""Protocol question templates (P1-P15).

Each template is a ``TemplateConfig`` built from small module-level
functions. Extraction reads the Context only; every random decision is
drawn from a seed derived from the slot seed and a fixed label.

Public API:
    PROTOCOL_TEMPLATE_CONFIGS: configs in id order
    PROTOCOL_TEMPLATES: id -> Template
"""

from __future__ import annotations

from ..core.chain_filter import EXCLUDED_PROTOCOL_CATEGORIES, filter_to_actual_chains
from ..core.distractors import (
    CHANGE_BOUNDARIES,
    CHANGE_CHOICES,
    CONCENTRATION_CHOICES,
    REVENUE_CHOICES,
    Candidate,
    DistractorConstraints,
    change_index,
    concentration_index,
    make_timing_distractors,
    pick_names,
    revenue_index,
    shuffle_with_answer,
)
from ..core.metrics import (
    ab_margin,
    boundary_margin,
    chain_count_bucket,
    change_bucket,
    format_change,
    format_month,
    format_usd,
    format_yyyymm,
)
from ..core.rng import derive_seed, make_rng, shuffle
from ..data.models import FORMAT_CARDINALITY, TF_CHOICES, Context
from .config import (
    Extracted,
    PrereqResult,
    TemplateConfig,
    ab_formats,
    create_template,
    failed,
    has_fees_data,
    has_min_chains,
    has_min_protocol_history,
    has_protocol_list,
    passed,
    standard_formats,
)

# Well-known chains used when a protocol's own chain list is too short
COMMON_CHAINS = (
    "Ethereum",
    "Arbitrum",
    "Polygon",
    "Optimism",
    "BSC",
    "Avalanche",
    "Solana",
    "Base",
    "Fantom",
    "zkSync Era",
)

# Words in a protocol name that give its category away
CATEGORY_LEAK_KEYWORDS: dict[str, tuple[str, ...]] = {
    "lending": ("lend", "loan", "borrow"),
    "dexes": ("swap", "dex", "exchange"),
    "bridge": ("bridge",),
    "derivatives": ("perp", "futures", "options"),
    "yield": ("yield", "farm"),
    "staking": ("stake", "staking"),
}

TVL_BAND_CHOICES = ["<$50M", "$50M-$250M", "$250M-$1B", ">$1B"]
TVL_BAND_BOUNDARIES = (50_000_000, 250_000_000, 1_000_000_000)

FEES_CHANGE_CHOICES = ["Down >20%", "Down 0-20%", "Up 0-20%", "Up >20%"]
FEES_CHANGE_BOUNDARIES = (-0.2, 0.0, 0.2)


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _title(name: str) -> str:
    return name[:1].upper() + name[1:]


def _ranked_chains(ctx: Context) -> list[tuple[str, float]]:
    """The protocol's real chains, largest TVL first."""
    detail = ctx.data.protocol_detail
    if detail is None:
        return []
    chains = filter_to_actual_chains(detail.current_chain_tvls)
    return sorted(chains, key=lambda item: (-item[1], item[0]))


def _coin(seed: int, label: str) -> bool:
    return make_rng(derive_seed(seed, label)).random() > 0.5


def _pair(first: str, second: str, seed: int) -> list[str]:
    return [second, first] if _coin(seed, "swap") else [first, second]


def _direction_choices(seed: int) -> list[str]:
    return ["Decrease", "Increase"] if _coin(seed, "direction") else ["Increase", "Decrease"]


def _tf() -> list[str]:
    return list(TF_CHOICES)


def _topic_tvl(ctx: Context) -> float:
    current = ctx.derived.current_tvl
    return current if current is not None else ctx.topic.tvl


def _protocol_pool(ctx: Context) -> list[Candidate]:
    ordered = sorted(ctx.data.protocol_list or (), key=lambda p: (-p.tvl, p.slug))
    return [
        Candidate(id=p.slug, name=p.name, value=p.tvl, category=p.category or None, rank=i + 1)
        for i, p in enumerate(ordered)
    ]


def _pick_with_answer(correct: str, others: list[str], fmt: str, seed: int) -> list[str] | None:
    needed = FORMAT_CARDINALITY[fmt] - 1
    if len(others) < needed:
        return None
    choices, _ = shuffle_with_answer(correct, others[:needed], seed)
    return choices


def _percent_label(ratio: float) -> str:
    if ratio < 0.01:
        return "less than 1%"
    if ratio < 0.1:
        return f"{ratio * 100:.1f}%"
    return f"{round(ratio * 100)}%"


def _comparison_explain(data: Extracted, ctx: Context) -> dict:
    other = data["other"]
    topic_name = ctx.topic.name
    higher = data["topic_higher"]
    return {
        "winner": topic_name if higher else other.name,
        "loser": other.name if higher else topic_name,
        "winner_tvl": format_usd(max(data["topic_tvl"], other.tvl)),
        "loser_tvl": format_usd(min(data["topic_tvl"], other.tvl)),
        "margin_percent": f"{data['margin'] * 100:.1f}",
    }


# ---------------------------------------------------------------------------
# P1: Protocol fingerprint
# ---------------------------------------------------------------------------


def _p1_prereqs(ctx: Context) -> PrereqResult:
    detail = ctx.data.protocol_detail
    if detail is None:
        return failed("no_detail")
    if not detail.category:
        return failed("no_category")
    if not detail.chains:
        return failed("no_chains")
    if not detail.tvl:
        return failed("no_tvl")
    if not has_protocol_list(ctx):
        return failed("no_list")
    return passed()


def _p1_formats(ctx: Context) -> list[str]:
    return ["mc4"] if ctx.topic.tvl_rank > 50 else ["mc6", "mc4"]


def _p1_extract(ctx: Context, seed: int) -> Extracted | None:
    detail = ctx.data.protocol_detail
    topic = ctx.topic
    pool = _protocol_pool(ctx)
    correct_value = next((c.value for c in pool if c.id == topic.slug), None)
    count = 3 if topic.tvl_rank > 50 else 5

    # Same-category neighbours first, then progressively looser pools
    attempts = (
        DistractorConstraints(
            count=count,
            must_match_category=detail.category,
            max_rank=150,
            max_same_category=count,
            prefer_near_rank=topic.tvl_rank,
            exclude_categories=EXCLUDED_PROTOCOL_CATEGORIES,
        ),
        DistractorConstraints(
            count=count,
            must_match_category=detail.category,
            max_rank=200,
            max_same_category=count,
            exclude_categories=EXCLUDED_PROTOCOL_CATEGORIES,
        ),
        DistractorConstraints(
            count=count, max_rank=150, exclude_categories=EXCLUDED_PROTOCOL_CATEGORIES
        ),
        DistractorConstraints(count=count, exclude_categories=EXCLUDED_PROTOCOL_CATEGORIES),
    )
    distractors = None
    for constraints in attempts:
        distractors = pick_names(topic.slug, pool, constraints, seed, correct_value)
        if distractors is not None:
            break
    if distractors is None:
        return None

    chain_count = len(detail.chains)
    change_7d = ctx.derived.change_7d
    bucket = change_bucket(change_7d) if change_7d is not None else None
    current_tvl = _topic_tvl(ctx)

    # Well-known protocols are identifiable without the size and trend
    # clues, which stay available for later questions.
    familiar = topic.tvl_rank <= 25
    return {
        "category": detail.category,
        "chain_count": chain_count,
        "chain_bucket": chain_count_bucket(chain_count),
        "current_tvl": current_tvl,
        "tvl_band": ctx.derived.tvl_band,
        "change_bucket": bucket,
        "chains": list(detail.chains[:5]),
        "distractors": distractors,
        "revealed_tvl_band": not familiar,
        "revealed_trend": not familiar and bucket is not None,
    }


def _p1_clues(data: Extracted, ctx: Context) -> list[str]:
    clues = [f"Category: {data['category']}", f"Chains: {data['chain_bucket']}"]
    if data["revealed_tvl_band"]:
        clues.append(f"TVL: {data['tvl_band']}")
    if data["revealed_trend"]:
        clues.append(f"7d change: {data['change_bucket']}")
    if not data["revealed_tvl_band"] and not data["revealed_trend"]:
        clues.append("TVL rank: top 10" if ctx.topic.tvl_rank <= 10 else "TVL rank: top 25")
    return clues


def _p1_topics(data: Extracted, ctx: Context) -> list[str]:
    topics = ["fingerprint_base", "category_identification"]
    if data["revealed_tvl_band"]:
        topics.append("fingerprint_tvl_revealed")
    if data["revealed_trend"]:
        topics.append("fingerprint_trend_revealed")
    return topics


P1_FINGERPRINT = TemplateConfig(
    id="P1_FINGERPRINT",
    name="Protocol Fingerprint Guess",
    description="Identify a protocol from a set of clues about its characteristics",
    type="protocol",
    semantic_topics=("fingerprint_base", "category_identification"),
    check_prereqs=_p1_prereqs,
    get_formats=_p1_formats,
    extract=_p1_extract,
    get_prompt=lambda data, ctx, fmt: "Which protocol matches these clues?",
    get_clues=_p1_clues,
    get_choices=lambda data, ctx, fmt, seed: _pick_with_answer(
        ctx.topic.name, data["distractors"], fmt, seed
    ),
    get_answer_index=lambda data, ctx, fmt, choices: choices.index(ctx.topic.name),
    get_margin=lambda data, ctx, fmt: None,
    get_explain_data=lambda data, ctx, fmt, choices, idx: {
        "name": ctx.topic.name,
        "category": data["category"],
        "chain_count": data["chain_count"],
        "tvl": format_usd(data["current_tvl"]),
        "tvl_band": data["tvl_band"],
        "chains": ", ".join(data["chains"]),
    },
    get_build_notes=lambda data, ctx, fmt: [
        f"Generated {len(_p1_clues(data, ctx))} clues for fingerprint"
    ],
    dynamic_topics=_p1_topics,
)


# ---------------------------------------------------------------------------
# P2: Cross-chain dominance
# ---------------------------------------------------------------------------


def _p2_prereqs(ctx: Context) -> PrereqResult:
    if not has_min_chains(ctx, 2):
        return failed("need_2_chains")
    return passed()


def _p2_formats(ctx: Context) -> list[str]:
    ranked = _ranked_chains(ctx)
    if len(ranked) < 2:
        return []
    return ab_formats(ab_margin(ranked[0][1], ranked[1][1]))


def _p2_extract(ctx: Context, seed: int) -> Extracted | None:
    ranked = _ranked_chains(ctx)
    if len(ranked) < 2:
        return None
    # Sometimes compare against the third chain for variety
    if len(ranked) >= 3 and make_rng(derive_seed(seed, "pair")).random() > 0.5:
        chain_a, chain_b = ranked[0], ranked[2]
    else:
        chain_a, chain_b = ranked[0], ranked[1]
    return {
        "chain_a": _title(chain_a[0]),
        "tvl_a": chain_a[1],
        "chain_b": _title(chain_b[0]),
        "tvl_b": chain_b[1],
        "margin": ab_margin(chain_a[1], chain_b[1]) or 0.0,
        "reversed": _coin(seed, "statement"),
    }


def _p2_prompt(data: Extracted, ctx: Context, fmt: str) -> str:
    name = ctx.topic.name
    if fmt == "ab":
        return f"Where does {name} have higher TVL?"
    first, second = data["chain_a"], data["chain_b"]
    if data["reversed"]:
        first, second = second, first
    return f"{name} has higher TVL on {first} than on {second}."


def _p2_answer_value(data: Extracted, ctx: Context) -> bool:
    if data["reversed"]:
        return data["tvl_b"] > data["tvl_a"]
    return data["tvl_a"] > data["tvl_b"]


def _p2_answer_index(data: Extracted, ctx: Context, fmt: str, choices: list[str]) -> int:
    if fmt == "tf":
        return 0 if _p2_answer_value(data, ctx) else 1
    return choices.index(data["chain_a"])


P2_CROSSCHAIN = TemplateConfig(
    id="P2_CROSSCHAIN",
    name="Cross-Chain Dominance",
    description="Compare a protocol's TVL across two chains",
    type="protocol",
    semantic_topics=("tvl_comparison", "cross_chain_dominance", "top_chain_identity"),
    check_prereqs=_p2_prereqs,
    get_formats=_p2_formats,
    extract=_p2_extract,
    get_prompt=_p2_prompt,
    get_choices=lambda data, ctx, fmt, seed: (
        _tf() if fmt == "tf" else _pair(data["chain_a"], data["chain_b"], seed)
    ),
    get_answer_index=_p2_answer_index,
    get_answer_value=_p2_answer_value,
    get_margin=lambda data, ctx, fmt: data["margin"],
    get_explain_data=lambda data, ctx, fmt, choices, idx: {
        "name": ctx.topic.name,
        "winner_chain": data["chain_a"],
        "loser_chain": data["chain_b"],
        "winner_tvl": format_usd(data["tvl_a"]),
        "loser_tvl": format_usd(data["tvl_b"]),
        "margin_percent": round(data["margin"] * 100),
    },
    get_build_notes=lambda data, ctx, fmt: [
        f"Comparing {data['chain_a']} ({format_usd(data['tvl_a'])}) "
        f"vs {data['chain_b']} ({format_usd(data['tvl_b'])})",
        f"Margin: {data['margin'] * 100:.1f}%",
    ],
)


# ---------------------------------------------------------------------------
# P3: Top chain concentration
# ---------------------------------------------------------------------------


def _p3_prereqs(ctx: Context) -> PrereqResult:
    detail = ctx.data.protocol_detail
    if detail is None or not detail.current_chain_tvls:
        return failed("no_chain_tvls")
    # A single-chain protocol always sits at 100%
    if len(filter_to_actual_chains(detail.current_chain_tvls)) < 2:
        return failed("single_chain_trivial")
    return passed()


def _p3_extract(ctx: Context, seed: int) -> Extracted | None:
    ranked = _ranked_chains(ctx)
    if not ranked:
        return None
    total = sum(tvl for _, tvl in ranked)
    share = ranked[0][1] / total if total > 0 else 0.0
    return {
        "top_chain": _title(ranked[0][0]),
        "top_chain_tvl": ranked[0][1],
        "total_tvl": total,
        "share": share,
        "bucket_index": concentration_index(share),
    }


P3_CONCENTRATION = TemplateConfig(
    id="P3_CONCENTRATION",
    name="Top Chain Concentration",
    description="What share of a protocol's TVL is on its dominant chain",
    type="protocol",
    semantic_topics=("tvl_concentration", "top_chain_identity"),
    check_prereqs=_p3_prereqs,
    get_formats=lambda ctx: ["mc4"],
    extract=_p3_extract,
    get_prompt=lambda data, ctx, fmt: (
        f"What share of {ctx.topic.name}'s TVL is on its top chain ({data['top_chain']})?"
    ),
    get_choices=lambda data, ctx, fmt, seed: list(CONCENTRATION_CHOICES),
    get_answer_index=lambda data, ctx, fmt, choices: data["bucket_index"],
    get_margin=lambda data, ctx, fmt: boundary_margin(data["share"], (0.25, 0.5, 0.75), scale=4),
    get_explain_data=lambda data, ctx, fmt, choices, idx: {
        "name": ctx.topic.name,
        "top_chain": data["top_chain"],
        "share_percent": round(data["share"] * 100),
        "top_chain_tvl": format_usd(data["top_chain_tvl"]),
        "total_tvl": format_usd(data["total_tvl"]),
    },
)


# ---------------------------------------------------------------------------
# P4: ATH timing
# ---------------------------------------------------------------------------


def _p4_prereqs(ctx: Context) -> PrereqResult:
    if not has_min_protocol_history(ctx, 180):
        return failed("need_180d_history")
    if not ctx.derived.ath_value or not ctx.derived.ath_date:
        return failed("no_ath_data")
    return passed()


def _p4_extract(ctx: Context, seed: int) -> Extracted | None:
    history = ctx.data.protocol_detail.tvl
    ath_ts = ctx.derived.ath_date
    return {
        "ath_value": ctx.derived.ath_value,
        "ath_month": format_month(ath_ts),
        "ath_yyyymm": format_yyyymm(ath_ts),
        "history_start": format_yyyymm(history[0][0]),
        "history_end": format_yyyymm(history[-1][0]),
    }


def _p4_choices(data: Extracted, ctx: Context, fmt: str, seed: int) -> list[str]:
    timing = make_timing_distractors(
        data["ath_yyyymm"],
        FORMAT_CARDINALITY[fmt] - 1,
        derive_seed(seed, "months"),
        history_start=data["history_start"],
        history_end=data["history_end"],
    )
    return timing.choices


def _p4_explain(data: Extracted, ctx: Context, fmt: str, choices: list[str], idx: int) -> dict:
    others = [c for c in choices if c != data["ath_month"]]
    return {
        "name": ctx.topic.name,
        "ath_value": format_usd(data["ath_value"]),
        "ath_month": data["ath_month"],
        "distractor_months": ", ".join(others),
    }


P4_ATH_TIMING = TemplateConfig(
    id="P4_ATH_TIMING",
    name="ATH Timing",
    description="When did a protocol reach its all-time high TVL",
    type="protocol",
    semantic_topics=("ath_history",),
    check_prereqs=_p4_prereqs,
    get_formats=lambda ctx: ["mc6", "mc4"],
    extract=_p4_extract,
    get_prompt=lambda data, ctx, fmt: f"In what month did {ctx.topic.name} hit its all-time high TVL?",
    get_choices=_p4_choices,
    get_answer_index=lambda data, ctx, fmt, choices: choices.index(data["ath_month"]),
    get_margin=lambda data, ctx, fmt: 0.25,
    get_explain_data=_p4_explain,
)


# ---------------------------------------------------------------------------
# P5: Fees vs revenue
# ---------------------------------------------------------------------------


def _p5_formats(ctx: Context) -> list[str]:
    revenue = ctx.data.protocol_revenue
    if revenue is None or not revenue.total_7d:
        return ["tf"]
    return ["mc4", "ab", "tf"]


def _p5_extract(ctx: Context, seed: int) -> Extracted | None:
    fees_7d = ctx.derived.fees_7d
    if fees_7d is None:
        fees_7d = ctx.data.protocol_fees.total_7d or 0.0
    revenue_7d = ctx.derived.revenue_7d or 0.0
    ratio = revenue_7d / fees_7d if fees_7d > 0 else 0.0
    return {
        "fees_7d": fees_7d,
        "revenue_7d": revenue_7d,
        "has_revenue": revenue_7d > 0,
        "ratio": ratio,
        "bucket_index": revenue_index(ratio),
    }


def _p5_prompt(data: Extracted, ctx: Context, fmt: str) -> str:
    name = ctx.topic.name
    if fmt == "tf":
        return f"{name} has generated non-zero protocol revenue over the past week."
    if fmt == "ab":
        return f"Over the last 7 days, did {name} generate more in fees or revenue?"
    return f"What percentage of {name}'s fees became protocol revenue over the past 7 days?"


def _p5_choices(data: Extracted, ctx: Context, fmt: str, seed: int) -> list[str]:
    if fmt == "tf":
        return _tf()
    if fmt == "ab":
        return _pair("Fees", "Revenue", seed)
    return list(REVENUE_CHOICES)


def _p5_answer_index(data: Extracted, ctx: Context, fmt: str, choices: list[str]) -> int:
    if fmt == "tf":
        return 0 if data["has_revenue"] else 1
    if fmt == "ab":
        return choices.index("Fees" if data["fees_7d"] > data["revenue_7d"] else "Revenue")
    return data["bucket_index"]


def _p5_margin(data: Extracted, ctx: Context, fmt: str) -> float | None:
    if fmt == "tf":
        return 0.3
    if fmt == "ab":
        return ab_margin(data["fees_7d"], data["revenue_7d"]) or 0.0
    return boundary_margin(data["ratio"], (0.1, 0.3, 0.6), scale=4)


P5_FEES_REVENUE = TemplateConfig(
    id="P5_FEES_REVENUE",
    name="Fees vs Revenue",
    description="Compare a protocol's fees and revenue metrics",
    type="protocol",
    semantic_topics=("fees_metrics",),
    check_prereqs=lambda ctx: passed() if has_fees_data(ctx) else failed("no_fees"),
    get_formats=_p5_formats,
    extract=_p5_extract,
    get_prompt=_p5_prompt,
    get_choices=_p5_choices,
    get_answer_index=_p5_answer_index,
    get_answer_value=lambda data, ctx: data["has_revenue"],
    get_margin=_p5_margin,
    get_explain_data=lambda data, ctx, fmt, choices, idx: {
        "name": ctx.topic.name,
        "fees_7d": format_usd(data["fees_7d"]),
        "revenue_7d": format_usd(data["revenue_7d"]),
        "has_revenue": data["has_revenue"],
        "revenue_percent": _percent_label(data["ratio"]),
    },
)


# ---------------------------------------------------------------------------
# P6: 30-day TVL trend
# ---------------------------------------------------------------------------


def _trend_prereqs(ctx: Context) -> PrereqResult:
    if ctx.derived.change_30d is None:
        return failed("no_change30d")
    return passed()


def _p6_formats(ctx: Context) -> list[str]:
    if abs(ctx.derived.change_30d or 0.0) < 0.02:
        return ["tf"]
    return ["tf", "mc4", "ab"]


def _trend_extract(ctx: Context, seed: int) -> Extracted | None:
    change = ctx.derived.change_30d
    if change is None:
        return None
    return {
        "change": change,
        "increased": change > 0,
        "bucket_index": change_index(change),
    }


def _p6_prompt(data: Extracted, ctx: Context, fmt: str) -> str:
    name = ctx.topic.name
    if fmt == "tf":
        return f"{name}'s TVL increased over the past 30 days."
    if fmt == "ab":
        return f"Over the past 30 days, did {name}'s TVL increase or decrease?"
    return f"What was {name}'s approximate TVL change over the past 30 days?"


def _trend_choices(data: Extracted, ctx: Context, fmt: str, seed: int) -> list[str]:
    if fmt == "tf":
        return _tf()
    if fmt == "ab":
        return _direction_choices(seed)
    return list(CHANGE_CHOICES)


def _trend_answer_index(data: Extracted, ctx: Context, fmt: str, choices: list[str]) -> int:
    if fmt == "tf":
        return 0 if data["increased"] else 1
    if fmt == "ab":
        return choices.index("Increase" if data["increased"] else "Decrease")
    return data["bucket_index"]


def _trend_margin(data: Extracted, ctx: Context, fmt: str) -> float | None:
    if fmt == "mc4":
        return boundary_margin(data["change"], CHANGE_BOUNDARIES, scale=4)
    return abs(data["change"])


def _trend_explain(data: Extracted, ctx: Context, fmt: str, choices: list[str], idx: int) -> dict:
    return {
        "name": ctx.topic.name,
        "change": format_change(data["change"]),
        "direction": "increased" if data["increased"] else "decreased",
        "period": "30 days",
        "tvl": format_usd(_topic_tvl(ctx)),
    }


P6_TVL_TREND = TemplateConfig(
    id="P6_TVL_TREND",
    name="TVL Trend",
    description="Did a protocol's TVL increase or decrease over the past 30 days",
    type="protocol",
    semantic_topics=("tvl_trend_30d", "tvl_direction", "fingerprint_trend_revealed"),
    check_prereqs=_trend_prereqs,
    get_formats=_p6_formats,
    extract=_trend_extract,
    get_prompt=_p6_prompt,
    get_choices=_trend_choices,
    get_answer_index=_trend_answer_index,
    get_answer_value=lambda data, ctx: data["increased"],
    get_margin=_trend_margin,
    get_explain_data=_trend_explain,
)


# ---------------------------------------------------------------------------
# P7: Category identification
# ---------------------------------------------------------------------------


def _p7_prereqs(ctx: Context) -> PrereqResult:
    detail = ctx.data.protocol_detail
    if detail is None or not detail.category:
        return failed("no_category")
    name = ctx.topic.name.lower()
    for keyword in CATEGORY_LEAK_KEYWORDS.get(detail.category.lower(), ()):
        if keyword in name:
            return failed(f"name_leaks_category:{keyword}")
    if not has_protocol_list(ctx):
        return failed("no_list")
    return passed()


def _p7_extract(ctx: Context, seed: int) -> Extracted | None:
    category = ctx.data.protocol_detail.category
    others = sorted(
        {
            p.category
            for p in ctx.data.protocol_list
            if p.category
            and p.category != category
            and p.category not in EXCLUDED_PROTOCOL_CATEGORIES
        }
    )
    distractors = shuffle(others, seed, "categories")[:5]
    if len(distractors) < 3:
        return None
    return {"category": category, "distractors": distractors}


P7_CATEGORY = TemplateConfig(
    id="P7_CATEGORY",
    name="Category Identification",
    description="Identify a protocol's category",
    type="protocol",
    semantic_topics=("category_identification",),
    check_prereqs=_p7_prereqs,
    get_formats=lambda ctx: standard_formats(ctx, hard=("mc4", "mc6"), medium=("mc4",), easy=("mc4",)),
    extract=_p7_extract,
    get_prompt=lambda data, ctx, fmt: f"What category is {ctx.topic.name}?",
    get_choices=lambda data, ctx, fmt, seed: _pick_with_answer(
        data["category"], data["distractors"], fmt, seed
    ),
    get_answer_index=lambda data, ctx, fmt, choices: choices.index(data["category"]),
    get_margin=lambda data, ctx, fmt: 0.5,
    get_explain_data=lambda data, ctx, fmt, choices, idx: {
        "name": ctx.topic.name,
        "category": data["category"],
    },
)


# ---------------------------------------------------------------------------
# P8: Chain membership
# ---------------------------------------------------------------------------


def _absent_chains(ctx: Context) -> list[str]:
    deployed = {chain.lower() for chain in ctx.data.protocol_detail.chains}
    return [chain for chain in COMMON_CHAINS if chain.lower() not in deployed]


def _p8_prereqs(ctx: Context) -> PrereqResult:
    detail = ctx.data.protocol_detail
    if detail is None or not detail.chains:
        return failed("no_chains")
    return passed()


def _p8_formats(ctx: Context) -> list[str]:
    return ["mc4", "tf"] if len(_absent_chains(ctx)) >= 3 else ["tf"]


def _p8_extract(ctx: Context, seed: int) -> Extracted | None:
    chains = list(ctx.data.protocol_detail.chains)
    present = chains[int(make_rng(derive_seed(seed, "present")).random() * len(chains))]
    absent = shuffle(_absent_chains(ctx), seed, "distractors")
    # The statement names an absent chain half of the time
    if absent and _coin(seed, "statement"):
        statement_chain = absent[0]
    else:
        statement_chain = present
    return {
        "chains": chains,
        "present": present,
        "distractors": absent[:3],
        "statement_chain": statement_chain,
        "statement_true": statement_chain == present,
    }


P8_CHAIN_MEMBERSHIP = TemplateConfig(
    id="P8_CHAIN_MEMBERSHIP",
    name="Chain Membership",
    description="Check if a protocol is deployed on a specific chain",
    type="protocol",
    semantic_topics=("chain_identity",),
    check_prereqs=_p8_prereqs,
    get_formats=_p8_formats,
    extract=_p8_extract,
    get_prompt=lambda data, ctx, fmt: (
        f"{ctx.topic.name} is deployed on {data['statement_chain']}."
        if fmt == "tf"
        else f"Which chain is {ctx.topic.name} deployed on?"
    ),
    get_choices=lambda data, ctx, fmt, seed: (
        _tf() if fmt == "tf" else _pick_with_answer(data["present"], data["distractors"], fmt, seed)
    ),
    get_answer_index=lambda data, ctx, fmt, choices: (
        (0 if data["statement_true"] else 1) if fmt == "tf" else choices.index(data["present"])
    ),
    get_answer_value=lambda data, ctx: data["statement_true"],
    get_margin=lambda data, ctx, fmt: 0.4,
    get_explain_data=lambda data, ctx, fmt, choices, idx: {
        "name": ctx.topic.name,
        "chains": ", ".join(data["chains"][:5]),
        "chain_count": len(data["chains"]),
        "statement_chain": data["statement_chain"],
    },
)


# ---------------------------------------------------------------------------
# P9: Top chain name
# ---------------------------------------------------------------------------


def _p9_formats(ctx: Context) -> list[str]:
    ranked = _ranked_chains(ctx)
    if len(ranked) < 2:
        return ["tf"]
    margin = ab_margin(ranked[0][1], ranked[1][1])
    if margin is not None and margin < 0.15:
        return ["tf"]
    return ["mc4", "tf"]


def _p9_extract(ctx: Context, seed: int) -> Extracted | None:
    ranked = _ranked_chains(ctx)
    if len(ranked) < 2:
        return None
    chain_tvls = [(_title(chain), tvl) for chain, tvl in ranked]
    distractors = shuffle([chain for chain, _ in chain_tvls[1:5]], seed, "distractors")[:3]
    if len(distractors) < 3:
        known = {chain.lower() for chain, _ in chain_tvls}
        padding = [c for c in ("Ethereum", "Arbitrum", "Polygon", "BSC", "Solana") if c.lower() not in known]
        distractors.extend(padding[: 3 - len(distractors)])
    return {
        "top_chain": chain_tvls[0][0],
        "top_tvl": chain_tvls[0][1],
        "second_chain": chain_tvls[1][0],
        "chain_tvls": chain_tvls,
        "margin": ab_margin(ranked[0][1], ranked[1][1]) or 0.0,
        "distractors": distractors,
        "reversed": _coin(seed, "statement"),
    }


def _p9_prompt(data: Extracted, ctx: Context, fmt: str) -> str:
    name = ctx.topic.name
    if fmt == "tf":
        first, second = data["top_chain"], data["second_chain"]
        if data["reversed"]:
            first, second = second, first
        return f"{name} has more TVL on {first} than on {second}."
    return f"On which chain does {name} have the most TVL?"


def _p9_answer_value(data: Extracted, ctx: Context) -> bool:
    top_tvl, second_tvl = data["chain_tvls"][0][1], data["chain_tvls"][1][1]
    if data["reversed"]:
        return second_tvl > top_tvl
    return top_tvl > second_tvl


P9_TOP_CHAIN = TemplateConfig(
    id="P9_TOP_CHAIN",
    name="Top Chain Name",
    description="Which chain has the most TVL for a multi-chain protocol",
    type="protocol",
    semantic_topics=("top_chain_identity",),
    check_prereqs=lambda ctx: passed() if has_min_chains(ctx, 2) else failed("need_2_chains"),
    get_formats=_p9_formats,
    extract=_p9_extract,
    get_prompt=_p9_prompt,
    get_choices=lambda data, ctx, fmt, seed: (
        _tf() if fmt == "tf" else _pick_with_answer(data["top_chain"], data["distractors"], fmt, seed)
    ),
    get_answer_index=lambda data, ctx, fmt, choices: (
        (0 if _p9_answer_value(data, ctx) else 1) if fmt == "tf" else choices.index(data["top_chain"])
    ),
    get_answer_value=_p9_answer_value,
    get_margin=lambda data, ctx, fmt: data["margin"],
    get_explain_data=lambda data, ctx, fmt, choices, idx: {
        "name": ctx.topic.name,
        "top_chain": data["top_chain"],
        "top_tvl": format_usd(data["top_tvl"]),
        "comparison": ", ".join(f"{chain}: {format_usd(tvl)}" for chain, tvl in data["chain_tvls"][:3]),
    },
)


# ---------------------------------------------------------------------------
# P10: TVL band
# ---------------------------------------------------------------------------


def _band_index(tvl: float) -> int:
    index = 0
    for boundary in TVL_BAND_BOUNDARIES:
        if tvl >= boundary:
            index += 1
    return index


P10_TVL_BAND = TemplateConfig(
    id="P10_TVL_BAND",
    name="TVL Band",
    description="Which TVL range fits a protocol",
    type="protocol",
    semantic_topics=("tvl_magnitude", "fingerprint_tvl_revealed"),
    check_prereqs=lambda ctx: passed() if ctx.derived.current_tvl else failed("no_tvl"),
    get_formats=lambda ctx: ["mc4"],
    extract=lambda ctx, seed: {
        "tvl": ctx.derived.current_tvl,
        "bucket_index": _band_index(ctx.derived.current_tvl),
    },
    get_prompt=lambda data, ctx, fmt: f"Which TVL range fits {ctx.topic.name}?",
    get_choices=lambda data, ctx, fmt, seed: list(TVL_BAND_CHOICES),
    get_answer_index=lambda data, ctx, fmt, choices: data["bucket_index"],
    get_margin=lambda data, ctx, fmt: boundary_margin(
        data["tvl"], TVL_BAND_BOUNDARIES, scale=2, relative=True
    ),
    get_explain_data=lambda data, ctx, fmt, choices, idx: {
        "name": ctx.topic.name,
        "tvl": format_usd(data["tvl"]),
        "tvl_band": TVL_BAND_CHOICES[data["bucket_index"]],
    },
)


# ---------------------------------------------------------------------------
# P11: Fees trend
# ---------------------------------------------------------------------------


def _p11_prereqs(ctx: Context) -> PrereqResult:
    fees = ctx.data.protocol_fees
    if fees is None or len(fees.chart) < 14:
        return failed("need_14d_fees")
    return passed()


def _p11_extract(ctx: Context, seed: int) -> Extracted | None:
    chart = ctx.data.protocol_fees.chart
    if len(chart) < 14:
        return None
    fees_now = sum(value for _, value in chart[-7:])
    fees_before = sum(value for _, value in chart[-14:-7])
    if fees_before == 0:
        return None
    trend = (fees_now - fees_before) / fees_before
    index = 0
    for boundary in FEES_CHANGE_BOUNDARIES:
        if trend > boundary:
            index += 1
    return {
        "trend": trend,
        "increased": trend > 0,
        "fees_now": fees_now,
        "fees_before": fees_before,
        "bucket_index": index,
    }


P11_FEES_TREND = TemplateConfig(
    id="P11_FEES_TREND",
    name="Fees Trend",
    description="Did a protocol's fees increase or decrease week over week",
    type="protocol",
    semantic_topics=("fees_metrics",),
    check_prereqs=_p11_prereqs,
    get_formats=lambda ctx: ["tf", "mc4"],
    extract=_p11_extract,
    get_prompt=lambda data, ctx, fmt: (
        f"{ctx.topic.name}'s fees increased over the past week compared to the week before."
        if fmt == "tf"
        else f"How did {ctx.topic.name}'s weekly fees change compared to the previous week?"
    ),
    get_choices=lambda data, ctx, fmt, seed: _tf() if fmt == "tf" else list(FEES_CHANGE_CHOICES),
    get_answer_index=lambda data, ctx, fmt, choices: (
        (0 if data["increased"] else 1) if fmt == "tf" else data["bucket_index"]
    ),
    get_answer_value=lambda data, ctx: data["increased"],
    get_margin=lambda data, ctx, fmt: (
        abs(data["trend"])
        if fmt == "tf"
        else boundary_margin(data["trend"], FEES_CHANGE_BOUNDARIES, scale=4)
    ),
    get_explain_data=lambda data, ctx, fmt, choices, idx: {
        "name": ctx.topic.name,
        "fees_trend": format_change(data["trend"]),
        "fees_now": format_usd(data["fees_now"]),
        "fees_before": format_usd(data["fees_before"]),
    },
)


# ---------------------------------------------------------------------------
# P12: DEX liquidity trend
# ---------------------------------------------------------------------------


def _p12_prereqs(ctx: Context) -> PrereqResult:
    detail = ctx.data.protocol_detail
    if detail is None or detail.category != "Dexes":
        return failed("not_dex")
    if ctx.derived.change_7d is None:
        return failed("no_change")
    return passed()


P12_DEX_VOLUME_TREND = TemplateConfig(
    id="P12_DEX_VOLUME_TREND",
    name="DEX Liquidity Trend",
    description="Did a DEX's pooled liquidity grow over the past week",
    type="protocol",
    semantic_topics=("tvl_trend_7d",),
    check_prereqs=_p12_prereqs,
    get_formats=lambda ctx: ["tf"],
    extract=lambda ctx, seed: {"change": ctx.derived.change_7d},
    get_prompt=lambda data, ctx, fmt: f"{ctx.topic.name}'s pooled liquidity grew over the past 7 days.",
    get_choices=lambda data, ctx, fmt, seed: _tf(),
    get_answer_index=lambda data, ctx, fmt, choices: 0 if data["change"] > 0 else 1,
    get_answer_value=lambda data, ctx: data["change"] > 0,
    get_margin=lambda data, ctx, fmt: abs(data["change"]),
    get_explain_data=lambda data, ctx, fmt, choices, idx: {
        "name": ctx.topic.name,
        "trend": format_change(data["change"]),
    },
)


# ---------------------------------------------------------------------------
# P13 / P14: Head-to-head TVL comparisons
# ---------------------------------------------------------------------------


def _comparison_extract(peers, ctx: Context, seed: int) -> Extracted | None:
    if not peers:
        return None
    other = peers[int(make_rng(derive_seed(seed, "peer")).random() * len(peers))]
    topic_tvl = _topic_tvl(ctx)
    # Equal TVL has no correct side
    if topic_tvl == other.tvl:
        return None
    return {
        "other": other,
        "topic_tvl": topic_tvl,
        "topic_higher": topic_tvl > other.tvl,
        "margin": ab_margin(topic_tvl, other.tvl) or 0.0,
        "category": getattr(ctx.topic, "category", ""),
    }


def _comparison_answer_index(data: Extracted, ctx: Context, fmt: str, choices: list[str]) -> int:
    if fmt == "tf":
        return 0 if data["topic_higher"] else 1
    return choices.index(ctx.topic.name if data["topic_higher"] else data["other"].name)


def _comparison_choices(data: Extracted, ctx: Context, fmt: str, seed: int) -> list[str]:
    if fmt == "tf":
        return _tf()
    return _pair(ctx.topic.name, data["other"].name, seed)


P13_TVL_RANK_COMPARISON = TemplateConfig(
    id="P13_TVL_RANK_COMPARISON",
    name="TVL Rank Comparison",
    description="Compare a protocol's TVL to a similarly ranked protocol",
    type="protocol",
    semantic_topics=("tvl_comparison",),
    check_prereqs=lambda ctx: passed() if ctx.derived.nearby_protocols else failed("no_nearby"),
    get_formats=lambda ctx: ["ab", "tf"],
    extract=lambda ctx, seed: _comparison_extract(ctx.derived.nearby_protocols, ctx, seed),
    get_prompt=lambda data, ctx, fmt: (
        f"{ctx.topic.name} has higher TVL than {data['other'].name}."
        if fmt == "tf"
        else "Which protocol has higher TVL?"
    ),
    get_choices=_comparison_choices,
    get_answer_index=_comparison_answer_index,
    get_answer_value=lambda data, ctx: data["topic_higher"],
    get_margin=lambda data, ctx, fmt: data["margin"],
    get_explain_data=lambda data, ctx, fmt, choices, idx: _comparison_explain(data, ctx),
)


def _p14_prereqs(ctx: Context) -> PrereqResult:
    if not ctx.derived.category_protocols:
        return failed("no_category_peers")
    if not getattr(ctx.topic, "category", ""):
        return failed("no_topic_category")
    return passed()


P14_CATEGORY_LEADER = TemplateConfig(
    id="P14_CATEGORY_LEADER",
    name="Category Leader Comparison",
    description="Compare a protocol to another in the same category",
    type="protocol",
    semantic_topics=("tvl_comparison", "category_ranking"),
    check_prereqs=_p14_prereqs,
    get_formats=lambda ctx: ["ab", "tf"],
    extract=lambda ctx, seed: _comparison_extract(ctx.derived.category_protocols, ctx, seed),
    get_prompt=lambda data, ctx, fmt: (
        f"{ctx.topic.name} has higher TVL than {data['other'].name}."
        if fmt == "tf"
        else f"Which {data['category']} protocol has higher TVL?"
    ),
    get_choices=_comparison_choices,
    get_answer_index=_comparison_answer_index,
    get_answer_value=lambda data, ctx: data["topic_higher"],
    get_margin=lambda data, ctx, fmt: data["margin"],
    get_explain_data=lambda data, ctx, fmt, choices, idx: {
        "category": data["category"],
        **_comparison_explain(data, ctx),
    },
)


# ---------------------------------------------------------------------------
# P15: Recent TVL direction
# ---------------------------------------------------------------------------


def _p15_prereqs(ctx: Context) -> PrereqResult:
    change = ctx.derived.change_30d
    if change is None or abs(change) <= 0.02:
        return failed("no_clear_30d_trend")
    return passed()


P15_RECENT_TVL_DIRECTION = TemplateConfig(
    id="P15_RECENT_TVL_DIRECTION",
    name="Recent TVL Direction",
    description="Simple question about a protocol's 30-day TVL direction",
    type="protocol",
    semantic_topics=("tvl_trend_30d", "tvl_direction", "fingerprint_trend_revealed"),
    check_prereqs=_p15_prereqs,
    get_formats=lambda ctx: ["ab", "tf"],
    extract=_trend_extract,
    get_prompt=lambda data, ctx, fmt: (
        f"{ctx.topic.name}'s TVL has increased over the past 30 days."
        if fmt == "tf"
        else f"Over the past 30 days, did {ctx.topic.name}'s TVL increase or decrease?"
    ),
    get_choices=_trend_choices,
    get_answer_index=_trend_answer_index,
    get_answer_value=lambda data, ctx: data["increased"],
    get_margin=lambda data, ctx, fmt: abs(data["change"]),
    get_explain_data=_trend_explain,
)


PROTOCOL_TEMPLATE_CONFIGS: list[TemplateConfig] = [
    P1_FINGERPRINT,
    P2_CROSSCHAIN,
    P3_CONCENTRATION,
    P4_ATH_TIMING,
    P5_FEES_REVENUE,
    P6_TVL_TREND,
    P7_CATEGORY,
    P8_CHAIN_MEMBERSHIP,
    P9_TOP_CHAIN,
    P10_TVL_BAND,
    P11_FEES_TREND,
    P12_DEX_VOLUME_TREND,
    P13_TVL_RANK_COMPARISON,
    P14_CATEGORY_LEADER,
    P15_RECENT_TVL_DIRECTION,
]

PROTOCOL_TEMPLATES = {config.id: create_template(config) for config in PROTOCOL_TEMPLATE_CONFIGS}


__all__ = [
    "PROTOCOL_TEMPLATE_CONFIGS",
    "PROTOCOL_TEMPLATES",
]
