"""Chain question templates (C1-C12).

Chain topics are matched against protocol and chain lists by slug or
display name, case-insensitively. "Now" is always the episode date
(``ctx.as_of_ts``).

Public API:
    CHAIN_TEMPLATE_CONFIGS: configs in id order
    CHAIN_TEMPLATES: id -> Template
"""

from __future__ import annotations

from ..core.chain_filter import is_excluded_category
from ..core.distractors import Candidate, DistractorConstraints, make_timing_distractors, pick_names
from ..core.metrics import (
    SECONDS_PER_DAY,
    ab_margin,
    boundary_margin,
    change_bucket,
    format_change,
    format_month,
    format_usd,
    format_yyyymm,
    tvl_band,
    tvl_rank_bucket,
)
from ..core.rng import derive_seed, make_rng, shuffle
from ..data.models import FORMAT_CARDINALITY, TF_CHOICES, Context, LeaderboardEntry, ProtocolListEntry
from .config import (
    Extracted,
    PrereqResult,
    TemplateConfig,
    ab_formats,
    create_template,
    failed,
    has_chain_dex_data,
    has_chain_fees_data,
    has_chain_pool,
    has_min_chain_history,
    has_protocol_list,
    passed,
)

# Leaderboards whose two leaders are this close only get an A/B question
LEADER_MIN_MARGIN = 0.1

# Fees below this (USD, 24h) make a "top by fees" question meaningless
MIN_TOP_FEES = 100

CHAIN_TVL_BAND_CHOICES = ["<$500M", "$500M-$2B", "$2B-$10B", ">$10B"]
CHAIN_TVL_BAND_BOUNDARIES = (500_000_000, 2_000_000_000, 10_000_000_000)

ATH_DISTANCE_CHOICES = ["Within 10%", "10-30% below", "30-60% below", ">60% below"]
ATH_DISTANCE_BOUNDARIES = (0.1, 0.3, 0.6)

PROTOCOL_COUNT_CHOICES = ["<50", "50-100", "100-250", ">250"]
PROTOCOL_COUNT_BOUNDARIES = (50, 100, 250)


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _topic_ids(ctx: Context) -> set[str]:
    return {ctx.topic.slug.lower(), ctx.topic.name.lower()}


def _on_chain(entry: ProtocolListEntry, ctx: Context) -> bool:
    ids = _topic_ids(ctx)
    return any(chain.lower() in ids for chain in entry.chains)


def _protocols_on_chain(ctx: Context) -> list[ProtocolListEntry]:
    """DeFi protocols deployed on the topic chain, largest TVL first."""
    on_chain = [
        p
        for p in ctx.data.protocol_list or ()
        if _on_chain(p, ctx) and not is_excluded_category(p.category)
    ]
    return sorted(on_chain, key=lambda p: (-p.tvl, p.slug))


def _sorted_leaderboard(entries: tuple[LeaderboardEntry, ...] | None) -> list[LeaderboardEntry]:
    return sorted(entries or (), key=lambda e: (-e.value, e.name))


def _leader_formats(values: list[float], allow_mc6: bool = False) -> list[str]:
    if len(values) < 2:
        return []
    margin = ab_margin(values[0], values[1])
    if margin is not None and margin < LEADER_MIN_MARGIN:
        return ["ab"]
    if allow_mc6 and len(values) >= 6:
        return ["mc6", "mc4", "ab"]
    if len(values) >= 4:
        return ["mc4", "ab"]
    return ["ab"]


def _leader_choices(names: list[str], fmt: str, seed: int) -> list[str] | None:
    """The top ``n`` names of a leaderboard, shuffled; None when too short."""
    count = FORMAT_CARDINALITY[fmt]
    if len(names) < count:
        return None
    return shuffle(names[:count], seed, "shuffle")


def _coin(seed: int, label: str) -> bool:
    return make_rng(derive_seed(seed, label)).random() > 0.5


def _tf() -> list[str]:
    return list(TF_CHOICES)


def _bucket(value: float, boundaries: tuple[float, ...]) -> int:
    index = 0
    for boundary in boundaries:
        if value >= boundary:
            index += 1
    return index


# ---------------------------------------------------------------------------
# C1: Chain fingerprint
# ---------------------------------------------------------------------------


def _c1_prereqs(ctx: Context) -> PrereqResult:
    if not ctx.data.chain_list or len(ctx.data.chain_list) < 6:
        return failed("need_6_chains")
    if not ctx.topic.tvl or not ctx.topic.tvl_rank:
        return failed("no_tvl")
    return passed()


def _c1_extract(ctx: Context, seed: int) -> Extracted | None:
    topic = ctx.topic
    ordered = sorted(ctx.data.chain_list, key=lambda c: (-c.tvl, c.name))
    pool = [
        Candidate(id=c.name.lower(), name=c.name, value=c.tvl, rank=i + 1)
        for i, c in enumerate(ordered)
    ]
    count = 3 if topic.tvl_rank > 20 else 5
    distractors = pick_names(
        topic.name.lower(),
        pool,
        DistractorConstraints(
            count=count,
            avoid=frozenset(_topic_ids(ctx)),
            prefer_near_rank=topic.tvl_rank,
        ),
        seed,
    )
    if distractors is None:
        return None

    change_30d = None
    if ctx.data.chain_history and len(ctx.data.chain_history) > 30:
        change_30d = ctx.derived.chain_change_30d
    trend = change_bucket(change_30d) if change_30d is not None else None

    # Top-25 chains are recognisable from rank and token alone
    familiar = topic.tvl_rank <= 25
    return {
        "tvl_rank": topic.tvl_rank,
        "rank_bucket": tvl_rank_bucket(topic.tvl_rank),
        "tvl_band": tvl_band(topic.tvl),
        "token_symbol": topic.token_symbol,
        "trend_bucket": trend,
        "distractors": distractors,
        "revealed_tvl_band": not familiar,
        "revealed_trend": not familiar and trend is not None,
    }


def _c1_clues(data: Extracted, ctx: Context) -> list[str]:
    clues = [f"TVL rank: {data['rank_bucket']}"]
    if data["revealed_tvl_band"]:
        clues.append(f"TVL: {data['tvl_band']}")
    if data["token_symbol"]:
        clues.append(f"Native token: {data['token_symbol']}")
    if data["revealed_trend"]:
        clues.append(f"30d trend: {data['trend_bucket']}")
    return clues


def _c1_choices(data: Extracted, ctx: Context, fmt: str, seed: int) -> list[str] | None:
    needed = FORMAT_CARDINALITY[fmt] - 1
    if len(data["distractors"]) < needed:
        return None
    names = [ctx.topic.name] + data["distractors"][:needed]
    return shuffle(names, seed, "shuffle")


def _c1_topics(data: Extracted, ctx: Context) -> list[str]:
    topics = ["fingerprint_base"]
    if data["revealed_tvl_band"]:
        topics.append("fingerprint_tvl_revealed")
    if data["revealed_trend"]:
        topics.append("fingerprint_trend_revealed")
    return topics


C1_FINGERPRINT = TemplateConfig(
    id="C1_FINGERPRINT",
    name="Chain Fingerprint Guess",
    description="Identify a chain from a set of clues",
    type="chain",
    semantic_topics=("fingerprint_base",),
    check_prereqs=_c1_prereqs,
    get_formats=lambda ctx: ["mc4"] if ctx.topic.tvl_rank > 20 else ["mc6", "mc4"],
    extract=_c1_extract,
    get_prompt=lambda data, ctx, fmt: "Which chain matches these clues?",
    get_clues=_c1_clues,
    get_choices=_c1_choices,
    get_answer_index=lambda data, ctx, fmt, choices: choices.index(ctx.topic.name),
    get_margin=lambda data, ctx, fmt: None,
    get_explain_data=lambda data, ctx, fmt, choices, idx: {
        "name": ctx.topic.name,
        "tvl_rank": data["tvl_rank"],
        "tvl_band": data["tvl_band"],
        "token_symbol": data["token_symbol"] or "N/A",
        "protocol_count": ctx.topic.protocol_count,
    },
    dynamic_topics=_c1_topics,
)


# ---------------------------------------------------------------------------
# C2: Chain TVL comparison
# ---------------------------------------------------------------------------


def _c2_formats(ctx: Context) -> list[str]:
    nearby = ctx.derived.nearby_chains
    if not nearby:
        return []
    return ab_formats(ab_margin(ctx.derived.current_tvl or 0.0, nearby[0].tvl))


def _c2_extract(ctx: Context, seed: int) -> Extracted | None:
    nearby = ctx.derived.nearby_chains
    if not nearby:
        return None
    other = nearby[int(make_rng(derive_seed(seed, "peer")).random() * len(nearby))]
    topic_tvl = ctx.derived.current_tvl or 0.0
    if topic_tvl == other.tvl:
        return None
    return {
        "other": other,
        "topic_tvl": topic_tvl,
        "topic_higher": topic_tvl > other.tvl,
        "margin": ab_margin(topic_tvl, other.tvl) or 0.0,
    }


def _c2_choices(data: Extracted, ctx: Context, fmt: str, seed: int) -> list[str]:
    if fmt == "tf":
        return _tf()
    pair = [ctx.topic.name, data["other"].name]
    return pair[::-1] if _coin(seed, "swap") else pair


def _c2_answer_index(data: Extracted, ctx: Context, fmt: str, choices: list[str]) -> int:
    if fmt == "tf":
        return 0 if data["topic_higher"] else 1
    return choices.index(ctx.topic.name if data["topic_higher"] else data["other"].name)


def _c2_explain(data: Extracted, ctx: Context, fmt: str, choices: list[str], idx: int) -> dict:
    other = data["other"]
    higher = data["topic_higher"]
    return {
        "winner_chain": ctx.topic.name if higher else other.name,
        "loser_chain": other.name if higher else ctx.topic.name,
        "winner_tvl": format_usd(max(data["topic_tvl"], other.tvl)),
        "loser_tvl": format_usd(min(data["topic_tvl"], other.tvl)),
        "margin_percent": f"{data['margin'] * 100:.1f}",
    }


C2_CHAIN_COMPARISON = TemplateConfig(
    id="C2_CHAIN_COMPARISON",
    name="Chain TVL Comparison",
    description="Compare TVL between two chains",
    type="chain",
    semantic_topics=("tvl_comparison",),
    check_prereqs=lambda ctx: passed() if ctx.derived.nearby_chains else failed("no_nearby"),
    get_formats=_c2_formats,
    extract=_c2_extract,
    get_prompt=lambda data, ctx, fmt: (
        f"{ctx.topic.name} has higher TVL than {data['other'].name}."
        if fmt == "tf"
        else f"Which chain has higher TVL: {ctx.topic.name} or {data['other'].name}?"
    ),
    get_choices=_c2_choices,
    get_answer_index=_c2_answer_index,
    get_answer_value=lambda data, ctx: data["topic_higher"],
    get_margin=lambda data, ctx, fmt: data["margin"],
    get_explain_data=_c2_explain,
)


# ---------------------------------------------------------------------------
# C3: Chain ATH timing
# ---------------------------------------------------------------------------


def _c3_prereqs(ctx: Context) -> PrereqResult:
    if not has_min_chain_history(ctx, 90):
        return failed("need_90d_history")
    if not ctx.derived.chain_ath_value or not ctx.derived.chain_ath_date:
        return failed("no_ath_data")
    return passed()


def _days_since_ath(ctx: Context) -> float:
    return (ctx.as_of_ts - ctx.derived.chain_ath_date) / SECONDS_PER_DAY


def _c3_formats(ctx: Context) -> list[str]:
    history = ctx.data.chain_history
    if not history or len(history) < 180:
        return ["tf"]
    # A very recent ATH makes the month question trivial
    if _days_since_ath(ctx) < 30:
        return ["tf"]
    return ["mc6", "mc4", "tf"]


def _c3_extract(ctx: Context, seed: int) -> Extracted | None:
    history = ctx.data.chain_history
    ath_ts = ctx.derived.chain_ath_date
    return {
        "ath_value": ctx.derived.chain_ath_value,
        "ath_month": format_month(ath_ts),
        "ath_yyyymm": format_yyyymm(ath_ts),
        "history_start": format_yyyymm(history[0][0]),
        "history_end": format_yyyymm(history[-1][0]),
        "days_since_ath": _days_since_ath(ctx),
        "recent_high": _days_since_ath(ctx) <= 90,
    }


def _c3_choices(data: Extracted, ctx: Context, fmt: str, seed: int) -> list[str]:
    if fmt == "tf":
        return _tf()
    timing = make_timing_distractors(
        data["ath_yyyymm"],
        FORMAT_CARDINALITY[fmt] - 1,
        derive_seed(seed, "months"),
        history_start=data["history_start"],
        history_end=data["history_end"],
    )
    return timing.choices


def _c3_margin(data: Extracted, ctx: Context, fmt: str) -> float | None:
    if fmt == "tf":
        # Hardest when the ATH sits right around the 90-day line
        return min(1.0, abs(data["days_since_ath"] - 90) / 90)
    return 0.5


C3_ATH_TIMING = TemplateConfig(
    id="C3_ATH_TIMING",
    name="Chain ATH Timing",
    description="When did a chain reach its ATH TVL",
    type="chain",
    semantic_topics=("ath_history",),
    check_prereqs=_c3_prereqs,
    get_formats=_c3_formats,
    extract=_c3_extract,
    get_prompt=lambda data, ctx, fmt: (
        f"{ctx.topic.name} reached its all-time high TVL within the past 90 days."
        if fmt == "tf"
        else f"In what month did {ctx.topic.name} hit its all-time high TVL?"
    ),
    get_choices=_c3_choices,
    get_answer_index=lambda data, ctx, fmt, choices: (
        (0 if data["recent_high"] else 1) if fmt == "tf" else choices.index(data["ath_month"])
    ),
    get_answer_value=lambda data, ctx: data["recent_high"],
    get_margin=_c3_margin,
    get_explain_data=lambda data, ctx, fmt, choices, idx: {
        "name": ctx.topic.name,
        "ath_value": format_usd(data["ath_value"]),
        "ath_month": data["ath_month"],
    },
)


# ---------------------------------------------------------------------------
# C4: Chain growth ranking
# ---------------------------------------------------------------------------


def _growers(ctx: Context) -> list:
    pool = [c for c in ctx.data.chain_pool or () if c.change_30d is not None]
    return sorted(pool, key=lambda c: (-c.change_30d, c.name))


def _c4_prereqs(ctx: Context) -> PrereqResult:
    if not has_chain_pool(ctx, 4):
        return failed("need_4_chains")
    if len(_growers(ctx)) < 4:
        return failed("need_4_with_growth")
    return passed()


def _c4_extract(ctx: Context, seed: int) -> Extracted | None:
    growers = _growers(ctx)
    if len(growers) < 4:
        return None
    distractors = shuffle(growers[1:10], seed, "distractors")[:3]
    return {
        "top": growers[0],
        "distractors": distractors,
        "margin": min(1.0, abs(growers[0].change_30d - growers[1].change_30d)),
    }


def _c4_choices(data: Extracted, ctx: Context, fmt: str, seed: int) -> list[str] | None:
    needed = FORMAT_CARDINALITY[fmt] - 1
    if len(data["distractors"]) < needed:
        return None
    names = [data["top"].name] + [c.name for c in data["distractors"][:needed]]
    return shuffle(names, seed, "shuffle")


def _c4_explain(data: Extracted, ctx: Context, fmt: str, choices: list[str], idx: int) -> dict:
    shown = set(choices)
    others = [c for c in data["distractors"] if c.name in shown]
    return {
        "top_chain": data["top"].name,
        "top_change": format_change(data["top"].change_30d),
        "comparison": ", ".join(f"{c.name} ({format_change(c.change_30d)})" for c in others),
    }


C4_GROWTH_RANKING = TemplateConfig(
    id="C4_GROWTH_RANKING",
    name="Chain Growth Ranking",
    description="Rank chains by recent TVL growth",
    type="chain",
    semantic_topics=("tvl_trend",),
    check_prereqs=_c4_prereqs,
    get_formats=lambda ctx: ["mc4", "ab"],
    extract=_c4_extract,
    get_prompt=lambda data, ctx, fmt: (
        "Which of these chains grew the most in TVL over the past 30 days?"
    ),
    get_choices=_c4_choices,
    get_answer_index=lambda data, ctx, fmt, choices: choices.index(data["top"].name),
    get_margin=lambda data, ctx, fmt: data["margin"],
    get_explain_data=_c4_explain,
)


# ---------------------------------------------------------------------------
# C5 / C6: Leaderboard leaders (fees, DEX volume)
# ---------------------------------------------------------------------------


def _c5_prereqs(ctx: Context) -> PrereqResult:
    if not has_chain_fees_data(ctx):
        return failed("no_fees_data")
    board = _sorted_leaderboard(ctx.data.chain_fees)
    if len(board) < 4:
        return failed("need_4_protocols")
    if board[0].value < MIN_TOP_FEES:
        return failed("top_fees_below_threshold")
    return passed()


def _c6_prereqs(ctx: Context) -> PrereqResult:
    if not has_chain_dex_data(ctx):
        return failed("no_dex_data")
    if len(ctx.data.chain_dex_volume) < 4:
        return failed("need_4_dexes")
    return passed()


def _leaderboard_extract(entries: tuple[LeaderboardEntry, ...] | None) -> Extracted | None:
    board = _sorted_leaderboard(entries)
    if len(board) < 2:
        return None
    return {
        "leader": board[0],
        "board": board[:6],
        "margin": ab_margin(board[0].value, board[1].value) or 0.0,
    }


def _leaderboard_explain(data: Extracted) -> dict:
    others = data["board"][1:4]
    return {
        "leader": data["leader"].name,
        "amount": format_usd(data["leader"].value),
        "comparison": ", ".join(f"{e.name} ({format_usd(e.value)})" for e in others),
    }


C5_TOP_BY_FEES = TemplateConfig(
    id="C5_TOP_BY_FEES",
    name="Top Protocol by Fees",
    description="Which protocol generates the most fees on a given chain",
    type="chain",
    semantic_topics=("fees_metrics",),
    check_prereqs=_c5_prereqs,
    get_formats=lambda ctx: _leader_formats([e.value for e in _sorted_leaderboard(ctx.data.chain_fees)]),
    extract=lambda ctx, seed: _leaderboard_extract(ctx.data.chain_fees),
    get_prompt=lambda data, ctx, fmt: f"Which protocol is #1 by 24h fees on {ctx.topic.name}?",
    get_choices=lambda data, ctx, fmt, seed: _leader_choices(
        [e.name for e in data["board"]], fmt, seed
    ),
    get_answer_index=lambda data, ctx, fmt, choices: choices.index(data["leader"].name),
    get_margin=lambda data, ctx, fmt: data["margin"],
    get_explain_data=lambda data, ctx, fmt, choices, idx: {
        "chain": ctx.topic.name,
        **_leaderboard_explain(data),
    },
)


C6_TOP_DEX = TemplateConfig(
    id="C6_TOP_DEX",
    name="Top DEX by Volume",
    description="Which DEX has the highest volume on a given chain",
    type="chain",
    semantic_topics=("dex_volume_leader",),
    check_prereqs=_c6_prereqs,
    get_formats=lambda ctx: _leader_formats(
        [e.value for e in _sorted_leaderboard(ctx.data.chain_dex_volume)]
    ),
    extract=lambda ctx, seed: _leaderboard_extract(ctx.data.chain_dex_volume),
    get_prompt=lambda data, ctx, fmt: f"Which DEX is #1 by 24h volume on {ctx.topic.name}?",
    get_choices=lambda data, ctx, fmt, seed: _leader_choices(
        [e.name for e in data["board"]], fmt, seed
    ),
    get_answer_index=lambda data, ctx, fmt, choices: choices.index(data["leader"].name),
    get_margin=lambda data, ctx, fmt: data["margin"],
    get_explain_data=lambda data, ctx, fmt, choices, idx: {
        "chain": ctx.topic.name,
        **_leaderboard_explain(data),
    },
)


# ---------------------------------------------------------------------------
# C7: Chain TVL band
# ---------------------------------------------------------------------------


C7_CHAIN_TVL_BAND = TemplateConfig(
    id="C7_CHAIN_TVL_BAND",
    name="Chain TVL Band",
    description="Which TVL range fits a chain",
    type="chain",
    semantic_topics=("tvl_magnitude", "fingerprint_tvl_revealed"),
    check_prereqs=lambda ctx: passed() if ctx.derived.current_tvl else failed("no_tvl"),
    get_formats=lambda ctx: ["mc4"],
    extract=lambda ctx, seed: {
        "tvl": ctx.derived.current_tvl,
        "bucket_index": _bucket(ctx.derived.current_tvl, CHAIN_TVL_BAND_BOUNDARIES),
    },
    get_prompt=lambda data, ctx, fmt: f"Which TVL range fits {ctx.topic.name}?",
    get_choices=lambda data, ctx, fmt, seed: list(CHAIN_TVL_BAND_CHOICES),
    get_answer_index=lambda data, ctx, fmt, choices: data["bucket_index"],
    get_margin=lambda data, ctx, fmt: boundary_margin(
        data["tvl"], CHAIN_TVL_BAND_BOUNDARIES, scale=2, relative=True
    ),
    get_explain_data=lambda data, ctx, fmt, choices, idx: {
        "name": ctx.topic.name,
        "tvl": format_usd(data["tvl"]),
        "tvl_band": CHAIN_TVL_BAND_CHOICES[data["bucket_index"]],
    },
)


# ---------------------------------------------------------------------------
# C8: 30-day direction
# ---------------------------------------------------------------------------


def _c8_prereqs(ctx: Context) -> PrereqResult:
    change = ctx.derived.chain_change_30d
    if change is None:
        return failed("no_change30d")
    if abs(change) < 0.02:
        return failed("too_flat")
    return passed()


def _c8_choices(data: Extracted, ctx: Context, fmt: str, seed: int) -> list[str]:
    if fmt == "tf":
        return _tf()
    return ["Decrease", "Increase"] if _coin(seed, "direction") else ["Increase", "Decrease"]


C8_30D_DIRECTION = TemplateConfig(
    id="C8_30D_DIRECTION",
    name="30-Day Direction",
    description="Did a chain's TVL increase or decrease over the last 30 days",
    type="chain",
    semantic_topics=("tvl_trend", "fingerprint_trend_revealed"),
    check_prereqs=_c8_prereqs,
    get_formats=lambda ctx: ["ab", "tf"],
    extract=lambda ctx, seed: {
        "change": ctx.derived.chain_change_30d,
        "increased": ctx.derived.chain_change_30d > 0,
    },
    get_prompt=lambda data, ctx, fmt: (
        f"{ctx.topic.name}'s TVL increased over the last 30 days."
        if fmt == "tf"
        else f"Over the last 30 days, did {ctx.topic.name}'s TVL increase or decrease?"
    ),
    get_choices=_c8_choices,
    get_answer_index=lambda data, ctx, fmt, choices: (
        (0 if data["increased"] else 1)
        if fmt == "tf"
        else choices.index("Increase" if data["increased"] else "Decrease")
    ),
    get_answer_value=lambda data, ctx: data["increased"],
    get_margin=lambda data, ctx, fmt: abs(data["change"]),
    get_explain_data=lambda data, ctx, fmt, choices, idx: {
        "name": ctx.topic.name,
        "change": format_change(data["change"]),
        "direction": "increased" if data["increased"] else "decreased",
    },
)


# ---------------------------------------------------------------------------
# C9: Distance from ATH
# ---------------------------------------------------------------------------


def _ath_distance(ctx: Context) -> float | None:
    ath = ctx.derived.chain_ath_value
    current = ctx.derived.current_tvl
    if not ath or current is None:
        return None
    return max(0.0, (ath - current) / ath)


def _c9_prereqs(ctx: Context) -> PrereqResult:
    if not has_min_chain_history(ctx, 90):
        return failed("need_90d_history")
    if not ctx.derived.chain_ath_value:
        return failed("no_ath")
    if ctx.derived.current_tvl is None:
        return failed("no_current_tvl")
    return passed()


def _c9_formats(ctx: Context) -> list[str]:
    distance = _ath_distance(ctx)
    if distance is None:
        return []
    return ["tf"] if distance < 0.1 else ["tf", "mc4"]


def _c9_extract(ctx: Context, seed: int) -> Extracted | None:
    distance = _ath_distance(ctx)
    if distance is None:
        return None
    index = 0
    for boundary in ATH_DISTANCE_BOUNDARIES:
        if distance > boundary:
            index += 1
    return {
        "ath_value": ctx.derived.chain_ath_value,
        "current_tvl": ctx.derived.current_tvl,
        "distance": distance,
        "within_10": distance <= 0.1,
        "bucket_index": index,
    }


C9_DISTANCE_FROM_ATH = TemplateConfig(
    id="C9_DISTANCE_FROM_ATH",
    name="Distance from ATH",
    description="How close is a chain to its all-time high TVL",
    type="chain",
    semantic_topics=("ath_history",),
    check_prereqs=_c9_prereqs,
    get_formats=_c9_formats,
    extract=_c9_extract,
    get_prompt=lambda data, ctx, fmt: (
        f"{ctx.topic.name} is within 10% of its all-time high TVL."
        if fmt == "tf"
        else f"How far is {ctx.topic.name} from its all-time high TVL?"
    ),
    get_choices=lambda data, ctx, fmt, seed: _tf() if fmt == "tf" else list(ATH_DISTANCE_CHOICES),
    get_answer_index=lambda data, ctx, fmt, choices: (
        (0 if data["within_10"] else 1) if fmt == "tf" else data["bucket_index"]
    ),
    get_answer_value=lambda data, ctx: data["within_10"],
    get_margin=lambda data, ctx, fmt: (
        abs(data["distance"] - 0.1)
        if fmt == "tf"
        else boundary_margin(data["distance"], ATH_DISTANCE_BOUNDARIES, scale=4)
    ),
    get_explain_data=lambda data, ctx, fmt, choices, idx: {
        "name": ctx.topic.name,
        "ath_value": format_usd(data["ath_value"]),
        "current_tvl": format_usd(data["current_tvl"]),
        "ath_distance_percent": f"{data['distance'] * 100:.1f}",
    },
)


# ---------------------------------------------------------------------------
# C10: Protocol count
# ---------------------------------------------------------------------------


def _protocol_count(ctx: Context) -> int:
    """Curated count from the chain pool, else a count over the protocol list."""
    if ctx.topic.protocol_count:
        return ctx.topic.protocol_count
    return len(_protocols_on_chain(ctx))


def _c10_prereqs(ctx: Context) -> PrereqResult:
    if not ctx.topic.protocol_count and not has_protocol_list(ctx):
        return failed("no_protocol_list")
    return passed()


C10_PROTOCOL_COUNT = TemplateConfig(
    id="C10_PROTOCOL_COUNT",
    name="Protocol Count",
    description="How many protocols are deployed on a given chain",
    type="chain",
    semantic_topics=("protocol_count",),
    check_prereqs=_c10_prereqs,
    get_formats=lambda ctx: ["mc4"],
    extract=lambda ctx, seed: {
        "count": _protocol_count(ctx),
        "bucket_index": _bucket(_protocol_count(ctx), PROTOCOL_COUNT_BOUNDARIES),
    },
    get_prompt=lambda data, ctx, fmt: f"How many DeFi protocols are deployed on {ctx.topic.name}?",
    get_choices=lambda data, ctx, fmt, seed: list(PROTOCOL_COUNT_CHOICES),
    get_answer_index=lambda data, ctx, fmt, choices: data["bucket_index"],
    get_margin=lambda data, ctx, fmt: boundary_margin(
        data["count"], PROTOCOL_COUNT_BOUNDARIES, scale=2, relative=True
    ),
    get_explain_data=lambda data, ctx, fmt, choices, idx: {
        "name": ctx.topic.name,
        "protocol_count": data["count"],
    },
)


# ---------------------------------------------------------------------------
# C11: Top protocol by TVL
# ---------------------------------------------------------------------------


def _c11_extract(ctx: Context, seed: int) -> Extracted | None:
    on_chain = _protocols_on_chain(ctx)
    if len(on_chain) < 2:
        return None
    return {
        "leader": on_chain[0],
        "board": on_chain[:6],
        "margin": ab_margin(on_chain[0].tvl, on_chain[1].tvl) or 0.0,
    }


C11_TOP_PROTOCOL_TVL = TemplateConfig(
    id="C11_TOP_PROTOCOL_TVL",
    name="Top Protocol by TVL",
    description="Which protocol has the most TVL on a given chain",
    type="chain",
    semantic_topics=("top_protocol",),
    check_prereqs=lambda ctx: passed() if has_protocol_list(ctx) else failed("no_protocol_list"),
    get_formats=lambda ctx: _leader_formats([p.tvl for p in _protocols_on_chain(ctx)], allow_mc6=True),
    extract=_c11_extract,
    get_prompt=lambda data, ctx, fmt: f"Which protocol has the most TVL on {ctx.topic.name}?",
    get_choices=lambda data, ctx, fmt, seed: _leader_choices(
        [p.name for p in data["board"]], fmt, seed
    ),
    get_answer_index=lambda data, ctx, fmt, choices: choices.index(data["leader"].name),
    get_margin=lambda data, ctx, fmt: data["margin"],
    get_explain_data=lambda data, ctx, fmt, choices, idx: {
        "chain": ctx.topic.name,
        "leader": data["leader"].name,
        "amount": format_usd(data["leader"].tvl),
        "comparison": ", ".join(f"{p.name} ({format_usd(p.tvl)})" for p in data["board"][1:4]),
    },
)


# ---------------------------------------------------------------------------
# C12: Category dominance
# ---------------------------------------------------------------------------


def _c12_extract(ctx: Context, seed: int) -> Extracted | None:
    totals: dict[str, float] = {}
    for protocol in _protocols_on_chain(ctx):
        if protocol.category:
            totals[protocol.category] = totals.get(protocol.category, 0.0) + protocol.tvl
    ranked = sorted(totals.items(), key=lambda item: (-item[1], item[0]))
    if len(ranked) < 4:
        return None
    return {
        "leader": ranked[0][0],
        "leader_tvl": ranked[0][1],
        "ranked": ranked[:4],
        "margin": ab_margin(ranked[0][1], ranked[1][1]) or 0.0,
    }


C12_CATEGORY_DOMINANCE = TemplateConfig(
    id="C12_CATEGORY_DOMINANCE",
    name="Category Dominance",
    description="What category has the most TVL on a given chain",
    type="chain",
    semantic_topics=("category_dominance",),
    check_prereqs=lambda ctx: passed() if has_protocol_list(ctx) else failed("no_protocol_list"),
    get_formats=lambda ctx: ["mc4"],
    extract=_c12_extract,
    get_prompt=lambda data, ctx, fmt: f"What category has the most TVL on {ctx.topic.name}?",
    get_choices=lambda data, ctx, fmt, seed: shuffle(
        [category for category, _ in data["ranked"]], seed, "shuffle"
    ),
    get_answer_index=lambda data, ctx, fmt, choices: choices.index(data["leader"]),
    get_margin=lambda data, ctx, fmt: data["margin"],
    get_explain_data=lambda data, ctx, fmt, choices, idx: {
        "chain": ctx.topic.name,
        "leader": data["leader"],
        "amount": format_usd(data["leader_tvl"]),
        "comparison": ", ".join(
            f"{category} ({format_usd(tvl)})" for category, tvl in data["ranked"][1:]
        ),
    },
)


CHAIN_TEMPLATE_CONFIGS: list[TemplateConfig] = [
    C1_FINGERPRINT,
    C2_CHAIN_COMPARISON,
    C3_ATH_TIMING,
    C4_GROWTH_RANKING,
    C5_TOP_BY_FEES,
    C6_TOP_DEX,
    C7_CHAIN_TVL_BAND,
    C8_30D_DIRECTION,
    C9_DISTANCE_FROM_ATH,
    C10_PROTOCOL_COUNT,
    C11_TOP_PROTOCOL_TVL,
    C12_CATEGORY_DOMINANCE,
]

CHAIN_TEMPLATES = {config.id: create_template(config) for config in CHAIN_TEMPLATE_CONFIGS}


__all__ = [
    "CHAIN_TEMPLATE_CONFIGS",
    "CHAIN_TEMPLATES",
]
