"""Snapshot loading and derived-metric computation.

A snapshot is the JSON document produced by the upstream fetch job: the
episode date, the selected topic and the raw DefiLlama entities. This
module turns it into an immutable ``Context``; all derived metrics are
computed exactly once here so templates only read them.

Snapshot layout (camelCase, mirroring the upstream API)::

    {
      "date": "2024-06-03",
      "episodeType": "protocol",          # optional, inferred from topic
      "topic": {"slug": "aave", "name": "Aave", "category": "Lending", ...},
      "data": {
        "protocolDetail": {"tvl": [{"date": 1700000000, "totalLiquidityUSD": 1.0}], ...},
        "protocolList": [...], "protocolFees": {...}, "protocolRevenue": {...},
        "chainList": [...], "chainHistory": [{"date": ..., "tvl": ...}],
        "chainFees": {"protocols": [...]}, "chainDexVolume": {"protocols": [...]},
        "chainPool": [...]
      }
    }

Public API:
    load_snapshot(path, date, episode_type) -> Context
    parse_snapshot(raw, date, episode_type) -> Context
    build_context(date, episode_type, topic, data) -> Context
    compute_protocol_metrics(topic, data) -> DerivedMetrics
    compute_chain_metrics(topic, data) -> DerivedMetrics
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from ..core.chain_filter import filter_to_actual_chains, is_excluded_category
from ..core.difficulty import rank_bucket
from ..core.metrics import (
    chain_count_bucket,
    change_bucket,
    find_all_time_high,
    format_month,
    percent_change,
    tvl_band,
    volatility_score,
)
from .models import (
    EPISODE_TYPES,
    ChainListEntry,
    ChainTopic,
    ComparisonEntry,
    Context,
    DerivedMetrics,
    FeesSummary,
    FetchedData,
    LeaderboardEntry,
    ProtocolDetail,
    ProtocolListEntry,
    ProtocolTopic,
)

logger = logging.getLogger(__name__)

# How many ranks either side of the topic count as "nearby"
NEARBY_RANK_WINDOW = 5

CATEGORY_PEER_LIMIT = 10

VOLATILITY_WINDOW_DAYS = 30


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _sorted_series(points: list, value_key: str, label: str) -> tuple[tuple[float, float], ...]:
    series = [(float(p["date"]), float(p.get(value_key) or 0.0)) for p in points]
    ordered = sorted(series, key=lambda point: point[0])
    if ordered != series:
        logger.warning("%s series was not time-ascending; sorted it", label)
    return tuple(ordered)


def _parse_chart(raw: list) -> tuple[tuple[float, float], ...]:
    return tuple(sorted((float(ts), float(value or 0.0)) for ts, value in raw))


def _parse_protocol_topic(raw: dict) -> ProtocolTopic:
    return ProtocolTopic(
        slug=str(raw["slug"]),
        name=str(raw["name"]),
        category=str(raw.get("category", "")),
        tvl_rank=int(raw["tvlRank"]),
        tvl=float(raw.get("tvl", 0.0)),
        chains=tuple(raw.get("chains", [])),
        has_fees_data=bool(raw.get("hasFeesData", False)),
        has_revenue_data=bool(raw.get("hasRevenueData", False)),
        history_days=int(raw.get("historyDays", 0)),
    )


def _parse_chain_topic(raw: dict) -> ChainTopic:
    change = raw.get("change30d")
    return ChainTopic(
        slug=str(raw.get("slug", raw["name"])),
        name=str(raw["name"]),
        tvl_rank=int(raw["tvlRank"]),
        tvl=float(raw.get("tvl", 0.0)),
        protocol_count=int(raw.get("protocolCount", 0)),
        token_symbol=raw.get("tokenSymbol"),
        history_days=int(raw.get("historyDays", 0)),
        change_30d=float(change) if change is not None else None,
    )


def _parse_fees(raw: dict | None) -> FeesSummary | None:
    if raw is None:
        return None
    total = raw.get("total7d")
    return FeesSummary(
        total_7d=float(total) if total is not None else None,
        chart=_parse_chart(raw.get("totalDataChart", [])),
    )


def _parse_leaderboard(raw: dict | None, value_key: str) -> tuple[LeaderboardEntry, ...] | None:
    if raw is None:
        return None
    return tuple(
        LeaderboardEntry(
            name=str(p["name"]),
            value=float(p.get(value_key) or 0.0),
            category=p.get("category"),
        )
        for p in raw.get("protocols", [])
    )


def _parse_data(raw: dict) -> FetchedData:
    detail_raw = raw.get("protocolDetail")
    detail = None
    if detail_raw is not None:
        detail = ProtocolDetail(
            slug=str(detail_raw.get("slug", "")),
            name=str(detail_raw.get("name", "")),
            category=str(detail_raw.get("category", "")),
            chains=tuple(detail_raw.get("chains", [])),
            tvl=_sorted_series(detail_raw.get("tvl", []), "totalLiquidityUSD", "protocol TVL"),
            current_chain_tvls={
                str(k): float(v or 0.0) for k, v in detail_raw.get("currentChainTvls", {}).items()
            },
        )

    protocol_list = None
    if raw.get("protocolList") is not None:
        protocol_list = tuple(
            ProtocolListEntry(
                slug=str(p["slug"]),
                name=str(p["name"]),
                category=str(p.get("category") or ""),
                chains=tuple(p.get("chains") or []),
                tvl=float(p.get("tvl") or 0.0),
            )
            for p in raw["protocolList"]
        )

    chain_list = None
    if raw.get("chainList") is not None:
        chain_list = tuple(
            ChainListEntry(
                name=str(c["name"]),
                tvl=float(c.get("tvl") or 0.0),
                token_symbol=c.get("tokenSymbol"),
            )
            for c in raw["chainList"]
        )

    chain_history = None
    if raw.get("chainHistory") is not None:
        chain_history = _sorted_series(raw["chainHistory"], "tvl", "chain TVL")

    chain_pool = None
    if raw.get("chainPool") is not None:
        chain_pool = tuple(_parse_chain_topic(c) for c in raw["chainPool"])

    return FetchedData(
        protocol_detail=detail,
        protocol_list=protocol_list,
        protocol_fees=_parse_fees(raw.get("protocolFees")),
        protocol_revenue=_parse_fees(raw.get("protocolRevenue")),
        chain_list=chain_list,
        chain_history=chain_history,
        chain_fees=_parse_leaderboard(raw.get("chainFees"), "fees24h"),
        chain_dex_volume=_parse_leaderboard(raw.get("chainDexVolume"), "total24h"),
        chain_pool=chain_pool,
    )


# ---------------------------------------------------------------------------
# Derived metrics
# ---------------------------------------------------------------------------


def _ranked_protocols(data: FetchedData) -> list[ComparisonEntry]:
    eligible = [p for p in data.protocol_list or () if not is_excluded_category(p.category)]
    ordered = sorted(eligible, key=lambda p: (-p.tvl, p.slug))
    return [
        ComparisonEntry(slug=p.slug, name=p.name, tvl=p.tvl, rank=i + 1, category=p.category)
        for i, p in enumerate(ordered)
    ]


def _nearby(
    entries: list[ComparisonEntry], own_ids: set[str], fallback_rank: int
) -> tuple[ComparisonEntry, ...]:
    """Peers within ``NEARBY_RANK_WINDOW`` ranks, closest rank first.

    ``own_ids`` are lowercased identifiers of the topic itself; chain
    topics are matched by slug or display name.
    """
    own_rank = next((e.rank for e in entries if e.slug.lower() in own_ids), fallback_rank)
    peers = [
        e for e in entries
        if e.slug.lower() not in own_ids and abs(e.rank - own_rank) <= NEARBY_RANK_WINDOW
    ]
    return tuple(sorted(peers, key=lambda e: (abs(e.rank - own_rank), e.rank)))


def compute_protocol_metrics(topic: ProtocolTopic, data: FetchedData) -> DerivedMetrics:
    detail = data.protocol_detail
    if detail is None:
        return DerivedMetrics(tvl_rank=topic.tvl_rank, tvl_rank_bucket=rank_bucket(topic.tvl_rank))

    history = detail.tvl
    current_tvl = history[-1][1] if history else topic.tvl

    actual_chains = filter_to_actual_chains(detail.current_chain_tvls)
    chain_count = len(actual_chains) if actual_chains else len(detail.chains)

    change_7d = percent_change(history, 7)
    change_30d = percent_change(history, 30)
    ath = find_all_time_high(history)

    top_chain = top_chain_tvl = top_chain_share = None
    if actual_chains:
        ranked_chains = sorted(actual_chains, key=lambda item: (-item[1], item[0]))
        top_chain, top_chain_tvl = ranked_chains[0]
        total = sum(tvl for _, tvl in ranked_chains)
        top_chain_share = top_chain_tvl / total if total > 0 else 0.0

    fees_7d = None
    if data.protocol_fees is not None:
        chart = data.protocol_fees.chart
        if len(chart) >= 7:
            fees_7d = sum(value for _, value in chart[-7:])
        else:
            fees_7d = data.protocol_fees.total_7d or 0.0
    revenue_7d = None
    if data.protocol_revenue is not None:
        revenue_7d = data.protocol_revenue.total_7d or 0.0
    ratio = None
    if fees_7d and fees_7d > 0 and revenue_7d is not None:
        ratio = revenue_7d / fees_7d

    ranked = _ranked_protocols(data)
    category_peers = tuple(
        e for e in ranked if e.category == topic.category and e.slug != topic.slug
    )[:CATEGORY_PEER_LIMIT]

    return DerivedMetrics(
        tvl_rank=topic.tvl_rank,
        tvl_rank_bucket=rank_bucket(topic.tvl_rank),
        tvl_band=tvl_band(current_tvl),
        chain_count=chain_count,
        chain_count_bucket=chain_count_bucket(chain_count) if chain_count else None,
        change_7d=change_7d,
        change_30d=change_30d,
        change_bucket=change_bucket(change_7d) if change_7d is not None else None,
        tvl_volatility=volatility_score([v for _, v in history], VOLATILITY_WINDOW_DAYS),
        ath_value=ath[0] if ath else None,
        ath_date=ath[1] if ath else None,
        ath_month=format_month(ath[1]) if ath else None,
        top_chain=top_chain,
        top_chain_tvl=top_chain_tvl,
        top_chain_share=top_chain_share,
        fees_7d=fees_7d,
        revenue_7d=revenue_7d,
        rev_to_fees_ratio=ratio,
        nearby_protocols=_nearby(ranked, {topic.slug.lower()}, topic.tvl_rank),
        category_protocols=category_peers,
        current_tvl=current_tvl,
    )


def compute_chain_metrics(topic: ChainTopic, data: FetchedData) -> DerivedMetrics:
    history = data.chain_history or ()
    current_tvl = history[-1][1] if history else topic.tvl
    ath = find_all_time_high(history)

    ordered = sorted(data.chain_list or (), key=lambda c: (-c.tvl, c.name))
    ranked = [
        ComparisonEntry(slug=c.name, name=c.name, tvl=c.tvl, rank=i + 1)
        for i, c in enumerate(ordered)
    ]

    return DerivedMetrics(
        tvl_rank=topic.tvl_rank,
        tvl_rank_bucket=rank_bucket(topic.tvl_rank),
        chain_tvl_rank=topic.tvl_rank,
        chain_tvl_band=tvl_band(topic.tvl),
        chain_change_30d=percent_change(history, 30),
        chain_ath_value=ath[0] if ath else None,
        chain_ath_date=ath[1] if ath else None,
        chain_ath_month=format_month(ath[1]) if ath else None,
        tvl_volatility=volatility_score([v for _, v in history], VOLATILITY_WINDOW_DAYS),
        nearby_chains=_nearby(ranked, {topic.slug.lower(), topic.name.lower()}, topic.tvl_rank),
        current_tvl=current_tvl,
    )


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def build_context(
    date: str,
    episode_type: str,
    topic: ProtocolTopic | ChainTopic,
    data: FetchedData,
) -> Context:
    """Assemble a Context, computing derived metrics for the topic."""
    if episode_type not in EPISODE_TYPES:
        raise ValueError(f"episode_type must be one of {EPISODE_TYPES}, got '{episode_type}'")
    if isinstance(topic, ProtocolTopic):
        derived = compute_protocol_metrics(topic, data)
    else:
        derived = compute_chain_metrics(topic, data)
    return Context(date=date, episode_type=episode_type, topic=topic, data=data, derived=derived)


def parse_snapshot(
    raw: dict,
    date: str | None = None,
    episode_type: str | None = None,
) -> Context:
    """Parse a snapshot dict into a Context.

    Args:
        raw: Decoded snapshot JSON.
        date: Override the snapshot's ``date``.
        episode_type: Override the snapshot's ``episodeType``. When neither
            is given the type is inferred: topics with a category are
            protocols.

    Raises:
        ValueError: If required fields are missing or malformed.
    """
    if not isinstance(raw, dict):
        raise ValueError(f"Expected snapshot dict, got {type(raw).__name__}")
    topic_raw = raw.get("topic")
    if not isinstance(topic_raw, dict):
        raise ValueError("Snapshot is missing a 'topic' object")

    resolved_date = date or raw.get("date")
    if not resolved_date:
        raise ValueError("Snapshot has no 'date' and none was given")

    resolved_type = episode_type or raw.get("episodeType")
    if resolved_type is None:
        resolved_type = "protocol" if "category" in topic_raw else "chain"

    try:
        if resolved_type == "protocol":
            topic: ProtocolTopic | ChainTopic = _parse_protocol_topic(topic_raw)
        else:
            topic = _parse_chain_topic(topic_raw)
        data = _parse_data(raw.get("data") or {})
    except (KeyError, TypeError) as e:
        raise ValueError(f"Malformed snapshot: {e}") from e

    return build_context(str(resolved_date), str(resolved_type), topic, data)


def load_snapshot(
    path: str | Path,
    date: str | None = None,
    episode_type: str | None = None,
) -> Context:
    """Load a snapshot JSON file into a Context.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file is not a valid snapshot.
    """
    snapshot_path = Path(path)
    if not snapshot_path.exists():
        raise FileNotFoundError(f"Snapshot not found: {snapshot_path}")
    logger.debug("Loading snapshot from %s", snapshot_path)
    with open(snapshot_path) as f:
        raw = json.load(f)
    return parse_snapshot(raw, date=date, episode_type=episode_type)


__all__ = [
    "load_snapshot",
    "parse_snapshot",
    "build_context",
    "compute_protocol_metrics",
    "compute_chain_metrics",
]
