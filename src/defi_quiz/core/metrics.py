"""Pure numeric helpers over TVL time series and value pairs.

Series are time-ascending sequences of ``(timestamp_seconds, value)``
tuples. Every function here is stateless; the template layer composes
them into margins and labels.

Public API:
    find_value_at_or_before, percent_change
    ab_margin, top2_margin, consecutive_margins, has_min_separation
    volatility_score, interpret_volatility
    find_all_time_high, has_new_high_in_days
    format_month, format_yyyymm, format_usd, format_change
    tvl_band, chain_count_bucket, change_bucket, concentration_bucket,
    tvl_rank_bucket, boundary_margin
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import datetime, timezone

SECONDS_PER_DAY = 86400

# Standard deviation of daily log returns treated as "maximally volatile"
VOLATILITY_NORMALIZER = 0.12

MONTH_ABBREVIATIONS = [
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
]

Series = Sequence[tuple[float, float]]


# ---------------------------------------------------------------------------
# Time windows and change
# ---------------------------------------------------------------------------


def find_value_at_or_before(series: Series, target_ts: float) -> tuple[float, float] | None:
    """Binary search for the latest point with ``ts <= target_ts``."""
    if not series:
        return None
    lo, hi = 0, len(series) - 1
    while lo < hi:
        mid = (lo + hi + 1) // 2
        if series[mid][0] <= target_ts:
            lo = mid
        else:
            hi = mid - 1
    return series[lo] if series[lo][0] <= target_ts else None


def percent_change(series: Series, days: int) -> float | None:
    """Relative change between the latest point and the point ``days`` earlier.

    Returns None with fewer than 2 points or when the past value is not
    positive.
    """
    if len(series) < 2:
        return None
    now_ts, now_value = series[-1]
    past = find_value_at_or_before(series, now_ts - days * SECONDS_PER_DAY)
    if past is None or past[1] <= 0:
        return None
    return (now_value - past[1]) / past[1]


# ---------------------------------------------------------------------------
# Margins
# ---------------------------------------------------------------------------


def ab_margin(a: float, b: float) -> float | None:
    """Normalized separation ``|a - b| / max(a, b)``; None if max <= 0."""
    largest = max(a, b)
    if largest <= 0:
        return None
    return abs(a - b) / largest


def top2_margin(sorted_desc: Sequence[float]) -> float | None:
    if len(sorted_desc) < 2 or sorted_desc[0] <= 0:
        return None
    return (sorted_desc[0] - sorted_desc[1]) / sorted_desc[0]


def consecutive_margins(sorted_desc: Sequence[float]) -> list[float]:
    margins: list[float] = []
    for first, second in zip(sorted_desc, sorted_desc[1:]):
        margin = ab_margin(first, second)
        margins.append(margin if margin is not None else 0.0)
    return margins


def has_min_separation(sorted_desc: Sequence[float], min_margin: float) -> bool:
    return all(m >= min_margin for m in consecutive_margins(sorted_desc))


def boundary_margin(
    value: float,
    boundaries: Sequence[float],
    scale: float = 1.0,
    relative: bool = False,
) -> float:
    """Distance from ``value`` to the nearest bucket boundary, scaled and clamped to 1.

    With ``relative=True`` each distance is divided by ``max(value, boundary)``,
    which suits dollar-denominated bands spanning orders of magnitude.
    """
    distances = []
    for boundary in boundaries:
        distance = abs(value - boundary)
        if relative:
            denominator = max(value, boundary)
            distance = distance / denominator if denominator > 0 else 0.0
        distances.append(distance)
    return min(1.0, min(distances) * scale)


# ---------------------------------------------------------------------------
# Volatility
# ---------------------------------------------------------------------------


def volatility_score(values: Sequence[float], window_days: int) -> float | None:
    """Normalized volatility of the trailing window in [0, 1].

    Log returns of the last ``window_days + 1`` values are winsorized at
    the 10th/90th percentile; the population standard deviation is then
    divided by ``VOLATILITY_NORMALIZER``. Needs at least 8 points and 6
    usable returns.
    """
    window = list(values[-(window_days + 1):])
    if len(window) < 8:
        return None

    returns = [
        math.log(current / previous)
        for previous, current in zip(window, window[1:])
        if previous > 0 and current > 0
    ]
    if len(returns) < 6:
        return None

    ordered = sorted(returns)
    lo = ordered[int(len(ordered) * 0.1)]
    hi = ordered[int(len(ordered) * 0.9)]
    clipped = [max(lo, min(hi, r)) for r in returns]

    mean = sum(clipped) / len(clipped)
    variance = sum((r - mean) ** 2 for r in clipped) / len(clipped)
    return min(1.0, math.sqrt(variance) / VOLATILITY_NORMALIZER)


def interpret_volatility(score: float) -> str:
    if score < 0.3:
        return "low"
    if score < 0.75:
        return "moderate"
    return "high"


# ---------------------------------------------------------------------------
# All-time highs
# ---------------------------------------------------------------------------


def find_all_time_high(series: Series) -> tuple[float, float] | None:
    """Return ``(value, ts)`` of the first maximum, or None if it is not positive."""
    if not series:
        return None
    max_value = -math.inf
    max_ts = 0.0
    for ts, value in series:
        if value > max_value:
            max_value = value
            max_ts = ts
    return (max_value, max_ts) if max_value > 0 else None


def has_new_high_in_days(series: Series, days: int) -> bool:
    """True when the last ``days`` contain a value above everything before them."""
    if not series:
        return False
    cutoff = series[-1][0] - days * SECONDS_PER_DAY
    before = [value for ts, value in series if ts < cutoff]
    recent = [value for ts, value in series if ts >= cutoff]
    return max(recent, default=-math.inf) > max(before, default=-math.inf)


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def _utc(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def format_month(ts: float) -> str:
    """UTC month label, e.g. ``"Mar 2024"``."""
    moment = _utc(ts)
    return f"{MONTH_ABBREVIATIONS[moment.month - 1]} {moment.year}"


def format_yyyymm(ts: float) -> str:
    moment = _utc(ts)
    return f"{moment.year}-{moment.month:02d}"


def format_usd(value: float) -> str:
    """Compact dollar amount: $1.2B, $350M, $12K, $900."""
    if value >= 1_000_000_000:
        return f"${value / 1_000_000_000:.1f}B"
    if value >= 1_000_000:
        return f"${value / 1_000_000:.0f}M"
    if value >= 1_000:
        return f"${value / 1_000:.0f}K"
    return f"${value:.0f}"


def format_change(change: float) -> str:
    sign = "+" if change >= 0 else ""
    return f"{sign}{change * 100:.1f}%"


# ---------------------------------------------------------------------------
# Buckets
# ---------------------------------------------------------------------------


def tvl_band(tvl: float) -> str:
    if tvl >= 10_000_000_000:
        return "$10B+"
    if tvl >= 5_000_000_000:
        return "$5B-$10B"
    if tvl >= 1_000_000_000:
        return "$1B-$5B"
    if tvl >= 500_000_000:
        return "$500M-$1B"
    if tvl >= 100_000_000:
        return "$100M-$500M"
    if tvl >= 50_000_000:
        return "$50M-$100M"
    return "<$50M"


def chain_count_bucket(count: int) -> str:
    if count == 1:
        return "single-chain"
    if count <= 5:
        return "2-5 chains"
    if count <= 10:
        return "6-10 chains"
    return "10+ chains"


def change_bucket(change: float) -> str:
    if change > 0.1:
        return "up >10%"
    if change > 0.01:
        return "up 1-10%"
    if change >= -0.01:
        return "roughly flat"
    if change >= -0.1:
        return "down 1-10%"
    return "down >10%"


def concentration_bucket(share: float) -> str:
    if share >= 0.75:
        return ">75%"
    if share >= 0.5:
        return "50-75%"
    if share >= 0.25:
        return "25-50%"
    return "<25%"


def tvl_rank_bucket(rank: int) -> str:
    if rank <= 5:
        return "top 5"
    if rank <= 10:
        return "top 10"
    if rank <= 20:
        return "top 20"
    if rank <= 50:
        return "top 50"
    return "top 100"


__all__ = [
    "SECONDS_PER_DAY",
    "Series",
    "find_value_at_or_before",
    "percent_change",
    "ab_margin",
    "top2_margin",
    "consecutive_margins",
    "has_min_separation",
    "boundary_margin",
    "volatility_score",
    "interpret_volatility",
    "find_all_time_high",
    "has_new_high_in_days",
    "format_month",
    "format_yyyymm",
    "format_usd",
    "format_change",
    "tvl_band",
    "chain_count_bucket",
    "change_bucket",
    "concentration_bucket",
    "tvl_rank_bucket",
]
