"""Separate real chain names from DefiLlama metric keys.

``currentChainTvls`` mixes chains ("Ethereum") with per-chain metric
breakdowns ("Ethereum-borrowed", "staking"). Templates that talk about
chains must only see the former.

Public API:
    EXCLUDED_PROTOCOL_CATEGORIES: categories never used as quiz material
    is_excluded_category(category) -> bool
    is_actual_chain(key) -> bool
    filter_to_actual_chains(chain_tvls) -> list[tuple[str, float]]
    actual_chain_count(chain_tvls) -> int
    sum_actual_chain_tvl(chain_tvls) -> float
"""

from __future__ import annotations

from collections.abc import Mapping

EXCLUDED_PROTOCOL_CATEGORIES = ("CEX",)

_METRIC_SUFFIXES = ("-borrowed", "-staking", "-pool2", "-vesting", "-treasury")
_STANDALONE_METRICS = frozenset({"borrowed", "staking", "pool2", "vesting", "treasury", "offers"})


def is_excluded_category(category: str | None) -> bool:
    return bool(category) and category in EXCLUDED_PROTOCOL_CATEGORIES


def is_actual_chain(key: str) -> bool:
    lowered = key.lower()
    if lowered.endswith(_METRIC_SUFFIXES):
        return False
    return lowered not in _STANDALONE_METRICS


def filter_to_actual_chains(chain_tvls: Mapping[str, float]) -> list[tuple[str, float]]:
    """Chains with positive TVL, in mapping order."""
    return [(key, tvl) for key, tvl in chain_tvls.items() if tvl > 0 and is_actual_chain(key)]


def actual_chain_count(chain_tvls: Mapping[str, float]) -> int:
    return len(filter_to_actual_chains(chain_tvls))


def sum_actual_chain_tvl(chain_tvls: Mapping[str, float]) -> float:
    return sum(tvl for _, tvl in filter_to_actual_chains(chain_tvls))


__all__ = [
    "EXCLUDED_PROTOCOL_CATEGORIES",
    "is_excluded_category",
    "is_actual_chain",
    "filter_to_actual_chains",
    "actual_chain_count",
    "sum_actual_chain_tvl",
]
