"""Snapshot builders for tests.

Snapshots are built in Python with smooth deterministic series so every
template has enough material; tests that need a gap remove it from the
dict before parsing.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone

PROTOCOL_DATE = "2024-06-03"  # Monday
CHAIN_DATE = "2024-06-04"  # Tuesday

DAY = 86400


def _midnight(date: str) -> float:
    return datetime.strptime(date, "%Y-%m-%d").replace(tzinfo=timezone.utc).timestamp()


def daily_series(date: str, days: int, base: float, key: str, drift: float = 0.001, wave: float = 0.15) -> list[dict]:
    """``days`` daily points ending on ``date`` with a slow wave and drift."""
    end = _midnight(date)
    points = []
    for i in range(days):
        value = base * (1 + wave * math.sin(i / 23)) * (1 + drift * i)
        points.append({"date": end - (days - 1 - i) * DAY, key: round(value, 2)})
    return points


def daily_chart(date: str, days: int, base: float, growth: float = 0.01) -> list[list[float]]:
    end = _midnight(date)
    return [
        [end - (days - 1 - i) * DAY, round(base * (1 + growth * i), 2)]
        for i in range(days)
    ]


PROTOCOLS = [
    # (slug, name, category, tvl, chains)
    ("lido", "Lido", "Liquid Staking", 30e9, ["Ethereum", "Solana"]),
    ("eigenlayer", "EigenLayer", "Restaking", 15e9, ["Ethereum"]),
    ("binance-cex", "Binance CEX", "CEX", 14e9, ["Ethereum", "BSC"]),
    ("aave", "Aave", "Lending", 12e9, ["Ethereum", "Arbitrum", "Polygon", "Optimism", "Base"]),
    ("makerdao", "MakerDAO", "CDP", 8e9, ["Ethereum"]),
    ("uniswap", "Uniswap", "Dexes", 6e9, ["Ethereum", "Arbitrum", "Polygon", "Base"]),
    ("rocket-pool", "Rocket Pool", "Liquid Staking", 4e9, ["Ethereum"]),
    ("compound", "Compound", "Lending", 3e9, ["Ethereum", "Arbitrum", "Base"]),
    ("curve", "Curve", "Dexes", 2.5e9, ["Ethereum", "Arbitrum"]),
    ("spark", "Spark", "Lending", 2.2e9, ["Ethereum"]),
    ("morpho", "Morpho", "Lending", 2e9, ["Ethereum", "Base"]),
    ("pendle", "Pendle", "Yield", 1.8e9, ["Ethereum", "Arbitrum"]),
    ("gmx", "GMX", "Derivatives", 1.5e9, ["Arbitrum", "Avalanche"]),
    ("radiant", "Radiant", "Lending", 1.2e9, ["Arbitrum", "BSC"]),
    ("balancer", "Balancer", "Dexes", 1.1e9, ["Ethereum", "Arbitrum", "Polygon"]),
    ("convex", "Convex", "Yield", 1e9, ["Ethereum"]),
    ("venus", "Venus", "Lending", 900e6, ["BSC"]),
    ("stargate", "Stargate", "Bridge", 800e6, ["Ethereum", "Arbitrum", "BSC"]),
    ("camelot", "Camelot", "Dexes", 300e6, ["Arbitrum"]),
    ("silo", "Silo", "Lending", 250e6, ["Arbitrum", "Ethereum"]),
    ("yearn", "Yearn", "Yield", 240e6, ["Ethereum", "Arbitrum"]),
    ("synapse", "Synapse", "Bridge", 120e6, ["Ethereum", "Arbitrum"]),
    ("dopex", "Dopex", "Options", 50e6, ["Arbitrum"]),
    ("euler", "Euler", "Lending", 45e6, ["Ethereum"]),
]

CHAINS = [
    # (name, tvl, token, change_30d)
    ("Ethereum", 60e9, "ETH", 0.04),
    ("Tron", 8e9, "TRX", 0.01),
    ("BSC", 5e9, "BNB", -0.03),
    ("Arbitrum", 3.2e9, "ARB", 0.12),
    ("Solana", 3e9, "SOL", 0.21),
    ("Base", 1.5e9, None, 0.35),
    ("Blast", 1.2e9, None, -0.18),
    ("Polygon", 900e6, "MATIC", -0.07),
    ("Avalanche", 800e6, "AVAX", 0.02),
    ("Optimism", 700e6, "OP", -0.11),
    ("Sui", 600e6, "SUI", 0.44),
    ("Mantle", 500e6, "MNT", 0.08),
]


def protocol_snapshot(rank: int = 4, slug: str = "aave") -> dict:
    """Snapshot for a protocol from ``PROTOCOLS`` with an overridden rank."""
    entry = next(p for p in PROTOCOLS if p[0] == slug)
    _, name, category, tvl, chains = entry
    split = [0.7, 0.15, 0.08, 0.05, 0.02]
    chain_tvls = {chain: tvl * split[i] for i, chain in enumerate(chains)}
    chain_tvls[f"{chains[0]}-borrowed"] = tvl * 0.3
    chain_tvls["borrowed"] = tvl * 0.3
    return {
        "date": PROTOCOL_DATE,
        "episodeType": "protocol",
        "topic": {
            "slug": slug,
            "name": name,
            "category": category,
            "tvlRank": rank,
            "tvl": tvl,
            "chains": chains,
            "hasFeesData": True,
            "hasRevenueData": True,
            "historyDays": 400,
        },
        "data": {
            "protocolDetail": {
                "slug": slug,
                "name": name,
                "category": category,
                "chains": chains,
                "tvl": daily_series(PROTOCOL_DATE, 400, tvl / 1.4, "totalLiquidityUSD"),
                "currentChainTvls": chain_tvls,
            },
            "protocolList": [
                {"slug": s, "name": n, "category": c, "tvl": t, "chains": ch}
                for s, n, c, t, ch in PROTOCOLS
            ],
            "protocolFees": {
                "total7d": 9_000_000,
                "totalDataChart": daily_chart(PROTOCOL_DATE, 60, 1_000_000),
            },
            "protocolRevenue": {
                "total7d": 1_200_000,
                "totalDataChart": daily_chart(PROTOCOL_DATE, 60, 150_000),
            },
        },
    }


def chain_snapshot(name: str = "Arbitrum", rank: int = 4, protocol_count: int = 620) -> dict:
    tvl = next(c[1] for c in CHAINS if c[0] == name)
    token = next(c[2] for c in CHAINS if c[0] == name)
    change = next(c[3] for c in CHAINS if c[0] == name)
    return {
        "date": CHAIN_DATE,
        "episodeType": "chain",
        "topic": {
            "slug": name.lower(),
            "name": name,
            "tvlRank": rank,
            "tvl": tvl,
            "protocolCount": protocol_count,
            "tokenSymbol": token,
            "historyDays": 400,
            "change30d": change,
        },
        "data": {
            "chainList": [{"name": n, "tvl": t, "tokenSymbol": s} for n, t, s, _ in CHAINS],
            "chainHistory": daily_series(CHAIN_DATE, 400, tvl / 1.3, "tvl", wave=0.25),
            "chainFees": {
                "protocols": [
                    {"name": "Uniswap", "fees24h": 400_000, "category": "Dexes"},
                    {"name": "GMX", "fees24h": 250_000, "category": "Derivatives"},
                    {"name": "Aave", "fees24h": 120_000, "category": "Lending"},
                    {"name": "Camelot", "fees24h": 60_000, "category": "Dexes"},
                    {"name": "Radiant", "fees24h": 30_000, "category": "Lending"},
                ]
            },
            "chainDexVolume": {
                "protocols": [
                    {"name": "Uniswap", "total24h": 300_000_000},
                    {"name": "Camelot", "total24h": 90_000_000},
                    {"name": "Curve", "total24h": 40_000_000},
                    {"name": "Balancer", "total24h": 20_000_000},
                    {"name": "Trader Joe", "total24h": 10_000_000},
                ]
            },
            "chainPool": [
                {"slug": n.lower(), "name": n, "tvlRank": i + 1, "tvl": t, "tokenSymbol": s, "change30d": c}
                for i, (n, t, s, c) in enumerate(CHAINS)
            ],
            "protocolList": [
                {"slug": s, "name": n, "category": c, "tvl": t, "chains": ch}
                for s, n, c, t, ch in PROTOCOLS
            ],
        },
    }

