"""Tests for snapshot parsing and derived metrics.

Tests:
- Protocol and chain snapshots parse into a Context
- Derived metrics (chain breakdown, fees, peers)
- Episode type inference and overrides
- Malformed input raises ValueError / FileNotFoundError
"""

from __future__ import annotations

import json

import pytest

from defi_quiz.data.models import ChainTopic, ProtocolTopic
from defi_quiz.data.snapshot import load_snapshot, parse_snapshot
from factories import chain_snapshot, protocol_snapshot


class TestProtocolContext:
    def test_topic(self, protocol_ctx):
        assert protocol_ctx.episode_type == "protocol"
        assert isinstance(protocol_ctx.topic, ProtocolTopic)
        assert protocol_ctx.topic.name == "Aave"
        assert protocol_ctx.topic.chains == ("Ethereum", "Arbitrum", "Polygon", "Optimism", "Base")

    def test_metric_keys_are_not_chains(self, protocol_ctx):
        derived = protocol_ctx.derived
        assert derived.chain_count == 5
        assert derived.top_chain == "Ethereum"
        assert derived.top_chain_share == pytest.approx(0.7)

    def test_current_tvl_is_latest_point(self, protocol_ctx):
        assert protocol_ctx.derived.current_tvl == protocol_ctx.data.protocol_detail.tvl[-1][1]

    def test_changes_and_ath(self, protocol_ctx):
        derived = protocol_ctx.derived
        assert derived.change_7d is not None
        assert derived.change_30d is not None
        assert derived.ath_value is not None
        assert derived.ath_month is not None
        assert derived.tvl_volatility is not None

    def test_fees_from_chart(self, protocol_ctx):
        derived = protocol_ctx.derived
        # Last 7 points of a 1M/day chart growing 1% per day from day 0
        assert derived.fees_7d == pytest.approx(10_920_000)
        assert derived.revenue_7d == 1_200_000
        assert derived.rev_to_fees_ratio == pytest.approx(1_200_000 / 10_920_000)

    def test_peers(self, protocol_ctx):
        derived = protocol_ctx.derived
        nearby = [p.slug for p in derived.nearby_protocols]
        assert "aave" not in nearby
        assert "binance-cex" not in nearby
        assert nearby
        categories = {p.category for p in derived.category_protocols}
        assert categories == {"Lending"}
        assert "aave" not in [p.slug for p in derived.category_protocols]

    def test_as_of_ts(self, protocol_ctx):
        assert protocol_ctx.as_of_ts == protocol_ctx.data.protocol_detail.tvl[-1][0]

    def test_without_detail(self, make_protocol_ctx):
        ctx = make_protocol_ctx(drop=("protocolDetail",))
        assert ctx.derived.tvl_rank == 4
        assert ctx.derived.current_tvl is None


class TestChainContext:
    def test_topic(self, chain_ctx):
        assert chain_ctx.episode_type == "chain"
        assert isinstance(chain_ctx.topic, ChainTopic)
        assert chain_ctx.topic.token_symbol == "ARB"

    def test_metrics(self, chain_ctx):
        derived = chain_ctx.derived
        assert derived.chain_tvl_rank == 4
        assert derived.chain_ath_month is not None
        assert derived.chain_change_30d is not None
        nearby = [c.name for c in derived.nearby_chains]
        assert "Arbitrum" not in nearby
        assert "Ethereum" in nearby

    def test_pool(self, chain_ctx):
        assert len(chain_ctx.data.chain_pool) == 12
        assert chain_ctx.data.chain_fees[0].value == 400_000


class TestParsing:
    def test_type_inferred_from_category(self):
        raw = protocol_snapshot()
        del raw["episodeType"]
        assert parse_snapshot(raw).episode_type == "protocol"

        raw = chain_snapshot()
        del raw["episodeType"]
        assert parse_snapshot(raw).episode_type == "chain"

    def test_overrides(self):
        ctx = parse_snapshot(protocol_snapshot(), date="2024-06-05")
        assert ctx.date == "2024-06-05"

    def test_unsorted_series_is_sorted(self):
        raw = protocol_snapshot()
        raw["data"]["protocolDetail"]["tvl"].reverse()
        ctx = parse_snapshot(raw)
        timestamps = [ts for ts, _ in ctx.data.protocol_detail.tvl]
        assert timestamps == sorted(timestamps)

    def test_missing_topic(self):
        with pytest.raises(ValueError, match="topic"):
            parse_snapshot({"date": "2024-06-03"})

    def test_missing_date(self):
        raw = protocol_snapshot()
        del raw["date"]
        with pytest.raises(ValueError, match="date"):
            parse_snapshot(raw)

    def test_missing_rank(self):
        raw = protocol_snapshot()
        del raw["topic"]["tvlRank"]
        with pytest.raises(ValueError, match="Malformed"):
            parse_snapshot(raw)

    def test_unknown_episode_type(self):
        with pytest.raises(ValueError, match="episode_type"):
            parse_snapshot(protocol_snapshot(), episode_type="nft")

    def test_not_a_dict(self):
        with pytest.raises(ValueError):
            parse_snapshot([])


class TestLoadSnapshot:
    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_snapshot(tmp_path / "missing.json")

    def test_round_trip(self, tmp_path):
        path = tmp_path / "snapshot.json"
        path.write_text(json.dumps(protocol_snapshot()))
        assert load_snapshot(path) == parse_snapshot(protocol_snapshot())
