"""Shared snapshot fixtures."""

from __future__ import annotations

import pytest

from defi_quiz.data.snapshot import parse_snapshot
from factories import chain_snapshot, protocol_snapshot


@pytest.fixture
def protocol_ctx():
    return parse_snapshot(protocol_snapshot())


@pytest.fixture
def chain_ctx():
    return parse_snapshot(chain_snapshot())


@pytest.fixture
def make_protocol_ctx():
    """Factory: ``make_protocol_ctx(rank=60)``; ``drop`` removes data keys."""

    def factory(rank: int = 4, slug: str = "aave", drop: tuple[str, ...] = ()):
        raw = protocol_snapshot(rank=rank, slug=slug)
        for key in drop:
            raw["data"].pop(key, None)
        return parse_snapshot(raw)

    return factory


@pytest.fixture
def make_chain_ctx():
    def factory(name: str = "Arbitrum", rank: int = 4, drop: tuple[str, ...] = ()):
        raw = chain_snapshot(name=name, rank=rank)
        for key in drop:
            raw["data"].pop(key, None)
        return parse_snapshot(raw)

    return factory
