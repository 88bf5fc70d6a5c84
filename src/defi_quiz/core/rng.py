"""Deterministic randomness for episode generation.

Every random decision in an episode (distractor picks, choice order, A/B
swaps) flows through this module so that an episode can be rebuilt
byte-for-byte from (date, episode type, topic, snapshot).

Philosophy:
- Seeds are derived by hashing a tuple of parts, never by string concatenation
- Each consumer gets its own ``random.Random`` instance; nothing is shared
- Shuffling only relies on ``Random.random()``, whose output sequence is
  stable across Python releases

Public API:
    seed_from_parts(*parts) -> int
    derive_seed(seed, *labels) -> int
    make_rng(seed) -> random.Random
    shuffle(items, *key) -> list
    random_int, random_pick, random_sample, weighted_random_index
"""

from __future__ import annotations

import hashlib
import json
import random
from collections.abc import Sequence
from typing import TypeVar

T = TypeVar("T")

# Seeds stay within the exactly-representable float range so they survive
# a JSON round trip unchanged.
MAX_SEED = 2**53 - 1


def seed_from_parts(*parts: object) -> int:
    """Hash an ordered tuple of parts into a stable integer seed.

    The parts are JSON-encoded as a list before hashing, so element
    boundaries and types are part of the hash: ``(12, "3")`` and
    ``(123, "")`` produce different seeds.
    """
    encoded = json.dumps(list(parts), separators=(",", ":"), default=str)
    digest = hashlib.sha256(encoded.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big") % MAX_SEED


def derive_seed(seed: int, *labels: object) -> int:
    """Derive an independent child seed from a parent seed and labels."""
    return seed_from_parts(seed, *labels)


def make_rng(seed: int) -> random.Random:
    """Create an independent float stream in [0, 1) for ``seed``."""
    return random.Random(seed)


def shuffle(items: Sequence[T], *key: object) -> list[T]:
    """Return a deterministically shuffled copy of ``items``.

    Fisher-Yates driven by ``random()`` only, so the permutation for a
    given ``(items, key)`` never changes between interpreter versions.
    """
    rng = make_rng(seed_from_parts(*key))
    result = list(items)
    for i in range(len(result) - 1, 0, -1):
        j = int(rng.random() * (i + 1))
        result[i], result[j] = result[j], result[i]
    return result


def random_int(rng: random.Random, low: int, high: int) -> int:
    """Inclusive random integer in [low, high]."""
    return int(rng.random() * (high - low + 1)) + low


def random_pick(rng: random.Random, items: Sequence[T]) -> T | None:
    if not items:
        return None
    return items[int(rng.random() * len(items))]


def random_sample(rng: random.Random, items: Sequence[T], count: int) -> list[T]:
    """Sample without replacement using swap-remove."""
    available = list(items)
    result: list[T] = []
    for _ in range(min(count, len(available))):
        idx = int(rng.random() * len(available))
        result.append(available[idx])
        available[idx] = available[-1]
        available.pop()
    return result


def weighted_random_index(rng: random.Random, weights: Sequence[float]) -> int:
    total = sum(weights)
    if total <= 0:
        return 0
    threshold = rng.random() * total
    for i, weight in enumerate(weights):
        threshold -= weight
        if threshold <= 0:
            return i
    return len(weights) - 1


__all__ = [
    "MAX_SEED",
    "seed_from_parts",
    "derive_seed",
    "make_rng",
    "shuffle",
    "random_int",
    "random_pick",
    "random_sample",
    "weighted_random_index",
]
