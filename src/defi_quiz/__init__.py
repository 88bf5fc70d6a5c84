"""defi-quiz: deterministic daily DeFi trivia episodes.

Builds a five-question episode about one protocol or chain from a
pre-fetched DefiLlama snapshot. Same date, topic and snapshot always give
the same episode.

Public API:
    load_snapshot(path) -> Context
    build_episode(ctx) -> Episode
    episode_type_for_date(date) -> str
"""

from __future__ import annotations

__version__ = "0.1.0"

from .builder import Episode, EpisodeBuilder, Question, build_episode, episode_type_for_date
from .data.models import Context
from .data.snapshot import load_snapshot, parse_snapshot
from .errors import ConfigurationError

__all__ = [
    "__version__",
    "Context",
    "ConfigurationError",
    "Episode",
    "EpisodeBuilder",
    "Question",
    "build_episode",
    "episode_type_for_date",
    "load_snapshot",
    "parse_snapshot",
]
