"""Episode assembly: slot selection, post-balance and the build entry point."""

from __future__ import annotations

from .episode import (
    EPISODE_SCHEDULE,
    Episode,
    EpisodeBuilder,
    Question,
    build_episode,
    day_name,
    episode_type_for_date,
)
from .post_balance import post_balance
from .selection import SlotSelection, select_for_slot
from .topics import TopicTracker

__all__ = [
    "EPISODE_SCHEDULE",
    "Episode",
    "EpisodeBuilder",
    "Question",
    "SlotSelection",
    "TopicTracker",
    "build_episode",
    "day_name",
    "episode_type_for_date",
    "post_balance",
    "select_for_slot",
]
