from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from chatstats.config import Settings, get_settings

if TYPE_CHECKING:
    from chatstats.database.repository import Repository

logger = structlog.get_logger()

RARITY_BONUS = 1.5
MIN_GLOBAL_USES = 2


@dataclass
class Topic:
    name: str
    user_count: int
    global_count: int
    score: float

    def normalise(self, multiplier: float) -> None:
        self.score *= multiplier

    def score_by_occurrence(self, max_global_count: int) -> None:
        """Reward words that are characteristic of the user and rare overall."""
        if self.user_count != self.global_count and self.global_count < max_global_count / 2:
            self.score += RARITY_BONUS


def score_topics(
    global_counts: Mapping[str, int],
    messages: Iterable[str],
    command_prefix: str,
) -> list[Topic] | None:
    """Rank the words of ``messages`` by how characteristic they are.

    Each word the user shares with the global table scores
    ``user_count / global_count``; scores are scaled so their mean is 1, then
    globally rare words get a flat bonus. Words the user seems to have said
    more often than everyone together are dropped as inconsistent.

    Returns None when no word qualifies.
    """
    user_counts: Counter[str] = Counter()
    for message in messages:
        if message.startswith(command_prefix):
            continue
        user_counts.update(message.split())

    topics = [
        Topic(word, user_count, global_counts[word], user_count / global_counts[word])
        for word, user_count in user_counts.items()
        if word in global_counts and user_count <= global_counts[word]
    ]
    if not topics:
        return None

    avg_difference = sum(topic.score for topic in topics) / len(topics)
    # Only reachable with non-positive global counts; keep the raw scores then.
    avg_multiplier = 1 / avg_difference if avg_difference > 0 else 1.0
    max_global_count = max(global_counts.values())

    for topic in topics:
        topic.normalise(avg_multiplier)
        topic.score_by_occurrence(max_global_count)

    return sorted(topics, key=lambda topic: (-topic.score, topic.name))


class TopicScorer:
    def __init__(self, repository: Repository, settings: Settings | None = None) -> None:
        settings = settings if settings is not None else get_settings()
        self._repository = repository
        self._command_prefix = settings.command_prefix

    async def find_topics(self, user_id: int, channel: str) -> list[Topic] | None:
        async with self._repository.guard.hold("TopicScorer.find_topics"):
            global_counts = await self._repository.get_global_word_counts(MIN_GLOBAL_USES)
            messages = await self._repository.get_messages(user_id, channel)
            topics = score_topics(global_counts, messages, self._command_prefix)

        logger.info(
            "Computed topics",
            user_id=user_id,
            channel=channel,
            messages=len(messages),
            topics=len(topics) if topics else 0,
        )
        return topics
