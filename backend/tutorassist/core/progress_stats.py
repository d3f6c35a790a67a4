"""Progress Stats — per-topic accuracy aggregation and weak-topic detection.

Invariants:
    - accuracy is a rounded integer percentage (0 when total is 0)
    - A topic is "weak" only with at least WEAK_TOPIC_MIN_ATTEMPTS attempts
      and an unrounded correct/total ratio strictly below WEAK_TOPIC_ACCURACY
"""

from dataclasses import dataclass
from typing import Iterable
from uuid import UUID

WEAK_TOPIC_MIN_ATTEMPTS = 3
WEAK_TOPIC_ACCURACY = 0.6


@dataclass
class TopicStat:
    topic_id: UUID
    topic_name: str
    total: int = 0
    correct: int = 0

    @property
    def accuracy(self) -> int:
        return accuracy_percent(self.correct, self.total)

    def to_dict(self) -> dict:
        return {
            "topicId": str(self.topic_id),
            "topicName": self.topic_name,
            "total": self.total,
            "correct": self.correct,
            "accuracy": self.accuracy,
        }


def accuracy_percent(correct: int, total: int) -> int:
    if total <= 0:
        return 0
    return int(correct / total * 100 + 0.5)


def aggregate_topic_stats(
    rows: Iterable[tuple[UUID | None, str | None, bool]],
) -> list[TopicStat]:
    """Fold (topic_id, topic_name, is_correct) rows into stats sorted by total desc.

    Rows without a topic are skipped.
    """
    stats: dict[UUID, TopicStat] = {}
    for topic_id, topic_name, is_correct in rows:
        if topic_id is None:
            continue
        stat = stats.setdefault(topic_id, TopicStat(topic_id, topic_name or "Unknown"))
        stat.total += 1
        if is_correct:
            stat.correct += 1
    return sorted(stats.values(), key=lambda s: s.total, reverse=True)


def weak_topic_ids(stats: Iterable[TopicStat]) -> list[UUID]:
    return [
        s.topic_id for s in stats
        if s.total >= WEAK_TOPIC_MIN_ATTEMPTS and s.correct / s.total < WEAK_TOPIC_ACCURACY
    ]
