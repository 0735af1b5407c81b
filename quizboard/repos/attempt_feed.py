"""Quiz-scoped, append-only feed of attempt facts.

Each committed submission appends exactly one fact.  The mentor
leaderboard reads the whole feed for a quiz instead of every student's
private ledger.  Writers only ever append their own facts, so the feed
needs no locking.
"""

from __future__ import annotations

import json
import logging
from typing import Protocol, runtime_checkable

from pydantic import ValidationError

from quizboard.db.redis import redis_pool
from quizboard.models.attempt import AttemptFact
from quizboard.models.documents import AttemptFactDocument

logger = logging.getLogger(__name__)


@runtime_checkable
class AttemptFeed(Protocol):
    async def append(self, fact: AttemptFact) -> None: ...
    async def list_for_quiz(self, quiz_id: str) -> list[AttemptFact]: ...


class InMemoryAttemptFeed:
    def __init__(self) -> None:
        self._by_quiz: dict[str, list[AttemptFact]] = {}

    async def append(self, fact: AttemptFact) -> None:
        self._by_quiz.setdefault(fact.quiz_id, []).append(fact)

    async def list_for_quiz(self, quiz_id: str) -> list[AttemptFact]:
        return list(self._by_quiz.get(quiz_id, []))


def fact_to_json(fact: AttemptFact) -> str:
    return json.dumps(
        {
            "studentId": fact.student_id,
            "score": fact.score,
            "attemptNumber": fact.attempt_number,
            "timestamp": fact.timestamp,
            "subject": fact.subject,
            "mentorName": fact.mentor_name,
        }
    )


class RedisAttemptFeed:
    """RPUSH onto ``attempts:{quiz_id}``; reads return the list in append order."""

    _PREFIX = "attempts:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def append(self, fact: AttemptFact) -> None:
        await self._redis.rpush(f"{self._PREFIX}{fact.quiz_id}", fact_to_json(fact))

    async def list_for_quiz(self, quiz_id: str) -> list[AttemptFact]:
        entries = await self._redis.lrange(f"{self._PREFIX}{quiz_id}", 0, -1)
        facts: list[AttemptFact] = []
        for raw in entries:
            try:
                doc = AttemptFactDocument.model_validate(json.loads(raw))
            except (ValueError, ValidationError):
                logger.warning(
                    "Skipping unreadable attempt fact", extra={"quiz_id": quiz_id}
                )
                continue
            facts.append(doc.to_fact(quiz_id))
        return facts


if redis_pool is not None:
    attempt_feed: AttemptFeed = RedisAttemptFeed(redis_pool)
else:
    attempt_feed = InMemoryAttemptFeed()
