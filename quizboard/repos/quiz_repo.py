from __future__ import annotations

import json
import logging
from typing import Protocol, runtime_checkable

from pydantic import ValidationError

from quizboard.core.errors import QuizSpecError
from quizboard.db.redis import redis_pool
from quizboard.models.documents import QuizDocument
from quizboard.models.quiz import QuizSpec

logger = logging.getLogger(__name__)


@runtime_checkable
class QuizRepo(Protocol):
    """Read access to quiz definitions.  The engine never writes them."""

    async def get(self, quiz_id: str) -> QuizSpec | None: ...


class InMemoryQuizRepo:
    def __init__(self) -> None:
        self._by_id: dict[str, QuizSpec] = {}

    async def get(self, quiz_id: str) -> QuizSpec | None:
        return self._by_id.get(quiz_id)

    def add(self, spec: QuizSpec) -> None:
        # Seeding hook for tests and local dev; stands in for the authoring flow.
        self._by_id[spec.quiz_id] = spec


class RedisQuizRepo:
    """Quiz documents stored as JSON under ``quiz:{quiz_id}``."""

    _PREFIX = "quiz:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def get(self, quiz_id: str) -> QuizSpec | None:
        raw = await self._redis.get(f"{self._PREFIX}{quiz_id}")
        if raw is None:
            return None
        try:
            return QuizDocument.model_validate(json.loads(raw)).to_spec(quiz_id)
        except (ValueError, ValidationError) as exc:
            logger.error("Unreadable quiz document quiz_id=%s: %s", quiz_id, exc)
            raise QuizSpecError(f"quiz {quiz_id!r} document is invalid") from exc


if redis_pool is not None:
    quiz_repo: QuizRepo = RedisQuizRepo(redis_pool)
else:
    quiz_repo = InMemoryQuizRepo()
