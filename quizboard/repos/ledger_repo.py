"""Attempt ledger storage.

Writes are compare-and-set on ``AttemptLedger.version``: ``replace`` only
lands when the stored version still equals the version the caller read,
and the stored copy then carries ``expected_version + 1``.  Two writers
that both read version N cannot both commit.
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from typing import Protocol, runtime_checkable

from redis.exceptions import WatchError

from quizboard.db.redis import redis_pool
from quizboard.models.attempt import AttemptLedger
from quizboard.models.documents import LedgerDocument
from quizboard.services.ledger import ledger_from_records

logger = logging.getLogger(__name__)


class StaleLedgerError(Exception):
    """The stored ledger changed since it was read."""

    def __init__(self, student_id: str, quiz_id: str, expected: int, found: int) -> None:
        super().__init__(
            f"ledger {quiz_id}/{student_id} is at version {found}, expected {expected}"
        )
        self.expected = expected
        self.found = found


@runtime_checkable
class LedgerRepo(Protocol):
    async def get(self, student_id: str, quiz_id: str) -> AttemptLedger | None:
        """Return the stored ledger, or None when the student never attempted."""
        ...

    async def replace(
        self, ledger: AttemptLedger, expected_version: int
    ) -> AttemptLedger:
        """Atomically store ``ledger`` if the stored version is ``expected_version``.

        Returns the ledger as stored (version bumped).  Raises
        StaleLedgerError on a version mismatch.
        """
        ...

    async def list_for_quiz(self, quiz_id: str) -> list[AttemptLedger]: ...


class InMemoryLedgerRepo:
    def __init__(self) -> None:
        self._store: dict[tuple[str, str], AttemptLedger] = {}

    async def get(self, student_id: str, quiz_id: str) -> AttemptLedger | None:
        return self._store.get((student_id, quiz_id))

    async def replace(
        self, ledger: AttemptLedger, expected_version: int
    ) -> AttemptLedger:
        # No await between the check and the store: atomic on one event loop.
        key = (ledger.student_id, ledger.quiz_id)
        current = self._store.get(key)
        found = current.version if current is not None else 0
        if found != expected_version:
            raise StaleLedgerError(
                ledger.student_id, ledger.quiz_id, expected_version, found
            )
        stored = replace(ledger, version=expected_version + 1)
        self._store[key] = stored
        return stored

    async def list_for_quiz(self, quiz_id: str) -> list[AttemptLedger]:
        return [ledger for (_, q), ledger in self._store.items() if q == quiz_id]


def ledger_to_json(ledger: AttemptLedger) -> str:
    return json.dumps(
        {
            "studentId": ledger.student_id,
            "quizId": ledger.quiz_id,
            "attemptsUsed": ledger.attempts_used,
            "bestScore": ledger.best_score,
            "bestAttemptNumber": ledger.best_attempt_number,
            "bestScoreTimestamp": ledger.best_score_timestamp,
            "lastScore": ledger.last_score,
            "version": ledger.version,
            "attempts": [
                {
                    "attemptNumber": r.attempt_number,
                    "score": r.score,
                    "timestamp": r.timestamp,
                }
                for r in ledger.attempts
            ],
        }
    )


def ledger_from_json(student_id: str, quiz_id: str, raw: str) -> AttemptLedger:
    # Derived fields are recomputed from the attempts, never trusted as stored.
    doc = LedgerDocument.model_validate(json.loads(raw))
    return ledger_from_records(student_id, quiz_id, doc.records(), version=doc.version)


class RedisLedgerRepo:
    """One JSON document per ledger under ``ledger:{quiz_id}:{student_id}``.

    ``replace`` is a WATCH/MULTI/EXEC transaction: if another client
    touches the key between the version check and EXEC, Redis aborts the
    transaction and the write is reported as stale.
    """

    _PREFIX = "ledger:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    def _key(self, student_id: str, quiz_id: str) -> str:
        return f"{self._PREFIX}{quiz_id}:{student_id}"

    async def get(self, student_id: str, quiz_id: str) -> AttemptLedger | None:
        raw = await self._redis.get(self._key(student_id, quiz_id))
        if raw is None:
            return None
        return ledger_from_json(student_id, quiz_id, raw)

    async def replace(
        self, ledger: AttemptLedger, expected_version: int
    ) -> AttemptLedger:
        key = self._key(ledger.student_id, ledger.quiz_id)
        stored = replace(ledger, version=expected_version + 1)
        async with self._redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
                raw = await pipe.get(key)
                found = json.loads(raw).get("version", 0) if raw is not None else 0
                if found != expected_version:
                    raise StaleLedgerError(
                        ledger.student_id, ledger.quiz_id, expected_version, found
                    )
                pipe.multi()
                pipe.set(key, ledger_to_json(stored))
                await pipe.execute()
            except WatchError:
                raise StaleLedgerError(
                    ledger.student_id, ledger.quiz_id, expected_version, -1
                ) from None
        return stored

    async def list_for_quiz(self, quiz_id: str) -> list[AttemptLedger]:
        prefix = f"{self._PREFIX}{quiz_id}:"
        ledgers: list[AttemptLedger] = []
        cursor = 0
        while True:
            cursor, keys = await self._redis.scan(cursor, match=f"{prefix}*", count=100)
            for key in keys:
                raw = await self._redis.get(key)
                if raw is None:
                    continue
                student_id = key[len(prefix):]
                try:
                    ledgers.append(ledger_from_json(student_id, quiz_id, raw))
                except ValueError:
                    logger.warning("Skipping unreadable ledger key=%s", key)
            if cursor == 0:
                break
        return ledgers


if redis_pool is not None:
    ledger_repo: LedgerRepo = RedisLedgerRepo(redis_pool)
else:
    ledger_repo = InMemoryLedgerRepo()
