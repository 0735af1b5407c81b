"""At-most-one in-flight submission per (student, quiz).

A submission acquires the guard before reading the ledger and releases
it after the write (or the rejection).  A second submission for the same
ledger that arrives in between is rejected, never queued behind the
first and never interleaved with it.

``acquire`` hands back a token unique to that holder, and ``release``
only frees the key while it still carries that token.  A holder that
outlived the Redis TTL therefore cannot free a later submitter's claim.
"""

from __future__ import annotations

import uuid
from typing import Protocol, runtime_checkable

from quizboard.core.config import SETTINGS
from quizboard.db.redis import redis_pool


def guard_key(student_id: str, quiz_id: str) -> str:
    return f"{quiz_id}:{student_id}"


def _new_token() -> str:
    return uuid.uuid4().hex


@runtime_checkable
class SubmissionGuard(Protocol):
    async def acquire(self, key: str) -> str | None:
        """Claim the key.  Returns the holder's token, or None when taken."""
        ...

    async def release(self, key: str, token: str) -> None: ...


class InMemorySubmissionGuard:
    """Per-process guard; sufficient when one process owns all submissions."""

    def __init__(self) -> None:
        self._held: dict[str, str] = {}

    async def acquire(self, key: str) -> str | None:
        if key in self._held:
            return None
        token = _new_token()
        self._held[key] = token
        return token

    async def release(self, key: str, token: str) -> None:
        if self._held.get(key) == token:
            del self._held[key]


class RedisSubmissionGuard:
    """``SET key token NX EX ttl`` to claim; compare-and-delete to release.

    The TTL frees the slot if the holder dies before releasing.
    """

    _PREFIX = "submitting:"

    # KEYS[1] = guard key, ARGV[1] = holder token
    # Deletes the key only if the holder still owns it.
    _RELEASE_SCRIPT = """
    if redis.call('GET', KEYS[1]) == ARGV[1] then
        return redis.call('DEL', KEYS[1])
    end
    return 0
    """

    def __init__(self, redis_client, ttl_seconds: int) -> None:
        self._redis = redis_client
        self._ttl = ttl_seconds
        self._release_script = None

    async def _get_release_script(self):
        if self._release_script is None:
            self._release_script = self._redis.register_script(self._RELEASE_SCRIPT)
        return self._release_script

    async def acquire(self, key: str) -> str | None:
        token = _new_token()
        claimed = await self._redis.set(
            f"{self._PREFIX}{key}", token, nx=True, ex=self._ttl
        )
        return token if claimed else None

    async def release(self, key: str, token: str) -> None:
        script = await self._get_release_script()
        await script(keys=[f"{self._PREFIX}{key}"], args=[token])


if redis_pool is not None:
    submission_guard: SubmissionGuard = RedisSubmissionGuard(
        redis_pool, SETTINGS.submission_lock_ttl
    )
else:
    submission_guard = InMemorySubmissionGuard()
