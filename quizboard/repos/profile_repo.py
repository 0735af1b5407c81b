from __future__ import annotations

from typing import Protocol, runtime_checkable

from quizboard.db.redis import redis_pool


@runtime_checkable
class ProfileDirectory(Protocol):
    """Lookup of student profile documents held by the identity provider.

    Returns None when no profile exists; raises when the lookup itself fails.
    """

    async def lookup(self, student_id: str) -> dict | None: ...


class InMemoryProfileDirectory:
    def __init__(self) -> None:
        self._profiles: dict[str, dict] = {}

    async def lookup(self, student_id: str) -> dict | None:
        profile = self._profiles.get(student_id)
        return dict(profile) if profile is not None else None

    def add(self, student_id: str, profile: dict) -> None:
        self._profiles[student_id] = dict(profile)


class RedisProfileDirectory:
    """Profile fields stored as a hash under ``profile:{student_id}``."""

    _PREFIX = "profile:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def lookup(self, student_id: str) -> dict | None:
        profile = await self._redis.hgetall(f"{self._PREFIX}{student_id}")
        return profile or None


if redis_pool is not None:
    profile_directory: ProfileDirectory = RedisProfileDirectory(redis_pool)
else:
    profile_directory = InMemoryProfileDirectory()
