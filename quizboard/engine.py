"""Wiring for the attempt and leaderboard engine.

``build_engine()`` assembles the processor and leaderboard service on top
of the module-level stores, which are Redis-backed when REDIS_URL is set
and in-memory otherwise.  Host applications (mobile backend, web API,
admin scripts) hold one QuizEngine and call it directly.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from quizboard.core.config import SETTINGS, Settings
from quizboard.core.errors import QuizNotFound
from quizboard.core.logging import setup_logging
from quizboard.models.attempt import AttemptLedger, LeaderboardRow, SubmissionResult
from quizboard.models.quiz import QuizSpec
from quizboard.repos.attempt_feed import AttemptFeed, attempt_feed
from quizboard.repos.ledger_repo import LedgerRepo, ledger_repo
from quizboard.repos.profile_repo import ProfileDirectory, profile_directory
from quizboard.repos.quiz_repo import QuizRepo, quiz_repo
from quizboard.services.attempt_timer import AnswerSheet, force_submit
from quizboard.services.ledger import (
    AttemptHistory,
    attempts_remaining,
    can_attempt,
    history,
)
from quizboard.services.leaderboard import LeaderboardService
from quizboard.services.ranking import RankedRow
from quizboard.services.submission import Answers, SubmissionProcessor, now_ms
from quizboard.services.submission_guard import SubmissionGuard, submission_guard

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StudentProgress:
    """What the student's own progress view shows for one quiz."""

    spec: QuizSpec
    ledger: AttemptLedger
    attempts_remaining: int
    can_attempt: bool
    history: AttemptHistory


@dataclass(frozen=True)
class QuizEngine:
    quizzes: QuizRepo
    ledgers: LedgerRepo
    feed: AttemptFeed
    profiles: ProfileDirectory
    guard: SubmissionGuard
    processor: SubmissionProcessor
    leaderboards: LeaderboardService

    async def submit(
        self, student_id: str, quiz_id: str, answers: Answers
    ) -> SubmissionResult:
        return await self.processor.submit(student_id, quiz_id, answers)

    async def expire(
        self, student_id: str, quiz_id: str, sheet: AnswerSheet
    ) -> SubmissionResult:
        return await force_submit(self.processor, student_id, quiz_id, sheet)

    async def progress(self, student_id: str, quiz_id: str) -> StudentProgress:
        spec = await self.quizzes.get(quiz_id)
        if spec is None:
            raise QuizNotFound(quiz_id)
        ledger = await self.ledgers.get(student_id, quiz_id)
        if ledger is None:
            ledger = AttemptLedger.empty(student_id, quiz_id)
        return StudentProgress(
            spec=spec,
            ledger=ledger,
            attempts_remaining=attempts_remaining(ledger, spec),
            can_attempt=can_attempt(ledger, spec),
            history=history(ledger, spec),
        )

    async def leaderboard(self, quiz_id: str) -> list[LeaderboardRow]:
        return await self.leaderboards.leaderboard(quiz_id)

    async def ranked(self, quiz_id: str) -> list[RankedRow]:
        return await self.leaderboards.ranked_rows(quiz_id)


def build_engine(
    settings: Settings = SETTINGS,
    *,
    configure_logging: bool = True,
    quizzes: QuizRepo | None = None,
    ledgers: LedgerRepo | None = None,
    feed: AttemptFeed | None = None,
    profiles: ProfileDirectory | None = None,
    guard: SubmissionGuard | None = None,
    clock: Callable[[], int] = now_ms,
) -> QuizEngine:
    if configure_logging:
        setup_logging(settings.log_level, json_format=settings.log_json)

    quizzes = quizzes if quizzes is not None else quiz_repo
    ledgers = ledgers if ledgers is not None else ledger_repo
    feed = feed if feed is not None else attempt_feed
    profiles = profiles if profiles is not None else profile_directory
    guard = guard if guard is not None else submission_guard

    engine = QuizEngine(
        quizzes=quizzes,
        ledgers=ledgers,
        feed=feed,
        profiles=profiles,
        guard=guard,
        processor=SubmissionProcessor(quizzes, ledgers, feed, guard, clock=clock),
        leaderboards=LeaderboardService(
            quizzes,
            ledgers,
            profiles,
            feed=feed,
            tolerance=settings.average_score_tolerance,
        ),
    )
    logger.info(
        "quizboard engine ready  env=%s stores=%s",
        settings.app_env,
        "redis" if settings.redis_url else "in-memory",
    )
    return engine
