from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

# Ensure repo root is on sys.path so `import quizboard` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from quizboard.engine import QuizEngine, build_engine  # noqa: E402
from quizboard.models.attempt import AttemptFact, LeaderboardRow  # noqa: E402
from quizboard.models.quiz import QuizSpec  # noqa: E402
from quizboard.repos.attempt_feed import InMemoryAttemptFeed  # noqa: E402
from quizboard.repos.ledger_repo import InMemoryLedgerRepo  # noqa: E402
from quizboard.repos.profile_repo import InMemoryProfileDirectory  # noqa: E402
from quizboard.repos.quiz_repo import InMemoryQuizRepo  # noqa: E402
from quizboard.services.submission_guard import InMemorySubmissionGuard  # noqa: E402


def pytest_collection_modifyitems(config, items) -> None:
    if os.environ.get("REDIS_URL"):
        return
    skip_redis = pytest.mark.skip(reason="REDIS_URL not set")
    for item in items:
        if "redis" in item.keywords:
            item.add_marker(skip_redis)


class FixedClock:
    """Deterministic epoch-millisecond clock; each call advances by ``step``."""

    def __init__(self, start: int = 1_700_000_000_000, step: int = 1_000) -> None:
        self.now = start
        self.step = step

    def __call__(self) -> int:
        current = self.now
        self.now += self.step
        return current


@pytest.fixture
def quizzes() -> InMemoryQuizRepo:
    return InMemoryQuizRepo()


@pytest.fixture
def ledgers() -> InMemoryLedgerRepo:
    return InMemoryLedgerRepo()


@pytest.fixture
def feed() -> InMemoryAttemptFeed:
    return InMemoryAttemptFeed()


@pytest.fixture
def profiles() -> InMemoryProfileDirectory:
    return InMemoryProfileDirectory()


@pytest.fixture
def guard() -> InMemorySubmissionGuard:
    return InMemorySubmissionGuard()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def engine(quizzes, ledgers, feed, profiles, guard, clock) -> QuizEngine:
    built = build_engine(
        configure_logging=False,
        quizzes=quizzes,
        ledgers=ledgers,
        feed=feed,
        profiles=profiles,
        guard=guard,
        clock=clock,
    )
    return built


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_quiz(
    quiz_id: str = "quiz-1",
    *,
    correct_options: list[int] | None = None,
    points_per_question: float = 2,
    allowed_attempts: int = 2,
    timer_minutes: int = 0,
    published: bool = True,
) -> QuizSpec:
    return QuizSpec.new(
        quiz_id=quiz_id,
        subject="Biology",
        correct_options=correct_options if correct_options is not None else [0, 1, 2, 3, 0],
        points_per_question=points_per_question,
        allowed_attempts=allowed_attempts,
        per_question_timer_minutes=timer_minutes,
        published=published,
        mentor_name="Ms. Rivera",
    )


def make_row(
    student_id: str,
    *,
    first_name: str = "Ann",
    last_name: str = "Lee",
    best_score: int = 10,
    best_attempt_number: int = 1,
    best_score_timestamp: int = 0,
    total_attempts: int = 1,
    average_score: float = 10.0,
    completion_rate: float = 100.0,
) -> LeaderboardRow:
    return LeaderboardRow(
        student_id=student_id,
        first_name=first_name,
        last_name=last_name,
        best_score=best_score,
        best_attempt_number=best_attempt_number,
        best_score_timestamp=best_score_timestamp,
        total_attempts=total_attempts,
        average_score=average_score,
        completion_rate=completion_rate,
    )


def make_fact(
    student_id: str,
    attempt_number: int,
    score: int,
    timestamp: int = 1_700_000_000_000,
    quiz_id: str = "quiz-1",
) -> AttemptFact:
    return AttemptFact(
        quiz_id=quiz_id,
        student_id=student_id,
        score=score,
        attempt_number=attempt_number,
        timestamp=timestamp,
    )
