from __future__ import annotations

import asyncio

import pytest
from prometheus_client import REGISTRY

from quizboard.core.errors import CorruptLeaderboardRow, QuizNotFound
from quizboard.engine import build_engine
from quizboard.models.attempt import AttemptFact, AttemptLedger
from quizboard.services.ledger import append_attempt
from quizboard.services.leaderboard import (
    LeaderboardService,
    build_row,
    build_rows,
    group_by_student,
    placeholder_name,
    resolve_display_name,
)
from tests.conftest import FixedClock, make_fact, make_quiz


def _metric(name: str) -> float:
    return REGISTRY.get_sample_value(name) or 0.0


class _FailingProfiles:
    async def lookup(self, student_id: str):
        raise TimeoutError("identity provider timed out")


# ---- names ----


def test_placeholder_uses_id_suffix() -> None:
    assert placeholder_name("abcdef123456") == ("Student", "#123456")
    assert placeholder_name("x1") == ("Student", "#x1")


@pytest.mark.parametrize(
    ("profile", "expected"),
    [
        ({"firstName": " Ann ", "lastName": "Lee"}, ("Ann", "Lee")),
        ({"firstName": "Ann", "displayName": "Annie Q Lee"}, ("Ann", "Q Lee")),
        ({"firstName": "Ann"}, ("Ann", "Student")),
        ({"lastName": "Lee"}, ("Unknown", "Lee")),
        ({"lastName": "Lee", "email": "ann.x@school.org"}, ("Ann", "Lee")),
        ({"name": "Cher"}, ("Cher", "Student")),
        ({"email": "ann.lee@school.org"}, ("Ann", "Lee")),
        ({"email": "ann@school.org"}, ("Ann", "Student")),
        ({}, ("Unknown", "Student")),
        ({"firstName": 7, "lastName": None}, ("Unknown", "Student")),
    ],
)
def test_resolve_display_name(profile, expected) -> None:
    assert resolve_display_name(profile) == expected


# ---- row assembly ----


def test_build_row_summarizes_attempts() -> None:
    spec = make_quiz()
    facts = [
        make_fact("stu-1", 2, 8, timestamp=2_000),
        make_fact("stu-1", 1, 6, timestamp=1_000),
        make_fact("stu-1", 3, 8, timestamp=3_000),
    ]
    row = build_row(spec, "stu-1", facts, ("Ann", "Lee"))
    assert row.best_score == 8
    assert row.best_attempt_number == 2
    assert row.best_score_timestamp == 2_000
    assert row.total_attempts == 3
    assert row.average_score == pytest.approx(22 / 3)
    assert row.completion_rate == pytest.approx(80.0)
    assert row.last_score == 8
    assert row.display_name == "Ann Lee"


def test_build_row_collapses_identical_duplicates() -> None:
    spec = make_quiz()
    fact = make_fact("stu-1", 1, 6)
    row = build_row(spec, "stu-1", [fact, fact], ("Ann", "Lee"))
    assert row.total_attempts == 1


@pytest.mark.parametrize(
    "facts",
    [
        [make_fact("stu-1", 1, 6), make_fact("stu-1", 1, 8)],
        [make_fact("stu-1", 0, 6)],
        [make_fact("stu-1", 1, -2)],
        [make_fact("stu-1", 1, 11)],
        [],
    ],
)
def test_build_row_rejects_corrupt_facts(facts) -> None:
    with pytest.raises(CorruptLeaderboardRow):
        build_row(make_quiz(), "stu-1", facts, ("Ann", "Lee"))


def test_group_by_student_ignores_other_quizzes() -> None:
    grouped = group_by_student(
        [
            make_fact("stu-1", 1, 6),
            make_fact("stu-2", 1, 4),
            make_fact("stu-1", 1, 2, quiz_id="quiz-2"),
        ],
        "quiz-1",
    )
    assert sorted(grouped) == ["stu-1", "stu-2"]
    assert len(grouped["stu-1"]) == 1


def test_build_rows_excludes_only_the_corrupt_student() -> None:
    before = _metric("leaderboard_rows_excluded_total")
    rows = build_rows(
        make_quiz(),
        [make_fact("good", 1, 6), make_fact("bad", 1, 99)],
        {"good": ("Ann", "Lee")},
    )
    assert [r.student_id for r in rows] == ["good"]
    assert _metric("leaderboard_rows_excluded_total") == before + 1


def test_build_rows_uses_placeholder_for_missing_name() -> None:
    rows = build_rows(make_quiz(), [make_fact("stu-000042", 1, 6)], {})
    assert (rows[0].first_name, rows[0].last_name) == ("Student", "#000042")


# ---- LeaderboardService ----


def _seed(ledgers, student_id: str, *attempts: tuple[float, int]) -> None:
    ledger = AttemptLedger.empty(student_id, "quiz-1")
    for score, timestamp in attempts:
        ledger, _ = append_attempt(ledger, score, timestamp)
    asyncio.run(ledgers.replace(ledger, expected_version=0))


class _FlakyFeed:
    """Accepts the first append, then fails every later one."""

    def __init__(self) -> None:
        self.facts: list[AttemptFact] = []

    async def append(self, fact: AttemptFact) -> None:
        if self.facts:
            raise ConnectionError("feed unavailable")
        self.facts.append(fact)

    async def list_for_quiz(self, quiz_id: str) -> list[AttemptFact]:
        return [f for f in self.facts if f.quiz_id == quiz_id]


def test_leaderboard_ranks_students(quizzes, ledgers, profiles) -> None:
    quizzes.add(make_quiz())
    profiles.add("x", {"firstName": "Xia", "lastName": "Ng"})
    profiles.add("y", {"displayName": "Yuri Popov"})
    _seed(ledgers, "y", (10, 5_000))
    _seed(ledgers, "x", (10, 1_000))
    _seed(ledgers, "z", (6, 500))
    service = LeaderboardService(quizzes, ledgers, profiles)
    before = _metric("leaderboard_builds_total")

    rows = asyncio.run(service.leaderboard("quiz-1"))

    assert [r.student_id for r in rows] == ["x", "y", "z"]
    assert rows[0].display_name == "Xia Ng"
    assert rows[1].display_name == "Yuri Popov"
    assert rows[2].first_name == "Student"
    assert _metric("leaderboard_builds_total") == before + 1


def test_leaderboard_for_unknown_quiz(quizzes, ledgers, profiles) -> None:
    service = LeaderboardService(quizzes, ledgers, profiles)
    with pytest.raises(QuizNotFound):
        asyncio.run(service.leaderboard("nope"))


def test_leaderboard_with_no_attempts_is_empty(quizzes, ledgers, profiles) -> None:
    quizzes.add(make_quiz())
    service = LeaderboardService(quizzes, ledgers, profiles)
    assert asyncio.run(service.leaderboard("quiz-1")) == []


def test_unpublished_quiz_has_no_leaderboard(quizzes, ledgers, profiles) -> None:
    quizzes.add(make_quiz(published=False))
    _seed(ledgers, "stu-1", (8, 1_000))
    service = LeaderboardService(quizzes, ledgers, profiles)
    assert asyncio.run(service.leaderboard("quiz-1")) == []
    assert asyncio.run(service.ranked_rows("quiz-1")) == []


def test_leaderboard_reads_ledgers_when_feed_missed_an_attempt(
    quizzes, ledgers, profiles, guard
) -> None:
    quizzes.add(make_quiz())
    feed = _FlakyFeed()
    engine = build_engine(
        configure_logging=False,
        quizzes=quizzes,
        ledgers=ledgers,
        feed=feed,
        profiles=profiles,
        guard=guard,
        clock=FixedClock(),
    )

    asyncio.run(engine.submit("stu-1", "quiz-1", [0, 1, 2, 0, 1]))
    asyncio.run(engine.submit("stu-1", "quiz-1", [0, 1, 2, 3, 0]))

    assert [f.attempt_number for f in feed.facts] == [1]
    rows = asyncio.run(engine.leaderboard("quiz-1"))
    assert len(rows) == 1
    assert rows[0].best_score == 10
    assert rows[0].best_attempt_number == 2
    assert rows[0].total_attempts == 2
    assert rows[0].last_score == 10


def test_feed_covers_students_without_a_ledger(quizzes, ledgers, feed, profiles) -> None:
    quizzes.add(make_quiz())
    _seed(ledgers, "a", (6, 1_000), (8, 2_000))
    # stale feed copy of "a" must not override the ledger
    asyncio.run(feed.append(make_fact("a", 1, 6, timestamp=1_000)))
    asyncio.run(feed.append(make_fact("b", 1, 4, timestamp=1_500)))
    service = LeaderboardService(quizzes, ledgers, profiles, feed=feed)

    rows = asyncio.run(service.leaderboard("quiz-1"))

    assert [(r.student_id, r.best_score, r.total_attempts) for r in rows] == [
        ("a", 8, 2),
        ("b", 4, 1),
    ]


def test_identity_failure_falls_back_to_placeholder(quizzes, ledgers) -> None:
    quizzes.add(make_quiz())
    _seed(ledgers, "stu-123456789", (8, 1_000))
    service = LeaderboardService(quizzes, ledgers, _FailingProfiles())
    before = _metric("leaderboard_identity_fallbacks_total")

    rows = asyncio.run(service.leaderboard("quiz-1"))

    assert (rows[0].first_name, rows[0].last_name) == ("Student", "#456789")
    assert _metric("leaderboard_identity_fallbacks_total") == before + 1


def test_ranked_rows_annotates_positions(quizzes, ledgers, profiles) -> None:
    quizzes.add(make_quiz())
    _seed(ledgers, "a", (10, 1_000))
    _seed(ledgers, "b", (8, 1_000))
    service = LeaderboardService(quizzes, ledgers, profiles)

    ranked = asyncio.run(service.ranked_rows("quiz-1"))

    assert [(r.position, r.row.student_id, r.medal) for r in ranked] == [
        (1, "a", 1),
        (2, "b", 2),
    ]
