from __future__ import annotations

from quizboard.models.attempt import AttemptLedger, AttemptRecord
from quizboard.services.ledger import (
    append_attempt,
    attempts_remaining,
    can_attempt,
    history,
    ledger_from_records,
)
from tests.conftest import make_quiz


def _ledger_with(*scores: int) -> AttemptLedger:
    ledger = AttemptLedger.empty("stu-1", "quiz-1")
    for index, score in enumerate(scores):
        ledger, _ = append_attempt(ledger, score, 1_000 + index)
    return ledger


def test_empty_ledger_has_no_best() -> None:
    ledger = AttemptLedger.empty("stu-1", "quiz-1")
    assert ledger.attempts_used == 0
    assert ledger.has_attempts is False
    assert ledger.best_score is None
    assert ledger.last_score is None


def test_first_attempt_sets_best_even_at_zero() -> None:
    ledger, record = append_attempt(AttemptLedger.empty("stu-1", "quiz-1"), 0, 500)
    assert record.attempt_number == 1
    assert ledger.best_score == 0
    assert ledger.best_attempt_number == 1
    assert ledger.best_score_timestamp == 500


def test_attempt_numbers_are_consecutive() -> None:
    ledger = _ledger_with(3, 1, 2)
    assert [r.attempt_number for r in ledger.attempts] == [1, 2, 3]
    assert ledger.last_score == 2


def test_best_moves_only_on_strict_improvement() -> None:
    ledger = _ledger_with(6, 8, 8)
    assert ledger.best_score == 8
    assert ledger.best_attempt_number == 2
    assert ledger.best_score_timestamp == 1_001


def test_lower_score_keeps_previous_best() -> None:
    ledger = _ledger_with(8, 4)
    assert ledger.best_score == 8
    assert ledger.best_attempt_number == 1
    assert ledger.last_score == 4


def test_append_leaves_original_untouched() -> None:
    original = _ledger_with(5)
    updated, _ = append_attempt(original, 7, 2_000)
    assert original.attempts_used == 1
    assert updated.attempts_used == 2


def test_ledger_from_records_replays_in_number_order() -> None:
    records = [
        AttemptRecord(attempt_number=2, score=9, timestamp=20),
        AttemptRecord(attempt_number=1, score=4, timestamp=10),
    ]
    ledger = ledger_from_records("stu-1", "quiz-1", records, version=3)
    assert [r.score for r in ledger.attempts] == [4, 9]
    assert ledger.best_attempt_number == 2
    assert ledger.last_score == 9
    assert ledger.version == 3


def test_ledger_from_records_renumbers_gaps() -> None:
    records = [
        AttemptRecord(attempt_number=5, score=1, timestamp=10),
        AttemptRecord(attempt_number=2, score=2, timestamp=5),
    ]
    ledger = ledger_from_records("stu-1", "quiz-1", records)
    assert [r.attempt_number for r in ledger.attempts] == [1, 2]
    assert [r.score for r in ledger.attempts] == [2, 1]


def test_attempts_remaining_and_can_attempt() -> None:
    spec = make_quiz(allowed_attempts=2)
    assert attempts_remaining(_ledger_with(), spec) == 2
    assert can_attempt(_ledger_with(4), spec) is True
    assert attempts_remaining(_ledger_with(4, 6), spec) == 0
    assert can_attempt(_ledger_with(4, 6), spec) is False


def test_published_quiz_can_still_be_attempted() -> None:
    spec = make_quiz(published=True)
    assert can_attempt(_ledger_with(), spec) is True


def test_history_has_one_slot_per_allowed_attempt() -> None:
    spec = make_quiz(allowed_attempts=3)
    view = history(_ledger_with(4, 9), spec)
    slots = list(view)
    assert len(view) == 3
    assert [s.slot for s in slots] == [1, 2, 3]
    assert [s.attempted for s in slots] == [True, True, False]
    assert [s.is_best for s in slots] == [False, True, False]
    assert slots[1].record is not None and slots[1].record.score == 9


def test_history_iterates_the_same_slots_twice() -> None:
    view = history(_ledger_with(7), make_quiz(allowed_attempts=2))
    assert list(view) == list(view)
