"""Attempt ledger operations and the read-only query surface.

The ledger is immutable; ``append_attempt`` returns a new ledger.  Best
score attribution goes to the *first* attempt reaching the maximum: only
a strict improvement moves ``best_attempt_number``.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import replace

from quizboard.models.attempt import AttemptLedger, AttemptRecord, HistorySlot
from quizboard.models.quiz import QuizSpec


def append_attempt(
    ledger: AttemptLedger, score: float, timestamp: int
) -> tuple[AttemptLedger, AttemptRecord]:
    record = AttemptRecord(
        attempt_number=ledger.attempts_used + 1,
        score=score,
        timestamp=timestamp,
    )

    best_score = ledger.best_score
    best_attempt_number = ledger.best_attempt_number
    best_score_timestamp = ledger.best_score_timestamp
    if best_score is None or score > best_score:
        best_score = score
        best_attempt_number = record.attempt_number
        best_score_timestamp = timestamp

    updated = replace(
        ledger,
        attempts=ledger.attempts + (record,),
        best_score=best_score,
        best_attempt_number=best_attempt_number,
        best_score_timestamp=best_score_timestamp,
        last_score=score,
    )
    return updated, record


def ledger_from_records(
    student_id: str,
    quiz_id: str,
    records: Iterable[AttemptRecord],
    *,
    version: int = 0,
) -> AttemptLedger:
    """Rebuild a ledger by replaying records in attempt-number order.

    Records are renumbered 1..n in that order so the rebuilt ledger always
    satisfies the numbering invariant.
    """
    ledger = AttemptLedger(student_id=student_id, quiz_id=quiz_id, version=version)
    for record in sorted(records, key=lambda r: r.attempt_number):
        ledger, _ = append_attempt(ledger, record.score, record.timestamp)
    return ledger


def attempts_remaining(ledger: AttemptLedger, spec: QuizSpec) -> int:
    return max(0, spec.allowed_attempts - ledger.attempts_used)


def can_attempt(ledger: AttemptLedger, spec: QuizSpec) -> bool:
    # Publishing locks editing, not taking; only the ceiling matters here.
    return attempts_remaining(ledger, spec) > 0


class AttemptHistory:
    """Fixed-size view of a ledger: one slot per allowed attempt.

    Iterating twice yields the same slots; slots past ``attempts_used``
    report not attempted.
    """

    def __init__(self, ledger: AttemptLedger, spec: QuizSpec) -> None:
        self._ledger = ledger
        self._size = spec.allowed_attempts

    def __len__(self) -> int:
        return self._size

    def __iter__(self) -> Iterator[HistorySlot]:
        attempts = self._ledger.attempts
        best = self._ledger.best_attempt_number
        for slot in range(1, self._size + 1):
            if slot <= len(attempts):
                record = attempts[slot - 1]
                yield HistorySlot(
                    slot=slot,
                    record=record,
                    is_best=record.attempt_number == best,
                )
            else:
                yield HistorySlot(slot=slot)


def history(ledger: AttemptLedger, spec: QuizSpec) -> AttemptHistory:
    return AttemptHistory(ledger, spec)
