from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class AttemptRecord:
    """One scored submission.  Created once, never mutated."""

    attempt_number: int  # 1-based
    score: float
    timestamp: int  # epoch milliseconds


@dataclass(frozen=True, slots=True)
class AttemptLedger:
    """Per (student, quiz) record of attempts plus derived best/last score.

    An empty ledger (no attempts) leaves the derived fields as None, which
    keeps "never attempted" apart from "best score of 0".
    """

    student_id: str
    quiz_id: str
    attempts: tuple[AttemptRecord, ...] = ()
    best_score: float | None = None
    best_attempt_number: int | None = None
    best_score_timestamp: int | None = None
    last_score: float | None = None
    version: int = 0  # bumped on every committed write

    @property
    def attempts_used(self) -> int:
        return len(self.attempts)

    @property
    def has_attempts(self) -> bool:
        return bool(self.attempts)

    @staticmethod
    def empty(student_id: str, quiz_id: str) -> AttemptLedger:
        return AttemptLedger(student_id=student_id, quiz_id=quiz_id)


@dataclass(frozen=True, slots=True)
class AttemptFact:
    """Quiz-scoped feed entry written once per committed attempt."""

    quiz_id: str
    student_id: str
    score: float
    attempt_number: int
    timestamp: int  # epoch milliseconds, 0 = unknown
    subject: str | None = None
    mentor_name: str | None = None


@dataclass(frozen=True, slots=True)
class LeaderboardRow:
    student_id: str
    first_name: str
    last_name: str
    best_score: float
    best_attempt_number: int
    best_score_timestamp: int  # 0 = unknown
    total_attempts: int
    average_score: float
    completion_rate: float  # percent of total possible score
    last_score: float = 0

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass(frozen=True, slots=True)
class HistorySlot:
    slot: int  # 1-based
    record: AttemptRecord | None = None
    is_best: bool = False

    @property
    def attempted(self) -> bool:
        return self.record is not None


@dataclass(frozen=True, slots=True)
class SubmissionResult:
    """Everything a committed submission produced."""

    ledger: AttemptLedger
    record: AttemptRecord
    fact: AttemptFact
    forced: bool = False
    improved_best: bool = False
