"""Ingestion boundary for stored documents.

Quiz, ledger and attempt documents arrive from a schemaless document store
where the same field may be a bool, a string or a number, and timestamps
may be epoch seconds, epoch milliseconds, ``{seconds, nanoseconds}`` maps
or ISO strings.  These pydantic models coerce all of that into the typed
dataclasses in ``quiz.py`` and ``attempt.py``; nothing past this module
re-implements the coercion.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from quizboard.models.attempt import AttemptFact, AttemptRecord
from quizboard.models.quiz import Question, QuizSpec

_TRUE_STRINGS = frozenset({"true", "1", "yes", "y", "on", "published"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "n", "off", "", "draft"})

# Epoch values below this are seconds, not milliseconds (year 2286 in seconds).
_SECONDS_CUTOFF = 10_000_000_000


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def coerce_flag(value: Any) -> bool:
    """Normalize a loosely typed boolean field."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValueError(f"cannot interpret {value!r} as a boolean")


def normalize_timestamp(value: Any) -> int:
    """Return epoch milliseconds, or 0 when the value is missing or unreadable."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return int(value.timestamp() * 1000)
    if isinstance(value, dict):
        seconds = _as_number(value.get("seconds", value.get("_seconds")))
        if seconds is None:
            return 0
        nanos = _as_number(value.get("nanoseconds", value.get("_nanoseconds"))) or 0
        return int(seconds) * 1000 + int(nanos) // 1_000_000
    if isinstance(value, str) and _as_number(value) is None:
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            return 0
        return normalize_timestamp(parsed)
    number = _as_number(value)
    if number is None or number <= 0:
        return 0
    if number < _SECONDS_CUTOFF:
        return int(number * 1000)
    return int(number)


class QuestionDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    correct_option: int = Field(default=0, alias="correctOption")
    score_per_question: float | None = Field(default=None, alias="scorePerQuestion")

    @field_validator("correct_option", mode="before")
    @classmethod
    def _correct_option(cls, value: Any) -> int:
        number = _as_number(value)
        if number is None or number < 0 or number != int(number):
            return 0
        return int(number)

    @field_validator("score_per_question", mode="before")
    @classmethod
    def _score_per_question(cls, value: Any) -> float | None:
        number = _as_number(value)
        if number is None or number <= 0:
            return None
        return number

    def to_question(self) -> Question:
        return Question(correct_option=self.correct_option, points=self.score_per_question)


class QuizDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    subject: str = "Quiz"
    points_per_question: float = Field(default=1, alias="score")
    allowed_attempts: int = Field(default=1, alias="attempts")
    per_question_timer_minutes: int = Field(default=0, alias="perQuestionTimer")
    published: bool = False
    mentor_name: str | None = Field(default=None, alias="mentorName")
    questions: list[QuestionDocument] = Field(default_factory=list)

    @field_validator("subject", mode="before")
    @classmethod
    def _subject(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            return "Quiz"
        return value.strip()

    @field_validator("points_per_question", mode="before")
    @classmethod
    def _points(cls, value: Any) -> float:
        number = _as_number(value)
        return number if number is not None and number > 0 else 1

    @field_validator("allowed_attempts", mode="before")
    @classmethod
    def _attempts(cls, value: Any) -> int:
        number = _as_number(value)
        return int(number) if number else 1

    @field_validator("per_question_timer_minutes", mode="before")
    @classmethod
    def _timer(cls, value: Any) -> int:
        number = _as_number(value)
        return int(number) if number is not None and number > 0 else 0

    @field_validator("published", mode="before")
    @classmethod
    def _published(cls, value: Any) -> bool:
        return coerce_flag(value)

    def to_spec(self, quiz_id: str) -> QuizSpec:
        return QuizSpec(
            quiz_id=quiz_id,
            subject=self.subject,
            questions=tuple(q.to_question() for q in self.questions),
            points_per_question=self.points_per_question,
            allowed_attempts=self.allowed_attempts,
            per_question_timer_minutes=self.per_question_timer_minutes,
            published=self.published,
            mentor_name=self.mentor_name,
        )


class AttemptEntryDocument(BaseModel):
    """One element of a ledger document's ``attempts`` array."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    score: float = 0
    timestamp: int = 0
    attempt_number: int | None = Field(default=None, alias="attemptNumber")

    @field_validator("score", mode="before")
    @classmethod
    def _score(cls, value: Any) -> float:
        number = _as_number(value)
        return number if number is not None else 0.0

    @field_validator("timestamp", mode="before")
    @classmethod
    def _timestamp(cls, value: Any) -> int:
        return normalize_timestamp(value)

    @field_validator("attempt_number", mode="before")
    @classmethod
    def _attempt_number(cls, value: Any) -> int | None:
        number = _as_number(value)
        return int(number) if number else None


class LedgerDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    attempts: list[AttemptEntryDocument] = Field(default_factory=list)
    version: int = 0

    def records(self) -> list[AttemptRecord]:
        """Attempt records in stored order; entries without a number get their position."""
        return [
            AttemptRecord(
                attempt_number=entry.attempt_number or index,
                score=entry.score,
                timestamp=entry.timestamp,
            )
            for index, entry in enumerate(self.attempts, start=1)
        ]


class AttemptFactDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    student_id: str = Field(alias="studentId")
    score: float = 0
    attempt_number: int = Field(default=1, alias="attemptNumber")
    timestamp: int = 0
    subject: str | None = None
    mentor_name: str | None = Field(default=None, alias="mentorName")

    @field_validator("score", mode="before")
    @classmethod
    def _score(cls, value: Any) -> float:
        number = _as_number(value)
        return number if number is not None else 0.0

    @field_validator("attempt_number", mode="before")
    @classmethod
    def _attempt_number(cls, value: Any) -> int:
        number = _as_number(value)
        return int(number) if number else 1

    @field_validator("timestamp", mode="before")
    @classmethod
    def _timestamp(cls, value: Any) -> int:
        return normalize_timestamp(value)

    def to_fact(self, quiz_id: str) -> AttemptFact:
        return AttemptFact(
            quiz_id=quiz_id,
            student_id=self.student_id,
            score=self.score,
            attempt_number=self.attempt_number,
            timestamp=self.timestamp,
            subject=self.subject,
            mentor_name=self.mentor_name,
        )
