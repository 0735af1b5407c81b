"""Attempt deadline and forced completion.

A timed quiz gives the whole attempt ``per_question_timer_minutes * 60``
seconds.  When that runs out, whatever is selected on the answer sheet is
submitted through the regular ``SubmissionProcessor.submit`` with
``forced=True``: unanswered questions score zero, and the attempt ceiling
and in-flight guard apply exactly as for a manual submission.
"""

from __future__ import annotations

from dataclasses import dataclass

from quizboard.models.attempt import SubmissionResult
from quizboard.models.quiz import QuizSpec
from quizboard.services.submission import SubmissionProcessor


@dataclass(frozen=True, slots=True)
class AttemptTimer:
    spec: QuizSpec
    started_at: int  # epoch milliseconds

    @property
    def budget_seconds(self) -> int:
        return self.spec.per_question_timer_minutes * 60

    @property
    def deadline(self) -> int | None:
        if not self.spec.timed:
            return None
        return self.started_at + self.budget_seconds * 1000

    def remaining_seconds(self, now: int) -> int | None:
        """Whole seconds left, floored at 0; None for untimed quizzes."""
        deadline = self.deadline
        if deadline is None:
            return None
        return max(0, (deadline - now) // 1000)

    def expired(self, now: int) -> bool:
        deadline = self.deadline
        return deadline is not None and now >= deadline


class AnswerSheet:
    """In-progress selections for one attempt, one slot per question."""

    def __init__(self, spec: QuizSpec) -> None:
        self._selected: list[int | None] = [None] * spec.total_questions

    def select(self, question_index: int, option: int) -> None:
        if not 0 <= question_index < len(self._selected):
            raise IndexError(f"Question index {question_index} out of range")
        if option < 0:
            raise ValueError("option index must not be negative")
        self._selected[question_index] = option

    def clear(self, question_index: int) -> None:
        if not 0 <= question_index < len(self._selected):
            raise IndexError(f"Question index {question_index} out of range")
        self._selected[question_index] = None

    @property
    def answers(self) -> list[int | None]:
        return list(self._selected)

    @property
    def answered_count(self) -> int:
        return sum(1 for s in self._selected if s is not None)

    @property
    def is_complete(self) -> bool:
        return all(s is not None for s in self._selected)


async def submit_sheet(
    processor: SubmissionProcessor,
    student_id: str,
    quiz_id: str,
    sheet: AnswerSheet,
) -> SubmissionResult:
    """Manual submit: every question must be answered."""
    return await processor.submit(student_id, quiz_id, sheet.answers)


async def force_submit(
    processor: SubmissionProcessor,
    student_id: str,
    quiz_id: str,
    sheet: AnswerSheet,
) -> SubmissionResult:
    """Timeout submit: unanswered questions count as wrong."""
    return await processor.submit(student_id, quiz_id, sheet.answers, forced=True)
