"""Attempt submission.

  validate answers -> check ceiling -> score -> append to ledger
  -> compare-and-set write -> append attempt fact to the quiz feed

``evaluate_submission`` is the pure part: given a quiz, the current ledger
and an answer set it returns the would-be ledger, record and fact, or
raises.  ``SubmissionProcessor.submit`` wraps it in the in-flight guard
and the store round-trip.  Every rejection happens before the ledger
write, and a failed write leaves the stored ledger untouched.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Callable, Sequence
from dataclasses import replace

from quizboard.core.errors import (
    AttemptLimitExceeded,
    ConcurrentSubmissionConflict,
    IncompleteSubmission,
    PersistenceFailure,
    QuizNotFound,
    SubmissionRejected,
)
from quizboard.core.metrics import (
    FEED_APPEND_FAILURES,
    FORCED_SUBMISSIONS,
    SUBMISSION_SCORE_RATIO,
    SUBMISSIONS,
)
from quizboard.models.attempt import AttemptFact, AttemptLedger, SubmissionResult
from quizboard.models.quiz import QuizSpec
from quizboard.repos.attempt_feed import AttemptFeed
from quizboard.repos.ledger_repo import LedgerRepo, StaleLedgerError
from quizboard.repos.quiz_repo import QuizRepo
from quizboard.services.ledger import append_attempt, attempts_remaining
from quizboard.services.scoring import score_answers, total_possible_score
from quizboard.services.submission_guard import SubmissionGuard, guard_key

logger = logging.getLogger(__name__)

Answers = Sequence[int | None]


def now_ms() -> int:
    return int(datetime.datetime.now(datetime.UTC).timestamp() * 1000)


def _is_option_index(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def validate_answers(
    spec: QuizSpec,
    answers: Answers,
    *,
    student_id: str,
    quiz_id: str,
    forced: bool = False,
) -> list[int | None]:
    """Return the answers as a list of exactly ``total_questions`` entries.

    A regular submission needs every question answered.  A forced one
    (timer expiry) may leave questions unanswered, including trailing ones
    missing from the sequence; they are padded with None.
    """
    selected = list(answers)
    total = spec.total_questions

    if len(selected) > total or (len(selected) < total and not forced):
        raise IncompleteSubmission(
            f"expected {total} answers, got {len(selected)}",
            student_id=student_id,
            quiz_id=quiz_id,
        )
    selected.extend([None] * (total - len(selected)))

    for index, value in enumerate(selected):
        if value is None:
            if forced:
                continue
            raise IncompleteSubmission(
                f"question {index + 1} is unanswered",
                student_id=student_id,
                quiz_id=quiz_id,
            )
        if not _is_option_index(value):
            raise IncompleteSubmission(
                f"question {index + 1} has an invalid option {value!r}",
                student_id=student_id,
                quiz_id=quiz_id,
            )
    return selected


def evaluate_submission(
    spec: QuizSpec,
    ledger: AttemptLedger,
    answers: Answers,
    *,
    now: int,
    forced: bool = False,
) -> SubmissionResult:
    student_id, quiz_id = ledger.student_id, ledger.quiz_id
    selected = validate_answers(
        spec, answers, student_id=student_id, quiz_id=quiz_id, forced=forced
    )

    if attempts_remaining(ledger, spec) <= 0:
        raise AttemptLimitExceeded(
            f"all {spec.allowed_attempts} attempts used",
            student_id=student_id,
            quiz_id=quiz_id,
        )

    score = score_answers(spec, selected)
    # Timestamps never go backwards within one ledger, whatever the clock says.
    if ledger.attempts:
        now = max(now, ledger.attempts[-1].timestamp)

    updated, record = append_attempt(ledger, score, now)
    fact = AttemptFact(
        quiz_id=quiz_id,
        student_id=student_id,
        score=score,
        attempt_number=record.attempt_number,
        timestamp=record.timestamp,
        subject=spec.subject,
        mentor_name=spec.mentor_name,
    )
    return SubmissionResult(
        ledger=updated,
        record=record,
        fact=fact,
        forced=forced,
        improved_best=updated.best_attempt_number == record.attempt_number,
    )


class SubmissionProcessor:
    def __init__(
        self,
        quizzes: QuizRepo,
        ledgers: LedgerRepo,
        feed: AttemptFeed,
        guard: SubmissionGuard,
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._quizzes = quizzes
        self._ledgers = ledgers
        self._feed = feed
        self._guard = guard
        self._clock = clock

    async def submit(
        self,
        student_id: str,
        quiz_id: str,
        answers: Answers,
        *,
        forced: bool = False,
    ) -> SubmissionResult:
        key = guard_key(student_id, quiz_id)
        token = await self._guard.acquire(key)
        if token is None:
            SUBMISSIONS.labels(outcome=ConcurrentSubmissionConflict.outcome).inc()
            logger.warning(
                "Rejected submission: another one is in flight",
                extra={"student_id": student_id, "quiz_id": quiz_id},
            )
            raise ConcurrentSubmissionConflict(
                "a submission for this quiz is already in progress",
                student_id=student_id,
                quiz_id=quiz_id,
            )

        try:
            return await self._submit_locked(student_id, quiz_id, answers, forced)
        except SubmissionRejected as exc:
            SUBMISSIONS.labels(outcome=exc.outcome).inc()
            logger.warning(
                "Rejected submission: %s",
                exc,
                extra={
                    "student_id": student_id,
                    "quiz_id": quiz_id,
                    "outcome": exc.outcome,
                },
            )
            raise
        finally:
            await self._guard.release(key, token)

    async def _submit_locked(
        self, student_id: str, quiz_id: str, answers: Answers, forced: bool
    ) -> SubmissionResult:
        spec = await self._quizzes.get(quiz_id)
        if spec is None:
            raise QuizNotFound(quiz_id)

        current = await self._ledgers.get(student_id, quiz_id)
        if current is None:
            current = AttemptLedger.empty(student_id, quiz_id)

        result = evaluate_submission(
            spec, current, answers, now=self._clock(), forced=forced
        )

        try:
            stored = await self._ledgers.replace(
                result.ledger, expected_version=current.version
            )
        except StaleLedgerError as exc:
            raise ConcurrentSubmissionConflict(
                "the attempt ledger changed during submission",
                student_id=student_id,
                quiz_id=quiz_id,
            ) from exc
        except Exception as exc:
            logger.exception(
                "Ledger write failed",
                extra={"student_id": student_id, "quiz_id": quiz_id},
            )
            raise PersistenceFailure(
                "the attempt could not be saved; nothing was recorded",
                student_id=student_id,
                quiz_id=quiz_id,
            ) from exc
        result = replace(result, ledger=stored)

        try:
            await self._feed.append(result.fact)
        except Exception:
            # The ledger is committed and stays so; only the mentor feed misses it.
            FEED_APPEND_FAILURES.inc()
            logger.exception(
                "Attempt fact append failed after commit",
                extra={"student_id": student_id, "quiz_id": quiz_id},
            )

        SUBMISSIONS.labels(outcome="committed").inc()
        if forced:
            FORCED_SUBMISSIONS.inc()
        possible = total_possible_score(spec)
        if possible > 0:
            SUBMISSION_SCORE_RATIO.observe(result.record.score / possible)

        logger.info(
            "Committed attempt %d/%d score=%g%s",
            result.record.attempt_number,
            spec.allowed_attempts,
            result.record.score,
            " (new best)" if result.improved_best else "",
            extra={
                "student_id": student_id,
                "quiz_id": quiz_id,
                "attempt_number": result.record.attempt_number,
                "score": result.record.score,
                "outcome": "committed",
            },
        )
        return result
