"""Error taxonomy for the attempt and leaderboard engine.

Submission errors all derive from ``SubmissionRejected`` and are raised
before any write is attempted (or, for ``PersistenceFailure``, after a
write that did not land).  The caller always sees the ledger exactly as
it was before the rejected submission.

Leaderboard errors (``IdentityResolutionFailure``, ``CorruptLeaderboardRow``)
are raised internally and handled by the leaderboard service: the first
substitutes a placeholder name, the second drops the affected row.
"""

from __future__ import annotations


class QuizboardError(Exception):
    """Base class for every error this package raises on purpose."""


class QuizSpecError(QuizboardError, ValueError):
    """A quiz definition violates its field constraints."""


class QuizLockedError(QuizboardError):
    """A published quiz cannot be edited."""

    def __init__(self, quiz_id: str) -> None:
        super().__init__(f"quiz {quiz_id!r} is published and cannot be edited")
        self.quiz_id = quiz_id


class QuizNotFound(QuizboardError):
    def __init__(self, quiz_id: str) -> None:
        super().__init__(f"quiz {quiz_id!r} not found")
        self.quiz_id = quiz_id


class SubmissionRejected(QuizboardError):
    """Base for errors that reject a submission without mutating the ledger."""

    retryable = False
    outcome = "rejected"

    def __init__(self, message: str, *, student_id: str, quiz_id: str) -> None:
        super().__init__(message)
        self.student_id = student_id
        self.quiz_id = quiz_id


class IncompleteSubmission(SubmissionRejected):
    """Not every question has a selected option."""

    outcome = "incomplete"


class AttemptLimitExceeded(SubmissionRejected):
    """The ledger already holds ``allowed_attempts`` attempts."""

    outcome = "limit_exceeded"


class ConcurrentSubmissionConflict(SubmissionRejected):
    """Another submission for the same ledger is in flight."""

    retryable = True
    outcome = "conflict"


class PersistenceFailure(SubmissionRejected):
    """The ledger write did not complete; nothing was recorded."""

    retryable = True
    outcome = "persistence_failure"


class IdentityResolutionFailure(QuizboardError):
    def __init__(self, student_id: str, reason: str = "") -> None:
        detail = f": {reason}" if reason else ""
        super().__init__(f"could not resolve name for student {student_id!r}{detail}")
        self.student_id = student_id


class CorruptLeaderboardRow(QuizboardError):
    """A student's attempt facts cannot be turned into a leaderboard row."""

    def __init__(self, student_id: str, reason: str) -> None:
        super().__init__(f"student {student_id!r}: {reason}")
        self.student_id = student_id
        self.reason = reason
