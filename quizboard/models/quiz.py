from __future__ import annotations

from dataclasses import dataclass

from quizboard.core.errors import QuizLockedError, QuizSpecError

MIN_ALLOWED_ATTEMPTS = 1
MAX_ALLOWED_ATTEMPTS = 3


@dataclass(frozen=True, slots=True)
class Question:
    """Answer key for one question.

    ``points`` overrides the quiz-wide points value for this question only.
    """

    correct_option: int
    points: float | None = None

    def __post_init__(self) -> None:
        if isinstance(self.correct_option, bool) or not isinstance(
            self.correct_option, int
        ):
            raise QuizSpecError("correct_option must be an integer option index")
        if self.correct_option < 0:
            raise QuizSpecError("correct_option must not be negative")
        if self.points is not None and self.points <= 0:
            raise QuizSpecError("per-question points must be positive")


@dataclass(frozen=True, slots=True)
class QuizSpec:
    quiz_id: str
    subject: str
    questions: tuple[Question, ...]
    points_per_question: float = 1
    allowed_attempts: int = 1
    per_question_timer_minutes: int = 0  # 0 = untimed
    published: bool = False
    mentor_name: str | None = None

    def __post_init__(self) -> None:
        if not self.questions:
            raise QuizSpecError("a quiz needs at least one question")
        if self.points_per_question <= 0:
            raise QuizSpecError("points_per_question must be positive")
        if not MIN_ALLOWED_ATTEMPTS <= self.allowed_attempts <= MAX_ALLOWED_ATTEMPTS:
            raise QuizSpecError(
                f"allowed_attempts must be between {MIN_ALLOWED_ATTEMPTS} and "
                f"{MAX_ALLOWED_ATTEMPTS} (got {self.allowed_attempts})"
            )
        if self.per_question_timer_minutes < 0:
            raise QuizSpecError("per_question_timer_minutes must not be negative")

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    @property
    def timed(self) -> bool:
        return self.per_question_timer_minutes > 0

    @staticmethod
    def new(
        *,
        quiz_id: str,
        subject: str,
        correct_options: list[int],
        points_per_question: float = 1,
        allowed_attempts: int = 1,
        per_question_timer_minutes: int = 0,
        published: bool = False,
        mentor_name: str | None = None,
    ) -> QuizSpec:
        return QuizSpec(
            quiz_id=quiz_id,
            subject=subject,
            questions=tuple(Question(correct_option=c) for c in correct_options),
            points_per_question=points_per_question,
            allowed_attempts=allowed_attempts,
            per_question_timer_minutes=per_question_timer_minutes,
            published=published,
            mentor_name=mentor_name,
        )


def assert_editable(spec: QuizSpec) -> None:
    """Gate for the authoring flow: published quizzes are frozen.

    Taking a quiz is never blocked by this; see ``ledger.can_attempt``.
    """
    if spec.published:
        raise QuizLockedError(spec.quiz_id)
