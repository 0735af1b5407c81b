"""Scoring helpers shared by submission and leaderboard code.

All functions are pure: exact-match scoring, no partial credit, no
negative marks.  Per-question points may be fractional, so scores are
floats and are never rounded.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence

from quizboard.models.quiz import Question, QuizSpec


def question_points(question: Question, spec: QuizSpec) -> float:
    return question.points if question.points is not None else spec.points_per_question


def total_possible_score(spec: QuizSpec) -> float:
    return math.fsum(question_points(q, spec) for q in spec.questions)


def score_answers(spec: QuizSpec, answers: Sequence[int | None]) -> float:
    """Sum the points of every question whose selected option matches the key.

    ``None`` marks an unanswered question and never matches.  Answers beyond
    the question count are ignored; missing trailing answers score 0.
    """
    return math.fsum(
        question_points(question, spec)
        for question, selected in zip(spec.questions, answers)
        if selected is not None and selected == question.correct_option
    )


def completion_rate(best_score: float, total_possible: float) -> float:
    """Best score as a percentage of the total possible score."""
    if total_possible <= 0:
        return 0.0
    return best_score / total_possible * 100


def average(scores: Iterable[float]) -> float:
    values = list(scores)
    if not values:
        return 0.0
    return math.fsum(values) / len(values)
