"""Leaderboard ranking.

Rows are ordered by a chain of comparator levels; the first level that
tells two rows apart decides, later levels only break ties:

  1. best_attempt_number   ascending   (mastery in fewer tries)
  2. best_score            descending
  3. best_score_timestamp  ascending   (only when both are known, > 0)
  4. total_attempts        ascending
  5. average_score         descending  (differences within tolerance tie)
  6. display name          ascending, case-insensitive
  7. student_id            ascending

Level 7 separates any two rows of different students, so the order is
total.  Level 3 is skipped for a pair with an unknown timestamp, which can
make the chain non-transitive across three rows; ``rank`` therefore sorts
a canonical (student-id ordered) copy of its input so the result never
depends on the order the store returned rows in.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from functools import cmp_to_key

from quizboard.models.attempt import LeaderboardRow

Comparator = Callable[[LeaderboardRow, LeaderboardRow], int]

DEFAULT_AVERAGE_TOLERANCE = 0.01
PODIUM_SIZE = 3


def _cmp(a: object, b: object) -> int:
    return (a > b) - (a < b)  # type: ignore[operator]


def by_best_attempt_number(a: LeaderboardRow, b: LeaderboardRow) -> int:
    return _cmp(a.best_attempt_number, b.best_attempt_number)


def by_best_score(a: LeaderboardRow, b: LeaderboardRow) -> int:
    return _cmp(b.best_score, a.best_score)


def by_best_score_timestamp(a: LeaderboardRow, b: LeaderboardRow) -> int:
    # An unknown timestamp is never "earliest": the level just abstains.
    if a.best_score_timestamp <= 0 or b.best_score_timestamp <= 0:
        return 0
    return _cmp(a.best_score_timestamp, b.best_score_timestamp)


def by_total_attempts(a: LeaderboardRow, b: LeaderboardRow) -> int:
    return _cmp(a.total_attempts, b.total_attempts)


def by_average_score(tolerance: float = DEFAULT_AVERAGE_TOLERANCE) -> Comparator:
    def compare(a: LeaderboardRow, b: LeaderboardRow) -> int:
        if abs(a.average_score - b.average_score) <= tolerance:
            return 0
        return _cmp(b.average_score, a.average_score)

    return compare


def by_display_name(a: LeaderboardRow, b: LeaderboardRow) -> int:
    return _cmp(a.display_name.casefold(), b.display_name.casefold())


def by_student_id(a: LeaderboardRow, b: LeaderboardRow) -> int:
    return _cmp(a.student_id, b.student_id)


def chain(*levels: Comparator) -> Comparator:
    """Compose comparators; the first non-zero result wins."""

    def compare(a: LeaderboardRow, b: LeaderboardRow) -> int:
        for level in levels:
            result = level(a, b)
            if result:
                return result
        return 0

    return compare


def leaderboard_comparator(
    tolerance: float = DEFAULT_AVERAGE_TOLERANCE,
) -> Comparator:
    return chain(
        by_best_attempt_number,
        by_best_score,
        by_best_score_timestamp,
        by_total_attempts,
        by_average_score(tolerance),
        by_display_name,
        by_student_id,
    )


def _canonical_key(row: LeaderboardRow) -> tuple:
    return (
        row.student_id,
        row.best_attempt_number,
        -row.best_score,
        row.best_score_timestamp,
        row.total_attempts,
        -row.average_score,
        row.display_name.casefold(),
    )


def rank(
    rows: Iterable[LeaderboardRow],
    *,
    tolerance: float = DEFAULT_AVERAGE_TOLERANCE,
) -> list[LeaderboardRow]:
    """Return the rows in leaderboard order.  Pure; the input is not modified."""
    canonical = sorted(rows, key=_canonical_key)
    return sorted(canonical, key=cmp_to_key(leaderboard_comparator(tolerance)))


@dataclass(frozen=True, slots=True)
class RankedRow:
    """A ranked row with its display annotations.

    tied:    same best attempt number and best score as the row above;
             the order between them came from a tie-break level.
    medal:   1, 2 or 3 for the podium, else None.
    """

    position: int
    row: LeaderboardRow
    tied: bool = False
    medal: int | None = None


def with_positions(ranked: list[LeaderboardRow]) -> list[RankedRow]:
    """Annotate an already ranked list with positions, ties and podium medals."""
    annotated: list[RankedRow] = []
    previous: LeaderboardRow | None = None
    for index, row in enumerate(ranked):
        tied = (
            previous is not None
            and previous.best_attempt_number == row.best_attempt_number
            and previous.best_score == row.best_score
        )
        annotated.append(
            RankedRow(
                position=index + 1,
                row=row,
                tied=tied,
                medal=index + 1 if index < PODIUM_SIZE else None,
            )
        )
        previous = row
    return annotated
