"""Mentor leaderboard assembly.

Reads every student's attempt ledger for a published quiz, folds the
attempts into one LeaderboardRow per student, resolves display names and
ranks the rows.  A student whose attempts cannot be folded is left off the
board; a student whose name cannot be resolved is shown under a
placeholder.  Neither aborts the board.

The ledgers are authoritative.  The attempt feed is an optional extra
source, read only for students that have no ledger in the store.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping

from quizboard.core.errors import (
    CorruptLeaderboardRow,
    IdentityResolutionFailure,
    QuizNotFound,
)
from quizboard.core.metrics import (
    IDENTITY_FALLBACKS,
    LEADERBOARD_BUILDS,
    LEADERBOARD_DURATION,
    LEADERBOARD_ROWS_EXCLUDED,
)
from quizboard.models.attempt import AttemptFact, AttemptLedger, LeaderboardRow
from quizboard.models.quiz import QuizSpec
from quizboard.repos.attempt_feed import AttemptFeed
from quizboard.repos.ledger_repo import LedgerRepo
from quizboard.repos.profile_repo import ProfileDirectory
from quizboard.repos.quiz_repo import QuizRepo
from quizboard.services.ranking import (
    DEFAULT_AVERAGE_TOLERANCE,
    RankedRow,
    rank,
    with_positions,
)
from quizboard.services.scoring import average, completion_rate, total_possible_score

logger = logging.getLogger(__name__)

Name = tuple[str, str]


def placeholder_name(student_id: str) -> Name:
    return ("Student", f"#{student_id[-6:]}")


def _text(profile: Mapping[str, object], field_name: str) -> str:
    value = profile.get(field_name)
    return value.strip() if isinstance(value, str) else ""


def _full_name_parts(profile: Mapping[str, object]) -> Name:
    """(first word, remaining words) of the first full-name source present."""
    for field_name in ("displayName", "name"):
        parts = _text(profile, field_name).split()
        if parts:
            return parts[0], " ".join(parts[1:])

    local = _text(profile, "email").split("@", 1)[0]
    parts = local.split(".")
    if parts[0]:
        last = parts[1].capitalize() if len(parts) > 1 else ""
        return parts[0].capitalize(), last
    return "", ""


def resolve_display_name(profile: Mapping[str, object]) -> Name:
    """Derive (first, last) from whatever name fields a profile carries.

    Each half is resolved on its own: the explicit ``firstName`` /
    ``lastName`` field, else the matching part of ``displayName``, ``name``
    or the email local part split on dots (``ann.lee@x.org`` -> Ann, Lee),
    else "Unknown" / "Student".
    """
    fallback_first, fallback_last = _full_name_parts(profile)
    first = _text(profile, "firstName") or fallback_first or "Unknown"
    last = _text(profile, "lastName") or fallback_last or "Student"
    return first, last


def _ordered_attempts(
    student_id: str, facts: list[AttemptFact], total_possible: float
) -> list[AttemptFact]:
    by_number: dict[int, AttemptFact] = {}
    for fact in facts:
        if fact.attempt_number < 1:
            raise CorruptLeaderboardRow(
                student_id, f"attempt number {fact.attempt_number} is not positive"
            )
        if not 0 <= fact.score <= total_possible:
            raise CorruptLeaderboardRow(
                student_id,
                f"score {fact.score} outside 0..{total_possible}",
            )
        seen = by_number.get(fact.attempt_number)
        if seen is not None and (seen.score, seen.timestamp) != (
            fact.score,
            fact.timestamp,
        ):
            raise CorruptLeaderboardRow(
                student_id, f"conflicting facts for attempt {fact.attempt_number}"
            )
        by_number[fact.attempt_number] = fact
    return [by_number[n] for n in sorted(by_number)]


def build_row(
    spec: QuizSpec, student_id: str, facts: list[AttemptFact], name: Name
) -> LeaderboardRow:
    total_possible = total_possible_score(spec)
    attempts = _ordered_attempts(student_id, facts, total_possible)
    if not attempts:
        raise CorruptLeaderboardRow(student_id, "no attempts")

    best = attempts[0]
    for fact in attempts[1:]:
        if fact.score > best.score:
            best = fact

    first_name, last_name = name
    return LeaderboardRow(
        student_id=student_id,
        first_name=first_name,
        last_name=last_name,
        best_score=best.score,
        best_attempt_number=best.attempt_number,
        best_score_timestamp=max(best.timestamp, 0),
        total_attempts=len(attempts),
        average_score=average(f.score for f in attempts),
        completion_rate=completion_rate(best.score, total_possible),
        last_score=attempts[-1].score,
    )


def ledger_facts(ledger: AttemptLedger, spec: QuizSpec) -> list[AttemptFact]:
    return [
        AttemptFact(
            quiz_id=ledger.quiz_id,
            student_id=ledger.student_id,
            score=record.score,
            attempt_number=record.attempt_number,
            timestamp=record.timestamp,
            subject=spec.subject,
            mentor_name=spec.mentor_name,
        )
        for record in ledger.attempts
    ]


def group_by_student(
    facts: Iterable[AttemptFact], quiz_id: str
) -> dict[str, list[AttemptFact]]:
    grouped: dict[str, list[AttemptFact]] = defaultdict(list)
    for fact in facts:
        if fact.quiz_id != quiz_id:
            logger.warning(
                "Ignoring attempt fact filed under another quiz",
                extra={"quiz_id": quiz_id, "student_id": fact.student_id},
            )
            continue
        grouped[fact.student_id].append(fact)
    return dict(grouped)


def build_rows(
    spec: QuizSpec,
    facts: Iterable[AttemptFact],
    names: Mapping[str, Name],
) -> list[LeaderboardRow]:
    """One row per student with at least one readable attempt; unordered."""
    rows: list[LeaderboardRow] = []
    for student_id, student_facts in group_by_student(facts, spec.quiz_id).items():
        name = names.get(student_id) or placeholder_name(student_id)
        try:
            rows.append(build_row(spec, student_id, student_facts, name))
        except CorruptLeaderboardRow as exc:
            LEADERBOARD_ROWS_EXCLUDED.inc()
            logger.warning(
                "Excluding leaderboard row: %s",
                exc.reason,
                extra={"quiz_id": spec.quiz_id, "student_id": student_id},
            )
    return rows


class LeaderboardService:
    def __init__(
        self,
        quizzes: QuizRepo,
        ledgers: LedgerRepo,
        profiles: ProfileDirectory,
        *,
        feed: AttemptFeed | None = None,
        tolerance: float = DEFAULT_AVERAGE_TOLERANCE,
    ) -> None:
        self._quizzes = quizzes
        self._ledgers = ledgers
        self._feed = feed
        self._profiles = profiles
        self._tolerance = tolerance

    async def leaderboard(self, quiz_id: str) -> list[LeaderboardRow]:
        with LEADERBOARD_DURATION.time():
            spec = await self._quizzes.get(quiz_id)
            if spec is None:
                raise QuizNotFound(quiz_id)
            if not spec.published:
                logger.info(
                    "Quiz is not published; no leaderboard",
                    extra={"quiz_id": quiz_id},
                )
                return []

            facts = await self.collect_facts(spec)
            student_ids = sorted({f.student_id for f in facts})
            names = await self.resolve_names(student_ids)
            rows = build_rows(spec, facts, names)
            ranked = rank(rows, tolerance=self._tolerance)

        LEADERBOARD_BUILDS.inc()
        logger.info(
            "Ranked %d students",
            len(ranked),
            extra={"quiz_id": quiz_id, "row_count": len(ranked)},
        )
        return ranked

    async def collect_facts(self, spec: QuizSpec) -> list[AttemptFact]:
        ledgers = await self._ledgers.list_for_quiz(spec.quiz_id)
        facts = [fact for ledger in ledgers for fact in ledger_facts(ledger, spec)]
        if self._feed is not None:
            covered = {ledger.student_id for ledger in ledgers if ledger.has_attempts}
            facts.extend(
                fact
                for fact in await self._feed.list_for_quiz(spec.quiz_id)
                if fact.student_id not in covered
            )
        return facts

    async def ranked_rows(self, quiz_id: str) -> list[RankedRow]:
        return with_positions(await self.leaderboard(quiz_id))

    async def resolve_names(self, student_ids: Iterable[str]) -> dict[str, Name]:
        ids = list(student_ids)
        resolved = await asyncio.gather(*(self._resolve_one(s) for s in ids))
        return dict(zip(ids, resolved))

    async def _lookup(self, student_id: str) -> Mapping[str, object]:
        try:
            profile = await self._profiles.lookup(student_id)
        except Exception as exc:
            raise IdentityResolutionFailure(student_id, str(exc)) from exc
        if profile is None:
            raise IdentityResolutionFailure(student_id, "no profile")
        return profile

    async def _resolve_one(self, student_id: str) -> Name:
        try:
            return resolve_display_name(await self._lookup(student_id))
        except IdentityResolutionFailure as exc:
            IDENTITY_FALLBACKS.inc()
            logger.warning("%s; using placeholder", exc, extra={"student_id": student_id})
            return placeholder_name(student_id)
