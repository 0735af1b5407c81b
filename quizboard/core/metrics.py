"""Prometheus metrics inventory.

Every metric the engine records is defined here; the modules that own
the behavior import the metric and increment/observe it at the point of
action.  Exposition (an HTTP /metrics endpoint or a push gateway) belongs
to the host application.
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# ---------------------------------------------------------------------------
# Submission metrics
# ---------------------------------------------------------------------------

SUBMISSIONS = Counter(
    "quiz_submissions_total",
    "Quiz submissions by outcome",
    # committed | incomplete | limit_exceeded | conflict | persistence_failure
    ["outcome"],
)

FORCED_SUBMISSIONS = Counter(
    "quiz_forced_submissions_total",
    "Submissions triggered by timer expiry",
)

SUBMISSION_SCORE_RATIO = Histogram(
    "quiz_submission_score_ratio",
    "Committed attempt score as a fraction of the total possible score",
    buckets=[0.0, 0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0],
)

FEED_APPEND_FAILURES = Counter(
    "quiz_attempt_feed_failures_total",
    "Attempt facts that could not be appended after a committed ledger write",
)

# ---------------------------------------------------------------------------
# Leaderboard metrics
# ---------------------------------------------------------------------------

LEADERBOARD_BUILDS = Counter(
    "leaderboard_builds_total",
    "Leaderboard computations",
)

LEADERBOARD_ROWS_EXCLUDED = Counter(
    "leaderboard_rows_excluded_total",
    "Students left off a leaderboard because their data was unreadable",
)

IDENTITY_FALLBACKS = Counter(
    "leaderboard_identity_fallbacks_total",
    "Placeholder names substituted for unresolvable students",
)

LEADERBOARD_DURATION = Histogram(
    "leaderboard_build_duration_seconds",
    "Time to read, assemble and rank one leaderboard",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
)
