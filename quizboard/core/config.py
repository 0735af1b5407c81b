from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off", "")


def _getenv(name: str, default: str) -> str:
    return os.environ.get(name, default).strip()


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    redis_url: str | None
    submission_lock_ttl: int
    average_score_tolerance: float

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    log_json_raw = _getenv("LOG_JSON", "false").lower()
    lock_ttl_raw = _getenv("SUBMISSION_LOCK_TTL", "30")
    tolerance_raw = _getenv("AVERAGE_SCORE_TOLERANCE", "0.01")

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    if log_json_raw in _TRUE_VALUES:
        log_json = True
    elif log_json_raw in _FALSE_VALUES:
        log_json = False
    else:
        raise ValueError(f"LOG_JSON must be a boolean (got {log_json_raw!r})")

    try:
        submission_lock_ttl = int(lock_ttl_raw)
    except ValueError:
        raise ValueError(
            f"SUBMISSION_LOCK_TTL must be an integer (got {lock_ttl_raw!r})"
        ) from None
    if submission_lock_ttl <= 0:
        raise ValueError(
            f"SUBMISSION_LOCK_TTL must be positive (got {submission_lock_ttl})"
        )

    try:
        average_score_tolerance = float(tolerance_raw)
    except ValueError:
        raise ValueError(
            f"AVERAGE_SCORE_TOLERANCE must be a number (got {tolerance_raw!r})"
        ) from None
    if average_score_tolerance < 0:
        raise ValueError(
            "AVERAGE_SCORE_TOLERANCE must not be negative "
            f"(got {average_score_tolerance})"
        )

    redis_url = _getenv("REDIS_URL", "") or None

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=log_json,
        redis_url=redis_url,
        submission_lock_ttl=submission_lock_ttl,
        average_score_tolerance=average_score_tolerance,
    )


SETTINGS = load_settings()
