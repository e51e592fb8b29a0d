from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

_TRUTHY = ("1", "true", "yes", "on")
_FALSY = ("0", "false", "no", "off")

# Watched percentage at or above which a lesson counts as complete.
DEFAULT_COMPLETION_THRESHOLD = 90.0


def _getenv(name: str, default: str) -> str:
    # Centralize env access so casting and validation live in one place
    return os.environ.get(name, default).strip()


def _getbool(name: str, default: bool) -> bool:
    raw = _getenv(name, "true" if default else "false").lower()
    if raw in _TRUTHY:
        return True
    if raw in _FALSY:
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None
    completion_threshold: float = DEFAULT_COMPLETION_THRESHOLD
    # Prefer the lesson directory's duration over the player's estimate.
    pin_lesson_duration: bool = False
    progress_upsert_max_retries: int = 5
    telemetry_timeout_seconds: float = 0.5
    progress_cache_ttl: int = 300

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
    port_raw = _getenv("PORT", "8000")

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer (got {port_raw!r})") from None

    threshold_raw = _getenv("COMPLETION_THRESHOLD", str(DEFAULT_COMPLETION_THRESHOLD))
    try:
        completion_threshold = float(threshold_raw)
    except ValueError:
        raise ValueError(
            f"COMPLETION_THRESHOLD must be a number (got {threshold_raw!r})"
        ) from None
    if not 0 < completion_threshold <= 100:
        raise ValueError(
            f"COMPLETION_THRESHOLD must be in (0, 100] (got {threshold_raw!r})"
        )

    retries_raw = _getenv("PROGRESS_UPSERT_MAX_RETRIES", "5")
    try:
        max_retries = int(retries_raw)
    except ValueError:
        raise ValueError(
            f"PROGRESS_UPSERT_MAX_RETRIES must be an integer (got {retries_raw!r})"
        ) from None
    if max_retries < 1:
        raise ValueError(
            f"PROGRESS_UPSERT_MAX_RETRIES must be >= 1 (got {retries_raw!r})"
        )

    timeout_raw = _getenv("TELEMETRY_TIMEOUT_SECONDS", "0.5")
    try:
        telemetry_timeout = float(timeout_raw)
    except ValueError:
        raise ValueError(
            f"TELEMETRY_TIMEOUT_SECONDS must be a number (got {timeout_raw!r})"
        ) from None
    if telemetry_timeout <= 0:
        raise ValueError(
            f"TELEMETRY_TIMEOUT_SECONDS must be > 0 (got {timeout_raw!r})"
        )

    ttl_raw = _getenv("PROGRESS_CACHE_TTL", "300")
    try:
        cache_ttl = int(ttl_raw)
    except ValueError:
        raise ValueError(
            f"PROGRESS_CACHE_TTL must be an integer (got {ttl_raw!r})"
        ) from None
    if cache_ttl < 1:
        raise ValueError(f"PROGRESS_CACHE_TTL must be >= 1 (got {ttl_raw!r})")

    database_url = _getenv("DATABASE_URL", "") or None
    redis_url = _getenv("REDIS_URL", "") or None

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_getbool("LOG_JSON", False),
        port=port,
        database_url=database_url,
        redis_url=redis_url,
        completion_threshold=completion_threshold,
        pin_lesson_duration=_getbool("PIN_LESSON_DURATION", False),
        progress_upsert_max_retries=max_retries,
        telemetry_timeout_seconds=telemetry_timeout,
        progress_cache_ttl=cache_ttl,
    )


# Module-level singleton so imports are cheap
SETTINGS = load_settings()
