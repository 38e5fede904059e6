"""Runtime settings resolved from the environment and command-line overrides."""
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping

from .errors import ConfigurationError
from .schedules import MergePolicy

DEFAULT_API_URL = "https://api-v3.mbta.com"
DEFAULT_S3_PREFIX = "cancellation-feed"
DEFAULT_HTTP_TIMEOUT = 15.0
DEFAULT_LOG_LEVEL = "INFO"
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


@dataclass(frozen=True)
class Settings:
    api_url: str = DEFAULT_API_URL
    api_key: str | None = None
    s3_bucket: str | None = None
    s3_prefix: str = DEFAULT_S3_PREFIX
    output_dir: Path = Path(".")
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    merge_policy: MergePolicy = MergePolicy.REPLACE
    log_level: str = DEFAULT_LOG_LEVEL

    def with_overrides(self, **overrides: object) -> "Settings":
        """Return a copy with every non-``None`` override applied."""
        values = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **values) if values else self


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def parse_timeout(value: str | float | None) -> float:
    if value is None or value == "":
        return DEFAULT_HTTP_TIMEOUT
    try:
        timeout = float(value)
    except ValueError as exc:
        raise ConfigurationError(f"HTTP timeout must be a number, got {value!r}") from exc
    if timeout <= 0:
        raise ConfigurationError(f"HTTP timeout must be positive, got {timeout}")
    return timeout


def parse_log_level(value: str | None) -> str:
    if not value:
        return DEFAULT_LOG_LEVEL
    level = value.strip().upper()
    if level not in LOG_LEVELS:
        choices = ", ".join(LOG_LEVELS)
        raise ConfigurationError(f"Unknown log level {value!r} (expected one of: {choices})")
    return level


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    env = os.environ if environ is None else environ
    return Settings(
        api_url=_clean(env.get("MBTA_API_URL")) or DEFAULT_API_URL,
        api_key=_clean(env.get("MBTA_API_KEY")),
        s3_bucket=_clean(env.get("S3_BUCKET")),
        s3_prefix=(_clean(env.get("S3_PREFIX")) or DEFAULT_S3_PREFIX).strip("/"),
        output_dir=Path(_clean(env.get("OUTPUT_DIR")) or "."),
        http_timeout=parse_timeout(_clean(env.get("HTTP_TIMEOUT"))),
        merge_policy=MergePolicy.parse(env.get("SCHEDULE_MERGE_POLICY")),
        log_level=parse_log_level(_clean(env.get("LOG_LEVEL"))),
    )
