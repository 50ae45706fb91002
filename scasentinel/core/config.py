"""Runtime settings — read from ``SCASENTINEL_*`` environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_DATABASE_URL = "sqlite:///scasentinel.db"
DEFAULT_MAX_QUERY_RESULTS = 25
DEFAULT_MIN_SCORE = 0.08


def _env_float(key: str, default: float) -> float:
    return float(os.environ.get(key, default))


def _env_int(key: str, default: int) -> int:
    return int(os.environ.get(key, default))


def _env_bool(key: str, default: bool) -> bool:
    raw = os.environ.get(key)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Scan settings.  ``Settings.from_env()`` is what the CLI uses."""

    database_url: str = DEFAULT_DATABASE_URL
    max_workers: int = 4
    max_query_results: int = DEFAULT_MAX_QUERY_RESULTS
    min_score: float = DEFAULT_MIN_SCORE
    merging_enabled: bool = True
    bundling_enabled: bool = True
    version_filter_enabled: bool = True
    false_positive_enabled: bool = True

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            database_url=os.environ.get("SCASENTINEL_DATABASE_URL", DEFAULT_DATABASE_URL),
            max_workers=max(1, _env_int("SCASENTINEL_MAX_WORKERS", os.cpu_count() or 4)),
            max_query_results=_env_int(
                "SCASENTINEL_MAX_QUERY_RESULTS", DEFAULT_MAX_QUERY_RESULTS
            ),
            min_score=_env_float("SCASENTINEL_MIN_SCORE", DEFAULT_MIN_SCORE),
            merging_enabled=_env_bool("SCASENTINEL_ANALYZER_MERGING_ENABLED", True),
            bundling_enabled=_env_bool("SCASENTINEL_ANALYZER_BUNDLING_ENABLED", True),
            version_filter_enabled=_env_bool(
                "SCASENTINEL_ANALYZER_VERSION_FILTER_ENABLED", True
            ),
            false_positive_enabled=_env_bool(
                "SCASENTINEL_ANALYZER_FALSE_POSITIVE_ENABLED", True
            ),
        )
