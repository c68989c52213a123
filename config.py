# config.py

"""Application configuration utilities.

Values are primarily loaded from ``config.json`` and may be overridden by
environment variables. The :func:`get_settings` helper merges the two sources
and caches the result.
"""

from __future__ import annotations

import json
import os
from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class FanoutPolicy(str, Enum):
    """Decide what happens when one owner partition read fails.

    ``BEST_EFFORT`` lets the remaining partition reads finish and returns the
    merged result flagged as partial. ``FAIL_FAST`` cancels the in-flight
    siblings and raises :class:`~orderhub.app.errors.PartialAggregationFailure`.
    """

    BEST_EFFORT = "best_effort"
    FAIL_FAST = "fail_fast"


class ScanStrategy(str, Enum):
    """Select how whole-collection reads reach every owner partition.

    ``AUTO`` uses the cross-partition index when the store offers one and
    falls back to nested enumeration when it is missing or errors.
    """

    AUTO = "auto"
    INDEXED = "indexed"
    NESTED = "nested"


class Settings(BaseSettings):
    """Application settings merged from JSON and environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    store_url: str = "sqlite+aiosqlite:///./orderhub.db"
    store_auto_create: bool = True
    scatter_enabled: bool = True
    scan_strategy: ScanStrategy = ScanStrategy.AUTO
    fanout_concurrency: int = 8
    fanout_policy: FanoutPolicy = FanoutPolicy.BEST_EFFORT
    store_timeout_secs: float = 10.0
    include_legacy_orders: bool = True
    log_level: str = "INFO"
    db_slow_query_ms: int = 200


# Cached singleton to avoid repeated file reads
@lru_cache
def get_settings() -> Settings:
    """Return merged settings with environment variable precedence.

    The configuration is read from ``config.json`` located alongside this file
    and fed into :class:`Settings`. Environment variables override any values
    from the JSON file. The result is cached to prevent repeated disk reads.
    """

    config_path = Path(__file__).with_name("config.json")
    data = json.loads(config_path.read_text()) if config_path.exists() else {}
    env_override = {
        k.lower(): v
        for k, v in os.environ.items()
        if k.lower() in Settings.model_fields
    }
    merged = {**data, **env_override}
    # Environment variables override values from the JSON file.
    return Settings(**merged)
