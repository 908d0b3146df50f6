"""
Environment + JSON config loader for the rental pipeline.
"""

from __future__ import annotations

import json
import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Any

from db.config import load_env_files

from rentindex.scraping.config.models import (
    FetchSettings,
    PacingSettings,
    PipelineSettings,
    SourceConfig,
)

DEFAULT_USER_AGENT = "RentIndexBot/1.0 (+https://example.com/bot; rental price research)"


def _get_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    stripped = raw.strip()
    return stripped if stripped else default


def _project_root() -> Path:
    return Path(__file__).resolve().parents[3]


def _resolve_config_path(raw_path: str) -> Path:
    candidate = Path(raw_path)
    if candidate.is_absolute():
        return candidate
    return (_project_root() / candidate).resolve()


def _probability(value: float) -> float:
    return min(1.0, max(0.0, value))


def _hour(value: int) -> int:
    return value % 24


@lru_cache(maxsize=1)
def get_fetch_settings() -> FetchSettings:
    """
    Return cached fetch client settings from environment variables.
    """

    load_env_files()
    proxy_url = _get_str_env("RENTALS_PROXY_URL", "") or _get_str_env("SCRAPE_PROXY", "")
    return FetchSettings(
        user_agent=_get_str_env("RENTALS_USER_AGENT", DEFAULT_USER_AGENT),
        concurrency_limit=max(1, _get_int_env("RENTALS_CONCURRENCY_LIMIT", 2)),
        max_retries=max(0, _get_int_env("RENTALS_MAX_RETRIES", 3)),
        backoff_base_seconds=max(0.0, _get_float_env("RENTALS_BACKOFF_BASE_SECONDS", 1.0)),
        backoff_jitter_seconds=max(0.0, _get_float_env("RENTALS_BACKOFF_JITTER_SECONDS", 1.0)),
        connect_timeout_seconds=max(1.0, _get_float_env("RENTALS_CONNECT_TIMEOUT_SECONDS", 5.0)),
        timeout_seconds=max(1.0, _get_float_env("RENTALS_TIMEOUT_SECONDS", 15.0)),
        proxy_url=proxy_url or None,
    )


@lru_cache(maxsize=1)
def get_pacing_settings() -> PacingSettings:
    """
    Return cached stealth pacing settings from environment variables.
    """

    load_env_files()
    breather_min = max(1, _get_int_env("RENTALS_BREATHER_EVERY_MIN", 15))
    return PacingSettings(
        request_delay_base_seconds=max(0.0, _get_float_env("RENTALS_REQUEST_DELAY_BASE_SECONDS", 1.2)),
        request_delay_jitter_seconds=max(0.0, _get_float_env("RENTALS_REQUEST_DELAY_JITTER_SECONDS", 0.8)),
        reading_pause_probability=_probability(_get_float_env("RENTALS_READING_PAUSE_PROBABILITY", 0.12)),
        reading_pause_min_seconds=max(0.0, _get_float_env("RENTALS_READING_PAUSE_MIN_SECONDS", 2.0)),
        reading_pause_max_seconds=max(0.0, _get_float_env("RENTALS_READING_PAUSE_MAX_SECONDS", 6.0)),
        scroll_delay_min_seconds=max(0.0, _get_float_env("RENTALS_SCROLL_DELAY_MIN_SECONDS", 0.5)),
        scroll_delay_max_seconds=max(0.0, _get_float_env("RENTALS_SCROLL_DELAY_MAX_SECONDS", 1.5)),
        night_start_hour_utc=_hour(_get_int_env("RENTALS_NIGHT_START_HOUR_UTC", 17)),
        night_end_hour_utc=_hour(_get_int_env("RENTALS_NIGHT_END_HOUR_UTC", 23)),
        night_idle_min_seconds=max(0.0, _get_float_env("RENTALS_NIGHT_IDLE_MIN_SECONDS", 3.0)),
        night_idle_max_seconds=max(0.0, _get_float_env("RENTALS_NIGHT_IDLE_MAX_SECONDS", 8.0)),
        breather_every_min=breather_min,
        breather_every_max=max(breather_min, _get_int_env("RENTALS_BREATHER_EVERY_MAX", 30)),
        breather_pause_min_seconds=max(0.0, _get_float_env("RENTALS_BREATHER_PAUSE_MIN_SECONDS", 20.0)),
        breather_pause_max_seconds=max(0.0, _get_float_env("RENTALS_BREATHER_PAUSE_MAX_SECONDS", 40.0)),
        skip_probability=_probability(_get_float_env("RENTALS_SKIP_PROBABILITY", 0.03)),
    )


@lru_cache(maxsize=1)
def get_pipeline_settings() -> PipelineSettings:
    """
    Return cached pipeline run settings from environment variables.
    """

    load_env_files()
    config_path = _get_str_env(
        "RENTALS_SOURCES_CONFIG_PATH",
        "rentindex/scraping/config/sources.json",
    )
    return PipelineSettings(
        sources_config_path=str(_resolve_config_path(config_path)),
        max_pages=max(1, _get_int_env("RENTALS_MAX_PAGES", 3)),
        max_urls=max(1, _get_int_env("RENTALS_MAX_URLS", 200)),
        max_process=max(1, _get_int_env("RENTALS_MAX_PROCESS", 25)),
        process_batch_size=max(1, _get_int_env("RENTALS_PROCESS_BATCH_SIZE", 10)),
        worker_count=max(1, _get_int_env("RENTALS_WORKER_COUNT", 2)),
        max_attempts=max(1, _get_int_env("RENTALS_MAX_ATTEMPTS", 3)),
        rescrape_after_days=max(0, _get_int_env("RENTALS_RESCRAPE_AFTER_DAYS", 3)),
        stale_after_days=max(1, _get_int_env("RENTALS_STALE_AFTER_DAYS", 7)),
        claim_ttl_minutes=max(1, _get_int_env("RENTALS_CLAIM_TTL_MINUTES", 60)),
        scheduler_enabled=_get_bool_env("RENTALS_SCHEDULER_ENABLED", True),
        daily_run_hour_utc=_hour(_get_int_env("RENTALS_DAILY_RUN_HOUR_UTC", 6)),
    )


def load_source_configs(*, config_path: str) -> list[SourceConfig]:
    """
    Load source configurations from a JSON file.

    ``RENTALS_SOURCE_<NAME>_ENABLED`` overrides the file's ``enabled`` flag.
    """

    path = _resolve_config_path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Rental sources config file not found: {path}")

    raw_data = json.loads(path.read_text(encoding="utf-8"))
    sources = raw_data.get("sources", [])
    if not isinstance(sources, list):
        raise ValueError("Invalid rental sources config: 'sources' must be a list.")

    parsed: list[SourceConfig] = []
    for entry in sources:
        if not isinstance(entry, dict):
            continue

        name = str(entry.get("name", "")).strip().lower()
        adapter = str(entry.get("adapter", "")).strip()
        if not name or not adapter:
            continue

        enabled = _optional_bool(entry.get("enabled"), True)
        parsed.append(
            SourceConfig(
                name=name,
                adapter=adapter,
                enabled=_get_bool_env(source_enabled_env_name(name), enabled),
                base_url=_optional_str(entry.get("base_url")),
                max_pages=_optional_positive_int(entry.get("max_pages")),
                max_urls=_optional_positive_int(entry.get("max_urls")),
                max_items=_optional_positive_int(entry.get("max_items")),
                options=entry.get("options") if isinstance(entry.get("options"), dict) else {},
            )
        )

    return parsed


def source_enabled_env_name(source: str) -> str:
    return f"RENTALS_SOURCE_{re.sub(r'[^A-Z0-9]+', '_', source.upper()).strip('_')}_ENABLED"


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def _optional_positive_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


def _optional_bool(value: object, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "on"}:
            return True
        if normalized in {"0", "false", "no", "off"}:
            return False
    return default
