"""
Rental pipeline configuration models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class SourceConfig:
    """
    One listing website the pipeline ingests from.
    """

    name: str
    adapter: str
    enabled: bool = True
    base_url: str | None = None
    max_pages: int | None = None
    max_urls: int | None = None
    max_items: int | None = None
    options: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FetchSettings:
    """
    Outbound HTTP behaviour shared by every source adapter.
    """

    user_agent: str
    concurrency_limit: int
    max_retries: int
    backoff_base_seconds: float
    backoff_jitter_seconds: float
    connect_timeout_seconds: float
    timeout_seconds: float
    proxy_url: str | None = None


@dataclass(frozen=True)
class PacingSettings:
    """
    Human-like request timing.
    """

    request_delay_base_seconds: float
    request_delay_jitter_seconds: float
    reading_pause_probability: float
    reading_pause_min_seconds: float
    reading_pause_max_seconds: float
    scroll_delay_min_seconds: float
    scroll_delay_max_seconds: float
    night_start_hour_utc: int
    night_end_hour_utc: int
    night_idle_min_seconds: float
    night_idle_max_seconds: float
    breather_every_min: int
    breather_every_max: int
    breather_pause_min_seconds: float
    breather_pause_max_seconds: float
    skip_probability: float


@dataclass(frozen=True)
class PipelineSettings:
    """
    Per-run caps, freshness windows and worker sizing.
    """

    sources_config_path: str
    max_pages: int
    max_urls: int
    max_process: int
    process_batch_size: int
    worker_count: int
    max_attempts: int
    rescrape_after_days: int
    stale_after_days: int
    claim_ttl_minutes: int
    scheduler_enabled: bool
    daily_run_hour_utc: int
