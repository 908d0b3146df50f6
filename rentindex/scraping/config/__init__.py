"""
Config helpers for the rental pipeline.
"""

from rentindex.scraping.config.loader import (
    get_fetch_settings,
    get_pacing_settings,
    get_pipeline_settings,
    load_source_configs,
)
from rentindex.scraping.config.models import (
    FetchSettings,
    PacingSettings,
    PipelineSettings,
    SourceConfig,
)

__all__ = [
    "FetchSettings",
    "PacingSettings",
    "PipelineSettings",
    "SourceConfig",
    "get_fetch_settings",
    "get_pacing_settings",
    "get_pipeline_settings",
    "load_source_configs",
]
