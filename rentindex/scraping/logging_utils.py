"""
Structured logging helpers for rental pipeline workflows.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    **fields: Any,
) -> None:
    """
    Emit one structured log line as compact JSON.
    """

    payload = {"event": event, **fields}
    logger.log(level, json.dumps(payload, default=str, sort_keys=True))


class PipelineReporter(Protocol):
    """
    Receives human-readable job progress, e.g. to stream it to an operator.
    """

    def log(self, level: str, message: str, **meta: Any) -> None:
        ...

    def progress(self, phase: str, percent: float, label: str | None = None) -> None:
        ...


class NoopReporter:
    def log(self, level: str, message: str, **meta: Any) -> None:
        return None

    def progress(self, phase: str, percent: float, label: str | None = None) -> None:
        return None


class LoggingReporter:
    """
    Reporter that forwards every message to a standard logger as a structured event.
    """

    _LEVELS = {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warn": logging.WARNING,
        "warning": logging.WARNING,
        "error": logging.ERROR,
    }

    def __init__(self, logger: logging.Logger, **context: Any) -> None:
        self._logger = logger
        self._context = context

    def log(self, level: str, message: str, **meta: Any) -> None:
        log_event(
            self._logger,
            self._LEVELS.get(level.lower(), logging.INFO),
            "pipeline_log",
            message=message,
            **self._context,
            **meta,
        )

    def progress(self, phase: str, percent: float, label: str | None = None) -> None:
        log_event(
            self._logger,
            logging.DEBUG,
            "pipeline_progress",
            phase=phase,
            percent=round(max(0.0, min(100.0, percent)), 1),
            label=label,
            **self._context,
        )
