"""
Pipeline jobs. Each invocation records exactly one JobRun.
"""

from rentindex.jobs.base import JobRunTracker, PipelineJob, format_error
from rentindex.jobs.build_index import BuildIndexJob, price_stats
from rentindex.jobs.discover import DiscoverJob
from rentindex.jobs.mark_stale import MarkStaleJob
from rentindex.jobs.process_queue import ProcessQueueJob

__all__ = [
    "BuildIndexJob",
    "DiscoverJob",
    "JobRunTracker",
    "MarkStaleJob",
    "PipelineJob",
    "ProcessQueueJob",
    "format_error",
    "price_stats",
]
