"""
Source adapter exports.
"""

from rentindex.scraping.adapters.base import SourceAdapter

__all__ = ["SourceAdapter"]
