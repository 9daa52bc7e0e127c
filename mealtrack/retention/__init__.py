# -*- coding: utf-8 -*-
"""Photo retention: tier policies, usage analysis, preferences and the cleanup sweep."""

from .analyzer import StorageUsageAnalyzer
from .policy import RetentionPolicy, resolve_policy
from .preferences import TierPreferenceManager
from .sweeper import RetentionSweeper

__all__ = [
    "RetentionPolicy",
    "RetentionSweeper",
    "StorageUsageAnalyzer",
    "TierPreferenceManager",
    "resolve_policy",
]
