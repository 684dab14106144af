"""Correlation Layer - hook sessions, transcripts and managed runs as one conversation."""

from .attach import attach_managed_sessions, attach_projects, find_project
from .conversation import CorrelatedConversation, MatchDetails, MatchType
from .matcher import (
    classify_score,
    correlate_sessions_with_transcripts,
    group_tool_usages,
    score_match,
)
from .stats import CorrelationStats, get_correlation_stats

__all__ = [
    "CorrelatedConversation",
    "MatchDetails",
    "MatchType",
    "correlate_sessions_with_transcripts",
    "score_match",
    "classify_score",
    "group_tool_usages",
    "attach_managed_sessions",
    "attach_projects",
    "find_project",
    "CorrelationStats",
    "get_correlation_stats",
]
