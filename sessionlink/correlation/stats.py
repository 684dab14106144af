"""Aggregate counts over a set of correlated conversations."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import asdict, dataclass

from .conversation import CorrelatedConversation, MatchType


@dataclass
class CorrelationStats:
    """Counts by match tier and by which sources a conversation has."""

    total: int = 0
    exact: int = 0
    confident: int = 0
    uncertain: int = 0
    unmatched: int = 0
    hook_only: int = 0
    transcript_only: int = 0
    managed_only: int = 0
    with_managed_session: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


def get_correlation_stats(conversations: Iterable[CorrelatedConversation]) -> CorrelationStats:
    """Pure counts over the conversation set."""
    stats = CorrelationStats()

    for conv in conversations:
        stats.total += 1

        if conv.match_type == MatchType.EXACT:
            stats.exact += 1
        elif conv.match_type == MatchType.CONFIDENT:
            stats.confident += 1
        elif conv.match_type == MatchType.UNCERTAIN:
            stats.uncertain += 1
        else:
            stats.unmatched += 1

        if conv.is_managed_only:
            stats.managed_only += 1
        elif conv.is_hook_only:
            stats.hook_only += 1
        elif conv.is_transcript_only:
            stats.transcript_only += 1

        if conv.managed_session is not None and not conv.is_managed_only:
            stats.with_managed_session += 1

    return stats


__all__ = ["CorrelationStats", "get_correlation_stats"]
