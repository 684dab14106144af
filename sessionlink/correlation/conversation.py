"""CorrelatedConversation - one coding session seen through up to three sources."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from ..records import (
    HookSessionRecord,
    ManagedSessionRecord,
    ProjectRecord,
    ToolUsageRecord,
    TranscriptRecord,
)


class MatchType(str, Enum):
    """Confidence tier of a hook/transcript match."""

    EXACT = "exact"
    CONFIDENT = "confident"
    UNCERTAIN = "uncertain"
    UNMATCHED = "unmatched"


@dataclass(frozen=True)
class MatchDetails:
    """Which sub-matches fired, and the weighted score they add up to."""

    path_match: bool = False
    time_match: bool = False
    cwd_match: bool = False
    tool_count_match: bool = False
    score: float = 0.0


@dataclass
class CorrelatedConversation:
    """
    A unified conversation record.

    Owns at most one of each source record. The correlator guarantees a
    source record is never attached to more than one conversation.
    """

    correlation_id: str
    match_type: MatchType
    match_details: MatchDetails
    start_time: int
    cwd: str
    agent: str
    end_time: int | None = None
    hook_session: HookSessionRecord | None = None
    transcript: TranscriptRecord | None = None
    managed_session: ManagedSessionRecord | None = None
    project: ProjectRecord | None = None
    tool_usages: list[ToolUsageRecord] = field(default_factory=list)

    @property
    def is_hook_only(self) -> bool:
        return self.hook_session is not None and self.transcript is None

    @property
    def is_transcript_only(self) -> bool:
        return self.transcript is not None and self.hook_session is None

    @property
    def is_managed_only(self) -> bool:
        return (
            self.managed_session is not None
            and self.hook_session is None
            and self.transcript is None
        )

    @property
    def window(self) -> tuple[int, int]:
        """Time window [start, end]; open sessions collapse to their start."""
        end = self.end_time if self.end_time is not None else self.start_time
        return self.start_time, max(self.start_time, end)


def conversation_sort_key(conv: CorrelatedConversation) -> tuple[int, str]:
    """Newest first, then by correlation_id."""
    return (-conv.start_time, conv.correlation_id)


__all__ = [
    "MatchType",
    "MatchDetails",
    "CorrelatedConversation",
    "conversation_sort_key",
]
