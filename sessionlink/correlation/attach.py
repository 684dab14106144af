"""Attach managed runs and project definitions to correlated conversations."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import replace

from ..config import CorrelationConfig
from ..records import ManagedSessionRecord, ProjectRecord
from .conversation import (
    CorrelatedConversation,
    MatchDetails,
    MatchType,
    conversation_sort_key,
)

logger = logging.getLogger(__name__)


def _same_dir(a: str, b: str) -> bool:
    return bool(a) and a.rstrip("/\\") == b.rstrip("/\\")


def attach_managed_sessions(
    conversations: Sequence[CorrelatedConversation],
    managed_sessions: Iterable[ManagedSessionRecord],
    config: CorrelationConfig | None = None,
) -> list[CorrelatedConversation]:
    """
    Attach launcher-managed runs to conversations.

    A managed run belongs to a conversation when the cwd matches and its start
    falls inside the conversation window (widened by the time tolerance).
    Conversations claim runs in chronological order; the closest start wins.
    Unclaimed runs become managed-only conversations.

    Returns:
        New list of conversations sorted newest first. Inputs are not modified.
    """
    config = config or CorrelationConfig()
    tolerance = config.time_tolerance_ms

    pool: dict[str, ManagedSessionRecord] = {}
    for managed in sorted(managed_sessions, key=lambda m: (m.started_at, m.id)):
        pool.setdefault(managed.id, managed)

    result: list[CorrelatedConversation] = []
    for conv in sorted(conversations, key=lambda c: (c.start_time, c.correlation_id)):
        if conv.managed_session is not None or not pool:
            result.append(conv)
            continue

        start, end = conv.window
        best: tuple[int, str] | None = None
        for managed in pool.values():
            if not _same_dir(managed.cwd, conv.cwd):
                continue
            if not (start - tolerance <= managed.started_at <= end + tolerance):
                continue
            rank = (abs(managed.started_at - start), managed.id)
            if best is None or rank < best:
                best = rank

        if best is None:
            result.append(conv)
            continue

        managed = pool.pop(best[1])
        logger.debug(f"Attached managed session {managed.id} to {conv.correlation_id}")
        result.append(replace(conv, managed_session=managed))

    for managed in pool.values():
        result.append(
            CorrelatedConversation(
                correlation_id=f"managed:{managed.id}",
                match_type=MatchType.UNMATCHED,
                match_details=MatchDetails(),
                start_time=managed.started_at,
                end_time=managed.ended_at,
                cwd=managed.cwd,
                agent=managed.agent,
                managed_session=managed,
            )
        )

    result.sort(key=conversation_sort_key)
    return result


def find_project(cwd: str, projects: Sequence[ProjectRecord]) -> ProjectRecord | None:
    """
    Project whose path is the longest prefix of cwd.

    Prefixes only match on path boundaries (/work/app does not own
    /work/application). Ties go to the first declared project.
    """
    if not cwd:
        return None

    cwd = cwd.rstrip("/\\")
    best: ProjectRecord | None = None
    best_len = -1

    for project in projects:
        for path in project.paths:
            prefix = path.rstrip("/\\")
            if not prefix:
                continue
            if cwd == prefix or cwd.startswith(prefix + "/") or cwd.startswith(prefix + "\\"):
                # Strictly longer wins, so earlier projects keep ties
                if len(prefix) > best_len:
                    best = project
                    best_len = len(prefix)

    return best


def attach_projects(
    conversations: Sequence[CorrelatedConversation],
    projects: Sequence[ProjectRecord],
) -> list[CorrelatedConversation]:
    """Attach the owning project (if any) to each conversation."""
    if not projects:
        return list(conversations)

    result = []
    for conv in conversations:
        project = find_project(conv.cwd, projects)
        result.append(replace(conv, project=project) if project else conv)
    return result


__all__ = [
    "attach_managed_sessions",
    "attach_projects",
    "find_project",
]
