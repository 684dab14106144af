"""
Hook session / transcript matching.

Every hook session is scored against every transcript on four sub-matches
(path, time, cwd, tool count). The weighted sum decides the confidence tier.
Matching is greedy over all qualifying pairs: the best-ranked pair (score,
then start delta, then hook start and ids) is taken first and both sides
leave the pool.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from pathlib import PurePath

from ..config import CorrelationConfig
from ..records import HookSessionRecord, ToolUsageRecord, TranscriptRecord
from .conversation import (
    CorrelatedConversation,
    MatchDetails,
    MatchType,
    conversation_sort_key,
)

logger = logging.getLogger(__name__)


def _interval(start: int, end: int | None) -> tuple[int, int]:
    """Closed interval; a missing end collapses onto the start."""
    if end is None:
        return start, start
    return start, max(start, end)


def transcript_interval(transcript: TranscriptRecord) -> tuple[int, int]:
    """Transcript window, falling back to the file mtime for missing bounds."""
    start = transcript.start_time if transcript.start_time is not None else transcript.modified_at
    end = transcript.end_time if transcript.end_time is not None else transcript.modified_at
    return _interval(start, end)


def _path_contains(parent: str, child: str) -> bool:
    parent = parent.rstrip("/\\")
    child = child.rstrip("/\\")
    if not parent or not child:
        return False
    return child == parent or child.startswith(parent + "/") or child.startswith(parent + "\\")


def encode_project_dir(cwd: str) -> str:
    """Directory name agents use for a cwd (separators and spaces become dashes)."""
    return cwd.rstrip("/").replace("/", "-").replace("\\", "-").replace(" ", "-")


def path_matches(hook: HookSessionRecord, transcript: TranscriptRecord) -> bool:
    """Transcript project dir equals or contains the hook cwd, or names it."""
    if hook.transcript_path and hook.transcript_path == transcript.path:
        return True

    project_dir = transcript.project_dir
    if not project_dir or not hook.cwd:
        return False

    if _path_contains(project_dir, hook.cwd):
        return True

    return PurePath(project_dir).name == encode_project_dir(hook.cwd)


def time_matches(hook: HookSessionRecord, transcript: TranscriptRecord, tolerance_ms: int) -> bool:
    """Windows overlap once widened by the tolerance."""
    hook_start, hook_end = _interval(hook.start_time, hook.end_time)
    t_start, t_end = transcript_interval(transcript)
    return hook_start - tolerance_ms <= t_end and t_start <= hook_end + tolerance_ms


def tool_count_matches(hook: HookSessionRecord, transcript: TranscriptRecord, config: CorrelationConfig) -> bool:
    """Message count falls inside a band proportional to the tool count."""
    if hook.tool_count <= 0 or not transcript.message_count:
        return False
    low = hook.tool_count * config.tool_count_ratio_min
    high = hook.tool_count * config.tool_count_ratio_max
    return low <= transcript.message_count <= high


def score_match(
    hook: HookSessionRecord,
    transcript: TranscriptRecord,
    config: CorrelationConfig,
) -> MatchDetails:
    """Evaluate the four sub-matches and their weighted score."""
    path_match = path_matches(hook, transcript)
    time_match = time_matches(hook, transcript, config.time_tolerance_ms)
    cwd_match = bool(hook.cwd) and hook.cwd == transcript.project_dir
    tool_count_match = tool_count_matches(hook, transcript, config)

    score = 0.0
    if path_match:
        score += config.path_weight
    if time_match:
        score += config.time_weight
    if cwd_match:
        score += config.cwd_weight
    if tool_count_match:
        score += config.tool_count_weight

    return MatchDetails(
        path_match=path_match,
        time_match=time_match,
        cwd_match=cwd_match,
        tool_count_match=tool_count_match,
        score=score,
    )


def classify_score(score: float, config: CorrelationConfig) -> MatchType | None:
    """Map a score to its tier; None when it is not a match at all."""
    if score >= config.exact_threshold:
        return MatchType.EXACT
    if score >= config.confident_threshold:
        return MatchType.CONFIDENT
    if score >= config.uncertain_threshold:
        return MatchType.UNCERTAIN
    return None


def _dedupe(records: Iterable, key) -> list:
    seen: set[str] = set()
    unique = []
    for record in records:
        ident = key(record)
        if ident in seen:
            logger.debug(f"Dropping duplicate record {ident}")
            continue
        seen.add(ident)
        unique.append(record)
    return unique


def _hook_conversation(
    hook: HookSessionRecord,
    tool_usages: Sequence[ToolUsageRecord],
    transcript: TranscriptRecord | None = None,
    match_type: MatchType = MatchType.UNMATCHED,
    details: MatchDetails | None = None,
) -> CorrelatedConversation:
    end_time = hook.end_time
    if end_time is None and transcript is not None:
        end_time = transcript_interval(transcript)[1]

    return CorrelatedConversation(
        correlation_id=f"hook:{hook.session_id}",
        match_type=match_type,
        match_details=details or MatchDetails(),
        start_time=hook.start_time,
        end_time=end_time,
        cwd=hook.cwd,
        agent=hook.source,
        hook_session=hook,
        transcript=transcript,
        tool_usages=sorted(tool_usages, key=lambda u: (u.timestamp, u.tool_use_id)),
    )


def _transcript_conversation(transcript: TranscriptRecord) -> CorrelatedConversation:
    start, end = transcript_interval(transcript)
    return CorrelatedConversation(
        correlation_id=f"transcript:{transcript.id}",
        match_type=MatchType.UNMATCHED,
        match_details=MatchDetails(),
        start_time=start,
        end_time=end,
        cwd=transcript.project_dir or "",
        agent=transcript.agent,
        transcript=transcript,
    )


def correlate_sessions_with_transcripts(
    hook_sessions: Iterable[HookSessionRecord],
    transcripts: Iterable[TranscriptRecord],
    tool_usages: Mapping[str, Sequence[ToolUsageRecord]] | None = None,
    config: CorrelationConfig | None = None,
) -> list[CorrelatedConversation]:
    """
    Match hook sessions to transcripts.

    Every input record ends up in exactly one conversation: matched pairs,
    hook-only and transcript-only conversations.

    Args:
        hook_sessions: Hook session records in the window
        transcripts: Transcript metadata in the window
        tool_usages: Tool usages keyed by hook session id
        config: Weights and thresholds (defaults if omitted)

    Returns:
        Conversations sorted newest first
    """
    config = config or CorrelationConfig()
    tool_usages = tool_usages or {}

    hooks = _dedupe(
        sorted(hook_sessions, key=lambda h: (h.start_time, h.session_id)),
        key=lambda h: h.session_id,
    )
    pool = _dedupe(sorted(transcripts, key=lambda t: t.id), key=lambda t: t.id)

    # Score every qualifying pair before assigning any of them
    candidates: list[tuple] = []
    for hook in hooks:
        for transcript in pool:
            details = score_match(hook, transcript, config)
            match_type = classify_score(details.score, config)
            if match_type is None:
                continue
            delta = abs(hook.start_time - transcript_interval(transcript)[0])
            rank = (-details.score, delta, hook.start_time, hook.session_id, transcript.id)
            candidates.append((rank, hook, transcript, match_type, details))

    candidates.sort(key=lambda c: c[0])

    matched: dict[str, tuple[TranscriptRecord, MatchType, MatchDetails]] = {}
    claimed: set[str] = set()
    for _, hook, transcript, match_type, details in candidates:
        if hook.session_id in matched or transcript.id in claimed:
            continue
        matched[hook.session_id] = (transcript, match_type, details)
        claimed.add(transcript.id)
        logger.debug(
            f"Matched hook {hook.session_id} -> transcript {transcript.id} "
            f"({match_type.value}, score={details.score})"
        )

    conversations: list[CorrelatedConversation] = []
    for hook in hooks:
        usages = tool_usages.get(hook.session_id, [])
        if hook.session_id in matched:
            transcript, match_type, details = matched[hook.session_id]
            conversations.append(_hook_conversation(hook, usages, transcript, match_type, details))
        else:
            conversations.append(_hook_conversation(hook, usages))

    for transcript in pool:
        if transcript.id not in claimed:
            conversations.append(_transcript_conversation(transcript))

    conversations.sort(key=conversation_sort_key)
    return conversations


def group_tool_usages(usages: Iterable[ToolUsageRecord]) -> dict[str, list[ToolUsageRecord]]:
    """Group tool usages by hook session id."""
    grouped: dict[str, list[ToolUsageRecord]] = {}
    for usage in usages:
        grouped.setdefault(usage.session_id, []).append(usage)
    return grouped


__all__ = [
    "correlate_sessions_with_transcripts",
    "score_match",
    "classify_score",
    "path_matches",
    "time_matches",
    "tool_count_matches",
    "transcript_interval",
    "encode_project_dir",
    "group_tool_usages",
]
