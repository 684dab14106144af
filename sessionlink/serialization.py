"""Record and conversation serialization to snake_case JSON dicts."""

from __future__ import annotations

from typing import Any

from .correlation import CorrelatedConversation, CorrelationStats
from .records import (
    HookSessionRecord,
    ManagedSessionRecord,
    ProjectRecord,
    ToolUsageRecord,
    TranscriptRecord,
)


def hook_session_to_dict(session: HookSessionRecord) -> dict[str, Any]:
    return {
        "session_id": session.session_id,
        "transcript_path": session.transcript_path,
        "cwd": session.cwd,
        "start_time": session.start_time,
        "end_time": session.end_time,
        "permission_mode": session.permission_mode,
        "source": session.source,
        "tool_count": session.tool_count,
        "tools_used": list(session.tools_used),
        "active": session.active,
        "total_input_tokens": session.total_input_tokens,
        "total_output_tokens": session.total_output_tokens,
        "estimated_cost_usd": session.estimated_cost_usd,
    }


def tool_usage_to_dict(usage: ToolUsageRecord) -> dict[str, Any]:
    return {
        "tool_use_id": usage.tool_use_id,
        "tool_name": usage.tool_name,
        "tool_input": dict(usage.tool_input),
        "timestamp": usage.timestamp,
        "session_id": usage.session_id,
        "success": usage.success,
        "duration_ms": usage.duration_ms,
        "error": usage.error,
    }


def transcript_to_dict(transcript: TranscriptRecord) -> dict[str, Any]:
    return {
        "id": transcript.id,
        "path": transcript.path,
        "name": transcript.name,
        "agent": transcript.agent,
        "project_dir": transcript.project_dir,
        "modified_at": transcript.modified_at,
        "size_bytes": transcript.size_bytes,
        "message_count": transcript.message_count,
        "start_time": transcript.start_time,
        "end_time": transcript.end_time,
    }


def managed_session_to_dict(managed: ManagedSessionRecord) -> dict[str, Any]:
    return {
        "id": managed.id,
        "agent": managed.agent,
        "cwd": managed.cwd,
        "started_at": managed.started_at,
        "ended_at": managed.ended_at,
        "status": managed.status,
        "pid": managed.pid,
    }


def project_to_dict(project: ProjectRecord) -> dict[str, Any]:
    """Listing payload carries only the project identity."""
    return {"id": project.id, "name": project.name}


def serialize_conversation(conv: CorrelatedConversation) -> dict[str, Any]:
    """
    Serialize a CorrelatedConversation for the listing payload.

    Tool usages are summarized as a count; full usages travel only with
    exported content.
    """
    details = conv.match_details
    return {
        "correlation_id": conv.correlation_id,
        "match_type": conv.match_type.value,
        "match_details": {
            "path_match": details.path_match,
            "time_match": details.time_match,
            "cwd_match": details.cwd_match,
            "tool_count_match": details.tool_count_match,
            "score": details.score,
        },
        "start_time": conv.start_time,
        "end_time": conv.end_time,
        "cwd": conv.cwd,
        "agent": conv.agent,
        "hook_session": hook_session_to_dict(conv.hook_session) if conv.hook_session else None,
        "transcript": transcript_to_dict(conv.transcript) if conv.transcript else None,
        "managed_session": managed_session_to_dict(conv.managed_session) if conv.managed_session else None,
        "project": project_to_dict(conv.project) if conv.project else None,
        "tool_usage_count": len(conv.tool_usages),
    }


def serialize_stats(stats: CorrelationStats) -> dict[str, Any]:
    return stats.to_dict()


__all__ = [
    "hook_session_to_dict",
    "tool_usage_to_dict",
    "transcript_to_dict",
    "managed_session_to_dict",
    "project_to_dict",
    "serialize_conversation",
    "serialize_stats",
]
