"""
Record normalization.

Converts raw per-source dicts (camelCase as written by the capture tools, or
snake_case) into the common record models. Timestamps are coerced to epoch
milliseconds.
"""

from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import Any

from .records import (
    HookSessionRecord,
    ManagedSessionRecord,
    ProjectRecord,
    ToolUsageRecord,
    TranscriptRecord,
)

# Numbers above this are already milliseconds (2001-09-09 in ms)
_MS_CUTOFF = 1e12


class RecordError(ValueError):
    """A raw record cannot be normalized (missing identity or start time)."""
    pass


def to_epoch_ms(value: Any) -> int | None:
    """
    Coerce a timestamp to epoch milliseconds.

    Accepts ms or seconds as numbers, ISO-8601 strings (trailing "Z" allowed)
    and datetimes. Anything else yields None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if value <= 0:
            return None
        return int(value) if value >= _MS_CUTOFF else int(value * 1000)
    if isinstance(value, datetime):
        dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return int(dt.timestamp() * 1000)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.lstrip("-").replace(".", "", 1).isdigit():
            return to_epoch_ms(float(text))
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return to_epoch_ms(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def ms_to_iso(ms: int | None) -> str | None:
    """Format epoch milliseconds as an ISO-8601 UTC string."""
    if ms is None:
        return None
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat().replace("+00:00", "Z")


def _pick(raw: dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present, non-None value among keys."""
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return default


def _as_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _tool_names(value: Any) -> list[str]:
    """tools_used may be a list of names or a name -> count mapping."""
    if isinstance(value, dict):
        return sorted(str(k) for k in value)
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return []


def normalize_path(path: str) -> str:
    """Expand ~ and drop trailing separators (keeps a bare root)."""
    expanded = os.path.expanduser(path.strip())
    stripped = expanded.rstrip("/\\")
    return stripped or expanded[:1]


def normalize_hook_session(raw: dict[str, Any]) -> HookSessionRecord:
    """Normalize a raw hook session dict."""
    session_id = _pick(raw, "sessionId", "session_id")
    start_time = to_epoch_ms(_pick(raw, "startTime", "start_time"))
    if not session_id or start_time is None:
        raise RecordError(f"Hook session missing id or start time: {session_id!r}")

    tools_used = _tool_names(_pick(raw, "toolsUsed", "tools_used", default=[]))
    tool_count = _as_int(_pick(raw, "toolCount", "tool_count"))

    return HookSessionRecord(
        session_id=str(session_id),
        cwd=str(_pick(raw, "cwd", default="")),
        start_time=start_time,
        end_time=to_epoch_ms(_pick(raw, "endTime", "end_time")),
        tool_count=tool_count if tool_count is not None else len(tools_used),
        tools_used=tools_used,
        source=str(_pick(raw, "source", "agent", default="claude")),
        transcript_path=_pick(raw, "transcriptPath", "transcript_path"),
        permission_mode=_pick(raw, "permissionMode", "permission_mode"),
        total_input_tokens=_as_int(_pick(raw, "totalInputTokens", "total_input_tokens")),
        total_output_tokens=_as_int(_pick(raw, "totalOutputTokens", "total_output_tokens")),
        estimated_cost_usd=_as_float(_pick(raw, "estimatedCostUsd", "estimated_cost_usd")),
    )


def normalize_tool_usage(raw: dict[str, Any]) -> ToolUsageRecord:
    """Normalize a raw tool usage dict."""
    session_id = _pick(raw, "sessionId", "session_id")
    timestamp = to_epoch_ms(_pick(raw, "timestamp", "ts"))
    if not session_id or timestamp is None:
        raise RecordError(f"Tool usage missing session id or timestamp: {session_id!r}")

    tool_input = _pick(raw, "toolInput", "tool_input", default={})
    success = _pick(raw, "success")

    return ToolUsageRecord(
        tool_use_id=str(_pick(raw, "toolUseId", "tool_use_id", default=f"{session_id}:{timestamp}")),
        session_id=str(session_id),
        tool_name=str(_pick(raw, "toolName", "tool_name", default="unknown")),
        timestamp=timestamp,
        tool_input=tool_input if isinstance(tool_input, dict) else {"value": tool_input},
        success=success if isinstance(success, bool) else None,
        duration_ms=_as_int(_pick(raw, "durationMs", "duration_ms")),
        error=_pick(raw, "error"),
    )


def normalize_transcript(raw: dict[str, Any]) -> TranscriptRecord:
    """Normalize raw transcript metadata."""
    transcript_id = _pick(raw, "id")
    path = _pick(raw, "path")
    modified_at = to_epoch_ms(_pick(raw, "modifiedAt", "modified_at", "mtime"))
    if not transcript_id or not path or modified_at is None:
        raise RecordError(f"Transcript missing id, path or mtime: {transcript_id!r}")

    project_dir = _pick(raw, "projectDir", "project_dir")

    return TranscriptRecord(
        id=str(transcript_id),
        agent=str(_pick(raw, "agent", default="claude")),
        path=str(path),
        name=_pick(raw, "name"),
        project_dir=normalize_path(str(project_dir)) if project_dir else None,
        modified_at=modified_at,
        size_bytes=_as_int(_pick(raw, "sizeBytes", "size_bytes")) or 0,
        message_count=_as_int(_pick(raw, "messageCount", "message_count")),
        start_time=to_epoch_ms(_pick(raw, "startTime", "start_time")),
        end_time=to_epoch_ms(_pick(raw, "endTime", "end_time")),
    )


def normalize_managed_session(raw: dict[str, Any]) -> ManagedSessionRecord:
    """Normalize a raw managed run record."""
    managed_id = _pick(raw, "id")
    started_at = to_epoch_ms(_pick(raw, "startedAt", "started_at"))
    if not managed_id or started_at is None:
        raise RecordError(f"Managed session missing id or start: {managed_id!r}")

    return ManagedSessionRecord(
        id=str(managed_id),
        agent=str(_pick(raw, "agent", default="claude")),
        cwd=str(_pick(raw, "cwd", default="")),
        started_at=started_at,
        ended_at=to_epoch_ms(_pick(raw, "endedAt", "ended_at")),
        status=str(_pick(raw, "status", default="unknown")),
        pid=_as_int(_pick(raw, "pid")),
    )


def normalize_project(raw: dict[str, Any]) -> ProjectRecord:
    """Normalize a project definition."""
    project_id = _pick(raw, "id")
    if not project_id:
        raise RecordError("Project missing id")

    paths = raw.get("paths") or []
    if isinstance(paths, str):
        paths = [paths]

    return ProjectRecord(
        id=str(project_id),
        name=str(_pick(raw, "name", default=project_id)),
        paths=[normalize_path(str(p)) for p in paths if str(p).strip()],
        description=_pick(raw, "description"),
    )


__all__ = [
    "RecordError",
    "to_epoch_ms",
    "ms_to_iso",
    "normalize_path",
    "normalize_hook_session",
    "normalize_tool_usage",
    "normalize_transcript",
    "normalize_managed_session",
    "normalize_project",
]
