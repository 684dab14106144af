"""
Source record models for sessionlink.

Pydantic models for the three independently collected views of a coding
session (hook telemetry, transcripts, managed runs) plus project definitions.
All timestamps are epoch milliseconds. Records are read-only inputs owned by
external stores, so every model is frozen.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class HookSessionRecord(BaseModel):
    """A session captured by agent-side event hooks."""

    session_id: str
    cwd: str = ""
    start_time: int
    end_time: int | None = None
    tool_count: int = 0
    tools_used: list[str] = Field(default_factory=list)
    source: str = "claude"
    transcript_path: str | None = None
    permission_mode: str | None = None
    total_input_tokens: int | None = None
    total_output_tokens: int | None = None
    estimated_cost_usd: float | None = None

    model_config = {"frozen": True, "extra": "ignore"}

    @property
    def active(self) -> bool:
        return self.end_time is None


class ToolUsageRecord(BaseModel):
    """A single tool invocation recorded by the hooks."""

    tool_use_id: str
    session_id: str
    tool_name: str
    timestamp: int
    tool_input: dict[str, Any] = Field(default_factory=dict)
    success: bool | None = None
    duration_ms: int | None = None
    error: str | None = None

    model_config = {"frozen": True, "extra": "ignore"}


class TranscriptRecord(BaseModel):
    """Metadata for a transcript file discovered on disk."""

    id: str
    agent: str = "claude"
    path: str
    name: str | None = None
    project_dir: str | None = None
    modified_at: int
    size_bytes: int = 0
    message_count: int | None = None
    start_time: int | None = None
    end_time: int | None = None

    model_config = {"frozen": True, "extra": "ignore"}


class ManagedSessionRecord(BaseModel):
    """A run started and tracked by the local launcher."""

    id: str
    agent: str = "claude"
    cwd: str = ""
    started_at: int
    ended_at: int | None = None
    status: str = "unknown"
    pid: int | None = None

    model_config = {"frozen": True, "extra": "ignore"}


class ProjectRecord(BaseModel):
    """User-defined directory-to-project mapping."""

    id: str
    name: str
    paths: list[str] = Field(default_factory=list)
    description: str | None = None

    model_config = {"frozen": True, "extra": "ignore"}


__all__ = [
    "HookSessionRecord",
    "ToolUsageRecord",
    "TranscriptRecord",
    "ManagedSessionRecord",
    "ProjectRecord",
]
