"""
Agent transcript reader.

Reads the JSONL transcript files that Claude Code maintains at:
~/.claude/projects/{encoded_cwd}/{session_id}.jsonl

Two entry points:
- scan_transcript: cheap metadata pass (message count, time bounds, cwd)
  used to build TranscriptRecord for correlation
- TranscriptParser.parse: full content (messages, tool calls and results,
  token usage) used when a conversation is exported
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .normalizer import _as_int, normalize_path, to_epoch_ms
from .records import TranscriptRecord

logger = logging.getLogger(__name__)

# Entry types that count as conversation messages
MESSAGE_TYPES = ("user", "assistant")


@dataclass
class ToolCall:
    """A tool call from the transcript."""

    tool_use_id: str
    tool_name: str
    tool_input: dict[str, Any]
    result: str | None = None
    is_error: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool_use_id": self.tool_use_id,
            "tool_name": self.tool_name,
            "tool_input": self.tool_input,
            "result": self.result,
            "is_error": self.is_error,
        }


@dataclass
class TranscriptMessage:
    """A single user or assistant turn."""

    role: str  # "user" or "assistant"
    content: str
    timestamp: int | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp,
            "tool_calls": [tc.to_dict() for tc in self.tool_calls],
        }


@dataclass
class ParsedTranscript:
    """Full transcript content."""

    id: str
    agent: str
    path: str
    session_id: str = ""
    project_path: str | None = None
    git_branch: str | None = None
    messages: list[TranscriptMessage] = field(default_factory=list)
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    entry_counts: dict[str, int] = field(default_factory=dict)

    @property
    def start_time(self) -> int | None:
        stamps = [m.timestamp for m in self.messages if m.timestamp is not None]
        return min(stamps) if stamps else None

    @property
    def end_time(self) -> int | None:
        stamps = [m.timestamp for m in self.messages if m.timestamp is not None]
        return max(stamps) if stamps else None


def load_entries(path: str | Path) -> list[dict[str, Any]]:
    """
    Load all JSON object lines from a transcript file.

    Malformed lines are skipped (logged at debug); a missing file raises
    FileNotFoundError.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Transcript not found: {path}")

    entries: list[dict[str, Any]] = []
    with open(path, encoding="utf-8", errors="replace") as f:
        for lineno, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                logger.debug(f"Skipping malformed line {lineno} in {path}")
                continue
            if isinstance(entry, dict):
                entries.append(entry)
    return entries


def _text_from_blocks(blocks: list[Any]) -> str:
    parts = []
    for block in blocks:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "\n".join(parts)


class TranscriptParser:
    """
    Parse Claude Code transcript files.

    The transcript is a JSONL file where each line is a JSON object.
    Key entry types:
    - "user": User message or tool result
    - "assistant": Assistant response with possible tool calls
    - "summary", "system", "progress": counted, not converted to messages
    """

    def __init__(self, transcript_path: str | Path, agent: str = "claude"):
        self.transcript_path = Path(transcript_path)
        self.agent = agent

    def parse(self) -> ParsedTranscript:
        """
        Parse the transcript and extract messages and usage.

        Returns:
            ParsedTranscript with messages in file order
        """
        entries = load_entries(self.transcript_path)

        data = ParsedTranscript(
            id=self.transcript_path.stem,
            agent=self.agent,
            path=str(self.transcript_path),
        )

        for entry in entries:
            if "sessionId" in entry:
                data.session_id = str(entry.get("sessionId") or "")
                data.project_path = entry.get("cwd")
                data.git_branch = entry.get("gitBranch")
                break

        counts: Counter[str] = Counter()
        pending: dict[str, ToolCall] = {}

        for entry in entries:
            entry_type = str(entry.get("type") or "unknown")
            counts[entry_type] += 1

            if entry_type == "user":
                self._process_user_entry(entry, data, pending)
            elif entry_type == "assistant":
                self._process_assistant_entry(entry, data, pending)

        data.entry_counts = dict(counts)
        return data

    def _process_user_entry(
        self,
        entry: dict[str, Any],
        data: ParsedTranscript,
        pending: dict[str, ToolCall],
    ) -> None:
        """Process a user entry (message or tool result)."""
        message = entry.get("message") or {}
        content = message.get("content", "") if isinstance(message, dict) else ""
        timestamp = to_epoch_ms(entry.get("timestamp"))

        if isinstance(content, list):
            text_parts = []
            for block in content:
                if isinstance(block, dict) and block.get("type") == "tool_result":
                    tool_call = pending.pop(block.get("tool_use_id", ""), None)
                    if tool_call is None:
                        continue
                    result = block.get("content", "")
                    if isinstance(result, list):
                        tool_call.result = _text_from_blocks(result)
                    else:
                        tool_call.result = str(result) if result else ""
                    tool_call.is_error = bool(block.get("is_error"))
                elif isinstance(block, dict) and block.get("type") == "text":
                    text_parts.append(block.get("text", ""))
                elif isinstance(block, str):
                    text_parts.append(block)

            if text_parts:
                data.messages.append(TranscriptMessage("user", "\n".join(text_parts), timestamp))

        elif isinstance(content, str) and content.strip():
            data.messages.append(TranscriptMessage("user", content, timestamp))

    def _process_assistant_entry(
        self,
        entry: dict[str, Any],
        data: ParsedTranscript,
        pending: dict[str, ToolCall],
    ) -> None:
        """Process an assistant entry (response with possible tool calls)."""
        message = entry.get("message") or {}
        if not isinstance(message, dict):
            return
        content = message.get("content", "")
        timestamp = to_epoch_ms(entry.get("timestamp"))

        usage = message.get("usage") or {}
        if isinstance(usage, dict):
            data.total_input_tokens += _as_int(usage.get("input_tokens")) or 0
            data.total_output_tokens += _as_int(usage.get("output_tokens")) or 0

        if isinstance(content, list):
            text_parts = []
            tool_calls = []
            for block in content:
                if not isinstance(block, dict):
                    continue
                if block.get("type") == "text":
                    text_parts.append(block.get("text", ""))
                elif block.get("type") == "tool_use":
                    tool_input = block.get("input")
                    tool_call = ToolCall(
                        tool_use_id=str(block.get("id", "")),
                        tool_name=str(block.get("name", "unknown")),
                        tool_input=tool_input if isinstance(tool_input, dict) else {},
                    )
                    tool_calls.append(tool_call)
                    pending[tool_call.tool_use_id] = tool_call

            if text_parts or tool_calls:
                data.messages.append(
                    TranscriptMessage("assistant", "\n".join(text_parts), timestamp, tool_calls)
                )

        elif isinstance(content, str) and content.strip():
            data.messages.append(TranscriptMessage("assistant", content, timestamp))


def scan_transcript(path: str | Path, agent: str = "claude") -> TranscriptRecord:
    """
    Build correlation metadata for a transcript file.

    message_count counts user and assistant entries. The time window comes
    from entry timestamps; project_dir is the recorded cwd when present,
    otherwise the containing (encoded) project directory.
    """
    path = Path(path)
    stat = path.stat()
    entries = load_entries(path)

    message_count = 0
    stamps: list[int] = []
    cwd = None
    for entry in entries:
        if entry.get("type") in MESSAGE_TYPES:
            message_count += 1
        ts = to_epoch_ms(entry.get("timestamp"))
        if ts is not None:
            stamps.append(ts)
        if cwd is None and isinstance(entry.get("cwd"), str) and entry["cwd"]:
            cwd = entry["cwd"]

    return TranscriptRecord(
        id=path.stem,
        agent=agent,
        path=str(path),
        name=path.name,
        project_dir=normalize_path(cwd) if cwd else str(path.parent),
        modified_at=int(stat.st_mtime * 1000),
        size_bytes=stat.st_size,
        message_count=message_count,
        start_time=min(stamps) if stamps else None,
        end_time=max(stamps) if stamps else None,
    )


__all__ = [
    "ToolCall",
    "TranscriptMessage",
    "ParsedTranscript",
    "TranscriptParser",
    "load_entries",
    "scan_transcript",
]
