"""
Source stores - read-only access to the three session views and projects.

Each source is a Protocol so the pipeline can be driven by anything that
produces records. Two implementations ship here:

- File*Store: read the agentwatch data directory and the agent transcript
  directory. Blocking file reads run in a worker thread.
- InMemory*Store: hold records in lists, for tests and embedding.

Layout read by the file stores:
    {data_dir}/hooks/sessions*.jsonl      hook sessions (later lines update earlier ones)
    {data_dir}/hooks/tool_usages*.jsonl   tool usages
    {data_dir}/sessions/*.json            managed runs, one per file
    {transcripts_dir}/*/*.jsonl           agent transcripts
"""

from __future__ import annotations

import asyncio
import glob
import json
import logging
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path
from typing import Any, Protocol, TypeVar

from pydantic import ValidationError

from .normalizer import (
    RecordError,
    normalize_hook_session,
    normalize_managed_session,
    normalize_project,
    normalize_tool_usage,
)
from .records import (
    HookSessionRecord,
    ManagedSessionRecord,
    ProjectRecord,
    ToolUsageRecord,
    TranscriptRecord,
)
from .transcripts import ParsedTranscript, TranscriptParser, scan_transcript

logger = logging.getLogger(__name__)

R = TypeVar("R")


class HookStore(Protocol):
    """Hook telemetry: sessions and their tool usages."""

    async def list_sessions(self, since_ms: int | None = None) -> list[HookSessionRecord]:
        ...

    async def list_tool_usages(self, since_ms: int | None = None) -> list[ToolUsageRecord]:
        ...


class TranscriptStore(Protocol):
    """Transcript metadata plus on-demand content."""

    async def list_transcripts(self, since_ms: int | None = None) -> list[TranscriptRecord]:
        ...

    async def read_transcript(self, transcript_id: str) -> ParsedTranscript | None:
        ...


class ManagedSessionStore(Protocol):
    """Runs started by the local launcher."""

    async def list_sessions(self, since_ms: int | None = None) -> list[ManagedSessionRecord]:
        ...


class ProjectStore(Protocol):
    """User-defined project definitions."""

    async def list_projects(self) -> list[ProjectRecord]:
        ...


def _iter_jsonl(path: Path) -> Iterator[tuple[int, dict[str, Any]]]:
    """Yield (line number, object) for each JSON object line; skip the rest."""
    with open(path, encoding="utf-8", errors="replace") as f:
        for lineno, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError:
                logger.warning(f"Skipping malformed line {path}:{lineno}")
                continue
            if isinstance(data, dict):
                yield lineno, data


def _normalize_or_skip(normalize: Callable[[dict[str, Any]], R], raw: dict[str, Any], where: str) -> R | None:
    try:
        return normalize(raw)
    except (RecordError, ValidationError) as e:
        logger.warning(f"Skipping invalid record at {where}: {e}")
        return None


def _hook_recent(record: HookSessionRecord, since_ms: int | None) -> bool:
    if since_ms is None:
        return True
    return (record.end_time or record.start_time) >= since_ms


def _transcript_recent(record: TranscriptRecord, since_ms: int | None) -> bool:
    if since_ms is None:
        return True
    return max(record.modified_at, record.end_time or 0) >= since_ms


def _managed_recent(record: ManagedSessionRecord, since_ms: int | None) -> bool:
    if since_ms is None:
        return True
    return (record.ended_at or record.started_at) >= since_ms


class FileHookStore:
    """Hook sessions and tool usages from JSONL files."""

    def __init__(self, data_dir: Path | str):
        self.hooks_dir = Path(data_dir).expanduser() / "hooks"

    def _load_sessions(self) -> list[HookSessionRecord]:
        # Raw dicts merged per session so end events can update start events
        merged: dict[str, dict[str, Any]] = {}
        for path in sorted(self.hooks_dir.glob("sessions*.jsonl")):
            for lineno, raw in _iter_jsonl(path):
                session_id = raw.get("sessionId") or raw.get("session_id")
                if not session_id:
                    logger.warning(f"Skipping hook session without id at {path}:{lineno}")
                    continue
                merged.setdefault(str(session_id), {}).update(
                    {k: v for k, v in raw.items() if v is not None}
                )

        sessions = []
        for session_id, raw in merged.items():
            record = _normalize_or_skip(normalize_hook_session, raw, f"hook session {session_id}")
            if record is not None:
                sessions.append(record)
        return sessions

    def _load_tool_usages(self) -> list[ToolUsageRecord]:
        usages: dict[str, ToolUsageRecord] = {}
        for path in sorted(self.hooks_dir.glob("tool_usages*.jsonl")):
            for lineno, raw in _iter_jsonl(path):
                record = _normalize_or_skip(normalize_tool_usage, raw, f"{path}:{lineno}")
                if record is not None:
                    usages[record.tool_use_id] = record
        return list(usages.values())

    async def list_sessions(self, since_ms: int | None = None) -> list[HookSessionRecord]:
        if not self.hooks_dir.exists():
            return []
        sessions = await asyncio.to_thread(self._load_sessions)
        return [s for s in sessions if _hook_recent(s, since_ms)]

    async def list_tool_usages(self, since_ms: int | None = None) -> list[ToolUsageRecord]:
        if not self.hooks_dir.exists():
            return []
        usages = await asyncio.to_thread(self._load_tool_usages)
        return [u for u in usages if since_ms is None or u.timestamp >= since_ms]


class FileTranscriptStore:
    """Agent transcripts discovered under the projects directory."""

    def __init__(self, transcripts_dir: Path | str, agent: str = "claude"):
        self.transcripts_dir = Path(transcripts_dir).expanduser()
        self.agent = agent

    def _find(self, transcript_id: str) -> Path | None:
        if not transcript_id or "/" in transcript_id or "\\" in transcript_id:
            logger.warning(f"Rejecting transcript id {transcript_id!r}")
            return None
        for path in sorted(self.transcripts_dir.glob(f"*/{glob.escape(transcript_id)}.jsonl")):
            return path
        return None

    def _scan(self, since_ms: int | None) -> list[TranscriptRecord]:
        records = []
        for path in sorted(self.transcripts_dir.glob("*/*.jsonl")):
            try:
                # mtime is the cheapest recency filter, checked before parsing
                if since_ms is not None and path.stat().st_mtime * 1000 < since_ms:
                    continue
                record = scan_transcript(path, agent=self.agent)
            except (OSError, ValidationError) as e:
                logger.warning(f"Skipping unreadable transcript {path}: {e}")
                continue
            if _transcript_recent(record, since_ms):
                records.append(record)
        return records

    def _parse(self, transcript_id: str) -> ParsedTranscript | None:
        path = self._find(transcript_id)
        if path is None:
            return None
        try:
            return TranscriptParser(path, agent=self.agent).parse()
        except OSError as e:
            logger.warning(f"Failed to read transcript {path}: {e}")
            return None

    async def list_transcripts(self, since_ms: int | None = None) -> list[TranscriptRecord]:
        if not self.transcripts_dir.exists():
            return []
        return await asyncio.to_thread(self._scan, since_ms)

    async def read_transcript(self, transcript_id: str) -> ParsedTranscript | None:
        if not self.transcripts_dir.exists():
            return None
        return await asyncio.to_thread(self._parse, transcript_id)


class FileManagedSessionStore:
    """Managed runs, one JSON file each."""

    def __init__(self, data_dir: Path | str):
        self.sessions_dir = Path(data_dir).expanduser() / "sessions"

    def _load(self) -> list[ManagedSessionRecord]:
        records = []
        for path in sorted(self.sessions_dir.glob("*.json")):
            try:
                raw = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Skipping unreadable managed session {path}: {e}")
                continue
            if not isinstance(raw, dict):
                continue
            record = _normalize_or_skip(normalize_managed_session, raw, str(path))
            if record is not None:
                records.append(record)
        return records

    async def list_sessions(self, since_ms: int | None = None) -> list[ManagedSessionRecord]:
        if not self.sessions_dir.exists():
            return []
        records = await asyncio.to_thread(self._load)
        return [r for r in records if _managed_recent(r, since_ms)]


class ConfigProjectStore:
    """Projects declared in the configuration file, in declaration order."""

    def __init__(self, projects: Iterable[dict[str, Any]]):
        self._raw = list(projects)

    async def list_projects(self) -> list[ProjectRecord]:
        projects = []
        for i, raw in enumerate(self._raw):
            if not isinstance(raw, dict):
                logger.warning(f"Skipping project #{i}: not an object")
                continue
            record = _normalize_or_skip(normalize_project, raw, f"project #{i}")
            if record is not None:
                projects.append(record)
        return projects


class InMemoryHookStore:
    def __init__(
        self,
        sessions: Iterable[HookSessionRecord] = (),
        tool_usages: Iterable[ToolUsageRecord] = (),
    ):
        self.sessions = list(sessions)
        self.tool_usages = list(tool_usages)

    async def list_sessions(self, since_ms: int | None = None) -> list[HookSessionRecord]:
        return [s for s in self.sessions if _hook_recent(s, since_ms)]

    async def list_tool_usages(self, since_ms: int | None = None) -> list[ToolUsageRecord]:
        return [u for u in self.tool_usages if since_ms is None or u.timestamp >= since_ms]


class InMemoryTranscriptStore:
    def __init__(
        self,
        transcripts: Iterable[TranscriptRecord] = (),
        contents: dict[str, ParsedTranscript] | None = None,
    ):
        self.transcripts = list(transcripts)
        self.contents = dict(contents or {})

    async def list_transcripts(self, since_ms: int | None = None) -> list[TranscriptRecord]:
        return [t for t in self.transcripts if _transcript_recent(t, since_ms)]

    async def read_transcript(self, transcript_id: str) -> ParsedTranscript | None:
        return self.contents.get(transcript_id)


class InMemoryManagedSessionStore:
    def __init__(self, sessions: Iterable[ManagedSessionRecord] = ()):
        self.sessions = list(sessions)

    async def list_sessions(self, since_ms: int | None = None) -> list[ManagedSessionRecord]:
        return [s for s in self.sessions if _managed_recent(s, since_ms)]


class InMemoryProjectStore:
    def __init__(self, projects: Iterable[ProjectRecord] = ()):
        self.projects = list(projects)

    async def list_projects(self) -> list[ProjectRecord]:
        return list(self.projects)


__all__ = [
    "HookStore",
    "TranscriptStore",
    "ManagedSessionStore",
    "ProjectStore",
    "FileHookStore",
    "FileTranscriptStore",
    "FileManagedSessionStore",
    "ConfigProjectStore",
    "InMemoryHookStore",
    "InMemoryTranscriptStore",
    "InMemoryManagedSessionStore",
    "InMemoryProjectStore",
]
