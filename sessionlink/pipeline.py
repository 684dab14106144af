"""
Contribution pipeline - listing and export orchestration.

Listing: read the four stores concurrently, correlate, attach managed runs
and projects, count.

Export: resolve the selected conversations (or raw hook sessions / local
transcripts) into content, sanitize, bundle, upload.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from .config import PipelineConfig
from .contrib import (
    AttestationError,
    BundleError,
    ContribSession,
    ContributorMeta,
    EmptyBundleError,
    Sanitizer,
    canonical_json,
    create_bundle,
    create_sanitizer,
    score_text,
    sha256_hex,
)
from .correlation import (
    CorrelatedConversation,
    CorrelationStats,
    attach_managed_sessions,
    attach_projects,
    correlate_sessions_with_transcripts,
    get_correlation_stats,
    group_tool_usages,
)
from .normalizer import ms_to_iso
from .serialization import (
    hook_session_to_dict,
    managed_session_to_dict,
    serialize_conversation,
    tool_usage_to_dict,
)
from .stores import (
    ConfigProjectStore,
    FileHookStore,
    FileManagedSessionStore,
    FileTranscriptStore,
    HookStore,
    InMemoryManagedSessionStore,
    InMemoryProjectStore,
    ManagedSessionStore,
    ProjectStore,
    TranscriptStore,
)
from .transcripts import ParsedTranscript
from .upload import HubUploader, Uploader, UploadRequest

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000


class ExportError(Exception):
    """
    Export failed before anything was published.

    code is one of: missing_fields, no_sessions, attestation, bundle_failed,
    upload_failed.
    """

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "error": self.message}


@dataclass
class ConversationListing:
    """Listing payload: the (limited) conversations plus stats over all of them."""

    conversations: list[CorrelatedConversation]
    stats: CorrelationStats

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessions": [serialize_conversation(c) for c in self.conversations],
            "stats": self.stats.to_dict(),
        }


@dataclass
class ExportRequest:
    """What to export, where to, and under which terms."""

    repo_id: str
    correlation_ids: list[str] = field(default_factory=list)
    session_ids: list[str] = field(default_factory=list)
    local_ids: list[str] = field(default_factory=list)
    create_pr: bool | None = None
    contributor_id: str = "anonymous"
    license: str = "CC-BY-4.0"
    ai_preference: str = "train-genai=deny"
    format: str | None = None
    rights_confirmed: bool = False
    reviewed_confirmed: bool = False

    @property
    def has_selection(self) -> bool:
        return bool(self.correlation_ids or self.session_ids or self.local_ids)


@dataclass
class ExportResult:
    """Successful export."""

    bundle_id: str
    session_count: int
    redaction_count: int
    url: str | None = None
    pr_number: int | None = None
    commit_sha: str | None = None
    is_pull_request: bool = False
    was_fallback: bool = False
    skipped_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "bundle_id": self.bundle_id,
            "session_count": self.session_count,
            "redaction_count": self.redaction_count,
            "url": self.url,
            "pr_number": self.pr_number,
            "commit_sha": self.commit_sha,
            "is_pull_request": self.is_pull_request,
            "was_fallback": self.was_fallback,
            "skipped_count": self.skipped_count,
        }


def _now_ms() -> int:
    return int(time.time() * 1000)


def _unique(ids: Sequence[str]) -> list[str]:
    """Drop repeated ids, keeping first-seen order."""
    return list(dict.fromkeys(ids))


def _cost_estimate(transcript: ParsedTranscript, hook_cost: float | None = None) -> dict[str, Any]:
    return {
        "total_input_tokens": transcript.total_input_tokens,
        "total_output_tokens": transcript.total_output_tokens,
        "estimated_cost_usd": hook_cost,
    }


class ContribPipeline:
    """
    Drives listing and export over explicit store objects.

    Correlation, sanitization and bundling are synchronous; only store reads
    and the upload are awaited.
    """

    def __init__(
        self,
        hook_store: HookStore,
        transcript_store: TranscriptStore,
        managed_store: ManagedSessionStore | None = None,
        project_store: ProjectStore | None = None,
        uploader: Uploader | None = None,
        config: PipelineConfig | None = None,
    ):
        self.config = config or PipelineConfig()
        self.hook_store = hook_store
        self.transcript_store = transcript_store
        self.managed_store = managed_store or InMemoryManagedSessionStore()
        self.project_store = project_store or InMemoryProjectStore()
        self.uploader = uploader or HubUploader(self.config.hub)

    @classmethod
    def from_config(cls, config: PipelineConfig | None = None) -> "ContribPipeline":
        """File-backed pipeline reading the configured directories."""
        config = config or PipelineConfig.load()
        return cls(
            hook_store=FileHookStore(config.stores.data_path),
            transcript_store=FileTranscriptStore(config.stores.transcripts_path),
            managed_store=FileManagedSessionStore(config.stores.data_path),
            project_store=ConfigProjectStore(config.projects),
            uploader=HubUploader(config.hub),
            config=config,
        )

    async def _correlate(self, since_ms: int | None) -> list[CorrelatedConversation]:
        hooks, usages, transcripts, managed, projects = await asyncio.gather(
            self.hook_store.list_sessions(since_ms),
            self.hook_store.list_tool_usages(since_ms),
            self.transcript_store.list_transcripts(since_ms),
            self.managed_store.list_sessions(since_ms),
            self.project_store.list_projects(),
        )
        logger.debug(
            f"Loaded {len(hooks)} hook sessions, {len(usages)} tool usages, "
            f"{len(transcripts)} transcripts, {len(managed)} managed runs, {len(projects)} projects"
        )

        conversations = correlate_sessions_with_transcripts(
            hooks, transcripts, group_tool_usages(usages), self.config.correlation
        )
        if managed:
            conversations = attach_managed_sessions(conversations, managed, self.config.correlation)
        if projects:
            conversations = attach_projects(conversations, projects)
        return conversations

    async def list_conversations(self, days: int | None = None, limit: int = 100) -> ConversationListing:
        """
        Correlated view of recent activity.

        Args:
            days: Look-back window (defaults to config.stores.default_days)
            limit: Maximum conversations returned; stats cover all of them

        Returns:
            ConversationListing, newest first
        """
        days = self.config.stores.default_days if days is None else days
        conversations = await self._correlate(_now_ms() - days * DAY_MS)
        stats = get_correlation_stats(conversations)
        logger.info(f"Listed {stats.total} conversations ({stats.exact} exact, {stats.unmatched} unmatched)")
        return ConversationListing(conversations=conversations[: max(0, limit)], stats=stats)

    def _make_session(
        self,
        sanitizer: Sanitizer,
        session_id: str,
        content: dict[str, Any],
        source: str,
        mtime_ms: int,
        source_path_hint: str | None,
        entry_types: dict[str, int],
    ) -> ContribSession | None:
        try:
            content_str = canonical_json(content)
        except (TypeError, ValueError) as e:
            logger.warning(f"Skipping session {session_id}: content not serializable ({e})")
            return None

        preview_chars = self.config.bundle.preview_chars
        preview = content_str[:preview_chars]
        sanitized = sanitizer.redact_object(content)
        # Cut after redaction so no secret is split at the boundary
        preview_redacted = canonical_json(sanitized)[:preview_chars]
        return ContribSession(
            session_id=session_id,
            source=source,
            raw_sha256=sha256_hex(content_str),
            mtime_utc=ms_to_iso(mtime_ms) or "",
            data=content,
            preview=preview,
            score=score_text(preview),
            approx_chars=len(content_str),
            source_path_hint=sanitizer.redact_text(source_path_hint) if source_path_hint else "unknown",
            file_path=f"sessions/{session_id}.json",
            entry_types=entry_types,
            sanitized=sanitized,
            preview_redacted=preview_redacted,
        )

    async def _conversation_session(
        self, conv: CorrelatedConversation, sanitizer: Sanitizer
    ) -> ContribSession | None:
        content: dict[str, Any] = {"correlation_id": conv.correlation_id}
        entry_types: dict[str, int] = {"session": 1}
        session_id = conv.correlation_id
        source = conv.agent or "unknown"
        mtime_ms = conv.start_time
        path_hint: str | None = conv.cwd or None

        hook = conv.hook_session
        if hook is not None:
            content.update(hook_session_to_dict(hook))
            content["tool_usages"] = [tool_usage_to_dict(u) for u in conv.tool_usages]
            session_id = hook.session_id
            source = hook.source or "claude"
            mtime_ms = hook.start_time
            path_hint = hook.transcript_path or hook.cwd
            entry_types["tool_usage"] = len(conv.tool_usages)

        if conv.transcript is not None:
            parsed = await self.transcript_store.read_transcript(conv.transcript.id)
            if parsed is not None:
                content["messages"] = [m.to_dict() for m in parsed.messages]
                content["agent"] = parsed.agent
                content["path"] = parsed.path
                content["cost_estimate"] = _cost_estimate(
                    parsed, hook.estimated_cost_usd if hook is not None else None
                )
                entry_types["message"] = len(parsed.messages)
                if hook is None:
                    session_id = conv.transcript.id
                    source = parsed.agent
                    mtime_ms = conv.transcript.modified_at
                    path_hint = parsed.path

        if conv.managed_session is not None:
            content["managed_session"] = managed_session_to_dict(conv.managed_session)
            if hook is None and conv.transcript is None:
                session_id = conv.managed_session.id

        return self._make_session(sanitizer, session_id, content, source, mtime_ms, path_hint, entry_types)

    async def prepare_sessions(
        self,
        correlation_ids: Sequence[str] = (),
        session_ids: Sequence[str] = (),
        local_ids: Sequence[str] = (),
        sanitizer: Sanitizer | None = None,
    ) -> list[ContribSession]:
        """
        Build export content for the selected items.

        Correlation ids take precedence; when given, session_ids and
        local_ids are ignored. Unknown ids are skipped.
        """
        sanitizer = sanitizer or create_sanitizer(config=self.config.redaction)
        # Each id is prepared once
        correlation_ids = _unique(correlation_ids)
        session_ids = _unique(session_ids)
        local_ids = _unique(local_ids)
        sessions: list[ContribSession] = []

        if correlation_ids:
            by_id = {c.correlation_id: c for c in await self._correlate(None)}
            for correlation_id in correlation_ids:
                conv = by_id.get(correlation_id)
                if conv is None:
                    logger.warning(f"Unknown correlation id {correlation_id}")
                    continue
                session = await self._conversation_session(conv, sanitizer)
                if session is not None:
                    sessions.append(session)
            return sessions

        if session_ids:
            hooks, usages = await asyncio.gather(
                self.hook_store.list_sessions(None),
                self.hook_store.list_tool_usages(None),
            )
            hook_map = {h.session_id: h for h in hooks}
            grouped = group_tool_usages(usages)
            for session_id in session_ids:
                hook = hook_map.get(session_id)
                if hook is None:
                    logger.warning(f"Unknown hook session {session_id}")
                    continue
                hook_usages = sorted(grouped.get(session_id, []), key=lambda u: (u.timestamp, u.tool_use_id))
                content = {
                    **hook_session_to_dict(hook),
                    "tool_usages": [tool_usage_to_dict(u) for u in hook_usages],
                }
                session = self._make_session(
                    sanitizer,
                    session_id,
                    content,
                    hook.source or "claude",
                    hook.start_time,
                    hook.transcript_path or hook.cwd,
                    {"session": 1, "tool_usage": len(hook_usages)},
                )
                if session is not None:
                    sessions.append(session)

        if local_ids:
            metadata = {t.id: t for t in await self.transcript_store.list_transcripts(None)}
            for local_id in local_ids:
                parsed = await self.transcript_store.read_transcript(local_id)
                if parsed is None:
                    logger.warning(f"Unknown transcript {local_id}")
                    continue
                meta = metadata.get(local_id)
                content = {
                    "source": "local",
                    "agent": parsed.agent,
                    "session_id": local_id,
                    "path": parsed.path,
                    "messages": [m.to_dict() for m in parsed.messages],
                    "cost_estimate": _cost_estimate(parsed),
                }
                mtime_ms = meta.modified_at if meta is not None else (parsed.end_time or 0)
                session = self._make_session(
                    sanitizer,
                    local_id,
                    content,
                    parsed.agent,
                    mtime_ms,
                    parsed.path,
                    {"session": 1, "message": len(parsed.messages)},
                )
                if session is not None:
                    sessions.append(session)

        return sessions

    async def export(self, request: ExportRequest) -> ExportResult:
        """
        Sanitize, bundle and upload the selected sessions.

        Raises:
            ExportError: with a code describing which stage refused
        """
        if not request.repo_id or not request.has_selection:
            raise ExportError("missing_fields", "Missing required fields: repo_id and at least one session")

        contributor = ContributorMeta(
            contributor_id=request.contributor_id or "anonymous",
            license=request.license or "CC-BY-4.0",
            ai_preference=request.ai_preference or "train-genai=deny",
            rights_confirmed=request.rights_confirmed,
            reviewed_confirmed=request.reviewed_confirmed,
        )
        if not contributor.attested:
            raise ExportError("attestation", "Contributor must confirm rights and review before export")

        sanitizer = create_sanitizer(config=self.config.redaction)
        sessions = await self.prepare_sessions(
            request.correlation_ids, request.session_ids, request.local_ids, sanitizer
        )
        if not sessions:
            raise ExportError("no_sessions", "No valid sessions found")

        report = sanitizer.get_report()

        try:
            bundle = create_bundle(
                sessions,
                contributor,
                self.config.bundle.app_version,
                report,
                format=request.format or self.config.bundle.default_format,
                quality_config=self.config.quality,
                schema_version=self.config.bundle.schema_version,
                jsonl_max_sessions=self.config.bundle.jsonl_max_sessions,
            )
        except EmptyBundleError as e:
            raise ExportError("no_sessions", str(e)) from e
        except AttestationError as e:
            raise ExportError("attestation", str(e)) from e
        except BundleError as e:
            raise ExportError("bundle_failed", str(e)) from e

        create_pr = self.config.hub.create_pr if request.create_pr is None else request.create_pr
        result = await self.uploader.upload(
            UploadRequest(
                content=bundle.bundle_bytes,
                bundle_format=bundle.bundle_format,
                bundle_id=bundle.bundle_id,
                repo_id=request.repo_id,
                create_pr=create_pr,
                commit_message=f"Add contribution bundle {bundle.bundle_id[:16]}",
                pr_title=f"Contribution: {bundle.session_count} session(s)",
                pr_description=(
                    f"Bundle ID: {bundle.bundle_id}\n"
                    f"Sessions: {bundle.session_count}\n"
                    f"Redactions: {report.total_redactions}"
                ),
            )
        )
        if not result.success:
            raise ExportError("upload_failed", result.error or "Upload failed")

        logger.info(f"Exported bundle {bundle.bundle_id[:16]} ({bundle.session_count} sessions) to {result.url}")
        return ExportResult(
            bundle_id=bundle.bundle_id,
            session_count=bundle.session_count,
            redaction_count=report.total_redactions,
            url=result.url,
            pr_number=result.pr_number,
            commit_sha=result.commit_sha,
            is_pull_request=result.is_pull_request,
            was_fallback=result.was_fallback,
            skipped_count=bundle.skipped_count,
        )


__all__ = [
    "ContribPipeline",
    "ConversationListing",
    "ExportRequest",
    "ExportResult",
    "ExportError",
]
