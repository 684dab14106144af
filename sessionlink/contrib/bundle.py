"""
Bundle Builder - content-addressed export artifacts.

A bundle is either line-delimited JSON (one session per line) or a ZIP with a
manifest plus one file per session. Identical inputs produce an identical
bundle_id and identical bytes: JSON is serialized with sorted keys and ZIP
entries carry fixed timestamps and ordering.
"""

from __future__ import annotations

import hashlib
import io
import json
import logging
import re
import zipfile
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any

from ..config import QualityConfig
from .models import (
    BundleFormat,
    BundleResult,
    ContribSession,
    ContributorMeta,
    RedactionReport,
    RequestedFormat,
    SkippedSession,
)
from .quality import QualityScore, score_session

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"
SESSIONS_DIR = "sessions"
JSONL_MAX_SESSIONS = 3

# Earliest timestamp a ZIP entry can carry
_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)
_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class BundleError(Exception):
    """Bundle could not be built."""
    pass


class EmptyBundleError(BundleError):
    """No eligible sessions remained after filtering."""

    def __init__(self, message: str = "No valid sessions found", skipped: list[SkippedSession] | None = None):
        super().__init__(message)
        self.skipped = skipped or []


class AttestationError(BundleError):
    """Contributor has not confirmed rights and review."""
    pass


def canonical_json(value: Any) -> str:
    """Deterministic JSON: sorted keys, compact, no NaN."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, allow_nan=False)


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def resolve_format(requested: RequestedFormat | str, session_count: int, jsonl_max: int = JSONL_MAX_SESSIONS) -> BundleFormat:
    """
    Pick the concrete format.

    "auto" favors human-inspectable JSONL for small exports and ZIP otherwise.
    """
    if requested == "jsonl":
        return "jsonl"
    if requested == "zip":
        return "zip"
    if requested not in ("auto", None, ""):
        raise BundleError(f"Unknown bundle format: {requested}")
    return "jsonl" if session_count <= jsonl_max else "zip"


def compute_bundle_id(
    schema_version: str,
    app_version: str,
    contributor: ContributorMeta,
    entries: list[tuple[str, str, str]],
) -> str:
    """
    Deterministic bundle ID.

    Same (schema, app, contributor, session hashes) = same bundle_id,
    regardless of session order.
    """
    content = canonical_json(
        {
            "schema_version": schema_version,
            "app_version": app_version,
            "contributor": contributor.to_dict(),
            "sessions": sorted(entries),
        }
    )
    return sha256_hex(content)


@dataclass
class _PreparedSession:
    session: ContribSession
    file_path: str
    raw_sha256: str
    sanitized_sha256: str
    quality: QualityScore


def _bundle_file_path(session: ContribSession, taken: set[str], raw_sha256: str) -> str:
    hint = PurePosixPath(session.file_path).name if session.file_path else ""
    stem = hint[:-5] if hint.endswith(".json") else (hint or session.session_id)
    stem = _UNSAFE_NAME_CHARS.sub("_", stem).strip("._")[:120] or "session"

    path = f"{SESSIONS_DIR}/{stem}.json"
    if path in taken:
        path = f"{SESSIONS_DIR}/{stem}-{raw_sha256[:8]}.json"
    taken.add(path)
    return path


def _prepare(
    sessions: list[ContribSession],
    quality_config: QualityConfig,
) -> tuple[list[_PreparedSession], list[SkippedSession]]:
    prepared: list[_PreparedSession] = []
    skipped: list[SkippedSession] = []
    seen_ids: set[str] = set()
    taken_paths: set[str] = set()

    for session in sessions:
        if session.session_id in seen_ids:
            skipped.append(SkippedSession(session.session_id, "duplicate session id"))
            continue
        if session.sanitized is None:
            skipped.append(SkippedSession(session.session_id, "session was not sanitized"))
            continue

        try:
            raw_sha256 = sha256_hex(canonical_json(session.data))
            sanitized_sha256 = sha256_hex(canonical_json(session.sanitized))
            quality = score_session(session.data, quality_config)
        except (TypeError, ValueError) as e:
            logger.warning(f"Skipping session {session.session_id}: {e}")
            skipped.append(SkippedSession(session.session_id, f"serialization failed: {e}"))
            continue

        seen_ids.add(session.session_id)
        prepared.append(
            _PreparedSession(
                session=session,
                file_path=_bundle_file_path(session, taken_paths, raw_sha256),
                raw_sha256=raw_sha256,
                sanitized_sha256=sanitized_sha256,
                quality=quality,
            )
        )

    return prepared, skipped


def _session_record(item: _PreparedSession, bundle_id: str) -> dict[str, Any]:
    session = item.session
    return {
        "bundle_id": bundle_id,
        "session_id": session.session_id,
        "source": session.source,
        "file_path": item.file_path,
        "source_path_hint": session.source_path_hint,
        "mtime_utc": session.mtime_utc,
        "raw_sha256": item.raw_sha256,
        "sanitized_sha256": item.sanitized_sha256,
        "preview": session.preview_redacted,
        "score": session.score,
        "quality": item.quality.to_dict(),
        "approx_chars": session.approx_chars,
        "entry_types": dict(sorted(session.entry_types.items())),
        "data": session.sanitized,
    }


def _build_jsonl(prepared: list[_PreparedSession], bundle_id: str) -> bytes:
    lines = [
        json.dumps(_session_record(item, bundle_id), sort_keys=True, ensure_ascii=False)
        for item in prepared
    ]
    return ("\n".join(lines) + "\n").encode("utf-8")


def _zip_entry(zf: zipfile.ZipFile, name: str, payload: str) -> None:
    info = zipfile.ZipInfo(name, date_time=_ZIP_EPOCH)
    info.compress_type = zipfile.ZIP_DEFLATED
    info.external_attr = 0o644 << 16
    zf.writestr(info, payload.encode("utf-8"))


def _build_zip(
    prepared: list[_PreparedSession],
    skipped: list[SkippedSession],
    bundle_id: str,
    contributor: ContributorMeta,
    app_version: str,
    schema_version: str,
    redaction: RedactionReport,
) -> bytes:
    manifest = {
        "schema_version": schema_version,
        "bundle_id": bundle_id,
        "app_version": app_version,
        "contributor": contributor.to_dict(),
        "redaction": redaction.to_dict(),
        "session_count": len(prepared),
        "sessions": [
            {
                "session_id": item.session.session_id,
                "file_path": item.file_path,
                "source": item.session.source,
                "mtime_utc": item.session.mtime_utc,
                "raw_sha256": item.raw_sha256,
                "sanitized_sha256": item.sanitized_sha256,
                "score": item.session.score,
                "quality": item.quality.overall,
                "approx_chars": item.session.approx_chars,
                "entry_types": dict(sorted(item.session.entry_types.items())),
            }
            for item in prepared
        ],
        "skipped": [{"session_id": s.session_id, "reason": s.reason} for s in skipped],
    }

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        _zip_entry(zf, MANIFEST_NAME, json.dumps(manifest, indent=2, sort_keys=True, ensure_ascii=False))
        for item in prepared:
            record = _session_record(item, bundle_id)
            _zip_entry(zf, item.file_path, json.dumps(record, indent=2, sort_keys=True, ensure_ascii=False))
    return buffer.getvalue()


def create_bundle(
    sessions: list[ContribSession],
    contributor: ContributorMeta,
    app_version: str,
    redaction: RedactionReport,
    format: RequestedFormat | str = "auto",
    quality_config: QualityConfig | None = None,
    schema_version: str = "1",
    jsonl_max_sessions: int = JSONL_MAX_SESSIONS,
) -> BundleResult:
    """
    Assemble sanitized sessions into an export bundle.

    Sessions that cannot be serialized or hashed are skipped, never fatal.

    Args:
        sessions: Ordered sessions; order is kept in the output
        contributor: Contributor metadata with confirmed attestation
        app_version: Producing application version
        redaction: Aggregated redaction report for the batch
        format: "jsonl", "zip" or "auto"
        quality_config: Weight tables for the composite score
        schema_version: Bundle schema version
        jsonl_max_sessions: Largest session count "auto" still ships as JSONL

    Returns:
        BundleResult with bundle_id, bytes, concrete format and skipped list

    Raises:
        AttestationError: rights/review not confirmed
        BundleError: redaction report is blocked, or the format is unknown
        EmptyBundleError: nothing left to bundle
    """
    if not contributor.attested:
        raise AttestationError("Contributor must confirm rights and review before export")
    if redaction.blocked:
        raise BundleError(
            "Redaction incomplete, refusing to bundle: " + "; ".join(redaction.residue_warnings)
        )

    prepared, skipped = _prepare(list(sessions), quality_config or QualityConfig())
    if not prepared:
        raise EmptyBundleError(skipped=skipped)

    bundle_format = resolve_format(format, len(prepared), jsonl_max_sessions)
    bundle_id = compute_bundle_id(
        schema_version,
        app_version,
        contributor,
        [(p.session.session_id, p.raw_sha256, p.sanitized_sha256) for p in prepared],
    )

    if bundle_format == "jsonl":
        bundle_bytes = _build_jsonl(prepared, bundle_id)
    else:
        bundle_bytes = _build_zip(
            prepared, skipped, bundle_id, contributor, app_version, schema_version, redaction
        )

    logger.info(
        f"Built {bundle_format} bundle {bundle_id[:16]} with {len(prepared)} session(s), "
        f"{len(skipped)} skipped"
    )
    return BundleResult(
        bundle_id=bundle_id,
        bundle_bytes=bundle_bytes,
        bundle_format=bundle_format,
        session_count=len(prepared),
        skipped=skipped,
    )


__all__ = [
    "BundleError",
    "EmptyBundleError",
    "AttestationError",
    "canonical_json",
    "sha256_hex",
    "resolve_format",
    "compute_bundle_id",
    "create_bundle",
]
