"""Data shapes for the contribution (export) pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

BundleFormat = Literal["zip", "jsonl"]
RequestedFormat = Literal["zip", "jsonl", "auto"]

REDACTION_CATEGORIES = ("secrets", "pii", "paths", "high_entropy", "custom")


@dataclass
class RedactionReport:
    """
    What the sanitizer removed, by category.

    residue_warnings lists coverage gaps (content the sanitizer could not
    inspect). blocked marks a batch that must not be shared: a requested
    redaction (an invalid custom pattern) could not be applied.
    """

    counts: dict[str, int] = field(default_factory=lambda: {c: 0 for c in REDACTION_CATEGORIES})
    residue_warnings: list[str] = field(default_factory=list)
    blocked: bool = False

    @property
    def total_redactions(self) -> int:
        return sum(self.counts.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "counts": dict(sorted(self.counts.items())),
            "total_redactions": self.total_redactions,
            "residue_warnings": list(self.residue_warnings),
            "blocked": self.blocked,
        }


@dataclass
class ContributorMeta:
    """
    Who is contributing and under which terms.

    The attestation flags must be confirmed by the user; they default to
    False and are never inferred.
    """

    contributor_id: str = "anonymous"
    license: str = "CC-BY-4.0"
    ai_preference: str = "train-genai=deny"
    rights_statement: str = "I have the right to share these transcripts"
    rights_confirmed: bool = False
    reviewed_confirmed: bool = False

    @property
    def attested(self) -> bool:
        return self.rights_confirmed and self.reviewed_confirmed

    def to_dict(self) -> dict[str, Any]:
        return {
            "contributor_id": self.contributor_id,
            "license": self.license,
            "ai_preference": self.ai_preference,
            "rights_statement": self.rights_statement,
            "rights_confirmed": self.rights_confirmed,
            "reviewed_confirmed": self.reviewed_confirmed,
        }


@dataclass
class ContribSession:
    """A conversation's content snapshot prepared for export."""

    session_id: str
    source: str
    raw_sha256: str
    mtime_utc: str
    data: Any                     # Raw content, never shipped
    preview: str                  # Raw preview, never shipped
    score: int                    # Preview quality score 0-100
    approx_chars: int
    source_path_hint: str
    file_path: str                # Destination inside the bundle
    entry_types: dict[str, int] = field(default_factory=dict)
    sanitized: Any = None         # Redacted content, shipped
    preview_redacted: str = ""    # Redacted preview, shipped


@dataclass(frozen=True)
class SkippedSession:
    """A session excluded from a bundle, and why."""

    session_id: str
    reason: str


@dataclass
class BundleResult:
    """A content-addressed export artifact."""

    bundle_id: str
    bundle_bytes: bytes
    bundle_format: BundleFormat
    session_count: int
    skipped: list[SkippedSession] = field(default_factory=list)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)


__all__ = [
    "BundleFormat",
    "RequestedFormat",
    "REDACTION_CATEGORIES",
    "RedactionReport",
    "ContributorMeta",
    "ContribSession",
    "SkippedSession",
    "BundleResult",
]
