"""Contribution layer - sanitize, score and bundle sessions for sharing."""

from .bundle import (
    AttestationError,
    BundleError,
    EmptyBundleError,
    canonical_json,
    compute_bundle_id,
    create_bundle,
    resolve_format,
    sha256_hex,
)
from .models import (
    REDACTION_CATEGORIES,
    BundleResult,
    ContribSession,
    ContributorMeta,
    RedactionReport,
    SkippedSession,
)
from .quality import QualityScore, get_quality_classification, score_session, score_text
from .sanitizer import Sanitizer, create_sanitizer

__all__ = [
    "REDACTION_CATEGORIES",
    "RedactionReport",
    "ContributorMeta",
    "ContribSession",
    "SkippedSession",
    "BundleResult",
    "Sanitizer",
    "create_sanitizer",
    "QualityScore",
    "score_text",
    "score_session",
    "get_quality_classification",
    "BundleError",
    "EmptyBundleError",
    "AttestationError",
    "canonical_json",
    "sha256_hex",
    "resolve_format",
    "compute_bundle_id",
    "create_bundle",
]
