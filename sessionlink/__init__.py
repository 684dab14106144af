"""sessionlink: session correlation and contribution pipeline.

Reconciles three views of the same coding-agent session into one
confidence-scored conversation:
- Hook telemetry: sessions and tool usages captured by agent hooks
- Transcripts: the agent's own JSONL conversation files
- Managed runs: sessions started by the local launcher

Selected conversations can then be sanitized, scored, bundled and
contributed to a shared dataset.
"""

__version__ = "0.1.0"

# Records
from .records import (
    HookSessionRecord,
    ManagedSessionRecord,
    ProjectRecord,
    ToolUsageRecord,
    TranscriptRecord,
)
from .normalizer import RecordError

# Correlation
from .correlation import (
    CorrelatedConversation,
    CorrelationStats,
    MatchType,
    attach_managed_sessions,
    attach_projects,
    correlate_sessions_with_transcripts,
    get_correlation_stats,
)

# Contribution
from .contrib import (
    AttestationError,
    BundleResult,
    ContribSession,
    ContributorMeta,
    EmptyBundleError,
    RedactionReport,
    Sanitizer,
    create_bundle,
    create_sanitizer,
    score_session,
    score_text,
)

# Pipeline & Config
from .config import PipelineConfig, default_config
from .pipeline import ContribPipeline, ConversationListing, ExportError, ExportRequest, ExportResult

__all__ = [
    # Records
    "HookSessionRecord",
    "ToolUsageRecord",
    "TranscriptRecord",
    "ManagedSessionRecord",
    "ProjectRecord",
    "RecordError",
    # Correlation
    "CorrelatedConversation",
    "CorrelationStats",
    "MatchType",
    "correlate_sessions_with_transcripts",
    "attach_managed_sessions",
    "attach_projects",
    "get_correlation_stats",
    # Contribution
    "Sanitizer",
    "create_sanitizer",
    "RedactionReport",
    "ContributorMeta",
    "ContribSession",
    "BundleResult",
    "create_bundle",
    "score_text",
    "score_session",
    "EmptyBundleError",
    "AttestationError",
    # Pipeline & Config
    "ContribPipeline",
    "ConversationListing",
    "ExportRequest",
    "ExportResult",
    "ExportError",
    "PipelineConfig",
    "default_config",
]
