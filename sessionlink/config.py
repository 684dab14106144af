"""
Configuration management for sessionlink.

Scoring weights, match thresholds and store locations are data, loaded from
~/.agentwatch/sessionlink-config.json with environment overrides.
"""

import json
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

# Auto-load .env from the working directory
load_dotenv()

CONFIG_DIR = Path.home() / ".agentwatch"
CONFIG_PATH = CONFIG_DIR / "sessionlink-config.json"


def _filter_dataclass_fields(data: dict[str, Any], cls: type) -> dict[str, Any]:
    """Filter dict to only include fields that exist in the dataclass."""
    valid_fields = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in valid_fields}


@dataclass
class CorrelationConfig:
    """
    Weights and thresholds for hook/transcript matching.

    Sub-match weights add up to the match score (0-100). A candidate below
    uncertain_threshold is not a match at all.
    """

    path_weight: float = 35.0
    time_weight: float = 35.0
    cwd_weight: float = 20.0
    tool_count_weight: float = 10.0

    exact_threshold: float = 80.0
    confident_threshold: float = 60.0
    uncertain_threshold: float = 50.0

    time_tolerance_ms: int = 5 * 60 * 1000
    tool_count_ratio_min: float = 1.0
    tool_count_ratio_max: float = 4.0


@dataclass
class RedactionConfig:
    """Which redaction categories are enabled, plus entropy tuning."""

    redact_secrets: bool = True
    redact_pii: bool = True
    redact_paths: bool = True
    enable_high_entropy: bool = True
    custom_regex: list[str] = field(default_factory=list)
    entropy_threshold: float = 4.0  # bits per character
    entropy_min_length: int = 32


DEFAULT_DIMENSION_WEIGHTS: dict[str, float] = {
    "completion": 35,
    "code_quality": 25,
    "efficiency": 25,
    "safety": 15,
}

DEFAULT_SIGNAL_WEIGHTS: dict[str, float] = {
    "no_failures": 30,
    "has_commits": 25,
    "normal_end": 20,
    "reasonable_tool_count": 15,
    "healthy_pacing": 10,
    "no_dangerous_ops": 10,
}

DEFAULT_DIMENSION_SIGNALS: dict[str, list[str]] = {
    "completion": ["normal_end", "has_commits"],
    "code_quality": ["no_failures", "has_commits"],
    "efficiency": ["reasonable_tool_count", "healthy_pacing"],
    "safety": ["no_dangerous_ops", "no_failures"],
}


@dataclass
class QualityConfig:
    """
    Weight tables for the composite quality score.

    dimension_weights: top-level dimensions, combined into the overall score
    signal_weights: heuristic signals, combined into each dimension
    dimension_signals: which signals feed which dimension
    """

    dimension_weights: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_DIMENSION_WEIGHTS))
    signal_weights: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_SIGNAL_WEIGHTS))
    dimension_signals: dict[str, list[str]] = field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_DIMENSION_SIGNALS.items()}
    )
    max_reasonable_tools: int = 200
    max_tools_per_minute: float = 30.0


@dataclass
class BundleConfig:
    """Bundle defaults."""

    app_version: str = "sessionlink-0.1.0"
    schema_version: str = "1"
    default_format: str = "auto"  # "auto" | "jsonl" | "zip"
    preview_chars: int = 500
    jsonl_max_sessions: int = 3


@dataclass
class StoreConfig:
    """Where the file-backed stores read from."""

    data_dir: str = "~/.agentwatch"
    transcripts_dir: str = "~/.claude/projects"
    default_days: int = 30

    @property
    def data_path(self) -> Path:
        return Path(os.path.expanduser(self.data_dir))

    @property
    def transcripts_path(self) -> Path:
        return Path(os.path.expanduser(self.transcripts_dir))


@dataclass
class HubConfig:
    """Upload destination settings."""

    endpoint: str = "https://huggingface.co"
    repo_id: str = ""
    token: str = ""
    create_pr: bool = True
    timeout_seconds: float = 60.0


@dataclass
class PipelineConfig:
    """Complete sessionlink configuration."""

    correlation: CorrelationConfig = field(default_factory=CorrelationConfig)
    redaction: RedactionConfig = field(default_factory=RedactionConfig)
    quality: QualityConfig = field(default_factory=QualityConfig)
    bundle: BundleConfig = field(default_factory=BundleConfig)
    stores: StoreConfig = field(default_factory=StoreConfig)
    hub: HubConfig = field(default_factory=HubConfig)
    projects: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def load(cls, path: Path | None = None) -> "PipelineConfig":
        """
        Load configuration from file, then apply environment overrides.

        Args:
            path: Optional config file path. Defaults to ~/.agentwatch/sessionlink-config.json

        Returns:
            PipelineConfig with user settings merged over defaults
        """
        if path is None:
            path = CONFIG_PATH

        data: dict[str, Any] = {}
        if path.exists():
            try:
                data = json.loads(path.read_text())
            except (json.JSONDecodeError, OSError):
                # Use defaults on error
                data = {}

        quality_data = data.get("quality", {})
        quality = QualityConfig(**_filter_dataclass_fields(quality_data, QualityConfig))
        # Partial weight tables extend the defaults instead of replacing them
        quality.dimension_weights = {**DEFAULT_DIMENSION_WEIGHTS, **quality_data.get("dimension_weights", {})}
        quality.signal_weights = {**DEFAULT_SIGNAL_WEIGHTS, **quality_data.get("signal_weights", {})}
        quality.dimension_signals = {
            **{k: list(v) for k, v in DEFAULT_DIMENSION_SIGNALS.items()},
            **quality_data.get("dimension_signals", {}),
        }

        config = cls(
            correlation=CorrelationConfig(**_filter_dataclass_fields(data.get("correlation", {}), CorrelationConfig)),
            redaction=RedactionConfig(**_filter_dataclass_fields(data.get("redaction", {}), RedactionConfig)),
            quality=quality,
            bundle=BundleConfig(**_filter_dataclass_fields(data.get("bundle", {}), BundleConfig)),
            stores=StoreConfig(**_filter_dataclass_fields(data.get("stores", {}), StoreConfig)),
            hub=HubConfig(**_filter_dataclass_fields(data.get("hub", {}), HubConfig)),
            projects=list(data.get("projects", [])),
        )
        config.apply_env()
        return config

    def apply_env(self) -> None:
        """Apply environment variable overrides."""
        data_dir = os.getenv("SESSIONLINK_DATA_DIR")
        if data_dir:
            self.stores.data_dir = data_dir

        transcripts_dir = os.getenv("SESSIONLINK_TRANSCRIPTS_DIR")
        if transcripts_dir:
            self.stores.transcripts_dir = transcripts_dir

        token = os.getenv("HF_TOKEN")
        if token and not self.hub.token:
            self.hub.token = token

        endpoint = os.getenv("HF_ENDPOINT")
        if endpoint:
            self.hub.endpoint = endpoint

    def save(self, path: Path | None = None) -> None:
        """Save configuration to file. The hub token is never written."""
        if path is None:
            path = CONFIG_PATH

        path.parent.mkdir(parents=True, exist_ok=True)

        hub = asdict(self.hub)
        hub.pop("token", None)

        with open(path, "w") as f:
            json.dump(
                {
                    "correlation": asdict(self.correlation),
                    "redaction": asdict(self.redaction),
                    "quality": asdict(self.quality),
                    "bundle": asdict(self.bundle),
                    "stores": asdict(self.stores),
                    "hub": hub,
                    "projects": self.projects,
                },
                f,
                indent=2,
            )


# Default configuration instance
default_config = PipelineConfig()
