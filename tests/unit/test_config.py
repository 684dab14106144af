"""Tests for configuration loading."""

import json

import pytest

from sessionlink.config import (
    DEFAULT_SIGNAL_WEIGHTS,
    PipelineConfig,
)

ENV_VARS = ("SESSIONLINK_DATA_DIR", "SESSIONLINK_TRANSCRIPTS_DIR", "HF_TOKEN", "HF_ENDPOINT")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestLoad:
    def test_defaults_when_missing(self, tmp_path):
        config = PipelineConfig.load(tmp_path / "missing.json")

        assert config.correlation.path_weight == 35.0
        assert config.correlation.exact_threshold == 80.0
        assert config.correlation.time_tolerance_ms == 300_000
        assert config.bundle.default_format == "auto"
        assert config.hub.create_pr is True
        assert config.projects == []

    def test_partial_file_merges(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "correlation": {"exact_threshold": 90, "unknown_key": 1},
            "quality": {"signal_weights": {"has_commits": 50}},
            "projects": [{"id": "p1", "paths": ["/work"]}],
        }))

        config = PipelineConfig.load(path)

        assert config.correlation.exact_threshold == 90
        assert config.correlation.confident_threshold == 60.0
        assert config.quality.signal_weights["has_commits"] == 50
        assert config.quality.signal_weights["no_failures"] == DEFAULT_SIGNAL_WEIGHTS["no_failures"]
        assert config.projects == [{"id": "p1", "paths": ["/work"]}]

    def test_invalid_json_uses_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")

        config = PipelineConfig.load(path)

        assert config.correlation.path_weight == 35.0


class TestEnvironment:
    def test_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SESSIONLINK_DATA_DIR", "/data")
        monkeypatch.setenv("SESSIONLINK_TRANSCRIPTS_DIR", "/transcripts")
        monkeypatch.setenv("HF_TOKEN", "hf_env")
        monkeypatch.setenv("HF_ENDPOINT", "https://mirror.test")

        config = PipelineConfig.load(tmp_path / "missing.json")

        assert config.stores.data_dir == "/data"
        assert config.stores.transcripts_dir == "/transcripts"
        assert config.hub.token == "hf_env"
        assert config.hub.endpoint == "https://mirror.test"

    def test_file_token_wins(self, tmp_path, monkeypatch):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"hub": {"token": "hf_file"}}))
        monkeypatch.setenv("HF_TOKEN", "hf_env")

        assert PipelineConfig.load(path).hub.token == "hf_file"


class TestSave:
    def test_round_trip_without_token(self, tmp_path):
        path = tmp_path / "nested" / "config.json"
        config = PipelineConfig()
        config.hub.token = "hf_secret"
        config.hub.repo_id = "org/sessions"
        config.correlation.uncertain_threshold = 55.0

        config.save(path)

        saved = json.loads(path.read_text())
        assert "token" not in saved["hub"]
        assert "hf_secret" not in path.read_text()

        loaded = PipelineConfig.load(path)
        assert loaded.hub.repo_id == "org/sessions"
        assert loaded.hub.token == ""
        assert loaded.correlation.uncertain_threshold == 55.0
