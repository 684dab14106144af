"""Tests for the transcript reader."""

import json

import pytest

from sessionlink.transcripts import TranscriptParser, load_entries, scan_transcript

BASE = 1704067200000

ENTRIES = [
    {"type": "summary", "summary": "Fixing a bug"},
    {
        "type": "user",
        "sessionId": "abc",
        "cwd": "/work/app",
        "gitBranch": "main",
        "timestamp": "2024-01-01T00:00:00Z",
        "message": {"role": "user", "content": "Fix the bug"},
    },
    {
        "type": "assistant",
        "timestamp": "2024-01-01T00:00:05Z",
        "message": {
            "role": "assistant",
            "content": [
                {"type": "text", "text": "Looking"},
                {"type": "tool_use", "id": "tu1", "name": "Bash", "input": {"command": "ls"}},
            ],
            "usage": {"input_tokens": 10, "output_tokens": 5},
        },
    },
    {
        "type": "user",
        "timestamp": "2024-01-01T00:00:06Z",
        "message": {
            "role": "user",
            "content": [{"type": "tool_result", "tool_use_id": "tu1", "content": "file.py"}],
        },
    },
    {
        "type": "assistant",
        "timestamp": "2024-01-01T00:01:00Z",
        "message": {"role": "assistant", "content": "Done", "usage": {"input_tokens": 3, "output_tokens": 2}},
    },
]


@pytest.fixture
def transcript_file(tmp_path):
    """A transcript under an encoded project directory, with one malformed line."""
    project = tmp_path / "-work-app"
    project.mkdir()
    path = project / "abc.jsonl"
    lines = [json.dumps(e) for e in ENTRIES]
    lines.insert(2, "{not json")
    path.write_text("\n".join(lines) + "\n")
    return path


class TestLoadEntries:
    def test_skips_malformed_lines(self, transcript_file):
        assert len(load_entries(transcript_file)) == len(ENTRIES)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_entries(tmp_path / "nope.jsonl")


class TestTranscriptParser:
    """Tests for TranscriptParser.parse."""

    def test_session_info(self, transcript_file):
        data = TranscriptParser(transcript_file).parse()

        assert data.id == "abc"
        assert data.agent == "claude"
        assert data.session_id == "abc"
        assert data.project_path == "/work/app"
        assert data.git_branch == "main"

    def test_messages(self, transcript_file):
        data = TranscriptParser(transcript_file).parse()

        assert [m.role for m in data.messages] == ["user", "assistant", "assistant"]
        assert data.messages[0].content == "Fix the bug"
        assert data.messages[0].timestamp == BASE

        tool_call = data.messages[1].tool_calls[0]
        assert tool_call.tool_name == "Bash"
        assert tool_call.tool_input == {"command": "ls"}
        assert tool_call.result == "file.py"
        assert not tool_call.is_error

    def test_usage_and_counts(self, transcript_file):
        data = TranscriptParser(transcript_file).parse()

        assert data.total_input_tokens == 13
        assert data.total_output_tokens == 7
        assert data.entry_counts == {"summary": 1, "user": 2, "assistant": 2}

    def test_time_bounds(self, transcript_file):
        data = TranscriptParser(transcript_file).parse()
        assert data.start_time == BASE
        assert data.end_time == BASE + 60_000

    def test_non_numeric_usage_ignored(self, tmp_path):
        path = tmp_path / "bad-usage.jsonl"
        entries = [
            {"type": "assistant", "message": {"content": "a", "usage": {"input_tokens": "lots", "output_tokens": None}}},
            {"type": "assistant", "message": {"content": "b", "usage": {"input_tokens": 4, "output_tokens": "2"}}},
        ]
        path.write_text("\n".join(json.dumps(e) for e in entries) + "\n")

        data = TranscriptParser(path).parse()

        assert data.total_input_tokens == 4
        assert data.total_output_tokens == 2
        assert len(data.messages) == 2


class TestScanTranscript:
    def test_metadata(self, transcript_file):
        record = scan_transcript(transcript_file)

        assert record.id == "abc"
        assert record.path == str(transcript_file)
        assert record.name == "abc.jsonl"
        assert record.project_dir == "/work/app"
        assert record.message_count == 4
        assert record.start_time == BASE
        assert record.end_time == BASE + 60_000
        assert record.size_bytes > 0
        assert record.modified_at > 0

    def test_project_dir_falls_back_to_folder(self, tmp_path):
        folder = tmp_path / "-work-other"
        folder.mkdir()
        path = folder / "t2.jsonl"
        path.write_text(json.dumps({"type": "user", "message": {"content": "hi"}}) + "\n")

        record = scan_transcript(path)

        assert record.project_dir == str(folder)
        assert record.message_count == 1
        assert record.start_time is None
