"""Tests for debug artifact writing."""

from __future__ import annotations

import json

from cli_agent_runner.services.artifacts import write_artifacts
from cli_agent_runner.storage.models import ToolCallRecord


class TestWriteArtifacts:
    def test_writes_all_files(self, tmp_path):
        out = tmp_path / "agent-output"
        paths = write_artifacts(out, "q", "raw transcript", [ToolCallRecord("fetch_logs", 1500.0, "t0")], "## summary")

        assert [p.name for p in paths] == ["q-transcript.txt", "q-tool-calls.json", "q-summary.md"]
        assert (out / "q-transcript.txt").read_text() == "raw transcript"
        calls = json.loads((out / "q-tool-calls.json").read_text())
        assert calls == [{"tool_name": "fetch_logs", "duration_ms": 1500.0, "timestamp": "t0"}]

    def test_no_summary(self, tmp_path):
        paths = write_artifacts(tmp_path, "copilot", "", [])
        assert [p.name for p in paths] == ["copilot-transcript.txt", "copilot-tool-calls.json"]

    def test_unwritable_directory(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        assert write_artifacts(blocker / "out", "q", "x") == []
