"""Shared test fixtures."""

from __future__ import annotations

import sys

import pytest

from cli_agent_runner.config import AppConfig, LoggingConfig, MarkerConfig, RunnerConfig, StorageConfig, TelemetryConfig
from cli_agent_runner.executors.base import BaseVariant


class ScriptVariant(BaseVariant):
    """Runs a Python one-liner in place of a real agent CLI."""

    name = "script"
    command = sys.executable
    label = "Script CLI"

    def __init__(self, script: str, **kwargs) -> None:
        super().__init__(**kwargs)
        self.script = script

    def command_args(self, ctx):
        return ["-c", self.script]


class ArgScriptVariant(ScriptVariant):
    """Like ScriptVariant, but the prompt arrives as ``sys.argv[1]``."""

    prompt_via_stdin = False

    def prompt_args(self, prompt):
        return [prompt]


@pytest.fixture
def app_config(tmp_path):
    """Create a test configuration."""
    work_dir = tmp_path / "work"
    work_dir.mkdir()
    return AppConfig(
        runner=RunnerConfig(
            variant="amazonq",
            temp_dir=str(tmp_path / "tmp"),
            work_dir=str(work_dir),
            probe_timeout=5,
        ),
        markers=MarkerConfig(),
        telemetry=TelemetryConfig(enabled=True, output_dir=str(tmp_path / "artifacts")),
        storage=StorageConfig(db_path=str(tmp_path / "test.db")),
        logging=LoggingConfig(level="DEBUG", file=str(tmp_path / "test.log")),
    )


@pytest.fixture
def variant_env(tmp_path):
    """A minimal environment with HOME pointed into the test directory."""
    home = tmp_path / "home"
    home.mkdir()
    return {"HOME": str(home), "PATH": "/usr/bin:/bin"}
