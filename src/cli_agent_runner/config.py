"""Configuration management using TOML + environment variables."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomllib
    except ModuleNotFoundError:
        import tomli as tomllib  # type: ignore[no-redef]

import tomli_w

from cli_agent_runner.utils.cleaner import DEFAULT_RESULT_MARKER

CONFIG_DIR = Path.home() / ".cli-agent-runner"
CONFIG_FILE = CONFIG_DIR / "config.toml"
LOG_FILE = CONFIG_DIR / "runner.log"

DEFAULT_FALLBACK_MESSAGE = "AI Agent investigation completed, but no output was generated."


@dataclass
class RunnerConfig:
    variant: str = "amazonq"
    temp_dir: str = ""
    work_dir: str = ""
    probe_timeout: int = 10
    unique_paths: bool = False
    require_marker: bool = False
    fallback_message: str = DEFAULT_FALLBACK_MESSAGE

    def resolved_temp_dir(self) -> Path:
        """Temp dir for prompt files and pipes ($RUNNER_TEMP or /tmp by default)."""
        raw = self.temp_dir or os.environ.get("RUNNER_TEMP") or "/tmp"
        return Path(raw).expanduser().resolve()

    def resolved_work_dir(self) -> Path:
        """Directory the agent runs in ($GITHUB_WORKSPACE or cwd by default)."""
        raw = self.work_dir or os.environ.get("GITHUB_WORKSPACE") or os.getcwd()
        return Path(raw).expanduser().resolve()


@dataclass
class MarkerConfig:
    result_marker: str = DEFAULT_RESULT_MARKER


@dataclass
class TelemetryConfig:
    enabled: bool = True
    output_dir: str = ""


@dataclass
class StorageConfig:
    db_path: str = "~/.cli-agent-runner/history.db"


@dataclass
class LoggingConfig:
    level: str = "WARNING"
    file: str = "~/.cli-agent-runner/runner.log"


@dataclass
class AppConfig:
    runner: RunnerConfig = field(default_factory=RunnerConfig)
    markers: MarkerConfig = field(default_factory=MarkerConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def resolved_output_dir(self) -> Path:
        """Where debug artifacts go (defaults to <temp_dir>/agent-output)."""
        if self.telemetry.output_dir:
            return Path(self.telemetry.output_dir).expanduser().resolve()
        return self.runner.resolved_temp_dir() / "agent-output"


def ensure_config_dir() -> None:
    """Create config directory with secure permissions."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    os.chmod(CONFIG_DIR, 0o700)


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes")


def load_config() -> AppConfig:
    """Load configuration from TOML file with env var overrides."""
    config = AppConfig()

    if CONFIG_FILE.exists():
        with open(CONFIG_FILE, "rb") as f:
            data = tomllib.load(f)

        runner = data.get("runner", {})
        config.runner.variant = runner.get("variant", config.runner.variant)
        config.runner.temp_dir = runner.get("temp_dir", config.runner.temp_dir)
        config.runner.work_dir = runner.get("work_dir", config.runner.work_dir)
        config.runner.probe_timeout = runner.get("probe_timeout", config.runner.probe_timeout)
        config.runner.unique_paths = runner.get("unique_paths", config.runner.unique_paths)
        config.runner.require_marker = runner.get("require_marker", config.runner.require_marker)
        config.runner.fallback_message = runner.get("fallback_message", config.runner.fallback_message)

        markers = data.get("markers", {})
        config.markers.result_marker = markers.get("result_marker", config.markers.result_marker)

        telemetry = data.get("telemetry", {})
        config.telemetry.enabled = telemetry.get("enabled", config.telemetry.enabled)
        config.telemetry.output_dir = telemetry.get("output_dir", config.telemetry.output_dir)

        storage = data.get("storage", {})
        config.storage.db_path = storage.get("db_path", config.storage.db_path)

        logging_cfg = data.get("logging", {})
        config.logging.level = logging_cfg.get("level", config.logging.level)
        config.logging.file = logging_cfg.get("file", config.logging.file)

    # Environment variable overrides
    if env_variant := os.environ.get("AGENT_RUNNER_VARIANT"):
        config.runner.variant = env_variant
    if env_temp := os.environ.get("AGENT_RUNNER_TEMP_DIR"):
        config.runner.temp_dir = env_temp
    if env_work := os.environ.get("AGENT_RUNNER_WORK_DIR"):
        config.runner.work_dir = env_work
    if env_probe := os.environ.get("AGENT_RUNNER_PROBE_TIMEOUT"):
        config.runner.probe_timeout = int(env_probe)
    if env_unique := os.environ.get("AGENT_RUNNER_UNIQUE_PATHS"):
        config.runner.unique_paths = _env_bool(env_unique)
    if env_require := os.environ.get("AGENT_RUNNER_REQUIRE_MARKER"):
        config.runner.require_marker = _env_bool(env_require)
    if env_marker := os.environ.get("AGENT_RUNNER_RESULT_MARKER"):
        config.markers.result_marker = env_marker
    if env_telemetry := os.environ.get("AGENT_RUNNER_TELEMETRY"):
        config.telemetry.enabled = _env_bool(env_telemetry)
    if env_output := os.environ.get("AGENT_RUNNER_OUTPUT_DIR"):
        config.telemetry.output_dir = env_output
    if env_db := os.environ.get("AGENT_RUNNER_DB_PATH"):
        config.storage.db_path = env_db
    if env_log_level := os.environ.get("AGENT_RUNNER_LOG_LEVEL"):
        config.logging.level = env_log_level

    return config


def save_config(config: AppConfig) -> None:
    """Save configuration to TOML file."""
    ensure_config_dir()

    data = {
        "runner": {
            "variant": config.runner.variant,
            "temp_dir": config.runner.temp_dir,
            "work_dir": config.runner.work_dir,
            "probe_timeout": config.runner.probe_timeout,
            "unique_paths": config.runner.unique_paths,
            "require_marker": config.runner.require_marker,
            "fallback_message": config.runner.fallback_message,
        },
        "markers": {
            "result_marker": config.markers.result_marker,
        },
        "telemetry": {
            "enabled": config.telemetry.enabled,
            "output_dir": config.telemetry.output_dir,
        },
        "storage": {
            "db_path": config.storage.db_path,
        },
        "logging": {
            "level": config.logging.level,
            "file": config.logging.file,
        },
    }

    with open(CONFIG_FILE, "wb") as f:
        tomli_w.dump(data, f)

    os.chmod(CONFIG_FILE, 0o600)
