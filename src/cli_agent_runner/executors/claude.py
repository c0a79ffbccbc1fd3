"""Claude Code CLI variant."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from cli_agent_runner.errors import ConfigurationError
from cli_agent_runner.executors import mcp
from cli_agent_runner.executors.base import BaseVariant, VariantContext, env_overlay, write_json_config
from cli_agent_runner.storage.models import ToolCallRecord
from cli_agent_runner.utils.cleaner import QuotePolicy, clean
from cli_agent_runner.utils.timing import extract_stream_json_tool_calls

logger = logging.getLogger(__name__)


def _json_lines(output: str):
    for line in output.split("\n"):
        line = line.strip()
        if not line:
            continue
        try:
            event = json.loads(line)
        except ValueError:
            continue
        if isinstance(event, dict):
            yield event


class ClaudeVariant(BaseVariant):
    """Runs ``claude -p`` with stream-json output.

    The result is taken from the JSON events, not from rendered terminal
    text, so only marker truncation and markdown normalization apply.
    """

    name = "claude"
    command = "claude"
    label = "Claude Code CLI"
    quote_policy = QuotePolicy.KEEP
    fallback_tiers = False

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.mcp_config_path: Path | None = None

    def command_args(self, ctx: VariantContext) -> list[str]:
        args = [
            "-p",
            "--verbose",
            "--output-format",
            "stream-json",
            "--allowed-tools",
            mcp.allowed_tools_for_claude(ctx.env, ctx.work_dir),
        ]
        if self.mcp_config_path and self.mcp_config_path.exists():
            args.extend(["--mcp-config", str(self.mcp_config_path)])
            logger.info("Using MCP configuration: %s", self.mcp_config_path)
        return args

    def environment(self, ctx: VariantContext) -> dict[str, str]:
        env = ctx.env
        if env.get("CLAUDE_CODE_OAUTH_TOKEN"):
            logger.info("Claude CLI will use CLAUDE_CODE_OAUTH_TOKEN for authentication")
        elif env.get("ANTHROPIC_API_KEY"):
            logger.info("Claude CLI will use ANTHROPIC_API_KEY for authentication")
        else:
            raise ConfigurationError(
                self.command,
                "No authentication provided. Either ANTHROPIC_API_KEY or CLAUDE_CODE_OAUTH_TOKEN is required.",
            )

        return env_overlay(
            CLAUDE_NON_INTERACTIVE="1",
            GITHUB_ACTION_INPUTS=env.get("INPUT_ACTION_INPUTS_PRESENT") or "1",
            GITHUB_PERSONAL_ACCESS_TOKEN=env.get("GITHUB_TOKEN"),
            GITHUB_HOST=env.get("GITHUB_SERVER_URL") or mcp.DEFAULT_GITHUB_HOST,
        )

    async def setup_configuration(self, ctx: VariantContext) -> Path | None:
        """Write ``<temp_dir>/.mcp.json`` and return it for cleanup."""
        self.mcp_config_path = None
        config = mcp.build_mcp_config(ctx.env, "claude")
        if not config["mcpServers"]:
            logger.info("No MCP servers to configure")
            return None

        try:
            path = write_json_config(ctx.temp_dir / ".mcp.json", config)
        except OSError as e:
            logger.warning("MCP setup failed (Claude CLI will continue without MCP): %s", e)
            return None

        logger.info("MCP configuration created at: %s (servers: %s)", path, ", ".join(config["mcpServers"]))
        self.mcp_config_path = path
        return path

    def parse_output(self, output: str) -> str:
        """Pick the last assistant text from the event stream.

        Falls back to the concatenated ``result`` events when no assistant
        message carried text.
        """
        if not output or not isinstance(output, str):
            return ""

        last_message = ""
        final_result = ""
        for event in _json_lines(output):
            message = event.get("message")
            if event.get("type") == "assistant" and isinstance(message, dict):
                text = "".join(
                    block.get("text") or ""
                    for block in message.get("content") or []
                    if isinstance(block, dict) and block.get("type") == "text"
                )
                if text.strip():
                    last_message = text
            if event.get("type") == "result" and isinstance(event.get("result"), str):
                final_result += event["result"]

        return clean(last_message or final_result, self.cleaner_profile)

    def extract_tool_timings(self, output: str) -> list[ToolCallRecord]:
        return extract_stream_json_tool_calls(output)

    def format_live_output(self, text: str) -> str:
        """Pretty-print complete JSON lines; pass anything else through."""
        rendered: list[str] = []
        for line in text.split("\n"):
            try:
                rendered.append(json.dumps(json.loads(line), indent=2))
            except ValueError:
                rendered.append(line)
        return "\n".join(rendered)
