"""Amazon Q Developer CLI variant."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from cli_agent_runner.executors import mcp
from cli_agent_runner.executors.base import BaseVariant, VariantContext, env_overlay, write_json_config
from cli_agent_runner.utils.cleaner import QuotePolicy

logger = logging.getLogger(__name__)


class AmazonQVariant(BaseVariant):
    """Runs ``q chat`` non-interactively with every tool trusted.

    Q prints ``>`` before its reasoning lines and before the final summary,
    so only the last such line survives cleaning.
    """

    name = "amazonq"
    command = "q"
    label = "Amazon Q Developer CLI"
    quote_policy = QuotePolicy.KEEP_LAST

    def command_args(self, ctx: VariantContext) -> list[str]:
        return ["chat", "--no-interactive", "--trust-all-tools"]

    def environment(self, ctx: VariantContext) -> dict[str, str]:
        env = ctx.env
        return env_overlay(
            AMAZON_Q_SIGV4="1",
            GITHUB_TOKEN=env.get("GITHUB_TOKEN"),
            GITHUB_PERSONAL_ACCESS_TOKEN=env.get("GITHUB_TOKEN"),
            GITHUB_ACTION_INPUTS=env.get("INPUT_ACTION_INPUTS_PRESENT") or "1",
            GITHUB_REPOSITORY=env.get("GITHUB_REPOSITORY"),
            GITHUB_REF=env.get("GITHUB_REF"),
            GITHUB_SHA=env.get("GITHUB_SHA"),
            GITHUB_WORKSPACE=env.get("GITHUB_WORKSPACE"),
        )

    async def setup_configuration(self, ctx: VariantContext) -> Path | None:
        """Write ``~/.aws/amazonq/mcp.json``.

        The file lives in the home directory where Q discovers it, so no
        path is returned for cleanup.
        """
        if shutil.which("uvx", path=ctx.env.get("PATH")) is None:
            logger.warning("uvx not found on PATH; Amazon Q CLI will run without MCP tools")
            return None

        try:
            config_path = ctx.home / ".aws" / "amazonq" / "mcp.json"
            write_json_config(config_path, mcp.build_mcp_config(ctx.env, "amazonq"))
            logger.info("Amazon Q MCP configuration written to %s", config_path)
        except OSError as e:
            logger.warning("Failed to setup Amazon Q MCP configuration: %s", e)
            logger.warning("Amazon Q CLI will run without MCP tools")
            return None

        if not mcp.has_github_token(ctx.env):
            logger.warning("GitHub token not available - PR creation will not work")
        return None
