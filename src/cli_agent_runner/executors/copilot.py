"""GitHub Copilot CLI variant."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from cli_agent_runner.executors import mcp
from cli_agent_runner.executors.base import BaseVariant, VariantContext, env_overlay, write_json_config
from cli_agent_runner.utils.cleaner import QuotePolicy

logger = logging.getLogger(__name__)


class CopilotVariant(BaseVariant):
    """Runs ``copilot`` with the prompt passed through ``-p``.

    Copilot does not read the prompt from stdin, so the orchestrator skips
    the named pipe for it. Its ``>`` lines are progress chatter only.
    """

    name = "copilot"
    command = "copilot"
    label = "GitHub Copilot CLI"
    prompt_via_stdin = False
    quote_policy = QuotePolicy.DROP

    def command_args(self, ctx: VariantContext) -> list[str]:
        return ["--allow-all-tools"]

    def prompt_args(self, prompt: str) -> list[str]:
        return ["-p", prompt]

    def environment(self, ctx: VariantContext) -> dict[str, str]:
        return env_overlay(
            GITHUB_TOKEN=ctx.env.get("CLI_AUTH_TOKEN") or ctx.env.get("GITHUB_TOKEN"),
            XDG_CONFIG_HOME=str(ctx.home),
        )

    def _write_aws_credentials(self, ctx: VariantContext) -> None:
        env = ctx.env
        if not mcp.has_aws_credentials(env):
            return
        credentials = (
            "[default]\n"
            f"aws_access_key_id = {env['AWS_ACCESS_KEY_ID']}\n"
            f"aws_secret_access_key = {env['AWS_SECRET_ACCESS_KEY']}\n"
            f"aws_session_token = {env.get('AWS_SESSION_TOKEN', '')}\n"
            f"region = {env.get('AWS_REGION') or mcp.DEFAULT_AWS_REGION}\n"
        )
        path = ctx.home / ".aws" / "credentials"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(credentials)
        os.chmod(path, 0o600)
        logger.info("AWS credentials written to: %s", path)

    async def setup_configuration(self, ctx: VariantContext) -> Path | None:
        """Write ``~/.aws/credentials`` and ``~/.copilot/mcp-config.json``.

        Both stay in place after the run for the MCP servers to find.
        """
        try:
            self._write_aws_credentials(ctx)
            config_path = ctx.home / ".copilot" / "mcp-config.json"
            write_json_config(config_path, mcp.build_mcp_config(ctx.env, "copilot"))
            logger.info("Copilot MCP configuration written to %s", config_path)
        except OSError as e:
            logger.warning("Failed to setup Copilot MCP configuration: %s", e)
            logger.warning("Copilot will run without MCP tools")
            return None

        if not mcp.has_github_token(ctx.env):
            logger.warning("GitHub token not available - PR creation will not work")
        return None
