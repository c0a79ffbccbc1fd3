"""MCP tool-server configuration shared by the agent variants."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

DEFAULT_AWS_REGION = "us-east-1"
DEFAULT_GITHUB_HOST = "https://github.com"
GITHUB_MCP_IMAGE = "ghcr.io/github/github-mcp-server:sha-efef8ae"

APPLICATION_SIGNALS_TOOLS: list[str] = [
    "mcp__applicationsignals__list_monitored_services",
    "mcp__applicationsignals__get_service_detail",
    "mcp__applicationsignals__list_service_operations",
    "mcp__applicationsignals__list_slis",
    "mcp__applicationsignals__list_slos",
    "mcp__applicationsignals__get_slo",
    "mcp__applicationsignals__search_transaction_spans",
    "mcp__applicationsignals__query_sampled_traces",
    "mcp__applicationsignals__query_service_metrics",
    "mcp__applicationsignals__audit_services",
    "mcp__applicationsignals__audit_slos",
    "mcp__applicationsignals__audit_service_operations",
    "mcp__applicationsignals__get_enablement_guide",
    "mcp__applicationsignals__analyze_canary_failures",
]

CLOUDWATCH_TOOLS: list[str] = [
    "mcp__awslabs_cloudwatch-mcp-server__get_metric_metadata",
    "mcp__awslabs_cloudwatch-mcp-server__get_metric_data",
    "mcp__awslabs_cloudwatch-mcp-server__get_recommended_metric_alarms",
    "mcp__awslabs_cloudwatch-mcp-server__analyze_metric",
    "mcp__awslabs_cloudwatch-mcp-server__get_active_alarms",
    "mcp__awslabs_cloudwatch-mcp-server__get_alarm_history",
    "mcp__awslabs_cloudwatch-mcp-server__describe_log_groups",
    "mcp__awslabs_cloudwatch-mcp-server__analyze_log_group",
    "mcp__awslabs_cloudwatch-mcp-server__execute_log_insights_query",
    "mcp__awslabs_cloudwatch-mcp-server__get_logs_insight_query_results",
    "mcp__awslabs_cloudwatch-mcp-server__cancel_logs_insight_query",
]

GITHUB_TOOLS: list[str] = [
    "mcp__github__create_pull_request",
    "mcp__github__create_or_update_file",
    "mcp__github__push_files",
    "mcp__github__get_file",
    "mcp__github__create_branch",
    "mcp__github__list_files",
    "mcp__github__get_file_contents",
]


def has_aws_credentials(env: Mapping[str, str]) -> bool:
    return bool(env.get("AWS_ACCESS_KEY_ID") and env.get("AWS_SECRET_ACCESS_KEY"))


def has_cloudwatch_access(env: Mapping[str, str]) -> bool:
    return env.get("ENABLE_CLOUDWATCH_MCP") == "true" and has_aws_credentials(env)


def has_github_token(env: Mapping[str, str]) -> bool:
    return bool(env.get("GITHUB_TOKEN"))


def _aws_server_env(env: Mapping[str, str]) -> dict[str, str]:
    return {
        "aws_access_key_id": env.get("AWS_ACCESS_KEY_ID", ""),
        "aws_secret_access_key": env.get("AWS_SECRET_ACCESS_KEY", ""),
        "AWS_REGION": env.get("AWS_REGION") or DEFAULT_AWS_REGION,
    }


def _uvx_server(package: str) -> dict[str, Any]:
    return {
        "command": "uvx",
        "args": [f"{package}@latest"],
        "env": {"MCP_RUN_FROM": "awsapm-gh"},
        "transportType": "stdio",
    }


def build_mcp_config(env: Mapping[str, str], cli_type: str = "amazonq") -> dict[str, Any]:
    """Build the ``mcpServers`` document for one CLI.

    Servers are only included when their credentials are present. The
    ``claude`` format passes AWS credentials to the servers explicitly.
    """
    servers: dict[str, Any] = {}

    if has_aws_credentials(env):
        server = _uvx_server("awslabs.cloudwatch-applicationsignals-mcp-server")
        if cli_type == "claude":
            server["env"] = _aws_server_env(env)
        servers["applicationsignals"] = {**server, "autoApprove": list(APPLICATION_SIGNALS_TOOLS), "disabled": False}

    if has_cloudwatch_access(env):
        server = _uvx_server("awslabs.cloudwatch-mcp-server")
        if cli_type == "claude":
            server["env"] = _aws_server_env(env)
        servers["awslabs.cloudwatch-mcp-server"] = {**server, "autoApprove": list(CLOUDWATCH_TOOLS), "disabled": False}

    if has_github_token(env):
        servers["github"] = {
            "command": "docker",
            "args": [
                "run", "-i", "--rm",
                "-e", "GITHUB_PERSONAL_ACCESS_TOKEN",
                "-e", "GITHUB_HOST",
                GITHUB_MCP_IMAGE,
            ],
            "env": {
                "GITHUB_PERSONAL_ACCESS_TOKEN": env["GITHUB_TOKEN"],
                "GITHUB_HOST": env.get("GITHUB_SERVER_URL") or DEFAULT_GITHUB_HOST,
            },
            "transportType": "stdio",
            "autoApprove": list(GITHUB_TOOLS),
            "disabled": False,
        }

    return {"mcpServers": servers}


def allowed_tools_for_claude(env: Mapping[str, str], work_dir: Path) -> str:
    """Comma-separated tool allow list; MCP tools must be named explicitly."""
    tools = [f"{tool}({work_dir}/**)" for tool in ("Read", "Edit", "MultiEdit", "Glob", "Grep")]
    if has_aws_credentials(env):
        tools.extend(APPLICATION_SIGNALS_TOOLS)
        if has_cloudwatch_access(env):
            tools.extend(CLOUDWATCH_TOOLS)
    if has_github_token(env):
        tools.extend(GITHUB_TOOLS)
    return ",".join(tools)
