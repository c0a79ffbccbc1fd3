"""Agent CLI variants.

Each variant knows how to:
    - Build the command line for its CLI
    - Deliver the prompt (named pipe on stdin, or an argument)
    - Write the configuration its tool servers need
    - Clean the CLI output into a presentable result
"""

from __future__ import annotations

from cli_agent_runner.executors.amazonq import AmazonQVariant
from cli_agent_runner.executors.base import BaseVariant, ExecutorVariant, VariantContext
from cli_agent_runner.executors.claude import ClaudeVariant
from cli_agent_runner.executors.copilot import CopilotVariant

VARIANTS: dict[str, type[BaseVariant]] = {
    "amazonq": AmazonQVariant,
    "claude": ClaudeVariant,
    "copilot": CopilotVariant,
}

# Names used by earlier workflow inputs
ALIASES: dict[str, str] = {
    "amazon_q_cli": "amazonq",
    "q": "amazonq",
    "claude_code": "claude",
    "copilot_cli": "copilot",
}


def get_variant(name: str, **kwargs) -> BaseVariant:
    """Get a variant instance by name.

    Raises:
        ValueError: If the name is not recognized.
    """
    key = ALIASES.get(name, name)
    variant_class = VARIANTS.get(key)
    if not variant_class:
        valid = ", ".join(sorted(VARIANTS))
        raise ValueError(f"Unknown variant: {name}. Valid variants: {valid}")
    return variant_class(**kwargs)


__all__ = [
    "ALIASES",
    "VARIANTS",
    "AmazonQVariant",
    "BaseVariant",
    "ClaudeVariant",
    "CopilotVariant",
    "ExecutorVariant",
    "VariantContext",
    "get_variant",
]
