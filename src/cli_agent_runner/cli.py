"""CLI entry point using typer."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from cli_agent_runner import __version__
from cli_agent_runner.config import CONFIG_FILE, LOG_FILE, AppConfig, ensure_config_dir, load_config, save_config
from cli_agent_runner.executors import VARIANTS, get_variant
from cli_agent_runner.services.runner import AgentRunner, RunOutcome
from cli_agent_runner.storage.database import close_db, get_recent_runs, init_db
from cli_agent_runner.utils.formatting import format_duration, format_run_header
from cli_agent_runner.utils.system import check_cli, check_named_pipes, check_work_dir

app = typer.Typer(
    name="cli-agent-runner",
    help="Run AI agent CLIs non-interactively and clean up their output.",
    add_completion=False,
)
console = Console()


def _setup_logging(config: AppConfig, quiet_console: bool = False) -> None:
    ensure_config_dir()
    log_path = Path(config.logging.file).expanduser().resolve()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, config.logging.level.upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(str(log_path)),
            *([] if quiet_console else [logging.StreamHandler()]),
        ],
    )


def _variant_or_exit(name: str, config: AppConfig):
    try:
        return get_variant(name, result_marker=config.markers.result_marker)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


def _read_transcript(path: Path) -> str:
    try:
        return path.expanduser().read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        console.print(f"[red]Could not read {path}: {e}[/red]")
        raise typer.Exit(1)


async def _run(runner: AgentRunner, prompt_file: Path, db_path: str) -> RunOutcome:
    await init_db(db_path)
    try:
        return await runner.run_prompt_file(prompt_file)
    finally:
        await close_db()


@app.command()
def run(
    prompt_file: Path = typer.Argument(..., help="File containing the prompt"),
    variant: str = typer.Option(None, "--variant", "-v", help="Agent CLI variant"),
    work_dir: str = typer.Option(None, "--work-dir", "-w", help="Directory to run the agent in"),
    stream: bool = typer.Option(True, "--stream/--quiet", help="Echo live CLI output"),
    output: Path = typer.Option(None, "--output", "-o", help="Write the cleaned result to a file"),
) -> None:
    """Run a prompt through an agent CLI and print the cleaned result."""
    config = load_config()
    _setup_logging(config, quiet_console=stream)

    name = variant or config.runner.variant
    agent = _variant_or_exit(name, config)

    if work_dir:
        valid, resolved = check_work_dir(work_dir)
        if not valid:
            console.print(f"[red]{resolved}[/red]")
            raise typer.Exit(1)

    def echo(stream_name: str, text: str) -> None:
        target = sys.stderr if stream_name == "stderr" else sys.stdout
        target.write(agent.format_live_output(text))
        target.flush()

    runner = AgentRunner(config, variant=name, work_dir=work_dir, on_output=echo if stream else None)

    try:
        outcome = asyncio.run(_run(runner, prompt_file, config.storage.db_path))
    except KeyboardInterrupt:
        console.print("\n[dim]Interrupted.[/dim]")
        raise typer.Exit(130)

    if output is not None:
        output.expanduser().parent.mkdir(parents=True, exist_ok=True)
        output.expanduser().write_text(outcome.text + "\n", encoding="utf-8")

    console.print()
    console.print(f"[dim]{format_run_header(agent.name, outcome.duration_ms, len(outcome.tool_calls))}[/dim]")
    console.print(Markdown(outcome.text))

    if not outcome.success:
        raise typer.Exit(1)


@app.command()
def check(
    variant: str = typer.Option(None, "--variant", "-v", help="Check a single variant"),
) -> None:
    """Check which agent CLIs are installed."""
    config = load_config()
    names = [variant] if variant else sorted(VARIANTS)

    table = Table(title="Agent CLIs")
    table.add_column("Variant", style="cyan")
    table.add_column("Command")
    table.add_column("Status")

    all_ok = True
    for name in names:
        agent = _variant_or_exit(name, config)
        ok, info = check_cli(agent.command, timeout=config.runner.probe_timeout)
        all_ok = all_ok and ok
        status = f"[green]{info}[/green]" if ok else f"[yellow]{info}[/yellow]"
        table.add_row(agent.name, agent.command, status)

    console.print(table)

    pipes_ok, pipes_info = check_named_pipes()
    if pipes_ok:
        console.print(f"Prompt streaming: [green]{pipes_info}[/green]")
    else:
        console.print(f"Prompt streaming: [red]{pipes_info}[/red]")

    if not (all_ok and pipes_ok):
        raise typer.Exit(1)


@app.command()
def clean(
    transcript: Path = typer.Argument(..., help="Captured CLI output"),
    variant: str = typer.Option(None, "--variant", "-v", help="Variant that produced the output"),
) -> None:
    """Clean a captured transcript the way a run would."""
    config = load_config()
    agent = _variant_or_exit(variant or config.runner.variant, config)
    result = agent.parse_output(_read_transcript(transcript).strip())
    typer.echo(result or config.runner.fallback_message)


@app.command()
def timings(
    transcript: Path = typer.Argument(..., help="Captured CLI output"),
    variant: str = typer.Option(None, "--variant", "-v", help="Variant that produced the output"),
) -> None:
    """Show tool call timings found in a captured transcript."""
    config = load_config()
    agent = _variant_or_exit(variant or config.runner.variant, config)
    records = agent.extract_tool_timings(_read_transcript(transcript))

    if not records:
        console.print("[dim]No tool calls found.[/dim]")
        return

    table = Table(title="Tool Calls")
    table.add_column("Tool", style="cyan")
    table.add_column("Duration", style="green")
    for record in records:
        table.add_row(record.tool_name, format_duration(record.duration_ms))
    console.print(table)


@app.command()
def history(
    limit: int = typer.Option(10, "--limit", "-n", help="Number of runs"),
) -> None:
    """Show recent runs."""
    config = load_config()

    async def _recent():
        await init_db(config.storage.db_path)
        try:
            return await get_recent_runs(limit)
        finally:
            await close_db()

    runs = asyncio.run(_recent())
    if not runs:
        console.print("[dim]No runs recorded.[/dim]")
        return

    table = Table(title="Recent Runs")
    table.add_column("When", style="dim")
    table.add_column("Variant", style="cyan")
    table.add_column("Exit")
    table.add_column("Duration")
    table.add_column("Tools")
    table.add_column("Status")
    for record in runs:
        status = "[green]success[/green]" if record.status == "success" else f"[red]{record.status}[/red]"
        exit_code = "-" if record.exit_code is None else str(record.exit_code)
        table.add_row(
            str(record.created_at),
            record.variant,
            exit_code,
            format_duration(record.duration_ms),
            str(record.tool_calls),
            status,
        )
    console.print(table)


@app.command()
def config(
    key: str = typer.Argument(None, help="Config key (e.g., runner.variant)"),
    value: str = typer.Argument(None, help="New value"),
) -> None:
    """View or modify configuration."""
    cfg = load_config()

    section_map = {
        "runner": cfg.runner,
        "markers": cfg.markers,
        "telemetry": cfg.telemetry,
        "storage": cfg.storage,
        "logging": cfg.logging,
    }

    if key is None:
        table = Table(title="Configuration")
        table.add_column("Key", style="cyan")
        table.add_column("Value", style="green")
        for section, obj in section_map.items():
            for attr, current in vars(obj).items():
                table.add_row(f"{section}.{attr}", str(current) if current != "" else "(default)")
        console.print(table)
        if not CONFIG_FILE.exists():
            console.print(f"[dim]No config file at {CONFIG_FILE}; showing defaults.[/dim]")
        return

    if value is None:
        console.print("[red]Usage: cli-agent-runner config <key> <value>[/red]")
        raise typer.Exit(1)

    parts = key.split(".")
    if len(parts) != 2:
        console.print("[red]Key format: section.key (e.g., runner.variant)[/red]")
        raise typer.Exit(1)

    section, attr = parts
    if section not in section_map:
        console.print(f"[red]Unknown section: {section}[/red]")
        raise typer.Exit(1)

    obj = section_map[section]
    if not hasattr(obj, attr):
        console.print(f"[red]Unknown key: {key}[/red]")
        raise typer.Exit(1)

    # Type coercion
    current = getattr(obj, attr)
    try:
        if isinstance(current, bool):
            typed_value = value.lower() in ("true", "1", "yes")
        elif isinstance(current, int):
            typed_value = int(value)
        else:
            typed_value = value
    except ValueError:
        console.print(f"[red]Invalid value type for {key}[/red]")
        raise typer.Exit(1)

    if key == "runner.variant" and typed_value not in VARIANTS:
        console.print(f"[red]Unknown variant: {typed_value}. Valid variants: {', '.join(sorted(VARIANTS))}[/red]")
        raise typer.Exit(1)

    setattr(obj, attr, typed_value)
    save_config(cfg)
    console.print(f"[green]{key} = {typed_value}[/green]")


@app.command()
def logs(
    lines: int = typer.Option(50, "--lines", "-n", help="Number of lines"),
) -> None:
    """View runner logs."""
    log_path = Path(LOG_FILE).expanduser().resolve()
    if not log_path.exists():
        console.print("[dim]No log file found.[/dim]")
        return

    content = log_path.read_text()
    for line in content.strip().split("\n")[-lines:]:
        console.print(line, markup=False)


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"cli-agent-runner v{__version__}")
    config = load_config()
    for name in sorted(VARIANTS):
        agent = get_variant(name, result_marker=config.markers.result_marker)
        installed, info = check_cli(agent.command, timeout=config.runner.probe_timeout)
        status = info if installed else "[yellow]not installed[/yellow]"
        console.print(f"{agent.label}: {status}")
    console.print(f"Python: {sys.version.split()[0]}")
    console.print(f"Config: {CONFIG_FILE}")


if __name__ == "__main__":
    app()
