"""High-level agent run: one prompt in, one presentable result out."""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from cli_agent_runner.config import AppConfig
from cli_agent_runner.errors import ExecutionError
from cli_agent_runner.executors import get_variant
from cli_agent_runner.services.artifacts import write_artifacts
from cli_agent_runner.services.orchestrator import OutputCallback, ProcessOrchestrator
from cli_agent_runner.storage.database import save_run
from cli_agent_runner.storage.models import ExecutionRequest, RunRecord, ToolCallRecord
from cli_agent_runner.utils.cleaner import strip_ansi
from cli_agent_runner.utils.formatting import format_failure
from cli_agent_runner.utils.timing import TimingTracker

logger = logging.getLogger(__name__)


@dataclass
class RunOutcome:
    """Result of one agent run.

    ``text`` is the cleaned result on success and a formatted failure
    message otherwise, so it can always be shown as is.
    """

    success: bool
    text: str
    error: str = ""
    duration_ms: int = 0
    tool_calls: list[ToolCallRecord] = field(default_factory=list)
    exit_code: int | None = None


class AgentRunner:
    """Run prompts through the configured agent CLI variant."""

    def __init__(
        self,
        config: AppConfig,
        variant: str | None = None,
        work_dir: str | None = None,
        on_output: OutputCallback | None = None,
        save_history: bool = True,
    ) -> None:
        self.config = config
        self.variant = get_variant(variant or config.runner.variant, result_marker=config.markers.result_marker)
        self.work_dir = Path(work_dir).expanduser().resolve() if work_dir else config.runner.resolved_work_dir()
        self.on_output = on_output
        self.save_history = save_history
        self.tracker = TimingTracker()

    def _orchestrator(self) -> ProcessOrchestrator:
        return ProcessOrchestrator(
            self.variant,
            temp_dir=self.config.runner.resolved_temp_dir(),
            work_dir=self.work_dir,
            probe_timeout=self.config.runner.probe_timeout,
            on_output=self.on_output,
            tracker=self.tracker,
            fallback_message=self.config.runner.fallback_message,
        )

    async def run_prompt_file(self, prompt_file: Path) -> RunOutcome:
        """Read a prompt file and run it."""
        try:
            prompt = Path(prompt_file).expanduser().read_text(encoding="utf-8")
        except OSError as e:
            logger.error("Could not read prompt file %s: %s", prompt_file, e)
            error = f"could not read prompt file: {e}"
            return RunOutcome(success=False, text=format_failure(self.variant.label, error), error=error)
        return await self.run(prompt)

    async def run(self, prompt: str) -> RunOutcome:
        orchestrator = self._orchestrator()
        run_id = uuid.uuid4().hex[:12] if self.config.runner.unique_paths else None
        request = ExecutionRequest(prompt=prompt, work_dir=str(self.work_dir), run_id=run_id)

        start = time.monotonic()
        success, text, error = True, "", ""
        try:
            text = await orchestrator.execute(request)
        except ExecutionError as e:
            logger.error("%s", e)
            success, error = False, str(e)
        duration_ms = int((time.monotonic() - start) * 1000)

        result = orchestrator.last_result
        transcript = result.output if result is not None else ""
        exit_code = result.exit_code if result is not None else None

        if success and not self._marker_present(transcript, text):
            marker = self.variant.cleaner_profile.result_marker
            if self.config.runner.require_marker:
                success, error = False, f"result marker not found in {self.variant.command} output: {marker}"
                logger.error("%s", error)
            else:
                logger.warning("Result marker not found in output, using fallback extraction")

        if not success:
            text = format_failure(self.variant.label, error)

        tool_calls = [
            ToolCallRecord(t["toolName"], t["duration"], t["timestamp"]) for t in self.tracker.tool_calls()
        ]

        if self.config.telemetry.enabled:
            self._write_telemetry(transcript, tool_calls)

        if self.save_history:
            await save_run(
                RunRecord(
                    variant=self.variant.name,
                    command=self.variant.command,
                    exit_code=exit_code,
                    duration_ms=duration_ms,
                    output_chars=len(transcript),
                    tool_calls=len(tool_calls),
                    status="success" if success else "failure",
                    error=error,
                )
            )

        return RunOutcome(
            success=success,
            text=text,
            error=error,
            duration_ms=duration_ms,
            tool_calls=tool_calls,
            exit_code=exit_code,
        )

    def _marker_present(self, transcript: str, text: str) -> bool:
        marker = self.variant.cleaner_profile.result_marker
        return bool(marker) and (marker in text or marker in (strip_ansi(transcript) or ""))

    def _write_telemetry(self, transcript: str, tool_calls: list[ToolCallRecord]) -> None:
        output_dir = self.config.resolved_output_dir()
        command = Path(self.variant.command).name
        write_artifacts(output_dir, command, transcript, tool_calls, self.tracker.summary_markdown())
        try:
            self.tracker.save(output_dir / f"{command}-timings.json")
        except OSError as e:
            logger.warning("Could not save timings: %s", e)
