"""Tests for the process orchestrator."""

from __future__ import annotations

import asyncio
import os
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import ArgScriptVariant, ScriptVariant
from cli_agent_runner.config import DEFAULT_FALLBACK_MESSAGE
from cli_agent_runner.errors import (
    ExecutionError,
    NonZeroExitError,
    SpawnError,
    StreamFailureError,
    ToolUnavailableError,
)
from cli_agent_runner.executors.amazonq import AmazonQVariant
from cli_agent_runner.services.orchestrator import ProcessOrchestrator
from cli_agent_runner.services.pipes import NamedPipeBridge, Relay
from cli_agent_runner.storage.models import ExecutionRequest
from cli_agent_runner.utils.timing import TimingTracker


def make_orchestrator(tmp_path, variant, **kwargs):
    work_dir = tmp_path / "work"
    work_dir.mkdir(exist_ok=True)
    return ProcessOrchestrator(
        variant,
        temp_dir=tmp_path / "tmp",
        work_dir=work_dir,
        probe_timeout=5,
        **kwargs,
    )


class TestProbe:
    @pytest.mark.asyncio
    async def test_missing_cli(self, tmp_path):
        variant = ScriptVariant("pass")
        variant.command = "definitely-not-an-agent-cli"
        orch = make_orchestrator(tmp_path, variant)

        with pytest.raises(ToolUnavailableError) as exc:
            await orch.probe()
        assert "definitely-not-an-agent-cli CLI execution failed" in str(exc.value)
        assert "not found" in str(exc.value)

    @pytest.mark.asyncio
    async def test_spawn_not_found_is_tool_unavailable(self, tmp_path):
        orch = make_orchestrator(tmp_path, AmazonQVariant())
        with patch(
            "cli_agent_runner.services.orchestrator.asyncio.create_subprocess_exec",
            side_effect=FileNotFoundError,
        ):
            with pytest.raises(ToolUnavailableError):
                await orch.probe()

    @pytest.mark.asyncio
    async def test_help_nonzero_exit(self, tmp_path):
        mock_proc = AsyncMock()
        mock_proc.wait = AsyncMock(return_value=2)

        orch = make_orchestrator(tmp_path, AmazonQVariant())
        with patch("cli_agent_runner.services.orchestrator.asyncio.create_subprocess_exec", return_value=mock_proc):
            with pytest.raises(ToolUnavailableError) as exc:
                await orch.probe()
        assert "exited with code 2" in str(exc.value)

    @pytest.mark.asyncio
    async def test_probe_success(self, tmp_path):
        orch = make_orchestrator(tmp_path, ScriptVariant("pass"))
        await orch.probe()

    @pytest.mark.asyncio
    async def test_execute_stops_at_probe(self, tmp_path):
        variant = ScriptVariant("pass")
        variant.command = "definitely-not-an-agent-cli"
        orch = make_orchestrator(tmp_path, variant)
        orch.run = AsyncMock()

        with pytest.raises(ToolUnavailableError):
            await orch.execute("hello")
        orch.run.assert_not_called()


class TestPaths:
    def test_default_paths(self, tmp_path):
        orch = make_orchestrator(tmp_path, AmazonQVariant())
        prompt_file, pipe = orch.paths()
        assert prompt_file == tmp_path / "tmp" / "q-prompt.txt"
        assert pipe == tmp_path / "tmp" / "q_prompt_pipe"

    def test_run_id_paths(self, tmp_path):
        orch = make_orchestrator(tmp_path, AmazonQVariant())
        prompt_file, pipe = orch.paths("abc123")
        assert prompt_file.name == "q-abc123-prompt.txt"
        assert pipe.name == "q-abc123_prompt_pipe"

    def test_absolute_command_stays_in_temp_dir(self, tmp_path):
        orch = make_orchestrator(tmp_path, ScriptVariant("pass"))
        prompt_file, pipe = orch.paths()
        assert prompt_file.parent == tmp_path / "tmp"
        assert pipe.parent == tmp_path / "tmp"


class TestRun:
    @pytest.mark.asyncio
    async def test_prompt_reaches_stdin(self, tmp_path):
        variant = ScriptVariant("import sys; sys.stdout.write('got:' + sys.stdin.read())")
        orch = make_orchestrator(tmp_path, variant)

        result = await orch.run(ExecutionRequest(prompt="hello agent"))
        assert result.exit_code == 0
        assert result.source == "stdout"
        assert result.output == "got:hello agent"

    @pytest.mark.asyncio
    async def test_large_prompt_streams_through_pipe(self, tmp_path):
        variant = ScriptVariant("import sys; print(len(sys.stdin.read()))")
        orch = make_orchestrator(tmp_path, variant)

        result = await orch.run(ExecutionRequest(prompt="x" * 300_000))
        assert result.output.strip() == "300000"

    @pytest.mark.asyncio
    async def test_large_output_on_both_streams(self, tmp_path):
        script = (
            "import sys\n"
            "for _ in range(50):\n"
            "    sys.stdout.write('o' * 4096)\n"
            "    sys.stderr.write('e' * 4096)\n"
        )
        orch = make_orchestrator(tmp_path, ScriptVariant(script))

        result = await orch.run(ExecutionRequest(prompt="go"))
        assert result.exit_code == 0
        assert len(result.stdout) == 50 * 4096
        assert len(result.stderr) == 50 * 4096
        assert set(result.stdout) == {"o"}
        assert set(result.stderr) == {"e"}

    @pytest.mark.asyncio
    async def test_stderr_used_when_stdout_empty(self, tmp_path):
        variant = ScriptVariant("import sys; sys.stderr.write('answer on stderr')")
        orch = make_orchestrator(tmp_path, variant)

        result = await orch.run(ExecutionRequest(prompt="go"))
        assert result.source == "stderr"
        assert result.output == "answer on stderr"

    @pytest.mark.asyncio
    async def test_temp_files_removed_after_success(self, tmp_path):
        orch = make_orchestrator(tmp_path, ScriptVariant("import sys; sys.stdin.read()"))

        await orch.run(ExecutionRequest(prompt="go"))
        prompt_file, pipe = orch.paths()
        assert not prompt_file.exists()
        assert not pipe.exists()

    @pytest.mark.asyncio
    async def test_temp_files_removed_after_failure(self, tmp_path):
        orch = make_orchestrator(tmp_path, ScriptVariant("import sys; sys.exit(5)"))

        result = await orch.run(ExecutionRequest(prompt="go", run_id="r1"))
        assert result.exit_code == 5
        prompt_file, pipe = orch.paths("r1")
        assert not prompt_file.exists()
        assert not pipe.exists()

    @pytest.mark.asyncio
    async def test_spawn_failure_cleans_up(self, tmp_path):
        orch = make_orchestrator(tmp_path, ScriptVariant("pass"))

        with pytest.raises(SpawnError) as exc:
            await orch.run(ExecutionRequest(prompt="go", work_dir=str(tmp_path / "missing")))
        assert "CLI execution failed" in str(exc.value)
        prompt_file, pipe = orch.paths()
        assert not prompt_file.exists()
        assert not pipe.exists()

    @pytest.mark.asyncio
    async def test_prompt_as_argument(self, tmp_path):
        variant = ArgScriptVariant("import sys; print('arg:' + sys.argv[1])")
        orch = make_orchestrator(tmp_path, variant)

        result = await orch.run(ExecutionRequest(prompt="from argv"))
        assert result.output.strip() == "arg:from argv"
        assert not orch.paths()[1].exists()

    @pytest.mark.asyncio
    async def test_request_env_overlay(self, tmp_path):
        variant = ScriptVariant("import os; print(os.environ['AGENT_TEST_VALUE'])")
        orch = make_orchestrator(tmp_path, variant)

        result = await orch.run(ExecutionRequest(prompt="go", env={"AGENT_TEST_VALUE": "overlay"}))
        assert result.output.strip() == "overlay"
        assert "AGENT_TEST_VALUE" not in os.environ

    @pytest.mark.asyncio
    async def test_live_output_callback(self, tmp_path):
        chunks: list[tuple[str, str]] = []
        variant = ScriptVariant("import sys; print('héllo'); sys.stderr.write('warn')")
        orch = make_orchestrator(tmp_path, variant, on_output=lambda stream, text: chunks.append((stream, text)))

        result = await orch.run(ExecutionRequest(prompt="go"))
        assert "".join(t for s, t in chunks if s == "stdout") == result.stdout
        assert "".join(t for s, t in chunks if s == "stderr") == "warn"

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_break_capture(self, tmp_path):
        callback = MagicMock(side_effect=RuntimeError("display gone"))
        orch = make_orchestrator(tmp_path, ScriptVariant("print('still captured')"), on_output=callback)

        result = await orch.run(ExecutionRequest(prompt="go"))
        assert result.output.strip() == "still captured"
        assert callback.called

    @pytest.mark.asyncio
    async def test_relay_failure_kills_child_and_cleans_up(self, tmp_path, monkeypatch):
        async def failing_reader(bridge, target_fd):
            proc = await asyncio.create_subprocess_exec(
                "sh",
                "-c",
                "exit 3",
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
            return Relay("pipe reader", proc)

        monkeypatch.setattr(NamedPipeBridge, "start_reader", failing_reader)
        orch = make_orchestrator(tmp_path, ScriptVariant("import time; time.sleep(20)"))

        started = time.monotonic()
        with pytest.raises(StreamFailureError) as exc:
            await orch.run(ExecutionRequest(prompt="go"))
        assert time.monotonic() - started < 10
        assert "pipe reader exited with code 3" in str(exc.value)
        prompt_file, pipe = orch.paths()
        assert not prompt_file.exists()
        assert not pipe.exists()

    @pytest.mark.asyncio
    async def test_nul_byte_in_argument_is_spawn_error(self, tmp_path):
        orch = make_orchestrator(tmp_path, ArgScriptVariant("print(1)"))

        with pytest.raises(SpawnError) as exc:
            await orch.execute("before\x00after")
        assert isinstance(exc.value, ExecutionError)
        assert "error spawning" in str(exc.value)


class TestExecute:
    @pytest.mark.asyncio
    async def test_success_returns_cleaned_output(self, tmp_path):
        variant = ScriptVariant("print('\\x1b[32m## Result\\x1b[0m'); print('all good')")
        orch = make_orchestrator(tmp_path, variant)

        result = await orch.execute("go")
        assert result == "## Result\n\nall good"

    @pytest.mark.asyncio
    async def test_nonzero_exit_raises(self, tmp_path):
        variant = ScriptVariant("import sys; sys.stderr.write('secret transcript'); sys.exit(3)")
        orch = make_orchestrator(tmp_path, variant)

        with pytest.raises(NonZeroExitError) as exc:
            await orch.execute("go")
        assert exc.value.exit_code == 3
        assert isinstance(exc.value, ExecutionError)
        assert "exited with code 3" in str(exc.value)
        assert "secret transcript" not in str(exc.value)

    @pytest.mark.asyncio
    async def test_empty_output_uses_fallback(self, tmp_path):
        orch = make_orchestrator(tmp_path, ScriptVariant("pass"))
        assert await orch.execute("go") == DEFAULT_FALLBACK_MESSAGE

    @pytest.mark.asyncio
    async def test_custom_fallback(self, tmp_path):
        orch = make_orchestrator(tmp_path, ScriptVariant("print('   ')"), fallback_message="nothing")
        assert await orch.execute("go") == "nothing"

    @pytest.mark.asyncio
    async def test_tracker_records_phases_and_tools(self, tmp_path):
        script = "print('● Running fetch_logs'); print('● Completed in 1.5s'); print('done')"
        tracker = TimingTracker()
        orch = make_orchestrator(tmp_path, ScriptVariant(script), tracker=tracker)

        await orch.execute("go")
        phases = [t["phase"] for t in tracker.timings]
        assert "CLI Probe" in phases
        assert "CLI Execution" in phases
        assert tracker.tool_calls()[0]["toolName"] == "fetch_logs"
        assert tracker.tool_calls()[0]["duration"] == 1500

    @pytest.mark.asyncio
    async def test_last_result_kept(self, tmp_path):
        orch = make_orchestrator(tmp_path, ScriptVariant("print('raw')"))
        await orch.execute(ExecutionRequest(prompt="go"))
        assert orch.last_result is not None
        assert orch.last_result.output.strip() == "raw"
