"""Agent CLI process orchestration.

One execution: probe the CLI, let the variant write its configuration,
stream the prompt through a named pipe into the child's stdin, drain stdout
and stderr concurrently, clean up every helper and temp file, then hand the
captured output to the variant's parser.

There is no timeout on the main execution. Callers that need a deadline
wrap :meth:`ProcessOrchestrator.execute` themselves.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
from pathlib import Path
from typing import Callable, Mapping

from cli_agent_runner.config import DEFAULT_FALLBACK_MESSAGE
from cli_agent_runner.errors import (
    ExecutionError,
    SpawnError,
    StreamFailureError,
    ToolUnavailableError,
    NonZeroExitError,
)
from cli_agent_runner.executors.base import ExecutorVariant, VariantContext
from cli_agent_runner.services.pipes import NamedPipeBridge, Relay
from cli_agent_runner.storage.models import ExecutionRequest, ProcessResult
from cli_agent_runner.utils.timing import TimingTracker

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
MAX_LOGGED_ARG = 200

OutputCallback = Callable[[str, str], None]


def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass


def _close_fds(fds: list[int]) -> None:
    while fds:
        try:
            os.close(fds.pop())
        except OSError:
            pass


def _loggable(args: list[str]) -> str:
    shown = [a if len(a) <= MAX_LOGGED_ARG else f"<{len(a)} chars>" for a in args]
    return " ".join(shown)


class ProcessOrchestrator:
    """Run one agent CLI variant as a child process."""

    def __init__(
        self,
        variant: ExecutorVariant,
        temp_dir: Path | str | None = None,
        work_dir: Path | str | None = None,
        probe_timeout: float = 10,
        on_output: OutputCallback | None = None,
        tracker: TimingTracker | None = None,
        fallback_message: str = DEFAULT_FALLBACK_MESSAGE,
        base_env: Mapping[str, str] | None = None,
    ) -> None:
        self.variant = variant
        self.temp_dir = Path(temp_dir or os.environ.get("RUNNER_TEMP") or "/tmp")
        self.work_dir = Path(work_dir or os.environ.get("GITHUB_WORKSPACE") or os.getcwd())
        self.probe_timeout = probe_timeout
        self.on_output = on_output
        self.tracker = tracker
        self.fallback_message = fallback_message
        self.base_env: dict[str, str] = dict(os.environ if base_env is None else base_env)
        self.last_result: ProcessResult | None = None

    @property
    def command(self) -> str:
        return self.variant.command

    def paths(self, run_id: str | None = None) -> tuple[Path, Path]:
        """Temp prompt file and named pipe paths for one execution.

        Without a run id the paths depend only on the command, so two
        concurrent runs of one variant in one temp dir would collide.
        """
        name = Path(self.command).name
        stem = f"{name}-{run_id}" if run_id else name
        return self.temp_dir / f"{stem}-prompt.txt", self.temp_dir / f"{stem}_prompt_pipe"

    async def probe(self) -> None:
        """Confirm the CLI resolves on PATH by running ``<command> --help``."""
        try:
            proc = await asyncio.create_subprocess_exec(
                self.command,
                "--help",
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
                env=self.base_env,
            )
        except OSError as e:
            raise ToolUnavailableError(self.command, f"{self.command} CLI not found in PATH") from e

        try:
            code = await asyncio.wait_for(proc.wait(), timeout=self.probe_timeout)
        except asyncio.TimeoutError:
            _kill(proc)
            await proc.wait()
            raise ToolUnavailableError(
                self.command, f"{self.command} --help did not finish within {self.probe_timeout}s"
            ) from None

        if code != 0:
            raise ToolUnavailableError(self.command, f"{self.command} --help exited with code {code}")
        logger.info("%s CLI found in PATH", self.command)

    async def execute(self, prompt: str | ExecutionRequest) -> str:
        """Run the variant on a prompt and return the cleaned result.

        Raises:
            ExecutionError: naming the command and the cause, for a missing
                CLI, a spawn or stream failure, or a non-zero exit.
        """
        request = prompt if isinstance(prompt, ExecutionRequest) else ExecutionRequest(prompt=prompt)
        logger.info("Executing %s CLI (%d characters of prompt)", self.command, len(request.prompt))

        self._phase_start("CLI Probe")
        await self.probe()
        self._phase_end("CLI Probe")

        self._phase_start("CLI Execution")
        try:
            result = await self.run(request)
        except ExecutionError:
            raise
        except OSError as e:
            raise StreamFailureError(self.command, str(e)) from e
        finally:
            self._phase_end("CLI Execution")

        if self.tracker is not None:
            self.tracker.add_tool_calls(self.variant.extract_tool_timings(result.output))

        if result.exit_code != 0:
            raise NonZeroExitError(self.command, result.exit_code)

        logger.info("%s CLI completed successfully (output from %s)", self.command, result.source)
        parsed = self.variant.parse_output(result.output.strip())
        if not parsed or not parsed.strip():
            logger.warning("%s CLI succeeded but produced no usable output", self.command)
            return self.fallback_message
        return parsed

    async def run(self, request: ExecutionRequest) -> ProcessResult:
        """Spawn the child, capture its output and clean up.

        Exactly one :class:`ProcessResult` is produced per call; every
        helper process and temp file is gone by the time this returns or
        raises.
        """
        work_dir = Path(request.work_dir) if request.work_dir else self.work_dir
        ctx = VariantContext.from_env({**self.base_env, **request.env}, work_dir, self.temp_dir)
        self.temp_dir.mkdir(parents=True, exist_ok=True)

        cleanup_files: list[Path] = []
        relays: list[Relay] = []
        fds: list[int] = []
        bridge: NamedPipeBridge | None = None
        proc: asyncio.subprocess.Process | None = None

        config_path = await self._setup_configuration(ctx)
        if config_path is not None:
            cleanup_files.append(config_path)

        try:
            env = {**ctx.env, **self.variant.environment(ctx)}
            args = list(self.variant.command_args(ctx))

            if self.variant.prompt_via_stdin:
                prompt_file, pipe_path = self.paths(request.run_id)
                cleanup_files.append(prompt_file)
                bridge = NamedPipeBridge(pipe_path)
                try:
                    prompt_file.write_text(request.prompt, encoding="utf-8")
                    logger.info("Prompt file: %s (%d characters)", prompt_file, len(request.prompt))
                    bridge.create()
                    relays.append(await bridge.start_writer(prompt_file))
                except OSError as e:
                    raise StreamFailureError(self.command, f"could not stream prompt: {e}") from e

                read_fd, write_fd = os.pipe()
                fds.extend([read_fd, write_fd])
                proc = await self._spawn(args, env, work_dir, stdin=read_fd)
                try:
                    relays.append(await bridge.start_reader(write_fd))
                except OSError as e:
                    raise StreamFailureError(self.command, f"could not read from named pipe: {e}") from e
                # The child and the reader relay hold their own copies now;
                # the child only sees EOF once ours are closed.
                _close_fds(fds)
            else:
                args.extend(self.variant.prompt_args(request.prompt))
                proc = await self._spawn(args, env, work_dir, stdin=asyncio.subprocess.DEVNULL)

            result = await self._capture(proc, relays)
        finally:
            _close_fds(fds)
            await self._cleanup(proc, relays, bridge, cleanup_files)

        self.last_result = result
        return result

    async def _setup_configuration(self, ctx: VariantContext) -> Path | None:
        try:
            self._phase_start("MCP Setup")
            return await self.variant.setup_configuration(ctx)
        except Exception as e:
            logger.warning("%s configuration setup failed, continuing without it: %s", self.command, e)
            return None
        finally:
            self._phase_end("MCP Setup")

    async def _spawn(self, args: list[str], env: dict[str, str], cwd: Path, stdin) -> asyncio.subprocess.Process:
        logger.info("Full command: %s %s", self.command, _loggable(args))
        logger.info("Working directory: %s", cwd)
        try:
            return await asyncio.create_subprocess_exec(
                self.command,
                *args,
                stdin=stdin,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(cwd),
                env=env,
            )
        except (OSError, ValueError) as e:
            # ValueError: an argument or env value with an embedded NUL byte
            raise SpawnError(self.command, f"error spawning {self.command} process: {e}") from e

    async def _capture(self, proc: asyncio.subprocess.Process, relays: list[Relay]) -> ProcessResult:
        stdout_chunks: list[bytes] = []
        stderr_chunks: list[bytes] = []
        watchers = [asyncio.create_task(self._watch_relay(relay, proc)) for relay in relays]
        readers = [
            asyncio.create_task(self._drain(proc.stdout, "stdout", stdout_chunks)),
            asyncio.create_task(self._drain(proc.stderr, "stderr", stderr_chunks)),
        ]

        try:
            await asyncio.gather(*readers)
            exit_code = await proc.wait()
        except BaseException:
            for task in readers:
                task.cancel()
            raise
        finally:
            relay_failure = next(
                (w.result() for w in watchers if w.done() and not w.cancelled() and w.result()),
                None,
            )
            for watcher in watchers:
                watcher.cancel()
            await asyncio.gather(*watchers, return_exceptions=True)

        if relay_failure:
            raise StreamFailureError(self.command, relay_failure)

        stdout = b"".join(stdout_chunks).decode("utf-8", errors="replace")
        stderr = b"".join(stderr_chunks).decode("utf-8", errors="replace")
        logger.debug("%s exited with %s (stdout %d chars, stderr %d chars)", self.command, exit_code, len(stdout), len(stderr))

        # Some CLIs write their result to stderr in non-interactive modes.
        if stdout.strip():
            return ProcessResult(output=stdout, exit_code=exit_code, source="stdout", stdout=stdout, stderr=stderr)
        return ProcessResult(output=stderr, exit_code=exit_code, source="stderr", stdout=stdout, stderr=stderr)

    async def _drain(self, stream: asyncio.StreamReader | None, name: str, chunks: list[bytes]) -> None:
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            try:
                data = await stream.read(CHUNK_SIZE)
            except OSError as e:
                raise StreamFailureError(self.command, f"error reading {name}: {e}") from e
            if not data:
                break
            chunks.append(data)
            if self.on_output is not None:
                text = decoder.decode(data)
                if text:
                    try:
                        self.on_output(name, text)
                    except Exception:
                        logger.exception("Live output callback failed")

    async def _watch_relay(self, relay: Relay, proc: asyncio.subprocess.Process) -> str | None:
        """Terminate the child if a relay dies while the child still needs it."""
        code = await relay.process.wait()
        if code == 0 or relay.broken_pipe(code) or proc.returncode is not None:
            return None
        logger.error("%s exited with code %s, terminating %s", relay.name, code, self.command)
        _kill(proc)
        return f"{relay.name} exited with code {code}"

    async def _cleanup(
        self,
        proc: asyncio.subprocess.Process | None,
        relays: list[Relay],
        bridge: NamedPipeBridge | None,
        files: list[Path],
    ) -> None:
        for relay in relays:
            try:
                await relay.terminate()
            except OSError as e:
                logger.debug("Could not terminate %s: %s", relay.name, e)

        if proc is not None and proc.returncode is None:
            _kill(proc)
            await proc.wait()

        if bridge is not None:
            bridge.remove()

        for path in files:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.debug("Could not remove %s: %s", path, e)

    def _phase_start(self, phase: str) -> None:
        if self.tracker is not None:
            self.tracker.start(phase)

    def _phase_end(self, phase: str) -> None:
        if self.tracker is not None:
            self.tracker.end(phase)

