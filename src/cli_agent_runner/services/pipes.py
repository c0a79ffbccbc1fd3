"""Named pipe bridging for large prompts.

The prompt is never written to the child's stdin directly. A relay process
copies the prompt file into a FIFO and a second relay copies the FIFO into
the child's stdin, so neither the event loop nor the child can deadlock on a
full OS pipe buffer, and either relay can be torn down independently.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

# Exit statuses that only mean the downstream side stopped reading.
_BROKEN_PIPE_CODES = (-signal.SIGPIPE, 128 + signal.SIGPIPE)


@dataclass
class Relay:
    """A helper process that moves bytes between two endpoints."""

    name: str
    process: asyncio.subprocess.Process

    @property
    def running(self) -> bool:
        return self.process.returncode is None

    def broken_pipe(self, code: int) -> bool:
        return code in _BROKEN_PIPE_CODES

    async def terminate(self) -> None:
        """Kill the relay if it is still running and reap it."""
        if self.running:
            try:
                self.process.kill()
            except ProcessLookupError:
                pass
        await self.process.wait()


class NamedPipeBridge:
    """Owns one FIFO path and the relays attached to it."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def create(self) -> Path:
        """Create a fresh FIFO, removing any stale node at the path first."""
        self.path.unlink(missing_ok=True)
        os.mkfifo(self.path, 0o600)
        logger.info("Created named pipe: %s", self.path)
        return self.path

    async def start_writer(self, source: Path) -> Relay:
        """Start the file -> pipe relay.

        ``tee`` opens the FIFO itself, so the open blocks in the relay rather
        than in this process until a reader attaches.
        """
        with open(source, "rb") as src:
            proc = await asyncio.create_subprocess_exec(
                "tee",
                "--",
                str(self.path),
                stdin=src,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        logger.debug("Pipe writer started (pid %s): %s -> %s", proc.pid, source, self.path)
        return Relay("pipe writer", proc)

    async def start_reader(self, target_fd: int) -> Relay:
        """Start the pipe -> stdin relay, writing into ``target_fd``."""
        proc = await asyncio.create_subprocess_exec(
            "cat",
            "--",
            str(self.path),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=target_fd,
            stderr=asyncio.subprocess.DEVNULL,
        )
        logger.debug("Pipe reader started (pid %s): %s -> fd %d", proc.pid, self.path, target_fd)
        return Relay("pipe reader", proc)

    def remove(self) -> None:
        """Delete the FIFO. Failures are ignored."""
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.debug("Could not remove named pipe %s: %s", self.path, e)
