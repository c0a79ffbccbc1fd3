"""Tests for named pipe bridging."""

from __future__ import annotations

import asyncio
import os
import signal
import stat

import pytest

from cli_agent_runner.services.pipes import NamedPipeBridge, Relay


class TestNamedPipeBridge:
    def test_create_makes_fifo(self, tmp_path):
        bridge = NamedPipeBridge(tmp_path / "q_prompt_pipe")
        path = bridge.create()
        assert stat.S_ISFIFO(path.stat().st_mode)
        bridge.remove()
        assert not path.exists()

    def test_create_replaces_stale_node(self, tmp_path):
        path = tmp_path / "q_prompt_pipe"
        path.write_text("left over from a crashed run")
        NamedPipeBridge(path).create()
        assert stat.S_ISFIFO(path.stat().st_mode)

    def test_remove_missing_is_quiet(self, tmp_path):
        NamedPipeBridge(tmp_path / "never_created").remove()

    @pytest.mark.asyncio
    async def test_relays_copy_prompt(self, tmp_path):
        source = tmp_path / "prompt.txt"
        source.write_text("prompt through the pipe")
        bridge = NamedPipeBridge(tmp_path / "pipe")
        bridge.create()

        writer = await bridge.start_writer(source)
        read_fd, write_fd = os.pipe()
        try:
            reader = await bridge.start_reader(write_fd)
            os.close(write_fd)
            write_fd = -1
            assert await asyncio.wait_for(reader.process.wait(), timeout=10) == 0
            assert await asyncio.wait_for(writer.process.wait(), timeout=10) == 0
            assert os.read(read_fd, 1024) == b"prompt through the pipe"
        finally:
            os.close(read_fd)
            if write_fd != -1:
                os.close(write_fd)
            bridge.remove()


class TestRelay:
    @pytest.mark.asyncio
    async def test_terminate_running(self):
        proc = await asyncio.create_subprocess_exec("sleep", "30")
        relay = Relay("pipe writer", proc)
        assert relay.running
        await relay.terminate()
        assert not relay.running

    @pytest.mark.asyncio
    async def test_terminate_finished(self):
        proc = await asyncio.create_subprocess_exec("true")
        await proc.wait()
        relay = Relay("pipe reader", proc)
        await relay.terminate()
        assert proc.returncode == 0

    def test_broken_pipe_codes(self):
        relay = Relay("pipe reader", None)
        assert relay.broken_pipe(-signal.SIGPIPE)
        assert relay.broken_pipe(128 + signal.SIGPIPE)
        assert not relay.broken_pipe(1)
        assert not relay.broken_pipe(0)
