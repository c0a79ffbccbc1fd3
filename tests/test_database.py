"""Tests for database module."""

from __future__ import annotations

import pytest

from cli_agent_runner.storage.database import close_db, get_db, get_recent_runs, init_db, save_run
from cli_agent_runner.storage.models import RunRecord


class TestDatabase:
    @pytest.mark.asyncio
    async def test_init_and_save(self, tmp_path):
        await init_db(str(tmp_path / "test.db"))

        await save_run(RunRecord(variant="amazonq", command="q", exit_code=0, duration_ms=1200, tool_calls=2))

        runs = await get_recent_runs(limit=5)
        assert len(runs) == 1
        assert runs[0].variant == "amazonq"
        assert runs[0].exit_code == 0
        assert runs[0].tool_calls == 2
        assert runs[0].status == "success"
        assert runs[0].created_at

        await close_db()

    @pytest.mark.asyncio
    async def test_ordering(self, tmp_path):
        await init_db(str(tmp_path / "test2.db"))

        for i in range(5):
            await save_run(RunRecord(variant=f"v{i}", command="q", exit_code=0, duration_ms=i * 10))

        runs = await get_recent_runs(limit=3)
        assert len(runs) == 3
        # Most recent first
        assert runs[0].variant == "v4"
        assert runs[2].variant == "v2"

        await close_db()

    @pytest.mark.asyncio
    async def test_failure_record(self, tmp_path):
        await init_db(str(tmp_path / "test3.db"))

        await save_run(
            RunRecord(variant="claude", command="claude", exit_code=None, status="failure", error="not found")
        )

        runs = await get_recent_runs(limit=1)
        assert runs[0].exit_code is None
        assert runs[0].status == "failure"
        assert runs[0].error == "not found"

        await close_db()

    @pytest.mark.asyncio
    async def test_invalid_status_is_logged_not_raised(self, tmp_path):
        await init_db(str(tmp_path / "test4.db"))

        await save_run(RunRecord(variant="q", command="q", status="exploded"))
        assert await get_recent_runs() == []

        await close_db()

    @pytest.mark.asyncio
    async def test_get_db_before_init(self):
        with pytest.raises(RuntimeError):
            await get_db()
