"""SQLite database management for run history."""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

from cli_agent_runner.storage.models import RunRecord

logger = logging.getLogger(__name__)

_db: aiosqlite.Connection | None = None


async def init_db(db_path: str) -> None:
    """Initialize database and create tables."""
    global _db
    resolved = Path(db_path).expanduser().resolve()
    resolved.parent.mkdir(parents=True, exist_ok=True)

    _db = await aiosqlite.connect(str(resolved))
    _db.row_factory = aiosqlite.Row
    await _db.execute("PRAGMA journal_mode = WAL")

    await _db.execute("""
        CREATE TABLE IF NOT EXISTS runs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            variant TEXT NOT NULL,
            command TEXT NOT NULL,
            exit_code INTEGER,
            duration_ms INTEGER DEFAULT 0,
            output_chars INTEGER DEFAULT 0,
            tool_calls INTEGER DEFAULT 0,
            status TEXT DEFAULT 'success'
                CHECK(status IN ('success', 'failure')),
            error TEXT DEFAULT '',
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)
    await _db.execute("CREATE INDEX IF NOT EXISTS idx_runs_created_at ON runs(created_at)")
    await _db.commit()
    logger.info("Database initialized: %s", resolved)


async def get_db() -> aiosqlite.Connection:
    """Get the database connection."""
    if _db is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _db


async def close_db() -> None:
    """Close the database connection."""
    global _db
    if _db is not None:
        await _db.close()
        _db = None
        logger.info("Database closed")


async def save_run(record: RunRecord) -> None:
    """Save a run to history. Failures are logged, never raised."""
    try:
        db = await get_db()
        await db.execute(
            """INSERT INTO runs (variant, command, exit_code, duration_ms, output_chars, tool_calls, status, error)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                record.variant,
                record.command,
                record.exit_code,
                record.duration_ms,
                record.output_chars,
                record.tool_calls,
                record.status,
                record.error,
            ),
        )
        await db.commit()
    except Exception:
        logger.exception("Failed to save run history")


async def get_recent_runs(limit: int = 10) -> list[RunRecord]:
    """Get recent runs, newest first."""
    db = await get_db()
    cursor = await db.execute(
        """SELECT id, variant, command, exit_code, duration_ms, output_chars, tool_calls, status, error, created_at
           FROM runs ORDER BY id DESC LIMIT ?""",
        (limit,),
    )
    rows = await cursor.fetchall()
    return [RunRecord(**dict(row)) for row in rows]
