"""Async SQLite persistence for instance snapshots."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite
from pydantic import ValidationError

from procon.db.migrations import apply_migrations
from procon.models.instance import Instance
from procon.models.project import Project

logger = logging.getLogger(__name__)


class StateStoreError(RuntimeError):
    """Raised when the snapshot cannot be written."""


class SQLiteStore:
    """Read and replace the persisted snapshot."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path

    @property
    def path(self) -> Path:
        return self._db_path

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        conn = await aiosqlite.connect(self._db_path)
        conn.row_factory = aiosqlite.Row
        try:
            await apply_migrations(conn)
            yield conn
        finally:
            await conn.close()

    @asynccontextmanager
    async def read_connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Open the state file read-only, without running migrations."""
        uri = f"{self._db_path.resolve().as_uri()}?mode=ro"
        conn = await aiosqlite.connect(uri, uri=True)
        conn.row_factory = aiosqlite.Row
        try:
            yield conn
        finally:
            await conn.close()

    async def load_snapshot(self, root: Path) -> Instance:
        """Return the stored snapshot, or an empty one when absent or unreadable."""
        if not self._db_path.is_file():
            return Instance(root=root)
        try:
            async with self.read_connection() as conn:
                cursor = await conn.execute("SELECT root FROM instance WHERE id = 1")
                instance_row = await cursor.fetchone()
                cursor = await conn.execute("SELECT name, payload FROM projects ORDER BY name")
                rows = await cursor.fetchall()
            projects = {str(row["name"]): self._project_from_row(row) for row in rows}
        except (aiosqlite.Error, ValidationError) as exc:
            logger.warning("Ignoring unreadable state file %s: %s", self._db_path, exc)
            return Instance(root=root)

        stored_root = Path(str(instance_row["root"])) if instance_row is not None else root
        return Instance(root=stored_root, projects=projects)

    async def save_snapshot(self, instance: Instance) -> None:
        """Replace the whole snapshot in a single transaction."""
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            async with self.connection() as conn:
                await conn.execute("DELETE FROM projects")
                await conn.executemany(
                    "INSERT INTO projects(name, payload) VALUES (?, ?)",
                    [
                        (name, project.model_dump_json())
                        for name, project in sorted(instance.projects.items())
                    ],
                )
                await conn.execute(
                    """
                    INSERT INTO instance(id, root) VALUES (1, ?)
                    ON CONFLICT(id) DO UPDATE SET root=excluded.root
                    """,
                    (str(instance.root),),
                )
                await conn.commit()
        except (OSError, aiosqlite.Error) as exc:
            msg = f"Failed to write state file {self._db_path}: {exc}"
            raise StateStoreError(msg) from exc
        logger.debug("Saved %d projects to %s", len(instance.projects), self._db_path)

    @staticmethod
    def _project_from_row(row: aiosqlite.Row) -> Project:
        return Project.model_validate_json(str(row["payload"]))
