"""
Archive Mirror
Keeps one archive entity in step with store writes, in the background.

Inserted rows are appended to the project's file. Updates and deletes
regenerate the file from the store, so a removed row never lingers in the
archive. Mirror writes run one at a time in the order they were scheduled.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from tmcore.config.settings import settings
from .parquet_archive import ColumnarArchive

logger = logging.getLogger(__name__)

RowLoader = Callable[[str], Awaitable[List[Dict[str, Any]]]]


class ArchiveMirror:
    """Background append/regenerate of one entity's archive files."""

    def __init__(self, archive: Optional[ColumnarArchive], entity: str, load_rows: RowLoader):
        self.archive = archive
        self.entity = entity
        self.load_rows = load_rows
        self.errors: List[str] = []
        self._tasks: Set[asyncio.Task] = set()
        self._lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return self.archive is not None and settings.archive_enabled

    def inserted(self, project_id: str, rows: List[Dict[str, Any]]) -> None:
        if rows and self.enabled:
            self._schedule(project_id, self._append(project_id, rows))

    def changed(self, project_id: str) -> None:
        """Rows were updated or deleted; regenerate the project's file."""
        if self.enabled:
            self._schedule(project_id, self._regenerate(project_id))

    def _schedule(self, project_id: str, work: Awaitable[Any]) -> None:
        task = asyncio.create_task(self._run(project_id, work))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, project_id: str, work: Awaitable[Any]) -> None:
        async with self._lock:
            try:
                await work
            except Exception as e:
                # the store already holds the rows; a later refresh repairs the mirror
                logger.exception(f"Archive mirror of {self.entity} failed for project {project_id}: {e}")
                self.errors.append(f"{project_id}/{self.entity}: {e}")

    async def _append(self, project_id: str, rows: List[Dict[str, Any]]) -> None:
        await self.archive.append_async(project_id, self.entity, rows)

    async def _regenerate(self, project_id: str) -> None:
        rows = await self.load_rows(project_id)
        await self.archive.refresh_async(project_id, self.entity, rows)
        logger.debug(f"Regenerated {self.entity} archive for project {project_id} ({len(rows)} rows)")

    async def flush(self) -> None:
        """Wait for pending mirror writes."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks))
