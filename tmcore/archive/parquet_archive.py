"""
Columnar Archive
Parquet mirror of project data for bulk export and analytics.

One file per project per entity type:
    <archive_dir>/<project_id>/<entity>.parquet

Files are regenerated wholesale on refresh and appended on batch append.
They are never used for point lookups. Every write goes to a temporary file
that replaces the previous one only once it is complete, so an abandoned
write leaves the old file intact.
"""
import asyncio
import json
import logging
import os
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from tmcore.exceptions import OperationCancelledError, ValidationError

logger = logging.getLogger(__name__)


# ==================== SCHEMA ====================

ENTITY_COLUMNS: Dict[str, List[str]] = {
    "units": [
        "id", "project_id", "chapter_id", "chunk_id",
        "source_language", "source_text", "target_language", "target_text",
        "confidence_score", "quality_score", "context",
        "translator_id", "reviewer_id", "created_at", "updated_at",
    ],
    "terms": [
        "id", "project_id", "term", "definition", "do_not_translate",
        "created_at", "updated_at",
    ],
    "chunks": [
        "id", "project_id", "chapter_id", "original_position", "chunk_type",
        "sentence_boundaries", "linked_chunk_ids", "processing_notes",
        "phrase_group_id", "created_at", "updated_at",
    ],
}

# Nested values are stored as JSON text columns
JSON_COLUMNS = {"sentence_boundaries", "linked_chunk_ids", "processing_notes"}
TIMESTAMP_COLUMNS = {"created_at", "updated_at"}


class ColumnarArchive:
    """Parquet files written with pandas + pyarrow."""

    def __init__(self, base_dir: Path, compression: Optional[str] = "snappy"):
        self.base_dir = Path(base_dir)
        self.compression = None if compression in (None, "none") else compression
        self._locks: Dict[Path, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # ==================== PATHS ====================

    def path_for(self, project_id: str, entity: str) -> Path:
        if entity not in ENTITY_COLUMNS:
            raise ValidationError("entity", f"unknown archive entity '{entity}'", entity)
        return self.base_dir / project_id / f"{entity}.parquet"

    def _lock_for(self, path: Path) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(path, threading.Lock())

    # ==================== FRAMES ====================

    def to_frame(self, entity: str, rows: List[Dict[str, Any]]) -> pd.DataFrame:
        """Build a frame with the entity's fixed column order."""
        columns = ENTITY_COLUMNS[entity]
        records = []
        for row in rows:
            record = {}
            for column in columns:
                value = row.get(column)
                if column in JSON_COLUMNS and value is not None and not isinstance(value, str):
                    value = json.dumps(value, ensure_ascii=False)
                record[column] = value
            records.append(record)

        frame = pd.DataFrame.from_records(records, columns=columns)
        for column in TIMESTAMP_COLUMNS & set(columns):
            frame[column] = pd.to_datetime(frame[column], errors="coerce")
        return frame

    def _write(self, path: Path, frame: pd.DataFrame, cancel_event: Optional[threading.Event]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(f".{path.name}.{os.getpid()}.{threading.get_ident()}.tmp")
        try:
            frame.to_parquet(tmp_path, engine="pyarrow", compression=self.compression, index=False)
            if cancel_event is not None and cancel_event.is_set():
                raise OperationCancelledError(f"archive write {path.name}")
            os.replace(tmp_path, path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

    # ==================== OPERATIONS ====================

    def refresh(
        self,
        project_id: str,
        entity: str,
        rows: List[Dict[str, Any]],
        cancel_event: Optional[threading.Event] = None,
    ) -> Path:
        """Regenerate an entity file wholesale from the given rows."""
        path = self.path_for(project_id, entity)
        frame = self.to_frame(entity, rows)
        with self._lock_for(path):
            self._write(path, frame, cancel_event)
        logger.info(f"Archive refreshed: {path} ({len(frame)} rows)")
        return path

    def append(
        self,
        project_id: str,
        entity: str,
        rows: List[Dict[str, Any]],
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        """Append rows to an entity file; returns the new total row count."""
        path = self.path_for(project_id, entity)
        new_frame = self.to_frame(entity, rows)
        with self._lock_for(path):
            if path.exists():
                existing = pd.read_parquet(path, engine="pyarrow")
                frame = pd.concat([existing, new_frame], ignore_index=True) if len(new_frame) else existing
            else:
                frame = new_frame
            self._write(path, frame, cancel_event)
        logger.debug(f"Archive append: {path} (+{len(new_frame)} rows)")
        return len(frame)

    def read(self, project_id: str, entity: str) -> pd.DataFrame:
        """Read an entity file; an empty frame when none exists yet."""
        path = self.path_for(project_id, entity)
        if not path.exists():
            return self.to_frame(entity, [])
        return pd.read_parquet(path, engine="pyarrow")

    def optimize(
        self,
        project_id: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> Dict[str, int]:
        """
        Compact every entity file of a project.

        Rows are deduplicated by id keeping the most recently updated copy.
        Returns rows removed per entity.
        """
        removed: Dict[str, int] = {}
        for entity in ENTITY_COLUMNS:
            path = self.path_for(project_id, entity)
            if not path.exists():
                continue
            with self._lock_for(path):
                frame = pd.read_parquet(path, engine="pyarrow")
                before = len(frame)
                if "updated_at" in frame.columns:
                    frame = frame.sort_values("updated_at", kind="stable", na_position="first")
                frame = frame.drop_duplicates(subset="id", keep="last").reset_index(drop=True)
                self._write(path, frame, cancel_event)
            removed[entity] = before - len(frame)
        logger.info(f"Archive optimized for project {project_id}: {removed}")
        return removed

    def list_files(self, project_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """List archive files with size and modification time."""
        root = self.base_dir / project_id if project_id else self.base_dir
        if not root.exists():
            return []
        files = []
        for path in sorted(root.rglob("*.parquet")):
            stat = path.stat()
            files.append({
                "project_id": path.parent.name,
                "entity": path.stem,
                "path": str(path),
                "size_bytes": stat.st_size,
                "modified": datetime.fromtimestamp(stat.st_mtime).isoformat(),
            })
        return files

    # ==================== ASYNC WRAPPERS ====================

    async def refresh_async(self, project_id: str, entity: str, rows: List[Dict[str, Any]],
                            cancel_event: Optional[threading.Event] = None) -> Path:
        return await asyncio.to_thread(self.refresh, project_id, entity, rows, cancel_event)

    async def append_async(self, project_id: str, entity: str, rows: List[Dict[str, Any]],
                           cancel_event: Optional[threading.Event] = None) -> int:
        return await asyncio.to_thread(self.append, project_id, entity, rows, cancel_event)

    async def optimize_async(self, project_id: str,
                             cancel_event: Optional[threading.Event] = None) -> Dict[str, int]:
        return await asyncio.to_thread(self.optimize, project_id, cancel_event)
