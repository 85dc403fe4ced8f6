"""Columnar (Parquet) archive of project data."""

from .parquet_archive import ColumnarArchive, ENTITY_COLUMNS
from .mirror import ArchiveMirror

__all__ = ["ColumnarArchive", "ENTITY_COLUMNS", "ArchiveMirror"]
