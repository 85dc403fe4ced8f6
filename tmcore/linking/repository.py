"""
Chunk Linking Repository
Database access for chunks, chunk links and phrase groups.
"""
import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from tmcore.database.protocol import StorageBackend
from tmcore.exceptions import ConflictError, NotFoundError, ValidationError
from .models import ChunkMetadata, PhraseGroup
from .schemas import ChunkCreate, ChunkType, PhraseMetadata, PhraseMetadataUpdate

logger = logging.getLogger(__name__)


def _check_link_ids(chunk_ids: List[str]) -> None:
    if len(set(chunk_ids)) != len(chunk_ids):
        raise ConflictError(
            "A chunk cannot be linked to itself",
            {"chunk_ids": chunk_ids},
        )
    if len(chunk_ids) < 2:
        raise ConflictError(
            "At least 2 chunks are required for linking",
            {"chunk_ids": chunk_ids},
        )


class ChunkRepository:
    """Repository for chunk metadata and phrase groups."""

    def __init__(self, backend: StorageBackend):
        self.backend = backend

    # ==================== CHUNKS ====================

    def add_chunk(self, data: ChunkCreate) -> ChunkMetadata:
        with self.backend.session() as session:
            chunk = self._build_chunk(data)
            session.add(chunk)
            return chunk

    def add_chunks(self, items: List[ChunkCreate]) -> int:
        """Register chunks in one transaction. Returns count inserted."""
        with self.backend.session() as session:
            session.add_all([self._build_chunk(data) for data in items])
        logger.info(f"Registered {len(items)} chunks")
        return len(items)

    @staticmethod
    def _build_chunk(data: ChunkCreate) -> ChunkMetadata:
        values = data.model_dump(exclude_none=True)
        values["chunk_type"] = data.chunk_type.value
        values["linked_chunk_ids"] = []
        return ChunkMetadata(**values)

    def get_chunk(self, chunk_id: str) -> Optional[ChunkMetadata]:
        with self.backend.session() as session:
            return session.get(ChunkMetadata, chunk_id)

    def get_chunks(self, chunk_ids: Iterable[str]) -> Dict[str, ChunkMetadata]:
        ids = list(chunk_ids)
        with self.backend.session() as session:
            rows = session.query(ChunkMetadata).filter(ChunkMetadata.id.in_(ids)).all()
            return {row.id: row for row in rows}

    def get_chunks_by_chapter(
        self,
        chapter_id: str,
        start_position: Optional[int] = None,
        end_position: Optional[int] = None,
    ) -> List[ChunkMetadata]:
        """Chunks of a chapter in document order, optionally within [start, end]."""
        with self.backend.session() as session:
            query = session.query(ChunkMetadata).filter(ChunkMetadata.chapter_id == chapter_id)
            if start_position is not None:
                query = query.filter(ChunkMetadata.original_position >= start_position)
            if end_position is not None:
                query = query.filter(ChunkMetadata.original_position <= end_position)
            return query.order_by(ChunkMetadata.original_position).all()

    def get_chunks_by_project(self, project_id: str) -> List[ChunkMetadata]:
        with self.backend.session() as session:
            return session.query(ChunkMetadata).filter(
                ChunkMetadata.project_id == project_id
            ).order_by(ChunkMetadata.chapter_id, ChunkMetadata.original_position).all()

    def link_chunks(self, chunk_ids: List[str]) -> None:
        """Link every listed chunk with every other one, symmetrically."""
        _check_link_ids(chunk_ids)
        with self.backend.session() as session:
            chunks = self._load_all(session, chunk_ids)
            self._link(chunks)

    def unlink_chunks(self, chunk_ids: List[str]) -> None:
        """Remove links among the listed chunks."""
        with self.backend.session() as session:
            chunks = self._load_all(session, chunk_ids)
            self._unlink(chunks)

    def get_linked_chunks(self, chunk_id: str) -> List[ChunkMetadata]:
        with self.backend.session() as session:
            chunk = session.get(ChunkMetadata, chunk_id)
            if chunk is None:
                raise NotFoundError("Chunk", chunk_id)
            linked = list(chunk.linked_chunk_ids or [])
            if not linked:
                return []
            rows = session.query(ChunkMetadata).filter(ChunkMetadata.id.in_(linked)).all()
            return sorted(rows, key=lambda c: (c.chapter_id, c.original_position))

    @staticmethod
    def _load_all(session: Session, chunk_ids: List[str]) -> List[ChunkMetadata]:
        rows = session.query(ChunkMetadata).filter(ChunkMetadata.id.in_(chunk_ids)).all()
        by_id = {row.id: row for row in rows}
        missing = [cid for cid in chunk_ids if cid not in by_id]
        if missing:
            raise NotFoundError("Chunk", ", ".join(missing))
        return [by_id[cid] for cid in chunk_ids]

    @staticmethod
    def _link(chunks: List[ChunkMetadata]) -> None:
        ids = [c.id for c in chunks]
        for chunk in chunks:
            others = [cid for cid in ids if cid != chunk.id]
            current = list(chunk.linked_chunk_ids or [])
            chunk.linked_chunk_ids = current + [cid for cid in others if cid not in current]

    @staticmethod
    def _unlink(chunks: List[ChunkMetadata]) -> None:
        ids = {c.id for c in chunks}
        for chunk in chunks:
            chunk.linked_chunk_ids = [cid for cid in (chunk.linked_chunk_ids or []) if cid not in ids]

    # ==================== PHRASE GROUPS ====================

    def create_phrase_group(
        self,
        chunk_ids: List[str],
        merged_text: str,
        language: str,
        merge_strategy: str,
        metadata: PhraseMetadata,
        project_id: Optional[str] = None,
    ) -> PhraseGroup:
        """
        Create a group and link its chunks in one transaction.

        Raises ConflictError when a chunk can't be linked or already belongs
        to another group.
        """
        _check_link_ids(chunk_ids)
        if not merged_text or not merged_text.strip():
            raise ValidationError("merged_text", "Phrase text must not be empty")

        with self.backend.session() as session:
            chunks = self._load_all(session, chunk_ids)
            for chunk in chunks:
                if chunk.phrase_group_id:
                    raise ConflictError(
                        f"Chunk {chunk.id} already belongs to phrase group {chunk.phrase_group_id}",
                        {"chunk_id": chunk.id, "phrase_group_id": chunk.phrase_group_id},
                    )
                if not ChunkType(chunk.chunk_type).can_be_linked:
                    raise ConflictError(
                        f"Chunk {chunk.id} of type '{chunk.chunk_type}' cannot be linked",
                        {"chunk_id": chunk.id, "chunk_type": chunk.chunk_type},
                    )

            group = PhraseGroup(
                project_id=project_id or chunks[0].project_id,
                chunk_ids=list(chunk_ids),
                merged_text=merged_text,
                language=language,
                merge_strategy=merge_strategy,
                creator=metadata.creator,
                description=metadata.description,
                tags=list(metadata.tags),
                confidence=metadata.confidence,
                usage_count=metadata.usage_count,
            )
            session.add(group)
            session.flush()

            self._link(chunks)
            for chunk in chunks:
                chunk.phrase_group_id = group.id

            logger.info(f"Created phrase group {group.id} from {len(chunks)} chunks")
            return group

    def delete_phrase_group(self, group_id: str) -> Optional[PhraseGroup]:
        """Remove a group and the links it created. Returns the removed group."""
        with self.backend.session() as session:
            group = session.get(PhraseGroup, group_id)
            if group is None:
                return None
            chunks = session.query(ChunkMetadata).filter(
                ChunkMetadata.id.in_(list(group.chunk_ids))
            ).all()
            self._unlink(chunks)
            for chunk in chunks:
                chunk.phrase_group_id = None
            session.delete(group)
            logger.info(f"Removed phrase group {group_id}")
            return group

    def get_phrase_group(self, group_id: str) -> Optional[PhraseGroup]:
        with self.backend.session() as session:
            return session.get(PhraseGroup, group_id)

    def list_phrase_groups(self, language: Optional[str] = None) -> List[PhraseGroup]:
        with self.backend.session() as session:
            query = session.query(PhraseGroup)
            if language:
                query = query.filter(PhraseGroup.language == language)
            return query.order_by(PhraseGroup.created_at, PhraseGroup.id).all()

    def update_phrase_group_metadata(
        self,
        group_id: str,
        data: PhraseMetadataUpdate,
    ) -> Optional[PhraseGroup]:
        with self.backend.session() as session:
            group = session.get(PhraseGroup, group_id)
            if group is None:
                return None
            for field, value in data.model_dump(exclude_unset=True).items():
                setattr(group, field, list(value) if field == "tags" else value)
            return group
