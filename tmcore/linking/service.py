"""
Chunk Linking Service
Selection sessions, phrase-group creation and merge strategies.
"""
import asyncio
import logging
import re
import threading
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from tmcore.archive import ColumnarArchive
from tmcore.database.base import utc_now
from tmcore.database.runner import run_storage_call
from tmcore.exceptions import ConflictError, NotFoundError, ValidationError
from tmcore.tm.service import validate_model
from .repository import ChunkRepository
from .schemas import (
    ChunkCreate, ChunkResponse, ChunkSelection, SelectionMode,
    MergeOptions, MergeStrategy, PhraseMetadata, PhraseMetadataUpdate,
    PhraseGroupResponse, LinkingResult, PhraseStatistics,
)

logger = logging.getLogger(__name__)

MIN_GROUP_SIZE = 2
TOP_TAGS = 10


@dataclass
class SelectionSession:
    """Mutable selection state; guarded by its own lock."""
    session_id: str
    mode: SelectionMode
    created_at: datetime = field(default_factory=utc_now)
    selected: List[str] = field(default_factory=list)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def snapshot(self) -> ChunkSelection:
        return ChunkSelection(
            session_id=self.session_id,
            selected_chunks=list(self.selected),
            selection_mode=self.mode,
            created_at=self.created_at,
        )


class ChunkLinkingService:
    """
    Links chunks into phrase groups.

    Each selection session has its own lock, so concurrent editors never
    block each other; the registry lock is only held to create or end a
    session.
    """

    def __init__(self, repository: ChunkRepository, archive: Optional[ColumnarArchive] = None):
        self.repository = repository
        self.archive = archive
        self._sessions: Dict[str, SelectionSession] = {}
        self._registry_lock = asyncio.Lock()

    # ==================== CHUNKS ====================

    async def register_chunk(self, data: Union[ChunkCreate, Dict[str, Any]]) -> ChunkResponse:
        data = validate_model(ChunkCreate, data)
        chunk = await run_storage_call(self.repository.add_chunk, data)
        return ChunkResponse.model_validate(chunk)

    async def register_chunks(self, items: List[Union[ChunkCreate, Dict[str, Any]]]) -> int:
        validated = [validate_model(ChunkCreate, item) for item in items]
        return await run_storage_call(self.repository.add_chunks, validated)

    async def get_chunk(self, chunk_id: str) -> ChunkResponse:
        chunk = await run_storage_call(self.repository.get_chunk, chunk_id)
        if chunk is None:
            raise NotFoundError("Chunk", chunk_id)
        return ChunkResponse.model_validate(chunk)

    # ==================== SELECTION SESSIONS ====================

    async def start_selection_session(
        self,
        session_id: Optional[str] = None,
        mode: SelectionMode = SelectionMode.INDIVIDUAL,
    ) -> str:
        """Open a selection session and return its id."""
        session_id = session_id or str(uuid.uuid4())
        async with self._registry_lock:
            if session_id in self._sessions:
                raise ConflictError(
                    f"Selection session {session_id} already exists",
                    {"session_id": session_id},
                )
            self._sessions[session_id] = SelectionSession(session_id=session_id, mode=SelectionMode(mode))
        logger.debug(f"Started selection session {session_id} ({mode})")
        return session_id

    async def end_selection_session(self, session_id: str) -> None:
        async with self._registry_lock:
            if self._sessions.pop(session_id, None) is None:
                raise NotFoundError("SelectionSession", session_id)
        logger.debug(f"Ended selection session {session_id}")

    def _session(self, session_id: str) -> SelectionSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError("SelectionSession", session_id)
        return session

    async def add_chunk_to_selection(self, session_id: str, chunk_id: str) -> ChunkSelection:
        session = self._session(session_id)
        async with session.lock:
            if chunk_id not in session.selected:
                session.selected.append(chunk_id)
            return session.snapshot()

    async def remove_chunk_from_selection(self, session_id: str, chunk_id: str) -> ChunkSelection:
        session = self._session(session_id)
        async with session.lock:
            session.selected = [c for c in session.selected if c != chunk_id]
            return session.snapshot()

    async def get_selection(self, session_id: str) -> ChunkSelection:
        session = self._session(session_id)
        async with session.lock:
            return session.snapshot()

    async def clear_selection(self, session_id: str) -> None:
        session = self._session(session_id)
        async with session.lock:
            session.selected = []

    async def select_range(
        self,
        session_id: str,
        chapter_id: str,
        start_position: int,
        end_position: int,
    ) -> ChunkSelection:
        """Add every chunk of a chapter whose position lies in [start, end]."""
        if start_position > end_position:
            raise ValidationError(
                "end_position",
                "Range end must not precede its start",
                {"start": start_position, "end": end_position},
            )
        session = self._session(session_id)
        chunks = await run_storage_call(
            self.repository.get_chunks_by_chapter, chapter_id, start_position, end_position
        )
        async with session.lock:
            for chunk in chunks:
                if chunk.id not in session.selected:
                    session.selected.append(chunk.id)
            return session.snapshot()

    async def select_by_pattern(
        self,
        session_id: str,
        pattern: str,
        chunk_contents: Dict[str, str],
    ) -> ChunkSelection:
        """Add every chunk whose content matches a regular expression."""
        try:
            regex = re.compile(pattern)
        except re.error as e:
            raise ValidationError("pattern", f"Invalid pattern: {e}", pattern) from e

        session = self._session(session_id)
        async with session.lock:
            for chunk_id, content in chunk_contents.items():
                if regex.search(content) and chunk_id not in session.selected:
                    session.selected.append(chunk_id)
            return session.snapshot()

    # ==================== LINKING ====================

    async def link_selected_chunks(
        self,
        session_id: str,
        phrase_text: str,
        language: str,
        merge_options: Optional[MergeOptions] = None,
        chunk_contents: Optional[Dict[str, str]] = None,
        creator: Optional[str] = None,
        description: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> LinkingResult:
        """
        Turn the session's selection into a phrase group.

        With chunk_contents the phrase text is merged from the chunks in
        merge order; otherwise phrase_text is stored as given.
        """
        merge_options = merge_options or MergeOptions()
        session = self._session(session_id)

        async with session.lock:
            selected = list(session.selected)
            if len(selected) < MIN_GROUP_SIZE:
                return LinkingResult(
                    success=False,
                    message="At least 2 chunks must be selected for linking",
                    linked_chunks=selected,
                )

            ordered = await self._ordered_ids(selected, merge_options)
            merged_text = (
                self._merge_text(ordered, chunk_contents, merge_options)
                if chunk_contents else phrase_text
            )
            metadata = PhraseMetadata(creator=creator, description=description, tags=tags or [])

            try:
                group = await run_storage_call(
                    self.repository.create_phrase_group,
                    ordered,
                    merged_text,
                    language,
                    merge_options.strategy.value,
                    metadata,
                )
            except ConflictError as e:
                logger.warning(f"Linking failed for session {session_id}: {e.reason}")
                return LinkingResult(success=False, message=e.reason, linked_chunks=ordered)

            session.selected = []

        logger.info(f"Linked {len(ordered)} chunks into phrase group {group.id}")
        return LinkingResult(
            success=True,
            message=f"Successfully linked {len(ordered)} chunks",
            phrase_group_id=group.id,
            linked_chunks=ordered,
            merged_text=group.merged_text,
        )

    async def link_chunk_pair(
        self,
        first_id: str,
        second_id: str,
        phrase_text: str,
        language: str,
    ) -> PhraseGroupResponse:
        """Group two chunks directly, without a selection session."""
        if first_id == second_id:
            raise ConflictError("A chunk cannot be linked to itself", {"chunk_id": first_id})
        group = await run_storage_call(
            self.repository.create_phrase_group,
            [first_id, second_id],
            phrase_text,
            language,
            MergeStrategy.SEQUENTIAL.value,
            PhraseMetadata(),
        )
        return PhraseGroupResponse.model_validate(group.to_dict())

    async def unlink_phrase_group(self, group_id: str) -> None:
        group = await run_storage_call(self.repository.delete_phrase_group, group_id)
        if group is None:
            raise NotFoundError("PhraseGroup", group_id)

    async def get_phrase_group(self, group_id: str) -> Optional[PhraseGroupResponse]:
        group = await run_storage_call(self.repository.get_phrase_group, group_id)
        return PhraseGroupResponse.model_validate(group.to_dict()) if group else None

    async def get_all_phrase_groups(self, language: Optional[str] = None) -> List[PhraseGroupResponse]:
        groups = await run_storage_call(self.repository.list_phrase_groups, language)
        return [PhraseGroupResponse.model_validate(g.to_dict()) for g in groups]

    async def update_phrase_group_metadata(
        self,
        group_id: str,
        data: Union[PhraseMetadataUpdate, Dict[str, Any]],
    ) -> PhraseGroupResponse:
        data = validate_model(PhraseMetadataUpdate, data)
        group = await run_storage_call(self.repository.update_phrase_group_metadata, group_id, data)
        if group is None:
            raise NotFoundError("PhraseGroup", group_id)
        return PhraseGroupResponse.model_validate(group.to_dict())

    async def get_linked_chunks(self, chunk_id: str) -> List[str]:
        chunks = await run_storage_call(self.repository.get_linked_chunks, chunk_id)
        return [c.id for c in chunks]

    async def search_phrase_groups(self, query: str) -> List[PhraseGroupResponse]:
        """Groups whose text or any tag contains query, case-insensitively."""
        needle = query.lower()
        groups = await self.get_all_phrase_groups()
        return [
            g for g in groups
            if needle in g.merged_text.lower()
            or any(needle in tag.lower() for tag in g.metadata.tags)
        ]

    async def get_phrase_statistics(self) -> PhraseStatistics:
        groups = await self.get_all_phrase_groups()
        if not groups:
            return PhraseStatistics()

        total_chunks = sum(len(g.chunk_ids) for g in groups)
        tag_counts = Counter(tag for g in groups for tag in g.metadata.tags)
        return PhraseStatistics(
            total_phrase_groups=len(groups),
            total_linked_chunks=total_chunks,
            average_chunks_per_group=total_chunks / len(groups),
            total_usage=sum(g.metadata.usage_count for g in groups),
            groups_by_language=dict(Counter(g.language for g in groups)),
            top_tags=[tag for tag, _ in tag_counts.most_common(TOP_TAGS)],
        )

    # ==================== MERGING ====================

    async def merge_chunks(
        self,
        chunk_ids: List[str],
        chunk_contents: Dict[str, str],
        merge_options: Optional[MergeOptions] = None,
    ) -> str:
        """Merge chunk contents in the order the strategy dictates."""
        merge_options = merge_options or MergeOptions()
        if not chunk_ids:
            return ""
        ordered = await self._ordered_ids(chunk_ids, merge_options)
        return self._merge_text(ordered, chunk_contents, merge_options)

    async def _ordered_ids(self, chunk_ids: List[str], options: MergeOptions) -> List[str]:
        if options.strategy == MergeStrategy.SEQUENTIAL:
            return list(chunk_ids)
        if options.strategy == MergeStrategy.POSITIONAL:
            chunks = await run_storage_call(self.repository.get_chunks, chunk_ids)
            missing = [cid for cid in chunk_ids if cid not in chunks]
            if missing:
                raise NotFoundError("Chunk", ", ".join(missing))
            return sorted(
                chunk_ids,
                key=lambda cid: (chunks[cid].chapter_id, chunks[cid].original_position),
            )
        # custom
        order = list(options.custom_order or [])
        if sorted(order) != sorted(chunk_ids):
            raise ValidationError(
                "custom_order",
                "Custom order must be a permutation of the selected chunks",
                order,
            )
        return order

    @staticmethod
    def _merge_text(ordered: List[str], contents: Dict[str, str], options: MergeOptions) -> str:
        pieces = []
        for chunk_id in ordered:
            content = contents.get(chunk_id)
            if content is None:
                continue
            pieces.append(content if options.preserve_formatting else " ".join(content.split()))
        return (" " if options.add_spacing else "").join(pieces)

    # ==================== ARCHIVE ====================

    async def refresh_archive(self, project_id: str, cancel_event: Optional[threading.Event] = None):
        """Regenerate the project's chunk archive from the store."""
        if self.archive is None:
            raise ConflictError("columnar archive is not configured")
        chunks = await run_storage_call(self.repository.get_chunks_by_project, project_id)
        return await self.archive.refresh_async(
            project_id, "chunks", [c.to_dict() for c in chunks], cancel_event
        )
