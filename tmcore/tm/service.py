"""
Translation Memory Service
Business logic layer: unit CRUD, multi-strategy search, debounced editor
suggestions and confidence indicators.
"""
import asyncio
import itertools
import logging
import threading
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ValidationError as PydanticValidationError

from tmcore.archive import ArchiveMirror, ColumnarArchive
from tmcore.cache import ProjectCache
from tmcore.config.settings import settings
from tmcore.database.base import normalize_text
from tmcore.database.runner import run_storage_call
from tmcore.exceptions import ConflictError, NotFoundError, from_pydantic
from .matcher import TMMatcher
from .repository import UnitRepository
from .schemas import (
    UnitCreate, UnitUpdate, UnitResponse, LanguagePair,
    TranslationMatch, SearchFilters, SuggestionOptions, SuggestionResult,
    EditorSuggestion, ConfidenceIndicator, IndicatorType,
)

logger = logging.getLogger(__name__)

# Cache key used for searches that are not scoped to one project
ALL_PROJECTS = "*"


def validate_model(schema, data: Union[BaseModel, Dict[str, Any]]):
    """Coerce input into a schema, raising the engine's ValidationError."""
    if isinstance(data, schema):
        return data
    try:
        if isinstance(data, BaseModel):
            data = data.model_dump(exclude_unset=True)
        return schema.model_validate(data)
    except PydanticValidationError as e:
        raise from_pydantic(e) from e


def calculate_auto_confidence(source_text: str, target_text: str) -> float:
    """Heuristic confidence for a unit created from an editor edit."""
    source_len, target_len = len(source_text), len(target_text)
    if source_len == 0 or target_len == 0:
        return 0.1

    confidence = 0.5

    length_ratio = min(source_len, target_len) / max(source_len, target_len)
    confidence += (length_ratio - 0.5) * 0.2

    source_words, target_words = len(source_text.split()), len(target_text.split())
    if source_words and target_words:
        word_ratio = min(source_words, target_words) / max(source_words, target_words)
        confidence += (word_ratio - 0.5) * 0.2

    if source_len > 100:
        confidence -= 0.1

    return max(0.1, min(0.9, confidence))


class TMService:
    """
    Service layer for translation memory operations.

    Storage calls run in worker threads with retry and timeout; every unit
    write invalidates the project's cached lists and is mirrored into the
    columnar archive in the background.
    """

    def __init__(
        self,
        repository: UnitRepository,
        cache: ProjectCache,
        archive: Optional[ColumnarArchive] = None,
        matcher: Optional[TMMatcher] = None,
    ):
        self.repository = repository
        self.cache = cache
        self.archive = archive
        self.matcher = matcher or TMMatcher(
            similarity_floor=settings.similarity_floor,
            short_text_length=settings.short_text_length,
            ngram_size=settings.ngram_size,
            ngram_min_word_length=settings.ngram_min_word_length,
            max_results=settings.max_search_results,
        )
        # newest request id per editor session, dropped once that request runs
        self._generations: Dict[str, int] = {}
        self._request_ids = itertools.count(1)
        self.mirror = ArchiveMirror(archive, "units", self._archive_rows)

    # ==================== UNIT OPERATIONS ====================

    async def add_unit(
        self,
        data: Union[UnitCreate, Dict[str, Any]],
        timeout: Optional[float] = None,
    ) -> UnitResponse:
        """Store a new translation unit."""
        data = validate_model(UnitCreate, data)
        unit = await run_storage_call(self.repository.insert, data, timeout=timeout)
        await self._after_write(unit.project_id, inserted=[unit.to_dict()])
        return UnitResponse.model_validate(unit)

    async def add_units(
        self,
        items: List[Union[UnitCreate, Dict[str, Any]]],
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> int:
        """Store units atomically; returns count inserted."""
        validated = [validate_model(UnitCreate, item) for item in items]
        units = await run_storage_call(
            self.repository.insert_many, validated, cancel_event=cancel_event, timeout=timeout
        )
        by_project: Dict[str, List[Dict[str, Any]]] = {}
        for unit in units:
            by_project.setdefault(unit.project_id, []).append(unit.to_dict())
        for project_id, rows in by_project.items():
            await self._after_write(project_id, inserted=rows)
        return len(units)

    async def update_unit(
        self,
        unit_id: str,
        data: Union[UnitUpdate, Dict[str, Any]],
        timeout: Optional[float] = None,
    ) -> UnitResponse:
        data = validate_model(UnitUpdate, data)
        unit = await run_storage_call(self.repository.update, unit_id, data, timeout=timeout)
        if unit is None:
            raise NotFoundError("TranslationUnit", unit_id)
        await self._after_write(unit.project_id, changed=True)
        return UnitResponse.model_validate(unit)

    async def delete_unit(self, unit_id: str, timeout: Optional[float] = None) -> bool:
        unit = await run_storage_call(self.repository.get, unit_id, timeout=timeout)
        if unit is None:
            return False
        deleted = await run_storage_call(self.repository.delete, unit_id, timeout=timeout)
        if deleted:
            await self._after_write(unit.project_id, changed=True)
        return deleted

    async def get_unit(self, unit_id: str) -> UnitResponse:
        unit = await run_storage_call(self.repository.get, unit_id)
        if unit is None:
            raise NotFoundError("TranslationUnit", unit_id)
        return UnitResponse.model_validate(unit)

    async def get_units(self, project_id: str, chapter_id: Optional[str] = None) -> List[UnitResponse]:
        units = await run_storage_call(self.repository.get_by_project, project_id, chapter_id)
        return [UnitResponse.model_validate(u) for u in units]

    async def search_units(
        self,
        project_id: str,
        pattern: str,
        exact: bool = False,
        language_pair: Optional[LanguagePair] = None,
        limit: int = 100,
    ) -> List[UnitResponse]:
        units = await run_storage_call(
            self.repository.search,
            project_id,
            pattern,
            exact=exact,
            source_language=language_pair.source if language_pair else None,
            target_language=language_pair.target if language_pair else None,
            limit=limit,
        )
        return [UnitResponse.model_validate(u) for u in units]

    async def _after_write(
        self,
        project_id: str,
        inserted: Optional[List[Dict[str, Any]]] = None,
        changed: bool = False,
    ) -> None:
        await self.cache.invalidate_project(project_id)
        await self.cache.invalidate_project(ALL_PROJECTS)
        if changed:
            self.mirror.changed(project_id)
        elif inserted:
            self.mirror.inserted(project_id, inserted)

    # ==================== ARCHIVE MIRROR ====================

    async def _archive_rows(self, project_id: str) -> List[Dict[str, Any]]:
        units = await run_storage_call(self.repository.get_by_project, project_id)
        return [u.to_dict() for u in units]

    @property
    def archive_errors(self) -> List[str]:
        return self.mirror.errors

    async def flush_archive(self) -> None:
        """Wait for pending archive mirror writes."""
        await self.mirror.flush()

    async def refresh_archive(self, project_id: str, cancel_event: Optional[threading.Event] = None):
        """Regenerate the project's unit archive from the store."""
        if self.archive is None:
            raise ConflictError("columnar archive is not configured")
        await self.flush_archive()
        rows = await self._archive_rows(project_id)
        return await self.archive.refresh_async(project_id, "units", rows, cancel_event)

    # ==================== MATCHING ====================

    async def search(
        self,
        query_text: str,
        language_pair: LanguagePair,
        similarity_floor: Optional[float] = None,
        project_id: Optional[str] = None,
        filters: Optional[SearchFilters] = None,
        timeout: Optional[float] = None,
    ) -> List[TranslationMatch]:
        """
        Ranked candidates for a query in a language pair.

        Exact matches come first with similarity 1.0, followed by fuzzy and
        n-gram candidates ranked by the mean of confidence and similarity.
        """
        if not query_text or not query_text.strip():
            return []

        floor = settings.similarity_floor if similarity_floor is None else similarity_floor
        max_results = settings.max_search_results
        if filters is not None:
            if filters.min_similarity is not None:
                floor = max(floor, filters.min_similarity)
            if filters.max_results is not None:
                max_results = filters.max_results

        exact_units = await run_storage_call(
            self.repository.find_exact,
            query_text, language_pair.source, language_pair.target, project_id,
            timeout=timeout,
        )
        candidates = await run_storage_call(
            self.repository.get_candidates,
            language_pair.source, language_pair.target, project_id, settings.max_candidates,
            timeout=timeout,
        )

        matches = self.matcher.match(query_text, exact_units, candidates, floor, max_results=0)

        if filters is not None and filters.min_confidence is not None:
            matches = [m for m in matches if m.confidence_score >= filters.min_confidence]
        return matches[:max_results]

    async def suggest(
        self,
        session_key: str,
        text: str,
        language_pair: LanguagePair,
        project_id: Optional[str] = None,
        options: Optional[SuggestionOptions] = None,
    ) -> SuggestionResult:
        """
        Debounced suggestions for an editor session.

        Waits options.delay_ms; when a newer request for the same session key
        arrives meanwhile this one returns a superseded, empty result.
        """
        options = options or SuggestionOptions(
            delay_ms=settings.suggestion_delay_ms,
            confidence_threshold=settings.suggestion_confidence_threshold,
            max_results=settings.max_suggestions,
        )

        generation = next(self._request_ids)
        self._generations[session_key] = generation
        if options.delay_ms:
            await asyncio.sleep(options.delay_ms / 1000)
        if self._generations.get(session_key) != generation:
            return SuggestionResult(superseded=True)
        del self._generations[session_key]

        scope = project_id or ALL_PROJECTS
        text_key = normalize_text(text)
        suggestions = await self.cache.get_suggestions(scope, language_pair.key, text_key)
        from_cache = suggestions is not None
        if suggestions is None:
            matches = await self.search(text, language_pair, project_id=project_id)
            suggestions = [
                EditorSuggestion(
                    unit_id=m.unit_id,
                    source_text=m.source_text,
                    target_text=m.target_text,
                    confidence=m.confidence_score,
                    similarity=m.similarity_score,
                    match_type=m.match_type,
                )
                for m in matches
            ]
            await self.cache.put_suggestions(scope, language_pair.key, text_key, suggestions)

        selected = [s for s in suggestions if s.confidence >= options.confidence_threshold]
        return SuggestionResult(
            suggestions=selected[:options.max_results],
            from_cache=from_cache,
        )

    async def apply_suggestion(
        self,
        project_id: str,
        source_text: str,
        suggestion: EditorSuggestion,
        language_pair: LanguagePair,
        position: int = 0,
        chapter_id: Optional[str] = None,
        chunk_id: Optional[str] = None,
    ) -> UnitResponse:
        """Persist an accepted suggestion and mark it in the editor."""
        unit = await self.add_unit(UnitCreate(
            project_id=project_id,
            chapter_id=chapter_id,
            chunk_id=chunk_id,
            source_language=language_pair.source,
            source_text=source_text,
            target_language=language_pair.target,
            target_text=suggestion.target_text,
            confidence_score=suggestion.confidence,
        ))
        await self.update_confidence_indicator(project_id, source_text, ConfidenceIndicator(
            position=position,
            length=len(suggestion.target_text),
            confidence=suggestion.confidence,
            indicator_type=IndicatorType.SUGGESTED,
        ))
        logger.info(f"Applied suggestion {suggestion.unit_id} as unit {unit.id}")
        return unit

    async def auto_create_unit(
        self,
        project_id: str,
        source_text: str,
        target_text: str,
        language_pair: LanguagePair,
        chapter_id: Optional[str] = None,
        chunk_id: Optional[str] = None,
    ) -> Optional[UnitResponse]:
        """Create a unit from an editor edit unless the pair is already stored."""
        if not settings.auto_create_units:
            return None
        if not source_text.strip() or not target_text.strip():
            return None

        exists = await run_storage_call(
            self.repository.exists_pair,
            project_id, source_text, target_text, language_pair.source, language_pair.target,
        )
        if exists:
            logger.debug(f"Pair already stored, skipping auto-create: {source_text[:40]}")
            return None

        confidence = calculate_auto_confidence(source_text, target_text)
        unit = await self.add_unit(UnitCreate(
            project_id=project_id,
            chapter_id=chapter_id,
            chunk_id=chunk_id,
            source_language=language_pair.source,
            source_text=source_text,
            target_language=language_pair.target,
            target_text=target_text,
            confidence_score=confidence,
        ))
        await self.update_confidence_indicator(project_id, source_text, ConfidenceIndicator(
            position=0,
            length=len(target_text),
            confidence=confidence,
            indicator_type=IndicatorType.NEW,
        ))
        return unit

    # ==================== CONFIDENCE INDICATORS ====================

    def classify_confidence(self, confidence: float) -> IndicatorType:
        if confidence >= settings.indicator_high_threshold:
            return IndicatorType.HIGH
        if confidence >= settings.indicator_medium_threshold:
            return IndicatorType.MEDIUM
        return IndicatorType.LOW

    async def get_confidence_indicators(self, project_id: str, text: str) -> List[ConfidenceIndicator]:
        indicators = await self.cache.get_indicators(project_id, normalize_text(text))
        return sorted(indicators, key=lambda i: i.position)

    async def update_confidence_indicator(
        self,
        project_id: str,
        text: str,
        indicator: ConfidenceIndicator,
    ) -> List[ConfidenceIndicator]:
        """Add or replace the indicator at a position."""
        text_key = normalize_text(text)
        indicators = [
            i for i in await self.cache.get_indicators(project_id, text_key)
            if i.position != indicator.position
        ]
        indicators.append(indicator)
        indicators.sort(key=lambda i: i.position)
        await self.cache.put_indicators(project_id, text_key, indicators)
        return indicators
