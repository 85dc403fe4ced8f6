"""
Terminology Service
Term CRUD, CSV import/export, highlighting and consistency checking.
"""
import logging
import threading
from typing import Any, Dict, List, Optional, Union

from tmcore.archive import ArchiveMirror, ColumnarArchive
from tmcore.cache import ProjectCache
from tmcore.config.settings import settings
from tmcore.database.runner import run_storage_call
from tmcore.exceptions import (
    ConflictError, NotFoundError, ValidationError, OperationCancelledError,
)
from tmcore.tm.service import validate_model
from .consistency import ConsistencyChecker
from .highlighter import TermHighlighter
from .io import export_terms_to_csv, parse_terms_csv
from .models import term_key
from .repository import TermRepository
from .schemas import (
    TermCreate, TermUpdate, TermResponse, TermHighlight,
    ConsistencyCheckResult, TerminologySuggestion,
    ImportResult, TermConflict, RowIssue,
)

logger = logging.getLogger(__name__)


class TerminologyService:
    """
    Service layer for terminology.

    Term lists are read through the project cache; every write invalidates
    the project's entry and drops compiled patterns of changed terms.
    """

    def __init__(
        self,
        repository: TermRepository,
        cache: ProjectCache,
        archive: Optional[ColumnarArchive] = None,
    ):
        self.repository = repository
        self.cache = cache
        self.archive = archive
        self.mirror = ArchiveMirror(archive, "terms", self._archive_rows)
        self.checker = ConsistencyChecker(cache)
        self.highlighter = TermHighlighter(cache, self.checker)

    # ==================== TERM OPERATIONS ====================

    async def add_term(self, data: Union[TermCreate, Dict[str, Any]]) -> TermResponse:
        data = validate_model(TermCreate, data)
        term = await run_storage_call(self.repository.insert, data)
        await self.cache.invalidate_project(term.project_id)
        self.mirror.inserted(term.project_id, [term.to_dict()])
        return TermResponse.model_validate(term)

    async def add_terms(
        self,
        items: List[Union[TermCreate, Dict[str, Any]]],
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        """Insert terms atomically; returns count inserted."""
        validated = [validate_model(TermCreate, item) for item in items]
        count = await run_storage_call(
            self.repository.insert_batch, validated, cancel_event=cancel_event
        )
        for project_id in {item.project_id for item in validated}:
            await self.cache.invalidate_project(project_id)
            self.mirror.changed(project_id)
        return count

    async def update_term(
        self,
        term_id: str,
        data: Union[TermUpdate, Dict[str, Any]],
    ) -> TermResponse:
        data = validate_model(TermUpdate, data)
        term = await run_storage_call(self.repository.update, term_id, data)
        if term is None:
            raise NotFoundError("Term", term_id)
        await self.cache.drop_term_patterns(term_id)
        await self.cache.invalidate_project(term.project_id)
        self.mirror.changed(term.project_id)
        return TermResponse.model_validate(term)

    async def delete_term(self, term_id: str) -> bool:
        term = await run_storage_call(self.repository.get, term_id)
        if term is None:
            return False
        deleted = await run_storage_call(self.repository.delete, term_id)
        if deleted:
            await self.cache.drop_term_patterns(term_id)
            await self.cache.invalidate_project(term.project_id)
            self.mirror.changed(term.project_id)
        return deleted

    async def get_term(self, term_id: str) -> TermResponse:
        term = await run_storage_call(self.repository.get, term_id)
        if term is None:
            raise NotFoundError("Term", term_id)
        return TermResponse.model_validate(term)

    async def get_terms(self, project_id: str) -> List[TermResponse]:
        """Project terms, served from cache when warm."""
        async def load() -> List[TermResponse]:
            terms = await run_storage_call(self.repository.get_by_project, project_id)
            logger.debug(f"Loaded {len(terms)} terms for project {project_id}")
            return [TermResponse.model_validate(t) for t in terms]

        return await self.cache.get_terms(project_id, load)

    async def search_terms(self, project_id: str, pattern: str, exact: bool = False) -> List[TermResponse]:
        terms = await run_storage_call(self.repository.search, project_id, pattern, exact)
        return [TermResponse.model_validate(t) for t in terms]

    async def invalidate(self, project_id: str) -> None:
        await self.cache.invalidate_project(project_id)

    # ==================== HIGHLIGHTING ====================

    async def highlight(
        self,
        text: str,
        project_id: str,
        language: str,
        include_suggestions: bool = False,
    ) -> List[TermHighlight]:
        """Ordered term highlights for text in the given language."""
        terms = await self.get_terms(project_id)
        highlights = await self.highlighter.highlight(text, terms, include_suggestions)
        logger.debug(f"Highlighted {len(highlights)} spans ({language}) for project {project_id}")
        return highlights

    async def update_highlighting_for_text_change(
        self,
        text: str,
        change_start: int,
        change_end: int,
        project_id: str,
        language: str,
        include_suggestions: bool = False,
    ) -> List[TermHighlight]:
        """Highlights for the padded window around an edit, in full-text offsets."""
        terms = await self.get_terms(project_id)
        return await self.highlighter.highlight_change(
            text, change_start, change_end, terms, include_suggestions=include_suggestions
        )

    # ==================== CONSISTENCY ====================

    async def check_consistency(
        self,
        texts_by_language: Dict[str, str],
        project_id: str,
    ) -> ConsistencyCheckResult:
        terms = await self.get_terms(project_id)
        return await self.checker.check_consistency(texts_by_language, terms, project_id)

    async def suggest(self, text: str, project_id: str, language: str) -> List[TerminologySuggestion]:
        """Near-miss words in text that resemble known terms."""
        terms = await self.get_terms(project_id)
        return self.checker.suggest(text, terms)

    # ==================== CSV ====================

    async def import_terms_csv(
        self,
        project_id: str,
        content: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> ImportResult:
        """
        Import terminology CSV row by row.

        Existing terms (and repeats within the file) are reported as
        conflicts and not inserted, so importing the same file twice leaves
        the term set unchanged. Row failures never abort the import.
        """
        rows, warnings, errors, total = parse_terms_csv(content, settings.max_term_length)
        result = ImportResult(total_rows=total, warnings=warnings, errors=errors)
        result.skipped = result.total_rows - len(rows)

        existing = {
            self._key(t.term): t for t in await run_storage_call(self.repository.get_by_project, project_id)
        }
        seen: Dict[str, str] = {}

        for index, row in enumerate(rows):
            if cancel_event is not None and cancel_event.is_set():
                result.cancelled = True
                result.skipped += len(rows) - index
                break

            key = self._key(row.term)
            current = existing.get(key)
            if current is not None or key in seen:
                result.conflicts.append(TermConflict(
                    row=row.row,
                    term=row.term,
                    existing_definition=current.definition if current is not None else seen[key],
                    new_definition=row.definition,
                ))
                result.skipped += 1
                continue

            try:
                data = validate_model(TermCreate, {
                    "project_id": project_id,
                    "term": row.term,
                    "definition": row.definition,
                    "do_not_translate": row.do_not_translate,
                })
                await run_storage_call(self.repository.insert, data)
            except ValidationError as e:
                result.errors.append(RowIssue(row=row.row, field=e.field, message=e.reason, value=row.term))
                result.skipped += 1
                continue
            except OperationCancelledError:
                result.cancelled = True
                result.skipped += len(rows) - index
                break

            seen[key] = row.definition
            result.imported += 1

        if result.imported:
            await self.cache.invalidate_project(project_id)
            self.mirror.changed(project_id)

        logger.info(f"Term import for project {project_id}: {result.summary()}")
        return result

    async def export_terms_csv(self, project_id: str) -> str:
        terms = await run_storage_call(self.repository.get_by_project, project_id)
        return export_terms_to_csv([t.to_dict() for t in terms])

    async def refresh_archive(self, project_id: str, cancel_event: Optional[threading.Event] = None):
        """Regenerate the project's term archive from the store."""
        if self.archive is None:
            raise ConflictError("columnar archive is not configured")
        await self.mirror.flush()
        rows = await self._archive_rows(project_id)
        return await self.archive.refresh_async(project_id, "terms", rows, cancel_event)

    async def _archive_rows(self, project_id: str) -> List[Dict[str, Any]]:
        terms = await run_storage_call(self.repository.get_by_project, project_id)
        return [t.to_dict() for t in terms]

    @staticmethod
    def _key(text: str) -> str:
        return term_key(text, settings.terms_case_sensitive)
