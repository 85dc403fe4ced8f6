"""
Sentence Alignment Repository
Database access for alignments and the correction log.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from tmcore.database.protocol import StorageBackend
from tmcore.exceptions import ConflictError
from .models import SentenceAlignment, AlignmentCorrection, AlignedDocument

logger = logging.getLogger(__name__)


def spans_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    return start_a < end_b and start_b < end_a


class AlignmentRepository:
    """Repository for sentence alignments."""

    def __init__(self, backend: StorageBackend):
        self.backend = backend

    # ==================== WRITE OPERATIONS ====================

    def replace_document(
        self,
        document_key: str,
        rows: List[Dict[str, Any]],
        texts: Optional[Tuple[str, str]] = None,
    ) -> List[SentenceAlignment]:
        """
        Store a fresh align run for a document.

        Unlocked alignments of the document are replaced; locked ones are
        kept and win over any new row overlapping their source span.
        """
        with self.backend.session() as session:
            self._save_texts(session, document_key, texts)
            existing = self._document(session, document_key)
            locked = [a for a in existing if a.user_locked]
            for alignment in existing:
                if not alignment.user_locked:
                    session.delete(alignment)

            added = []
            for row in rows:
                if any(spans_overlap(row["source_start"], row["source_end"], a.source_start, a.source_end)
                       for a in locked):
                    continue
                alignment = SentenceAlignment(document_key=document_key, **row)
                session.add(alignment)
                added.append(alignment)

            session.flush()
            logger.info(
                f"Stored {len(added)} alignments for document {document_key[:12]} "
                f"({len(locked)} locked kept)"
            )
            return sorted(locked + added, key=lambda a: (a.source_start, a.target_start))

    def insert_span(
        self,
        document_key: str,
        row: Dict[str, Any],
        texts: Optional[Tuple[str, str]] = None,
    ) -> SentenceAlignment:
        """
        Store a manual alignment, dropping unlocked alignments it overlaps.

        Raises ConflictError when it overlaps a locked alignment.
        """
        with self.backend.session() as session:
            self._save_texts(session, document_key, texts)
            for alignment in self._document(session, document_key):
                overlaps = (
                    spans_overlap(row["source_start"], row["source_end"],
                                  alignment.source_start, alignment.source_end)
                    or spans_overlap(row["target_start"], row["target_end"],
                                     alignment.target_start, alignment.target_end)
                )
                if not overlaps:
                    continue
                if alignment.user_locked:
                    raise ConflictError(
                        f"Span overlaps locked alignment {alignment.id}",
                        {"alignment_id": alignment.id},
                    )
                session.delete(alignment)

            alignment = SentenceAlignment(document_key=document_key, **row)
            session.add(alignment)
            session.flush()
            logger.info(f"Added manual alignment {alignment.id}")
            return alignment

    def replace(self, remove_ids: List[str], rows: List[Dict[str, Any]], document_key: str) -> List[SentenceAlignment]:
        """
        Swap alignments for new rows in one transaction (merge and split).

        Raises ConflictError when any alignment to remove is locked.
        """
        with self.backend.session() as session:
            doomed = [session.get(SentenceAlignment, a) for a in remove_ids]
            for alignment in doomed:
                if alignment is not None and alignment.user_locked:
                    raise ConflictError(
                        f"Alignment {alignment.id} is locked as '{alignment.status}'; reset it first",
                        {"alignment_id": alignment.id, "status": alignment.status},
                    )
            for alignment in doomed:
                if alignment is not None:
                    session.delete(alignment)
            added = [SentenceAlignment(document_key=document_key, **row) for row in rows]
            session.add_all(added)
            session.flush()
            logger.info(f"Replaced {len(remove_ids)} alignments with {len(added)}")
            return added

    def delete(self, alignment_id: str) -> bool:
        with self.backend.session() as session:
            alignment = session.get(SentenceAlignment, alignment_id)
            if alignment is None:
                return False
            session.delete(alignment)
            logger.info(f"Deleted alignment {alignment_id}")
            return True

    def set_status(
        self,
        alignment_id: str,
        status: str,
        locked: bool,
        method: Optional[str] = None,
    ) -> Optional[SentenceAlignment]:
        """
        Set a user status.

        A locked alignment only accepts its current status again or an
        unlock (reset); anything else is a ConflictError.
        """
        with self.backend.session() as session:
            alignment = session.get(SentenceAlignment, alignment_id)
            if alignment is None:
                return None
            if locked and alignment.user_locked and alignment.status != status:
                raise ConflictError(
                    f"Alignment {alignment_id} is locked as '{alignment.status}'; reset it first",
                    {"alignment_id": alignment_id, "status": alignment.status},
                )
            alignment.status = status
            alignment.user_locked = locked
            if method is not None:
                alignment.method = method
            return alignment

    def update_scores(self, updates: List[Tuple[str, Dict[str, Any]]]) -> Tuple[int, int]:
        """Apply rescored values; locked alignments are left untouched. Returns (updated, skipped)."""
        updated = skipped = 0
        with self.backend.session() as session:
            for alignment_id, values in updates:
                alignment = session.get(SentenceAlignment, alignment_id)
                if alignment is None:
                    continue
                if alignment.user_locked:
                    skipped += 1
                    continue
                for field, value in values.items():
                    setattr(alignment, field, value)
                updated += 1
        return updated, skipped

    # ==================== READ OPERATIONS ====================

    def get(self, alignment_id: str) -> Optional[SentenceAlignment]:
        with self.backend.session() as session:
            return session.get(SentenceAlignment, alignment_id)

    def get_many(self, alignment_ids: List[str]) -> Dict[str, SentenceAlignment]:
        with self.backend.session() as session:
            rows = session.query(SentenceAlignment).filter(
                SentenceAlignment.id.in_(alignment_ids)
            ).all()
            return {row.id: row for row in rows}

    def get_by_document(self, document_key: str) -> List[SentenceAlignment]:
        with self.backend.session() as session:
            return self._document(session, document_key)

    def list_alignments(
        self,
        source_language: Optional[str] = None,
        target_language: Optional[str] = None,
        document_key: Optional[str] = None,
    ) -> List[SentenceAlignment]:
        with self.backend.session() as session:
            query = session.query(SentenceAlignment)
            if source_language:
                query = query.filter(SentenceAlignment.source_language == source_language)
            if target_language:
                query = query.filter(SentenceAlignment.target_language == target_language)
            if document_key:
                query = query.filter(SentenceAlignment.document_key == document_key)
            return query.order_by(
                SentenceAlignment.document_key,
                SentenceAlignment.source_start,
                SentenceAlignment.target_start,
            ).all()

    def get_document_texts(self, document_key: str) -> Optional[Tuple[str, str]]:
        with self.backend.session() as session:
            document = session.get(AlignedDocument, document_key)
            if document is None:
                return None
            return document.source_text, document.target_text

    @staticmethod
    def _save_texts(session: Session, document_key: str, texts: Optional[Tuple[str, str]]) -> None:
        if texts is None:
            return
        document = session.get(AlignedDocument, document_key)
        if document is None:
            session.add(AlignedDocument(document_key=document_key, source_text=texts[0], target_text=texts[1]))
        else:
            document.source_text, document.target_text = texts

    @staticmethod
    def _document(session: Session, document_key: str) -> List[SentenceAlignment]:
        return session.query(SentenceAlignment).filter(
            SentenceAlignment.document_key == document_key
        ).order_by(SentenceAlignment.source_start, SentenceAlignment.target_start).all()

    # ==================== CORRECTIONS ====================

    def add_correction(
        self,
        fingerprint: str,
        original: Dict[str, Any],
        corrected: Dict[str, Any],
        reason: Optional[str],
        corrected_confidence: float,
    ) -> AlignmentCorrection:
        with self.backend.session() as session:
            correction = AlignmentCorrection(
                fingerprint=fingerprint,
                original=original,
                corrected=corrected,
                reason=reason,
                corrected_confidence=corrected_confidence,
            )
            session.add(correction)
            session.flush()
            logger.info(f"Logged alignment correction {correction.id} ({fingerprint})")
            return correction

    def recent_corrections(self, limit: int = 1000) -> List[AlignmentCorrection]:
        """Most recent corrections, oldest first."""
        with self.backend.session() as session:
            rows = session.query(AlignmentCorrection).order_by(
                AlignmentCorrection.created_at.desc()
            ).limit(limit).all()
            return list(reversed(rows))

    def count_corrections(self) -> int:
        with self.backend.session() as session:
            return session.query(AlignmentCorrection).count()
