"""
Sentence Alignment Service
Sentence pairing across languages, quality indicators, learning from user
corrections and manual alignment operations.
"""
import asyncio
import hashlib
import logging
import statistics
import time
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field

from tmcore.cache import ProjectCache
from tmcore.config.settings import settings
from tmcore.database.runner import run_storage_call
from tmcore.exceptions import ConflictError, NotFoundError, ValidationError
from tmcore.tm.schemas import LanguagePair
from tmcore.tm.service import validate_model
from .boundaries import BoundaryDetector, SentenceBoundary
from .models import SentenceAlignment
from .repository import AlignmentRepository
from .schemas import (
    AlignmentMethod, ValidationStatus, AlignmentIssue,
    AlignmentResponse, AlignmentSpan, AlignmentResult, AlignmentStatistics,
    AutoFixResult, CorrectionRecord, ProblemArea, QualityIndicators, RescoreResult,
)
from .scoring import AlignmentScorer, ScoreDetail, clamp, length_ratio, structure_similarity

logger = logging.getLogger(__name__)


SUGGESTIONS = {
    AlignmentIssue.LENGTH_MISMATCH:
        "Consider splitting or merging sentences to better match the translation structure.",
    AlignmentIssue.STRUCTURAL_DIVERGENCE:
        "Review sentence structure - the translation may have different punctuation or formatting.",
    AlignmentIssue.MISSING_SENTENCE:
        "A sentence appears to be missing in the translation.",
    AlignmentIssue.EXTRA_SENTENCE:
        "An extra sentence appears in the translation.",
    AlignmentIssue.ORDER_MISMATCH:
        "Sentence order differs between source and translation.",
    AlignmentIssue.BOUNDARY_DETECTION_ERROR:
        "Sentence boundary detection may be incorrect - check punctuation.",
}

# Manual operation that resolves each issue kind auto_fix leaves alone
MANUAL_OPERATIONS = {
    AlignmentIssue.STRUCTURAL_DIVERGENCE: "split_alignment",
    AlignmentIssue.MISSING_SENTENCE: "align_spans",
    AlignmentIssue.EXTRA_SENTENCE: "unalign",
    AlignmentIssue.ORDER_MISMATCH: "align_spans",
}

# Raw target/source length ratios
SEVERE_RATIO = (0.3, 3.0)
MILD_RATIO = (0.5, 2.0)
LOW_CONFIDENCE = 0.5
LOW_STRUCTURE = 0.3


class AlignmentSnapshot(BaseModel):
    """Alignment state as submitted with a correction."""
    source_text: str
    target_text: str
    source_language: str
    target_language: str
    source_position: float = 0.0
    target_position: float = 0.0
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


def document_key(source_text: str, target_text: str, source_language: str, target_language: str) -> str:
    content = f"{source_language}:{target_language}:{source_text}\x00{target_text}"
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def dynamic_pairs(
    source_count: int,
    target_count: int,
    score: Callable[[int, int], float],
    skip_penalty: float,
) -> List[Tuple[int, int]]:
    """Best monotonic 1:1 pairing; skipping a sentence costs skip_penalty."""
    matrix = [[0.0] * (target_count + 1) for _ in range(source_count + 1)]
    path = [[(0, 0)] * (target_count + 1) for _ in range(source_count + 1)]

    for i in range(1, source_count + 1):
        for j in range(1, target_count + 1):
            diagonal = matrix[i - 1][j - 1] + score(i - 1, j - 1)
            up = matrix[i - 1][j] - skip_penalty
            left = matrix[i][j - 1] - skip_penalty
            if diagonal >= up and diagonal >= left:
                matrix[i][j], path[i][j] = diagonal, (i - 1, j - 1)
            elif up >= left:
                matrix[i][j], path[i][j] = up, (i - 1, j)
            else:
                matrix[i][j], path[i][j] = left, (i, j - 1)

    pairs = []
    i, j = source_count, target_count
    while i > 0 and j > 0:
        prev_i, prev_j = path[i][j]
        if prev_i == i - 1 and prev_j == j - 1:
            pairs.append((i - 1, j - 1))
        i, j = prev_i, prev_j
    pairs.reverse()
    return pairs


def _trimmed(text: str, start: int) -> Tuple[str, int, int]:
    stripped = text.strip()
    start += len(text) - len(text.lstrip())
    return stripped, start, start + len(stripped)


class SentenceAlignmentService:
    """
    Service layer for sentence alignment.

    Results of align_sentences are stored and cached per document key. A
    status set by a user locks the alignment: re-alignment and rescoring
    keep it until reset_alignment.
    """

    def __init__(
        self,
        repository: AlignmentRepository,
        cache: ProjectCache,
        scorer: Optional[AlignmentScorer] = None,
    ):
        self.repository = repository
        self.cache = cache
        self.scorer = scorer or AlignmentScorer(
            position_weight=settings.alignment_position_weight,
            length_weight=settings.alignment_length_weight,
            structure_weight=settings.alignment_structure_weight,
            max_ratio_deviation=settings.max_length_ratio_deviation,
            prior_weight=settings.correction_prior_weight,
            prior_max_weight=settings.correction_prior_max_weight,
        )
        self.detector = self.scorer.detector
        self._model_loaded = False
        self._model_lock = asyncio.Lock()
        self._timings: Dict[str, int] = {}

    async def _ensure_model(self) -> None:
        """Replay the correction log into the scorer once."""
        if self._model_loaded:
            return
        async with self._model_lock:
            if self._model_loaded:
                return
            corrections = await run_storage_call(
                self.repository.recent_corrections, settings.correction_history_limit
            )
            for correction in corrections:
                original = AlignmentSnapshot.model_validate(correction.original)
                self._learn(correction.fingerprint, original, correction.corrected_confidence)
            self._model_loaded = True
            logger.debug(f"Loaded {len(corrections)} alignment corrections")

    # ==================== DETECTION ====================

    async def detect_sentence_boundaries(self, text: str, language: str) -> List[SentenceBoundary]:
        return self.detector.detect(text, language)

    # ==================== ALIGNMENT ====================

    async def align_sentences(
        self,
        source_text: str,
        target_text: str,
        source_language: str,
        target_language: str,
    ) -> AlignmentResult:
        """
        Pair the sentences of two texts.

        Texts whose sentence counts are within the position tolerance are
        paired one to one by position; otherwise a dynamic-programming
        pairing is used and alignments are marked hybrid.
        """
        key = document_key(source_text, target_text, source_language, target_language)
        cached = await self.cache.get_alignment(key)
        if cached is not None:
            return cached.model_copy(update={"from_cache": True})

        await self._ensure_model()
        started = time.perf_counter()

        source_sentences = self.detector.detect(source_text, source_language)
        target_sentences = self.detector.detect(target_text, target_language)
        rows = self._pair_rows(source_sentences, target_sentences, source_language, target_language)

        stored = await run_storage_call(
            self.repository.replace_document, key, rows, (source_text, target_text)
        )
        alignments = [AlignmentResponse.model_validate(a) for a in stored]
        problems = self.identify_problem_areas(alignments, source_sentences, target_sentences)
        quality = self.calculate_quality_indicators(alignments, problems)

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        self._timings[LanguagePair(source=source_language, target=target_language).key] = elapsed_ms
        logger.info(
            f"Aligned {len(source_sentences)}x{len(target_sentences)} sentences "
            f"({source_language}->{target_language}): {len(alignments)} alignments in {elapsed_ms}ms"
        )

        result = AlignmentResult(
            document_key=key,
            alignments=alignments,
            problem_areas=problems,
            quality=quality,
        )
        await self.cache.put_alignment(key, result)
        return result

    def _pair_rows(
        self,
        source: List[SentenceBoundary],
        target: List[SentenceBoundary],
        source_language: str,
        target_language: str,
    ) -> List[Dict[str, Any]]:
        if not source or not target:
            return []

        def position(index: int, count: int) -> float:
            return index / count

        def detail(i: int, j: int) -> ScoreDetail:
            return self.scorer.score(
                source[i].text, target[j].text,
                position(i, len(source)), position(j, len(target)),
                source_language, target_language,
            )

        if abs(len(source) / len(target) - 1.0) < settings.position_alignment_tolerance:
            pairs = [(i, i) for i in range(min(len(source), len(target)))]
            method = AlignmentMethod.POSITION_BASED
        else:
            pairs = dynamic_pairs(
                len(source), len(target),
                lambda i, j: detail(i, j).confidence,
                settings.alignment_skip_penalty,
            )
            method = AlignmentMethod.HYBRID

        rows = []
        for i, j in pairs:
            scored = detail(i, j)
            rows.append({
                "source_language": source_language,
                "target_language": target_language,
                "source_start": source[i].start,
                "source_end": source[i].end,
                "target_start": target[j].start,
                "target_end": target[j].end,
                "source_text": source[i].text,
                "target_text": target[j].text,
                "source_position": position(i, len(source)),
                "target_position": position(j, len(target)),
                "confidence": scored.confidence,
                "method": self._method_for(scored, method).value,
                "status": self._status_for(scored).value,
                "user_locked": False,
            })
        return rows

    @staticmethod
    def _status_for(scored: ScoreDetail) -> ValidationStatus:
        if scored.ratio_suspicious:
            return ValidationStatus.NEEDS_REVIEW
        if scored.confidence >= settings.auto_validation_threshold:
            return ValidationStatus.VALIDATED
        return ValidationStatus.PENDING

    @staticmethod
    def _method_for(scored: ScoreDetail, base: AlignmentMethod) -> AlignmentMethod:
        if scored.prior_applied and scored.confidence >= settings.learned_method_threshold:
            return AlignmentMethod.LEARNED
        return base

    # ==================== QUALITY ====================

    def identify_problem_areas(
        self,
        alignments: List[AlignmentResponse],
        source_sentences: Optional[List[SentenceBoundary]] = None,
        target_sentences: Optional[List[SentenceBoundary]] = None,
    ) -> List[ProblemArea]:
        """
        Classify alignment problems.

        Per-alignment issues use source offsets. Missing sentences are
        reported at source offsets, extra sentences at target offsets.
        Severities under the floor are kept as informational.
        """
        found: List[Tuple[Optional[str], int, int, AlignmentIssue, float]] = []

        for alignment in alignments:
            span = (alignment.id, alignment.source_start, alignment.source_end)
            ratio = length_ratio(alignment.source_text, alignment.target_text)
            if ratio > SEVERE_RATIO[1] or ratio < SEVERE_RATIO[0]:
                found.append((*span, AlignmentIssue.LENGTH_MISMATCH, 0.8))
            elif ratio > MILD_RATIO[1] or ratio < MILD_RATIO[0]:
                found.append((*span, AlignmentIssue.LENGTH_MISMATCH, 0.4))
            if alignment.confidence < LOW_CONFIDENCE:
                found.append((*span, AlignmentIssue.BOUNDARY_DETECTION_ERROR, 0.6))
            if structure_similarity(alignment.source_text, alignment.target_text) < LOW_STRUCTURE:
                found.append((*span, AlignmentIssue.STRUCTURAL_DIVERGENCE, 0.7))

        ordered = sorted(alignments, key=lambda a: (a.document_key, a.source_start))
        for prev, curr in zip(ordered, ordered[1:]):
            if prev.document_key == curr.document_key and curr.target_start < prev.target_start:
                found.append((curr.id, curr.source_start, curr.source_end, AlignmentIssue.ORDER_MISMATCH, 0.8))

        if source_sentences is not None:
            covered = {(a.source_start, a.source_end) for a in alignments}
            for sentence in source_sentences:
                if (sentence.start, sentence.end) not in covered:
                    found.append((None, sentence.start, sentence.end, AlignmentIssue.MISSING_SENTENCE, 0.7))
        if target_sentences is not None:
            covered = {(a.target_start, a.target_end) for a in alignments}
            for sentence in target_sentences:
                if (sentence.start, sentence.end) not in covered:
                    found.append((None, sentence.start, sentence.end, AlignmentIssue.EXTRA_SENTENCE, 0.6))

        return [
            ProblemArea(
                alignment_id=alignment_id,
                start_position=start,
                end_position=end,
                issue_type=issue,
                severity=severity,
                suggestion=SUGGESTIONS[issue],
                informational=severity < settings.problem_severity_floor,
            )
            for alignment_id, start, end, issue, severity in found
        ]

    def calculate_quality_indicators(
        self,
        alignments: List[AlignmentResponse],
        problem_areas: Optional[List[ProblemArea]] = None,
    ) -> QualityIndicators:
        if not alignments:
            return QualityIndicators(problem_areas=problem_areas or [])

        ordered = sorted(alignments, key=lambda a: (a.document_key, a.source_start))
        if len(ordered) < 2:
            position_consistency = 1.0
        else:
            agreements = [
                1.0 if (curr.source_start > prev.source_start) == (curr.target_start > prev.target_start) else 0.0
                for prev, curr in zip(ordered, ordered[1:])
            ]
            position_consistency = sum(agreements) / len(agreements)

        ratios = [length_ratio(a.source_text, a.target_text) for a in alignments]
        length_ratio_consistency = (
            1.0 - min(statistics.pstdev(ratios), 1.0) if len(ratios) > 1 else 1.0
        )
        structural_coherence = statistics.fmean(
            structure_similarity(a.source_text, a.target_text) for a in alignments
        )
        validated = sum(1 for a in alignments if a.status == ValidationStatus.VALIDATED)
        user_validation_rate = validated / len(alignments)

        overall = (
            position_consistency * 0.3
            + length_ratio_consistency * 0.25
            + structural_coherence * 0.25
            + user_validation_rate * 0.2
        )
        if problem_areas is None:
            problem_areas = self.identify_problem_areas(alignments)

        return QualityIndicators(
            overall_quality=clamp(overall),
            position_consistency=position_consistency,
            length_ratio_consistency=length_ratio_consistency,
            structural_coherence=structural_coherence,
            user_validation_rate=user_validation_rate,
            problem_areas=problem_areas,
        )

    async def get_alignment_statistics(self, language_pair: LanguagePair) -> AlignmentStatistics:
        """Totals over stored alignments of a language pair, with a health score."""
        stored = await run_storage_call(
            self.repository.list_alignments, language_pair.source, language_pair.target
        )
        stats = AlignmentStatistics(
            source_language=language_pair.source,
            target_language=language_pair.target,
            processing_time_ms=self._timings.get(language_pair.key),
        )
        if not stored:
            return stats

        alignments = [AlignmentResponse.model_validate(a) for a in stored]
        worst: Dict[str, float] = {}
        for problem in self.identify_problem_areas(alignments):
            if problem.alignment_id is not None:
                worst[problem.alignment_id] = max(worst.get(problem.alignment_id, 0.0), problem.severity)

        total = len(alignments)
        aligned = sum(1 for a in alignments if a.confidence >= settings.learned_method_threshold)
        average_confidence = statistics.fmean(a.confidence for a in alignments)
        mean_severity = sum(worst.get(a.id, 0.0) for a in alignments) / total

        stats.total_alignments = total
        stats.aligned_alignments = aligned
        stats.validated_alignments = sum(1 for a in alignments if a.status == ValidationStatus.VALIDATED)
        stats.rejected_alignments = sum(1 for a in alignments if a.status == ValidationStatus.REJECTED)
        stats.needs_review_alignments = sum(1 for a in alignments if a.status == ValidationStatus.NEEDS_REVIEW)
        stats.average_confidence = average_confidence
        stats.alignment_accuracy = aligned / total
        stats.mean_problem_severity = mean_severity
        stats.health_score = clamp(average_confidence * (1.0 - settings.health_decay_weight * mean_severity))
        return stats

    # ==================== SYNCHRONIZATION ====================

    async def synchronize_sentence_boundaries(
        self,
        pane_contents: Dict[str, str],
        cursor_position: int,
        source_language: str,
    ) -> Dict[str, int]:
        """
        Map a cursor offset in the source pane to the aligned sentence start
        in every other pane. Empty when the cursor is outside any sentence.
        """
        source_content = pane_contents.get(source_language)
        if source_content is None:
            raise ValidationError("source_language", "Source language not found in panes", source_language)

        source_sentences = self.detector.detect(source_content, source_language)
        sentence_index = next(
            (i for i, s in enumerate(source_sentences) if s.start <= cursor_position <= s.end),
            None,
        )
        if sentence_index is None:
            return {}

        positions = {source_language: cursor_position}
        for language, content in pane_contents.items():
            if language == source_language:
                continue
            result = await self.align_sentences(source_content, content, source_language, language)
            match = next(
                (a for a in result.alignments if a.source_start <= cursor_position <= a.source_end),
                None,
            )
            if match is not None:
                positions[language] = match.target_start
                continue
            target_sentences = self.detector.detect(content, language)
            if sentence_index < len(target_sentences):
                positions[language] = target_sentences[sentence_index].start
        return positions

    # ==================== LEARNING ====================

    async def learn_from_correction(
        self,
        original: Union[AlignmentSnapshot, AlignmentResponse, Dict[str, Any]],
        corrected: Union[AlignmentSnapshot, AlignmentResponse, Dict[str, Any]],
        reason: Optional[str] = None,
    ) -> CorrectionRecord:
        """
        Log a user correction and fold it into future scoring.

        The correction is keyed by the structural fingerprint of the
        original pairing; later pairings with the same fingerprint are
        pulled toward the corrected confidence.
        """
        await self._ensure_model()
        original = validate_model(AlignmentSnapshot, original)
        corrected = validate_model(AlignmentSnapshot, corrected)

        fingerprint = self.scorer.fingerprint(
            original.source_text, original.target_text,
            original.source_language, original.target_language,
        )
        record = await run_storage_call(
            self.repository.add_correction,
            fingerprint,
            original.model_dump(),
            corrected.model_dump(),
            reason,
            corrected.confidence,
        )

        self._learn(fingerprint, original, corrected.confidence)
        await self.cache.clear_alignments()
        return CorrectionRecord.model_validate(record)

    def _learn(self, fingerprint: str, original: AlignmentSnapshot, corrected_confidence: float) -> None:
        features = self.scorer.features(
            original.source_text, original.target_text,
            original.source_position, original.target_position,
            original.source_language, original.target_language,
        )
        self.scorer.learn(
            fingerprint, features, original.confidence, corrected_confidence, settings.learning_rate
        )

    async def rescore_alignments(
        self,
        language_pair: Optional[LanguagePair] = None,
        document_key: Optional[str] = None,
    ) -> RescoreResult:
        """Recompute confidence, status and method of stored, unlocked alignments."""
        await self._ensure_model()
        stored = await run_storage_call(
            self.repository.list_alignments,
            language_pair.source if language_pair else None,
            language_pair.target if language_pair else None,
            document_key,
        )

        updates = []
        locked = 0
        for alignment in stored:
            if alignment.user_locked:
                locked += 1
                continue
            scored = self._score_alignment(alignment)
            base = AlignmentMethod(alignment.method)
            if base in (AlignmentMethod.LEARNED, AlignmentMethod.USER_VALIDATED):
                base = AlignmentMethod.HYBRID
            updates.append((alignment.id, {
                "confidence": scored.confidence,
                "status": self._status_for(scored).value,
                "method": self._method_for(scored, base).value,
            }))

        rescored, skipped = await run_storage_call(self.repository.update_scores, updates)
        await self.cache.clear_alignments()
        logger.info(f"Rescored {rescored} alignments ({locked + skipped} locked left unchanged)")
        return RescoreResult(rescored=rescored, skipped_locked=locked + skipped)

    def _score_alignment(self, alignment: Union[SentenceAlignment, AlignmentResponse]) -> ScoreDetail:
        return self.scorer.score(
            alignment.source_text, alignment.target_text,
            alignment.source_position, alignment.target_position,
            alignment.source_language, alignment.target_language,
        )

    # ==================== STATUS ====================

    async def validate_alignment(self, alignment_id: str) -> AlignmentResponse:
        return await self._set_status(
            alignment_id, ValidationStatus.VALIDATED, locked=True, method=AlignmentMethod.USER_VALIDATED
        )

    async def reject_alignment(self, alignment_id: str) -> AlignmentResponse:
        return await self._set_status(alignment_id, ValidationStatus.REJECTED, locked=True)

    async def flag_for_review(self, alignment_id: str) -> AlignmentResponse:
        return await self._set_status(alignment_id, ValidationStatus.NEEDS_REVIEW, locked=True)

    async def reset_alignment(self, alignment_id: str) -> AlignmentResponse:
        """Unlock an alignment and return it to pending."""
        return await self._set_status(alignment_id, ValidationStatus.PENDING, locked=False)

    async def _set_status(
        self,
        alignment_id: str,
        status: ValidationStatus,
        locked: bool,
        method: Optional[AlignmentMethod] = None,
    ) -> AlignmentResponse:
        alignment = await run_storage_call(
            self.repository.set_status,
            alignment_id,
            status.value,
            locked,
            method.value if method else None,
        )
        if alignment is None:
            raise NotFoundError("SentenceAlignment", alignment_id)
        await self.cache.clear_alignments()
        logger.info(f"Alignment {alignment_id} set to {status.value} (locked={locked})")
        return AlignmentResponse.model_validate(alignment)

    async def get_alignment(self, alignment_id: str) -> AlignmentResponse:
        alignment = await run_storage_call(self.repository.get, alignment_id)
        if alignment is None:
            raise NotFoundError("SentenceAlignment", alignment_id)
        return AlignmentResponse.model_validate(alignment)

    async def get_document_alignments(self, key: str) -> List[AlignmentResponse]:
        stored = await run_storage_call(self.repository.get_by_document, key)
        return [AlignmentResponse.model_validate(a) for a in stored]

    # ==================== MANUAL OPERATIONS ====================

    async def align_spans(
        self,
        source_text: str,
        target_text: str,
        span: Union[AlignmentSpan, Dict[str, Any]],
        source_language: str,
        target_language: str,
        key: Optional[str] = None,
    ) -> AlignmentResponse:
        """Align two spans by hand; the result is user-validated and locked."""
        span = validate_model(AlignmentSpan, span)
        for name, start, end, text in (
            ("source", span.source_start, span.source_end, source_text),
            ("target", span.target_start, span.target_end, target_text),
        ):
            if start >= end or end > len(text):
                raise ValidationError(f"{name}_span", f"[{start}, {end}) is not a span of the {name} text")

        src, src_start, src_end = _trimmed(source_text[span.source_start:span.source_end], span.source_start)
        tgt, tgt_start, tgt_end = _trimmed(target_text[span.target_start:span.target_end], span.target_start)
        if not src or not tgt:
            raise ValidationError("span", "Aligned spans must contain text")

        key = key or document_key(source_text, target_text, source_language, target_language)
        row = {
            "source_language": source_language,
            "target_language": target_language,
            "source_start": src_start,
            "source_end": src_end,
            "target_start": tgt_start,
            "target_end": tgt_end,
            "source_text": src,
            "target_text": tgt,
            "source_position": src_start / max(len(source_text), 1),
            "target_position": tgt_start / max(len(target_text), 1),
            "source_chunk_id": span.source_chunk_id,
            "target_chunk_id": span.target_chunk_id,
            **self._user_fields(),
        }
        alignment = await run_storage_call(
            self.repository.insert_span, key, row, (source_text, target_text)
        )
        await self.cache.clear_alignments()
        return AlignmentResponse.model_validate(alignment)

    async def unalign(self, alignment_id: str) -> None:
        deleted = await run_storage_call(self.repository.delete, alignment_id)
        if not deleted:
            raise NotFoundError("SentenceAlignment", alignment_id)
        await self.cache.clear_alignments()

    async def merge_alignments(self, alignment_ids: List[str]) -> AlignmentResponse:
        """
        Merge alignments of one document into a single user-validated alignment.

        Locked alignments must be reset first (ConflictError).
        """
        alignments = await self._load(alignment_ids)
        texts = await run_storage_call(self.repository.get_document_texts, alignments[0].document_key)
        return await self._merge(alignments, user=True, texts=texts)

    async def split_alignment(
        self,
        alignment_id: str,
        source_offset: int,
        target_offset: int,
    ) -> List[AlignmentResponse]:
        """Split an alignment at offsets relative to its own text; a locked one must be reset first."""
        alignment = (await self._load([alignment_id], minimum=1))[0]
        if not 0 < source_offset < len(alignment.source_text):
            raise ValidationError("source_offset", "must fall inside the source text", source_offset)
        if not 0 < target_offset < len(alignment.target_text):
            raise ValidationError("target_offset", "must fall inside the target text", target_offset)

        rows = []
        for (src_part, src_start), (tgt_part, tgt_start) in (
            ((alignment.source_text[:source_offset], alignment.source_start),
             (alignment.target_text[:target_offset], alignment.target_start)),
            ((alignment.source_text[source_offset:], alignment.source_start + source_offset),
             (alignment.target_text[target_offset:], alignment.target_start + target_offset)),
        ):
            src, s_start, s_end = _trimmed(src_part, src_start)
            tgt, t_start, t_end = _trimmed(tgt_part, tgt_start)
            if not src or not tgt:
                raise ValidationError("offset", "Both parts of a split must contain text")
            rows.append(self._row_from(alignment, src, s_start, s_end, tgt, t_start, t_end, self._user_fields()))

        added = await run_storage_call(
            self.repository.replace, [alignment.id], rows, alignment.document_key
        )
        await self.cache.clear_alignments()
        return [AlignmentResponse.model_validate(a) for a in added]

    async def auto_fix(self, problem: Union[ProblemArea, Dict[str, Any]]) -> AutoFixResult:
        """
        Resolve a problem area mechanically where possible.

        Only length mismatches and boundary detection errors are fixed, by
        merging the alignment with the adjacent one that yields the best
        confidence gain. Other kinds name the manual operation to use.
        """
        problem = validate_model(ProblemArea, problem)
        issue = problem.issue_type

        if not issue.auto_fixable:
            return AutoFixResult(
                applied=False,
                issue_type=issue,
                message=f"{issue.value} requires manual correction",
                manual_operation=MANUAL_OPERATIONS[issue],
            )
        if problem.alignment_id is None:
            return AutoFixResult(
                applied=False,
                issue_type=issue,
                message="Problem area is not tied to an alignment",
                manual_operation="align_spans",
            )

        alignment = await self.get_alignment(problem.alignment_id)
        if alignment.user_locked:
            return AutoFixResult(
                applied=False,
                issue_type=issue,
                message="Alignment is locked by a user decision",
                manual_operation="reset_alignment",
            )

        siblings = await self.get_document_alignments(alignment.document_key)
        texts = await run_storage_call(self.repository.get_document_texts, alignment.document_key)
        index = next(i for i, a in enumerate(siblings) if a.id == alignment.id)
        best: Optional[Tuple[float, AlignmentResponse]] = None
        for neighbour_index in (index - 1, index + 1):
            if not 0 <= neighbour_index < len(siblings):
                continue
            neighbour = siblings[neighbour_index]
            if neighbour.user_locked:
                continue
            gain = self._merged_score([alignment, neighbour], texts).confidence - (
                (alignment.confidence + neighbour.confidence) / 2
            )
            if gain > 0 and (best is None or gain > best[0]):
                best = (gain, neighbour)

        if best is None:
            return AutoFixResult(
                applied=False,
                issue_type=issue,
                message="No adjacent merge improves confidence",
                manual_operation="merge_alignments",
            )

        merged = await self._merge([alignment, best[1]], user=False, texts=texts)
        logger.info(f"Auto-fixed {issue.value} on {alignment.id} (gain {best[0]:.3f})")
        return AutoFixResult(
            applied=True,
            issue_type=issue,
            message=f"Merged with adjacent alignment (confidence +{best[0]:.2f})",
            alignment=merged,
            removed_ids=[alignment.id, best[1].id],
        )

    # ==================== HELPERS ====================

    async def _load(self, alignment_ids: List[str], minimum: int = 2) -> List[AlignmentResponse]:
        if len(set(alignment_ids)) < minimum:
            raise ValidationError("alignment_ids", f"at least {minimum} distinct alignments required", alignment_ids)
        found = await run_storage_call(self.repository.get_many, list(alignment_ids))
        missing = [a for a in alignment_ids if a not in found]
        if missing:
            raise NotFoundError("SentenceAlignment", ", ".join(missing))
        alignments = [AlignmentResponse.model_validate(found[a]) for a in dict.fromkeys(alignment_ids)]
        if len({a.document_key for a in alignments}) > 1:
            raise ConflictError("Alignments belong to different documents", {"alignment_ids": alignment_ids})
        return alignments

    @staticmethod
    def _merged_texts(
        alignments: List[AlignmentResponse],
        texts: Optional[Tuple[str, str]] = None,
    ) -> Tuple[str, str]:
        """Covering slice of the stored documents, or the joined sentences when they are unknown."""
        source_start = min(a.source_start for a in alignments)
        source_end = max(a.source_end for a in alignments)
        target_start = min(a.target_start for a in alignments)
        target_end = max(a.target_end for a in alignments)
        if texts is not None and source_end <= len(texts[0]) and target_end <= len(texts[1]):
            return texts[0][source_start:source_end], texts[1][target_start:target_end]

        by_source = sorted(alignments, key=lambda a: a.source_start)
        by_target = sorted(alignments, key=lambda a: a.target_start)
        return (
            " ".join(a.source_text for a in by_source),
            " ".join(a.target_text for a in by_target),
        )

    def _merged_score(
        self,
        alignments: List[AlignmentResponse],
        texts: Optional[Tuple[str, str]] = None,
    ) -> ScoreDetail:
        source, target = self._merged_texts(alignments, texts)
        first = alignments[0]
        return self.scorer.score(
            source, target,
            min(a.source_position for a in alignments),
            min(a.target_position for a in alignments),
            first.source_language, first.target_language,
        )

    async def _merge(
        self,
        alignments: List[AlignmentResponse],
        user: bool,
        texts: Optional[Tuple[str, str]] = None,
    ) -> AlignmentResponse:
        source, target = self._merged_texts(alignments, texts)
        if user:
            fields = self._user_fields()
        else:
            scored = self._merged_score(alignments, texts)
            fields = {
                "confidence": scored.confidence,
                "method": AlignmentMethod.LENGTH_RATIO.value,
                "status": self._status_for(scored).value,
                "user_locked": False,
            }
        first = min(alignments, key=lambda a: a.source_start)
        row = self._row_from(
            first,
            source, min(a.source_start for a in alignments), max(a.source_end for a in alignments),
            target, min(a.target_start for a in alignments), max(a.target_end for a in alignments),
            fields,
        )
        row["source_position"] = min(a.source_position for a in alignments)
        row["target_position"] = min(a.target_position for a in alignments)

        added = await run_storage_call(
            self.repository.replace, [a.id for a in alignments], [row], first.document_key
        )
        await self.cache.clear_alignments()
        return AlignmentResponse.model_validate(added[0])

    @staticmethod
    def _user_fields() -> Dict[str, Any]:
        return {
            "confidence": 1.0,
            "method": AlignmentMethod.USER_VALIDATED.value,
            "status": ValidationStatus.VALIDATED.value,
            "user_locked": True,
        }

    @staticmethod
    def _row_from(
        base: AlignmentResponse,
        source_text: str, source_start: int, source_end: int,
        target_text: str, target_start: int, target_end: int,
        fields: Dict[str, Any],
    ) -> Dict[str, Any]:
        return {
            "source_language": base.source_language,
            "target_language": base.target_language,
            "source_start": source_start,
            "source_end": source_end,
            "target_start": target_start,
            "target_end": target_end,
            "source_text": source_text,
            "target_text": target_text,
            "source_position": base.source_position,
            "target_position": base.target_position,
            "source_chunk_id": base.source_chunk_id,
            "target_chunk_id": base.target_chunk_id,
            **fields,
        }
