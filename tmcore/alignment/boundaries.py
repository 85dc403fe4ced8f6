"""
Sentence Boundary Detection
Split text into sentences using per-language boundary and abbreviation rules.
"""
import re
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Pattern, Tuple

from .schemas import BoundaryType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LanguageProfile:
    """Boundary rules and typical sentence statistics for one language."""
    language: str
    uppercase: str  # regex character-class body of sentence-initial letters
    abbreviations: Tuple[str, ...]
    average_sentence_length: float
    length_variance: float
    typical_word_count: float
    punctuation: str = ".!?,;:"


LANGUAGE_PROFILES: Dict[str, LanguageProfile] = {
    "en": LanguageProfile(
        language="en",
        uppercase="A-Z",
        abbreviations=("Mr", "Mrs", "Dr", "Prof", "Inc", "Ltd", "Corp", "etc", "vs", r"e\.g", r"i\.e"),
        average_sentence_length=85.0,
        length_variance=25.0,
        typical_word_count=15.0,
    ),
    "es": LanguageProfile(
        language="es",
        uppercase="A-ZÁÉÍÓÚÑ",
        abbreviations=("Sr", "Sra", "Dr", "Prof", r"S\.A", r"S\.L", "etc", r"p\.ej"),
        average_sentence_length=95.0,
        length_variance=30.0,
        typical_word_count=18.0,
        punctuation=".!?,;:¡¿",
    ),
    "fr": LanguageProfile(
        language="fr",
        uppercase="A-ZÀÂÄÉÈÊËÏÎÔÖÙÛÜÇ",
        abbreviations=("M", "Mme", "Dr", "Prof", "SARL", "SA", "etc", r"p\.ex", "c-à-d"),
        average_sentence_length=100.0,
        length_variance=35.0,
        typical_word_count=20.0,
    ),
    "de": LanguageProfile(
        language="de",
        uppercase="A-ZÄÖÜ",
        abbreviations=("Dr", "Prof", "GmbH", "AG", "etc", r"z\.B", r"d\.h"),
        average_sentence_length=110.0,
        length_variance=40.0,
        typical_word_count=22.0,
    ),
}

# Fallback for languages without a profile
GENERIC_PROFILE = LanguageProfile(
    language="generic",
    uppercase="A-ZÀ-ÞΑ-ΩА-Я",
    abbreviations=("Dr", "Prof", "etc"),
    average_sentence_length=85.0,
    length_variance=25.0,
    typical_word_count=15.0,
)


def profile_for(language: str) -> LanguageProfile:
    """Profile for a language code such as 'en' or 'de-AT'."""
    code = (language or "").strip().lower().split("-")[0].split("_")[0]
    return LANGUAGE_PROFILES.get(code, GENERIC_PROFILE)


@dataclass
class SentenceBoundary:
    """A detected sentence with offsets into the original text."""
    start: int
    end: int
    text: str
    confidence: float
    boundary_type: BoundaryType

    @property
    def length(self) -> int:
        return len(self.text)


class BoundaryDetector:
    """
    Sentence boundary detector.

    Text is split into paragraphs on newlines, then into sentences at
    terminal punctuation followed by whitespace and a capitalized word,
    unless the punctuation closes a known abbreviation.
    """

    PARAGRAPH = re.compile(r"[^\n]+")

    TYPE_CONFIDENCE = {
        BoundaryType.PERIOD: 0.8,
        BoundaryType.QUESTION: 0.9,
        BoundaryType.EXCLAMATION: 0.9,
        BoundaryType.ELLIPSIS: 0.7,
        BoundaryType.END_OF_PARAGRAPH: 0.9,
    }

    def __init__(self):
        self._compiled: Dict[str, Tuple[Pattern[str], Pattern[str]]] = {}

    def _patterns(self, profile: LanguageProfile) -> Tuple[Pattern[str], Pattern[str]]:
        compiled = self._compiled.get(profile.language)
        if compiled is None:
            boundary = re.compile(
                r"([.!?…]+[\"'”’»)\]]*)\s+"
                rf"(?=[\"'“‘«(¿¡]?[{profile.uppercase}])"
            )
            abbreviation = re.compile(rf"\b(?:{'|'.join(profile.abbreviations)})$")
            compiled = (boundary, abbreviation)
            self._compiled[profile.language] = compiled
        return compiled

    def detect(self, text: str, language: str) -> List[SentenceBoundary]:
        """
        Detect sentence boundaries.

        Args:
            text: Text to split
            language: Language code selecting the profile

        Returns:
            Sentences in document order, offsets relative to text
        """
        if not text or not text.strip():
            return []

        profile = profile_for(language)
        boundary, abbreviation = self._patterns(profile)
        sentences: List[SentenceBoundary] = []

        for paragraph in self.PARAGRAPH.finditer(text):
            offset = paragraph.start()
            body = paragraph.group()
            start = 0

            for match in boundary.finditer(body):
                punctuation = match.group(1)
                if punctuation.startswith(".") and abbreviation.search(body[:match.start(1)]):
                    continue
                self._append(sentences, text, offset + start, offset + match.end(1), profile, last=False)
                start = match.end()

            self._append(sentences, text, offset + start, offset + len(body), profile, last=True)

        logger.debug(f"Detected {len(sentences)} sentences ({profile.language})")
        return sentences

    def _append(
        self,
        sentences: List[SentenceBoundary],
        text: str,
        start: int,
        end: int,
        profile: LanguageProfile,
        last: bool,
    ) -> None:
        raw = text[start:end]
        stripped = raw.strip()
        if not stripped:
            return
        start += len(raw) - len(raw.lstrip())
        end = start + len(stripped)

        if last:
            boundary_type = BoundaryType.END_OF_PARAGRAPH
            confidence = self.TYPE_CONFIDENCE[boundary_type]
        else:
            boundary_type = self.boundary_type(stripped)
            confidence = self.boundary_confidence(stripped, profile, boundary_type)

        sentences.append(SentenceBoundary(
            start=start,
            end=end,
            text=stripped,
            confidence=confidence,
            boundary_type=boundary_type,
        ))

    @staticmethod
    def boundary_type(sentence: str) -> BoundaryType:
        sentence = sentence.rstrip("\"'”’»)] ")
        if sentence.endswith("?"):
            return BoundaryType.QUESTION
        if sentence.endswith("!"):
            return BoundaryType.EXCLAMATION
        if sentence.endswith("...") or sentence.endswith("…"):
            return BoundaryType.ELLIPSIS
        if sentence.endswith("."):
            return BoundaryType.PERIOD
        return BoundaryType.END_OF_PARAGRAPH

    def boundary_confidence(
        self,
        sentence: str,
        profile: LanguageProfile,
        boundary_type: Optional[BoundaryType] = None,
    ) -> float:
        """Blend of punctuation reliability and closeness to typical sentence shape."""
        boundary_type = boundary_type or self.boundary_type(sentence)
        type_confidence = self.TYPE_CONFIDENCE[boundary_type]

        length_deviation = abs(len(sentence) - profile.average_sentence_length) / profile.length_variance
        length_confidence = 1.0 - min(length_deviation / 3.0, 1.0)

        word_deviation = abs(len(sentence.split()) - profile.typical_word_count) / (profile.typical_word_count * 0.5)
        word_confidence = 1.0 - min(word_deviation / 2.0, 1.0)

        confidence = type_confidence * 0.5 + length_confidence * 0.3 + word_confidence * 0.2
        return max(0.1, min(1.0, confidence))
