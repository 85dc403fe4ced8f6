"""
Alignment Scoring
Confidence for a sentence pairing from position, length ratio and
punctuation structure, adjusted by feature weights and a prior learned
from user corrections.
"""
import math
import string
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from .boundaries import BoundaryDetector, profile_for

PUNCTUATION = set(string.punctuation) | set("¡¿«»“”‘’…")

DEFAULT_FEATURE_WEIGHTS = {
    "position_similarity": 0.4,
    "length_ratio": 0.3,
    "structure_similarity": 0.2,
    "content_similarity": 0.1,
}

# Share of the learned adjustment blended into a computed confidence
LEARNED_ADJUSTMENT_SCALE = 0.2
WEIGHT_LIMIT = 2.0


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def structure_similarity(source: str, target: str) -> float:
    """Share of punctuation marks the two sentences have in common."""
    source_punct = [c for c in source if c in PUNCTUATION]
    target_punct = [c for c in target if c in PUNCTUATION]
    if not source_punct and not target_punct:
        return 1.0
    common = sum(1 for c in source_punct if c in target_punct)
    return min(1.0, common / max(len(source_punct), len(target_punct)))


def content_similarity(source: str, target: str) -> float:
    """Overlap of language-neutral anchors: numbers and capitalized tokens."""
    def anchors(text: str) -> set:
        tokens = [t.strip(string.punctuation) for t in text.split()]
        return {t for t in tokens[1:] if t and (t[0].isdigit() or t[0].isupper())} | {
            t for t in tokens[:1] if t and t[0].isdigit()
        }

    source_anchors, target_anchors = anchors(source), anchors(target)
    if not source_anchors and not target_anchors:
        return 1.0
    union = source_anchors | target_anchors
    return len(source_anchors & target_anchors) / len(union)


def expected_length_ratio(source_language: str, target_language: str) -> float:
    return (
        profile_for(target_language).average_sentence_length
        / profile_for(source_language).average_sentence_length
    )


def length_ratio(source: str, target: str) -> float:
    return len(target) / max(len(source), 1)


@dataclass
class ScoreDetail:
    """Computed confidence plus the signals behind it."""
    confidence: float
    features: Dict[str, float]
    ratio_deviation: float
    ratio_suspicious: bool
    prior_applied: bool = False


@dataclass
class LearnedModel:
    """
    Feature weights and per-fingerprint correction prior.

    The prior for a fingerprint is the mean corrected confidence of its
    logged corrections.
    """
    feature_weights: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_FEATURE_WEIGHTS))
    prior_totals: Dict[str, Tuple[float, int]] = field(default_factory=dict)
    corrections: int = 0

    def record(self, fingerprint: str, corrected_confidence: float) -> None:
        total, count = self.prior_totals.get(fingerprint, (0.0, 0))
        self.prior_totals[fingerprint] = (total + corrected_confidence, count + 1)
        self.corrections += 1

    def prior(self, fingerprint: str) -> Optional[Tuple[float, int]]:
        entry = self.prior_totals.get(fingerprint)
        if not entry or entry[1] == 0:
            return None
        total, count = entry
        return total / count, count

    def adjustment(self, features: Dict[str, float]) -> float:
        """Signed adjustment in [-1, 1]; centered features keep neutral input at zero."""
        raw = sum(
            self.feature_weights.get(name, 0.0) * (value - 0.5)
            for name, value in features.items()
        )
        return math.tanh(raw)

    def update_weights(
        self,
        features: Dict[str, float],
        original_confidence: float,
        corrected_confidence: float,
        learning_rate: float,
    ) -> None:
        error = corrected_confidence - original_confidence
        for name, value in features.items():
            if name not in self.feature_weights:
                continue
            weight = self.feature_weights[name] + learning_rate * error * (value - 0.5)
            self.feature_weights[name] = max(-WEIGHT_LIMIT, min(WEIGHT_LIMIT, weight))


class AlignmentScorer:
    """Scores sentence pairings."""

    def __init__(
        self,
        position_weight: float = 0.4,
        length_weight: float = 0.3,
        structure_weight: float = 0.3,
        max_ratio_deviation: float = 2.5,
        prior_weight: float = 0.15,
        prior_max_weight: float = 0.6,
        detector: Optional[BoundaryDetector] = None,
    ):
        self.position_weight = position_weight
        self.length_weight = length_weight
        self.structure_weight = structure_weight
        self.max_ratio_deviation = max_ratio_deviation
        self.prior_weight = prior_weight
        self.prior_max_weight = prior_max_weight
        self.detector = detector or BoundaryDetector()
        self.model = LearnedModel()

    def features(
        self,
        source: str,
        target: str,
        source_position: float,
        target_position: float,
        source_language: str,
        target_language: str,
    ) -> Dict[str, float]:
        expected = expected_length_ratio(source_language, target_language)
        actual = length_ratio(source, target)
        return {
            "position_similarity": clamp(1.0 - abs(source_position - target_position)),
            "length_ratio": clamp(1.0 - min(abs(actual / expected - 1.0) / 2.0, 1.0)),
            "structure_similarity": structure_similarity(source, target),
            "content_similarity": content_similarity(source, target),
        }

    def base_confidence(self, features: Dict[str, float]) -> float:
        """Weighted position, length and structure similarity."""
        return clamp(
            features["position_similarity"] * self.position_weight
            + features["length_ratio"] * self.length_weight
            + features["structure_similarity"] * self.structure_weight
        )

    def fingerprint(self, source: str, target: str, source_language: str, target_language: str) -> str:
        """
        Structural fingerprint of a pairing.

        Combines the language pair, both sentence-ending kinds, a bucketed
        length ratio and a bucketed punctuation similarity.
        """
        ratio = length_ratio(source, target) / expected_length_ratio(source_language, target_language)
        ratio_bucket = max(-4, min(4, round(math.log2(max(ratio, 1e-3)) * 2)))
        structure_bucket = round(structure_similarity(source, target) * 4)
        return ":".join([
            f"{source_language}>{target_language}",
            self.detector.boundary_type(source).value,
            self.detector.boundary_type(target).value,
            f"r{ratio_bucket}",
            f"s{structure_bucket}",
        ])

    def score(
        self,
        source: str,
        target: str,
        source_position: float,
        target_position: float,
        source_language: str,
        target_language: str,
    ) -> ScoreDetail:
        """Full confidence: base, length-ratio validation, learned adjustment, correction prior."""
        features = self.features(
            source, target, source_position, target_position, source_language, target_language
        )
        confidence = self.base_confidence(features)

        expected = expected_length_ratio(source_language, target_language)
        deviation = abs(length_ratio(source, target) / expected - 1.0)
        suspicious = deviation > self.max_ratio_deviation
        if suspicious:
            confidence *= 0.5
        else:
            ratio_confidence = 1.0 - (deviation / self.max_ratio_deviation) * 0.3
            confidence = confidence * 0.7 + ratio_confidence * 0.3

        confidence = clamp(confidence + self.model.adjustment(features) * LEARNED_ADJUSTMENT_SCALE)

        prior_applied = False
        prior = self.model.prior(self.fingerprint(source, target, source_language, target_language))
        if prior is not None:
            mean, count = prior
            weight = min(self.prior_max_weight, count * self.prior_weight)
            confidence = clamp((1.0 - weight) * confidence + weight * mean)
            prior_applied = True

        return ScoreDetail(
            confidence=confidence,
            features=features,
            ratio_deviation=deviation,
            ratio_suspicious=suspicious,
            prior_applied=prior_applied,
        )

    def learn(
        self,
        fingerprint: str,
        features: Dict[str, float],
        original_confidence: float,
        corrected_confidence: float,
        learning_rate: float,
    ) -> None:
        """Fold one correction into the prior and the feature weights."""
        self.model.record(fingerprint, corrected_confidence)
        self.model.update_weights(features, original_confidence, corrected_confidence, learning_rate)
