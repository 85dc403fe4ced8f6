"""Tests for tmcore/alignment boundary detection and scoring."""
import pytest

from tmcore.alignment.boundaries import GENERIC_PROFILE, BoundaryDetector, profile_for
from tmcore.alignment.schemas import AlignmentIssue, BoundaryType
from tmcore.alignment.scoring import (
    AlignmentScorer,
    LearnedModel,
    content_similarity,
    expected_length_ratio,
    structure_similarity,
)
from tmcore.alignment.service import dynamic_pairs


@pytest.fixture
def detector():
    return BoundaryDetector()


# ---------------------------------------------------------------------------
# Language profiles
# ---------------------------------------------------------------------------

class TestProfiles:

    def test_region_code_stripped(self):
        assert profile_for("de-AT").language == "de"
        assert profile_for("EN_us").language == "en"

    def test_unknown_language_falls_back(self):
        assert profile_for("xx") is GENERIC_PROFILE
        assert profile_for("") is GENERIC_PROFILE


# ---------------------------------------------------------------------------
# Boundary detection
# ---------------------------------------------------------------------------

class TestBoundaryDetector:

    def test_two_sentences(self, detector):
        text = "Hello world. This is a test."
        sentences = detector.detect(text, "en")

        assert [s.text for s in sentences] == ["Hello world.", "This is a test."]
        assert (sentences[0].start, sentences[0].end) == (0, 12)
        assert text[sentences[1].start:sentences[1].end] == "This is a test."
        assert sentences[0].boundary_type == BoundaryType.PERIOD
        assert sentences[1].boundary_type == BoundaryType.END_OF_PARAGRAPH
        assert sentences[1].confidence == pytest.approx(0.9)

    def test_abbreviation_does_not_split(self, detector):
        sentences = detector.detect("Dr. Smith arrived. He sat down.", "en")
        assert [s.text for s in sentences] == ["Dr. Smith arrived.", "He sat down."]

    def test_lowercase_continuation_does_not_split(self, detector):
        sentences = detector.detect("It costs 3.5 dollars. ok then.", "en")
        assert len(sentences) == 1

    def test_paragraphs(self, detector):
        text = "First one\nSecond one."
        sentences = detector.detect(text, "en")
        assert [s.start for s in sentences] == [0, 10]
        assert all(s.boundary_type == BoundaryType.END_OF_PARAGRAPH for s in sentences)

    def test_question_and_exclamation(self, detector):
        sentences = detector.detect("Is it? Yes! Fine.", "en")
        assert [s.boundary_type for s in sentences] == [
            BoundaryType.QUESTION, BoundaryType.EXCLAMATION, BoundaryType.END_OF_PARAGRAPH,
        ]

    def test_language_specific_capitals(self, detector):
        sentences = detector.detect("Das ist gut. Über alles.", "de")
        assert len(sentences) == 2

    def test_quotes_stay_with_sentence(self, detector):
        sentences = detector.detect('He said "stop." Then he left.', "en")
        assert sentences[0].text == 'He said "stop."'

    def test_empty_text(self, detector):
        assert detector.detect("", "en") == []
        assert detector.detect("   \n  ", "en") == []

    def test_confidence_bounds(self, detector):
        for sentence in detector.detect("A. B. C? D!", "en"):
            assert 0.1 <= sentence.confidence <= 1.0


# ---------------------------------------------------------------------------
# Scoring helpers
# ---------------------------------------------------------------------------

class TestScoringHelpers:

    def test_structure_similarity(self):
        assert structure_similarity("Hi, there.", "Hallo, da.") == 1.0
        assert structure_similarity("no marks", "keine") == 1.0
        assert structure_similarity("Stop.", "Halt") == 0.0

    def test_content_similarity_uses_numbers(self):
        assert content_similarity("Page 42 of the Report", "Seite 42 des Report") == 1.0
        assert content_similarity("Page 42", "Seite 7") == 0.0

    def test_expected_length_ratio(self):
        assert expected_length_ratio("en", "en") == 1.0
        assert expected_length_ratio("en", "de") > 1.0

    def test_auto_fixable_issues(self):
        assert AlignmentIssue.LENGTH_MISMATCH.auto_fixable
        assert AlignmentIssue.BOUNDARY_DETECTION_ERROR.auto_fixable
        assert not AlignmentIssue.ORDER_MISMATCH.auto_fixable


class TestAlignmentScorer:

    def test_confidence_in_range(self):
        scorer = AlignmentScorer()
        detail = scorer.score("The cat sat.", "Die Katze saß.", 0.0, 0.0, "en", "de")
        assert 0.0 <= detail.confidence <= 1.0
        assert not detail.ratio_suspicious
        assert not detail.prior_applied

    def test_position_distance_lowers_confidence(self):
        scorer = AlignmentScorer()
        near = scorer.score("The cat sat.", "Die Katze saß.", 0.0, 0.0, "en", "de")
        far = scorer.score("The cat sat.", "Die Katze saß.", 0.0, 0.9, "en", "de")
        assert far.confidence < near.confidence

    def test_suspicious_length_ratio(self):
        scorer = AlignmentScorer()
        detail = scorer.score("Hi.", "Hallo " * 40 + ".", 0.0, 0.0, "en", "de")
        assert detail.ratio_suspicious
        assert detail.confidence < 0.5

    def test_fingerprint_shape(self):
        scorer = AlignmentScorer()
        fp = scorer.fingerprint("The cat sat.", "Die Katze saß.", "en", "de")
        assert fp.startswith("en>de:period:period:")
        assert fp != scorer.fingerprint("The cat sat?", "Die Katze saß?", "en", "de")

    def test_prior_pulls_toward_corrections(self):
        scorer = AlignmentScorer(prior_weight=0.2, prior_max_weight=0.6)
        args = ("The cat sat.", "Die Katze saß.", 0.0, 0.0, "en", "de")
        before = scorer.score(*args)

        fp = scorer.fingerprint(*args[:2], "en", "de")
        scorer.load_corrections([(fp, 0.0)] * 3)
        after = scorer.score(*args)

        assert after.prior_applied
        assert after.confidence == pytest.approx(before.confidence * 0.4)

    def test_prior_weight_capped(self):
        scorer = AlignmentScorer(prior_weight=0.5, prior_max_weight=0.6)
        args = ("The cat sat.", "Die Katze saß.", 0.0, 0.0, "en", "de")
        before = scorer.score(*args)
        fp = scorer.fingerprint(*args[:2], "en", "de")
        scorer.load_corrections([(fp, 1.0)] * 10)
        after = scorer.score(*args)
        assert after.confidence == pytest.approx(0.4 * before.confidence + 0.6)


class TestLearnedModel:

    def test_neutral_features_no_adjustment(self):
        model = LearnedModel()
        assert model.adjustment({"position_similarity": 0.5, "length_ratio": 0.5}) == 0.0

    def test_weights_move_with_error_and_are_clamped(self):
        model = LearnedModel()
        features = {"position_similarity": 1.0, "length_ratio": 0.0}
        start = dict(model.feature_weights)

        model.update_weights(features, original_confidence=0.2, corrected_confidence=1.0, learning_rate=0.1)
        assert model.feature_weights["position_similarity"] > start["position_similarity"]
        assert model.feature_weights["length_ratio"] < start["length_ratio"]

        model.update_weights(features, 0.0, 1.0, learning_rate=1000.0)
        assert model.feature_weights["position_similarity"] == 2.0
        assert model.feature_weights["length_ratio"] == -2.0

    def test_prior_is_mean(self):
        model = LearnedModel()
        model.record("fp", 0.2)
        model.record("fp", 0.6)
        mean, count = model.prior("fp")
        assert mean == pytest.approx(0.4)
        assert count == 2
        assert model.prior("other") is None


# ---------------------------------------------------------------------------
# Dynamic pairing
# ---------------------------------------------------------------------------

class TestDynamicPairs:

    def test_diagonal_when_scores_favor_it(self):
        scores = {(0, 0): 0.9, (1, 1): 0.9, (2, 2): 0.9}
        pairs = dynamic_pairs(3, 3, lambda i, j: scores.get((i, j), 0.1), 0.5)
        assert pairs == [(0, 0), (1, 1), (2, 2)]

    def test_skips_unmatched_sentence(self):
        scores = {(0, 0): 0.9, (2, 1): 0.9}
        pairs = dynamic_pairs(3, 2, lambda i, j: scores.get((i, j), 0.0), 0.1)
        assert pairs == [(0, 0), (2, 1)]

    def test_pairs_are_monotonic(self):
        pairs = dynamic_pairs(4, 6, lambda i, j: 1.0 - abs(i / 4 - j / 6), 0.5)
        for (i1, j1), (i2, j2) in zip(pairs, pairs[1:]):
            assert i2 > i1 and j2 > j1
