import pytest

from mfds_matcher.confidence import classify
from mfds_matcher.models import Confidence, MatchTier

HIGH = (Confidence.HIGH, "N")
MEDIUM = (Confidence.MEDIUM, "N")
REVIEW = (Confidence.REVIEW, "Y")


@pytest.mark.parametrize("tier,score,expected", [
    (MatchTier.EXACT_EN, 1.0, HIGH),
    (MatchTier.EXACT_KO, 1.0, HIGH),
    (MatchTier.MAP_ITEM_CODE, 1.0, HIGH),
    (MatchTier.MAP_PRODUCT_NAME, 1.0, HIGH),
    (MatchTier.MAP_INGREDIENT_BASE, 0.85, HIGH),
    (MatchTier.MAP_INGREDIENT_BASE, 0.84, MEDIUM),
    (MatchTier.TOKEN_ING_CONVERGED, 0.9, HIGH),
    (MatchTier.TOKEN_ING_CONVERGED, 0.5, MEDIUM),
    (MatchTier.TOKEN_MULTI_ING, 0.89, REVIEW),
    (MatchTier.TOKEN_MULTI_ING, 0.90, MEDIUM),
    (MatchTier.PREFIX_MATCH, 0.70, MEDIUM),
    (MatchTier.PREFIX_MATCH, 0.69, REVIEW),
    (MatchTier.FUZZY_BROAD, 0.75, MEDIUM),
    (MatchTier.FUZZY_BROAD, 0.74, REVIEW),
    (MatchTier.NOT_FOUND, 0.0, REVIEW),
])
def test_classification_table(tier, score, expected):
    assert classify(tier, score, 0.90) == expected


def test_review_threshold_is_configurable():
    assert classify(MatchTier.TOKEN_MULTI_ING, 0.82, 0.80) == MEDIUM
    assert classify(MatchTier.TOKEN_MULTI_ING, 0.82, 0.95) == REVIEW
