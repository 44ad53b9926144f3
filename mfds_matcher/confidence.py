"""
Confidence Classifier
"""

from typing import Tuple

from .models import Confidence, MatchTier

HIGH_SCORE = 0.85
PREFIX_OK_SCORE = 0.70
FUZZY_OK_SCORE = 0.75

_ALWAYS_HIGH = {
    MatchTier.EXACT_EN,
    MatchTier.EXACT_KO,
    MatchTier.MAP_ITEM_CODE,
    MatchTier.MAP_PRODUCT_NAME,
}

_HIGH_OR_MEDIUM = {
    MatchTier.MAP_INGREDIENT_BASE,
    MatchTier.TOKEN_ING_CONVERGED,
}

_MEDIUM = (Confidence.MEDIUM, "N")
_REVIEW = (Confidence.REVIEW, "Y")


def classify(tier: MatchTier, score: float, review_threshold: float) -> Tuple[Confidence, str]:
    """(confidence, review flag) for a match tier and its score"""
    if tier in _ALWAYS_HIGH:
        return Confidence.HIGH, "N"
    if tier in _HIGH_OR_MEDIUM:
        return (Confidence.HIGH, "N") if score >= HIGH_SCORE else _MEDIUM
    if tier == MatchTier.TOKEN_MULTI_ING:
        return _REVIEW if score < review_threshold else _MEDIUM
    if tier == MatchTier.PREFIX_MATCH:
        return _MEDIUM if score >= PREFIX_OK_SCORE else _REVIEW
    if tier == MatchTier.FUZZY_BROAD:
        return _MEDIUM if score >= FUZZY_OK_SCORE else _REVIEW
    return _REVIEW
