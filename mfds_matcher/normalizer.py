"""
Text normalization helpers shared by indexing, matching and aggregation
"""

import math
import re
from datetime import date, datetime
from typing import Any, List

import pandas as pd
from rapidfuzz.distance import Indel

# Anything after this marker in a label or ingredient is commentary
SEPARATOR = ">>"

# Operands longer than this are scored by containment only
LONG_TEXT_THRESHOLD = 500

SALT_TERMS = [
    '수화물', '무수물', '염산염', '황산염', '나트륨', '칼륨', '칼슘',
    '마그네슘', '인산염', '질산염', '초산염', '구연산염', '주석산염',
    '메실산염', '말레산염', '푸마르산염', '숙신산염', '베실산염',
    'HYDROCHLORIDE', 'SULFATE', 'SODIUM', 'POTASSIUM', 'CALCIUM',
    'MAGNESIUM', 'PHOSPHATE', 'NITRATE', 'ACETATE', 'CITRATE',
    'TARTRATE', 'MESYLATE', 'MALEATE', 'FUMARATE', 'SUCCINATE',
    'BESYLATE', 'HYDRATE', 'ANHYDROUS', 'DIHYDRATE', 'MONOHYDRATE',
    'TRIHYDRATE', 'HEMIHYDRATE',
]

_PUNCTUATION_RX = re.compile(r"[.\-_/\\,+&()\[\]{}<>:;'\"!@#$%^*=|~`]")
_DISALLOWED_RX = re.compile(r"[^\uAC00-\uD7AF\u3131-\u3163A-Z0-9\s]")
_TOKEN_DISALLOWED_RX = re.compile(r"[^\uAC00-\uD7AF\u3131-\u3163A-Za-z0-9]")
_TRAILING_DIGITS_RX = re.compile(r"[0-9]+$")
_WHITESPACE_RX = re.compile(r"\s+")
_PAREN_RX = re.compile(r"\([^)]*\)")
_BRACKET_RX = re.compile(r"\[[^\]]*\]")
_INGREDIENT_PUNCT_RX = re.compile(r"[.\-_/\\,+&;:'\"]")
# Longest first so DIHYDRATE goes before HYDRATE
_SALT_RX = re.compile(
    "|".join(re.escape(term) for term in sorted(SALT_TERMS, key=len, reverse=True)),
    re.IGNORECASE,
)
_PAREN_LATIN_RX = re.compile(r"\(([A-Za-z][A-Za-z0-9\s\-,.']+)\)")
_LATIN_TOKEN_RX = re.compile(r"[A-Za-z][A-Za-z0-9\-'.]{2,}")


def as_text(value: Any) -> str:
    """Cell value as a string; None and NaN become empty"""
    if value is None:
        return ""
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value)


def normalize(text: Any) -> str:
    """Canonical form of a product name. Idempotent."""
    if not text:
        return ""
    s = str(text).split(SEPARATOR)[0].strip().upper()
    s = _PUNCTUATION_RX.sub(" ", s)
    s = _DISALLOWED_RX.sub("", s)
    return _WHITESPACE_RX.sub(" ", s).strip()


def code_token(label: Any) -> str:
    """
    Short product code from a raw label.

    "ABC123.5 tab >> note" -> "ABC"
    """
    if not label:
        return ""
    s = str(label).split(SEPARATOR)[0].strip()
    parts = s.split()
    token = parts[0] if parts else ""
    token = token.split(".")[0]
    token = _TOKEN_DISALLOWED_RX.sub("", token)
    token = _TRAILING_DIGITS_RX.sub("", token)
    return token.upper()


def ingredient_base_key(ingredient: Any) -> str:
    """
    Active ingredient with salt and hydrate qualifiers removed.

    Parenthesized and bracketed text goes first, so a salt named inside
    parentheses never leaves a stray fragment behind.
    """
    if not ingredient:
        return ""
    s = str(ingredient)
    s = _PAREN_RX.sub("", s)
    s = _BRACKET_RX.sub("", s)
    s = _INGREDIENT_PUNCT_RX.sub(" ", s)
    s = s.upper()
    s = _SALT_RX.sub("", s)
    return _WHITESPACE_RX.sub(" ", s).strip()


def similarity_ratio(a: str, b: str) -> float:
    """
    2 * LCS(a, b) / (len(a) + len(b)), symmetric and in [0, 1].

    Very long operands fall back to a containment check.
    """
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    m, n = len(a), len(b)
    if m > LONG_TEXT_THRESHOLD or n > LONG_TEXT_THRESHOLD:
        shorter, longer = (a, b) if m < n else (b, a)
        if shorter in longer:
            return 2 * len(shorter) / (m + n)
        return 0.0
    return Indel.normalized_similarity(a, b)


def tokens(norm_text: str) -> List[str]:
    if not norm_text:
        return []
    return norm_text.split()


def first_token(norm_text: str) -> str:
    parts = tokens(norm_text)
    return parts[0] if parts else ""


def english_ingredient(ingredient: Any) -> str:
    """English ingredient name found in a (usually Korean) ingredient field"""
    if not ingredient:
        return ""
    s = str(ingredient)
    paren = _PAREN_LATIN_RX.search(s)
    if paren:
        return paren.group(1).strip()
    for part in s.split(SEPARATOR):
        part = part.strip()
        if re.match(r"[A-Za-z]", part) and re.search(r"[A-Za-z]{3,}", part):
            return part
    latin = _LATIN_TOKEN_RX.findall(s)
    return " ".join(latin)


def approval_timestamp(value: Any) -> int:
    """Approval date as epoch seconds; 0 when missing or unparseable"""
    if value is None:
        return 0
    if isinstance(value, (datetime, date)):
        stamp = pd.Timestamp(value)
    else:
        text = as_text(value).strip()
        if not text or text.lower() in ("nan", "nat", "none"):
            return 0
        stamp = pd.to_datetime(text, errors="coerce")
    if pd.isna(stamp):
        return 0
    return int(stamp.value // 10**9)
