"""
Candidate Generator
Tiered search for catalog records that may correspond to a source label
"""

from typing import FrozenSet, Iterable, Mapping, NamedTuple, Set

from .indexer import MIN_TOKEN_LEN_EN, MIN_TOKEN_LEN_KO, ReferenceIndex
from .normalizer import first_token, tokens

PREFIX_LENGTHS = (6, 5, 4, 3)

FIRST_TOKEN = "first_token"
ANY_TOKEN = "any_token"
PREFIX = "prefix"
SUBSTRING = "substring"
NONE = "none"

# Strategies whose winners are reported as prefix_match
STRUCTURAL_STRATEGIES = {PREFIX, SUBSTRING}


class CandidateSet(NamedTuple):
    positions: FrozenSet[int]
    strategy: str

    def __bool__(self) -> bool:
        return bool(self.positions)


def _collect(table: Mapping[str, FrozenSet[int]], key: str, into: Set[int]) -> None:
    hits = table.get(key)
    if hits:
        into.update(hits)


def by_first_token(label_norm: str, label_code: str, index: ReferenceIndex) -> Set[int]:
    found: Set[int] = set()
    head = first_token(label_norm)
    for key in (head, label_code):
        if key:
            _collect(index.first_token_en, key, found)
            _collect(index.first_token_ko, key, found)
    return found


def by_any_token(label_norm: str, index: ReferenceIndex) -> Set[int]:
    found: Set[int] = set()
    for tok in tokens(label_norm):
        if len(tok) >= MIN_TOKEN_LEN_EN:
            _collect(index.any_token_en, tok, found)
        if len(tok) >= MIN_TOKEN_LEN_KO:
            _collect(index.any_token_ko, tok, found)
    return found


def _prefix_hits(tables: Iterable[Mapping[str, FrozenSet[int]]], prefix: str) -> Set[int]:
    found: Set[int] = set()
    for table in tables:
        for key, hits in table.items():
            if key.startswith(prefix) or prefix.startswith(key):
                found.update(hits)
    return found


def by_prefix(label_norm: str, index: ReferenceIndex) -> Set[int]:
    """Longest label prefix that starts, or is started by, an indexed first token"""
    tables = (index.first_token_en, index.first_token_ko)
    for length in PREFIX_LENGTHS:
        prefix = label_norm[:length]
        if len(prefix) < length:
            continue
        found = _prefix_hits(tables, prefix)
        if found:
            return found
    return set()


def by_substring(label_norm: str, index: ReferenceIndex) -> Set[int]:
    """Full catalog scan on the label's first token"""
    head = first_token(label_norm)
    found: Set[int] = set()
    if len(head) < 3:
        return found
    for record in index.records:
        if head in record.name_en_norm or head in record.name_ko_norm:
            found.add(record.position)
            continue
        if len(head) >= 4:
            head_en = first_token(record.name_en_norm)
            head_ko = first_token(record.name_ko_norm)
            if (len(head_en) >= MIN_TOKEN_LEN_EN and head_en in head) or (
                len(head_ko) >= MIN_TOKEN_LEN_KO and head_ko in head
            ):
                found.add(record.position)
    return found


def collect_candidates(label_norm: str, label_code: str, index: ReferenceIndex) -> CandidateSet:
    """First non-empty tier wins"""
    found = by_first_token(label_norm, label_code, index)
    if found:
        return CandidateSet(frozenset(found), FIRST_TOKEN)

    found = by_any_token(label_norm, index)
    if found:
        return CandidateSet(frozenset(found), ANY_TOKEN)

    found = by_prefix(label_norm, index)
    if found:
        return CandidateSet(frozenset(found), PREFIX)

    found = by_substring(label_norm, index)
    if found:
        return CandidateSet(frozenset(found), SUBSTRING)

    return CandidateSet(frozenset(), NONE)
