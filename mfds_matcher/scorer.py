"""
Scorer / Matcher
Ranks catalog candidates for one source label, trying each tier in order
"""

from typing import Callable, Dict, Iterable, List, NamedTuple, Optional

from loguru import logger

from . import candidates as cand
from .indexer import ReferenceIndex, prefer_active, recency_key
from .models import MappingEntry, MatchTier, ReferenceRecord, SourceRecord
from .normalizer import code_token, ingredient_base_key, normalize, similarity_ratio

TOP_K = 20
FUZZY_SAMPLE_SIZE = 500
FUZZY_MIN_SCORE = 0.4
FUZZY_MIN_LABEL_LEN = 3


class Match(NamedTuple):
    record: ReferenceRecord
    score: float
    tier: MatchTier


class LabelQuery(NamedTuple):
    """A source label in the forms the tiers look it up by"""

    raw: str
    norm: str
    code: str

    @classmethod
    def of(cls, label: str) -> "LabelQuery":
        return cls(label, normalize(label), code_token(label))


def name_score(query_norm: str, record: ReferenceRecord) -> float:
    return max(
        similarity_ratio(query_norm, record.name_en_norm),
        similarity_ratio(query_norm, record.name_ko_norm),
    )


def best_of(
    positions: Iterable[int],
    query_norm: str,
    index: ReferenceIndex,
    active_only: bool,
    top_k: int = TOP_K,
) -> Optional[Match]:
    """
    Highest scoring record among the top_k most recent candidates.

    Ties keep the earlier record in recency order.
    """
    pool = [index.records[p] for p in sorted(positions)]
    pool = prefer_active(pool, active_only)
    pool.sort(key=recency_key)
    best: Optional[ReferenceRecord] = None
    best_score = -1.0
    for record in pool[:top_k]:
        score = name_score(query_norm, record)
        if score > best_score:
            best, best_score = record, score
    if best is None:
        return None
    return Match(best, best_score, MatchTier.NOT_FOUND)


class Matcher:
    """
    Resolves source labels against a ReferenceIndex.

    Each tier is a method returning a Match or None; match() returns the
    first hit in the fixed order mapping override, exact name, token tiers,
    fuzzy broad search.
    """

    def __init__(
        self,
        index: ReferenceIndex,
        mappings: Optional[Iterable[MappingEntry]] = None,
        active_only: bool = True,
    ):
        self.index = index
        self.active_only = active_only
        self.mappings = build_mapping_lookup(mappings or [])
        self.tiers: List[Callable[[LabelQuery], Optional[Match]]] = [
            self.match_mapping,
            self.match_exact,
            self.match_tokens,
            self.match_fuzzy,
        ]

    def match(self, source: SourceRecord) -> Optional[Match]:
        query = LabelQuery.of(source.label)
        for tier in self.tiers:
            found = tier(query)
            if found is not None:
                logger.debug(f"{source.source_id!r} -> {found.tier.value} ({found.score:.3f})")
                return found
        logger.debug(f"{source.source_id!r} -> not_found")
        return None

    def match_mapping(self, query: LabelQuery) -> Optional[Match]:
        if not query.code:
            return None
        entry = self.mappings.get(query.code)
        if entry is None:
            return None

        if entry.item_code:
            positions = self.index.item_code.get(entry.item_code, ())
            if positions:
                return Match(self.index.records[positions[0]], 1.0, MatchTier.MAP_ITEM_CODE)

        if entry.ingredient_base:
            positions = self.index.ingredient_base.get(ingredient_base_key(entry.ingredient_base), ())
            if positions:
                best = best_of(positions, query.norm, self.index, self.active_only)
                if best is not None:
                    return best._replace(tier=MatchTier.MAP_INGREDIENT_BASE)

        if entry.product_name:
            found = self.index.exact_lookup(normalize(entry.product_name))
            if found:
                return Match(found[0], 1.0, MatchTier.MAP_PRODUCT_NAME)

        return None

    def match_exact(self, query: LabelQuery) -> Optional[Match]:
        if not query.norm:
            return None
        for table, tier in (
            (self.index.exact_en, MatchTier.EXACT_EN),
            (self.index.exact_ko, MatchTier.EXACT_KO),
        ):
            positions = table.get(query.norm)
            if positions:
                return Match(self.index.records[positions[0]], 1.0, tier)
        return None

    def match_tokens(self, query: LabelQuery) -> Optional[Match]:
        found = cand.collect_candidates(query.norm, query.code, self.index)
        if not found:
            return None

        best = best_of(found.positions, query.norm, self.index, self.active_only)
        if best is None:
            return None

        if found.strategy in cand.STRUCTURAL_STRATEGIES:
            tier = MatchTier.PREFIX_MATCH
        elif self._converged(found.positions):
            tier = MatchTier.TOKEN_ING_CONVERGED
        else:
            tier = MatchTier.TOKEN_MULTI_ING
        return best._replace(tier=tier)

    def match_fuzzy(self, query: LabelQuery) -> Optional[Match]:
        if len(query.norm) < FUZZY_MIN_LABEL_LEN:
            return None

        pool = prefer_active(list(self.index.records), self.active_only)
        if len(pool) > FUZZY_SAMPLE_SIZE:
            step = len(pool) // FUZZY_SAMPLE_SIZE
            pool = pool[::step][:FUZZY_SAMPLE_SIZE]

        best: Optional[ReferenceRecord] = None
        best_score = 0.0
        for record in pool:
            score = name_score(query.norm, record)
            if score > best_score:
                best, best_score = record, score

        if best is None or best_score < FUZZY_MIN_SCORE:
            return None
        return Match(best, best_score, MatchTier.FUZZY_BROAD)

    def _converged(self, positions: Iterable[int]) -> bool:
        bases = {self.index.records[p].ingredient_base for p in positions}
        bases.discard("")
        return len(bases) <= 1


def build_mapping_lookup(entries: Iterable[MappingEntry]) -> Dict[str, MappingEntry]:
    """Upper-cased code token -> entry; later entries win"""
    lookup: Dict[str, MappingEntry] = {}
    for entry in entries:
        if entry.code_token:
            lookup[entry.code_token.upper()] = entry
    return lookup
