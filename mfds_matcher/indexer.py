"""
Reference Index
Read-only lookup structures built once over the reference catalog
"""

from collections import defaultdict
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

from loguru import logger

from .models import InvalidInputError, ReferenceRecord
from .normalizer import first_token, tokens

MIN_TOKEN_LEN_EN = 3
MIN_TOKEN_LEN_KO = 2


def recency_key(record: ReferenceRecord) -> Tuple[bool, int, int]:
    """Active first, then newest approval, then catalog order"""
    return (not record.is_active, -record.approval_ts, record.position)


def prefer_active(records: List[ReferenceRecord], active_only: bool) -> List[ReferenceRecord]:
    """Active subset when filtering is on and it is non-empty, else everything"""
    if not active_only:
        return records
    active = [r for r in records if r.is_active]
    return active or records


def normalize_catalog(rows: Iterable[Mapping[str, Any]]) -> List[ReferenceRecord]:
    """Catalog rows as ReferenceRecords; an empty or malformed catalog is rejected"""
    records = []
    for position, row in enumerate(rows):
        if not isinstance(row, Mapping):
            raise InvalidInputError(f"Catalog row {position} is not a field mapping: {type(row).__name__}")
        records.append(ReferenceRecord.from_row(position, row))
    if not records:
        raise InvalidInputError("Reference catalog is empty")
    return records


def _freeze_sets(table: Dict[Any, set]) -> Mapping[Any, frozenset]:
    return MappingProxyType({key: frozenset(value) for key, value in table.items()})


def _freeze_lists(table: Dict[Any, list]) -> Mapping[Any, Tuple[int, ...]]:
    return MappingProxyType({key: tuple(value) for key, value in table.items()})


class ReferenceIndex:
    """
    Lookup tables over an immutable tuple of catalog records.

    Every table maps a key to record positions, so lookups never copy
    records. Tables are read-only proxies and can be shared across threads.
    """

    def __init__(self, records: Sequence[ReferenceRecord]):
        self.records: Tuple[ReferenceRecord, ...] = tuple(records)

        exact_en: Dict[str, List[int]] = defaultdict(list)
        exact_ko: Dict[str, List[int]] = defaultdict(list)
        first_en: Dict[str, set] = defaultdict(set)
        first_ko: Dict[str, set] = defaultdict(set)
        any_en: Dict[str, set] = defaultdict(set)
        any_ko: Dict[str, set] = defaultdict(set)
        item_code: Dict[str, List[int]] = defaultdict(list)
        ing_base: Dict[str, List[int]] = defaultdict(list)
        ing_base_form: Dict[Tuple[str, str], List[int]] = defaultdict(list)

        for record in self.records:
            pos = record.position
            if record.name_en_norm:
                exact_en[record.name_en_norm].append(pos)
                first_en[first_token(record.name_en_norm)].add(pos)
                for tok in tokens(record.name_en_norm):
                    if len(tok) >= MIN_TOKEN_LEN_EN:
                        any_en[tok].add(pos)
            if record.name_ko_norm:
                exact_ko[record.name_ko_norm].append(pos)
                first_ko[first_token(record.name_ko_norm)].add(pos)
                for tok in tokens(record.name_ko_norm):
                    if len(tok) >= MIN_TOKEN_LEN_KO:
                        any_ko[tok].add(pos)
            if record.item_code:
                item_code[record.item_code].append(pos)
            if record.ingredient_base:
                ing_base[record.ingredient_base].append(pos)
                ing_base_form[(record.ingredient_base, record.form_key)].append(pos)

        for bucket in list(exact_en.values()) + list(exact_ko.values()):
            bucket.sort(key=lambda p: recency_key(self.records[p]))

        self.exact_en = _freeze_lists(exact_en)
        self.exact_ko = _freeze_lists(exact_ko)
        self.first_token_en = _freeze_sets(first_en)
        self.first_token_ko = _freeze_sets(first_ko)
        self.any_token_en = _freeze_sets(any_en)
        self.any_token_ko = _freeze_sets(any_ko)
        self.item_code = _freeze_lists(item_code)
        self.ingredient_base = _freeze_lists(ing_base)
        self.ingredient_base_form = _freeze_lists(ing_base_form)
        logger.info(
            f"Indexed {len(self)} catalog records "
            f"({self.active_count} active, {len(self.ingredient_base)} ingredient bases)"
        )

    @classmethod
    def from_rows(cls, rows: Iterable[Mapping[str, Any]]) -> "ReferenceIndex":
        return cls(normalize_catalog(rows))

    def __len__(self) -> int:
        return len(self.records)

    @property
    def active_count(self) -> int:
        return sum(1 for record in self.records if record.is_active)

    def exact_lookup(self, name_norm: str) -> List[ReferenceRecord]:
        """Records whose English, then Korean, normalized name equals name_norm"""
        positions = self.exact_en.get(name_norm, ()) + self.exact_ko.get(name_norm, ())
        return [self.records[p] for p in positions]

    def by_ingredient(self, base: str, form: str = None) -> Tuple[int, ...]:
        if form is None:
            return self.ingredient_base.get(base, ())
        return self.ingredient_base_form.get((base, form), ())
