"""
Generic Aggregator
Counts and itemizes generic (non-original) catalog records per ingredient
"""

from typing import List, NamedTuple, Sequence

from .indexer import ReferenceIndex, prefer_active
from .models import (
    GenericCountBasis,
    GenericDefinition,
    GenericItem,
    GenericSummaryRow,
    ProcessingOptions,
    ReferenceRecord,
    SourceRecord,
)

NAMES_JOIN_CAP = 5000
NAMES_SEPARATOR = " | "


class GenericCounts(NamedTuple):
    count: int
    total_base: int
    total_base_form: int
    orig_base: int


EMPTY_COUNTS = GenericCounts(0, 0, 0, 0)


class GenericAggregator:
    """
    Generic counts and generic item rows for matched records.

    Counts and items are computed separately. Under total_minus_original
    the count can disagree with the item rows when an original sits in a
    different dosage form; the orchestrator reports that afterwards.
    """

    def __init__(self, index: ReferenceIndex, options: ProcessingOptions):
        self.index = index
        self.options = options
        self.use_base_form = options.generic_count_basis == GenericCountBasis.BASE_FORM

    @property
    def criteria(self) -> str:
        return "base+form" if self.use_base_form else "base"

    def _filtered(self, positions: Sequence[int]) -> List[ReferenceRecord]:
        rows = [self.index.records[p] for p in positions]
        return prefer_active(rows, self.options.active_only)

    def _selected(self, base: str, form: str) -> List[ReferenceRecord]:
        if self.use_base_form:
            return self._filtered(self.index.by_ingredient(base, form))
        return self._filtered(self.index.by_ingredient(base))

    def counts(self, base: str, form: str) -> GenericCounts:
        if not base:
            return EMPTY_COUNTS

        base_rows = self._filtered(self.index.by_ingredient(base))
        form_rows = self._filtered(self.index.by_ingredient(base, form))
        orig_base = sum(1 for r in base_rows if r.is_original)

        selected = form_rows if self.use_base_form else base_rows
        if self.options.generic_definition == GenericDefinition.EXCL_ORIGINAL:
            count = sum(1 for r in selected if not r.is_original)
        else:
            # originals are counted over the base index even under base+form
            count = len(selected) - orig_base

        return GenericCounts(count, len(base_rows), len(form_rows), orig_base)

    def items(self, base: str, form: str, source: SourceRecord, ingredient_eng: str = "") -> List[GenericItem]:
        if not base:
            return []
        return [
            GenericItem(
                source_index=source.position,
                source_id=source.source_id,
                source_label=source.label,
                ingredient_eng=ingredient_eng,
                ingredient_base=base,
                item_code=r.item_code,
                name_ko=r.name_ko,
                name_en=r.name_en,
                manufacturer=r.manufacturer,
                dosage_form=r.dosage_form,
                approval_date=r.approval_date,
                cancel_status=r.cancel_status,
                matching_criteria=self.criteria,
            )
            for r in self._selected(base, form)
            if not r.is_original
        ]


def summary_row(source: SourceRecord, base: str, count: int, items: List[GenericItem]) -> GenericSummaryRow:
    names = NAMES_SEPARATOR.join(item.name_ko for item in items)
    return GenericSummaryRow(
        source_id=source.source_id,
        label=source.label,
        ingredient_base=base,
        generic_count=count,
        generic_product_names_joined=names[:NAMES_JOIN_CAP],
    )
