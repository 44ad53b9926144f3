"""
MFDS Catalog Matching Agent
Main agent class that orchestrates the matching and generic aggregation pipeline
"""

import json
import threading
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence

import pandas as pd
from loguru import logger

from .confidence import classify
from .config import ensure_directories, settings
from .generics import GenericAggregator, summary_row
from .indexer import ReferenceIndex, normalize_catalog
from .models import (
    Confidence,
    ConsistencyIssue,
    GenericItem,
    GenericSummaryRow,
    InvalidInputError,
    MappingEntry,
    MatchingOutput,
    MatchResult,
    MatchTier,
    ProcessingOptions,
    ProcessingSummary,
    SourceRecord,
)
from .normalizer import english_ingredient
from .scorer import Matcher

ProgressCallback = Callable[[int, str], None]

RESULT_COLUMNS = [
    ("순번", "source_id"),
    ("Product", "label"),
    ("MFDS_제품명", "matched_name_ko"),
    ("MFDS_제품영문명", "matched_name_en"),
    ("MFDS_품목기준코드", "matched_item_code"),
    ("MFDS_제형", "matched_dosage_form"),
    ("Ingredient_raw", "ingredient_raw"),
    ("Ingredient_eng", "ingredient_eng"),
    ("Ingredient_base", "ingredient_base"),
    ("original_허가여부", "original_flag"),
    ("generic_제품수", "generic_count"),
    ("매칭상태", "tier"),
    ("매칭신뢰도", "confidence"),
    ("매칭점수", "score"),
    ("검토필요", "review_flag"),
    ("total_count_by_base", "total_count_by_base"),
    ("total_count_by_base_form", "total_count_by_base_form"),
    ("original_count_by_base", "original_count_by_base"),
    ("generic_incl_original_by_base", "generic_incl_original_by_base"),
    ("generic_excl_original_by_base", "generic_excl_original_by_base"),
]

GENERIC_ITEM_COLUMNS = [
    ("source_순번", "source_id"),
    ("source_Product", "source_label"),
    ("Ingredient_eng", "ingredient_eng"),
    ("Ingredient_base", "ingredient_base"),
    ("generic_품목기준코드", "item_code"),
    ("generic_제품명", "name_ko"),
    ("generic_제품영문명", "name_en"),
    ("generic_업체명", "manufacturer"),
    ("generic_제형", "dosage_form"),
    ("generic_허가일", "approval_date"),
    ("generic_취소/취하", "cancel_status"),
    ("matching_criteria", "matching_criteria"),
]

GENERIC_SUMMARY_COLUMNS = [
    ("순번", "source_id"),
    ("Product", "label"),
    ("Ingredient_base", "ingredient_base"),
    ("generic_count", "generic_count"),
    ("generic_product_names_joined", "generic_product_names_joined"),
]

MAPPING_COLUMNS = [
    ("Product_code_token", "code_token"),
    ("mapped_mfds_item_code", "item_code"),
    ("mapped_ingredient_base", "ingredient_base"),
    ("mapped_mfds_product_name", "product_name"),
]

SUMMARY_LABELS = [
    ("전체 행 수", "total_rows"),
    ("HIGH", "high_count"),
    ("MEDIUM", "medium_count"),
    ("REVIEW", "review_count"),
    ("Not Found", "not_found_count"),
    ("매핑(품목코드) 사용", "used_map_item_code"),
    ("매핑(성분) 사용", "used_map_ingredient"),
    ("매핑(제품명) 사용", "used_map_name"),
    ("total_generic_item_rows", "total_generic_item_rows"),
    ("max_generic_per_source", "max_generic_per_source"),
    ("average_generic_per_source", "average_generic_per_source"),
]


class RecordOutcome(NamedTuple):
    result: MatchResult
    items: List[GenericItem]
    compact: GenericSummaryRow


def _frame(rows: Iterable[Dict[str, Any]], columns: Sequence[tuple]) -> pd.DataFrame:
    data = [{header: row.get(attr, "") for header, attr in columns} for row in rows]
    return pd.DataFrame(data, columns=[header for header, _ in columns])


def results_frame(results: Sequence[MatchResult]) -> pd.DataFrame:
    """Match results with output headers, followed by passthrough columns"""
    headers = [header for header, _ in RESULT_COLUMNS]
    extra: List[str] = []
    data = []
    for result in results:
        dumped = result.model_dump(mode="json")
        row = {header: dumped[attr] for header, attr in RESULT_COLUMNS}
        for key, value in result.passthrough.items():
            if key in row:
                continue
            if key not in extra:
                extra.append(key)
            row[key] = value
        data.append(row)
    return pd.DataFrame(data, columns=headers + extra)


class CatalogMatchingAgent:
    """Main agent for MFDS catalog matching"""

    def __init__(
        self,
        options: Optional[ProcessingOptions] = None,
        max_workers: Optional[int] = None,
        progress_interval: Optional[int] = None,
    ):
        self.options = options or settings.default_options()
        self.max_workers = max_workers or settings.MAX_WORKERS
        self.progress_interval = max(1, progress_interval or settings.PROGRESS_INTERVAL)

    def run(
        self,
        catalog: Sequence[Mapping[str, Any]],
        sources: Sequence[Mapping[str, Any]],
        mappings: Optional[Iterable[MappingEntry]] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> MatchingOutput:
        """
        Match every source row against the catalog

        Args:
            catalog: Catalog rows keyed by canonical field names
            sources: Source rows with an id and a product label
            mappings: Optional manual overrides keyed by code token
            on_progress: Called with (percent, label) at bounded intervals
            cancel_event: Checked before each record; set it to stop early

        Returns:
            Results, summary, generic items and consistency report
        """
        progress = on_progress or (lambda pct, label: None)
        start_time = time.time()

        source_records = self._source_records(sources)

        progress(5, "Normalizing catalog records...")
        records = normalize_catalog(catalog)
        progress(15, "Building indices...")
        index = ReferenceIndex(records)

        mapping_list = list(mappings or [])
        matcher = Matcher(index, mapping_list, active_only=self.options.active_only)
        if matcher.mappings:
            logger.info(f"Loaded {len(matcher.mappings)} mapping overrides")
        aggregator = GenericAggregator(index, self.options)

        outcomes = self._match_all(source_records, matcher, aggregator, progress, cancel_event)
        cancelled = len(outcomes) < len(source_records)
        if cancelled:
            logger.warning(f"Matching cancelled after {len(outcomes)} of {len(source_records)} records")

        progress(95, "Collecting results...")
        output = self._collect(outcomes)
        output.cancelled = cancelled

        logger.info(
            f"Matched {output.summary.total_rows} records in {time.time() - start_time:.2f}s: "
            f"HIGH={output.summary.high_count} MEDIUM={output.summary.medium_count} "
            f"REVIEW={output.summary.review_count} not_found={output.summary.not_found_count}"
        )
        progress(100, "Done")
        return output

    def _source_records(self, sources: Sequence[Mapping[str, Any]]) -> List[SourceRecord]:
        records = []
        for position, row in enumerate(sources):
            if not isinstance(row, Mapping):
                raise InvalidInputError(f"Source row {position} is not a field mapping: {type(row).__name__}")
            records.append(SourceRecord.from_row(position, row))
        if not records:
            raise InvalidInputError("Source list is empty")
        return records

    def _match_all(
        self,
        sources: List[SourceRecord],
        matcher: Matcher,
        aggregator: GenericAggregator,
        progress: ProgressCallback,
        cancel_event: Optional[threading.Event],
    ) -> List[RecordOutcome]:
        total = len(sources)

        def report(done: int):
            if done % self.progress_interval == 0:
                progress(20 + int(done / total * 70), f"Matching records... ({done}/{total})")

        if self.max_workers <= 1:
            outcomes = []
            for i, source in enumerate(sources):
                if cancel_event is not None and cancel_event.is_set():
                    break
                report(i)
                outcomes.append(self._match_record(source, matcher, aggregator))
            return outcomes

        def task(source: SourceRecord) -> Optional[RecordOutcome]:
            if cancel_event is not None and cancel_event.is_set():
                return None
            return self._match_record(source, matcher, aggregator)

        slots: List[Optional[RecordOutcome]] = [None] * total
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            future_to_position = {
                executor.submit(task, source): source.position
                for source in sources
            }
            for done, future in enumerate(as_completed(future_to_position)):
                report(done)
                slots[future_to_position[future]] = future.result()

        return [outcome for outcome in slots if outcome is not None]

    def _match_record(
        self,
        source: SourceRecord,
        matcher: Matcher,
        aggregator: GenericAggregator,
    ) -> RecordOutcome:
        """Match one source record and aggregate its generics"""
        match = matcher.match(source)
        if match is None:
            tier, score, record = MatchTier.NOT_FOUND, 0.0, None
        else:
            tier, score, record = match.tier, match.score, match.record

        confidence, review_flag = classify(tier, score, self.options.review_threshold)

        base = record.ingredient_base if record else ""
        form = record.form_key if record else ""
        ingredient_eng = english_ingredient(record.ingredient) if record else ""
        counts = aggregator.counts(base, form)
        items = aggregator.items(base, form, source, ingredient_eng) if record else []

        if len(items) != counts.count:
            logger.warning(
                f"Discrepancy for source {source.source_id!r}: "
                f"generic count={counts.count}, generic items={len(items)}"
            )

        result = MatchResult(
            source_index=source.position,
            source_id=source.source_id,
            label=source.label,
            matched_name_ko=record.name_ko if record else "",
            matched_name_en=record.name_en if record else "",
            matched_item_code=record.item_code if record else "",
            matched_dosage_form=record.dosage_form if record else "",
            ingredient_raw=record.ingredient if record else "",
            ingredient_eng=ingredient_eng,
            ingredient_base=base,
            original_flag="Y" if record is not None and record.is_original else "",
            generic_count=counts.count,
            tier=tier,
            confidence=confidence,
            score=round(score, 3),
            review_flag=review_flag,
            total_count_by_base=counts.total_base,
            total_count_by_base_form=counts.total_base_form,
            original_count_by_base=counts.orig_base,
            generic_incl_original_by_base=counts.total_base,
            generic_excl_original_by_base=counts.total_base - counts.orig_base,
            passthrough=dict(source.passthrough),
        )
        return RecordOutcome(result, items, summary_row(source, base, counts.count, items))

    def _collect(self, outcomes: List[RecordOutcome]) -> MatchingOutput:
        """Fold per-record outcomes, in input order, into the run output"""
        summary = ProcessingSummary(total_rows=len(outcomes))
        results: List[MatchResult] = []
        generic_items: List[GenericItem] = []
        compact: List[GenericSummaryRow] = []

        for outcome in outcomes:
            result = outcome.result
            results.append(result)
            generic_items.extend(outcome.items)
            compact.append(outcome.compact)

            if result.confidence == Confidence.HIGH:
                summary.high_count += 1
            elif result.confidence == Confidence.MEDIUM:
                summary.medium_count += 1
            else:
                summary.review_count += 1
            if result.tier == MatchTier.NOT_FOUND:
                summary.not_found_count += 1
            elif result.tier == MatchTier.MAP_ITEM_CODE:
                summary.used_map_item_code += 1
            elif result.tier == MatchTier.MAP_INGREDIENT_BASE:
                summary.used_map_ingredient += 1
            elif result.tier == MatchTier.MAP_PRODUCT_NAME:
                summary.used_map_name += 1
            summary.max_generic_per_source = max(summary.max_generic_per_source, result.generic_count)

        summary.total_generic_item_rows = len(generic_items)
        if outcomes:
            summary.average_generic_per_source = round(len(generic_items) / len(outcomes), 2)

        issues = self.check_consistency(results, generic_items)
        return MatchingOutput(
            results=results,
            summary=summary,
            generic_items=generic_items,
            generic_summary=compact,
            consistency_issues=issues,
        )

    def check_consistency(
        self,
        results: Sequence[MatchResult],
        generic_items: Sequence[GenericItem],
    ) -> List[ConsistencyIssue]:
        """Compare each result's generic count with its generic item rows"""
        per_source = Counter(item.source_index for item in generic_items)
        issues = [
            ConsistencyIssue(
                source_index=result.source_index,
                source_id=result.source_id,
                generic_count=result.generic_count,
                item_rows=per_source.get(result.source_index, 0),
            )
            for result in results
            if per_source.get(result.source_index, 0) != result.generic_count
        ]
        if issues:
            logger.warning(f"Consistency check found {len(issues)} records whose generic count differs from their items")
        else:
            logger.info("Consistency check passed: generic counts match generic items")
        return issues

    def save_results(
        self,
        output: MatchingOutput,
        output_file: Optional[Path] = None,
        mappings: Optional[Sequence[MappingEntry]] = None,
    ) -> Path:
        """
        Save results as an Excel workbook, a CSV of the result table, or JSON

        The format follows the file suffix; defaults to a dated workbook
        in the output directory.
        """
        if output_file is None:
            ensure_directories()
            output_file = settings.OUTPUT_DIR / f"mfds_matching_result_{datetime.now():%Y-%m-%d}.xlsx"
        output_file = Path(output_file)
        output_file.parent.mkdir(parents=True, exist_ok=True)

        suffix = output_file.suffix.lower()
        if suffix == ".json":
            with open(output_file, 'w', encoding='utf-8') as f:
                json.dump(output.model_dump(mode="json"), f, ensure_ascii=False, indent=2)
        elif suffix == ".csv":
            results_frame(output.results).to_csv(output_file, index=False, encoding="utf-8-sig")
        else:
            self._write_workbook(output, output_file, mappings)

        logger.info(f"Saved {len(output.results)} results and {len(output.generic_items)} generic items to {output_file}")
        return output_file

    def _write_workbook(
        self,
        output: MatchingOutput,
        output_file: Path,
        mappings: Optional[Sequence[MappingEntry]],
    ):
        filled = results_frame(output.results)
        review = results_frame([r for r in output.results if r.review_flag == "Y"])
        summary_dump = output.summary.model_dump()
        summary = pd.DataFrame(
            [(label, summary_dump[attr]) for label, attr in SUMMARY_LABELS],
            columns=["항목", "값"],
        )
        items = _frame((i.model_dump(mode="json") for i in output.generic_items), GENERIC_ITEM_COLUMNS)
        compact = _frame((c.model_dump(mode="json") for c in output.generic_summary), GENERIC_SUMMARY_COLUMNS)

        with pd.ExcelWriter(output_file, engine="openpyxl") as writer:
            filled.to_excel(writer, sheet_name="filled", index=False)
            review.to_excel(writer, sheet_name="review_needed", index=False)
            summary.to_excel(writer, sheet_name="summary", index=False)
            if mappings:
                _frame((m.model_dump() for m in mappings), MAPPING_COLUMNS).to_excel(
                    writer, sheet_name="mapping_snapshot", index=False
                )
            items.to_excel(writer, sheet_name="generic_items", index=False)
            compact.to_excel(writer, sheet_name="generic_list_compact", index=False)
