"""
Catalog File Loader
Reads catalog, source and mapping spreadsheets into canonical field rows
"""

import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd
from loguru import logger

from .models import (
    ACTIVE_STATUSES,
    FileDiagnostics,
    InvalidInputError,
    MappingEntry,
    SheetInfo,
)

_HIDDEN_CHARS_RX = re.compile("[\u200b-\u200d\ufeff\u00a0]")
_ALIAS_STRIP_RX = re.compile(r"[\s_\-./\\]")

SOURCE_PRODUCT_ALIASES = ['product', 'PRODUCT', 'Product', '제품', '제품명', '품목', '품목명']
SOURCE_SEQ_ALIASES = ['순번', 'No', 'NO', 'no', 'index', 'Index', 'INDEX', 'no.', 'No.', '번호']

CATALOG_ALIASES: Dict[str, List[str]] = {
    '제품명': ['제품명', '제품 명', 'product_name', 'productname'],
    '제품영문명': ['제품영문명', '제품 영문명', '영문제품명', 'english_name', 'eng_name', 'englishname', 'product_english_name'],
    '주성분': ['주성분', '주성분명', '성분명', '성분', 'ingredient', 'ingredients', 'active_ingredient'],
    '신약구분': ['신약구분', '신약여부', '신약', 'new_drug', 'newdrug'],
    '취소취하': ['취소취하', '취소/취하', '취소일자', '취소/취하일자', '상태', '변경구분', 'cancel', 'status'],
    '허가일자': ['허가일자', '허가일', '허가 일자', 'approval_date', 'approvaldate'],
    '제형': ['제형', '제형명', 'dosage_form', 'dosageform', 'form'],
    '품목기준코드': ['품목기준코드', '품목코드', 'item_code', 'itemcode', 'code'],
    '업체명': ['업체명', '제조사', 'manufacturer', 'company'],
}

CATALOG_REQUIRED = ['제품명', '제품영문명', '주성분', '신약구분', '취소취하', '허가일자', '제형']

MAPPING_SHEET_HINT = 'mapping_table_to_fill'
MAPPING_KEYS = {
    'code_token': ('Product_code_token', 'code_token'),
    'item_code': ('mapped_mfds_item_code', 'item_code'),
    'ingredient_base': ('mapped_ingredient_base', 'ingredient'),
    'product_name': ('mapped_mfds_product_name', 'product_name'),
}


def clean_header(header: Any) -> str:
    """Header text without BOM, zero-width or non-breaking spaces"""
    if header is None:
        return ''
    text = str(header)
    if text.startswith('\ufeff'):
        text = text[1:]
    return _HIDDEN_CHARS_RX.sub('', text).strip()


def norm_alias(text: str) -> str:
    return _ALIAS_STRIP_RX.sub('', text.lower())


def find_by_alias(headers: Sequence[str], aliases: Sequence[str]) -> Optional[str]:
    """Exact alias, then normalized alias, then normalized containment either way"""
    for header in headers:
        if header in aliases:
            return header
    normalized = [norm_alias(a) for a in aliases]
    for header in headers:
        if norm_alias(header) in normalized:
            return header
    for header in headers:
        nh = norm_alias(header)
        if not nh:
            continue
        for alias in normalized:
            if nh in alias or alias in nh:
                return header
    return None


class CatalogFileLoader:
    """Loads catalog, source and mapping files"""

    def read_sheets(self, path: Path) -> Dict[str, pd.DataFrame]:
        """All sheets of a workbook, or the single table of a CSV file, as text"""
        path = Path(path)
        if not path.exists():
            raise InvalidInputError(f"File not found: {path}")

        try:
            if path.suffix.lower() == '.csv':
                sheets = {path.stem: pd.read_csv(path, dtype=str, encoding='utf-8-sig')}
            else:
                sheets = pd.read_excel(path, sheet_name=None, dtype=str, engine='openpyxl')
        except (ValueError, OSError) as e:
            raise InvalidInputError(f"Failed to read {path.name}: {e}") from e

        cleaned = {}
        for name, df in sheets.items():
            df = df.fillna('')
            df.columns = [clean_header(col) for col in df.columns]
            cleaned[name] = df
        logger.debug(f"Read {len(cleaned)} sheet(s) from {path}")
        return cleaned

    def _sheet_infos(self, sheets: Dict[str, pd.DataFrame], required: Dict[str, Sequence[str]]) -> List[SheetInfo]:
        infos = []
        for name, df in sheets.items():
            headers = list(df.columns)
            matched = sum(1 for aliases in required.values() if find_by_alias(headers, aliases))
            infos.append(SheetInfo(name=name, row_count=len(df), headers=headers, matched_required_count=matched))
        return infos

    @staticmethod
    def _best_sheet(infos: List[SheetInfo]) -> SheetInfo:
        """Most required columns resolved, then most rows; earlier sheet on ties"""
        best = infos[0]
        for info in infos[1:]:
            if (info.matched_required_count, info.row_count) > (best.matched_required_count, best.row_count):
                best = info
        return best

    def diagnose_source_file(self, path: Path) -> FileDiagnostics:
        """Column detection report for a source list file"""
        path = Path(path)
        try:
            sheets = self.read_sheets(path)
        except InvalidInputError as e:
            return FileDiagnostics(file_name=path.name, missing_columns=['Product', '순번'], errors=[str(e)])

        required = {'Product': SOURCE_PRODUCT_ALIASES, '순번': SOURCE_SEQ_ALIASES}
        infos = self._sheet_infos(sheets, required)
        best = self._best_sheet(infos)
        column_map = {key: find_by_alias(best.headers, aliases) for key, aliases in required.items()}
        missing = [key for key, found in column_map.items() if not found]

        errors = []
        if missing:
            errors.append(f"Required columns not found: {', '.join(missing)}. Detected columns: {', '.join(best.headers)}")

        return FileDiagnostics(
            file_name=path.name,
            sheets=infos,
            selected_sheet=best.name,
            row_count=best.row_count,
            detected_headers=best.headers,
            column_map=column_map,
            missing_columns=missing,
            errors=errors,
        )

    def diagnose_catalog_file(self, path: Path, active_only: bool = True) -> FileDiagnostics:
        """Column detection report for a catalog file"""
        path = Path(path)
        try:
            sheets = self.read_sheets(path)
        except InvalidInputError as e:
            return FileDiagnostics(file_name=path.name, missing_columns=list(CATALOG_REQUIRED), errors=[str(e)])

        infos = self._sheet_infos(sheets, CATALOG_ALIASES)
        best = self._best_sheet(infos)
        column_map = {key: find_by_alias(best.headers, aliases) for key, aliases in CATALOG_ALIASES.items()}
        missing = [key for key in CATALOG_REQUIRED if not column_map[key]]

        errors = []
        if missing:
            errors.append(f"Catalog columns not found: {', '.join(missing)}. Detected columns: {', '.join(best.headers)}")

        active_rows = None
        if active_only and not missing:
            statuses = sheets[best.name][column_map['취소취하']].map(clean_header)
            active_rows = int(statuses.isin(ACTIVE_STATUSES).sum())

        return FileDiagnostics(
            file_name=path.name,
            sheets=infos,
            selected_sheet=best.name,
            row_count=best.row_count,
            detected_headers=best.headers,
            column_map=column_map,
            missing_columns=missing,
            errors=errors,
            active_row_count=active_rows,
        )

    def _pick_sheet(self, sheets: Dict[str, pd.DataFrame], sheet: Optional[str], required) -> pd.DataFrame:
        if sheet is not None:
            if sheet not in sheets:
                raise InvalidInputError(f"Sheet '{sheet}' not found; available: {', '.join(sheets)}")
            return sheets[sheet]
        return sheets[self._best_sheet(self._sheet_infos(sheets, required)).name]

    def load_sources(self, path: Path, sheet: Optional[str] = None) -> List[Dict[str, Any]]:
        """Source rows with '순번' and 'Product' plus every other column"""
        required = {'Product': SOURCE_PRODUCT_ALIASES, '순번': SOURCE_SEQ_ALIASES}
        df = self._pick_sheet(self.read_sheets(path), sheet, required)
        if df.empty:
            raise InvalidInputError(f"Source file {Path(path).name} is empty")

        headers = list(df.columns)
        product_col = find_by_alias(headers, SOURCE_PRODUCT_ALIASES)
        seq_col = find_by_alias(headers, SOURCE_SEQ_ALIASES)
        if not product_col:
            raise InvalidInputError(f"Required column 'Product' not found. Detected columns: {', '.join(headers)}")

        renames = {product_col: 'Product'}
        if seq_col and seq_col != product_col:
            renames[seq_col] = '순번'
        df = df.rename(columns=renames)
        if '순번' not in df.columns:
            df['순번'] = ''

        rows = df.to_dict(orient='records')
        logger.info(f"Loaded {len(rows)} source rows from {Path(path).name}")
        return rows

    def load_catalog(self, path: Path, sheet: Optional[str] = None) -> List[Dict[str, Any]]:
        """Catalog rows with columns renamed to canonical field names"""
        df = self._pick_sheet(self.read_sheets(path), sheet, CATALOG_ALIASES)
        if df.empty:
            raise InvalidInputError(f"Catalog file {Path(path).name} is empty")

        headers = list(df.columns)
        renames = {}
        for canonical, aliases in CATALOG_ALIASES.items():
            found = find_by_alias(headers, aliases)
            if found and found not in renames:
                renames[found] = canonical
        missing = [key for key in CATALOG_REQUIRED if key not in renames.values()]
        if missing:
            logger.warning(f"Catalog columns not found: {', '.join(missing)}")

        rows = df.rename(columns=renames).to_dict(orient='records')
        logger.info(f"Loaded {len(rows)} catalog rows from {Path(path).name}")
        return rows

    def load_mappings(self, path: Path) -> List[MappingEntry]:
        """Mapping overrides; rows without a code token are skipped"""
        sheets = self.read_sheets(path)
        name = next((n for n in sheets if MAPPING_SHEET_HINT in n), next(iter(sheets)))
        df = sheets[name]

        headers = list(df.columns)

        def column_for(candidates):
            for candidate in candidates:
                target = norm_alias(candidate)
                for header in headers:
                    if target in norm_alias(header):
                        return header
            return None

        columns = {field: column_for(candidates) for field, candidates in MAPPING_KEYS.items()}
        entries = []
        for row in df.to_dict(orient='records'):
            values = {field: (row[col] if col else '') for field, col in columns.items()}
            if not str(values['code_token']).strip():
                continue
            entries.append(MappingEntry(**values))

        logger.info(f"Loaded {len(entries)} mapping rows from {Path(path).name} (sheet '{name}')")
        return entries
