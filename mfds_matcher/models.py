"""
Data models for catalog records, source items and matching results
"""

from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .normalizer import (
    approval_timestamp,
    as_text,
    ingredient_base_key,
    normalize,
)


class InvalidInputError(ValueError):
    """Raised when the catalog, source list or an input file cannot be processed"""


class GenericCountBasis(str, Enum):
    BASE = "base"
    BASE_FORM = "base_form"


class GenericDefinition(str, Enum):
    EXCL_ORIGINAL = "excl_original"
    TOTAL_MINUS_ORIGINAL = "total_minus_original"


class CancelFilter(str, Enum):
    ACTIVE_ONLY = "active_only"
    ALL = "all"


class MatchTier(str, Enum):
    MAP_ITEM_CODE = "map_item_code"
    MAP_INGREDIENT_BASE = "map_ingredient_base"
    MAP_PRODUCT_NAME = "map_product_name"
    EXACT_EN = "exact_en"
    EXACT_KO = "exact_ko"
    TOKEN_ING_CONVERGED = "token_ing_converged"
    TOKEN_MULTI_ING = "token_multi_ing"
    PREFIX_MATCH = "prefix_match"
    FUZZY_BROAD = "fuzzy_broad"
    NOT_FOUND = "not_found"


class Confidence(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    REVIEW = "REVIEW"


# Canonical catalog column names, first entry is the one the loader produces
CATALOG_FIELDS: Dict[str, tuple] = {
    "item_code": ("품목기준코드", "item_code"),
    "name_ko": ("제품명", "product_name"),
    "name_en": ("제품영문명", "english_name"),
    "ingredient": ("주성분", "ingredient"),
    "dosage_form": ("제형", "dosage_form"),
    "new_drug": ("신약구분", "new_drug"),
    "approval_date": ("허가일자", "approval_date"),
    "cancel_status": ("취소취하", "cancel_status"),
    "manufacturer": ("업체명", "manufacturer"),
}

SOURCE_ID_FIELDS = ("순번", "id")
SOURCE_LABEL_FIELDS = ("Product", "label")

ACTIVE_STATUSES = {"", "정상", "undefined"}


def _pick(row: Mapping[str, Any], keys: tuple) -> Any:
    for key in keys:
        if key in row:
            return row[key]
    return None


class ProcessingOptions(BaseModel):
    """Options controlling generic aggregation and review gating"""

    generic_count_basis: GenericCountBasis = Field(default=GenericCountBasis.BASE, description="Index used for the generic count")
    generic_definition: GenericDefinition = Field(default=GenericDefinition.EXCL_ORIGINAL, description="Generic count formula")
    cancel_filter: CancelFilter = Field(default=CancelFilter.ACTIVE_ONLY, description="Cancelled record policy")
    review_threshold: float = Field(default=0.90, ge=0.0, le=1.0, description="Score below which multi-ingredient token matches need review")

    @property
    def active_only(self) -> bool:
        return self.cancel_filter == CancelFilter.ACTIVE_ONLY


class ReferenceRecord(BaseModel):
    """One catalog row with its derived matching keys"""

    model_config = ConfigDict(frozen=True)

    position: int = Field(..., description="Position in the catalog")
    item_code: str = Field("", description="Item code")
    name_ko: str = Field("", description="Korean product name")
    name_en: str = Field("", description="English product name")
    ingredient: str = Field("", description="Main ingredient text")
    dosage_form: str = Field("", description="Dosage form")
    new_drug: str = Field("", description="New drug flag")
    approval_date: str = Field("", description="Approval date as supplied")
    cancel_status: str = Field("", description="Cancellation status")
    manufacturer: str = Field("", description="Manufacturer")

    name_ko_norm: str = Field("", description="Normalized Korean name")
    name_en_norm: str = Field("", description="Normalized English name")
    ingredient_base: str = Field("", description="Ingredient base key")
    form_key: str = Field("", description="Dosage form key")
    is_active: bool = Field(True, description="Not cancelled or withdrawn")
    approval_ts: int = Field(0, description="Approval date as epoch seconds, 0 if unknown")

    @property
    def is_original(self) -> bool:
        return self.new_drug.strip().upper() == "Y"

    @classmethod
    def from_row(cls, position: int, row: Mapping[str, Any]) -> "ReferenceRecord":
        raw_date = _pick(row, CATALOG_FIELDS["approval_date"])
        values = {name: as_text(_pick(row, keys)) for name, keys in CATALOG_FIELDS.items()}
        return cls(
            position=position,
            **values,
            name_ko_norm=normalize(values["name_ko"]),
            name_en_norm=normalize(values["name_en"]),
            ingredient_base=ingredient_base_key(values["ingredient"]),
            form_key=values["dosage_form"].strip(),
            is_active=values["cancel_status"].strip() in ACTIVE_STATUSES,
            approval_ts=approval_timestamp(raw_date),
        )


class SourceRecord(BaseModel):
    """One item of the source list"""

    model_config = ConfigDict(frozen=True)

    position: int = Field(..., description="Position in the source list")
    source_id: Union[str, int, float, None] = Field("", description="Source identifier")
    label: str = Field("", description="Free-text product label")
    passthrough: Dict[str, Any] = Field(default_factory=dict, description="Extra columns carried into the result")

    @classmethod
    def from_row(cls, position: int, row: Mapping[str, Any]) -> "SourceRecord":
        source_id = _pick(row, SOURCE_ID_FIELDS)
        label = as_text(_pick(row, SOURCE_LABEL_FIELDS))
        reserved = set(SOURCE_ID_FIELDS) | set(SOURCE_LABEL_FIELDS)
        extra = {key: value for key, value in row.items() if key not in reserved}
        return cls(
            position=position,
            source_id="" if source_id is None else source_id,
            label=label,
            passthrough=extra,
        )


class MappingEntry(BaseModel):
    """Manual override for one product code token"""

    model_config = ConfigDict(populate_by_name=True)

    code_token: str = Field(..., validation_alias=AliasChoices("code_token", "Product_code_token"), description="Product code token")
    item_code: str = Field("", validation_alias=AliasChoices("item_code", "mapped_mfds_item_code"), description="Target item code")
    ingredient_base: str = Field("", validation_alias=AliasChoices("ingredient_base", "mapped_ingredient_base"), description="Target ingredient")
    product_name: str = Field("", validation_alias=AliasChoices("product_name", "mapped_mfds_product_name"), description="Target product name")

    @field_validator("code_token", "item_code", "ingredient_base", "product_name", mode="before")
    @classmethod
    def coerce_text(cls, v):
        """Spreadsheet cells arrive as numbers or NaN"""
        return as_text(v).strip()


class MatchResult(BaseModel):
    """Match outcome for one source record"""

    source_index: int = Field(..., description="Position in the source list")
    source_id: Union[str, int, float, None] = Field("", description="Source identifier")
    label: str = Field("", description="Source label")
    matched_name_ko: str = Field("", description="Matched Korean product name")
    matched_name_en: str = Field("", description="Matched English product name")
    matched_item_code: str = Field("", description="Matched item code")
    matched_dosage_form: str = Field("", description="Matched dosage form")
    ingredient_raw: str = Field("", description="Matched ingredient text")
    ingredient_eng: str = Field("", description="English ingredient name")
    ingredient_base: str = Field("", description="Ingredient base key")
    original_flag: str = Field("", description="Y when the matched record is an original drug")
    generic_count: int = Field(0, description="Generic products under the selected basis")
    tier: MatchTier = Field(MatchTier.NOT_FOUND, description="Strategy that produced the match")
    confidence: Confidence = Field(Confidence.REVIEW, description="Confidence level")
    score: float = Field(0.0, description="Similarity score (0-1)")
    review_flag: str = Field("Y", description="Y when a human should review the match")
    total_count_by_base: int = Field(0, description="Records sharing the ingredient base")
    total_count_by_base_form: int = Field(0, description="Records sharing ingredient base and form")
    original_count_by_base: int = Field(0, description="Original drugs sharing the ingredient base")
    generic_incl_original_by_base: int = Field(0, description="Records by base including originals")
    generic_excl_original_by_base: int = Field(0, description="Records by base minus originals")
    passthrough: Dict[str, Any] = Field(default_factory=dict, description="Extra source columns")

    @field_validator("score")
    @classmethod
    def validate_score(cls, v):
        """Validate score range"""
        if not 0 <= v <= 1:
            raise ValueError('Score must be between 0 and 1')
        return v


class GenericItem(BaseModel):
    """A non-original catalog record sharing a matched record's ingredient"""

    source_index: int = Field(..., description="Position of the source record")
    source_id: Union[str, int, float, None] = Field("", description="Source identifier")
    source_label: str = Field("", description="Source label")
    ingredient_eng: str = Field("", description="English ingredient name")
    ingredient_base: str = Field("", description="Ingredient base key")
    item_code: str = Field("", description="Generic item code")
    name_ko: str = Field("", description="Generic Korean product name")
    name_en: str = Field("", description="Generic English product name")
    manufacturer: str = Field("", description="Generic manufacturer")
    dosage_form: str = Field("", description="Generic dosage form")
    approval_date: str = Field("", description="Generic approval date")
    cancel_status: str = Field("", description="Generic cancellation status")
    matching_criteria: str = Field("base", description="'base' or 'base+form'")


class GenericSummaryRow(BaseModel):
    """Compact generic listing for one source record"""

    source_id: Union[str, int, float, None] = Field("", description="Source identifier")
    label: str = Field("", description="Source label")
    ingredient_base: str = Field("", description="Ingredient base key")
    generic_count: int = Field(0, description="Generic count")
    generic_product_names_joined: str = Field("", description="Pipe-joined generic product names")


class ProcessingSummary(BaseModel):
    """Aggregate counters over one run"""

    total_rows: int = 0
    high_count: int = 0
    medium_count: int = 0
    review_count: int = 0
    not_found_count: int = 0
    used_map_item_code: int = 0
    used_map_ingredient: int = 0
    used_map_name: int = 0
    total_generic_item_rows: int = 0
    max_generic_per_source: int = 0
    average_generic_per_source: float = 0.0


class ConsistencyIssue(BaseModel):
    """Generic count that disagrees with the itemized generic rows"""

    source_index: int = Field(..., description="Position of the source record")
    source_id: Union[str, int, float, None] = Field("", description="Source identifier")
    generic_count: int = Field(..., description="Count reported on the match result")
    item_rows: int = Field(..., description="Generic item rows emitted for the record")


class MatchingOutput(BaseModel):
    """Everything produced by one matching run"""

    results: List[MatchResult] = Field(default_factory=list)
    summary: ProcessingSummary = Field(default_factory=ProcessingSummary)
    generic_items: List[GenericItem] = Field(default_factory=list)
    generic_summary: List[GenericSummaryRow] = Field(default_factory=list)
    consistency_issues: List[ConsistencyIssue] = Field(default_factory=list)
    cancelled: bool = False


class MatchRequest(BaseModel):
    """In-memory matching request"""

    catalog: List[Dict[str, Any]] = Field(..., description="Catalog rows with canonical field names")
    sources: List[Dict[str, Any]] = Field(..., description="Source rows with id and label")
    mappings: Optional[List[MappingEntry]] = Field(None, description="Manual override rows")
    options: Optional[ProcessingOptions] = Field(None, description="Processing options")


class SheetInfo(BaseModel):
    """One worksheet seen while diagnosing a file"""

    name: str
    row_count: int = 0
    headers: List[str] = Field(default_factory=list)
    matched_required_count: int = 0


class FileDiagnostics(BaseModel):
    """Column detection report for an input file"""

    file_name: str
    sheets: List[SheetInfo] = Field(default_factory=list)
    selected_sheet: str = ""
    row_count: int = 0
    detected_headers: List[str] = Field(default_factory=list)
    column_map: Dict[str, Optional[str]] = Field(default_factory=dict)
    missing_columns: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    active_row_count: Optional[int] = None
