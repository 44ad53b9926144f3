import pandas as pd
import pytest

from mfds_matcher.catalog_loader import (
    CATALOG_ALIASES,
    SOURCE_PRODUCT_ALIASES,
    CatalogFileLoader,
    clean_header,
    find_by_alias,
    norm_alias,
)
from mfds_matcher.indexer import ReferenceIndex
from mfds_matcher.models import InvalidInputError


@pytest.fixture
def loader():
    return CatalogFileLoader()


def write_workbook(path, sheets):
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for name, df in sheets.items():
            df.to_excel(writer, sheet_name=name, index=False)
    return path


def test_clean_header():
    assert clean_header("\ufeff제품명\u00a0") == "제품명"
    assert clean_header("주\u200b성분") == "주성분"
    assert clean_header(None) == ""


def test_norm_alias():
    assert norm_alias("Product_Name") == "productname"
    assert norm_alias("취소/취하 일자") == "취소취하일자"


def test_find_by_alias_passes():
    assert find_by_alias(["순번", "제품명"], CATALOG_ALIASES["제품명"]) == "제품명"
    assert find_by_alias(["Product Name"], CATALOG_ALIASES["제품명"]) == "Product Name"
    assert find_by_alias(["주성분명(영문)"], CATALOG_ALIASES["주성분"]) == "주성분명(영문)"
    assert find_by_alias(["비고"], SOURCE_PRODUCT_ALIASES) is None


def test_load_sources_csv(loader, tmp_path):
    path = tmp_path / "sources.csv"
    pd.DataFrame({"No": [1, 2], "제품": ["Brufen Tab", "타이레놀정"], "비고": ["a", None]}).to_csv(
        path, index=False, encoding="utf-8-sig"
    )

    rows = loader.load_sources(path)
    assert rows == [
        {"순번": "1", "Product": "Brufen Tab", "비고": "a"},
        {"순번": "2", "Product": "타이레놀정", "비고": ""},
    ]


def test_load_sources_without_product_column(loader, tmp_path):
    path = tmp_path / "sources.csv"
    pd.DataFrame({"순번": [1], "Name": ["Brufen Tab"]}).to_csv(path, index=False)
    with pytest.raises(InvalidInputError, match="Product"):
        loader.load_sources(path)


def test_load_sources_missing_file(loader, tmp_path):
    with pytest.raises(InvalidInputError):
        loader.load_sources(tmp_path / "missing.xlsx")


def test_load_catalog_picks_best_sheet(loader, tmp_path, catalog_rows):
    path = write_workbook(tmp_path / "catalog.xlsx", {
        "안내": pd.DataFrame({"memo": ["read me"]}),
        "catalog": pd.DataFrame(catalog_rows),
    })

    rows = loader.load_catalog(path)
    assert len(rows) == 8
    assert rows[0]["제품명"] == "부루펜정"
    assert rows[0]["품목기준코드"] == "A001"
    assert ReferenceIndex.from_rows(rows).by_ingredient("IBUPROFEN") == (0, 1, 2, 3)


def test_load_catalog_english_headers(loader, tmp_path):
    path = tmp_path / "catalog.csv"
    pd.DataFrame([{
        "product_name": "부루펜정",
        "english_name": "Brufen Tab",
        "ingredient": "Ibuprofen",
        "dosage_form": "정제",
        "new_drug": "Y",
        "approval_date": "2000-01-01",
        "status": "",
        "item_code": "A001",
    }]).to_csv(path, index=False)

    rows = loader.load_catalog(path)
    assert rows[0]["제품영문명"] == "Brufen Tab"
    assert rows[0]["취소취하"] == ""
    assert rows[0]["품목기준코드"] == "A001"


def test_load_mappings_prefers_named_sheet(loader, tmp_path):
    columns = ["Product_code_token", "mapped_mfds_item_code", "mapped_ingredient_base", "mapped_mfds_product_name"]
    path = write_workbook(tmp_path / "mapping.xlsx", {
        "guide": pd.DataFrame({"Product_code_token": ["IGNORED"]}),
        "mapping_table_to_fill": pd.DataFrame(
            [["BRUFEN", "A003", "", ""], ["", "A001", "", ""], ["TYL", "", "Acetaminophen", ""]],
            columns=columns,
        ),
    })

    entries = loader.load_mappings(path)
    assert [e.code_token for e in entries] == ["BRUFEN", "TYL"]
    assert entries[0].item_code == "A003"
    assert entries[1].ingredient_base == "Acetaminophen"


def test_diagnose_catalog(loader, tmp_path, catalog_rows):
    path = write_workbook(tmp_path / "catalog.xlsx", {
        "안내": pd.DataFrame({"memo": ["read me"]}),
        "catalog": pd.DataFrame(catalog_rows),
    })

    report = loader.diagnose_catalog_file(path)
    assert report.selected_sheet == "catalog"
    assert report.row_count == 8
    assert report.missing_columns == []
    assert report.errors == []
    assert report.active_row_count == 5
    assert [s.name for s in report.sheets] == ["안내", "catalog"]


def test_diagnose_catalog_missing_columns(loader, tmp_path, catalog_rows):
    path = tmp_path / "catalog.csv"
    pd.DataFrame(catalog_rows).drop(columns=["제형"]).to_csv(path, index=False)

    report = loader.diagnose_catalog_file(path)
    assert report.missing_columns == ["제형"]
    assert report.active_row_count is None
    assert "제형" in report.errors[0]


def test_diagnose_source(loader, tmp_path):
    path = tmp_path / "sources.csv"
    pd.DataFrame({"번호": [1], "품목명": ["Brufen Tab"]}).to_csv(path, index=False)

    report = loader.diagnose_source_file(path)
    assert report.column_map == {"Product": "품목명", "순번": "번호"}
    assert report.missing_columns == []


def test_diagnose_unreadable_file(loader, tmp_path):
    report = loader.diagnose_source_file(tmp_path / "missing.csv")
    assert report.errors
    assert report.missing_columns == ["Product", "순번"]
