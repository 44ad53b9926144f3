import pandas as pd
import pytest
from click.testing import CliRunner

from main import cli
from mfds_matcher.config import settings


@pytest.fixture(autouse=True)
def no_log_file(monkeypatch):
    monkeypatch.setattr(settings, "LOG_FILE", None)


@pytest.fixture
def files(tmp_path, catalog_rows):
    catalog = tmp_path / "catalog.csv"
    pd.DataFrame(catalog_rows).to_csv(catalog, index=False)
    sources = tmp_path / "sources.csv"
    pd.DataFrame({"순번": [1, 2], "제품명": ["Brufen Tab", "XYZ999"]}).to_csv(sources, index=False)
    return catalog, sources


def test_match_command(files, tmp_path):
    catalog, sources = files
    output = tmp_path / "result.xlsx"

    result = CliRunner().invoke(cli, [
        "--log-level", "WARNING", "match",
        "--catalog", str(catalog), "--source", str(sources),
        "--basis", "base_form", "--output", str(output),
    ])

    assert result.exit_code == 0, result.output
    assert "Total Rows: 2" in result.output
    assert "Not Found: 1" in result.output
    filled = pd.read_excel(output, sheet_name="filled", engine="openpyxl")
    assert filled["generic_제품수"].tolist() == [2, 0]


def test_match_command_rejects_empty_source(files, tmp_path):
    catalog, _ = files
    empty = tmp_path / "empty.csv"
    pd.DataFrame(columns=["순번", "Product"]).to_csv(empty, index=False)

    result = CliRunner().invoke(cli, ["match", "--catalog", str(catalog), "--source", str(empty)])
    assert result.exit_code == 1
    assert "empty" in result.output


def test_diagnose_command(files):
    catalog, sources = files

    result = CliRunner().invoke(cli, ["diagnose", "--catalog", str(catalog), "--source", str(sources)])
    assert result.exit_code == 0, result.output
    assert "Product <- 제품명" in result.output
    assert "Active Rows: 5" in result.output


def test_diagnose_requires_a_file():
    result = CliRunner().invoke(cli, ["diagnose"])
    assert result.exit_code != 0
