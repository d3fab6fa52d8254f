import logging

from refdata.domain.imports.normalizer import build_column_map, normalize_row, squash_header
from refdata.domain.imports.record_types import CURRENCY_PRICE, EPS, ROA_ROE


def test_squash_header_ignores_case_spacing_and_separators():
    spellings = ["Report Date", "report_date", "REPORT-DATE", "  reportDate ", "report.date"]

    assert {squash_header(spelling) for spelling in spellings} == {"reportdate"}


def test_build_column_map_resolves_aliases_to_canonical_keys():
    column_map = build_column_map(["Symbol", "ReportDate", "EPS", "EPS Nganh", "EPS_Rate"], EPS)

    assert column_map.keys == ["symbol", "report_date", "eps", "eps_nganh", "eps_rate"]
    assert column_map.present == {"symbol", "report_date", "eps", "eps_nganh", "eps_rate"}


def test_unrecognized_headers_pass_through_lowercased():
    column_map = build_column_map(["Symbol", "Date", " Volume "], CURRENCY_PRICE)

    assert column_map.keys[2] == "volume"
    assert column_map.unrecognized == ["volume"]
    assert "volume" not in column_map.present


def test_duplicate_roe_industry_column_fills_secondary_field():
    headers = ["Symbol", "ReportDate", "ROA", "ROE", "ROE nganh", "ROE nganh"]
    column_map = build_column_map(headers, ROA_ROE)

    assert column_map.keys[4] == "roe_nganh"
    assert column_map.keys[5] == "roe_nganh_rate"

    rows = [
        ["AAA", "31/12/2023", "1", "2", "10,5", "0,8"],
        ["BBB", "31/12/2023", "3", "4", "11,5", "0,9"],
    ]
    normalized = [normalize_row(column_map, cells) for cells in rows]

    assert [row["roe_nganh"] for row in normalized] == ["10,5", "11,5"]
    assert [row["roe_nganh_rate"] for row in normalized] == ["0,8", "0,9"]


def test_other_duplicate_columns_keep_first_occurrence(caplog):
    with caplog.at_level(logging.WARNING):
        column_map = build_column_map(["Symbol", "ReportDate", "EPS", "eps"], EPS)

    assert column_map.keys == ["symbol", "report_date", "eps", None]
    assert normalize_row(column_map, ["AAA", "31/12/2023", "1.0", "2.0"])["eps"] == "1.0"
    assert any("duplicate 'eps'" in record.getMessage() for record in caplog.records)


def test_blank_headers_are_ignored():
    column_map = build_column_map(["Symbol", None, "", "Date"], CURRENCY_PRICE)

    assert column_map.keys == ["symbol", None, None, "date"]
    assert normalize_row(column_map, ["USDVND", "x", "y", "2024-01-15"]) == {
        "symbol": "USDVND",
        "date": "2024-01-15",
    }
