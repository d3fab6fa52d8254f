from io import BytesIO

import pandas as pd
import pytest

from refdata.domain.imports.errors import EmptyFile, UnreadableFile, UnsupportedFormat
from refdata.domain.imports.processors.tabular import (
    CSV,
    EXCEL,
    detect_file_format,
    extract_rows,
)


def _workbook_bytes(*sheets) -> bytes:
    buffer = BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        for name, df in sheets:
            df.to_excel(writer, sheet_name=name, index=False)
    return buffer.getvalue()


@pytest.mark.parametrize(
    "file_name, content_type, expected",
    [
        ("eps.csv", "text/csv", CSV),
        ("upload", "application/csv", CSV),
        ("eps.bin", "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", EXCEL),
        ("legacy.dat", "application/vnd.ms-excel", EXCEL),
        ("EPS.CSV", "application/octet-stream", CSV),
        ("eps.xlsx", None, EXCEL),
        ("eps.xls", "", EXCEL),
    ],
)
def test_detect_file_format_prefers_mimetype_then_extension(file_name, content_type, expected):
    assert detect_file_format(file_name, content_type) == expected


def test_detect_file_format_rejects_unknown_types():
    with pytest.raises(UnsupportedFormat) as exc_info:
        detect_file_format("notes.txt", "text/plain")

    assert exc_info.value.file_name == "notes.txt"
    assert "CSV or Excel" in exc_info.value.message


def test_csv_rows_are_padded_and_blank_lines_skipped():
    content = "Symbol,ReportDate,EPS\nAAA,31/12/2023,1.5\n\n,,\nBBB,31/12/2023\n".encode("utf-8")

    data = extract_rows(content, CSV)

    assert data.headers == ["Symbol", "ReportDate", "EPS"]
    assert data.rows == [["AAA", "31/12/2023", "1.5"], ["BBB", "31/12/2023", None]]


def test_csv_with_byte_order_mark_keeps_clean_header():
    content = "\ufeffSymbol,EPS\nAAA,1\n".encode("utf-8")

    data = extract_rows(content, CSV)

    assert data.headers[0] == "Symbol"


def test_csv_that_is_not_utf8_is_unreadable():
    with pytest.raises(UnreadableFile):
        extract_rows(b"Symbol,EPS\n\xff\xfe\xfa,1\n", CSV)


def test_empty_payload_raises_empty_file():
    with pytest.raises(EmptyFile):
        extract_rows(b"", CSV)


def test_header_only_file_raises_empty_file():
    with pytest.raises(EmptyFile):
        extract_rows(b"Symbol,ReportDate,EPS\n", CSV)


def test_excel_reads_only_first_sheet():
    first = pd.DataFrame({"Symbol": ["AAA", "BBB"], "EPS": [1.5, None]})
    second = pd.DataFrame({"Other": ["ignored"]})

    data = extract_rows(_workbook_bytes(("Data", first), ("Notes", second)), EXCEL)

    assert data.headers == ["Symbol", "EPS"]
    assert data.rows == [["AAA", 1.5], ["BBB", None]]


def test_garbage_excel_payload_is_unreadable():
    with pytest.raises(UnreadableFile):
        extract_rows(b"definitely not a workbook", EXCEL)
