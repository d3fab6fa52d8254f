"""
Format detection and row extraction for uploaded CSV/Excel files.

Both paths produce the same shape: a header row plus data rows padded to the
header width, with empty spreadsheet cells as ``None``.
"""
import csv
import io
import logging
from dataclasses import dataclass, field
from io import StringIO
from typing import Any, List, Optional

import pandas as pd

from refdata.domain.imports.errors import EmptyFile, UnreadableFile, UnsupportedFormat

logger = logging.getLogger(__name__)

CSV = "csv"
EXCEL = "excel"

CSV_MIMETYPES = {"text/csv", "application/csv", "text/x-csv"}
EXCEL_MIMETYPES = {
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-excel",
}
EXTENSION_FORMATS = {
    ".csv": CSV,
    ".xlsx": EXCEL,
    ".xls": EXCEL,
}


@dataclass
class TabularData:
    headers: List[Any]
    rows: List[List[Any]] = field(default_factory=list)


def detect_file_format(file_name: Optional[str], content_type: Optional[str]) -> str:
    """
    Decide whether an upload is CSV or a spreadsheet.

    The declared mimetype wins when it is specific; browsers often send
    ``application/octet-stream`` so the extension is the fallback.
    """
    mimetype = (content_type or "").split(";")[0].strip().lower()
    if mimetype in CSV_MIMETYPES:
        return CSV
    if mimetype in EXCEL_MIMETYPES:
        return EXCEL

    name = (file_name or "").strip().lower()
    for extension, file_format in EXTENSION_FORMATS.items():
        if name.endswith(extension):
            return file_format

    raise UnsupportedFormat(file_name, content_type)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def _pad(row: List[Any], width: int) -> List[Any]:
    if len(row) < width:
        return row + [None] * (width - len(row))
    return row


def extract_csv_rows(file_content: bytes) -> TabularData:
    """Parse CSV bytes; short rows are padded with ``None`` and blank rows skipped."""
    try:
        text_content = file_content.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise UnreadableFile(f"CSV file is not valid UTF-8 text: {exc}") from exc

    try:
        reader = csv.reader(StringIO(text_content))
        raw_rows = [row for row in reader]
    except csv.Error as exc:
        raise UnreadableFile(f"Could not parse CSV file: {exc}") from exc

    raw_rows = [row for row in raw_rows if not all(_is_blank(cell) for cell in row)]
    if not raw_rows:
        raise EmptyFile()

    headers = raw_rows[0]
    rows = [_pad(list(row), len(headers)) for row in raw_rows[1:]]
    logger.info("Extracted %d CSV data rows, columns: %s", len(rows), headers)
    return TabularData(headers=headers, rows=rows)


def _read_first_sheet(file_content: bytes) -> pd.DataFrame:
    # openpyxl handles .xlsx, xlrd handles legacy .xls; try both before giving up.
    last_error: Optional[Exception] = None
    for engine in ("openpyxl", "xlrd"):
        try:
            return pd.read_excel(
                io.BytesIO(file_content),
                sheet_name=0,
                header=None,
                dtype=object,
                engine=engine,
            )
        except Exception as exc:
            last_error = exc
            logger.debug("Excel engine %s could not read workbook: %s", engine, exc)
    raise UnreadableFile(f"Could not read Excel file: {last_error}")


def extract_excel_rows(file_content: bytes) -> TabularData:
    """Read the first sheet (workbook order) of an Excel file."""
    df = _read_first_sheet(file_content)

    raw_rows: List[List[Any]] = []
    for values in df.itertuples(index=False, name=None):
        # Convert pandas NaN/NaT values to None
        row = [None if pd.isna(value) else value for value in values]
        if all(_is_blank(cell) for cell in row):
            continue
        raw_rows.append(row)

    if not raw_rows:
        raise EmptyFile()

    headers = raw_rows[0]
    # Trailing header cells that are empty are spreadsheet padding, not columns.
    while headers and headers[-1] is None:
        headers = headers[:-1]
    rows = [_pad(row[: len(headers)], len(headers)) for row in raw_rows[1:]]
    logger.info("Extracted %d Excel data rows from first sheet, columns: %s", len(rows), headers)
    return TabularData(headers=headers, rows=rows)


def extract_rows(file_content: bytes, file_format: str) -> TabularData:
    if not file_content:
        raise EmptyFile()

    if file_format == CSV:
        data = extract_csv_rows(file_content)
    elif file_format == EXCEL:
        data = extract_excel_rows(file_content)
    else:
        raise UnsupportedFormat(None, None, f"Unknown file format '{file_format}'")

    if not data.rows:
        raise EmptyFile("The uploaded file has a header row but no data rows.")
    return data
