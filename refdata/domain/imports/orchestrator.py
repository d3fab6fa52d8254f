"""
Import orchestration: detect -> extract -> normalize -> parse -> reconcile.

The session is passed in by the caller; nothing here opens its own
connection, so the same pipeline runs under FastAPI and in tests.
"""
import logging
import time
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Set, Tuple

from sqlalchemy.orm import Session

from refdata.core.config import settings
from refdata.domain.imports.errors import NoValidRows, RowError
from refdata.domain.imports.normalizer import ColumnMap, build_column_map, normalize_row
from refdata.domain.imports.processors.tabular import detect_file_format, extract_rows
from refdata.domain.imports.reconciler import Reconciler
from refdata.domain.imports.record_types import ParsedRecord, RecordType, parse_row
from refdata.domain.imports.results import ImportResult, RowFailure

logger = logging.getLogger(__name__)

FAILED_SAMPLE_LIMIT = 5

NormalizedRow = Tuple[int, Dict[str, Any], Set[str]]


def _chunks(records: Sequence[ParsedRecord], size: int) -> Iterator[Sequence[ParsedRecord]]:
    for start in range(0, len(records), size):
        yield records[start:start + size]


def _log_failures(record_type: RecordType, result: ImportResult) -> None:
    """Log a handful of row failures and summarize the rest."""
    failures = result.sorted_failures()
    for failure in failures[:FAILED_SAMPLE_LIMIT]:
        logger.warning(
            "%s import row %d rejected (%s): %s", record_type.label, failure.row, failure.error_type, failure.message
        )
    if len(failures) > FAILED_SAMPLE_LIMIT:
        logger.warning(
            "Suppressed %d additional %s row failures", len(failures) - FAILED_SAMPLE_LIMIT, record_type.label
        )


def _missing_key_columns(
    record_type: RecordType, column_map: ColumnMap, fixed: Mapping[str, Any]
) -> List[str]:
    missing = []
    parent = record_type.parent
    for name in record_type.key_fields:
        if name in column_map.present or name in fixed:
            continue
        if parent is not None and name == parent.key_field and parent.lookup_field in column_map.present:
            continue
        missing.append(name)
    return missing


def _import_rows(
    session: Session,
    record_type: RecordType,
    rows: Iterable[NormalizedRow],
    fixed: Optional[Dict[str, Any]],
    batch_size: Optional[int],
) -> ImportResult:
    started = time.perf_counter()
    batch_size = batch_size or settings.import_batch_size
    result = ImportResult(record_type=record_type.name)
    parsed: List[ParsedRecord] = []

    for row_number, row, present in rows:
        result.total += 1
        try:
            parsed.append(
                parse_row(
                    record_type,
                    row,
                    present,
                    row_number,
                    fixed=fixed,
                    apply_fallbacks=settings.roa_roe_rate_as_roa_industry,
                )
            )
        except RowError as error:
            result.record_failure(RowFailure.from_error(row_number, error, row))

    if not parsed:
        _log_failures(record_type, result)
        raise NoValidRows(result.total, result.sorted_failures())

    reconciler = Reconciler(
        session,
        record_type,
        statement_timeout_seconds=settings.import_statement_timeout_seconds,
    )
    for batch_number, batch in enumerate(_chunks(parsed, batch_size), start=1):
        batch_result = reconciler.reconcile_batch(list(batch))
        result.merge(batch_result)
        logger.info(
            "%s batch %d: %d rows, %d created, %d updated, %d failed",
            record_type.label,
            batch_number,
            len(batch),
            batch_result.created,
            batch_result.updated,
            batch_result.failed,
        )

    _log_failures(record_type, result)
    logger.info(
        "%s import finished in %.2fs: %d rows, %d created, %d updated, %d failed",
        record_type.label,
        time.perf_counter() - started,
        result.total,
        result.created,
        result.updated,
        result.failed,
    )
    return result


def run_file_import(
    session: Session,
    record_type: RecordType,
    file_content: bytes,
    file_name: Optional[str],
    content_type: Optional[str],
    fixed: Optional[Dict[str, Any]] = None,
    batch_size: Optional[int] = None,
) -> ImportResult:
    """
    Import an uploaded CSV/Excel file into ``record_type``'s table.

    Args:
        fixed: Values forced onto every row, replacing the file's own column
            (e.g. ``{"stock_id": 7}`` for the per-stock Q-index upload).

    Raises:
        UnsupportedFormat, EmptyFile, UnreadableFile: the file itself is unusable.
        NoValidRows: every row was rejected before reaching storage.
    """
    fixed = fixed or {}
    file_format = detect_file_format(file_name, content_type)
    data = extract_rows(file_content, file_format)
    logger.info(
        "Importing %s file '%s' (%s): %d data rows", record_type.label, file_name, file_format, len(data.rows)
    )

    column_map = build_column_map(data.headers, record_type)
    missing = _missing_key_columns(record_type, column_map, fixed)
    if missing:
        raise NoValidRows(
            len(data.rows),
            [],
            message=f"File is missing required column(s): {', '.join(missing)}",
        )

    rows = (
        (row_number, normalize_row(column_map, cells), column_map.present)
        for row_number, cells in enumerate(data.rows, start=1)
    )
    return _import_rows(session, record_type, rows, fixed, batch_size)


def run_row_import(
    session: Session,
    record_type: RecordType,
    rows: Sequence[Mapping[str, Any]],
    fixed: Optional[Dict[str, Any]] = None,
    batch_size: Optional[int] = None,
) -> ImportResult:
    """Import already-structured rows (JSON bodies) through the same engine."""
    column_maps: Dict[Tuple[str, ...], ColumnMap] = {}

    def normalized() -> Iterator[NormalizedRow]:
        for row_number, raw in enumerate(rows, start=1):
            headers = tuple(str(key) for key in raw.keys())
            column_map = column_maps.get(headers)
            if column_map is None:
                column_map = column_maps[headers] = build_column_map(headers, record_type)
            yield row_number, normalize_row(column_map, list(raw.values())), column_map.present

    if not rows:
        raise NoValidRows(0, [], message="No records provided.")

    return _import_rows(session, record_type, normalized(), fixed, batch_size)
