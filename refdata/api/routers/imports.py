"""
Bulk import endpoints: one ``POST /{path}/import`` per record type, plus the
per-stock Q-index upload and JSON bulk routes.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy.orm import Session

from refdata.api.dependencies import read_upload
from refdata.api.schemas.imports import ImportResponse, QIndexBulkRequest
from refdata.core.config import settings
from refdata.db.session import get_db
from refdata.domain.imports.errors import ImportFailure, NoValidRows
from refdata.domain.imports.orchestrator import run_file_import, run_row_import
from refdata.domain.imports.record_types import RECORD_TYPES, STOCK_QINDEX, RecordType
from refdata.domain.imports.results import ImportResult
from refdata.domain.records.repository import RecordNotFound, get_stock_by_id

logger = logging.getLogger(__name__)

router = APIRouter(tags=["imports"])


def _import_response(record_type: RecordType, result: ImportResult) -> ImportResponse:
    payload = result.to_payload(settings.import_error_cap)
    message = f"Imported {result.successful} of {result.total} {record_type.label} rows"
    if result.failed:
        message += f"; {result.failed} failed"
    return ImportResponse(success=True, message=message, **payload)


def _failure_detail(exc: ImportFailure) -> Any:
    if isinstance(exc, NoValidRows):
        return {
            "message": exc.message,
            "error_type": exc.error_type,
            "total": exc.total_rows,
            "errors": [failure.to_dict() for failure in exc.failures[: settings.import_error_cap]],
        }
    return exc.message


async def _run_import(record_type: RecordType, func, *args, **kwargs) -> ImportResponse:
    """Run a pipeline entry point off the event loop and translate its failures."""
    try:
        result = await asyncio.to_thread(func, *args, **kwargs)
    except ImportFailure as exc:
        logger.warning("%s import rejected (%s): %s", record_type.label, exc.error_type, exc.message)
        raise HTTPException(status_code=400, detail=_failure_detail(exc))
    except Exception as exc:
        logger.exception("%s import failed: %s", record_type.label, exc)
        raise HTTPException(status_code=500, detail=f"Server error during {record_type.label} import")
    return _import_response(record_type, result)


def _add_file_import_route(record_type: RecordType) -> None:
    async def import_file(
        file: Optional[UploadFile] = File(None),
        db: Session = Depends(get_db),
    ) -> ImportResponse:
        file_content = await read_upload(file)
        logger.info(
            "Received %s import '%s' (%d bytes)", record_type.label, file.filename, len(file_content)
        )
        return await _run_import(
            record_type,
            run_file_import,
            db,
            record_type,
            file_content,
            file.filename,
            file.content_type,
        )

    import_file.__name__ = f"import_{record_type.name}_file"
    import_file.__doc__ = (
        f"Upsert {record_type.label} rows from a CSV or Excel upload, keyed by "
        f"{', '.join(record_type.key_fields)}."
    )
    router.add_api_route(
        f"/{record_type.path}/import",
        import_file,
        methods=["POST"],
        response_model=ImportResponse,
        summary=f"Import {record_type.label} records",
    )


for _record_type in RECORD_TYPES.values():
    _add_file_import_route(_record_type)


def _require_stock(db: Session, stock_id: int) -> None:
    try:
        get_stock_by_id(db, stock_id)
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail=exc.message)


@router.post(
    f"/{STOCK_QINDEX.path}/stock/{{stock_id}}/import",
    response_model=ImportResponse,
)
async def import_stock_qindex_file(
    stock_id: int,
    file: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
):
    """
    Import Q-index rows for one stock. ``stock_id`` from the path replaces any
    stock column in the file.
    """
    file_content = await read_upload(file)
    await asyncio.to_thread(_require_stock, db, stock_id)
    return await _run_import(
        STOCK_QINDEX,
        run_file_import,
        db,
        STOCK_QINDEX,
        file_content,
        file.filename,
        file.content_type,
        fixed={"stock_id": stock_id},
    )


@router.post(
    f"/{STOCK_QINDEX.path}/stock/{{stock_id}}/bulk",
    response_model=ImportResponse,
)
async def bulk_import_stock_qindices(
    stock_id: int,
    request: QIndexBulkRequest,
    db: Session = Depends(get_db),
):
    """Upsert a JSON array of Q-index rows for one stock."""
    await asyncio.to_thread(_require_stock, db, stock_id)
    rows: List[Dict[str, Any]] = request.q_indices
    return await _run_import(
        STOCK_QINDEX,
        run_row_import,
        db,
        STOCK_QINDEX,
        rows,
        fixed={"stock_id": stock_id},
    )
