"""
Read and maintenance endpoints, registered once per record type.
"""
import datetime as dt
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from refdata.api.schemas.records import CREATE_MODELS, UPDATE_MODELS, RecordListResponse
from refdata.db.session import get_db
from refdata.domain.imports.record_types import RECORD_TYPES, STOCK, STOCK_QINDEX, RecordType
from refdata.domain.records.repository import (
    InvalidQuery,
    Page,
    RecordConflict,
    RecordNotFound,
    create_record,
    delete_record,
    get_record,
    get_stock_by_id,
    get_stock_by_symbol,
    list_records,
    update_record,
)
from refdata.utils.serialization import serialize_instance, serialize_instances

logger = logging.getLogger(__name__)

router = APIRouter(tags=["records"])


def _page_response(page: Page) -> Dict[str, Any]:
    return {"data": serialize_instances(page.items), "pagination": page.pagination()}


def _list_or_400(db: Session, record_type: RecordType, **query) -> Dict[str, Any]:
    try:
        return _page_response(list_records(db, record_type, **query))
    except InvalidQuery as exc:
        raise HTTPException(status_code=400, detail=exc.message)


def _register(record_type: RecordType) -> None:
    base = f"/{record_type.path}"
    update_model = UPDATE_MODELS[record_type.name]
    create_model = CREATE_MODELS[record_type.name]

    def list_all(
        page: int = Query(1, ge=1),
        limit: int = Query(10, ge=1, le=500),
        symbol: Optional[str] = None,
        date_from: Optional[dt.date] = None,
        date_to: Optional[dt.date] = None,
        sort_by: Optional[str] = None,
        sort_order: str = Query("desc", pattern="^(asc|desc)$"),
        db: Session = Depends(get_db),
    ):
        return _list_or_400(
            db,
            record_type,
            page=page,
            limit=limit,
            symbol=symbol,
            date_from=date_from,
            date_to=date_to,
            sort_by=sort_by,
            sort_order=sort_order,
        )

    list_all.__name__ = f"list_{record_type.name}_records"
    router.add_api_route(
        base, list_all, methods=["GET"], response_model=RecordListResponse, summary=f"List {record_type.label} records"
    )

    def create_one(payload: create_model = Body(...), db: Session = Depends(get_db)):
        try:
            instance = create_record(db, record_type, payload.model_dump(exclude_unset=True))
        except RecordNotFound as exc:
            raise HTTPException(status_code=404, detail=exc.message)
        except RecordConflict as exc:
            raise HTTPException(status_code=409, detail=exc.message)
        except InvalidQuery as exc:
            raise HTTPException(status_code=400, detail=exc.message)
        return serialize_instance(instance)

    create_one.__name__ = f"create_{record_type.name}_record"
    router.add_api_route(
        base, create_one, methods=["POST"], status_code=201, summary=f"Create {record_type.label} record"
    )

    if record_type is STOCK:
        def search(
            keyword: Optional[str] = None,
            q: Optional[str] = None,
            page: int = Query(1, ge=1),
            limit: int = Query(10, ge=1, le=500),
            sort_by: Optional[str] = None,
            sort_order: str = Query("asc", pattern="^(asc|desc)$"),
            db: Session = Depends(get_db),
        ):
            """Match ``keyword`` (or ``q``) against stock symbol and name."""
            term = keyword if keyword is not None else q
            if term is None:
                raise HTTPException(status_code=400, detail="Search keyword is required")
            return _list_or_400(
                db, record_type, page=page, limit=limit, keyword=term, sort_by=sort_by, sort_order=sort_order
            )

        search.__name__ = "search_stocks"
        router.add_api_route(
            f"{base}/search", search, methods=["GET"], response_model=RecordListResponse, summary="Search stocks"
        )

        def get_by_symbol(symbol: str, db: Session = Depends(get_db)):
            try:
                return serialize_instance(get_stock_by_symbol(db, symbol))
            except RecordNotFound as exc:
                raise HTTPException(status_code=404, detail=exc.message)

        get_by_symbol.__name__ = "get_stock_by_symbol"
        router.add_api_route(f"{base}/symbol/{{symbol}}", get_by_symbol, methods=["GET"], summary="Get stock by symbol")

    elif record_type is STOCK_QINDEX:
        def list_for_stock(
            stock_id: int,
            page: int = Query(1, ge=1),
            limit: int = Query(10, ge=1, le=500),
            date_from: Optional[dt.date] = None,
            date_to: Optional[dt.date] = None,
            sort_by: Optional[str] = None,
            sort_order: str = Query("desc", pattern="^(asc|desc)$"),
            db: Session = Depends(get_db),
        ):
            try:
                get_stock_by_id(db, stock_id)
            except RecordNotFound as exc:
                raise HTTPException(status_code=404, detail=exc.message)
            return _list_or_400(
                db,
                record_type,
                page=page,
                limit=limit,
                stock_id=stock_id,
                date_from=date_from,
                date_to=date_to,
                sort_by=sort_by,
                sort_order=sort_order,
            )

        list_for_stock.__name__ = "list_stock_qindices_for_stock"
        router.add_api_route(
            f"{base}/stock/{{stock_id}}",
            list_for_stock,
            methods=["GET"],
            response_model=RecordListResponse,
            summary="List Q-indices for one stock",
        )

    else:
        def list_for_symbol(
            symbol: str,
            page: int = Query(1, ge=1),
            limit: int = Query(10, ge=1, le=500),
            date_from: Optional[dt.date] = None,
            date_to: Optional[dt.date] = None,
            sort_by: Optional[str] = None,
            sort_order: str = Query("desc", pattern="^(asc|desc)$"),
            db: Session = Depends(get_db),
        ):
            if record_type.parent is not None:
                try:
                    get_stock_by_symbol(db, symbol)
                except RecordNotFound as exc:
                    raise HTTPException(status_code=404, detail=exc.message)
            return _list_or_400(
                db,
                record_type,
                page=page,
                limit=limit,
                symbol=symbol,
                date_from=date_from,
                date_to=date_to,
                sort_by=sort_by,
                sort_order=sort_order,
            )

        list_for_symbol.__name__ = f"list_{record_type.name}_records_for_symbol"
        router.add_api_route(
            f"{base}/symbol/{{symbol}}",
            list_for_symbol,
            methods=["GET"],
            response_model=RecordListResponse,
            summary=f"List {record_type.label} records for one symbol",
        )

    def get_one(record_id: int, db: Session = Depends(get_db)):
        try:
            return serialize_instance(get_record(db, record_type, record_id))
        except RecordNotFound as exc:
            raise HTTPException(status_code=404, detail=exc.message)

    def patch_one(
        record_id: int,
        changes: update_model = Body(...),
        db: Session = Depends(get_db),
    ):
        """Partial update: omitted fields are kept, explicit nulls clear the column."""
        try:
            instance = update_record(db, record_type, record_id, changes.model_dump(exclude_unset=True))
        except RecordNotFound as exc:
            raise HTTPException(status_code=404, detail=exc.message)
        except RecordConflict as exc:
            raise HTTPException(status_code=409, detail=exc.message)
        except InvalidQuery as exc:
            raise HTTPException(status_code=400, detail=exc.message)
        except Exception as exc:
            logger.exception("Updating %s record %s failed: %s", record_type.label, record_id, exc)
            raise HTTPException(status_code=500, detail=f"Server error updating {record_type.label} record")
        return serialize_instance(instance)

    def delete_one(record_id: int, db: Session = Depends(get_db)):
        try:
            delete_record(db, record_type, record_id)
        except RecordNotFound as exc:
            raise HTTPException(status_code=404, detail=exc.message)
        return Response(status_code=204)

    get_one.__name__ = f"get_{record_type.name}_record"
    patch_one.__name__ = f"update_{record_type.name}_record"
    delete_one.__name__ = f"delete_{record_type.name}_record"
    router.add_api_route(f"{base}/{{record_id}}", get_one, methods=["GET"], summary=f"Get {record_type.label} record")
    router.add_api_route(
        f"{base}/{{record_id}}", patch_one, methods=["PATCH"], summary=f"Update {record_type.label} record"
    )
    router.add_api_route(
        f"{base}/{{record_id}}",
        delete_one,
        methods=["DELETE"],
        status_code=204,
        response_class=Response,
        summary=f"Delete {record_type.label} record",
    )


for _record_type in RECORD_TYPES.values():
    _register(_record_type)
