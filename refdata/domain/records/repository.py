"""
Read and maintenance queries shared by every record type.
"""
import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from refdata.db.models import Stock
from refdata.domain.imports.record_types import ParentPolicy, RecordType

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 500


class RecordNotFound(Exception):
    def __init__(self, label: str, identifier: Any, message: str = None):
        self.label = label
        self.identifier = identifier
        self.message = message or f"{label} record '{identifier}' not found"
        super().__init__(self.message)


class RecordConflict(Exception):
    """A write would duplicate an existing natural key."""

    def __init__(self, record_type: RecordType, key: Dict[str, Any], message: str = None):
        self.record_type = record_type
        self.key = key
        fields = " and ".join(record_type.key_fields)
        self.message = message or f"{record_type.label} record with this {fields} already exists"
        super().__init__(self.message)


class InvalidQuery(Exception):
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


@dataclass
class Page:
    items: List[Any]
    total_items: int
    page: int
    limit: int

    def pagination(self) -> Dict[str, int]:
        return {
            "total_items": self.total_items,
            "item_count": len(self.items),
            "items_per_page": self.limit,
            "total_pages": math.ceil(self.total_items / self.limit) if self.limit else 0,
            "current_page": self.page,
        }


def _date_column(record_type: RecordType):
    for name in ("report_date", "date"):
        if name in record_type.key_fields:
            return getattr(record_type.model, name)
    return None


def get_stock_by_symbol(session: Session, symbol: str) -> Stock:
    stock = session.execute(select(Stock).where(Stock.symbol == symbol.strip().upper())).scalar_one_or_none()
    if stock is None:
        raise RecordNotFound("Stock", symbol, message=f"Stock with symbol '{symbol}' not found")
    return stock


def get_stock_by_id(session: Session, stock_id: int) -> Stock:
    stock = session.get(Stock, stock_id)
    if stock is None:
        raise RecordNotFound("Stock", stock_id, message=f"Stock with ID {stock_id} not found")
    return stock


def list_records(
    session: Session,
    record_type: RecordType,
    page: int = 1,
    limit: int = 10,
    symbol: Optional[str] = None,
    keyword: Optional[str] = None,
    stock_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    sort_by: Optional[str] = None,
    sort_order: str = "desc",
) -> Page:
    """
    Page through a record table.

    ``sort_by`` must be one of the record type's sortable columns; an unknown
    column raises ``InvalidQuery`` rather than being silently ignored.
    ``keyword`` matches symbol or name case-insensitively (stocks only).
    """
    model = record_type.model
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    page = max(page, 1)

    filters = []
    if symbol and symbol.strip() and hasattr(model, "symbol"):
        filters.append(model.symbol == symbol.strip().upper())
    if stock_id is not None and hasattr(model, "stock_id"):
        filters.append(model.stock_id == stock_id)
    if keyword is not None and hasattr(model, "name"):
        if not keyword.strip():
            raise InvalidQuery("Search keyword is required")
        pattern = f"%{keyword.strip()}%"
        filters.append(or_(model.symbol.ilike(pattern), model.name.ilike(pattern)))

    date_column = _date_column(record_type)
    if date_column is not None:
        if date_from is not None:
            filters.append(date_column >= date_from)
        if date_to is not None:
            filters.append(date_column <= date_to)

    sort_field = sort_by or record_type.default_sort
    if sort_field not in record_type.sortable and sort_field != record_type.default_sort:
        raise InvalidQuery(f"Invalid sort column '{sort_by}'.")
    column = getattr(model, sort_field)
    ordering = column.desc() if sort_order.lower() == "desc" else column.asc()

    total = session.execute(select(func.count()).select_from(model).where(*filters)).scalar_one()
    items = (
        session.execute(
            select(model).where(*filters).order_by(ordering, model.id.asc()).offset((page - 1) * limit).limit(limit)
        )
        .scalars()
        .all()
    )
    return Page(items=items, total_items=total, page=page, limit=limit)


def get_record(session: Session, record_type: RecordType, record_id: int) -> Any:
    instance = session.get(record_type.model, record_id)
    if instance is None:
        raise RecordNotFound(record_type.label, record_id)
    return instance


def _check_parent(session: Session, record_type: RecordType, changes: Dict[str, Any]) -> None:
    parent = record_type.parent
    if parent is None or parent.key_field not in changes:
        return
    value = changes[parent.key_field]
    if parent.key_field == "symbol":
        get_stock_by_symbol(session, value)
    else:
        get_stock_by_id(session, value)


def _ensure_parent(session: Session, record_type: RecordType, data: Dict[str, Any]) -> None:
    """Apply the record type's parent policy to a single new record."""
    parent = record_type.parent
    if parent is None:
        return
    if parent.key_field != "symbol":
        get_stock_by_id(session, data[parent.key_field])
        return

    symbol = data["symbol"]
    if session.execute(select(Stock.id).where(Stock.symbol == symbol)).first() is not None:
        return
    if parent.policy != ParentPolicy.AUTO_CREATE:
        raise RecordNotFound("Stock", symbol, message=f"Stock with symbol '{symbol}' not found")
    session.add(Stock(symbol=symbol, name=symbol))
    session.flush()
    logger.info("Created placeholder stock '%s' for new %s record", symbol, record_type.label)


def create_record(session: Session, record_type: RecordType, data: Dict[str, Any]) -> Any:
    """
    Insert one record.

    Raises:
        InvalidQuery: a natural-key field is missing or blank.
        RecordNotFound: the parent stock does not exist and may not be created.
        RecordConflict: a record with the same natural key already exists.
    """
    data = dict(data)
    if isinstance(data.get("symbol"), str):
        data["symbol"] = data["symbol"].strip().upper()
    for name in record_type.key_fields:
        if data.get(name) in (None, ""):
            raise InvalidQuery(f"Field '{name}' is required")
    spec = record_type.get_field("name")
    if spec is not None and spec.required and not (data.get("name") or "").strip():
        raise InvalidQuery("Field 'name' cannot be empty")

    try:
        _ensure_parent(session, record_type, data)
        instance = record_type.model(**data)
        session.add(instance)
        session.commit()
    except RecordNotFound:
        session.rollback()
        raise
    except IntegrityError as exc:
        session.rollback()
        logger.info("Rejected new %s record: %s", record_type.label, exc.orig)
        raise RecordConflict(record_type, {name: data.get(name) for name in record_type.key_fields}) from exc

    session.refresh(instance)
    logger.info("Created %s record %s", record_type.label, instance.id)
    return instance


def update_record(session: Session, record_type: RecordType, record_id: int, changes: Dict[str, Any]) -> Any:
    """
    Apply a partial update.

    ``changes`` holds only the fields the client sent: a key mapped to ``None``
    clears that column, a key that is absent leaves it untouched.
    """
    if not changes:
        raise InvalidQuery("No valid fields provided for update")

    instance = get_record(session, record_type, record_id)

    for name in record_type.key_fields:
        if name in changes and changes[name] is None:
            raise InvalidQuery(f"Field '{name}' cannot be null")
    spec = record_type.get_field("name")
    if spec is not None and spec.required and "name" in changes and not changes["name"]:
        raise InvalidQuery("Field 'name' cannot be empty")

    if "symbol" in changes and changes["symbol"] is not None:
        changes["symbol"] = changes["symbol"].strip().upper()

    _check_parent(session, record_type, changes)

    for name, value in changes.items():
        setattr(instance, name, value)
    instance.updated_at = datetime.now(timezone.utc)

    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        logger.info("Rejected %s update for id %s: %s", record_type.label, record_id, exc.orig)
        raise RecordConflict(record_type, {name: changes.get(name) for name in record_type.key_fields}) from exc

    session.refresh(instance)
    return instance


def delete_record(session: Session, record_type: RecordType, record_id: int) -> None:
    instance = get_record(session, record_type, record_id)
    session.delete(instance)
    session.commit()
    logger.info("Deleted %s record %s", record_type.label, record_id)
