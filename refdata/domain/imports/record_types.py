"""
Record type registry for the import pipeline.

One generic engine serves every table; each ``RecordType`` declares its
columns, the header spellings it accepts, its natural key and how it treats a
missing parent stock.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Set, Tuple, Type

from refdata.db.models import (
    CurrencyPrice,
    EpsRecord,
    FinancialRatioRecord,
    PeRecord,
    RoaRoeRecord,
    Stock,
    StockQIndex,
)
from refdata.domain.imports.coercers import (
    is_missing,
    coerce_date,
    coerce_decimal,
    coerce_integer,
    coerce_symbol,
    coerce_text,
)
from refdata.domain.imports.errors import MissingKey


class FieldKind(str, Enum):
    SYMBOL = "symbol"
    DATE = "date"
    DECIMAL = "decimal"
    INTEGER = "integer"
    TEXT = "text"


class ParentPolicy(str, Enum):
    REJECT = "reject"
    AUTO_CREATE = "auto_create"


@dataclass(frozen=True)
class FieldSpec:
    name: str
    kind: FieldKind
    aliases: Tuple[str, ...] = ()
    key: bool = False
    required: bool = False
    # Canonical key that receives the second occurrence of a duplicated column.
    secondary: Optional[str] = None
    max_length: Optional[int] = None
    # False for lookup-only columns that never reach the table.
    stored: bool = True


@dataclass(frozen=True)
class ParentLink:
    """How a record references its parent ``Stock``."""
    policy: ParentPolicy
    key_field: str
    # Optional column that identifies the parent by symbol instead of key_field.
    lookup_field: Optional[str] = None


@dataclass
class ParsedRecord:
    row_number: int
    key: Dict[str, Any]
    values: Dict[str, Any]
    raw: Dict[str, Any] = field(default_factory=dict)
    # Parent symbol still to be resolved into ``key[parent.key_field]``.
    parent_lookup: Optional[str] = None

    def natural_key(self, key_fields: Tuple[str, ...]) -> Tuple[Any, ...]:
        return tuple(self.key.get(name) for name in key_fields)


@dataclass(frozen=True)
class RecordType:
    name: str
    label: str
    path: str
    model: Type[Any]
    fields: Tuple[FieldSpec, ...]
    key_fields: Tuple[str, ...]
    parent: Optional[ParentLink] = None
    # target -> source, applied only when the caller opts in.
    fallbacks: Tuple[Tuple[str, str], ...] = ()
    sortable: Tuple[str, ...] = ()
    default_sort: str = "id"

    def get_field(self, name: str) -> Optional[FieldSpec]:
        for spec in self.fields:
            if spec.name == name:
                return spec
        return None


def _coerce(spec: FieldSpec, raw: Any) -> Any:
    mandatory = spec.key or spec.required

    if spec.kind == FieldKind.DECIMAL:
        return coerce_decimal(raw)

    if spec.kind == FieldKind.SYMBOL:
        if not mandatory and is_missing(raw):
            return None
        return coerce_symbol(raw, spec.name, spec.max_length)

    if spec.kind == FieldKind.DATE:
        if is_missing(raw):
            if mandatory:
                raise MissingKey(spec.name, raw)
            return None
        return coerce_date(raw, spec.name)

    if spec.kind == FieldKind.INTEGER:
        if not mandatory and is_missing(raw):
            return None
        return coerce_integer(raw, spec.name)

    value = coerce_text(raw, spec.max_length)
    if value is None and mandatory:
        raise MissingKey(spec.name, raw)
    return value


def parse_row(
    record_type: RecordType,
    row: Dict[str, Any],
    present_columns: Set[str],
    row_number: int,
    fixed: Optional[Dict[str, Any]] = None,
    apply_fallbacks: bool = False,
) -> ParsedRecord:
    """
    Coerce a normalized row into the record type's shape.

    Only fields whose column exists in the header (or in ``fixed``) end up
    in ``values``; an absent column must never overwrite stored data. ``fixed``
    values replace whatever the row holds for that field.

    Raises:
        RowError: when a key or required field is missing or malformed.
    """
    fixed = fixed or {}
    parent = record_type.parent
    key: Dict[str, Any] = {}
    values: Dict[str, Any] = {}
    parent_lookup: Optional[str] = None

    for spec in record_type.fields:
        has_column = spec.name in present_columns
        raw = row.get(spec.name) if has_column else None
        if spec.name in fixed:
            raw = fixed[spec.name]
            has_column = True

        resolvable_by_lookup = (
            parent is not None and parent.lookup_field is not None and spec.name == parent.key_field
        )

        if not has_column:
            if (spec.key or spec.required) and not resolvable_by_lookup:
                raise MissingKey(spec.name)
            continue

        if parent is not None and spec.name == parent.lookup_field and not spec.stored:
            if not is_missing(raw) and parent.key_field not in fixed:
                parent_lookup = coerce_symbol(raw, spec.name, spec.max_length)
            continue

        if resolvable_by_lookup and is_missing(raw):
            continue

        value = _coerce(spec, raw)
        if spec.key:
            key[spec.name] = value
        else:
            values[spec.name] = value

    if parent is not None and parent.lookup_field and parent.key_field not in key:
        if parent_lookup is None:
            raise MissingKey(parent.key_field)
    else:
        parent_lookup = None

    if apply_fallbacks:
        for target, source in record_type.fallbacks:
            if target not in present_columns and values.get(source) is not None:
                values[target] = values[source]

    return ParsedRecord(
        row_number=row_number,
        key=key,
        values=values,
        raw=dict(row),
        parent_lookup=parent_lookup,
    )


def _symbol_key(**overrides: Any) -> FieldSpec:
    options = {"aliases": ("symbol", "ticker", "stock symbol", "ma ck"), "key": True, "max_length": 20}
    options.update(overrides)
    return FieldSpec("symbol", FieldKind.SYMBOL, **options)


def _report_date() -> FieldSpec:
    return FieldSpec("report_date", FieldKind.DATE, aliases=("report date", "reportdate", "date"), key=True)


def _metric(name: str, *aliases: str, **options: Any) -> FieldSpec:
    return FieldSpec(name, FieldKind.DECIMAL, aliases=(name,) + aliases, **options)


_TIME_SERIES_SORT = ("symbol", "report_date")

STOCK = RecordType(
    name="stock",
    label="stock",
    path="stocks",
    model=Stock,
    fields=(
        _symbol_key(),
        FieldSpec("name", FieldKind.TEXT, aliases=("name", "company name", "company"), required=True, max_length=255),
        FieldSpec("exchange", FieldKind.TEXT, aliases=("exchange", "san"), max_length=100),
        FieldSpec("industry", FieldKind.TEXT, aliases=("industry", "sector", "nganh"), max_length=100),
    ),
    key_fields=("symbol",),
    sortable=("symbol", "name", "exchange", "industry", "created_at"),
    default_sort="symbol",
)

EPS = RecordType(
    name="eps",
    label="EPS",
    path="eps-records",
    model=EpsRecord,
    fields=(
        _symbol_key(),
        _report_date(),
        _metric("eps"),
        _metric("eps_nganh", "eps industry"),
        _metric("eps_rate", "eps industry rate"),
    ),
    key_fields=("symbol", "report_date"),
    parent=ParentLink(ParentPolicy.REJECT, key_field="symbol"),
    sortable=_TIME_SERIES_SORT + ("eps", "eps_nganh", "eps_rate"),
    default_sort="report_date",
)

PE = RecordType(
    name="pe",
    label="P/E",
    path="pe-records",
    model=PeRecord,
    fields=(
        _symbol_key(),
        _report_date(),
        _metric("pe", "p/e"),
        _metric("pe_nganh", "pe industry"),
        _metric("pe_rate", "pe industry rate"),
    ),
    key_fields=("symbol", "report_date"),
    parent=ParentLink(ParentPolicy.REJECT, key_field="symbol"),
    sortable=_TIME_SERIES_SORT + ("pe", "pe_nganh", "pe_rate"),
    default_sort="report_date",
)

ROA_ROE = RecordType(
    name="roa_roe",
    label="ROA/ROE",
    path="roa-roe-records",
    model=RoaRoeRecord,
    fields=(
        _symbol_key(),
        _report_date(),
        _metric("roa"),
        _metric("roe"),
        # Legacy sheets carry two "ROE nganh" columns: industry value, then its rate.
        _metric("roe_nganh", "roe industry", "roenganha", secondary="roe_nganh_rate"),
        _metric("roe_nganh_rate", "roe industry rate"),
        _metric("roa_nganh", "roa industry"),
    ),
    key_fields=("symbol", "report_date"),
    parent=ParentLink(ParentPolicy.AUTO_CREATE, key_field="symbol"),
    fallbacks=(("roa_nganh", "roe_nganh_rate"),),
    sortable=_TIME_SERIES_SORT + ("roa", "roe", "roe_nganh", "roe_nganh_rate", "roa_nganh"),
    default_sort="report_date",
)

FINANCIAL_RATIO = RecordType(
    name="financial_ratio",
    label="financial ratio",
    path="financial-ratio-records",
    model=FinancialRatioRecord,
    fields=(
        _symbol_key(),
        _report_date(),
        _metric("debt_equity", "debt/equity"),
        _metric("assets_equity", "assets/equity"),
        _metric("debt_equity_pct", "debt/equity %", "debt equity percent"),
    ),
    key_fields=("symbol", "report_date"),
    parent=ParentLink(ParentPolicy.AUTO_CREATE, key_field="symbol"),
    sortable=_TIME_SERIES_SORT + ("debt_equity", "assets_equity", "debt_equity_pct"),
    default_sort="report_date",
)

CURRENCY_PRICE = RecordType(
    name="currency_price",
    label="currency price",
    path="currency-prices",
    model=CurrencyPrice,
    fields=(
        _symbol_key(aliases=("symbol", "pair", "currency")),
        FieldSpec("date", FieldKind.DATE, aliases=("date", "trading date"), key=True),
        _metric("open"),
        _metric("high"),
        _metric("low"),
        _metric("close"),
        _metric("trend_q"),
        _metric("fq"),
    ),
    key_fields=("symbol", "date"),
    sortable=("symbol", "date", "open", "high", "low", "close"),
    default_sort="date",
)

STOCK_QINDEX = RecordType(
    name="stock_qindex",
    label="Q-index",
    path="stock-qindices",
    model=StockQIndex,
    fields=(
        FieldSpec("stock_id", FieldKind.INTEGER, aliases=("stock_id", "stock id"), key=True),
        FieldSpec("symbol", FieldKind.SYMBOL, aliases=("symbol", "ticker"), max_length=20, stored=False),
        FieldSpec("date", FieldKind.DATE, aliases=("date", "trading date"), key=True),
        _metric("open"),
        _metric("low"),
        _metric("high"),
        _metric("trend_q"),
        _metric("fq"),
        _metric("qv1"),
        _metric("band_down"),
        _metric("band_up"),
    ),
    key_fields=("stock_id", "date"),
    parent=ParentLink(ParentPolicy.REJECT, key_field="stock_id", lookup_field="symbol"),
    sortable=("date", "open", "low", "high", "trend_q", "fq", "qv1"),
    default_sort="date",
)

RECORD_TYPES: Dict[str, RecordType] = {
    record_type.name: record_type
    for record_type in (STOCK, EPS, PE, ROA_ROE, FINANCIAL_RATIO, CURRENCY_PRICE, STOCK_QINDEX)
}


def get_record_type(name: str) -> RecordType:
    try:
        return RECORD_TYPES[name]
    except KeyError:
        raise ValueError(f"Unknown record type '{name}'") from None
