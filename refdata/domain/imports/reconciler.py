"""
Row reconciliation: match parsed records to stored rows by natural key.

Writes go through ``INSERT ... ON CONFLICT (natural key) DO UPDATE`` so two
imports touching the same key can never produce duplicate rows. Each row runs
in its own SAVEPOINT; a failing row is recorded and the batch carries on.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import select, text
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from refdata.db.models import Stock
from refdata.domain.imports.errors import ParentNotFound, RowError, StorageConflict, StorageError
from refdata.domain.imports.record_types import ParentPolicy, ParsedRecord, RecordType
from refdata.domain.imports.results import ImportResult, RowFailure

logger = logging.getLogger(__name__)

_DIALECT_INSERTS = {
    "postgresql": postgresql_insert,
    "sqlite": sqlite_insert,
}

CREATED = "created"
UPDATED = "updated"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _storage_error(exc: SQLAlchemyError) -> StorageError:
    detail = str(getattr(exc, "orig", None) or exc).strip()
    if isinstance(exc, IntegrityError):
        return StorageConflict(f"Storage conflict: {detail}")
    return StorageError(f"Storage error: {detail}")


class Reconciler:
    """
    Upserts batches of ``ParsedRecord`` for one record type.

    Keeps per-import state (keys already written, parents already verified)
    so that a key repeated later in the same file counts as an update.
    """

    def __init__(
        self,
        session: Session,
        record_type: RecordType,
        statement_timeout_seconds: Optional[int] = None,
    ):
        self.session = session
        self.record_type = record_type
        self.statement_timeout_seconds = statement_timeout_seconds
        self.dialect = session.get_bind().dialect.name
        try:
            self._insert = _DIALECT_INSERTS[self.dialect]
        except KeyError:
            raise ValueError(f"Atomic upsert is not supported on the '{self.dialect}' dialect") from None

        self._seen_keys: Set[Tuple[Any, ...]] = set()
        self._known_symbols: Set[str] = set()
        self._stock_ids_by_symbol: Dict[str, int] = {}
        self._known_stock_ids: Set[int] = set()

    def reconcile_batch(self, records: List[ParsedRecord]) -> ImportResult:
        result = ImportResult(record_type=self.record_type.name)
        batch_keys: Set[Tuple[Any, ...]] = set()
        parents = self._parent_snapshot()

        try:
            self._apply_statement_timeout()
            eligible = self._resolve_parents(records, result)
            existing = self._fetch_existing_keys(eligible)

            for record in eligible:
                try:
                    outcome = self._upsert(record, existing, batch_keys)
                except RowError as error:
                    result.record_failure(RowFailure.from_error(record.row_number, error, record.raw))
                    continue
                if outcome == CREATED:
                    result.created += 1
                else:
                    result.updated += 1

            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            # Parents created or looked up in this batch may be gone with the rollback.
            self._restore_parents(parents)
            error = _storage_error(exc)
            logger.error(
                "%s batch of %d rows rolled back: %s", self.record_type.label, len(records), error.message
            )
            reported = {failure.row for failure in result.failures}
            result.created = 0
            result.updated = 0
            for record in records:
                if record.row_number not in reported:
                    result.record_failure(RowFailure.from_error(record.row_number, error, record.raw))
            return result

        self._seen_keys.update(batch_keys)
        return result

    def _parent_snapshot(self) -> Tuple[Set[str], Dict[str, int], Set[int]]:
        return set(self._known_symbols), dict(self._stock_ids_by_symbol), set(self._known_stock_ids)

    def _restore_parents(self, snapshot: Tuple[Set[str], Dict[str, int], Set[int]]) -> None:
        self._known_symbols, self._stock_ids_by_symbol, self._known_stock_ids = snapshot

    def _apply_statement_timeout(self) -> None:
        if self.dialect != "postgresql" or not self.statement_timeout_seconds:
            return
        # SET does not accept bind parameters; the value is an int we control.
        timeout_ms = int(self.statement_timeout_seconds) * 1000
        self.session.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))

    # -- parents ---------------------------------------------------------

    def _resolve_parents(self, records: List[ParsedRecord], result: ImportResult) -> List[ParsedRecord]:
        parent = self.record_type.parent
        if parent is None:
            return list(records)

        if parent.key_field == "symbol":
            return self._resolve_symbol_parents(records, result, parent.policy)
        return self._resolve_stock_id_parents(records, result)

    def _reject(self, result: ImportResult, record: ParsedRecord, error: RowError) -> None:
        result.record_failure(RowFailure.from_error(record.row_number, error, record.raw))

    def _resolve_symbol_parents(
        self, records: List[ParsedRecord], result: ImportResult, policy: ParentPolicy
    ) -> List[ParsedRecord]:
        wanted = {record.key["symbol"] for record in records} - self._known_symbols
        if wanted:
            found = self.session.execute(select(Stock.symbol).where(Stock.symbol.in_(wanted))).scalars()
            self._known_symbols.update(found)

        missing = wanted - self._known_symbols
        failed_symbols: Dict[str, RowError] = {}
        if missing and policy == ParentPolicy.AUTO_CREATE:
            for symbol in sorted(missing):
                try:
                    self._create_stock(symbol)
                    self._known_symbols.add(symbol)
                except SQLAlchemyError as exc:
                    failed_symbols[symbol] = StorageError(
                        f"Stock with symbol '{symbol}' not found and could not be created: {_storage_error(exc).message}",
                        field="symbol",
                        value=symbol,
                    )

        eligible: List[ParsedRecord] = []
        for record in records:
            symbol = record.key["symbol"]
            if symbol in self._known_symbols:
                eligible.append(record)
            elif symbol in failed_symbols:
                self._reject(result, record, failed_symbols[symbol])
            else:
                self._reject(result, record, ParentNotFound("symbol", symbol))
        return eligible

    def _create_stock(self, symbol: str) -> None:
        stmt = (
            self._insert(Stock)
            .values(symbol=symbol, name=symbol)
            .on_conflict_do_nothing(index_elements=["symbol"])
        )
        with self.session.begin_nested():
            self.session.execute(stmt)
        logger.info("Created placeholder stock '%s' during %s import", symbol, self.record_type.label)

    def _resolve_stock_id_parents(self, records: List[ParsedRecord], result: ImportResult) -> List[ParsedRecord]:
        key_field = self.record_type.parent.key_field

        lookups = {record.parent_lookup for record in records if record.parent_lookup} - set(self._stock_ids_by_symbol)
        if lookups:
            rows = self.session.execute(select(Stock.symbol, Stock.id).where(Stock.symbol.in_(lookups)))
            for symbol, stock_id in rows:
                self._stock_ids_by_symbol[symbol] = stock_id
                self._known_stock_ids.add(stock_id)

        wanted_ids = {
            record.key[key_field] for record in records if key_field in record.key
        } - self._known_stock_ids
        if wanted_ids:
            found = self.session.execute(select(Stock.id).where(Stock.id.in_(wanted_ids))).scalars()
            self._known_stock_ids.update(found)

        eligible: List[ParsedRecord] = []
        for record in records:
            if record.parent_lookup is not None:
                stock_id = self._stock_ids_by_symbol.get(record.parent_lookup)
                if stock_id is None:
                    self._reject(result, record, ParentNotFound("symbol", record.parent_lookup))
                    continue
                record.key[key_field] = stock_id
                record.parent_lookup = None
            elif record.key[key_field] not in self._known_stock_ids:
                self._reject(result, record, ParentNotFound(key_field, record.key[key_field]))
                continue
            eligible.append(record)
        return eligible

    # -- upsert ------------------------------------------------------------

    def _fetch_existing_keys(self, records: Iterable[ParsedRecord]) -> Set[Tuple[Any, ...]]:
        records = list(records)
        if not records:
            return set()

        model = self.record_type.model
        key_fields = self.record_type.key_fields
        columns = [getattr(model, name) for name in key_fields]

        stmt = select(*columns)
        for name, column in zip(key_fields, columns):
            stmt = stmt.where(column.in_({record.key[name] for record in records}))

        return {tuple(row) for row in self.session.execute(stmt)}

    def _upsert(
        self,
        record: ParsedRecord,
        existing: Set[Tuple[Any, ...]],
        batch_keys: Set[Tuple[Any, ...]],
    ) -> str:
        key_fields = self.record_type.key_fields
        natural_key = record.natural_key(key_fields)

        stmt = self._insert(self.record_type.model).values(**record.key, **record.values)
        if record.values:
            # Only columns present in the source are overwritten; absent ones keep their stored value.
            stmt = stmt.on_conflict_do_update(
                index_elements=list(key_fields),
                set_={**record.values, "updated_at": _utcnow()},
            )
        else:
            stmt = stmt.on_conflict_do_nothing(index_elements=list(key_fields))

        try:
            with self.session.begin_nested():
                self.session.execute(stmt)
        except SQLAlchemyError as exc:
            raise _storage_error(exc) from exc

        if natural_key in existing or natural_key in self._seen_keys or natural_key in batch_keys:
            outcome = UPDATED
        else:
            outcome = CREATED
        batch_keys.add(natural_key)
        return outcome
