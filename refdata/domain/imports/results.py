"""
Per-request accounting for an import run.
"""
import dataclasses
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from refdata.domain.imports.errors import RowError


def _json_scalar(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, float) and value != value:
        return None
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


@dataclass
class RowFailure:
    row: int
    error_type: str
    message: str
    field: Optional[str] = None
    value: Any = None
    data: Dict[str, Any] = dataclasses.field(default_factory=dict)

    @classmethod
    def from_error(cls, row: int, error: RowError, data: Optional[Dict[str, Any]] = None) -> "RowFailure":
        return cls(
            row=row,
            error_type=error.error_type,
            message=error.message,
            field=error.field,
            value=_json_scalar(error.value),
            data={key: _json_scalar(val) for key, val in (data or {}).items()},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row": self.row,
            "error_type": self.error_type,
            "message": self.message,
            "field": self.field,
            "value": self.value,
            "data": self.data,
        }


@dataclass
class ImportResult:
    record_type: str
    total: int = 0
    created: int = 0
    updated: int = 0
    failures: List[RowFailure] = dataclasses.field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def successful(self) -> int:
        return self.created + self.updated

    def record_failure(self, failure: RowFailure) -> None:
        self.failures.append(failure)

    def merge(self, other: "ImportResult") -> None:
        self.created += other.created
        self.updated += other.updated
        self.failures.extend(other.failures)

    def sorted_failures(self) -> List[RowFailure]:
        return sorted(self.failures, key=lambda failure: failure.row)

    def to_payload(self, error_cap: int) -> Dict[str, Any]:
        """Response body; ``errors`` is capped but ``failed`` is the true count."""
        failures = self.sorted_failures()
        return {
            "record_type": self.record_type,
            "total": self.total,
            "created": self.created,
            "updated": self.updated,
            "imported": self.successful,
            "failed": self.failed,
            "errors": [failure.to_dict() for failure in failures[:error_cap]],
            "errors_truncated": len(failures) > error_cap,
        }
