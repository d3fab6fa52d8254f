from typing import Any, Dict, Iterable
from decimal import Decimal
from datetime import datetime, date

from sqlalchemy import inspect

# Surrogate keys are BIGINT; sent as strings so JavaScript clients keep full precision.
ID_COLUMNS = {"id", "stock_id"}


def _make_json_safe(value: Any) -> Any:
    """
    Convert Python objects into JSON-serialisable structures.
    """
    if isinstance(value, dict):
        return {key: _make_json_safe(val) for key, val in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_make_json_safe(item) for item in value]
    if isinstance(value, Decimal):
        # Prices are plain JSON numbers; NUMERIC(18, 6) fits a double.
        if value == value.to_integral():
            return int(value)
        return float(value)
    if isinstance(value, float) and value != value:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, bytes):
        return value.decode(errors="ignore")
    if isinstance(value, (int, float, str, bool)) or value is None:
        return value
    return str(value)


def serialize_instance(instance: Any) -> Dict[str, Any]:
    """Column values of an ORM instance, with ids stringified."""
    payload: Dict[str, Any] = {}
    for column in inspect(instance).mapper.column_attrs:
        value = getattr(instance, column.key)
        if column.key in ID_COLUMNS and value is not None:
            payload[column.key] = str(value)
        else:
            payload[column.key] = _make_json_safe(value)
    return payload


def serialize_instances(instances: Iterable[Any]) -> list:
    return [serialize_instance(instance) for instance in instances]
