"""
Header normalization: map arbitrary header spellings onto canonical keys.
"""
import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, List, Optional, Sequence, Set

from refdata.domain.imports.record_types import RecordType

logger = logging.getLogger(__name__)

_SEPARATORS_RE = re.compile(r"[\s_\-.]+")


def squash_header(value: Any) -> str:
    """Lowercase and drop whitespace/underscore/hyphen/dot so spellings compare equal."""
    if value is None:
        return ""
    return _SEPARATORS_RE.sub("", str(value).strip().lower())


@lru_cache(maxsize=None)
def alias_index(record_type: RecordType) -> Dict[str, str]:
    """Squashed spelling -> canonical key for one record type."""
    index: Dict[str, str] = {}
    for spec in record_type.fields:
        for spelling in (spec.name,) + spec.aliases:
            squashed = squash_header(spelling)
            existing = index.setdefault(squashed, spec.name)
            if existing != spec.name:
                raise ValueError(
                    f"Alias '{spelling}' is declared for both '{existing}' and '{spec.name}' "
                    f"on record type '{record_type.name}'"
                )
    return index


@dataclass
class ColumnMap:
    # One entry per header position: canonical key, passthrough name, or None (ignored).
    keys: List[Optional[str]]
    present: Set[str] = field(default_factory=set)
    unrecognized: List[str] = field(default_factory=list)


def build_column_map(headers: Sequence[Any], record_type: RecordType) -> ColumnMap:
    """
    Resolve every header cell to a canonical key.

    The first column that resolves to a key wins it. A second occurrence only
    counts when the field declares a ``secondary`` key; any other repeat is
    dropped with a warning.
    """
    index = alias_index(record_type)
    keys: List[Optional[str]] = []
    present: Set[str] = set()
    unrecognized: List[str] = []

    for position, header in enumerate(headers):
        squashed = squash_header(header)
        if not squashed:
            keys.append(None)
            continue

        canonical = index.get(squashed)
        if canonical is None:
            passthrough = str(header).strip().lower()
            keys.append(passthrough)
            unrecognized.append(passthrough)
            continue

        if canonical in present:
            spec = record_type.get_field(canonical)
            secondary = spec.secondary if spec else None
            if secondary and secondary not in present:
                logger.info(
                    "Duplicate '%s' column at position %d mapped to secondary field '%s'",
                    canonical,
                    position,
                    secondary,
                )
                keys.append(secondary)
                present.add(secondary)
                continue
            logger.warning("Ignoring duplicate '%s' column at position %d (header %r)", canonical, position, header)
            keys.append(None)
            continue

        keys.append(canonical)
        present.add(canonical)

    if unrecognized:
        logger.info("Unrecognized %s columns kept but ignored: %s", record_type.label, unrecognized)

    return ColumnMap(keys=keys, present=present, unrecognized=unrecognized)


def normalize_row(column_map: ColumnMap, cells: Sequence[Any]) -> Dict[str, Any]:
    row: Dict[str, Any] = {}
    for key, value in zip(column_map.keys, cells):
        if key is None or key in row:
            continue
        row[key] = value
    return row
