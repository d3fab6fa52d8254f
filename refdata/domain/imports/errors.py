"""
Exceptions raised by the tabular import pipeline.

File-level failures (``ImportFailure`` subclasses other than ``RowError``)
abort the whole request. ``RowError`` subclasses are caught per row, recorded
in the import result and never stop the batch.
"""
from typing import Any, List, Optional


class ImportFailure(Exception):
    """Base class for every import pipeline error."""

    error_type = "import_failure"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class UnsupportedFormat(ImportFailure):
    """Neither the mimetype nor the file extension names a supported format."""

    error_type = "unsupported_format"

    def __init__(self, file_name: Optional[str], content_type: Optional[str], message: str = None):
        self.file_name = file_name
        self.content_type = content_type
        super().__init__(
            message
            or f"Unsupported file format for '{file_name or 'upload'}' ({content_type or 'unknown type'}). "
            "Please upload a CSV or Excel (.xlsx, .xls) file."
        )


class EmptyFile(ImportFailure):
    error_type = "empty_file"

    def __init__(self, message: str = None):
        super().__init__(message or "The uploaded file is empty or has no data rows.")


class UnreadableFile(ImportFailure):
    """The payload matched a supported format but could not be parsed."""

    error_type = "unreadable_file"


class NoValidRows(ImportFailure):
    """Every data row was rejected before reaching storage."""

    error_type = "no_valid_rows"

    def __init__(self, total_rows: int, failures: List[Any], message: str = None):
        self.total_rows = total_rows
        self.failures = failures
        super().__init__(message or f"No valid records found in file ({total_rows} rows read, all rejected).")


class RowError(ImportFailure):
    """A failure scoped to a single row."""

    error_type = "row_error"

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        self.field = field
        self.value = value
        super().__init__(message)


class MissingKey(RowError):
    error_type = "missing_key"

    def __init__(self, field: str, value: Any = None):
        super().__init__(f"Missing required field '{field}'", field=field, value=value)


class InvalidDate(RowError):
    error_type = "invalid_date"

    def __init__(self, value: Any, field: Optional[str] = None):
        label = f" for '{field}'" if field else ""
        super().__init__(f"Invalid date{label}: {value!r}", field=field, value=value)


class InvalidValue(RowError):
    error_type = "invalid_value"

    def __init__(self, field: str, value: Any, reason: str):
        super().__init__(f"Invalid value for '{field}': {value!r} ({reason})", field=field, value=value)


class ParentNotFound(RowError):
    error_type = "parent_not_found"

    def __init__(self, field: str, value: Any):
        super().__init__(f"Stock with {field} '{value}' not found", field=field, value=value)


class StorageError(RowError):
    error_type = "storage_error"


class StorageConflict(StorageError):
    error_type = "storage_conflict"
