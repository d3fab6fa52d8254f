from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ImportErrorDetail(BaseModel):
    """One rejected row. ``row`` counts data rows from 1, header excluded."""
    row: int
    error_type: str
    message: str
    field: Optional[str] = None
    value: Optional[Any] = None
    data: Dict[str, Any] = Field(default_factory=dict)


class ImportResponse(BaseModel):
    success: bool
    message: str
    record_type: str
    total: int
    created: int
    updated: int
    imported: int
    failed: int
    errors: List[ImportErrorDetail] = Field(default_factory=list)
    errors_truncated: bool = False


class QIndexBulkRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    q_indices: List[Dict[str, Any]] = Field(..., alias="qIndices")

    @field_validator("q_indices")
    def validate_not_empty(cls, value: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not value:
            raise ValueError("Please provide an array of Q-index records")
        return value
