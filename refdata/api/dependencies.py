"""
Shared helpers for the API routers.
"""
from typing import Optional

from fastapi import HTTPException, UploadFile

from refdata.core.config import settings

MAX_UPLOAD_BYTES = settings.upload_max_file_size_mb * 1024 * 1024


def _ensure_within_size_limit(file_size: int, file_name: Optional[str]) -> None:
    """Raise 413 when an upload exceeds the configured limit."""
    if file_size > MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=413,
            detail=(
                f"File '{file_name}' is too large ({file_size / (1024 * 1024):.1f}MB). "
                f"Maximum allowed upload size is {settings.upload_max_file_size_mb}MB."
            ),
        )


async def read_upload(file: Optional[UploadFile]) -> bytes:
    """
    Return the uploaded bytes after presence and size checks.

    Raises:
        HTTPException: 400 when no file was sent, 413 when it is too large.
    """
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    file_content = await file.read()
    _ensure_within_size_limit(len(file_content), file.filename)
    return file_content

