"""
Shared response models and helpers for the object routes.
"""

from urllib.parse import quote

from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from ..core.objects import StoredObject


class MessageResponse(BaseModel):
    """Plain acknowledgement envelope."""
    message: str = Field(description="Status message")


def content_disposition(filename: str) -> str:
    """
    Build an attachment Content-Disposition header value.

    Non-ASCII names get an RFC 5987 filename* parameter since header
    values are encoded as latin-1 on the wire.
    """
    try:
        filename.encode("ascii")
    except UnicodeEncodeError:
        return f"attachment; filename*=UTF-8''{quote(filename, safe='')}"

    escaped = filename.replace("\\", "\\\\").replace('"', '\\"')
    return f'attachment; filename="{escaped}"'


def download_response(
    obj: StoredObject,
    filename: str,
    chunk_size: int,
) -> StreamingResponse:
    """
    Stream a stored object back to the client.

    Content-Length is taken from the size observed when the object was
    opened, so clients can show download progress.
    """
    return StreamingResponse(
        obj.iter_chunks(chunk_size),
        media_type="application/octet-stream",
        headers={
            "Content-Disposition": content_disposition(filename),
            "Content-Length": str(obj.size),
        },
    )
