"""
File namespace API endpoints.

Plain named blobs: upload, download, list, delete. Every route is
mounted behind the bearer token gate (see main.create_app), so
handlers only translate between HTTP and the object store.

Storage calls block on disk I/O, so they run in a worker thread.
"""

import asyncio
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from starlette.datastructures import UploadFile

from ...core.objects import InvalidObjectNameError, Namespace
from ...infrastructure.storage.client import ObjectNotFoundError, StorageError
from ..dependencies import ObjectStoreDep, SettingsDep, multipart_file
from ..responses import MessageResponse, download_response

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class FileUploadResponse(BaseModel):
    """Response after storing a file."""
    message: str = Field(description="Status message")
    filename: str = Field(description="Name the file was stored under")


class FileListResponse(BaseModel):
    """All stored file names, in directory order."""
    files: list[str] = Field(description="Stored file names")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/upload",
    response_model=FileUploadResponse,
    status_code=status.HTTP_200_OK,
    summary="Upload a file",
    description="Store the multipart field `file` under its filename, replacing any existing file",
)
async def upload_file(
    upload: Annotated[UploadFile, Depends(multipart_file("file"))],
    storage: ObjectStoreDep,
) -> FileUploadResponse:
    filename = upload.filename

    try:
        await asyncio.to_thread(storage.put, Namespace.FILE, filename, upload.file)
    except InvalidObjectNameError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except StorageError as e:
        logger.error(
            "Failed to save file",
            extra={"object_name": filename, "error": str(e)}
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save file",
        )

    logger.info("File uploaded", extra={"object_name": filename})

    return FileUploadResponse(message="File uploaded successfully", filename=filename)


@router.get(
    "/download/{filename}",
    response_class=StreamingResponse,
    summary="Download a file",
    description="Stream the raw bytes of a stored file as an attachment",
)
async def download_file(
    filename: str,
    storage: ObjectStoreDep,
    settings: SettingsDep,
) -> StreamingResponse:
    try:
        obj = await asyncio.to_thread(storage.get, Namespace.FILE, filename)
    except InvalidObjectNameError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ObjectNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    except StorageError as e:
        logger.error(
            "Failed to open file",
            extra={"object_name": filename, "error": str(e)}
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to download file",
        )

    logger.debug("Streaming file", extra={"object_name": filename, "size_bytes": obj.size})

    return download_response(obj, filename, settings.upload_chunk_size)


@router.get(
    "/list",
    response_model=FileListResponse,
    summary="List files",
)
async def list_files(storage: ObjectStoreDep) -> FileListResponse:
    try:
        files = await asyncio.to_thread(storage.list, Namespace.FILE)
    except StorageError as e:
        logger.error("Failed to list files", extra={"error": str(e)})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list files",
        )

    return FileListResponse(files=files)


@router.delete(
    "/{filename}",
    response_model=MessageResponse,
    summary="Delete a file",
)
async def delete_file(filename: str, storage: ObjectStoreDep) -> MessageResponse:
    try:
        await asyncio.to_thread(storage.delete, Namespace.FILE, filename)
    except InvalidObjectNameError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ObjectNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    except StorageError as e:
        logger.error(
            "Failed to delete file",
            extra={"object_name": filename, "error": str(e)}
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete file",
        )

    logger.info("File deleted", extra={"object_name": filename})

    return MessageResponse(message="File deleted successfully")
