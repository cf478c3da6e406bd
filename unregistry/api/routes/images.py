"""
Image namespace API endpoints.

Images are gzipped `docker save` archives. Callers always address them
by bare name; the .tar.gz suffix is a storage detail that is stripped
from uploaded filenames and from listings, and re-added only in the
download filename.
"""

import asyncio
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from starlette.datastructures import UploadFile

from ...core.objects import IMAGE_SUFFIX, InvalidObjectNameError, Namespace, strip_image_suffix
from ...infrastructure.storage.client import ObjectNotFoundError, StorageError
from ..dependencies import ObjectStoreDep, SettingsDep, multipart_file
from ..responses import MessageResponse, download_response

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class ImageUploadResponse(BaseModel):
    """Response after storing an image archive."""
    message: str = Field(description="Status message")
    image_name: str = Field(description="Image name, without the .tar.gz suffix")


class ImageListResponse(BaseModel):
    """All stored image names, suffix stripped."""
    images: list[str] = Field(description="Stored image names")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/upload",
    response_model=ImageUploadResponse,
    status_code=status.HTTP_200_OK,
    summary="Upload an image archive",
    description="Store the multipart field `image`; a trailing .tar.gz on the filename is dropped",
)
async def upload_image(
    upload: Annotated[UploadFile, Depends(multipart_file("image"))],
    storage: ObjectStoreDep,
) -> ImageUploadResponse:
    image_name = strip_image_suffix(upload.filename)

    try:
        await asyncio.to_thread(storage.put, Namespace.IMAGE, image_name, upload.file)
    except InvalidObjectNameError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except StorageError as e:
        logger.error(
            "Failed to save image",
            extra={"object_name": image_name, "error": str(e)}
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save image",
        )

    logger.info("Image uploaded", extra={"object_name": image_name})

    return ImageUploadResponse(message="Image uploaded successfully", image_name=image_name)


@router.get(
    "/download/{name}",
    response_class=StreamingResponse,
    summary="Download an image archive",
    description="Stream the gzipped image archive as <name>.tar.gz",
)
async def download_image(
    name: str,
    storage: ObjectStoreDep,
    settings: SettingsDep,
) -> StreamingResponse:
    try:
        obj = await asyncio.to_thread(storage.get, Namespace.IMAGE, name)
    except InvalidObjectNameError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ObjectNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found")
    except StorageError as e:
        logger.error(
            "Failed to open image",
            extra={"object_name": name, "error": str(e)}
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to download image",
        )

    return download_response(obj, name + IMAGE_SUFFIX, settings.upload_chunk_size)


@router.get(
    "/list",
    response_model=ImageListResponse,
    summary="List images",
)
async def list_images(storage: ObjectStoreDep) -> ImageListResponse:
    try:
        images = await asyncio.to_thread(storage.list, Namespace.IMAGE)
    except StorageError as e:
        logger.error("Failed to list images", extra={"error": str(e)})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list images",
        )

    return ImageListResponse(images=images)


@router.delete(
    "/{name}",
    response_model=MessageResponse,
    summary="Delete an image",
)
async def delete_image(name: str, storage: ObjectStoreDep) -> MessageResponse:
    try:
        await asyncio.to_thread(storage.delete, Namespace.IMAGE, name)
    except InvalidObjectNameError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ObjectNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found")
    except StorageError as e:
        logger.error(
            "Failed to delete image",
            extra={"object_name": name, "error": str(e)}
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete image",
        )

    logger.info("Image deleted", extra={"object_name": name})

    return MessageResponse(message="Image deleted successfully")
