"""
Dependencies shared by the route modules.

- the bearer token gate, attached to the /api routers
- the object store built at startup
- the settings in effect (overridable per app)
- extraction of a single file field from a multipart body

Routes declare what they need through the Annotated aliases at the
bottom and never construct any of these themselves.
"""

import logging
import secrets
from typing import Annotated, AsyncGenerator, Callable

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader
from starlette.datastructures import UploadFile
from starlette.requests import ClientDisconnect

from ..config.settings import Settings, get_settings
from ..infrastructure.storage.client import ObjectStore

logger = logging.getLogger(__name__)

# Read the raw header; the Bearer scheme is parsed strictly below
authorization_header = APIKeyHeader(name="Authorization", auto_error=False)

BEARER_SCHEME = "Bearer"


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": BEARER_SCHEME},
    )


async def verify_bearer_token(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
    authorization: str = Security(authorization_header),
) -> str:
    """
    Validate the bearer token from the Authorization header.

    The header must be exactly "Bearer <token>": split once on a space,
    scheme matched case-sensitively, value compared in constant time
    against the configured token.

    Raises 401 if the header is missing, malformed, or wrong. Attached
    at router level so it runs before any handler or storage call.
    """
    if not authorization:
        logger.warning(
            "Request missing Authorization header",
            extra={"path": request.url.path}
        )
        raise _unauthorized("Authorization header required")

    scheme, sep, token = authorization.partition(" ")
    if not sep or scheme != BEARER_SCHEME:
        logger.warning(
            "Malformed Authorization header",
            extra={"path": request.url.path}
        )
        raise _unauthorized("Invalid authorization format")

    if not secrets.compare_digest(token.encode("utf-8"), settings.token.encode("utf-8")):
        logger.warning(
            "Invalid token attempt",
            extra={"path": request.url.path}
        )
        raise _unauthorized("Invalid token")

    return token


# ---------------------------------------------------------------------------
# Service Dependencies
# ---------------------------------------------------------------------------

def get_object_store(request: Request) -> ObjectStore:
    """
    Provide the object store created at startup.

    The store is built once in the application lifespan so namespace
    directories are created a single time, then shared by every request.
    """
    return request.app.state.object_store


def multipart_file(field_name: str) -> Callable[[Request], AsyncGenerator[UploadFile, None]]:
    """
    Build a dependency that extracts one file field from a multipart body.

    Parsing happens inside the dependency (not through a File() parameter)
    so the body is only read after the token gate has passed. Malformed
    bodies surface as 400 from Starlette's form parser; a missing field
    is a 400 too. A client that disconnects mid-body (an aborted upload)
    is logged as a warning and answered with 400; nothing is stored.
    Spooled temporary files are released after the response.
    """

    async def dependency(request: Request) -> AsyncGenerator[UploadFile, None]:
        try:
            form = await request.form()
        except ClientDisconnect:
            logger.warning(
                "Client disconnected during upload",
                extra={"path": request.url.path, "field": field_name}
            )
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Upload body incomplete",
            )

        try:
            upload = form.get(field_name)
            if not isinstance(upload, UploadFile) or not upload.filename:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Failed to get {field_name} from request",
                )
            yield upload
        finally:
            await form.close()

    return dependency


# ---------------------------------------------------------------------------
# Type Aliases
# ---------------------------------------------------------------------------

# Used in route signatures
ObjectStoreDep = Annotated[ObjectStore, Depends(get_object_store)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
