from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

from sharebox.api.v1.router import router as v1_router
from sharebox.config import settings
from sharebox.dependencies.storage import build_storage
from sharebox.logging_config import setup_logging
from sharebox.schemas.common import ErrorResponse
from sharebox.storage.base import StorageBackend
from sharebox.storage.exceptions import (
    EmptyItemError,
    InvalidItemNameError,
    InvalidShareNameError,
    ItemNotFoundError,
    MaxFileSizeReachedError,
    MaxShareSizeReachedError,
    ShareAlreadyExistsError,
    ShareNotFoundError,
    StorageError,
)

# Setup application logging
logger = setup_logging()

# Status code and error label returned for each storage error
STORAGE_ERROR_STATUS: dict[type[StorageError], tuple[int, str]] = {
    InvalidShareNameError: (status.HTTP_400_BAD_REQUEST, "Bad Request"),
    InvalidItemNameError: (status.HTTP_400_BAD_REQUEST, "Bad Request"),
    EmptyItemError: (status.HTTP_400_BAD_REQUEST, "Bad Request"),
    ShareNotFoundError: (status.HTTP_404_NOT_FOUND, "Not Found"),
    ItemNotFoundError: (status.HTTP_404_NOT_FOUND, "Not Found"),
    ShareAlreadyExistsError: (status.HTTP_409_CONFLICT, "Conflict"),
    MaxShareSizeReachedError: (status.HTTP_507_INSUFFICIENT_STORAGE, "Insufficient Storage"),
    MaxFileSizeReachedError: (status.HTTP_507_INSUFFICIENT_STORAGE, "Insufficient Storage"),
}


def create_app(storage: StorageBackend | None = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        storage: Backend to serve, built from settings at startup if None

    Returns:
        Configured FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "storage", None) is None:
            app.state.storage = build_storage(settings)

        # Give the backend a chance to upgrade data written by older releases
        await app.state.storage.migrate()
        logger.info(f"Storage ready: {app.state.storage.__class__.__name__}")
        yield

    app = FastAPI(title="sharebox", lifespan=lifespan)
    app.state.storage = storage

    app.include_router(v1_router, prefix="/api/v1")

    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(StorageError)(storage_exception_handler)
    app.exception_handler(Exception)(generic_exception_handler)

    return app


async def http_exception_handler(request: Request, exc: HTTPException):
    """Unwrap the 'detail' field from HTTPException responses."""
    content = exc.detail

    if isinstance(content, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content=content
        )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": "Unauthorized" if exc.status_code == 401 else "Error",
            "message": content
        }
    )


async def storage_exception_handler(request: Request, exc: StorageError):
    """Map sentinel storage errors to HTTP status codes."""
    for cls in type(exc).__mro__:
        if cls in STORAGE_ERROR_STATUS:
            status_code, error = STORAGE_ERROR_STATUS[cls]
            break
    else:
        return await generic_exception_handler(request, exc)

    logger.warning(
        f"{request.method} {request.url.path} failed: {exc.__class__.__name__}: {str(exc)}"
    )

    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, message=str(exc)).model_dump(),
    )


async def generic_exception_handler(request: Request, exc: Exception):
    # Log detailed error for debugging (includes stack trace)
    logger.error(
        f"Unhandled exception: {exc.__class__.__name__}: {str(exc)}",
        exc_info=True,
        extra={
            "path": request.url.path,
            "method": request.method,
        },
    )

    # Return safe, static message to client (no internal details exposed)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "message": "An unexpected error occurred",
        },
    )


app = create_app()
