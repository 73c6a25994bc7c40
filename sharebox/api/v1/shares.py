"""
Share and item API endpoints.

Authenticated users manage shares; anonymous callers can only see the public
projection of a share and upload or download items when the share exposure
allows it. Storage errors are not handled here: they propagate to the
exception handler in sharebox.main, which maps them to status codes.
"""
import asyncio
import tempfile
import zipfile
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from sharebox.config import settings
from sharebox.dependencies.auth import get_current_user, require_user
from sharebox.dependencies.storage import get_storage
from sharebox.logging_config import setup_logging
from sharebox.schemas.common import APIResponse
from sharebox.schemas.shares import MessageResponseData, ShareOptionsRequest
from sharebox.storage.base import CHUNK_SIZE, StorageBackend
from sharebox.storage.models import (
    Item,
    Options,
    PublicShare,
    Share,
    public_share,
    public_shares,
)
from sharebox.utils.codes import generate_code

router = APIRouter(tags=["shares"])

logger = setup_logging()


def _default_options() -> Options:
    return Options.default(settings.DEFAULT_VALIDITY_DAYS)


def _error(status_code: int, error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={"success": False, "error": error, "message": message},
    )


def _check_not_expired(share: Share, user: str) -> None:
    if not user and not share.is_valid():
        raise _error(status.HTTP_410_GONE, "Gone", "Share expired")


def _check_owner(share: Share, user: str) -> None:
    if settings.HIDE_OTHER_SHARES and share.owner != user:
        raise _error(status.HTTP_403_FORBIDDEN, "Forbidden", "Share belongs to another user")


def _attachment(filename: str) -> str:
    return f"attachment; filename*=UTF-8''{quote(filename)}"


@router.get(
    "/defaults",
    response_model=APIResponse[Options],
    status_code=status.HTTP_200_OK,
)
def get_defaults():
    """Return the options applied to new shares when none are given."""
    return APIResponse(data=_default_options())


@router.get("/shares", response_model=None, status_code=status.HTTP_200_OK)
async def list_shares(
    user: str = Depends(get_current_user),
    storage: StorageBackend = Depends(get_storage),
):
    """
    List shares, newest first.

    Anonymous callers only get the public projection of each share. When
    HIDE_OTHER_SHARES is enabled, users only see their own shares.
    """
    shares = await storage.list_shares()

    if settings.HIDE_OTHER_SHARES:
        shares = [share for share in shares if share.owner == user]

    if not user:
        return APIResponse[list[PublicShare]](data=public_shares(shares))
    return APIResponse[list[Share]](data=shares)


@router.post(
    "/shares",
    response_model=APIResponse[Share],
    status_code=status.HTTP_201_CREATED,
)
async def create_share_with_code(
    body: ShareOptionsRequest | None = None,
    user: str = Depends(require_user),
    storage: StorageBackend = Depends(get_storage),
):
    """Create a share named with a freshly generated share code."""
    options = (body or ShareOptionsRequest()).to_options(_default_options())
    share = await storage.create_share(generate_code(), user, options)
    return APIResponse(data=share)


@router.put(
    "/shares/{share}",
    response_model=APIResponse[Share],
    status_code=status.HTTP_201_CREATED,
)
async def create_share(
    share: str,
    body: ShareOptionsRequest | None = None,
    user: str = Depends(require_user),
    storage: StorageBackend = Depends(get_storage),
):
    """Create a share with an explicit name."""
    options = (body or ShareOptionsRequest()).to_options(_default_options())
    created = await storage.create_share(share, user, options)
    return APIResponse(data=created)


@router.get("/shares/{share}", response_model=None, status_code=status.HTTP_200_OK)
async def get_share(
    share: str,
    user: str = Depends(get_current_user),
    storage: StorageBackend = Depends(get_storage),
):
    """
    Return a share.

    Anonymous callers get the public projection, or 410 if the share has
    expired.
    """
    result = await storage.get_share(share)
    _check_not_expired(result, user)

    if not user:
        return APIResponse[PublicShare](data=public_share(result))
    return APIResponse[Share](data=result)


@router.patch(
    "/shares/{share}",
    response_model=APIResponse[Options],
    status_code=status.HTTP_200_OK,
)
async def update_share(
    share: str,
    body: ShareOptionsRequest,
    user: str = Depends(require_user),
    storage: StorageBackend = Depends(get_storage),
):
    """Replace the options of a share. Omitted fields are reset."""
    existing = await storage.get_share(share)
    _check_owner(existing, user)

    options = await storage.update_share(share, body.to_options(Options()))
    return APIResponse(data=options)


@router.delete(
    "/shares/{share}",
    response_model=APIResponse[MessageResponseData],
    status_code=status.HTTP_200_OK,
)
async def delete_share(
    share: str,
    user: str = Depends(require_user),
    storage: StorageBackend = Depends(get_storage),
):
    existing = await storage.get_share(share)
    _check_owner(existing, user)

    await storage.delete_share(share)
    logger.info(f"Share {share} deleted by {user}")
    return APIResponse(data=MessageResponseData(message="share deleted"))


@router.get(
    "/shares/{share}/items",
    response_model=APIResponse[list[Item]],
    status_code=status.HTTP_200_OK,
)
async def list_share_items(
    share: str,
    user: str = Depends(get_current_user),
    storage: StorageBackend = Depends(get_storage),
):
    """List the items of a share, most recently modified first."""
    existing = await storage.get_share(share)
    _check_not_expired(existing, user)

    items = await storage.list_share(share)
    return APIResponse(data=items)


@router.post(
    "/shares/{share}/items/{item}",
    response_model=APIResponse[Item],
    status_code=status.HTTP_201_CREATED,
)
async def upload_item(
    share: str,
    item: str,
    request: Request,
    user: str = Depends(get_current_user),
    storage: StorageBackend = Depends(get_storage),
):
    """
    Upload an item from the raw request body.

    The body is streamed to the storage backend without being buffered.
    Content-Length is required so oversized uploads can be refused before
    any byte is transferred. An existing item with the same name is replaced.

    **Anonymous callers:** allowed while the share is valid and its exposure
    is "upload" or "both".
    """
    existing = await storage.get_share(share)

    if not user:
        _check_not_expired(existing, user)
        if not existing.options.allows_anonymous_upload:
            raise _error(status.HTTP_401_UNAUTHORIZED, "Unauthorized", "Uploads require authentication")

    content_length = request.headers.get("content-length")
    if content_length is None:
        raise _error(status.HTTP_400_BAD_REQUEST, "Bad Request", "Missing Content-Length")
    try:
        size = int(content_length)
    except ValueError:
        raise _error(status.HTTP_400_BAD_REQUEST, "Bad Request", "Invalid Content-Length")

    stored = await storage.create_item(share, item, size, request.stream())
    return APIResponse(data=stored)


@router.get("/shares/{share}/items/{item}", status_code=status.HTTP_200_OK)
async def download_item(
    share: str,
    item: str,
    user: str = Depends(get_current_user),
    storage: StorageBackend = Depends(get_storage),
):
    """
    Stream an item back to the caller.

    **Anonymous callers:** allowed while the share is valid and its exposure
    is "download" or "both".
    """
    existing = await storage.get_share(share)

    if not user:
        _check_not_expired(existing, user)
        if not existing.options.allows_anonymous_download:
            raise _error(status.HTTP_401_UNAUTHORIZED, "Unauthorized", "Downloads require authentication")

    data = await storage.get_item_data(share, item)

    return StreamingResponse(
        data,
        media_type="application/octet-stream",
        headers={
            "Content-Length": str(data.item.item_info.size),
            "Content-Disposition": _attachment(data.item.name),
        },
    )


@router.delete(
    "/shares/{share}/items/{item}",
    response_model=APIResponse[MessageResponseData],
    status_code=status.HTTP_200_OK,
)
async def delete_item(
    share: str,
    item: str,
    user: str = Depends(require_user),
    storage: StorageBackend = Depends(get_storage),
):
    await storage.delete_item(share, item)
    return APIResponse(data=MessageResponseData(message="item deleted"))


@router.get("/shares/{share}/download", status_code=status.HTTP_200_OK)
async def download_share(
    share: str,
    user: str = Depends(get_current_user),
    storage: StorageBackend = Depends(get_storage),
):
    """
    Download every item of a share as a single zip archive.

    The archive is assembled in a spooled temporary file (memory first,
    then disk) before being streamed. Compression runs in worker threads.
    """
    existing = await storage.get_share(share)

    if not user:
        _check_not_expired(existing, user)
        if not existing.options.allows_anonymous_download:
            raise _error(status.HTTP_401_UNAUTHORIZED, "Unauthorized", "Downloads require authentication")

    items = await storage.list_share(share)

    spool = tempfile.SpooledTemporaryFile(max_size=8 * 1024 * 1024)
    try:
        archive = zipfile.ZipFile(spool, "w", compression=zipfile.ZIP_DEFLATED)
        try:
            for item in items:
                data = await storage.get_item_data(share, item.name)
                entry = await asyncio.to_thread(archive.open, item.name, "w")
                try:
                    async for chunk in data:
                        await asyncio.to_thread(entry.write, chunk)
                finally:
                    await asyncio.to_thread(entry.close)
        finally:
            await asyncio.to_thread(archive.close)
        spool.seek(0)
    except BaseException:
        spool.close()
        raise

    def iter_archive():
        with spool:
            while True:
                chunk = spool.read(CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk

    return StreamingResponse(
        iter_archive(),
        media_type="application/zip",
        headers={"Content-Disposition": _attachment(f"{share}.zip")},
    )
