"""
Local filesystem storage implementation.

Layout under the base path:

    <base_path>/<share>/.metadata      share record (JSON)
    <base_path>/<share>/<item>         item content
    <base_path>/<share>/<item>_huploadtemp   upload in progress

Uploads are written to a temporary file and renamed into place once the
quota checks pass, so a partially written item is never visible.
"""
import asyncio
import os
import shutil
from pathlib import Path
from typing import AsyncIterator

import aiofiles
import aiofiles.os
from pydantic import ValidationError

from sharebox.storage.base import CHUNK_SIZE, TEMP_SUFFIX, ItemData, StorageBackend
from sharebox.storage.exceptions import (
    InvalidItemNameError,
    ItemNotFoundError,
    ShareAlreadyExistsError,
    ShareNotFoundError,
)
from sharebox.storage.metadata import (
    METADATA_NAME,
    decode_share,
    encode_share,
    load_record,
    needs_upgrade,
    upgrade_record,
)
from sharebox.storage.models import Item, ItemInfo, Options, Share
from sharebox.storage.quota import bounded, check_written
from sharebox.storage.validators import clean_item_name, validate_share_name
from sharebox.utils.datetime import from_timestamp


class LocalStorageBackend(StorageBackend):
    """
    Filesystem storage with async file operations.

    One directory per share, one file per item and a .metadata file holding
    the share record. Aggregates are recomputed by rescanning the share
    directory after every item mutation.
    """

    def __init__(self, base_path: str, max_file_mb: int = 0, max_share_mb: int = 0):
        """
        Initialize local storage backend.

        Args:
            base_path: Root directory for shares
            max_file_mb: Maximum item size in MB, 0 for unlimited
            max_share_mb: Maximum share size in MB, 0 for unlimited

        Raises:
            ValueError: If no base path is provided
        """
        if not base_path:
            raise ValueError("base_path is required")
        super().__init__(max_file_mb=max_file_mb, max_share_mb=max_share_mb)
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    async def migrate(self) -> None:
        """
        Upgrade unversioned .metadata files to the current schema.

        Directories without metadata and unreadable records are skipped.
        Current records are not rewritten, so running this twice is a no-op
        the second time.
        """
        self.base_path.mkdir(parents=True, exist_ok=True)

        for share_dir in sorted(self.base_path.iterdir()):
            if not share_dir.is_dir():
                continue

            metadata_path = share_dir / METADATA_NAME
            async with self.locks.get(share_dir.name):
                try:
                    async with aiofiles.open(metadata_path, "rb") as f:
                        record = load_record(await f.read())
                except FileNotFoundError:
                    continue
                except ValueError as e:
                    self.logger.warning(
                        f"Skipping unreadable metadata for share {share_dir.name}: {str(e)}"
                    )
                    continue

                if not needs_upgrade(record):
                    continue

                try:
                    share = Share.model_validate(upgrade_record(record, name=share_dir.name))
                except ValueError as e:
                    self.logger.warning(f"Skipping share {share_dir.name}: {str(e)}")
                    continue
                await self._write_metadata(share_dir, share)
                self.logger.info(f"Migrated share {share.name} to version {share.version}")

    async def create_share(self, name: str, owner: str, options: Options) -> Share:
        validate_share_name(name)

        share_dir = self._share_path(name)
        try:
            await aiofiles.os.mkdir(share_dir)
        except FileExistsError:
            raise ShareAlreadyExistsError(name)

        share = Share(name=name, owner=owner, options=options)
        try:
            await self._write_metadata(share_dir, share)
        except Exception:
            shutil.rmtree(share_dir, ignore_errors=True)
            raise

        self.logger.info(f"Created share {name} for owner={owner!r}")
        return share

    async def update_share(self, name: str, options: Options) -> Options:
        validate_share_name(name)

        async with self.locks.get(name):
            share = await self.get_share(name)
            share.options = options
            await self._write_metadata(self._share_path(name), share)

        return share.options

    async def create_item(
        self,
        share: str,
        item: str,
        size: int,
        stream: AsyncIterator[bytes],
    ) -> Item:
        """
        Stream an item to disk through the quota-bounded reader.

        The content goes to <item>_huploadtemp first. The temporary file is
        renamed over the final path only if the transfer is non-empty and
        within quota; it is removed on every failure, including cancellation.
        """
        validate_share_name(share)
        item_name = self._clean_item_name(item)

        plan = await self.plan_upload(share, item_name, size)

        item_path = self._share_path(share) / item_name
        temp_path = item_path.with_name(item_path.name + TEMP_SUFFIX)

        written = 0
        try:
            async with aiofiles.open(temp_path, "wb") as f:
                async for chunk in bounded(stream, plan.read_limit):
                    written += len(chunk)
                    await f.write(chunk)

            check_written(plan, written)
            await aiofiles.os.replace(temp_path, item_path)
        except BaseException:
            self._remove_quietly(temp_path)
            raise

        await self._update_metadata(share)

        self.logger.info(f"Stored item {share}/{item_name} ({written} bytes)")
        return await self.get_item(share, item_name)

    async def delete_item(self, share: str, item: str) -> None:
        validate_share_name(share)
        item_name = self._clean_item_name(item)

        try:
            await aiofiles.os.remove(self._share_path(share) / item_name)
        except FileNotFoundError:
            raise ItemNotFoundError(share, item_name)

        await self._update_metadata(share)
        self.logger.info(f"Deleted item {share}/{item_name}")

    async def get_share(self, name: str) -> Share:
        validate_share_name(name)

        try:
            async with aiofiles.open(self._share_path(name) / METADATA_NAME, "rb") as f:
                data = await f.read()
        except (FileNotFoundError, NotADirectoryError):
            raise ShareNotFoundError(name)

        return decode_share(data)

    async def list_shares(self) -> list[Share]:
        """
        Return all shares, newest first.

        Directories that are not valid shares (bad name, missing or broken
        metadata) are skipped.
        """
        shares = []

        for share_dir in self.base_path.iterdir():
            if not share_dir.is_dir():
                continue
            try:
                shares.append(await self.get_share(share_dir.name))
            except ShareNotFoundError:
                continue
            except (ValueError, ValidationError) as e:
                self.logger.warning(f"Skipping share {share_dir.name}: {str(e)}")

        shares.sort(key=lambda s: s.date_created, reverse=True)
        return shares

    async def list_share(self, name: str) -> list[Item]:
        """
        Return the items of a share, most recently modified first.

        Dotfiles (including .metadata) and in-flight uploads are excluded.
        """
        validate_share_name(name)

        share_dir = self._share_path(name)
        if not share_dir.is_dir():
            raise ShareNotFoundError(name)

        items = []
        for entry in share_dir.iterdir():
            if not self._is_item_file(entry.name):
                continue
            try:
                stat = await aiofiles.os.stat(entry)
            except FileNotFoundError:
                # Deleted while listing
                continue
            items.append(self._item_from_stat(name, entry.name, stat))

        items.sort(key=lambda i: i.item_info.date_modified, reverse=True)
        return items

    async def delete_share(self, name: str) -> None:
        validate_share_name(name)

        share_dir = self._share_path(name)
        async with self.locks.get(name):
            if not share_dir.is_dir():
                raise ShareNotFoundError(name)
            await asyncio.to_thread(shutil.rmtree, share_dir)

        self.logger.info(f"Deleted share {name}")

    async def get_item(self, share: str, item: str) -> Item:
        validate_share_name(share)
        item_name = self._clean_item_name(item)

        try:
            stat = await aiofiles.os.stat(self._share_path(share) / item_name)
        except (FileNotFoundError, NotADirectoryError):
            raise ItemNotFoundError(share, item_name)

        return self._item_from_stat(share, item_name, stat)

    async def get_item_data(self, share: str, item: str) -> ItemData:
        validate_share_name(share)
        item_name = self._clean_item_name(item)

        try:
            f = await aiofiles.open(self._share_path(share) / item_name, "rb")
        except (FileNotFoundError, NotADirectoryError, IsADirectoryError):
            raise ItemNotFoundError(share, item_name)

        # Stat the open descriptor, a concurrent overwrite replaces the path
        try:
            stat = await aiofiles.os.stat(f.fileno())
        except BaseException:
            await f.close()
            raise

        return ItemData(self._item_from_stat(share, item_name, stat), self._read_chunks(f))

    def _share_path(self, name: str) -> Path:
        return self.base_path / name

    def _clean_item_name(self, item: str) -> str:
        item_name = clean_item_name(item)
        # Would be hidden from listings as an in-flight upload
        if item_name.endswith(TEMP_SUFFIX):
            raise InvalidItemNameError(item)
        return item_name

    @staticmethod
    def _is_item_file(name: str) -> bool:
        return not name.startswith(".") and not name.endswith(TEMP_SUFFIX)

    @staticmethod
    def _item_from_stat(share: str, item_name: str, stat: os.stat_result) -> Item:
        return Item(
            path=f"{share}/{item_name}",
            item_info=ItemInfo(
                size=stat.st_size,
                date_modified=from_timestamp(stat.st_mtime),
            ),
        )

    @staticmethod
    async def _read_chunks(f) -> AsyncIterator[bytes]:
        async with f:
            while True:
                chunk = await f.read(CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk

    async def _write_metadata(self, share_dir: Path, share: Share) -> None:
        """Atomically replace the .metadata file of a share."""
        metadata_path = share_dir / METADATA_NAME
        temp_path = share_dir / (METADATA_NAME + TEMP_SUFFIX)

        try:
            async with aiofiles.open(temp_path, "wb") as f:
                await f.write(encode_share(share))
            await aiofiles.os.replace(temp_path, metadata_path)
        except BaseException:
            self._remove_quietly(temp_path)
            raise

    async def _update_metadata(self, name: str) -> None:
        """
        Recompute size and count from the files present in the share.

        Runs under the share lock so concurrent mutations cannot interleave
        their read-modify-write of the metadata record.
        """
        share_dir = self._share_path(name)

        async with self.locks.get(name):
            share = await self.get_share(name)

            size = 0
            count = 0
            for entry in share_dir.iterdir():
                if not self._is_item_file(entry.name):
                    continue
                try:
                    stat = await aiofiles.os.stat(entry)
                except FileNotFoundError:
                    continue
                size += stat.st_size
                count += 1

            share.size = size
            share.count = count
            await self._write_metadata(share_dir, share)

    def _remove_quietly(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            self.logger.error(f"Failed to remove temporary file {path}: {str(e)}", exc_info=True)
