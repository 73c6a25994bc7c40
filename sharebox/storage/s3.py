"""
S3-compatible object store implementation.

Key layout in the bucket:

    shares/<share>/.metadata    share record (JSON)
    <share>/<item>              item content

boto3 is synchronous, so every call runs in a worker thread. Uploads are
spooled (in memory, then on disk past S3_SPOOL_MAX_MB) while they go through
the quota-bounded reader and are only sent to the bucket once they are known
to fit, so an oversized upload never creates an object.
"""
import asyncio
from typing import Any, AsyncIterator, Optional

import aiofiles.tempfile
import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from sharebox.storage.base import CHUNK_SIZE, ItemData, StorageBackend
from sharebox.storage.exceptions import (
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
from sharebox.storage.quota import bounded, check_written, mb_to_bytes
from sharebox.storage.validators import (
    clean_item_name,
    is_share_name_safe,
    validate_share_name,
)
from sharebox.utils.datetime import ensure_aware

SHARES_PREFIX = "shares/"

NOT_FOUND_CODES = {"NoSuchKey", "NotFound", "404"}
BUCKET_EXISTS_CODES = {"BucketAlreadyOwnedByYou", "BucketAlreadyExists"}


def _is_not_found(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") in NOT_FOUND_CODES


def metadata_key(share: str) -> str:
    return f"{SHARES_PREFIX}{share}/{METADATA_NAME}"


def item_key(share: str, item: str) -> str:
    return f"{share}/{item}"


class S3StorageBackend(StorageBackend):
    """S3-compatible storage adapter (AWS S3, MinIO, LocalStack, ...)"""

    def __init__(
        self,
        bucket_name: str,
        region: str = "us-east-1",
        endpoint_url: Optional[str] = None,
        aws_access_key: Optional[str] = None,
        aws_secret_key: Optional[str] = None,
        max_file_mb: int = 0,
        max_share_mb: int = 0,
        spool_max_mb: int = 8,
        client: Any = None,
    ):
        """
        Initialize S3 client.

        Args:
            bucket_name: Bucket holding shares and items
            region: Bucket region
            endpoint_url: Endpoint of an S3-compatible store, None for AWS
            aws_access_key: Access key, None to use the default credential chain
            aws_secret_key: Secret key, None to use the default credential chain
            max_file_mb: Maximum item size in MB, 0 for unlimited
            max_share_mb: Maximum share size in MB, 0 for unlimited
            spool_max_mb: Upload size kept in memory before spooling to disk
            client: Preconfigured S3 client, mainly for tests
        """
        if not bucket_name:
            raise ValueError("bucket_name is required")
        super().__init__(max_file_mb=max_file_mb, max_share_mb=max_share_mb)

        self.bucket_name = bucket_name
        self.region = region
        self.spool_max_bytes = mb_to_bytes(spool_max_mb)

        if client is None:
            client_kwargs = {"region_name": region}

            if aws_access_key and aws_secret_key:
                client_kwargs["aws_access_key_id"] = aws_access_key
                client_kwargs["aws_secret_access_key"] = aws_secret_key

            # S3-compatible stores are usually addressed path-style
            if endpoint_url:
                client_kwargs["endpoint_url"] = endpoint_url
                client_kwargs["config"] = Config(s3={"addressing_style": "path"})

            client = boto3.client("s3", **client_kwargs)

        self.s3_client = client

    async def migrate(self) -> None:
        """Create the bucket if needed and upgrade unversioned share records."""
        await asyncio.to_thread(self._ensure_bucket)

        for key in await self._list_metadata_keys():
            name = key[len(SHARES_PREFIX):].split("/", 1)[0]

            async with self.locks.get(name):
                try:
                    record = load_record(await self._get_bytes(key))
                except ValueError as e:
                    self.logger.warning(f"Skipping unreadable metadata for share {name}: {str(e)}")
                    continue

                if not needs_upgrade(record):
                    continue

                try:
                    share = Share.model_validate(upgrade_record(record, name=name))
                except ValueError as e:
                    self.logger.warning(f"Skipping share {name}: {str(e)}")
                    continue
                await self._put_metadata(share)
                self.logger.info(f"Migrated share {share.name} to version {share.version}")

    async def create_share(self, name: str, owner: str, options: Options) -> Share:
        validate_share_name(name)

        async with self.locks.get(name):
            # Any record under the key counts, even one that does not decode
            if await self._exists(metadata_key(name)):
                raise ShareAlreadyExistsError(name)

            share = Share(name=name, owner=owner, options=options)
            await self._put_metadata(share)

        self.logger.info(f"Created share {name} for owner={owner!r}")
        return share

    async def update_share(self, name: str, options: Options) -> Options:
        validate_share_name(name)

        async with self.locks.get(name):
            share = await self.get_share(name)
            share.options = options
            await self._put_metadata(share)

        return share.options

    async def create_item(
        self,
        share: str,
        item: str,
        size: int,
        stream: AsyncIterator[bytes],
    ) -> Item:
        validate_share_name(share)
        item_name = clean_item_name(item)

        plan = await self.plan_upload(share, item_name, size)

        async with aiofiles.tempfile.SpooledTemporaryFile(max_size=self.spool_max_bytes) as spool:
            written = 0
            async for chunk in bounded(stream, plan.read_limit):
                written += len(chunk)
                await spool.write(chunk)

            check_written(plan, written)

            await spool.seek(0)
            # boto3 reads the wrapped synchronous file from its own thread
            await asyncio.to_thread(
                self.s3_client.upload_fileobj,
                spool._file,
                self.bucket_name,
                item_key(share, item_name),
            )

        await self._update_metadata(share)

        self.logger.info(f"Stored item {share}/{item_name} ({written} bytes)")
        return await self.get_item(share, item_name)

    async def delete_item(self, share: str, item: str) -> None:
        # Raises ItemNotFoundError, S3 deletes are idempotent
        existing = await self.get_item(share, item)

        await asyncio.to_thread(
            self.s3_client.delete_object,
            Bucket=self.bucket_name,
            Key=existing.path,
        )

        await self._update_metadata(share)
        self.logger.info(f"Deleted item {existing.path}")

    async def get_share(self, name: str) -> Share:
        validate_share_name(name)

        try:
            data = await self._get_bytes(metadata_key(name))
        except ClientError as e:
            if _is_not_found(e):
                raise ShareNotFoundError(name)
            raise

        return decode_share(data)

    async def list_shares(self) -> list[Share]:
        shares = []

        for key in await self._list_metadata_keys():
            try:
                shares.append(decode_share(await self._get_bytes(key)))
            except ClientError as e:
                # Deleted while listing
                if _is_not_found(e):
                    continue
                raise
            except ValueError as e:
                self.logger.warning(f"Skipping share metadata {key}: {str(e)}")

        shares.sort(key=lambda s: s.date_created, reverse=True)
        return shares

    async def list_share(self, name: str) -> list[Item]:
        # Raises ShareNotFoundError
        await self.get_share(name)

        prefix = f"{name}/"
        items = []
        for obj in await self._list_objects(prefix):
            item_name = obj["Key"][len(prefix):]
            if not item_name or "/" in item_name or item_name.startswith("."):
                continue
            items.append(
                Item(
                    path=obj["Key"],
                    item_info=ItemInfo(
                        size=obj["Size"],
                        date_modified=ensure_aware(obj["LastModified"]),
                    ),
                )
            )

        items.sort(key=lambda i: i.item_info.date_modified, reverse=True)
        return items

    async def delete_share(self, name: str) -> None:
        """
        Delete every item of the share, then its metadata.

        There is no rollback: a failure part way leaves the share with the
        remaining items and its metadata in place.
        """
        validate_share_name(name)

        async with self.locks.get(name):
            items = await self.list_share(name)
            for item in items:
                await asyncio.to_thread(
                    self.s3_client.delete_object,
                    Bucket=self.bucket_name,
                    Key=item.path,
                )

            await asyncio.to_thread(
                self.s3_client.delete_object,
                Bucket=self.bucket_name,
                Key=metadata_key(name),
            )

        self.logger.info(f"Deleted share {name} ({len(items)} items)")

    async def get_item(self, share: str, item: str) -> Item:
        validate_share_name(share)
        item_name = clean_item_name(item)
        key = item_key(share, item_name)

        try:
            head = await asyncio.to_thread(
                self.s3_client.head_object,
                Bucket=self.bucket_name,
                Key=key,
            )
        except ClientError as e:
            if _is_not_found(e):
                raise ItemNotFoundError(share, item_name)
            raise

        return Item(
            path=key,
            item_info=ItemInfo(
                size=head["ContentLength"],
                date_modified=ensure_aware(head["LastModified"]),
            ),
        )

    async def get_item_data(self, share: str, item: str) -> ItemData:
        validate_share_name(share)
        item_name = clean_item_name(item)
        key = item_key(share, item_name)

        try:
            response = await asyncio.to_thread(
                self.s3_client.get_object,
                Bucket=self.bucket_name,
                Key=key,
            )
        except ClientError as e:
            if _is_not_found(e):
                raise ItemNotFoundError(share, item_name)
            raise

        item_info = ItemInfo(
            size=response["ContentLength"],
            date_modified=ensure_aware(response["LastModified"]),
        )
        return ItemData(
            Item(path=key, item_info=item_info),
            self._read_chunks(response["Body"]),
        )

    @staticmethod
    async def _read_chunks(body) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await asyncio.to_thread(body.read, CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk
        finally:
            body.close()

    async def _update_metadata(self, name: str) -> None:
        """Recompute size and count from the objects under the share prefix."""
        async with self.locks.get(name):
            items = await self.list_share(name)
            share = await self.get_share(name)

            share.size = sum(item.item_info.size for item in items)
            share.count = len(items)
            await self._put_metadata(share)

    async def _put_metadata(self, share: Share) -> None:
        await asyncio.to_thread(
            self.s3_client.put_object,
            Bucket=self.bucket_name,
            Key=metadata_key(share.name),
            Body=encode_share(share),
            ContentType="application/json",
        )

    async def _exists(self, key: str) -> bool:
        try:
            await asyncio.to_thread(
                self.s3_client.head_object,
                Bucket=self.bucket_name,
                Key=key,
            )
        except ClientError as e:
            if _is_not_found(e):
                return False
            raise
        return True

    async def _get_bytes(self, key: str) -> bytes:
        def _get():
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=key)
            with response["Body"] as body:
                return body.read()

        return await asyncio.to_thread(_get)

    async def _list_objects(self, prefix: str) -> list[dict]:
        def _list():
            paginator = self.s3_client.get_paginator("list_objects_v2")
            objects = []
            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
                objects.extend(page.get("Contents", []))
            return objects

        return await asyncio.to_thread(_list)

    async def _list_metadata_keys(self) -> list[str]:
        """Return keys shaped shares/<name>/.metadata with a safe share name."""
        keys = []
        for obj in await self._list_objects(SHARES_PREFIX):
            parts = obj["Key"][len(SHARES_PREFIX):].split("/")
            if len(parts) == 2 and parts[1] == METADATA_NAME and is_share_name_safe(parts[0]):
                keys.append(obj["Key"])
        return keys

    def _ensure_bucket(self) -> None:
        kwargs = {"Bucket": self.bucket_name}
        # us-east-1 rejects an explicit location constraint
        if self.region and self.region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self.region}

        try:
            self.s3_client.create_bucket(**kwargs)
            self.logger.info(f"Created bucket {self.bucket_name}")
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") not in BUCKET_EXISTS_CODES:
                raise
