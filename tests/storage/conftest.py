"""
Conftest for storage tests.

FakeS3Client is an in-memory stand-in for the subset of the boto3 S3 client
used by S3StorageBackend, so object store tests run without a bucket.
"""
import io
import threading
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from botocore.exceptions import ClientError

from sharebox.storage.local import LocalStorageBackend
from sharebox.storage.s3 import S3StorageBackend


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class FakePaginator:
    def __init__(self, client, page_size: int):
        self.client = client
        self.page_size = page_size

    def paginate(self, Bucket: str, Prefix: str = ""):
        with self.client._lock:
            snapshot = [
                {"Key": key, "Size": len(body), "LastModified": modified}
                for key, (body, modified) in sorted(self.client._objects_in(Bucket).items())
                if key.startswith(Prefix)
            ]
        if not snapshot:
            yield {"KeyCount": 0}
        for start in range(0, len(snapshot), self.page_size):
            contents = snapshot[start:start + self.page_size]
            yield {"Contents": contents, "KeyCount": len(contents)}


class FakeS3Client:
    """Thread-safe in-memory S3 client."""

    def __init__(self, page_size: int = 2):
        self.buckets: dict[str, dict[str, tuple[bytes, datetime]]] = {}
        self.page_size = page_size
        self.calls: list[str] = []
        self._lock = threading.Lock()
        self._clock = datetime(2024, 9, 1, tzinfo=timezone.utc)

    def _tick(self) -> datetime:
        # Strictly increasing modification times
        self._clock += timedelta(seconds=1)
        return self._clock

    def _objects_in(self, bucket: str) -> dict:
        if bucket not in self.buckets:
            raise _client_error("NoSuchBucket", "ListObjectsV2")
        return self.buckets[bucket]

    def create_bucket(self, Bucket: str, **kwargs):
        with self._lock:
            self.calls.append("create_bucket")
            if Bucket in self.buckets:
                raise _client_error("BucketAlreadyOwnedByYou", "CreateBucket")
            self.buckets[Bucket] = {}

    def put_object(self, Bucket: str, Key: str, Body, **kwargs):
        if hasattr(Body, "read"):
            Body = Body.read()
        with self._lock:
            self.calls.append("put_object")
            self._objects_in(Bucket)[Key] = (bytes(Body), self._tick())

    def upload_fileobj(self, Fileobj, Bucket: str, Key: str, **kwargs):
        data = Fileobj.read()
        with self._lock:
            self.calls.append("upload_fileobj")
            self._objects_in(Bucket)[Key] = (data, self._tick())

    def get_object(self, Bucket: str, Key: str):
        with self._lock:
            self.calls.append("get_object")
            objects = self._objects_in(Bucket)
            if Key not in objects:
                raise _client_error("NoSuchKey", "GetObject")
            body, modified = objects[Key]
        return {"Body": io.BytesIO(body), "ContentLength": len(body), "LastModified": modified}

    def head_object(self, Bucket: str, Key: str):
        with self._lock:
            self.calls.append("head_object")
            objects = self._objects_in(Bucket)
            if Key not in objects:
                raise _client_error("404", "HeadObject")
            body, modified = objects[Key]
        return {"ContentLength": len(body), "LastModified": modified}

    def delete_object(self, Bucket: str, Key: str):
        with self._lock:
            self.calls.append("delete_object")
            self._objects_in(Bucket).pop(Key, None)

    def get_paginator(self, operation: str):
        assert operation == "list_objects_v2"
        return FakePaginator(self, self.page_size)


@pytest.fixture
def s3_client():
    return FakeS3Client()


@pytest_asyncio.fixture
async def s3_storage(s3_client):
    """Object store backend (4MB item limit, 5MB share limit) on a fake client."""
    storage = S3StorageBackend(
        bucket_name="sharebox-test",
        max_file_mb=4,
        max_share_mb=5,
        spool_max_mb=1,
        client=s3_client,
    )
    await storage.migrate()
    return storage


@pytest_asyncio.fixture(params=["file", "s3"])
async def storage(request, tmp_path, s3_client):
    """Each backend with a 4MB item limit and a 5MB share limit."""
    if request.param == "file":
        return LocalStorageBackend(
            base_path=str(tmp_path / "data"),
            max_file_mb=4,
            max_share_mb=5,
        )

    backend = S3StorageBackend(
        bucket_name="sharebox-test",
        max_file_mb=4,
        max_share_mb=5,
        spool_max_mb=1,
        client=s3_client,
    )
    await backend.migrate()
    return backend
