"""
Unit tests for S3StorageBackend key layout and bucket handling.
"""
import json

import pytest
from botocore.exceptions import ClientError

from sharebox.storage.exceptions import MaxShareSizeReachedError, ShareAlreadyExistsError
from sharebox.storage.models import Exposure, Options
from sharebox.storage.s3 import S3StorageBackend, item_key, metadata_key

BUCKET = "sharebox-test"
MB = 1024 * 1024


def _keys(client) -> list[str]:
    return sorted(client.buckets[BUCKET])


def _put_json(client, key: str, record: dict):
    client.put_object(Bucket=BUCKET, Key=key, Body=json.dumps(record).encode())


def test_key_layout():
    """Test that metadata lives under shares/ and items under the share name."""
    assert metadata_key("test") == "shares/test/.metadata"
    assert item_key("test", "a.txt") == "test/a.txt"


def test_bucket_name_required(s3_client):
    """Test that a backend cannot be created without a bucket."""
    with pytest.raises(ValueError):
        S3StorageBackend(bucket_name="", client=s3_client)


@pytest.mark.asyncio
async def test_objects_written(s3_storage, s3_client, make_stream):
    """Test the keys created for a share with one item."""
    await s3_storage.create_share("test", "admin", Options(validity=10))
    await s3_storage.create_item("test", "a.txt", 0, make_stream(b"hello"))

    assert _keys(s3_client) == ["shares/test/.metadata", "test/a.txt"]

    record = json.loads(s3_client.buckets[BUCKET]["shares/test/.metadata"][0])
    assert record["version"] == 1
    assert record["owner"] == "admin"
    assert record["size"] == 5
    assert record["count"] == 1


@pytest.mark.asyncio
async def test_no_object_on_overflow(s3_storage, s3_client, make_stream):
    """Test that an upload over the share window never reaches the bucket."""
    await s3_storage.create_share("test", "admin", Options())
    await s3_storage.create_item("test", "first.bin", 0, make_stream(size=3 * MB))
    uploads = s3_client.calls.count("upload_fileobj")

    with pytest.raises(MaxShareSizeReachedError):
        await s3_storage.create_item("test", "second.bin", 0, make_stream(size=3 * MB))

    assert s3_client.calls.count("upload_fileobj") == uploads
    assert "test/second.bin" not in s3_client.buckets[BUCKET]


@pytest.mark.asyncio
async def test_migrate_creates_bucket(s3_client):
    """Test that migrate creates a missing bucket and tolerates an existing one."""
    storage = S3StorageBackend(bucket_name=BUCKET, client=s3_client)

    await storage.migrate()
    assert BUCKET in s3_client.buckets

    # Second run hits BucketAlreadyOwnedByYou
    await storage.migrate()
    assert s3_client.calls.count("create_bucket") == 2


@pytest.mark.asyncio
async def test_migrate_propagates_other_bucket_errors(s3_client, monkeypatch):
    """Test that unexpected create_bucket failures are not swallowed."""

    def denied(Bucket, **kwargs):
        raise ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "CreateBucket")

    monkeypatch.setattr(s3_client, "create_bucket", denied)
    storage = S3StorageBackend(bucket_name=BUCKET, client=s3_client)

    with pytest.raises(ClientError):
        await storage.migrate()


@pytest.mark.asyncio
async def test_migrate_upgrades_legacy_records(s3_storage, s3_client):
    """Test that unversioned share records are rewritten."""
    _put_json(
        s3_client,
        "shares/legacy/.metadata",
        {
            "name": "legacy",
            "created": "2024-08-08T16:20:25.231034+02:00",
            "owner": "admin",
            "validity": 10,
            "exposure": "both",
        },
    )

    await s3_storage.migrate()

    record = json.loads(s3_client.buckets[BUCKET]["shares/legacy/.metadata"][0])
    assert record["version"] == 1
    assert record["options"]["exposure"] == "both"
    assert "exposure" not in record

    share = await s3_storage.get_share("legacy")
    assert share.options == Options(validity=10, exposure=Exposure.BOTH)


@pytest.mark.asyncio
async def test_migrate_is_idempotent(s3_storage, s3_client):
    """Test that current records are not rewritten."""
    await s3_storage.create_share("test", "admin", Options())
    puts = s3_client.calls.count("put_object")

    await s3_storage.migrate()
    await s3_storage.migrate()

    assert s3_client.calls.count("put_object") == puts


@pytest.mark.asyncio
async def test_stray_keys_ignored(s3_storage, s3_client, make_stream):
    """Test that keys outside the layout are neither shares nor items."""
    await s3_storage.create_share("test", "admin", Options())
    await s3_storage.create_item("test", "a.txt", 0, make_stream(b"a"))

    s3_client.put_object(Bucket=BUCKET, Key="shares/README", Body=b"x")
    s3_client.put_object(Bucket=BUCKET, Key="shares/bad name/.metadata", Body=b"{}")
    s3_client.put_object(Bucket=BUCKET, Key="shares/test/nested/.metadata", Body=b"{}")
    s3_client.put_object(Bucket=BUCKET, Key="test/sub/nested.txt", Body=b"x")
    s3_client.put_object(Bucket=BUCKET, Key="test/.hidden", Body=b"x")

    shares = await s3_storage.list_shares()
    items = await s3_storage.list_share("test")

    assert [s.name for s in shares] == ["test"]
    assert [i.name for i in items] == ["a.txt"]


@pytest.mark.asyncio
async def test_list_share_paginates(s3_storage, make_stream):
    """Test that listing follows every page, newest first."""
    await s3_storage.create_share("test", "admin", Options())
    names = [f"item-{i}.txt" for i in range(5)]
    for name in names:
        await s3_storage.create_item("test", name, 0, make_stream(b"x"))

    items = await s3_storage.list_share("test")

    assert [i.name for i in items] == list(reversed(names))


@pytest.mark.asyncio
async def test_delete_share_cascades(s3_storage, s3_client, make_stream):
    """Test that deleting a share removes its items and its metadata."""
    await s3_storage.create_share("test", "admin", Options())
    await s3_storage.create_share("other", "admin", Options())
    for name in ("a.txt", "b.txt", "c.txt"):
        await s3_storage.create_item("test", name, 0, make_stream(b"x"))
    await s3_storage.create_item("other", "keep.txt", 0, make_stream(b"x"))

    await s3_storage.delete_share("test")

    assert _keys(s3_client) == ["other/keep.txt", "shares/other/.metadata"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "record",
    [
        {"name": "bad", "exposure": "public"},
        {"name": "bad", "created": "not-a-date"},
        {"name": "bad", "validity": -3},
    ],
)
async def test_migrate_skips_invalid_legacy_record(s3_storage, s3_client, record):
    """Test that a legacy record failing validation does not stop migration."""
    await s3_storage.create_share("good", "admin", Options())
    _put_json(s3_client, "shares/bad/.metadata", record)
    _put_json(s3_client, "shares/old/.metadata", {"name": "old", "validity": 2})

    await s3_storage.migrate()

    assert json.loads(s3_client.buckets[BUCKET]["shares/bad/.metadata"][0]) == record
    assert (await s3_storage.get_share("old")).version == 1
    names = {s.name for s in await s3_storage.list_shares()}
    assert {"good", "old"} <= names


@pytest.mark.asyncio
async def test_migrate_null_aggregates(s3_storage, s3_client):
    """Test that null size and count in a legacy record become zero."""
    await s3_storage.create_share("good", "admin", Options())
    _put_json(s3_client, "shares/legacy/.metadata", {"name": "legacy", "size": None, "count": None})

    await s3_storage.migrate()

    share = await s3_storage.get_share("legacy")
    assert share.size == 0
    assert share.count == 0
    assert sorted(s.name for s in await s3_storage.list_shares()) == ["good", "legacy"]


@pytest.mark.asyncio
async def test_create_share_over_undecodable_record(s3_storage, s3_client):
    """Test that a share whose record does not decode is still taken."""
    s3_client.put_object(Bucket=BUCKET, Key="shares/test/.metadata", Body=b"{not json")

    with pytest.raises(ShareAlreadyExistsError):
        await s3_storage.create_share("test", "admin", Options())

    assert s3_client.buckets[BUCKET]["shares/test/.metadata"][0] == b"{not json"


@pytest.mark.asyncio
async def test_upload_spooled_to_disk(s3_storage, s3_client, make_stream):
    """Test that an upload larger than the in-memory spool is stored whole."""
    data = bytes(range(256)) * (2 * MB // 256)
    await s3_storage.create_share("test", "admin", Options())

    item = await s3_storage.create_item("test", "big.bin", 0, make_stream(data, chunk_size=64 * 1024))

    assert item.item_info.size == 2 * MB
    assert s3_client.buckets[BUCKET]["test/big.bin"][0] == data


@pytest.mark.asyncio
async def test_item_data_describes_fetched_object(s3_storage, s3_client, make_stream):
    """Test that item data metadata comes from the object being streamed."""
    await s3_storage.create_share("test", "admin", Options())
    await s3_storage.create_item("test", "a.txt", 0, make_stream(b"hello"))
    heads = s3_client.calls.count("head_object")

    data = await s3_storage.get_item_data("test", "a.txt")

    assert s3_client.calls.count("head_object") == heads
    assert data.item.path == "test/a.txt"
    assert data.item.item_info.size == 5
    assert data.item.item_info.date_modified == s3_client.buckets[BUCKET]["test/a.txt"][1]
    assert b"".join([chunk async for chunk in data]) == b"hello"
