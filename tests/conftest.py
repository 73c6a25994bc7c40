import pytest
from fastapi.testclient import TestClient

from sharebox.config import settings
from sharebox.main import create_app
from sharebox.storage.local import LocalStorageBackend

USER = "admin"


async def _chunks(data: bytes, chunk_size: int):
    for start in range(0, len(data), chunk_size):
        yield data[start:start + chunk_size]


@pytest.fixture
def make_stream():
    """
    Return a factory for async byte streams.

    make_stream(b"abc") yields the bytes in 64KB chunks;
    make_stream(size=3 * 1024 * 1024) yields that many zero bytes.
    """

    def factory(data: bytes | None = None, size: int = 0, chunk_size: int = 64 * 1024):
        if data is None:
            data = bytes(size)
        return _chunks(data, chunk_size)

    return factory


@pytest.fixture
def local_storage(tmp_path):
    """Filesystem backend with a 4MB item limit and a 5MB share limit."""
    return LocalStorageBackend(
        base_path=str(tmp_path / "data"),
        max_file_mb=4,
        max_share_mb=5,
    )


@pytest.fixture
def client(local_storage):
    """Test client serving a filesystem backend in a temporary directory."""
    app = create_app(storage=local_storage)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth_headers():
    return {settings.AUTH_USER_HEADER: USER}
