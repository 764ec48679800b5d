from unittest.mock import MagicMock, patch

import pytest

from studychat.core.errors import ResourceError
from studychat.core.storage import NullStorage, SupabaseBlobStorage, get_storage


def make_storage():
    bucket_api = MagicMock()
    with patch("studychat.core.storage.create_client") as mock_create_client:
        mock_create_client.return_value.storage.from_.return_value = bucket_api
        storage = SupabaseBlobStorage("https://project.supabase.co", "service-key", bucket="materials")
    mock_create_client.assert_called_once_with("https://project.supabase.co", "service-key")
    mock_create_client.return_value.storage.from_.assert_called_once_with("materials")
    return storage, bucket_api


@pytest.mark.asyncio
async def test_download_returns_bytes():
    storage, bucket_api = make_storage()
    bucket_api.download.return_value = b"hello"

    assert await storage.download("user-1/notes.txt") == b"hello"
    bucket_api.download.assert_called_once_with("user-1/notes.txt")


@pytest.mark.asyncio
async def test_download_errors_are_resource_errors():
    storage, bucket_api = make_storage()
    bucket_api.download.side_effect = RuntimeError("Object not found")

    with pytest.raises(ResourceError, match="Object not found"):
        await storage.download("user-1/missing.txt")


@pytest.mark.asyncio
async def test_empty_download_is_an_error():
    storage, bucket_api = make_storage()
    bucket_api.download.return_value = b""

    with pytest.raises(ResourceError):
        await storage.download("user-1/empty.txt")


@pytest.mark.asyncio
async def test_upload_and_remove():
    storage, bucket_api = make_storage()

    assert await storage.upload("user-1/a.txt", b"abc", "text/plain") == "user-1/a.txt"
    await storage.remove("user-1/a.txt")

    bucket_api.upload.assert_called_once_with(
        "user-1/a.txt", b"abc", {"upsert": "true", "content-type": "text/plain"}
    )
    bucket_api.remove.assert_called_once_with(["user-1/a.txt"])


@pytest.mark.asyncio
async def test_null_storage_cannot_download():
    with pytest.raises(ResourceError):
        await NullStorage().download("user-1/a.txt")


def test_get_storage_without_credentials(monkeypatch):
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_SERVICE_KEY", raising=False)

    assert isinstance(get_storage(), NullStorage)
