import asyncio
import logging
from typing import Optional

from supabase import create_client

from .config import get_supabase_credentials, get_storage_bucket
from .errors import ResourceError

logger = logging.getLogger(__name__)


class NullStorage:
    """Blob store used when Supabase is not configured"""

    async def download(self, path: str) -> bytes:
        raise ResourceError(f"No blob storage configured to download {path}")

    async def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        raise ResourceError(f"No blob storage configured to upload {path}")

    async def remove(self, path: str) -> None:
        logger.warning(f"No blob storage configured; {path} left in place")


class SupabaseBlobStorage:
    def __init__(self, url: str, key: str, bucket: Optional[str] = None):
        self.bucket = bucket or get_storage_bucket()
        self.cli = create_client(url, key)
        self._storage = self.cli.storage.from_(self.bucket)

    async def download(self, path: str) -> bytes:
        try:
            data = await asyncio.to_thread(self._storage.download, path)
        except Exception as e:
            raise ResourceError(f"Download of {path} failed: {e}") from e
        if not data:
            raise ResourceError("No data received from storage")
        return data

    async def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        options = {"upsert": "true"}
        if content_type:
            options["content-type"] = content_type
        try:
            await asyncio.to_thread(self._storage.upload, path, data, options)
        except Exception as e:
            raise ResourceError(f"Upload of {path} failed: {e}") from e
        logger.info(f"Uploaded {len(data)} bytes to {self.bucket}/{path}")
        return path

    async def remove(self, path: str) -> None:
        await asyncio.to_thread(self._storage.remove, [path])
        logger.info(f"Removed {self.bucket}/{path}")


def get_storage():
    credentials = get_supabase_credentials()
    if credentials:
        try:
            return SupabaseBlobStorage(*credentials)
        except Exception as e:
            logger.error(f"Failed to create Supabase storage client: {e}")
            return NullStorage()
    return NullStorage()
