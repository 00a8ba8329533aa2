"""Object storage for raw uploaded bytes."""

import asyncio
import logging
from pathlib import Path, PurePath
from typing import Protocol
from uuid import uuid4

import httpx

from app.config import settings
from app.exceptions import StorageUnavailable
from app.stores.base import OwnerScope

logger = logging.getLogger(__name__)


class ObjectStore(Protocol):
    async def put(self, key: str, data: bytes, content_type: str) -> None: ...

    async def get(self, key: str) -> bytes: ...

    async def delete(self, key: str) -> None: ...


def build_storage_key(owner: OwnerScope, filename: str) -> str:
    """Storage key of the form {owner_id}/{uuid}.{ext}."""
    ext = PurePath(filename).suffix.lower().lstrip(".") or "bin"
    return f"{owner.owner_id}/{uuid4()}.{ext}"


class LocalObjectStore:
    """Stores objects as files under a root directory."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Storage key escapes the storage root: {key}")
        return path

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        path = self._path(key)

        def write():
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        try:
            await asyncio.to_thread(write)
        except OSError as e:
            raise StorageUnavailable(f"Could not write {key}: {e}") from e

    async def get(self, key: str) -> bytes:
        try:
            return await asyncio.to_thread(self._path(key).read_bytes)
        except OSError as e:
            raise StorageUnavailable(f"Could not read {key}: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(self._path(key).unlink, True)
        except OSError as e:
            raise StorageUnavailable(f"Could not delete {key}: {e}") from e


class SupabaseObjectStore:
    """Stores objects in a Supabase Storage bucket over its REST API."""

    def __init__(self, base_url: str, service_key: str, bucket: str, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self.timeout = timeout
        self.headers = {
            "Authorization": f"Bearer {service_key}",
            "apikey": service_key,
        }

    def _url(self, key: str) -> str:
        return f"{self.base_url}/storage/v1/object/{self.bucket}/{key}"

    async def _request(
        self, method: str, key: str, headers: dict | None = None, **kwargs
    ) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method, self._url(key), headers=self.headers | (headers or {}), **kwargs
                )
                response.raise_for_status()
                return response
        except httpx.HTTPError as e:
            raise StorageUnavailable(f"{method} {key} failed: {e}") from e

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        await self._request(
            "POST",
            key,
            content=data,
            headers={"Content-Type": content_type, "x-upsert": "false"},
        )

    async def get(self, key: str) -> bytes:
        response = await self._request("GET", key)
        return response.content

    async def delete(self, key: str) -> None:
        await self._request("DELETE", key)


def get_object_store() -> ObjectStore:
    if settings.storage_backend == "supabase":
        if not settings.supabase_url or not settings.supabase_service_role_key:
            raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required")
        return SupabaseObjectStore(
            settings.supabase_url,
            settings.supabase_service_role_key,
            settings.storage_bucket,
            settings.storage_timeout_seconds,
        )
    return LocalObjectStore(settings.storage_root)
