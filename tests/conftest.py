"""Shared fixtures for pydelivery tests."""

import asyncio
import hashlib
from pathlib import Path
from typing import Optional

import pytest

from pydelivery.store import ObjectInfo, ObjectStore
from pydelivery.sync import Delivery


class MemoryStore(ObjectStore):
    """In-memory object store that records every call."""

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.metadata: dict[str, dict] = {}
        self.puts: list[str] = []
        self.sources: list[Path] = []
        self.gets: list[str] = []
        self.heads: list[str] = []
        self.delays: dict[str, float] = {}
        self.failures: dict[str, Exception] = {}
        self.closed = False

    def etag(self, key: str) -> Optional[str]:
        if key not in self.objects:
            return None
        return f'"{hashlib.md5(self.objects[key]).hexdigest()}"'

    async def _maybe_delay(self, key: str) -> None:
        delay = self.delays.get(key)
        if delay:
            await asyncio.sleep(delay)
        if key in self.failures:
            raise self.failures[key]

    async def head(self, key: str) -> Optional[str]:
        self.heads.append(key)
        return self.etag(key)

    async def put(
        self,
        key: str,
        source: Path,
        *,
        content_type: str,
        acl: str,
        cache_control: Optional[str] = None,
        content_md5: Optional[str] = None,
    ) -> None:
        await self._maybe_delay(key)
        self.puts.append(key)
        self.sources.append(source)
        self.objects[key] = Path(source).read_bytes()
        self.metadata[key] = {
            "content_type": content_type,
            "acl": acl,
            "cache_control": cache_control,
            "content_md5": content_md5,
        }

    async def get(self, key: str, dest: Path) -> int:
        await self._maybe_delay(key)
        self.gets.append(key)
        body = self.objects[key]
        Path(dest).write_bytes(body)
        return len(body)

    async def list(self, prefix: str) -> list[ObjectInfo]:
        return [
            ObjectInfo(key=key, etag=self.etag(key), size=len(body))
            for key, body in sorted(self.objects.items())
            if key.startswith(prefix)
        ]

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def store():
    """Create an empty in-memory store."""
    return MemoryStore()


@pytest.fixture
def delivery(store):
    """Create a Delivery backed by the in-memory store."""
    return Delivery(bucket="test-bucket", store=store)


@pytest.fixture
def site_dir(tmp_path):
    """Create a small static site build directory."""
    site = tmp_path / "dist"
    (site / "assets").mkdir(parents=True)
    (site / "a.deadbeef.js").write_text("X")
    (site / "index.html").write_text("Y")
    (site / "assets" / "logo.png").write_bytes(b"\x89PNG")
    return site
