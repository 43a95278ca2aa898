"""
Blob store for rendered artifacts.

Contract: ``put(key, data, content_type)`` overwrites whatever is stored at
``key``; ``get(key)`` returns the bytes or None. ``LocalBlobStore`` keeps
objects on disk under a root directory, content type in a sidecar file.
"""

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

META_SUFFIX = ".meta.json"


class BlobStore(Protocol):
    async def put(self, key: str, data: bytes | str, content_type: str) -> None: ...

    async def get(self, key: str) -> bytes | None: ...


class LocalBlobStore:
    def __init__(self, root: str | os.PathLike):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        parts = key.split("/")
        if not key or key.startswith("/") or any(p in ("", ".", "..") for p in parts):
            raise ValueError(f"Invalid blob key: {key!r}")
        return self.root.joinpath(*parts)

    async def put(self, key: str, data: bytes | str, content_type: str) -> None:
        path = self._path(key)
        raw = data.encode("utf-8") if isinstance(data, str) else data
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._write, path, raw, content_type)
        logger.debug("Stored %s (%d bytes, %s)", key, len(raw), content_type)

    async def get(self, key: str) -> bytes | None:
        path = self._path(key)
        if not path.exists():
            return None
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, path.read_bytes)

    def content_type(self, key: str) -> str | None:
        meta = self._path(key).with_name(self._path(key).name + META_SUFFIX)
        if not meta.exists():
            return None
        return json.loads(meta.read_text()).get("content_type")

    @staticmethod
    def _write(path: Path, raw: bytes, content_type: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        _atomic_write(path, raw)
        meta = path.with_name(path.name + META_SUFFIX)
        _atomic_write(meta, json.dumps({"content_type": content_type}).encode("utf-8"))


def _atomic_write(path: Path, raw: bytes) -> None:
    """Write via a per-call temp file in the same directory, then rename over ``path``."""
    with tempfile.NamedTemporaryFile(dir=path.parent, prefix=path.name + ".", suffix=".tmp", delete=False) as tmp:
        tmp.write(raw)
    try:
        os.replace(tmp.name, path)
    except OSError:
        os.unlink(tmp.name)
        raise
