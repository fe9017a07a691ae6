"""Filesystem blob store for persisted media."""

from __future__ import annotations

import asyncio
import os
import tempfile
from pathlib import Path, PurePosixPath

from fleet_copilot.log import get_logger

logger = get_logger(__name__)


class LocalBlobStore:
    """Blobs addressed by relative POSIX paths under a root directory.

    Writes go to a temporary file in the destination directory and are moved
    into place with ``os.replace``, so readers never observe a partial file.
    """

    def __init__(self, root: str | Path, url_prefix: str = "/storage"):
        self._root = Path(root).resolve()
        self._url_prefix = url_prefix.rstrip("/")

    @property
    def root(self) -> Path:
        return self._root

    def resolve(self, path: str) -> Path:
        """Absolute filesystem path for ``path``; rejects anything escaping the root."""
        relative = PurePosixPath(path)
        if relative.is_absolute() or ".." in relative.parts:
            raise ValueError(f"Invalid blob path: {path}")
        full = (self._root / relative).resolve()
        if not full.is_relative_to(self._root):
            raise ValueError(f"Invalid blob path: {path}")
        return full

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(self.resolve(path).is_file)

    async def get(self, path: str) -> bytes:
        return await asyncio.to_thread(self.resolve(path).read_bytes)

    async def put(self, path: str, data: bytes) -> None:
        target = self.resolve(path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".part")
            try:
                with os.fdopen(fd, "wb") as fh:
                    fh.write(data)
                os.replace(tmp_name, target)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise

        await asyncio.to_thread(_write)
        logger.debug("blob_written", path=path, size=len(data))

    def url_for(self, path: str) -> str:
        return f"{self._url_prefix}/{path}"
