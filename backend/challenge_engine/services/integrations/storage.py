"""
PCN Challenge Engine - Document Storage

Local-filesystem implementation of DocumentStorage. References are the
storage keys themselves, relative to the base directory.
"""
from __future__ import annotations
import asyncio
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def challenge_letter_key(user_id: str, ticket_id: str, letter_id: str) -> str:
    """Object key layout for rendered challenge letters."""
    return f"users/{user_id}/tickets/{ticket_id}/challenges/{letter_id}.pdf"


class LocalFileStorage:
    """Stores objects as files under `base_dir`."""

    def __init__(self, base_dir: str):
        self.base_dir = Path(base_dir).resolve()

    def _path(self, key: str) -> Path:
        path = (self.base_dir / key).resolve()
        if path == self.base_dir or self.base_dir not in path.parents:
            raise ValueError(f"Storage key escapes base directory: {key}")
        return path

    async def put(self, key: str, content: bytes, content_type: str = "application/pdf") -> str:
        path = self._path(key)
        await asyncio.to_thread(self._write, path, content)
        logger.info(f"Stored {len(content)} bytes at {key} ({content_type})")
        return key

    async def read(self, ref: str) -> bytes:
        return await asyncio.to_thread(self._path(ref).read_bytes)

    async def delete(self, ref: str) -> None:
        path = self._path(ref)
        await asyncio.to_thread(path.unlink, missing_ok=True)
        logger.info(f"Deleted {ref}")

    @staticmethod
    def _write(path: Path, content: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".part")
        tmp.write_bytes(content)
        tmp.replace(path)
