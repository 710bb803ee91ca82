"""File storage for archived copies of full transcripts."""

from __future__ import annotations

import asyncio
import hashlib
import re
from pathlib import Path

from chat_secretary.log import get_logger

logger = get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class TranscriptArchive:
    """Stores one ``<session_id>.json`` file per session under a root directory."""

    def __init__(self, root: str | Path):
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, session_id: str) -> Path:
        safe = _UNSAFE_CHARS.sub("_", session_id)
        if safe != session_id:
            # Keeps ids that sanitize to the same name apart.
            safe = f"{safe}-{hashlib.sha1(session_id.encode('utf-8')).hexdigest()[:10]}"
        return self._root / f"{safe}.json"

    async def write(self, session_id: str, content: str) -> Path:
        path = self.path_for(session_id)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")

        await asyncio.to_thread(_write)
        return path

    async def read(self, path: str | Path) -> str:
        return await asyncio.to_thread(Path(path).read_text, encoding="utf-8")

    async def delete(self, path: str | Path) -> None:
        """Remove an archived transcript. Raises ``OSError`` if it cannot."""
        await asyncio.to_thread(Path(path).unlink)
        logger.debug("transcript_archive_deleted", path=str(path))
