"""Transcript acquisition: where the engine and watcher get chat snapshots."""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from chat_secretary.log import get_logger
from chat_secretary.services.process import render_command, run_command

logger = get_logger(__name__)


@dataclass(frozen=True)
class TranscriptSnapshot:
    """Raw exported text plus its parsed form (None when it is not valid JSON)."""

    content: str
    data: Any = None

    @classmethod
    def from_text(cls, content: str) -> TranscriptSnapshot:
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            logger.debug("transcript_parse_error", error=str(e))
            data = None
        return cls(content=content, data=data)


class TranscriptSource(ABC):
    """Provides the freshest transcript snapshot, or None when none is available."""

    @abstractmethod
    async def acquire(self) -> Optional[TranscriptSnapshot]:
        ...


class FileTranscriptSource(TranscriptSource):
    """Reads a transcript the host exports to a fixed file path."""

    def __init__(self, path: str | Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    async def acquire(self) -> Optional[TranscriptSnapshot]:
        try:
            content = await asyncio.to_thread(self._path.read_text, encoding="utf-8")
        except OSError as e:
            logger.warning("transcript_read_failed", path=str(self._path), error=str(e))
            return None
        return TranscriptSnapshot.from_text(content)


class CommandTranscriptSource(FileTranscriptSource):
    """Runs an export command that writes the transcript file, then reads it."""

    def __init__(self, path: str | Path, export_command: list[str], timeout: float = 30):
        super().__init__(path)
        self._export_command = export_command
        self._timeout = timeout

    async def acquire(self) -> Optional[TranscriptSnapshot]:
        ok, output = await run_command(
            render_command(self._export_command, path=str(self.path)),
            timeout=self._timeout,
        )
        if not ok:
            logger.warning("transcript_export_failed", output=output)
            return None
        return await super().acquire()
