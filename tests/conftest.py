"""Shared fixtures and collaborator fakes for chat-secretary tests."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

import pytest

from chat_secretary.services.collaborators import NudgeSink, TaskStatusOracle
from chat_secretary.services.transcript_source import TranscriptSnapshot, TranscriptSource
from chat_secretary.storage.archive import TranscriptArchive
from chat_secretary.storage.database import Database
from chat_secretary.storage.kv_store import KeyValueStore
from chat_secretary.transcript.classifier import DialogClassifier

MISSING = object()


def make_request(
    request_id: str = "req-1",
    message: Any = "hello",
    *,
    response: Optional[list[Any]] = None,
    followups: Any = MISSING,
    is_canceled: Any = MISSING,
    result: Any = MISSING,
    session_id: Optional[str] = None,
    timestamp: Optional[int] = None,
) -> dict[str, Any]:
    """Build one exported turn; fields left as MISSING are omitted entirely."""
    request: dict[str, Any] = {"requestId": request_id, "message": message, "response": response or []}
    if followups is not MISSING:
        request["followups"] = followups
    if is_canceled is not MISSING:
        request["isCanceled"] = is_canceled
    if result is not MISSING:
        request["result"] = result
    elif session_id:
        request["result"] = {"metadata": {"sessionId": session_id}}
    if timestamp is not None:
        request["timestamp"] = timestamp
    return request


def make_transcript(*requests: dict[str, Any]) -> dict[str, Any]:
    return {"requesterUsername": "user", "responderUsername": "assistant", "requests": list(requests)}


def mcp_call(tool_name: str, *, is_error: bool = False, tool_id: Optional[str] = None) -> dict[str, Any]:
    return {
        "kind": "toolInvocationSerialized",
        "toolId": tool_id or f"mcp_entries_{tool_name}",
        "toolName": tool_name,
        "source": {"type": "mcp", "serverLabel": "entries", "label": "Entries"},
        "resultDetails": {"input": {"id": 1}, "output": [{"value": "ok"}], "isError": is_error},
    }


class ManualClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedSource(TranscriptSource):
    """Returns whatever transcript the test last set; ``fail`` makes it raise."""

    def __init__(self, data: Any = None):
        self.content: Optional[str] = json.dumps(data) if data is not None else None
        self.fail = False
        self.acquire_count = 0
        self.gate: Optional[asyncio.Event] = None

    def set(self, data: Any) -> None:
        self.content = json.dumps(data)

    async def acquire(self) -> Optional[TranscriptSnapshot]:
        self.acquire_count += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise ConnectionError("export failed")
        if self.content is None:
            return None
        return TranscriptSnapshot.from_text(self.content)


class FakeOracle(TaskStatusOracle):
    def __init__(self, complete: bool = False):
        self.complete = complete
        self.error: Optional[Exception] = None
        self.calls: list[str] = []
        self.gate: Optional[asyncio.Event] = None

    async def is_task_complete(self, task_id: str) -> bool:
        self.calls.append(task_id)
        if self.gate is not None:
            await self.gate.wait()
        if self.error:
            raise self.error
        return self.complete


class RecordingSink(NudgeSink):
    def __init__(self):
        self.messages: list[str] = []

    async def send_message(self, text: str) -> None:
        self.messages.append(text)


@pytest.fixture
def classifier():
    return DialogClassifier()


@pytest.fixture
async def db(tmp_path):
    database = Database(str(tmp_path / "chat_secretary.db"))
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
def store(db):
    return KeyValueStore(db, "test")


@pytest.fixture
def archive(tmp_path):
    return TranscriptArchive(tmp_path / "transcripts")
