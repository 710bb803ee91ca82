"""Dialog recall tools, tool registry and plain-dict API tests"""

import json
from datetime import datetime, timezone

import pytest

from chat_secretary import api
from chat_secretary.core.types import DialogStatus
from chat_secretary.services.chat_watcher import ChatStatusWatcher
from chat_secretary.storage.models import DialogSessionRecord
from chat_secretary.storage.session_ledger import SessionLedger
from chat_secretary.tools.dialog_recall import GetFirstRequestTool, GetRequestTool
from chat_secretary.tools.registry import ToolRegistry

from conftest import ScriptedSource, make_request, make_transcript

FIRST_SEEN = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)
FIRST_SEEN_MS = int(FIRST_SEEN.timestamp() * 1000)


def session(session_id, **overrides):
    fields = {
        "session_id": session_id,
        "first_seen": FIRST_SEEN,
        "last_seen": FIRST_SEEN,
        "requests_count": 2,
        "status": DialogStatus.IN_PROGRESS,
        "first_request_preview": "Translate the contract",
    }
    fields.update(overrides)
    return DialogSessionRecord(**fields)


@pytest.fixture
async def ledger(store, archive):
    ledger = SessionLedger(store, archive=archive)
    yield ledger
    await ledger.flush()


@pytest.fixture
def registry(ledger, classifier, archive):
    registry = ToolRegistry()
    registry.discover_and_register(ledger, classifier, archive)
    return registry


async def run(registry, name, **kwargs):
    return json.loads(await registry.execute(name, **kwargs))


class TestRegistry:
    async def test_registers_recall_tools(self, registry):
        names = [tool.name for tool in registry.all_tools()]
        assert names == ["chat_secretary_get_first_request", "chat_secretary_get_request"]
        schema = registry.get("chat_secretary_get_request").to_api_dict()["input_schema"]
        assert schema["required"] == ["index"]

    async def test_unknown_tool(self, registry):
        assert await run(registry, "missing") == {"success": False, "error": "Unknown tool: missing"}


class TestGetFirstRequest:
    """chat_secretary_get_first_request"""

    async def test_current_session(self, registry, ledger):
        ledger.record(session("s-1"))
        result = await run(registry, "chat_secretary_get_first_request")
        assert result == {
            "success": True,
            "sessionId": "s-1",
            "firstRequest": "Translate the contract",
            "timestamp": FIRST_SEEN_MS,
            "requestsCount": 2,
        }

    async def test_explicit_session(self, registry, ledger):
        ledger.record(session("s-1", first_request_preview="older"))
        ledger.record(session("s-2"))
        result = await run(registry, "chat_secretary_get_first_request", sessionId="s-1")
        assert result["firstRequest"] == "older"

    async def test_no_active_dialog(self, registry):
        result = await run(registry, "chat_secretary_get_first_request")
        assert result == {"success": False, "error": "No active dialog found"}

    async def test_unknown_session(self, registry, ledger):
        ledger.record(session("s-1"))
        result = await run(registry, "chat_secretary_get_first_request", sessionId="nope")
        assert result["error"] == "Session not found: nope"

    async def test_missing_preview(self, ledger):
        ledger.record(session("s-1", first_request_preview=""))
        result = json.loads(await GetFirstRequestTool(ledger).execute())
        assert result["error"] == "First request not available"


class TestGetRequest:
    """chat_secretary_get_request"""

    @pytest.fixture
    async def archived(self, ledger, archive):
        transcript = make_transcript(
            make_request("r1", "First question", session_id="s-1", timestamp=111),
            make_request("r2", "", response=["no text request"]),
            make_request("r3", {"text": "Second question"}),
        )
        path = await archive.write("s-1", json.dumps(transcript))
        ledger.record(session("s-1", transcript_path=str(path)))
        return path

    async def test_returns_nth_request(self, registry, archived):
        result = await run(registry, "chat_secretary_get_request", index=1)
        assert result == {
            "success": True,
            "sessionId": "s-1",
            "request": "First question",
            "index": 1,
            "timestamp": 111,
            "totalRequests": 2,
        }

    async def test_timestamp_falls_back_to_first_seen(self, registry, archived):
        result = await run(registry, "chat_secretary_get_request", index=2, sessionId="s-1")
        assert result["request"] == "Second question"
        assert result["timestamp"] == FIRST_SEEN_MS

    @pytest.mark.parametrize(
        ("kwargs", "error"),
        [
            ({}, "Index parameter is required"),
            ({"index": "2"}, "Index must be an integer"),
            ({"index": 1.5}, "Index must be an integer"),
            ({"index": True}, "Index must be an integer"),
            ({"index": 0}, "Index must be 1 or greater"),
            ({"index": 3}, "Index 3 exceeds total requests (2)"),
        ],
    )
    async def test_invalid_index(self, registry, archived, kwargs, error):
        result = await run(registry, "chat_secretary_get_request", **kwargs)
        assert result == {"success": False, "error": error}

    async def test_session_without_archive(self, registry, ledger):
        ledger.record(session("s-1"))
        result = await run(registry, "chat_secretary_get_request", index=1)
        assert result["error"] == "Chat data not available for session"

    async def test_archive_file_missing(self, ledger, classifier, archive):
        ledger.record(session("s-1", transcript_path=str(archive.path_for("s-1"))))
        tool = GetRequestTool(ledger, classifier, archive)
        result = json.loads(await tool.execute(index=1))
        assert result["success"] is False
        assert result["error"].startswith("Failed to retrieve request:")


class TestApi:
    """Plain-dict responses"""

    async def test_history_and_filters(self, ledger):
        ledger.record(session("s-1", status=DialogStatus.COMPLETED))
        ledger.record(session("s-2", last_seen=datetime(2026, 3, 2, tzinfo=timezone.utc)))

        history = api.get_dialog_history(ledger)
        assert [item["sessionId"] for item in history] == ["s-2", "s-1"]
        assert history[1] == {
            "sessionId": "s-1",
            "status": "completed",
            "firstSeen": FIRST_SEEN_MS,
            "lastSeen": FIRST_SEEN_MS,
            "requestsCount": 2,
            "firstRequestPreview": "Translate the contract",
            "agentId": None,
            "modelId": None,
        }
        assert [item["sessionId"] for item in api.get_dialog_history(ledger, status="completed")] == ["s-1"]
        assert len(api.get_dialog_history(ledger, limit=1)) == 1

    async def test_current_dialog_and_session(self, ledger):
        assert api.get_current_dialog(ledger) is None
        ledger.record(session("s-1"))
        assert api.get_current_dialog(ledger)["sessionId"] == "s-1"
        assert api.get_session(ledger, "s-1")["requestsCount"] == 2
        assert api.get_session(ledger, "missing") is None
        assert api.get_session(ledger, None) is None

    async def test_status_prefers_watcher_session(self, ledger, classifier):
        ledger.record(session("s-old"))
        watcher = ChatStatusWatcher(
            ScriptedSource(make_transcript(make_request("r1", session_id="s-live"))),
            classifier,
            check_interval=3600,
        )
        await watcher.refresh_status()

        status = api.get_status(watcher, ledger)
        assert status["status"] == "in_progress"
        assert status["sessionId"] == "s-live"
        assert status["requestsCount"] == 1
        assert status["isActive"] is True
        assert isinstance(status["lastUpdate"], int)
