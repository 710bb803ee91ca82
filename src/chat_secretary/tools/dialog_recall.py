"""Tools that let the assistant recall earlier requests of a dialog."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Optional

from chat_secretary.tools.base import Tool, ToolError

if TYPE_CHECKING:
    from chat_secretary.storage.archive import TranscriptArchive
    from chat_secretary.storage.models import DialogSessionRecord
    from chat_secretary.storage.session_ledger import SessionLedger
    from chat_secretary.transcript.classifier import DialogClassifier

_SESSION_ID_PROPERTY = {
    "type": "string",
    "description": "Optional: Dialog session ID. If omitted, uses current active dialog.",
}


def _resolve_session(ledger: SessionLedger, session_id: Optional[str]) -> DialogSessionRecord:
    target = session_id or ledger.current_session_id
    if not target:
        raise ToolError("No active dialog found")
    session = ledger.get_session(target)
    if session is None:
        raise ToolError(f"Session not found: {target}")
    return session


def _unix_ms(record: DialogSessionRecord) -> int:
    return int(record.first_seen.timestamp() * 1000)


class GetFirstRequestTool(Tool):
    """Returns the stored preview of a dialog's first request."""

    def __init__(self, ledger: SessionLedger):
        self._ledger = ledger

    @property
    def name(self) -> str:
        return "chat_secretary_get_first_request"

    @property
    def description(self) -> str:
        return (
            "Retrieves the first user request from a chat dialog. Use it to recall "
            "the original request after the conversation history was compressed. "
            "Returns the first 80 characters of the initial message."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {"type": "object", "properties": {"sessionId": _SESSION_ID_PROPERTY}}

    async def call(self, **kwargs: Any) -> dict[str, Any]:
        session = _resolve_session(self._ledger, kwargs.get("sessionId"))
        if not session.first_request_preview:
            raise ToolError("First request not available")

        return {
            "sessionId": session.session_id,
            "firstRequest": session.first_request_preview,
            "timestamp": _unix_ms(session),
            "requestsCount": session.requests_count,
        }


class GetRequestTool(Tool):
    """Returns the Nth (1-based) user request from a dialog's archived transcript."""

    def __init__(self, ledger: SessionLedger, classifier: DialogClassifier, archive: TranscriptArchive):
        self._ledger = ledger
        self._classifier = classifier
        self._archive = archive

    @property
    def name(self) -> str:
        return "chat_secretary_get_request"

    @property
    def description(self) -> str:
        return (
            "Retrieves a specific user request by position (1-based) from a chat "
            "dialog, together with the total number of requests."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "index": {
                    "type": "integer",
                    "description": "Required: Position of the request (1-based). 1 = first request.",
                },
                "sessionId": _SESSION_ID_PROPERTY,
            },
            "required": ["index"],
        }

    async def call(self, **kwargs: Any) -> dict[str, Any]:
        index = kwargs.get("index")
        if index is None:
            raise ToolError("Index parameter is required")
        if not isinstance(index, int) or isinstance(index, bool):
            raise ToolError("Index must be an integer")
        if index < 1:
            raise ToolError("Index must be 1 or greater")

        session = _resolve_session(self._ledger, kwargs.get("sessionId"))
        if not session.transcript_path:
            raise ToolError("Chat data not available for session")

        try:
            content = await self._archive.read(session.transcript_path)
            chat_data = json.loads(content)
        except (OSError, json.JSONDecodeError) as e:
            raise ToolError(f"Failed to retrieve request: {e}") from e

        requests = self._classifier.get_user_requests(chat_data)
        if index > len(requests):
            raise ToolError(f"Index {index} exceeds total requests ({len(requests)})")

        request = requests[index - 1]
        return {
            "sessionId": session.session_id,
            "request": request.message,
            "index": index,
            "timestamp": request.timestamp or _unix_ms(session),
            "totalRequests": len(requests),
        }
