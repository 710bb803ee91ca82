"""Pure analysis of exported chat transcripts.

A transcript is the JSON document the chat host exports: a mapping with a
``requests`` list, one entry per turn. Every method here is total over
arbitrary input: anything that is not shaped like a transcript degrades to
the empty/pending result instead of raising.
"""

from __future__ import annotations

import math
from typing import Any, Optional

from chat_secretary.core.types import DialogStatus
from chat_secretary.transcript.models import (
    AIResponse,
    ConversationTurn,
    DialogSession,
    MonitoringSummary,
    StatusDetail,
    ToolCall,
    ToolMonitoring,
    ToolSource,
    UserRequest,
)

TOOL_INVOCATION_KIND = "toolInvocationSerialized"
MCP_SOURCE_TYPE = "mcp"
CANCELED_ERROR_CODE = "canceled"

STATUS_TEXTS: dict[DialogStatus, str] = {
    DialogStatus.PENDING: "Dialog not started",
    DialogStatus.COMPLETED: "Dialog completed successfully",
    DialogStatus.CANCELED: "Dialog was canceled",
    DialogStatus.IN_PROGRESS: "Dialog in progress",
    DialogStatus.FAILED: "Dialog failed with error",
}


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _is_present(value: Any) -> bool:
    """Host-side truthiness: empty containers count as present."""
    if value is None or value is False:
        return False
    if isinstance(value, (int, float)) and value == 0:
        return False
    return value != ""


def _non_empty_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def _success_rate(successful: int, total: int) -> float:
    if total == 0:
        return 0.0
    return math.floor(successful / total * 100 * 100 + 0.5) / 100


def _matches(call: ToolCall, tool_name: str) -> bool:
    return tool_name in call.tool_name or tool_name in call.tool_id


def _build_monitoring(tool_name: str, calls: list[ToolCall]) -> ToolMonitoring:
    successful = sum(1 for call in calls if not call.is_error)
    return ToolMonitoring(
        tool_name=tool_name,
        total_calls=len(calls),
        successful_calls=successful,
        error_calls=len(calls) - successful,
        success_rate=_success_rate(successful, len(calls)),
        calls=calls,
    )


class DialogClassifier:
    """Derives dialog status, history and tool statistics from a transcript."""

    # ── turns ───────────────────────────────────────────────────

    @staticmethod
    def _requests(chat_data: Any) -> list[Any]:
        if not isinstance(chat_data, dict):
            return []
        requests = chat_data.get("requests")
        return requests if isinstance(requests, list) else []

    def _last_request(self, chat_data: Any) -> Optional[dict[str, Any]]:
        requests = self._requests(chat_data)
        if not requests:
            return None
        return _as_dict(requests[-1])

    def get_requests_count(self, chat_data: Any) -> int:
        return len(self._requests(chat_data))

    # ── session identity ────────────────────────────────────────

    def get_session_id(self, chat_data: Any) -> Optional[str]:
        """First non-empty ``result.metadata.sessionId`` across turns."""
        for request in self._requests(chat_data):
            metadata = _as_dict(_as_dict(_as_dict(request).get("result")).get("metadata"))
            session_id = _non_empty_str(metadata.get("sessionId"))
            if session_id:
                return session_id
        return None

    def get_session_info(self, chat_data: Any) -> Optional[DialogSession]:
        session_id = self.get_session_id(chat_data)
        if not session_id:
            return None

        for request in self._requests(chat_data):
            metadata = _as_dict(_as_dict(_as_dict(request).get("result")).get("metadata"))
            if metadata.get("sessionId") == session_id:
                return DialogSession(
                    session_id=session_id,
                    agent_id=metadata.get("agentId"),
                    model_id=metadata.get("modelId"),
                )
        return DialogSession(session_id=session_id)

    # ── status ──────────────────────────────────────────────────

    def get_dialog_status(self, chat_data: Any) -> DialogStatus:
        """Lifecycle status of the dialog, decided by its last turn only."""
        last = self._last_request(chat_data)
        if last is None:
            return DialogStatus.PENDING

        # The legacy boolean wins over any error details.
        if last.get("isCanceled") is True:
            return DialogStatus.CANCELED

        error_details = _as_dict(last.get("result")).get("errorDetails")
        if _is_present(error_details):
            if _as_dict(error_details).get("code") == CANCELED_ERROR_CODE:
                return DialogStatus.CANCELED
            return DialogStatus.FAILED

        followups = last.get("followups")
        if "followups" in last and isinstance(followups, list) and not followups:
            return DialogStatus.COMPLETED

        return DialogStatus.IN_PROGRESS

    def classify(self, chat_data: Any) -> StatusDetail:
        status = self.get_dialog_status(chat_data)
        last = self._last_request(chat_data)
        if last is None:
            return StatusDetail(status=DialogStatus.PENDING, status_text=STATUS_TEXTS[DialogStatus.PENDING])

        raw_error = _as_dict(last.get("result")).get("errorDetails")
        error_details = _as_dict(raw_error)
        return StatusDetail(
            status=status,
            status_text=STATUS_TEXTS[status],
            has_result="result" in last and last["result"] is not None,
            has_followups="followups" in last,
            is_canceled=last.get("isCanceled") is True,
            is_failed=_is_present(raw_error),
            last_request_id=last.get("requestId"),
            error_code=error_details.get("code"),
            error_message=error_details.get("message"),
        )

    # ── requests and responses ──────────────────────────────────

    def get_user_requests(self, chat_data: Any) -> list[UserRequest]:
        user_requests: list[UserRequest] = []
        for index, raw in enumerate(self._requests(chat_data)):
            request = _as_dict(raw)
            message = request.get("message")
            if isinstance(message, dict):
                message = message.get("text")
            text = _non_empty_str(message)
            if not text:
                continue

            request_id = (
                _as_dict(request.get("variableData")).get("requestId")
                or request.get("requestId")
                or f"req-{index}"
            )
            user_requests.append(
                UserRequest(
                    id=request_id,
                    message=text,
                    index=index,
                    timestamp=request.get("timestamp"),
                )
            )
        return user_requests

    @staticmethod
    def _tool_call_rounds(request: dict[str, Any]) -> list[Any]:
        metadata = _as_dict(_as_dict(request.get("result")).get("metadata"))
        rounds = metadata.get("toolCallRounds")
        return rounds if isinstance(rounds, list) else []

    def _extract_response_text(self, request: dict[str, Any]) -> str:
        parts: list[str] = []

        response = request.get("response")
        if isinstance(response, list):
            for item in response:
                if isinstance(item, str):
                    parts.append(item)
                else:
                    value = _non_empty_str(_as_dict(item).get("value"))
                    if value:
                        parts.append(value)

        # Round responses often repeat text already present in the fragments.
        for round_ in self._tool_call_rounds(request):
            text = _non_empty_str(_as_dict(round_).get("response"))
            if text and text not in parts:
                parts.append(text)

        return "\n\n".join(parts)

    def _count_tool_calls(self, request: dict[str, Any]) -> int:
        count = 0
        for round_ in self._tool_call_rounds(request):
            tool_calls = _as_dict(round_).get("toolCalls")
            if isinstance(tool_calls, list):
                count += len(tool_calls)
        return count

    def get_ai_responses(self, chat_data: Any) -> list[AIResponse]:
        responses: list[AIResponse] = []
        for index, raw in enumerate(self._requests(chat_data)):
            request = _as_dict(raw)
            tool_call_count = self._count_tool_calls(request)
            responses.append(
                AIResponse(
                    request_id=request.get("requestId") or f"req-{index}",
                    response_id=request.get("responseId"),
                    message=self._extract_response_text(request),
                    timestamp=request.get("timestamp"),
                    index=index,
                    has_tool_calls=tool_call_count > 0,
                    tool_call_count=tool_call_count,
                )
            )
        return responses

    def get_conversation_history(self, chat_data: Any) -> list[ConversationTurn]:
        """Pair requests and responses by position, not by request id."""
        responses = {response.index: response for response in self.get_ai_responses(chat_data)}
        return [
            ConversationTurn(index=index, request=request, response=responses.get(index))
            for index, request in enumerate(self.get_user_requests(chat_data))
        ]

    # ── MCP tool calls ──────────────────────────────────────────

    def _extract_mcp_tool_calls(self, chat_data: Any) -> list[ToolCall]:
        tool_calls: list[ToolCall] = []
        for raw in self._requests(chat_data):
            request = _as_dict(raw)
            response = request.get("response")
            if not isinstance(response, list):
                continue

            for raw_item in response:
                item = _as_dict(raw_item)
                source = _as_dict(item.get("source"))
                if item.get("kind") != TOOL_INVOCATION_KIND or source.get("type") != MCP_SOURCE_TYPE:
                    continue

                details = _as_dict(item.get("resultDetails"))
                tool_id = item.get("toolId") or item.get("toolName") or "unknown"
                tool_name = item.get("toolName") or item.get("toolId") or "unknown"
                tool_calls.append(
                    ToolCall(
                        tool_id=str(tool_id),
                        tool_name=str(tool_name),
                        request_id=request.get("requestId"),
                        input=details.get("input")
                        or _as_dict(item.get("toolSpecificData")).get("rawInput")
                        or None,
                        output=details.get("output") or None,
                        is_error=bool(details.get("isError", False)),
                        timestamp=request.get("timestamp"),
                        source=ToolSource(
                            type=source["type"],
                            server_label=source.get("serverLabel"),
                            label=source.get("label"),
                        ),
                    )
                )
        return tool_calls

    def get_mcp_tool_calls(self, chat_data: Any, tool_name: str) -> list[ToolCall]:
        """All calls whose tool name or id contains ``tool_name``."""
        return [call for call in self._extract_mcp_tool_calls(chat_data) if _matches(call, tool_name)]

    def get_mcp_tool_successful_calls(self, chat_data: Any, tool_name: str) -> list[ToolCall]:
        return [call for call in self.get_mcp_tool_calls(chat_data, tool_name) if not call.is_error]

    def get_mcp_tool_error_calls(self, chat_data: Any, tool_name: str) -> list[ToolCall]:
        return [call for call in self.get_mcp_tool_calls(chat_data, tool_name) if call.is_error]

    def get_mcp_tool_names(self, chat_data: Any) -> list[str]:
        names: dict[str, None] = {}
        for call in self._extract_mcp_tool_calls(chat_data):
            names.setdefault(call.tool_name or call.tool_id, None)
        return list(names)

    def get_mcp_tool_monitoring(
        self, chat_data: Any, tool_name: Optional[str] = None
    ) -> ToolMonitoring | MonitoringSummary:
        """Per-tool statistics for ``tool_name``, or a summary over every tool."""
        all_calls = self._extract_mcp_tool_calls(chat_data)

        if tool_name:
            return _build_monitoring(tool_name, [call for call in all_calls if _matches(call, tool_name)])

        grouped: dict[str, list[ToolCall]] = {}
        for call in all_calls:
            grouped.setdefault(call.tool_name or call.tool_id, []).append(call)

        successful = sum(1 for call in all_calls if not call.is_error)
        tools = [_build_monitoring(name, calls) for name, calls in grouped.items()]
        return MonitoringSummary(
            total_tools=len(tools),
            total_calls=len(all_calls),
            overall_success_rate=_success_rate(successful, len(all_calls)),
            tools=tools,
        )
