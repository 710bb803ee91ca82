"""Data models produced by the dialog classifier."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from chat_secretary.core.types import DialogStatus


@dataclass
class StatusDetail:
    status: DialogStatus
    status_text: str
    has_result: bool = False
    has_followups: bool = False
    is_canceled: bool = False
    is_failed: bool = False
    last_request_id: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class DialogSession:
    session_id: str
    agent_id: Optional[str] = None
    model_id: Optional[str] = None


@dataclass
class UserRequest:
    id: str
    message: str
    index: int
    timestamp: Optional[int] = None  # Unix ms, as exported by the host


@dataclass
class AIResponse:
    request_id: str
    message: str  # all text parts joined with a blank line
    index: int
    has_tool_calls: bool = False
    tool_call_count: int = 0
    response_id: Optional[str] = None
    timestamp: Optional[int] = None


@dataclass
class ConversationTurn:
    index: int
    request: UserRequest
    response: Optional[AIResponse] = None


@dataclass
class ToolSource:
    type: str
    server_label: Optional[str] = None
    label: Optional[str] = None


@dataclass
class ToolCall:
    tool_id: str
    tool_name: str
    request_id: Optional[str]
    input: Any = None
    output: Any = None
    is_error: bool = False
    timestamp: Optional[int] = None
    source: Optional[ToolSource] = None


@dataclass
class ToolMonitoring:
    tool_name: str
    total_calls: int
    successful_calls: int
    error_calls: int
    success_rate: float
    calls: list[ToolCall] = field(default_factory=list)


@dataclass
class MonitoringSummary:
    total_tools: int
    total_calls: int
    overall_success_rate: float
    tools: list[ToolMonitoring] = field(default_factory=list)
