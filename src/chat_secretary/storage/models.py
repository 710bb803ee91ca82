"""Data models for storage layer."""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from datetime import datetime
from typing import Any, Optional

from chat_secretary.core.types import DialogStatus


@dataclass
class DialogSessionRecord:
    session_id: str
    first_seen: datetime
    last_seen: datetime
    requests_count: int
    status: DialogStatus
    first_request_preview: str = ""  # first 80 characters of the first user message
    agent_id: Optional[str] = None
    model_id: Optional[str] = None
    transcript_path: Optional[str] = None  # archived copy of the full transcript

    def copy(self) -> DialogSessionRecord:
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["first_seen"] = self.first_seen.isoformat()
        data["last_seen"] = self.last_seen.isoformat()
        data["status"] = str(self.status)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DialogSessionRecord:
        return cls(
            session_id=data["session_id"],
            first_seen=datetime.fromisoformat(data["first_seen"]),
            last_seen=datetime.fromisoformat(data["last_seen"]),
            requests_count=int(data.get("requests_count", 0)),
            status=DialogStatus(data.get("status", DialogStatus.PENDING)),
            first_request_preview=data.get("first_request_preview") or "",
            agent_id=data.get("agent_id"),
            model_id=data.get("model_id"),
            transcript_path=data.get("transcript_path"),
        )
