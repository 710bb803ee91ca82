"""Plain-dict API for UI layers and external callers.

Every response is a fresh copy; callers never receive live ledger records.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from chat_secretary.services.chat_watcher import ChatStatusWatcher
    from chat_secretary.storage.models import DialogSessionRecord
    from chat_secretary.storage.session_ledger import SessionLedger

DEFAULT_HISTORY_LIMIT = 100


def to_dialog_session_response(record: DialogSessionRecord) -> dict[str, Any]:
    return {
        "sessionId": record.session_id,
        "status": str(record.status),
        "firstSeen": int(record.first_seen.timestamp() * 1000),
        "lastSeen": int(record.last_seen.timestamp() * 1000),
        "requestsCount": record.requests_count,
        "firstRequestPreview": record.first_request_preview,
        "agentId": record.agent_id,
        "modelId": record.model_id,
    }


def _current_session_id(ledger: SessionLedger, watcher: ChatStatusWatcher | None) -> Optional[str]:
    if watcher is not None and watcher.current_session_id:
        return watcher.current_session_id
    return ledger.current_session_id


def get_status(watcher: ChatStatusWatcher, ledger: SessionLedger) -> dict[str, Any]:
    data = watcher.get_current_status()
    return {
        "status": data.status,
        "sessionId": _current_session_id(ledger, watcher),
        "requestsCount": data.requests_count,
        "lastUpdate": int(time.time() * 1000),
        "isActive": data.has_activity,
    }


def get_current_dialog(ledger: SessionLedger, watcher: ChatStatusWatcher | None = None) -> Optional[dict[str, Any]]:
    session_id = _current_session_id(ledger, watcher)
    if not session_id:
        return None
    return get_session(ledger, session_id)


def get_dialog_history(
    ledger: SessionLedger, limit: int = DEFAULT_HISTORY_LIMIT, status: Optional[str] = None
) -> list[dict[str, Any]]:
    sessions = ledger.get_session_history()
    if status:
        sessions = [s for s in sessions if s.status == status]
    return [to_dialog_session_response(s) for s in sessions[:limit]]


def get_session(ledger: SessionLedger, session_id: Optional[str]) -> Optional[dict[str, Any]]:
    if not session_id:
        return None
    record = ledger.get_session(session_id)
    return to_dialog_session_response(record) if record else None
