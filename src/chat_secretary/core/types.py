"""Shared types and enumerations."""

from __future__ import annotations

from enum import StrEnum


class DialogStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELED = "canceled"
    IN_PROGRESS = "in_progress"
    FAILED = "failed"


class EngineState(StrEnum):
    IDLE = "idle"
    MONITORING = "monitoring"
    COMPLETED = "completed"
    FAILED = "failed"


# Watcher-level status: a dialog status, or "unknown" when no transcript was readable.
UNKNOWN_STATUS = "unknown"
