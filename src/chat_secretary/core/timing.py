"""Timeout arithmetic and human-readable durations for chat monitoring."""

from __future__ import annotations


def effective_pause_threshold(pause_threshold: float, summarization_detected: bool) -> float:
    """Pause threshold, doubled while a history summarization is in effect."""
    return pause_threshold * 2 if summarization_detected else pause_threshold


def should_trigger_timeout(
    now: float,
    last_change_time: float,
    pause_threshold: float,
    summarization_detected: bool,
) -> bool:
    """Return True once the chat has been silent past the (adjusted) threshold."""
    elapsed = now - last_change_time
    return elapsed >= effective_pause_threshold(pause_threshold, summarization_detected)


def is_max_wait_time_exceeded(now: float, processing_start_time: float, max_wait_time: float) -> bool:
    return now - processing_start_time >= max_wait_time


def get_remaining_processing_time(now: float, processing_start_time: float, max_wait_time: float) -> float:
    return max(0.0, max_wait_time - (now - processing_start_time))


def format_duration(seconds: float) -> str:
    """Format seconds as ``45s``, ``2m 5s`` or ``1h 3m``."""
    if seconds < 60:
        return f"{round(seconds)}s"
    if seconds < 3600:
        minutes = int(seconds // 60)
        remaining = round(seconds % 60)
        return f"{minutes}m {remaining}s" if remaining > 0 else f"{minutes}m"
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    return f"{hours}h {minutes}m" if minutes > 0 else f"{hours}h"


def create_status_message(
    is_monitoring: bool,
    now: float,
    last_change_time: float,
    task_id: str | None = None,
) -> str:
    if not is_monitoring:
        return "Stopped"

    message = f"Active ({format_duration(now - last_change_time)} since last change)"
    if task_id:
        message += f" - task {task_id}"
    return message
