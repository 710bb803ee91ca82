"""Drives one long-running chat task to completion by polling its transcript.

Each tick acquires the transcript, compares it with the previous one and
either classifies the new content or, when nothing changed, evaluates the
pause timeout. Ticks run on an APScheduler interval job; a re-entrancy flag
drops a tick that fires while the previous one is still awaiting I/O.
"""

from __future__ import annotations

import inspect
import json
import time
import uuid
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from chat_secretary.config import MonitorConfig
from chat_secretary.core.timing import (
    create_status_message,
    effective_pause_threshold,
    format_duration,
    get_remaining_processing_time,
    is_max_wait_time_exceeded,
    should_trigger_timeout,
)
from chat_secretary.core.types import UNKNOWN_STATUS, DialogStatus, EngineState
from chat_secretary.log import get_logger
from chat_secretary.services.base import PollingService
from chat_secretary.services.collaborators import NudgeSink, TaskStatusOracle
from chat_secretary.services.transcript_source import TranscriptSnapshot, TranscriptSource
from chat_secretary.storage.session_recorder import SessionRecorder
from chat_secretary.transcript.classifier import DialogClassifier

logger = get_logger(__name__)

CompletedCallback = Callable[[], "Awaitable[None] | None"]
FailedCallback = Callable[[str], "Awaitable[None] | None"]


@dataclass
class MonitoredTask:
    task_id: str
    label: str = ""
    prompt: Optional[str] = None  # sent into the chat when the task starts


@dataclass
class MonitorState:
    is_monitoring: bool = False
    current_task: Optional[MonitoredTask] = None
    last_content: Optional[str] = None
    last_change_time: float = 0.0
    last_progress_time: float = 0.0
    task_start_time: float = 0.0
    status_check_counter: int = 0
    summarization_detected: bool = False


class CompletionEngine(PollingService):
    """Idle -> Monitoring -> Completed | Failed | Idle (stopped)."""

    def __init__(
        self,
        config: MonitorConfig,
        source: TranscriptSource,
        classifier: DialogClassifier,
        on_completed: CompletedCallback,
        on_failed: FailedCallback,
        oracle: TaskStatusOracle | None = None,
        nudge_sink: NudgeSink | None = None,
        recorder: SessionRecorder | None = None,
        scheduler: AsyncIOScheduler | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._config = config
        self._source = source
        self._classifier = classifier
        self._on_completed = on_completed
        self._on_failed = on_failed
        self._oracle = oracle
        self._nudge_sink = nudge_sink
        self._recorder = recorder
        self._owns_scheduler = scheduler is None
        self._scheduler = scheduler or AsyncIOScheduler()
        self._clock = clock
        self._job_id = f"completion_engine_{uuid.uuid4().hex[:12]}"
        self._state = MonitorState()
        self._engine_state = EngineState.IDLE
        self._chat_status: str = UNKNOWN_STATUS
        self._in_tick = False

    @property
    def service_name(self) -> str:
        return "completion_engine"

    @property
    def config(self) -> MonitorConfig:
        return self._config

    @property
    def state(self) -> EngineState:
        return self._engine_state

    @property
    def monitor_state(self) -> MonitorState:
        return replace(self._state)

    @property
    def chat_status(self) -> str:
        return self._chat_status

    # ── lifecycle ───────────────────────────────────────────────

    async def start_task(self, task: MonitoredTask) -> None:
        """Begin driving ``task``: skip it if already done, else prompt and monitor.

        Any task still being monitored is abandoned without a signal.
        """
        await self.stop()
        self._state.current_task = task
        self._state.task_start_time = self._clock()
        self._engine_state = EngineState.IDLE

        if self._oracle_enabled() and await self._is_task_complete(task.task_id):
            logger.info("task_already_complete", task_id=task.task_id)
            self._engine_state = EngineState.COMPLETED
            await self._notify(self._on_completed)
            return

        # Baseline so the transcript as it stands now is not read as the task's result.
        baseline = await self._acquire()
        if baseline is not None:
            self._state.last_content = baseline.content

        if task.prompt:
            if self._nudge_sink is None:
                logger.warning("task_prompt_not_sent", task_id=task.task_id, reason="no nudge sink")
            else:
                try:
                    await self._nudge_sink.send_message(task.prompt)
                except Exception as e:
                    logger.error("task_prompt_send_failed", task_id=task.task_id, error=str(e))
                    self._engine_state = EngineState.FAILED
                    await self._notify(self._on_failed, f"Failed to send task prompt: {e}")
                    return

        await self.start()
        logger.info("task_started", task_id=task.task_id, label=task.label)

    async def start(self) -> None:
        if self._state.is_monitoring:
            logger.debug("engine_already_monitoring")
            return

        now = self._clock()
        self._state.is_monitoring = True
        self._state.last_change_time = now
        self._state.last_progress_time = now
        self._state.summarization_detected = False
        self._state.status_check_counter = 0
        self._engine_state = EngineState.MONITORING

        if not self._scheduler.running:
            self._scheduler.start()
        self._scheduler.add_job(
            self.tick,
            IntervalTrigger(seconds=self._config.check_interval),
            id=self._job_id,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        logger.info(
            "engine_started",
            check_interval=self._config.check_interval,
            pause_threshold=self._config.pause_threshold,
        )

    async def stop(self) -> None:
        if not self._state.is_monitoring:
            logger.debug("engine_already_stopped")
            return

        self._state.is_monitoring = False
        try:
            self._scheduler.remove_job(self._job_id)
        except JobLookupError:
            pass
        if self._engine_state == EngineState.MONITORING:
            self._engine_state = EngineState.IDLE
        logger.info("engine_stopped")

    async def close(self) -> None:
        await self.stop()
        if self._owns_scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    async def update_config(self, config: MonitorConfig) -> None:
        was_monitoring = self._state.is_monitoring
        if was_monitoring:
            await self.stop()
        self._config = config
        if was_monitoring:
            await self.start()
        logger.info("engine_config_updated")

    def is_active(self) -> bool:
        return self._state.is_monitoring

    def get_status(self) -> str:
        task = self._state.current_task
        base = create_status_message(
            self._state.is_monitoring,
            self._clock(),
            self._state.last_change_time,
            task.task_id if task else None,
        )
        return f"{base} | chat status: {self._chat_status}"

    async def get_detailed_analysis(self) -> str:
        if not self._state.is_monitoring:
            return "Monitoring is not active"

        snapshot = await self._acquire()
        if snapshot is None:
            return "Could not acquire chat transcript"

        detail = self._classifier.classify(snapshot.data)
        return (
            f"Chat status: {detail.status}\n"
            f"Requests: {self._classifier.get_requests_count(snapshot.data)}\n"
            f"Status details: {json.dumps(detail.to_dict(), indent=2)}"
        )

    # ── polling ─────────────────────────────────────────────────

    async def tick(self) -> None:
        if not self._state.is_monitoring or self._in_tick:
            return

        self._in_tick = True
        try:
            await self._check()
        except Exception as e:
            logger.error("engine_tick_error", error=str(e), exc_info=True)
        finally:
            self._in_tick = False

    async def _check(self) -> None:
        state = self._state
        task = state.current_task

        if task and self._oracle_enabled():
            state.status_check_counter += 1
            if state.status_check_counter >= self._config.status_check_every:
                state.status_check_counter = 0
                complete = await self._is_task_complete(task.task_id)
                if not state.is_monitoring:
                    return
                if complete:
                    logger.info("task_completed_during_monitoring", task_id=task.task_id)
                    await self._complete()
                    return

        snapshot = await self._acquire()
        if snapshot is None:
            logger.debug("engine_tick_skipped", reason="no transcript")
            return
        if not state.is_monitoring:
            return

        if snapshot.content == state.last_content:
            await self._handle_unchanged()
            return

        now = self._clock()
        state.last_content = snapshot.content
        state.last_change_time = now
        state.last_progress_time = now
        state.summarization_detected = any(
            marker in snapshot.content for marker in self._config.summarization_markers
        )
        if state.summarization_detected:
            logger.info("chat_history_summarized")

        if self._recorder:
            try:
                await self._recorder.observe(snapshot)
            except Exception as e:
                logger.warning("session_record_failed", error=str(e))

        await self._handle_status(snapshot)

    async def _handle_status(self, snapshot: TranscriptSnapshot) -> None:
        status = self._classifier.get_dialog_status(snapshot.data)
        self._chat_status = status
        logger.debug(
            "chat_status",
            status=str(status),
            requests=self._classifier.get_requests_count(snapshot.data),
        )

        match status:
            case DialogStatus.CANCELED:
                logger.info("chat_canceled")
                await self._fail("Dialog was canceled by the user")

            case DialogStatus.COMPLETED:
                if not self._commit_confirmed(snapshot.data):
                    await self._send_nudge()
                    return

                task = self._state.current_task
                if task and self._oracle_enabled():
                    reflected = await self._is_task_complete(task.task_id)
                    if not self._state.is_monitoring:
                        return
                    if not reflected:
                        logger.warning("task_commit_not_reflected", task_id=task.task_id)
                await self._complete()

            case _:
                self._state.last_change_time = self._clock()

    async def _handle_unchanged(self) -> None:
        state = self._state
        now = self._clock()
        if not should_trigger_timeout(
            now, state.last_change_time, self._config.pause_threshold, state.summarization_detected
        ):
            return

        task = state.current_task
        complete = True
        if task and self._oracle_enabled():
            complete = await self._is_task_complete(task.task_id)
            if not state.is_monitoring:
                return
        if not complete:
            max_wait = self._config.max_wait_time
            if is_max_wait_time_exceeded(now, state.task_start_time, max_wait):
                logger.warning("max_wait_time_exceeded", task_id=task.task_id, max_wait_time=max_wait)
                await self._fail(f"Max wait time exceeded ({format_duration(max_wait)}) for task {task.task_id}")
                return

            logger.info(
                "chat_idle_task_incomplete",
                task_id=task.task_id,
                elapsed=format_duration(now - state.task_start_time),
                remaining=format_duration(get_remaining_processing_time(now, state.task_start_time, max_wait)),
                summarization=state.summarization_detected,
            )
            state.last_change_time = self._clock()
            state.summarization_detected = False
            return

        logger.info(
            "chat_idle_completed",
            threshold=effective_pause_threshold(self._config.pause_threshold, state.summarization_detected),
            summarization=state.summarization_detected,
        )
        await self._complete()

    # ── helpers ─────────────────────────────────────────────────

    def _oracle_enabled(self) -> bool:
        return self._oracle is not None and self._config.enable_task_status_check

    def _commit_confirmed(self, chat_data: Any) -> bool:
        commit_tool = self._config.commit_tool
        if not commit_tool:
            return True

        calls = self._classifier.get_mcp_tool_calls(chat_data, commit_tool)
        successful = [call for call in calls if not call.is_error]
        logger.info("commit_tool_calls", tool=commit_tool, total=len(calls), successful=len(successful))
        return bool(successful)

    async def _acquire(self) -> Optional[TranscriptSnapshot]:
        try:
            return await self._source.acquire()
        except Exception as e:
            logger.warning("transcript_acquire_failed", error=str(e))
            return None

    async def _is_task_complete(self, task_id: str) -> bool:
        """Oracle query; any failure reads as "not complete"."""
        try:
            complete = await self._oracle.is_task_complete(task_id)  # type: ignore[union-attr]
        except Exception as e:
            logger.warning("task_status_check_failed", task_id=task_id, error=str(e))
            return False
        logger.debug("task_status_checked", task_id=task_id, complete=complete)
        return bool(complete)

    async def _send_nudge(self) -> None:
        if self._nudge_sink is None:
            logger.warning("nudge_skipped", reason="no nudge sink")
            return

        message = self._config.nudge_message
        try:
            await self._nudge_sink.send_message(message)
        except Exception as e:
            logger.error("nudge_failed", error=str(e))
            return
        if not self._state.is_monitoring:
            return

        now = self._clock()
        self._state.last_change_time = now
        self._state.last_progress_time = now
        logger.info("nudge_sent", message=message)

    async def _complete(self) -> None:
        if not self._state.is_monitoring:
            return
        await self.stop()
        self._engine_state = EngineState.COMPLETED
        await self._notify(self._on_completed)

    async def _fail(self, reason: str) -> None:
        if not self._state.is_monitoring:
            return
        await self.stop()
        self._engine_state = EngineState.FAILED
        await self._notify(self._on_failed, reason)

    @staticmethod
    async def _notify(callback: Callable[..., Any], *args: Any) -> None:
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error("engine_callback_error", error=str(e))
