"""Read-only chat status watcher with subscriber notifications."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Optional, Protocol

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from chat_secretary.config import DEFAULT_CHECK_INTERVAL
from chat_secretary.core.types import UNKNOWN_STATUS, DialogStatus
from chat_secretary.log import get_logger
from chat_secretary.services.base import PollingService
from chat_secretary.services.transcript_source import TranscriptSource
from chat_secretary.storage.session_recorder import SessionRecorder
from chat_secretary.transcript.classifier import DialogClassifier
from chat_secretary.transcript.models import StatusDetail

logger = get_logger(__name__)


@dataclass
class ChatMonitorData:
    status: str  # a DialogStatus value, or "unknown"
    requests_count: int
    last_update: datetime
    has_activity: bool
    session_id: Optional[str] = None
    last_request_id: Optional[str] = None
    status_details: Optional[StatusDetail] = None


class ChatStatusSubscriber(Protocol):
    def on_chat_status_update(self, data: ChatMonitorData) -> None: ...

    def on_chat_completed(self) -> None: ...

    def on_chat_error(self, error: str) -> None: ...


class ChatStatusWatcher(PollingService):
    """Observes the chat on an interval; never drives the task itself."""

    def __init__(
        self,
        source: TranscriptSource,
        classifier: DialogClassifier,
        recorder: SessionRecorder | None = None,
        check_interval: float = DEFAULT_CHECK_INTERVAL,
        scheduler: AsyncIOScheduler | None = None,
    ):
        self._source = source
        self._classifier = classifier
        self._recorder = recorder
        self._check_interval = check_interval
        self._owns_scheduler = scheduler is None
        self._scheduler = scheduler or AsyncIOScheduler()
        self._job_id = f"chat_watcher_{uuid.uuid4().hex[:12]}"
        self._subscribers: list[ChatStatusSubscriber] = []
        self._content: Optional[str] = None
        self._monitoring = False
        self._in_tick = False
        self._last_error: Optional[str] = None
        self._data = ChatMonitorData(
            status=UNKNOWN_STATUS,
            requests_count=0,
            last_update=datetime.now(timezone.utc),
            has_activity=False,
        )

    @property
    def service_name(self) -> str:
        return "chat_watcher"

    def subscribe(self, subscriber: ChatStatusSubscriber) -> None:
        if subscriber not in self._subscribers:
            self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: ChatStatusSubscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    def get_current_status(self) -> ChatMonitorData:
        return replace(self._data)

    @property
    def current_session_id(self) -> Optional[str]:
        return self._data.session_id

    # ── lifecycle ───────────────────────────────────────────────

    async def start(self) -> None:
        if self._monitoring:
            return
        self._monitoring = True
        if not self._scheduler.running:
            self._scheduler.start()
        self._scheduler.add_job(
            self.tick,
            IntervalTrigger(seconds=self._check_interval),
            id=self._job_id,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        logger.info("chat_watcher_started", check_interval=self._check_interval)
        await self.tick()

    async def stop(self) -> None:
        if not self._monitoring:
            return
        self._monitoring = False
        try:
            self._scheduler.remove_job(self._job_id)
        except JobLookupError:
            pass
        logger.info("chat_watcher_stopped")

    async def close(self) -> None:
        await self.stop()
        if self._owns_scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    def is_active(self) -> bool:
        return self._monitoring

    async def tick(self) -> None:
        if self._in_tick:
            return
        self._in_tick = True
        try:
            await self.refresh_status()
        except Exception as e:
            logger.error("chat_watcher_tick_error", error=str(e), exc_info=True)
        finally:
            self._in_tick = False

    # ── checks ──────────────────────────────────────────────────

    async def refresh_status(self) -> ChatMonitorData:
        """Acquire and classify the chat once, notifying subscribers of changes."""
        try:
            snapshot = await self._source.acquire()
        except Exception as e:
            snapshot = None
            logger.warning("chat_watcher_acquire_failed", error=str(e))

        if snapshot is None:
            self._data.status = UNKNOWN_STATUS
            self._data.has_activity = False
            self._notify_error("Chat transcript unavailable")
            return self.get_current_status()

        has_changed = snapshot.content != self._content
        if has_changed:
            self._content = snapshot.content
            self._data.last_update = datetime.now(timezone.utc)
        self._data.has_activity = has_changed

        if snapshot.data is None:
            self._data.status = UNKNOWN_STATUS
            self._data.requests_count = 0
            self._notify_error("Chat transcript is not valid JSON")
            return self.get_current_status()

        self._last_error = None
        detail = self._classifier.classify(snapshot.data)
        status_changed = self._data.status != detail.status

        self._data.status = detail.status
        self._data.requests_count = self._classifier.get_requests_count(snapshot.data)
        self._data.status_details = detail
        self._data.last_request_id = detail.last_request_id
        self._data.session_id = self._classifier.get_session_id(snapshot.data)

        if has_changed and self._recorder:
            try:
                await self._recorder.observe(snapshot)
            except Exception as e:
                logger.warning("session_record_failed", error=str(e))

        if status_changed or has_changed:
            logger.info(
                "chat_status_changed",
                status=str(detail.status),
                requests=self._data.requests_count,
                status_changed=status_changed,
                content_changed=has_changed,
            )
            self._notify_update()
            if detail.status == DialogStatus.COMPLETED and status_changed:
                self._notify_completed()

        return self.get_current_status()

    def _notify_update(self) -> None:
        data = self.get_current_status()
        for subscriber in list(self._subscribers):
            try:
                subscriber.on_chat_status_update(data)
            except Exception as e:
                logger.error("subscriber_error", hook="status_update", error=str(e))

    def _notify_completed(self) -> None:
        for subscriber in list(self._subscribers):
            handler = getattr(subscriber, "on_chat_completed", None)
            if handler is None:
                continue
            try:
                handler()
            except Exception as e:
                logger.error("subscriber_error", hook="completed", error=str(e))

    def _notify_error(self, error: str) -> None:
        # Only the first of a run of identical failures is reported.
        if error == self._last_error:
            logger.debug("chat_watcher_error_repeated", error=error)
            return
        self._last_error = error
        logger.warning("chat_watcher_error", error=error)
        for subscriber in list(self._subscribers):
            handler = getattr(subscriber, "on_chat_error", None)
            if handler is None:
                continue
            try:
                handler(error)
            except Exception as e:
                logger.error("subscriber_error", hook="error", error=str(e))
