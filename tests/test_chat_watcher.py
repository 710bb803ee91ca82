"""ChatStatusWatcher tests"""

import pytest

from chat_secretary.core.types import DialogStatus
from chat_secretary.services.chat_watcher import ChatStatusWatcher
from chat_secretary.storage.session_ledger import SessionLedger
from chat_secretary.storage.session_recorder import SessionRecorder

from conftest import ScriptedSource, make_request, make_transcript


class Subscriber:
    def __init__(self):
        self.updates = []
        self.completed = 0
        self.errors = []

    def on_chat_status_update(self, data):
        self.updates.append(data)

    def on_chat_completed(self):
        self.completed += 1

    def on_chat_error(self, error):
        self.errors.append(error)


@pytest.fixture
async def watcher_factory(classifier):
    watchers = []

    def _make(source, recorder=None):
        watcher = ChatStatusWatcher(source, classifier, recorder=recorder, check_interval=3600)
        watchers.append(watcher)
        return watcher

    yield _make
    for watcher in watchers:
        await watcher.close()


class TestRefreshStatus:
    """Polling and notifications"""

    async def test_initial_status_is_unknown(self, watcher_factory):
        watcher = watcher_factory(ScriptedSource())
        status = watcher.get_current_status()
        assert status.status == "unknown"
        assert status.requests_count == 0
        assert not status.has_activity

    async def test_classifies_and_notifies(self, watcher_factory):
        transcript = make_transcript(make_request("r1", session_id="s-1"))
        watcher = watcher_factory(ScriptedSource(transcript))
        subscriber = Subscriber()
        watcher.subscribe(subscriber)

        data = await watcher.refresh_status()
        assert data.status == DialogStatus.IN_PROGRESS
        assert data.requests_count == 1
        assert data.has_activity
        assert data.session_id == "s-1"
        assert data.last_request_id == "r1"
        assert data.status_details.status_text == "Dialog in progress"
        assert len(subscriber.updates) == 1
        assert watcher.current_session_id == "s-1"

    async def test_unchanged_content_is_quiet(self, watcher_factory):
        watcher = watcher_factory(ScriptedSource(make_transcript(make_request())))
        subscriber = Subscriber()
        watcher.subscribe(subscriber)

        await watcher.refresh_status()
        data = await watcher.refresh_status()
        assert not data.has_activity
        assert len(subscriber.updates) == 1

    async def test_completion_fires_once_on_transition(self, watcher_factory):
        source = ScriptedSource(make_transcript(make_request("r1")))
        watcher = watcher_factory(source)
        subscriber = Subscriber()
        watcher.subscribe(subscriber)

        await watcher.refresh_status()
        source.set(make_transcript(make_request("r1", followups=[])))
        await watcher.refresh_status()
        source.set(make_transcript(make_request("r1", followups=[], response=["done"])))
        await watcher.refresh_status()

        assert subscriber.completed == 1
        assert len(subscriber.updates) == 3

    async def test_missing_transcript_reports_error(self, watcher_factory):
        watcher = watcher_factory(ScriptedSource())
        subscriber = Subscriber()
        watcher.subscribe(subscriber)

        data = await watcher.refresh_status()
        assert data.status == "unknown"
        assert subscriber.errors == ["Chat transcript unavailable"]

    async def test_acquire_exception_reports_error(self, watcher_factory):
        source = ScriptedSource(make_transcript(make_request()))
        source.fail = True
        watcher = watcher_factory(source)
        subscriber = Subscriber()
        watcher.subscribe(subscriber)

        await watcher.refresh_status()
        assert subscriber.errors == ["Chat transcript unavailable"]

    async def test_invalid_json_reports_error(self, watcher_factory):
        source = ScriptedSource()
        source.content = "{not json"
        watcher = watcher_factory(source)
        subscriber = Subscriber()
        watcher.subscribe(subscriber)

        data = await watcher.refresh_status()
        assert data.status == "unknown"
        assert data.has_activity
        assert subscriber.errors == ["Chat transcript is not valid JSON"]

    async def test_repeated_error_reported_once_until_recovery(self, watcher_factory):
        source = ScriptedSource()
        watcher = watcher_factory(source)
        subscriber = Subscriber()
        watcher.subscribe(subscriber)

        await watcher.refresh_status()
        await watcher.refresh_status()
        assert subscriber.errors == ["Chat transcript unavailable"]

        source.content = "{not json"
        await watcher.refresh_status()
        assert subscriber.errors == ["Chat transcript unavailable", "Chat transcript is not valid JSON"]

        source.set(make_transcript(make_request()))
        await watcher.refresh_status()
        source.content = None
        await watcher.refresh_status()
        assert subscriber.errors == [
            "Chat transcript unavailable",
            "Chat transcript is not valid JSON",
            "Chat transcript unavailable",
        ]

    async def test_failing_subscriber_does_not_block_others(self, watcher_factory):
        class Broken(Subscriber):
            def on_chat_status_update(self, data):
                raise RuntimeError("ui gone")

        watcher = watcher_factory(ScriptedSource(make_transcript(make_request())))
        healthy = Subscriber()
        watcher.subscribe(Broken())
        watcher.subscribe(healthy)

        await watcher.refresh_status()
        assert len(healthy.updates) == 1

    async def test_unsubscribe(self, watcher_factory):
        watcher = watcher_factory(ScriptedSource(make_transcript(make_request())))
        subscriber = Subscriber()
        watcher.subscribe(subscriber)
        watcher.subscribe(subscriber)
        watcher.unsubscribe(subscriber)

        await watcher.refresh_status()
        assert subscriber.updates == []

    async def test_status_copy_is_detached(self, watcher_factory):
        watcher = watcher_factory(ScriptedSource(make_transcript(make_request())))
        await watcher.refresh_status()
        watcher.get_current_status().requests_count = 42
        assert watcher.get_current_status().requests_count == 1


class TestLifecycle:
    """Start and stop"""

    async def test_start_runs_immediate_check(self, watcher_factory):
        source = ScriptedSource(make_transcript(make_request()))
        watcher = watcher_factory(source)
        await watcher.start()
        await watcher.start()
        assert watcher.is_active()
        assert source.acquire_count == 1

        await watcher.stop()
        await watcher.stop()
        assert not watcher.is_active()

    async def test_records_sessions_on_change(self, watcher_factory, classifier, store):
        ledger = SessionLedger(store)
        recorder = SessionRecorder(classifier, ledger)
        source = ScriptedSource(make_transcript(make_request("r1", "Summarize the report", session_id="s-7")))
        watcher = watcher_factory(source, recorder=recorder)

        await watcher.refresh_status()
        await watcher.refresh_status()
        await ledger.flush()

        session = ledger.get_session("s-7")
        assert session.first_request_preview == "Summarize the report"
        assert session.status == DialogStatus.IN_PROGRESS
