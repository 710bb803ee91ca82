"""Application orchestrator - wires all components and manages lifecycle."""

from __future__ import annotations

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from chat_secretary.config import AppConfig
from chat_secretary.log import get_logger
from chat_secretary.services.chat_watcher import ChatStatusWatcher
from chat_secretary.services.collaborators import (
    CommandNudgeSink,
    CommandTaskOracle,
    NudgeSink,
    TaskStatusOracle,
)
from chat_secretary.services.completion_engine import (
    CompletedCallback,
    CompletionEngine,
    FailedCallback,
)
from chat_secretary.services.transcript_source import (
    CommandTranscriptSource,
    FileTranscriptSource,
    TranscriptSource,
)
from chat_secretary.storage.archive import TranscriptArchive
from chat_secretary.storage.database import Database
from chat_secretary.storage.kv_store import KeyValueStore
from chat_secretary.storage.session_ledger import SessionLedger
from chat_secretary.storage.session_recorder import SessionRecorder
from chat_secretary.tools.registry import ToolRegistry
from chat_secretary.transcript.classifier import DialogClassifier

logger = get_logger(__name__)


class ChatSecretaryApp:
    """Top-level application orchestrator."""

    def __init__(self, config: AppConfig):
        self.config = config
        self.db = Database(config.storage.db_path)
        self.archive = TranscriptArchive(config.storage.archive_dir)
        self.ledger = SessionLedger(
            KeyValueStore(self.db, config.storage.ledger_namespace),
            archive=self.archive,
            capacity=config.storage.ledger_capacity,
        )
        self.classifier = DialogClassifier()
        self.recorder = SessionRecorder(self.classifier, self.ledger, self.archive)
        self.source = self._create_source()
        self.oracle = self._create_oracle()
        self.nudge_sink = self._create_nudge_sink()
        self.scheduler = AsyncIOScheduler()
        self.watcher = ChatStatusWatcher(
            self.source,
            self.classifier,
            recorder=self.recorder,
            check_interval=config.monitor.check_interval,
            scheduler=self.scheduler,
        )
        self.tool_registry = ToolRegistry()
        self._engines: list[CompletionEngine] = []

    async def start(self) -> None:
        """Open storage and load persisted state."""
        await self.db.initialize()
        await self.ledger.load()
        self.tool_registry.discover_and_register(self.ledger, self.classifier, self.archive)
        logger.info("chat_secretary_started", sessions=len(self.ledger.get_session_history()))

    async def stop(self) -> None:
        """Stop polling, flush pending ledger writes and close storage."""
        for engine in self._engines:
            await engine.stop()
        await self.watcher.stop()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        await self.ledger.flush()
        await self.db.close()
        logger.info("chat_secretary_stopped")

    def create_engine(self, on_completed: CompletedCallback, on_failed: FailedCallback) -> CompletionEngine:
        engine = CompletionEngine(
            self.config.monitor,
            self.source,
            self.classifier,
            on_completed=on_completed,
            on_failed=on_failed,
            oracle=self.oracle,
            nudge_sink=self.nudge_sink,
            recorder=self.recorder,
            scheduler=self.scheduler,
        )
        self._engines.append(engine)
        return engine

    def _create_source(self) -> TranscriptSource:
        collaborators = self.config.collaborators
        if collaborators.export_command:
            return CommandTranscriptSource(
                collaborators.transcript_path,
                collaborators.export_command,
                timeout=collaborators.command_timeout,
            )
        return FileTranscriptSource(collaborators.transcript_path)

    def _create_oracle(self) -> TaskStatusOracle | None:
        collaborators = self.config.collaborators
        if not collaborators.oracle_command:
            return None
        return CommandTaskOracle(collaborators.oracle_command, timeout=collaborators.command_timeout)

    def _create_nudge_sink(self) -> NudgeSink | None:
        collaborators = self.config.collaborators
        if not collaborators.nudge_command:
            return None
        return CommandNudgeSink(collaborators.nudge_command, timeout=collaborators.command_timeout)
