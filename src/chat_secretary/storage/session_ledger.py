"""Bounded, persisted ledger of observed dialog sessions."""

from __future__ import annotations

import asyncio
from typing import Any, Coroutine, Optional

from chat_secretary.config import DEFAULT_LEDGER_CAPACITY
from chat_secretary.log import get_logger
from chat_secretary.storage.archive import TranscriptArchive
from chat_secretary.storage.kv_store import KeyValueStore
from chat_secretary.storage.models import DialogSessionRecord

logger = get_logger(__name__)

STORAGE_KEY = "dialog_sessions"


class SessionLedger:
    """One summary record per session id, most recently seen first.

    Mutations apply to the in-memory map immediately. Persisting the ledger
    (and deleting archives of pruned sessions) happens in background tasks
    with no durability guarantee: a crash before a write lands loses it.
    ``flush()`` waits for every write scheduled so far.
    """

    def __init__(
        self,
        store: KeyValueStore,
        archive: TranscriptArchive | None = None,
        capacity: int = DEFAULT_LEDGER_CAPACITY,
    ):
        self._store = store
        self._archive = archive
        self._capacity = capacity
        self._sessions: dict[str, DialogSessionRecord] = {}
        self._current_session_id: Optional[str] = None
        self._write_lock = asyncio.Lock()
        self._pending: set[asyncio.Task] = set()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def current_session_id(self) -> Optional[str]:
        return self._current_session_id

    async def load(self) -> None:
        """Replace the in-memory map with the persisted ledger."""
        stored = await self._store.get(STORAGE_KEY, [])
        self._sessions.clear()
        for item in stored:
            try:
                record = DialogSessionRecord.from_dict(item)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("ledger_record_skipped", error=str(e))
                continue
            self._sessions[record.session_id] = record
        logger.info("ledger_loaded", count=len(self._sessions))

    # ── queries ─────────────────────────────────────────────────

    def get_session_history(self) -> list[DialogSessionRecord]:
        return [record.copy() for record in self._sorted()]

    def get_session(self, session_id: str) -> Optional[DialogSessionRecord]:
        record = self._sessions.get(session_id)
        return record.copy() if record else None

    # ── mutations ───────────────────────────────────────────────

    def record(self, record: DialogSessionRecord) -> None:
        """Insert or update a session; first_seen and the preview are kept from the first write."""
        existing = self._sessions.get(record.session_id)
        if existing:
            self._sessions[record.session_id] = DialogSessionRecord(
                session_id=existing.session_id,
                first_seen=existing.first_seen,
                last_seen=record.last_seen,
                requests_count=record.requests_count,
                status=record.status,
                first_request_preview=existing.first_request_preview or record.first_request_preview,
                agent_id=existing.agent_id or record.agent_id,
                model_id=existing.model_id or record.model_id,
                transcript_path=record.transcript_path or existing.transcript_path,
            )
        else:
            self._sessions[record.session_id] = record.copy()

        self._current_session_id = record.session_id

        ordered = self._sorted()
        kept = ordered[: self._capacity]
        dropped = ordered[self._capacity :]
        if dropped:
            self._sessions = {r.session_id: r for r in kept}
            logger.info("ledger_pruned", dropped=len(dropped), capacity=self._capacity)

        self._schedule(
            self._persist(
                [r.to_dict() for r in kept],
                [r.transcript_path for r in dropped if r.transcript_path],
            )
        )

    def clear_history(self) -> None:
        """Empty the ledger. Archived transcripts are left on disk."""
        self._sessions.clear()
        self._current_session_id = None
        self._schedule(self._persist([], []))
        logger.info("ledger_cleared")

    async def flush(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending))

    # ── persistence ─────────────────────────────────────────────

    def _sorted(self) -> list[DialogSessionRecord]:
        return sorted(self._sessions.values(), key=lambda r: r.last_seen, reverse=True)

    def _schedule(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _persist(self, records: list[dict[str, Any]], dropped_paths: list[str]) -> None:
        async with self._write_lock:
            if self._archive:
                for path in dropped_paths:
                    try:
                        await self._archive.delete(path)
                    except OSError as e:
                        logger.debug("ledger_archive_cleanup_failed", path=path, error=str(e))

            try:
                await self._store.set(STORAGE_KEY, records)
            except Exception as e:
                logger.error("ledger_persist_failed", error=str(e))
                return
            logger.debug("ledger_persisted", count=len(records))
