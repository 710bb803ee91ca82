"""Turns transcript snapshots into session ledger records."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Optional

from chat_secretary.log import get_logger
from chat_secretary.storage.models import DialogSessionRecord

if TYPE_CHECKING:
    from chat_secretary.services.transcript_source import TranscriptSnapshot
    from chat_secretary.storage.archive import TranscriptArchive
    from chat_secretary.storage.session_ledger import SessionLedger
    from chat_secretary.transcript.classifier import DialogClassifier

logger = get_logger(__name__)

PREVIEW_LENGTH = 80


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionRecorder:
    """Classifies a snapshot, archives its content and upserts the session record."""

    def __init__(
        self,
        classifier: DialogClassifier,
        ledger: SessionLedger,
        archive: TranscriptArchive | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._classifier = classifier
        self._ledger = ledger
        self._archive = archive
        self._clock = clock

    async def observe(self, snapshot: TranscriptSnapshot) -> Optional[DialogSessionRecord]:
        """Record the snapshot's session. Returns None when it carries no session id."""
        info = self._classifier.get_session_info(snapshot.data)
        if info is None:
            return None

        requests = self._classifier.get_user_requests(snapshot.data)
        preview = requests[0].message[:PREVIEW_LENGTH] if requests else ""

        transcript_path: Optional[str] = None
        if self._archive:
            try:
                transcript_path = str(await self._archive.write(info.session_id, snapshot.content))
            except OSError as e:
                logger.warning("transcript_archive_failed", session_id=info.session_id, error=str(e))

        now = self._clock()
        record = DialogSessionRecord(
            session_id=info.session_id,
            first_seen=now,
            last_seen=now,
            requests_count=self._classifier.get_requests_count(snapshot.data),
            status=self._classifier.get_dialog_status(snapshot.data),
            first_request_preview=preview,
            agent_id=info.agent_id,
            model_id=info.model_id,
            transcript_path=transcript_path,
        )
        self._ledger.record(record)
        return self._ledger.get_session(info.session_id)
