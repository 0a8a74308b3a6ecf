# meeting_booker/services/session_store.py
from __future__ import annotations

import logging
import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, Optional
from zoneinfo import ZoneInfo

from meeting_booker.core.config import get_settings
from meeting_booker.schemas.booking import BookingOverrides, ValidationOutcome
from meeting_booker.schemas.session import SessionHandle, UploadSession

logger = logging.getLogger(__name__)


class SessionExpiredError(LookupError):
    """
    Raised when a commit references an unknown, expired or already
    committed upload session.
    """

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__("Session expired. Please re-upload.")


@dataclass
class _Entry:
    session: UploadSession
    consumed: bool = False


class ValidationSessionStore:
    """
    In-process store bridging the validate and commit steps of an upload.

    - Identifiers are random, never derived from file names.
    - Every session carries an expiry and can be consumed exactly once.
    - Nothing survives a process restart.
    """

    def __init__(
        self,
        ttl_seconds: int = 3600,
        clock: Callable[[], datetime] = lambda: datetime.now(tz=timezone.utc),
    ) -> None:
        self.ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def put(
        self,
        outcomes: Iterable[ValidationOutcome],
        document_path: str,
        overrides: BookingOverrides | None = None,
    ) -> UploadSession:
        handle = SessionHandle(
            session_id=secrets.token_urlsafe(24),
            expires_at=self._clock() + self.ttl,
        )
        session = UploadSession(
            handle=handle,
            document_path=document_path,
            outcomes=tuple(outcomes),
            overrides=overrides or BookingOverrides(),
        )
        with self._lock:
            self._purge_expired_locked()
            self._entries[handle.session_id] = _Entry(session=session)
        logger.info(
            "Stored upload session %s (%d row(s)) until %s",
            handle.session_id,
            len(session.outcomes),
            handle.expires_at.isoformat(),
        )
        return session

    def get(self, session_id: str) -> Optional[UploadSession]:
        """
        Return the live session, or None if unknown, expired or consumed.
        """
        with self._lock:
            entry = self._entries.get(session_id)
            if entry is None or entry.consumed or self._expired(entry):
                return None
            return entry.session

    def consume(self, session_id: str) -> UploadSession:
        """
        Atomically hand out a session for commit and mark it used.

        Raises
        ------
        SessionExpiredError
            If the session is unknown, expired or was already consumed.
        """
        with self._lock:
            entry = self._entries.get(session_id)
            if entry is None or entry.consumed or self._expired(entry):
                raise SessionExpiredError(session_id)
            entry.consumed = True
            return entry.session

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge_expired_locked()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _expired(self, entry: _Entry) -> bool:
        return entry.session.handle.expires_at <= self._clock()

    def _purge_expired_locked(self) -> int:
        stale = [
            key for key, entry in self._entries.items()
            if entry.consumed or self._expired(entry)
        ]
        for key in stale:
            del self._entries[key]
        return len(stale)


_session_store_instance: Optional[ValidationSessionStore] = None


def get_session_store() -> ValidationSessionStore:
    global _session_store_instance
    if _session_store_instance is None:
        settings = get_settings()
        zone = ZoneInfo(settings.TIMEZONE)
        _session_store_instance = ValidationSessionStore(
            ttl_seconds=settings.SESSION_TTL_SECONDS,
            clock=lambda: datetime.now(tz=zone),
        )
    return _session_store_instance
