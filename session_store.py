"""
In-memory store for short-lived conversation sessions.

Sessions live only in this process. A session idle for longer than the
timeout is dropped by the periodic sweep; a client presenting a dropped id
silently gets a fresh session with a new id.
"""

import asyncio
import threading
import uuid
from datetime import datetime
from typing import Callable, Dict, Optional

from logger import get_logger, log_function_call
from models.session_model import Session, SessionInfo, utcnow

logger = get_logger(__name__)

SESSION_TIMEOUT_SECONDS = 30 * 60  # 30 minutes
SWEEP_INTERVAL_SECONDS = 5 * 60


class SessionStore:
    """Owns the session mapping; all access goes through resolve/touch/sweep/describe."""

    def __init__(
        self,
        timeout_seconds: float = SESSION_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def resolve(self, session_id: Optional[str] = None) -> Session:
        """
        Return the live session for ``session_id`` or create a new one.

        An unknown or expired id is never reused: the caller gets a session
        with a freshly generated id. Never raises.
        """
        now = self._clock()
        with self._lock:
            if session_id:
                session = self._sessions.get(session_id)
                if session is not None and not session.is_expired(now, self.timeout_seconds):
                    session.touch(now)
                    return session
                if session is not None:
                    # Expired but not yet swept
                    del self._sessions[session_id]

            new_id = str(uuid.uuid4())
            session = Session.seeded(new_id, now)
            self._sessions[new_id] = session

        if session_id:
            logger.info("Session not found, issued a new one", requested_id=session_id, session_id=new_id)
        else:
            logger.info("Created new session", session_id=new_id)
        return session

    def touch(self, session: Session) -> None:
        """Refresh the session's last activity."""
        now = self._clock()
        with self._lock:
            session.touch(now)

    @log_function_call()
    def sweep(self) -> int:
        """
        Remove every session idle for longer than the timeout.

        Returns:
            Number of sessions removed
        """
        now = self._clock()
        with self._lock:
            expired = [
                sid for sid, session in list(self._sessions.items())
                if session.is_expired(now, self.timeout_seconds)
            ]
            for sid in expired:
                del self._sessions[sid]

        for sid in expired:
            logger.info("Cleaned up session", session_id=sid)
        return len(expired)

    def describe(self, session_id: str) -> Optional[SessionInfo]:
        """Read-only projection for diagnostics; does not refresh activity."""
        with self._lock:
            session = self._sessions.get(session_id)
            return session.info() if session is not None else None

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()


class SessionSweeper:
    """Background task running ``store.sweep()`` on a fixed interval."""

    def __init__(self, store: SessionStore, interval_seconds: float = SWEEP_INTERVAL_SECONDS):
        if interval_seconds <= 0:
            raise ValueError(f"Sweep interval must be positive, got {interval_seconds}")
        self.store = store
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="session-sweeper")
        logger.info("Session sweeper started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Session sweeper stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                removed = self.store.sweep()
                if removed:
                    logger.info("Expired sessions swept", removed=removed, remaining=len(self.store))
            except Exception as e:
                logger.error(f"Session sweep failed: {str(e)}", exc_info=True)
