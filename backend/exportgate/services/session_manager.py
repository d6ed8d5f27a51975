"""Session manager: the session store contract used by the export flow."""
from datetime import datetime
from typing import Any, Dict, Optional, Set
import asyncio

from ..models import Session, SessionStatus
from ..utils.logger import logger
from .storage_service import StorageService, storage_service
from .tokens import legacy_token_matches


# Fields callers may change through partial updates
_IMMUTABLE_FIELDS = {"id", "created_at", "updated_at"}


class SessionManager:
    """Manager for session lifecycle and state tracking.

    Mutations are serialised through one asyncio lock, which makes
    compare-and-clear of the legacy download token and trial reservations
    atomic within a process.
    """

    def __init__(self, storage: Optional[StorageService] = None):
        """Initialize the session manager.

        Args:
            storage: Storage service instance. Defaults to global storage_service
        """
        self.storage = storage or storage_service
        self._lock = asyncio.Lock()
        # Sessions whose trial backs an export that is still in flight
        self._reserved_trials: Set[str] = set()

    async def get_session(self, session_id: str) -> Optional[Session]:
        """Get a session.

        Args:
            session_id: The session identifier

        Returns:
            Session or None if not found (or if the id is malformed)
        """
        try:
            return self.storage.load_session(session_id)
        except ValueError as e:
            logger.warning(f"Rejected session lookup: {e}")
            return None

    async def create_session(self, fields: Optional[Dict[str, Any]] = None) -> Session:
        """Create a session from partial fields.

        Args:
            fields: Initial values; ``id`` is generated when absent

        Returns:
            The stored session
        """
        values = dict(fields or {})
        async with self._lock:
            values.setdefault("id", self.storage.generate_session_id())
            now = datetime.now()
            values.setdefault("created_at", now)
            values["updated_at"] = now

            session = Session(**values)
            self.storage.save_session(session)
            logger.info(f"Session created: {session.id}")
            return session

    async def update_session(self, session_id: str, **fields: Any) -> Session:
        """Apply a partial update.

        Args:
            session_id: The session identifier
            **fields: Session fields to change

        Returns:
            Updated session

        Raises:
            ValueError: If the session does not exist or a field is unknown
        """
        unknown = set(fields) - (set(Session.model_fields) - _IMMUTABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update session fields: {', '.join(sorted(unknown))}")

        async with self._lock:
            return self._apply(session_id, fields)

    async def update_status(self, session_id: str, status: SessionStatus) -> Session:
        """Record job progress."""
        return await self.update_session(session_id, status=status)

    async def mark_paid(self, session_id: str, pack_id: Optional[str] = None) -> Session:
        """Record a confirmed payment."""
        fields: Dict[str, Any] = {"is_paid": True}
        if pack_id:
            fields["pack_id"] = pack_id
        return await self.update_session(session_id, **fields)

    async def claim_download_token(self, session_id: str, token: str) -> bool:
        """Atomically check and clear the legacy single-use token.

        Args:
            session_id: The session identifier
            token: Token presented by the client

        Returns:
            True for the one caller that consumed the token, False otherwise
        """
        async with self._lock:
            session = self.storage.load_session(session_id)
            if session is None or not legacy_token_matches(session.download_token, token):
                return False
            self._apply(session_id, {"download_token": None}, session)
            logger.info(f"Legacy download token consumed for session {session_id}")
            return True

    async def clear_download_token(self, session_id: str) -> Session:
        return await self.update_session(session_id, download_token=None)

    async def reserve_trial(self, session_id: str) -> bool:
        """Hold the free trial of a session for one export.

        The trial itself is only cleared by ``consume_trial`` once a real
        dataset was rendered. Until then the reservation keeps concurrent
        requests from riding on the same trial.

        Args:
            session_id: The session identifier

        Returns:
            True for the one caller holding the trial, False otherwise
        """
        async with self._lock:
            session = self.storage.load_session(session_id)
            if session is None or not session.is_trial or session_id in self._reserved_trials:
                return False
            self._reserved_trials.add(session_id)
            return True

    async def release_trial(self, session_id: str) -> None:
        """Drop a trial reservation, leaving the trial as stored."""
        async with self._lock:
            self._reserved_trials.discard(session_id)

    async def consume_trial(self, session_id: str) -> Session:
        return await self.update_session(session_id, is_trial=False)

    def _apply(self, session_id: str, fields: Dict[str, Any], session: Optional[Session] = None) -> Session:
        # Caller must hold self._lock.
        session = session or self.storage.load_session(session_id)
        if session is None:
            raise ValueError(f"Session {session_id} not found")

        updated = Session(**{**session.model_dump(), **fields, "updated_at": datetime.now()})
        self.storage.save_session(updated)
        return updated


# Global session manager instance
session_manager = SessionManager()
