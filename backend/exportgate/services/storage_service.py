"""Storage service for managing session records on the file system."""
import json
import secrets
from pathlib import Path
from typing import Optional, Dict, Any

from ..config import settings
from ..models import Session


SESSION_FILE = "session.json"


class StorageService:
    """Service for managing session storage on the file system."""

    def __init__(self, base_path: Optional[Path] = None):
        """Initialize the storage service.

        Args:
            base_path: Base directory for storage. Defaults to settings.storage_path
        """
        self.base_path = base_path or settings.storage_path
        self._ensure_base_directory()

    def _ensure_base_directory(self) -> None:
        """Ensure the base storage directory exists."""
        self.base_path.mkdir(parents=True, exist_ok=True)

    def generate_session_id(self) -> str:
        """Generate a unique session ID.

        Returns:
            Session ID in format: sess_{random}
        """
        return f"sess_{secrets.token_urlsafe(15)}"

    def get_session_directory(self, session_id: str) -> Path:
        """Get the directory path for a session.

        Args:
            session_id: The session identifier

        Returns:
            Path to the session directory

        Raises:
            ValueError: If the id could escape the storage directory
        """
        if not session_id or "/" in session_id or "\\" in session_id or session_id.startswith("."):
            raise ValueError(f"Invalid session id: {session_id!r}")
        return self.base_path / session_id

    def save_json(self, session_id: str, filename: str, data: Dict[str, Any]) -> Path:
        """Save JSON data to a file in the session directory.

        The file is written next to its destination and moved into place,
        so readers never see a half-written record.

        Args:
            session_id: The session identifier
            filename: Name of the file (e.g., 'session.json')
            data: Data to save

        Returns:
            Path to the saved file
        """
        session_dir = self.get_session_directory(session_id)
        session_dir.mkdir(parents=True, exist_ok=True)
        file_path = session_dir / filename
        tmp_path = session_dir / f".{filename}.tmp"

        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)
        tmp_path.replace(file_path)

        return file_path

    def load_json(self, session_id: str, filename: str) -> Optional[Dict[str, Any]]:
        """Load JSON data from a file in the session directory.

        Args:
            session_id: The session identifier
            filename: Name of the file (e.g., 'session.json')

        Returns:
            Loaded data or None if file doesn't exist
        """
        file_path = self.get_session_directory(session_id) / filename

        if not file_path.exists():
            return None

        with open(file_path, "r", encoding="utf-8") as f:
            return json.load(f)

    def save_session(self, session: Session) -> Path:
        """Save a session record.

        Args:
            session: Session to save

        Returns:
            Path to the saved file
        """
        return self.save_json(session.id, SESSION_FILE, session.model_dump(mode="json"))

    def load_session(self, session_id: str) -> Optional[Session]:
        """Load a session record.

        Args:
            session_id: The session identifier

        Returns:
            Session or None if not found
        """
        data = self.load_json(session_id, SESSION_FILE)
        if data:
            return Session(**data)
        return None


# Global storage service instance
storage_service = StorageService()
