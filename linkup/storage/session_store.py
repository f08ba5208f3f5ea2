import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable

from linkup.domain import GroupId, Session
from linkup.logging_config import log_storage


logger = logging.getLogger(__name__)


class SessionStore:
    """
    The persisted session map: one JSON document of group id -> Session.

    Loaded in full at startup and rewritten in full on every mutation, so a
    crash loses at most the in-flight exchange. Writes go to a temp file that
    replaces the old document atomically.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._sessions: dict[GroupId, Session] = {}

    def load(self) -> dict[GroupId, Session]:
        """Load every session from disk. Missing or unreadable file starts empty."""
        if not self.path.exists():
            self._sessions = {}
            log_storage(logger, "load", self.path, details="no state file, starting empty")
            return {}

        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Could not read session state at {self.path}: {e}")
            self._sessions = {}
            return {}

        self._sessions = self._from_dict(data)
        log_storage(logger, "load", self.path, details=f"sessions={len(self._sessions)}")
        return dict(self._sessions)

    def get(self, group_id: GroupId) -> Session | None:
        return self._sessions.get(group_id)

    def ensure(self, group_id: GroupId) -> Session:
        """Get a group's session, creating (and persisting) it on first observation."""
        session = self._sessions.get(group_id)
        if session is None:
            session = Session(group_id=group_id)
            self.put(session)
        return session

    def all(self) -> dict[GroupId, Session]:
        return dict(self._sessions)

    def put(self, session: Session) -> Session:
        """Replace a session and flush the whole map."""
        self._sessions[session.group_id] = session
        self._save()
        return session

    def update(self, group_id: GroupId, fn: Callable[[Session], Session]) -> Session:
        """Load, mutate and persist one session in a single step."""
        return self.put(fn(self.ensure(group_id)))

    def _save(self) -> None:
        payload = json.dumps(self._to_dict(), indent=2, default=str)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".state_", suffix=".json")
        try:
            with os.fdopen(fd, "w") as f:
                f.write(payload)
            os.replace(tmp_path, self.path)
        except OSError:
            log_storage(logger, "save", self.path, success=False)
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        log_storage(logger, "save", self.path)

    def _to_dict(self) -> dict[str, Any]:
        return {
            "sessions": {
                group_id: session.model_dump(mode="json")
                for group_id, session in self._sessions.items()
            }
        }

    @staticmethod
    def _from_dict(data: dict[str, Any]) -> dict[GroupId, Session]:
        return {
            GroupId(group_id): Session.model_validate(session)
            for group_id, session in data.get("sessions", {}).items()
        }
