import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional

from logging_config import get_logger

logger = get_logger(__name__)


class Role(str, Enum):
    HOST = "host"
    VIEWER = "viewer"


@dataclass
class Session:
    id: str
    room_code: str
    participant_id: str
    role: Role
    created_at: datetime = field(default_factory=datetime.now)
    last_activity: datetime = field(default_factory=datetime.now)


UPDATABLE_FIELDS = ("room_code", "participant_id", "role")


class SessionStore:
    def __init__(self):
        self._sessions: Dict[str, Session] = {}
        logger.info("Initializing SessionStore")

    def create_session(self, room_code: str, participant_id: str, role: Role) -> Session:
        session = Session(
            id=uuid.uuid4().hex,
            room_code=room_code,
            participant_id=participant_id,
            role=Role(role),
        )
        self._sessions[session.id] = session
        logger.info(f"Session created: {session.id} ({session.role.value}) for room {room_code}")
        return session

    def get_session(self, session_id: str) -> Optional[Session]:
        session = self._sessions.get(session_id)
        if session:
            session.last_activity = datetime.now()
        return session

    def get_sessions_by_room(self, room_code: str) -> List[Session]:
        return [s for s in self._sessions.values() if s.room_code == room_code]

    def get_sessions_by_participant(self, participant_id: str) -> List[Session]:
        return [s for s in self._sessions.values() if s.participant_id == participant_id]

    def update_session(self, session_id: str, **updates) -> Optional[Session]:
        """Apply a partial update and refresh ``last_activity``.

        Only room_code, participant_id and role may change; anything else
        raises ValueError.
        """
        session = self._sessions.get(session_id)
        if not session:
            return None
        unknown = set(updates) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update session fields: {', '.join(sorted(unknown))}")
        if "role" in updates:
            updates["role"] = Role(updates["role"])
        updated = replace(session, **updates, last_activity=datetime.now())
        self._sessions[session_id] = updated
        logger.debug(f"Session updated: {session_id} {updates}")
        return updated

    def delete_session(self, session_id: str) -> bool:
        deleted = self._sessions.pop(session_id, None) is not None
        if deleted:
            logger.info(f"Session deleted: {session_id}")
        return deleted

    def delete_sessions_by_room(self, room_code: str) -> int:
        doomed = self.get_sessions_by_room(room_code)
        for session in doomed:
            self.delete_session(session.id)
        logger.info(f"Deleted {len(doomed)} sessions for room {room_code}")
        return len(doomed)

    def delete_participant_sessions(self, room_code: str, participant_id: str) -> int:
        doomed = [s for s in self.get_sessions_by_room(room_code) if s.participant_id == participant_id]
        for session in doomed:
            self.delete_session(session.id)
        return len(doomed)

    def total_count(self) -> int:
        return len(self._sessions)

    def idle_sessions(self, max_idle_seconds: float, now: Optional[datetime] = None) -> List[Session]:
        cutoff = (now or datetime.now()) - timedelta(seconds=max_idle_seconds)
        return [s for s in self._sessions.values() if s.last_activity < cutoff]

    def delete_if_idle(self, session_id: str, max_idle_seconds: float, now: Optional[datetime] = None) -> bool:
        session = self._sessions.get(session_id)
        if not session:
            return False
        cutoff = (now or datetime.now()) - timedelta(seconds=max_idle_seconds)
        if session.last_activity >= cutoff:
            return False
        return self.delete_session(session_id)
