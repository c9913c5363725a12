"""In-memory room records keyed by room code.

All methods are synchronous and never await, so each call is atomic on the
event loop. Callers that pair a mutation with a broadcast hold the room's
lock from ``room_locks.RoomLocks`` around both.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set

from errors import RoomCodeCollision
from logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class Room:
    code: str
    host_id: Optional[str]
    viewers: Set[str] = field(default_factory=set)
    created_at: datetime = field(default_factory=datetime.now)
    last_activity: datetime = field(default_factory=datetime.now)

    @property
    def viewer_count(self) -> int:
        return len(self.viewers)

    def touch(self):
        self.last_activity = datetime.now()


class RoomStore:
    def __init__(self):
        self._rooms: Dict[str, Room] = {}
        logger.info("Initializing RoomStore")

    def create_room(self, code: str, host_id: str) -> Room:
        """Insert a new room hosted by ``host_id``.

        Raises ``RoomCodeCollision`` when ``code`` already names a live room;
        the caller is expected to pick another code.
        """
        if code in self._rooms:
            logger.warning(f"Room code collision on create: {code}")
            raise RoomCodeCollision(code)
        room = Room(code=code, host_id=host_id)
        self._rooms[code] = room
        logger.info(f"Room created: {code} by host {host_id}")
        return room

    def get_room(self, code: str) -> Optional[Room]:
        room = self._rooms.get(code)
        if room:
            room.touch()
        return room

    def peek_room(self, code: str) -> Optional[Room]:
        """Read-only lookup; unlike ``get_room`` it leaves ``last_activity`` alone."""
        return self._rooms.get(code)

    def join_room(self, code: str, viewer_id: str) -> bool:
        room = self.get_room(code)
        if not room:
            logger.debug(f"Join ignored, room {code} not found")
            return False
        if viewer_id not in room.viewers:
            room.viewers.add(viewer_id)
            logger.info(f"Viewer {viewer_id} joined room {code}")
        return True

    def leave_room(self, code: str, viewer_id: str) -> bool:
        """Remove a viewer. Returns whether membership actually changed."""
        room = self.get_room(code)
        if not room or viewer_id not in room.viewers:
            return False
        room.viewers.discard(viewer_id)
        logger.info(f"Viewer {viewer_id} left room {code}")
        return True

    def remove_host(self, code: str) -> bool:
        """Mark the room hostless, keeping it and its viewers."""
        room = self.get_room(code)
        if not room or room.host_id is None:
            return False
        logger.info(f"Host {room.host_id} left room {code}")
        room.host_id = None
        return True

    def delete_room(self, code: str) -> bool:
        deleted = self._rooms.pop(code, None) is not None
        if deleted:
            logger.info(f"Room deleted: {code}")
        return deleted

    def viewer_count(self, code: str) -> int:
        room = self.get_room(code)
        return room.viewer_count if room else 0

    def is_active(self, code: str) -> bool:
        return code in self._rooms

    def active_count(self) -> int:
        return len(self._rooms)

    def all_rooms(self) -> List[Room]:
        return list(self._rooms.values())

    def idle_codes(self, max_idle_seconds: float, now: Optional[datetime] = None) -> List[str]:
        """Codes of rooms whose last activity is older than ``max_idle_seconds``."""
        cutoff = (now or datetime.now()) - timedelta(seconds=max_idle_seconds)
        return [code for code, room in self._rooms.items() if room.last_activity < cutoff]

    def delete_if_idle(self, code: str, max_idle_seconds: float, now: Optional[datetime] = None) -> bool:
        """Delete ``code`` only if it is still idle; a join may have refreshed it meanwhile."""
        room = self._rooms.get(code)
        if not room:
            return False
        cutoff = (now or datetime.now()) - timedelta(seconds=max_idle_seconds)
        if room.last_activity >= cutoff:
            return False
        return self.delete_room(code)
