import asyncio
from typing import Awaitable, Callable, Dict, List, Optional

import constants
from logging_config import get_logger
from room_locks import RoomLocks
from room_store import RoomStore
from session_store import SessionStore

logger = get_logger(__name__)


class Sweeper:
    """Periodic reclamation of idle rooms and sessions.

    Both passes take the per-room lock before deleting anything, the same
    exclusivity the relay uses, so a sweep never races a concurrent join.
    """

    def __init__(
        self,
        rooms: RoomStore,
        sessions: SessionStore,
        locks: RoomLocks,
        on_room_reclaimed: Optional[Callable[[str], object]] = None,
        room_interval: float = constants.ROOM_SWEEP_INTERVAL_SECONDS,
        room_max_idle: float = constants.ROOM_MAX_IDLE_SECONDS,
        session_interval: float = constants.SESSION_SWEEP_INTERVAL_SECONDS,
        session_max_idle: float = constants.SESSION_MAX_IDLE_SECONDS,
    ):
        self.rooms = rooms
        self.sessions = sessions
        self.locks = locks
        self.on_room_reclaimed = on_room_reclaimed
        self.room_interval = room_interval
        self.room_max_idle = room_max_idle
        self.session_interval = session_interval
        self.session_max_idle = session_max_idle
        self._tasks: List[asyncio.Task] = []

    async def sweep_rooms(self) -> int:
        cleaned = 0
        for code in self.rooms.idle_codes(self.room_max_idle):
            async with self.locks.hold(code):
                if not self.rooms.delete_if_idle(code, self.room_max_idle):
                    continue
                self.sessions.delete_sessions_by_room(code)
                if self.on_room_reclaimed:
                    self.on_room_reclaimed(code)
                cleaned += 1
        if cleaned:
            logger.info(f"Cleaned up {cleaned} inactive rooms")
        return cleaned

    async def sweep_sessions(self) -> int:
        by_room: Dict[str, List[str]] = {}
        for session in self.sessions.idle_sessions(self.session_max_idle):
            by_room.setdefault(session.room_code, []).append(session.id)

        cleaned = 0
        for code, session_ids in by_room.items():
            async with self.locks.hold(code):
                for session_id in session_ids:
                    if self.sessions.delete_if_idle(session_id, self.session_max_idle):
                        cleaned += 1
        if cleaned:
            logger.info(f"Cleaned up {cleaned} expired sessions")
        return cleaned

    def start(self):
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._run("rooms", self.room_interval, self.sweep_rooms)),
            asyncio.create_task(self._run("sessions", self.session_interval, self.sweep_sessions)),
        ]
        logger.info(
            f"Sweeper started: rooms every {self.room_interval}s (idle > {self.room_max_idle}s), "
            f"sessions every {self.session_interval}s (idle > {self.session_max_idle}s)"
        )

    async def stop(self):
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        if tasks:
            logger.info("Sweeper stopped")

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    async def _run(self, name: str, interval: float, sweep: Callable[[], Awaitable[int]]):
        while True:
            await asyncio.sleep(interval)
            try:
                await sweep()
            except Exception as e:
                logger.error(f"Error in {name} sweep: {e}", exc_info=True)
