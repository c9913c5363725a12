"""Signaling relay: binds connections to rooms and forwards handshake messages.

Each connection is identified by the participant id assigned in ``connect``.
Messages from one connection are handled one at a time by its receive loop;
messages that touch a room run under that room's lock, so a membership
change and the broadcast announcing it are never interleaved with another
handler on the same room.
"""
import asyncio
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional, Protocol, Set

from pydantic import ValidationError

import constants
from codes import (
    canonical_room_code,
    generate_participant_id,
    generate_room_code,
    validate_participant_id,
    validate_room_code,
)
from errors import (
    AlreadyInRoom,
    InvalidRoomCode,
    NotInRoom,
    RoomCodeCollision,
    RoomFull,
    RoomNotFound,
    SignalingError,
)
from logging_config import get_logger
from room_locks import RoomLocks
from room_store import RoomStore
from schemas.messages import (
    CreateRoom,
    ErrorMessage,
    HostLeft,
    IceCandidate,
    JoinRoom,
    LeaveRoom,
    OutboundMessage,
    RoomCreated,
    RoomJoined,
    RoomLeft,
    ViewerJoined,
    ViewerLeft,
    WebRTCAnswer,
    WebRTCOffer,
    parse_client_message,
)
from session_store import Role, SessionStore

logger = get_logger(__name__)


class Connection(Protocol):
    async def send_text(self, data: str) -> None:
        ...


@dataclass
class ConnectionState:
    participant_id: str
    connection: Connection
    room_code: Optional[str] = None
    session_id: Optional[str] = None
    role: Optional[Role] = None


class SignalingRelay:
    def __init__(
        self,
        rooms: Optional[RoomStore] = None,
        sessions: Optional[SessionStore] = None,
        locks: Optional[RoomLocks] = None,
        code_generator: Callable[[], str] = generate_room_code,
        participant_id_factory: Callable[[], str] = generate_participant_id,
        max_code_attempts: int = constants.ROOM_CODE_MAX_ATTEMPTS,
        max_viewers: int = constants.MAX_VIEWERS_PER_ROOM,
        destroy_on_host_leave: bool = constants.DESTROY_ON_HOST_LEAVE,
    ):
        self.rooms = rooms if rooms is not None else RoomStore()
        self.sessions = sessions if sessions is not None else SessionStore()
        self.locks = locks if locks is not None else RoomLocks()
        self._code_generator = code_generator
        self._participant_id_factory = participant_id_factory
        self._max_code_attempts = max_code_attempts
        self._max_viewers = max_viewers
        self._destroy_on_host_leave = destroy_on_host_leave

        # participant_id -> connection state
        self._connections: Dict[str, ConnectionState] = {}
        # room_code -> participant ids bound to that room
        self._members: Dict[str, Set[str]] = {}

    # ---- connection lifecycle ----

    def connect(self, connection: Connection) -> str:
        participant_id = self._participant_id_factory()
        while participant_id in self._connections:
            participant_id = self._participant_id_factory()
        if not validate_participant_id(participant_id):
            raise ValueError(f"Invalid participant id: {participant_id!r}")
        self._connections[participant_id] = ConnectionState(participant_id=participant_id, connection=connection)
        logger.info(f"Client connected: {participant_id} (connections: {len(self._connections)})")
        return participant_id

    async def disconnect(self, participant_id: str):
        """Transport-level disconnect: implicit leave, then forget the connection."""
        state = self._connections.get(participant_id)
        if state is None:
            return
        code = state.room_code
        if code:
            try:
                async with self.locks.hold(code):
                    if state.room_code == code:
                        await self._depart(state)
            except Exception as e:
                logger.error(f"Error during disconnect cleanup for {participant_id} in room {code}: {e}", exc_info=True)
        self._connections.pop(participant_id, None)
        logger.info(f"Client disconnected: {participant_id} (connections: {len(self._connections)})")

    # ---- inbound dispatch ----

    async def handle_message(self, participant_id: str, raw: str):
        """Handle one inbound text frame. Never raises; failures are replied to the sender."""
        state = self._connections.get(participant_id)
        if state is None:
            logger.warning(f"Message from unknown connection {participant_id} dropped")
            return

        try:
            message = parse_client_message(raw)
        except ValidationError as e:
            logger.warning(f"Malformed message from {participant_id}: {e.error_count()} validation errors")
            await self._send(state, ErrorMessage(message="Malformed message"))
            return

        try:
            match message:
                case CreateRoom():
                    await self._create_room(state)
                case JoinRoom(room_code=code):
                    await self._join_room(state, code)
                case LeaveRoom(room_code=code):
                    await self._leave_room(state, code)
                case WebRTCOffer() | WebRTCAnswer() | IceCandidate():
                    await self._relay(state, message.type, raw)
        except SignalingError as e:
            logger.warning(f"{message.type} rejected for {participant_id}: {e.message}")
            await self._send(state, self._failure_reply(message, e.message))
        except Exception as e:
            logger.error(f"Error handling {message.type} from {participant_id}: {e}", exc_info=True)
            await self._send(state, ErrorMessage(message="Internal server error"))

    @staticmethod
    def _failure_reply(message, error: str) -> OutboundMessage:
        match message:
            case CreateRoom():
                return RoomCreated(success=False, error=error)
            case JoinRoom():
                return RoomJoined(success=False, error=error)
            case LeaveRoom():
                return RoomLeft(success=False, error=error)
            case _:
                return ErrorMessage(message=error)

    # ---- handlers ----

    async def _create_room(self, state: ConnectionState):
        if state.room_code:
            raise AlreadyInRoom()

        for attempt in range(1, self._max_code_attempts + 1):
            code = self._code_generator()
            async with self.locks.hold(code):
                try:
                    self.rooms.create_room(code, state.participant_id)
                except RoomCodeCollision:
                    logger.info(f"Room code {code} taken, retrying ({attempt}/{self._max_code_attempts})")
                    continue
                session = self.sessions.create_session(code, state.participant_id, Role.HOST)
                self._bind(state, code, session.id, Role.HOST)
                await self._send(state, RoomCreated(room_code=code, success=True))
                logger.info(f"Room created: {code} by user {state.participant_id}")
                return

        logger.error(f"Could not allocate a free room code after {self._max_code_attempts} attempts")
        raise SignalingError("Failed to create room")

    async def _join_room(self, state: ConnectionState, room_code: str):
        code = canonical_room_code(room_code)
        if not validate_room_code(code):
            raise InvalidRoomCode()
        if state.room_code:
            raise AlreadyInRoom()

        async with self.locks.hold(code):
            room = self.rooms.get_room(code)
            if room is None:
                raise RoomNotFound()
            if room.viewer_count >= self._max_viewers:
                raise RoomFull()

            self.rooms.join_room(code, state.participant_id)
            session = self.sessions.create_session(code, state.participant_id, Role.VIEWER)
            self._bind(state, code, session.id, Role.VIEWER)

            viewer_count = self.rooms.viewer_count(code)
            await self._send(state, RoomJoined(room_code=code, success=True, viewer_count=viewer_count))
            await self._broadcast(
                code,
                ViewerJoined(viewer_id=state.participant_id, viewer_count=viewer_count).to_json(),
                exclude=state.participant_id,
            )
            logger.info(f"User {state.participant_id} joined room {code} ({viewer_count} viewers)")

    async def _leave_room(self, state: ConnectionState, room_code: str):
        code = canonical_room_code(room_code)
        if state.room_code is None:
            # Already left (or never joined): nothing to undo
            await self._send(state, RoomLeft(success=True))
            return
        if state.room_code != code:
            raise NotInRoom(f"Not in room {code}")

        async with self.locks.hold(code):
            # A host departure may have unbound us while we waited for the lock
            if state.room_code == code:
                await self._depart(state)
        await self._send(state, RoomLeft(success=True))
        logger.info(f"User {state.participant_id} left room {code}")

    async def _relay(self, state: ConnectionState, message_type: str, raw: str):
        code = state.room_code
        if not code:
            raise NotInRoom()
        async with self.locks.hold(code):
            if state.room_code != code:
                raise NotInRoom()
            self.rooms.get_room(code)
            if state.session_id:
                self.sessions.get_session(state.session_id)
            delivered = await self._broadcast(code, raw, exclude=state.participant_id)
        logger.debug(f"Relayed {message_type} from {state.participant_id} in room {code} to {delivered} peers")

    # ---- membership ----

    async def _depart(self, state: ConnectionState):
        """Remove ``state`` from its room and notify the rest. Caller holds the room lock."""
        code = state.room_code
        participant_id = state.participant_id
        room = self.rooms.get_room(code)
        is_host = room is not None and room.host_id == participant_id

        self.rooms.leave_room(code, participant_id)
        self.sessions.delete_participant_sessions(code, participant_id)
        self._unbind(state)

        viewer_count = self.rooms.viewer_count(code)
        if is_host:
            self.rooms.remove_host(code)
            await self._broadcast(code, HostLeft(host_id=participant_id, viewer_count=viewer_count).to_json())
            if self._destroy_on_host_leave:
                self._close_room(code)
                return
        else:
            await self._broadcast(code, ViewerLeft(viewer_id=participant_id, viewer_count=viewer_count).to_json())

        if viewer_count == 0:
            self._close_room(code)

    def _close_room(self, code: str) -> int:
        """Delete the room and its sessions and unbind any connections still in it."""
        unbound = 0
        for member_id in list(self._members.get(code, ())):
            member = self._connections.get(member_id)
            if member is not None:
                self._unbind(member)
                unbound += 1
        self._members.pop(code, None)
        self.rooms.delete_room(code)
        self.sessions.delete_sessions_by_room(code)
        return unbound

    def reclaim_room(self, code: str) -> int:
        """Drop bindings to a room removed by the sweeper. Caller holds the room lock."""
        unbound = self._close_room(code)
        if unbound:
            logger.info(f"Unbound {unbound} connections from reclaimed room {code}")
        return unbound

    def _bind(self, state: ConnectionState, code: str, session_id: str, role: Role):
        state.room_code = code
        state.session_id = session_id
        state.role = role
        self._members.setdefault(code, set()).add(state.participant_id)

    def _unbind(self, state: ConnectionState):
        members = self._members.get(state.room_code)
        if members is not None:
            members.discard(state.participant_id)
            if not members:
                del self._members[state.room_code]
        state.room_code = None
        state.session_id = None
        state.role = None

    # ---- outbound ----

    async def _send(self, state: ConnectionState, message: OutboundMessage):
        try:
            await state.connection.send_text(message.to_json())
        except Exception as e:
            logger.warning(f"Error sending {message.type} to {state.participant_id}: {e}")

    async def _broadcast(self, code: str, data: str, exclude: Optional[str] = None) -> int:
        recipients = [pid for pid in self._members.get(code, ()) if pid != exclude]
        targets = [self._connections[pid] for pid in recipients if pid in self._connections]
        if not targets:
            return 0
        results = await asyncio.gather(*(t.connection.send_text(data) for t in targets), return_exceptions=True)
        for target, result in zip(targets, results):
            if isinstance(result, Exception):
                logger.warning(f"Error sending to {target.participant_id} in room {code}: {result}")
        return len(targets) - sum(isinstance(r, Exception) for r in results)

    # ---- introspection ----

    def bound_room(self, participant_id: str) -> Optional[str]:
        state = self._connections.get(participant_id)
        return state.room_code if state else None

    def members(self, code: str) -> Iterable[str]:
        return frozenset(self._members.get(code, ()))

    def connection_count(self) -> int:
        return len(self._connections)
