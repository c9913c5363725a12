"""Signaling client: drives a NegotiationSequencer from relayed messages.

Usage:
    # Host
    client = SignalingClient(NegotiationSequencer())
    client.sequencer.add_local_track(track)
    await client.connect("ws://localhost:3002/ws")
    await client.create_room()
    asyncio.create_task(client.run())
    # room code arrives as a room-created message on client.messages

    # Viewer
    client = SignalingClient(NegotiationSequencer())
    await client.connect("ws://localhost:3002/ws")
    await client.join_room("ab12-cd")
    await client.run()
"""
import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, Optional

import websockets

import constants
import message_types
from codes import normalize_room_code
from errors import NegotiationError
from logging_config import get_logger
from negotiation import NegotiationSequencer, NegotiationState
from session_store import Role

logger = get_logger(__name__)


class SignalingClient:
    def __init__(
        self,
        sequencer: NegotiationSequencer,
        send: Optional[Callable[[Dict[str, Any]], Awaitable[None]]] = None,
        message_queue_size: int = constants.CLIENT_MESSAGE_QUEUE_SIZE,
    ):
        self.sequencer = sequencer
        self._send = send
        self._ws = None
        self.role: Optional[Role] = None
        self.room_code: Optional[str] = None
        self.viewer_count = 0
        # Most recent inbound frames for callers that want to observe them; oldest dropped when full
        self.messages: asyncio.Queue = asyncio.Queue(maxsize=message_queue_size)

    async def connect(self, url: str):
        self._ws = await websockets.connect(url)
        self._send = self._send_ws
        logger.info(f"Connected to signaling server {url}")

    async def _send_ws(self, message: Dict[str, Any]):
        await self._ws.send(json.dumps(message))

    async def send(self, message: Dict[str, Any]):
        if self._send is None:
            raise RuntimeError("Signaling client is not connected")
        await self._send(message)

    # ---- requests ----

    async def create_room(self):
        self.role = Role.HOST
        await self.send({"type": message_types.CREATE_ROOM})

    async def join_room(self, code: str):
        self.role = Role.VIEWER
        await self.send({"type": message_types.JOIN_ROOM, "roomCode": normalize_room_code(code)})

    async def leave_room(self):
        if self.room_code:
            await self.send({"type": message_types.LEAVE_ROOM, "roomCode": self.room_code})

    # ---- inbound ----

    async def run(self):
        """Consume frames until the server closes the socket."""
        try:
            async for raw in self._ws:
                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("Ignoring non-JSON frame from signaling server")
                    continue
                await self.dispatch(message)
        except websockets.ConnectionClosed:
            logger.info("Signaling connection closed")
        # The server treats a dropped socket as a leave
        if self.room_code:
            await self._end_room(f"Disconnected from room {self.room_code}")

    async def dispatch(self, message: Dict[str, Any]):
        message_type = message.get("type")
        try:
            await self._dispatch(message_type, message)
        except NegotiationError as e:
            logger.error(f"Negotiation failed while handling {message_type}: {e}")
        if self.messages.full():
            dropped = self.messages.get_nowait()
            logger.debug(f"Message queue full, dropping oldest {dropped.get('type')}")
        self.messages.put_nowait(message)

    async def _dispatch(self, message_type: str, message: Dict[str, Any]):
        if message_type == message_types.ROOM_CREATED:
            if message.get("success"):
                self.room_code = message.get("roomCode")
                await self.sequencer.initialize()
                logger.info(f"Hosting room {self.room_code}")

        elif message_type == message_types.ROOM_JOINED:
            if message.get("success"):
                self.room_code = message.get("roomCode")
                self.viewer_count = message.get("viewerCount", 0)
                await self.sequencer.initialize()
                logger.info(f"Joined room {self.room_code}")
            else:
                logger.warning(f"Join failed: {message.get('error')}")

        elif message_type == message_types.ROOM_LEFT:
            if message.get("success"):
                await self._end_room("Left room")

        elif message_type == message_types.VIEWER_JOINED:
            self.viewer_count = message.get("viewerCount", self.viewer_count)
            if self.role is Role.HOST and self.sequencer.pc is not None:
                if self.sequencer.state is NegotiationState.IDLE:
                    offer = await self.sequencer.create_offer()
                    await self.send({"type": message_types.WEBRTC_OFFER, "offer": offer})
                else:
                    logger.info(f"Viewer {message.get('viewerId')} joined after negotiation started; not re-offering")

        elif message_type == message_types.VIEWER_LEFT:
            self.viewer_count = message.get("viewerCount", self.viewer_count)
            if self.role is Role.HOST and self.viewer_count == 0 and self.room_code:
                # The server deletes a room that empties after a leave and unbinds the host
                await self._end_room(f"Last viewer left, room {self.room_code} closed")

        elif message_type == message_types.HOST_LEFT:
            await self._end_room("Host left the room")

        elif message_type == message_types.WEBRTC_OFFER:
            if self.role is Role.VIEWER:
                answer = await self.sequencer.handle_offer(message["offer"])
                await self.send({"type": message_types.WEBRTC_ANSWER, "answer": answer})

        elif message_type == message_types.WEBRTC_ANSWER:
            if self.role is Role.HOST:
                await self.sequencer.handle_answer(message["answer"])

        elif message_type == message_types.ICE_CANDIDATE:
            if self.sequencer.pc is None:
                logger.warning("ICE candidate before peer connection exists, skipping")
            else:
                await self.sequencer.add_ice_candidate(message.get("candidate"))

        elif message_type == message_types.ERROR:
            logger.warning(f"Signaling error: {message.get('message')}")

        else:
            logger.debug(f"Unhandled message type {message_type}")

    async def _end_room(self, reason: str):
        logger.info(reason)
        self.room_code = None
        self.viewer_count = 0
        await self.sequencer.close()

    async def close(self):
        await self.sequencer.close()
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
