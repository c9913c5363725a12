"""Client-side offer/answer/ICE sequencing over an aiortc RTCPeerConnection.

One sequencer per participant. The host calls ``create_offer`` and later
``handle_answer``; a viewer calls ``handle_offer``. Remote candidates may be
fed in at any time after ``initialize``.

aiortc gathers candidates before ``setLocalDescription`` returns, so the
descriptions produced here already carry the local candidates; there is no
local trickle to forward.
"""
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from aiortc import RTCConfiguration, RTCIceServer, RTCPeerConnection, RTCSessionDescription
from aiortc.sdp import candidate_from_sdp

import constants
from errors import NegotiationError, PeerNotInitialized
from logging_config import get_logger

logger = get_logger(__name__)


class NegotiationState(str, Enum):
    IDLE = "idle"
    NEGOTIATING = "negotiating"
    CONNECTED = "connected"
    FAILED = "failed"
    CLOSED = "closed"


def description_to_dict(description) -> Dict[str, str]:
    return {"type": description.type, "sdp": description.sdp}


class NegotiationSequencer:
    def __init__(
        self,
        ice_servers: Optional[List[str]] = None,
        peer_connection_factory: Optional[Callable[[], Any]] = None,
    ):
        self.ice_servers = list(constants.ICE_SERVERS if ice_servers is None else ice_servers)
        self._peer_connection_factory = peer_connection_factory or self._create_peer_connection
        self.pc = None
        self.state = NegotiationState.IDLE
        self.local_tracks: List[Any] = []
        self.remote_tracks: List[Any] = []
        self.on_remote_track: Optional[Callable[[Any], None]] = None
        self._attached_tracks = set()

    def _create_peer_connection(self):
        config = RTCConfiguration(iceServers=[RTCIceServer(urls=[url]) for url in self.ice_servers])
        return RTCPeerConnection(config)

    def add_local_track(self, track):
        """Hold an outbound media track; it is attached on the next offer or answer."""
        self.local_tracks.append(track)

    async def initialize(self):
        if self.pc is not None:
            logger.info("Re-initializing peer connection")
            await self.pc.close()
        self.pc = self._peer_connection_factory()
        self.state = NegotiationState.IDLE
        self._attached_tracks = set()
        self.remote_tracks = []
        pc = self.pc

        @pc.on("track")
        def on_track(track):
            logger.info(f"Remote {track.kind} track received")
            self.remote_tracks.append(track)
            if self.state is not NegotiationState.CLOSED:
                self.state = NegotiationState.CONNECTED
            if self.on_remote_track:
                self.on_remote_track(track)

        @pc.on("connectionstatechange")
        def on_connection_state_change():
            logger.info(f"Connection state: {pc.connectionState}")
            if pc.connectionState == "connected" and self.state is NegotiationState.NEGOTIATING:
                self.state = NegotiationState.CONNECTED
            elif pc.connectionState == "failed" and self.state is NegotiationState.NEGOTIATING:
                self.state = NegotiationState.FAILED

    def _require_pc(self):
        if self.pc is None:
            raise PeerNotInitialized()
        return self.pc

    def _attach_local_tracks(self, pc):
        for track in self.local_tracks:
            if id(track) in self._attached_tracks:
                continue
            pc.addTrack(track)
            self._attached_tracks.add(id(track))

    async def create_offer(self) -> Dict[str, str]:
        """Host path: attach local tracks, produce and commit an offer, return it for relay."""
        pc = self._require_pc()
        self.state = NegotiationState.NEGOTIATING
        try:
            self._attach_local_tracks(pc)
            offer = await pc.createOffer()
            await pc.setLocalDescription(offer)
        except Exception as e:
            self.state = NegotiationState.FAILED
            logger.error(f"Failed to create offer: {e}", exc_info=True)
            raise NegotiationError(f"Failed to create offer: {e}") from e
        return description_to_dict(pc.localDescription)

    async def handle_offer(self, offer: Dict[str, str]) -> Dict[str, str]:
        """Viewer path: commit the remote offer and return the committed answer."""
        pc = self._require_pc()
        self.state = NegotiationState.NEGOTIATING
        try:
            await pc.setRemoteDescription(RTCSessionDescription(sdp=offer["sdp"], type=offer["type"]))
            self._attach_local_tracks(pc)
            answer = await pc.createAnswer()
            await pc.setLocalDescription(answer)
        except Exception as e:
            self.state = NegotiationState.FAILED
            logger.error(f"Failed to handle offer: {e}", exc_info=True)
            raise NegotiationError(f"Failed to handle offer: {e}") from e
        return description_to_dict(pc.localDescription)

    async def handle_answer(self, answer: Dict[str, str]):
        pc = self._require_pc()
        try:
            await pc.setRemoteDescription(RTCSessionDescription(sdp=answer["sdp"], type=answer["type"]))
        except Exception as e:
            self.state = NegotiationState.FAILED
            logger.error(f"Failed to handle answer: {e}", exc_info=True)
            raise NegotiationError(f"Failed to handle answer: {e}") from e

    async def add_ice_candidate(self, candidate: Optional[Dict[str, Any]]) -> bool:
        """Feed a remote candidate. Returns False when it could not be applied.

        Candidates that arrive before the remote description, or that fail to
        parse, are logged and skipped rather than raised.
        """
        pc = self._require_pc()
        if not candidate or not candidate.get("candidate"):
            logger.debug("End of remote candidates")
            return False
        if pc.remoteDescription is None:
            logger.warning("ICE candidate received before remote description, skipping")
            return False
        try:
            sdp = candidate["candidate"]
            if sdp.startswith("candidate:"):
                sdp = sdp[len("candidate:"):]
            ice_candidate = candidate_from_sdp(sdp)
            ice_candidate.sdpMid = candidate.get("sdpMid")
            ice_candidate.sdpMLineIndex = candidate.get("sdpMLineIndex")
            await pc.addIceCandidate(ice_candidate)
        except Exception as e:
            logger.warning(f"Failed to add ICE candidate: {e}")
            return False
        return True

    async def close(self):
        """Release the peer connection and stop local tracks. Safe from any state, repeatable."""
        tracks, self.local_tracks = self.local_tracks, []
        for track in tracks:
            try:
                track.stop()
            except Exception as e:
                logger.warning(f"Error stopping local track: {e}")
        pc, self.pc = self.pc, None
        if pc is not None:
            await pc.close()
        self._attached_tracks = set()
        self.remote_tracks = []
        if self.state is not NegotiationState.CLOSED:
            logger.info("Peer connection closed")
        self.state = NegotiationState.CLOSED
