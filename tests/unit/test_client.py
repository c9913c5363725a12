# tests/unit/test_client.py
# Client-side dispatch of relayed messages into the negotiation sequencer

import json

import pytest

from client import SignalingClient
from fakes import FakeConnection
from negotiation import NegotiationSequencer, NegotiationState
from session_store import Role


class Outbox:
    def __init__(self):
        self.sent = []

    async def __call__(self, message):
        self.sent.append(message)

    def of_type(self, message_type):
        return [m for m in self.sent if m["type"] == message_type]


class RelayLink:
    """Connects a SignalingClient to an in-process SignalingRelay.

    Frames from the relay are buffered and delivered by ``pump`` so a
    client reply never re-enters the relay while it holds a room lock.
    """

    def __init__(self, relay):
        self.relay = relay
        self.inbox = []
        self.participant_id = relay.connect(self)

    async def send_text(self, data):
        self.inbox.append(data)

    async def send(self, message):
        await self.relay.handle_message(self.participant_id, json.dumps(message))

    async def pump(self, client):
        while self.inbox:
            await client.dispatch(json.loads(self.inbox.pop(0)))


@pytest.fixture
def outbox():
    return Outbox()


@pytest.fixture
def make_client(fake_pc, outbox):
    def factory():
        sequencer = NegotiationSequencer(ice_servers=[], peer_connection_factory=fake_pc)
        return SignalingClient(sequencer, send=outbox)
    return factory


class TestRequests:

    @pytest.mark.asyncio
    async def test_send_without_transport_fails(self):
        client = SignalingClient(NegotiationSequencer(ice_servers=[]))
        with pytest.raises(RuntimeError, match="not connected"):
            await client.create_room()

    @pytest.mark.asyncio
    async def test_join_normalizes_code(self, make_client, outbox):
        client = make_client()
        await client.join_room(" ab12-cd ")
        assert outbox.sent == [{"type": "join-room", "roomCode": "AB12CD"}]
        assert client.role is Role.VIEWER

    @pytest.mark.asyncio
    async def test_leave_only_when_in_room(self, make_client, outbox):
        client = make_client()
        await client.leave_room()
        assert outbox.sent == []

        client.room_code = "AB12CD"
        await client.leave_room()
        assert outbox.sent == [{"type": "leave-room", "roomCode": "AB12CD"}]


class TestHostFlow:

    @pytest.mark.asyncio
    async def test_offer_sent_when_first_viewer_joins(self, make_client, outbox, fake_pc):
        client = make_client()
        await client.create_room()
        await client.dispatch({"type": "room-created", "success": True, "roomCode": "AB12CD"})

        assert client.room_code == "AB12CD"
        assert client.sequencer.pc is fake_pc.built[0]

        await client.dispatch({"type": "viewer-joined", "viewerId": "user_2", "viewerCount": 1})

        [offer] = outbox.of_type("webrtc-offer")
        assert offer["offer"]["type"] == "offer"
        assert client.viewer_count == 1
        assert client.sequencer.state is NegotiationState.NEGOTIATING

    @pytest.mark.asyncio
    async def test_no_second_offer_once_negotiating(self, make_client, outbox):
        client = make_client()
        await client.create_room()
        await client.dispatch({"type": "room-created", "success": True, "roomCode": "AB12CD"})
        await client.dispatch({"type": "viewer-joined", "viewerId": "user_2", "viewerCount": 1})
        await client.dispatch({"type": "viewer-joined", "viewerId": "user_3", "viewerCount": 2})

        assert len(outbox.of_type("webrtc-offer")) == 1
        assert client.viewer_count == 2

    @pytest.mark.asyncio
    async def test_answer_applied_to_host(self, make_client, fake_pc):
        client = make_client()
        await client.create_room()
        await client.dispatch({"type": "room-created", "success": True, "roomCode": "AB12CD"})
        await client.dispatch({"type": "viewer-joined", "viewerId": "user_2", "viewerCount": 1})
        await client.dispatch({"type": "webrtc-answer", "answer": {"type": "answer", "sdp": "v=0\r\n"}})

        assert fake_pc.built[0].remoteDescription.type == "answer"

    @pytest.mark.asyncio
    async def test_viewer_joined_before_room_created_is_ignored(self, make_client, outbox):
        client = make_client()
        await client.create_room()
        await client.dispatch({"type": "viewer-joined", "viewerId": "user_2", "viewerCount": 1})
        assert outbox.of_type("webrtc-offer") == []

    @pytest.mark.asyncio
    async def test_last_viewer_leaving_ends_hosting(self, make_relay, fake_pc):
        relay = make_relay()
        link = RelayLink(relay)
        host = SignalingClient(NegotiationSequencer(ice_servers=[], peer_connection_factory=fake_pc), send=link.send)

        await host.create_room()
        await link.pump(host)
        assert host.room_code == "AB12CD"

        viewer = FakeConnection()
        viewer_id = relay.connect(viewer)
        await relay.handle_message(viewer_id, json.dumps({"type": "join-room", "roomCode": "AB12CD"}))
        await link.pump(host)
        assert viewer.of_type("webrtc-offer")
        assert host.sequencer.state is NegotiationState.NEGOTIATING

        await relay.handle_message(viewer_id, json.dumps({"type": "leave-room", "roomCode": "AB12CD"}))
        await link.pump(host)

        assert relay.bound_room(link.participant_id) is None
        assert not relay.rooms.is_active("AB12CD")
        assert host.room_code is None
        assert host.viewer_count == 0
        assert host.sequencer.state is NegotiationState.CLOSED
        assert fake_pc.built[0].closed

        # Hosting again starts from a fresh room and peer connection
        await host.create_room()
        await link.pump(host)
        assert host.room_code == "EF34GH"
        assert len(fake_pc.built) == 2

    @pytest.mark.asyncio
    async def test_viewer_left_with_viewers_remaining_keeps_hosting(self, make_client, fake_pc):
        client = make_client()
        await client.create_room()
        await client.dispatch({"type": "room-created", "success": True, "roomCode": "AB12CD"})
        await client.dispatch({"type": "viewer-joined", "viewerId": "user_2", "viewerCount": 1})
        await client.dispatch({"type": "viewer-joined", "viewerId": "user_3", "viewerCount": 2})
        await client.dispatch({"type": "viewer-left", "viewerId": "user_2", "viewerCount": 1})

        assert client.room_code == "AB12CD"
        assert not fake_pc.built[0].closed


class TestViewerFlow:

    @pytest.mark.asyncio
    async def test_answer_sent_for_offer(self, make_client, outbox, fake_pc):
        client = make_client()
        await client.join_room("AB12CD")
        await client.dispatch({"type": "room-joined", "success": True, "roomCode": "AB12CD", "viewerCount": 1})
        await client.dispatch({"type": "webrtc-offer", "offer": {"type": "offer", "sdp": "v=0\r\n"}})

        [answer] = outbox.of_type("webrtc-answer")
        assert answer["answer"] == {"type": "answer", "sdp": "v=0\r\nfake-answer\r\n"}
        assert fake_pc.built[0].remoteDescription.type == "offer"

    @pytest.mark.asyncio
    async def test_failed_join_leaves_sequencer_uninitialized(self, make_client, fake_pc):
        client = make_client()
        await client.join_room("ZZZZZZ")
        await client.dispatch({"type": "room-joined", "success": False, "error": "Room not found"})

        assert client.room_code is None
        assert fake_pc.built == []

    @pytest.mark.asyncio
    async def test_ice_candidate_before_peer_connection_is_skipped(self, make_client):
        client = make_client()
        await client.dispatch({"type": "ice-candidate", "candidate": {"candidate": "candidate:1 1 udp 1 10.0.0.1 9 typ host"}})
        assert (await client.messages.get())["type"] == "ice-candidate"

    @pytest.mark.asyncio
    async def test_host_left_closes_sequencer(self, make_client, fake_pc):
        client = make_client()
        await client.join_room("AB12CD")
        await client.dispatch({"type": "room-joined", "success": True, "roomCode": "AB12CD", "viewerCount": 1})
        await client.dispatch({"type": "host-left", "hostId": "user_1", "viewerCount": 1})

        assert client.room_code is None
        assert client.sequencer.state is NegotiationState.CLOSED
        assert fake_pc.built[0].closed

    @pytest.mark.asyncio
    async def test_negotiation_failure_does_not_stop_dispatch(self, make_client, outbox):
        client = make_client()
        await client.join_room("AB12CD")
        await client.dispatch({"type": "room-joined", "success": True, "roomCode": "AB12CD", "viewerCount": 1})
        await client.dispatch({"type": "webrtc-offer", "offer": {"type": "offer"}})

        assert outbox.of_type("webrtc-answer") == []
        assert client.sequencer.state is NegotiationState.FAILED
        assert client.messages.qsize() == 2

    @pytest.mark.asyncio
    async def test_room_left_closes_peer_connection(self, make_client, fake_pc):
        client = make_client()
        await client.join_room("AB12CD")
        await client.dispatch({"type": "room-joined", "success": True, "roomCode": "AB12CD", "viewerCount": 1})
        await client.leave_room()
        await client.dispatch({"type": "room-left", "success": True})

        assert client.room_code is None
        assert client.sequencer.state is NegotiationState.CLOSED
        assert fake_pc.built[0].closed

    @pytest.mark.asyncio
    async def test_failed_leave_keeps_peer_connection(self, make_client, fake_pc):
        client = make_client()
        await client.join_room("AB12CD")
        await client.dispatch({"type": "room-joined", "success": True, "roomCode": "AB12CD", "viewerCount": 1})
        await client.dispatch({"type": "room-left", "success": False, "error": "Not in room EF34GH"})

        assert client.room_code == "AB12CD"
        assert not fake_pc.built[0].closed

    @pytest.mark.asyncio
    async def test_transport_close_ends_room(self, make_client, fake_pc):
        client = make_client()
        await client.join_room("AB12CD")
        await client.dispatch({"type": "room-joined", "success": True, "roomCode": "AB12CD", "viewerCount": 1})
        client._ws = ClosedSocket()

        await client.run()

        assert client.room_code is None
        assert fake_pc.built[0].closed


class ClosedSocket:
    """A websocket whose server has already hung up: iteration ends at once."""

    def __aiter__(self):
        return self

    async def __anext__(self):
        raise StopAsyncIteration


class TestMessageQueue:

    @pytest.mark.asyncio
    async def test_queue_is_bounded_and_keeps_newest(self, fake_pc, outbox):
        sequencer = NegotiationSequencer(ice_servers=[], peer_connection_factory=fake_pc)
        client = SignalingClient(sequencer, send=outbox, message_queue_size=2)
        for n in range(5):
            await client.dispatch({"type": "error", "message": f"m{n}"})

        assert client.messages.qsize() == 2
        assert (await client.messages.get())["message"] == "m3"
        assert (await client.messages.get())["message"] == "m4"
