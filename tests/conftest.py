# tests/conftest.py
# Shared fixtures: isolated stores, a relay with scripted codes/ids, fake peer connections.

import pytest

from fakes import FakePeerConnection, scripted
from relay import SignalingRelay
from room_locks import RoomLocks
from room_store import RoomStore
from session_store import SessionStore


@pytest.fixture
def room_store():
    return RoomStore()


@pytest.fixture
def session_store():
    return SessionStore()


@pytest.fixture
def make_relay():
    def _make(codes=("AB12CD", "EF34GH", "IJ56KL"), participants=None, **kwargs):
        participant_ids = participants or [f"user_{i}" for i in range(1, 50)]
        return SignalingRelay(
            RoomStore(),
            SessionStore(),
            RoomLocks(),
            code_generator=scripted(codes),
            participant_id_factory=scripted(participant_ids),
            **kwargs,
        )
    return _make


@pytest.fixture
def fake_pc():
    """Peer connection factory that records what it builds."""
    built = []

    def factory():
        pc = FakePeerConnection()
        built.append(pc)
        return pc

    factory.built = built
    return factory
