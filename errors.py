class SignalingError(Exception):
    """A recoverable request failure reported back to the originating connection only."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRoomCode(SignalingError):
    def __init__(self, message: str = "Invalid room code"):
        super().__init__(message)


class RoomNotFound(SignalingError):
    def __init__(self, message: str = "Room not found"):
        super().__init__(message)


class RoomFull(SignalingError):
    def __init__(self, message: str = "Room is full"):
        super().__init__(message)


class AlreadyInRoom(SignalingError):
    def __init__(self, message: str = "Already in a room"):
        super().__init__(message)


class NotInRoom(SignalingError):
    def __init__(self, message: str = "Not in a room"):
        super().__init__(message)


class RoomCodeCollision(SignalingError):
    def __init__(self, code: str):
        super().__init__(f"Room code {code} is already in use")
        self.code = code


class NegotiationError(Exception):
    """Client-side negotiation failure; recoverable by re-initializing the sequencer."""


class PeerNotInitialized(NegotiationError):
    def __init__(self):
        super().__init__("Peer connection not initialized")
