# Inbound (client -> relay)
CREATE_ROOM = "create-room"
JOIN_ROOM = "join-room"
LEAVE_ROOM = "leave-room"

# Relayed verbatim to the other members of the sender's room
WEBRTC_OFFER = "webrtc-offer"
WEBRTC_ANSWER = "webrtc-answer"
ICE_CANDIDATE = "ice-candidate"

# Outbound (relay -> client)
ROOM_CREATED = "room-created"
ROOM_JOINED = "room-joined"
ROOM_LEFT = "room-left"
VIEWER_JOINED = "viewer-joined"
VIEWER_LEFT = "viewer-left"
HOST_LEFT = "host-left"
ERROR = "error"

RELAYED_TYPES = (WEBRTC_OFFER, WEBRTC_ANSWER, ICE_CANDIDATE)
