from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

import message_types


class InboundMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, extra="allow")


class CreateRoom(InboundMessage):
    type: Literal["create-room"]


class JoinRoom(InboundMessage):
    type: Literal["join-room"]
    room_code: str


class LeaveRoom(InboundMessage):
    type: Literal["leave-room"]
    room_code: str


class WebRTCOffer(InboundMessage):
    type: Literal["webrtc-offer"]
    offer: Dict[str, Any]


class WebRTCAnswer(InboundMessage):
    type: Literal["webrtc-answer"]
    answer: Dict[str, Any]


class IceCandidate(InboundMessage):
    type: Literal["ice-candidate"]
    # None marks end-of-candidates
    candidate: Optional[Dict[str, Any]] = None


ClientMessage = Annotated[
    Union[CreateRoom, JoinRoom, LeaveRoom, WebRTCOffer, WebRTCAnswer, IceCandidate],
    Field(discriminator="type"),
]

client_message_adapter = TypeAdapter(ClientMessage)


def parse_client_message(raw: str):
    """Parse one inbound text frame. Raises pydantic.ValidationError on bad input."""
    return client_message_adapter.validate_json(raw)


class OutboundMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class RoomCreated(OutboundMessage):
    type: Literal["room-created"] = message_types.ROOM_CREATED
    success: bool
    room_code: Optional[str] = None
    error: Optional[str] = None


class RoomJoined(OutboundMessage):
    type: Literal["room-joined"] = message_types.ROOM_JOINED
    success: bool
    room_code: Optional[str] = None
    viewer_count: Optional[int] = None
    error: Optional[str] = None


class RoomLeft(OutboundMessage):
    type: Literal["room-left"] = message_types.ROOM_LEFT
    success: bool
    error: Optional[str] = None


class ViewerJoined(OutboundMessage):
    type: Literal["viewer-joined"] = message_types.VIEWER_JOINED
    viewer_id: str
    viewer_count: int


class ViewerLeft(OutboundMessage):
    type: Literal["viewer-left"] = message_types.VIEWER_LEFT
    viewer_id: str
    viewer_count: int


class HostLeft(OutboundMessage):
    type: Literal["host-left"] = message_types.HOST_LEFT
    host_id: str
    viewer_count: int


class ErrorMessage(OutboundMessage):
    type: Literal["error"] = message_types.ERROR
    message: str
