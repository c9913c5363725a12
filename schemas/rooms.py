from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class RoomDetailsResponse(CamelModel):
    room_code: str
    viewer_count: int
    has_host: bool
    created_at: str


class HealthResponse(CamelModel):
    status: str
    timestamp: str
    uptime: float
    active_rooms: int
    total_sessions: int
    version: str
