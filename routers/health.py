import time
from datetime import datetime

from fastapi import APIRouter, Request

import constants
from logging_config import get_logger
from schemas.rooms import HealthResponse

logger = get_logger(__name__)

health_router = APIRouter(tags=["health"])

_started = time.monotonic()


@health_router.get("/health", response_model=HealthResponse)
async def get_health(request: Request):
    relay = request.app.state.relay
    health = HealthResponse(
        status="healthy",
        timestamp=datetime.now().isoformat(),
        uptime=time.monotonic() - _started,
        active_rooms=relay.rooms.active_count(),
        total_sessions=relay.sessions.total_count(),
        version=constants.APP_VERSION,
    )
    logger.debug(f"Health check: {health.active_rooms} rooms, {health.total_sessions} sessions")
    return health
