from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

import constants
from logging_config import get_logger, setup_logging
from relay import SignalingRelay
from routers.health import health_router
from routers.rooms import rooms_router
from sweeper import Sweeper

# Setup logging
setup_logging(log_level=constants.LOG_LEVEL, log_file=constants.LOG_FILE)
logger = get_logger(__name__)


def create_app(relay: Optional[SignalingRelay] = None, sweeper: Optional[Sweeper] = None) -> FastAPI:
    """Build the signaling application around an explicitly constructed relay."""
    relay = relay or SignalingRelay()
    sweeper = sweeper or Sweeper(relay.rooms, relay.sessions, relay.locks, on_room_reclaimed=relay.reclaim_room)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper.start()
        yield
        await sweeper.stop()

    app = FastAPI(title="Screen Share Signaling", version=constants.APP_VERSION, lifespan=lifespan)
    app.state.relay = relay
    app.state.sweeper = sweeper

    app.add_middleware(
        CORSMiddleware,
        allow_origins=constants.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(rooms_router)
    app.add_api_websocket_route("/ws", websocket_endpoint)

    logger.info("FastAPI application initialized")
    return app


async def websocket_endpoint(websocket: WebSocket):
    """One signaling channel per participant; disconnect is an implicit leave."""
    relay: SignalingRelay = websocket.app.state.relay
    await websocket.accept()
    participant_id = relay.connect(websocket)

    try:
        message_count = 0
        while True:
            data = await websocket.receive_text()
            message_count += 1
            logger.debug(f"Received message #{message_count} from {participant_id}")
            await relay.handle_message(participant_id, data)
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected normally for {participant_id}")
    except Exception as e:
        logger.error(f"WebSocket error for {participant_id}: {e}", exc_info=True)
    finally:
        await relay.disconnect(participant_id)


app = create_app()
