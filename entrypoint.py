import uvicorn

import constants
from logging_config import setup_logging

# Setup logging before importing app
setup_logging(log_level=constants.LOG_LEVEL, log_file=constants.LOG_FILE)

from app import app  # noqa: E402
from logging_config import get_logger  # noqa: E402

logger = get_logger(__name__)

if __name__ == "__main__":
    logger.info(f"Starting screen share signaling server on {constants.HOST}:{constants.PORT}")
    uvicorn.run(app, host=constants.HOST, port=constants.PORT, log_level=constants.LOG_LEVEL.lower())
