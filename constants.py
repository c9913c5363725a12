import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 3002))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

APP_VERSION = os.getenv("APP_VERSION", "1.0.0")
CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]

# Reclamation windows, in seconds
ROOM_SWEEP_INTERVAL_SECONDS = int(os.getenv("ROOM_SWEEP_INTERVAL_SECONDS", 10 * 60))
ROOM_MAX_IDLE_SECONDS = int(os.getenv("ROOM_MAX_IDLE_SECONDS", 60 * 60))
SESSION_SWEEP_INTERVAL_SECONDS = int(os.getenv("SESSION_SWEEP_INTERVAL_SECONDS", 5 * 60))
SESSION_MAX_IDLE_SECONDS = int(os.getenv("SESSION_MAX_IDLE_SECONDS", 30 * 60))

CLIENT_MESSAGE_QUEUE_SIZE = int(os.getenv("CLIENT_MESSAGE_QUEUE_SIZE", 100))

MAX_VIEWERS_PER_ROOM = int(os.getenv("MAX_VIEWERS_PER_ROOM", 20))
ROOM_CODE_MAX_ATTEMPTS = int(os.getenv("ROOM_CODE_MAX_ATTEMPTS", 10))
DESTROY_ON_HOST_LEAVE = os.getenv("DESTROY_ON_HOST_LEAVE", "true").lower() in ("1", "true", "yes")

ICE_SERVERS = [
    url.strip()
    for url in os.getenv("ICE_SERVERS", "stun:stun.l.google.com:19302,stun:stun1.l.google.com:19302").split(",")
    if url.strip()
]
