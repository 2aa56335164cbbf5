import os

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)
REDIS_DB = int(os.getenv("REDIS_DB", 0))

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 3001))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]

# Two participants per room, not configurable
MAX_ROOM_USERS = 2

ROOM_RETENTION_SECONDS = int(os.getenv("ROOM_RETENTION_SECONDS", 24 * 60 * 60))
SWEEP_INTERVAL_SECONDS = int(os.getenv("SWEEP_INTERVAL_SECONDS", 60 * 60))

DEFAULT_ITEM_ID = "default"
DEFAULT_LANGUAGE = "javascript"

DEFAULT_FILE = {
    "id": DEFAULT_ITEM_ID,
    "name": "main.js",
    "content": '// Welcome to CodeShare.online!\n// Start typing your code here...\n\nconsole.log("Hello, World!");',
    "language": DEFAULT_LANGUAGE,
}

DEFAULT_NOTE = {
    "id": DEFAULT_ITEM_ID,
    "name": "Notes",
    "content": "# Notes\n\nStart writing your notes here...",
}
