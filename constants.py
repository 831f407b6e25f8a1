import os

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)
REDIS_DB = int(os.getenv("REDIS_DB", 0))

CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*").split(",")

# Rooms
ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ROOM_CODE_LENGTH = int(os.getenv("ROOM_CODE_LENGTH", 6))
ROOM_CREATE_ATTEMPTS = 5
ROOM_TTL_SECONDS = int(os.getenv("ROOM_TTL_SECONDS", 0))  # 0 = rooms never expire
MAX_PARTICIPANTS = 2

# Signal relay
SIGNAL_TYPES = ("ready", "offer", "answer", "candidate", "bye")
POLL_TIMEOUT_SECONDS = float(os.getenv("POLL_TIMEOUT_SECONDS", 25))
POLL_TICK_SECONDS = float(os.getenv("POLL_TICK_SECONDS", 0.8))
POLL_BATCH_SIZE = 25
SIGNAL_RETENTION_SECONDS = int(os.getenv("SIGNAL_RETENTION_SECONDS", 60 * 60 * 6))

# Client
HEARTBEAT_INTERVAL_SECONDS = 10.0
POLL_BACKOFF_STEP_SECONDS = 2.0
POLL_BACKOFF_MAX_SECONDS = 8.0

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)
