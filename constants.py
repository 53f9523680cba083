import os

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)

# Rendezvous datagram endpoint
UDP_HOST = os.getenv("UDP_HOST", "0.0.0.0")
UDP_PORT = int(os.getenv("UDP_PORT", 4370))

# HTTP status endpoint
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8000))

ROOM_TTL_SECONDS = int(os.getenv("ROOM_TTL_SECONDS", 300))
ROOM_ID_ATTEMPTS = 5

# Largest UDP payload over IPv4
MAX_DATAGRAM_SIZE = 65507

SERVER_VERSION = (0, 1)
