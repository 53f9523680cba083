import uvicorn
import os
from logging_config import setup_logging

# Setup logging before importing app
log_level = os.getenv("LOG_LEVEL", "INFO")
log_file = os.getenv("LOG_FILE", None)
setup_logging(log_level=log_level, log_file=log_file)

from constants import HOST, PORT, UDP_HOST, UDP_PORT
from logging_config import get_logger

logger = get_logger(__name__)

if __name__ == "__main__":
    logger.info(f"Starting rendezvous server: http on {HOST}:{PORT}, udp on {UDP_HOST}:{UDP_PORT}")
    uvicorn.run("app:app", host=HOST, port=PORT)
