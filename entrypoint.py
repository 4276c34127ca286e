import uvicorn

from constants import HOST, LOG_FILE, LOG_LEVEL, PORT
from logging_config import get_logger, setup_logging

# Setup logging before importing app
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)

from app import app

logger = get_logger(__name__)


def main():
    logger.info(f"Starting VTT room server on {HOST}:{PORT}")
    # one process only: room membership and mutation queues live in memory
    uvicorn.run(app, host=HOST, port=PORT, log_config=None)


if __name__ == "__main__":
    main()
