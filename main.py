#!/usr/bin/env python3
"""Main entry point for the SwipeMatch service.

This script runs the FastAPI application using Uvicorn. The application
builds the matching engine during its lifespan. It uses configuration
settings defined in `swipematch.config` to determine the host, port, log
level, and reload status.

Environment Variables:
    API_HOST (str): The host to bind the server to.
    API_PORT (int): The port to bind the server to.
    LOG_LEVEL (str): The logging level (e.g., 'INFO', 'DEBUG').
    DEBUG (bool): Whether to enable auto-reload for development.
    DATABASE_URL (str): SQL database URL. Empty keeps all state in memory.
"""

import uvicorn

from swipematch.config import settings
from swipematch.utils.logging import get_logger

logger = get_logger(__name__)

if __name__ == "__main__":
    logger.info(f"Starting SwipeMatch Service on {settings.API_HOST}:{settings.API_PORT}")

    uvicorn.run(
        "swipematch.api.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level=settings.LOG_LEVEL.lower(),
        reload=settings.DEBUG,
    )
