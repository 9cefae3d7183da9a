"""
Main entrypoint: FastAPI server with the background Monitoring Scheduler.

The scheduler lives inside the app lifespan, so running the app is enough:
Active warnings flagged for monitoring are restored at startup and their
tasks are cancelled on SIGINT/SIGTERM.

Env: DATABASE_URL, ETH_NODE_URL, BSC_NODE_URL, POLYGON_NODE_URL,
MONITORING_INTERVAL_SEC, API_HOST, API_PORT, LOG_LEVEL, etc.

Equivalent: uvicorn rugwatch.api_server.app:app --host 0.0.0.0 --port 8000
"""

import os

# Configure structured JSON logging before other imports that may log
from rugwatch.logging import get_logger

logger = get_logger("main")


def main() -> None:
    """Run the API server in the main thread."""
    from rugwatch.config import get_settings

    settings = get_settings()

    from rugwatch.api_server.app import app
    import uvicorn

    logger.info("main_server_starting", host=settings.api_host, port=settings.api_port)
    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":
    main()
