"""
taskgrove - GraphQL API for organizations and task forests.

Main entry point. All initialization logic is in app/factory.py.
"""
import os
import logging

import uvicorn

from taskgrove.app import create_app

logger = logging.getLogger(__name__)

app = create_app()


def main():
    port = int(os.getenv("TASKGROVE_SERVICE_PORT", "8004"))
    config = uvicorn.Config(
        app,
        host="0.0.0.0",
        port=port,
        log_level=os.getenv("LOG_LEVEL", "INFO").lower(),
        access_log=True,
        timeout_keep_alive=30,
        timeout_graceful_shutdown=30,
    )
    server = uvicorn.Server(config)
    try:
        server.run()
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")
    finally:
        logger.info("Service stopped")


if __name__ == "__main__":
    main()
