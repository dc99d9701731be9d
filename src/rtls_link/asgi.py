"""
ASGI entry point for uvicorn
This module exposes the FastAPI app for use with uvicorn command line:

    uvicorn rtls_link.asgi:app
"""

import logging
import os

from .config_loader import DEFAULT_CONFIG_PATH
from .services.link_server import LinkServer

# Load configuration and build services synchronously for uvicorn
server = LinkServer(os.environ.get('RTLS_LINK_CONFIG', DEFAULT_CONFIG_PATH))

logger = logging.getLogger(__name__)

# Expose the FastAPI app for uvicorn
app = server.api.app


@app.on_event("startup")
async def startup_event():
    """Bind discovery and log sockets and start background tasks"""
    logger.info("Starting up application...")
    await server.start_services()


@app.on_event("shutdown")
async def shutdown_event():
    """Stop background tasks and close sockets"""
    logger.info("Shutting down application...")
    await server.stop()
    logger.info("Application shut down complete")


logger.info("ASGI app ready for uvicorn")
