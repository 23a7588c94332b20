# server_manager/main.py
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from server_manager import __version__
from server_manager.api import health_router, servers_router
from server_manager.config import LOG_LEVEL
from server_manager.services import ServerManager

logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def create_app(manager: Optional[ServerManager] = None) -> FastAPI:
    """
    Build the API application.

    The lifespan loads the server list, starts status polling and, on exit,
    shuts the manager down (stop polling, save, close all sessions). Passing
    a manager skips creating the default one, which tests rely on.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        server_manager = manager or ServerManager()
        server_manager.load()
        server_manager.start()
        app.state.manager = server_manager
        logger.info(f"Source Server Manager started with {len(server_manager.endpoints)} servers")
        try:
            yield
        finally:
            await server_manager.shutdown()
            app.state.manager = None

    app = FastAPI(
        title="Source Server Manager API",
        description="RCON, file transfer and status monitoring for Source game servers",
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(servers_router)
    app.include_router(health_router)
    return app


app = create_app()
