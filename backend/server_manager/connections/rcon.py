# server_manager/connections/rcon.py
import logging
from typing import Type, TypeVar

from server_manager.connections.pool import SessionPool
from server_manager.connections.sessions import RconSession
from server_manager.models import Endpoint, ParseableResponse

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=ParseableResponse)


class RconPool(SessionPool):
    """Control sessions, keyed by address:port"""

    name = "RCON"

    def get_pool_key(self, endpoint: Endpoint) -> str:
        return endpoint.key

    def create_session(self, endpoint: Endpoint) -> RconSession:
        return RconSession(endpoint.ip_address, endpoint.rcon_port, endpoint.rcon_password)

    async def execute(self, endpoint: Endpoint, command: str) -> str:
        session = await self.acquire(endpoint)
        logger.debug(f"RCON {endpoint.display_name}: {command}")
        return await session.send_command(command)

    async def execute_typed(self, endpoint: Endpoint, command: str, model: Type[T]) -> T:
        """Run a command and parse its response into `model`"""
        return model.parse(await self.execute(endpoint, command))
