# server_manager/connections/query.py
from server_manager.config import QUERY_TIMEOUT
from server_manager.connections.pool import SessionPool
from server_manager.connections.sessions import QuerySession
from server_manager.models import Endpoint, ServerInfo


class QueryPool(SessionPool):
    """A2S query sessions, keyed by address:queryPort (the query port is the RCON port)"""

    name = "query"

    def __init__(self, timeout: float = QUERY_TIMEOUT):
        super().__init__()
        self.timeout = timeout

    def get_pool_key(self, endpoint: Endpoint) -> str:
        return f"{endpoint.ip_address}:{endpoint.rcon_port}"

    def create_session(self, endpoint: Endpoint) -> QuerySession:
        return QuerySession(endpoint.ip_address, endpoint.rcon_port, timeout=self.timeout)

    async def get_info(self, endpoint: Endpoint) -> ServerInfo:
        session = await self.acquire(endpoint)
        return await session.get_info()
