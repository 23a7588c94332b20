# server_manager/services/status.py
import asyncio
import logging
import socket
import time
from typing import Callable, Iterable, List

from server_manager.config import (
    DEFAULT_SERVER_NAME,
    REACHABILITY_TIMEOUT,
    STATUS_POLL_CONCURRENCY,
)
from server_manager.connections import QueryPool
from server_manager.models import Endpoint, EndpointStatus

logger = logging.getLogger(__name__)


def is_host_reachable(host: str, port: int, timeout: float = REACHABILITY_TIMEOUT) -> bool:
    """Lightweight TCP reachability check"""
    try:
        if not host:
            return False

        try:
            socket.getaddrinfo(host, port, type=socket.SOCK_STREAM)
        except socket.gaierror:
            logger.warning(f"Cannot resolve host {host}")
            return False

        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.settimeout(timeout)
        try:
            return sock.connect_ex((host, port)) == 0
        finally:
            sock.close()
    except Exception as e:
        logger.debug(f"Reachability check {host}:{port} failed: {e}")
        return False


class StatusPoller:
    """
    Determines reachability and live status of endpoints.

    poll_one() runs a tiered check: TCP connect, then an A2S info query. A
    connect failure marks the endpoint offline and stops there; a query
    failure on a reachable host leaves it online with unknown details.
    poll_one() never raises, so one endpoint cannot break a fleet poll.
    """

    def __init__(
        self,
        query_pool: QueryPool,
        check_reachable: Callable[[str, int, float], bool] = is_host_reachable,
        max_concurrency: int = STATUS_POLL_CONCURRENCY,
        reachability_timeout: float = REACHABILITY_TIMEOUT,
    ):
        self.query_pool = query_pool
        self.check_reachable = check_reachable
        self.max_concurrency = max_concurrency
        self.reachability_timeout = reachability_timeout

    async def _is_reachable(self, endpoint: Endpoint) -> bool:
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(
            None, self.check_reachable, endpoint.ip_address, endpoint.rcon_port, self.reachability_timeout
        )

    async def poll_one(self, endpoint: Endpoint) -> EndpointStatus:
        try:
            if not await self._is_reachable(endpoint):
                endpoint.status = EndpointStatus()
                logger.debug(f"[{endpoint.display_name}] unreachable")
                return endpoint.status

            try:
                info = await self.query_pool.get_info(endpoint)
            except Exception as e:
                logger.debug(f"[{endpoint.display_name}] Error getting server info: {e}")
                endpoint.status = EndpointStatus.unknown()
                await self.query_pool.evict_endpoint(endpoint)
                return endpoint.status

            endpoint.server_hostname = info.hostname
            endpoint.status = EndpointStatus(
                reachable=True,
                online=True,
                players_online=info.players,
                max_players=info.max_players,
                current_map=info.map,
            )
            if not endpoint.name or endpoint.name == DEFAULT_SERVER_NAME:
                endpoint.name = info.hostname
        except Exception as e:
            logger.error(f"[{endpoint.display_name}] Status update failed: {e}")
            endpoint.status = EndpointStatus.unknown()
        return endpoint.status

    async def poll_all(self, endpoints: Iterable[Endpoint]) -> List[EndpointStatus]:
        """Poll every endpoint concurrently; returns statuses in input order"""
        endpoints = list(endpoints)
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _bounded(endpoint: Endpoint) -> EndpointStatus:
            async with semaphore:
                return await self.poll_one(endpoint)

        start_time = time.monotonic()
        statuses = await asyncio.gather(*(_bounded(e) for e in endpoints))
        online = sum(1 for s in statuses if s.online)
        logger.info(f"Status poll: {online}/{len(endpoints)} servers online ({time.monotonic() - start_time:.2f}s)")
        return list(statuses)
