# server_manager/connections/pool.py
import asyncio
import logging
from typing import Dict

from server_manager.connections.sessions import BaseSession
from server_manager.models import Endpoint

logger = logging.getLogger(__name__)


class SessionPool:
    """
    Keyed cache of live protocol sessions.

    acquire() returns the cached session for an endpoint while it passes its
    liveness check and transparently replaces it otherwise. A per-key lock
    makes the check-connect-store sequence atomic, so concurrent callers for
    one key share a single connect.
    """

    name = "session"

    def __init__(self):
        self.sessions: Dict[str, BaseSession] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def get_pool_key(self, endpoint: Endpoint) -> str:
        raise NotImplementedError

    def create_session(self, endpoint: Endpoint) -> BaseSession:
        """Build an unconnected session with unsealed credentials"""
        raise NotImplementedError

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    async def acquire(self, endpoint: Endpoint) -> BaseSession:
        key = self.get_pool_key(endpoint)
        async with self._lock_for(key):
            session = self.sessions.get(key)
            if session is not None:
                if await session.is_alive():
                    logger.debug(f"Reusing {self.name} session {key}")
                    return session
                logger.warning(f"Dead {self.name} session detected for {key}, reconnecting...")
                del self.sessions[key]
                await session.dispose()

            logger.info(f"Opening {self.name} session for {endpoint.display_name} ({key})")
            session = self.create_session(endpoint)
            try:
                await session.connect()
            except Exception as e:
                logger.error(f"{self.name} connect to {endpoint.display_name} ({key}) failed: {e}")
                await session.dispose()
                raise
            self.sessions[key] = session
            return session

    async def evict(self, key: str) -> None:
        session = self.sessions.pop(key, None)
        if session is not None:
            logger.info(f"Closing {self.name} session {key}")
            await session.dispose()

    async def evict_endpoint(self, endpoint: Endpoint) -> None:
        await self.evict(self.get_pool_key(endpoint))

    async def evict_all(self) -> None:
        sessions = list(self.sessions.values())
        self.sessions.clear()
        self._locks.clear()
        if sessions:
            logger.info(f"Closing all {self.name} sessions ({len(sessions)})")
        await asyncio.gather(*(s.dispose() for s in sessions), return_exceptions=True)

    def get_status(self) -> dict:
        """Snapshot of the cached sessions"""
        return {key: {"alive": session.connected} for key, session in self.sessions.items()}
