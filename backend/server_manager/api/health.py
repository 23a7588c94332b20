# server_manager/api/health.py
from fastapi import APIRouter, Depends
from datetime import datetime, timezone
import logging

from server_manager import __version__
from server_manager.api.dependencies import get_manager
from server_manager.services import ServerManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["health"])

@router.get("/pools/status")
async def get_pools_status(manager: ServerManager = Depends(get_manager)):
    """Cached sessions of every connection pool"""
    return {pool.name: pool.get_status() for pool in manager.pools}

@router.get("/health")
async def health_check(manager: ServerManager = Depends(get_manager)):
    """API health"""
    return {
        "status": "ok",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "servers_count": len(manager.endpoints),
        "sessions_count": sum(len(pool.sessions) for pool in manager.pools),
    }
