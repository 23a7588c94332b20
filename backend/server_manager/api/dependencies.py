# server_manager/api/dependencies.py
from fastapi import HTTPException, Request

from server_manager.services import ServerManager


def get_manager(request: Request) -> ServerManager:
    """ServerManager created by the application lifespan"""
    manager = getattr(request.app.state, "manager", None)
    if manager is None:
        raise HTTPException(status_code=503, detail="Server manager is not running")
    return manager
