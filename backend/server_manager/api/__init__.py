# server_manager/api/__init__.py
from .servers import router as servers_router
from .health import router as health_router

__all__ = ["servers_router", "health_router"]
