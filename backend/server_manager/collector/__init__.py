# server_manager/collector/__init__.py
from .scheduler import start_scheduler, status_loop, stop_scheduler

__all__ = ["start_scheduler", "status_loop", "stop_scheduler"]
