# server_manager/services/__init__.py
from .config_store import ConfigStore
from .manager import ServerManager, format_file_size
from .status import StatusPoller, is_host_reachable

__all__ = [
    "ConfigStore",
    "ServerManager",
    "format_file_size",
    "StatusPoller",
    "is_host_reachable",
]
