from .pool import SessionPool
from .query import QueryPool
from .rcon import RconPool
from .sessions import normalize_path
from .transfer import FileTransferPool, FtpPool, SftpPool

__all__ = [
    "SessionPool",
    "RconPool",
    "FileTransferPool", "FtpPool", "SftpPool",
    "QueryPool",
    "normalize_path",
]
