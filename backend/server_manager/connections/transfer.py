# server_manager/connections/transfer.py
import logging
import posixpath
from typing import BinaryIO, List

from server_manager.connections.pool import SessionPool
from server_manager.connections.sessions import (
    FileTransferSession,
    FtpSession,
    SftpSession,
    normalize_path,
)
from server_manager.exceptions import SessionError
from server_manager.models import Endpoint, RemoteEntry

logger = logging.getLogger(__name__)


class FileTransferPool(SessionPool):
    """File-transfer sessions, keyed by host:port:username"""

    session_class = FileTransferSession

    def get_pool_key(self, endpoint: Endpoint) -> str:
        return endpoint.ftp_connection_key

    def create_session(self, endpoint: Endpoint) -> FileTransferSession:
        if not endpoint.ftp_host:
            raise SessionError(f"No {self.name} host configured for {endpoint.display_name}")
        return self.session_class(
            endpoint.ftp_host,
            endpoint.ftp_port,
            endpoint.ftp_username,
            endpoint.ftp_password,
            root_directory=endpoint.ftp_root_directory,
        )

    async def upload(self, endpoint: Endpoint, stream: BinaryIO, remote_path: str) -> None:
        """Upload a stream, creating the parent directory first; existing files are overwritten"""
        remote_path = normalize_path(remote_path)
        session = await self.acquire(endpoint)
        parent = posixpath.dirname(remote_path)
        if parent:
            await session.create_directory(parent, recursive=True)
        await session.upload(stream, remote_path)
        logger.info(f"Uploaded {remote_path} to {endpoint.display_name} via {self.name}")

    async def create_directory(self, endpoint: Endpoint, path: str, recursive: bool = True) -> bool:
        session = await self.acquire(endpoint)
        return await session.create_directory(path, recursive)

    async def list_directory(self, endpoint: Endpoint, path: str = "") -> List[RemoteEntry]:
        session = await self.acquire(endpoint)
        return await session.list_directory(path)


class FtpPool(FileTransferPool):
    name = "FTP"
    session_class = FtpSession


class SftpPool(FileTransferPool):
    name = "SFTP"
    session_class = SftpSession
