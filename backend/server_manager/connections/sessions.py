# server_manager/connections/sessions.py
"""
Protocol sessions held by the connection pools.

Client libraries here are synchronous (rcon, ftplib, paramiko), so every
blocking call runs in the default thread executor to keep the event loop
free. A per-session lock serialises calls on one underlying connection.
"""
import asyncio
import ftplib
import logging
import posixpath
import ssl
import stat
import threading
from datetime import datetime, timezone
from typing import BinaryIO, List, Optional

import a2s
import paramiko
from rcon.source import Client

from server_manager.config import FILE_TRANSFER_TIMEOUT, FTP_RETRY_ATTEMPTS, QUERY_TIMEOUT, RCON_TIMEOUT
from server_manager.exceptions import SessionError
from server_manager.models import RemoteEntry, ServerInfo

logger = logging.getLogger(__name__)


def normalize_path(path: str) -> str:
    """Remote paths always use forward slashes"""
    return (path or "").replace("\\", "/")


def sort_entries(entries: List[RemoteEntry]) -> List[RemoteEntry]:
    return sorted(entries, key=lambda e: (not e.is_directory, e.name.lower()))


class BaseSession:
    """A live connection owned by a pool"""

    protocol = "session"

    def __init__(self, key: str):
        self.key = key
        self.connected = False
        self._lock = threading.Lock()

    def _call(self, func, *args):
        with self._lock:
            return func(*args)

    async def _run(self, func, *args):
        loop = asyncio.get_event_loop()
        try:
            return await loop.run_in_executor(None, self._call, func, *args)
        except SessionError:
            raise
        except Exception as e:
            raise SessionError(str(e) or type(e).__name__) from e

    async def connect(self) -> None:
        await self._run(self._connect)
        self.connected = True

    async def is_alive(self) -> bool:
        if not self.connected:
            return False
        try:
            return await self._run(self._ping)
        except SessionError:
            return False

    async def dispose(self) -> None:
        """Disconnect and release the connection; never raises"""
        self.connected = False
        try:
            await self._run(self._close)
        except SessionError as e:
            logger.debug(f"Error while closing {self.protocol} session {self.key}: {e}")

    def _connect(self) -> None:
        raise NotImplementedError

    def _ping(self) -> bool:
        return self.connected

    def _close(self) -> None:
        raise NotImplementedError


class RconSession(BaseSession):
    """Source RCON control session"""

    protocol = "RCON"

    def __init__(self, host: str, port: int, password: str, timeout: float = RCON_TIMEOUT):
        super().__init__(f"{host}:{port}")
        self._client = Client(host, int(port), passwd=password, timeout=timeout)

    def _connect(self) -> None:
        self._client.__enter__()
        # Only needed for the login handshake
        self._client.passwd = None

    def _send(self, command: str) -> str:
        try:
            return str(self._client.run(command))
        except Exception:
            # Transport state is unknown after a failed round-trip
            self.connected = False
            raise

    async def send_command(self, command: str) -> str:
        return await self._run(self._send, command)

    def _close(self) -> None:
        self._client.__exit__(None, None, None)


class QuerySession(BaseSession):
    """A2S query session. The protocol is connectionless, connect only arms the timeout."""

    protocol = "query"

    def __init__(self, host: str, port: int, timeout: float = QUERY_TIMEOUT):
        super().__init__(f"{host}:{port}")
        self.address = (host, int(port))
        self.timeout = timeout

    async def connect(self) -> None:
        self.connected = True

    async def is_alive(self) -> bool:
        return self.connected

    async def get_info(self) -> ServerInfo:
        try:
            info = await a2s.ainfo(self.address, timeout=self.timeout)
        except Exception as e:
            self.connected = False
            raise SessionError(str(e) or type(e).__name__) from e
        return ServerInfo(
            hostname=info.server_name,
            map=info.map_name,
            players=info.player_count,
            max_players=info.max_players,
        )

    async def dispose(self) -> None:
        self.connected = False


class FileTransferSession(BaseSession):
    """Operations shared by the FTP and SFTP sessions"""

    def __init__(self, host: str, port: int, username: Optional[str], password: str,
                 root_directory: Optional[str] = None, timeout: float = FILE_TRANSFER_TIMEOUT):
        super().__init__(f"{host}:{port}:{username}")
        self.host = host
        self.port = int(port)
        self.username = username or ""
        self._password = password
        self.root_directory = normalize_path(root_directory) if root_directory else None
        self.timeout = timeout

    async def upload(self, stream: BinaryIO, remote_path: str) -> None:
        await self._run(self._upload, stream, normalize_path(remote_path))

    async def create_directory(self, path: str, recursive: bool = True) -> bool:
        return await self._run(self._create_directory, normalize_path(path), recursive)

    async def list_directory(self, path: str = "") -> List[RemoteEntry]:
        entries = await self._run(self._list, normalize_path(path))
        return sort_entries([e for e in entries if e.name not in (".", "..")])

    def _create_directory(self, path: str, recursive: bool) -> bool:
        if path != "/":
            path = path.rstrip("/")
        if not path or self._is_directory(path):
            return True
        if not recursive:
            self._make_directory(path)
            return True

        current = "/" if path.startswith("/") else self._working_directory()
        for part in path.split("/"):
            if not part:
                continue
            current = posixpath.join(current, part)
            if not self._is_directory(current):
                logger.debug(f"Creating {self.protocol} directory {current} on {self.host}")
                self._make_directory(current)
        return True

    def _is_directory(self, path: str) -> bool:
        raise NotImplementedError

    def _make_directory(self, path: str) -> None:
        raise NotImplementedError

    def _working_directory(self) -> str:
        raise NotImplementedError

    def _upload(self, stream: BinaryIO, remote_path: str) -> None:
        raise NotImplementedError

    def _list(self, path: str) -> List[RemoteEntry]:
        raise NotImplementedError


class FtpSession(FileTransferSession):
    """FTP session; uses explicit TLS when the server offers it"""

    protocol = "FTP"

    def __init__(self, *args, retry_attempts: int = FTP_RETRY_ATTEMPTS, **kwargs):
        super().__init__(*args, **kwargs)
        self.retry_attempts = retry_attempts
        self._ftp: Optional[ftplib.FTP] = None

    def _open(self) -> ftplib.FTP:
        # Any server certificate is accepted
        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

        ftp = ftplib.FTP_TLS(context=context, timeout=self.timeout)
        try:
            ftp.connect(self.host, self.port)
            try:
                ftp.auth()
            except ftplib.error_perm as e:
                logger.info(f"FTP server {self.host}:{self.port} does not support TLS ({e}), using plain FTP")
                ftp.login(self.username, self._password, secure=False)
                return ftp

            ftp.login(self.username, self._password)
            try:
                ftp.prot_p()
            except ftplib.error_perm as e:
                logger.warning(f"FTP server {self.host}:{self.port} refused a protected data channel: {e}")
            return ftp
        except BaseException:
            ftp.close()
            raise

    def _connect(self) -> None:
        last_error = None
        for attempt in range(1, self.retry_attempts + 1):
            try:
                self._ftp = self._open()
                break
            except ftplib.all_errors as e:
                last_error = e
                logger.warning(f"FTP connect attempt {attempt}/{self.retry_attempts} to {self.host}:{self.port} failed: {e}")
        else:
            raise SessionError(f"Could not connect to {self.host}:{self.port}: {last_error}")

        self._password = ""
        if self.root_directory:
            self._ftp.cwd(self.root_directory)

    def _ping(self) -> bool:
        if self._ftp is None:
            return False
        try:
            self._ftp.voidcmd("NOOP")
            return True
        except ftplib.all_errors:
            return False

    def _close(self) -> None:
        if self._ftp is None:
            return
        try:
            self._ftp.quit()
        except ftplib.all_errors:
            self._ftp.close()
        finally:
            self._ftp = None

    def _is_directory(self, path: str) -> bool:
        current = self._ftp.pwd()
        try:
            self._ftp.cwd(path)
            return True
        except ftplib.error_perm:
            return False
        finally:
            self._ftp.cwd(current)

    def _make_directory(self, path: str) -> None:
        self._ftp.mkd(path)

    def _working_directory(self) -> str:
        return self._ftp.pwd()

    def _upload(self, stream: BinaryIO, remote_path: str) -> None:
        self._ftp.storbinary(f"STOR {remote_path}", stream)

    def _list(self, path: str) -> List[RemoteEntry]:
        try:
            return self._list_mlsd(path)
        except ftplib.error_perm as e:
            logger.debug(f"MLSD not supported by {self.host} ({e}), falling back to NLST")
            return self._list_nlst(path)

    def _list_mlsd(self, path: str) -> List[RemoteEntry]:
        entries = []
        for name, facts in self._ftp.mlsd(path, facts=["type", "size", "modify"]):
            entry_type = facts.get("type", "file")
            if entry_type in ("cdir", "pdir"):
                continue
            modified = None
            if facts.get("modify"):
                modified = datetime.strptime(facts["modify"][:14], "%Y%m%d%H%M%S").replace(tzinfo=timezone.utc)
            entries.append(RemoteEntry(
                name=name,
                is_directory=entry_type == "dir",
                size=int(facts.get("size") or 0),
                modified=modified,
            ))
        return entries

    def _list_nlst(self, path: str) -> List[RemoteEntry]:
        entries = []
        for item in self._ftp.nlst(path) if path else self._ftp.nlst():
            name = posixpath.basename(item.rstrip("/")) or item
            full_path = posixpath.join(path, name) if path else name
            is_directory = self._is_directory(full_path)
            size = 0
            if not is_directory:
                try:
                    size = self._ftp.size(full_path) or 0
                except ftplib.error_perm:
                    pass
            entries.append(RemoteEntry(name=name, is_directory=is_directory, size=size))
        return entries


class SftpSession(FileTransferSession):
    """SFTP session over paramiko"""

    protocol = "SFTP"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._ssh: Optional[paramiko.SSHClient] = None
        self._sftp: Optional[paramiko.SFTPClient] = None

    def _connect(self) -> None:
        ssh = paramiko.SSHClient()
        ssh.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        ssh.connect(
            hostname=self.host,
            port=self.port,
            username=self.username,
            password=self._password,
            timeout=self.timeout,
            banner_timeout=self.timeout,
            auth_timeout=self.timeout,
            look_for_keys=False,
            allow_agent=False,
        )
        self._password = ""
        self._ssh = ssh
        self._sftp = ssh.open_sftp()
        if self.root_directory:
            self._sftp.chdir(self.root_directory)

    def _ping(self) -> bool:
        if self._ssh is None:
            return False
        transport = self._ssh.get_transport()
        return transport is not None and transport.is_active()

    def _close(self) -> None:
        try:
            if self._sftp is not None:
                self._sftp.close()
        finally:
            if self._ssh is not None:
                self._ssh.close()
            self._sftp = None
            self._ssh = None

    def _is_directory(self, path: str) -> bool:
        try:
            return stat.S_ISDIR(self._sftp.stat(path).st_mode)
        except IOError:
            return False

    def _make_directory(self, path: str) -> None:
        self._sftp.mkdir(path)

    def _working_directory(self) -> str:
        # getcwd() is None until the first chdir, the login directory is "."
        return self._sftp.getcwd() or self._sftp.normalize(".")

    def _upload(self, stream: BinaryIO, remote_path: str) -> None:
        self._sftp.putfo(stream, remote_path)

    def _list(self, path: str) -> List[RemoteEntry]:
        path = path or self._working_directory()
        return [
            RemoteEntry(
                name=attr.filename,
                is_directory=stat.S_ISDIR(attr.st_mode or 0),
                size=0 if stat.S_ISDIR(attr.st_mode or 0) else (attr.st_size or 0),
                modified=datetime.fromtimestamp(attr.st_mtime, tz=timezone.utc) if attr.st_mtime else None,
            )
            for attr in self._sftp.listdir_attr(path)
        ]
