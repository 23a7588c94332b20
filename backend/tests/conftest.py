"""Shared fixtures and in-memory fakes for the server manager tests."""

from __future__ import annotations

import posixpath
import time
from typing import Dict, List, Optional

import pytest

from server_manager.connections import FtpPool, QueryPool, RconPool, SessionPool
from server_manager.connections.sessions import BaseSession, FileTransferSession
from server_manager.models import Endpoint, RemoteEntry, ServerInfo
from server_manager.services import ConfigStore, ServerManager, StatusPoller
from server_manager.utils import crypto
from server_manager.utils.crypto import CredentialVault


# =============================================================================
# Vault
# =============================================================================


@pytest.fixture(autouse=True)
def vault(tmp_path, monkeypatch) -> CredentialVault:
    """Process-wide vault backed by a key file under tmp_path."""
    test_vault = CredentialVault(tmp_path / "keys" / "vault.key")
    monkeypatch.setattr(crypto, "vault", test_vault)
    return test_vault


# =============================================================================
# Sessions
# =============================================================================


class FakeSession(BaseSession):
    """Session whose liveness is controlled by the test."""

    protocol = "fake"

    def __init__(self, key: str, connect_delay: float = 0.0, fail_connect: bool = False):
        super().__init__(key)
        self.connect_delay = connect_delay
        self.fail_connect = fail_connect
        self.alive = True
        self.connects = 0
        self.closed = False

    def _connect(self) -> None:
        time.sleep(self.connect_delay)
        self.connects += 1
        if self.fail_connect:
            raise ConnectionRefusedError("connection refused")

    def _ping(self) -> bool:
        return self.alive

    def _close(self) -> None:
        self.closed = True


class FakePool(SessionPool):
    name = "fake"

    def __init__(self, connect_delay: float = 0.0, fail_connect: bool = False):
        super().__init__()
        self.connect_delay = connect_delay
        self.fail_connect = fail_connect
        self.created: List[FakeSession] = []

    def get_pool_key(self, endpoint: Endpoint) -> str:
        return endpoint.key

    def create_session(self, endpoint: Endpoint) -> FakeSession:
        session = FakeSession(endpoint.key, self.connect_delay, self.fail_connect)
        self.created.append(session)
        return session


class FakeRconSession(BaseSession):
    protocol = "RCON"

    def __init__(self, key: str, password: str, responses: Dict[str, str]):
        super().__init__(key)
        self.password = password
        self.responses = responses
        self.commands: List[str] = []

    def _connect(self) -> None:
        if self.password != "secret":
            raise ConnectionRefusedError("Authentication failed")

    def _send(self, command: str) -> str:
        self.commands.append(command)
        return self.responses.get(command, f"Unknown command \"{command}\"")

    async def send_command(self, command: str) -> str:
        return await self._run(self._send, command)

    def _close(self) -> None:
        pass


class FakeRconPool(RconPool):
    def __init__(self, responses: Optional[Dict[str, str]] = None):
        super().__init__()
        self.responses = responses or {}

    def create_session(self, endpoint: Endpoint) -> FakeRconSession:
        return FakeRconSession(endpoint.key, endpoint.rcon_password, self.responses)


class MemoryFileSession(FileTransferSession):
    """File-transfer session over an in-memory tree rooted at '/'."""

    protocol = "FTP"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.cwd = self.root_directory or "/home"
        self.directories = {"/", "/home"}
        if self.root_directory:
            self.directories.add(self.root_directory)
        self.files: Dict[str, bytes] = {}
        self.mkdir_calls: List[str] = []

    def _resolve(self, path: str) -> str:
        return posixpath.normpath(posixpath.join(self.cwd, path or "."))

    def _connect(self) -> None:
        pass

    def _close(self) -> None:
        pass

    def _is_directory(self, path: str) -> bool:
        return self._resolve(path) in self.directories

    def _make_directory(self, path: str) -> None:
        full_path = self._resolve(path)
        if full_path in self.directories or posixpath.dirname(full_path) not in self.directories:
            raise OSError(f"550 Cannot create {path}")
        self.mkdir_calls.append(full_path)
        self.directories.add(full_path)

    def _working_directory(self) -> str:
        return self.cwd

    def _upload(self, stream, remote_path: str) -> None:
        full_path = self._resolve(remote_path)
        if posixpath.dirname(full_path) not in self.directories:
            raise OSError(f"553 No such directory for {remote_path}")
        self.files[full_path] = stream.read()

    def _list(self, path: str) -> List[RemoteEntry]:
        base = self._resolve(path)
        if base not in self.directories:
            raise OSError(f"550 {path}: No such file or directory")
        entries = [RemoteEntry(name=".", is_directory=True), RemoteEntry(name="..", is_directory=True)]
        for directory in self.directories:
            if directory != base and posixpath.dirname(directory) == base:
                entries.append(RemoteEntry(name=posixpath.basename(directory), is_directory=True))
        for file_path, data in self.files.items():
            if posixpath.dirname(file_path) == base:
                entries.append(RemoteEntry(name=posixpath.basename(file_path), is_directory=False, size=len(data)))
        return entries


class MemoryFtpPool(FtpPool):
    """FTP pool handing out in-memory sessions."""

    session_class = MemoryFileSession

    def __init__(self):
        super().__init__()
        self.created: List[MemoryFileSession] = []

    def create_session(self, endpoint: Endpoint) -> MemoryFileSession:
        session = super().create_session(endpoint)
        self.created.append(session)
        return session


class FakeQueryPool(QueryPool):
    """Query pool answering from a table instead of the network."""

    def __init__(self, infos: Optional[Dict[str, ServerInfo]] = None):
        super().__init__()
        self.infos = infos or {}
        self.evicted: List[str] = []

    async def get_info(self, endpoint: Endpoint) -> ServerInfo:
        info = self.infos.get(endpoint.key)
        if info is None:
            raise TimeoutError("timed out")
        return info

    async def evict_endpoint(self, endpoint: Endpoint) -> None:
        self.evicted.append(endpoint.key)
        await super().evict_endpoint(endpoint)


def no_route(host: str, port: int, timeout: float) -> bool:
    return False


# =============================================================================
# Manager
# =============================================================================


@pytest.fixture
def config_store(tmp_path) -> ConfigStore:
    return ConfigStore(tmp_path / "config" / "servers.json")


@pytest.fixture
def manager(config_store) -> ServerManager:
    """Manager wired to in-memory pools; every host is unreachable."""
    query_pool = FakeQueryPool()
    return ServerManager(
        config_store=config_store,
        poller=StatusPoller(query_pool, check_reachable=no_route),
        rcon_pool=FakeRconPool({"status": "hostname: Test Server\nmap     : de_dust2\n"}),
        ftp_pool=MemoryFtpPool(),
        query_pool=query_pool,
    )


def make_endpoint(ip_address: str = "10.0.0.5", rcon_port: int = 27015, **kwargs) -> Endpoint:
    return Endpoint(ip_address=ip_address, rcon_port=rcon_port, **kwargs)
