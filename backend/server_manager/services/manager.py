# server_manager/services/manager.py
import asyncio
import logging
import os
import posixpath
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from server_manager.collector import start_scheduler, stop_scheduler
from server_manager.config import STATUS_POLL_INTERVAL
from server_manager.connections import (
    FileTransferPool,
    FtpPool,
    QueryPool,
    RconPool,
    SessionPool,
    SftpPool,
    normalize_path,
)
from server_manager.exceptions import DuplicateEndpointError, EndpointNotFoundError
from server_manager.models import (
    Endpoint,
    EndpointStatus,
    EndpointUpdate,
    FileTransferProtocol,
    StatusResponse,
)
from server_manager.services.config_store import ConfigStore
from server_manager.services.status import StatusPoller
from server_manager.utils import crypto

logger = logging.getLogger(__name__)

_SIZE_SUFFIXES = ("B", "KB", "MB", "GB", "TB")


def format_file_size(size: int) -> str:
    number = float(size)
    counter = 0
    while round(number / 1024) >= 1 and counter < len(_SIZE_SUFFIXES) - 1:
        number /= 1024
        counter += 1
    return f"{number:,.1f} {_SIZE_SUFFIXES[counter]}"


class ServerManager:
    """
    Owns the endpoint list, the connection pools and the status scheduler.

    Operations a user triggers against one server (commands, transfers,
    listings) report failures as descriptive strings instead of raising.
    Persistence failures always propagate.
    """

    def __init__(
        self,
        config_store: Optional[ConfigStore] = None,
        poller: Optional[StatusPoller] = None,
        rcon_pool: Optional[RconPool] = None,
        ftp_pool: Optional[FtpPool] = None,
        sftp_pool: Optional[SftpPool] = None,
        query_pool: Optional[QueryPool] = None,
        poll_interval: int = STATUS_POLL_INTERVAL,
    ):
        self.vault = crypto.vault
        self.config_store = config_store or ConfigStore()
        self.rcon_pool = rcon_pool or RconPool()
        self.ftp_pool = ftp_pool or FtpPool()
        self.sftp_pool = sftp_pool or SftpPool()
        self.query_pool = query_pool or QueryPool()
        self.poller = poller or StatusPoller(self.query_pool)
        self.poll_interval = poll_interval
        self._endpoints: List[Endpoint] = []
        self._scheduler_tasks: List[asyncio.Task] = []

    @property
    def endpoints(self) -> List[Endpoint]:
        return list(self._endpoints)

    @property
    def pools(self) -> List[SessionPool]:
        return [self.rcon_pool, self.ftp_pool, self.sftp_pool, self.query_pool]

    # Endpoint list

    def load(self) -> List[Endpoint]:
        self._endpoints = self.config_store.load()
        return self.endpoints

    def save(self) -> None:
        self.config_store.save(self._endpoints)

    def _commit(self, endpoints: List[Endpoint]) -> None:
        """Persist a new endpoint list; memory changes only once it is on disk"""
        self.config_store.save(endpoints)
        self._endpoints = endpoints

    def get_endpoint(self, key: str) -> Endpoint:
        for endpoint in self._endpoints:
            if endpoint.key == key:
                return endpoint
        raise EndpointNotFoundError(f"Server {key} not found")

    def _ensure_unique(self, key: str, ignore: Optional[Endpoint] = None) -> None:
        for endpoint in self._endpoints:
            if endpoint is not ignore and endpoint.key == key:
                raise DuplicateEndpointError(f"Server {key} already exists")

    def add_endpoint(self, endpoint: Endpoint) -> Endpoint:
        self._ensure_unique(endpoint.key)
        self._commit(self._endpoints + [endpoint])
        logger.info(f"Added server {endpoint.display_name} ({endpoint.key})")
        return endpoint

    async def update_endpoint(self, key: str, update: EndpointUpdate) -> Endpoint:
        endpoint = self.get_endpoint(key)
        candidate = endpoint.model_copy()
        update.apply(candidate)
        self._ensure_unique(candidate.key, ignore=endpoint)
        if candidate.key != key:
            candidate.reset_status()
        self._commit([candidate if e is endpoint else e for e in self._endpoints])

        # Cached sessions were opened with the old address or credentials
        await self._evict_sessions(endpoint)
        for name in Endpoint.model_fields:
            setattr(endpoint, name, getattr(candidate, name))
        self._endpoints = [endpoint if e is candidate else e for e in self._endpoints]
        logger.info(f"Updated server {endpoint.display_name} ({endpoint.key})")
        return endpoint

    async def delete_endpoint(self, key: str) -> Endpoint:
        endpoint = self.get_endpoint(key)
        self._commit([e for e in self._endpoints if e is not endpoint])
        await self._evict_sessions(endpoint)
        logger.info(f"Deleted server {endpoint.display_name} ({key})")
        return endpoint

    def duplicate_endpoint(self, key: str, ip_address: Optional[str] = None,
                           rcon_port: Optional[int] = None) -> Endpoint:
        """Copy an endpoint; the copy needs a different address or port to be stored"""
        copy = self.get_endpoint(key).duplicate()
        if ip_address:
            copy.ip_address = ip_address
        if rcon_port:
            copy.rcon_port = rcon_port
        return self.add_endpoint(copy)

    async def _evict_sessions(self, endpoint: Endpoint) -> None:
        await asyncio.gather(
            self.rcon_pool.evict_endpoint(endpoint),
            self.query_pool.evict_endpoint(endpoint),
            self.transfer_pool(endpoint).evict_endpoint(endpoint),
        )

    def transfer_pool(self, endpoint: Endpoint) -> FileTransferPool:
        if endpoint.ftp_protocol == FileTransferProtocol.SFTP:
            return self.sftp_pool
        return self.ftp_pool

    # Status

    async def refresh_all(self) -> List[EndpointStatus]:
        return await self.poller.poll_all(self._endpoints)

    async def refresh_one(self, endpoint: Endpoint) -> EndpointStatus:
        return await self.poller.poll_one(endpoint)

    def start(self) -> None:
        if not self._scheduler_tasks:
            self._scheduler_tasks = start_scheduler(self, self.poll_interval)

    async def stop(self) -> None:
        tasks, self._scheduler_tasks = self._scheduler_tasks, []
        if tasks:
            await stop_scheduler(tasks)

    # RCON

    async def execute_command(self, endpoint: Endpoint, command: str) -> str:
        try:
            return await self.rcon_pool.execute(endpoint, command)
        except Exception as e:
            logger.warning(f"RCON command on {endpoint.display_name} failed: {e}")
            return f"RCON Error: {e}"

    async def broadcast_command(self, command: str,
                                endpoints: Optional[Iterable[Endpoint]] = None) -> Dict[str, str]:
        """Run one command on several endpoints concurrently, results keyed by endpoint key"""
        targets = list(self._endpoints if endpoints is None else endpoints)
        results = await asyncio.gather(*(self.execute_command(e, command) for e in targets))
        logger.info(f"Broadcast '{command}' to {len(targets)} servers")
        return {endpoint.key: result for endpoint, result in zip(targets, results)}

    async def query_status(self, endpoint: Endpoint) -> StatusResponse:
        """Typed `status` over RCON. Raises SessionError or ValueError."""
        return await self.rcon_pool.execute_typed(endpoint, "status", StatusResponse)

    # Files

    async def upload_file(self, endpoint: Endpoint, local_path: str, remote_path: str) -> str:
        pool = self.transfer_pool(endpoint)
        remote_path = normalize_path(remote_path)
        try:
            with open(local_path, "rb") as stream:
                await pool.upload(endpoint, stream, remote_path)
        except Exception as e:
            logger.warning(f"{pool.name} upload of {local_path} to {endpoint.display_name} failed: {e}")
            return f"{pool.name} Error: {e}"
        return f"File uploaded successfully to {remote_path}"

    async def upload_folder(self, endpoint: Endpoint, local_dir: str, remote_dir: str) -> str:
        """Upload a local tree, keeping the layout relative to local_dir"""
        pool = self.transfer_pool(endpoint)
        remote_dir = normalize_path(remote_dir).rstrip("/") or "/"
        local_root = Path(local_dir)
        if not local_root.is_dir():
            return f"{pool.name} Error: {local_dir} is not a directory"

        files = sorted(p for p in local_root.rglob("*") if p.is_file())
        try:
            await pool.create_directory(endpoint, remote_dir)
        except Exception as e:
            logger.warning(f"{pool.name} mkdir {remote_dir} on {endpoint.display_name} failed: {e}")
            return f"{pool.name} Error: {e}"

        failures = []
        for path in files:
            relative = path.relative_to(local_root).as_posix()
            remote_path = posixpath.join(remote_dir, relative)
            result = await self.upload_file(endpoint, os.fspath(path), remote_path)
            if not result.startswith("File uploaded successfully"):
                failures.append(f"{relative}: {result}")

        uploaded = len(files) - len(failures)
        logger.info(f"Uploaded {uploaded}/{len(files)} files from {local_dir} to {endpoint.display_name}")
        summary = f"Uploaded {uploaded} of {len(files)} files to {remote_dir}"
        if failures:
            summary += "\n" + "\n".join(failures)
        return summary

    async def upload_to_servers(self, local_path: str, remote_path: str,
                                endpoints: Optional[Iterable[Endpoint]] = None) -> Dict[str, str]:
        """Upload a file or folder to several endpoints concurrently, results keyed by endpoint key"""
        targets = list(self._endpoints if endpoints is None else endpoints)
        if os.path.isdir(local_path):
            uploads = (self.upload_folder(e, local_path, remote_path) for e in targets)
        else:
            uploads = (self.upload_file(e, local_path, remote_path) for e in targets)
        results = await asyncio.gather(*uploads)
        logger.info(f"Broadcast upload of {local_path} to {len(targets)} servers")
        return {endpoint.key: result for endpoint, result in zip(targets, results)}

    async def create_directory(self, endpoint: Endpoint, path: str, recursive: bool = True) -> str:
        pool = self.transfer_pool(endpoint)
        path = normalize_path(path)
        try:
            await pool.create_directory(endpoint, path, recursive)
        except Exception as e:
            logger.warning(f"{pool.name} mkdir {path} on {endpoint.display_name} failed: {e}")
            return f"{pool.name} Error: {e}"
        return f"Directory created: {path}"

    async def browse_directory(self, endpoint: Endpoint, path: str = "") -> str:
        pool = self.transfer_pool(endpoint)
        path = normalize_path(path.strip())
        try:
            entries = await pool.list_directory(endpoint, path)
        except Exception as e:
            logger.warning(f"{pool.name} listing of {path} on {endpoint.display_name} failed: {e}")
            return f"{pool.name} Error: {e}"

        lines = [f"Directory listing for {path}:"]
        for entry in entries:
            item_type = "[DIR]" if entry.is_directory else "[FILE]"
            size = "-" if entry.is_directory else format_file_size(entry.size)
            modified = entry.modified.strftime("%Y-%m-%d %H:%M:%S") if entry.modified else ""
            lines.append(f"{item_type} {entry.name:<30} {size:>10} {modified}".rstrip())
        return "\n".join(lines)

    # Lifecycle

    async def shutdown(self) -> None:
        """Stop polling, persist, then close every pooled session"""
        logger.info("Shutting down server manager...")
        await self.stop()
        try:
            self.save()
        finally:
            await asyncio.gather(*(pool.evict_all() for pool in self.pools))
        logger.info("Server manager stopped")
