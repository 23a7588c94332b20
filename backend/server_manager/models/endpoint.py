# server_manager/models/endpoint.py
import logging
from enum import Enum
from typing import ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from server_manager.config import (
    DEFAULT_FTP_PORT,
    DEFAULT_MAX_PLAYERS,
    DEFAULT_RCON_PORT,
    DEFAULT_SERVER_NAME,
    UNKNOWN_MAP,
)
from server_manager.exceptions import VaultError
from server_manager.utils import crypto

logger = logging.getLogger(__name__)


class FileTransferProtocol(str, Enum):
    FTP = "FTP"
    SFTP = "SFTP"


class EndpointStatus(BaseModel):
    """Volatile status of an endpoint, replaced as a whole by the poller"""
    model_config = ConfigDict(frozen=True)

    reachable: bool = False
    online: bool = False
    players_online: int = 0
    max_players: int = DEFAULT_MAX_PLAYERS
    current_map: str = ""

    @classmethod
    def unknown(cls) -> "EndpointStatus":
        """Host answers but the game service could not be queried"""
        return cls(reachable=True, online=True, current_map=UNKNOWN_MAP)

    @property
    def player_map_info(self) -> str:
        return f"{self.players_online}/{self.max_players} - {self.current_map}"


class Endpoint(BaseModel):
    """One managed game server. Secrets are kept sealed in the *_storage fields."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    SECRET_FIELDS: ClassVar[tuple] = ("rcon_password_storage", "ftp_password_storage")

    name: str = DEFAULT_SERVER_NAME
    ip_address: str
    rcon_port: int = DEFAULT_RCON_PORT
    rcon_password_storage: Optional[str] = Field(default=None, alias="rconPassword")
    ftp_host: Optional[str] = None
    ftp_port: int = DEFAULT_FTP_PORT
    ftp_username: Optional[str] = None
    ftp_password_storage: Optional[str] = Field(default=None, alias="ftpPassword")
    ftp_root_directory: Optional[str] = None
    ftp_protocol: FileTransferProtocol = FileTransferProtocol.FTP

    # Learned from live queries, never persisted
    server_hostname: str = Field(default="", exclude=True)
    status: EndpointStatus = Field(default_factory=EndpointStatus, exclude=True)

    @field_validator("ftp_protocol", mode="before")
    @classmethod
    def _protocol_from_index(cls, value):
        # Older config files stored the protocol as an enum index
        if isinstance(value, int):
            protocols = list(FileTransferProtocol)
            if not 0 <= value < len(protocols):
                raise ValueError(f"unknown ftpProtocol index {value}")
            return protocols[value]
        return value

    @property
    def key(self) -> str:
        return f"{self.ip_address}:{self.rcon_port}"

    @property
    def ftp_connection_key(self) -> str:
        return f"{self.ftp_host}:{self.ftp_port}:{self.ftp_username}"

    @property
    def display_name(self) -> str:
        return self.server_hostname or self.name

    @property
    def rcon_password(self) -> str:
        return crypto.vault.reveal(self.rcon_password_storage or "")

    @rcon_password.setter
    def rcon_password(self, value: str) -> None:
        if value != self.rcon_password:
            self.rcon_password_storage = self._seal_secret(value, "RCON")

    @property
    def ftp_password(self) -> str:
        return crypto.vault.reveal(self.ftp_password_storage or "")

    @ftp_password.setter
    def ftp_password(self, value: str) -> None:
        if value != self.ftp_password:
            self.ftp_password_storage = self._seal_secret(value, "FTP")

    def _seal_secret(self, value: str, label: str) -> Optional[str]:
        if not value:
            return None
        try:
            return crypto.vault.seal(value)
        except VaultError as e:
            # Keep the secret rather than lose it
            logger.warning(f"Could not seal {label} password for {self.key}, storing it unsealed: {e}")
            return value

    def reset_status(self) -> None:
        self.status = EndpointStatus()

    def duplicate(self) -> "Endpoint":
        return Endpoint(
            name=f"{self.display_name} (Copy)",
            ip_address=self.ip_address,
            rcon_port=self.rcon_port,
            rcon_password_storage=self.rcon_password_storage,
            ftp_host=self.ftp_host,
            ftp_port=self.ftp_port,
            ftp_username=self.ftp_username,
            ftp_password_storage=self.ftp_password_storage,
            ftp_root_directory=self.ftp_root_directory,
            ftp_protocol=self.ftp_protocol,
        )

    def to_record(self) -> dict:
        """Persisted form: camelCase keys, unset fields omitted, secrets as stored"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class EndpointCreate(BaseModel):
    """Endpoint as submitted by a client, secrets in plaintext"""
    name: str = DEFAULT_SERVER_NAME
    ip_address: str
    rcon_port: int = DEFAULT_RCON_PORT
    rcon_password: str = ""
    ftp_host: Optional[str] = None
    ftp_port: int = DEFAULT_FTP_PORT
    ftp_username: Optional[str] = None
    ftp_password: str = ""
    ftp_root_directory: Optional[str] = None
    ftp_protocol: FileTransferProtocol = FileTransferProtocol.FTP

    def to_endpoint(self) -> Endpoint:
        endpoint = Endpoint(**self.model_dump(exclude={"rcon_password", "ftp_password"}))
        endpoint.rcon_password = self.rcon_password
        endpoint.ftp_password = self.ftp_password
        return endpoint


class EndpointUpdate(BaseModel):
    """Partial update; fields left as None keep their current value"""
    name: Optional[str] = None
    ip_address: Optional[str] = None
    rcon_port: Optional[int] = None
    rcon_password: Optional[str] = None
    ftp_host: Optional[str] = None
    ftp_port: Optional[int] = None
    ftp_username: Optional[str] = None
    ftp_password: Optional[str] = None
    ftp_root_directory: Optional[str] = None
    ftp_protocol: Optional[FileTransferProtocol] = None

    def apply(self, endpoint: Endpoint) -> None:
        for field, value in self.model_dump(exclude_none=True).items():
            setattr(endpoint, field, value)


class EndpointResponse(BaseModel):
    """Endpoint for API responses (no secrets)"""
    key: str
    name: str
    display_name: str
    ip_address: str
    rcon_port: int
    has_rcon_password: bool
    ftp_host: Optional[str] = None
    ftp_port: int
    ftp_username: Optional[str] = None
    has_ftp_password: bool
    ftp_root_directory: Optional[str] = None
    ftp_protocol: FileTransferProtocol
    server_hostname: str
    status: EndpointStatus
    player_map_info: str

    @classmethod
    def from_endpoint(cls, endpoint: Endpoint) -> "EndpointResponse":
        status = endpoint.status
        return cls(
            key=endpoint.key,
            name=endpoint.name,
            display_name=endpoint.display_name,
            ip_address=endpoint.ip_address,
            rcon_port=endpoint.rcon_port,
            has_rcon_password=bool(endpoint.rcon_password_storage),
            ftp_host=endpoint.ftp_host,
            ftp_port=endpoint.ftp_port,
            ftp_username=endpoint.ftp_username,
            has_ftp_password=bool(endpoint.ftp_password_storage),
            ftp_root_directory=endpoint.ftp_root_directory,
            ftp_protocol=endpoint.ftp_protocol,
            server_hostname=endpoint.server_hostname,
            status=status,
            player_map_info=status.player_map_info,
        )
