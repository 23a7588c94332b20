from .endpoint import (
    Endpoint,
    EndpointCreate,
    EndpointResponse,
    EndpointStatus,
    EndpointUpdate,
    FileTransferProtocol,
)
from .remote import (
    BroadcastRequest,
    BroadcastUploadRequest,
    CommandRequest,
    DirectoryRequest,
    DuplicateRequest,
    ParseableResponse,
    RemoteEntry,
    ServerInfo,
    StatusResponse,
    UploadRequest,
)

__all__ = [
    "Endpoint", "EndpointCreate", "EndpointResponse", "EndpointStatus", "EndpointUpdate",
    "FileTransferProtocol",
    "BroadcastRequest", "BroadcastUploadRequest", "CommandRequest", "DirectoryRequest",
    "DuplicateRequest", "UploadRequest",
    "ParseableResponse", "RemoteEntry", "ServerInfo", "StatusResponse",
]
