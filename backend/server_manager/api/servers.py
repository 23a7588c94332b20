# server_manager/api/servers.py
from fastapi import APIRouter, HTTPException, Depends, Query
from typing import List, Optional
import logging
import os

from server_manager.api.dependencies import get_manager
from server_manager.exceptions import (
    ConfigStoreError,
    DuplicateEndpointError,
    EndpointNotFoundError,
    SessionError,
)
from server_manager.models import (
    BroadcastRequest,
    BroadcastUploadRequest,
    CommandRequest,
    DirectoryRequest,
    DuplicateRequest,
    Endpoint,
    EndpointCreate,
    EndpointResponse,
    EndpointUpdate,
    StatusResponse,
    UploadRequest,
)
from server_manager.services import ServerManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/servers", tags=["servers"])


def _get_endpoint(manager: ServerManager, key: str) -> Endpoint:
    try:
        return manager.get_endpoint(key)
    except EndpointNotFoundError:
        raise HTTPException(status_code=404, detail="Server not found")


@router.get("", response_model=List[EndpointResponse])
async def get_servers(manager: ServerManager = Depends(get_manager)):
    """List all servers with their last known status"""
    return [EndpointResponse.from_endpoint(e) for e in manager.endpoints]

@router.post("", response_model=EndpointResponse)
async def add_server(server: EndpointCreate, manager: ServerManager = Depends(get_manager)):
    """Add a new server"""
    try:
        if not server.ip_address.strip():
            raise HTTPException(status_code=400, detail="Invalid host address")
        endpoint = manager.add_endpoint(server.to_endpoint())
        return EndpointResponse.from_endpoint(endpoint)
    except DuplicateEndpointError as e:
        logger.warning(f"Attempt to add existing server: {server.ip_address}:{server.rcon_port}")
        raise HTTPException(status_code=400, detail=str(e))
    except HTTPException:
        raise
    except ConfigStoreError as e:
        raise HTTPException(status_code=500, detail=f"Error adding server: {e}")

@router.post("/refresh", response_model=List[EndpointResponse])
async def refresh_servers(manager: ServerManager = Depends(get_manager)):
    """Poll every server now"""
    await manager.refresh_all()
    return [EndpointResponse.from_endpoint(e) for e in manager.endpoints]

@router.post("/rcon/broadcast")
async def broadcast_command(request: BroadcastRequest, manager: ServerManager = Depends(get_manager)):
    """Send one RCON command to several servers (all when none are given)"""
    endpoints = None
    if request.servers is not None:
        endpoints = [_get_endpoint(manager, key) for key in request.servers]
    results = await manager.broadcast_command(request.command, endpoints)
    return {"results": results}

@router.post("/files/upload/broadcast")
async def broadcast_upload(request: BroadcastUploadRequest, manager: ServerManager = Depends(get_manager)):
    """Upload a local file or folder to several servers (all when none are given)"""
    if not os.path.exists(request.local_path):
        raise HTTPException(status_code=400, detail=f"Local path not found: {request.local_path}")
    endpoints = None
    if request.servers is not None:
        endpoints = [_get_endpoint(manager, key) for key in request.servers]
    results = await manager.upload_to_servers(request.local_path, request.remote_path, endpoints)
    return {"results": results}

@router.put("/{key}", response_model=EndpointResponse)
async def update_server(key: str, update: EndpointUpdate, manager: ServerManager = Depends(get_manager)):
    """Update server settings"""
    try:
        endpoint = await manager.update_endpoint(key, update)
        return EndpointResponse.from_endpoint(endpoint)
    except EndpointNotFoundError:
        raise HTTPException(status_code=404, detail="Server not found")
    except DuplicateEndpointError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ConfigStoreError as e:
        raise HTTPException(status_code=500, detail=f"Error updating server: {e}")

@router.delete("/{key}")
async def delete_server(key: str, manager: ServerManager = Depends(get_manager)):
    """Remove a server and close its sessions"""
    try:
        endpoint = await manager.delete_endpoint(key)
    except EndpointNotFoundError:
        raise HTTPException(status_code=404, detail="Server not found")
    except ConfigStoreError as e:
        raise HTTPException(status_code=500, detail=f"Error deleting server: {e}")
    return {"message": f"Server {endpoint.display_name} deleted"}

@router.post("/{key}/duplicate", response_model=EndpointResponse)
async def duplicate_server(key: str, request: Optional[DuplicateRequest] = None,
                           manager: ServerManager = Depends(get_manager)):
    """Copy a server's settings to a new entry"""
    request = request or DuplicateRequest()
    try:
        endpoint = manager.duplicate_endpoint(key, request.ip_address, request.rcon_port)
        return EndpointResponse.from_endpoint(endpoint)
    except EndpointNotFoundError:
        raise HTTPException(status_code=404, detail="Server not found")
    except DuplicateEndpointError as e:
        raise HTTPException(status_code=400, detail=f"{e}, give the copy another address or port")
    except ConfigStoreError as e:
        raise HTTPException(status_code=500, detail=f"Error duplicating server: {e}")

@router.post("/{key}/refresh", response_model=EndpointResponse)
async def refresh_server(key: str, manager: ServerManager = Depends(get_manager)):
    """Poll one server now"""
    endpoint = _get_endpoint(manager, key)
    await manager.refresh_one(endpoint)
    return EndpointResponse.from_endpoint(endpoint)

@router.post("/{key}/rcon")
async def execute_command(key: str, request: CommandRequest, manager: ServerManager = Depends(get_manager)):
    """Send an RCON command"""
    endpoint = _get_endpoint(manager, key)
    return {"result": await manager.execute_command(endpoint, request.command)}

@router.get("/{key}/rcon/status", response_model=StatusResponse)
async def get_rcon_status(key: str, manager: ServerManager = Depends(get_manager)):
    """Parsed output of the `status` command"""
    endpoint = _get_endpoint(manager, key)
    try:
        return await manager.query_status(endpoint)
    except (SessionError, ValueError) as e:
        logger.warning(f"Status of {endpoint.display_name} unavailable: {e}")
        raise HTTPException(status_code=502, detail=f"RCON Error: {e}")

@router.get("/{key}/files")
async def browse_directory(key: str, path: str = Query(""), manager: ServerManager = Depends(get_manager)):
    """Remote directory listing"""
    endpoint = _get_endpoint(manager, key)
    return {"result": await manager.browse_directory(endpoint, path)}

@router.post("/{key}/files/upload")
async def upload(key: str, request: UploadRequest, manager: ServerManager = Depends(get_manager)):
    """Upload a local file, or a whole folder when local_path is a directory"""
    endpoint = _get_endpoint(manager, key)
    if os.path.isdir(request.local_path):
        result = await manager.upload_folder(endpoint, request.local_path, request.remote_path)
    elif os.path.isfile(request.local_path):
        result = await manager.upload_file(endpoint, request.local_path, request.remote_path)
    else:
        raise HTTPException(status_code=400, detail=f"Local path not found: {request.local_path}")
    return {"result": result}

@router.post("/{key}/files/mkdir")
async def create_directory(key: str, request: DirectoryRequest, manager: ServerManager = Depends(get_manager)):
    """Create a remote directory"""
    endpoint = _get_endpoint(manager, key)
    return {"result": await manager.create_directory(endpoint, request.path, request.recursive)}
