# server_manager/models/remote.py
import re
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class RemoteEntry(BaseModel):
    """One entry of a remote directory listing"""
    name: str
    is_directory: bool
    size: int = 0
    modified: Optional[datetime] = None


class ServerInfo(BaseModel):
    """A2S_INFO answer of a game server"""
    hostname: str
    map: str
    players: int
    max_players: int


class ParseableResponse(BaseModel):
    """RCON response that can be built from the raw response text"""

    @classmethod
    def parse(cls, text: str) -> "ParseableResponse":
        raise NotImplementedError


_STATUS_LINE = re.compile(r"^\s*(?P<key>[a-z/ ]+?)\s*:\s*(?P<value>.*)$", re.IGNORECASE)
_PLAYERS_NEW = re.compile(r"(?P<humans>\d+)\s+humans?,\s*(?P<bots>\d+)\s+bots?\s*\((?P<max>\d+)(?:/\d+)?\s+max\)")
_PLAYERS_OLD = re.compile(r"(?P<humans>\d+)\s*(?:\((?P<max>\d+)\s+max\))?")


class StatusResponse(ParseableResponse):
    """Parsed output of the Source `status` command"""
    hostname: str = ""
    version: str = ""
    map: str = ""
    humans: int = 0
    bots: int = 0
    max_players: int = 0

    @classmethod
    def parse(cls, text: str) -> "StatusResponse":
        fields = {}
        for line in text.splitlines():
            match = _STATUS_LINE.match(line)
            if match:
                fields.setdefault(match.group("key").strip().lower(), match.group("value").strip())

        if "hostname" not in fields and "map" not in fields:
            raise ValueError("Not a status response")

        result = {
            "hostname": fields.get("hostname", ""),
            "version": fields.get("version", ""),
            # "de_dust2 at: 0 x, 0 y, 0 z"
            "map": fields.get("map", "").split(" ")[0],
        }
        players = fields.get("players", "")
        match = _PLAYERS_NEW.search(players)
        if match:
            result.update(humans=int(match["humans"]), bots=int(match["bots"]), max_players=int(match["max"]))
        else:
            match = _PLAYERS_OLD.search(players)
            if match:
                result["humans"] = int(match["humans"])
                if match["max"]:
                    result["max_players"] = int(match["max"])
        return cls(**result)


# API request bodies

class CommandRequest(BaseModel):
    command: str


class BroadcastRequest(BaseModel):
    command: str
    servers: Optional[List[str]] = None  # endpoint keys, all endpoints when omitted


class UploadRequest(BaseModel):
    local_path: str
    remote_path: str


class BroadcastUploadRequest(UploadRequest):
    servers: Optional[List[str]] = None  # endpoint keys, all endpoints when omitted


class DirectoryRequest(BaseModel):
    path: str
    recursive: bool = True


class DuplicateRequest(BaseModel):
    """The copy is stored under its own address:port, so one of them must differ"""
    ip_address: Optional[str] = None
    rcon_port: Optional[int] = None
