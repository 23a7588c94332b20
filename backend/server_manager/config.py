# server_manager/config.py
import os
from pathlib import Path

# Paths
CONFIG_DIR = Path(os.getenv("SSM_CONFIG_DIR", Path.home() / ".config" / "source-server-manager"))
SERVERS_FILE = CONFIG_DIR / "servers.json"
ENCRYPTION_KEY_FILE = CONFIG_DIR / "vault.key"

# Status polling
STATUS_POLL_INTERVAL = int(os.getenv("STATUS_POLL_INTERVAL", "30"))  # seconds
STATUS_POLL_CONCURRENCY = int(os.getenv("STATUS_POLL_CONCURRENCY", "64"))

# Timeouts (seconds)
REACHABILITY_TIMEOUT = 1.0
QUERY_TIMEOUT = 5.0
RCON_TIMEOUT = 10.0
FILE_TRANSFER_TIMEOUT = 10.0

FTP_RETRY_ATTEMPTS = 3

# Endpoint defaults
DEFAULT_SERVER_NAME = "New Server"
DEFAULT_RCON_PORT = 27015
DEFAULT_FTP_PORT = 21
DEFAULT_MAX_PLAYERS = 24
UNKNOWN_MAP = "unknown"

# API
API_HOST = os.getenv("API_HOST", "127.0.0.1")
API_PORT = int(os.getenv("API_PORT", "8000"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
