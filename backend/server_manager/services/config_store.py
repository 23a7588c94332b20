# server_manager/services/config_store.py
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import List

from server_manager.config import SERVERS_FILE
from server_manager.exceptions import ConfigStoreError
from server_manager.models import Endpoint
from server_manager.utils import crypto

logger = logging.getLogger(__name__)


class ConfigStore:
    """Durable endpoint list (JSON)"""

    def __init__(self, path: Path = SERVERS_FILE):
        self.path = Path(path)

    def load(self) -> List[Endpoint]:
        """Load endpoints, sealing any legacy plaintext secrets on the way"""
        try:
            if not self.path.exists() or self.path.stat().st_size == 0:
                logger.info(f"{self.path} is empty or missing")
                return []

            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, list):
                raise ValueError("expected a list of servers")

            endpoints = [Endpoint.model_validate(item) for item in data]
        except (OSError, ValueError) as e:
            logger.error(f"Error loading servers from {self.path}: {e}")
            raise ConfigStoreError(f"Failed to load server configurations: {e}") from e

        modified = crypto.vault.migrate_endpoints(endpoints)
        if modified:
            logger.info(f"Sealed plaintext secrets of {modified} servers, saving configuration")
            self.save(endpoints)

        logger.info(f"Loaded {len(endpoints)} servers")
        return endpoints

    def save(self, endpoints: List[Endpoint]) -> None:
        """Replace the whole file; secrets are written exactly as stored"""
        records = [endpoint.to_record() for endpoint in endpoints]
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".servers-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(records, f, indent=2)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            logger.error(f"Error saving servers to {self.path}: {e}")
            raise ConfigStoreError(f"Failed to save server configurations: {e}") from e
        logger.info(f"Saved {len(records)} servers")
