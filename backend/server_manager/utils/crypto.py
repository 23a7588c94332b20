# server_manager/utils/crypto.py
"""
Credential vault: sealing of secrets at rest.

Secrets are sealed with Fernet. The Fernet key is derived from a random
per-user secret kept in ENCRYPTION_KEY_FILE, salted with the machine id and
the user name, so a sealed value only unseals for the same user on the same
machine.
"""
import base64
import binascii
import getpass
import logging
import os
import secrets
import socket
import threading
from pathlib import Path
from typing import Iterable, Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from server_manager.config import ENCRYPTION_KEY_FILE
from server_manager.exceptions import VaultError

logger = logging.getLogger(__name__)

_KEY_INFO = b"source-server-manager credential vault"
_MACHINE_ID_FILES = ("/etc/machine-id", "/var/lib/dbus/machine-id")


def _machine_id() -> str:
    for path in _MACHINE_ID_FILES:
        try:
            value = Path(path).read_text().strip()
        except OSError:
            continue
        if value:
            return value
    return socket.gethostname()


def _user_name() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return str(os.getuid()) if hasattr(os, "getuid") else "unknown"


class CredentialVault:
    """Seals and unseals secrets with a user and machine bound key"""

    def __init__(self, key_file: Path):
        self.key_file = Path(key_file)
        self._fernet: Optional[Fernet] = None
        self._lock = threading.Lock()

    def _read_or_create_secret(self) -> bytes:
        if not self.key_file.exists():
            self.key_file.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.key_file, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, "wb") as f:
                f.write(base64.b64encode(secrets.token_bytes(32)))
            logger.info(f"Created vault key {self.key_file}")
        with self.key_file.open("rb") as f:
            secret = base64.b64decode(f.read().strip(), validate=True)
        if len(secret) < 32:
            raise ValueError("vault key is too short")
        return secret

    def _get_fernet(self) -> Fernet:
        with self._lock:
            if self._fernet is None:
                try:
                    secret = self._read_or_create_secret()
                except (OSError, ValueError) as e:
                    logger.error(f"Vault key {self.key_file} is unavailable: {e}")
                    raise VaultError(f"Vault key unavailable: {e}") from e
                salt = f"{_machine_id()}:{_user_name()}".encode()
                hkdf = HKDF(algorithm=hashes.SHA256(), length=32, salt=salt, info=_KEY_INFO)
                self._fernet = Fernet(base64.urlsafe_b64encode(hkdf.derive(secret)))
            return self._fernet

    def seal(self, plaintext: str) -> str:
        """Seal a secret. Empty input is returned unchanged. Raises VaultError."""
        if not plaintext:
            return plaintext
        return self._get_fernet().encrypt(plaintext.encode()).decode()

    def unseal(self, ciphertext: str) -> str:
        """Unseal a secret; returns an empty string if it cannot be unsealed."""
        if not ciphertext:
            return ""
        try:
            return self._get_fernet().decrypt(ciphertext.encode()).decode()
        except (VaultError, InvalidToken, UnicodeError) as e:
            logger.debug(f"Unseal failed: {type(e).__name__}")
            return ""

    def is_sealed(self, value: str) -> bool:
        """A value is sealed if it decodes as base64 and unseals with our key."""
        if not value:
            return False
        try:
            if not base64.urlsafe_b64decode(value.encode("ascii")):
                return False
        except (binascii.Error, ValueError, UnicodeEncodeError):
            return False
        try:
            self._get_fernet().decrypt(value.encode())
            return True
        except (VaultError, InvalidToken):
            return False

    def ensure_sealed(self, value: str) -> str:
        """Seal the value only if it is not sealed yet"""
        if not value:
            return value
        return value if self.is_sealed(value) else self.seal(value)

    def reveal(self, value: str) -> str:
        """Unseal the value only if it is sealed; legacy plaintext passes through"""
        if not value:
            return ""
        return self.unseal(value) if self.is_sealed(value) else value

    def migrate_endpoints(self, endpoints: Iterable) -> int:
        """
        Reseal legacy plaintext secrets in place.

        Returns the number of endpoints that were modified. A failure on one
        endpoint is logged and the others are still processed.
        """
        modified = 0
        for endpoint in endpoints:
            try:
                changed = False
                for field in endpoint.SECRET_FIELDS:
                    stored = getattr(endpoint, field)
                    if stored and not self.is_sealed(stored):
                        setattr(endpoint, field, self.seal(stored))
                        changed = True
                if changed:
                    modified += 1
                    logger.info(f"Sealed legacy plaintext secrets for {endpoint.key}")
            except Exception as e:
                logger.error(f"Secret migration failed for {getattr(endpoint, 'key', endpoint)}: {e}")
        return modified


# Process-wide vault, the key is loaded on first use
vault = CredentialVault(ENCRYPTION_KEY_FILE)
