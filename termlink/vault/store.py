"""
Secret stores keyed by session id.

A session only needs get(); set/delete exist for the code that manages
saved connections. Failures are reported as absence (None / False),
never as exceptions.
"""

from __future__ import annotations
import base64
import json
import logging
import os
import stat
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

logger = logging.getLogger(__name__)

DEFAULT_VAULT_FILE = Path.home() / ".termlink" / "vault.json"

VAULT_VERSION = 1
KDF_ITERATIONS = 480_000
SALT_BYTES = 16

# Encrypted with the derived key to verify the master password
_CHECK_PLAINTEXT = b"termlink-vault"


class SecretStore(ABC):
    """Password storage interface."""

    @abstractmethod
    def get(self, session_id: str) -> Optional[str]:
        """Return the secret, or None if absent or unreadable."""
        pass

    @abstractmethod
    def set(self, session_id: str, secret: str) -> bool:
        """Store a secret. Returns False if it could not be stored."""
        pass

    @abstractmethod
    def delete(self, session_id: str) -> bool:
        """Remove a secret. Deleting a missing id succeeds."""
        pass


class MemorySecretStore(SecretStore):
    """Process-local store. Nothing touches disk."""

    def __init__(self, secrets: Optional[dict[str, str]] = None):
        self._secrets: dict[str, str] = dict(secrets or {})
        self._lock = threading.Lock()

    def get(self, session_id: str) -> Optional[str]:
        with self._lock:
            return self._secrets.get(session_id)

    def set(self, session_id: str, secret: str) -> bool:
        if not secret:
            return self.delete(session_id)
        with self._lock:
            self._secrets[session_id] = secret
        return True

    def delete(self, session_id: str) -> bool:
        with self._lock:
            self._secrets.pop(session_id, None)
        return True


class VaultSecretStore(SecretStore):
    """
    Encrypted JSON file store.

    Each secret is a Fernet token; the key is derived from a master
    password with PBKDF2-HMAC-SHA256 and a random per-vault salt.
    A wrong master password makes every get() return None.

    File layout:
        {"version": 1, "salt": "...", "check": "...", "secrets": {id: token}}
    """

    def __init__(self, master_password: str, path: Path = None):
        self._path = Path(path or DEFAULT_VAULT_FILE)
        self._lock = threading.Lock()
        self._data = self._load()

        if not self._data.get("salt"):
            self._data = {
                "version": VAULT_VERSION,
                "salt": base64.b64encode(os.urandom(SALT_BYTES)).decode(),
                "check": "",
                "secrets": {},
            }

        self._fernet = Fernet(self._derive_key(master_password, self._data["salt"]))
        if not self._data["check"]:
            self._data["check"] = self._fernet.encrypt(_CHECK_PLAINTEXT).decode()

    @property
    def path(self) -> Path:
        return self._path

    def is_initialized(self) -> bool:
        """True once the vault file exists on disk."""
        return self._path.exists()

    def verify(self) -> bool:
        """Check the master password against the stored check token."""
        try:
            return self._fernet.decrypt(self._data["check"].encode()) == _CHECK_PLAINTEXT
        except InvalidToken:
            return False

    def list_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._data["secrets"].keys())

    def get(self, session_id: str) -> Optional[str]:
        with self._lock:
            token = self._data["secrets"].get(session_id)
        if token is None:
            return None
        try:
            return self._fernet.decrypt(token.encode()).decode("utf-8")
        except (InvalidToken, UnicodeDecodeError):
            logger.warning(f"Could not decrypt secret for {session_id}")
            return None

    def set(self, session_id: str, secret: str) -> bool:
        if not secret:
            return self.delete(session_id)
        if not self.verify():
            logger.error("Refusing to store secret: wrong master password")
            return False
        token = self._fernet.encrypt(secret.encode("utf-8")).decode()
        with self._lock:
            self._data["secrets"][session_id] = token
            return self._save()

    def delete(self, session_id: str) -> bool:
        with self._lock:
            if self._data["secrets"].pop(session_id, None) is None:
                return True
            return self._save()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    @staticmethod
    def _derive_key(master_password: str, salt_b64: str) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=base64.b64decode(salt_b64),
            iterations=KDF_ITERATIONS,
        )
        return base64.urlsafe_b64encode(kdf.derive(master_password.encode("utf-8")))

    def _load(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to read vault {self._path}: {e}")
            return {}
        if not isinstance(data, dict) or data.get("version") != VAULT_VERSION:
            logger.warning(f"Unsupported vault format in {self._path}")
            return {}
        data.setdefault("secrets", {})
        data.setdefault("check", "")
        return data

    def _save(self) -> bool:
        """Write atomically with owner-only permissions. Caller holds the lock."""
        tmp_path = self._path.with_suffix(".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, stat.S_IRUSR | stat.S_IWUSR)
            with os.fdopen(fd, "w") as f:
                json.dump(self._data, f, indent=2)
            os.replace(tmp_path, self._path)
            return True
        except OSError as e:
            logger.error(f"Failed to save vault: {e}")
            return False
