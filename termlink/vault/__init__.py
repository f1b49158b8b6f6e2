"""
Password storage for password-authenticated sessions.

- SecretStore: the interface sessions depend on
- MemorySecretStore: in-process, for tests and one-shot use
- VaultSecretStore: Fernet-encrypted JSON file unlocked by a master password
"""

from .store import (
    SecretStore,
    MemorySecretStore,
    VaultSecretStore,
    DEFAULT_VAULT_FILE,
)

__all__ = [
    "SecretStore",
    "MemorySecretStore",
    "VaultSecretStore",
    "DEFAULT_VAULT_FILE",
]
