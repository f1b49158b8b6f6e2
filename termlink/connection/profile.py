"""
Connection snapshot handed to a session at connect time.
"""

from __future__ import annotations
import logging
import os
import uuid
from dataclasses import dataclass, field, asdict, replace
from enum import Enum
from pathlib import Path
from typing import Optional

import paramiko

logger = logging.getLogger(__name__)

DEFAULT_SSH_CONFIG = Path.home() / ".ssh" / "config"


class AuthMethod(Enum):
    """How the remote login is authenticated."""
    PASSWORD = "password"
    PUBLIC_KEY = "publickey"


@dataclass(frozen=True)
class SessionConfig:
    """
    Immutable connection settings.

    ``session_id`` is the key used to look the password up in a
    SecretStore; it is stable across reconnects of the same entry.
    """
    host: str
    username: str
    port: int = 22
    auth_method: AuthMethod = AuthMethod.PASSWORD
    key_path: Optional[str] = None
    terminal_cols: int = 80
    terminal_rows: int = 24
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""

    def __post_init__(self):
        if not self.host:
            raise ValueError("host is required")
        if not self.username:
            raise ValueError("username is required")
        if not 0 < self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}")

    @classmethod
    def password_auth(cls, host: str, username: str, port: int = 22, **kwargs) -> SessionConfig:
        return cls(host=host, username=username, port=port,
                   auth_method=AuthMethod.PASSWORD, **kwargs)

    @classmethod
    def key_auth(cls, host: str, username: str, key_path: Optional[str] = None,
                 port: int = 22, **kwargs) -> SessionConfig:
        return cls(host=host, username=username, port=port,
                   auth_method=AuthMethod.PUBLIC_KEY, key_path=key_path, **kwargs)

    @property
    def target(self) -> str:
        return f"{self.username}@{self.host}"

    @property
    def display_description(self) -> str:
        return f"{self.username}@{self.host}:{self.port}"

    @property
    def expanded_key_path(self) -> Optional[str]:
        if not self.key_path:
            return None
        return os.path.expanduser(self.key_path)

    @property
    def ssh_command(self) -> str:
        """Equivalent one-line ssh command, for display."""
        command = f"ssh {self.target}"
        if self.port != 22:
            command += f" -p {self.port}"
        if self.auth_method == AuthMethod.PUBLIC_KEY and self.key_path:
            command += f" -i {self.key_path}"
        return command

    def with_geometry(self, cols: int, rows: int) -> SessionConfig:
        return replace(self, terminal_cols=cols, terminal_rows=rows)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["auth_method"] = self.auth_method.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> SessionConfig:
        """Deserialize from dict, ignoring unknown keys."""
        valid_fields = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in valid_fields}
        if "auth_method" in filtered:
            filtered["auth_method"] = AuthMethod(filtered["auth_method"])
        return cls(**filtered)

    @classmethod
    def from_ssh_config(
        cls,
        alias: str,
        config_path: Path = None,
        username: Optional[str] = None,
        **kwargs,
    ) -> SessionConfig:
        """
        Build a config from a Host entry in an OpenSSH client config.

        HostName, Port, User and the first IdentityFile are honored.
        A Host with an IdentityFile selects key auth, otherwise password.
        Missing config file means the alias is used as the hostname.
        """
        path = Path(config_path or DEFAULT_SSH_CONFIG)
        entry: dict = {}
        if path.exists():
            ssh_config = paramiko.SSHConfig.from_path(str(path))
            entry = ssh_config.lookup(alias)
        else:
            logger.debug(f"No ssh config at {path}")

        user = username or entry.get("user") or os.environ.get("USER", "")
        identity_files = entry.get("identityfile") or []
        key_path = identity_files[0] if identity_files else None

        kwargs.setdefault("name", alias)
        return cls(
            host=entry.get("hostname", alias),
            username=user,
            port=int(entry.get("port", 22)),
            auth_method=AuthMethod.PUBLIC_KEY if key_path else AuthMethod.PASSWORD,
            key_path=key_path,
            **kwargs,
        )
