"""Tests for termlink.connection.profile."""

from __future__ import annotations

import dataclasses
from pathlib import Path

import pytest

from termlink.connection.profile import AuthMethod, SessionConfig


class TestSessionConfig:
    def test_defaults(self) -> None:
        config = SessionConfig(host="example.com", username="admin")
        assert config.port == 22
        assert config.auth_method == AuthMethod.PASSWORD
        assert config.key_path is None
        assert (config.terminal_cols, config.terminal_rows) == (80, 24)
        assert config.session_id

    def test_immutable(self) -> None:
        config = SessionConfig(host="example.com", username="admin")
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.host = "other"  # type: ignore[misc]

    @pytest.mark.parametrize("kwargs", [
        {"host": "", "username": "admin"},
        {"host": "h", "username": ""},
        {"host": "h", "username": "u", "port": 0},
        {"host": "h", "username": "u", "port": 70000},
    ])
    def test_validation(self, kwargs: dict) -> None:
        with pytest.raises(ValueError):
            SessionConfig(**kwargs)

    def test_key_auth_factory(self) -> None:
        config = SessionConfig.key_auth("example.com", "admin", "~/.ssh/id_ed25519", port=2222)
        assert config.auth_method == AuthMethod.PUBLIC_KEY
        assert config.expanded_key_path == str(Path.home() / ".ssh" / "id_ed25519")
        assert config.ssh_command == "ssh admin@example.com -p 2222 -i ~/.ssh/id_ed25519"

    def test_target_and_description(self) -> None:
        config = SessionConfig.password_auth("example.com", "admin")
        assert config.target == "admin@example.com"
        assert config.display_description == "admin@example.com:22"

    def test_with_geometry_keeps_identity(self) -> None:
        config = SessionConfig.password_auth("example.com", "admin")
        resized = config.with_geometry(132, 50)
        assert (resized.terminal_cols, resized.terminal_rows) == (132, 50)
        assert resized.session_id == config.session_id
        assert (config.terminal_cols, config.terminal_rows) == (80, 24)

    def test_dict_round_trip(self) -> None:
        config = SessionConfig.key_auth("example.com", "admin", "/keys/id", name="lab")
        data = config.to_dict()
        assert data["auth_method"] == "publickey"
        assert SessionConfig.from_dict({**data, "extra": 1}) == config


class TestFromSSHConfig:
    def test_host_entry(self, tmp_path: Path) -> None:
        path = tmp_path / "config"
        path.write_text(
            "Host lab\n"
            "    HostName 10.0.0.5\n"
            "    User netops\n"
            "    Port 2200\n"
            "    IdentityFile /keys/lab_ed25519\n"
        )
        config = SessionConfig.from_ssh_config("lab", config_path=path)
        assert config.host == "10.0.0.5"
        assert config.username == "netops"
        assert config.port == 2200
        assert config.auth_method == AuthMethod.PUBLIC_KEY
        assert config.key_path == "/keys/lab_ed25519"
        assert config.name == "lab"

    def test_entry_without_identity_uses_password(self, tmp_path: Path) -> None:
        path = tmp_path / "config"
        path.write_text("Host router\n    HostName 192.0.2.1\n")
        config = SessionConfig.from_ssh_config("router", config_path=path, username="admin")
        assert config.host == "192.0.2.1"
        assert config.username == "admin"
        assert config.port == 22
        assert config.auth_method == AuthMethod.PASSWORD

    def test_missing_file_uses_alias(self, tmp_path: Path) -> None:
        config = SessionConfig.from_ssh_config(
            "plainhost", config_path=tmp_path / "none", username="admin"
        )
        assert config.host == "plainhost"
        assert config.username == "admin"
