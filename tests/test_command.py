"""Tests for termlink.session.command."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

from termlink.config import EngineSettings
from termlink.connection.profile import SessionConfig
from termlink.session.command import (
    build_environment,
    build_expect_command,
    build_ssh_command,
    build_sshpass_command,
    find_binary,
    ssh_options,
)


def option_values(cmd: list[str]) -> list[str]:
    return [cmd[i + 1] for i, arg in enumerate(cmd) if arg == "-o"]


class TestKeyAuthCommand:
    def test_default_port_no_key(self) -> None:
        config = SessionConfig.key_auth("example.com", "admin")
        cmd = build_ssh_command(config, EngineSettings(), "/usr/bin/ssh")

        assert cmd[0] == "/usr/bin/ssh"
        assert "-tt" in cmd
        assert "StrictHostKeyChecking=no" in option_values(cmd)
        assert cmd[-1] == "admin@example.com"
        assert "-p" not in cmd
        assert "-i" not in cmd

    def test_port_and_key(self) -> None:
        config = SessionConfig.key_auth("example.com", "admin", "/keys/id_rsa", port=2222)
        cmd = build_ssh_command(config, EngineSettings())

        assert cmd[cmd.index("-p") + 1] == "2222"
        assert cmd[cmd.index("-i") + 1] == "/keys/id_rsa"
        assert cmd[-1] == "admin@example.com"

    def test_key_ignored_for_password_auth(self) -> None:
        config = SessionConfig(host="h", username="u", key_path="/keys/id")
        assert "-i" not in build_ssh_command(config, EngineSettings())

    def test_transport_keepalive_options(self) -> None:
        settings = EngineSettings(server_alive_interval=15, server_alive_count_max=3)
        opts = option_values(ssh_options(settings))
        assert "ServerAliveInterval=15" in opts
        assert "ServerAliveCountMax=3" in opts
        assert "TCPKeepAlive=yes" in opts
        assert not any(o.startswith("UserKnownHostsFile") for o in opts)

    def test_known_hosts_override(self) -> None:
        opts = option_values(ssh_options(EngineSettings(known_hosts_file="/dev/null")))
        assert "UserKnownHostsFile=/dev/null" in opts


class TestPasswordCommands:
    def test_sshpass_reads_environment(self) -> None:
        config = SessionConfig.password_auth("example.com", "admin")
        cmd = build_sshpass_command(config, EngineSettings(), "/usr/bin/sshpass", "/usr/bin/ssh")
        assert cmd[:3] == ["/usr/bin/sshpass", "-e", "/usr/bin/ssh"]
        assert cmd[-1] == "admin@example.com"

    def test_expect_command(self) -> None:
        assert build_expect_command("/usr/bin/expect", "/tmp/x.exp") == [
            "/usr/bin/expect", "-f", "/tmp/x.exp"
        ]


class TestEnvironment:
    def test_terminal_and_locale(self) -> None:
        config = SessionConfig.password_auth("h", "u", terminal_cols=100, terminal_rows=40)
        env = build_environment(config, EngineSettings())
        assert env["TERM"] == "xterm-256color"
        assert env["LANG"] == "en_US.UTF-8"
        assert env["LC_ALL"] == "en_US.UTF-8"
        assert env["COLUMNS"] == "100"
        assert env["LINES"] == "40"

    def test_geometry_override_and_extra(self) -> None:
        config = SessionConfig.password_auth("h", "u")
        env = build_environment(config, EngineSettings(), 132, 50, {"SSHPASS": "pw"})
        assert (env["COLUMNS"], env["LINES"]) == ("132", "50")
        assert env["SSHPASS"] == "pw"

    def test_inherits_parent_environment(self, monkeypatch) -> None:
        monkeypatch.setenv("TERMLINK_TEST_VAR", "1")
        env = build_environment(SessionConfig.password_auth("h", "u"), EngineSettings())
        assert env["TERMLINK_TEST_VAR"] == "1"


class TestFindBinary:
    def test_absolute_executable(self) -> None:
        assert find_binary(sys.executable) == sys.executable

    def test_absolute_missing(self, tmp_path: Path) -> None:
        assert find_binary(str(tmp_path / "nope")) is None

    def test_unknown_name(self) -> None:
        assert find_binary("termlink-no-such-binary") is None

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX PATH lookup")
    def test_path_lookup(self, tmp_path: Path, monkeypatch) -> None:
        tool = tmp_path / "faketool"
        tool.write_text("#!/bin/sh\n")
        tool.chmod(0o755)
        monkeypatch.setenv("PATH", str(tmp_path))
        assert find_binary("faketool") == str(tool)
