"""Tests for termlink.session.login_script."""

from __future__ import annotations

import os
import re
import stat
import subprocess
import sys
import time
from pathlib import Path

import pytest

from termlink.config import EngineSettings
from termlink.connection.profile import SessionConfig
from termlink.session.errors import ScriptCreationFailed
from termlink.session.login_script import (
    AUTH_REJECTED_EXIT,
    LOGIN_TIMEOUT_EXIT,
    CredentialScriptBuilder,
    TempCredentialScript,
    escape_tcl,
    remove_live_scripts,
)

REPO_ROOT = Path(__file__).resolve().parent.parent

HOST_KEY_PROMPT = (
    "The authenticity of host 'example.com (10.0.0.1)' can't be established.\n"
    "ED25519 key fingerprint is SHA256:abc123.\n"
    "Are you sure you want to continue connecting (yes/no/[fingerprint])? "
)


def wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


class TestEscapeTcl:
    def test_special_characters(self) -> None:
        assert escape_tcl('a\\b"c$d[e]f') == 'a\\\\b\\"c\\$d\\[e\\]f'

    def test_plain_untouched(self) -> None:
        assert escape_tcl("hunter2 ok!") == "hunter2 ok!"

    def test_command_substitution_neutralized(self) -> None:
        escaped = escape_tcl("[exec rm -rf /]")
        assert escaped == "\\[exec rm -rf /\\]"


class TestRender:
    def setup_method(self) -> None:
        self.settings = EngineSettings(login_timeout=12)
        self.builder = CredentialScriptBuilder(self.settings)
        self.config = SessionConfig.password_auth(
            "example.com", "admin", port=2222, terminal_cols=120, terminal_rows=40
        )

    def test_secret_is_escaped(self) -> None:
        text = self.builder.render(self.config, 'p"$[x]')
        assert 'set password "p\\"\\$\\[x\\]"' in text

    def test_spawns_ssh(self) -> None:
        text = self.builder.render(self.config, "pw", "/usr/bin/ssh")
        assert 'spawn -noecho "/usr/bin/ssh" "-tt"' in text
        assert '"-p" "2222"' in text
        assert '"admin@example.com"' in text

    def test_login_dialogue(self) -> None:
        text = self.builder.render(self.config, "pw")
        assert "set timeout 12" in text
        assert 'send "yes\\r"' in text
        assert 'send -- "$password\\r"' in text
        assert f"exit {AUTH_REJECTED_EXIT}" in text
        assert f"exit {LOGIN_TIMEOUT_EXIT}" in text
        assert "interact" in text

    def test_environment_and_geometry(self) -> None:
        text = self.builder.render(self.config, "pw")
        assert 'set env(TERM) "xterm-256color"' in text
        assert 'set env(LC_ALL) "en_US.UTF-8"' in text
        assert "stty rows 40 columns 120" in text

    def test_rejection_checked_before_password(self) -> None:
        text = self.builder.render(self.config, "pw")
        assert text.index("permission denied") < text.index('-re "password:"')

    def test_host_key_question_answered_once(self) -> None:
        text = self.builder.render(self.config, "pw")
        pattern = re.search(r"-nocase -re \{(.*?)\} \{", text).group(1)
        host_key = re.compile(pattern, re.IGNORECASE | re.DOTALL)
        assert len(host_key.findall(HOST_KEY_PROMPT)) == 1
        assert not host_key.search("ED25519 key fingerprint is SHA256:abc123.\n")
        assert not host_key.search("WARNING: REMOTE HOST IDENTIFICATION HAS CHANGED!\n"
                                   "The fingerprint for the ED25519 key sent by the remote host is\n")

    def test_single_timer_for_whole_login(self) -> None:
        text = self.builder.render(self.config, "pw")
        assert text.count("exp_continue -continue_timer") == 2
        assert re.search(r"exp_continue\s*\n", text) is None

    def test_timeout_after_password_hands_over(self) -> None:
        text = self.builder.render(self.config, "pw")
        timeout_branch = text[text.index("    timeout {"):text.index("    eof {")]
        assert "if {!$password_sent}" in timeout_branch
        assert f"exit {LOGIN_TIMEOUT_EXIT}" in timeout_branch
        password_branch = text[text.index('-re "password:"'):text.index("    timeout {")]
        assert "set password_sent 1" in password_branch


class TestBuild:
    def test_writes_owner_only_file(self, tmp_path: Path) -> None:
        builder = CredentialScriptBuilder(EngineSettings(), temp_dir=str(tmp_path))
        script = builder.build(SessionConfig.password_auth("h", "u"), "secret")
        try:
            assert script.path.exists()
            assert script.path.parent == tmp_path
            assert script.path.suffix == ".exp"
            assert 'set password "secret"' in script.path.read_text()
            if sys.platform != "win32":
                mode = stat.S_IMODE(os.stat(script.path).st_mode)
                assert mode == 0o700
        finally:
            script.remove()

    def test_removed_after_ttl(self, tmp_path: Path) -> None:
        builder = CredentialScriptBuilder(EngineSettings(script_ttl=0.1), temp_dir=str(tmp_path))
        script = builder.build(SessionConfig.password_auth("h", "u"), "secret")
        assert wait_for(lambda: not script.path.exists())
        assert script.removed

    def test_unwritable_directory(self, tmp_path: Path) -> None:
        builder = CredentialScriptBuilder(EngineSettings(), temp_dir=str(tmp_path / "missing"))
        with pytest.raises(ScriptCreationFailed):
            builder.build(SessionConfig.password_auth("h", "u"), "secret")


class TestTempCredentialScript:
    def test_remove_is_idempotent(self, tmp_path: Path) -> None:
        path = tmp_path / "s.exp"
        path.write_text("x")
        script = TempCredentialScript(path)
        script.remove()
        script.remove()
        assert not path.exists()
        assert script.removed

    def test_remove_missing_file_is_quiet(self, tmp_path: Path) -> None:
        script = TempCredentialScript(tmp_path / "gone.exp")
        script.remove()
        assert script.removed

    def test_explicit_remove_cancels_timer(self, tmp_path: Path) -> None:
        path = tmp_path / "s.exp"
        path.write_text("x")
        script = TempCredentialScript(path, ttl=60)
        script.remove()
        assert not path.exists()
        assert script.created_at <= time.time()

    def test_remove_live_scripts(self, tmp_path: Path) -> None:
        paths = [tmp_path / "a.exp", tmp_path / "b.exp"]
        for path in paths:
            path.write_text("x")
        scripts = [TempCredentialScript(path, ttl=60) for path in paths]
        scripts[0].remove()
        remove_live_scripts()
        assert all(script.removed for script in scripts)
        assert list(tmp_path.iterdir()) == []

    def test_removed_when_interpreter_exits_before_ttl(self, tmp_path: Path) -> None:
        code = (
            "import sys\n"
            "from termlink.config import EngineSettings\n"
            "from termlink.connection.profile import SessionConfig\n"
            "from termlink.session.login_script import CredentialScriptBuilder\n"
            "builder = CredentialScriptBuilder(EngineSettings(script_ttl=60), temp_dir=sys.argv[1])\n"
            "script = builder.build(SessionConfig.password_auth('h', 'u'), 'secret')\n"
            "print(script.path)\n"
        )
        env = dict(os.environ)
        env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(REPO_ROOT), env.get("PYTHONPATH")]))
        result = subprocess.run(
            [sys.executable, "-c", code, str(tmp_path)],
            capture_output=True, text=True, env=env, timeout=30,
        )
        assert result.returncode == 0, result.stderr
        assert result.stdout.strip().endswith(".exp")
        assert list(tmp_path.iterdir()) == []
