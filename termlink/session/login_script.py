"""
Short-lived expect script that answers the ssh login dialogue.

Used for password sessions when sshpass is not available. The script
holds the password, so it is created owner-only and removed after a
TTL or when the session ends, whichever comes first.
"""

from __future__ import annotations
import atexit
import os
import stat
import tempfile
import threading
import time
import logging
from pathlib import Path
from typing import Optional

from .command import build_ssh_command
from .errors import ScriptCreationFailed
from ..config import EngineSettings
from ..connection.profile import SessionConfig

logger = logging.getLogger(__name__)

SCRIPT_PREFIX = "termlink_login_"
SCRIPT_SUFFIX = ".exp"

# Exit statuses reserved by the script; anything else is ssh's own status
AUTH_REJECTED_EXIT = 201
LOGIN_TIMEOUT_EXIT = 202

_TCL_SPECIAL = {
    '\\': '\\\\',
    '"': '\\"',
    '$': '\\$',
    '[': '\\[',
    ']': '\\]',
}


def escape_tcl(value: str) -> str:
    """Escape a string for use inside a Tcl double-quoted word."""
    return ''.join(_TCL_SPECIAL.get(ch, ch) for ch in value)


def _quote_args(args: list[str]) -> str:
    return ' '.join(f'"{escape_tcl(a)}"' for a in args)


# Scripts not yet removed; swept at interpreter exit
_live_scripts: set = set()
_live_lock = threading.Lock()


def remove_live_scripts() -> None:
    """Remove every script that has not been removed yet."""
    with _live_lock:
        scripts = list(_live_scripts)
    for script in scripts:
        script.remove()


atexit.register(remove_live_scripts)


class TempCredentialScript:
    """A script file on disk with a deletion deadline."""

    def __init__(self, path: Path, ttl: Optional[float] = None):
        self.path = Path(path)
        self.created_at = time.time()
        self._lock = threading.Lock()
        self._removed = False
        self._timer: Optional[threading.Timer] = None

        with _live_lock:
            _live_scripts.add(self)

        if ttl is not None and ttl > 0:
            self._timer = threading.Timer(ttl, self.remove)
            self._timer.daemon = True
            self._timer.start()

    @property
    def removed(self) -> bool:
        return self._removed

    def remove(self) -> None:
        """Delete the file. Safe to call more than once."""
        with self._lock:
            if self._removed:
                return
            self._removed = True
            timer, self._timer = self._timer, None

        with _live_lock:
            _live_scripts.discard(self)

        if timer is not None:
            timer.cancel()

        try:
            self.path.unlink()
            logger.debug(f"Removed login script {self.path}")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove login script {self.path}: {e}")

    def __repr__(self) -> str:
        return f"TempCredentialScript(path={str(self.path)!r}, created_at={self.created_at})"


class CredentialScriptBuilder:
    """
    Writes expect scripts for password logins.

    Usage:
        builder = CredentialScriptBuilder(settings)
        script = builder.build(config, password)
        cmd = ['expect', '-f', str(script.path)]
        ...
        script.remove()
    """

    def __init__(self, settings: EngineSettings = None, temp_dir: str = None):
        self.settings = settings or EngineSettings()
        self.temp_dir = temp_dir

    def render(self, config: SessionConfig, secret: str, ssh_path: str = None) -> str:
        """Return the script text without touching disk."""
        s = self.settings
        spawn_args = _quote_args(build_ssh_command(config, s, ssh_path or s.ssh_binary))

        return f'''#!/usr/bin/expect -f
log_user 1
set timeout {s.login_timeout}
set env(TERM) "{escape_tcl(s.term_type)}"
set env(LANG) "{escape_tcl(s.locale)}"
set env(LC_ALL) "{escape_tcl(s.locale)}"
set password "{escape_tcl(secret)}"
set password_sent 0

spawn -noecho {spawn_args}
catch {{exec stty rows {config.terminal_rows} columns {config.terminal_cols} < $spawn_out(slave,name)}}

# One timer for the whole login, not per prompt
expect {{
    -nocase -re {{are you sure.*\\(yes/no}} {{
        send "yes\\r"
        exp_continue -continue_timer
    }}
    -nocase "permission denied" {{
        exit {AUTH_REJECTED_EXIT}
    }}
    -nocase -re "password:" {{
        send -- "$password\\r"
        set password_sent 1
        exp_continue -continue_timer
    }}
    -re {{[$#%>] ?$}} {{
    }}
    timeout {{
        # Unrecognized prompt after a password: hand over anyway
        if {{!$password_sent}} {{
            exit {LOGIN_TIMEOUT_EXIT}
        }}
    }}
    eof {{
        catch wait result
        exit [lindex $result 3]
    }}
}}

set timeout -1
interact
catch wait result
exit [lindex $result 3]
'''

    def build(self, config: SessionConfig, secret: str, ssh_path: str = None) -> TempCredentialScript:
        """
        Write the script and schedule its removal.

        Raises:
            ScriptCreationFailed: the file could not be written
        """
        text = self.render(config, secret, ssh_path)

        try:
            fd, path = tempfile.mkstemp(
                prefix=SCRIPT_PREFIX,
                suffix=SCRIPT_SUFFIX,
                dir=self.temp_dir,
            )
        except OSError as e:
            raise ScriptCreationFailed(f"Cannot create login script: {e}") from e

        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                os.chmod(path, stat.S_IRWXU)
                f.write(text)
        except OSError as e:
            try:
                os.unlink(path)
            except OSError:
                pass
            raise ScriptCreationFailed(f"Cannot write login script: {e}") from e

        logger.debug(f"Created login script {path}")
        return TempCredentialScript(Path(path), ttl=self.settings.script_ttl)
