"""
Argument vectors and environment for the session child process.
"""

from __future__ import annotations
import os
import shutil
import logging
from pathlib import Path
from typing import Optional

from ..config import EngineSettings
from ..connection.profile import SessionConfig, AuthMethod

logger = logging.getLogger(__name__)

IS_WINDOWS = os.name == 'nt'


def find_binary(name: str) -> Optional[str]:
    """Find an executable in PATH (absolute paths are checked directly)."""
    if os.path.isabs(name):
        return name if os.access(name, os.X_OK) else None

    names = [f'{name}.exe', name] if IS_WINDOWS else [name]
    for candidate in names:
        path = shutil.which(candidate)
        if path:
            logger.debug(f"Found {name}: {path}")
            return path

    # Check common Windows locations for OpenSSH
    if IS_WINDOWS and name == 'ssh':
        common_paths = [
            Path(os.environ.get('SystemRoot', 'C:\\Windows')) / 'System32' / 'OpenSSH' / 'ssh.exe',
            Path(os.environ.get('ProgramFiles', 'C:\\Program Files')) / 'OpenSSH' / 'ssh.exe',
            Path(os.environ.get('ProgramFiles', 'C:\\Program Files')) / 'Git' / 'usr' / 'bin' / 'ssh.exe',
        ]
        for p in common_paths:
            if p.exists():
                logger.debug(f"Found ssh: {p}")
                return str(p)

    return None


def ssh_options(settings: EngineSettings) -> list[str]:
    """Host checking and transport keepalive options shared by every ssh invocation."""
    opts = [
        '-o', 'StrictHostKeyChecking=no',
        '-o', f'ServerAliveInterval={settings.server_alive_interval}',
        '-o', f'ServerAliveCountMax={settings.server_alive_count_max}',
        '-o', 'TCPKeepAlive=yes',
    ]
    if settings.known_hosts_file:
        opts.extend(['-o', f'UserKnownHostsFile={settings.known_hosts_file}'])
    return opts


def build_ssh_command(
    config: SessionConfig,
    settings: EngineSettings,
    ssh_path: str = 'ssh',
) -> list[str]:
    """Build the ssh command line for a session."""
    # Force remote PTY allocation; our stdin is a pipe
    cmd = [ssh_path, '-tt']

    cmd.extend(ssh_options(settings))

    if config.auth_method == AuthMethod.PUBLIC_KEY and config.key_path:
        cmd.extend(['-i', config.expanded_key_path])

    # Port if non-standard
    if config.port != 22:
        cmd.extend(['-p', str(config.port)])

    cmd.append(config.target)
    return cmd


def build_sshpass_command(
    config: SessionConfig,
    settings: EngineSettings,
    sshpass_path: str,
    ssh_path: str = 'ssh',
) -> list[str]:
    """
    ssh wrapped in sshpass.

    Uses -e so the password travels in the SSHPASS environment variable
    and never appears in the process table.
    """
    return [sshpass_path, '-e'] + build_ssh_command(config, settings, ssh_path)


def build_expect_command(expect_path: str, script_path: str) -> list[str]:
    return [expect_path, '-f', script_path]


def build_environment(
    config: SessionConfig,
    settings: EngineSettings,
    cols: Optional[int] = None,
    rows: Optional[int] = None,
    extra: Optional[dict] = None,
) -> dict:
    """Inherited environment plus terminal type, locale and geometry hints."""
    env = os.environ.copy()
    env['TERM'] = settings.term_type
    env['LANG'] = settings.locale
    env['LC_ALL'] = settings.locale
    env['COLUMNS'] = str(cols or config.terminal_cols)
    env['LINES'] = str(rows or config.terminal_rows)
    if extra:
        env.update(extra)
    return env


def describe_command(cmd: list[str]) -> str:
    """Printable command line for logs."""
    return ' '.join(cmd)
