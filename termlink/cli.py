"""
termlink/cli.py

Command-line interface for termlink.

Usage:
    termlink connect router1 -u admin
    termlink connect -i ~/.ssh/id_ed25519 admin@example.com
    termlink decode capture.log
    termlink strip capture.log > plain.txt
    termlink secret set <session-id>
    termlink palettes
"""

import sys
import json
import getpass
import logging
import threading
from pathlib import Path
from typing import Optional

import click

from .config import SettingsManager
from .connection.profile import SessionConfig, AuthMethod
from .decoder.ansi import AnsiDecoder, strip_ansi
from .decoder.palette import PaletteRegistry
from .session.base import DataReceived, StateChanged, SessionState, StreamKind
from .session.process import ProcessSession
from .vault.store import SecretStore, MemorySecretStore, VaultSecretStore, DEFAULT_VAULT_FILE

logger = logging.getLogger(__name__)


def open_vault(vault_path: Optional[str], password: Optional[str] = None) -> VaultSecretStore:
    """Unlock the vault, prompting for the master password if needed."""
    if password is None:
        password = getpass.getpass("Vault password: ")
    store = VaultSecretStore(password, Path(vault_path) if vault_path else None)
    if store.is_initialized() and not store.verify():
        click.echo("Failed to unlock vault. Wrong password?", err=True)
        sys.exit(1)
    return store


def parse_target(target: str, username: Optional[str]) -> tuple[str, Optional[str]]:
    """Split user@host; an explicit --user wins."""
    if "@" in target:
        user, host = target.rsplit("@", 1)
        return host, username or user
    return target, username


def read_input(path: Optional[str]) -> bytes:
    if path and path != "-":
        return Path(path).read_bytes()
    return sys.stdin.buffer.read()


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
@click.option("--config", "config_path", default=None, type=click.Path(dir_okay=False),
              help="Settings file (default ~/.termlink/config.json)")
@click.pass_context
def cli(ctx, verbose, config_path):
    """termlink - ssh sessions over pipes with ANSI decoding."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["settings"] = SettingsManager(Path(config_path) if config_path else None)


@cli.command("connect")
@click.argument("target")
@click.option("-u", "--user", "username", default=None, help="Remote username")
@click.option("-p", "--port", default=None, type=int, help="Remote port")
@click.option("-i", "--identity", "key_path", default=None, help="Private key (selects key auth)")
@click.option("--ssh-config", "use_ssh_config", is_flag=True,
              help="Resolve TARGET as a Host alias in ~/.ssh/config")
@click.option("--session-id", default=None, help="Look the password up in the vault under this id")
@click.option("--vault", "vault_path", default=None, help="Vault file (default ~/.termlink/vault.json)")
@click.option("--cols", default=80, type=int)
@click.option("--rows", default=24, type=int)
@click.pass_context
def connect(ctx, target, username, port, key_path, use_ssh_config, session_id, vault_path, cols, rows):
    """Open an interactive session. Lines typed on stdin go to the remote shell."""
    settings = ctx.obj["settings"].settings

    geometry = {"terminal_cols": cols, "terminal_rows": rows}
    if session_id:
        geometry["session_id"] = session_id

    if use_ssh_config:
        try:
            config = SessionConfig.from_ssh_config(target, username=username, **geometry)
        except ValueError as e:
            click.echo(f"Cannot use ssh config entry '{target}': {e}", err=True)
            sys.exit(2)
    else:
        host, user = parse_target(target, username)
        if not user:
            click.echo("No username. Use user@host or --user.", err=True)
            sys.exit(2)
        try:
            if key_path:
                config = SessionConfig.key_auth(host, user, key_path, port or 22, **geometry)
            else:
                config = SessionConfig.password_auth(host, user, port or 22, **geometry)
        except ValueError as e:
            click.echo(f"Invalid target: {e}", err=True)
            sys.exit(2)

    store: SecretStore = MemorySecretStore()
    if config.auth_method == AuthMethod.PASSWORD:
        if session_id:
            store = open_vault(vault_path)
        else:
            store.set(config.session_id, getpass.getpass(f"{config.target}'s password: "))

    session = ProcessSession(secret_store=store, settings=settings)
    stdin = sys.stdin.buffer
    stdout = sys.stdout.buffer
    stderr = sys.stderr.buffer
    settled = threading.Event()

    def on_event(event):
        if isinstance(event, DataReceived):
            out = stdout if event.stream == StreamKind.STDOUT else stderr
            out.write(event.data)
            out.flush()
        elif isinstance(event, StateChanged):
            if event.new_state != SessionState.CONNECTING:
                settled.set()
            if event.new_state in (SessionState.FAILED, SessionState.DISCONNECTED) and event.message:
                click.echo(f"[{event.new_state.name.lower()}] {event.message}", err=True)

    def pump_stdin():
        # Input read before the child is up would be dropped
        settled.wait()
        if not session.is_connected:
            return
        for line in iter(stdin.readline, b""):
            session.send(line.replace(b"\n", b"\r"))
        session.close_input()

    session.set_event_handler(on_event)
    session.connect(config)
    threading.Thread(target=pump_stdin, name="termlink-stdin-pump", daemon=True).start()

    try:
        session.wait_closed()
    except KeyboardInterrupt:
        session.disconnect()
        session.wait_closed(settings.terminate_grace + 1)

    if session.state == SessionState.FAILED:
        sys.exit(1)
    sys.exit(session.exit_code if session.exit_code and session.exit_code > 0 else 0)


@cli.command("decode")
@click.argument("path", required=False)
@click.option("--palette", "palette_name", default=None, help="Palette name (see 'palettes')")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def decode(ctx, path, palette_name, output_json):
    """Decode captured terminal output into styled runs."""
    settings = ctx.obj["settings"].settings
    registry = PaletteRegistry()
    registry.load_palettes()

    name = palette_name or settings.palette_name
    palette = registry.get(name)
    if palette is None:
        click.echo(f"Palette '{name}' not found.", err=True)
        sys.exit(1)

    decoder = AnsiDecoder(palette)
    decoder.append(read_input(path))
    runs = decoder.runs

    if output_json:
        click.echo(json.dumps([
            {
                "text": run.text,
                "foreground": run.foreground.hex,
                "background": run.background.hex if run.background else None,
                "bold": run.bold,
                "underline": run.underline,
            }
            for run in runs
        ], indent=2))
    else:
        for run in runs:
            flags = ("B" if run.bold else "-") + ("U" if run.underline else "-")
            bg = run.background.hex if run.background else "default"
            click.echo(f"{run.foreground.hex} {bg:<8} {flags} {run.text!r}")
        click.echo(f"\n{len(runs)} run(s)")


@cli.command("strip")
@click.argument("path", required=False)
def strip(path):
    """Print captured terminal output with escape sequences removed."""
    text = read_input(path).decode("utf-8", errors="replace")
    click.echo(strip_ansi(text), nl=False)


@cli.group("secret")
def secret():
    """Manage stored session passwords."""


@secret.command("set")
@click.argument("session_id")
@click.option("--vault", "vault_path", default=None, help="Vault file")
def secret_set(session_id, vault_path):
    """Store the password for SESSION_ID."""
    store = open_vault(vault_path)
    value = getpass.getpass("Session password: ")
    if not value:
        click.echo("Empty password, nothing stored.", err=True)
        sys.exit(1)
    if not store.set(session_id, value):
        click.echo("Failed to store password.", err=True)
        sys.exit(1)
    click.echo(f"Stored password for {session_id}")


@secret.command("delete")
@click.argument("session_id")
@click.option("--vault", "vault_path", default=None, help="Vault file")
def secret_delete(session_id, vault_path):
    """Remove the password for SESSION_ID."""
    store = open_vault(vault_path)
    if not store.delete(session_id):
        click.echo("Failed to update vault.", err=True)
        sys.exit(1)
    click.echo(f"Deleted password for {session_id}")


@secret.command("list")
@click.option("--vault", "vault_path", default=None, help="Vault file")
def secret_list(vault_path):
    """List session ids with a stored password."""
    path = Path(vault_path) if vault_path else DEFAULT_VAULT_FILE
    if not path.exists():
        click.echo("Vault not initialized.")
        return
    store = open_vault(vault_path)
    ids = store.list_ids()
    for session_id in ids:
        click.echo(f"  {session_id}")
    click.echo(f"\n{len(ids)} secret(s)")


@cli.command("palettes")
def palettes():
    """List available color palettes."""
    registry = PaletteRegistry()
    registry.load_palettes()
    for name in registry.list_palettes():
        click.echo(f"  {name}")


def main():
    """Entry point for CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
