"""
termlink - ssh terminal sessions over pipes, with ANSI decoding.

- Connection snapshots (SessionConfig), optionally read from ~/.ssh/config
- ProcessSession: system ssh child process, sshpass or expect for passwords
- AnsiDecoder: chunk-safe SGR decoder producing styled runs
- Secret stores: in-memory or encrypted vault file
- StyledBuffer / QtSessionBridge for front ends
"""

__version__ = "0.1.0"

from .config import EngineSettings, SettingsManager
from .connection.profile import SessionConfig, AuthMethod
from .session.base import Session, SessionState, DataReceived, StateChanged
from .session.process import ProcessSession
from .session.login_script import CredentialScriptBuilder
from .decoder.ansi import AnsiDecoder, StyledRun, SGRAttributeSet, strip_ansi
from .decoder.palette import Palette, PaletteRegistry
from .vault.store import SecretStore, MemorySecretStore, VaultSecretStore
from .terminal.buffer import StyledBuffer, SelectionRange

__all__ = [
    # Settings
    "EngineSettings",
    "SettingsManager",
    # Connection
    "SessionConfig",
    "AuthMethod",
    # Sessions
    "Session",
    "SessionState",
    "DataReceived",
    "StateChanged",
    "ProcessSession",
    "CredentialScriptBuilder",
    # Decoding
    "AnsiDecoder",
    "StyledRun",
    "SGRAttributeSet",
    "strip_ansi",
    "Palette",
    "PaletteRegistry",
    # Secrets
    "SecretStore",
    "MemorySecretStore",
    "VaultSecretStore",
    # Terminal
    "StyledBuffer",
    "SelectionRange",
]
