"""
Session management - handles connection lifecycle and I/O.

ProcessSession runs the system ssh client as a child process:

- Public key logins spawn ssh directly
- Password logins go through sshpass when installed, otherwise through
  a short-lived expect script written by CredentialScriptBuilder

Events (DataReceived, StateChanged) are delivered from worker threads to
the handler given to set_event_handler().
"""

from .base import (
    Session,
    SessionState,
    SessionEvent,
    StreamKind,
    DataReceived,
    StateChanged,
    EventHandler,
    combine_handlers,
)
from .errors import (
    SessionError,
    SpawnFailed,
    AuthMissing,
    RemoteAuthRejected,
    LoginTimeout,
    UnexpectedExit,
    ScriptCreationFailed,
)
from .keepalive import KeepaliveTask
from .login_script import (
    CredentialScriptBuilder,
    TempCredentialScript,
    escape_tcl,
    AUTH_REJECTED_EXIT,
    LOGIN_TIMEOUT_EXIT,
)
from .process import ProcessSession, LaunchMode

__all__ = [
    # Base classes
    "Session",
    "SessionState",
    "SessionEvent",
    "StreamKind",
    "DataReceived",
    "StateChanged",
    "EventHandler",
    "combine_handlers",
    # Errors
    "SessionError",
    "SpawnFailed",
    "AuthMissing",
    "RemoteAuthRejected",
    "LoginTimeout",
    "UnexpectedExit",
    "ScriptCreationFailed",
    # Implementation
    "ProcessSession",
    "LaunchMode",
    "KeepaliveTask",
    "CredentialScriptBuilder",
    "TempCredentialScript",
    "escape_tcl",
    "AUTH_REJECTED_EXIT",
    "LOGIN_TIMEOUT_EXIT",
]
