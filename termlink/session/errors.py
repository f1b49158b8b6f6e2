"""
Session failure types.

These are not raised out of the session API. A session converts every
failure into one of these and attaches it to the StateChanged event that
ends the attempt (FAILED, or DISCONNECTED with a reason).
"""

from __future__ import annotations
from typing import Optional


class SessionError(Exception):
    """Base class for session failures."""

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__ or self.__class__.__name__)

    @property
    def message(self) -> str:
        return str(self)


class SpawnFailed(SessionError):
    """Could not start the child process."""

    def __init__(self, message: str = "", os_error: Optional[OSError] = None):
        super().__init__(message)
        self.os_error = os_error


class AuthMissing(SessionError):
    """Password authentication selected but no password is available."""


class RemoteAuthRejected(SessionError):
    """The remote host rejected the credentials."""


class LoginTimeout(SessionError):
    """No login prompt was matched within the wait budget."""


class UnexpectedExit(SessionError):
    """The child exited with a non-zero status."""

    def __init__(self, code: Optional[int], message: str = ""):
        super().__init__(message or f"Process exited with code {code}")
        self.code = code


class ScriptCreationFailed(SessionError):
    """The login automation script could not be written."""
