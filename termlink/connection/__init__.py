"""
Connection settings.
"""

from .profile import SessionConfig, AuthMethod, DEFAULT_SSH_CONFIG

__all__ = [
    "SessionConfig",
    "AuthMethod",
    "DEFAULT_SSH_CONFIG",
]
