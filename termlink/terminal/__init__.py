"""
Terminal-side consumers of session output.
"""

from .buffer import StyledBuffer, SelectionRange
from .bridge import QtSessionBridge

__all__ = ["StyledBuffer", "SelectionRange", "QtSessionBridge"]
