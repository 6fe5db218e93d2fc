"""
Session Module - One preparation session per character.

A session is built once when a character's spellbook opens, refreshed
explicitly on external changes, and ended when the spellbook closes.
"""

from .manager import (
    PERSISTENCE_FAILED,
    CommitResult,
    PreparationSession,
    SessionManager,
    SessionState,
)

__all__ = [
    "PERSISTENCE_FAILED",
    "CommitResult",
    "PreparationSession",
    "SessionManager",
    "SessionState",
]
