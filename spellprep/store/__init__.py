"""
Store - Collaborator contracts and their in-memory versions.

Flag (de)serialization lives in store.flags, which depends on the engine
types and is imported from there directly.
"""

from .interfaces import (
    CharacterStore,
    ClassData,
    ClassDataProvider,
    NotificationSink,
    Severity,
    SpellListOracle,
)
from .memory import (
    InMemoryCharacterStore,
    LoggingNotifier,
    StaticClassDataProvider,
    StaticSpellListOracle,
)

__all__ = [
    "CharacterStore",
    "ClassData",
    "ClassDataProvider",
    "NotificationSink",
    "Severity",
    "SpellListOracle",
    "InMemoryCharacterStore",
    "LoggingNotifier",
    "StaticClassDataProvider",
    "StaticSpellListOracle",
]
