"""
External Interfaces - Collaborators the engine consumes.

1. CharacterStore: async key-value flags per character (the only I/O)
2. ClassDataProvider: read-only class / scaling data
3. SpellListOracle: is a spell a legal candidate for a class list
4. NotificationSink: fire-and-forget user-facing notices
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class ClassData:
    """
    Spellcasting data for one class on a character.

    progression is "none" for classes without spellcasting.
    """
    class_id: str
    name: str = ""
    level: int = 1
    progression: str = "full"
    scale_values: dict[str, int] = field(default_factory=dict)
    preparation_max: int = 0

    @property
    def is_spellcaster(self) -> bool:
        return bool(self.progression) and self.progression != "none"


class CharacterStore(ABC):
    """Persisted flags on a character."""

    @abstractmethod
    async def get_flag(self, character_id: str, key: str) -> Any:
        """Get a flag value, or None if unset."""
        pass

    @abstractmethod
    async def set_flag(self, character_id: str, key: str, value: Any) -> None:
        """Set a flag value. May raise on a rejected write."""
        pass

    @abstractmethod
    async def unset_flag(self, character_id: str, key: str) -> None:
        """Remove a flag."""
        pass


class ClassDataProvider(ABC):
    """Read-only access to a character's classes."""

    @abstractmethod
    def get_class(self, character_id: str, class_id: str) -> ClassData | None:
        """Get one class, or None if the character does not have it."""
        pass

    @abstractmethod
    def list_classes(self, character_id: str) -> list[ClassData]:
        """All classes on the character, spellcasting or not."""
        pass

    def spellcasting_classes(self, character_id: str) -> list[ClassData]:
        return [c for c in self.list_classes(character_id) if c.is_spellcaster]

    def character_level(self, character_id: str) -> int:
        return sum(c.level for c in self.list_classes(character_id))


class SpellListOracle(ABC):
    """Spell-list membership."""

    @abstractmethod
    def is_candidate(
        self,
        class_id: str,
        spell_id: str,
        spell_list_id: str | None = None,
    ) -> bool:
        """
        Whether the spell is on the class's list.

        spell_list_id selects a custom list; None means the class default.
        """
        pass


class NotificationSink(ABC):
    """User-facing notices. Return values are never consumed."""

    @abstractmethod
    def notify(self, message: str, severity: Severity = Severity.INFO) -> None:
        pass
