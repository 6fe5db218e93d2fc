"""
In-memory collaborators.

Used by tests and by hosts that keep characters in process. The store
deep-copies values in both directions so callers cannot mutate stored
flags by accident.
"""

from __future__ import annotations
import copy
import logging
from collections.abc import Iterable
from typing import Any

from .interfaces import (
    CharacterStore,
    ClassData,
    ClassDataProvider,
    NotificationSink,
    Severity,
    SpellListOracle,
)

logger = logging.getLogger(__name__)


class InMemoryCharacterStore(CharacterStore):
    """Flags kept in a dict of dicts."""

    def __init__(self):
        self._flags: dict[str, dict[str, Any]] = {}

    async def get_flag(self, character_id: str, key: str) -> Any:
        return copy.deepcopy(self._flags.get(character_id, {}).get(key))

    async def set_flag(self, character_id: str, key: str, value: Any) -> None:
        self._flags.setdefault(character_id, {})[key] = copy.deepcopy(value)

    async def unset_flag(self, character_id: str, key: str) -> None:
        self._flags.get(character_id, {}).pop(key, None)

    def flags_for(self, character_id: str) -> dict[str, Any]:
        """Snapshot of every flag on a character."""
        return copy.deepcopy(self._flags.get(character_id, {}))


class StaticClassDataProvider(ClassDataProvider):
    """Class data registered up front, per character."""

    def __init__(self, classes: dict[str, list[ClassData]] | None = None):
        self._classes: dict[str, dict[str, ClassData]] = {}
        for character_id, items in (classes or {}).items():
            self.set_classes(character_id, items)

    def set_classes(self, character_id: str, classes: Iterable[ClassData]):
        self._classes[character_id] = {c.class_id: c for c in classes}

    def put_class(self, character_id: str, data: ClassData):
        self._classes.setdefault(character_id, {})[data.class_id] = data

    def remove_class(self, character_id: str, class_id: str):
        self._classes.get(character_id, {}).pop(class_id, None)

    def get_class(self, character_id: str, class_id: str) -> ClassData | None:
        return self._classes.get(character_id, {}).get(class_id)

    def list_classes(self, character_id: str) -> list[ClassData]:
        return list(self._classes.get(character_id, {}).values())


class StaticSpellListOracle(SpellListOracle):
    """
    Spell lists keyed by list id.

    A class's default list is registered under its class id. Lookups
    against a list that was never registered allow every spell.
    """

    def __init__(self, lists: dict[str, Iterable[str]] | None = None):
        self._lists: dict[str, set[str]] = {
            list_id: set(spells) for list_id, spells in (lists or {}).items()
        }

    def register(self, list_id: str, spell_ids: Iterable[str]):
        self._lists[list_id] = set(spell_ids)

    def is_candidate(
        self,
        class_id: str,
        spell_id: str,
        spell_list_id: str | None = None,
    ) -> bool:
        list_id = spell_list_id or class_id
        spells = self._lists.get(list_id)
        if spells is None:
            logger.debug("No spell list %s registered, allowing %s", list_id, spell_id)
            return True
        return spell_id in spells


_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


class LoggingNotifier(NotificationSink):
    """Routes notices to the spellprep logger."""

    def notify(self, message: str, severity: Severity = Severity.INFO) -> None:
        logger.log(_LOG_LEVELS.get(severity, logging.INFO), "Notice: %s", message)
