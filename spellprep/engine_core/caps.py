"""
Cap Calculator - Preparation maxima and current counts per class.

Caps are derived values:
- max cantrips = scale value (first matching key) + cantrip bonus,
  0 when cantrips are hidden for the class or no scale value exists
- max spells = class preparation maximum + spell bonus
- both floored at 0

Derived caps are cached per (character, class) in a CapCache. The cache is
invalidated synchronously from every mutation path: rule updates (via the
resolver listener), class data changes and level-up completion.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass

from ..config import SpellbookSettings
from ..rules.resolver import RuleConfigResolver
from ..rules.types import SpellCategory
from ..store.interfaces import ClassData, ClassDataProvider
from .ledger import PreparationLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapSnapshot:
    """Maxima for one class at one moment."""
    max_cantrips: int = 0
    max_spells: int = 0

    def max_for(self, category: SpellCategory) -> int:
        if category is SpellCategory.CANTRIP:
            return self.max_cantrips
        return self.max_spells


@dataclass(frozen=True)
class LevelBaseline:
    """
    Character level and total cantrip cap when the last level-up closed.

    previous_level 0 means no level-up was ever completed.
    """
    previous_level: int = 0
    previous_cantrip_max: int = 0


class CapCache:
    """
    In-memory CapSnapshot cache keyed by (character_id, class_id).

    Usage:
        cache = CapCache()
        snapshot = cache.get("actor-1", "wizard")
        if snapshot is None:
            snapshot = compute()
            cache.put("actor-1", "wizard", snapshot)
    """

    def __init__(self):
        self._entries: dict[tuple[str, str], CapSnapshot] = {}

    def get(self, character_id: str, class_id: str) -> CapSnapshot | None:
        return self._entries.get((character_id, class_id))

    def put(self, character_id: str, class_id: str, snapshot: CapSnapshot):
        self._entries[(character_id, class_id)] = snapshot

    def invalidate(self, character_id: str | None = None, class_id: str | None = None):
        """
        Drop cached snapshots.

        No arguments clears everything; a character id alone clears that
        character; both clear one class.
        """
        if character_id is None:
            self._entries.clear()
            return
        if class_id is not None:
            self._entries.pop((character_id, class_id), None)
            return
        for key in [k for k in self._entries if k[0] == character_id]:
            del self._entries[key]

    def clear(self):
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class CapCalculator:
    """
    Computes caps and counts for every class on a character.

    Counts come from the character's registered PreparationLedger.
    """

    def __init__(
        self,
        classes: ClassDataProvider,
        resolver: RuleConfigResolver,
        settings: SpellbookSettings | None = None,
        cache: CapCache | None = None,
    ):
        self.classes = classes
        self.resolver = resolver
        self.settings = settings or resolver.settings
        self.cache = cache or CapCache()
        self._ledgers: dict[str, PreparationLedger] = {}
        resolver.add_listener(self.cache.invalidate)

    def register_ledger(self, ledger: PreparationLedger):
        self._ledgers[ledger.character_id] = ledger

    def invalidate(self, character_id: str | None = None, class_id: str | None = None):
        self.cache.invalidate(character_id, class_id)

    # -------------------------------------------------------------------------
    # Maxima
    # -------------------------------------------------------------------------

    def snapshot(self, character_id: str, class_id: str) -> CapSnapshot:
        cached = self.cache.get(character_id, class_id)
        if cached is not None:
            return cached

        data = self.classes.get_class(character_id, class_id)
        if data is None or not data.is_spellcaster:
            snapshot = CapSnapshot()
        else:
            snapshot = CapSnapshot(
                max_cantrips=self._compute_max_cantrips(character_id, data),
                max_spells=self._compute_max_spells(character_id, data),
            )
        self.cache.put(character_id, class_id, snapshot)
        logger.debug("Caps for %s/%s: %s", character_id, class_id, snapshot)
        return snapshot

    def _base_cantrips(self, data: ClassData) -> int:
        for key in self.settings.cantrip_scale_keys:
            value = data.scale_values.get(key)
            if value is not None:
                return value
        return 0

    def _compute_max_cantrips(self, character_id: str, data: ClassData) -> int:
        base = self._base_cantrips(data)
        if base == 0:
            return 0
        config = self.resolver.resolve(character_id, data.class_id)
        if not config.show_cantrips:
            return 0
        return max(0, base + config.cantrip_preparation_bonus)

    def _compute_max_spells(self, character_id: str, data: ClassData) -> int:
        config = self.resolver.resolve(character_id, data.class_id)
        return max(0, data.preparation_max + config.spell_preparation_bonus)

    def max_cantrips(self, character_id: str, class_id: str) -> int:
        return self.snapshot(character_id, class_id).max_cantrips

    def max_spells(self, character_id: str, class_id: str) -> int:
        return self.snapshot(character_id, class_id).max_spells

    def max_for(self, character_id: str, class_id: str, category: SpellCategory) -> int:
        return self.snapshot(character_id, class_id).max_for(category)

    def total_max_cantrips(self, character_id: str) -> int:
        """Sum of cantrip caps over the character's spellcasting classes."""
        return sum(
            self.max_cantrips(character_id, data.class_id)
            for data in self.classes.spellcasting_classes(character_id)
        )

    # -------------------------------------------------------------------------
    # Counts
    # -------------------------------------------------------------------------

    def current_count(self, character_id: str, class_id: str, category: SpellCategory) -> int:
        ledger = self._ledgers.get(character_id)
        if ledger is None:
            return 0
        return ledger.count(class_id, category)

    def current_prepared_cantrip_count(self, character_id: str, class_id: str) -> int:
        return self.current_count(character_id, class_id, SpellCategory.CANTRIP)

    def current_prepared_spell_count(self, character_id: str, class_id: str) -> int:
        return self.current_count(character_id, class_id, SpellCategory.SPELL)
