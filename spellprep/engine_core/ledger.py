"""
Preparation Ledger - Which spells are prepared, by which class.

The ledger is the single source of truth for preparation state:
- Physically: class_id -> ordered set of spell ids (with their SpellRef)
- A (class, spell) pair is either present or absent, never duplicated
- The same spell may be prepared under several classes at once
- flattened_all() is derived on every call, never stored
"""

from __future__ import annotations
import logging
from collections.abc import Iterable, Iterator

from ..rules.types import ClassSpellKey, SpellCategory, SpellRef

logger = logging.getLogger(__name__)


class PreparationLedger:
    """
    Per-character prepared-spell membership.

    Usage:
        ledger = PreparationLedger("actor-1")
        ledger.set_prepared("wizard", SpellRef("fire-bolt", level=0), True)
        ledger.is_prepared("wizard", "fire-bolt")  # True
    """

    def __init__(self, character_id: str = ""):
        self.character_id = character_id
        self._by_class: dict[str, dict[str, SpellRef]] = {}

    def is_prepared(self, class_id: str, spell_id: str) -> bool:
        return spell_id in self._by_class.get(class_id, {})

    def get(self, class_id: str, spell_id: str) -> SpellRef | None:
        return self._by_class.get(class_id, {}).get(spell_id)

    def set_prepared(
        self,
        class_id: str,
        spell: SpellRef | str,
        prepared: bool,
    ) -> bool:
        """
        Mark a spell prepared or unprepared for a class.

        Idempotent. Returns True if the ledger changed. A bare spell id is
        treated as a level 1 spell when preparing.
        """
        if not isinstance(prepared, bool):
            raise ValueError(f"prepared must be a bool, got {prepared!r}")
        ref = spell if isinstance(spell, SpellRef) else SpellRef(spell_id=spell)
        class_spells = self._by_class.get(class_id)

        if prepared:
            if class_spells is not None and ref.spell_id in class_spells:
                return False
            self._by_class.setdefault(class_id, {})[ref.spell_id] = ref
            logger.debug("Prepared %s for %s", ref.spell_id, class_id)
            return True

        if class_spells is None or ref.spell_id not in class_spells:
            return False
        del class_spells[ref.spell_id]
        if not class_spells:
            del self._by_class[class_id]
        logger.debug("Unprepared %s for %s", ref.spell_id, class_id)
        return True

    def prepared_for_class(self, class_id: str) -> list[str]:
        """Spell ids prepared for a class, in preparation order."""
        return list(self._by_class.get(class_id, {}))

    def entries_for_class(self, class_id: str) -> list[SpellRef]:
        return list(self._by_class.get(class_id, {}).values())

    def flattened_all(self) -> set[str]:
        """Union of prepared spell ids across all classes."""
        result: set[str] = set()
        for class_spells in self._by_class.values():
            result.update(class_spells)
        return result

    def class_ids(self) -> list[str]:
        return list(self._by_class)

    def keys(self) -> Iterator[ClassSpellKey]:
        for class_id, class_spells in self._by_class.items():
            for spell_id in class_spells:
                yield ClassSpellKey(class_id, spell_id)

    def count(self, class_id: str, category: SpellCategory) -> int:
        """Prepared entries of a category that count against the cap."""
        return sum(
            1
            for ref in self._by_class.get(class_id, {}).values()
            if ref.category is category and ref.counts_against_cap
        )

    def remove_spells(self, class_id: str, spell_ids: Iterable[str]) -> list[SpellRef]:
        """Unprepare several spells for one class. Returns the removed refs."""
        removed = []
        for spell_id in spell_ids:
            ref = self.get(class_id, spell_id)
            if ref and self.set_prepared(class_id, ref, False):
                removed.append(ref)
        return removed

    def copy(self) -> PreparationLedger:
        clone = PreparationLedger(self.character_id)
        clone._by_class = {cid: dict(spells) for cid, spells in self._by_class.items()}
        return clone

    def reset_from(self, other: PreparationLedger):
        """Replace contents in place, keeping this object's identity."""
        self._by_class = {cid: dict(spells) for cid, spells in other._by_class.items()}

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, ClassSpellKey):
            return False
        return self.is_prepared(key.class_id, key.spell_id)

    def __len__(self) -> int:
        return sum(len(spells) for spells in self._by_class.values())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PreparationLedger):
            return NotImplemented
        return self._by_class == other._by_class
