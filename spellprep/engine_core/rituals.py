"""
Ritual availability per class ritual mode.

A ritual spell of level 1+ is castable as a ritual when the class's
ritual mode is ALWAYS, or WHEN_PREPARED and the spell is prepared for
that class. Cantrips are never rituals.
"""

from __future__ import annotations
from collections.abc import Iterable

from ..rules.types import ClassRuleConfig, RitualCastingMode, SpellRef
from .ledger import PreparationLedger


def ritual_available(config: ClassRuleConfig, spell: SpellRef, prepared: bool) -> bool:
    if not spell.ritual or spell.is_cantrip:
        return False
    mode = config.ritual_casting_mode
    if mode is RitualCastingMode.ALWAYS:
        return True
    if mode is RitualCastingMode.WHEN_PREPARED:
        return prepared
    return False


def ritual_spells(
    config: ClassRuleConfig,
    class_id: str,
    spells: Iterable[SpellRef],
    ledger: PreparationLedger,
) -> list[SpellRef]:
    """Spells from a candidate pool that the class can cast as rituals."""
    return [
        spell
        for spell in spells
        if ritual_available(config, spell, ledger.is_prepared(class_id, spell.spell_id))
    ]
