"""
Rule Types - Enums and value types shared across the engine.

Covers:
1. Rule-set and enforcement switches
2. Swap / ritual modes per class
3. Class archetypes (closed set plus a generic fallback)
4. ClassRuleConfig, the effective per-class configuration
5. ClassSpellKey and SpellRef identifiers
6. DenyReason codes and the stored CharacterRules

Enum values match the strings stored on the character, so flags written
by older versions read back unchanged.
"""

from __future__ import annotations
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any


class RuleSet(str, Enum):
    """Built-in default tables."""
    LEGACY = "legacy"
    MODERN = "modern"


class EnforcementBehavior(str, Enum):
    """How rule violations are handled."""
    UNENFORCED = "unenforced"
    NOTIFY_ONLY = "notifyGM"
    ENFORCED = "enforced"


class SwapMode(str, Enum):
    """When a prepared cantrip or spell may be swapped out."""
    NONE = "none"
    ON_LEVEL_UP = "levelUp"
    ON_LONG_REST = "longRest"


class RitualCastingMode(str, Enum):
    """When ritual spells may be cast without a slot."""
    NONE = "none"
    WHEN_PREPARED = "prepared"
    ALWAYS = "always"


class PeriodKind(str, Enum):
    """Eligible swap periods."""
    LEVEL_UP = "levelUp"
    LONG_REST = "longRest"


class SpellCategory(str, Enum):
    """Cantrips and leveled spells have separate caps and swap rules."""
    CANTRIP = "cantrip"
    SPELL = "spell"


class DenyReason(str, Enum):
    """Why a preparation toggle was refused."""
    CAP_REACHED = "cap-reached"
    SWAP_NOT_ALLOWED = "swap-not-allowed"
    ONLY_ONE_SWAP = "only-one-swap"
    MUST_UNLEARN_FIRST = "must-unlearn-first"
    NOT_ON_SPELL_LIST = "not-on-spell-list"


class ClassArchetype(Enum):
    """Known spellcasting classes. Anything else is GENERIC."""
    WIZARD = "wizard"
    CLERIC = "cleric"
    DRUID = "druid"
    PALADIN = "paladin"
    RANGER = "ranger"
    BARD = "bard"
    SORCERER = "sorcerer"
    WARLOCK = "warlock"
    ARTIFICER = "artificer"
    GENERIC = "generic"

    @classmethod
    def from_class_id(cls, class_id: str | None) -> ClassArchetype:
        """Map a class identifier to its archetype (case-insensitive)."""
        if not class_id:
            return cls.GENERIC
        try:
            archetype = cls(class_id.strip().lower())
        except ValueError:
            return cls.GENERIC
        return archetype

    @property
    def supports_long_rest_cantrip_swap(self) -> bool:
        """Only wizards may swap cantrips on a long rest."""
        return self is ClassArchetype.WIZARD


@dataclass(frozen=True)
class ClassRuleConfig:
    """
    Effective rule configuration for one class on one character.

    Always present for a spellcasting class: when nothing is stored it is
    derived from the active rule-set defaults.
    """
    cantrip_swap_mode: SwapMode = SwapMode.NONE
    spell_swap_mode: SwapMode = SwapMode.NONE
    ritual_casting_mode: RitualCastingMode = RitualCastingMode.NONE
    show_cantrips: bool = True
    cantrip_preparation_bonus: int = 0
    spell_preparation_bonus: int = 0
    custom_spell_list_id: str | None = None

    @classmethod
    def field_names(cls) -> set[str]:
        return {f.name for f in fields(cls)}

    def merged(self, changes: dict[str, Any]) -> ClassRuleConfig:
        """
        Return a copy with the given fields replaced.

        Raises ValueError for unknown field names.
        """
        unknown = set(changes) - self.field_names()
        if unknown:
            raise ValueError(f"Unknown class rule fields: {sorted(unknown)}")
        return replace(self, **changes)


@dataclass(frozen=True)
class ClassSpellKey:
    """
    Compound (class, spell) identifier.

    Stored on the character as "classId:spellId". Spell ids may contain
    colons themselves, so parsing splits on the first colon only.
    """
    class_id: str
    spell_id: str

    SEPARATOR = ":"

    def __str__(self) -> str:
        return f"{self.class_id}{self.SEPARATOR}{self.spell_id}"

    @classmethod
    def parse(cls, raw: str) -> ClassSpellKey:
        class_id, sep, spell_id = raw.partition(cls.SEPARATOR)
        if not sep or not class_id or not spell_id:
            raise ValueError(f"Malformed class-spell key: {raw!r}")
        return cls(class_id=class_id, spell_id=spell_id)


@dataclass(frozen=True)
class SpellRef:
    """
    A spell as seen by the preparation rules.

    Granted and always-prepared spells never count against caps.
    """
    spell_id: str
    level: int = 1
    name: str = ""
    ritual: bool = False
    granted: bool = False
    always_prepared: bool = False

    @property
    def is_cantrip(self) -> bool:
        return self.level == 0

    @property
    def category(self) -> SpellCategory:
        return SpellCategory.CANTRIP if self.is_cantrip else SpellCategory.SPELL

    @property
    def counts_against_cap(self) -> bool:
        return not (self.granted or self.always_prepared)


@dataclass
class CharacterRules:
    """
    Stored rule state for one character.

    overrides holds partial ClassRuleConfig fields keyed by class id, then
    field name. rule_set and enforcement override the global settings and
    are None when unset.
    """
    overrides: dict[str, dict[str, Any]] = field(default_factory=dict)
    rule_set: RuleSet | None = None
    enforcement: EnforcementBehavior | None = None
