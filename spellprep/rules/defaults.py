"""
Default Tables - Built-in per-archetype defaults for each rule set.

Each table maps every ClassArchetype to its default ClassRuleConfig.
GENERIC covers classes not in the known set: swap on level-up, cantrips
visible.
"""

from __future__ import annotations

from .types import (
    ClassArchetype,
    ClassRuleConfig,
    RitualCastingMode,
    RuleSet,
    SwapMode,
)


_LEVEL_UP = SwapMode.ON_LEVEL_UP
_LONG_REST = SwapMode.ON_LONG_REST


LEGACY_DEFAULTS: dict[ClassArchetype, ClassRuleConfig] = {
    ClassArchetype.WIZARD: ClassRuleConfig(
        spell_swap_mode=_LONG_REST,
        ritual_casting_mode=RitualCastingMode.ALWAYS,
    ),
    ClassArchetype.CLERIC: ClassRuleConfig(
        spell_swap_mode=_LONG_REST,
        ritual_casting_mode=RitualCastingMode.WHEN_PREPARED,
    ),
    ClassArchetype.DRUID: ClassRuleConfig(
        spell_swap_mode=_LONG_REST,
        ritual_casting_mode=RitualCastingMode.WHEN_PREPARED,
    ),
    ClassArchetype.PALADIN: ClassRuleConfig(
        spell_swap_mode=_LONG_REST,
        show_cantrips=False,
    ),
    ClassArchetype.RANGER: ClassRuleConfig(
        spell_swap_mode=_LEVEL_UP,
        show_cantrips=False,
    ),
    ClassArchetype.BARD: ClassRuleConfig(
        spell_swap_mode=_LEVEL_UP,
        ritual_casting_mode=RitualCastingMode.WHEN_PREPARED,
    ),
    ClassArchetype.SORCERER: ClassRuleConfig(spell_swap_mode=_LEVEL_UP),
    ClassArchetype.WARLOCK: ClassRuleConfig(spell_swap_mode=_LEVEL_UP),
    ClassArchetype.ARTIFICER: ClassRuleConfig(spell_swap_mode=_LONG_REST),
    ClassArchetype.GENERIC: ClassRuleConfig(spell_swap_mode=_LEVEL_UP),
}


# Modern rules let every cantrip caster swap one cantrip on level-up.
MODERN_DEFAULTS: dict[ClassArchetype, ClassRuleConfig] = {
    ClassArchetype.WIZARD: ClassRuleConfig(
        cantrip_swap_mode=_LONG_REST,
        spell_swap_mode=_LONG_REST,
        ritual_casting_mode=RitualCastingMode.ALWAYS,
    ),
    ClassArchetype.CLERIC: ClassRuleConfig(
        cantrip_swap_mode=_LEVEL_UP,
        spell_swap_mode=_LONG_REST,
    ),
    ClassArchetype.DRUID: ClassRuleConfig(
        cantrip_swap_mode=_LEVEL_UP,
        spell_swap_mode=_LONG_REST,
    ),
    ClassArchetype.PALADIN: ClassRuleConfig(
        spell_swap_mode=_LONG_REST,
        show_cantrips=False,
    ),
    ClassArchetype.RANGER: ClassRuleConfig(
        spell_swap_mode=_LONG_REST,
        show_cantrips=False,
    ),
    ClassArchetype.BARD: ClassRuleConfig(
        cantrip_swap_mode=_LEVEL_UP,
        spell_swap_mode=_LEVEL_UP,
    ),
    ClassArchetype.SORCERER: ClassRuleConfig(
        cantrip_swap_mode=_LEVEL_UP,
        spell_swap_mode=_LEVEL_UP,
    ),
    ClassArchetype.WARLOCK: ClassRuleConfig(
        cantrip_swap_mode=_LEVEL_UP,
        spell_swap_mode=_LEVEL_UP,
    ),
    ClassArchetype.ARTIFICER: ClassRuleConfig(
        cantrip_swap_mode=_LEVEL_UP,
        spell_swap_mode=_LONG_REST,
    ),
    ClassArchetype.GENERIC: ClassRuleConfig(
        cantrip_swap_mode=_LEVEL_UP,
        spell_swap_mode=_LEVEL_UP,
    ),
}


DEFAULT_TABLES: dict[RuleSet, dict[ClassArchetype, ClassRuleConfig]] = {
    RuleSet.LEGACY: LEGACY_DEFAULTS,
    RuleSet.MODERN: MODERN_DEFAULTS,
}


def class_defaults(class_id: str | None, rule_set: RuleSet) -> ClassRuleConfig:
    """Default configuration for a class under a rule set."""
    table = DEFAULT_TABLES[rule_set]
    return table[ClassArchetype.from_class_id(class_id)]
