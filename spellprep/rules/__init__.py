"""
Rules - Per-class preparation rules and their defaults.

The rules layer:
1. Defines the rule enums and ClassRuleConfig
2. Ships the legacy and modern default tables
3. Resolves effective config per character (see rules.resolver)

The resolver is imported from rules.resolver directly, since it depends
on the settings module which itself needs the rule enums.
"""

from .types import (
    CharacterRules,
    ClassArchetype,
    ClassRuleConfig,
    ClassSpellKey,
    DenyReason,
    EnforcementBehavior,
    PeriodKind,
    RitualCastingMode,
    RuleSet,
    SpellCategory,
    SpellRef,
    SwapMode,
)
from .defaults import DEFAULT_TABLES, LEGACY_DEFAULTS, MODERN_DEFAULTS, class_defaults

__all__ = [
    "CharacterRules",
    "ClassArchetype",
    "ClassRuleConfig",
    "ClassSpellKey",
    "DenyReason",
    "EnforcementBehavior",
    "PeriodKind",
    "RitualCastingMode",
    "RuleSet",
    "SpellCategory",
    "SpellRef",
    "SwapMode",
    "DEFAULT_TABLES",
    "LEGACY_DEFAULTS",
    "MODERN_DEFAULTS",
    "class_defaults",
]
