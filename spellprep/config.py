"""
Configuration - Global settings for the preparation engine.

Settings are world-level defaults; characters may override the rule set
and enforcement behavior through flags on the character store.

Environment variables:
    SPELLPREP_RULE_SET              legacy | modern
    SPELLPREP_ENFORCEMENT           unenforced | notifyGM | enforced
    SPELLPREP_CANTRIP_SCALE_KEYS    comma-separated scale-value keys
    SPELLPREP_LOG_LEVEL             logging level name
"""

from __future__ import annotations
import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import TypeVar

from .rules.types import EnforcementBehavior, RuleSet

logger = logging.getLogger(__name__)

DEFAULT_CANTRIP_SCALE_KEYS = ("cantrips-known", "cantrips")

E = TypeVar("E", bound=Enum)


def parse_scale_keys(raw: str | None) -> tuple[str, ...]:
    """
    Parse a comma-separated list of cantrip scale-value keys.

    Blank entries are dropped. An empty result falls back to the defaults.
    """
    if raw is None:
        return DEFAULT_CANTRIP_SCALE_KEYS
    keys = tuple(k.strip() for k in raw.split(",") if k.strip())
    if not keys:
        logger.warning("Empty cantrip scale keys %r, using defaults", raw)
        return DEFAULT_CANTRIP_SCALE_KEYS
    return keys


def _parse_enum(enum_cls: type[E], raw: str | None, default: E) -> E:
    if raw is None or raw == "":
        return default
    try:
        return enum_cls(raw)
    except ValueError:
        logger.warning(
            "Invalid %s value %r, falling back to %s",
            enum_cls.__name__, raw, default.value,
        )
        return default


@dataclass
class SpellbookSettings:
    """Global defaults for rule resolution and cap calculation."""
    rule_set: RuleSet = RuleSet.LEGACY
    enforcement_behavior: EnforcementBehavior = EnforcementBehavior.NOTIFY_ONLY
    cantrip_scale_keys: tuple[str, ...] = DEFAULT_CANTRIP_SCALE_KEYS
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> SpellbookSettings:
        """Build settings from SPELLPREP_* environment variables."""
        return cls(
            rule_set=_parse_enum(
                RuleSet, os.getenv("SPELLPREP_RULE_SET"), RuleSet.LEGACY
            ),
            enforcement_behavior=_parse_enum(
                EnforcementBehavior,
                os.getenv("SPELLPREP_ENFORCEMENT"),
                EnforcementBehavior.NOTIFY_ONLY,
            ),
            cantrip_scale_keys=parse_scale_keys(
                os.getenv("SPELLPREP_CANTRIP_SCALE_KEYS")
            ),
            log_level=os.getenv("SPELLPREP_LOG_LEVEL", "INFO"),
        )
