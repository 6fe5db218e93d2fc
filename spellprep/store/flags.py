"""
Flag Adapter - Typed (de)serialization of character flags.

Flag shapes on the character store:
- classRules: {classId: {cantripSwapping, spellSwapping, ritualCasting,
  showCantrips, cantripPreparationBonus, spellPreparationBonus,
  customSpellList}} (only overridden keys present)
- ruleSetOverride / enforcementBehavior: enum strings
- preparedSpellsByClass: {classId: [{key, level, ritual, granted,
  alwaysPrepared, name}]} with key = "classId:spellId"
- preparedSpells: flattened spell ids, written for legacy readers only
- cantripSwapTracking / spellSwapTracking: {classId: {levelUp|longRest:
  {hasUnlearned, unlearned, hasLearned, learned, originalChecked}}}
- previousLevel / previousCantripMax: the level-up baseline

Invalid stored values are logged and treated as absent.
"""

from __future__ import annotations
import logging
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from ..engine_core.caps import LevelBaseline
from ..engine_core.ledger import PreparationLedger
from ..engine_core.swap_tracker import SwapTracker, SwapTrackingState, TrackingKey
from ..rules.types import (
    CharacterRules,
    ClassSpellKey,
    EnforcementBehavior,
    PeriodKind,
    RitualCastingMode,
    RuleSet,
    SpellCategory,
    SpellRef,
    SwapMode,
)
from .interfaces import CharacterStore

logger = logging.getLogger(__name__)


class FlagKey:
    """Flag names on the character store."""
    CLASS_RULES = "classRules"
    RULE_SET_OVERRIDE = "ruleSetOverride"
    ENFORCEMENT_BEHAVIOR = "enforcementBehavior"
    PREPARED_SPELLS_BY_CLASS = "preparedSpellsByClass"
    PREPARED_SPELLS = "preparedSpells"
    CANTRIP_SWAP_TRACKING = "cantripSwapTracking"
    SPELL_SWAP_TRACKING = "spellSwapTracking"
    PREVIOUS_LEVEL = "previousLevel"
    PREVIOUS_CANTRIP_MAX = "previousCantripMax"

    @classmethod
    def swap_tracking(cls, category: SpellCategory) -> str:
        if category is SpellCategory.CANTRIP:
            return cls.CANTRIP_SWAP_TRACKING
        return cls.SPELL_SWAP_TRACKING


# =============================================================================
# Flag Models
# =============================================================================

class ClassRulesFlag(BaseModel):
    """Partial per-class rule override as stored."""
    cantrip_swap_mode: Optional[SwapMode] = Field(None, alias="cantripSwapping")
    spell_swap_mode: Optional[SwapMode] = Field(None, alias="spellSwapping")
    ritual_casting_mode: Optional[RitualCastingMode] = Field(None, alias="ritualCasting")
    show_cantrips: Optional[bool] = Field(None, alias="showCantrips")
    cantrip_preparation_bonus: Optional[int] = Field(None, alias="cantripPreparationBonus")
    spell_preparation_bonus: Optional[int] = Field(None, alias="spellPreparationBonus")
    custom_spell_list_id: Optional[str] = Field(None, alias="customSpellList")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @classmethod
    def from_changes(cls, changes: dict[str, Any]) -> ClassRulesFlag:
        return cls(**changes)

    def to_changes(self) -> dict[str, Any]:
        """Set fields only, keyed by ClassRuleConfig field name."""
        dumped = self.model_dump(exclude_unset=True)
        return {
            name: value
            for name, value in dumped.items()
            if value is not None or name == "custom_spell_list_id"
        }

    def to_flag(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_unset=True, mode="json")


class PreparedEntryFlag(BaseModel):
    """One prepared (class, spell) entry."""
    key: str
    level: int = Field(1, ge=0)
    ritual: bool = False
    granted: bool = False
    always_prepared: bool = Field(False, alias="alwaysPrepared")
    name: str = ""

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @model_validator(mode="before")
    @classmethod
    def _bare_key(cls, data: Any) -> Any:
        # Older flags store just the "classId:spellId" string
        if isinstance(data, str):
            return {"key": data}
        return data

    @field_validator("key")
    @classmethod
    def _valid_key(cls, value: str) -> str:
        ClassSpellKey.parse(value)
        return value

    @property
    def class_spell_key(self) -> ClassSpellKey:
        return ClassSpellKey.parse(self.key)

    def to_ref(self) -> SpellRef:
        return SpellRef(
            spell_id=self.class_spell_key.spell_id,
            level=self.level,
            name=self.name,
            ritual=self.ritual,
            granted=self.granted,
            always_prepared=self.always_prepared,
        )

    @classmethod
    def from_ref(cls, class_id: str, ref: SpellRef) -> PreparedEntryFlag:
        return cls(
            key=str(ClassSpellKey(class_id, ref.spell_id)),
            level=ref.level,
            ritual=ref.ritual,
            granted=ref.granted,
            always_prepared=ref.always_prepared,
            name=ref.name,
        )


class SwapStateFlag(BaseModel):
    """Swap tracking for one class in one period."""
    has_unlearned: bool = Field(False, alias="hasUnlearned")
    unlearned: Optional[str] = None
    has_learned: bool = Field(False, alias="hasLearned")
    learned: Optional[str] = None
    original_checked: list[str] = Field(default_factory=list, alias="originalChecked")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    def to_state(self) -> SwapTrackingState:
        return SwapTrackingState(
            unlearned_spell_id=self.unlearned if self.has_unlearned else None,
            learned_spell_id=self.learned if self.has_learned else None,
            original_checked=frozenset(self.original_checked),
        )

    @classmethod
    def from_state(cls, state: SwapTrackingState) -> SwapStateFlag:
        return cls(
            has_unlearned=state.has_unlearned,
            unlearned=state.unlearned_spell_id,
            has_learned=state.has_learned,
            learned=state.learned_spell_id,
            original_checked=sorted(state.original_checked),
        )


# =============================================================================
# Adapter
# =============================================================================

class FlagAdapter:
    """
    Reads and writes engine state as flags on a CharacterStore.

    Store exceptions from writes propagate to the caller.
    """

    def __init__(self, store: CharacterStore):
        self.store = store

    async def _get_mapping(self, character_id: str, key: str) -> dict[str, Any]:
        raw = await self.store.get_flag(character_id, key)
        if raw is None:
            return {}
        if not isinstance(raw, dict):
            logger.warning("Ignoring malformed %s flag on %s", key, character_id)
            return {}
        return raw

    # -------------------------------------------------------------------------
    # Rules
    # -------------------------------------------------------------------------

    async def load_rules(self, character_id: str) -> CharacterRules:
        rules = CharacterRules()
        for class_id, raw in (await self._get_mapping(character_id, FlagKey.CLASS_RULES)).items():
            try:
                rules.overrides[class_id] = ClassRulesFlag.model_validate(raw).to_changes()
            except ValidationError as e:
                logger.warning("Ignoring invalid class rules for %s on %s: %s", class_id, character_id, e)

        rules.rule_set = self._enum_flag(
            RuleSet, await self.store.get_flag(character_id, FlagKey.RULE_SET_OVERRIDE), character_id
        )
        rules.enforcement = self._enum_flag(
            EnforcementBehavior,
            await self.store.get_flag(character_id, FlagKey.ENFORCEMENT_BEHAVIOR),
            character_id,
        )
        return rules

    @staticmethod
    def _enum_flag(enum_cls, raw: Any, character_id: str):
        if raw in (None, ""):
            return None
        try:
            return enum_cls(raw)
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid %s %r on %s", enum_cls.__name__, raw, character_id)
            return None

    async def save_class_rules(self, character_id: str, overrides: dict[str, dict[str, Any]]):
        value = {
            class_id: ClassRulesFlag.from_changes(changes).to_flag()
            for class_id, changes in overrides.items()
        }
        await self.store.set_flag(character_id, FlagKey.CLASS_RULES, value)

    async def save_rule_set(self, character_id: str, rule_set: RuleSet | None):
        if rule_set is None:
            await self.store.unset_flag(character_id, FlagKey.RULE_SET_OVERRIDE)
        else:
            await self.store.set_flag(character_id, FlagKey.RULE_SET_OVERRIDE, rule_set.value)

    async def save_enforcement(self, character_id: str, behavior: EnforcementBehavior | None):
        if behavior is None:
            await self.store.unset_flag(character_id, FlagKey.ENFORCEMENT_BEHAVIOR)
        else:
            await self.store.set_flag(character_id, FlagKey.ENFORCEMENT_BEHAVIOR, behavior.value)

    # -------------------------------------------------------------------------
    # Ledger
    # -------------------------------------------------------------------------

    async def load_ledger(self, character_id: str) -> PreparationLedger:
        ledger = PreparationLedger(character_id)
        stored = await self._get_mapping(character_id, FlagKey.PREPARED_SPELLS_BY_CLASS)
        for class_id, entries in stored.items():
            if not isinstance(entries, list):
                logger.warning("Ignoring malformed prepared list for %s on %s", class_id, character_id)
                continue
            for raw in entries:
                try:
                    entry = PreparedEntryFlag.model_validate(raw)
                except ValidationError as e:
                    logger.warning("Ignoring invalid prepared entry on %s: %s", character_id, e)
                    continue
                if entry.class_spell_key.class_id != class_id:
                    logger.warning("Prepared key %s filed under %s, skipping", entry.key, class_id)
                    continue
                ledger.set_prepared(class_id, entry.to_ref(), True)
        return ledger

    async def save_ledger(self, character_id: str, ledger: PreparationLedger):
        by_class = {
            class_id: [
                PreparedEntryFlag.from_ref(class_id, ref).model_dump(by_alias=True)
                for ref in ledger.entries_for_class(class_id)
            ]
            for class_id in ledger.class_ids()
        }
        await self.store.set_flag(character_id, FlagKey.PREPARED_SPELLS_BY_CLASS, by_class)
        await self.store.set_flag(character_id, FlagKey.PREPARED_SPELLS, sorted(ledger.flattened_all()))

    # -------------------------------------------------------------------------
    # Swap tracking
    # -------------------------------------------------------------------------

    async def load_swaps(
        self,
        character_id: str,
        category: SpellCategory,
    ) -> dict[TrackingKey, SwapTrackingState]:
        key = FlagKey.swap_tracking(category)
        states: dict[TrackingKey, SwapTrackingState] = {}
        for class_id, periods in (await self._get_mapping(character_id, key)).items():
            if not isinstance(periods, dict):
                continue
            for period_name, raw in periods.items():
                try:
                    period = PeriodKind(period_name)
                    states[(class_id, period)] = SwapStateFlag.model_validate(raw).to_state()
                except (ValueError, ValidationError) as e:
                    logger.warning("Ignoring invalid %s entry for %s: %s", key, class_id, e)
        return states

    async def save_swaps(self, character_id: str, tracker: SwapTracker):
        """Write a tracker's state, removing the flag when nothing is tracked."""
        key = FlagKey.swap_tracking(tracker.category)
        value: dict[str, dict[str, Any]] = {}
        for (class_id, period), state in tracker.items():
            value.setdefault(class_id, {})[period.value] = (
                SwapStateFlag.from_state(state).model_dump(by_alias=True)
            )
        if value:
            await self.store.set_flag(character_id, key, value)
        else:
            await self.store.unset_flag(character_id, key)

    # -------------------------------------------------------------------------
    # Level-up baseline
    # -------------------------------------------------------------------------

    async def load_baseline(self, character_id: str) -> LevelBaseline:
        level = await self.store.get_flag(character_id, FlagKey.PREVIOUS_LEVEL)
        cantrip_max = await self.store.get_flag(character_id, FlagKey.PREVIOUS_CANTRIP_MAX)
        return LevelBaseline(
            previous_level=self._int_flag(level, FlagKey.PREVIOUS_LEVEL, character_id),
            previous_cantrip_max=self._int_flag(cantrip_max, FlagKey.PREVIOUS_CANTRIP_MAX, character_id),
        )

    @staticmethod
    def _int_flag(raw: Any, key: str, character_id: str) -> int:
        if raw is None:
            return 0
        try:
            return int(raw)
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid %s %r on %s", key, raw, character_id)
            return 0

    async def save_baseline(self, character_id: str, baseline: LevelBaseline):
        await self.store.set_flag(character_id, FlagKey.PREVIOUS_LEVEL, baseline.previous_level)
        await self.store.set_flag(character_id, FlagKey.PREVIOUS_CANTRIP_MAX, baseline.previous_cantrip_max)
