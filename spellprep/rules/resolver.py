"""
Rule Config Resolver - Effective per-class rules for a character.

Resolution order for one (character, class):
1. Stored per-class override, if the class still casts spells
2. Defaults from the character's effective rule set
   (character override -> global setting -> legacy)

Design principles:
- Never throws for stale or missing class ids: logs and falls back
- Every successful mutation notifies listeners synchronously, so derived
  caches are invalidated before the next decision
- Persistence goes through an optional FlagAdapter; without one the
  resolver is purely in-memory
"""

from __future__ import annotations
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any, Union

from ..config import SpellbookSettings
from ..store.interfaces import (
    ClassDataProvider,
    NotificationSink,
    Severity,
    SpellListOracle,
)
from .defaults import class_defaults
from .types import (
    CharacterRules,
    ClassRuleConfig,
    EnforcementBehavior,
    RitualCastingMode,
    RuleSet,
    SpellRef,
    SwapMode,
)

if TYPE_CHECKING:
    from ..engine_core.ledger import PreparationLedger
    from ..store.flags import FlagAdapter

logger = logging.getLogger(__name__)

RulesListener = Callable[[str, Union[str, None]], None]
ConfirmCallback = Callable[["SpellListImpact"], Union[bool, Awaitable[bool]]]

_FIELD_COERCERS: dict[str, Callable[[Any], Any]] = {
    "cantrip_swap_mode": SwapMode,
    "spell_swap_mode": SwapMode,
    "ritual_casting_mode": RitualCastingMode,
    "show_cantrips": bool,
    "cantrip_preparation_bonus": int,
    "spell_preparation_bonus": int,
    "custom_spell_list_id": lambda v: None if v in (None, "") else str(v),
}


def coerce_changes(changes: dict[str, Any]) -> dict[str, Any]:
    """
    Normalize a partial ClassRuleConfig.

    Raises ValueError for unknown field names or unparseable values.
    """
    unknown = set(changes) - ClassRuleConfig.field_names()
    if unknown:
        raise ValueError(f"Unknown class rule fields: {sorted(unknown)}")
    try:
        return {name: _FIELD_COERCERS[name](value) for name, value in changes.items()}
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid class rule value: {e}") from e


@dataclass
class SpellListImpact:
    """Prepared spells that a spell-list change would invalidate."""
    class_id: str
    old_list_id: str | None
    new_list_id: str | None
    affected: list[SpellRef] = field(default_factory=list)

    @property
    def spell_ids(self) -> list[str]:
        return [ref.spell_id for ref in self.affected]

    @property
    def cantrip_count(self) -> int:
        return sum(1 for ref in self.affected if ref.is_cantrip)

    @property
    def spell_count(self) -> int:
        return sum(1 for ref in self.affected if not ref.is_cantrip)

    def __bool__(self) -> bool:
        return bool(self.affected)

    def describe(self) -> str:
        """Short summary for a confirmation prompt or notice."""
        parts = []
        if self.cantrip_count:
            parts.append(f"{self.cantrip_count} cantrips")
        if self.spell_count:
            parts.append(f"{self.spell_count} spells")
        detail = f" ({', '.join(parts)})" if parts else ""
        return f"{len(self.affected)} prepared entries for {self.class_id} leave the spell list{detail}"


class RuleConfigResolver:
    """
    Resolves and updates ClassRuleConfig per character.

    Usage:
        resolver = RuleConfigResolver(classes, settings, adapter=adapter)
        await resolver.load("actor-1")
        config = resolver.resolve("actor-1", "wizard")
        await resolver.update("actor-1", "wizard", {"spell_preparation_bonus": 1})
    """

    def __init__(
        self,
        classes: ClassDataProvider,
        settings: SpellbookSettings | None = None,
        adapter: FlagAdapter | None = None,
        oracle: SpellListOracle | None = None,
        notifier: NotificationSink | None = None,
    ):
        self.classes = classes
        self.settings = settings or SpellbookSettings()
        self.adapter = adapter
        self.oracle = oracle
        self.notifier = notifier
        self._rules: dict[str, CharacterRules] = {}
        self._listeners: list[RulesListener] = []

    def add_listener(self, listener: RulesListener):
        """Register fn(character_id, class_id) called after every rule change."""
        self._listeners.append(listener)

    def _changed(self, character_id: str, class_id: str | None):
        for listener in self._listeners:
            listener(character_id, class_id)

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    async def load(self, character_id: str) -> CharacterRules:
        """Read stored rules for a character (replacing anything cached)."""
        if self.adapter is not None:
            rules = await self.adapter.load_rules(character_id)
        else:
            rules = CharacterRules()
        self._rules[character_id] = rules
        self._changed(character_id, None)
        return rules

    def rules_for(self, character_id: str) -> CharacterRules:
        return self._rules.setdefault(character_id, CharacterRules())

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    def effective_rule_set(self, character_id: str) -> RuleSet:
        override = self.rules_for(character_id).rule_set
        if override is not None:
            return override
        return self.settings.rule_set or RuleSet.LEGACY

    def enforcement_behavior(self, character_id: str) -> EnforcementBehavior:
        override = self.rules_for(character_id).enforcement
        if override is not None:
            return override
        return self.settings.enforcement_behavior

    def _is_active_caster(self, character_id: str, class_id: str) -> bool:
        data = self.classes.get_class(character_id, class_id)
        return data is not None and data.is_spellcaster

    def resolve(self, character_id: str, class_id: str) -> ClassRuleConfig:
        """
        Effective rules for a class.

        Falls back to rule-set defaults when nothing is stored, or when the
        stored override belongs to a class the character no longer casts with.
        """
        if not class_id:
            logger.warning("Resolving rules without a class id for %s", character_id)
        defaults = class_defaults(class_id, self.effective_rule_set(character_id))
        override = self.rules_for(character_id).overrides.get(class_id)
        if not override:
            return defaults

        if not self._is_active_caster(character_id, class_id):
            logger.warning(
                "Class rules found for missing class %s on %s, using defaults",
                class_id, character_id,
            )
            return defaults
        return defaults.merged(override)

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def spell_list_impact(
        self,
        character_id: str,
        class_id: str,
        new_list_id: str | None,
        ledger: PreparationLedger,
    ) -> SpellListImpact:
        """
        Prepared entries for a class that are not on the new spell list.

        Granted and always-prepared entries are never affected.
        """
        old_list_id = self.resolve(character_id, class_id).custom_spell_list_id
        impact = SpellListImpact(class_id, old_list_id, new_list_id)
        if self.oracle is None:
            logger.warning("No spell list oracle, skipping impact check for %s", class_id)
            return impact

        for ref in ledger.entries_for_class(class_id):
            if not ref.counts_against_cap:
                continue
            if not self.oracle.is_candidate(class_id, ref.spell_id, new_list_id):
                impact.affected.append(ref)
        return impact

    async def update(
        self,
        character_id: str,
        class_id: str,
        changes: dict[str, Any],
        *,
        ledger: PreparationLedger | None = None,
        confirm: ConfirmCallback | None = None,
    ) -> bool:
        """
        Merge partial fields into the stored override for a class.

        A custom spell list change that would invalidate prepared entries
        needs confirm(impact) to return True; otherwise nothing changes and
        False is returned. Confirmed entries are removed from the ledger for
        this class only.

        Returns True when the change was committed.
        """
        changes = coerce_changes(changes)
        current = self.resolve(character_id, class_id)

        if (
            "custom_spell_list_id" in changes
            and changes["custom_spell_list_id"] != current.custom_spell_list_id
            and ledger is not None
        ):
            impact = self.spell_list_impact(
                character_id, class_id, changes["custom_spell_list_id"], ledger
            )
            if impact:
                if confirm is None:
                    logger.info("Spell list change for %s needs confirmation", class_id)
                    return False
                accepted = confirm(impact)
                if inspect.isawaitable(accepted):
                    accepted = await accepted
                if not accepted:
                    logger.info("Spell list change for %s declined", class_id)
                    return False
                if not await self._drop_affected(character_id, impact, ledger):
                    return False

        rules = self.rules_for(character_id)
        rules.overrides[class_id] = {**rules.overrides.get(class_id, {}), **changes}
        self._changed(character_id, class_id)
        logger.debug("Updated class rules for %s on %s: %s", class_id, character_id, changes)

        return await self._persist(
            character_id,
            "class rules",
            lambda: self.adapter.save_class_rules(character_id, rules.overrides),
        )

    async def _drop_affected(
        self,
        character_id: str,
        impact: SpellListImpact,
        ledger: PreparationLedger,
    ) -> bool:
        removed = ledger.remove_spells(impact.class_id, impact.spell_ids)
        logger.info(
            "Unprepared %d spells for %s after spell list change",
            len(removed), impact.class_id,
        )
        ok = await self._persist(
            character_id,
            "prepared spells",
            lambda: self.adapter.save_ledger(character_id, ledger),
        )
        if ok:
            self._notify(f"Unprepared {impact.describe()}", Severity.INFO)
        return ok

    async def apply_rule_set(self, character_id: str, rule_set: RuleSet) -> bool:
        """
        Switch a character to a rule set.

        Materializes the rule set's defaults for every spellcasting class,
        keeping any fields already overridden.
        """
        rule_set = RuleSet(rule_set)
        rules = self.rules_for(character_id)
        rules.rule_set = rule_set
        classes = self.classes.spellcasting_classes(character_id)
        for data in classes:
            materialized = asdict(class_defaults(data.class_id, rule_set))
            rules.overrides[data.class_id] = {
                **materialized,
                **rules.overrides.get(data.class_id, {}),
            }
        self._changed(character_id, None)
        logger.info(
            "Applied %s rule set to %s for %d classes",
            rule_set.value, character_id, len(classes),
        )

        async def save():
            await self.adapter.save_class_rules(character_id, rules.overrides)
            await self.adapter.save_rule_set(character_id, rule_set)

        return await self._persist(character_id, "rule set", save)

    async def initialize_new_classes(self, character_id: str) -> list[str]:
        """Store defaults for spellcasting classes with no override yet."""
        rules = self.rules_for(character_id)
        rule_set = self.effective_rule_set(character_id)
        added = []
        for data in self.classes.spellcasting_classes(character_id):
            if data.class_id in rules.overrides:
                continue
            rules.overrides[data.class_id] = asdict(class_defaults(data.class_id, rule_set))
            added.append(data.class_id)

        if added:
            self._changed(character_id, None)
            logger.info("Initialized rules for new classes on %s: %s", character_id, added)
            await self._persist(
                character_id,
                "class rules",
                lambda: self.adapter.save_class_rules(character_id, rules.overrides),
            )
        return added

    async def set_enforcement_behavior(
        self,
        character_id: str,
        behavior: EnforcementBehavior | None,
    ) -> bool:
        """Override (or with None, clear) enforcement for one character."""
        behavior = EnforcementBehavior(behavior) if behavior is not None else None
        self.rules_for(character_id).enforcement = behavior
        self._changed(character_id, None)
        return await self._persist(
            character_id,
            "enforcement behavior",
            lambda: self.adapter.save_enforcement(character_id, behavior),
        )

    async def _persist(
        self,
        character_id: str,
        what: str,
        write: Callable[[], Awaitable[None]],
    ) -> bool:
        if self.adapter is None:
            return True
        try:
            await write()
        except Exception:
            logger.exception("Failed to save %s for %s", what, character_id)
            self._notify(f"Could not save {what}", Severity.ERROR)
            return False
        return True

    def _notify(self, message: str, severity: Severity):
        if self.notifier is not None:
            self.notifier.notify(message, severity)
