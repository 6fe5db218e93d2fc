"""
Tests for rule configuration.

Tests:
- Default tables and archetype lookup
- Override resolution and stale-class fallback
- Updates, including spell-list changes that need confirmation
- Rule-set application and new-class initialization
"""

import asyncio
import logging

import pytest

from ..rules.defaults import class_defaults
from ..rules.resolver import RuleConfigResolver, coerce_changes
from ..rules.types import (
    ClassArchetype,
    ClassRuleConfig,
    ClassSpellKey,
    EnforcementBehavior,
    RitualCastingMode,
    RuleSet,
    SwapMode,
)
from ..store.interfaces import ClassData, Severity
from .conftest import CHARACTER, cantrip, spell


class TestDefaults:
    """Tests for the built-in default tables."""

    def test_legacy_wizard(self):
        """Legacy wizards swap spells on a long rest and never cantrips."""
        config = class_defaults("wizard", RuleSet.LEGACY)
        assert config.cantrip_swap_mode is SwapMode.NONE
        assert config.spell_swap_mode is SwapMode.ON_LONG_REST
        assert config.ritual_casting_mode is RitualCastingMode.ALWAYS

    def test_modern_wizard_swaps_cantrips_on_long_rest(self):
        """Modern wizards may swap a cantrip on a long rest."""
        config = class_defaults("wizard", RuleSet.MODERN)
        assert config.cantrip_swap_mode is SwapMode.ON_LONG_REST

    def test_paladin_hides_cantrips(self):
        """Paladins have no cantrips in either rule set."""
        for rule_set in RuleSet:
            assert not class_defaults("paladin", rule_set).show_cantrips

    def test_unknown_class_uses_generic(self):
        """Unknown classes swap on level-up with cantrips visible."""
        config = class_defaults("blood-hunter", RuleSet.MODERN)
        assert config.spell_swap_mode is SwapMode.ON_LEVEL_UP
        assert config.cantrip_swap_mode is SwapMode.ON_LEVEL_UP
        assert config.show_cantrips

    def test_archetype_lookup_is_case_insensitive(self):
        """Class ids map to archetypes regardless of case."""
        assert ClassArchetype.from_class_id("Wizard") is ClassArchetype.WIZARD
        assert ClassArchetype.from_class_id("") is ClassArchetype.GENERIC
        assert ClassArchetype.from_class_id(None) is ClassArchetype.GENERIC

    def test_every_archetype_has_defaults(self):
        """Both tables cover every archetype."""
        for rule_set in RuleSet:
            for archetype in ClassArchetype:
                assert isinstance(class_defaults(archetype.value, rule_set), ClassRuleConfig)


class TestClassSpellKey:
    """Tests for compound identifiers."""

    def test_round_trip_with_colon_in_spell_id(self):
        """Spell ids may contain colons."""
        key = ClassSpellKey.parse("wizard:Compendium.spells:fireball")
        assert key.class_id == "wizard"
        assert key.spell_id == "Compendium.spells:fireball"
        assert str(key) == "wizard:Compendium.spells:fireball"

    @pytest.mark.parametrize("raw", ["wizard", ":fireball", "wizard:", ""])
    def test_malformed_key_raises(self, raw):
        """Keys without both parts are rejected."""
        with pytest.raises(ValueError):
            ClassSpellKey.parse(raw)

    def test_keys_are_hashable_values(self):
        """Equal keys collapse in a set."""
        assert len({ClassSpellKey("wizard", "x"), ClassSpellKey("wizard", "x")}) == 1


class TestResolve:
    """Tests for RuleConfigResolver.resolve."""

    def test_defaults_when_nothing_stored(self, resolver):
        """No override resolves to the rule-set defaults."""
        assert resolver.resolve(CHARACTER, "cleric") == class_defaults("cleric", RuleSet.LEGACY)

    def test_override_merges_over_defaults(self, resolver):
        """Stored fields replace only themselves."""
        resolver.rules_for(CHARACTER).overrides["wizard"] = {"spell_preparation_bonus": 2}
        config = resolver.resolve(CHARACTER, "wizard")
        assert config.spell_preparation_bonus == 2
        assert config.spell_swap_mode is SwapMode.ON_LONG_REST

    def test_stale_class_falls_back_with_warning(self, resolver, caplog):
        """An override for a class the character lost is ignored, not raised."""
        resolver.rules_for(CHARACTER).overrides["druid"] = {"show_cantrips": False}
        with caplog.at_level(logging.WARNING):
            config = resolver.resolve(CHARACTER, "druid")
        assert config.show_cantrips
        assert "missing class druid" in caplog.text

    def test_non_caster_override_ignored(self, resolver):
        """Classes without spellcasting always resolve to defaults."""
        resolver.rules_for(CHARACTER).overrides["fighter"] = {"spell_preparation_bonus": 5}
        assert resolver.resolve(CHARACTER, "fighter").spell_preparation_bonus == 0

    def test_character_rule_set_override(self, resolver):
        """A character rule-set override beats the global setting."""
        resolver.rules_for(CHARACTER).rule_set = RuleSet.MODERN
        assert resolver.effective_rule_set(CHARACTER) is RuleSet.MODERN
        assert resolver.resolve(CHARACTER, "cleric").cantrip_swap_mode is SwapMode.ON_LEVEL_UP

    def test_enforcement_override(self, resolver):
        """Character enforcement overrides the global setting."""
        assert resolver.enforcement_behavior(CHARACTER) is EnforcementBehavior.ENFORCED
        asyncio.run(resolver.set_enforcement_behavior(CHARACTER, EnforcementBehavior.UNENFORCED))
        assert resolver.enforcement_behavior(CHARACTER) is EnforcementBehavior.UNENFORCED


class TestUpdate:
    """Tests for RuleConfigResolver.update."""

    def test_coerces_stored_strings(self):
        """Flag-style strings become enums and ints."""
        changes = coerce_changes({"spell_swap_mode": "none", "cantrip_preparation_bonus": "-1"})
        assert changes == {"spell_swap_mode": SwapMode.NONE, "cantrip_preparation_bonus": -1}

    def test_unknown_field_raises(self, resolver):
        """Unknown field names are programmer errors."""
        with pytest.raises(ValueError):
            asyncio.run(resolver.update(CHARACTER, "wizard", {"spell_swapping": "none"}))

    def test_update_commits(self, resolver):
        """A plain update is committed and visible immediately."""
        committed = asyncio.run(
            resolver.update(CHARACTER, "wizard", {"spell_swap_mode": SwapMode.NONE})
        )
        assert committed
        assert resolver.resolve(CHARACTER, "wizard").spell_swap_mode is SwapMode.NONE

    def test_update_notifies_listeners(self, resolver):
        """Listeners hear about the changed class synchronously."""
        seen = []
        resolver.add_listener(lambda cid, class_id: seen.append((cid, class_id)))
        asyncio.run(resolver.update(CHARACTER, "cleric", {"show_cantrips": False}))
        assert seen == [(CHARACTER, "cleric")]


class TestSpellListChange:
    """Changing customSpellListId with prepared spells off the new list."""

    @pytest.fixture
    def prepared(self, ledger, oracle):
        for spell_id in ("x", "y", "z", "keep"):
            ledger.set_prepared("wizard", spell(spell_id), True)
        ledger.set_prepared("cleric", spell("x"), True)
        oracle.register("arcane-lite", ["keep"])
        return ledger

    def test_needs_confirmation(self, resolver, prepared):
        """Without confirmation nothing changes and False is returned."""
        committed = asyncio.run(resolver.update(
            CHARACTER, "wizard", {"custom_spell_list_id": "arcane-lite"}, ledger=prepared
        ))
        assert not committed
        assert resolver.resolve(CHARACTER, "wizard").custom_spell_list_id is None
        assert len(prepared.prepared_for_class("wizard")) == 4

    def test_declined_confirmation(self, resolver, prepared):
        """Declining leaves rules and ledger as they were."""
        impacts = []

        def decline(impact):
            impacts.append(impact)
            return False

        committed = asyncio.run(resolver.update(
            CHARACTER, "wizard", {"custom_spell_list_id": "arcane-lite"},
            ledger=prepared, confirm=decline,
        ))
        assert not committed
        assert sorted(impacts[0].spell_ids) == ["x", "y", "z"]
        assert impacts[0].spell_count == 3

    def test_confirmed_removes_for_that_class_only(self, resolver, prepared, notifier):
        """After confirmation the three entries leave the wizard only."""
        committed = asyncio.run(resolver.update(
            CHARACTER, "wizard", {"custom_spell_list_id": "arcane-lite"},
            ledger=prepared, confirm=lambda impact: True,
        ))
        assert committed
        assert prepared.prepared_for_class("wizard") == ["keep"]
        assert prepared.is_prepared("cleric", "x")
        assert resolver.resolve(CHARACTER, "wizard").custom_spell_list_id == "arcane-lite"
        assert notifier.by_severity(Severity.INFO)

    def test_async_confirmation(self, resolver, prepared):
        """confirm may be a coroutine function."""
        async def confirm(impact):
            return True

        committed = asyncio.run(resolver.update(
            CHARACTER, "wizard", {"custom_spell_list_id": "arcane-lite"},
            ledger=prepared, confirm=confirm,
        ))
        assert committed
        assert len(prepared.prepared_for_class("wizard")) == 1

    def test_granted_spells_never_affected(self, resolver, ledger, oracle):
        """Granted and always-prepared entries survive a list change."""
        ledger.set_prepared("wizard", spell("gift", granted=True), True)
        ledger.set_prepared("wizard", cantrip("light", always_prepared=True), True)
        oracle.register("empty", [])
        impact = resolver.spell_list_impact(CHARACTER, "wizard", "empty", ledger)
        assert not impact
        assert asyncio.run(resolver.update(
            CHARACTER, "wizard", {"custom_spell_list_id": "empty"}, ledger=ledger
        ))

    def test_impact_counts_categories(self, resolver, ledger, oracle):
        """Impact splits cantrips from leveled spells."""
        ledger.set_prepared("wizard", cantrip("light"), True)
        ledger.set_prepared("wizard", spell("shield"), True)
        oracle.register("empty", [])
        impact = resolver.spell_list_impact(CHARACTER, "wizard", "empty", ledger)
        assert impact.cantrip_count == 1
        assert impact.spell_count == 1
        assert "1 cantrips" in impact.describe()


class TestRuleSetApplication:
    """Tests for apply_rule_set and initialize_new_classes."""

    def test_apply_rule_set_keeps_existing_overrides(self, resolver):
        """Materialized defaults never clobber a stored field."""
        resolver.rules_for(CHARACTER).overrides["wizard"] = {"spell_preparation_bonus": 1}
        assert asyncio.run(resolver.apply_rule_set(CHARACTER, RuleSet.MODERN))

        rules = resolver.rules_for(CHARACTER)
        assert rules.rule_set is RuleSet.MODERN
        assert set(rules.overrides) == {"wizard", "cleric"}
        wizard = resolver.resolve(CHARACTER, "wizard")
        assert wizard.spell_preparation_bonus == 1
        assert wizard.cantrip_swap_mode is SwapMode.ON_LONG_REST

    def test_initialize_new_classes(self, resolver, classes):
        """Only casters without stored rules are initialized."""
        resolver.rules_for(CHARACTER).overrides["wizard"] = {"show_cantrips": False}
        added = asyncio.run(resolver.initialize_new_classes(CHARACTER))
        assert added == ["cleric"]

        classes.put_class(CHARACTER, ClassData(class_id="bard", level=1, preparation_max=4))
        assert asyncio.run(resolver.initialize_new_classes(CHARACTER)) == ["bard"]
        assert asyncio.run(resolver.initialize_new_classes(CHARACTER)) == []

    def test_apply_rule_set_rejects_unknown(self, resolver):
        """Unknown rule set names raise."""
        with pytest.raises(ValueError):
            asyncio.run(resolver.apply_rule_set(CHARACTER, "homebrew"))

    def test_without_settings_uses_legacy(self, classes):
        """A bare resolver defaults to the legacy rule set."""
        bare = RuleConfigResolver(classes)
        assert bare.effective_rule_set(CHARACTER) is RuleSet.LEGACY
