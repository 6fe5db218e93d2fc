"""
Tests for flag (de)serialization.
"""

import asyncio

import pytest

from ..engine_core.caps import LevelBaseline
from ..engine_core.ledger import PreparationLedger
from ..engine_core.swap_tracker import SwapTracker
from ..rules.types import (
    EnforcementBehavior,
    PeriodKind,
    RuleSet,
    SpellCategory,
    SwapMode,
)
from ..store.flags import ClassRulesFlag, FlagAdapter, FlagKey
from .conftest import CHARACTER, cantrip, spell


@pytest.fixture
def adapter(store) -> FlagAdapter:
    return FlagAdapter(store)


def run(coro):
    return asyncio.run(coro)


class TestClassRules:
    """Tests for the classRules flag."""

    def test_reads_camel_case_partial(self):
        """Only stored keys come back, under field names."""
        flag = ClassRulesFlag.model_validate({"spellSwapping": "none", "cantripPreparationBonus": 2})
        assert flag.to_changes() == {
            "spell_swap_mode": SwapMode.NONE,
            "cantrip_preparation_bonus": 2,
        }

    def test_round_trip_through_store(self, adapter, store):
        """Saved overrides load back unchanged."""
        overrides = {"wizard": {"cantrip_swap_mode": SwapMode.ON_LONG_REST, "custom_spell_list_id": None}}
        run(adapter.save_class_rules(CHARACTER, overrides))
        stored = store.flags_for(CHARACTER)[FlagKey.CLASS_RULES]
        assert stored == {"wizard": {"cantripSwapping": "longRest", "customSpellList": None}}
        assert run(adapter.load_rules(CHARACTER)).overrides == overrides

    def test_invalid_class_rules_skipped(self, adapter, store, caplog):
        """A class with an invalid value is dropped with a warning."""
        run(store.set_flag(CHARACTER, FlagKey.CLASS_RULES, {
            "wizard": {"spellSwapping": "sometimes"},
            "cleric": {"showCantrips": False},
        }))
        rules = run(adapter.load_rules(CHARACTER))
        assert set(rules.overrides) == {"cleric"}
        assert "wizard" in caplog.text

    def test_rule_set_and_enforcement(self, adapter):
        """Overrides save as strings and unset as absent."""
        run(adapter.save_rule_set(CHARACTER, RuleSet.MODERN))
        run(adapter.save_enforcement(CHARACTER, EnforcementBehavior.NOTIFY_ONLY))
        rules = run(adapter.load_rules(CHARACTER))
        assert rules.rule_set is RuleSet.MODERN
        assert rules.enforcement is EnforcementBehavior.NOTIFY_ONLY

        run(adapter.save_rule_set(CHARACTER, None))
        assert run(adapter.load_rules(CHARACTER)).rule_set is None

    def test_invalid_rule_set_ignored(self, adapter, store):
        """An unknown rule set reads as no override."""
        run(store.set_flag(CHARACTER, FlagKey.RULE_SET_OVERRIDE, "2024-ish"))
        assert run(adapter.load_rules(CHARACTER)).rule_set is None


class TestLedgerFlags:
    """Tests for preparedSpellsByClass and preparedSpells."""

    def test_round_trip(self, adapter, store):
        """Entries keep their metadata and class attribution."""
        ledger = PreparationLedger(CHARACTER)
        ledger.set_prepared("wizard", cantrip("light"), True)
        ledger.set_prepared("wizard", spell("find-familiar", ritual=True), True)
        ledger.set_prepared("cleric", cantrip("light", granted=True), True)
        run(adapter.save_ledger(CHARACTER, ledger))

        flags = store.flags_for(CHARACTER)
        assert flags[FlagKey.PREPARED_SPELLS] == ["find-familiar", "light"]
        assert flags[FlagKey.PREPARED_SPELLS_BY_CLASS]["cleric"][0]["key"] == "cleric:light"

        loaded = run(adapter.load_ledger(CHARACTER))
        assert loaded == ledger
        assert loaded.get("cleric", "light").granted
        assert loaded.get("wizard", "find-familiar").ritual

    def test_bare_key_entries(self, adapter, store):
        """Plain "class:spell" strings are read as level 1 entries."""
        run(store.set_flag(CHARACTER, FlagKey.PREPARED_SPELLS_BY_CLASS, {
            "wizard": ["wizard:Compendium.x:shield"],
        }))
        loaded = run(adapter.load_ledger(CHARACTER))
        assert loaded.prepared_for_class("wizard") == ["Compendium.x:shield"]

    def test_bad_entries_skipped(self, adapter, store):
        """Malformed keys and misfiled entries are dropped."""
        run(store.set_flag(CHARACTER, FlagKey.PREPARED_SPELLS_BY_CLASS, {
            "wizard": ["no-separator", {"key": "cleric:bless"}, {"key": "wizard:shield", "level": -1},
                       {"key": "wizard:light", "level": 0}],
            "bard": "not-a-list",
        }))
        loaded = run(adapter.load_ledger(CHARACTER))
        assert loaded.prepared_for_class("wizard") == ["light"]
        assert loaded.class_ids() == ["wizard"]


class TestSwapFlags:
    """Tests for cantripSwapTracking / spellSwapTracking."""

    def test_round_trip(self, adapter, store):
        """Tracked state loads back per class and period."""
        tracker = SwapTracker(SpellCategory.CANTRIP, CHARACTER)
        tracker.record("wizard", PeriodKind.LONG_REST, "a", False, {"a", "b"})
        run(adapter.save_swaps(CHARACTER, tracker))

        raw = store.flags_for(CHARACTER)[FlagKey.CANTRIP_SWAP_TRACKING]
        assert raw["wizard"]["longRest"] == {
            "hasUnlearned": True,
            "unlearned": "a",
            "hasLearned": False,
            "learned": None,
            "originalChecked": ["a", "b"],
        }

        states = run(adapter.load_swaps(CHARACTER, SpellCategory.CANTRIP))
        state = states[("wizard", PeriodKind.LONG_REST)]
        assert state.unlearned_spell_id == "a"
        assert state.original_checked == frozenset({"a", "b"})

    def test_empty_tracker_unsets_flag(self, adapter, store):
        """Nothing tracked means no flag."""
        tracker = SwapTracker(SpellCategory.SPELL, CHARACTER)
        tracker.record("wizard", PeriodKind.LEVEL_UP, "s", False, {"s"})
        run(adapter.save_swaps(CHARACTER, tracker))
        assert FlagKey.SPELL_SWAP_TRACKING in store.flags_for(CHARACTER)

        tracker.complete(PeriodKind.LEVEL_UP)
        run(adapter.save_swaps(CHARACTER, tracker))
        assert FlagKey.SPELL_SWAP_TRACKING not in store.flags_for(CHARACTER)

    def test_unknown_period_skipped(self, adapter, store):
        """Periods other than levelUp / longRest are ignored."""
        run(store.set_flag(CHARACTER, FlagKey.CANTRIP_SWAP_TRACKING, {
            "wizard": {"shortRest": {"hasUnlearned": True, "unlearned": "a"}},
        }))
        assert run(adapter.load_swaps(CHARACTER, SpellCategory.CANTRIP)) == {}


class TestBaselineFlags:
    """Tests for previousLevel / previousCantripMax."""

    def test_round_trip(self, adapter):
        """The level-up baseline is two plain integers."""
        run(adapter.save_baseline(CHARACTER, LevelBaseline(5, 7)))
        assert run(adapter.load_baseline(CHARACTER)) == LevelBaseline(5, 7)

    def test_missing_and_invalid_read_as_zero(self, adapter, store):
        """Absent or garbage values read as 0."""
        run(store.set_flag(CHARACTER, FlagKey.PREVIOUS_LEVEL, "five"))
        assert run(adapter.load_baseline(CHARACTER)) == LevelBaseline(0, 0)
