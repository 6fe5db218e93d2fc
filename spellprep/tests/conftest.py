"""
Pytest fixtures for spellprep tests.
"""

import pytest

from ..config import SpellbookSettings
from ..engine_core.caps import CapCalculator
from ..engine_core.decision import PreparationDecisionEngine
from ..engine_core.ledger import PreparationLedger
from ..engine_core.swap_tracker import SwapTracker
from ..rules.resolver import RuleConfigResolver
from ..rules.types import EnforcementBehavior, RuleSet, SpellCategory, SpellRef
from ..store.interfaces import ClassData, NotificationSink, Severity
from ..store.memory import (
    InMemoryCharacterStore,
    StaticClassDataProvider,
    StaticSpellListOracle,
)

CHARACTER = "actor-1"


def cantrip(spell_id: str, **kwargs) -> SpellRef:
    return SpellRef(spell_id=spell_id, level=0, **kwargs)


def spell(spell_id: str, level: int = 1, **kwargs) -> SpellRef:
    return SpellRef(spell_id=spell_id, level=level, **kwargs)


class RecordingNotifier(NotificationSink):
    """Keeps every notice for assertions."""

    def __init__(self):
        self.messages: list[tuple[str, Severity]] = []

    def notify(self, message: str, severity: Severity = Severity.INFO) -> None:
        self.messages.append((message, severity))

    def by_severity(self, severity: Severity) -> list[str]:
        return [m for m, s in self.messages if s is severity]


class FailingStore(InMemoryCharacterStore):
    """In-memory store whose writes can be switched to fail."""

    def __init__(self):
        super().__init__()
        self.fail_writes = False

    async def set_flag(self, character_id, key, value):
        if self.fail_writes:
            raise RuntimeError("store rejected write")
        await super().set_flag(character_id, key, value)

    async def unset_flag(self, character_id, key):
        if self.fail_writes:
            raise RuntimeError("store rejected write")
        await super().unset_flag(character_id, key)


@pytest.fixture
def settings() -> SpellbookSettings:
    """Enforced legacy rules."""
    return SpellbookSettings(
        rule_set=RuleSet.LEGACY,
        enforcement_behavior=EnforcementBehavior.ENFORCED,
    )


@pytest.fixture
def classes() -> StaticClassDataProvider:
    """A wizard 5 / cleric 1 / fighter 2 multiclass."""
    return StaticClassDataProvider({
        CHARACTER: [
            ClassData(
                class_id="wizard",
                name="Wizard",
                level=5,
                scale_values={"cantrips-known": 4},
                preparation_max=8,
            ),
            ClassData(
                class_id="cleric",
                name="Cleric",
                level=1,
                scale_values={"cantrips": 3},
                preparation_max=3,
            ),
            ClassData(class_id="fighter", name="Fighter", level=2, progression="none"),
        ],
    })


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def oracle() -> StaticSpellListOracle:
    return StaticSpellListOracle()


@pytest.fixture
def store() -> FailingStore:
    return FailingStore()


@pytest.fixture
def resolver(classes, settings, oracle, notifier) -> RuleConfigResolver:
    """In-memory resolver (no adapter)."""
    return RuleConfigResolver(classes, settings, oracle=oracle, notifier=notifier)


@pytest.fixture
def caps(classes, resolver, settings) -> CapCalculator:
    return CapCalculator(classes, resolver, settings)


@pytest.fixture
def ledger() -> PreparationLedger:
    return PreparationLedger(CHARACTER)


@pytest.fixture
def engine(resolver, caps, ledger, oracle, notifier) -> PreparationDecisionEngine:
    return PreparationDecisionEngine(
        CHARACTER,
        resolver,
        caps,
        ledger,
        SwapTracker(SpellCategory.CANTRIP, CHARACTER),
        SwapTracker(SpellCategory.SPELL, CHARACTER),
        oracle=oracle,
        notifier=notifier,
    )


@pytest.fixture
def full_wizard(ledger) -> PreparationLedger:
    """Wizard with all 4 cantrips prepared (A-D)."""
    for spell_id in ("a", "b", "c", "d"):
        ledger.set_prepared("wizard", cantrip(spell_id), True)
    return ledger
