"""
Session Manager - One preparation session per character.

LIFECYCLE:
1. open_session(character) -> build resolver, caps, ledger, trackers once
   and load them from the character store
2. While the spellbook is open:
   - decide() answers "can this box be toggled" (pure)
   - apply() mutates in-memory ledger / swap trackers
   - commit() writes ledger and swap tracking back to the store
3. complete_period() closes a level-up or long rest
4. External changes (class levels, rule edits) -> refresh() or
   on_class_data_changed(), never a second session
5. end_session() drops the in-memory state

PERSISTENCE RULES:
- The character store is the only persistence
- A failed write is reported, never retried and never rolled back; the
  session is flagged needs_refresh until reloaded
"""

from __future__ import annotations
import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..config import SpellbookSettings
from ..engine_core.caps import CapCalculator, LevelBaseline
from ..engine_core.decision import (
    Decision,
    PreparationDecisionEngine,
    ToggleContext,
    ToggleRequest,
)
from ..engine_core.ledger import PreparationLedger
from ..engine_core.rituals import ritual_spells
from ..engine_core.swap_tracker import SwapTracker
from ..rules.resolver import ConfirmCallback, RuleConfigResolver
from ..rules.types import (
    EnforcementBehavior,
    PeriodKind,
    RuleSet,
    SpellCategory,
    SpellRef,
)
from ..store.flags import FlagAdapter
from ..store.interfaces import (
    CharacterStore,
    ClassDataProvider,
    NotificationSink,
    Severity,
    SpellListOracle,
)
from ..store.memory import LoggingNotifier

logger = logging.getLogger(__name__)

PERSISTENCE_FAILED = "PERSISTENCE_FAILED"


class SessionState(Enum):
    """State of a preparation session."""
    CREATED = "created"  # Built, not loaded yet
    ACTIVE = "active"
    ENDED = "ended"


@dataclass
class CommitResult:
    """Outcome of writing session state to the character store."""
    success: bool
    error: str | None = None
    error_code: str | None = None
    notices: list[str] = field(default_factory=list)

    @classmethod
    def ok(cls, notices: list[str] | None = None) -> CommitResult:
        return cls(success=True, notices=notices or [])

    @classmethod
    def failure(cls, error: str, error_code: str | None = None) -> CommitResult:
        return cls(success=False, error=error, error_code=error_code)


class PreparationSession:
    """
    The single decision engine for one character.

    Usage:
        session = PreparationSession("actor-1", store, classes)
        await session.load()
        decision = session.apply("wizard", SpellRef("shield"), True)
        result = await session.commit()
    """

    def __init__(
        self,
        character_id: str,
        store: CharacterStore,
        classes: ClassDataProvider,
        settings: SpellbookSettings | None = None,
        oracle: SpellListOracle | None = None,
        notifier: NotificationSink | None = None,
    ):
        self.character_id = character_id
        self.classes = classes
        self.settings = settings or SpellbookSettings()
        self.notifier = notifier or LoggingNotifier()
        self.adapter = FlagAdapter(store)

        self.resolver = RuleConfigResolver(
            classes, self.settings, adapter=self.adapter, oracle=oracle, notifier=self.notifier
        )
        self.caps = CapCalculator(classes, self.resolver, self.settings)
        self.ledger = PreparationLedger(character_id)
        self.cantrip_swaps = SwapTracker(SpellCategory.CANTRIP, character_id)
        self.spell_swaps = SwapTracker(SpellCategory.SPELL, character_id)
        self.engine = PreparationDecisionEngine(
            character_id,
            self.resolver,
            self.caps,
            self.ledger,
            self.cantrip_swaps,
            self.spell_swaps,
            oracle=oracle,
            notifier=self.notifier,
        )
        self.baseline = LevelBaseline()

        self.state = SessionState.CREATED
        self.needs_refresh = False
        self.created_at = time.time()
        self.last_activity = self.created_at

    def is_active(self) -> bool:
        return self.state is not SessionState.ENDED

    def _touch(self):
        self.last_activity = time.time()

    def _notify(self, message: str, severity: Severity):
        self.notifier.notify(message, severity)

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    async def load(self):
        """
        (Re)load everything from the store in place.

        Objects handed out earlier (ledger, trackers) stay valid.
        """
        await self.resolver.load(self.character_id)
        await self.resolver.initialize_new_classes(self.character_id)
        self.ledger.reset_from(await self.adapter.load_ledger(self.character_id))
        self.cantrip_swaps.load(
            await self.adapter.load_swaps(self.character_id, SpellCategory.CANTRIP)
        )
        self.spell_swaps.load(
            await self.adapter.load_swaps(self.character_id, SpellCategory.SPELL)
        )
        self.baseline = await self.adapter.load_baseline(self.character_id)
        self.caps.invalidate(self.character_id)
        self.engine.mark_committed()

        self.state = SessionState.ACTIVE
        self.needs_refresh = False
        self._touch()
        logger.info(
            "Loaded session for %s: %d prepared entries", self.character_id, len(self.ledger)
        )

        # First sight of the character: its current level is the baseline,
        # not a level-up.
        if self.baseline == LevelBaseline():
            self.baseline = self._current_baseline()
            await self._write(
                "level baseline",
                lambda: self.adapter.save_baseline(self.character_id, self.baseline),
            )

    async def refresh(self):
        await self.load()

    async def on_class_data_changed(self) -> list[str]:
        """
        Class levels or scaling data changed outside the engine.

        Returns ids of newly initialized spellcasting classes.
        """
        self.caps.invalidate(self.character_id)
        return await self.resolver.initialize_new_classes(self.character_id)

    # -------------------------------------------------------------------------
    # Periods
    # -------------------------------------------------------------------------

    def is_level_up_period(self) -> bool:
        """
        A level-up period is open when the character has gained a level or
        total cantrip capacity since the recorded baseline. Without a
        baseline there is nothing to compare against, so no period.
        """
        previous_level = self.baseline.previous_level
        if previous_level == 0:
            return False
        level = self.classes.character_level(self.character_id)
        total_cantrips = self.caps.total_max_cantrips(self.character_id)
        return level > previous_level or total_cantrips > self.baseline.previous_cantrip_max

    def context(self, long_rest: bool = False) -> ToggleContext:
        return ToggleContext(is_level_up=self.is_level_up_period(), is_long_rest=long_rest)

    def _current_baseline(self) -> LevelBaseline:
        return LevelBaseline(
            previous_level=self.classes.character_level(self.character_id),
            previous_cantrip_max=self.caps.total_max_cantrips(self.character_id),
        )

    async def complete_period(self, period: PeriodKind) -> CommitResult:
        """
        Close a period for every class.

        Completing a level-up also records the new baseline, so the same
        level-up does not reopen.
        """
        period = PeriodKind(period)
        cleared = self.engine.complete(period)
        if period is PeriodKind.LEVEL_UP:
            self.caps.invalidate(self.character_id)
            self.baseline = self._current_baseline()
        logger.info(
            "Completed %s for %s (%d tracked swaps cleared)",
            period.value, self.character_id, cleared,
        )

        async def save():
            await self.adapter.save_swaps(self.character_id, self.cantrip_swaps)
            await self.adapter.save_swaps(self.character_id, self.spell_swaps)
            if period is PeriodKind.LEVEL_UP:
                await self.adapter.save_baseline(self.character_id, self.baseline)

        return await self._write("swap tracking", save)

    # -------------------------------------------------------------------------
    # Toggles
    # -------------------------------------------------------------------------

    def _request(
        self,
        class_id: str,
        spell: SpellRef,
        checking: bool,
        context: ToggleContext | None,
    ) -> ToggleRequest:
        if self.needs_refresh:
            logger.warning("Session for %s needs a refresh before deciding", self.character_id)
        return ToggleRequest(class_id, spell, checking, context or self.context())

    def decide(
        self,
        class_id: str,
        spell: SpellRef,
        checking: bool,
        context: ToggleContext | None = None,
    ) -> Decision:
        return self.engine.decide(self._request(class_id, spell, checking, context))

    def apply(
        self,
        class_id: str,
        spell: SpellRef,
        checking: bool,
        context: ToggleContext | None = None,
    ) -> Decision:
        self._touch()
        return self.engine.apply(self._request(class_id, spell, checking, context))

    def preview(
        self,
        class_id: str,
        spells: Iterable[SpellRef],
        context: ToggleContext | None = None,
    ) -> dict[str, Decision]:
        return self.engine.preview(class_id, spells, context or self.context())

    def ritual_spells(self, class_id: str, spells: Iterable[SpellRef]) -> list[SpellRef]:
        config = self.resolver.resolve(self.character_id, class_id)
        return ritual_spells(config, class_id, spells, self.ledger)

    # -------------------------------------------------------------------------
    # Commit
    # -------------------------------------------------------------------------

    def over_limit_report(self) -> list[str]:
        """Per-class lines for every category prepared beyond its cap."""
        lines = []
        for data in self.classes.spellcasting_classes(self.character_id):
            for category in SpellCategory:
                current = self.caps.current_count(self.character_id, data.class_id, category)
                maximum = self.caps.max_for(self.character_id, data.class_id, category)
                if current > maximum:
                    lines.append(f"{data.class_id}: {current}/{maximum} {category.value}s")
        return lines

    async def commit(self) -> CommitResult:
        """Write the ledger and swap tracking to the store."""
        self._touch()

        async def save():
            await self.adapter.save_ledger(self.character_id, self.ledger)
            await self.adapter.save_swaps(self.character_id, self.cantrip_swaps)
            await self.adapter.save_swaps(self.character_id, self.spell_swaps)

        result = await self._write("prepared spells", save)
        if not result.success:
            return result
        self.engine.mark_committed()

        behavior = self.resolver.enforcement_behavior(self.character_id)
        if behavior is EnforcementBehavior.NOTIFY_ONLY:
            report = self.over_limit_report()
            if report:
                message = f"{self.character_id} is over the preparation limit: " + "; ".join(report)
                self._notify(message, Severity.WARNING)
                result.notices.append(message)
        return result

    async def _write(self, what: str, save) -> CommitResult:
        try:
            await save()
        except Exception as e:
            logger.exception("Failed to save %s for %s", what, self.character_id)
            self._notify(f"Could not save {what}: {e}", Severity.ERROR)
            self.needs_refresh = True
            return CommitResult.failure(
                f"Could not save {what} for {self.character_id}: {e}", PERSISTENCE_FAILED
            )
        return CommitResult.ok()

    # -------------------------------------------------------------------------
    # Rules
    # -------------------------------------------------------------------------

    async def update_class_rules(
        self,
        class_id: str,
        changes: dict[str, Any],
        confirm: ConfirmCallback | None = None,
    ) -> bool:
        return await self.resolver.update(
            self.character_id, class_id, changes, ledger=self.ledger, confirm=confirm
        )

    async def apply_rule_set(self, rule_set: RuleSet) -> bool:
        return await self.resolver.apply_rule_set(self.character_id, rule_set)

    async def set_enforcement_behavior(self, behavior: EnforcementBehavior | None) -> bool:
        return await self.resolver.set_enforcement_behavior(self.character_id, behavior)


class SessionManager:
    """
    Owns one PreparationSession per character.

    Sessions are in-memory; all durable state lives on the character store.
    """

    def __init__(
        self,
        store: CharacterStore,
        classes: ClassDataProvider,
        settings: SpellbookSettings | None = None,
        oracle: SpellListOracle | None = None,
        notifier: NotificationSink | None = None,
    ):
        self.store = store
        self.classes = classes
        self.settings = settings or SpellbookSettings()
        self.oracle = oracle
        self.notifier = notifier
        self._sessions: dict[str, PreparationSession] = {}

    async def open_session(self, character_id: str) -> PreparationSession:
        """Return the character's session, creating and loading it once."""
        session = self._sessions.get(character_id)
        if session is not None and session.is_active():
            return session

        session = PreparationSession(
            character_id,
            self.store,
            self.classes,
            self.settings,
            oracle=self.oracle,
            notifier=self.notifier,
        )
        await session.load()
        self._sessions[character_id] = session
        return session

    def get_session(self, character_id: str) -> PreparationSession | None:
        return self._sessions.get(character_id)

    def end_session(self, character_id: str) -> bool:
        """Drop a character's session. Unsaved changes are lost."""
        session = self._sessions.pop(character_id, None)
        if session is None:
            return False
        session.state = SessionState.ENDED
        session.caps.invalidate(character_id)
        logger.info("Ended session for %s", character_id)
        return True

    def list_active_sessions(self) -> list[str]:
        return [
            cid for cid, session in self._sessions.items()
            if session.is_active()
        ]

    def cleanup_stale_sessions(self, max_idle_seconds: int = 3600) -> int:
        """End sessions idle for longer than max_idle_seconds."""
        now = time.time()
        stale = [
            cid for cid, session in self._sessions.items()
            if now - session.last_activity > max_idle_seconds
        ]
        for cid in stale:
            self.end_session(cid)
        return len(stale)
