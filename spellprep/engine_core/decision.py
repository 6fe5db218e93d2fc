"""
Preparation Decision Engine - Can this spell be toggled right now?

Decision order for one toggle (class, spell, checking):
1. No-op toggles (already in the requested state) are allowed
2. Unenforced: allowed. NotifyOnly: allowed, with an over-limit notice
   when a check would exceed the cap
3. Checking at or over the cap: denied (cap-reached)
4. Unchecking a committed spell: the class's swap mode must permit it
   right now (none / outside level-up / outside long rest ->
   swap-not-allowed). Spells checked since the last commit are free to
   uncheck.
5. Inside an eligible period: the swap tracker decides whether the toggle
   still fits in the period's single swap

decide() is pure and may be called any number of times; apply() is the
only path that mutates the ledger and swap trackers.
"""

from __future__ import annotations
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from ..rules.resolver import RuleConfigResolver
from ..rules.types import (
    ClassArchetype,
    ClassRuleConfig,
    ClassSpellKey,
    DenyReason,
    EnforcementBehavior,
    PeriodKind,
    SpellCategory,
    SpellRef,
    SwapMode,
)
from ..store.interfaces import NotificationSink, Severity, SpellListOracle
from .caps import CapCalculator
from .ledger import PreparationLedger
from .swap_tracker import SwapTracker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToggleContext:
    """Which eligible periods are open for this toggle."""
    is_level_up: bool = False
    is_long_rest: bool = False

    def period_for(self, mode: SwapMode) -> PeriodKind | None:
        """The open period a swap mode applies to, if any."""
        if mode is SwapMode.ON_LEVEL_UP and self.is_level_up:
            return PeriodKind.LEVEL_UP
        if mode is SwapMode.ON_LONG_REST and self.is_long_rest:
            return PeriodKind.LONG_REST
        return None


@dataclass(frozen=True)
class ToggleRequest:
    """A user toggling one spell's prepared box for one class."""
    class_id: str
    spell: SpellRef
    checking: bool
    context: ToggleContext = field(default_factory=ToggleContext)

    @classmethod
    def check(cls, class_id: str, spell: SpellRef, context: ToggleContext | None = None) -> ToggleRequest:
        return cls(class_id, spell, True, context or ToggleContext())

    @classmethod
    def uncheck(cls, class_id: str, spell: SpellRef, context: ToggleContext | None = None) -> ToggleRequest:
        return cls(class_id, spell, False, context or ToggleContext())


@dataclass(frozen=True)
class Decision:
    """
    Verdict for one toggle.

    period is set when an allowed toggle falls inside an eligible swap
    period and must be recorded by the swap tracker on apply.
    """
    allowed: bool
    reason: DenyReason | None = None
    message: str | None = None
    period: PeriodKind | None = None
    notices: tuple[str, ...] = ()

    @classmethod
    def allow(
        cls,
        period: PeriodKind | None = None,
        notices: Iterable[str] = (),
    ) -> Decision:
        return cls(allowed=True, period=period, notices=tuple(notices))

    @classmethod
    def deny(cls, reason: DenyReason, message: str) -> Decision:
        return cls(allowed=False, reason=reason, message=message)


class PreparationDecisionEngine:
    """
    Owns toggle decisions for one character.

    Usage:
        engine = PreparationDecisionEngine("actor-1", resolver, caps, ledger,
                                           cantrip_swaps, spell_swaps)
        request = ToggleRequest.uncheck("wizard", fire_bolt, ToggleContext(is_long_rest=True))
        decision = engine.decide(request)
        if decision.allowed:
            engine.apply(request, decision)
    """

    def __init__(
        self,
        character_id: str,
        resolver: RuleConfigResolver,
        caps: CapCalculator,
        ledger: PreparationLedger,
        cantrip_swaps: SwapTracker,
        spell_swaps: SwapTracker,
        oracle: SpellListOracle | None = None,
        notifier: NotificationSink | None = None,
    ):
        self.character_id = character_id
        self.resolver = resolver
        self.caps = caps
        self.ledger = ledger
        self.cantrip_swaps = cantrip_swaps
        self.spell_swaps = spell_swaps
        self.oracle = oracle
        self.notifier = notifier
        # Committed prepared state of every pair apply() touched since the
        # last mark_committed(); untouched pairs are committed as they are.
        self._committed: dict[ClassSpellKey, bool] = {}
        caps.register_ledger(ledger)

    def was_prepared(self, class_id: str, spell_id: str) -> bool:
        """Whether the spell was prepared for the class at the last commit."""
        key = ClassSpellKey(class_id, spell_id)
        if key in self._committed:
            return self._committed[key]
        return self.ledger.is_prepared(class_id, spell_id)

    def mark_committed(self):
        """The ledger as it stands is now the committed state."""
        self._committed.clear()

    def tracker_for(self, category: SpellCategory) -> SwapTracker:
        if category is SpellCategory.CANTRIP:
            return self.cantrip_swaps
        return self.spell_swaps

    def _swap_mode(self, config: ClassRuleConfig, category: SpellCategory) -> SwapMode:
        if category is SpellCategory.CANTRIP:
            return config.cantrip_swap_mode
        return config.spell_swap_mode

    def _period(
        self,
        class_id: str,
        config: ClassRuleConfig,
        category: SpellCategory,
        context: ToggleContext,
    ) -> PeriodKind | None:
        period = context.period_for(self._swap_mode(config, category))
        if (
            period is PeriodKind.LONG_REST
            and category is SpellCategory.CANTRIP
            and not ClassArchetype.from_class_id(class_id).supports_long_rest_cantrip_swap
        ):
            return None
        return period

    def _baseline(self, class_id: str, category: SpellCategory) -> frozenset[str]:
        """Prepared ids of a category that count against the class cap."""
        return frozenset(
            ref.spell_id
            for ref in self.ledger.entries_for_class(class_id)
            if ref.category is category and ref.counts_against_cap
        )

    # -------------------------------------------------------------------------
    # Decision
    # -------------------------------------------------------------------------

    def decide(self, request: ToggleRequest) -> Decision:
        """Verdict for a toggle. Never mutates anything."""
        if not isinstance(request.checking, bool):
            raise ValueError(f"checking must be a bool, got {request.checking!r}")

        class_id = request.class_id
        spell = request.spell
        if not class_id:
            logger.warning("Toggle of %s without a class id, allowing", spell.spell_id)
            return Decision.allow()

        if self.ledger.is_prepared(class_id, spell.spell_id) == request.checking:
            return Decision.allow()

        category = spell.category
        config = self.resolver.resolve(self.character_id, class_id)
        period = self._period(class_id, config, category, request.context)
        behavior = self.resolver.enforcement_behavior(self.character_id)

        if behavior is EnforcementBehavior.UNENFORCED:
            return Decision.allow(period)
        if behavior is EnforcementBehavior.NOTIFY_ONLY:
            return Decision.allow(period, self._over_limit_notices(class_id, spell, request.checking))

        prefix = category.value
        if request.checking:
            if spell.counts_against_cap and self._at_cap(class_id, category):
                return Decision.deny(DenyReason.CAP_REACHED, f"{prefix}.maximum-reached")
        elif spell.counts_against_cap and self.was_prepared(class_id, spell.spell_id):
            locked = self._mode_lock(class_id, config, category, request.context)
            if locked is not None:
                return locked

        if period is None or not spell.counts_against_cap:
            return Decision.allow(period)
        return self._swap_decision(class_id, config, spell, request.checking, period)

    def _at_cap(self, class_id: str, category: SpellCategory) -> bool:
        current = self.caps.current_count(self.character_id, class_id, category)
        maximum = self.caps.max_for(self.character_id, class_id, category)
        logger.debug(
            "%s check for %s: current=%d max=%d",
            category.value, class_id, current, maximum,
        )
        return current >= maximum

    def _over_limit_notices(self, class_id: str, spell: SpellRef, checking: bool) -> list[str]:
        if not checking or not spell.counts_against_cap:
            return []
        category = spell.category
        current = self.caps.current_count(self.character_id, class_id, category)
        maximum = self.caps.max_for(self.character_id, class_id, category)
        if current < maximum:
            return []
        return [f"{class_id}: {current + 1}/{maximum} {category.value}s prepared, over the limit"]

    def _mode_lock(
        self,
        class_id: str,
        config: ClassRuleConfig,
        category: SpellCategory,
        context: ToggleContext,
    ) -> Decision | None:
        """Deny an uncheck the swap mode does not permit right now."""
        prefix = category.value
        mode = self._swap_mode(config, category)
        if mode is SwapMode.NONE:
            return Decision.deny(DenyReason.SWAP_NOT_ALLOWED, f"{prefix}.locked-no-swapping")
        if mode is SwapMode.ON_LEVEL_UP and not context.is_level_up:
            return Decision.deny(DenyReason.SWAP_NOT_ALLOWED, f"{prefix}.locked-outside-level-up")
        if mode is SwapMode.ON_LONG_REST:
            archetype = ClassArchetype.from_class_id(class_id)
            if category is SpellCategory.CANTRIP and not archetype.supports_long_rest_cantrip_swap:
                return Decision.deny(DenyReason.SWAP_NOT_ALLOWED, f"{prefix}.wizard-rule-only")
            if not context.is_long_rest:
                return Decision.deny(DenyReason.SWAP_NOT_ALLOWED, f"{prefix}.locked-outside-long-rest")
        return None

    def _swap_decision(
        self,
        class_id: str,
        config: ClassRuleConfig,
        spell: SpellRef,
        checking: bool,
        period: PeriodKind,
    ) -> Decision:
        category = spell.category
        tracker = self.tracker_for(category)
        baseline = self._baseline(class_id, category)

        if checking and self.oracle is not None and not self.oracle.is_candidate(
            class_id, spell.spell_id, config.custom_spell_list_id
        ):
            return Decision.deny(DenyReason.NOT_ON_SPELL_LIST, f"{category.value}.not-on-spell-list")

        # Leveled spells are bound by the cap alone when checked. Cantrips
        # are too while the cap exceeds what the period started with; the
        # learned slot then follows the latest new cantrip.
        if checking:
            if category is SpellCategory.SPELL:
                return Decision.allow(period)
            state = tracker.state(class_id, period)
            original = state.original_checked if state else baseline
            if self.caps.max_cantrips(self.character_id, class_id) > len(original):
                return Decision.allow(period)

        verdict = tracker.can_toggle(class_id, period, spell.spell_id, checking, baseline)
        if not verdict.allowed:
            return Decision.deny(verdict.reason, verdict.message)
        return Decision.allow(period)

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------

    def apply(self, request: ToggleRequest, decision: Decision | None = None) -> Decision:
        """
        Decide (unless a decision is passed) and, if allowed, mutate.

        The swap tracker sees the ledger as it was before the toggle.
        """
        if decision is None:
            decision = self.decide(request)
        if not decision.allowed:
            logger.debug(
                "Denied %s of %s for %s: %s",
                "check" if request.checking else "uncheck",
                request.spell.spell_id, request.class_id, decision.reason.value,
            )
            return decision

        category = request.spell.category
        if decision.period is not None:
            baseline = self._baseline(request.class_id, category)
            self.tracker_for(category).record(
                request.class_id,
                decision.period,
                request.spell.spell_id,
                request.checking,
                baseline,
            )
        key = ClassSpellKey(request.class_id, request.spell.spell_id)
        self._committed.setdefault(key, self.ledger.is_prepared(key.class_id, key.spell_id))
        self.ledger.set_prepared(request.class_id, request.spell, request.checking)

        if self.notifier is not None:
            for notice in decision.notices:
                self.notifier.notify(notice, Severity.INFO)
        return decision

    def complete(self, period: PeriodKind) -> int:
        """Close a period for every class. The ledger is untouched."""
        return self.cantrip_swaps.complete(period) + self.spell_swaps.complete(period)

    def preview(
        self,
        class_id: str,
        spells: Iterable[SpellRef],
        context: ToggleContext | None = None,
    ) -> dict[str, Decision]:
        """
        The decision each spell's box would get if toggled now.

        Prepared spells are previewed as unchecks, the rest as checks.
        """
        context = context or ToggleContext()
        result = {}
        for spell in spells:
            checking = not self.ledger.is_prepared(class_id, spell.spell_id)
            result[spell.spell_id] = self.decide(ToggleRequest(class_id, spell, checking, context))
        return result
