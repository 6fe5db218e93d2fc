"""
Swap Tracker - One swap per class per eligible period.

A swap is one uncheck ("unlearned") plus one check ("learned") inside a
level-up or long-rest period. State per (class_id, period):
- unlearned_spell_id / learned_spell_id: the single tracked slot each
- original_checked: what was prepared when the period's first toggle
  happened, captured lazily

Toggling a tracked spell back is an undo, not a second swap. Completing a
period drops its state for every class.
"""

from __future__ import annotations
import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from ..rules.types import DenyReason, PeriodKind, SpellCategory

logger = logging.getLogger(__name__)

TrackingKey = tuple[str, PeriodKind]


@dataclass
class SwapTrackingState:
    """Swap slots for one class in one period."""
    unlearned_spell_id: str | None = None
    learned_spell_id: str | None = None
    original_checked: frozenset[str] = field(default_factory=frozenset)

    @property
    def has_unlearned(self) -> bool:
        return self.unlearned_spell_id is not None

    @property
    def has_learned(self) -> bool:
        return self.learned_spell_id is not None

    @property
    def is_empty(self) -> bool:
        return not (self.has_unlearned or self.has_learned)


@dataclass(frozen=True)
class SwapVerdict:
    allowed: bool
    reason: DenyReason | None = None
    message: str | None = None

    @classmethod
    def allow(cls) -> SwapVerdict:
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: DenyReason, message: str) -> SwapVerdict:
        return cls(allowed=False, reason=reason, message=message)


class SwapTracker:
    """
    Swap state machine for one spell category on one character.

    can_toggle() is a pure check; record() is the only mutation besides
    complete() / clear().
    """

    def __init__(self, category: SpellCategory, character_id: str = ""):
        self.category = category
        self.character_id = character_id
        self._states: dict[TrackingKey, SwapTrackingState] = {}

    def state(self, class_id: str, period: PeriodKind) -> SwapTrackingState | None:
        return self._states.get((class_id, period))

    def can_toggle(
        self,
        class_id: str,
        period: PeriodKind,
        spell_id: str,
        checking: bool,
        baseline: Iterable[str] = (),
    ) -> SwapVerdict:
        """
        Whether this toggle fits in the period's single swap.

        baseline stands in for original_checked when the period has no
        state yet.
        """
        state = self.state(class_id, period)
        original = state.original_checked if state else frozenset(baseline)
        unlearned = state.unlearned_spell_id if state else None
        learned = state.learned_spell_id if state else None
        prefix = self.category.value

        if not checking:
            if unlearned is not None and unlearned != spell_id and spell_id in original:
                return SwapVerdict.deny(DenyReason.ONLY_ONE_SWAP, f"{prefix}.only-one-swap")
            return SwapVerdict.allow()

        if spell_id in original:
            return SwapVerdict.allow()
        if learned is not None and learned != spell_id:
            return SwapVerdict.deny(DenyReason.ONLY_ONE_SWAP, f"{prefix}.only-one-swap")
        if unlearned is None:
            return SwapVerdict.deny(
                DenyReason.MUST_UNLEARN_FIRST, f"{prefix}.must-unlearn-first"
            )
        return SwapVerdict.allow()

    def record(
        self,
        class_id: str,
        period: PeriodKind,
        spell_id: str,
        checking: bool,
        baseline: Iterable[str] = (),
    ) -> SwapTrackingState:
        """
        Apply an accepted toggle to the period's state.

        baseline is the class's prepared set before this toggle; it becomes
        original_checked when the state is first created.
        """
        key = (class_id, period)
        state = self._states.get(key)
        if state is None:
            state = SwapTrackingState(original_checked=frozenset(baseline))
            self._states[key] = state

        in_original = spell_id in state.original_checked
        if not checking and in_original:
            if state.unlearned_spell_id == spell_id:
                state.unlearned_spell_id = None
            else:
                state.unlearned_spell_id = spell_id
        elif checking and not in_original:
            if state.learned_spell_id == spell_id:
                state.learned_spell_id = None
            else:
                state.learned_spell_id = spell_id
        elif not checking and state.learned_spell_id == spell_id:
            state.learned_spell_id = None
        elif checking and state.unlearned_spell_id == spell_id:
            state.unlearned_spell_id = None

        logger.debug(
            "%s swap %s/%s: unlearned=%s learned=%s",
            self.category.value, class_id, period.value,
            state.unlearned_spell_id, state.learned_spell_id,
        )
        return state

    def complete(self, period: PeriodKind) -> int:
        """Drop the period's state for every class. Returns how many were dropped."""
        keys = [key for key in self._states if key[1] == period]
        for key in keys:
            del self._states[key]
        if keys:
            logger.info(
                "Completed %s %s swaps for %d classes",
                self.category.value, period.value, len(keys),
            )
        return len(keys)

    def clear(self):
        self._states.clear()

    def items(self) -> Iterator[tuple[TrackingKey, SwapTrackingState]]:
        return iter(list(self._states.items()))

    def load(self, states: dict[TrackingKey, SwapTrackingState]):
        """Replace all tracked state (used when reading from the store)."""
        self._states = dict(states)

    def __len__(self) -> int:
        return len(self._states)
