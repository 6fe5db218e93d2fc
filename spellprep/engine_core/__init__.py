"""
Engine Core - Preparation state and toggle decisions.

The engine is the runtime that:
1. Holds the per-class PreparationLedger
2. Derives caps (CapCalculator, cached in CapCache)
3. Tracks one swap per class per period (SwapTracker)
4. Decides and applies toggles (PreparationDecisionEngine)
"""

from .ledger import PreparationLedger
from .caps import CapCache, CapCalculator, CapSnapshot, LevelBaseline
from .swap_tracker import SwapTracker, SwapTrackingState, SwapVerdict
from .decision import Decision, PreparationDecisionEngine, ToggleContext, ToggleRequest
from .rituals import ritual_available, ritual_spells

__all__ = [
    "PreparationLedger",
    "CapCache",
    "CapCalculator",
    "CapSnapshot",
    "LevelBaseline",
    "SwapTracker",
    "SwapTrackingState",
    "SwapVerdict",
    "Decision",
    "PreparationDecisionEngine",
    "ToggleContext",
    "ToggleRequest",
    "ritual_available",
    "ritual_spells",
]
