"""
Spellprep - Spell Preparation Rules Engine

A deterministic, rules-driven engine deciding which spell and cantrip
preparation changes a character may make. The engine provides:
- Per-class rule configuration (legacy / modern defaults plus overrides)
- Preparation caps per class
- One-swap-per-period tracking for level-up and long rest
- A per-class prepared-spell ledger
- Allow / deny decisions with reason codes
"""

__version__ = "0.1.0"
