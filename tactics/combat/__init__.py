"""
Combat resolution for the tactics engine.

Attack order: eligibility → fortification break → damage → deaths →
experience → movement spent → advance after melee kill.
"""

from .base import CombatResolver, CombatOutcome, LevelUp
from .resolver import TacticalCombat

__all__ = [
    "CombatResolver",
    "CombatOutcome",
    "LevelUp",
    "TacticalCombat",
]
