"""
Base combat resolution system with common mechanics.
"""

import random
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class LevelUp:
    """Promotion outcome for one unit."""
    level_gained: bool
    new_level: Optional[int] = None
    levels: int = 0

    def to_dict(self) -> dict:
        data = {"levelGained": self.level_gained}
        if self.new_level is not None:
            data["newLevel"] = self.new_level
        return data


@dataclass
class CombatOutcome:
    """Report of one attack. Computed per call, never stored."""
    attacker_id: str
    defender_id: str
    attacker_damage: int
    defender_damage: int
    attacker_died: bool = False
    defender_died: bool = False
    attacker_xp: int = 0
    defender_xp: int = 0
    attacker_level_up: Optional[LevelUp] = None
    defender_level_up: Optional[LevelUp] = None
    initial_attacker_level: int = 1
    initial_defender_level: int = 1
    attacker_advances: bool = False
    notes: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "attackerId": self.attacker_id,
            "defenderId": self.defender_id,
            "attackerDamage": self.attacker_damage,
            "defenderDamage": self.defender_damage,
            "attackerDied": self.attacker_died,
            "defenderDied": self.defender_died,
            "attackerXP": self.attacker_xp,
            "defenderXP": self.defender_xp,
            "attackerLevelUp": self.attacker_level_up.to_dict() if self.attacker_level_up else None,
            "defenderLevelUp": self.defender_level_up.to_dict() if self.defender_level_up else None,
            "initialAttackerLevel": self.initial_attacker_level,
            "initialDefenderLevel": self.initial_defender_level,
            "attackerAdvanced": self.attacker_advances,
            "notes": list(self.notes),
        }


class CombatResolver:
    """Base class for combat resolution."""

    def __init__(self, rng: Optional[random.Random] = None, rng_seed: Optional[int] = None):
        self.rng = rng or random.Random(rng_seed)

    def coin_flip(self) -> bool:
        """Fair 50/50 draw."""
        return self.rng.random() < 0.5
