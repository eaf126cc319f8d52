"""
Tactical combat resolution - one attack between two units on the hex grid.

Handles:
- Attack eligibility (ownership, movement, range)
- Damage with fortification reduction and melee counter-attacks
- Single-death rule with random survivor on mutual kills
- Experience, promotion, explicit level-ups and fortification
"""

import math
import random
from typing import Optional

from ..map import hex_distance
from ..rules import Rules
from ..units import Unit
from .base import CombatResolver, CombatOutcome, LevelUp


class TacticalCombat(CombatResolver):
    """Resolves attacks and unit progression."""

    def __init__(
        self,
        rules: Optional[Rules] = None,
        rng: Optional[random.Random] = None,
        rng_seed: Optional[int] = None,
    ):
        super().__init__(rng=rng, rng_seed=rng_seed)
        self.rules = rules or Rules()

    def check_eligibility(
        self,
        attacker: Optional[Unit],
        defender: Optional[Unit],
        player_id: str,
    ) -> Optional[str]:
        """Return why an attack is illegal, or None if it may proceed."""
        if attacker is None or defender is None:
            return "attacker or defender missing"
        if attacker.owner_id != player_id:
            return "attacker not owned by acting player"
        if defender.owner_id == player_id:
            return "cannot attack own unit"
        if not attacker.can_act:
            return "attacker has no movement points"
        distance = hex_distance(attacker.position, defender.position)
        if attacker.range < 1 or distance > attacker.range:
            return f"target out of range ({distance} > {attacker.range})"
        return None

    def calculate_damage(self, attacker: Unit, defender: Unit) -> int:
        """Damage attacker deals to defender, never below 1."""
        strength = attacker.attack_strength
        if defender.fortified:
            strength -= self.rules.fortify_reduction
        return max(1, strength)

    def can_counter(self, attacker: Unit, defender: Unit) -> bool:
        """Only melee attacks draw a counter, and only from armed defenders."""
        return attacker.is_melee and defender.attack_strength > 0

    def resolve_attack(self, attacker: Unit, defender: Unit) -> CombatOutcome:
        """Resolve one attack, mutating both units.

        Grid bookkeeping (removing the dead, advancing the attacker) is left
        to the caller, driven by the returned outcome.
        """
        outcome = CombatOutcome(
            attacker_id=attacker.id,
            defender_id=defender.id,
            attacker_damage=0,
            defender_damage=0,
            initial_attacker_level=attacker.level,
            initial_defender_level=defender.level,
        )

        # Attacking breaks fortification
        if attacker.fortified:
            attacker.fortified = False
            outcome.notes.append("Attacker left fortified position")

        outcome.attacker_damage = self.calculate_damage(attacker, defender)
        if defender.fortified:
            outcome.notes.append(f"Defender fortified (-{self.rules.fortify_reduction})")
        if self.can_counter(attacker, defender):
            outcome.defender_damage = self.calculate_damage(defender, attacker)

        defender.take_damage(outcome.attacker_damage)
        attacker.take_damage(outcome.defender_damage)

        self._resolve_deaths(attacker, defender, outcome)

        # Experience for survivors: half the damage dealt, rounded up, plus kill bonus
        if not outcome.attacker_died:
            outcome.attacker_xp = self.calculate_experience(
                outcome.attacker_damage, outcome.defender_died
            )
            outcome.attacker_level_up = self.apply_experience(attacker, outcome.attacker_xp)
        if not outcome.defender_died:
            outcome.defender_xp = self.calculate_experience(
                outcome.defender_damage, outcome.attacker_died
            )
            outcome.defender_level_up = self.apply_experience(defender, outcome.defender_xp)

        attacker.exhaust()

        outcome.attacker_advances = outcome.defender_died and attacker.is_melee
        return outcome

    def _resolve_deaths(self, attacker: Unit, defender: Unit, outcome: CombatOutcome):
        """At most one unit dies per combat."""
        if not attacker.is_alive and not defender.is_alive:
            if self.coin_flip():
                defender.current_health = 1
                outcome.attacker_died = True
                outcome.notes.append("Both units fell; defender survives with 1 HP")
            else:
                attacker.current_health = 1
                outcome.defender_died = True
                outcome.notes.append("Both units fell; attacker survives with 1 HP")
        else:
            outcome.attacker_died = not attacker.is_alive
            outcome.defender_died = not defender.is_alive

    def calculate_experience(self, damage_dealt: int, killed_opponent: bool) -> int:
        xp = math.ceil(damage_dealt / 2)
        if killed_opponent:
            xp += self.rules.kill_xp_bonus
        return xp

    def apply_experience(self, unit: Unit, xp: int) -> LevelUp:
        """Add experience, promoting while the threshold is met."""
        unit.experience += xp
        if not self.rules.auto_promote:
            return LevelUp(level_gained=False)

        levels = 0
        while unit.experience >= self.rules.xp_per_level:
            unit.experience -= self.rules.xp_per_level
            unit.level += 1
            unit.max_health += self.rules.level_health_bonus
            unit.current_health = unit.max_health
            unit.attack_strength += self.rules.level_attack_bonus
            levels += 1

        if not levels:
            return LevelUp(level_gained=False)
        return LevelUp(level_gained=True, new_level=unit.level, levels=levels)

    def level_up(self, unit: Unit) -> Optional[LevelUp]:
        """Spend banked experience on one level. None if not allowed."""
        if unit.experience < self.rules.xp_per_level or not unit.can_act:
            return None

        unit.exhaust()
        unit.experience -= self.rules.xp_per_level
        unit.level += 1
        unit.attack_strength += self.rules.level_attack_bonus
        unit.heal(self.rules.level_up_heal)
        return LevelUp(level_gained=True, new_level=unit.level, levels=1)

    def fortify(self, unit: Unit) -> bool:
        """Dig in: costs the rest of the turn, reduces incoming damage."""
        if unit.fortified or not unit.can_act:
            return False
        unit.fortified = True
        unit.exhaust()
        return True
