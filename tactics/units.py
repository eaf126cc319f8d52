"""
Unit state management for the tactics engine.

Units are built by the UnitFactory from a type-keyed table of base stats.
"""

import uuid
import logging
import yaml
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional
from pathlib import Path

from .map import Position

logger = logging.getLogger(__name__)

NEUTRAL_PLAYER_ID = "neutral"


class UnitType(Enum):
    WARRIOR = "WARRIOR"
    ARCHER = "ARCHER"
    SETTLER = "SETTLER"


@dataclass
class Player:
    id: str
    name: str
    color: str

    @property
    def is_neutral(self) -> bool:
        return self.id == NEUTRAL_PLAYER_ID

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "color": self.color}


def neutral_player() -> Player:
    return Player(id=NEUTRAL_PLAYER_ID, name="Neutral", color="#808080")


@dataclass
class UnitConfig:
    """Base stats for a unit type."""
    unit_type: UnitType
    max_health: int
    attack_strength: int
    range: int
    movement_points: int


@dataclass
class Unit:
    """A unit on the board."""
    id: str
    unit_type: UnitType
    owner_id: str
    position: Position
    max_health: int
    current_health: int
    attack_strength: int
    range: int
    movement_points: int
    max_movement_points: int
    level: int = 1
    experience: int = 0
    fortified: bool = False

    @property
    def is_alive(self) -> bool:
        return self.current_health > 0

    @property
    def is_melee(self) -> bool:
        return self.range <= 1

    @property
    def can_act(self) -> bool:
        return self.movement_points > 0

    def take_damage(self, amount: int):
        """Subtract damage. Death is resolved by the combat resolver."""
        self.current_health -= amount

    def heal(self, amount: int) -> int:
        """Heal up to max health; returns the amount actually restored."""
        before = self.current_health
        self.current_health = min(self.max_health, self.current_health + amount)
        return self.current_health - before

    def spend_movement(self, cost: int):
        self.movement_points = max(0, self.movement_points - cost)

    def exhaust(self):
        self.movement_points = 0

    def reset_movement(self):
        self.movement_points = self.max_movement_points

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.unit_type.value,
            "ownerId": self.owner_id,
            "position": self.position.to_dict(),
            "maxHealth": self.max_health,
            "currentHealth": self.current_health,
            "attackStrength": self.attack_strength,
            "range": self.range,
            "movementPoints": self.movement_points,
            "maxMovementPoints": self.max_movement_points,
            "level": self.level,
            "experience": self.experience,
            "fortified": self.fortified,
        }


DEFAULT_UNIT_CONFIGS = {
    UnitType.WARRIOR: (100, 30, 1, 2),
    UnitType.ARCHER: (100, 25, 2, 2),
    UnitType.SETTLER: (100, 0, 0, 2),
}


def default_unit_id(unit_type: UnitType) -> str:
    return f"{unit_type.value}-{uuid.uuid4().hex[:9]}"


class UnitFactory:
    """Creates units from the base-stat table."""

    def __init__(
        self,
        data_path: Path | str = "data",
        id_factory: Optional[Callable[[UnitType], str]] = None,
    ):
        self.data_path = Path(data_path)
        self.id_factory = id_factory or default_unit_id
        self.type_definitions: dict[UnitType, UnitConfig] = {}

        self._load_type_definitions()

    def _load_type_definitions(self):
        """Load unit type definitions from schema file."""
        self._create_default_type_definitions()

        schema_file = self.data_path / "schema" / "units.yaml"
        if not schema_file.exists():
            logger.warning(f"Unit schema not found: {schema_file}, using defaults")
            return

        with open(schema_file) as f:
            data = yaml.safe_load(f) or {}

        for type_id, stats in data.get("unit_types", {}).items():
            try:
                unit_type = UnitType(type_id.upper())
            except ValueError:
                logger.warning(f"Unknown unit type in schema: {type_id}")
                continue
            base = self.type_definitions[unit_type]
            self.type_definitions[unit_type] = UnitConfig(
                unit_type=unit_type,
                max_health=stats.get("max_health", base.max_health),
                attack_strength=stats.get("attack_strength", base.attack_strength),
                range=stats.get("range", base.range),
                movement_points=stats.get("movement_points", base.movement_points),
            )

        logger.info(f"Loaded {len(self.type_definitions)} unit types from {schema_file}")

    def _create_default_type_definitions(self):
        for unit_type, (health, attack, rng, moves) in DEFAULT_UNIT_CONFIGS.items():
            self.type_definitions[unit_type] = UnitConfig(
                unit_type=unit_type,
                max_health=health,
                attack_strength=attack,
                range=rng,
                movement_points=moves,
            )

    def create_unit(self, unit_type: UnitType, owner_id: str, position: Position) -> Unit:
        """Create a full-health, fully-rested unit of the given type."""
        config = self.type_definitions[unit_type]
        return Unit(
            id=self.id_factory(unit_type),
            unit_type=unit_type,
            owner_id=owner_id,
            position=position,
            max_health=config.max_health,
            current_health=config.max_health,
            attack_strength=config.attack_strength,
            range=config.range,
            movement_points=config.movement_points,
            max_movement_points=config.movement_points,
        )
