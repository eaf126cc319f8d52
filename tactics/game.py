"""
Game lifecycle management for the tactics engine.

GameStore holds every in-progress game; GameManager is the only component
that mutates them. Each action validates all of its preconditions first and
only then commits, so a rejected action leaves the game untouched.
"""

import uuid
import random
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, Optional

from .map import HexMap, Position, TerrainType, hex_distance, load_terrain_info
from .mapgen import MapGenerator
from .movement import MovementPlanner
from .rules import Rules, load_rules
from .units import NEUTRAL_PLAYER_ID, Player, Unit, UnitFactory, UnitType, neutral_player
from .combat import TacticalCombat

logger = logging.getLogger(__name__)

PLAYER_COLOR = "#4a90d9"
NEUTRAL_UNIT_TYPES = [UnitType.WARRIOR, UnitType.ARCHER]
NEUTRAL_TERRAIN = (TerrainType.PLAINS, TerrainType.FOREST)


def default_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


@dataclass
class GameState:
    """Complete state of one game."""
    players: list[Player]
    current_player_id: str
    hex_map: HexMap
    current_turn: int = 0

    def get_player(self, player_id: str) -> Optional[Player]:
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    def next_player_id(self) -> str:
        """Next non-neutral player in seating order after the current one."""
        seats = [p.id for p in self.players if not p.is_neutral]
        if self.current_player_id not in seats:
            return seats[0]
        index = seats.index(self.current_player_id)
        return seats[(index + 1) % len(seats)]

    def to_dict(self) -> dict:
        return {
            "players": [p.to_dict() for p in self.players],
            "currentPlayerId": self.current_player_id,
            "map": self.hex_map.to_dict(),
            "currentTurn": self.current_turn,
        }


@dataclass
class ActionResult:
    """Returned by every GameManager action to tell the transport what happened."""
    success: bool
    reason: Optional[str] = None
    combat_result: Optional[dict] = None
    healed_units: Optional[list[dict]] = None
    fortified: Optional[dict] = None
    leveled_up: Optional[dict] = None
    dismissed: Optional[dict] = None
    reachable: Optional[list[dict]] = None

    @classmethod
    def failed(cls, reason: str) -> "ActionResult":
        return cls(success=False, reason=reason)

    def metadata(self) -> dict:
        """Optional GAME_UPDATED fields describing the change."""
        data = {}
        if self.combat_result is not None:
            data["combatResult"] = self.combat_result
        if self.healed_units is not None:
            data["healedUnits"] = self.healed_units
        if self.fortified is not None:
            data["fortified"] = self.fortified
        if self.leveled_up is not None:
            data["leveledUp"] = self.leveled_up
        if self.dismissed is not None:
            data["dismissed"] = self.dismissed
        return data


class GameStore:
    """Registry of in-progress games keyed by opaque game id."""

    def __init__(self):
        self.games: dict[str, GameState] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def add(self, game_id: str, state: GameState):
        with self._registry_lock:
            self.games[game_id] = state
            self._locks[game_id] = threading.Lock()

    def get(self, game_id: str) -> Optional[GameState]:
        return self.games.get(game_id)

    def remove(self, game_id: str) -> Optional[GameState]:
        with self._registry_lock:
            self._locks.pop(game_id, None)
            return self.games.pop(game_id, None)

    def lock_for(self, game_id: str) -> Optional[threading.Lock]:
        with self._registry_lock:
            return self._locks.get(game_id)

    def __contains__(self, game_id: str) -> bool:
        return game_id in self.games

    def __len__(self) -> int:
        return len(self.games)


class GameManager:
    """Creates games and applies player actions to them."""

    def __init__(
        self,
        store: Optional[GameStore] = None,
        rules: Optional[Rules] = None,
        data_path: Path | str = "data",
        unit_factory: Optional[UnitFactory] = None,
        map_generator: Optional[MapGenerator] = None,
        combat: Optional[TacticalCombat] = None,
        rng: Optional[random.Random] = None,
        id_factory: Optional[Callable[[str], str]] = None,
    ):
        self.store = store if store is not None else GameStore()
        self.rules = rules or load_rules(data_path)
        self.rng = rng or random.Random()
        self.id_factory = id_factory or default_id
        self.units = unit_factory or UnitFactory(data_path)
        self.map_generator = map_generator or MapGenerator(
            rng=self.rng, terrain_info=load_terrain_info(data_path)
        )
        self.combat = combat or TacticalCombat(rules=self.rules, rng=self.rng)

    # ── Game creation ────────────────────────────────────────────────

    def create_game(self, player_name: Optional[str] = None) -> tuple[str, str]:
        """Start a new game for one player. Returns (game_id, player_id)."""
        game_id = self.id_factory("game")
        while game_id in self.store:
            game_id = self.id_factory("game")

        player = Player(
            id=self.id_factory("player"),
            name=player_name or "Player 1",
            color=PLAYER_COLOR,
        )
        hex_map = self.map_generator.generate(
            self.rules.map_rows, self.rules.map_columns, self.rules.water_coverage
        )
        state = GameState(
            players=[player, neutral_player()],
            current_player_id=player.id,
            hex_map=hex_map,
        )

        start = self._place_starting_units(state, player.id)
        placed = self._scatter_neutral_units(state, start)

        self.store.add(game_id, state)
        logger.info(
            f"Game {game_id} created for {player.id}: "
            f"{hex_map.rows}x{hex_map.columns} map, {placed} neutral units"
        )
        return game_id, player.id

    def _place_starting_units(self, state: GameState, player_id: str) -> Position:
        """Settler on the center tile, warrior beside it; both forced to plains."""
        hex_map = state.hex_map
        if hex_map.columns < 2:
            raise RuntimeError("Map too narrow for starting units")

        center = Position(hex_map.rows // 2, hex_map.columns // 2)
        beside = Position(center.row, center.column + 1)
        if not hex_map.in_bounds(beside):
            beside = Position(center.row, center.column - 1)

        for pos, unit_type in ((center, UnitType.SETTLER), (beside, UnitType.WARRIOR)):
            hex_map.get_tile(pos).terrain = TerrainType.PLAINS
            hex_map.place(self.units.create_unit(unit_type, player_id, pos), pos)

        return center

    def _scatter_neutral_units(self, state: GameState, start: Position) -> int:
        """Drop hostile neutral units away from the start, with a bounded retry."""
        hex_map = state.hex_map
        placed = 0
        attempts = 0

        while placed < self.rules.neutral_unit_count and attempts < self.rules.neutral_max_attempts:
            attempts += 1
            pos = Position(self.rng.randrange(hex_map.rows), self.rng.randrange(hex_map.columns))
            tile = hex_map.get_tile(pos)
            if tile.occupied or tile.terrain not in NEUTRAL_TERRAIN:
                continue
            if hex_distance(start, pos) < self.rules.neutral_min_distance:
                continue

            unit_type = self.rng.choice(NEUTRAL_UNIT_TYPES)
            hex_map.place(self.units.create_unit(unit_type, NEUTRAL_PLAYER_ID, pos), pos)
            placed += 1

        if placed < self.rules.neutral_unit_count:
            logger.info(
                f"Placed {placed}/{self.rules.neutral_unit_count} neutral units "
                f"after {attempts} attempts"
            )
        return placed

    # ── Queries ──────────────────────────────────────────────────────

    def get_game_state(self, game_id: str) -> Optional[GameState]:
        return self.store.get(game_id)

    def snapshot(self, game_id: str) -> Optional[dict]:
        """Full JSON-ready state of a game."""
        state = self.store.get(game_id)
        return state.to_dict() if state else None

    def get_reachable(self, game_id: str, player_id: str, unit_id: str) -> ActionResult:
        """Destinations the player's unit could move to this turn."""
        with self._session(game_id) as state:
            if state is None:
                return self._reject(game_id, "game not found")
            unit = state.hex_map.find_unit(unit_id)
            if unit is None or unit.owner_id != player_id:
                return self._reject(game_id, f"unit {unit_id} not available to {player_id}")

            planner = MovementPlanner(state.hex_map)
            tiles = [
                {**pos.to_dict(), "cost": int(cost)}
                for pos, cost in planner.reachable_tiles(unit).items()
            ]
            return ActionResult(success=True, reachable=tiles)

    # ── Actions ──────────────────────────────────────────────────────

    def place_unit(
        self, game_id: str, player_id: str, position: Position, unit_type: UnitType
    ) -> ActionResult:
        with self._session(game_id) as state:
            if state is None:
                return self._reject(game_id, "game not found")
            reason = self._check_turn(state, player_id)
            if reason:
                return self._reject(game_id, reason)

            tile = state.hex_map.get_tile(position)
            if tile is None:
                return self._reject(game_id, f"position out of bounds: {position}")
            if tile.occupied:
                return self._reject(game_id, "tile already occupied")
            if tile.terrain == TerrainType.WATER:
                return self._reject(game_id, "cannot place unit on water")

            unit = self.units.create_unit(unit_type, player_id, position)
            state.hex_map.place(unit, position)
            logger.debug(f"Game {game_id}: placed {unit.id} at {position}")
            return ActionResult(success=True)

    def move_unit(
        self, game_id: str, player_id: str, unit_id: str, position: Position
    ) -> ActionResult:
        with self._session(game_id) as state:
            if state is None:
                return self._reject(game_id, "game not found")
            reason = self._check_turn(state, player_id)
            if reason:
                return self._reject(game_id, reason)

            unit = state.hex_map.find_unit(unit_id)
            reason = self._check_owner(unit, unit_id, player_id)
            if reason:
                return self._reject(game_id, reason)

            cost = MovementPlanner(state.hex_map).validate_move(unit, position)
            if cost is None:
                return self._reject(game_id, f"{unit_id} cannot reach {position}")

            state.hex_map.relocate(unit, position)
            unit.spend_movement(cost)
            unit.fortified = False
            logger.debug(f"Game {game_id}: {unit_id} moved to {position} for {cost}")
            return ActionResult(success=True)

    def attack(
        self, game_id: str, player_id: str, attacker_pos: Position, defender_pos: Position
    ) -> ActionResult:
        with self._session(game_id) as state:
            if state is None:
                return self._reject(game_id, "game not found")
            reason = self._check_turn(state, player_id)
            if reason:
                return self._reject(game_id, reason)

            hex_map = state.hex_map
            attacker_tile = hex_map.get_tile(attacker_pos)
            defender_tile = hex_map.get_tile(defender_pos)
            attacker = attacker_tile.unit if attacker_tile else None
            defender = defender_tile.unit if defender_tile else None

            reason = self.combat.check_eligibility(attacker, defender, player_id)
            if reason:
                return self._reject(game_id, reason)

            outcome = self.combat.resolve_attack(attacker, defender)

            if outcome.attacker_died:
                hex_map.remove(attacker_pos)
            if outcome.defender_died:
                hex_map.remove(defender_pos)
                if outcome.attacker_advances:
                    hex_map.relocate(attacker, defender_pos)

            logger.debug(
                f"Game {game_id}: {attacker.id} attacked {defender.id} "
                f"({outcome.attacker_damage}/{outcome.defender_damage} dmg)"
            )
            return ActionResult(success=True, combat_result=outcome.to_dict())

    def fortify_unit(self, game_id: str, player_id: str, unit_id: str) -> ActionResult:
        with self._session(game_id) as state:
            if state is None:
                return self._reject(game_id, "game not found")
            reason = self._check_turn(state, player_id)
            if reason:
                return self._reject(game_id, reason)

            unit = state.hex_map.find_unit(unit_id)
            reason = self._check_owner(unit, unit_id, player_id)
            if reason:
                return self._reject(game_id, reason)
            if not self.combat.fortify(unit):
                return self._reject(game_id, f"{unit_id} cannot fortify")

            return ActionResult(success=True, fortified={"unitId": unit.id, "unitType": unit.unit_type.value})

    def level_up_unit(self, game_id: str, player_id: str, unit_id: str) -> ActionResult:
        """Spend banked experience on one level.

        Only succeeds with auto_promote disabled; otherwise combat promotes
        units as soon as they reach the threshold and nothing is banked.
        """
        with self._session(game_id) as state:
            if state is None:
                return self._reject(game_id, "game not found")
            reason = self._check_turn(state, player_id)
            if reason:
                return self._reject(game_id, reason)

            unit = state.hex_map.find_unit(unit_id)
            reason = self._check_owner(unit, unit_id, player_id)
            if reason:
                return self._reject(game_id, reason)

            level_up = self.combat.level_up(unit)
            if level_up is None:
                return self._reject(game_id, f"{unit_id} cannot level up")

            return ActionResult(success=True, leveled_up={"unitId": unit.id, **level_up.to_dict()})

    def dismiss_unit(self, game_id: str, player_id: str, unit_id: str) -> ActionResult:
        with self._session(game_id) as state:
            if state is None:
                return self._reject(game_id, "game not found")
            reason = self._check_turn(state, player_id)
            if reason:
                return self._reject(game_id, reason)

            unit = state.hex_map.find_unit(unit_id)
            reason = self._check_owner(unit, unit_id, player_id)
            if reason:
                return self._reject(game_id, reason)

            state.hex_map.remove(unit.position)
            return ActionResult(success=True, dismissed={"unitId": unit.id, "unitType": unit.unit_type.value})

    def end_turn(self, game_id: str, player_id: str) -> ActionResult:
        """Heal fortified units, restore movement, pass the turn."""
        with self._session(game_id) as state:
            if state is None:
                return self._reject(game_id, "game not found")
            reason = self._check_turn(state, player_id)
            if reason:
                return self._reject(game_id, reason)

            healed = []
            for unit in state.hex_map.get_units_by_owner(player_id):
                if unit.fortified:
                    healing = unit.heal(self.rules.fortify_heal)
                    healed.append({
                        "unitId": unit.id,
                        "unitType": unit.unit_type.value,
                        "healing": healing,
                    })

            for unit in state.hex_map.get_units():
                unit.reset_movement()

            state.current_turn += 1
            state.current_player_id = state.next_player_id()
            logger.debug(f"Game {game_id}: turn {state.current_turn}, {len(healed)} units healed")
            return ActionResult(success=True, healed_units=healed)

    # ── Helpers ──────────────────────────────────────────────────────

    @contextmanager
    def _session(self, game_id: str) -> Iterator[Optional[GameState]]:
        """Hold the game's lock for the duration of one action."""
        lock = self.store.lock_for(game_id)
        if lock is None:
            yield None
            return
        with lock:
            yield self.store.get(game_id)

    @staticmethod
    def _check_turn(state: GameState, player_id: str) -> Optional[str]:
        if state.get_player(player_id) is None:
            return f"unknown player {player_id}"
        if state.current_player_id != player_id:
            return f"not {player_id}'s turn"
        return None

    @staticmethod
    def _check_owner(unit: Optional[Unit], unit_id: str, player_id: str) -> Optional[str]:
        if unit is None:
            return f"unit {unit_id} not found"
        if unit.owner_id != player_id:
            return f"unit {unit_id} not owned by {player_id}"
        return None

    @staticmethod
    def _reject(game_id: str, reason: str) -> ActionResult:
        logger.debug(f"Game {game_id}: action rejected, {reason}")
        return ActionResult.failed(reason)
