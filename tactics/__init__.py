"""
Hex tactics engine: turn-based tactical combat on a hexagonal grid.

Core modules:
- map: Hex grid, terrain costs, distances
- mapgen: Random terrain generation
- units: Unit state and the unit factory
- movement: Cost-bounded reachability and move validation
- combat/: Attack resolution, experience, fortification
- game: Game registry and lifecycle management
- protocol: Client action messages
"""

from .map import HexMap, Tile, Position, TerrainType, hex_distance
from .mapgen import MapGenerator
from .rules import Rules, load_rules
from .units import Unit, UnitType, UnitFactory, Player, NEUTRAL_PLAYER_ID
from .movement import MovementPlanner
from .combat import TacticalCombat, CombatOutcome, LevelUp
from .game import GameManager, GameStore, GameState, ActionResult
from .protocol import parse_action, ProtocolError

__all__ = [
    # Map
    "HexMap", "Tile", "Position", "TerrainType", "hex_distance", "MapGenerator",
    # Rules
    "Rules", "load_rules",
    # Units
    "Unit", "UnitType", "UnitFactory", "Player", "NEUTRAL_PLAYER_ID",
    # Movement
    "MovementPlanner",
    # Combat
    "TacticalCombat", "CombatOutcome", "LevelUp",
    # Game management
    "GameManager", "GameStore", "GameState", "ActionResult",
    # Protocol
    "parse_action", "ProtocolError",
]
