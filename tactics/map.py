"""
Hex grid map system for the tactics engine.

Uses offset coordinates (row, column) in an "odd-r" layout: odd rows are
shoved half a hex to the right, so neighbor columns depend on row parity.
Distances are computed through cube coordinates.
"""

import math
import logging
import yaml
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Iterator, TYPE_CHECKING
from pathlib import Path

if TYPE_CHECKING:
    from .units import Unit

logger = logging.getLogger(__name__)

INFINITE_COST = math.inf


class TerrainType(Enum):
    PLAINS = "PLAINS"
    FOREST = "FOREST"
    MOUNTAINS = "MOUNTAINS"
    WATER = "WATER"


@dataclass(frozen=True)
class Position:
    """Grid address of a tile."""
    row: int
    column: int

    def to_dict(self) -> dict:
        return {"row": self.row, "column": self.column}

    @classmethod
    def from_dict(cls, data: dict) -> "Position":
        return cls(row=int(data["row"]), column=int(data["column"]))


@dataclass
class TerrainInfo:
    """Terrain type properties loaded from schema."""
    movement_cost: float

    @property
    def passable(self) -> bool:
        return self.movement_cost != INFINITE_COST


DEFAULT_TERRAIN = {
    TerrainType.PLAINS: 1,
    TerrainType.FOREST: 1,
    TerrainType.MOUNTAINS: 2,
    TerrainType.WATER: INFINITE_COST,
}


def default_terrain_info() -> dict[TerrainType, TerrainInfo]:
    """Built-in terrain table used when no schema is available."""
    return {
        terrain: TerrainInfo(movement_cost=cost)
        for terrain, cost in DEFAULT_TERRAIN.items()
    }


def load_terrain_info(data_path: Path | str = "data") -> dict[TerrainType, TerrainInfo]:
    """Load terrain type definitions from data/schema/map.yaml."""
    schema_path = Path(data_path) / "schema" / "map.yaml"
    if not schema_path.exists():
        logger.warning(f"Terrain schema not found: {schema_path}, using defaults")
        return default_terrain_info()

    with open(schema_path) as f:
        schema = yaml.safe_load(f) or {}

    terrain_info = default_terrain_info()
    for terrain_id, info in schema.get("terrain_types", {}).items():
        try:
            terrain = TerrainType(terrain_id.upper())
        except ValueError:
            logger.warning(f"Unknown terrain type in schema: {terrain_id}")
            continue
        cost = info.get("movement_cost", DEFAULT_TERRAIN[terrain])
        # YAML has no infinity literal we can rely on; null marks impassable
        if cost is None or cost == "impassable":
            cost = INFINITE_COST
        else:
            cost = int(cost)
        terrain_info[terrain] = TerrainInfo(movement_cost=cost)
    return terrain_info


@dataclass
class Tile:
    """Individual hex tile in the grid."""
    terrain: TerrainType
    position: Position
    unit: Optional["Unit"] = None

    @property
    def occupied(self) -> bool:
        return self.unit is not None

    def to_dict(self) -> dict:
        data = {
            "type": self.terrain.value,
            "position": self.position.to_dict(),
        }
        if self.unit is not None:
            data["unit"] = self.unit.to_dict()
        return data


def offset_neighbors(position: Position) -> list[Position]:
    """Six neighbor coordinates of a tile, ignoring grid bounds."""
    row, col = position.row, position.column
    if row % 2 == 1:
        offsets = [(-1, 0), (-1, 1), (0, 1), (0, -1), (1, 0), (1, 1)]
    else:
        offsets = [(-1, -1), (-1, 0), (0, 1), (0, -1), (1, -1), (1, 0)]
    return [Position(row + dr, col + dc) for dr, dc in offsets]


def to_cube(position: Position) -> tuple[int, int, int]:
    """Convert odd-r offset coordinates to cube coordinates (x, y, z)."""
    x = position.column - (position.row - (position.row & 1)) // 2
    z = position.row
    y = -x - z
    return (x, y, z)


def hex_distance(a: Position, b: Position) -> int:
    """Calculate distance in hexes between two tiles."""
    ax, ay, az = to_cube(a)
    bx, by, bz = to_cube(b)
    return max(abs(ax - bx), abs(ay - by), abs(az - bz))


class HexMap:
    """
    Rectangular hex grid for one game.

    Tiles are stored row-major; tiles[row][column].position always equals
    (row, column).
    """

    def __init__(
        self,
        tiles: list[list[Tile]],
        terrain_info: Optional[dict[TerrainType, TerrainInfo]] = None,
    ):
        if not tiles or not tiles[0]:
            raise ValueError("Hex map needs at least one tile")
        self.tiles = tiles
        self.rows = len(tiles)
        self.columns = len(tiles[0])
        self.terrain_info = terrain_info or default_terrain_info()

    @classmethod
    def from_terrain(
        cls,
        terrain: list[list[TerrainType]],
        terrain_info: Optional[dict[TerrainType, TerrainInfo]] = None,
    ) -> "HexMap":
        """Build a map from a grid of terrain types."""
        tiles = [
            [Tile(terrain=t, position=Position(r, c)) for c, t in enumerate(row)]
            for r, row in enumerate(terrain)
        ]
        return cls(tiles, terrain_info)

    # Tile access
    def in_bounds(self, position: Position) -> bool:
        return 0 <= position.row < self.rows and 0 <= position.column < self.columns

    def get_tile(self, position: Position) -> Optional[Tile]:
        """Get tile at coordinates, None when out of bounds."""
        if not self.in_bounds(position):
            return None
        return self.tiles[position.row][position.column]

    def iter_tiles(self) -> Iterator[Tile]:
        for row in self.tiles:
            yield from row

    def get_neighbors(self, position: Position) -> list[Tile]:
        """Get all adjacent in-bounds tiles."""
        neighbors = []
        for pos in offset_neighbors(position):
            tile = self.get_tile(pos)
            if tile:
                neighbors.append(tile)
        return neighbors

    # Movement support
    def get_movement_cost(self, tile: Tile) -> float:
        """Cost for a unit entering this tile; infinite when impassable."""
        info = self.terrain_info.get(tile.terrain)
        if not info:
            return INFINITE_COST
        return info.movement_cost

    def is_traversable(self, tile: Tile) -> bool:
        """Whether a moving unit may enter this tile."""
        if tile.occupied:
            return False
        info = self.terrain_info.get(tile.terrain)
        return info is not None and info.passable

    # Unit bookkeeping
    def place(self, unit: "Unit", position: Position):
        """Put a unit on an empty tile and sync its stored position."""
        tile = self.get_tile(position)
        if tile is None:
            raise ValueError(f"Position out of bounds: {position}")
        if tile.occupied:
            raise ValueError(f"Tile already occupied: {position}")
        tile.unit = unit
        unit.position = position

    def remove(self, position: Position) -> Optional["Unit"]:
        """Clear a tile, returning the unit that stood there."""
        tile = self.get_tile(position)
        if tile is None:
            return None
        unit, tile.unit = tile.unit, None
        return unit

    def relocate(self, unit: "Unit", destination: Position):
        """Move a unit from its current tile to an empty destination."""
        self.remove(unit.position)
        self.place(unit, destination)

    def find_unit(self, unit_id: str) -> Optional["Unit"]:
        for tile in self.iter_tiles():
            if tile.unit is not None and tile.unit.id == unit_id:
                return tile.unit
        return None

    def get_units(self) -> list["Unit"]:
        return [tile.unit for tile in self.iter_tiles() if tile.unit is not None]

    def get_units_by_owner(self, owner_id: str) -> list["Unit"]:
        return [u for u in self.get_units() if u.owner_id == owner_id]

    # Utility
    def get_stats(self) -> dict:
        """Get map statistics."""
        terrain_counts = {}
        for tile in self.iter_tiles():
            terrain = tile.terrain.value
            terrain_counts[terrain] = terrain_counts.get(terrain, 0) + 1
        return {
            "rows": self.rows,
            "columns": self.columns,
            "terrain_distribution": terrain_counts,
            "units": len(self.get_units()),
        }

    def to_dict(self) -> list[list[dict]]:
        return [[tile.to_dict() for tile in row] for row in self.tiles]
