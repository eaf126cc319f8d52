"""
Random terrain generation.

Land is drawn from weighted terrain types, then lakes are grown by hex
flood fill until roughly the requested share of the map is water.
"""

import random
import logging
from collections import deque
from typing import Optional

from .map import HexMap, Position, TerrainType, TerrainInfo, offset_neighbors

logger = logging.getLogger(__name__)

LAND_WEIGHTS = {
    TerrainType.PLAINS: 0.6,
    TerrainType.MOUNTAINS: 0.2,
    TerrainType.FOREST: 0.2,
}


class MapGenerator:
    """Builds fresh HexMaps for new games."""

    LAKE_MIN_SIZE = 5
    LAKE_MAX_SIZE = 8
    LAKE_MAX_RETRIES = 10

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        terrain_info: Optional[dict[TerrainType, TerrainInfo]] = None,
    ):
        self.rng = rng or random.Random()
        self.terrain_info = terrain_info

    def random_land(self) -> TerrainType:
        types = list(LAND_WEIGHTS)
        return self.rng.choices(types, weights=[LAND_WEIGHTS[t] for t in types])[0]

    def generate(self, rows: int, columns: int, water_coverage: float = 0.15) -> HexMap:
        """Generate a rows x columns map."""
        terrain = [[self.random_land() for _ in range(columns)] for _ in range(rows)]

        lakes = int(rows * columns * water_coverage / self.LAKE_MIN_SIZE)
        for _ in range(lakes):
            self._create_lake(terrain)

        hex_map = HexMap.from_terrain(terrain, self.terrain_info)
        logger.debug(f"Generated map: {hex_map.get_stats()}")
        return hex_map

    def _create_lake(self, terrain: list[list[TerrainType]]):
        """Flood-fill one body of water, retrying when it comes out too small."""
        rows, columns = len(terrain), len(terrain[0])

        for _ in range(self.LAKE_MAX_RETRIES):
            # Keep the seed one tile away from the edges
            start = Position(
                min(max(self.rng.randrange(rows), 1), max(rows - 2, 0)),
                min(max(self.rng.randrange(columns), 1), max(columns - 2, 0)),
            )

            water: list[Position] = []
            to_check = deque([start])
            while len(water) < self.LAKE_MAX_SIZE and to_check:
                current = to_check.popleft()
                if terrain[current.row][current.column] == TerrainType.WATER:
                    continue

                terrain[current.row][current.column] = TerrainType.WATER
                water.append(current)

                candidates = [
                    p for p in offset_neighbors(current)
                    if 0 <= p.row < rows and 0 <= p.column < columns
                    and terrain[p.row][p.column] != TerrainType.WATER
                ]
                self.rng.shuffle(candidates)
                to_check.extend(candidates)

            if len(water) >= self.LAKE_MIN_SIZE:
                return

            # Too small: give the tiles back to land and try elsewhere
            for pos in water:
                terrain[pos.row][pos.column] = self.random_land()
