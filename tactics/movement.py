"""
Movement planning over the hex grid.

Dijkstra search bounded by a unit's remaining movement points. WATER and
occupied tiles are never entered. All queries are read-only; the game
manager applies the move once validation succeeds.
"""

import heapq
import itertools
from typing import Optional

from .map import HexMap, Position, INFINITE_COST
from .units import Unit


class MovementPlanner:
    """Cost-bounded reachability and move validation for one map."""

    def __init__(self, hex_map: HexMap):
        self.hex_map = hex_map

    def _search(
        self,
        start: Position,
        budget: float = INFINITE_COST,
        target: Optional[Position] = None,
    ) -> dict[Position, float]:
        """Settle tiles in cost order from start.

        Stops once the cheapest frontier entry exceeds the budget, once the
        target is settled, or when the frontier runs dry. Returns the
        settled tiles with their minimal cost.
        """
        best = {start: 0}
        settled: dict[Position, float] = {}
        tie = itertools.count()
        frontier = [(0, next(tie), start)]

        while frontier:
            cost, _, current = heapq.heappop(frontier)
            if current in settled:
                continue
            if cost > budget:
                break

            settled[current] = cost
            if current == target:
                break

            for tile in self.hex_map.get_neighbors(current):
                if tile.position in settled or not self.hex_map.is_traversable(tile):
                    continue
                tentative = cost + self.hex_map.get_movement_cost(tile)
                if tentative < best.get(tile.position, INFINITE_COST):
                    best[tile.position] = tentative
                    heapq.heappush(frontier, (tentative, next(tie), tile.position))

        return settled

    def reachable_tiles(self, unit: Unit) -> dict[Position, float]:
        """Every tile the unit can reach this turn with its minimal cost.

        The unit's own tile is not included.
        """
        settled = self._search(unit.position, budget=unit.movement_points)
        settled.pop(unit.position, None)
        return settled

    def path_cost(
        self,
        start: Position,
        end: Position,
        budget: float = INFINITE_COST,
    ) -> float:
        """Minimal movement cost from start to end; infinite if unreachable."""
        settled = self._search(start, budget=budget, target=end)
        return settled.get(end, INFINITE_COST)

    def validate_move(self, unit: Unit, destination: Position) -> Optional[int]:
        """Return the cost of moving unit to destination, or None if illegal."""
        tile = self.hex_map.get_tile(destination)
        if tile is None or not self.hex_map.is_traversable(tile):
            return None

        cost = self.path_cost(unit.position, destination, budget=unit.movement_points)
        if cost == INFINITE_COST or cost > unit.movement_points:
            return None
        return int(cost)
