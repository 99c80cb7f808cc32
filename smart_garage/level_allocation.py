"""
Level Allocation Strategy

Chooses which level a vehicle should park on. A level is only a
candidate when it admits the vehicle type, grants the access that type
needs, and still has a compatible free space; candidates are ranked by
``ParkingLevel.priority_score`` (lower wins, first minimum on ties).
"""

import logging
from typing import Iterable, List, Optional

from .level import ParkingLevel
from .models import VehicleType
from .results import LevelUtilizationStats, OptimalLevelResult

logger = logging.getLogger(__name__)


class LevelAllocationStrategy:
    """Selects levels for single vehicles and fleets, and reports utilization."""

    def find_optimal_level(
        self,
        levels: Iterable[ParkingLevel],
        vehicle_type: VehicleType
    ) -> OptimalLevelResult:
        """
        Pick the single best level for a vehicle type.

        Args:
            levels: Candidate levels, in a deterministic order
            vehicle_type: Type of the vehicle to place

        Returns:
            OptimalLevelResult with the chosen level or a failure reason
        """
        known_type = VehicleType.lookup(vehicle_type)
        if known_type is None:
            return OptimalLevelResult(False, None, f"Unknown vehicle type: {vehicle_type}")
        vehicle_type = known_type

        best: Optional[ParkingLevel] = None
        best_score = None
        for level in levels:
            if not level.is_suitable_for(vehicle_type):
                continue
            score = level.priority_score(vehicle_type)
            if best_score is None or score < best_score:
                best, best_score = level, score

        if best is None:
            logger.debug(f"No suitable level for {vehicle_type.value}")
            return OptimalLevelResult(
                False, None, f"No suitable levels available for {vehicle_type.value}"
            )

        reason = (
            f"Selected {best.name} (Level {best.level_number}) - "
            f"Priority Score: {best_score}, "
            f"Available: {best.available_spaces_for(vehicle_type)} spaces"
        )
        return OptimalLevelResult(True, best, reason)

    def find_multiple_levels(
        self,
        levels: Iterable[ParkingLevel],
        vehicle_type: VehicleType,
        required_spaces: int
    ) -> List[ParkingLevel]:
        """
        All suitable levels with at least ``required_spaces`` compatible free
        spaces, best first. Used for fleet placement.
        """
        suitable = [
            level for level in levels
            if level.is_suitable_for(vehicle_type, required_spaces)
        ]
        # sorted() is stable, so equal scores keep input order
        return sorted(suitable, key=lambda level: level.priority_score(vehicle_type))

    def get_level_utilization_stats(self, levels: Iterable[ParkingLevel]) -> LevelUtilizationStats:
        levels = list(levels)
        if not levels:
            return LevelUtilizationStats(0, 0, 0.0, 0.0)

        total = sum(level.total_spaces for level in levels)
        occupied = sum(level.occupied_spaces for level in levels)
        rates = [level.occupancy_rate for level in levels]

        most = max(levels, key=lambda level: level.occupancy_rate)
        least = min(levels, key=lambda level: level.occupancy_rate)

        return LevelUtilizationStats(
            total_spaces=total,
            occupied_spaces=occupied,
            overall_occupancy=occupied / total if total else 0.0,
            average_occupancy=sum(rates) / len(rates),
            most_occupied_level=most.level_number,
            least_occupied_level=least.level_number,
            occupancy_variance=most.occupancy_rate - least.occupancy_rate,
        )
