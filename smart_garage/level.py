"""
Parking level: one floor of the garage with its own space grid and
access rules.
"""

import logging
import sys
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .models import (
    LevelConfig,
    LevelType,
    ParkingSpace,
    SpaceOccupiedError,
    SpaceType,
    VehicleType,
)
from .results import LevelStatus

logger = logging.getLogger(__name__)

UNSUITABLE_SCORE = sys.maxsize


class ParkingLevel:
    """
    A single level in a multi-level parking structure.

    The grid shape is fixed at construction; only space occupancy and the
    vehicle/space mappings change afterwards. Space ids have the form
    ``L{level}-R{row}-{position}`` (1-based row and position).
    """

    def __init__(
        self,
        level_number: int,
        name: str,
        level_type: LevelType,
        rows: Sequence[Sequence[SpaceType]],
        has_elevator_access: bool = True,
        has_stair_access: bool = True,
        allowed_vehicle_types: Optional[Iterable[VehicleType]] = None
    ):
        if not rows or any(len(row) == 0 for row in rows):
            raise ValueError(f"Level {level_number} needs at least one non-empty row")

        self.level_number = level_number
        self.name = name
        self.level_type = level_type
        self.has_elevator_access = has_elevator_access
        self.has_stair_access = has_stair_access
        self.allowed_vehicle_types = frozenset(
            allowed_vehicle_types if allowed_vehicle_types is not None else VehicleType
        )

        self._rows: Tuple[Tuple[ParkingSpace, ...], ...] = tuple(
            tuple(
                ParkingSpace(f"L{level_number}-R{row_index}-{position}", space_type)
                for position, space_type in enumerate(row, start=1)
            )
            for row_index, row in enumerate(rows, start=1)
        )
        self._spaces: Dict[str, ParkingSpace] = {
            space.space_id: space for space in self._iter_spaces()
        }
        self._vehicle_to_spaces: Dict[str, Tuple[str, ...]] = {}
        self._vehicle_types: Dict[str, VehicleType] = {}

    @classmethod
    def from_config(cls, config: LevelConfig) -> 'ParkingLevel':
        return cls(
            level_number=config.level_number,
            name=config.name,
            level_type=config.level_type,
            rows=config.rows,
            has_elevator_access=config.has_elevator_access,
            has_stair_access=config.has_stair_access,
            allowed_vehicle_types=config.allowed_vehicle_types,
        )

    def _iter_spaces(self) -> Iterator[ParkingSpace]:
        for row in self._rows:
            yield from row

    @property
    def rows(self) -> Tuple[Tuple[ParkingSpace, ...], ...]:
        """Read-only view of the grid handed to allocation strategies"""
        return self._rows

    # =========================================================================
    # Suitability
    # =========================================================================

    def can_accommodate(self, vehicle_type: VehicleType) -> bool:
        return vehicle_type in self.allowed_vehicle_types

    def has_appropriate_access(self, vehicle_type: VehicleType) -> bool:
        """Motorcycles need stairs or an elevator; cars and vans need the elevator/ramp"""
        if vehicle_type == VehicleType.MOTORCYCLE:
            return self.has_stair_access or self.has_elevator_access
        if vehicle_type in (VehicleType.CAR, VehicleType.VAN):
            return self.has_elevator_access
        raise ValueError(f"Unhandled vehicle type: {vehicle_type}")

    @staticmethod
    def is_space_suitable(space: ParkingSpace, vehicle_type: VehicleType) -> bool:
        if vehicle_type == VehicleType.MOTORCYCLE:
            return True
        if vehicle_type == VehicleType.CAR:
            return space.space_type in (SpaceType.REGULAR, SpaceType.COMPACT)
        if vehicle_type == VehicleType.VAN:
            return space.space_type == SpaceType.REGULAR
        raise ValueError(f"Unhandled vehicle type: {vehicle_type}")

    def available_spaces_for(self, vehicle_type: VehicleType) -> int:
        if not self.can_accommodate(vehicle_type):
            return 0
        return sum(
            1 for space in self._iter_spaces()
            if not space.is_occupied and self.is_space_suitable(space, vehicle_type)
        )

    def is_suitable_for(self, vehicle_type: VehicleType, required_spaces: int = 1) -> bool:
        return (
            self.can_accommodate(vehicle_type)
            and self.has_appropriate_access(vehicle_type)
            and self.available_spaces_for(vehicle_type) >= required_spaces
        )

    def priority_score(self, vehicle_type: VehicleType) -> int:
        """
        Lower is better.

        Base score by level type (ground 1, elevated 2, underground 3),
        minus one for motorcycles on elevated levels and vans on the
        ground level, plus an occupancy penalty of floor(rate * 5).
        """
        if not self.can_accommodate(vehicle_type) or not self.has_appropriate_access(vehicle_type):
            return UNSUITABLE_SCORE

        if self.level_type == LevelType.GROUND:
            score = 1
        elif self.level_type == LevelType.ELEVATED:
            score = 2
        elif self.level_type == LevelType.UNDERGROUND:
            score = 3
        else:
            raise ValueError(f"Unhandled level type: {self.level_type}")

        if vehicle_type == VehicleType.MOTORCYCLE and self.level_type == LevelType.ELEVATED:
            score -= 1
        elif vehicle_type == VehicleType.VAN and self.level_type == LevelType.GROUND:
            score -= 1

        return score + int(self.occupancy_rate * 5)

    # =========================================================================
    # Occupancy
    # =========================================================================

    @property
    def total_spaces(self) -> int:
        return len(self._spaces)

    @property
    def occupied_spaces(self) -> int:
        return sum(1 for space in self._iter_spaces() if space.is_occupied)

    @property
    def available_spaces(self) -> int:
        return self.total_spaces - self.occupied_spaces

    @property
    def occupancy_rate(self) -> float:
        return self.occupied_spaces / self.total_spaces

    @property
    def is_full(self) -> bool:
        return self.available_spaces == 0

    @property
    def is_empty(self) -> bool:
        return self.occupied_spaces == 0

    def find_space(self, space_id: str) -> Optional[ParkingSpace]:
        return self._spaces.get(space_id)

    def occupy_spaces(self, vehicle_id: str, vehicle_type: VehicleType, space_ids: Sequence[str]):
        """
        Commit an allocation returned by a strategy.

        Raises:
            KeyError: a space id does not belong to this level
            SpaceOccupiedError: a space is already held
        """
        spaces = [self._spaces[space_id] for space_id in space_ids]
        busy = [space.space_id for space in spaces if space.is_occupied]
        if busy:
            raise SpaceOccupiedError(f"Level {self.level_number}: spaces already occupied: {busy}")
        for space in spaces:
            space.occupy(vehicle_id)
        self._vehicle_to_spaces[vehicle_id] = tuple(space_ids)
        self._vehicle_types[vehicle_id] = vehicle_type
        logger.debug(f"Level {self.level_number}: {vehicle_id} occupies {list(space_ids)}")

    def release_vehicle(self, vehicle_id: str) -> List[str]:
        """Vacate every space held by the vehicle; returns the freed ids"""
        space_ids = self._vehicle_to_spaces.pop(vehicle_id, ())
        self._vehicle_types.pop(vehicle_id, None)
        freed = [space_id for space_id in space_ids if self._spaces[space_id].vacate()]
        if freed:
            logger.debug(f"Level {self.level_number}: {vehicle_id} released {freed}")
        return freed

    def vehicle_spaces(self, vehicle_id: str) -> Tuple[str, ...]:
        return self._vehicle_to_spaces.get(vehicle_id, ())

    def vehicle_type_of(self, vehicle_id: str) -> Optional[VehicleType]:
        return self._vehicle_types.get(vehicle_id)

    def parked_vehicles(self) -> Dict[str, Tuple[str, ...]]:
        return dict(self._vehicle_to_spaces)

    def level_status(self) -> LevelStatus:
        compact = [s for s in self._iter_spaces() if s.space_type == SpaceType.COMPACT]
        regular = [s for s in self._iter_spaces() if s.space_type == SpaceType.REGULAR]
        occupied = self.occupied_spaces
        return LevelStatus(
            level_number=self.level_number,
            level_name=self.name,
            level_type=self.level_type,
            total_spaces=self.total_spaces,
            available_spaces=self.total_spaces - occupied,
            occupied_spaces=occupied,
            total_compact_spaces=len(compact),
            occupied_compact_spaces=sum(1 for s in compact if s.is_occupied),
            total_regular_spaces=len(regular),
            occupied_regular_spaces=sum(1 for s in regular if s.is_occupied),
            has_elevator_access=self.has_elevator_access,
            has_stair_access=self.has_stair_access,
            allowed_vehicle_types=self.allowed_vehicle_types,
        )

    def __repr__(self) -> str:
        return (
            f"ParkingLevel({self.level_number}, {self.name!r}, "
            f"{self.occupied_spaces}/{self.total_spaces} occupied, {self.level_type.value})"
        )
