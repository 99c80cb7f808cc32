"""
Space allocation strategies

Each strategy runs a first-fit scan over a level grid and returns the
candidate space ids. Strategies never mutate spaces: the caller commits
occupancy after a successful allocation.
"""

from typing import Dict, List, Protocol, Sequence

from .models import ParkingSpace, SpaceType, VehicleType
from .results import ParkingResult


Grid = Sequence[Sequence[ParkingSpace]]


class UnsupportedVehicleTypeError(KeyError):
    """No strategy is registered for the requested vehicle type"""


class SpaceAllocationStrategy(Protocol):
    def allocate(self, vehicle_id: str, grid: Grid) -> ParkingResult:
        ...


class MotorcycleStrategy:
    """Motorcycles take the first free space of any size."""

    def allocate(self, vehicle_id: str, grid: Grid) -> ParkingResult:
        for row in grid:
            for space in row:
                if not space.is_occupied:
                    return ParkingResult.allocated(space.space_id)
        return ParkingResult.failure("No available space for motorcycle")


class CarStrategy:
    """Cars prefer a regular space and fall back to a compact one."""

    def allocate(self, vehicle_id: str, grid: Grid) -> ParkingResult:
        for wanted in (SpaceType.REGULAR, SpaceType.COMPACT):
            for row in grid:
                for space in row:
                    if not space.is_occupied and space.space_type == wanted:
                        return ParkingResult.allocated(space.space_id)
        return ParkingResult.failure("No available regular or compact space for car")


class VanStrategy:
    """Vans need two contiguous regular spaces in the same row."""

    def allocate(self, vehicle_id: str, grid: Grid) -> ParkingResult:
        for row in grid:
            for first, second in zip(row, row[1:]):
                if (
                    not first.is_occupied
                    and not second.is_occupied
                    and first.space_type == SpaceType.REGULAR
                    and second.space_type == SpaceType.REGULAR
                ):
                    return ParkingResult.allocated(first.space_id, second.space_id)
        return ParkingResult.failure("No two contiguous regular spaces available for van")


class StrategyRegistry:
    """Explicit vehicle-type -> strategy map, built once and injected."""

    def __init__(self, strategies: Dict[VehicleType, SpaceAllocationStrategy]):
        self._strategies = dict(strategies)

    def get(self, vehicle_type: VehicleType) -> SpaceAllocationStrategy:
        try:
            return self._strategies[vehicle_type]
        except KeyError:
            raise UnsupportedVehicleTypeError(
                f"No parking strategy available for vehicle type: {vehicle_type}"
            ) from None

    def with_strategy(
        self, vehicle_type: VehicleType, strategy: SpaceAllocationStrategy
    ) -> 'StrategyRegistry':
        """Return a copy with one strategy substituted"""
        strategies = dict(self._strategies)
        strategies[vehicle_type] = strategy
        return StrategyRegistry(strategies)

    def vehicle_types(self) -> List[VehicleType]:
        return list(self._strategies)


def build_strategy_registry() -> StrategyRegistry:
    return StrategyRegistry({
        VehicleType.MOTORCYCLE: MotorcycleStrategy(),
        VehicleType.CAR: CarStrategy(),
        VehicleType.VAN: VanStrategy(),
    })
