"""
Result and status objects returned by the allocation core

Every public operation reports its own verdict through one of these
objects; callers check ``success`` before trusting any other field.
Status objects are immutable snapshots and never expose live internal
collections.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple, Dict, Any, FrozenSet, TYPE_CHECKING

from .models import (
    VehicleType,
    LevelType,
    ElevatorState,
    ParkingReservation,
)

if TYPE_CHECKING:
    from .level import ParkingLevel


@dataclass(frozen=True)
class ParkingResult:
    """Outcome of a space-allocation strategy"""
    success: bool
    message: str
    allocated_spaces: Tuple[str, ...] = ()

    @classmethod
    def allocated(cls, *space_ids: str) -> 'ParkingResult':
        return cls(True, "Spaces available", tuple(space_ids))

    @classmethod
    def failure(cls, reason: str) -> 'ParkingResult':
        return cls(False, reason)


@dataclass(frozen=True)
class OptimalLevelResult:
    """Outcome of level selection"""
    success: bool
    level: Optional['ParkingLevel']
    reason: str


@dataclass(frozen=True)
class MultiLevelParkingResult:
    """Outcome of parking or removing a vehicle in the multi-level lot"""
    success: bool
    message: str
    vehicle_id: str
    assigned_spaces: Tuple[str, ...] = ()
    level_number: Optional[int] = None
    level_name: Optional[str] = None
    elevator_request_id: Optional[str] = None

    @property
    def requires_elevator(self) -> bool:
        return self.elevator_request_id is not None

    @classmethod
    def failure(cls, message: str, vehicle_id: str) -> 'MultiLevelParkingResult':
        return cls(False, message, vehicle_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "vehicle_id": self.vehicle_id,
            "assigned_spaces": list(self.assigned_spaces),
            "level_number": self.level_number,
            "level_name": self.level_name,
            "elevator_request_id": self.elevator_request_id,
        }


class ReservationResultType(Enum):
    CONFIRMED = "confirmed"
    WAITLISTED = "waitlisted"
    FAILED = "failed"


@dataclass(frozen=True)
class ReservationResult:
    """Outcome of a reservation request"""
    success: bool
    message: str
    result_type: ReservationResultType
    reservation: Optional[ParkingReservation] = None
    waitlist_position: Optional[int] = None

    @classmethod
    def confirmed(cls, reservation: ParkingReservation, message: str) -> 'ReservationResult':
        return cls(True, message, ReservationResultType.CONFIRMED, reservation)

    @classmethod
    def waitlisted(cls, reservation: ParkingReservation, position: int) -> 'ReservationResult':
        return cls(
            True,
            f"Added to waitlist. Position: {position}",
            ReservationResultType.WAITLISTED,
            reservation,
            position,
        )

    @classmethod
    def failure(cls, message: str) -> 'ReservationResult':
        return cls(False, message, ReservationResultType.FAILED)


@dataclass(frozen=True)
class LevelStatus:
    """Snapshot of one level's occupancy"""
    level_number: int
    level_name: str
    level_type: LevelType
    total_spaces: int
    available_spaces: int
    occupied_spaces: int
    total_compact_spaces: int
    occupied_compact_spaces: int
    total_regular_spaces: int
    occupied_regular_spaces: int
    has_elevator_access: bool
    has_stair_access: bool
    allowed_vehicle_types: FrozenSet[VehicleType]

    @property
    def occupancy_rate(self) -> float:
        if self.total_spaces == 0:
            return 0.0
        return self.occupied_spaces / self.total_spaces

    @property
    def is_full(self) -> bool:
        return self.available_spaces == 0

    @property
    def is_empty(self) -> bool:
        return self.occupied_spaces == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level_number": self.level_number,
            "level_name": self.level_name,
            "level_type": self.level_type.value,
            "total_spaces": self.total_spaces,
            "available_spaces": self.available_spaces,
            "occupied_spaces": self.occupied_spaces,
            "compact": {
                "total": self.total_compact_spaces,
                "occupied": self.occupied_compact_spaces,
            },
            "regular": {
                "total": self.total_regular_spaces,
                "occupied": self.occupied_regular_spaces,
            },
            "occupancy_percentage": round(self.occupancy_rate * 100, 2),
            "allowed_vehicle_types": sorted(v.value for v in self.allowed_vehicle_types),
        }


@dataclass(frozen=True)
class ElevatorStatus:
    """Snapshot of one elevator"""
    elevator_id: str
    current_level: int
    state: ElevatorState
    maintenance_mode: bool
    current_occupants: int
    max_capacity: int
    queue_length: int
    served_levels: Tuple[int, ...]
    van_compatible: bool
    last_operation_time: datetime
    current_request_id: Optional[str] = None

    @property
    def capacity_usage(self) -> float:
        if self.max_capacity <= 0:
            return 0.0
        return self.current_occupants / self.max_capacity

    @property
    def is_available(self) -> bool:
        return not self.maintenance_mode and self.state not in (
            ElevatorState.MAINTENANCE,
            ElevatorState.OUT_OF_SERVICE,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "elevator_id": self.elevator_id,
            "current_level": self.current_level,
            "state": self.state.value,
            "maintenance_mode": self.maintenance_mode,
            "current_occupants": self.current_occupants,
            "max_capacity": self.max_capacity,
            "queue_length": self.queue_length,
            "served_levels": list(self.served_levels),
            "van_compatible": self.van_compatible,
            "current_request_id": self.current_request_id,
        }


@dataclass(frozen=True)
class ElevatorSystemStats:
    """
    Fleet-wide elevator statistics.

    ``average_wait_seconds`` only covers requests that have an elevator;
    ``unassigned_requests`` reports how many tracked requests were left
    out of that average.
    """
    total_requests: int
    total_elevators: int
    active_elevators: int
    average_wait_seconds: float
    urgent_requests: int
    unassigned_requests: int
    requests_by_vehicle_type: Dict[VehicleType, int] = field(default_factory=dict)

    @property
    def system_efficiency(self) -> float:
        if self.total_elevators == 0:
            return 0.0
        return self.active_elevators / self.total_elevators

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "total_elevators": self.total_elevators,
            "active_elevators": self.active_elevators,
            "average_wait_seconds": round(self.average_wait_seconds, 2),
            "urgent_requests": self.urgent_requests,
            "unassigned_requests": self.unassigned_requests,
            "system_efficiency": round(self.system_efficiency * 100, 2),
            "requests_by_vehicle_type": {
                k.value: v for k, v in self.requests_by_vehicle_type.items()
            },
        }


@dataclass(frozen=True)
class LevelUtilizationStats:
    """Aggregate utilization across levels"""
    total_spaces: int
    occupied_spaces: int
    overall_occupancy: float
    average_occupancy: float
    most_occupied_level: Optional[int] = None
    least_occupied_level: Optional[int] = None
    occupancy_variance: float = 0.0

    @property
    def available_spaces(self) -> int:
        return self.total_spaces - self.occupied_spaces

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_spaces": self.total_spaces,
            "occupied_spaces": self.occupied_spaces,
            "available_spaces": self.available_spaces,
            "overall_occupancy": round(self.overall_occupancy * 100, 2),
            "average_occupancy": round(self.average_occupancy * 100, 2),
            "most_occupied_level": self.most_occupied_level,
            "least_occupied_level": self.least_occupied_level,
            "occupancy_variance": round(self.occupancy_variance * 100, 2),
        }


@dataclass(frozen=True)
class VehicleLocation:
    """Where a parked vehicle currently sits"""
    vehicle_id: str
    vehicle_type: VehicleType
    level_number: int
    level_name: str
    level_type: LevelType
    space_ids: Tuple[str, ...]

    @property
    def is_ground_level(self) -> bool:
        return self.level_number == 0

    @property
    def requires_elevator(self) -> bool:
        return not self.is_ground_level


@dataclass(frozen=True)
class LotStatus:
    """Snapshot of the whole multi-level lot"""
    lot_id: str
    levels: Tuple[LevelStatus, ...]
    elevators: Tuple[ElevatorStatus, ...]
    elevator_stats: ElevatorSystemStats
    system_operational: bool

    @property
    def total_spaces(self) -> int:
        return sum(level.total_spaces for level in self.levels)

    @property
    def occupied_spaces(self) -> int:
        return sum(level.occupied_spaces for level in self.levels)

    @property
    def available_spaces(self) -> int:
        return self.total_spaces - self.occupied_spaces

    @property
    def occupancy_rate(self) -> float:
        if self.total_spaces == 0:
            return 0.0
        return self.occupied_spaces / self.total_spaces

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lot_id": self.lot_id,
            "total_spaces": self.total_spaces,
            "occupied_spaces": self.occupied_spaces,
            "available_spaces": self.available_spaces,
            "occupancy_percentage": round(self.occupancy_rate * 100, 2),
            "system_operational": self.system_operational,
            "levels": [level.to_dict() for level in self.levels],
            "elevators": [elevator.to_dict() for elevator in self.elevators],
            "elevator_stats": self.elevator_stats.to_dict(),
        }
