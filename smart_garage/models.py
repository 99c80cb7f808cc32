"""
Data Models for the Smart Garage allocation core

This module contains the enumerations, entities and configuration
structures shared by the level allocator, elevator dispatcher and
reservation manager.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, List, Dict, Any


class VehicleType(Enum):
    """Closed set of vehicle kinds the garage accepts"""
    MOTORCYCLE = "motorcycle"
    CAR = "car"
    VAN = "van"

    @classmethod
    def parse(cls, value: str) -> 'VehicleType':
        """Parse a case-insensitive name or value ('car', 'VAN', ...)"""
        try:
            return cls[value.strip().upper()]
        except KeyError:
            return cls(value.strip().lower())

    @classmethod
    def lookup(cls, value: Any) -> Optional['VehicleType']:
        """Like ``parse`` but accepts members as-is and returns None for anything unknown"""
        if isinstance(value, cls):
            return value
        try:
            return cls.parse(value)
        except (AttributeError, ValueError):
            return None


class SpaceType(Enum):
    """Physical size class of a parking space"""
    COMPACT = "compact"
    REGULAR = "regular"


class LevelType(Enum):
    """Classification of a level, ordered by convenience"""
    GROUND = "ground"
    ELEVATED = "elevated"
    UNDERGROUND = "underground"

    @property
    def display_name(self) -> str:
        return f"{self.value.title()} Level"


class ElevatorState(Enum):
    """Movement state of an elevator"""
    IDLE = "idle"
    MOVING = "moving"
    LOADING = "loading"
    MAINTENANCE = "maintenance"
    # Reachable in the model but not driven by any transition yet
    OUT_OF_SERVICE = "out_of_service"


class ElevatorRequestStatus(Enum):
    """Lifecycle of a vehicle transport request"""
    WAITING = "waiting"
    ASSIGNED = "assigned"
    IN_TRANSIT = "in_transit"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (
            ElevatorRequestStatus.COMPLETED,
            ElevatorRequestStatus.CANCELLED,
            ElevatorRequestStatus.FAILED,
        )


class ReservationStatus(Enum):
    """Lifecycle of a parking reservation"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    WAITLISTED = "waitlisted"

    @property
    def is_terminal(self) -> bool:
        return self in (
            ReservationStatus.EXPIRED,
            ReservationStatus.CANCELLED,
            ReservationStatus.COMPLETED,
        )


class CustomerClass(Enum):
    """Customer classes and their fixed waitlist priority (lower wins)"""
    VIP = ("vip", 1)
    DISABLED = ("disabled", 2)
    REGULAR = ("regular", 5)

    def __init__(self, label: str, priority: int):
        self.label = label
        self.priority = priority

    @classmethod
    def parse(cls, value: str) -> 'CustomerClass':
        """Unknown labels fall back to REGULAR"""
        try:
            return cls[value.strip().upper()]
        except KeyError:
            return cls.REGULAR


class SpaceOccupiedError(RuntimeError):
    """Raised when a caller tries to occupy a space that is already held"""


# =============================================================================
# Entities
# =============================================================================

@dataclass
class ParkingSpace:
    """A single space in a level grid"""
    space_id: str
    space_type: SpaceType
    occupied_by: Optional[str] = None

    @property
    def is_occupied(self) -> bool:
        return self.occupied_by is not None

    def occupy(self, vehicle_id: str):
        if self.is_occupied:
            raise SpaceOccupiedError(
                f"Space {self.space_id} is already occupied by {self.occupied_by}"
            )
        self.occupied_by = vehicle_id

    def vacate(self) -> bool:
        """Free the space; returns False if it was already free"""
        if not self.is_occupied:
            return False
        self.occupied_by = None
        return True


@dataclass(eq=False)
class ElevatorRequest:
    """A unit of work: move one vehicle between two levels"""
    request_id: str
    from_level: int
    to_level: int
    vehicle_type: VehicleType
    vehicle_id: str
    request_time: datetime
    is_urgent: bool = False
    assigned_elevator_id: Optional[str] = None
    status: ElevatorRequestStatus = ElevatorRequestStatus.WAITING
    completion_time: Optional[datetime] = None

    def __post_init__(self):
        if self.assigned_elevator_id is not None and self.status == ElevatorRequestStatus.WAITING:
            self.status = ElevatorRequestStatus.ASSIGNED

    def assign_elevator(self, elevator_id: Optional[str]):
        """Assign (or with None, unassign) an elevator; keeps id/status in step"""
        self.assigned_elevator_id = elevator_id
        self.status = (
            ElevatorRequestStatus.ASSIGNED if elevator_id is not None
            else ElevatorRequestStatus.WAITING
        )

    def update_status(self, status: ElevatorRequestStatus, now: Optional[datetime] = None):
        self.status = status
        if status in (ElevatorRequestStatus.COMPLETED, ElevatorRequestStatus.CANCELLED):
            self.completion_time = now or datetime.now()

    def wait_time(self, now: datetime) -> timedelta:
        end = self.completion_time if self.completion_time is not None else now
        return end - self.request_time

    def to_dict(self) -> Dict[str, Any]:
        return {
            "request_id": self.request_id,
            "from_level": self.from_level,
            "to_level": self.to_level,
            "vehicle_type": self.vehicle_type.value,
            "vehicle_id": self.vehicle_id,
            "request_time": self.request_time.isoformat(),
            "is_urgent": self.is_urgent,
            "assigned_elevator_id": self.assigned_elevator_id,
            "status": self.status.value,
            "completion_time": self.completion_time.isoformat() if self.completion_time else None,
        }


@dataclass(eq=False)
class ParkingReservation:
    """
    A time-bounded claim on garage capacity.

    Priority is fixed by the customer class; use the named constructors
    rather than passing a priority directly.
    """
    vehicle_id: str
    vehicle_type: VehicleType
    start_time: datetime
    end_time: datetime
    customer_class: CustomerClass
    reservation_time: datetime
    grace_period: timedelta = timedelta(minutes=15)
    reservation_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: ReservationStatus = ReservationStatus.PENDING
    allocated_space: Optional[str] = None
    confirmation_time: Optional[datetime] = None
    arrival_time: Optional[datetime] = None
    failure_reason: Optional[str] = None

    EARLY_CHECK_IN = timedelta(minutes=5)

    @classmethod
    def create(
        cls,
        customer_class: CustomerClass,
        vehicle_id: str,
        vehicle_type: VehicleType,
        start_time: datetime,
        end_time: datetime,
        now: datetime,
        grace_period: timedelta = timedelta(minutes=15)
    ) -> 'ParkingReservation':
        return cls(
            vehicle_id=vehicle_id,
            vehicle_type=vehicle_type,
            start_time=start_time,
            end_time=end_time,
            customer_class=customer_class,
            reservation_time=now,
            grace_period=grace_period,
        )

    @classmethod
    def vip(cls, vehicle_id, vehicle_type, start_time, end_time, now, **kwargs) -> 'ParkingReservation':
        return cls.create(CustomerClass.VIP, vehicle_id, vehicle_type, start_time, end_time, now, **kwargs)

    @classmethod
    def disabled(cls, vehicle_id, vehicle_type, start_time, end_time, now, **kwargs) -> 'ParkingReservation':
        return cls.create(CustomerClass.DISABLED, vehicle_id, vehicle_type, start_time, end_time, now, **kwargs)

    @classmethod
    def regular(cls, vehicle_id, vehicle_type, start_time, end_time, now, **kwargs) -> 'ParkingReservation':
        return cls.create(CustomerClass.REGULAR, vehicle_id, vehicle_type, start_time, end_time, now, **kwargs)

    @property
    def priority(self) -> int:
        return self.customer_class.priority

    @property
    def expiration_time(self) -> datetime:
        return self.start_time + self.grace_period

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    def sort_key(self):
        """Waitlist order: priority ascending, then creation time (FIFO)"""
        return (self.priority, self.reservation_time)

    # Status transitions

    def confirm(self, allocated_space: str, now: datetime):
        self.allocated_space = allocated_space
        self.status = ReservationStatus.CONFIRMED
        self.confirmation_time = now

    def activate(self, now: datetime):
        self.status = ReservationStatus.ACTIVE
        self.arrival_time = now

    def complete(self):
        self.status = ReservationStatus.COMPLETED

    def cancel(self, reason: str):
        self.status = ReservationStatus.CANCELLED
        self.failure_reason = reason

    def expire(self):
        self.status = ReservationStatus.EXPIRED
        self.failure_reason = "Customer did not arrive within grace period"

    def waitlist(self):
        self.status = ReservationStatus.WAITLISTED

    # Time-based checks

    def is_expired(self, now: datetime) -> bool:
        """Past the grace period while still waiting on arrival or capacity"""
        return now > self.expiration_time and self.status in (
            ReservationStatus.PENDING,
            ReservationStatus.CONFIRMED,
            ReservationStatus.WAITLISTED,
        )

    def is_active(self, now: datetime) -> bool:
        return (
            self.status in (ReservationStatus.CONFIRMED, ReservationStatus.ACTIVE)
            and self.start_time <= now < self.end_time
        )

    def can_be_activated(self, now: datetime) -> bool:
        return (
            self.status == ReservationStatus.CONFIRMED
            and self.start_time - self.EARLY_CHECK_IN <= now < self.expiration_time
        )

    def overlaps(self, start_time: datetime, end_time: datetime) -> bool:
        return self.start_time < end_time and self.end_time > start_time

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reservation_id": self.reservation_id,
            "vehicle_id": self.vehicle_id,
            "vehicle_type": self.vehicle_type.value,
            "customer_class": self.customer_class.label,
            "priority": self.priority,
            "status": self.status.value,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "expiration_time": self.expiration_time.isoformat(),
            "reservation_time": self.reservation_time.isoformat(),
            "allocated_space": self.allocated_space,
            "failure_reason": self.failure_reason,
        }


# =============================================================================
# Configuration
# =============================================================================

@dataclass
class ReservationPolicy:
    """Booking constraints for the reservation manager"""
    min_duration_minutes: int = 30
    max_duration_minutes: int = 24 * 60
    max_advance_booking_days: int = 30
    grace_period_minutes: int = 15

    @property
    def grace_period(self) -> timedelta:
        return timedelta(minutes=self.grace_period_minutes)

    def is_valid_duration(self, start_time: datetime, end_time: datetime) -> bool:
        minutes = (end_time - start_time).total_seconds() / 60
        return self.min_duration_minutes <= minutes <= self.max_duration_minutes

    def is_valid_advance_booking(self, start_time: datetime, now: datetime) -> bool:
        return (start_time - now).days <= self.max_advance_booking_days

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ReservationPolicy':
        return cls(
            min_duration_minutes=data.get("min_duration_minutes", 30),
            max_duration_minutes=data.get("max_duration_minutes", 24 * 60),
            max_advance_booking_days=data.get("max_advance_booking_days", 30),
            grace_period_minutes=data.get("grace_period_minutes", 15),
        )


@dataclass
class LevelConfig:
    """Geometry and access rules for one level"""
    level_number: int
    name: str
    level_type: LevelType
    rows: List[List[SpaceType]]
    has_elevator_access: bool = True
    has_stair_access: bool = True
    allowed_vehicle_types: List[VehicleType] = field(
        default_factory=lambda: list(VehicleType)
    )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LevelConfig':
        """Rows are given as strings such as 'RRC' (R=regular, C=compact) or lists"""
        rows = []
        for row in data["rows"]:
            rows.append([
                SpaceType.COMPACT if str(cell).upper().startswith("C") else SpaceType.REGULAR
                for cell in row
            ])
        allowed = data.get("allowed_vehicle_types")
        return cls(
            level_number=data["level"],
            name=data.get("name", f"Level {data['level']}"),
            level_type=LevelType(data.get("type", "ground").lower()),
            rows=rows,
            has_elevator_access=data.get("elevator_access", True),
            has_stair_access=data.get("stair_access", True),
            allowed_vehicle_types=(
                [VehicleType.parse(v) for v in allowed] if allowed else list(VehicleType)
            ),
        )


@dataclass
class ElevatorConfig:
    """Static description of one elevator"""
    elevator_id: str
    served_levels: List[int]
    max_capacity: int = 1
    van_compatible: bool = False
    initial_level: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ElevatorConfig':
        served = list(data["served_levels"])
        return cls(
            elevator_id=str(data["id"]),
            served_levels=served,
            max_capacity=data.get("capacity", 1),
            van_compatible=data.get("van_compatible", False),
            initial_level=data.get("initial_level", served[0]),
        )


@dataclass
class GarageConfig:
    """Complete structure of a garage: levels, elevators and timing"""
    lot_id: str
    levels: List[LevelConfig]
    elevators: List[ElevatorConfig]
    tick_interval_seconds: float = 1.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GarageConfig':
        garage = data["garage"]
        return cls(
            lot_id=garage["id"],
            levels=[LevelConfig.from_dict(level) for level in garage.get("levels", [])],
            elevators=[ElevatorConfig.from_dict(e) for e in garage.get("elevators", [])],
            tick_interval_seconds=data.get("elevators", {}).get("tick_interval_seconds", 1.0),
        )
