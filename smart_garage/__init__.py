"""
Smart Garage: multi-level parking allocation, elevator dispatch and reservations
"""

from .models import (
    VehicleType,
    SpaceType,
    LevelType,
    ElevatorState,
    ElevatorRequestStatus,
    ReservationStatus,
    CustomerClass,
    SpaceOccupiedError,
    ParkingSpace,
    ElevatorRequest,
    ParkingReservation,
    ReservationPolicy,
    LevelConfig,
    ElevatorConfig,
    GarageConfig,
)
from .strategies import StrategyRegistry, UnsupportedVehicleTypeError, build_strategy_registry
from .level import ParkingLevel
from .level_allocation import LevelAllocationStrategy
from .elevator import Elevator
from .elevator_manager import ElevatorManager
from .reservation_manager import ReservationManager
from .parking_lot import MultiLevelParkingLot

__all__ = [
    'VehicleType',
    'SpaceType',
    'LevelType',
    'ElevatorState',
    'ElevatorRequestStatus',
    'ReservationStatus',
    'CustomerClass',
    'SpaceOccupiedError',
    'ParkingSpace',
    'ElevatorRequest',
    'ParkingReservation',
    'ReservationPolicy',
    'LevelConfig',
    'ElevatorConfig',
    'GarageConfig',
    'StrategyRegistry',
    'UnsupportedVehicleTypeError',
    'build_strategy_registry',
    'ParkingLevel',
    'LevelAllocationStrategy',
    'Elevator',
    'ElevatorManager',
    'ReservationManager',
    'MultiLevelParkingLot',
]
