"""
Multi-level parking lot

Orchestrates level selection, space allocation and elevator transport.
Level 0 is the entry level: parking anywhere else requests an elevator
from level 0 to the chosen level, and removal requests one back.
"""

import logging
import threading
import time
from datetime import datetime
from typing import Callable, Dict, List, Optional

from .elevator import Elevator
from .elevator_manager import ElevatorManager
from .level import ParkingLevel
from .level_allocation import LevelAllocationStrategy
from .models import ElevatorRequest, GarageConfig, VehicleType
from .results import (
    LevelStatus,
    LotStatus,
    MultiLevelParkingResult,
    VehicleLocation,
)
from .strategies import StrategyRegistry, build_strategy_registry

logger = logging.getLogger(__name__)

ENTRY_LEVEL = 0


class MultiLevelParkingLot:
    """
    A parking structure made of levels connected by elevators.

    Parking is idempotent per vehicle id. The optional background thread
    advances the elevator fleet once per ``tick_interval`` seconds.
    """

    def __init__(
        self,
        lot_id: str,
        strategies: Optional[StrategyRegistry] = None,
        clock: Callable[[], datetime] = datetime.now,
        tick_interval: float = 1.0
    ):
        self.lot_id = lot_id
        self.strategies = strategies or build_strategy_registry()
        self.elevator_manager = ElevatorManager(clock=clock)
        self.allocation_strategy = LevelAllocationStrategy()
        self.tick_interval = tick_interval
        self._clock = clock

        self._levels: Dict[int, ParkingLevel] = {}
        self._lock = threading.RLock()

        self._running = False
        self._tick_thread: Optional[threading.Thread] = None

    @classmethod
    def from_config(
        cls,
        config: GarageConfig,
        strategies: Optional[StrategyRegistry] = None,
        clock: Callable[[], datetime] = datetime.now
    ) -> 'MultiLevelParkingLot':
        """Build a lot with every level and elevator described by the config"""
        lot = cls(config.lot_id, strategies=strategies, clock=clock,
                  tick_interval=config.tick_interval_seconds)
        for level_config in config.levels:
            lot.add_level(ParkingLevel.from_config(level_config))
        for elevator_config in config.elevators:
            lot.add_elevator(Elevator.from_config(elevator_config, clock=clock))
        logger.info(
            f"Built lot {config.lot_id}: {len(config.levels)} levels, "
            f"{len(config.elevators)} elevators, {lot.total_spaces} spaces"
        )
        return lot

    def add_level(self, level: ParkingLevel):
        with self._lock:
            self._levels[level.level_number] = level
        logger.info(f"Added {level.name} (Level {level.level_number}) with {level.total_spaces} spaces")

    def add_elevator(self, elevator: Elevator):
        self.elevator_manager.add_elevator(elevator)

    def _ordered_levels(self) -> List[ParkingLevel]:
        return [self._levels[number] for number in sorted(self._levels)]

    def get_all_levels(self) -> List[ParkingLevel]:
        with self._lock:
            return self._ordered_levels()

    @property
    def level_count(self) -> int:
        return len(self._levels)

    @property
    def total_spaces(self) -> int:
        with self._lock:
            return sum(level.total_spaces for level in self._levels.values())

    # =========================================================================
    # Parking and retrieval
    # =========================================================================

    def park_vehicle(self, vehicle_id: str, vehicle_type: VehicleType) -> MultiLevelParkingResult:
        """
        Park a vehicle on the best suitable level.

        Args:
            vehicle_id: Vehicle identifier
            vehicle_type: Type of the vehicle

        Returns:
            MultiLevelParkingResult with the assigned spaces and, for levels
            other than the entry level, the elevator request id. An unknown
            vehicle type yields a failure result.
        """
        requested_type = vehicle_type
        vehicle_type = VehicleType.lookup(requested_type)
        if vehicle_type is None:
            logger.warning(f"Rejected {vehicle_id}: unknown vehicle type {requested_type!r}")
            return MultiLevelParkingResult.failure(
                f"Unknown vehicle type: {requested_type}", vehicle_id
            )

        with self._lock:
            location = self._locate(vehicle_id)
            if location is not None:
                return MultiLevelParkingResult(
                    True, "Vehicle is already parked", vehicle_id,
                    location.space_ids, location.level_number, location.level_name,
                )

            level_result = self.allocation_strategy.find_optimal_level(
                self._ordered_levels(), vehicle_type
            )
            if not level_result.success:
                logger.info(f"No level for {vehicle_type.value} {vehicle_id}: {level_result.reason}")
                return MultiLevelParkingResult.failure(
                    f"No suitable level found for {vehicle_type.value}", vehicle_id
                )

            # Suitability counts free spaces, not their layout, so the best level
            # may still reject the vehicle; fall back to the next suitable ones.
            strategy = self.strategies.get(vehicle_type)
            candidates = [level_result.level] + [
                level for level in self.allocation_strategy.find_multiple_levels(
                    self._ordered_levels(), vehicle_type, 1
                )
                if level is not level_result.level
            ]
            for level in candidates:
                result = strategy.allocate(vehicle_id, level.rows)
                if result.success:
                    break
                logger.info(f"{level.name} cannot take {vehicle_type.value} {vehicle_id}: {result.message}")
            else:
                return MultiLevelParkingResult.failure(result.message, vehicle_id)

            level.occupy_spaces(vehicle_id, vehicle_type, result.allocated_spaces)
            logger.info(
                f"Parked {vehicle_type.value} {vehicle_id} on {level.name} "
                f"(Level {level.level_number}): {list(result.allocated_spaces)}"
            )

            if level.level_number == ENTRY_LEVEL:
                return MultiLevelParkingResult(
                    True, "Vehicle parked successfully", vehicle_id,
                    result.allocated_spaces, level.level_number, level.name,
                )

            request = self.elevator_manager.request_elevator(
                ENTRY_LEVEL, level.level_number, vehicle_type, vehicle_id
            )
            return MultiLevelParkingResult(
                True, "Vehicle parked successfully with elevator request", vehicle_id,
                result.allocated_spaces, level.level_number, level.name, request.request_id,
            )

    def remove_vehicle(self, vehicle_id: str) -> MultiLevelParkingResult:
        """Vacate the vehicle's spaces and, off the entry level, request retrieval"""
        with self._lock:
            for level in self._ordered_levels():
                if not level.vehicle_spaces(vehicle_id):
                    continue

                vehicle_type = level.vehicle_type_of(vehicle_id)
                freed = level.release_vehicle(vehicle_id)
                message = f"Vehicle removed from {level.name}, freed spaces: {', '.join(freed)}"
                logger.info(f"{vehicle_id}: {message}")

                request_id = None
                if level.level_number != ENTRY_LEVEL:
                    request = self.elevator_manager.request_elevator(
                        level.level_number, ENTRY_LEVEL, vehicle_type, vehicle_id
                    )
                    request_id = request.request_id

                return MultiLevelParkingResult(
                    True, message, vehicle_id, tuple(freed),
                    level.level_number, level.name, request_id,
                )

        return MultiLevelParkingResult.failure(f"Vehicle not found: {vehicle_id}", vehicle_id)

    def _locate(self, vehicle_id: str) -> Optional[VehicleLocation]:
        for level in self._ordered_levels():
            spaces = level.vehicle_spaces(vehicle_id)
            if spaces:
                return VehicleLocation(
                    vehicle_id=vehicle_id,
                    vehicle_type=level.vehicle_type_of(vehicle_id),
                    level_number=level.level_number,
                    level_name=level.name,
                    level_type=level.level_type,
                    space_ids=spaces,
                )
        return None

    def find_vehicle_location(self, vehicle_id: str) -> Optional[VehicleLocation]:
        with self._lock:
            return self._locate(vehicle_id)

    # =========================================================================
    # Status
    # =========================================================================

    def get_lot_status(self) -> LotStatus:
        with self._lock:
            level_statuses = tuple(level.level_status() for level in self._ordered_levels())
        return LotStatus(
            lot_id=self.lot_id,
            levels=level_statuses,
            elevators=tuple(self.elevator_manager.get_elevator_statuses()),
            elevator_stats=self.elevator_manager.get_system_stats(),
            system_operational=self.elevator_manager.is_system_operational(),
        )

    def get_level_status(self, level_number: int) -> Optional[LevelStatus]:
        with self._lock:
            level = self._levels.get(level_number)
            return level.level_status() if level is not None else None

    def get_available_spaces_for_vehicle_type(self, vehicle_type: VehicleType) -> int:
        with self._lock:
            return sum(level.available_spaces_for(vehicle_type) for level in self._levels.values())

    def get_levels_for_vehicle_type(self, vehicle_type: VehicleType) -> List[ParkingLevel]:
        """Levels that admit the type and grant the access it needs, regardless of free space"""
        with self._lock:
            return [
                level for level in self._ordered_levels()
                if level.can_accommodate(vehicle_type) and level.has_appropriate_access(vehicle_type)
            ]

    def get_level_utilization(self):
        with self._lock:
            return self.allocation_strategy.get_level_utilization_stats(self._ordered_levels())

    # =========================================================================
    # Elevator operations
    # =========================================================================

    def request_urgent_elevator(
        self,
        vehicle_id: str,
        from_level: int,
        to_level: int,
        vehicle_type: VehicleType
    ) -> ElevatorRequest:
        return self.elevator_manager.request_elevator(
            from_level, to_level, vehicle_type, vehicle_id, is_urgent=True
        )

    def process_elevator_operations(self):
        self.elevator_manager.process_elevator_operations()

    def set_elevator_maintenance_mode(self, elevator_id: str, enabled: bool) -> bool:
        return self.elevator_manager.set_elevator_maintenance_mode(elevator_id, enabled)

    def get_elevator_request_status(self, request_id: str) -> Optional[ElevatorRequest]:
        return self.elevator_manager.get_request_status(request_id)

    def cancel_elevator_request(self, request_id: str) -> bool:
        return self.elevator_manager.cancel_request(request_id)

    def _tick_loop(self):
        logger.info("Elevator tick loop started")
        while self._running:
            try:
                self.process_elevator_operations()
                self.elevator_manager.clear_finished_requests()
            except Exception as e:
                logger.error(f"Elevator tick error: {e}", exc_info=True)
            time.sleep(self.tick_interval)
        logger.info("Elevator tick loop stopped")

    def start(self):
        """Start advancing elevators in a background thread"""
        if self._running:
            logger.warning(f"Lot {self.lot_id} tick loop is already running")
            return

        self._running = True
        self._tick_thread = threading.Thread(
            target=self._tick_loop,
            name=f"Elevators-{self.lot_id}",
            daemon=True
        )
        self._tick_thread.start()

    def stop(self):
        self._running = False
        if self._tick_thread:
            self._tick_thread.join(timeout=5)
            self._tick_thread = None

    @property
    def is_running(self) -> bool:
        return self._running

    def __repr__(self) -> str:
        status = self.get_lot_status()
        return (
            f"MultiLevelParkingLot[{self.lot_id}]: {self.level_count} levels, "
            f"{status.total_spaces} total spaces, {status.occupancy_rate * 100:.1f}% occupied"
        )
