"""
Elevator: a mobile resource serving a fixed set of levels

An elevator advances at most one floor, and performs at most one
queue transition, per call to ``process_next_request``. It is mutated
only by its ElevatorManager and by its own tick.
"""

import logging
from collections import deque
from datetime import datetime
from typing import Callable, Deque, List, Optional, Sequence, Set

from .models import (
    ElevatorConfig,
    ElevatorRequest,
    ElevatorRequestStatus,
    ElevatorState,
    VehicleType,
)
from .results import ElevatorStatus

logger = logging.getLogger(__name__)


class Elevator:
    """Vehicle elevator with a FIFO request queue and a movement state machine."""

    def __init__(
        self,
        elevator_id: str,
        served_levels: Sequence[int],
        max_capacity: int,
        van_compatible: bool,
        initial_level: int,
        clock: Callable[[], datetime] = datetime.now
    ):
        if max_capacity < 1:
            raise ValueError(f"Elevator {elevator_id}: capacity must be >= 1")
        if initial_level not in served_levels:
            raise ValueError(
                f"Elevator {elevator_id}: initial level {initial_level} is not served"
            )

        self.elevator_id = elevator_id
        self.served_levels = tuple(served_levels)
        self.max_capacity = max_capacity
        self.van_compatible = van_compatible
        self._clock = clock

        self.current_level = initial_level
        self.state = ElevatorState.IDLE
        self.maintenance_mode = False
        self.current_request: Optional[ElevatorRequest] = None
        self.last_operation_time = clock()

        self._queue: Deque[ElevatorRequest] = deque()
        self._occupants: Set[str] = set()

    @classmethod
    def from_config(cls, config: ElevatorConfig, clock: Callable[[], datetime] = datetime.now) -> 'Elevator':
        return cls(
            elevator_id=config.elevator_id,
            served_levels=config.served_levels,
            max_capacity=config.max_capacity,
            van_compatible=config.van_compatible,
            initial_level=config.initial_level,
            clock=clock,
        )

    # =========================================================================
    # Eligibility
    # =========================================================================

    def can_serve(self, from_level: int, to_level: int, vehicle_type: VehicleType) -> bool:
        """Hard preconditions; any failing check rejects the elevator"""
        if self.maintenance_mode:
            return False
        if from_level not in self.served_levels or to_level not in self.served_levels:
            return False
        if vehicle_type == VehicleType.VAN and not self.van_compatible:
            return False
        if len(self._occupants) >= self.max_capacity:
            return False
        return True

    @property
    def capacity_usage(self) -> float:
        return len(self._occupants) / self.max_capacity

    @property
    def queue_length(self) -> int:
        """Queued requests plus the one being serviced"""
        return len(self._queue) + (1 if self.current_request is not None else 0)

    @property
    def occupants(self) -> frozenset:
        return frozenset(self._occupants)

    @property
    def queued_requests(self) -> List[ElevatorRequest]:
        return list(self._queue)

    # =========================================================================
    # Queue management
    # =========================================================================

    def add_request(self, request: ElevatorRequest) -> bool:
        """Enqueue a request this elevator can serve; returns False otherwise"""
        if not self.can_serve(request.from_level, request.to_level, request.vehicle_type):
            return False
        self._queue.append(request)
        request.assign_elevator(self.elevator_id)
        if self.state == ElevatorState.IDLE:
            self.state = ElevatorState.MOVING
        return True

    def remove_request(self, request_id: str) -> bool:
        """Drop a queued or in-progress request"""
        if self.current_request is not None and self.current_request.request_id == request_id:
            self._occupants.discard(self.current_request.vehicle_id)
            self.current_request = None
            self.state = ElevatorState.MOVING if self._queue else ElevatorState.IDLE
            return True
        for request in self._queue:
            if request.request_id == request_id:
                self._queue.remove(request)
                return True
        return False

    def clear_all_requests(self) -> List[ElevatorRequest]:
        """Empty the queue and the current request, returning everything that was held"""
        requests = []
        if self.current_request is not None:
            self._occupants.discard(self.current_request.vehicle_id)
            requests.append(self.current_request)
            self.current_request = None
        requests.extend(self._queue)
        self._queue.clear()
        if not self.maintenance_mode:
            self.state = ElevatorState.IDLE
        return requests

    def set_maintenance_mode(self, enabled: bool):
        self.maintenance_mode = enabled
        if enabled:
            self.state = ElevatorState.MAINTENANCE
        elif self.state == ElevatorState.MAINTENANCE:
            self.state = ElevatorState.IDLE

    # =========================================================================
    # Tick
    # =========================================================================

    def process_next_request(self):
        """Advance the state machine by one step"""
        if self.maintenance_mode or self.state == ElevatorState.MAINTENANCE:
            return

        if self.current_request is None and self._queue:
            self.current_request = self._queue.popleft()
            self.current_request.update_status(ElevatorRequestStatus.IN_TRANSIT)
            self.state = ElevatorState.MOVING
            logger.debug(f"Elevator {self.elevator_id} picked up {self.current_request.request_id}")

        if self.current_request is not None:
            self._process_current_request()
        elif self.state != ElevatorState.IDLE:
            self.state = ElevatorState.IDLE

        self.last_operation_time = self._clock()

    def _process_current_request(self):
        request = self.current_request
        if request.vehicle_id not in self._occupants:
            # pickup leg
            if self.current_level != request.from_level:
                self._move_toward(request.from_level)
            else:
                self._occupants.add(request.vehicle_id)
                self.state = ElevatorState.LOADING
        elif self.current_level != request.to_level:
            self._move_toward(request.to_level)
        else:
            self._occupants.discard(request.vehicle_id)
            request.update_status(ElevatorRequestStatus.COMPLETED, self._clock())
            self.current_request = None
            self.state = ElevatorState.MOVING if self._queue else ElevatorState.IDLE
            logger.info(
                f"Elevator {self.elevator_id} delivered {request.vehicle_id} "
                f"to level {request.to_level} ({request.request_id})"
            )

    def _move_toward(self, target_level: int):
        if self.current_level < target_level:
            self.current_level += 1
        elif self.current_level > target_level:
            self.current_level -= 1
        self.state = ElevatorState.MOVING

    def status(self) -> ElevatorStatus:
        return ElevatorStatus(
            elevator_id=self.elevator_id,
            current_level=self.current_level,
            state=self.state,
            maintenance_mode=self.maintenance_mode,
            current_occupants=len(self._occupants),
            max_capacity=self.max_capacity,
            queue_length=self.queue_length,
            served_levels=self.served_levels,
            van_compatible=self.van_compatible,
            last_operation_time=self.last_operation_time,
            current_request_id=self.current_request.request_id if self.current_request else None,
        )

    def __repr__(self) -> str:
        return (
            f"Elevator({self.elevator_id}: level {self.current_level}, {self.state.value}, "
            f"{len(self._occupants)}/{self.max_capacity} occupants, {self.queue_length} queued)"
        )
