"""
Elevator Manager: fleet ownership, scoring and dispatch

Requests are assigned to the eligible elevator with the lowest score:

    2 * |current - from|          reposition cost
  + |to - from|                   travel
  + 10 if occupancy > 80%
  + 20 if a van rides a non-van elevator (never reached; eligibility rejects it)
  + 3 * queue length
  - 5 if urgent and the queue is empty

Requests that find no elevator stay WAITING and are retried, urgent
first then oldest first, after every tick of ``process_elevator_operations``.
"""

import itertools
import logging
import threading
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set

from .elevator import Elevator
from .models import ElevatorRequest, ElevatorRequestStatus, VehicleType
from .results import ElevatorStatus, ElevatorSystemStats

logger = logging.getLogger(__name__)


class ElevatorManager:
    """
    Owns the elevator fleet and the table of active transport requests.

    All mutation happens under one re-entrant lock held for a whole
    scoring + assignment decision; scoring itself has no side effects.
    """

    NEAR_FULL_THRESHOLD = 0.8
    NEAR_FULL_PENALTY = 10
    VAN_MISMATCH_PENALTY = 20
    QUEUE_WEIGHT = 3
    URGENT_IDLE_BONUS = 5

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self._clock = clock
        self._elevators: List[Elevator] = []
        self._level_connections: Dict[int, Set[int]] = {}
        self._active_requests: Dict[str, ElevatorRequest] = {}
        self._request_counter = itertools.count(1)
        self._lock = threading.RLock()

    def add_elevator(self, elevator: Elevator):
        """Add an elevator and connect every pair of levels it serves"""
        with self._lock:
            self._elevators.append(elevator)
            for level in elevator.served_levels:
                self._level_connections.setdefault(level, set()).update(elevator.served_levels)
        logger.info(
            f"Added elevator {elevator.elevator_id} serving levels {list(elevator.served_levels)}"
        )

    # =========================================================================
    # Topology
    # =========================================================================

    def can_reach_level(self, from_level: int, to_level: int) -> bool:
        if from_level == to_level:
            return True
        with self._lock:
            return to_level in self._level_connections.get(from_level, set())

    def get_connected_levels(self, level: int) -> Set[int]:
        with self._lock:
            return set(self._level_connections.get(level, set()))

    # =========================================================================
    # Scoring
    # =========================================================================

    def calculate_score(
        self,
        elevator: Elevator,
        from_level: int,
        to_level: int,
        vehicle_type: VehicleType,
        is_urgent: bool
    ) -> int:
        """Lower is better. Only meaningful for elevators that pass ``can_serve``."""
        score = 2 * abs(elevator.current_level - from_level)
        score += abs(to_level - from_level)

        if elevator.capacity_usage > self.NEAR_FULL_THRESHOLD:
            score += self.NEAR_FULL_PENALTY

        if vehicle_type == VehicleType.VAN and not elevator.van_compatible:
            score += self.VAN_MISMATCH_PENALTY

        queue_length = elevator.queue_length
        score += self.QUEUE_WEIGHT * queue_length

        if is_urgent and queue_length == 0:
            score -= self.URGENT_IDLE_BONUS

        return score

    def find_optimal_elevator(
        self,
        from_level: int,
        to_level: int,
        vehicle_type: VehicleType,
        is_urgent: bool = False
    ) -> Optional[Elevator]:
        """Eligible elevator with the minimum score; the first one wins ties"""
        with self._lock:
            best: Optional[Elevator] = None
            best_score = None
            for elevator in self._elevators:
                if not elevator.can_serve(from_level, to_level, vehicle_type):
                    continue
                score = self.calculate_score(elevator, from_level, to_level, vehicle_type, is_urgent)
                if best_score is None or score < best_score:
                    best, best_score = elevator, score
            return best

    # =========================================================================
    # Request lifecycle
    # =========================================================================

    def request_elevator(
        self,
        from_level: int,
        to_level: int,
        vehicle_type: VehicleType,
        vehicle_id: str,
        is_urgent: bool = False
    ) -> ElevatorRequest:
        """
        Register a transport request and assign it if an elevator is eligible.

        Args:
            from_level: Pickup level
            to_level: Drop-off level
            vehicle_type: Type of the vehicle being moved
            vehicle_id: Vehicle identifier
            is_urgent: Urgent requests favour elevators with an empty queue

        Returns:
            The request; ``assigned_elevator_id`` is None when it is WAITING
        """
        with self._lock:
            request = ElevatorRequest(
                request_id=f"REQ-{next(self._request_counter)}",
                from_level=from_level,
                to_level=to_level,
                vehicle_type=vehicle_type,
                vehicle_id=vehicle_id,
                request_time=self._clock(),
                is_urgent=is_urgent,
            )
            elevator = self.find_optimal_elevator(from_level, to_level, vehicle_type, is_urgent)
            if elevator is not None:
                elevator.add_request(request)
                logger.info(
                    f"{request.request_id}: {vehicle_type.value} {vehicle_id} "
                    f"L{from_level}->L{to_level} assigned to elevator {elevator.elevator_id}"
                )
            else:
                logger.info(
                    f"{request.request_id}: no eligible elevator for {vehicle_type.value} "
                    f"{vehicle_id} L{from_level}->L{to_level}, waiting"
                )
            self._active_requests[request.request_id] = request
            return request

    def cancel_request(self, request_id: str) -> bool:
        """
        Remove a request from tracking. Returns False if the id is unknown or
        the request already finished; a finished request keeps its status.
        """
        with self._lock:
            request = self._active_requests.pop(request_id, None)
            if request is None:
                return False
            if request.status.is_terminal:
                logger.debug(f"{request_id} already {request.status.value}, nothing to cancel")
                return False
            if request.assigned_elevator_id is not None:
                elevator = self.find_elevator(request.assigned_elevator_id)
                if elevator is not None:
                    elevator.remove_request(request_id)
            request.update_status(ElevatorRequestStatus.CANCELLED, self._clock())
            logger.info(f"{request_id} cancelled")
            return True

    def get_request_status(self, request_id: str) -> Optional[ElevatorRequest]:
        with self._lock:
            return self._active_requests.get(request_id)

    def get_active_requests(self) -> List[ElevatorRequest]:
        with self._lock:
            return list(self._active_requests.values())

    def clear_finished_requests(self) -> int:
        """Drop requests in a terminal state from the active table"""
        with self._lock:
            finished = [
                request_id for request_id, request in self._active_requests.items()
                if request.status.is_terminal
            ]
            for request_id in finished:
                del self._active_requests[request_id]
        if finished:
            logger.debug(f"Cleared {len(finished)} finished elevator requests")
        return len(finished)

    # =========================================================================
    # Periodic processing
    # =========================================================================

    def process_elevator_operations(self):
        """One tick: advance every in-service elevator, then retry waiting requests"""
        with self._lock:
            for elevator in self._elevators:
                if not elevator.maintenance_mode:
                    elevator.process_next_request()
            self._reassign_waiting_requests()

    def _reassign_waiting_requests(self):
        waiting = [
            request for request in self._active_requests.values()
            if request.status == ElevatorRequestStatus.WAITING
        ]
        # Stable sort keeps creation order within equal urgency and timestamp
        waiting.sort(key=lambda request: (not request.is_urgent, request.request_time))

        for request in waiting:
            elevator = self.find_optimal_elevator(
                request.from_level, request.to_level, request.vehicle_type, request.is_urgent
            )
            if elevator is not None and elevator.add_request(request):
                logger.info(f"{request.request_id} reassigned to elevator {elevator.elevator_id}")

    # =========================================================================
    # Fleet management
    # =========================================================================

    def find_elevator(self, elevator_id: str) -> Optional[Elevator]:
        with self._lock:
            for elevator in self._elevators:
                if elevator.elevator_id == elevator_id:
                    return elevator
            return None

    def set_elevator_maintenance_mode(self, elevator_id: str, enabled: bool) -> bool:
        """
        Toggle maintenance. Turning it on releases every request held by the
        elevator back to WAITING so the next sweep can re-route it.
        """
        with self._lock:
            elevator = self.find_elevator(elevator_id)
            if elevator is None:
                logger.warning(f"Maintenance toggle for unknown elevator {elevator_id}")
                return False

            elevator.set_maintenance_mode(enabled)
            if enabled:
                released = elevator.clear_all_requests()
                for request in released:
                    request.assign_elevator(None)
                logger.info(
                    f"Elevator {elevator_id} in maintenance, released {len(released)} requests"
                )
            else:
                logger.info(f"Elevator {elevator_id} back in service")
            return True

    def is_system_operational(self) -> bool:
        with self._lock:
            return any(not elevator.maintenance_mode for elevator in self._elevators)

    def get_elevator_statuses(self) -> List[ElevatorStatus]:
        with self._lock:
            statuses = [elevator.status() for elevator in self._elevators]
        return sorted(statuses, key=lambda status: status.elevator_id)

    def get_system_stats(self) -> ElevatorSystemStats:
        with self._lock:
            now = self._clock()
            requests = list(self._active_requests.values())
            total_elevators = len(self._elevators)
            active_elevators = sum(1 for e in self._elevators if not e.maintenance_mode)

        assigned = [r for r in requests if r.assigned_elevator_id is not None]
        if assigned:
            average_wait = sum(r.wait_time(now).total_seconds() for r in assigned) / len(assigned)
        else:
            average_wait = 0.0

        by_type: Dict[VehicleType, int] = {}
        for request in requests:
            by_type[request.vehicle_type] = by_type.get(request.vehicle_type, 0) + 1

        return ElevatorSystemStats(
            total_requests=len(requests),
            total_elevators=total_elevators,
            active_elevators=active_elevators,
            average_wait_seconds=average_wait,
            urgent_requests=sum(1 for r in requests if r.is_urgent),
            unassigned_requests=len(requests) - len(assigned),
            requests_by_vehicle_type=by_type,
        )
