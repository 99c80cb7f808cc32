"""Tests for the elevator state machine and the dispatcher."""

import pytest

from smart_garage.elevator import Elevator
from smart_garage.elevator_manager import ElevatorManager
from smart_garage.models import ElevatorRequest, ElevatorRequestStatus, ElevatorState, VehicleType


def make_request(clock, request_id="REQ-X", from_level=0, to_level=2,
                 vehicle_type=VehicleType.CAR, vehicle_id="CAR-1"):
    return ElevatorRequest(request_id, from_level, to_level, vehicle_type, vehicle_id, clock())


@pytest.fixture
def manager(clock):
    return ElevatorManager(clock=clock)


class TestElevator:
    def test_invalid_construction(self, clock):
        with pytest.raises(ValueError):
            Elevator("E", [0, 1], 0, False, 0, clock=clock)
        with pytest.raises(ValueError):
            Elevator("E", [0, 1], 1, False, 2, clock=clock)

    def test_maintenance_blocks_service(self, clock):
        """can_serve is false in maintenance whatever the request"""
        elevator = Elevator("E", [0, 1, 2], 4, True, 0, clock=clock)
        elevator.set_maintenance_mode(True)
        for vehicle_type in VehicleType:
            assert not elevator.can_serve(0, 1, vehicle_type)
        assert elevator.state == ElevatorState.MAINTENANCE

    def test_eligibility(self, clock):
        elevator = Elevator("E", [0, 1], 1, False, 0, clock=clock)
        assert elevator.can_serve(0, 1, VehicleType.CAR)
        assert not elevator.can_serve(0, 2, VehicleType.CAR)
        assert not elevator.can_serve(0, 1, VehicleType.VAN)

    def test_full_trip(self, clock):
        """Load at the pickup floor, one floor per tick, unload at the destination"""
        elevator = Elevator("E", [0, 1, 2], 1, False, 0, clock=clock)
        request = make_request(clock)
        assert elevator.add_request(request)
        assert request.status == ElevatorRequestStatus.ASSIGNED
        assert elevator.state == ElevatorState.MOVING

        elevator.process_next_request()
        assert request.status == ElevatorRequestStatus.IN_TRANSIT
        assert elevator.state == ElevatorState.LOADING
        assert elevator.occupants == {"CAR-1"}

        elevator.process_next_request()
        assert elevator.current_level == 1
        elevator.process_next_request()
        assert elevator.current_level == 2
        assert request.status == ElevatorRequestStatus.IN_TRANSIT

        clock.advance(seconds=20)
        elevator.process_next_request()
        assert request.status == ElevatorRequestStatus.COMPLETED
        assert request.completion_time == clock()
        assert elevator.state == ElevatorState.IDLE
        assert elevator.occupants == frozenset()
        assert elevator.queue_length == 0

    def test_moves_to_pickup_first(self, clock):
        elevator = Elevator("E", [0, 1, 2], 1, False, 0, clock=clock)
        elevator.add_request(make_request(clock, from_level=2, to_level=0))
        elevator.process_next_request()
        elevator.process_next_request()
        assert elevator.current_level == 2
        assert elevator.occupants == frozenset()
        elevator.process_next_request()
        assert elevator.state == ElevatorState.LOADING

    def test_loaded_vehicle_keeps_heading_to_destination(self, clock):
        """Once on board the car never returns to its pickup floor"""
        elevator = Elevator("E", [0, 1, 2, 3], 1, False, 1, clock=clock)
        request = make_request(clock, from_level=1, to_level=3)
        elevator.add_request(request)

        levels = []
        for _ in range(4):
            elevator.process_next_request()
            levels.append(elevator.current_level)

        assert levels == [1, 2, 3, 3]
        assert request.status == ElevatorRequestStatus.COMPLETED
        assert elevator.capacity_usage == 0.0

    def test_downward_trip_completes(self, clock):
        elevator = Elevator("E", [-1, 0, 1], 1, False, 0, clock=clock)
        request = make_request(clock, from_level=1, to_level=-1)
        elevator.add_request(request)
        for _ in range(5):
            elevator.process_next_request()
        assert request.status == ElevatorRequestStatus.COMPLETED
        assert elevator.current_level == -1

    def test_rejects_when_full(self, clock):
        elevator = Elevator("E", [0, 1], 1, False, 0, clock=clock)
        elevator.add_request(make_request(clock, "REQ-1", to_level=1))
        elevator.process_next_request()
        assert not elevator.add_request(make_request(clock, "REQ-2", to_level=1, vehicle_id="CAR-2"))

    def test_remove_current_request_drops_occupant(self, clock):
        elevator = Elevator("E", [0, 1], 2, False, 0, clock=clock)
        elevator.add_request(make_request(clock, "REQ-1", to_level=1))
        elevator.process_next_request()
        assert elevator.remove_request("REQ-1")
        assert elevator.current_request is None
        assert elevator.occupants == frozenset()
        assert elevator.state == ElevatorState.IDLE
        assert not elevator.remove_request("REQ-1")

    def test_status_snapshot(self, clock):
        elevator = Elevator("E", [0, 1], 2, True, 1, clock=clock)
        elevator.add_request(make_request(clock, "REQ-1", to_level=1))
        status = elevator.status()
        assert status.current_level == 1
        assert status.queue_length == 1
        assert status.is_available
        assert status.to_dict()["served_levels"] == [0, 1]


class TestScoring:
    def test_urgent_bonus_on_empty_queue(self, manager, clock):
        """Urgent requests to an idle elevator score exactly 5 lower"""
        elevator = Elevator("E", [0, 1, 2], 2, True, 0, clock=clock)
        normal = manager.calculate_score(elevator, 1, 2, VehicleType.CAR, False)
        urgent = manager.calculate_score(elevator, 1, 2, VehicleType.CAR, True)
        assert normal == 2 * 1 + 1
        assert normal - urgent == 5

    def test_no_urgent_bonus_with_queue(self, manager, clock):
        elevator = Elevator("E", [0, 1, 2], 2, True, 0, clock=clock)
        elevator.add_request(make_request(clock))
        normal = manager.calculate_score(elevator, 0, 1, VehicleType.CAR, False)
        urgent = manager.calculate_score(elevator, 0, 1, VehicleType.CAR, True)
        assert normal == urgent == 1 + 3

    def test_monotonic_in_queue_length(self, manager, clock):
        elevator = Elevator("E", [0, 1, 2], 5, True, 0, clock=clock)
        scores = []
        for i in range(4):
            scores.append(manager.calculate_score(elevator, 0, 2, VehicleType.CAR, True))
            elevator.add_request(make_request(clock, f"REQ-{i}", vehicle_id=f"CAR-{i}"))
        assert scores == sorted(scores)

    def test_near_full_penalty(self, manager, clock):
        elevator = Elevator("E", [0, 1], 1, False, 0, clock=clock)
        base = manager.calculate_score(elevator, 0, 1, VehicleType.CAR, False)
        elevator.add_request(make_request(clock, to_level=1))
        elevator.process_next_request()
        # occupancy 1/1 adds 10, the in-progress request adds 3
        assert manager.calculate_score(elevator, 0, 1, VehicleType.CAR, False) == base + 13

    def test_van_picks_only_compatible_elevator(self, manager, clock):
        """A serves [0,1] without vans; B serves [0,1,2] with vans"""
        manager.add_elevator(Elevator("A", [0, 1], 1, False, 0, clock=clock))
        manager.add_elevator(Elevator("B", [0, 1, 2], 3, True, 0, clock=clock))
        request = manager.request_elevator(0, 2, VehicleType.VAN, "VAN-1")
        assert request.assigned_elevator_id == "B"
        assert request.status == ElevatorRequestStatus.ASSIGNED

    def test_shorter_queue_wins(self, manager, clock):
        manager.add_elevator(Elevator("A", [0, 1], 3, False, 0, clock=clock))
        manager.add_elevator(Elevator("B", [0, 1], 3, False, 0, clock=clock))
        first = manager.request_elevator(0, 1, VehicleType.CAR, "CAR-1")
        second = manager.request_elevator(0, 1, VehicleType.CAR, "CAR-2")
        assert first.assigned_elevator_id == "A"
        assert second.assigned_elevator_id == "B"


class TestElevatorManager:
    def test_request_ids_are_sequential(self, manager, clock):
        manager.add_elevator(Elevator("A", [0, 1], 3, False, 0, clock=clock))
        ids = [manager.request_elevator(0, 1, VehicleType.CAR, f"C{i}").request_id for i in range(3)]
        assert ids == ["REQ-1", "REQ-2", "REQ-3"]

    def test_unreachable_request_waits(self, manager, clock):
        manager.add_elevator(Elevator("A", [0, 1], 1, False, 0, clock=clock))
        request = manager.request_elevator(0, 3, VehicleType.CAR, "CAR-1")
        assert request.assigned_elevator_id is None
        assert request.status == ElevatorRequestStatus.WAITING
        assert manager.get_request_status(request.request_id) is request

    def test_level_connections(self, manager, clock):
        manager.add_elevator(Elevator("A", [0, 1], 1, False, 0, clock=clock))
        manager.add_elevator(Elevator("B", [1, 2], 1, False, 1, clock=clock))
        assert manager.can_reach_level(0, 1)
        assert manager.can_reach_level(2, 1)
        assert not manager.can_reach_level(0, 2)
        assert manager.can_reach_level(5, 5)
        assert manager.get_connected_levels(1) == {0, 1, 2}

    def test_waiting_request_assigned_after_capacity_frees(self, manager, clock):
        manager.add_elevator(Elevator("A", [0, 1], 1, False, 0, clock=clock))
        first = manager.request_elevator(0, 1, VehicleType.CAR, "CAR-1")
        manager.process_elevator_operations()
        second = manager.request_elevator(0, 1, VehicleType.CAR, "CAR-2")
        assert second.status == ElevatorRequestStatus.WAITING

        manager.process_elevator_operations()
        assert second.status == ElevatorRequestStatus.WAITING
        manager.process_elevator_operations()
        assert first.status == ElevatorRequestStatus.COMPLETED
        assert second.assigned_elevator_id == "A"

    def test_maintenance_releases_requests(self, manager, clock):
        """Queued and in-progress requests go back to WAITING"""
        manager.add_elevator(Elevator("A", [0, 1, 2], 2, True, 0, clock=clock))
        manager.add_elevator(Elevator("B", [0, 1, 2], 2, True, 2, clock=clock))
        first = manager.request_elevator(0, 2, VehicleType.CAR, "CAR-1")
        second = manager.request_elevator(0, 1, VehicleType.CAR, "CAR-2")
        assert first.assigned_elevator_id == "A"
        manager.process_elevator_operations()

        held = [r for r in (first, second) if r.assigned_elevator_id == "A"]
        assert manager.set_elevator_maintenance_mode("A", True)
        for request in held:
            assert request.assigned_elevator_id is None
            assert request.status == ElevatorRequestStatus.WAITING
        assert manager.find_elevator("A").queue_length == 0

        manager.process_elevator_operations()
        for request in held:
            assert request.assigned_elevator_id == "B"

    def test_maintenance_unknown_elevator(self, manager):
        assert not manager.set_elevator_maintenance_mode("nope", True)

    def test_reassignment_prefers_urgent(self, manager, clock):
        manager.add_elevator(Elevator("A", [0, 1], 3, False, 0, clock=clock))
        manager.set_elevator_maintenance_mode("A", True)
        normal = manager.request_elevator(0, 1, VehicleType.CAR, "CAR-1")
        clock.advance(seconds=5)
        urgent = manager.request_elevator(0, 1, VehicleType.CAR, "CAR-2", is_urgent=True)
        assert not manager.is_system_operational()

        manager.set_elevator_maintenance_mode("A", False)
        manager.process_elevator_operations()
        queued = manager.find_elevator("A").queued_requests
        assert queued == [urgent, normal]

    def test_cancel(self, manager, clock):
        manager.add_elevator(Elevator("A", [0, 1], 1, False, 0, clock=clock))
        assigned = manager.request_elevator(0, 1, VehicleType.CAR, "CAR-1")
        waiting = manager.request_elevator(0, 5, VehicleType.CAR, "CAR-2")

        assert manager.cancel_request(assigned.request_id)
        assert assigned.status == ElevatorRequestStatus.CANCELLED
        assert manager.find_elevator("A").queue_length == 0
        assert manager.cancel_request(waiting.request_id)
        assert manager.get_request_status(waiting.request_id) is None
        assert not manager.cancel_request("REQ-999")

    def test_cancel_after_completion_keeps_status(self, manager, clock):
        manager.add_elevator(Elevator("A", [0, 1], 1, False, 0, clock=clock))
        request = manager.request_elevator(0, 0, VehicleType.CAR, "CAR-1")
        manager.process_elevator_operations()
        manager.process_elevator_operations()
        assert request.status == ElevatorRequestStatus.COMPLETED
        delivered_at = request.completion_time

        clock.advance(seconds=60)
        assert not manager.cancel_request(request.request_id)
        assert request.status == ElevatorRequestStatus.COMPLETED
        assert request.completion_time == delivered_at
        assert manager.get_request_status(request.request_id) is None

    def test_system_stats(self, manager, clock):
        manager.add_elevator(Elevator("A", [0, 1], 2, False, 0, clock=clock))
        manager.add_elevator(Elevator("B", [0, 1], 2, False, 0, clock=clock))
        manager.request_elevator(0, 1, VehicleType.CAR, "CAR-1", is_urgent=True)
        manager.request_elevator(0, 7, VehicleType.MOTORCYCLE, "M-1")
        manager.set_elevator_maintenance_mode("B", True)
        clock.advance(seconds=30)

        stats = manager.get_system_stats()
        assert stats.total_requests == 2
        assert stats.unassigned_requests == 1
        assert stats.urgent_requests == 1
        assert stats.average_wait_seconds == pytest.approx(30.0)
        assert stats.active_elevators == 1
        assert stats.system_efficiency == pytest.approx(0.5)
        assert stats.requests_by_vehicle_type == {VehicleType.CAR: 1, VehicleType.MOTORCYCLE: 1}

    def test_clear_finished_requests(self, manager, clock):
        manager.add_elevator(Elevator("A", [0, 1], 1, False, 0, clock=clock))
        request = manager.request_elevator(0, 1, VehicleType.CAR, "CAR-1")
        for _ in range(3):
            manager.process_elevator_operations()
        assert request.status == ElevatorRequestStatus.COMPLETED
        assert manager.clear_finished_requests() == 1
        assert manager.get_active_requests() == []

    def test_statuses_sorted_by_id(self, manager, clock):
        manager.add_elevator(Elevator("B", [0, 1], 1, False, 0, clock=clock))
        manager.add_elevator(Elevator("A", [0, 1], 1, False, 0, clock=clock))
        assert [s.elevator_id for s in manager.get_elevator_statuses()] == ["A", "B"]
