"""Shared fixtures: a controllable clock, a recording notifier and a small garage."""

from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from smart_garage.elevator import Elevator
from smart_garage.level import ParkingLevel
from smart_garage.models import LevelType, SpaceType, VehicleType
from smart_garage.parking_lot import MultiLevelParkingLot

R = SpaceType.REGULAR
C = SpaceType.COMPACT


class ManualClock:
    """Clock that only moves when a test advances it."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def notify(self, recipient_id, message):
        self.sent.append((recipient_id, message))

    def messages_for(self, recipient_id):
        return [message for rid, message in self.sent if rid == recipient_id]


@pytest.fixture
def clock():
    return ManualClock(datetime(2024, 6, 1, 8, 0, 0))


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def capacity():
    """Stand-in lot exposing only the total space count"""
    return SimpleNamespace(total_spaces=4)


def make_level(number, level_type, rows, **kwargs):
    return ParkingLevel(number, f"Level {number}", level_type, rows, **kwargs)


@pytest.fixture
def lot(clock):
    """Ground (6 spaces), elevated level 1 (4 regular), underground -1 (2 compact); vans only on 1"""
    lot = MultiLevelParkingLot("test-lot", clock=clock)
    lot.add_level(make_level(
        0, LevelType.GROUND, [[R, R, C], [R, C, C]],
        allowed_vehicle_types=[VehicleType.MOTORCYCLE, VehicleType.CAR],
    ))
    lot.add_level(make_level(1, LevelType.ELEVATED, [[R, R, R, R]]))
    lot.add_level(make_level(
        -1, LevelType.UNDERGROUND, [[C, C]],
        allowed_vehicle_types=[VehicleType.MOTORCYCLE, VehicleType.CAR],
    ))
    lot.add_elevator(Elevator("E1", [-1, 0, 1], 1, False, 0, clock=clock))
    lot.add_elevator(Elevator("E2", [0, 1], 2, True, 0, clock=clock))
    return lot
