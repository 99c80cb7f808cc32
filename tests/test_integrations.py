"""Tests for config loading, MQTT, notifications and telemetry (no network)."""

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from main import load_config, make_maintenance_handler
from smart_garage.models import GarageConfig, ReservationPolicy, VehicleType
from smart_garage.mqtt_client import GarageMQTTTopics, MQTTClient
from smart_garage.notifications import LoggingNotifier, MQTTNotifier
from smart_garage.parking_lot import MultiLevelParkingLot
from smart_garage.reservation_manager import ReservationManager
from smart_garage.telemetry import TelemetryReporter, TelemetryStore

CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "config.yaml"


@pytest.fixture
def paho_client():
    with patch("smart_garage.mqtt_client.mqtt.Client") as client_cls:
        client = client_cls.return_value
        client.publish.return_value.rc = 0
        client.subscribe.return_value = (0, 1)
        yield client


class TestConfig:
    def test_shipped_config_builds_a_lot(self):
        config = load_config(str(CONFIG_PATH))
        lot = MultiLevelParkingLot.from_config(GarageConfig.from_dict(config))
        assert lot.lot_id == "garage-central"
        assert lot.level_count == 4
        assert lot.elevator_manager.can_reach_level(-1, 1)
        assert lot.park_vehicle("VAN-1", VehicleType.VAN).success

    def test_policy_section(self):
        config = load_config(str(CONFIG_PATH))
        policy = ReservationPolicy.from_dict(config["reservations"]["policy"])
        assert policy.grace_period_minutes == 15
        assert policy.max_duration_minutes == 1440

    def test_policy_defaults(self):
        assert ReservationPolicy.from_dict({}) == ReservationPolicy()

    def test_maintenance_command_handler(self, lot):
        handle = make_maintenance_handler(lot)
        handle("garage/test-lot/elevators/maintenance", {"elevator_id": "E2", "enabled": True})
        assert lot.elevator_manager.find_elevator("E2").maintenance_mode
        handle("garage/test-lot/elevators/maintenance", "garbage")
        handle("garage/test-lot/elevators/maintenance", {"elevator_id": "E2", "enabled": False})
        assert not lot.elevator_manager.find_elevator("E2").maintenance_mode


class TestMQTTClient:
    def test_publish_encodes_json(self, paho_client):
        client = MQTTClient(client_id="test")
        client.publish("garage/x", {"a": 1})
        topic, message = paho_client.publish.call_args[0]
        assert topic == "garage/x"
        assert json.loads(message) == {"a": 1}

    def test_topic_callback_routing(self, paho_client):
        client = MQTTClient(client_id="test")
        received = []
        client.subscribe("garage/+/elevators/maintenance", lambda t, p: received.append((t, p)))

        msg = MagicMock(topic="garage/g1/elevators/maintenance", payload=b'{"elevator_id": "E1"}')
        client._on_message(paho_client, None, msg)
        assert received == [("garage/g1/elevators/maintenance", {"elevator_id": "E1"})]

    def test_connect_state(self, paho_client):
        client = MQTTClient(client_id="test")
        client._on_connect(paho_client, None, {}, MagicMock(is_failure=False), None)
        assert client.is_connected
        client._on_disconnect(paho_client, None, {}, MagicMock(is_failure=True), None)
        assert not client.is_connected

    def test_topics(self):
        assert GarageMQTTTopics.get_notification_topic("CAR-1") == "garage/notifications/CAR-1"
        assert GarageMQTTTopics.get_maintenance_topic("g1") == "garage/g1/elevators/maintenance"


class TestNotifiers:
    def test_mqtt_notifier_payload(self, clock):
        mqtt_client = MagicMock(spec=MQTTClient)
        MQTTNotifier(mqtt_client, clock=clock).notify("CAR-1", "hello")
        mqtt_client.publish.assert_called_once_with(
            "garage/notifications/CAR-1",
            {"recipient_id": "CAR-1", "message": "hello", "timestamp": clock().isoformat()},
        )

    def test_mqtt_notifier_swallows_publish_errors(self, clock):
        mqtt_client = MagicMock(spec=MQTTClient)
        mqtt_client.publish.side_effect = RuntimeError("broker gone")
        MQTTNotifier(mqtt_client, clock=clock).notify("CAR-1", "hello")

    def test_logging_notifier(self, caplog):
        with caplog.at_level("INFO"):
            LoggingNotifier().notify("CAR-1", "hello")
        assert "NOTIFICATION for CAR-1: hello" in caplog.text


class TestTelemetry:
    def test_store_writes_one_point_per_level_and_fleet(self, lot):
        with patch("smart_garage.telemetry.InfluxDBClient") as influx_cls:
            store = TelemetryStore()
            store.store_lot_status(lot.get_lot_status())
            write = influx_cls.return_value.write_api.return_value.write
            assert write.call_count == 1 + 3

    def test_store_logs_write_failures(self, lot):
        with patch("smart_garage.telemetry.InfluxDBClient") as influx_cls:
            write = influx_cls.return_value.write_api.return_value.write
            write.side_effect = RuntimeError("influx down")
            TelemetryStore().store_lot_status(lot.get_lot_status())

    def test_reporter_publishes_snapshot(self, lot, clock):
        store = MagicMock(spec=TelemetryStore)
        mqtt_client = MagicMock(spec=MQTTClient)
        reservations = ReservationManager(lot, clock=clock)
        reporter = TelemetryReporter(lot, store, mqtt_client, reservations)

        lot.park_vehicle("CAR-1", VehicleType.CAR)
        payload = reporter.report()

        assert payload["occupied_spaces"] == 1
        assert payload["reservations"]["confirmed"] == 0
        store.store_lot_status.assert_called_once()
        store.store_reservation_counts.assert_called_once()
        topics = [c[0][0] for c in mqtt_client.publish.call_args_list]
        assert topics == ["garage/system/metrics", "garage/test-lot/elevators/status"]

    def test_reporter_start_stop(self, lot):
        reporter = TelemetryReporter(lot, interval=0.01)
        reporter.start()
        reporter.stop()
