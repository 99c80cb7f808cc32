"""
Telemetry for the Smart Garage service

Writes periodic snapshots of elevator, level and reservation state to
InfluxDB and mirrors them on MQTT for live dashboards. Telemetry is
write-only: nothing is ever read back to rebuild garage state.
"""

import logging
import threading
from typing import Any, Dict, Optional

from influxdb_client import InfluxDBClient, Point
from influxdb_client.client.write_api import SYNCHRONOUS

from .mqtt_client import GarageMQTTTopics, MQTTClient
from .parking_lot import MultiLevelParkingLot
from .reservation_manager import ReservationManager
from .results import ElevatorSystemStats, LevelStatus, LotStatus

logger = logging.getLogger(__name__)


class TelemetryStore:
    """
    InfluxDB sink for garage measurements.

    Measurements:
    - ``elevator_system``: fleet statistics per lot
    - ``level_occupancy``: one point per level, tagged by level number
    - ``reservations``: reservation counts by status
    """

    def __init__(
        self,
        url: str = "http://localhost:8086",
        token: str = "my-super-secret-token",
        org: str = "garage-org",
        bucket: str = "garage_data"
    ):
        """
        Args:
            url: InfluxDB server URL
            token: Authentication token
            org: Organization name
            bucket: Bucket receiving every measurement
        """
        self.url = url
        self.org = org
        self.bucket = bucket

        self.client = InfluxDBClient(url=url, token=token, org=org)
        self.write_api = self.client.write_api(write_options=SYNCHRONOUS)

        logger.info(f"Telemetry store initialized with InfluxDB at {url}")

    def store_elevator_stats(self, lot_id: str, stats: ElevatorSystemStats):
        try:
            point = (
                Point("elevator_system")
                .tag("lot_id", lot_id)
                .field("total_requests", stats.total_requests)
                .field("unassigned_requests", stats.unassigned_requests)
                .field("urgent_requests", stats.urgent_requests)
                .field("active_elevators", stats.active_elevators)
                .field("total_elevators", stats.total_elevators)
                .field("average_wait_seconds", float(stats.average_wait_seconds))
                .field("system_efficiency", stats.system_efficiency * 100)
            )
            self.write_api.write(bucket=self.bucket, org=self.org, record=point)
            logger.debug(f"Stored elevator stats for lot {lot_id}")
        except Exception as e:
            logger.error(f"Failed to store elevator stats: {e}", exc_info=True)

    def store_level_status(self, lot_id: str, status: LevelStatus):
        try:
            point = (
                Point("level_occupancy")
                .tag("lot_id", lot_id)
                .tag("level", str(status.level_number))
                .tag("level_type", status.level_type.value)
                .field("occupied_spaces", status.occupied_spaces)
                .field("available_spaces", status.available_spaces)
                .field("total_spaces", status.total_spaces)
                .field("occupancy_percentage", status.occupancy_rate * 100)
            )
            self.write_api.write(bucket=self.bucket, org=self.org, record=point)
        except Exception as e:
            logger.error(f"Failed to store level {status.level_number} status: {e}")

    def store_reservation_counts(self, lot_id: str, counts: Dict[str, int]):
        try:
            point = Point("reservations").tag("lot_id", lot_id)
            for status, count in counts.items():
                point = point.field(status, count)
            self.write_api.write(bucket=self.bucket, org=self.org, record=point)
        except Exception as e:
            logger.error(f"Failed to store reservation counts: {e}")

    def store_lot_status(self, status: LotStatus):
        self.store_elevator_stats(status.lot_id, status.elevator_stats)
        for level_status in status.levels:
            self.store_level_status(status.lot_id, level_status)

    def close(self):
        self.client.close()
        logger.info("Telemetry store connection closed")


class TelemetryReporter:
    """Periodically snapshots the lot into the store and onto MQTT"""

    def __init__(
        self,
        parking_lot: MultiLevelParkingLot,
        store: Optional[TelemetryStore] = None,
        mqtt_client: Optional[MQTTClient] = None,
        reservation_manager: Optional[ReservationManager] = None,
        interval: float = 10.0
    ):
        self.parking_lot = parking_lot
        self.store = store
        self.mqtt_client = mqtt_client
        self.reservation_manager = reservation_manager
        self.interval = interval

        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    def report(self) -> Dict[str, Any]:
        """Take one snapshot, store and publish it; returns the published payload"""
        status = self.parking_lot.get_lot_status()
        payload = status.to_dict()

        reservation_counts = None
        if self.reservation_manager is not None:
            reservation_counts = {
                s.value: n for s, n in self.reservation_manager.get_status_counts().items()
            }
            payload["reservations"] = reservation_counts

        if self.store is not None:
            self.store.store_lot_status(status)
            if reservation_counts is not None:
                self.store.store_reservation_counts(status.lot_id, reservation_counts)

        if self.mqtt_client is not None:
            self.mqtt_client.publish(GarageMQTTTopics.SYSTEM_METRICS, payload)
            self.mqtt_client.publish(
                GarageMQTTTopics.get_elevator_status_topic(status.lot_id),
                [elevator.to_dict() for elevator in status.elevators],
            )

        logger.debug(
            f"Telemetry [{status.lot_id}]: {status.occupied_spaces}/{status.total_spaces} occupied, "
            f"{status.elevator_stats.total_requests} elevator requests"
        )
        return payload

    def _report_loop(self):
        logger.info("Telemetry reporter started")
        while self._running:
            try:
                self.report()
            except Exception as e:
                logger.error(f"Telemetry report error: {e}", exc_info=True)
            self._stop_event.wait(self.interval)
        logger.info("Telemetry reporter stopped")

    def start(self):
        if self._running:
            logger.warning("Telemetry reporter is already running")
            return

        self._stop_event.clear()
        self._running = True
        self._thread = threading.Thread(target=self._report_loop, name="Telemetry", daemon=True)
        self._thread.start()

    def stop(self):
        self._running = False
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None
