"""
Main Entry Point for the Smart Garage service

Builds the garage from config/config.yaml and runs the elevator tick
loop, the reservation sweeps and the telemetry reporter until SIGINT or
SIGTERM.
"""

import logging
import signal
import time
from typing import Any, Dict

import yaml

from smart_garage.models import GarageConfig, ReservationPolicy
from smart_garage.mqtt_client import GarageMQTTTopics, MQTTClient
from smart_garage.notifications import MQTTNotifier
from smart_garage.parking_lot import MultiLevelParkingLot
from smart_garage.reservation_manager import ReservationManager
from smart_garage.telemetry import TelemetryReporter, TelemetryStore


def load_config(config_path: str = "config/config.yaml") -> dict:
    """Load configuration from YAML file"""
    with open(config_path, 'r') as f:
        return yaml.safe_load(f)


def setup_logging(config: dict):
    """Configure logging based on config"""
    log_config = config.get('logging', {})
    level = getattr(logging, log_config.get('level', 'INFO'))
    format_str = log_config.get('format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_config.get('file', 'smart_garage.log'))
        ]
    )


def make_maintenance_handler(lot: MultiLevelParkingLot):
    """Handle ``{"elevator_id": "E1", "enabled": true}`` operator commands"""
    logger = logging.getLogger(__name__)

    def handle(topic: str, payload: Dict[str, Any]):
        if not isinstance(payload, dict) or "elevator_id" not in payload:
            logger.warning(f"Ignoring malformed maintenance command on {topic}: {payload}")
            return
        lot.set_elevator_maintenance_mode(payload["elevator_id"], bool(payload.get("enabled", True)))

    return handle


def main():
    """Main entry point"""
    config = load_config()
    setup_logging(config)

    logger = logging.getLogger(__name__)
    logger.info("=" * 60)
    logger.info("Smart Garage")
    logger.info("=" * 60)

    garage_config = GarageConfig.from_dict(config)
    lot = MultiLevelParkingLot.from_config(garage_config)

    mqtt_config = config['mqtt']
    mqtt_client = MQTTClient(
        broker=mqtt_config['broker'],
        port=mqtt_config['port'],
        client_id=mqtt_config.get('client_id', f"garage_{garage_config.lot_id}")
    )

    reservation_config = config.get('reservations', {})
    reservation_manager = ReservationManager(
        parking_lot=lot,
        policy=ReservationPolicy.from_dict(reservation_config.get('policy', {})),
        notifier=MQTTNotifier(mqtt_client),
        expiration_interval=reservation_config.get('expiration_interval_seconds', 60),
        waitlist_interval=reservation_config.get('waitlist_interval_seconds', 300)
    )

    influx_config = config['influxdb']
    telemetry_store = TelemetryStore(
        url=influx_config['url'],
        token=influx_config['token'],
        org=influx_config['org'],
        bucket=influx_config['bucket']
    )
    reporter = TelemetryReporter(
        parking_lot=lot,
        store=telemetry_store,
        mqtt_client=mqtt_client,
        reservation_manager=reservation_manager,
        interval=config.get('telemetry', {}).get('interval_seconds', 10)
    )

    # Graceful shutdown handler
    running = True

    def signal_handler(signum, frame):
        nonlocal running
        logger.info("Received shutdown signal")
        running = False

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        logger.info("Connecting to MQTT broker...")
        mqtt_client.connect()
        mqtt_client.start()
        mqtt_client.subscribe(
            GarageMQTTTopics.get_maintenance_topic(garage_config.lot_id),
            make_maintenance_handler(lot)
        )

        lot.start()
        reservation_manager.start()
        reporter.start()

        logger.info("=" * 60)
        logger.info(f"Garage {garage_config.lot_id} running. Press Ctrl+C to stop.")
        logger.info("=" * 60)

        while running:
            time.sleep(1)

    except Exception as e:
        logger.error(f"Error: {e}")
        raise

    finally:
        logger.info("Shutting down...")
        reporter.stop()
        reservation_manager.stop()
        lot.stop()
        mqtt_client.stop()
        mqtt_client.disconnect()
        telemetry_store.close()
        logger.info("Shutdown complete")


if __name__ == "__main__":
    main()
