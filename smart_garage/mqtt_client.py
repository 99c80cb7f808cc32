"""
MQTT Client Wrapper for the Smart Garage service

Thin layer over paho-mqtt used to publish customer notifications,
elevator status and system metrics, and to receive operator commands.
"""

import json
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

import paho.mqtt.client as mqtt

logger = logging.getLogger(__name__)


class MQTTClient:
    """
    MQTT client wrapper for the garage service.

    Keeps per-topic callbacks and re-subscribes them after a reconnect.
    """

    def __init__(
        self,
        broker: str = "localhost",
        port: int = 1883,
        client_id: Optional[str] = None,
        on_message_callback: Optional[Callable[[str, Any], None]] = None
    ):
        """
        Initialize MQTT client.

        Args:
            broker: MQTT broker hostname
            port: MQTT broker port
            client_id: Unique client identifier
            on_message_callback: Fallback for messages without a topic callback
        """
        self.broker = broker
        self.port = port
        self.client_id = client_id or f"garage_client_{datetime.now().timestamp()}"

        self.client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=self.client_id,
            protocol=mqtt.MQTTv311,
        )
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message

        self._user_on_message = on_message_callback
        self._topic_callbacks: Dict[str, Callable[[str, Any], None]] = {}
        self._connected = False

        logger.info(f"MQTT Client initialized with ID: {self.client_id}")

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        if reason_code.is_failure:
            self._connected = False
            logger.error(f"Connection failed: {reason_code}")
            return

        self._connected = True
        logger.info(f"Connected to MQTT broker at {self.broker}:{self.port}")
        for topic in self._topic_callbacks:
            self.client.subscribe(topic)
            logger.debug(f"Re-subscribed to topic: {topic}")

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties):
        self._connected = False
        if reason_code.is_failure:
            logger.warning(f"Unexpected disconnection from MQTT broker ({reason_code})")
        else:
            logger.info("Disconnected from MQTT broker")

    def _on_message(self, client, userdata, msg):
        topic = msg.topic
        try:
            payload = json.loads(msg.payload.decode('utf-8'))
        except json.JSONDecodeError:
            payload = msg.payload.decode('utf-8')

        logger.debug(f"Received message on topic '{topic}': {payload}")

        for subscribed_topic, callback in self._topic_callbacks.items():
            if mqtt.topic_matches_sub(subscribed_topic, topic):
                callback(topic, payload)
                return

        if self._user_on_message:
            self._user_on_message(topic, payload)

    def connect(self) -> bool:
        """
        Connect to the MQTT broker.

        Returns:
            True if connection initiated successfully, False otherwise
        """
        try:
            logger.info(f"Connecting to MQTT broker at {self.broker}:{self.port}...")
            self.client.connect(self.broker, self.port, keepalive=60)
            return True
        except Exception as e:
            logger.error(f"Failed to connect to MQTT broker: {e}")
            return False

    def disconnect(self):
        self.client.disconnect()
        self._connected = False

    def start(self):
        """Start the network loop in a background thread"""
        self.client.loop_start()
        logger.info("MQTT client loop started")

    def stop(self):
        self.client.loop_stop()
        logger.info("MQTT client loop stopped")

    def subscribe(self, topic: str, callback: Optional[Callable[[str, Any], None]] = None, qos: int = 1):
        if callback:
            self._topic_callbacks[topic] = callback

        result, _ = self.client.subscribe(topic, qos)
        if result == mqtt.MQTT_ERR_SUCCESS:
            logger.info(f"Subscribed to topic: {topic}")
        else:
            logger.error(f"Failed to subscribe to topic: {topic}")

    def publish(self, topic: str, payload: Any, qos: int = 1, retain: bool = False):
        """
        Publish a message to an MQTT topic.

        Args:
            topic: Topic to publish to
            payload: Message payload (JSON encoded if dict/list)
            qos: Quality of Service level
            retain: Whether the broker keeps the last message
        """
        if isinstance(payload, (dict, list)):
            message = json.dumps(payload)
        else:
            message = str(payload)

        result = self.client.publish(topic, message, qos=qos, retain=retain)
        if result.rc == mqtt.MQTT_ERR_SUCCESS:
            logger.debug(f"Published to '{topic}': {message[:100]}")
        else:
            logger.error(f"Failed to publish to '{topic}': rc={result.rc}")

    @property
    def is_connected(self) -> bool:
        return self._connected


class GarageMQTTTopics:
    """Topic catalogue for the garage service"""

    NOTIFICATION = "garage/notifications/{recipient_id}"
    ELEVATOR_STATUS = "garage/{lot_id}/elevators/status"
    MAINTENANCE_COMMANDS = "garage/{lot_id}/elevators/maintenance"
    SYSTEM_METRICS = "garage/system/metrics"

    @classmethod
    def get_notification_topic(cls, recipient_id: str) -> str:
        return cls.NOTIFICATION.format(recipient_id=recipient_id)

    @classmethod
    def get_elevator_status_topic(cls, lot_id: str) -> str:
        return cls.ELEVATOR_STATUS.format(lot_id=lot_id)

    @classmethod
    def get_maintenance_topic(cls, lot_id: str) -> str:
        return cls.MAINTENANCE_COMMANDS.format(lot_id=lot_id)
