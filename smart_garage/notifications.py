"""
Customer notification sinks

Notifications are fire-and-forget: a sink never raises into the caller
and gives no delivery guarantee.
"""

import logging
from datetime import datetime
from typing import Callable, Protocol

from .mqtt_client import GarageMQTTTopics, MQTTClient

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, recipient_id: str, message: str):
        ...


class LoggingNotifier:
    """Writes every notification to the log"""

    def notify(self, recipient_id: str, message: str):
        logger.info(f"NOTIFICATION for {recipient_id}: {message}")


class MQTTNotifier:
    """
    Publishes notifications as JSON on ``garage/notifications/{recipient_id}``.

    Payload: ``{"recipient_id", "message", "timestamp"}``.
    """

    def __init__(self, mqtt_client: MQTTClient, clock: Callable[[], datetime] = datetime.now):
        self.mqtt_client = mqtt_client
        self._clock = clock

    def notify(self, recipient_id: str, message: str):
        payload = {
            "recipient_id": recipient_id,
            "message": message,
            "timestamp": self._clock().isoformat(),
        }
        try:
            self.mqtt_client.publish(GarageMQTTTopics.get_notification_topic(recipient_id), payload)
        except Exception as e:
            logger.error(f"Failed to publish notification for {recipient_id}: {e}")
