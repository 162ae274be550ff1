"""
Local MQTT adapter for RailGuard.

This module publishes alert notifications to per-user and
per-authority topics through the durable outbox.
"""

from .notifier import MqttAlertNotifier

__all__ = ["MqttAlertNotifier"]
