"""Relays that carry Loki log pushes over HTTP, AMQP and MQTT, and a test publisher."""

__version__ = "0.1.0"
__all__ = ["clients", "loxxy", "moxxy", "roxxy", "shapes", "toxxy"]