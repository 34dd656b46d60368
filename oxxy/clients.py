"""Connections shared by the relays: Loki over HTTP, MQTT and AMQP."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from urllib.parse import urlsplit

import aiohttp
import paho.mqtt.client as mqtt
import pika

CONNECT_TIMEOUT = 30.0

_MQTT_SCHEMES = {
    "tcp": (1883, False, "tcp"),
    "mqtt": (1883, False, "tcp"),
    "ssl": (8883, True, "tcp"),
    "mqtts": (8883, True, "tcp"),
    "ws": (80, False, "websockets"),
    "wss": (443, True, "websockets"),
}


@dataclass(frozen=True)
class _MqttEndpoint:
    host: str
    port: int
    tls: bool
    transport: str
    path: str


def _parse_mqtt_uri(uri: str) -> _MqttEndpoint:
    parts = urlsplit(uri)
    scheme = parts.scheme.lower()
    if scheme not in _MQTT_SCHEMES:
        raise ValueError(f"unsupported MQTT server URI: {uri!r}")
    if not parts.hostname:
        raise ValueError(f"MQTT server URI has no host: {uri!r}")
    default_port, tls, transport = _MQTT_SCHEMES[scheme]
    return _MqttEndpoint(
        host=parts.hostname,
        port=parts.port or default_port,
        tls=tls,
        transport=transport,
        path=parts.path or "/mqtt",
    )


async def post_to_loki(url: str, body: bytes | str, content_type: str, user_agent: str) -> int:
    """POST ``body`` to ``url`` and return the response status."""
    headers = {"content-type": content_type, "user-agent": user_agent}
    async with aiohttp.ClientSession() as session:
        async with session.post(url, data=body, headers=headers) as response:
            await response.read()
            return response.status


def connect_mqtt(uri: str, client_id: str, user: str | None, token: str | None) -> mqtt.Client:
    """Connect to an MQTT broker and return a client with its network loop running."""
    endpoint = _parse_mqtt_uri(uri)
    client = mqtt.Client(
        mqtt.CallbackAPIVersion.VERSION2,
        client_id=client_id,
        transport=endpoint.transport,
    )
    if endpoint.tls:
        client.tls_set()
    if endpoint.transport == "websockets":
        client.ws_set_options(path=endpoint.path)
    if user is not None and token is not None:
        client.username_pw_set(user, token)

    connected = threading.Event()
    outcome = {}

    def on_connect(_client, _userdata, _flags, reason_code, _properties):
        outcome["reason"] = reason_code
        connected.set()

    client.on_connect = on_connect
    client.connect(endpoint.host, endpoint.port)
    client.loop_start()
    if not connected.wait(CONNECT_TIMEOUT):
        client.loop_stop()
        raise TimeoutError(f"no answer from MQTT broker at {uri}")
    reason = outcome["reason"]
    if reason.is_failure:
        client.loop_stop()
        raise ConnectionError(f"MQTT broker refused the connection: {reason}")
    client.on_connect = None
    return client


def open_amqp_channel(uri: str):
    """Open a blocking AMQP connection and return a fresh channel on it."""
    connection = pika.BlockingConnection(pika.URLParameters(uri))
    return connection.channel()


def declare_direct_exchange(channel, exchange: str) -> None:
    """Declare ``exchange`` as a direct exchange with default options."""
    channel.exchange_declare(exchange=exchange, exchange_type="direct")