"""Moxxy: subscribe to MQTT log topics and push every message to Loki."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os

import aiohttp
import paho.mqtt.client as mqtt

from oxxy.clients import connect_mqtt, post_to_loki
from oxxy.shapes import LogMessage

log = logging.getLogger(__name__)

USER_AGENT = "oxxy-moxxy"
QUEUE_SIZE = 100


def parse_args(argv=None) -> argparse.Namespace:
    """Parse the command line."""
    parser = argparse.ArgumentParser(prog="moxxy", description="Relay MQTT log messages to Loki.")
    parser.add_argument("-l", "--loki-uri", default="http://loki-loki-gateway:80/loki/api/v1/push")
    parser.add_argument("-m", "--mqtt-uri", required=True)
    parser.add_argument("-u", "--user")
    parser.add_argument("-t", "--token")
    parser.add_argument("--topic", default="#/#/#/logs")
    parser.add_argument("-q", "--qos", type=int, default=0)
    return parser.parse_args(argv)


def content_type_for(payload: bytes) -> str:
    """JSON when the payload is a log message, protobuf otherwise."""
    try:
        message = LogMessage.from_json(payload)
    except ValueError as exc:
        log.debug("Failed to deserialize log message as json: %s", exc)
        return "application/x-protobuf"
    log.debug("Successfully deserialized log message: %r", message)
    return "application/json"


async def forward(loki_uri: str, payload: bytes) -> int:
    """Push one payload to Loki and return the response status."""
    return await post_to_loki(loki_uri, payload, content_type_for(payload), USER_AGENT)


async def _relay(client: mqtt.Client, args: argparse.Namespace) -> None:
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[bytes] = asyncio.Queue(maxsize=QUEUE_SIZE)

    def on_message(_client, _userdata, message):
        asyncio.run_coroutine_threadsafe(queue.put(bytes(message.payload)), loop)

    client.on_message = on_message
    result, _mid = client.subscribe(args.topic, args.qos)
    if result != mqtt.MQTT_ERR_SUCCESS:
        log.error("Error subscribing to topic: %s", mqtt.error_string(result))
        return
    log.info("Subscribing to topic %r", args.topic)

    while True:
        payload = await queue.get()
        print("Received message:")
        print(f"Message: {payload!r}")
        try:
            await forward(args.loki_uri, payload)
        except aiohttp.ClientError as exc:
            log.error("bad req: %s", exc)


def main(argv=None) -> int:
    """Run the MQTT to Loki relay."""
    args = parse_args(argv)
    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "WARNING").upper())

    try:
        client = connect_mqtt(args.mqtt_uri, USER_AGENT, args.user, args.token)
    except OSError as exc:
        log.error("Unable to connect: %r", exc)
        return 0
    log.info("Moxxy Connected")

    try:
        asyncio.run(_relay(client, args))
    except KeyboardInterrupt:
        pass
    finally:
        client.loop_stop()
        client.disconnect()
    return 0