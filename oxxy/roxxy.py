"""Roxxy: consume log messages from an AMQP queue and push them to Loki."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
from typing import NamedTuple

import aiohttp

from oxxy.clients import declare_direct_exchange, open_amqp_channel, post_to_loki
from oxxy.shapes import LogMessage

log = logging.getLogger(__name__)

USER_AGENT = "oxxy-roxxy"
JSON_CONTENT_TYPE = "application/json"
PROTOBUF_CONTENT_TYPE = "application/x-protobuf"


class _Plan(NamedTuple):
    content_type: str | None
    ack: bool


def parse_args(argv=None) -> argparse.Namespace:
    """Parse the command line."""
    parser = argparse.ArgumentParser(prog="roxxy", description="Relay AMQP log messages to Loki.")
    parser.add_argument("-l", "--loki-url", default="http://loki-loki-gateway:80/loki/api/v1/push")
    parser.add_argument("-r", "--rmq-uri", required=True)
    parser.add_argument("-q", "--queue", required=True)
    parser.add_argument("--routing-key", required=True)
    parser.add_argument("-e", "--exchange", required=True)
    parser.add_argument("-s", "--strict", action="store_true")
    return parser.parse_args(argv)


def plan_forward(payload: bytes, strict: bool) -> _Plan:
    """Decide how a delivery is handled.

    Returns the content type to push it to Loki with (``None`` to drop it)
    and whether the delivery is acknowledged afterwards. Text payloads are
    pushed as JSON, in strict mode only when they hold a log message; other
    payloads are passed along raw as protobuf.
    """
    try:
        text = bytes(payload).decode("utf-8")
    except UnicodeDecodeError:
        log.debug("Received non-UTF-8 message, likely protobuf, passing along raw: %r", payload)
        return _Plan(PROTOBUF_CONTENT_TYPE, True)

    try:
        message = LogMessage.from_json(text)
    except ValueError as exc:
        log.debug("Failed to deserialize log message: %s", exc)
        valid = False
    else:
        log.debug("Successfully deserialized log message: %r", message)
        valid = True

    if valid or not strict:
        return _Plan(JSON_CONTENT_TYPE, False)
    return _Plan(None, False)


async def handle_delivery(loki_url: str, payload: bytes, strict: bool) -> bool:
    """Push one delivery to Loki as planned and return whether to acknowledge it."""
    content_type, ack = plan_forward(payload, strict)
    if content_type is not None:
        await post_to_loki(loki_url, bytes(payload), content_type, USER_AGENT)
    return ack


def main(argv=None) -> int:
    """Run the AMQP to Loki relay."""
    args = parse_args(argv)
    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "WARNING").upper())

    channel = open_amqp_channel(args.rmq_uri)
    declare_direct_exchange(channel, args.exchange)
    channel.queue_declare(queue=args.queue)
    channel.queue_bind(queue=args.queue, exchange=args.exchange, routing_key=args.routing_key)

    def on_message(ch, method, _properties, body):
        try:
            ack = asyncio.run(handle_delivery(args.loki_url, body, args.strict))
        except aiohttp.ClientError as exc:
            log.error("bad req: %s", exc)
            return
        if ack:
            ch.basic_ack(delivery_tag=method.delivery_tag)

    channel.basic_consume(
        queue=args.queue, on_message_callback=on_message, consumer_tag=args.routing_key
    )
    try:
        channel.start_consuming()
    except KeyboardInterrupt:
        channel.stop_consuming()
    return 0