"""Loxxy: accept Loki pushes over HTTP and relay them to Loki, AMQP or MQTT."""

from __future__ import annotations

import argparse
import enum
import logging
import os
import sys

import aiohttp
from aiohttp import web

from oxxy.clients import connect_mqtt, declare_direct_exchange, open_amqp_channel

log = logging.getLogger(__name__)

LISTEN_HOST = "0.0.0.0"
LISTEN_PORT = 4000

_REQUEST_SKIP = {"host", "content-length", "transfer-encoding", "connection", "keep-alive", "upgrade"}
_RESPONSE_SKIP = {"content-length", "transfer-encoding", "connection", "keep-alive"}


class Authentication(enum.Enum):
    """Authentication scheme the proxy is started with."""

    NONE = "none"
    BASIC = "basic"
    RABBIT = "rabbit"
    OAUTH = "oauth"

    def __str__(self) -> str:
        return self.value


def parse_args(argv=None) -> argparse.Namespace:
    """Parse the command line; the sub-command is stored as ``command``."""
    parser = argparse.ArgumentParser(
        prog="loxxy", description="Relay Loki pushes to Loki, AMQP or MQTT."
    )
    parser.add_argument(
        "-a", "--auth", type=Authentication, choices=list(Authentication), required=True
    )
    parser.add_argument("-u", "--user")
    parser.add_argument("-t", "--token")
    commands = parser.add_subparsers(dest="command", required=True)

    http = commands.add_parser("http", help="forward to a Loki gateway")
    http.add_argument("-l", "--loki-uri", default="http://loki-loki-gateway:80")

    amqp = commands.add_parser("amqp", help="publish to an AMQP exchange")
    amqp.add_argument("-r", "--rmq-uri", required=True)
    amqp.add_argument("-e", "--exchange", default="logging")
    amqp.add_argument("-q", "--queue", default="logs")
    amqp.add_argument("--routing-key", default="logs")

    mqtt = commands.add_parser("mqtt", help="publish to an MQTT topic")
    mqtt.add_argument("-m", "--mqtt-uri", required=True)
    mqtt.add_argument("-u", "--user", dest="mqtt_user")
    mqtt.add_argument("-t", "--token", dest="mqtt_token")
    mqtt.add_argument("--topic", required=True)
    mqtt.add_argument("-q", "--qos", type=int, default=0)

    return parser.parse_args(argv)


def validate_auth(args: argparse.Namespace) -> None:
    """Raise ValueError when an authenticated mode lacks a user or token."""
    if args.auth is Authentication.NONE:
        return
    if args.user is None or args.token is None:
        raise ValueError("Authentication details, required.")


class _HttpForwarder:
    def __init__(self, loki_uri: str):
        self.loki_uri = loki_uri
        self.session: aiohttp.ClientSession | None = None

    async def lifespan(self, _app):
        async with aiohttp.ClientSession(auto_decompress=False) as session:
            self.session = session
            yield
        self.session = None

    async def handle(self, request: web.Request) -> web.Response:
        target = f"{self.loki_uri}{request.path_qs}"
        log.debug("uri:: %s", target)
        headers = [(k, v) for k, v in request.headers.items() if k.lower() not in _REQUEST_SKIP]
        body = await request.read()
        try:
            async with self.session.request(
                request.method, target, headers=headers, data=body, allow_redirects=False
            ) as upstream:
                payload = await upstream.read()
                reply_headers = [
                    (k, v) for k, v in upstream.headers.items() if k.lower() not in _RESPONSE_SKIP
                ]
                return web.Response(status=upstream.status, body=payload, headers=reply_headers)
        except aiohttp.ClientError as exc:
            log.debug("forwarding to %s failed: %s", target, exc)
            raise web.HTTPBadRequest() from exc


def build_app(args: argparse.Namespace, amqp_channel, mqtt_client) -> web.Application:
    """Build the web application that relays every POST according to ``args.command``."""
    app = web.Application()

    if args.command == "http":
        forwarder = _HttpForwarder(args.loki_uri)
        app.cleanup_ctx.append(forwarder.lifespan)
        handler = forwarder.handle
    elif args.command == "amqp":

        async def handler(request: web.Request) -> web.Response:
            body = await request.read()
            log.debug("%r", body)
            amqp_channel.basic_publish(exchange=args.exchange, routing_key=args.queue, body=body)
            return web.Response()

    elif args.command == "mqtt":

        async def handler(request: web.Request) -> web.Response:
            body = await request.read()
            log.debug("%r", body)
            mqtt_client.publish(args.topic, body, qos=0)
            return web.Response()

    else:
        raise ValueError(f"unknown command {args.command!r}")

    app.router.add_post("/{tail:.*}", handler)
    return app


def main(argv=None) -> int:
    """Run the Loxxy proxy."""
    args = parse_args(argv)
    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "WARNING").upper())

    try:
        validate_auth(args)
    except ValueError as exc:
        log.info("%s", exc)
        return 1

    log.info("Starting Loxxy with args %s", args)
    amqp_channel = None
    mqtt_client = None
    if args.command == "amqp":
        amqp_channel = open_amqp_channel(args.rmq_uri)
        declare_direct_exchange(amqp_channel, args.exchange)
        log.info("amqp connected")
    elif args.command == "mqtt":
        try:
            mqtt_client = connect_mqtt(args.mqtt_uri, "oxxy-toxxy", args.mqtt_user, args.mqtt_token)
        except OSError as exc:
            print(f"Unable to connect: {exc!r}", file=sys.stderr)
            return 0

    app = build_app(args, amqp_channel, mqtt_client)
    log.info("Loxxy listening on %s:%d", LISTEN_HOST, LISTEN_PORT)
    web.run_app(app, host=LISTEN_HOST, port=LISTEN_PORT, print=None)
    return 0