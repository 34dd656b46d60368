"""Toxxy: publish a sample Loki push at a fixed interval to exercise the relays."""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time

import paho.mqtt.client as mqtt

from oxxy.clients import connect_mqtt, declare_direct_exchange, open_amqp_channel

log = logging.getLogger(__name__)

CLIENT_ID = "oxxy-toxxy"
TIMESTAMP_MARK = "$TS$"

LOG_TEMPLATE = """{
  "streams": [
    {
      "stream": {
        "hostname": "zoomer",
        "hw_id": "00:00:5e:00:53:01",
        "sw_version": "v2.3.5",
        "level": "info"
      },
      "values": [
        [
          "$TS$",
          "2024-08-22T13:00:00Z [INFO] - collected data"
        ],
        [
          "$TS$",
          "2024-08-22T13:00:00Z [INFO] - conditions nominal"
        ]
      ]
    }
  ]
}"""


def render_payload(timestamp_ns: int) -> str:
    """Fill the sample push with a nanosecond timestamp."""
    return LOG_TEMPLATE.replace(TIMESTAMP_MARK, str(timestamp_ns))


def parse_args(argv=None) -> argparse.Namespace:
    """Parse the command line; the sub-command is stored as ``command``."""
    parser = argparse.ArgumentParser(prog="toxxy", description="Toxxy the Oxxy Tester")
    parser.add_argument("-f", "--freq", type=int, required=True)
    commands = parser.add_subparsers(dest="command", required=True)

    mqtt_cmd = commands.add_parser("mqtt", help="publish to an MQTT topic")
    mqtt_cmd.add_argument("-m", "--mqtt-uri", required=True)
    mqtt_cmd.add_argument("-u", "--user")
    mqtt_cmd.add_argument("-t", "--token")
    mqtt_cmd.add_argument("--topic", required=True)
    mqtt_cmd.add_argument("-q", "--qos", type=int, default=0)

    amqp_cmd = commands.add_parser("amqp", help="publish to an AMQP exchange")
    amqp_cmd.add_argument("-r", "--rmq-uri", required=True)
    amqp_cmd.add_argument("-e", "--exchange", default="logging")
    amqp_cmd.add_argument("-q", "--queue", default="logs")
    amqp_cmd.add_argument("--routing-key", default="logs")

    args = parser.parse_args(argv)
    if args.freq < 0:
        parser.error("--freq must not be negative")
    return args


def publish_amqp(channel, exchange: str, queue: str, payload: str | bytes) -> None:
    """Declare ``exchange`` and publish ``payload`` to it, routed by ``queue``."""
    declare_direct_exchange(channel, exchange)
    body = payload.encode("utf-8") if isinstance(payload, str) else payload
    channel.basic_publish(exchange=exchange, routing_key=queue, body=body)


def _publish_mqtt(client: mqtt.Client, topic: str, payload: str) -> None:
    info = client.publish(topic, payload, qos=0)
    if info.rc != mqtt.MQTT_ERR_SUCCESS:
        raise ConnectionError(f"publish failed: {mqtt.error_string(info.rc)}")
    info.wait_for_publish()


def main(argv=None) -> int:
    """Publish the sample push every ``--freq`` seconds until interrupted."""
    args = parse_args(argv)
    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "WARNING").upper())

    channel = None
    client = None
    if args.command == "amqp":
        channel = open_amqp_channel(args.rmq_uri)
    else:
        try:
            client = connect_mqtt(args.mqtt_uri, CLIENT_ID, args.user, args.token)
        except OSError as exc:
            print(f"Unable to connect: {exc!r}", file=sys.stderr)
            return 0

    try:
        while True:
            log.info("Publishing test message w/ %s", args)
            payload = render_payload(time.time_ns())
            if channel is not None:
                publish_amqp(channel, args.exchange, args.queue, payload)
            else:
                _publish_mqtt(client, args.topic, payload)
            log.info("%d", args.freq)
            time.sleep(args.freq)
    except KeyboardInterrupt:
        pass
    finally:
        if client is not None:
            client.loop_stop()
            client.disconnect()
    return 0