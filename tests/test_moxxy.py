import contextlib
import json
import socket

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from oxxy.moxxy import content_type_for, forward, main, parse_args

LOG_JSON = json.dumps(
    {"stream": {"hostname": "zoomer"}, "values": [["1", "collected data"]]}
).encode()
BINARY = b"\x80\x05\xf0\xc2\n\xfd\x04\nG"


def _free_port():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@contextlib.asynccontextmanager
async def _loki():
    seen = []

    async def handle(request):
        seen.append(
            (
                request.headers.get("Content-Type"),
                request.headers.get("User-Agent"),
                await request.read(),
            )
        )
        return web.Response(status=204)

    app = web.Application()
    app.router.add_post("/loki/api/v1/push", handle)
    async with TestServer(app) as server:
        yield f"http://{server.host}:{server.port}/loki/api/v1/push", seen


def test_parse_args_defaults():
    args = parse_args(["-m", "tcp://localhost:1883"])
    assert args.loki_uri == "http://loki-loki-gateway:80/loki/api/v1/push"
    assert args.topic == "#/#/#/logs"
    assert args.qos == 0
    assert args.user is None and args.token is None


def test_parse_args_requires_mqtt_uri():
    with pytest.raises(SystemExit):
        parse_args([])


def test_content_type_json_for_log_message():
    assert content_type_for(LOG_JSON) == "application/json"


@pytest.mark.parametrize(
    "payload",
    [BINARY, b"not json", json.dumps({"streams": []}).encode()],
)
def test_content_type_protobuf_otherwise(payload):
    assert content_type_for(payload) == "application/x-protobuf"


@pytest.mark.asyncio
async def test_forward_json_payload():
    async with _loki() as (url, seen):
        status = await forward(url, LOG_JSON)
    assert status == 204
    assert seen == [("application/json", "oxxy-moxxy", LOG_JSON)]


@pytest.mark.asyncio
async def test_forward_binary_payload():
    async with _loki() as (url, seen):
        await forward(url, BINARY)
    assert seen == [("application/x-protobuf", "oxxy-moxxy", BINARY)]


@pytest.mark.asyncio
async def test_forward_raises_when_loki_is_down():
    with pytest.raises(aiohttp.ClientError):
        await forward(f"http://127.0.0.1:{_free_port()}/loki/api/v1/push", LOG_JSON)


def test_main_returns_zero_when_broker_refuses():
    assert main(["-m", f"tcp://127.0.0.1:{_free_port()}"]) == 0