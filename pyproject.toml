[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "oxxy"
version = "0.1.0"
description = "Relays that carry Loki log pushes over HTTP, AMQP and MQTT, plus a test publisher"
requires-python = ">=3.10"
keywords = ["loki", "proxy", "logging", "mqtt", "amqp"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: Proxy Servers",
    "Topic :: System :: Logging",
]
dependencies = [
    "aiohttp",
    "paho-mqtt",
    "pika",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
loxxy = "oxxy.loxxy:main"
moxxy = "oxxy.moxxy:main"
roxxy = "oxxy.roxxy:main"
toxxy = "oxxy.toxxy:main"

[tool.hatch.build.targets.wheel]
packages = ["oxxy"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
