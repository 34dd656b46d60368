"""Shape of a single Loki log stream as it travels between the relays."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any


@dataclass
class LogMessage:
    """One Loki stream: its labels and its ``(timestamp, line)`` entries."""

    stream: dict[str, str] = field(default_factory=dict)
    values: list[tuple[str, str]] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: str | bytes | bytearray) -> LogMessage:
        """Parse a JSON document into a log message, raising ValueError if it does not fit."""
        if isinstance(data, (bytes, bytearray, memoryview)):
            try:
                text = bytes(data).decode("utf-8")
            except UnicodeDecodeError as exc:
                raise ValueError(f"log message is not valid UTF-8: {exc}") from exc
        else:
            text = data
        try:
            document = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"log message is not valid JSON: {exc}") from exc

        if isinstance(document, dict):
            for name in ("stream", "values"):
                if name not in document:
                    raise ValueError(f"missing field `{name}`")
            stream, values = document["stream"], document["values"]
        elif isinstance(document, list):
            if len(document) != 2:
                raise ValueError(
                    f"expected 2 elements for a log message, got {len(document)}"
                )
            stream, values = document
        else:
            raise ValueError("expected a JSON object for a log message")

        return cls(stream=_parse_stream(stream), values=_parse_values(values))


def _parse_stream(stream: Any) -> dict[str, str]:
    if not isinstance(stream, dict):
        raise ValueError("`stream` must be an object of string labels")
    for key, value in stream.items():
        if not isinstance(value, str):
            raise ValueError(f"label `{key}` must be a string")
    return dict(stream)


def _parse_values(values: Any) -> list[tuple[str, str]]:
    if not isinstance(values, list):
        raise ValueError("`values` must be an array")
    entries = []
    for entry in values:
        if not isinstance(entry, list) or len(entry) != 2:
            raise ValueError("each entry in `values` must be a pair")
        timestamp, line = entry
        if not isinstance(timestamp, str) or not isinstance(line, str):
            raise ValueError("each entry in `values` must hold two strings")
        entries.append((timestamp, line))
    return entries


def is_log_message(data: str | bytes | bytearray) -> bool:
    """Tell whether ``data`` parses as a JSON log message."""
    try:
        LogMessage.from_json(data)
    except ValueError:
        return False
    return True