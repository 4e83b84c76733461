"""
JSON sanitization for scan output.

Scan results may carry live host objects (handlers, connections, classes).
``make_json_serializable`` walks a result tree once and replaces anything
JSON cannot represent with a readable placeholder.
"""

from __future__ import annotations

import dataclasses
import datetime
import enum
import functools
import inspect
import io
import json
import logging
import math
import socket
import sqlite3
import types
from decimal import Decimal
from pathlib import PurePath
from typing import Any

logger = logging.getLogger(__name__)

_RESOURCE_TYPES: tuple[type, ...] = (
    io.IOBase,
    socket.socket,
    sqlite3.Connection,
    sqlite3.Cursor,
    types.GeneratorType,
    types.AsyncGeneratorType,
    types.CoroutineType,
)


def make_json_serializable(data: Any) -> Any:
    """
    Return a copy of ``data`` made only of JSON-compatible values.

    Conversion rules:
        - dict keys become strings; list, tuple and set become lists
        - NaN and infinities become None
        - dates and times become ISO-8601 strings
        - functions, methods and lambdas become "[Closure]"
        - files, sockets, connections and generators become "[Resource: <type>]"
        - classes become their qualified name
        - objects exposing ``to_dict()``, ``__json__()`` or dataclasses are recursed
        - objects with a custom ``__str__`` become that string
        - anything else becomes "[Object: <class>]"
        - a container reached again while it is being walked becomes "[Circular]"
    """
    return _sanitize(data, set())


def _sanitize(data: Any, active: set[int]) -> Any:
    if data is None or isinstance(data, (bool, str)):
        return data
    if isinstance(data, int):
        return data
    if isinstance(data, float):
        return data if math.isfinite(data) else None
    if isinstance(data, Decimal):
        return float(data) if data.is_finite() else None
    if isinstance(data, enum.Enum):
        return _sanitize(data.value, active)
    if isinstance(data, (datetime.datetime, datetime.date, datetime.time)):
        return data.isoformat()
    if isinstance(data, datetime.timedelta):
        return data.total_seconds()
    if isinstance(data, PurePath):
        return str(data)
    if isinstance(data, (bytes, bytearray)):
        return bytes(data).decode("utf-8", errors="replace")
    if isinstance(data, type):
        return f"{data.__module__}.{data.__qualname__}"
    if isinstance(data, _RESOURCE_TYPES):
        return f"[Resource: {type(data).__name__}]"
    if inspect.isroutine(data) or isinstance(data, functools.partial):
        return "[Closure]"

    marker = id(data)
    if marker in active:
        return "[Circular]"

    if isinstance(data, dict):
        active.add(marker)
        try:
            return {str(key): _sanitize(value, active) for key, value in data.items()}
        finally:
            active.discard(marker)

    if isinstance(data, (list, tuple, set, frozenset)):
        items = sorted(data, key=repr) if isinstance(data, (set, frozenset)) else data
        active.add(marker)
        try:
            return [_sanitize(item, active) for item in items]
        finally:
            active.discard(marker)

    active.add(marker)
    try:
        return _sanitize_object(data, active)
    finally:
        active.discard(marker)


def _sanitize_object(data: Any, active: set[int]) -> Any:
    try:
        if dataclasses.is_dataclass(data):
            return _sanitize(
                {f.name: getattr(data, f.name) for f in dataclasses.fields(data)},
                active,
            )
        for method_name in ("__json__", "to_dict"):
            method = getattr(data, method_name, None)
            if callable(method):
                return _sanitize(method(), active)
        if type(data).__str__ is not object.__str__:
            return str(data)
    except Exception as e:  # host objects may fail in arbitrary ways
        logger.debug("Could not convert %r: %s", type(data), e)
    if callable(data):
        return "[Closure]"
    return f"[Object: {type(data).__name__}]"


def safe_json_dumps(data: Any, command: str = "devtoolbox", indent: int | None = 2) -> str:
    """
    Sanitize and encode data as JSON, never raising.

    When encoding still fails, an error document naming ``command`` is
    returned instead.
    """
    cleaned = make_json_serializable(data)
    try:
        return json.dumps(cleaned, indent=indent, allow_nan=False)
    except (TypeError, ValueError) as e:
        logger.warning("JSON encoding failed in %s: %s", command, e)
        return json.dumps(
            {
                "error": "JSON serialization failed",
                "message": str(e),
                "command": command,
                "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            },
            indent=indent,
        )
