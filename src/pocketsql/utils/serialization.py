"""Cell rendering and JSON serialization.

Result cells are rendered to display text once, when a snapshot is built,
so SQL NULL becomes the literal ``"NULL"`` and stays distinguishable from an
empty string. JSON output goes through orjson, which handles datetime, UUID
and dataclasses natively; only a few driver types need a default handler.
"""

import datetime
import decimal
from typing import Any

import orjson

NULL_SENTINEL = "NULL"


def _format_timedelta(value: datetime.timedelta) -> str:
    """MySQL TIME values arrive as timedelta; render them as [-]HH:MM:SS."""
    total = int(value.total_seconds())
    sign = "-" if total < 0 else ""
    total = abs(total)
    hours, remainder = divmod(total, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{sign}{hours:02d}:{minutes:02d}:{seconds:02d}"


def _format_bytes(value: bytes) -> str:
    try:
        return value.decode("utf-8")
    except UnicodeDecodeError:
        return "0x" + value.hex().upper()


def cell_to_text(value: Any) -> str:
    """
    Render one result cell as display text.

    Args:
        value: Value as returned by the driver

    Returns:
        Text form of the value; ``NULL_SENTINEL`` for SQL NULL
    """
    if value is None:
        return NULL_SENTINEL
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (bytes, bytearray)):
        return _format_bytes(bytes(value))
    if isinstance(value, memoryview):
        return _format_bytes(value.tobytes())
    if isinstance(value, datetime.datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, datetime.timedelta):
        return _format_timedelta(value)
    if isinstance(value, decimal.Decimal):
        return format(value, "f")
    if isinstance(value, (set, frozenset)):
        # MySQL SET columns
        return ",".join(sorted(str(item) for item in value))
    return str(value)


def _default_handler(obj: Any) -> Any:
    """
    Custom default handler for types orjson doesn't handle natively.

    Raises:
        TypeError: If object cannot be serialized
    """
    if isinstance(obj, datetime.timedelta):
        return _format_timedelta(obj)

    if isinstance(obj, (bytes, bytearray, memoryview)):
        return cell_to_text(obj)

    if isinstance(obj, decimal.Decimal):
        return format(obj, "f")

    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)

    # pydantic models
    if hasattr(obj, "model_dump"):
        return obj.model_dump()

    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


def dumps(obj: Any, indent: bool = False) -> str:
    """
    Serialize object to JSON string using orjson.

    Args:
        obj: Object to serialize
        indent: Pretty-print with two-space indentation

    Returns:
        JSON string
    """
    option = orjson.OPT_INDENT_2 if indent else 0
    return orjson.dumps(obj, default=_default_handler, option=option).decode("utf-8")
