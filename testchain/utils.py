import hashlib
import json
import time
from datetime import datetime
from typing import Any


def sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def json_dumps(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"))


def now_ts() -> int:
    return int(time.time())


def int_to_bytes(value: int) -> bytes:
    if value < 0:
        raise ValueError("negative values have no byte form")
    if value == 0:
        return b""
    return value.to_bytes((value.bit_length() + 7) // 8, "big")


def bytes_to_int(data: bytes) -> int:
    return int.from_bytes(data, "big") if data else 0


def to_hex(value) -> str:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return hex(int(value))


def parse_quantity(value) -> int:
    """Accept ints, decimal strings and 0x-prefixed hex strings."""
    if isinstance(value, bool):
        raise ValueError("invalid quantity")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.lower().startswith("0x"):
            return int(text, 16) if len(text) > 2 else 0
        if text.isdigit():
            return int(text)
    raise ValueError(f"invalid quantity: {value!r}")


def parse_timestamp(value) -> int:
    """Unix seconds from an int, a digit string or an ISO-8601 string."""
    if isinstance(value, bool):
        raise ValueError(f"invalid time: {value!r}")
    if isinstance(value, (int, float)):
        return int(value)
    text = str(value).strip()
    if text.isdigit():
        return int(text)
    try:
        return int(datetime.fromisoformat(text).timestamp())
    except ValueError as exc:
        raise ValueError(f"invalid time: {value!r}") from exc
