import time
from datetime import datetime
from typing import Union


def hex_to_int(value: Union[str, int]) -> int:
    """Convert hexadecimal string to integer"""
    if isinstance(value, str) and value.startswith("0x"):
        return int(value, 16)
    return int(value)


def to_0x_hex(value: Union[bytes, str]) -> str:
    """Render bytes (or HexBytes) as a 0x-prefixed hex string"""
    if isinstance(value, str):
        return value if value.startswith("0x") else "0x" + value
    return "0x" + bytes(value).hex()


def format_timestamp(ts: float = None) -> str:
    """Format timestamp to ISO format"""
    if ts is None:
        ts = time.time()
    return datetime.fromtimestamp(ts).isoformat()
