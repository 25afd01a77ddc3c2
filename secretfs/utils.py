"""Utility helper functions for the sync engine."""

import base64
import shutil
import time
from pathlib import Path
from typing import Optional

from common.constants import CHUNK_ORDER_WIDTH

_last_generation_ms = 0


def clean_directory(path: str) -> None:
    """
    Remove everything inside a directory, keeping the directory itself.

    Args:
        path: Directory to clear; created if it does not exist
    """
    root = Path(path)
    root.mkdir(parents=True, exist_ok=True)
    for child in root.iterdir():
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink()


def new_generation(now_ms: Optional[int] = None) -> str:
    """
    Mint a generation id from the current time.

    The millisecond epoch is written in decimal, then multibase encoded as
    lowercase unpadded base32 (prefix 'b').

    Without an explicit timestamp, successive calls never repeat: the
    clock value is bumped past the last one minted by this process.

    Args:
        now_ms: Millisecond timestamp to encode (defaults to now)

    Returns:
        Generation string starting with 'b'
    """
    global _last_generation_ms
    if now_ms is None:
        now_ms = max(time.time_ns() // 1_000_000, _last_generation_ms + 1)
        _last_generation_ms = now_ms
    encoded = base64.b32encode(str(now_ms).encode("utf-8")).decode("ascii")
    return "b" + encoded.lower().rstrip("=")


def chunk_secret_name(base_name: str, generation: str, order: int) -> str:
    """
    Build the object name of one chunk secret.

    Returns:
        '<base>-<generation>-<order padded to 5 digits>'
    """
    return f"{base_name}-{generation}-{order:0{CHUNK_ORDER_WIDTH}d}"
