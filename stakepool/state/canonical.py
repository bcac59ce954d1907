"""
Byte-exact encodings shared by pool snapshots and admin signatures.

Two things depend on these bytes never drifting: the snapshot commitment
(``sha256_hex`` over the stored account) and the message an admin key signs.
Pool amounts are u64 integers, so floats never appear legitimately and are
refused rather than rounded.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any


def _check_text(text: str) -> None:
    # Lone surrogates cannot be encoded as UTF-8.
    if any(0xD800 <= ord(ch) <= 0xDFFF for ch in text):
        raise TypeError("surrogate code points cannot be encoded")


def _check_encodable(value: Any) -> None:
    if isinstance(value, float):
        raise TypeError(f"pool encodings are integer-only, got float {value!r}")
    if isinstance(value, str):
        _check_text(value)
    elif isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise TypeError(f"object keys must be str, got {type(key).__name__}")
            _check_text(key)
            _check_encodable(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            _check_encodable(item)


def canonical_json_bytes(value: Any) -> bytes:
    """Compact UTF-8 JSON with sorted keys; identical input gives identical bytes."""
    _check_encodable(value)
    return json.dumps(
        value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, allow_nan=False,
    ).encode("utf-8")


def sha256_hex(data: bytes) -> str:
    return "0x" + hashlib.sha256(data).hexdigest()


def domain_sep_bytes(label: str, version: int = 1) -> bytes:
    """
    Prefix tying a payload to its purpose, e.g. ``b"stakepool:pool_snapshot:v1\\x00"``.

    A snapshot commitment can never verify as an admin signature because the
    two are hashed under different labels. The trailing NUL ends the prefix.
    """
    if not isinstance(label, str) or not label:
        raise TypeError("label must be a non-empty str")
    if "\x00" in label or not label.isascii():
        raise ValueError(f"label must be ASCII without NUL: {label!r}")
    if not isinstance(version, int) or isinstance(version, bool) or version <= 0:
        raise ValueError("version must be a positive int")
    return f"stakepool:{label}:v{version}".encode("ascii") + b"\x00"
