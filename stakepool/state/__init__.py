"""State encoding and token bookkeeping for the stake pool engine."""

from .snapshot import (
    POOL_SNAPSHOT_VERSION,
    PoolSnapshot,
    decode_state,
    encode_state,
    snapshot_from_state,
    state_from_snapshot,
)
from .tokens import PoolTokenLedger

__all__ = [
    "POOL_SNAPSHOT_VERSION",
    "PoolSnapshot",
    "PoolTokenLedger",
    "decode_state",
    "encode_state",
    "snapshot_from_state",
    "state_from_snapshot",
]
