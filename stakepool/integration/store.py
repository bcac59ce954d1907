"""
Account stores: where the pool state lives between engine calls.

Both stores hold the canonical snapshot bytes, never live objects, so every
load goes through the version check.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Union

from ..core.errors import WrongAccountVersion
from ..core.types import PoolState
from ..state.snapshot import decode_state, encode_state


class InMemoryAccountStore:
    def __init__(self, state: Optional[PoolState] = None) -> None:
        self._raw: Optional[bytes] = None if state is None else encode_state(state)

    @property
    def raw(self) -> Optional[bytes]:
        return self._raw

    def load(self) -> PoolState:
        if self._raw is None:
            raise WrongAccountVersion("account is not initialized")
        return decode_state(self._raw)

    def store(self, state: PoolState) -> None:
        self._raw = encode_state(state)


class JsonFileAccountStore:
    """Snapshot in a JSON file, replaced atomically on every store."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def load(self) -> PoolState:
        if not self.path.exists():
            raise WrongAccountVersion(f"account is not initialized: {self.path}")
        return decode_state(self.path.read_bytes())

    def store(self, state: PoolState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_bytes(encode_state(state))
        os.replace(tmp, self.path)
