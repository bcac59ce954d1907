"""
Collaborator interfaces consumed by the engine.

The core only reads stake values through ``StakeValueSource``. The other
protocols are used by the shell (`stakepool/integration/engine.py`); concrete
implementations live in `stakepool/integration/` and `stakepool/state/`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .types import PoolState


@dataclass(frozen=True)
class StakeObservation:
    """Authoritative stake held for the pool by one validator, as of query time."""

    active_value: int
    transient_value: int = 0


@runtime_checkable
class StakeValueSource(Protocol):
    def observe(self, validator: str, epoch: int) -> StakeObservation:
        ...


@runtime_checkable
class TokenIssuer(Protocol):
    def mint(self, amount: int, recipient: str) -> None:
        ...

    def burn(self, amount: int, source: str) -> None:
        ...


@runtime_checkable
class AccountStore(Protocol):
    def load(self) -> PoolState:
        ...

    def store(self, state: PoolState) -> None:
        ...


@runtime_checkable
class AuthorityVerifier(Protocol):
    def verify(self, signer: str, message: bytes, signature: str) -> bool:
        ...
