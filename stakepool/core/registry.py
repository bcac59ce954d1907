"""
Validator registry: an ordered, capacity-bounded collection of validator records.

Storage is a dense tuple of slots in registry order plus a separate sorted
identity index, so lookups are a bisection and never a scan. Removal swaps
the last slot into the hole; order among the remaining entries is not kept.

Module-level ``add`` / ``remove`` / ``find`` work on a pool state and bump its
``list_generation`` on every structural change, which is what lets the epoch
pass detect a registry mutation racing its cursor.
"""

from __future__ import annotations

from bisect import bisect_left
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Iterator, Optional

from .errors import (
    DuplicateValidator,
    InvalidAmount,
    MaxValidatorsExceeded,
    ValidatorHasStake,
    ValidatorNotFound,
)

if TYPE_CHECKING:
    from .types import PoolState


ValidatorId = str


def require_identity(value: object, *, name: str = "validator") -> ValidatorId:
    if not isinstance(value, str) or not value:
        raise InvalidAmount(f"{name} must be a non-empty string")
    return value


@dataclass(frozen=True)
class ValidatorRecord:
    """One validator's slice of the pool."""

    identity: ValidatorId
    active_value: int = 0
    # Signed: activating entries add, deactivating entries subtract.
    transient_value: int = 0
    last_update_epoch: int = 0
    removal_pending: bool = False

    @property
    def balance(self) -> int:
        """Value attributable to the pool through this validator right now."""
        return self.active_value + self.transient_value

    @property
    def is_empty(self) -> bool:
        return self.active_value == 0 and self.transient_value == 0


@dataclass(frozen=True)
class ValidatorList:
    max_validators: int
    records: tuple[ValidatorRecord, ...] = ()
    index_keys: tuple[ValidatorId, ...] = ()
    index_slots: tuple[int, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.max_validators, int) or isinstance(self.max_validators, bool):
            raise TypeError("max_validators must be an int")
        if self.max_validators <= 0:
            raise ValueError("max_validators must be positive")
        if len(self.records) > self.max_validators:
            raise ValueError("more records than max_validators")
        if len(self.index_keys) != len(self.records) or len(self.index_slots) != len(self.records):
            raise ValueError("index does not cover the slot storage")

    @classmethod
    def from_records(cls, max_validators: int, records: tuple[ValidatorRecord, ...]) -> "ValidatorList":
        """Build a list (and its index) from slot storage, e.g. when loading a snapshot."""
        pairs = sorted((r.identity, slot) for slot, r in enumerate(records))
        keys = tuple(k for k, _ in pairs)
        if len(set(keys)) != len(keys):
            raise DuplicateValidator("duplicate identities in slot storage")
        return cls(
            max_validators=max_validators,
            records=tuple(records),
            index_keys=keys,
            index_slots=tuple(s for _, s in pairs),
        )

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[ValidatorRecord]:
        return iter(self.records)

    @property
    def is_full(self) -> bool:
        return len(self.records) >= self.max_validators

    def position(self, identity: ValidatorId) -> Optional[int]:
        """Slot index of ``identity`` or None."""
        i = bisect_left(self.index_keys, identity)
        if i < len(self.index_keys) and self.index_keys[i] == identity:
            return self.index_slots[i]
        return None

    def find(self, identity: ValidatorId) -> Optional[ValidatorRecord]:
        slot = self.position(identity)
        return None if slot is None else self.records[slot]

    def get(self, identity: ValidatorId) -> ValidatorRecord:
        record = self.find(identity)
        if record is None:
            raise ValidatorNotFound(identity)
        return record

    def with_added(self, identity: ValidatorId) -> "ValidatorList":
        require_identity(identity)
        i = bisect_left(self.index_keys, identity)
        if i < len(self.index_keys) and self.index_keys[i] == identity:
            raise DuplicateValidator(identity)
        if self.is_full:
            raise MaxValidatorsExceeded(f"registry holds {self.max_validators} validators")
        slot = len(self.records)
        return replace(
            self,
            records=self.records + (ValidatorRecord(identity=identity),),
            index_keys=self.index_keys[:i] + (identity,) + self.index_keys[i:],
            index_slots=self.index_slots[:i] + (slot,) + self.index_slots[i:],
        )

    def with_removed(self, identity: ValidatorId) -> "ValidatorList":
        i = bisect_left(self.index_keys, identity)
        if i >= len(self.index_keys) or self.index_keys[i] != identity:
            raise ValidatorNotFound(identity)
        hole = self.index_slots[i]
        record = self.records[hole]
        if not record.is_empty:
            raise ValidatorHasStake(
                f"{identity} active={record.active_value} transient={record.transient_value}"
            )

        records = list(self.records)
        keys = list(self.index_keys)
        slots = list(self.index_slots)
        last = len(records) - 1
        if hole != last:
            moved = records[last]
            records[hole] = moved
            slots[bisect_left(keys, moved.identity)] = hole
        records.pop()
        del keys[i]
        del slots[i]
        return replace(self, records=tuple(records), index_keys=tuple(keys), index_slots=tuple(slots))

    def with_record(self, record: ValidatorRecord) -> "ValidatorList":
        """Swap in an updated record for an existing identity (not a structural change)."""
        slot = self.position(record.identity)
        if slot is None:
            raise ValidatorNotFound(record.identity)
        records = self.records[:slot] + (record,) + self.records[slot + 1:]
        return replace(self, records=records)


# -- Pool-level operations ---------------------------------------------------

def add(state: PoolState, identity: ValidatorId) -> PoolState:
    """Register ``identity`` with zero balances."""
    validators = state.validators.with_added(identity)
    return replace(state, validators=validators, list_generation=state.list_generation + 1)


def remove(state: PoolState, identity: ValidatorId) -> PoolState:
    """Drop ``identity``; both balances must be zero and nothing may be in flight for it."""
    in_flight = sum(1 for e in state.transients if e.validator == identity)
    if in_flight:
        raise ValidatorHasStake(f"{identity} has {in_flight} transient entries in flight")
    validators = state.validators.with_removed(identity)
    return replace(
        state,
        validators=validators,
        list_generation=state.list_generation + 1,
        preferred_deposit_validator=(
            None if state.preferred_deposit_validator == identity else state.preferred_deposit_validator
        ),
        preferred_withdraw_validator=(
            None if state.preferred_withdraw_validator == identity else state.preferred_withdraw_validator
        ),
    )


def find(state: PoolState, identity: ValidatorId) -> Optional[ValidatorRecord]:
    return state.validators.find(identity)


def get(state: PoolState, identity: ValidatorId) -> ValidatorRecord:
    return state.validators.get(identity)


def put(state: PoolState, record: ValidatorRecord) -> PoolState:
    """Replace one record's balances/flags in place."""
    return replace(state, validators=state.validators.with_record(record))
