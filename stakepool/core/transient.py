"""
Transient-stake tracker.

Each entry is value mid-activation or mid-deactivation for one validator,
tagged with a pool-wide sequence number that is never reused. The owning
record's ``transient_value`` always equals the signed sum of its entries.

Maturity: an entry created in epoch ``e`` has completed its transition once
the ledger is in any epoch ``> e``. Only the epoch pass merges entries.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Optional

from . import registry
from .errors import (
    InsufficientValidatorBalance,
    InvalidAmount,
    TransitionAlreadyInFlight,
    TransitionNotFound,
    TransitionNotMature,
)
from .fees import U64_MAX, checked_add, checked_sub
from .registry import ValidatorId
from .types import ClaimPayout, Direction, MergeOutcome, PoolState, TransientStakeEntry


def entries_for(state: PoolState, validator: ValidatorId) -> tuple[TransientStakeEntry, ...]:
    return tuple(e for e in state.transients if e.validator == validator)


def is_mature(entry: TransientStakeEntry, current_epoch: int) -> bool:
    return entry.created_epoch < current_epoch


def mature_entries(
    state: PoolState, validator: ValidatorId, current_epoch: int,
) -> tuple[TransientStakeEntry, ...]:
    return tuple(e for e in entries_for(state, validator) if is_mature(e, current_epoch))


def find_entry(state: PoolState, sequence: int) -> Optional[TransientStakeEntry]:
    for e in state.transients:
        if e.sequence == sequence:
            return e
    return None


def begin_transition(
    state: PoolState,
    validator: ValidatorId,
    direction: Direction,
    value: int,
    epoch: int,
    *,
    claimant: Optional[str] = None,
) -> tuple[PoolState, TransientStakeEntry]:
    """
    Open a new transient entry for ``validator``.

    Activating entries raise the record's transient balance; deactivating
    entries lower it and must be covered by the record's current balance.
    Pool totals and the reserve are the caller's concern.
    """
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise InvalidAmount(f"transition value must be a positive int, got {value!r}")
    if value > U64_MAX:
        raise InvalidAmount(f"transition value exceeds u64: {value}")
    if claimant is not None and direction is not Direction.DEACTIVATING:
        raise InvalidAmount("only deactivating transitions can carry a claimant")

    record = registry.get(state, validator)
    in_flight = sum(1 for e in entries_for(state, validator) if e.direction is direction)
    if in_flight >= state.max_transient_per_direction:
        raise TransitionAlreadyInFlight(f"{validator} already has {in_flight} {direction.value} transition(s)")

    if direction is Direction.DEACTIVATING:
        if value > record.balance:
            raise InsufficientValidatorBalance(f"{validator} balance {record.balance} < {value}")
        new_transient = record.transient_value - value
    else:
        checked_add(record.active_value, record.transient_value + value)
        new_transient = record.transient_value + value

    entry = TransientStakeEntry(
        validator=validator,
        direction=direction,
        value=value,
        sequence=state.next_sequence,
        created_epoch=epoch,
        claimant=claimant,
    )
    new_state = registry.put(state, replace(record, transient_value=new_transient))
    new_state = replace(
        new_state,
        transients=new_state.transients + (entry,),
        next_sequence=state.next_sequence + 1,
    )
    return new_state, entry


def merge(state: PoolState, sequence: int, current_epoch: int) -> tuple[PoolState, MergeOutcome]:
    """
    Fold a completed transition into its validator record and delete the entry.

    - activating: value joins the active balance.
    - deactivating: value leaves active and transient and lands in the liquid
      reserve; a claim entry is then paid out of the reserve to its claimant.
    """
    entry = find_entry(state, sequence)
    if entry is None:
        raise TransitionNotFound(f"sequence {sequence}")
    if not is_mature(entry, current_epoch):
        raise TransitionNotMature(
            f"sequence {sequence} created in epoch {entry.created_epoch}, current epoch {current_epoch}"
        )

    record = registry.get(state, entry.validator)
    reserve = state.reserve_value
    payouts: tuple[ClaimPayout, ...] = ()
    if entry.direction is Direction.ACTIVATING:
        record = replace(
            record,
            active_value=checked_add(record.active_value, entry.value),
            transient_value=record.transient_value - entry.value,
        )
    else:
        # Ground truth may have shrunk active below the entry (slashing); never go negative.
        leaving = min(entry.value, record.active_value)
        record = replace(
            record,
            active_value=record.active_value - leaving,
            transient_value=record.transient_value + entry.value,
        )
        reserve = checked_add(reserve, leaving)
        if entry.claimant is not None:
            reserve = checked_sub(reserve, leaving)
            payouts = (ClaimPayout(claimant=entry.claimant, value=leaving, sequence=entry.sequence),)

    new_state = registry.put(state, record)
    new_state = replace(
        new_state,
        reserve_value=reserve,
        transients=tuple(e for e in state.transients if e.sequence != sequence),
    )
    return new_state, MergeOutcome(entry=entry, payouts=payouts)
