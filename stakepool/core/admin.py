"""
Administrative operations.

Two roles are stored on the pool: the staker manages the validator set and
moves stake between the reserve and validators; the manager owns fees and
identities. Every admin operation checks its signer against the stored role
before anything else and bumps ``admin_nonce``, which signed admin messages
carry for replay protection.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Literal, Optional

from . import registry, transient
from .epoch_update import require_fresh
from .errors import InsufficientValidatorBalance, InvalidAmount, Unauthorized
from .fees import Fee, U64_MAX, checked_sub, validate_fee
from .registry import ValidatorId, require_identity
from .types import Direction, PoolState, TransientStakeEntry

FeeKind = Literal["deposit", "withdrawal", "epoch"]
PreferredKind = Literal["deposit", "withdraw"]


def _require_signer(signer: Optional[str], *allowed: str, role: str) -> None:
    if signer is None or signer not in allowed:
        raise Unauthorized(f"{role} signature required")


def _bump(state: PoolState) -> PoolState:
    return replace(state, admin_nonce=state.admin_nonce + 1)


def _require_value(value: object) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise InvalidAmount(f"value must be a positive int, got {value!r}")
    if value > U64_MAX:
        raise InvalidAmount(f"value exceeds u64: {value}")
    return value


# -- Staker ------------------------------------------------------------------

def add_validator(state: PoolState, signer: Optional[str], identity: ValidatorId) -> PoolState:
    _require_signer(signer, state.staker, role="staker")
    require_identity(identity)
    return _bump(registry.add(state, identity))


def remove_validator(state: PoolState, signer: Optional[str], identity: ValidatorId) -> PoolState:
    """Remove a validator whose active and transient balances are both zero."""
    _require_signer(signer, state.staker, role="staker")
    return _bump(registry.remove(state, identity))


def mark_validator_for_removal(state: PoolState, signer: Optional[str], identity: ValidatorId) -> PoolState:
    """Flag a validator for eviction; pass 3 drains and evicts it."""
    _require_signer(signer, state.staker, role="staker")
    record = registry.get(state, identity)
    return _bump(registry.put(state, replace(record, removal_pending=True)))


def increase_validator_stake(
    state: PoolState, signer: Optional[str], identity: ValidatorId, value: int, current_epoch: int,
) -> tuple[PoolState, TransientStakeEntry]:
    """Move reserve value to a validator through an activating entry."""
    _require_signer(signer, state.staker, role="staker")
    _require_value(value)
    require_fresh(state, current_epoch)
    record = registry.get(state, identity)
    if record.removal_pending:
        raise InvalidAmount(f"{identity} is pending removal")
    if value > state.reserve_value:
        raise InsufficientValidatorBalance(f"reserve holds {state.reserve_value}, needs {value}")

    state, entry = transient.begin_transition(state, identity, Direction.ACTIVATING, value, current_epoch)
    state = replace(state, reserve_value=checked_sub(state.reserve_value, value))
    return _bump(state), entry


def decrease_validator_stake(
    state: PoolState, signer: Optional[str], identity: ValidatorId, value: int, current_epoch: int,
) -> tuple[PoolState, TransientStakeEntry]:
    """Start moving value from a validator back to the reserve (lands next epoch)."""
    _require_signer(signer, state.staker, role="staker")
    _require_value(value)
    require_fresh(state, current_epoch)
    state, entry = transient.begin_transition(state, identity, Direction.DEACTIVATING, value, current_epoch)
    return _bump(state), entry


def set_preferred_validator(
    state: PoolState, signer: Optional[str], kind: PreferredKind, identity: Optional[ValidatorId],
) -> PoolState:
    _require_signer(signer, state.staker, role="staker")
    if identity is not None:
        registry.get(state, identity)
    if kind == "deposit":
        return _bump(replace(state, preferred_deposit_validator=identity))
    if kind == "withdraw":
        return _bump(replace(state, preferred_withdraw_validator=identity))
    raise InvalidAmount(f"unknown preferred validator kind: {kind!r}")


# -- Manager -----------------------------------------------------------------

def set_fee(state: PoolState, signer: Optional[str], kind: FeeKind, fee: Fee) -> PoolState:
    _require_signer(signer, state.manager, role="manager")
    validate_fee(fee)
    if kind == "deposit":
        fees = replace(state.fees, deposit=fee)
    elif kind == "withdrawal":
        fees = replace(state.fees, withdrawal=fee)
    elif kind == "epoch":
        fees = replace(state.fees, epoch=fee)
    else:
        raise InvalidAmount(f"unknown fee kind: {kind!r}")
    return _bump(replace(state, fees=fees))


def set_manager(
    state: PoolState, signer: Optional[str], new_manager: str, new_fee_recipient: Optional[str] = None,
) -> PoolState:
    _require_signer(signer, state.manager, role="manager")
    require_identity(new_manager, name="manager")
    recipient = new_fee_recipient if new_fee_recipient is not None else state.manager_fee_recipient
    require_identity(recipient, name="manager_fee_recipient")
    return _bump(replace(state, manager=new_manager, manager_fee_recipient=recipient))


def set_staker(state: PoolState, signer: Optional[str], new_staker: str) -> PoolState:
    _require_signer(signer, state.manager, state.staker, role="manager or staker")
    require_identity(new_staker, name="staker")
    return _bump(replace(state, staker=new_staker))


def set_deposit_authority(state: PoolState, signer: Optional[str], authority: Optional[str]) -> PoolState:
    _require_signer(signer, state.manager, role="manager")
    if authority is not None:
        require_identity(authority, name="deposit_authority")
    return _bump(replace(state, deposit_authority=authority))
