"""
Deposit / withdraw handlers.

Both require the pool to be FRESH for the current epoch; against stale totals
the exchange rate could be gamed. Token movements are returned as effects
(``mints`` / ``burns``) for the shell to apply; the core never touches token
balances itself.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Optional

from . import registry, transient
from .epoch_update import require_fresh
from .errors import DepositTooSmall, InsufficientValidatorBalance, InvalidAmount, Unauthorized, ValidatorNotFound
from .fees import U64_MAX, apply_fee, checked_add, checked_sub, tokens_for, value_for
from .registry import ValidatorId, require_identity
from .types import (
    ClaimPayout,
    DepositEffect,
    Direction,
    DrawOrder,
    PoolState,
    TokenBurn,
    TokenMint,
    WithdrawEffect,
)


def _require_amount(value: object, *, name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise InvalidAmount(f"{name} must be a positive int, got {value!r}")
    if value > U64_MAX:
        raise InvalidAmount(f"{name} exceeds u64: {value}")
    return value


def deposit(
    state: PoolState,
    value: int,
    depositor: str,
    current_epoch: int,
    *,
    validator: Optional[ValidatorId] = None,
    activating: bool = False,
    signer: Optional[str] = None,
) -> tuple[PoolState, DepositEffect]:
    """
    Deposit ``value`` of stake and mint pool tokens for it.

    The deposit fee is taken out of ``value`` first; the depositor receives
    ``tokens_for(net)`` and the manager fee recipient ``tokens_for(fee)``, both
    at the pre-deposit rate. The full ``value`` joins the pool: on the target
    validator's active balance, through an activating entry when
    ``activating`` is set, or in the reserve when no validator is targeted.
    """
    require_identity(depositor, name="depositor")
    _require_amount(value, name="value")
    require_fresh(state, current_epoch)
    if state.deposit_authority is not None and signer != state.deposit_authority:
        raise Unauthorized("deposit requires the pool's deposit authority")

    target = validator if validator is not None else state.preferred_deposit_validator
    if target is not None:
        record = registry.get(state, target)
        if record.removal_pending:
            raise ValidatorNotFound(f"{target} is pending removal")
    elif activating:
        raise InvalidAmount("activating deposits need a target validator")

    fee_value, net = apply_fee(value, state.fees.deposit)
    supply = state.pool_token_supply
    total = state.total_stake_value
    user_tokens = tokens_for(net, supply, total)
    manager_tokens = tokens_for(fee_value, supply, total)
    if user_tokens == 0:
        raise DepositTooSmall(f"{value} buys no pool tokens at {supply}/{total}")

    new_total = checked_add(total, value)
    new_supply = checked_add(checked_add(supply, user_tokens), manager_tokens)

    sequence: Optional[int] = None
    if target is not None and activating:
        state, entry = transient.begin_transition(state, target, Direction.ACTIVATING, value, current_epoch)
        sequence = entry.sequence
    elif target is not None:
        record = registry.get(state, target)
        state = registry.put(state, replace(record, active_value=checked_add(record.active_value, value)))
    else:
        state = replace(state, reserve_value=checked_add(state.reserve_value, value))

    mints = [TokenMint(recipient=depositor, amount=user_tokens)]
    if manager_tokens:
        mints.append(TokenMint(recipient=state.manager_fee_recipient, amount=manager_tokens))

    state = replace(state, total_stake_value=new_total, pool_token_supply=new_supply)
    return state, DepositEffect(
        validator=target,
        value=value,
        fee_value=fee_value,
        tokens_minted=user_tokens,
        manager_tokens=manager_tokens,
        activating=activating and target is not None,
        sequence=sequence,
        mints=tuple(mints),
    )


def _pick_source(state: PoolState, target: Optional[ValidatorId], value: int) -> Optional[ValidatorId]:
    """
    Choose where ``value`` comes from; None means the reserve.

    Sources are tried in ``state.draw_order``; the first one able to cover
    the full value wins.
    """
    validator_ok = False
    if target is not None:
        validator_ok = registry.get(state, target).balance >= value
    reserve_ok = state.reserve_value >= value

    if state.draw_order is DrawOrder.RESERVE_FIRST:
        order = (("reserve", reserve_ok), ("validator", validator_ok))
    else:
        order = (("validator", validator_ok), ("reserve", reserve_ok))
    for source, ok in order:
        if ok:
            return target if source == "validator" else None

    where = f"validator {target}" if target is not None else "reserve"
    available = registry.get(state, target).balance if target is not None else state.reserve_value
    raise InsufficientValidatorBalance(f"{where} holds {available}, withdrawal needs {value}")


def withdraw(
    state: PoolState,
    tokens: int,
    owner: str,
    current_epoch: int,
    *,
    validator: Optional[ValidatorId] = None,
) -> tuple[PoolState, WithdrawEffect]:
    """
    Redeem ``tokens`` pool tokens for stake value.

    The withdrawal fee is charged in pool tokens and moved to the manager fee
    recipient; the rest are burned for ``value_for(burned)``. Value drawn from
    a validator leaves as a deactivating claim that pays ``owner`` when it
    matures next epoch; value drawn from the reserve is paid out now.
    """
    require_identity(owner, name="owner")
    _require_amount(tokens, name="tokens")
    require_fresh(state, current_epoch)

    supply = state.pool_token_supply
    total = state.total_stake_value
    if tokens > supply:
        raise InvalidAmount(f"{tokens} exceeds pool token supply {supply}")

    if owner == state.manager_fee_recipient:
        fee_tokens, burn_tokens = 0, tokens
    else:
        fee_tokens, burn_tokens = apply_fee(tokens, state.fees.withdrawal)
    value = value_for(burn_tokens, supply, total)
    if value == 0:
        raise InvalidAmount(f"{tokens} pool tokens redeem for zero value")

    target = validator if validator is not None else state.preferred_withdraw_validator
    source = _pick_source(state, target, value)

    sequence: Optional[int] = None
    payouts: tuple[ClaimPayout, ...] = ()
    if source is not None:
        state, entry = transient.begin_transition(
            state, source, Direction.DEACTIVATING, value, current_epoch, claimant=owner,
        )
        sequence = entry.sequence
    else:
        state = replace(state, reserve_value=checked_sub(state.reserve_value, value))
        payouts = (ClaimPayout(claimant=owner, value=value),)

    mints: tuple[TokenMint, ...] = ()
    if fee_tokens:
        mints = (TokenMint(recipient=state.manager_fee_recipient, amount=fee_tokens),)

    state = replace(
        state,
        total_stake_value=checked_sub(total, value),
        pool_token_supply=checked_sub(supply, burn_tokens),
    )
    return state, WithdrawEffect(
        validator=source,
        tokens=tokens,
        tokens_burned=burn_tokens,
        fee_tokens=fee_tokens,
        value=value,
        from_reserve=source is None,
        sequence=sequence,
        payouts=payouts,
        burns=(TokenBurn(source=owner, amount=tokens),),
        mints=mints,
    )
