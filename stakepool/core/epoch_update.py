"""
Epoch update state machine.

Once per epoch the pool walks its registry in three ordered passes:

1. ``refresh_validators``: per-validator refresh. Mature transient entries are
   merged and each record's active balance is set to the observed ground
   truth. Resumable: the cursor is persisted in the pool state, so a large
   registry can be covered by many small calls.
2. ``update_pool_balance``: once the cursor has reached the end, recompute
   the pool total, mint the epoch reward fee, stamp the epoch (FRESH).
3. ``cleanup_removed_validators``: opportunistic eviction after FRESH.

The phase is an explicit enum plus a cursor, never a blocking loop. User
operations call ``require_fresh()`` first.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional

from . import registry, transient
from .errors import ArithmeticOverflow, InvalidAmount, PoolNotUpdated, RegistryChangedMidPass
from .fees import U64_MAX, checked_add, epoch_fee_tokens
from .interfaces import StakeValueSource
from .types import (
    BalanceReport,
    CleanupReport,
    ClaimPayout,
    Direction,
    MergeOutcome,
    PoolState,
    RefreshReport,
    TokenMint,
    UpdatePhase,
)

logger = logging.getLogger(__name__)


def _require_epoch(state: PoolState, current_epoch: int) -> int:
    if not isinstance(current_epoch, int) or isinstance(current_epoch, bool) or current_epoch < 0:
        raise InvalidAmount(f"epoch must be a non-negative int, got {current_epoch!r}")
    if current_epoch < state.last_updated_epoch:
        raise InvalidAmount(f"epoch {current_epoch} is before last update {state.last_updated_epoch}")
    return current_epoch


def update_phase(state: PoolState, current_epoch: int) -> UpdatePhase:
    """Phase of the pool as seen from ``current_epoch``."""
    if state.update_phase is UpdatePhase.FRESH and state.last_updated_epoch == current_epoch:
        return UpdatePhase.FRESH
    if (
        state.update_phase in (UpdatePhase.VALIDATORS_UPDATING, UpdatePhase.BALANCE_UPDATING)
        and state.update_epoch == current_epoch
    ):
        return state.update_phase
    return UpdatePhase.STALE


def is_fresh(state: PoolState, current_epoch: int) -> bool:
    return update_phase(state, current_epoch) is UpdatePhase.FRESH


def require_fresh(state: PoolState, current_epoch: int) -> None:
    phase = update_phase(state, current_epoch)
    if phase is not UpdatePhase.FRESH:
        raise PoolNotUpdated(
            f"pool is {phase.value} (last updated epoch {state.last_updated_epoch}, current {current_epoch})"
        )


def _begin_pass(state: PoolState, current_epoch: int) -> PoolState:
    phase = UpdatePhase.VALIDATORS_UPDATING if len(state.validators) else UpdatePhase.BALANCE_UPDATING
    return replace(
        state,
        update_phase=phase,
        update_epoch=current_epoch,
        update_cursor=0,
        pass_generation=state.list_generation,
    )


# ---------------------------------------------------------------------------
# Pass 1
# ---------------------------------------------------------------------------

def refresh_validators(
    state: PoolState,
    source: StakeValueSource,
    current_epoch: int,
    *,
    max_count: Optional[int] = None,
    expected_generation: Optional[int] = None,
) -> tuple[PoolState, RefreshReport]:
    """
    Process up to ``max_count`` records starting at the persisted cursor.

    Records already stamped with ``current_epoch`` are skipped, so re-running
    this after a restart is harmless.

    Raises:
        RegistryChangedMidPass: the registry was mutated after this pass began,
            or ``expected_generation`` does not match the registry.
    """
    _require_epoch(state, current_epoch)
    if max_count is not None and (not isinstance(max_count, int) or isinstance(max_count, bool) or max_count <= 0):
        raise InvalidAmount(f"max_count must be a positive int, got {max_count!r}")

    phase = update_phase(state, current_epoch)
    if phase in (UpdatePhase.FRESH, UpdatePhase.BALANCE_UPDATING):
        return state, RefreshReport(
            epoch=current_epoch, processed=(), skipped=(), merged=(),
            reward_delta=0, cursor=state.update_cursor, complete=True,
        )
    if phase is UpdatePhase.STALE:
        state = _begin_pass(state, current_epoch)
    elif state.list_generation != state.pass_generation:
        raise RegistryChangedMidPass(
            f"registry generation {state.list_generation} != pass generation {state.pass_generation}"
        )
    if expected_generation is not None and expected_generation != state.list_generation:
        raise RegistryChangedMidPass(
            f"expected generation {expected_generation}, registry is at {state.list_generation}"
        )

    count = len(state.validators)
    start = state.update_cursor
    end = count if max_count is None else min(count, start + max_count)

    processed: list[str] = []
    skipped: list[str] = []
    merged: list[MergeOutcome] = []
    payouts: list[ClaimPayout] = []
    reward_delta = 0

    for i in range(start, end):
        identity = state.validators.records[i].identity
        if state.validators.records[i].last_update_epoch == current_epoch:
            skipped.append(identity)
            continue

        for entry in sorted(transient.mature_entries(state, identity, current_epoch), key=lambda e: e.sequence):
            state, outcome = transient.merge(state, entry.sequence, current_epoch)
            merged.append(outcome)
            payouts.extend(outcome.payouts)

        record = registry.get(state, identity)
        observed = source.observe(identity, current_epoch)
        active = observed.active_value
        if not isinstance(active, int) or isinstance(active, bool) or active < 0 or active > U64_MAX:
            raise InvalidAmount(f"observed active value for {identity} out of range: {active!r}")
        if observed.transient_value != record.transient_value:
            logger.warning(
                "Observed transient stake differs from tracked entries",
                extra={
                    "event": "stake_pool.transient_mismatch",
                    "validator": identity,
                    "observed": observed.transient_value,
                    "tracked": record.transient_value,
                    "epoch": current_epoch,
                },
            )

        reward_delta += active - record.active_value
        state = registry.put(state, replace(record, active_value=active, last_update_epoch=current_epoch))
        processed.append(identity)

    complete = end >= count
    state = replace(
        state,
        update_cursor=end,
        update_phase=UpdatePhase.BALANCE_UPDATING if complete else UpdatePhase.VALIDATORS_UPDATING,
    )
    logger.info(
        "Validator pass progressed",
        extra={
            "event": "stake_pool.validators_refreshed",
            "epoch": current_epoch,
            "cursor": end,
            "count": count,
            "processed": len(processed),
            "merged": len(merged),
        },
    )
    return state, RefreshReport(
        epoch=current_epoch,
        processed=tuple(processed),
        skipped=tuple(skipped),
        merged=tuple(merged),
        reward_delta=reward_delta,
        cursor=end,
        complete=complete,
        payouts=tuple(payouts),
    )


def restart_validator_pass(state: PoolState, current_epoch: int) -> PoolState:
    """
    Recover from a torn pass: cursor back to 0 against the current registry.

    Records refreshed earlier in this epoch keep their stamp and are skipped.
    """
    _require_epoch(state, current_epoch)
    if is_fresh(state, current_epoch):
        return state
    return _begin_pass(state, current_epoch)


# ---------------------------------------------------------------------------
# Pass 2
# ---------------------------------------------------------------------------

def _pending_value(state: PoolState) -> int:
    """Activating value not yet in active, minus claims already out of the total."""
    pending = 0
    for e in state.transients:
        if e.direction is Direction.ACTIVATING:
            pending += e.value
        elif e.claimant is not None:
            pending -= e.value
    return pending


def computed_total(state: PoolState) -> int:
    total = state.reserve_value + _pending_value(state)
    for record in state.validators:
        total += record.active_value
    return total


def update_pool_balance(state: PoolState, current_epoch: int) -> tuple[PoolState, BalanceReport]:
    """Recompute pool totals once every record has been refreshed this epoch."""
    _require_epoch(state, current_epoch)
    phase = update_phase(state, current_epoch)
    if phase is UpdatePhase.FRESH:
        return state, BalanceReport(
            epoch=current_epoch,
            previous_total=state.total_stake_value,
            total_stake_value=state.total_stake_value,
            reward=0,
            fee_tokens=0,
        )
    if phase is not UpdatePhase.BALANCE_UPDATING:
        raise PoolNotUpdated(f"validator pass incomplete ({phase.value}, cursor {state.update_cursor})")
    if state.list_generation != state.pass_generation:
        raise RegistryChangedMidPass(
            f"registry generation {state.list_generation} != pass generation {state.pass_generation}"
        )
    for record in state.validators:
        if record.last_update_epoch != current_epoch:
            raise RegistryChangedMidPass(f"{record.identity} not refreshed in epoch {current_epoch}")

    new_total = computed_total(state)
    if new_total < 0:
        raise InvalidAmount(f"negative pool total {new_total}")
    if new_total > U64_MAX:
        raise ArithmeticOverflow(f"pool total exceeds u64: {new_total}")

    previous = state.total_stake_value
    reward = max(new_total - previous, 0)
    fee_tokens = epoch_fee_tokens(reward, state.fees.epoch, state.pool_token_supply, new_total)
    mints: tuple[TokenMint, ...] = ()
    if fee_tokens:
        mints = (TokenMint(recipient=state.manager_fee_recipient, amount=fee_tokens),)
    supply = checked_add(state.pool_token_supply, fee_tokens)

    if (supply == 0) != (new_total == 0):
        logger.warning(
            "Pool exchange rate is degenerate after update",
            extra={
                "event": "stake_pool.degenerate_rate",
                "epoch": current_epoch,
                "supply": supply,
                "total_stake_value": new_total,
            },
        )

    state = replace(
        state,
        total_stake_value=new_total,
        pool_token_supply=supply,
        last_updated_epoch=current_epoch,
        update_phase=UpdatePhase.FRESH,
        update_epoch=current_epoch,
        update_cursor=0,
    )
    logger.info(
        "Pool balance updated",
        extra={
            "event": "stake_pool.balance_updated",
            "epoch": current_epoch,
            "previous_total": previous,
            "total_stake_value": new_total,
            "fee_tokens": fee_tokens,
        },
    )
    return state, BalanceReport(
        epoch=current_epoch,
        previous_total=previous,
        total_stake_value=new_total,
        reward=reward,
        fee_tokens=fee_tokens,
        mints=mints,
    )


# ---------------------------------------------------------------------------
# Pass 3
# ---------------------------------------------------------------------------

def cleanup_removed_validators(state: PoolState, current_epoch: int) -> tuple[PoolState, CleanupReport]:
    """
    Evict removal-pending validators whose balances reached zero.

    A removal-pending validator that still holds active value and has nothing
    in flight gets a deactivation of that value toward the reserve, so the
    next epoch can evict it.
    """
    require_fresh(state, current_epoch)
    evicted: list[str] = []
    started = []
    for record in tuple(state.validators):
        if not record.removal_pending:
            continue
        if transient.entries_for(state, record.identity):
            continue
        if record.is_empty:
            state = registry.remove(state, record.identity)
            evicted.append(record.identity)
        elif record.active_value > 0:
            state, entry = transient.begin_transition(
                state, record.identity, Direction.DEACTIVATING, record.active_value, current_epoch,
            )
            started.append(entry)

    if evicted:
        logger.info(
            "Evicted removed validators",
            extra={"event": "stake_pool.validators_evicted", "epoch": current_epoch, "validators": evicted},
        )
    return state, CleanupReport(evicted=tuple(evicted), deactivations=tuple(started))


def run_epoch_update(
    state: PoolState,
    source: StakeValueSource,
    current_epoch: int,
    *,
    batch_size: Optional[int] = None,
) -> tuple[PoolState, tuple[RefreshReport, ...], BalanceReport]:
    """Drive pass 1 to completion in ``batch_size`` steps, then pass 2."""
    reports: list[RefreshReport] = []
    while True:
        state, report = refresh_validators(state, source, current_epoch, max_count=batch_size)
        reports.append(report)
        if report.complete:
            break
    state, balance = update_pool_balance(state, current_epoch)
    return state, tuple(reports), balance
