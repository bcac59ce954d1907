"""Invariant checkers for the pool state.

Each function returns True when the invariant holds, and ``check_all()``
returns the list of violated invariant IDs (empty = all pass).

``inv_value_conservation`` only binds while the pool is FRESH: during a pass,
records already hold new ground truth while the total still holds last
epoch's figure.
"""

from __future__ import annotations

from typing import Callable

from .fees import U64_MAX, Fee
from .types import Direction, PoolState, UpdatePhase


def _u64(v: int) -> bool:
    return 0 <= v <= U64_MAX


def inv_totals_in_range(s: PoolState) -> bool:
    return _u64(s.pool_token_supply) and _u64(s.total_stake_value) and _u64(s.reserve_value)


def inv_no_phantom_shares(s: PoolState) -> bool:
    return (s.pool_token_supply == 0) == (s.total_stake_value == 0)


def _fee_ok(fee: Fee) -> bool:
    return fee.denominator > 0 and 0 <= fee.numerator <= fee.denominator


def inv_fees_valid(s: PoolState) -> bool:
    return _fee_ok(s.fees.deposit) and _fee_ok(s.fees.withdrawal) and _fee_ok(s.fees.epoch)


def inv_registry_capacity(s: PoolState) -> bool:
    return len(s.validators) <= s.validators.max_validators


def inv_registry_index(s: PoolState) -> bool:
    v = s.validators
    if list(v.index_keys) != sorted(set(v.index_keys)):
        return False
    return all(v.records[slot].identity == key for key, slot in zip(v.index_keys, v.index_slots))


def inv_records_non_negative(s: PoolState) -> bool:
    return all(_u64(r.active_value) and r.balance >= 0 for r in s.validators)


def inv_transient_matches_entries(s: PoolState) -> bool:
    tracked: dict[str, int] = {}
    for e in s.transients:
        tracked[e.validator] = tracked.get(e.validator, 0) + e.signed_value
    if any(s.validators.find(k) is None for k in tracked):
        return False
    return all(r.transient_value == tracked.get(r.identity, 0) for r in s.validators)


def inv_transient_policy(s: PoolState) -> bool:
    counts: dict[tuple[str, Direction], int] = {}
    for e in s.transients:
        key = (e.validator, e.direction)
        counts[key] = counts.get(key, 0) + 1
    return all(c <= s.max_transient_per_direction for c in counts.values())


def inv_sequences_unique(s: PoolState) -> bool:
    seqs = [e.sequence for e in s.transients]
    return len(set(seqs)) == len(seqs) and all(0 <= q < s.next_sequence for q in seqs)


def inv_cursor_bounded(s: PoolState) -> bool:
    return 0 <= s.update_cursor <= len(s.validators)


def inv_value_conservation(s: PoolState) -> bool:
    if s.update_phase is not UpdatePhase.FRESH:
        return True
    total = s.reserve_value + sum(r.active_value for r in s.validators)
    for e in s.transients:
        if e.direction is Direction.ACTIVATING:
            total += e.value
        elif e.claimant is not None:
            total -= e.value
    return total == s.total_stake_value


# ---------------------------------------------------------------------------
# Registry + check_all
# ---------------------------------------------------------------------------

INVARIANT_REGISTRY: dict[str, Callable[[PoolState], bool]] = {
    "inv_totals_in_range": inv_totals_in_range,
    "inv_no_phantom_shares": inv_no_phantom_shares,
    "inv_fees_valid": inv_fees_valid,
    "inv_registry_capacity": inv_registry_capacity,
    "inv_registry_index": inv_registry_index,
    "inv_records_non_negative": inv_records_non_negative,
    "inv_transient_matches_entries": inv_transient_matches_entries,
    "inv_transient_policy": inv_transient_policy,
    "inv_sequences_unique": inv_sequences_unique,
    "inv_cursor_bounded": inv_cursor_bounded,
    "inv_value_conservation": inv_value_conservation,
}

# Ground truth can legitimately break these (slashing to zero, rewards on an
# empty pool); the epoch pass reports rather than rejects them.
RATE_INVARIANTS = frozenset({"inv_no_phantom_shares"})


def check_all(state: PoolState) -> list[str]:
    """Return list of violated invariant IDs (empty = all pass)."""
    return [
        inv_id
        for inv_id, check_fn in INVARIANT_REGISTRY.items()
        if not check_fn(state)
    ]
