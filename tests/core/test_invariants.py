"""Tests for stakepool/core/invariants.py."""

from __future__ import annotations

from dataclasses import replace

from stakepool.core import admin, registry
from stakepool.core.fees import U64_MAX, Fee, FeeSchedule
from stakepool.core.handlers import deposit, withdraw
from stakepool.core.invariants import INVARIANT_REGISTRY, check_all
from stakepool.core.pool import PoolConfig, initialize_pool
from stakepool.core.types import Direction, PoolState, TransientStakeEntry, UpdatePhase


def _healthy() -> PoolState:
    s = initialize_pool(PoolConfig(max_validators=4), manager="manager", staker="staker")
    s = admin.add_validator(s, "staker", "v1")
    s, _ = deposit(s, 1000, "alice", 0, validator="v1")
    s, _ = deposit(s, 200, "alice", 0)
    s, _ = withdraw(s, 100, "alice", 0, validator="v1")
    return s


def test_healthy_state_passes_all() -> None:
    assert check_all(_healthy()) == []


def test_registry_is_complete() -> None:
    assert len(INVARIANT_REGISTRY) == 11
    assert all(name.startswith("inv_") for name in INVARIANT_REGISTRY)


def test_phantom_shares_detected() -> None:
    s = replace(_healthy(), total_stake_value=0)
    assert "inv_no_phantom_shares" in check_all(s)


def test_out_of_range_total_detected() -> None:
    s = replace(_healthy(), pool_token_supply=U64_MAX + 1)
    assert "inv_totals_in_range" in check_all(s)


def test_bad_fee_detected() -> None:
    s = replace(_healthy(), fees=FeeSchedule(deposit=Fee(2, 1)))
    assert check_all(s) == ["inv_fees_valid"]


def test_transient_mismatch_detected() -> None:
    s = _healthy()
    s = registry.put(s, replace(registry.get(s, "v1"), transient_value=0))
    assert "inv_transient_matches_entries" in check_all(s)


def test_entry_for_unknown_validator_detected() -> None:
    s = _healthy()
    ghost = TransientStakeEntry(
        validator="ghost", direction=Direction.ACTIVATING, value=1, sequence=99, created_epoch=0,
    )
    s = replace(s, transients=s.transients + (ghost,), next_sequence=100)
    assert "inv_transient_matches_entries" in check_all(s)


def test_duplicate_sequence_detected() -> None:
    s = _healthy()
    dup = replace(s.transients[0], direction=Direction.ACTIVATING, value=5)
    record = registry.get(s, "v1")
    s = registry.put(s, replace(record, transient_value=record.transient_value + 5))
    s = replace(s, transients=s.transients + (dup,))
    assert "inv_sequences_unique" in check_all(s)


def test_policy_violation_detected() -> None:
    s = _healthy()
    extra = replace(s.transients[0], sequence=s.next_sequence, value=1)
    record = registry.get(s, "v1")
    s = registry.put(s, replace(record, transient_value=record.transient_value - 1))
    s = replace(s, transients=s.transients + (extra,), next_sequence=s.next_sequence + 1)
    violations = check_all(s)
    assert "inv_transient_policy" in violations


def test_conservation_broken_when_fresh() -> None:
    s = replace(_healthy(), reserve_value=0)
    assert "inv_value_conservation" in check_all(s)


def test_conservation_not_checked_mid_pass() -> None:
    s = replace(_healthy(), reserve_value=0, update_phase=UpdatePhase.BALANCE_UPDATING, update_epoch=1)
    assert "inv_value_conservation" not in check_all(s)


def test_cursor_out_of_bounds_detected() -> None:
    s = replace(_healthy(), update_cursor=5)
    assert "inv_cursor_bounded" in check_all(s)
