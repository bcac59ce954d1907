from __future__ import annotations

import logging
from dataclasses import replace

import pytest

from stakepool.core.errors import (
    InvalidAmount,
    InvariantViolation,
    PoolNotUpdated,
    RegistryChangedMidPass,
    Unauthorized,
    ValidatorHasStake,
)
from stakepool.core.fees import Fee, FeeSchedule
from stakepool.core.invariants import check_all
from stakepool.core.pool import PoolConfig
from stakepool.core.types import DrawOrder, UpdatePhase
from stakepool.integration.authority import Authorization
from stakepool.integration.engine import StakePoolEngine
from stakepool.integration.sources import StaticStakeValueSource
from stakepool.integration.store import InMemoryAccountStore
from stakepool.state.tokens import PoolTokenLedger

STAKER = Authorization("staker")
MANAGER = Authorization("manager")


def _make_engine(
    *validators: str,
    fees: FeeSchedule = FeeSchedule(),
    max_validators_per_update: int = 5,
    draw_order: DrawOrder = DrawOrder.VALIDATOR_FIRST,
) -> tuple[StakePoolEngine, PoolTokenLedger, InMemoryAccountStore]:
    ledger = PoolTokenLedger()
    store = InMemoryAccountStore()
    cfg = PoolConfig(
        max_validators=16,
        fees=fees,
        draw_order=draw_order,
        max_validators_per_update=max_validators_per_update,
    )
    engine = StakePoolEngine.create(cfg, store, ledger, manager="manager", staker="staker")
    for v in validators:
        engine.add_validator(v, auth=STAKER)
    return engine, ledger, store


def test_deposit_reward_withdraw_end_to_end() -> None:
    engine, ledger, _ = _make_engine("v1")
    engine.deposit(1000, "alice", 0, validator="v1")
    assert ledger.balance_of("alice") == 1000

    source = StaticStakeValueSource({"v1": 1100})
    result = engine.update_all(source, 1)
    assert result.balance.total_stake_value == 1100

    effect = engine.withdraw(500, "alice", 1, validator="v1")
    assert effect.value == 550
    assert ledger.balance_of("alice") == 500
    assert ledger.supply == engine.state().pool_token_supply == 500

    source.set("v1", 550)
    result = engine.update_all(source, 2)
    assert [(p.claimant, p.value) for p in result.payouts] == [("alice", 550)]
    state = engine.state()
    assert state.total_stake_value == 550
    assert check_all(state) == []


def test_fees_reach_manager_through_ledger() -> None:
    fees = FeeSchedule(deposit=Fee(1, 100), withdrawal=Fee(1, 100), epoch=Fee(1, 10))
    engine, ledger, _ = _make_engine("v1", fees=fees)
    engine.deposit(1000, "alice", 0, validator="v1")
    assert ledger.balance_of("manager") == 10

    engine.update_all(StaticStakeValueSource({"v1": 1100}), 1)
    # epoch fee: floor(10 * 1000 / 1090) = 9
    assert ledger.balance_of("manager") == 19

    engine.withdraw(100, "alice", 1, validator="v1")
    assert ledger.balance_of("manager") == 20
    assert ledger.supply == engine.state().pool_token_supply
    assert ledger.verify_supply()


def test_update_all_runs_in_batches() -> None:
    validators = [f"v{i}" for i in range(7)]
    engine, _, _ = _make_engine(*validators, max_validators_per_update=3)
    for v in validators:
        engine.deposit(10, "alice", 0, validator=v)
    result = engine.update_all(StaticStakeValueSource({v: 11 for v in validators}), 1)
    assert [r.cursor for r in result.refreshes] == [3, 6, 7]
    assert result.balance.total_stake_value == 77
    assert engine.state().update_phase is UpdatePhase.FRESH


def test_interrupted_pass_resumes_from_stored_cursor() -> None:
    engine, _, store = _make_engine("a", "b", "c", max_validators_per_update=1)
    source = StaticStakeValueSource({"a": 0, "b": 0, "c": 0})
    engine.refresh_validators(source, 1)
    assert store.load().update_cursor == 1

    with pytest.raises(PoolNotUpdated):
        engine.deposit(10, "alice", 1)

    resumed = StakePoolEngine(store, engine.issuer, max_validators_per_update=5)
    report = resumed.refresh_validators(source, 1)
    assert report.processed == ("b", "c")
    resumed.update_pool_balance(1)
    assert resumed.state().last_updated_epoch == 1


def test_registry_change_mid_pass_then_restart() -> None:
    engine, _, _ = _make_engine("a", "b", max_validators_per_update=1)
    source = StaticStakeValueSource()
    engine.refresh_validators(source, 1)
    engine.add_validator("c", auth=STAKER)
    with pytest.raises(RegistryChangedMidPass):
        engine.refresh_validators(source, 1)

    engine.restart_validator_pass(1)
    result = engine.update_all(source, 1)
    assert result.refreshes[-1].complete
    assert engine.state().last_updated_epoch == 1


def test_failed_burn_leaves_account_untouched() -> None:
    engine, ledger, store = _make_engine()
    engine.deposit(100, "alice", 0)
    raw = store.raw

    with pytest.raises(InvalidAmount):
        engine.withdraw(10, "mallory", 0)
    assert store.raw == raw
    assert ledger.supply == 100


def test_failed_operation_stores_nothing() -> None:
    engine, _, store = _make_engine("v1")
    engine.deposit(100, "alice", 0, validator="v1")
    raw = store.raw
    with pytest.raises(ValidatorHasStake):
        engine.remove_validator("v1", auth=STAKER)
    assert store.raw == raw


def test_admin_requires_role() -> None:
    engine, _, _ = _make_engine()
    with pytest.raises(Unauthorized):
        engine.add_validator("v1", auth=MANAGER)
    with pytest.raises(Unauthorized):
        engine.add_validator("v1", auth=None)


def test_admin_operations_round_trip_through_store() -> None:
    engine, _, _ = _make_engine("v1", "v2")
    engine.set_fee("deposit", Fee(1, 50), auth=MANAGER)
    engine.set_preferred_validator("deposit", "v2", auth=STAKER)
    engine.mark_validator_for_removal("v1", auth=STAKER)
    engine.set_deposit_authority("gate", auth=MANAGER)
    engine.set_staker("staker2", auth=MANAGER)
    engine.set_manager("manager2", "treasury", auth=MANAGER)

    state = engine.state()
    assert state.fees.deposit == Fee(1, 50)
    assert state.preferred_deposit_validator == "v2"
    assert state.validators.get("v1").removal_pending
    assert state.deposit_authority == "gate"
    assert (state.staker, state.manager, state.manager_fee_recipient) == ("staker2", "manager2", "treasury")
    assert state.admin_nonce == 8


def test_stake_rebalancing_through_engine() -> None:
    engine, _, _ = _make_engine("v1")
    engine.deposit(1000, "alice", 0)
    entry = engine.increase_validator_stake("v1", 600, 0, auth=STAKER)
    assert entry.value == 600
    engine.update_all(StaticStakeValueSource({"v1": 600}), 1)
    engine.decrease_validator_stake("v1", 200, 1, auth=STAKER)
    engine.update_all(StaticStakeValueSource({"v1": 400}), 2)

    state = engine.state()
    assert state.reserve_value == 600
    assert state.validators.get("v1").active_value == 400
    assert state.total_stake_value == 1000


def test_removed_validator_evicted_by_update_all() -> None:
    engine, _, _ = _make_engine("v1", "v2")
    engine.deposit(500, "alice", 0, validator="v1")
    engine.mark_validator_for_removal("v1", auth=STAKER)
    result = engine.update_all(StaticStakeValueSource({"v1": 500}), 1)
    assert len(result.cleanup.deactivations) == 1

    result = engine.update_all(StaticStakeValueSource({"v1": 0}), 2)
    assert result.cleanup.evicted == ("v1",)
    state = engine.state()
    assert state.validators.find("v1") is None
    assert state.reserve_value == 500
    assert state.total_stake_value == 500


def test_only_new_invariant_violations_rejected() -> None:
    engine, _, _ = _make_engine("v1")
    engine.deposit(100, "alice", 0, validator="v1")
    before = engine.state()
    degenerate = replace(before, total_stake_value=0)
    # Already-present violations are tolerated.
    StakePoolEngine._check_invariants(degenerate, replace(degenerate, admin_nonce=1))
    with pytest.raises(InvariantViolation) as excinfo:
        StakePoolEngine._check_invariants(before, degenerate)
    assert "inv_no_phantom_shares" in excinfo.value.violations


def test_operations_are_logged(caplog) -> None:
    engine, _, _ = _make_engine("v1")
    with caplog.at_level(logging.INFO, logger="stakepool.integration.engine"):
        engine.deposit(100, "alice", 0, validator="v1")
    events = [getattr(r, "event", None) for r in caplog.records]
    assert "stake_pool.deposit" in events


class _FlakyStore(InMemoryAccountStore):
    def __init__(self) -> None:
        super().__init__()
        self.fail = False

    def store(self, state) -> None:
        if self.fail:
            raise OSError("disk full")
        super().store(state)


def test_store_failure_rolls_back_burn_and_skips_mints() -> None:
    ledger = PoolTokenLedger()
    store = _FlakyStore()
    engine = StakePoolEngine.create(
        PoolConfig(fees=FeeSchedule(deposit=Fee(1, 10))), store, ledger, manager="manager", staker="staker",
    )
    engine.deposit(1000, "alice", 0)
    balances = ledger.get_all_balances()
    raw = store.raw

    store.fail = True
    with pytest.raises(OSError):
        engine.withdraw(100, "alice", 0)
    with pytest.raises(OSError):
        engine.deposit(500, "bob", 0)
    assert ledger.get_all_balances() == balances
    assert ledger.supply == engine.state().pool_token_supply
    assert store.raw == raw


def test_withdraw_requires_owner_when_authorized() -> None:
    engine, ledger, _ = _make_engine()
    engine.deposit(100, "alice", 0)
    with pytest.raises(Unauthorized):
        engine.withdraw(10, "alice", 0, auth=Authorization("mallory"))
    assert ledger.balance_of("alice") == 100
    engine.withdraw(10, "alice", 0, auth=Authorization("alice"))
    assert ledger.balance_of("alice") == 90


def test_offsetting_entries_block_removal_through_engine() -> None:
    engine, _, store = _make_engine("v1")
    engine.deposit(1000, "alice", 0)
    engine.increase_validator_stake("v1", 500, 0, auth=STAKER)
    engine.decrease_validator_stake("v1", 500, 0, auth=STAKER)
    raw = store.raw
    with pytest.raises(ValidatorHasStake):
        engine.remove_validator("v1", auth=STAKER)
    assert store.raw == raw
