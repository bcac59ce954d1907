"""Tests for stakepool/core/registry.py."""

from __future__ import annotations

from dataclasses import replace

import pytest

from stakepool.core import admin, registry
from stakepool.core.errors import (
    DuplicateValidator,
    InvalidAmount,
    MaxValidatorsExceeded,
    ValidatorHasStake,
    ValidatorNotFound,
)
from stakepool.core.handlers import deposit
from stakepool.core.pool import PoolConfig, initialize_pool
from stakepool.core.registry import ValidatorList, ValidatorRecord


def _make_list(*identities: str, max_validators: int = 8) -> ValidatorList:
    vl = ValidatorList(max_validators=max_validators)
    for identity in identities:
        vl = vl.with_added(identity)
    return vl


# ---------------------------------------------------------------------------
# ValidatorList
# ---------------------------------------------------------------------------

class TestValidatorList:
    def test_add_and_find(self):
        vl = _make_list("c", "a", "b")
        assert len(vl) == 3
        assert [r.identity for r in vl] == ["c", "a", "b"]
        assert vl.index_keys == ("a", "b", "c")
        assert vl.find("a") == ValidatorRecord(identity="a")
        assert vl.find("zz") is None

    def test_get_missing_raises(self):
        with pytest.raises(ValidatorNotFound):
            _make_list("a").get("b")

    def test_duplicate_rejected(self):
        with pytest.raises(DuplicateValidator):
            _make_list("a", "a")

    def test_capacity(self):
        vl = _make_list("a", "b", max_validators=2)
        assert vl.is_full
        with pytest.raises(MaxValidatorsExceeded):
            vl.with_added("c")

    def test_empty_identity_rejected(self):
        with pytest.raises(InvalidAmount):
            _make_list("")

    def test_remove_swaps_last_into_hole(self):
        vl = _make_list("a", "b", "c").with_removed("a")
        assert [r.identity for r in vl] == ["c", "b"]
        assert vl.position("c") == 0
        assert vl.position("b") == 1
        assert vl.position("a") is None
        assert vl.index_keys == ("b", "c")

    def test_remove_last_slot(self):
        vl = _make_list("a", "b").with_removed("b")
        assert [r.identity for r in vl] == ["a"]
        assert vl.position("a") == 0

    def test_remove_missing(self):
        with pytest.raises(ValidatorNotFound):
            _make_list("a").with_removed("b")

    def test_remove_with_active_stake_rejected(self):
        vl = _make_list("a")
        vl = vl.with_record(replace(vl.get("a"), active_value=1))
        with pytest.raises(ValidatorHasStake):
            vl.with_removed("a")

    def test_remove_with_transient_stake_rejected(self):
        vl = _make_list("a")
        vl = vl.with_record(replace(vl.get("a"), transient_value=5))
        with pytest.raises(ValidatorHasStake):
            vl.with_removed("a")

    def test_from_records_rebuilds_index(self):
        records = (ValidatorRecord("z", active_value=3), ValidatorRecord("m"), ValidatorRecord("a"))
        vl = ValidatorList.from_records(4, records)
        assert vl.records == records
        assert vl.index_keys == ("a", "m", "z")
        assert vl.get("z").active_value == 3

    def test_from_records_rejects_duplicates(self):
        with pytest.raises(DuplicateValidator):
            ValidatorList.from_records(4, (ValidatorRecord("a"), ValidatorRecord("a")))

    def test_with_record_is_not_structural(self):
        vl = _make_list("a", "b")
        updated = vl.with_record(replace(vl.get("b"), active_value=9))
        assert updated.index_keys == vl.index_keys
        assert updated.get("b").active_value == 9
        assert vl.get("b").active_value == 0


# ---------------------------------------------------------------------------
# Pool-level operations
# ---------------------------------------------------------------------------

class TestPoolRegistry:
    def test_structural_changes_bump_generation(self):
        s = initialize_pool(PoolConfig(max_validators=4), manager="m", staker="s")
        assert s.list_generation == 0
        s = registry.add(s, "v1")
        s = registry.add(s, "v2")
        assert s.list_generation == 2
        s = registry.put(s, replace(registry.get(s, "v1"), active_value=1))
        assert s.list_generation == 2
        s = registry.put(s, replace(registry.get(s, "v1"), active_value=0))
        s = registry.remove(s, "v1")
        assert s.list_generation == 3
        assert registry.find(s, "v1") is None

    def test_remove_clears_preferred_hints(self):
        s = initialize_pool(PoolConfig(), manager="m", staker="s")
        s = registry.add(s, "v1")
        s = replace(s, preferred_deposit_validator="v1", preferred_withdraw_validator="v1")
        s = registry.remove(s, "v1")
        assert s.preferred_deposit_validator is None
        assert s.preferred_withdraw_validator is None

    def test_remove_with_offsetting_entries_in_flight_rejected(self):
        s = initialize_pool(PoolConfig(max_validators=4), manager="m", staker="s")
        s = admin.add_validator(s, "s", "v1")
        s, _ = deposit(s, 1000, "alice", 0)
        s, _ = admin.increase_validator_stake(s, "s", "v1", 500, 0)
        s, _ = admin.decrease_validator_stake(s, "s", "v1", 500, 0)
        record = registry.get(s, "v1")
        assert record.active_value == 0 and record.transient_value == 0
        assert len(s.transients) == 2
        with pytest.raises(ValidatorHasStake):
            registry.remove(s, "v1")
        with pytest.raises(ValidatorHasStake):
            admin.remove_validator(s, "s", "v1")
