from __future__ import annotations

import pytest

from stakepool.core.interfaces import TokenIssuer
from stakepool.state.tokens import PoolTokenLedger


def test_ledger_is_a_token_issuer() -> None:
    assert isinstance(PoolTokenLedger(), TokenIssuer)


def test_mint_burn_tracks_supply() -> None:
    ledger = PoolTokenLedger()
    ledger.mint(100, "alice")
    ledger.mint(50, "bob")
    ledger.burn(30, "alice")
    assert ledger.balance_of("alice") == 70
    assert ledger.supply == 120
    assert ledger.verify_supply()


def test_zero_balances_are_dropped() -> None:
    ledger = PoolTokenLedger()
    ledger.mint(10, "alice")
    ledger.burn(10, "alice")
    assert ledger.get_all_balances() == {}
    assert ledger.balance_of("alice") == 0


def test_burn_beyond_balance_rejected() -> None:
    ledger = PoolTokenLedger()
    ledger.mint(10, "alice")
    with pytest.raises(ValueError):
        ledger.burn(11, "alice")
    assert ledger.balance_of("alice") == 10
    assert ledger.supply == 10


def test_transfer() -> None:
    ledger = PoolTokenLedger()
    ledger.mint(10, "alice")
    ledger.transfer(4, "alice", "bob")
    assert ledger.get_all_balances() == {"alice": 6, "bob": 4}
    assert ledger.supply == 10


def test_negative_amounts_rejected() -> None:
    ledger = PoolTokenLedger()
    with pytest.raises(ValueError):
        ledger.mint(-1, "alice")
    with pytest.raises(ValueError):
        ledger.burn(-1, "alice")
