from __future__ import annotations

import pytest

pytest.importorskip("py_ecc")

from py_ecc.bls import G2Basic

from stakepool.core.errors import Unauthorized
from stakepool.core.fees import Fee
from stakepool.core.pool import PoolConfig
from stakepool.integration.authority import (
    Authorization,
    BlsAuthorityVerifier,
    admin_message,
    bls_pubkey_hex,
    sign_admin_message,
)
from stakepool.integration.engine import StakePoolEngine
from stakepool.integration.store import InMemoryAccountStore
from stakepool.state.tokens import PoolTokenLedger

# Deterministic keypairs from fixed seeds.
STAKER_SK = G2Basic.KeyGen(b"\x01" * 32)
MANAGER_SK = G2Basic.KeyGen(b"\x02" * 32)
STAKER_PK = bls_pubkey_hex(STAKER_SK)
MANAGER_PK = bls_pubkey_hex(MANAGER_SK)


def _make_engine() -> StakePoolEngine:
    return StakePoolEngine.create(
        PoolConfig(max_validators=4),
        InMemoryAccountStore(),
        PoolTokenLedger(),
        manager=MANAGER_PK,
        staker=STAKER_PK,
        verifier=BlsAuthorityVerifier(),
        pool_id="testpool",
    )


def _auth(engine: StakePoolEngine, sk: int, pk: str, op: str, args: dict) -> Authorization:
    msg = admin_message(op, args, engine.state().admin_nonce, pool_id=engine.pool_id)
    return Authorization(pk, sign_admin_message(sk, msg))


def test_admin_message_is_canonical_and_domain_separated() -> None:
    a = admin_message("add_validator", {"validator": "v1"}, 3, pool_id="p")
    b = admin_message("add_validator", {"validator": "v1"}, 3, pool_id="p")
    assert a == b
    assert a.startswith(b"stakepool:admin_op:p:v1\x00")
    assert a != admin_message("add_validator", {"validator": "v1"}, 4, pool_id="p")
    assert a != admin_message("add_validator", {"validator": "v1"}, 3, pool_id="q")


def test_verifier_roundtrip() -> None:
    msg = admin_message("set_staker", {"staker": "x"}, 0)
    sig = sign_admin_message(MANAGER_SK, msg)
    verifier = BlsAuthorityVerifier()
    assert verifier.verify(MANAGER_PK, msg, sig)
    assert not verifier.verify(STAKER_PK, msg, sig)
    assert not verifier.verify(MANAGER_PK, msg + b"!", sig)


def test_verifier_rejects_malformed_inputs() -> None:
    verifier = BlsAuthorityVerifier()
    msg = admin_message("set_staker", {"staker": "x"}, 0)
    assert not verifier.verify("not-hex", msg, "00" * 96)
    assert not verifier.verify(MANAGER_PK, msg, "abcd")


def test_signed_admin_operation_accepted() -> None:
    engine = _make_engine()
    auth = _auth(engine, STAKER_SK, STAKER_PK, "add_validator", {"validator": "v1"})
    engine.add_validator("v1", auth=auth)
    assert engine.state().validators.find("v1") is not None


def test_replayed_signature_rejected() -> None:
    engine = _make_engine()
    auth = _auth(engine, STAKER_SK, STAKER_PK, "add_validator", {"validator": "v1"})
    engine.add_validator("v1", auth=auth)
    engine.remove_validator("v1", auth=_auth(engine, STAKER_SK, STAKER_PK, "remove_validator", {"validator": "v1"}))
    with pytest.raises(Unauthorized):
        engine.add_validator("v1", auth=auth)


def test_signature_for_other_args_rejected() -> None:
    engine = _make_engine()
    auth = _auth(engine, STAKER_SK, STAKER_PK, "add_validator", {"validator": "v1"})
    with pytest.raises(Unauthorized):
        engine.add_validator("v2", auth=auth)


def test_unsigned_request_rejected() -> None:
    engine = _make_engine()
    with pytest.raises(Unauthorized):
        engine.add_validator("v1", auth=Authorization(STAKER_PK))


def test_valid_signature_wrong_role_rejected() -> None:
    engine = _make_engine()
    auth = _auth(
        engine, STAKER_SK, STAKER_PK, "set_fee", {"kind": "epoch", "numerator": 1, "denominator": 10},
    )
    with pytest.raises(Unauthorized):
        engine.set_fee("epoch", Fee(1, 10), auth=auth)
    assert engine.state().admin_nonce == 0


def test_privkey_hex_and_int_agree() -> None:
    sk_hex = STAKER_SK.to_bytes(32, "big").hex()
    assert bls_pubkey_hex(sk_hex) == STAKER_PK
    with pytest.raises(ValueError):
        bls_pubkey_hex(0)


def test_withdraw_needs_owner_signature() -> None:
    holder_sk = G2Basic.KeyGen(b"\x03" * 32)
    holder = bls_pubkey_hex(holder_sk)
    engine = _make_engine()
    engine.deposit(100, holder, 0)
    with pytest.raises(Unauthorized):
        engine.withdraw(10, holder, 0)
    with pytest.raises(Unauthorized):
        engine.withdraw(10, holder, 0, auth=_auth(engine, STAKER_SK, STAKER_PK, "withdraw", {
            "tokens": 10, "owner": holder, "validator": None,
        }))
    auth = _auth(engine, holder_sk, holder, "withdraw", {"tokens": 10, "owner": holder, "validator": None})
    effect = engine.withdraw(10, holder, 0, auth=auth)
    assert effect.value == 10
