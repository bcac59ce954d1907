"""
BLS12-381 authorization of privileged operations.

Admin (and deposit-authority) requests are signed over a canonical message:

    domain_sep("admin_op:<pool_id>") || canonical_json({"op", "args", "nonce"})

The nonce is the pool's ``admin_nonce`` at signing time. Every admin
operation bumps it, so a signature is good for exactly one operation.
Signatures are BLS (G2Basic) over the sha256 digest of the message; public
keys are 48-byte and signatures 96-byte hex strings.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from py_ecc.bls import G2Basic
from py_ecc.optimized_bls12_381 import curve_order as BLS12_381_CURVE_ORDER

from ..state.canonical import canonical_json_bytes, domain_sep_bytes


ADMIN_DOMAIN = "admin_op"
DEFAULT_POOL_ID = "stakepool"


@dataclass(frozen=True)
class Authorization:
    """Who is asking, with a signature when the engine verifies signatures."""

    signer: str
    signature: Optional[str] = None


def _hex_to_bytes(value: str, *, name: str, expected_nbytes: int) -> bytes:
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a hex string")
    s = value[2:] if value.startswith(("0x", "0X")) else value
    if len(s) != expected_nbytes * 2:
        raise ValueError(f"{name} must be {expected_nbytes} bytes")
    try:
        return bytes.fromhex(s)
    except ValueError as exc:
        raise ValueError(f"{name} is not valid hex") from exc


def _parse_privkey(privkey: Union[int, str]) -> int:
    if isinstance(privkey, bool):
        raise TypeError("privkey must be int or hex str")
    if isinstance(privkey, int):
        sk = privkey
    elif isinstance(privkey, str):
        sk = int.from_bytes(_hex_to_bytes(privkey, name="privkey", expected_nbytes=32), "big")
    else:
        raise TypeError("privkey must be int or hex str")
    if not 0 < sk < BLS12_381_CURVE_ORDER:
        raise ValueError("privkey out of range for BLS12-381")
    return sk


def admin_message(op: str, args: Mapping[str, Any], nonce: int, *, pool_id: str = DEFAULT_POOL_ID) -> bytes:
    """Canonical bytes a signer signs to authorize ``op(**args)`` at ``nonce``."""
    if not isinstance(op, str) or not op:
        raise ValueError("op must be a non-empty str")
    if not isinstance(nonce, int) or isinstance(nonce, bool) or nonce < 0:
        raise ValueError("nonce must be a non-negative int")
    signing = {"op": op, "args": dict(args), "nonce": nonce}
    return domain_sep_bytes(f"{ADMIN_DOMAIN}:{pool_id}", version=1) + canonical_json_bytes(signing)


def bls_pubkey_hex(privkey: Union[int, str]) -> str:
    return G2Basic.SkToPk(_parse_privkey(privkey)).hex()


def sign_admin_message(privkey: Union[int, str], message: bytes) -> str:
    msg_hash = hashlib.sha256(message).digest()
    return G2Basic.Sign(_parse_privkey(privkey), msg_hash).hex()


class BlsAuthorityVerifier:
    """``AuthorityVerifier`` for BLS public-key identities."""

    def verify(self, signer: str, message: bytes, signature: str) -> bool:
        try:
            pubkey_bytes = _hex_to_bytes(signer, name="signer", expected_nbytes=48)
            sig_bytes = _hex_to_bytes(signature, name="signature", expected_nbytes=96)
        except (TypeError, ValueError):
            return False
        msg_hash = hashlib.sha256(message).digest()
        return bool(G2Basic.Verify(pubkey_bytes, msg_hash, sig_bytes))
