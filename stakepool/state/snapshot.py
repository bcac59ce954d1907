"""
Pool account snapshot encoding.

Goals:
- Deterministic JSON serialization for storage and commitments.
- Round-trippable into the functional-core `PoolState`.
- Explicit versioning: an account written by another layout version is
  rejected with `WrongAccountVersion`, never half-read.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from ..core.errors import WrongAccountVersion
from ..core.fees import Fee, FeeSchedule
from ..core.registry import ValidatorList, ValidatorRecord
from ..core.types import Direction, DrawOrder, PoolState, TransientStakeEntry, UpdatePhase
from .canonical import canonical_json_bytes, domain_sep_bytes, sha256_hex


POOL_SNAPSHOT_VERSION = 1
MAX_SNAPSHOT_BYTES = 8_000_000


def _require_str(value: Any, *, name: str, max_len: int = 512) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a string")
    if not value:
        raise ValueError(f"{name} must be non-empty")
    if len(value) > max_len:
        raise ValueError(f"{name} too large")
    return value


def _optional_str(value: Any, *, name: str) -> Optional[str]:
    return None if value is None else _require_str(value, name=name)


def _require_int(value: Any, *, name: str, non_negative: bool = True) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an int")
    if non_negative and value < 0:
        raise ValueError(f"{name} must be non-negative")
    return int(value)


def _require_list(value: Any, *, name: str) -> List[Any]:
    if not isinstance(value, list):
        raise TypeError(f"{name} must be a list")
    return value


def _require_mapping(value: Any, *, name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise TypeError(f"{name} must be an object")
    return value


@dataclass(frozen=True)
class PoolSnapshot:
    """
    Deterministic, versioned snapshot of `PoolState`.

    The commitment is *not* included inside `data` to avoid self-reference.
    """

    version: int
    data: Dict[str, Any]

    def canonical_bytes(self) -> bytes:
        return canonical_json_bytes(self.data)

    def commitment_hex(self) -> str:
        payload = domain_sep_bytes("pool_snapshot", version=self.version) + self.canonical_bytes()
        return sha256_hex(payload)


def _fee_obj(fee: Fee) -> Dict[str, int]:
    return {"numerator": int(fee.numerator), "denominator": int(fee.denominator)}


def snapshot_from_state(state: PoolState) -> PoolSnapshot:
    # Slot order is part of the state: the epoch cursor walks slots.
    validators = [
        {
            "identity": r.identity,
            "active_value": int(r.active_value),
            "transient_value": int(r.transient_value),
            "last_update_epoch": int(r.last_update_epoch),
            "removal_pending": bool(r.removal_pending),
        }
        for r in state.validators.records
    ]
    transients = [
        {
            "validator": e.validator,
            "direction": e.direction.value,
            "value": int(e.value),
            "sequence": int(e.sequence),
            "created_epoch": int(e.created_epoch),
            "claimant": e.claimant,
        }
        for e in sorted(state.transients, key=lambda e: e.sequence)
    ]

    data: Dict[str, Any] = {
        "version": POOL_SNAPSHOT_VERSION,
        "manager": state.manager,
        "staker": state.staker,
        "manager_fee_recipient": state.manager_fee_recipient,
        "deposit_authority": state.deposit_authority,
        "pool_token_supply": int(state.pool_token_supply),
        "total_stake_value": int(state.total_stake_value),
        "reserve_value": int(state.reserve_value),
        "last_updated_epoch": int(state.last_updated_epoch),
        "fees": {
            "deposit": _fee_obj(state.fees.deposit),
            "withdrawal": _fee_obj(state.fees.withdrawal),
            "epoch": _fee_obj(state.fees.epoch),
        },
        "preferred_deposit_validator": state.preferred_deposit_validator,
        "preferred_withdraw_validator": state.preferred_withdraw_validator,
        "max_validators": int(state.validators.max_validators),
        "validators": validators,
        "transients": transients,
        "next_sequence": int(state.next_sequence),
        "update_phase": state.update_phase.value,
        "update_epoch": int(state.update_epoch),
        "update_cursor": int(state.update_cursor),
        "list_generation": int(state.list_generation),
        "pass_generation": int(state.pass_generation),
        "draw_order": state.draw_order.value,
        "max_transient_per_direction": int(state.max_transient_per_direction),
        "admin_nonce": int(state.admin_nonce),
    }
    return PoolSnapshot(version=POOL_SNAPSHOT_VERSION, data=data)


def _fee_from(obj: Any, *, name: str) -> Fee:
    m = _require_mapping(obj, name=name)
    return Fee(
        numerator=_require_int(m.get("numerator"), name=f"{name}.numerator"),
        denominator=_require_int(m.get("denominator"), name=f"{name}.denominator"),
    )


def _enum_from(enum_cls: Any, value: Any, *, name: str) -> Any:
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise ValueError(f"{name}: unknown value {value!r}") from exc


def state_from_snapshot(snapshot: Mapping[str, Any]) -> PoolState:
    """
    Rebuild a `PoolState` from snapshot data.

    Raises:
        WrongAccountVersion: the snapshot was written by another layout version.
        TypeError / ValueError: the snapshot is malformed.
    """
    if not isinstance(snapshot, Mapping):
        raise TypeError("snapshot must be a mapping")

    version = snapshot.get("version")
    if not isinstance(version, int) or isinstance(version, bool):
        raise WrongAccountVersion(f"missing or non-integer version: {version!r}")
    if version != POOL_SNAPSHOT_VERSION:
        raise WrongAccountVersion(f"expected version {POOL_SNAPSHOT_VERSION}, found {version}")

    records = []
    for i, entry in enumerate(_require_list(snapshot.get("validators"), name="validators")):
        m = _require_mapping(entry, name=f"validators[{i}]")
        removal_pending = m.get("removal_pending", False)
        if not isinstance(removal_pending, bool):
            raise TypeError(f"validators[{i}].removal_pending must be a bool")
        records.append(
            ValidatorRecord(
                identity=_require_str(m.get("identity"), name=f"validators[{i}].identity"),
                active_value=_require_int(m.get("active_value"), name=f"validators[{i}].active_value"),
                transient_value=_require_int(
                    m.get("transient_value"), name=f"validators[{i}].transient_value", non_negative=False,
                ),
                last_update_epoch=_require_int(m.get("last_update_epoch"), name=f"validators[{i}].last_update_epoch"),
                removal_pending=removal_pending,
            )
        )
    max_validators = _require_int(snapshot.get("max_validators"), name="max_validators")
    validator_list = ValidatorList.from_records(max_validators, tuple(records))

    transients = []
    seen_sequences: set[int] = set()
    for i, entry in enumerate(_require_list(snapshot.get("transients", []), name="transients")):
        m = _require_mapping(entry, name=f"transients[{i}]")
        sequence = _require_int(m.get("sequence"), name=f"transients[{i}].sequence")
        if sequence in seen_sequences:
            raise ValueError(f"duplicate transient sequence: {sequence}")
        seen_sequences.add(sequence)
        transients.append(
            TransientStakeEntry(
                validator=_require_str(m.get("validator"), name=f"transients[{i}].validator"),
                direction=_enum_from(Direction, m.get("direction"), name=f"transients[{i}].direction"),
                value=_require_int(m.get("value"), name=f"transients[{i}].value"),
                sequence=sequence,
                created_epoch=_require_int(m.get("created_epoch"), name=f"transients[{i}].created_epoch"),
                claimant=_optional_str(m.get("claimant"), name=f"transients[{i}].claimant"),
            )
        )

    fees = _require_mapping(snapshot.get("fees"), name="fees")
    return PoolState(
        manager=_require_str(snapshot.get("manager"), name="manager"),
        staker=_require_str(snapshot.get("staker"), name="staker"),
        validators=validator_list,
        manager_fee_recipient=_require_str(snapshot.get("manager_fee_recipient"), name="manager_fee_recipient"),
        deposit_authority=_optional_str(snapshot.get("deposit_authority"), name="deposit_authority"),
        pool_token_supply=_require_int(snapshot.get("pool_token_supply"), name="pool_token_supply"),
        total_stake_value=_require_int(snapshot.get("total_stake_value"), name="total_stake_value"),
        reserve_value=_require_int(snapshot.get("reserve_value"), name="reserve_value"),
        last_updated_epoch=_require_int(snapshot.get("last_updated_epoch"), name="last_updated_epoch"),
        fees=FeeSchedule(
            deposit=_fee_from(fees.get("deposit"), name="fees.deposit"),
            withdrawal=_fee_from(fees.get("withdrawal"), name="fees.withdrawal"),
            epoch=_fee_from(fees.get("epoch"), name="fees.epoch"),
        ),
        preferred_deposit_validator=_optional_str(
            snapshot.get("preferred_deposit_validator"), name="preferred_deposit_validator",
        ),
        preferred_withdraw_validator=_optional_str(
            snapshot.get("preferred_withdraw_validator"), name="preferred_withdraw_validator",
        ),
        transients=tuple(sorted(transients, key=lambda e: e.sequence)),
        next_sequence=_require_int(snapshot.get("next_sequence"), name="next_sequence"),
        update_phase=_enum_from(UpdatePhase, snapshot.get("update_phase"), name="update_phase"),
        update_epoch=_require_int(snapshot.get("update_epoch"), name="update_epoch"),
        update_cursor=_require_int(snapshot.get("update_cursor"), name="update_cursor"),
        list_generation=_require_int(snapshot.get("list_generation"), name="list_generation"),
        pass_generation=_require_int(snapshot.get("pass_generation"), name="pass_generation"),
        draw_order=_enum_from(DrawOrder, snapshot.get("draw_order"), name="draw_order"),
        max_transient_per_direction=_require_int(
            snapshot.get("max_transient_per_direction"), name="max_transient_per_direction",
        ),
        admin_nonce=_require_int(snapshot.get("admin_nonce"), name="admin_nonce"),
    )


def encode_state(state: PoolState) -> bytes:
    return snapshot_from_state(state).canonical_bytes()


def decode_state(raw: bytes, *, max_bytes: int = MAX_SNAPSHOT_BYTES) -> PoolState:
    if not isinstance(raw, (bytes, bytearray)):
        raise TypeError("raw snapshot must be bytes")
    if len(raw) > max_bytes:
        raise ValueError("snapshot too large")
    return state_from_snapshot(json.loads(raw.decode("utf-8")))
