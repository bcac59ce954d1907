"""Pool construction.

``initialize_pool()`` returns the canonical initial ``PoolState`` for a
``PoolConfig``: empty registry, no tokens, no value, FRESH in the creation
epoch.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from .errors import InvalidAmount
from .fees import FeeSchedule, validate_fee_schedule
from .registry import ValidatorList, require_identity
from .types import DrawOrder, PoolState, UpdatePhase

# The ledger's transaction size bounds how many records one pass-1 call can touch.
DEFAULT_MAX_VALIDATORS_PER_UPDATE = 5


@dataclass(frozen=True)
class PoolConfig:
    """Static parameters chosen when a pool is created."""

    max_validators: int = 100
    fees: FeeSchedule = field(default_factory=FeeSchedule)
    draw_order: DrawOrder = DrawOrder.VALIDATOR_FIRST
    max_transient_per_direction: int = 1
    max_validators_per_update: int = DEFAULT_MAX_VALIDATORS_PER_UPDATE

    def __post_init__(self) -> None:
        for name in ("max_validators", "max_transient_per_direction", "max_validators_per_update"):
            v = getattr(self, name)
            if not isinstance(v, int) or isinstance(v, bool):
                raise TypeError(f"{name} must be an int")
            if v <= 0:
                raise ValueError(f"{name} must be positive: {v}")
        if not isinstance(self.draw_order, DrawOrder):
            raise TypeError("draw_order must be a DrawOrder")
        validate_fee_schedule(self.fees)


def initialize_pool(
    config: PoolConfig,
    *,
    manager: str,
    staker: str,
    current_epoch: int = 0,
    manager_fee_recipient: Optional[str] = None,
    deposit_authority: Optional[str] = None,
) -> PoolState:
    require_identity(manager, name="manager")
    require_identity(staker, name="staker")
    if deposit_authority is not None:
        require_identity(deposit_authority, name="deposit_authority")
    if not isinstance(current_epoch, int) or isinstance(current_epoch, bool) or current_epoch < 0:
        raise InvalidAmount(f"epoch must be a non-negative int, got {current_epoch!r}")

    return PoolState(
        manager=manager,
        staker=staker,
        validators=ValidatorList(max_validators=config.max_validators),
        manager_fee_recipient=manager_fee_recipient or manager,
        deposit_authority=deposit_authority,
        last_updated_epoch=current_epoch,
        fees=config.fees,
        update_phase=UpdatePhase.FRESH,
        update_epoch=current_epoch,
        draw_order=config.draw_order,
        max_transient_per_direction=config.max_transient_per_direction,
    )
