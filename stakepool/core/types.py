"""Data types for the stake pool engine.

All types are frozen dataclasses (immutable). Operations return a new
``PoolState`` built with ``dataclasses.replace()``; the input state is never
touched, which is what makes every operation all-or-nothing.

Units/conventions:
- ``*_value`` amounts are integer base stake units (u64).
- ``pool_token_supply`` and token amounts are integer pool-token units (u64).
- identities (validators, manager, staker, holders) are opaque strings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, unique
from typing import Optional

from .fees import FeeSchedule
from .registry import ValidatorId, ValidatorList


@unique
class UpdatePhase(Enum):
    STALE = "stale"
    VALIDATORS_UPDATING = "validators_updating"
    BALANCE_UPDATING = "balance_updating"
    FRESH = "fresh"


@unique
class Direction(Enum):
    ACTIVATING = "activating"
    DEACTIVATING = "deactivating"


@unique
class DrawOrder(Enum):
    """Where a withdrawal takes its value from first."""

    VALIDATOR_FIRST = "validator_first"
    RESERVE_FIRST = "reserve_first"


@dataclass(frozen=True)
class TransientStakeEntry:
    """Stake mid-(de)activation for one validator."""

    validator: ValidatorId
    direction: Direction
    value: int
    sequence: int
    created_epoch: int
    # Set for withdrawal claims: the holder paid out when the entry matures.
    claimant: Optional[str] = None

    @property
    def signed_value(self) -> int:
        return self.value if self.direction is Direction.ACTIVATING else -self.value


@dataclass(frozen=True)
class PoolState:
    """Complete state of one pool deployment."""

    manager: str
    staker: str
    validators: ValidatorList
    manager_fee_recipient: str = ""
    deposit_authority: Optional[str] = None

    # Totals
    pool_token_supply: int = 0
    total_stake_value: int = 0
    reserve_value: int = 0
    last_updated_epoch: int = 0

    fees: FeeSchedule = field(default_factory=FeeSchedule)

    # Hints
    preferred_deposit_validator: Optional[ValidatorId] = None
    preferred_withdraw_validator: Optional[ValidatorId] = None

    # Transient tracker
    transients: tuple[TransientStakeEntry, ...] = ()
    next_sequence: int = 0

    # Epoch update machine
    update_phase: UpdatePhase = UpdatePhase.FRESH
    update_epoch: int = 0
    update_cursor: int = 0
    list_generation: int = 0
    pass_generation: int = 0

    # Policy
    draw_order: DrawOrder = DrawOrder.VALIDATOR_FIRST
    max_transient_per_direction: int = 1

    admin_nonce: int = 0


# ---------------------------------------------------------------------------
# Effects
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TokenMint:
    recipient: str
    amount: int


@dataclass(frozen=True)
class TokenBurn:
    source: str
    amount: int


@dataclass(frozen=True)
class ClaimPayout:
    """Value leaving the pool to a holder, now (reserve) or at maturity (claim)."""

    claimant: str
    value: int
    sequence: Optional[int] = None


@dataclass(frozen=True)
class DepositEffect:
    validator: Optional[ValidatorId]
    value: int
    fee_value: int
    tokens_minted: int
    manager_tokens: int
    activating: bool
    sequence: Optional[int] = None
    burns: tuple[TokenBurn, ...] = ()
    mints: tuple[TokenMint, ...] = ()


@dataclass(frozen=True)
class WithdrawEffect:
    validator: Optional[ValidatorId]
    tokens: int
    tokens_burned: int
    fee_tokens: int
    value: int
    from_reserve: bool
    sequence: Optional[int] = None
    payouts: tuple[ClaimPayout, ...] = ()
    burns: tuple[TokenBurn, ...] = ()
    mints: tuple[TokenMint, ...] = ()


@dataclass(frozen=True)
class MergeOutcome:
    entry: TransientStakeEntry
    payouts: tuple[ClaimPayout, ...] = ()


@dataclass(frozen=True)
class RefreshReport:
    """Result of one pass-1 call."""

    epoch: int
    processed: tuple[ValidatorId, ...]
    skipped: tuple[ValidatorId, ...]
    merged: tuple[MergeOutcome, ...]
    reward_delta: int
    cursor: int
    complete: bool
    payouts: tuple[ClaimPayout, ...] = ()


@dataclass(frozen=True)
class BalanceReport:
    """Result of pass 2."""

    epoch: int
    previous_total: int
    total_stake_value: int
    reward: int
    fee_tokens: int
    mints: tuple[TokenMint, ...] = ()


@dataclass(frozen=True)
class CleanupReport:
    evicted: tuple[ValidatorId, ...] = ()
    deactivations: tuple[TransientStakeEntry, ...] = ()
