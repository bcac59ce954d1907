"""Functional core of the stake pool engine.

- deterministic, integer-only transitions,
- immutable state (frozen dataclasses) threaded explicitly through every call,
- fail-closed: an operation either returns a new state or raises a
  ``StakePoolError`` with the input state untouched.

Public API:
- ``initialize_pool(config, manager=..., staker=...) -> PoolState``
- ``deposit`` / ``withdraw`` (user operations, FRESH only)
- ``refresh_validators`` / ``update_pool_balance`` / ``cleanup_removed_validators``
  (the three epoch passes)
- admin operations in ``stakepool.core.admin``
"""

from .epoch_update import (
    cleanup_removed_validators,
    refresh_validators,
    require_fresh,
    restart_validator_pass,
    run_epoch_update,
    update_phase,
    update_pool_balance,
)
from .errors import (
    ArithmeticOverflow,
    DepositTooSmall,
    DuplicateValidator,
    ErrorCategory,
    ExchangeRateZero,
    InsufficientValidatorBalance,
    InvalidAmount,
    InvalidFeeConfiguration,
    InvariantViolation,
    MaxValidatorsExceeded,
    PoolNotUpdated,
    RegistryChangedMidPass,
    StakePoolError,
    TransitionAlreadyInFlight,
    TransitionNotFound,
    TransitionNotMature,
    Unauthorized,
    ValidatorHasStake,
    ValidatorNotFound,
    WrongAccountVersion,
)
from .fees import Fee, FeeSchedule, apply_fee, tokens_for, value_for
from .handlers import deposit, withdraw
from .interfaces import StakeObservation, StakeValueSource
from .invariants import check_all
from .pool import PoolConfig, initialize_pool
from .registry import ValidatorList, ValidatorRecord
from .types import (
    Direction,
    DrawOrder,
    PoolState,
    TransientStakeEntry,
    UpdatePhase,
)

__all__ = [
    "initialize_pool",
    "deposit",
    "withdraw",
    "refresh_validators",
    "restart_validator_pass",
    "update_pool_balance",
    "cleanup_removed_validators",
    "run_epoch_update",
    "update_phase",
    "require_fresh",
    "check_all",
    "apply_fee",
    "tokens_for",
    "value_for",
    "Fee",
    "FeeSchedule",
    "PoolConfig",
    "PoolState",
    "ValidatorList",
    "ValidatorRecord",
    "TransientStakeEntry",
    "StakeObservation",
    "StakeValueSource",
    "Direction",
    "DrawOrder",
    "UpdatePhase",
    "StakePoolError",
    "ErrorCategory",
    "ArithmeticOverflow",
    "InvalidFeeConfiguration",
    "PoolNotUpdated",
    "TransitionNotMature",
    "RegistryChangedMidPass",
    "MaxValidatorsExceeded",
    "DuplicateValidator",
    "ValidatorNotFound",
    "ValidatorHasStake",
    "InsufficientValidatorBalance",
    "TransitionAlreadyInFlight",
    "ExchangeRateZero",
    "Unauthorized",
    "WrongAccountVersion",
    "InvalidAmount",
    "DepositTooSmall",
    "TransitionNotFound",
    "InvariantViolation",
]
