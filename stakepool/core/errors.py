"""Exception types for the stake pool engine.

Every error carries a stable ``code`` (the name callers match on) and a
``category``. Operations raise before building any new state, so catching one
of these means nothing changed.
"""

from __future__ import annotations

from enum import Enum, unique


@unique
class ErrorCategory(Enum):
    ARITHMETIC = "arithmetic"
    STALENESS = "staleness"
    CAPACITY = "capacity"
    AUTHORIZATION = "authorization"
    STORAGE = "storage"
    INPUT = "input"


class StakePoolError(Exception):
    """Base class for all engine errors."""

    code: str = "StakePoolError"
    category: ErrorCategory = ErrorCategory.INPUT

    def __init__(self, message: str = "") -> None:
        self.message = message
        super().__init__(f"{self.code}: {message}" if message else self.code)

    @property
    def retryable(self) -> bool:
        """Staleness errors clear once the caller finishes the prerequisite pass."""
        return self.category is ErrorCategory.STALENESS


# -- Arithmetic --------------------------------------------------------------

class ArithmeticOverflow(StakePoolError):
    code = "ArithmeticOverflow"
    category = ErrorCategory.ARITHMETIC


class InvalidFeeConfiguration(StakePoolError):
    code = "InvalidFeeConfiguration"
    category = ErrorCategory.ARITHMETIC


# -- Staleness ---------------------------------------------------------------

class PoolNotUpdated(StakePoolError):
    code = "PoolNotUpdated"
    category = ErrorCategory.STALENESS


class TransitionNotMature(StakePoolError):
    code = "TransitionNotMature"
    category = ErrorCategory.STALENESS


class RegistryChangedMidPass(StakePoolError):
    code = "RegistryChangedMidPass"
    category = ErrorCategory.STALENESS


# -- Capacity / uniqueness ---------------------------------------------------

class MaxValidatorsExceeded(StakePoolError):
    code = "MaxValidatorsExceeded"
    category = ErrorCategory.CAPACITY


class DuplicateValidator(StakePoolError):
    code = "DuplicateValidator"
    category = ErrorCategory.CAPACITY


class ValidatorNotFound(StakePoolError):
    code = "ValidatorNotFound"
    category = ErrorCategory.CAPACITY


class ValidatorHasStake(StakePoolError):
    code = "ValidatorHasStake"
    category = ErrorCategory.CAPACITY


class InsufficientValidatorBalance(StakePoolError):
    code = "InsufficientValidatorBalance"
    category = ErrorCategory.CAPACITY


class TransitionAlreadyInFlight(StakePoolError):
    code = "TransitionAlreadyInFlight"
    category = ErrorCategory.CAPACITY


class ExchangeRateZero(StakePoolError):
    """Pool tokens are outstanding but the pool holds no value."""

    code = "ExchangeRateZero"
    category = ErrorCategory.CAPACITY


# -- Authorization -----------------------------------------------------------

class Unauthorized(StakePoolError):
    code = "Unauthorized"
    category = ErrorCategory.AUTHORIZATION


# -- Storage -----------------------------------------------------------------

class WrongAccountVersion(StakePoolError):
    code = "WrongAccountVersion"
    category = ErrorCategory.STORAGE


# -- Input -------------------------------------------------------------------

class InvalidAmount(StakePoolError):
    code = "InvalidAmount"
    category = ErrorCategory.INPUT


class DepositTooSmall(StakePoolError):
    code = "DepositTooSmall"
    category = ErrorCategory.INPUT


class TransitionNotFound(StakePoolError):
    code = "TransitionNotFound"
    category = ErrorCategory.INPUT


class InvariantViolation(StakePoolError):
    """Raised by the engine when a post-state fails one or more invariants."""

    code = "InvariantViolation"
    category = ErrorCategory.INPUT

    def __init__(self, violations: list[str]) -> None:
        self.violations = violations
        super().__init__(f"invariant violations: {', '.join(violations)}")
