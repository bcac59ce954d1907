"""
Fixed-point fee ledger (deterministic, integer-only).

All conversions between pool tokens and stake value go through this module.
Rounding is always floor, which favors the pool: a caller can never get back
more value than the exchange rate allows.

Widths follow the on-ledger layout: balances and supplies are u64, every
product is formed in a u128 intermediate before the division.
"""

from __future__ import annotations

from dataclasses import dataclass

from .errors import ArithmeticOverflow, ExchangeRateZero, InvalidAmount, InvalidFeeConfiguration


U64_MAX = (1 << 64) - 1
U128_MAX = (1 << 128) - 1


def _require_u64(value: int, *, name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidAmount(f"{name} must be an int")
    if value < 0:
        raise InvalidAmount(f"{name} must be non-negative: {value}")
    if value > U64_MAX:
        raise ArithmeticOverflow(f"{name} exceeds u64: {value}")
    return value


# -- Checked arithmetic ------------------------------------------------------

def checked_add(a: int, b: int) -> int:
    """``a + b`` as u64."""
    total = a + b
    if total > U64_MAX:
        raise ArithmeticOverflow(f"u64 overflow: {a} + {b}")
    return total


def checked_sub(a: int, b: int) -> int:
    """``a - b`` as u64."""
    if b > a:
        raise ArithmeticOverflow(f"u64 underflow: {a} - {b}")
    return a - b


def checked_mul_div(a: int, b: int, c: int) -> int:
    """``floor(a * b / c)`` with a u128 intermediate and a u64 result."""
    if c == 0:
        raise ArithmeticOverflow("division by zero")
    product = a * b
    if product > U128_MAX:
        raise ArithmeticOverflow(f"u128 overflow: {a} * {b}")
    result = product // c
    if result > U64_MAX:
        raise ArithmeticOverflow(f"u64 overflow: {a} * {b} / {c}")
    return result


# -- Fees --------------------------------------------------------------------

@dataclass(frozen=True)
class Fee:
    """Fee rate as a ratio. ``Fee()`` is a zero fee."""

    numerator: int = 0
    denominator: int = 1


@dataclass(frozen=True)
class FeeSchedule:
    deposit: Fee = Fee()
    withdrawal: Fee = Fee()
    epoch: Fee = Fee()


def validate_fee(fee: Fee) -> Fee:
    for name, v in (("numerator", fee.numerator), ("denominator", fee.denominator)):
        if not isinstance(v, int) or isinstance(v, bool):
            raise InvalidFeeConfiguration(f"{name} must be an int")
        if v < 0 or v > U64_MAX:
            raise InvalidFeeConfiguration(f"{name} out of u64 range: {v}")
    if fee.denominator == 0:
        raise InvalidFeeConfiguration("denominator must be non-zero")
    if fee.numerator > fee.denominator:
        raise InvalidFeeConfiguration(f"fee above 100%: {fee.numerator}/{fee.denominator}")
    return fee


def validate_fee_schedule(fees: FeeSchedule) -> FeeSchedule:
    validate_fee(fees.deposit)
    validate_fee(fees.withdrawal)
    validate_fee(fees.epoch)
    return fees


def apply_fee(amount: int, fee: Fee) -> tuple[int, int]:
    """
    Split ``amount`` into ``(fee_amount, net)``.

    ``fee_amount = floor(amount * numerator / denominator)``, ``net = amount - fee_amount``.
    """
    _require_u64(amount, name="amount")
    validate_fee(fee)
    fee_amount = checked_mul_div(amount, fee.numerator, fee.denominator)
    return fee_amount, amount - fee_amount


# -- Exchange rate -----------------------------------------------------------

def tokens_for(value: int, total_pool_tokens: int, total_stake_value: int) -> int:
    """
    Pool tokens worth ``value`` at the current rate.

    ``floor(value * total_pool_tokens / total_stake_value)``; an empty pool
    (no tokens outstanding) converts 1:1.
    """
    _require_u64(value, name="value")
    _require_u64(total_pool_tokens, name="total_pool_tokens")
    _require_u64(total_stake_value, name="total_stake_value")
    if total_pool_tokens == 0:
        return value
    if total_stake_value == 0:
        raise ExchangeRateZero(f"{total_pool_tokens} pool tokens outstanding against zero stake value")
    return checked_mul_div(value, total_pool_tokens, total_stake_value)


def value_for(tokens: int, total_pool_tokens: int, total_stake_value: int) -> int:
    """
    Stake value redeemable for ``tokens`` at the current rate.

    ``floor(tokens * total_stake_value / total_pool_tokens)``; an empty pool
    converts 1:1.
    """
    _require_u64(tokens, name="tokens")
    _require_u64(total_pool_tokens, name="total_pool_tokens")
    _require_u64(total_stake_value, name="total_stake_value")
    if total_pool_tokens == 0:
        return tokens
    return checked_mul_div(tokens, total_stake_value, total_pool_tokens)


def epoch_fee_tokens(reward: int, fee: Fee, total_pool_tokens: int, new_total_value: int) -> int:
    """
    Pool tokens minted to the manager for its share of an epoch reward.

    The fee is ``fee_value = floor(reward * fee)``. Minting ``t`` new tokens
    dilutes holders so that ``t`` is worth ``fee_value`` at the post-mint rate:
    ``t = floor(fee_value * supply / (new_total - fee_value))``.
    """
    _require_u64(reward, name="reward")
    fee_value, _ = apply_fee(reward, fee)
    if fee_value == 0 or total_pool_tokens == 0:
        return 0
    remaining = new_total_value - fee_value
    if remaining <= 0:
        return 0
    return checked_mul_div(fee_value, total_pool_tokens, remaining)
