"""
Pool configuration loading.

A pool config file is a YAML mapping::

    max_validators: 100
    draw_order: validator_first      # or reserve_first
    max_transient_per_direction: 1
    max_validators_per_update: 5
    deposit_fee: {numerator: 1, denominator: 100}
    withdrawal_fee: [1, 200]
    epoch_fee: {numerator: 5, denominator: 100}

Every key is optional; omitted keys take the ``PoolConfig`` defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Mapping, Union

import yaml

from ..core.errors import ErrorCategory, InvalidFeeConfiguration, StakePoolError
from ..core.fees import Fee, FeeSchedule
from ..core.pool import PoolConfig
from ..core.types import DrawOrder


class ConfigError(StakePoolError):
    code = "ConfigError"
    category = ErrorCategory.INPUT


_INT_KEYS = ("max_validators", "max_transient_per_direction", "max_validators_per_update")
_FEE_KEYS = ("deposit_fee", "withdrawal_fee", "epoch_fee")
KNOWN_KEYS = frozenset(_INT_KEYS + _FEE_KEYS + ("draw_order",))


def _parse_fee(raw: Any, *, name: str) -> Fee:
    if isinstance(raw, Mapping):
        unknown = set(raw) - {"numerator", "denominator"}
        if unknown:
            raise ConfigError(f"{name}: unknown keys {sorted(unknown)}")
        numerator = raw.get("numerator", 0)
        denominator = raw.get("denominator", 1)
    elif isinstance(raw, (list, tuple)) and len(raw) == 2:
        numerator, denominator = raw
    else:
        raise ConfigError(f"{name} must be a mapping or a [numerator, denominator] pair")
    for part, v in (("numerator", numerator), ("denominator", denominator)):
        if not isinstance(v, int) or isinstance(v, bool):
            raise ConfigError(f"{name}.{part} must be an int")
    return Fee(numerator=numerator, denominator=denominator)


def config_from_mapping(data: Mapping[str, Any]) -> PoolConfig:
    """Build a validated ``PoolConfig`` from a plain mapping."""
    if not isinstance(data, Mapping):
        raise ConfigError("config must be a mapping")
    unknown = set(data) - KNOWN_KEYS
    if unknown:
        raise ConfigError(f"unknown config keys: {sorted(unknown)}")

    kwargs: Dict[str, Any] = {}
    for key in _INT_KEYS:
        if key in data:
            v = data[key]
            if not isinstance(v, int) or isinstance(v, bool):
                raise ConfigError(f"{key} must be an int")
            kwargs[key] = v

    if "draw_order" in data:
        raw = data["draw_order"]
        try:
            kwargs["draw_order"] = DrawOrder(raw)
        except ValueError as exc:
            choices = ", ".join(d.value for d in DrawOrder)
            raise ConfigError(f"draw_order must be one of: {choices}") from exc

    fees = FeeSchedule(
        deposit=_parse_fee(data.get("deposit_fee", {}), name="deposit_fee"),
        withdrawal=_parse_fee(data.get("withdrawal_fee", {}), name="withdrawal_fee"),
        epoch=_parse_fee(data.get("epoch_fee", {}), name="epoch_fee"),
    )

    try:
        return PoolConfig(fees=fees, **kwargs)
    except (InvalidFeeConfiguration, TypeError, ValueError) as exc:
        raise ConfigError(str(exc)) from exc


def load_config(path: Union[str, Path]) -> PoolConfig:
    """Load a ``PoolConfig`` from a YAML file."""
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except OSError as exc:
        raise ConfigError(f"cannot read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"config file {path} is not valid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping.")
    return config_from_mapping(data)
