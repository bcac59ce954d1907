"""In-memory ground truth for the epoch pass."""

from __future__ import annotations

from typing import Dict, Optional

from ..core.interfaces import StakeObservation


class StaticStakeValueSource:
    """
    ``StakeValueSource`` backed by a dict.

    Validators never set report zero stake, which is what a freshly
    registered validator holds.
    """

    def __init__(self, values: Optional[Dict[str, int]] = None) -> None:
        self._observations: Dict[str, StakeObservation] = {
            k: StakeObservation(active_value=v) for k, v in (values or {}).items()
        }

    def set(self, validator: str, active_value: int, transient_value: int = 0) -> None:
        if not isinstance(active_value, int) or isinstance(active_value, bool) or active_value < 0:
            raise ValueError(f"active_value must be a non-negative int: {active_value!r}")
        self._observations[validator] = StakeObservation(active_value=active_value, transient_value=transient_value)

    def add_reward(self, validator: str, reward: int) -> None:
        current = self.observe(validator, 0)
        self.set(validator, current.active_value + reward, current.transient_value)

    def observe(self, validator: str, epoch: int) -> StakeObservation:
        return self._observations.get(validator, StakeObservation(active_value=0))
