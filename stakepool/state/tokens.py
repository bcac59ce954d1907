"""
Pool token balance tracking.

In production the pool token is an external mint; this ledger is the
in-process `TokenIssuer` used by the engine shell and tests.
"""

from __future__ import annotations

from typing import Dict

Holder = str
Amount = int


class PoolTokenLedger:
    """
    Deterministic pool token table mapping holder -> amount.

    Notes:
    - Balances are always non-negative.
    - Zero balances are omitted to keep the table sparse.
    - ``supply`` always equals the sum of balances.
    """

    def __init__(self) -> None:
        self._balances: Dict[Holder, Amount] = {}
        self._supply: Amount = 0

    @property
    def supply(self) -> Amount:
        return self._supply

    def balance_of(self, holder: Holder) -> Amount:
        """Get a holder's balance. Returns 0 if not found."""
        return self._balances.get(holder, 0)

    def _set(self, holder: Holder, amount: Amount) -> None:
        if amount == 0:
            self._balances.pop(holder, None)
        else:
            self._balances[holder] = amount

    def mint(self, amount: Amount, recipient: Holder) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
            raise ValueError(f"mint amount must be a non-negative int: {amount!r}")
        self._set(recipient, self.balance_of(recipient) + amount)
        self._supply += amount

    def burn(self, amount: Amount, source: Holder) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
            raise ValueError(f"burn amount must be a non-negative int: {amount!r}")
        current = self.balance_of(source)
        if amount > current:
            raise ValueError(f"Insufficient pool tokens: {source} holds {current}, burn {amount}")
        self._set(source, current - amount)
        self._supply -= amount

    def transfer(self, amount: Amount, source: Holder, recipient: Holder) -> None:
        self.burn(amount, source)
        self.mint(amount, recipient)

    def get_all_balances(self) -> Dict[Holder, Amount]:
        return dict(self._balances)

    def verify_supply(self) -> bool:
        return sum(self._balances.values()) == self._supply

    def __repr__(self) -> str:
        return f"PoolTokenLedger({len(self._balances)} holders, supply={self._supply})"
