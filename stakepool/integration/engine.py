"""
Imperative shell around the stake pool core.

Each public method is one atomic transaction:

    load -> authorize -> core operation -> invariant check -> burns -> store -> mints

Nothing is written back unless every step succeeded; a failure leaves the
stored account exactly as it was. There are no retries: staleness errors are
surfaced for the caller to resolve (usually by driving the epoch pass).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping, Optional, TypeVar

from ..core import admin, epoch_update, handlers
from ..core.errors import InvalidAmount, InvariantViolation, Unauthorized
from ..core.fees import Fee
from ..core.interfaces import AccountStore, AuthorityVerifier, StakeValueSource, TokenIssuer
from ..core.invariants import RATE_INVARIANTS, check_all
from ..core.pool import DEFAULT_MAX_VALIDATORS_PER_UPDATE, PoolConfig, initialize_pool
from ..core.types import (
    BalanceReport,
    ClaimPayout,
    CleanupReport,
    DepositEffect,
    PoolState,
    RefreshReport,
    TokenBurn,
    TokenMint,
    TransientStakeEntry,
    WithdrawEffect,
)
from .authority import DEFAULT_POOL_ID, Authorization, admin_message

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class EpochUpdateResult:
    epoch: int
    refreshes: tuple[RefreshReport, ...]
    balance: BalanceReport
    cleanup: CleanupReport

    @property
    def payouts(self) -> tuple[ClaimPayout, ...]:
        return tuple(p for r in self.refreshes for p in r.payouts)


class StakePoolEngine:
    """
    Runs core operations against a stored pool account.

    When ``verifier`` is set, privileged calls must carry a signature over
    ``admin_message(op, args, state.admin_nonce)``; without one, the
    ``Authorization.signer`` claim is trusted and only checked against the
    stored roles.
    """

    def __init__(
        self,
        store: AccountStore,
        issuer: TokenIssuer,
        *,
        verifier: Optional[AuthorityVerifier] = None,
        pool_id: str = DEFAULT_POOL_ID,
        max_validators_per_update: int = DEFAULT_MAX_VALIDATORS_PER_UPDATE,
    ) -> None:
        if not isinstance(max_validators_per_update, int) or max_validators_per_update <= 0:
            raise ValueError("max_validators_per_update must be a positive int")
        self.store = store
        self.issuer = issuer
        self.verifier = verifier
        self.pool_id = pool_id
        self.max_validators_per_update = max_validators_per_update

    @classmethod
    def create(
        cls,
        config: PoolConfig,
        store: AccountStore,
        issuer: TokenIssuer,
        *,
        manager: str,
        staker: str,
        current_epoch: int = 0,
        manager_fee_recipient: Optional[str] = None,
        deposit_authority: Optional[str] = None,
        verifier: Optional[AuthorityVerifier] = None,
        pool_id: str = DEFAULT_POOL_ID,
    ) -> "StakePoolEngine":
        """Initialize a new pool account in ``store`` and return an engine for it."""
        state = initialize_pool(
            config,
            manager=manager,
            staker=staker,
            current_epoch=current_epoch,
            manager_fee_recipient=manager_fee_recipient,
            deposit_authority=deposit_authority,
        )
        store.store(state)
        logger.info(
            "Pool initialized",
            extra={"event": "stake_pool.initialized", "pool_id": pool_id, "epoch": current_epoch},
        )
        return cls(
            store,
            issuer,
            verifier=verifier,
            pool_id=pool_id,
            max_validators_per_update=config.max_validators_per_update,
        )

    def state(self) -> PoolState:
        return self.store.load()

    # ------------------------------------------------------------------
    # Transaction plumbing
    # ------------------------------------------------------------------

    def _authorize(
        self, state: PoolState, auth: Optional[Authorization], op: str, args: Mapping[str, Any],
    ) -> Optional[str]:
        if auth is None:
            return None
        if self.verifier is None:
            return auth.signer
        if not auth.signature:
            raise Unauthorized(f"{op} requires a signature")
        message = admin_message(op, args, state.admin_nonce, pool_id=self.pool_id)
        if not self.verifier.verify(auth.signer, message, auth.signature):
            logger.warning(
                "Rejected signature",
                extra={"event": "stake_pool.signature_rejected", "op": op, "signer": auth.signer},
            )
            raise Unauthorized(f"invalid signature for {op}")
        return auth.signer

    @staticmethod
    def _check_invariants(before: PoolState, after: PoolState, *, tolerate: frozenset = frozenset()) -> None:
        # Only violations introduced by this operation count.
        already = set(check_all(before))
        introduced = [v for v in check_all(after) if v not in already and v not in tolerate]
        if introduced:
            raise InvariantViolation(introduced)

    def _commit(
        self, new_state: PoolState, burns: Iterable[TokenBurn] = (), mints: Iterable[TokenMint] = (),
    ) -> None:
        """
        Burn, store, then mint.

        Burns double as the holder-balance check, so they run before the
        account is written; if the store fails they are re-minted. Mints only
        happen once the new state is durable.
        """
        burned: list[TokenBurn] = []
        try:
            for burn in burns:
                try:
                    self.issuer.burn(burn.amount, burn.source)
                except ValueError as exc:
                    raise InvalidAmount(str(exc)) from exc
                burned.append(burn)
            self.store.store(new_state)
        except Exception:
            for burn in reversed(burned):
                self.issuer.mint(burn.amount, burn.source)
            raise
        for mint in mints:
            self.issuer.mint(mint.amount, mint.recipient)

    def _admin(
        self,
        op: str,
        args: Mapping[str, Any],
        auth: Optional[Authorization],
        operation: Callable[[PoolState, Optional[str]], T],
    ) -> T:
        state = self.store.load()
        signer = self._authorize(state, auth, op, args)
        result = operation(state, signer)
        new_state = result[0] if isinstance(result, tuple) else result
        self._check_invariants(state, new_state)
        self.store.store(new_state)
        logger.info(
            "Admin operation applied",
            extra={"event": f"stake_pool.{op}", "signer": signer, "admin_nonce": new_state.admin_nonce, **args},
        )
        return result

    # ------------------------------------------------------------------
    # User operations
    # ------------------------------------------------------------------

    def deposit(
        self,
        value: int,
        depositor: str,
        current_epoch: int,
        *,
        validator: Optional[str] = None,
        activating: bool = False,
        auth: Optional[Authorization] = None,
    ) -> DepositEffect:
        state = self.store.load()
        args = {"value": value, "depositor": depositor, "validator": validator, "activating": activating}
        signer = self._authorize(state, auth, "deposit", args)
        new_state, effect = handlers.deposit(
            state, value, depositor, current_epoch,
            validator=validator, activating=activating, signer=signer,
        )
        self._check_invariants(state, new_state)
        self._commit(new_state, effect.burns, effect.mints)
        logger.info(
            "Deposit accepted",
            extra={
                "event": "stake_pool.deposit",
                "depositor": depositor,
                "value": value,
                "tokens": effect.tokens_minted,
                "fee_value": effect.fee_value,
                "validator": effect.validator,
                "epoch": current_epoch,
            },
        )
        return effect

    def withdraw(
        self,
        tokens: int,
        owner: str,
        current_epoch: int,
        *,
        validator: Optional[str] = None,
        auth: Optional[Authorization] = None,
    ) -> WithdrawEffect:
        """
        Redeem ``owner``'s pool tokens.

        With a verifier configured, or whenever ``auth`` is given, the call
        must be authorized by ``owner`` itself.
        """
        state = self.store.load()
        args = {"tokens": tokens, "owner": owner, "validator": validator}
        signer = self._authorize(state, auth, "withdraw", args)
        if (self.verifier is not None or auth is not None) and signer != owner:
            raise Unauthorized("withdrawal must be authorized by the token owner")
        new_state, effect = handlers.withdraw(state, tokens, owner, current_epoch, validator=validator)
        self._check_invariants(state, new_state)
        self._commit(new_state, effect.burns, effect.mints)
        logger.info(
            "Withdrawal accepted",
            extra={
                "event": "stake_pool.withdraw",
                "owner": owner,
                "tokens": tokens,
                "value": effect.value,
                "fee_tokens": effect.fee_tokens,
                "from_reserve": effect.from_reserve,
                "epoch": current_epoch,
            },
        )
        return effect

    # ------------------------------------------------------------------
    # Epoch update
    # ------------------------------------------------------------------

    def refresh_validators(
        self, source: StakeValueSource, current_epoch: int, *, max_count: Optional[int] = None,
    ) -> RefreshReport:
        state = self.store.load()
        new_state, report = epoch_update.refresh_validators(
            state, source, current_epoch, max_count=max_count or self.max_validators_per_update,
        )
        self._check_invariants(state, new_state, tolerate=RATE_INVARIANTS)
        self.store.store(new_state)
        for payout in report.payouts:
            logger.info(
                "Withdrawal claim paid",
                extra={
                    "event": "stake_pool.claim_paid",
                    "claimant": payout.claimant,
                    "value": payout.value,
                    "sequence": payout.sequence,
                },
            )
        return report

    def restart_validator_pass(self, current_epoch: int) -> None:
        state = self.store.load()
        self.store.store(epoch_update.restart_validator_pass(state, current_epoch))
        logger.info(
            "Validator pass restarted",
            extra={"event": "stake_pool.pass_restarted", "epoch": current_epoch},
        )

    def update_pool_balance(self, current_epoch: int) -> BalanceReport:
        state = self.store.load()
        new_state, report = epoch_update.update_pool_balance(state, current_epoch)
        self._check_invariants(state, new_state, tolerate=RATE_INVARIANTS)
        self._commit(new_state, mints=report.mints)
        return report

    def cleanup_removed_validators(self, current_epoch: int) -> CleanupReport:
        state = self.store.load()
        new_state, report = epoch_update.cleanup_removed_validators(state, current_epoch)
        self._check_invariants(state, new_state, tolerate=RATE_INVARIANTS)
        self.store.store(new_state)
        return report

    def update_all(self, source: StakeValueSource, current_epoch: int) -> EpochUpdateResult:
        """
        Bring the pool to FRESH for ``current_epoch``.

        Pass 1 runs in batches of ``max_validators_per_update``, each stored
        before the next starts, so an interruption resumes from the cursor.
        """
        refreshes = []
        while True:
            report = self.refresh_validators(source, current_epoch)
            refreshes.append(report)
            if report.complete:
                break
        balance = self.update_pool_balance(current_epoch)
        cleanup = self.cleanup_removed_validators(current_epoch)
        return EpochUpdateResult(
            epoch=current_epoch, refreshes=tuple(refreshes), balance=balance, cleanup=cleanup,
        )

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    def add_validator(self, identity: str, *, auth: Optional[Authorization]) -> PoolState:
        return self._admin(
            "add_validator", {"validator": identity}, auth,
            lambda s, signer: admin.add_validator(s, signer, identity),
        )

    def remove_validator(self, identity: str, *, auth: Optional[Authorization]) -> PoolState:
        return self._admin(
            "remove_validator", {"validator": identity}, auth,
            lambda s, signer: admin.remove_validator(s, signer, identity),
        )

    def mark_validator_for_removal(self, identity: str, *, auth: Optional[Authorization]) -> PoolState:
        return self._admin(
            "mark_validator_for_removal", {"validator": identity}, auth,
            lambda s, signer: admin.mark_validator_for_removal(s, signer, identity),
        )

    def increase_validator_stake(
        self, identity: str, value: int, current_epoch: int, *, auth: Optional[Authorization],
    ) -> TransientStakeEntry:
        _, entry = self._admin(
            "increase_validator_stake", {"validator": identity, "value": value}, auth,
            lambda s, signer: admin.increase_validator_stake(s, signer, identity, value, current_epoch),
        )
        return entry

    def decrease_validator_stake(
        self, identity: str, value: int, current_epoch: int, *, auth: Optional[Authorization],
    ) -> TransientStakeEntry:
        _, entry = self._admin(
            "decrease_validator_stake", {"validator": identity, "value": value}, auth,
            lambda s, signer: admin.decrease_validator_stake(s, signer, identity, value, current_epoch),
        )
        return entry

    def set_preferred_validator(
        self, kind: admin.PreferredKind, identity: Optional[str], *, auth: Optional[Authorization],
    ) -> PoolState:
        return self._admin(
            "set_preferred_validator", {"kind": kind, "validator": identity}, auth,
            lambda s, signer: admin.set_preferred_validator(s, signer, kind, identity),
        )

    def set_fee(self, kind: admin.FeeKind, fee: Fee, *, auth: Optional[Authorization]) -> PoolState:
        return self._admin(
            "set_fee", {"kind": kind, "numerator": fee.numerator, "denominator": fee.denominator}, auth,
            lambda s, signer: admin.set_fee(s, signer, kind, fee),
        )

    def set_manager(
        self, new_manager: str, new_fee_recipient: Optional[str] = None, *, auth: Optional[Authorization],
    ) -> PoolState:
        return self._admin(
            "set_manager", {"manager": new_manager, "fee_recipient": new_fee_recipient}, auth,
            lambda s, signer: admin.set_manager(s, signer, new_manager, new_fee_recipient),
        )

    def set_staker(self, new_staker: str, *, auth: Optional[Authorization]) -> PoolState:
        return self._admin(
            "set_staker", {"staker": new_staker}, auth,
            lambda s, signer: admin.set_staker(s, signer, new_staker),
        )

    def set_deposit_authority(self, authority: Optional[str], *, auth: Optional[Authorization]) -> PoolState:
        return self._admin(
            "set_deposit_authority", {"authority": authority}, auth,
            lambda s, signer: admin.set_deposit_authority(s, signer, authority),
        )
