"""
In-process token ledger.

Balances and allowances keyed by token address, plus the native currency
under the NATIVE key. Every call is atomic and fails closed: a movement
that cannot be covered raises and changes nothing.

atomic() groups several movements into one all-or-nothing unit. It
snapshots state on entry and restores it if the block raises. Scopes nest;
only the outermost commit is final.

State kept outside the ledger joins a scope through two hooks:

    on_rollback(fn)   undo for the open scope; runs if it or any enclosing
                      scope rolls back
    on_commit(fn)     deferred to the outermost commit; a hook that raises
                      rolls the whole unit back (hooks that already ran
                      are not undone)
"""

import copy
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Tuple

from orderseal.core.exceptions import InsufficientAllowance, InsufficientBalance
from orderseal.core.models import UINT256_MAX, normalize_address

logger = logging.getLogger(__name__)

NATIVE = "native"

# Allowances at this value are never decremented.
UNLIMITED_ALLOWANCE = UINT256_MAX


def _token_key(token: str) -> str:
    return NATIVE if token == NATIVE else normalize_address(token, "token")


@dataclass
class _Scope:
    balances:       Dict[Tuple[str, str], int]
    allowances:     Dict[Tuple[str, str, str], int]
    rollback_hooks: List[Callable[[], None]] = field(default_factory=list)
    commit_hooks:   List[Callable[[], None]] = field(default_factory=list)


class TokenLedger:
    """
    Reference implementation of the token ledger boundary.

    Thread-safe via an internal re-entrant lock held for every call and
    for the whole body of atomic().
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._balances:   Dict[Tuple[str, str], int] = {}
        self._allowances: Dict[Tuple[str, str, str], int] = {}
        self._scopes:     List[_Scope] = []

    # ── Reads ─────────────────────────────────────────────────

    def balance_of(self, token: str, owner: str) -> int:
        with self._lock:
            return self._balances.get((_token_key(token), normalize_address(owner, "owner")), 0)

    def allowance(self, token: str, owner: str, spender: str) -> int:
        with self._lock:
            key = (
                _token_key(token),
                normalize_address(owner, "owner"),
                normalize_address(spender, "spender"),
            )
            return self._allowances.get(key, 0)

    def is_transferable(self, token: str, owner: str, spender: str, amount: int) -> bool:
        """True if `spender` could pull `amount` of `token` from `owner` right now."""
        with self._lock:
            return (
                self.balance_of(token, owner) >= amount
                and self.allowance(token, owner, spender) >= amount
            )

    # ── Writes ────────────────────────────────────────────────

    def set_balance(self, token: str, owner: str, amount: int) -> None:
        """Overwrite a balance. Used to seed test and demo ledgers."""
        if amount < 0:
            raise ValueError(f"Balance cannot be negative: {amount}")
        with self._lock:
            self._balances[(_token_key(token), normalize_address(owner, "owner"))] = amount

    def approve(self, token: str, owner: str, spender: str, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"Allowance cannot be negative: {amount}")
        with self._lock:
            key = (
                _token_key(token),
                normalize_address(owner, "owner"),
                normalize_address(spender, "spender"),
            )
            self._allowances[key] = amount

    def transfer(self, token: str, sender: str, recipient: str, amount: int) -> None:
        """
        Move `amount` of `token` from `sender` to `recipient`.
        Raises InsufficientBalance if `sender` cannot cover it.
        """
        if amount < 0:
            raise ValueError(f"Transfer amount cannot be negative: {amount}")
        with self._lock:
            self._move(_token_key(token), normalize_address(sender, "sender"),
                       normalize_address(recipient, "recipient"), amount)

    def transfer_from(
        self,
        token:     str,
        spender:   str,
        owner:     str,
        recipient: str,
        amount:    int,
    ) -> None:
        """
        `spender` moves `amount` of `owner`'s `token` to `recipient`.
        Raises InsufficientAllowance or InsufficientBalance, changing nothing.
        """
        if amount < 0:
            raise ValueError(f"Transfer amount cannot be negative: {amount}")
        with self._lock:
            token_key = _token_key(token)
            owner = normalize_address(owner, "owner")
            spender = normalize_address(spender, "spender")
            allowance_key = (token_key, owner, spender)
            allowed = self._allowances.get(allowance_key, 0)
            if allowed < amount:
                raise InsufficientAllowance(
                    "Allowance too low for transfer",
                    {"token": token_key, "owner": owner, "spender": spender,
                     "allowance": allowed, "amount": amount},
                )
            self._move(token_key, owner, normalize_address(recipient, "recipient"), amount)
            if allowed != UNLIMITED_ALLOWANCE:
                self._allowances[allowance_key] = allowed - amount

    def deposit(self, wrapped_token: str, owner: str, amount: int) -> None:
        """Convert `amount` of `owner`'s native currency into wrapped tokens 1:1."""
        if amount < 0:
            raise ValueError(f"Deposit amount cannot be negative: {amount}")
        with self._lock:
            owner = normalize_address(owner, "owner")
            self._debit(NATIVE, owner, amount)
            self._credit(_token_key(wrapped_token), owner, amount)

    def withdraw(self, wrapped_token: str, owner: str, amount: int) -> None:
        """Redeem `amount` of wrapped tokens back into native currency."""
        if amount < 0:
            raise ValueError(f"Withdraw amount cannot be negative: {amount}")
        with self._lock:
            owner = normalize_address(owner, "owner")
            self._debit(_token_key(wrapped_token), owner, amount)
            self._credit(NATIVE, owner, amount)

    # ── Atomic scopes ─────────────────────────────────────────

    @contextmanager
    def atomic(self) -> Iterator["TokenLedger"]:
        """
        All movements inside the block commit together or not at all.
        The block's exception propagates after state is restored.
        """
        with self._lock:
            scope = _Scope(copy.copy(self._balances), copy.copy(self._allowances))
            self._scopes.append(scope)
            try:
                yield self
                if len(self._scopes) == 1:
                    for callback in scope.commit_hooks:
                        callback()
            except BaseException:
                self._scopes.pop()
                for undo in reversed(scope.rollback_hooks):
                    undo()
                self._balances, self._allowances = scope.balances, scope.allowances
                logger.debug("Token ledger scope rolled back (depth=%d)", len(self._scopes))
                raise

            self._scopes.pop()
            if self._scopes:
                parent = self._scopes[-1]
                parent.rollback_hooks.extend(scope.rollback_hooks)
                parent.commit_hooks.extend(scope.commit_hooks)

    def on_rollback(self, callback: Callable[[], None]) -> None:
        """Register an undo for the open scope. Raises RuntimeError outside atomic()."""
        with self._lock:
            if not self._scopes:
                raise RuntimeError("on_rollback() needs an open atomic() scope")
            self._scopes[-1].rollback_hooks.append(callback)

    def on_commit(self, callback: Callable[[], None]) -> None:
        """Run `callback` when the outermost scope commits, or now if none is open."""
        with self._lock:
            if not self._scopes:
                callback()
                return
            self._scopes[-1].commit_hooks.append(callback)

    # ── Internal ──────────────────────────────────────────────

    def _move(self, token: str, sender: str, recipient: str, amount: int) -> None:
        self._debit(token, sender, amount)
        self._credit(token, recipient, amount)

    def _debit(self, token: str, owner: str, amount: int) -> None:
        balance = self._balances.get((token, owner), 0)
        if balance < amount:
            raise InsufficientBalance(
                "Balance too low for transfer",
                {"token": token, "owner": owner, "balance": balance, "amount": amount},
            )
        self._balances[(token, owner)] = balance - amount

    def _credit(self, token: str, owner: str, amount: int) -> None:
        self._balances[(token, owner)] = self._balances.get((token, owner), 0) + amount
