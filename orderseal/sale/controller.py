"""
Capped, registration-gated sale of protocol tokens for native currency.

The sale owns one pre-signed order that sells protocol tokens for
wrapped-native tokens and names the sale's own address as taker. Each
contribution wraps the accepted native value, fills that much of the order
through the settlement engine, forwards the bought protocol tokens to the
contributor and refunds whatever was not accepted.

Lifecycle:

    UNINITIALIZED --init()--> ACTIVE --order fully filled--> FINISHED

FINISHED is terminal.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from orderseal.config import SaleConfig
from orderseal.core.exceptions import (
    AlreadyInitialized,
    InvalidCap,
    InvalidFillAmount,
    InvalidOrder,
    InvalidSignature,
    NotInitialized,
    NotRegistered,
    OrderExpired,
    SaleFinished,
)
from orderseal.core.models import (
    FillResult,
    Order,
    SaleFinishedEvent,
    SaleInitializedEvent,
    SaleState,
    SignedOrder,
    normalize_address,
)
from orderseal.core.ownership import Ownable
from orderseal.core.time import Clock, unix_now
from orderseal.journal.journal import EventJournal
from orderseal.ledger.tokens import NATIVE
from orderseal.sale.registration import RegistrationRegistry
from orderseal.settlement.engine import SettlementEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContributionResult:
    contributor:     str
    accepted:        int
    refunded:        int
    tokens_received: int
    fill:            Optional[FillResult] = None


class CappedSaleController(Ownable):
    """
    Sale controller.

    Every operation holds the engine's lock for its whole duration and runs
    its token movements inside one ledger scope, so a failed contribution
    leaves balances, the fill ledger and the contribution ledger untouched.
    """

    def __init__(
        self,
        engine:  SettlementEngine,
        config:  SaleConfig,
        journal: Optional[EventJournal] = None,
        clock:   Clock = unix_now,
    ):
        super().__init__(config.owner)
        self.engine = engine
        self.ledger = engine.ledger
        self.journal = journal if journal is not None else engine.journal
        self.address = config.sale_address
        self.protocol_token = config.protocol_token
        self.wrapped_native_token = config.wrapped_native_token
        self._clock = clock
        self._cap_per_address = config.cap_per_address
        self._registry = RegistrationRegistry(config.owner)
        self._state = SaleState.UNINITIALIZED
        self._signed_order: Optional[SignedOrder] = None
        self._order_hash: Optional[str] = None
        self._contributed: Dict[str, int] = {}

    # ── Views ─────────────────────────────────────────────────

    @property
    def state(self) -> SaleState:
        return self._state

    @property
    def is_initialized(self) -> bool:
        return self._state is not SaleState.UNINITIALIZED

    @property
    def is_finished(self) -> bool:
        return self._state is SaleState.FINISHED

    @property
    def cap_per_address(self) -> int:
        return self._cap_per_address

    @property
    def order(self) -> Optional[SignedOrder]:
        return self._signed_order

    @property
    def order_hash(self) -> Optional[str]:
        return self._order_hash

    def contributed(self, address: str) -> int:
        return self._contributed.get(normalize_address(address), 0)

    def is_registered(self, address: str) -> bool:
        return self._registry.is_registered(address)

    # ── Lifecycle ─────────────────────────────────────────────

    def init(self, caller: str, signed_order: SignedOrder) -> None:
        """
        Register the sale order and open the sale.

        Raises Unauthorized, AlreadyInitialized, InvalidOrder, InvalidSignature.
        """
        with self.engine.lock:
            self._only_owner(caller, "init")
            if self._state is not SaleState.UNINITIALIZED:
                raise AlreadyInitialized("Sale has already been initialized")

            order = signed_order.order
            self._validate_sale_order(order)

            order_hash = self.engine.order_fingerprint(order)
            if not self.engine.is_valid_signature(order.maker, order_hash, signed_order.signature):
                raise InvalidSignature(
                    "Sale order signature does not match its maker",
                    {"order_hash": order_hash, "maker": order.maker},
                )

            with self.ledger.atomic():
                self.ledger.approve(
                    self.wrapped_native_token, self.address, self.engine.proxy_address,
                    order.taker_token_amount,
                )
                self._signed_order = signed_order
                self._order_hash = order_hash
                self._state = SaleState.ACTIVE
                self.ledger.on_rollback(self._reset_order)
                self.ledger.on_commit(lambda: self.journal.emit(SaleInitializedEvent(
                    order=order, signature=signed_order.signature, timestamp=self._clock(),
                )))

            logger.info(
                "Sale %s initialized with order %s (%d for %d)",
                self.address, order_hash, order.maker_token_amount, order.taker_token_amount,
            )

    def contribute(self, contributor: str, native_amount: int) -> ContributionResult:
        """
        Exchange `native_amount` of `contributor`'s native currency for
        protocol tokens, up to the per-address cap and what remains of the
        order. The unaccepted remainder is refunded.

        Raises NotInitialized, SaleFinished, NotRegistered, OrderExpired, and
        anything the settlement engine, token ledger or journal raises.
        On any failure nothing changes.
        """
        with self.engine.lock:
            contributor = normalize_address(contributor, "contributor")
            if self._state is SaleState.UNINITIALIZED:
                raise NotInitialized("Sale has not been initialized")
            if self._state is SaleState.FINISHED:
                raise SaleFinished("Sale has finished")
            if not self._registry.is_registered(contributor):
                raise NotRegistered(
                    "Contributor is not registered", {"contributor": contributor}
                )
            if native_amount < 0:
                raise InvalidFillAmount(
                    "Contribution cannot be negative", {"amount": native_amount}
                )

            order = self._signed_order.order
            now = self._clock()
            if now > order.expiration:
                raise OrderExpired(
                    "Sale order has expired", {"expiration": order.expiration, "now": now}
                )

            remaining = self.engine.remaining_amount(order)
            allowed = self._allowed_contribution(contributor, native_amount, remaining)
            refund = native_amount - allowed

            fill = None
            tokens_received = 0
            with self.ledger.atomic():
                self.ledger.transfer(NATIVE, contributor, self.address, native_amount)
                if allowed > 0:
                    self.ledger.deposit(self.wrapped_native_token, self.address, allowed)
                    fill = self.engine.fill_or_kill(self._signed_order, self.address, allowed)
                    tokens_received = fill.filled_maker_amount
                    self.ledger.transfer(
                        self.protocol_token, self.address, contributor, tokens_received
                    )
                    self._record_contribution(contributor, allowed)
                    if self.engine.remaining_amount(order) == 0:
                        self._finish(now)
                if refund > 0:
                    self.ledger.transfer(NATIVE, self.address, contributor, refund)

            if refund > 0:
                logger.warning(
                    "Refunded %d of %d from %s (cap or order exhausted)",
                    refund, native_amount, contributor,
                )
            logger.info(
                "Accepted %d from %s for %d protocol tokens", allowed, contributor, tokens_received
            )

            return ContributionResult(
                contributor=contributor,
                accepted=allowed,
                refunded=refund,
                tokens_received=tokens_received,
                fill=fill,
            )

    # Native value sent to the sale address with no call data.
    receive = contribute

    # ── Administration ────────────────────────────────────────

    def set_cap_per_address(self, caller: str, new_cap: int) -> None:
        with self.engine.lock:
            self._only_owner(caller, "set_cap_per_address")
            if new_cap < 0:
                raise InvalidCap("Cap cannot be negative", {"cap": new_cap})
            logger.info("Cap per address changed %d -> %d", self._cap_per_address, new_cap)
            self._cap_per_address = new_cap

    def change_registration_status(self, caller: str, address: str, is_registered: bool) -> None:
        with self.engine.lock:
            self._only_owner(caller, "change_registration_status")
            self._registry.change_registration_status(caller, address, is_registered)

    def change_registration_statuses(
        self,
        caller: str,
        addresses: Iterable[str],
        is_registered: bool,
    ) -> None:
        with self.engine.lock:
            self._only_owner(caller, "change_registration_statuses")
            self._registry.change_registration_statuses(caller, addresses, is_registered)

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        with self.engine.lock:
            self._only_owner(caller, "transfer_ownership")
            self._registry.transfer_ownership(caller, new_owner)
            super().transfer_ownership(caller, new_owner)

    # ── Internal ──────────────────────────────────────────────

    def _reset_order(self) -> None:
        self._signed_order = None
        self._order_hash = None
        self._state = SaleState.UNINITIALIZED

    def _record_contribution(self, contributor: str, amount: int) -> None:
        previous = self._contributed.get(contributor, 0)
        self._contributed[contributor] = previous + amount

        def undo() -> None:
            if previous:
                self._contributed[contributor] = previous
            else:
                self._contributed.pop(contributor, None)

        self.ledger.on_rollback(undo)

    def _finish(self, timestamp: int) -> None:
        self._state = SaleState.FINISHED
        self.ledger.on_rollback(lambda: setattr(self, "_state", SaleState.ACTIVE))

        def announce() -> None:
            self.journal.emit(SaleFinishedEvent(timestamp=timestamp))
            logger.info("Sale %s finished: order %s fully filled", self.address, self._order_hash)

        self.ledger.on_commit(announce)

    def _validate_sale_order(self, order: Order) -> None:
        checks = (
            (order.exchange_address == self.engine.exchange_address,
             "Sale order was made for a different exchange"),
            (order.maker_token == self.protocol_token,
             "Sale order must sell the protocol token"),
            (order.taker_token == self.wrapped_native_token,
             "Sale order must buy the wrapped native token"),
            (order.taker == self.address,
             "Sale order taker must be the sale address"),
            (order.maker_token_amount > 0 and order.taker_token_amount > 0,
             "Sale order amounts must be positive"),
        )
        for ok, message in checks:
            if not ok:
                raise InvalidOrder(message, {"maker": order.maker})

    def _allowed_contribution(self, contributor: str, native_amount: int, remaining: int) -> int:
        cap_left = max(self._cap_per_address - self._contributed.get(contributor, 0), 0)
        return min(native_amount, cap_left, remaining)
